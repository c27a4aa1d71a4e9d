"""Exception hierarchy raised by the reconciliation engines.

Every condition is recoverable by the caller. Operations validate their input
before building a new ledger snapshot, so a raised exception always means the
snapshot passed in is still the current one.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Tuple


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class ValidationError(BusinessRuleViolation, ValueError):
    """Raised for non-positive amounts or missing required fields."""


class DuplicateShift(ValidationError):
    """Raised when a waiter already has a closed shift on the requested date."""


class DuplicateName(BusinessRuleViolation):
    """Raised when an attendant or customer name collides case-insensitively."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} '{name}' is already registered")
        self.kind = kind
        self.name = name


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced attendant or customer is unknown."""


class AlreadyFinalized(BusinessRuleViolation):
    """Raised when a closed day or a finalized credit ledger would be mutated."""


class DayNotClosed(BusinessRuleViolation):
    """Raised when the credit ledger of a still-open day is finalized."""


class NothingToClose(BusinessRuleViolation):
    """Raised when closing a day that has no shift or repayment entries."""


class UnreconciledPriorDay(BusinessRuleViolation):
    """Raised when earlier closed days still have un-itemized credit."""

    def __init__(self, dates: Iterable[date]) -> None:
        self.dates: Tuple[date, ...] = tuple(sorted(dates))
        listed = ", ".join(day.isoformat() for day in self.dates)
        super().__init__(f"Signed bills must be finalized first for: {listed}")


class AmountMismatch(BusinessRuleViolation):
    """Raised when itemized credit does not match the shift target.

    ``shortfall`` is ``target - entered``; a negative value means more credit
    was itemized than the shifts recorded.
    """

    def __init__(self, target: Decimal, entered: Decimal) -> None:
        self.target = target
        self.entered = entered
        self.shortfall = target - entered
        super().__init__(
            f"Signed bill total {entered} does not match target {target} "
            f"(shortfall {self.shortfall})"
        )


__all__ = [
    "BusinessRuleViolation",
    "ValidationError",
    "DuplicateShift",
    "DuplicateName",
    "MissingReferenceError",
    "AlreadyFinalized",
    "DayNotClosed",
    "NothingToClose",
    "UnreconciledPriorDay",
    "AmountMismatch",
]

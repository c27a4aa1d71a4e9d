"""Immutable ledger records and the snapshot that groups them.

The reconciliation engines never hold state of their own. Each operation
receives a :class:`LedgerState`, validates the request against it, and
returns a new snapshot alongside the record it produced. The Ledger Store
(see :mod:`smartcash.data_manager`) owns the canonical copy.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import FrozenSet, Optional, Tuple
from uuid import uuid4

from . import log
from .constants import ZERO, PayerType, PaymentMethod
from .errors import ValidationError


@dataclass(frozen=True)
class PaymentBreakdown:
    """Non-cash channels an attendant declares when closing a shift."""

    crdb: Decimal = ZERO
    stanbic: Decimal = ZERO
    mpesa: Decimal = ZERO
    signed_bill: Decimal = ZERO
    discount: Decimal = ZERO
    cancellation: Decimal = ZERO

    def total(self) -> Decimal:
        """Return the sum of all six channels."""
        return sum((getattr(self, item.name) for item in fields(self)), ZERO)


@dataclass(frozen=True)
class ShiftRecord:
    """One waiter's closed shift for one date."""

    record_id: str
    waiter_name: str
    shift_date: date
    declared_total: Decimal
    breakdown: PaymentBreakdown
    calculated_cash: Decimal
    overpayment_amount: Decimal
    created_at: datetime
    overpayment_method: Optional[str] = None
    remarks: Optional[str] = None


@dataclass(frozen=True)
class Attendant:
    """A registered waiter on the venue roster."""

    attendant_id: str
    name: str
    created_at: datetime


@dataclass(frozen=True)
class Customer:
    """A party allowed to sign bills on credit."""

    customer_id: str
    name: str
    created_at: datetime


@dataclass(frozen=True)
class SignedBillEntry:
    """Credit itemized against one customer for one date."""

    entry_id: str
    entry_date: date
    customer_id: str
    customer_name: str
    amount: Decimal


@dataclass(frozen=True)
class PaidBillEntry:
    """A debt repayment handed in by a waiter."""

    entry_id: str
    entry_date: date
    payer_type: PayerType
    payer_name: str
    received_from_waiter: str
    amount: Decimal
    method: PaymentMethod
    created_at: datetime


@dataclass(frozen=True)
class LedgerState:
    """Snapshot of every collection the engines read or extend."""

    shifts: Tuple[ShiftRecord, ...] = ()
    attendants: Tuple[Attendant, ...] = ()
    customers: Tuple[Customer, ...] = ()
    signed_bills: Tuple[SignedBillEntry, ...] = ()
    paid_bills: Tuple[PaidBillEntry, ...] = ()
    closed_dates: FrozenSet[date] = field(default_factory=frozenset)
    finalized_credit_dates: FrozenSet[date] = field(default_factory=frozenset)

    def shifts_on(self, day: date) -> Tuple[ShiftRecord, ...]:
        return tuple(record for record in self.shifts if record.shift_date == day)

    def signed_bills_on(self, day: date) -> Tuple[SignedBillEntry, ...]:
        return tuple(entry for entry in self.signed_bills if entry.entry_date == day)

    def paid_bills_on(self, day: date) -> Tuple[PaidBillEntry, ...]:
        return tuple(entry for entry in self.paid_bills if entry.entry_date == day)

    def is_closed(self, day: date) -> bool:
        return day in self.closed_dates

    def is_credit_finalized(self, day: date) -> bool:
        return day in self.finalized_credit_dates


def resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC time when it is ``None``."""

    return candidate if candidate is not None else datetime.now(UTC)


def generate_id(prefix: str, *, when: Optional[datetime] = None) -> str:
    """Generate a sortable identifier for a new record.

    Args:
        prefix (str): Single-letter designator for the record kind.
        when (datetime | None): Timestamp driving the sortable part. Defaults
            to the current UTC time.

    Returns:
        str: Identifier formed as ``{prefix}{YYYYMMDDHHMMSSffffff}-{suffix}``.

    The random suffix keeps identifiers distinct when several records share
    a timestamp, which happens when callers pass an explicit ``when``.
    """

    when = resolve_timestamp(when)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}-{uuid4().hex[:6]}"


def require_text(value: Optional[str], label: str) -> str:
    """Strip ``value`` and reject it when empty."""

    cleaned = (value or "").strip()
    if not cleaned:
        log.warning("Validation failed: %s is empty", label)
        raise ValidationError(f"{label} is required")
    return cleaned


def _require_finite(amount: Decimal, label: str) -> None:
    if not amount.is_finite():
        log.warning("Validation failed: %s must be a finite number, got %s", label, amount)
        raise ValidationError(f"{label} must be a finite number")


def require_positive_money(amount: Decimal, label: str = "Amount") -> None:
    """Validate that a monetary value is strictly positive.

    Raises:
        ValidationError: If ``amount`` is zero, negative or not finite.
    """

    _require_finite(amount, label)
    if amount <= ZERO:
        log.warning("Validation failed: %s must be positive, got %s", label, amount)
        raise ValidationError(f"{label} must be greater than zero")


def require_nonnegative_money(amount: Decimal, label: str = "Amount") -> None:
    """Validate that a monetary value is zero or positive.

    Raises:
        ValidationError: If ``amount`` is negative or not finite.
    """

    _require_finite(amount, label)
    if amount < ZERO:
        log.warning("Validation failed: %s must not be negative, got %s", label, amount)
        raise ValidationError(f"{label} must be zero or positive")


def same_name(left: str, right: str) -> bool:
    """Compare two display names the way the roster and customer list do."""

    return left.strip().casefold() == right.strip().casefold()

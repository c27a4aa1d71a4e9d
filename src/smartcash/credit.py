"""Per-day signed bill ledger: itemize a known credit total by customer.

The amount that must be itemized for a date is fixed by the shifts closed on
that date (their ``signed_bill`` channel). Cashiers attribute it to named
customers line by line and then finalize the ledger, which locks it for good.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple

from . import log
from .aggregation import credit_entered, credit_target
from .constants import CREDIT_MATCH_TOLERANCE, ZERO, CreditState
from .errors import AlreadyFinalized, AmountMismatch, DayNotClosed, DuplicateName
from .records import (
    Customer,
    LedgerState,
    SignedBillEntry,
    generate_id,
    require_positive_money,
    require_text,
    resolve_timestamp,
    same_name,
)


@dataclass(frozen=True)
class CreditLineResult:
    """Outcome of :func:`record_credit_line`.

    ``merged`` tells the store whether ``entry`` replaced an existing line
    (same date and customer) or was appended; ``customer_created`` whether
    ``customer`` is new to the ledger.
    """

    state: LedgerState
    entry: SignedBillEntry
    customer: Customer
    merged: bool
    customer_created: bool


def find_customer_by_name(state: LedgerState, name: str) -> Optional[Customer]:
    """Return the customer whose name matches ``name`` case-insensitively."""

    for customer in state.customers:
        if same_name(customer.name, name):
            return customer
    return None


def register_customer(
    state: LedgerState, name: str, *, timestamp: Optional[datetime] = None
) -> Tuple[LedgerState, Customer]:
    """Add a new credit customer.

    Raises:
        ValidationError: If ``name`` is empty.
        DuplicateName: If a customer with the same name already exists.
    """

    cleaned = require_text(name, "Customer name")
    if find_customer_by_name(state, cleaned) is not None:
        log.warning("Rejected duplicate customer '%s'", cleaned)
        raise DuplicateName("Customer", cleaned)

    when = resolve_timestamp(timestamp)
    customer = Customer(customer_id=generate_id("C", when=when), name=cleaned, created_at=when)
    log.info("Registered customer '%s' (%s)", customer.name, customer.customer_id)
    return replace(state, customers=state.customers + (customer,)), customer


def resolve_customer(
    state: LedgerState, name: str, *, timestamp: Optional[datetime] = None
) -> Tuple[LedgerState, Customer, bool]:
    """Look a customer up by name, registering them when unknown.

    Returns:
        tuple[LedgerState, Customer, bool]: Snapshot, customer, and whether
            the customer was created by this call.
    """

    existing = find_customer_by_name(state, require_text(name, "Customer name"))
    if existing is not None:
        return state, existing, False
    state, customer = register_customer(state, name, timestamp=timestamp)
    return state, customer, True


def credit_remaining(state: LedgerState, day: date) -> Decimal:
    """Return ``target - entered`` for ``day``; negative means over-itemized."""

    return credit_target(state.shifts, day) - credit_entered(state.signed_bills, day)


def credit_state(state: LedgerState, day: date, *, tolerance: Decimal = CREDIT_MATCH_TOLERANCE) -> CreditState:
    """Derive the signed bill ledger state of ``day``."""

    if state.is_credit_finalized(day):
        return CreditState.FINALIZED
    if credit_target(state.shifts, day) == ZERO:
        return CreditState.NOT_APPLICABLE
    if abs(credit_remaining(state, day)) <= tolerance:
        return CreditState.MATCHED
    return CreditState.PENDING


def record_credit_line(
    state: LedgerState,
    day: date,
    customer_name: str,
    amount: Decimal,
    *,
    timestamp: Optional[datetime] = None,
) -> CreditLineResult:
    """Itemize ``amount`` of credit against a customer for ``day``.

    A second line for the same customer and date is folded into the existing
    entry by addition, so each customer appears at most once per day.

    Raises:
        ValidationError: If ``amount`` is not positive or the name is empty.
        AlreadyFinalized: If the ledger of ``day`` has been finalized.
    """

    require_positive_money(amount, label="Signed bill amount")
    require_text(customer_name, "Customer name")
    if state.is_credit_finalized(day):
        log.warning("Rejected signed bill for %s: ledger already finalized", day)
        raise AlreadyFinalized(f"Signed bills for {day.isoformat()} are finalized")

    state, customer, created = resolve_customer(state, customer_name, timestamp=timestamp)

    for index, entry in enumerate(state.signed_bills):
        if entry.entry_date == day and entry.customer_id == customer.customer_id:
            merged = replace(entry, amount=entry.amount + amount)
            bills = state.signed_bills[:index] + (merged,) + state.signed_bills[index + 1:]
            log.info(
                "Added %s to signed bill '%s' for '%s' on %s (now %s)",
                amount,
                entry.entry_id,
                customer.name,
                day,
                merged.amount,
            )
            return CreditLineResult(replace(state, signed_bills=bills), merged, customer, True, created)

    entry = SignedBillEntry(
        entry_id=generate_id("B", when=resolve_timestamp(timestamp)),
        entry_date=day,
        customer_id=customer.customer_id,
        customer_name=customer.name,
        amount=amount,
    )
    log.info("Recorded signed bill '%s' for '%s' on %s (amount=%s)", entry.entry_id, customer.name, day, amount)
    return CreditLineResult(
        replace(state, signed_bills=state.signed_bills + (entry,)), entry, customer, False, created
    )


def finalize_credit_ledger(
    state: LedgerState, day: date, *, tolerance: Decimal = CREDIT_MATCH_TOLERANCE
) -> LedgerState:
    """Lock the signed bill ledger of ``day`` once it matches the shift target.

    Finalizing an already-finalized ledger returns ``state`` unchanged.

    Raises:
        DayNotClosed: If ``day`` is still open, since its target may still grow.
        AmountMismatch: If itemized credit differs from the target by more
            than ``tolerance``.
    """

    if state.is_credit_finalized(day):
        log.info("Signed bills for %s already finalized; nothing to do", day)
        return state
    if not state.is_closed(day):
        log.warning("Rejected signed bill finalization for %s: day still open", day)
        raise DayNotClosed(f"Close day {day.isoformat()} before finalizing its signed bills")

    target = credit_target(state.shifts, day)
    entered = credit_entered(state.signed_bills, day)
    if abs(entered - target) > tolerance:
        log.warning("Signed bill mismatch on %s: target=%s entered=%s", day, target, entered)
        raise AmountMismatch(target, entered)

    log.info("Finalized signed bills for %s (target=%s entered=%s)", day, target, entered)
    return replace(state, finalized_credit_dates=state.finalized_credit_dates | {day})

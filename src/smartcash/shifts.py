"""Closing a waiter's shift into an immutable :class:`ShiftRecord`.

The declared sales figure is reconciled against the six non-cash channels
once, at close time. Whatever the channels do not cover is the cash the
waiter hands over; whatever they exceed it by is recorded as overpayment.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple

from . import log
from .constants import ZERO
from .day_closing import ensure_can_open
from .errors import DuplicateShift
from .records import (
    LedgerState,
    PaymentBreakdown,
    ShiftRecord,
    generate_id,
    require_nonnegative_money,
    require_positive_money,
    require_text,
    resolve_timestamp,
    same_name,
)


@dataclass(frozen=True)
class CloseShiftCommand:
    """User intent for closing one waiter's shift."""

    waiter_name: str
    shift_date: date
    declared_total: Decimal
    breakdown: PaymentBreakdown
    overpayment_method: Optional[str] = None
    remarks: Optional[str] = None
    timestamp: Optional[datetime] = None


def reconcile_breakdown(declared_total: Decimal, breakdown: PaymentBreakdown) -> Tuple[Decimal, Decimal]:
    """Split declared sales into cash owed and overpayment.

    Args:
        declared_total (Decimal): Sales the waiter claims for the shift.
        breakdown (PaymentBreakdown): Non-cash channels entered at close.

    Returns:
        tuple[Decimal, Decimal]: ``(calculated_cash, overpayment_amount)``.
            When the channels exceed the declared total the cash is zero and
            the excess is the overpayment; otherwise the residual is cash and
            the overpayment is zero.
    """

    difference = breakdown.total() - declared_total
    if difference > ZERO:
        return ZERO, difference
    return declared_total - breakdown.total(), ZERO


def validate_breakdown(breakdown: PaymentBreakdown) -> None:
    """Reject negative amounts in any breakdown channel."""

    for item in fields(breakdown):
        require_nonnegative_money(getattr(breakdown, item.name), label=item.name)


def close_shift(state: LedgerState, command: CloseShiftCommand) -> Tuple[LedgerState, ShiftRecord]:
    """Validate a shift close and append the resulting record.

    Args:
        state (LedgerState): Current ledger snapshot.
        command (CloseShiftCommand): Waiter, date, declared sales and breakdown.

    Returns:
        tuple[LedgerState, ShiftRecord]: The extended snapshot and the new
            record carrying its computed cash and overpayment.

    Raises:
        ValidationError: On an empty waiter name, a non-positive declared
            total, or a negative breakdown amount.
        DuplicateShift: If the waiter already closed a shift on that date.
        AlreadyFinalized: If the date has been closed.
        UnreconciledPriorDay: If earlier closed days still owe itemized credit.
    """

    waiter_name = require_text(command.waiter_name, "Waiter name")
    require_positive_money(command.declared_total, label="Declared total")
    validate_breakdown(command.breakdown)
    ensure_can_open(state, command.shift_date)
    if any(same_name(record.waiter_name, waiter_name) for record in state.shifts_on(command.shift_date)):
        log.warning("Rejected duplicate shift for '%s' on %s", waiter_name, command.shift_date)
        raise DuplicateShift(f"'{waiter_name}' already closed a shift on {command.shift_date.isoformat()}")

    calculated_cash, overpayment = reconcile_breakdown(command.declared_total, command.breakdown)
    timestamp = resolve_timestamp(command.timestamp)
    record = ShiftRecord(
        record_id=generate_id("S", when=timestamp),
        waiter_name=waiter_name,
        shift_date=command.shift_date,
        declared_total=command.declared_total,
        breakdown=command.breakdown,
        calculated_cash=calculated_cash,
        overpayment_amount=overpayment,
        created_at=timestamp,
        overpayment_method=command.overpayment_method if overpayment > ZERO else None,
        remarks=command.remarks,
    )
    log.info(
        "Closed shift '%s' for '%s' on %s (declared=%s, cash=%s, overpayment=%s)",
        record.record_id,
        waiter_name,
        command.shift_date,
        command.declared_total,
        calculated_cash,
        overpayment,
    )
    return replace(state, shifts=state.shifts + (record,)), record

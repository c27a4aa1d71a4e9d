"""Read-side arithmetic over shift, signed bill and paid bill records.

Everything here is a pure function of its arguments. Totals are recomputed
from the source records on every call, and summation uses ``Decimal`` so the
result does not depend on record order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, Optional, Union

from . import log
from .constants import ZERO, PaymentMethod
from .records import LedgerState, PaidBillEntry, ShiftRecord, SignedBillEntry


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar range used by range reports."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Range end {self.end} precedes start {self.start}")

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.start <= day <= self.end


Selector = Union[date, DateRange, None]


@dataclass(frozen=True)
class Totals:
    """Sums of every monetary column of the selected shift records."""

    sales: Decimal = ZERO
    cash: Decimal = ZERO
    crdb: Decimal = ZERO
    stanbic: Decimal = ZERO
    mpesa: Decimal = ZERO
    signed_bill: Decimal = ZERO
    discount: Decimal = ZERO
    cancellation: Decimal = ZERO
    overpayment: Decimal = ZERO
    shift_count: int = 0


@dataclass(frozen=True)
class RepaymentTotals:
    """Paid bill amounts split by the channel they arrived through."""

    cash: Decimal = ZERO
    mpesa: Decimal = ZERO
    stanbic: Decimal = ZERO
    crdb: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.cash + self.mpesa + self.stanbic + self.crdb


@dataclass(frozen=True)
class DaySummary:
    """Everything the cashier needs to see before closing a day."""

    day: date
    totals: Totals
    repayments: RepaymentTotals
    credit_target: Decimal
    credit_entered: Decimal
    cash_on_hand: Decimal
    expected_total: Optional[Decimal] = None

    @property
    def outstanding(self) -> Optional[Decimal]:
        """Expected sales not yet covered by closed shifts, if an expectation was given."""
        if self.expected_total is None:
            return None
        return self.expected_total - self.totals.sales


def matches(day: date, selector: Selector) -> bool:
    """Return whether ``day`` falls within ``selector``.

    ``None`` selects every date, a :class:`~datetime.date` selects exactly that
    day, and a :class:`DateRange` selects its inclusive span.
    """

    if selector is None:
        return True
    if isinstance(selector, DateRange):
        return day in selector
    return day == selector


def compute_totals(records: Iterable[ShiftRecord], selector: Selector = None) -> Totals:
    """Sum cash, breakdown channels and overpayment over the selected shifts.

    Args:
        records (Iterable[ShiftRecord]): Shift records in any order.
        selector (date | DateRange | None): Restricts the records summed.

    Returns:
        Totals: All-zero when nothing is selected.
    """

    sales = cash = crdb = stanbic = mpesa = ZERO
    signed_bill = discount = cancellation = overpayment = ZERO
    count = 0
    for record in records:
        if not matches(record.shift_date, selector):
            continue
        breakdown = record.breakdown
        sales += record.declared_total
        cash += record.calculated_cash
        crdb += breakdown.crdb
        stanbic += breakdown.stanbic
        mpesa += breakdown.mpesa
        signed_bill += breakdown.signed_bill
        discount += breakdown.discount
        cancellation += breakdown.cancellation
        overpayment += record.overpayment_amount
        count += 1

    return Totals(
        sales=sales,
        cash=cash,
        crdb=crdb,
        stanbic=stanbic,
        mpesa=mpesa,
        signed_bill=signed_bill,
        discount=discount,
        cancellation=cancellation,
        overpayment=overpayment,
        shift_count=count,
    )


def credit_target(records: Iterable[ShiftRecord], day: date) -> Decimal:
    """Return the signed bill amount the shifts of ``day`` committed to credit."""

    return sum(
        (record.breakdown.signed_bill for record in records if record.shift_date == day),
        ZERO,
    )


def credit_entered(entries: Iterable[SignedBillEntry], day: date) -> Decimal:
    """Return the credit already itemized per customer for ``day``."""

    return sum((entry.amount for entry in entries if entry.entry_date == day), ZERO)


def credit_by_customer(entries: Iterable[SignedBillEntry], selector: Selector = None) -> Dict[str, Decimal]:
    """Group itemized credit by customer name over the selected dates."""

    grouped: Dict[str, Decimal] = {}
    for entry in entries:
        if not matches(entry.entry_date, selector):
            continue
        grouped[entry.customer_name] = grouped.get(entry.customer_name, ZERO) + entry.amount
    return grouped


def repayment_totals(entries: Iterable[PaidBillEntry], selector: Selector = None) -> RepaymentTotals:
    """Split paid bill amounts by payment method.

    Raises:
        ValueError: If an entry carries a method outside :class:`PaymentMethod`.
    """

    cash = mpesa = stanbic = crdb = ZERO
    for entry in entries:
        if not matches(entry.entry_date, selector):
            continue
        if entry.method is PaymentMethod.CASH:
            cash += entry.amount
        elif entry.method is PaymentMethod.MPESA:
            mpesa += entry.amount
        elif entry.method is PaymentMethod.STANBIC:
            stanbic += entry.amount
        elif entry.method is PaymentMethod.CRDB:
            crdb += entry.amount
        else:
            raise ValueError(f"Unsupported payment method: {entry.method!r}")
    return RepaymentTotals(cash=cash, mpesa=mpesa, stanbic=stanbic, crdb=crdb)


def aggregate(state: LedgerState, selector: Selector = None) -> Totals:
    """Return shift totals for a date, an inclusive range, or everything."""

    totals = compute_totals(state.shifts, selector)
    log.debug("Aggregated %d shift records for %s", totals.shift_count, selector)
    return totals


def cash_on_hand(state: LedgerState, day: date) -> Decimal:
    """Physical cash expected in the drawer: shift cash plus cash repayments."""

    return compute_totals(state.shifts, day).cash + repayment_totals(state.paid_bills, day).cash


def summarize_day(state: LedgerState, day: date, *, expected_total: Optional[Decimal] = None) -> DaySummary:
    """Assemble the closing summary for ``day``.

    Args:
        state (LedgerState): Snapshot to read.
        day (date): Date being reviewed.
        expected_total (Decimal | None): Daily sales figure the cashier expects
            from the till. When supplied, :attr:`DaySummary.outstanding` shows
            how much of it closed shifts have not yet covered.

    Returns:
        DaySummary: Derived figures for the day.
    """

    totals = compute_totals(state.shifts, day)
    repayments = repayment_totals(state.paid_bills, day)
    summary = DaySummary(
        day=day,
        totals=totals,
        repayments=repayments,
        credit_target=credit_target(state.shifts, day),
        credit_entered=credit_entered(state.signed_bills, day),
        cash_on_hand=cash_on_hand(state, day),
        expected_total=expected_total,
    )
    log.debug("Summarized %s: sales=%s cash_on_hand=%s", day, totals.sales, summary.cash_on_hand)
    return summary

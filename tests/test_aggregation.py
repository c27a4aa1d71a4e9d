"""Unit tests for the read-side aggregation functions."""

from __future__ import annotations

import itertools
from datetime import date
from decimal import Decimal

import pytest

from smartcash import aggregation
from smartcash.constants import PayerType, PaymentMethod
from smartcash.credit import record_credit_line
from smartcash.records import LedgerState
from smartcash.repayments import RepaymentCommand, record_repayment


MAY_1 = date(2025, 5, 1)
MAY_2 = date(2025, 5, 2)
MAY_3 = date(2025, 5, 3)


@pytest.fixture
def sample_state(state_with_shifts):
    return state_with_shifts(
        ("Asha", MAY_1, 100000, {"crdb": 20000, "mpesa": 10000, "signed_bill": 5000}),
        ("Juma", MAY_1, 50000, {"crdb": 60000}),
        ("Neema", MAY_1, "12345.50", {"stanbic": "0.25", "discount": 45, "cancellation": 300}),
        ("Asha", MAY_2, 40000, {"signed_bill": 2000}),
        ("Baraka", MAY_3, 7000, {}),
    )


def _repay(state, day, amount, method, payer_type=PayerType.CUSTOMER):
    state, _ = record_repayment(
        state,
        RepaymentCommand(
            entry_date=day,
            payer_type=payer_type,
            payer_name="Mzee Ali",
            received_from_waiter="Asha",
            amount=Decimal(amount),
            method=method,
        ),
    )
    return state


def test_compute_totals_empty_input_is_all_zero():
    totals = aggregation.compute_totals([])

    assert totals == aggregation.Totals()
    assert totals.cash == Decimal("0") and totals.shift_count == 0


def test_compute_totals_for_single_day(sample_state):
    totals = aggregation.compute_totals(sample_state.shifts, MAY_1)

    assert totals.shift_count == 3
    assert totals.sales == Decimal("162345.50")
    assert totals.cash == Decimal("65000") + Decimal("0") + Decimal("12000.25")
    assert totals.crdb == Decimal("80000")
    assert totals.stanbic == Decimal("0.25")
    assert totals.mpesa == Decimal("10000")
    assert totals.signed_bill == Decimal("5000")
    assert totals.discount == Decimal("45")
    assert totals.cancellation == Decimal("300")
    assert totals.overpayment == Decimal("10000")


def test_compute_totals_for_inclusive_range(sample_state):
    totals = aggregation.compute_totals(sample_state.shifts, aggregation.DateRange(MAY_2, MAY_3))

    assert totals.shift_count == 2
    assert totals.sales == Decimal("47000")
    assert totals.cash == Decimal("38000") + Decimal("7000")


def test_compute_totals_without_selector_covers_everything(sample_state):
    everything = aggregation.compute_totals(sample_state.shifts)
    by_range = aggregation.compute_totals(sample_state.shifts, aggregation.DateRange(MAY_1, MAY_3))

    assert everything == by_range


def test_compute_totals_is_order_independent(sample_state):
    """Every permutation of the records must produce identical totals."""

    expected = aggregation.compute_totals(sample_state.shifts)
    for permutation in itertools.permutations(sample_state.shifts):
        assert aggregation.compute_totals(permutation) == expected


def test_repayment_totals_are_order_independent():
    state = LedgerState()
    for amount, method in [("10", PaymentMethod.CASH), ("0.30", PaymentMethod.MPESA), ("7", PaymentMethod.CRDB), ("2.2", PaymentMethod.CASH)]:
        state = _repay(state, MAY_1, amount, method)

    expected = aggregation.repayment_totals(state.paid_bills)
    for permutation in itertools.permutations(state.paid_bills):
        assert aggregation.repayment_totals(permutation) == expected


def test_date_range_rejects_reversed_bounds():
    with pytest.raises(ValueError):
        aggregation.DateRange(MAY_3, MAY_1)


def test_credit_target_sums_signed_bill_channel(sample_state):
    assert aggregation.credit_target(sample_state.shifts, MAY_1) == Decimal("5000")
    assert aggregation.credit_target(sample_state.shifts, MAY_3) == Decimal("0")


def test_repayment_totals_split_by_method():
    state = LedgerState()
    state = _repay(state, MAY_1, "1000", PaymentMethod.CASH)
    state = _repay(state, MAY_1, "500", PaymentMethod.CASH, payer_type=PayerType.WAITER)
    state = _repay(state, MAY_1, "200", PaymentMethod.MPESA)
    state = _repay(state, MAY_1, "300", PaymentMethod.STANBIC)
    state = _repay(state, MAY_1, "400", PaymentMethod.CRDB)
    state = _repay(state, MAY_2, "9999", PaymentMethod.CASH)

    totals = aggregation.repayment_totals(state.paid_bills, MAY_1)

    assert totals == aggregation.RepaymentTotals(
        cash=Decimal("1500"),
        mpesa=Decimal("200"),
        stanbic=Decimal("300"),
        crdb=Decimal("400"),
    )
    assert totals.total == Decimal("2400")


def test_cash_on_hand_adds_cash_repayments_only(sample_state):
    state = _repay(sample_state, MAY_2, "1500", PaymentMethod.CASH)
    state = _repay(state, MAY_2, "800", PaymentMethod.MPESA)

    assert aggregation.cash_on_hand(state, MAY_2) == Decimal("38000") + Decimal("1500")
    assert aggregation.summarize_day(state, MAY_2).cash_on_hand == aggregation.cash_on_hand(state, MAY_2)


def test_summarize_day_reports_outstanding_against_expected(sample_state):
    summary = aggregation.summarize_day(sample_state, MAY_2, expected_total=Decimal("45000"))

    assert summary.credit_target == Decimal("2000")
    assert summary.credit_entered == Decimal("0")
    assert summary.cash_on_hand == Decimal("38000")
    assert summary.outstanding == Decimal("5000")


def test_summarize_day_without_expectation_has_no_outstanding(sample_state):
    assert aggregation.summarize_day(sample_state, MAY_3).outstanding is None


def test_aggregate_uses_state_shifts(sample_state):
    assert aggregation.aggregate(sample_state, MAY_3).sales == Decimal("7000")


def test_credit_by_customer_groups_over_range():
    state = record_credit_line(LedgerState(), MAY_1, "Mzee Ali", Decimal("100")).state
    state = record_credit_line(state, MAY_2, "mzee ali", Decimal("50")).state
    state = record_credit_line(state, MAY_2, "Mama Neema", Decimal("70")).state
    state = record_credit_line(state, MAY_3, "Mama Neema", Decimal("5")).state

    grouped = aggregation.credit_by_customer(state.signed_bills, aggregation.DateRange(MAY_1, MAY_2))

    assert grouped == {"Mzee Ali": Decimal("150"), "Mama Neema": Decimal("70")}

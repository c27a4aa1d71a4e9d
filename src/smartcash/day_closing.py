"""Lifecycle of a calendar day: open, accepting shifts, then closed for good.

A day may only be opened for shift entry once every earlier closed day whose
shifts put sales on credit has had that credit itemized and finalized.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta
from typing import List, Optional

from . import log
from .aggregation import credit_target
from .constants import ZERO, DayState
from .errors import AlreadyFinalized, NothingToClose, UnreconciledPriorDay
from .records import LedgerState


def day_state(state: LedgerState, day: date) -> DayState:
    """Return whether ``day`` is still open or already closed."""

    return DayState.CLOSED if state.is_closed(day) else DayState.OPEN


def unreconciled_dates(state: LedgerState, *, before: Optional[date] = None) -> List[date]:
    """List closed days whose credit target is positive but not yet finalized.

    Args:
        state (LedgerState): Snapshot to inspect.
        before (date | None): When given, only closed days strictly earlier
            than this date are considered.

    Returns:
        list[date]: Offending dates in calendar order.
    """

    outstanding = []
    for day in sorted(state.closed_dates):
        if before is not None and day >= before:
            continue
        if state.is_credit_finalized(day):
            continue
        if credit_target(state.shifts, day) > ZERO:
            outstanding.append(day)
    return outstanding


def ensure_can_open(state: LedgerState, day: date) -> None:
    """Raise unless shifts may be entered for ``day``.

    Raises:
        AlreadyFinalized: If ``day`` has been closed.
        UnreconciledPriorDay: If earlier closed days still owe itemized credit.
    """

    if state.is_closed(day):
        log.warning("Rejected opening of %s: the day is already closed", day)
        raise AlreadyFinalized(f"Day {day.isoformat()} is already closed")
    outstanding = unreconciled_dates(state, before=day)
    if outstanding:
        log.warning(
            "Rejected opening of %s: unreconciled signed bills on %s",
            day,
            ", ".join(item.isoformat() for item in outstanding),
        )
        raise UnreconciledPriorDay(outstanding)


def open_date(state: LedgerState, day: date) -> date:
    """Validate that ``day`` may accept shift entries and return it."""

    ensure_can_open(state, day)
    log.info("Opened %s for shift entry", day)
    return day


def close_day(state: LedgerState, day: date) -> LedgerState:
    """Add ``day`` to the closed-date set.

    Closing an already-closed day returns ``state`` unchanged.

    Raises:
        NothingToClose: If the day has neither shift records nor paid bills.
    """

    if state.is_closed(day):
        log.info("Day %s already closed; nothing to do", day)
        return state
    if not state.shifts_on(day) and not state.paid_bills_on(day):
        log.warning("Rejected closing of %s: no shifts or paid bills recorded", day)
        raise NothingToClose(f"Day {day.isoformat()} has no entries to close")

    log.info("Closed day %s", day)
    return replace(state, closed_dates=state.closed_dates | {day})


def next_date(current: date) -> date:
    """Return the calendar day after ``current``."""

    return current + timedelta(days=1)


def open_next_day(state: LedgerState, current: date) -> date:
    """Advance from ``current`` to the following calendar day.

    A following day that is already closed is still returned, with a warning,
    so the caller can review it. Use :func:`day_state` to tell the cases apart.

    Raises:
        UnreconciledPriorDay: If any closed day before the following day still
            has un-finalized credit.
    """

    following = next_date(current)
    if state.is_closed(following):
        outstanding = unreconciled_dates(state, before=following)
        if outstanding:
            raise UnreconciledPriorDay(outstanding)
        log.warning("Next day %s is already closed", following)
        return following
    return open_date(state, following)

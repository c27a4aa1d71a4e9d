"""Attendant roster maintained by the manager.

Attendants carry no stored status. Whether an attendant has closed their
shift for a date is read off the shift records and the closed-date set.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from . import log
from .constants import ZERO, AttendantStatus
from .errors import DuplicateName, MissingReferenceError
from .records import Attendant, LedgerState, generate_id, require_text, resolve_timestamp, same_name


@dataclass(frozen=True)
class RosterLine:
    """One attendant's standing for a date."""

    attendant: Attendant
    status: AttendantStatus
    declared_sales: Decimal


@dataclass(frozen=True)
class RosterSummary:
    day: date
    lines: Tuple[RosterLine, ...]

    @property
    def reconciled(self) -> int:
        return sum(1 for line in self.lines if line.status is AttendantStatus.CLOSED)

    @property
    def pending(self) -> int:
        return len(self.lines) - self.reconciled


def find_attendant_by_name(state: LedgerState, name: str) -> Optional[Attendant]:
    for attendant in state.attendants:
        if same_name(attendant.name, name):
            return attendant
    return None


def register_attendant(
    state: LedgerState, name: str, *, timestamp: Optional[datetime] = None
) -> Tuple[LedgerState, Attendant]:
    """Add an attendant to the roster.

    Raises:
        ValidationError: If ``name`` is empty.
        DuplicateName: If the name is already on the roster, ignoring case.
    """

    cleaned = require_text(name, "Attendant name")
    if find_attendant_by_name(state, cleaned) is not None:
        log.warning("Rejected duplicate attendant '%s'", cleaned)
        raise DuplicateName("Attendant", cleaned)

    when = resolve_timestamp(timestamp)
    attendant = Attendant(attendant_id=generate_id("A", when=when), name=cleaned, created_at=when)
    log.info("Registered attendant '%s' (%s)", attendant.name, attendant.attendant_id)
    return replace(state, attendants=state.attendants + (attendant,)), attendant


def remove_attendant(state: LedgerState, attendant_id: str) -> Tuple[LedgerState, Attendant]:
    """Drop an attendant from the roster; their shift records are kept.

    Raises:
        MissingReferenceError: If ``attendant_id`` is not on the roster.
    """

    for attendant in state.attendants:
        if attendant.attendant_id == attendant_id:
            remaining = tuple(item for item in state.attendants if item.attendant_id != attendant_id)
            log.info("Removed attendant '%s' (%s)", attendant.name, attendant_id)
            return replace(state, attendants=remaining), attendant
    log.warning("Attendant lookup failed for id '%s'", attendant_id)
    raise MissingReferenceError(f"Unknown attendant id: {attendant_id}")


def attendant_status(state: LedgerState, name: str, day: date) -> AttendantStatus:
    """Derive an attendant's status for ``day`` from the shift records."""

    if any(same_name(record.waiter_name, name) for record in state.shifts_on(day)):
        return AttendantStatus.CLOSED
    if state.is_closed(day):
        return AttendantStatus.NO_SALES
    return AttendantStatus.PENDING


def pending_attendants(state: LedgerState, day: date) -> List[Attendant]:
    """Attendants who have not closed a shift on ``day``, in roster order."""

    return [
        attendant
        for attendant in state.attendants
        if attendant_status(state, attendant.name, day) is not AttendantStatus.CLOSED
    ]


def roster_summary(state: LedgerState, day: date) -> RosterSummary:
    """Status and declared sales for every attendant on ``day``, sorted by name."""

    lines = []
    for attendant in sorted(state.attendants, key=lambda item: item.name.casefold()):
        sales = sum(
            (
                record.declared_total
                for record in state.shifts_on(day)
                if same_name(record.waiter_name, attendant.name)
            ),
            ZERO,
        )
        lines.append(RosterLine(attendant, attendant_status(state, attendant.name, day), sales))
    return RosterSummary(day=day, lines=tuple(lines))

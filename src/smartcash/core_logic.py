"""Runtime orchestration for the SmartCash ledger.

This module glues the pure reconciliation engines to the workbook-backed
Ledger Store. Each operation reads the current :class:`LedgerState` snapshot,
hands it to the engine, and writes the engine's output back through the
Data Access Layer (DAL). The engines raise before producing a new snapshot,
so a rejected request never reaches the workbook.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from openpyxl.workbook import Workbook

from . import aggregation, credit, data_manager, day_closing, log, repayments, roster, shifts
from .constants import EXPECTED_SCHEMA_VERSION, CreditState, DayState, SheetName
from .records import Attendant, Customer, LedgerState, PaidBillEntry, ShiftRecord, SignedBillEntry


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    _cache: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class CreditStatus:
    """Signed bill position of one date, as shown before finalizing."""

    day: date
    state: CreditState
    target: Decimal
    entered: Decimal
    entries: tuple[SignedBillEntry, ...]

    @property
    def remaining(self) -> Decimal:
        return self.target - self.entered


def _invalidate_cache(context: RuntimeContext) -> None:
    """Drop the cached snapshot after the workbook has been written to."""

    log.debug("Invalidating cached ledger state")
    context._cache.pop("state", None)


def current_state(context: RuntimeContext) -> LedgerState:
    """Return the ledger snapshot for ``context``, loading it on first use.

    The snapshot is rebuilt from the workbook after every write, so callers
    always see what the store holds.
    """

    state = context._cache.get("state")
    if state is None:
        state = data_manager.load_state(context.workbook)
        context._cache["state"] = state
    return state


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer searches upward from the current
            working directory.

    Returns:
        RuntimeContext: Fully populated context ready for orchestration
            functions.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION`` or the workbook layout is not
            the one this version writes.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )
    try:
        data_manager.validate_sheets(context.workbook)
    except KeyError as exc:
        log.error("Workbook layout check failed: %s", exc)
        raise RuntimeError(f"Workbook layout check failed: {exc}") from exc

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Persist any in-memory workbook changes to the configured data file."""
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context with a newly opened workbook and an
            empty cache.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)


# ---------------------------------------------------------------------------
# Write operations
# ---------------------------------------------------------------------------


def register_attendant(context: RuntimeContext, name: str) -> Attendant:
    """Add an attendant to the roster and store the new row."""
    _, attendant = roster.register_attendant(current_state(context), name)
    data_manager.append_attendant(context.workbook, attendant)
    _invalidate_cache(context)
    return attendant


def remove_attendant(context: RuntimeContext, attendant_id: str) -> Attendant:
    """Delete an attendant row; existing shift records keep the name."""
    _, attendant = roster.remove_attendant(current_state(context), attendant_id)
    data_manager.delete_attendant(context.workbook, attendant_id)
    _invalidate_cache(context)
    return attendant


def close_shift(context: RuntimeContext, command: shifts.CloseShiftCommand) -> ShiftRecord:
    """Reconcile and store one waiter's shift."""
    _, record = shifts.close_shift(current_state(context), command)
    data_manager.append_shift_record(context.workbook, record)
    _invalidate_cache(context)
    return record


def close_day(context: RuntimeContext, day: date) -> bool:
    """Close ``day``.

    Returns:
        bool: ``True`` when the day was closed by this call, ``False`` when it
            was already closed.
    """
    state = current_state(context)
    updated = day_closing.close_day(state, day)
    if updated is state:
        return False
    data_manager.append_date(context.workbook, SheetName.CLOSED_DATES.value, day)
    _invalidate_cache(context)
    return True


def open_next_day(context: RuntimeContext, current: date) -> date:
    """Return the day after ``current`` once earlier credit is reconciled."""
    return day_closing.open_next_day(current_state(context), current)


def register_customer(context: RuntimeContext, name: str) -> Customer:
    """Add a credit customer explicitly, ahead of any signed bill."""
    _, customer = credit.register_customer(current_state(context), name)
    data_manager.append_customer(context.workbook, customer)
    _invalidate_cache(context)
    return customer


def record_credit_line(context: RuntimeContext, day: date, customer_name: str, amount: Decimal) -> SignedBillEntry:
    """Itemize credit for a customer, registering the customer when new."""
    result = credit.record_credit_line(current_state(context), day, customer_name, amount)
    if result.customer_created:
        data_manager.append_customer(context.workbook, result.customer)
    if result.merged:
        data_manager.update_signed_bill(context.workbook, result.entry)
    else:
        data_manager.append_signed_bill(context.workbook, result.entry)
    _invalidate_cache(context)
    return result.entry


def finalize_credit_ledger(context: RuntimeContext, day: date) -> bool:
    """Finalize the signed bill ledger of ``day`` using the configured tolerance.

    Returns:
        bool: ``True`` when finalized by this call, ``False`` when it already was.
    """
    state = current_state(context)
    updated = credit.finalize_credit_ledger(state, day, tolerance=context.settings.credit_tolerance)
    if updated is state:
        return False
    data_manager.append_date(context.workbook, SheetName.FINALIZED_CREDIT_DATES.value, day)
    _invalidate_cache(context)
    return True


def record_repayment(context: RuntimeContext, command: repayments.RepaymentCommand) -> PaidBillEntry:
    """Append a paid bill entry."""
    _, entry = repayments.record_repayment(current_state(context), command)
    data_manager.append_paid_bill(context.workbook, entry)
    _invalidate_cache(context)
    return entry


# ---------------------------------------------------------------------------
# Read operations
# ---------------------------------------------------------------------------


def aggregate(context: RuntimeContext, selector: aggregation.Selector = None) -> aggregation.Totals:
    return aggregation.aggregate(current_state(context), selector)


def repayment_totals(context: RuntimeContext, selector: aggregation.Selector = None) -> aggregation.RepaymentTotals:
    return aggregation.repayment_totals(current_state(context).paid_bills, selector)


def credit_by_customer(context: RuntimeContext, selector: aggregation.Selector = None) -> Dict[str, Decimal]:
    return aggregation.credit_by_customer(current_state(context).signed_bills, selector)


def summarize_day(context: RuntimeContext, day: date, *, expected_total: Optional[Decimal] = None) -> aggregation.DaySummary:
    return aggregation.summarize_day(current_state(context), day, expected_total=expected_total)


def day_state(context: RuntimeContext, day: date) -> DayState:
    return day_closing.day_state(current_state(context), day)


def credit_status(context: RuntimeContext, day: date) -> CreditStatus:
    """Collect the signed bill target, itemized lines and state for ``day``."""
    state = current_state(context)
    return CreditStatus(
        day=day,
        state=credit.credit_state(state, day, tolerance=context.settings.credit_tolerance),
        target=aggregation.credit_target(state.shifts, day),
        entered=aggregation.credit_entered(state.signed_bills, day),
        entries=state.signed_bills_on(day),
    )


def unreconciled_dates(context: RuntimeContext) -> List[date]:
    return day_closing.unreconciled_dates(current_state(context))


def roster_summary(context: RuntimeContext, day: date) -> roster.RosterSummary:
    return roster.roster_summary(current_state(context), day)


def pending_attendants(context: RuntimeContext, day: date) -> List[Attendant]:
    return roster.pending_attendants(current_state(context), day)

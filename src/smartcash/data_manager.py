"""Data access layer for the SmartCash ledger.

This module provides low-level helpers that read from and write to the
ledger workbook. Reconciliation rules belong elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading structured records into a
   :class:`~smartcash.records.LedgerState` and appending, updating or
   deleting individual rows.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import CREDIT_MATCH_TOLERANCE, DEFAULT_CURRENCY, PayerType, PaymentMethod, SheetName
from .records import (
    Attendant,
    Customer,
    LedgerState,
    PaidBillEntry,
    PaymentBreakdown,
    ShiftRecord,
    SignedBillEntry,
)


CONFIG_FILE_NAME = "config.ini"

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.SHIFT_RECORDS.value: [
        "RecordID",
        "WaiterName",
        "ShiftDate",
        "DeclaredTotal",
        "CRDB",
        "Stanbic",
        "MPesa",
        "SignedBill",
        "Discount",
        "Cancellation",
        "CalculatedCash",
        "OverpaymentAmount",
        "OverpaymentMethod",
        "Remarks",
        "CreatedAt",
    ],
    SheetName.ATTENDANTS.value: ["AttendantID", "AttendantName", "CreatedAt"],
    SheetName.CUSTOMERS.value: ["CustomerID", "CustomerName", "CreatedAt"],
    SheetName.SIGNED_BILLS.value: ["EntryID", "EntryDate", "CustomerID", "CustomerName", "Amount"],
    SheetName.PAID_BILLS.value: [
        "EntryID",
        "EntryDate",
        "PayerType",
        "PayerName",
        "ReceivedFromWaiter",
        "Amount",
        "Method",
        "CreatedAt",
    ],
    SheetName.CLOSED_DATES.value: ["Date"],
    SheetName.FINALIZED_CREDIT_DATES.value: ["Date"],
}


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    venue_name: str
    schema_version: str
    credit_tolerance: Decimal = CREDIT_MATCH_TOLERANCE
    currency: str = DEFAULT_CURRENCY


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no parent directory holds ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    The ``[System]`` section is mandatory. The ``[Reconciliation]`` section is
    optional; its ``CreditTolerance`` and ``Currency`` entries fall back to the
    package defaults. Relative ``DataFile`` entries are anchored at
    ``base_path`` (or the working directory) and resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to anchor relative paths.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required section or option is missing.
        ValueError: If ``CreditTolerance`` is not a non-negative number.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        venue_name = parser.get("System", "VenueName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    tolerance_raw = parser.get("Reconciliation", "CreditTolerance", fallback=str(CREDIT_MATCH_TOLERANCE))
    currency = parser.get("Reconciliation", "Currency", fallback=DEFAULT_CURRENCY)
    try:
        credit_tolerance = Decimal(tolerance_raw)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid CreditTolerance: {tolerance_raw!r}") from exc
    if not credit_tolerance.is_finite():
        raise ValueError(f"CreditTolerance must be a finite number: {tolerance_raw!r}")
    if credit_tolerance < 0:
        raise ValueError(f"CreditTolerance must not be negative: {tolerance_raw!r}")

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        venue_name=venue_name,
        schema_version=schema_version,
        credit_tolerance=credit_tolerance,
        currency=currency,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the ledger workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to ``destination``, creating parent folders."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def validate_sheets(workbook: Workbook) -> None:
    """Check that every expected sheet exists with the expected header row.

    Raises:
        KeyError: If a sheet is missing or its header differs.
    """

    for sheet_name, columns in SHEET_COLUMNS.items():
        if sheet_name not in workbook.sheetnames:
            raise KeyError(f"Missing worksheet: {sheet_name}")
        header = [cell.value for cell in workbook[sheet_name][1]][: len(columns)]
        if header != list(columns):
            raise KeyError(f"Unexpected header on worksheet {sheet_name}: {header}")


def _iter_raw_rows(workbook: Workbook, sheet_name: str) -> Iterable[tuple]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_shift_records(workbook: Workbook) -> Iterable[ShiftRecord]:
    """Yield :class:`ShiftRecord` objects from the ``ShiftRecords`` sheet."""

    for raw in _iter_raw_rows(workbook, SheetName.SHIFT_RECORDS.value):
        yield deserialize_shift_record(raw)


def iter_attendants(workbook: Workbook) -> Iterable[Attendant]:
    """Yield :class:`Attendant` objects from the ``Attendants`` sheet."""

    for raw in _iter_raw_rows(workbook, SheetName.ATTENDANTS.value):
        yield deserialize_attendant(raw)


def iter_customers(workbook: Workbook) -> Iterable[Customer]:
    """Yield :class:`Customer` objects from the ``Customers`` sheet."""

    for raw in _iter_raw_rows(workbook, SheetName.CUSTOMERS.value):
        yield deserialize_customer(raw)


def iter_signed_bills(workbook: Workbook) -> Iterable[SignedBillEntry]:
    """Yield :class:`SignedBillEntry` objects from the ``SignedBills`` sheet."""

    for raw in _iter_raw_rows(workbook, SheetName.SIGNED_BILLS.value):
        yield deserialize_signed_bill(raw)


def iter_paid_bills(workbook: Workbook) -> Iterable[PaidBillEntry]:
    """Yield :class:`PaidBillEntry` objects from the ``PaidBills`` sheet."""

    for raw in _iter_raw_rows(workbook, SheetName.PAID_BILLS.value):
        yield deserialize_paid_bill(raw)


def iter_dates(workbook: Workbook, sheet_name: str) -> Iterable[date]:
    """Yield the dates stored in a single-column marker sheet."""

    for raw in _iter_raw_rows(workbook, sheet_name):
        yield _to_date(raw[0])


def load_state(workbook: Workbook) -> LedgerState:
    """Materialise the whole workbook as an immutable :class:`LedgerState`."""

    state = LedgerState(
        shifts=tuple(iter_shift_records(workbook)),
        attendants=tuple(iter_attendants(workbook)),
        customers=tuple(iter_customers(workbook)),
        signed_bills=tuple(iter_signed_bills(workbook)),
        paid_bills=tuple(iter_paid_bills(workbook)),
        closed_dates=frozenset(iter_dates(workbook, SheetName.CLOSED_DATES.value)),
        finalized_credit_dates=frozenset(iter_dates(workbook, SheetName.FINALIZED_CREDIT_DATES.value)),
    )
    log.debug(
        "Loaded ledger state: %d shifts, %d attendants, %d customers, %d signed bills, %d paid bills",
        len(state.shifts),
        len(state.attendants),
        len(state.customers),
        len(state.signed_bills),
        len(state.paid_bills),
    )
    return state


def append_shift_record(workbook: Workbook, record: ShiftRecord) -> None:
    workbook[SheetName.SHIFT_RECORDS.value].append(serialize_shift_record(record))


def append_attendant(workbook: Workbook, record: Attendant) -> None:
    workbook[SheetName.ATTENDANTS.value].append(serialize_attendant(record))


def append_customer(workbook: Workbook, record: Customer) -> None:
    workbook[SheetName.CUSTOMERS.value].append(serialize_customer(record))


def append_signed_bill(workbook: Workbook, record: SignedBillEntry) -> None:
    workbook[SheetName.SIGNED_BILLS.value].append(serialize_signed_bill(record))


def append_paid_bill(workbook: Workbook, record: PaidBillEntry) -> None:
    workbook[SheetName.PAID_BILLS.value].append(serialize_paid_bill(record))


def append_date(workbook: Workbook, sheet_name: str, day: date) -> None:
    """Append ``day`` to a marker sheet unless it is already listed."""

    if locate_row(workbook, sheet_name, "Date", day.isoformat()) is not None:
        return
    workbook[sheet_name].append([day.isoformat()])


def update_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str, *, field_values: dict[str, Any]) -> None:
    """Update selected columns of the row whose ``key_column`` equals ``key_value``.

    Only the specified fields are modified, leaving other columns untouched.

    Raises:
        KeyError: If the row or any referenced column cannot be found.
    """

    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        raise KeyError(f"Row not found in {sheet_name}: {key_value}")

    sheet = workbook[sheet_name]
    header_map = _header_map(sheet)
    for field_name, value in field_values.items():
        if field_name not in header_map:
            raise KeyError(f"Unknown {sheet_name} field: {field_name}")
        sheet.cell(row=row_index, column=header_map[field_name], value=value)


def update_signed_bill(workbook: Workbook, record: SignedBillEntry) -> None:
    """Overwrite the stored amount of an existing signed bill line."""

    update_row(
        workbook,
        SheetName.SIGNED_BILLS.value,
        "EntryID",
        record.entry_id,
        field_values={"Amount": str(record.amount)},
    )


def delete_attendant(workbook: Workbook, attendant_id: str) -> None:
    """Remove an attendant row. Shift records referencing the name stay put.

    Raises:
        KeyError: If ``attendant_id`` is not present.
    """

    sheet_name = SheetName.ATTENDANTS.value
    row_index = locate_row(workbook, sheet_name, "AttendantID", attendant_id)
    if row_index is None:
        raise KeyError(f"Attendant not found: {attendant_id}")
    workbook[sheet_name].delete_rows(row_index)


def _header_map(sheet) -> dict[Any, int]:
    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_map = _header_map(sheet)
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value is not None and str(cell_value) == key_value:
            return row_idx

    return None


def _to_decimal(raw: object) -> Decimal:
    return Decimal(str(raw)) if raw not in (None, "") else Decimal("0")


def _to_date(raw: object) -> date:
    # Excel may hand back a datetime when a cell was typed in by hand.
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw))


def _to_datetime(raw: object) -> datetime:
    if isinstance(raw, datetime):
        return raw
    return datetime.fromisoformat(str(raw))


def _optional_text(raw: object) -> Optional[str]:
    return str(raw) if raw not in (None, "") else None


def serialize_shift_record(record: ShiftRecord) -> list[object]:
    """Convert a shift record into the ``ShiftRecords`` column ordering."""

    breakdown = record.breakdown
    return [
        record.record_id,
        record.waiter_name,
        record.shift_date.isoformat(),
        str(record.declared_total),
        str(breakdown.crdb),
        str(breakdown.stanbic),
        str(breakdown.mpesa),
        str(breakdown.signed_bill),
        str(breakdown.discount),
        str(breakdown.cancellation),
        str(record.calculated_cash),
        str(record.overpayment_amount),
        record.overpayment_method,
        record.remarks,
        record.created_at.isoformat(),
    ]


def serialize_attendant(record: Attendant) -> list[object]:
    return [record.attendant_id, record.name, record.created_at.isoformat()]


def serialize_customer(record: Customer) -> list[object]:
    return [record.customer_id, record.name, record.created_at.isoformat()]


def serialize_signed_bill(record: SignedBillEntry) -> list[object]:
    return [
        record.entry_id,
        record.entry_date.isoformat(),
        record.customer_id,
        record.customer_name,
        str(record.amount),
    ]


def serialize_paid_bill(record: PaidBillEntry) -> list[object]:
    return [
        record.entry_id,
        record.entry_date.isoformat(),
        record.payer_type.value,
        record.payer_name,
        record.received_from_waiter,
        str(record.amount),
        record.method.value,
        record.created_at.isoformat(),
    ]


def deserialize_shift_record(raw_row: Sequence[object]) -> ShiftRecord:
    """Convert a raw ``ShiftRecords`` row into a :class:`ShiftRecord`.

    Amount columns become :class:`~decimal.Decimal` (blank cells read as zero)
    and the date and timestamp columns are parsed from ISO text.
    """

    (
        record_id,
        waiter_name,
        shift_date,
        declared_total,
        crdb,
        stanbic,
        mpesa,
        signed_bill,
        discount,
        cancellation,
        calculated_cash,
        overpayment_amount,
        overpayment_method,
        remarks,
        created_at,
    ) = tuple(raw_row)[:15]

    return ShiftRecord(
        record_id=str(record_id),
        waiter_name=str(waiter_name),
        shift_date=_to_date(shift_date),
        declared_total=_to_decimal(declared_total),
        breakdown=PaymentBreakdown(
            crdb=_to_decimal(crdb),
            stanbic=_to_decimal(stanbic),
            mpesa=_to_decimal(mpesa),
            signed_bill=_to_decimal(signed_bill),
            discount=_to_decimal(discount),
            cancellation=_to_decimal(cancellation),
        ),
        calculated_cash=_to_decimal(calculated_cash),
        overpayment_amount=_to_decimal(overpayment_amount),
        created_at=_to_datetime(created_at),
        overpayment_method=_optional_text(overpayment_method),
        remarks=_optional_text(remarks),
    )


def deserialize_attendant(raw_row: Sequence[object]) -> Attendant:
    attendant_id, name, created_at = tuple(raw_row)[:3]
    return Attendant(attendant_id=str(attendant_id), name=str(name), created_at=_to_datetime(created_at))


def deserialize_customer(raw_row: Sequence[object]) -> Customer:
    customer_id, name, created_at = tuple(raw_row)[:3]
    return Customer(customer_id=str(customer_id), name=str(name), created_at=_to_datetime(created_at))


def deserialize_signed_bill(raw_row: Sequence[object]) -> SignedBillEntry:
    entry_id, entry_date, customer_id, customer_name, amount = tuple(raw_row)[:5]
    return SignedBillEntry(
        entry_id=str(entry_id),
        entry_date=_to_date(entry_date),
        customer_id=str(customer_id),
        customer_name=str(customer_name),
        amount=_to_decimal(amount),
    )


def deserialize_paid_bill(raw_row: Sequence[object]) -> PaidBillEntry:
    """Convert a raw ``PaidBills`` row into a :class:`PaidBillEntry`.

    Raises:
        ValueError: If the payer type or method column holds an unknown value.
    """

    entry_id, entry_date, payer_type, payer_name, waiter, amount, method, created_at = tuple(raw_row)[:8]
    return PaidBillEntry(
        entry_id=str(entry_id),
        entry_date=_to_date(entry_date),
        payer_type=PayerType(str(payer_type)),
        payer_name=str(payer_name),
        received_from_waiter=str(waiter),
        amount=_to_decimal(amount),
        method=PaymentMethod(str(method)),
        created_at=_to_datetime(created_at),
    )

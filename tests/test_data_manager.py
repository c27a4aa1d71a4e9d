"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from smartcash import constants, data_manager
from smartcash.records import (
    Attendant,
    Customer,
    PaidBillEntry,
    PaymentBreakdown,
    ShiftRecord,
    SignedBillEntry,
)


CREATED = datetime(2025, 5, 1, 21, 15, tzinfo=UTC)
DAY = date(2025, 5, 1)


def _shift_record(**overrides) -> ShiftRecord:
    values = dict(
        record_id="S1",
        waiter_name="Asha",
        shift_date=DAY,
        declared_total=Decimal("100000"),
        breakdown=PaymentBreakdown(crdb=Decimal("20000"), mpesa=Decimal("10000"), signed_bill=Decimal("5000")),
        calculated_cash=Decimal("65000"),
        overpayment_amount=Decimal("0"),
        created_at=CREATED,
    )
    values.update(overrides)
    return ShiftRecord(**values)


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    result = data_manager.find_config_file(config_file)
    assert result == config_file


def test_find_config_file_discovers_in_parent_directory(tmp_path, monkeypatch):
    """Auto-discovery should walk up from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=smartcash_ledger.xlsx")
    nested = tmp_path / "nested" / "deeper"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    result = data_manager.find_config_file()
    assert result == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    """Absent configuration should surface a clear FileNotFoundError."""

    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    """read_config should return a populated ConfigParser."""

    parser = data_manager.read_config(config_file)
    assert parser.get("System", "VenueName") == "Test Lounge"
    assert parser.get("Reconciliation", "Currency") == "TZS"


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    parser = configparser.ConfigParser()
    bundle = config_factory(make_relative=True)
    parser.read(bundle.config_path)
    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)
    assert settings.data_file == (bundle.config_path.parent / bundle.workbook_path.name).resolve()
    assert settings.venue_name == "Test Lounge"
    assert settings.credit_tolerance == Decimal("1")
    assert settings.currency == "TZS"


def test_parse_settings_defaults_reconciliation_section(tmp_path):
    """The Reconciliation section is optional."""

    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile = ledger.xlsx\nVenueName = Bar\nSchemaVersion = 1.0.0\n"
    )
    settings = data_manager.parse_settings(parser, base_path=tmp_path)
    assert settings.credit_tolerance == constants.CREDIT_MATCH_TOLERANCE
    assert settings.currency == constants.DEFAULT_CURRENCY
    assert settings.data_file == (tmp_path / "ledger.xlsx").resolve()


def test_parse_settings_requires_expected_sections(tmp_path):
    """Missing keys should result in a descriptive KeyError."""

    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


@pytest.mark.parametrize("tolerance", ["abc", "-1", "nan", "inf"])
def test_parse_settings_rejects_bad_tolerance(tmp_path, tolerance):
    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile = ledger.xlsx\nVenueName = Bar\nSchemaVersion = 1.0.0\n"
        f"[Reconciliation]\nCreditTolerance = {tolerance}\n"
    )
    with pytest.raises(ValueError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_open_workbook_returns_openpyxl_instance(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    assert isinstance(workbook, OpenpyxlWorkbook)


def test_open_workbook_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "missing.xlsx")


def test_validate_sheets_accepts_fresh_workbook(master_workbook_path):
    data_manager.validate_sheets(data_manager.open_workbook(master_workbook_path))


def test_validate_sheets_reports_missing_sheet(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    workbook.remove(workbook[constants.SheetName.PAID_BILLS.value])

    with pytest.raises(KeyError):
        data_manager.validate_sheets(workbook)


def test_validate_sheets_reports_header_mismatch(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    workbook[constants.SheetName.CUSTOMERS.value].cell(row=1, column=2, value="Name")

    with pytest.raises(KeyError):
        data_manager.validate_sheets(workbook)


def test_save_workbook_with_destination_creates_copy(master_workbook_path, tmp_path):
    """Providing a destination should create a new file independent of the source."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_attendant(workbook, Attendant("A1", "Asha", CREATED))
    copy_path = tmp_path / "archive" / "copy.xlsx"
    data_manager.save_workbook(workbook, destination=copy_path)

    copy = openpyxl.load_workbook(copy_path)
    rows = list(copy[constants.SheetName.ATTENDANTS.value].iter_rows(min_row=2, values_only=True))
    assert ("A1", "Asha", CREATED.isoformat()) in rows


def test_refresh_workbook_discards_unsaved_changes(master_workbook_path):
    original = data_manager.open_workbook(master_workbook_path)
    data_manager.append_attendant(original, Attendant("A1", "Asha", CREATED))

    refreshed = data_manager.refresh_workbook(master_workbook_path)

    assert refreshed is not original
    assert list(data_manager.iter_attendants(refreshed)) == []


def test_shift_record_survives_save_and_reload(master_workbook_path):
    """Decimals, dates and optional text columns should read back unchanged."""

    record = _shift_record(
        declared_total=Decimal("50000.50"),
        breakdown=PaymentBreakdown(crdb=Decimal("60000")),
        calculated_cash=Decimal("0"),
        overpayment_amount=Decimal("9999.50"),
        overpayment_method="M-PESA",
        remarks="Card machine double charged",
    )
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_shift_record(workbook, record)
    data_manager.save_workbook(workbook, master_workbook_path)

    rows = list(data_manager.iter_shift_records(data_manager.open_workbook(master_workbook_path)))
    assert rows == [record]


def test_deserialize_shift_record_treats_blank_amounts_as_zero():
    raw = ["S9", "Juma", "2025-05-01", "1000", None, "", None, None, None, None, "1000", "0", None, None, CREATED.isoformat()]

    record = data_manager.deserialize_shift_record(raw)

    assert record.breakdown == PaymentBreakdown()
    assert record.overpayment_method is None
    assert record.created_at == CREATED


def test_deserialize_accepts_excel_datetime_cells():
    """Dates typed by hand come back from Excel as datetimes."""

    raw = ["B1", datetime(2025, 5, 1, 0, 0), "C1", "Mzee Ali", 1500]

    entry = data_manager.deserialize_signed_bill(raw)

    assert entry.entry_date == DAY
    assert entry.amount == Decimal("1500")


def test_deserialize_paid_bill_rejects_unknown_method():
    raw = ["P1", "2025-05-01", "CUSTOMER", "Mzee Ali", "Asha", "10", "BITCOIN", CREATED.isoformat()]

    with pytest.raises(ValueError):
        data_manager.deserialize_paid_bill(raw)


def test_load_state_reads_every_sheet(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    attendant = Attendant("A1", "Asha", CREATED)
    customer = Customer("C1", "Mzee Ali", CREATED)
    bill = SignedBillEntry("B1", DAY, "C1", "Mzee Ali", Decimal("5000"))
    payment = PaidBillEntry(
        "P1",
        DAY,
        constants.PayerType.CUSTOMER,
        "Mzee Ali",
        "Asha",
        Decimal("2000"),
        constants.PaymentMethod.MPESA,
        CREATED,
    )
    data_manager.append_shift_record(workbook, _shift_record())
    data_manager.append_attendant(workbook, attendant)
    data_manager.append_customer(workbook, customer)
    data_manager.append_signed_bill(workbook, bill)
    data_manager.append_paid_bill(workbook, payment)
    data_manager.append_date(workbook, constants.SheetName.CLOSED_DATES.value, DAY)
    data_manager.append_date(workbook, constants.SheetName.FINALIZED_CREDIT_DATES.value, DAY)
    data_manager.save_workbook(workbook, master_workbook_path)

    state = data_manager.load_state(data_manager.open_workbook(master_workbook_path))

    assert state.shifts == (_shift_record(),)
    assert state.attendants == (attendant,)
    assert state.customers == (customer,)
    assert state.signed_bills == (bill,)
    assert state.paid_bills == (payment,)
    assert state.closed_dates == frozenset({DAY})
    assert state.finalized_credit_dates == frozenset({DAY})


def test_append_date_ignores_duplicates(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    sheet_name = constants.SheetName.CLOSED_DATES.value

    data_manager.append_date(workbook, sheet_name, DAY)
    data_manager.append_date(workbook, sheet_name, DAY)

    assert list(data_manager.iter_dates(workbook, sheet_name)) == [DAY]


def test_update_signed_bill_overwrites_amount(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    bill = SignedBillEntry("B1", DAY, "C1", "Mzee Ali", Decimal("1500"))
    data_manager.append_signed_bill(workbook, SignedBillEntry("B0", DAY, "C0", "Mama Neema", Decimal("10")))
    data_manager.append_signed_bill(workbook, bill)

    data_manager.update_signed_bill(workbook, SignedBillEntry("B1", DAY, "C1", "Mzee Ali", Decimal("2000")))

    amounts = {entry.entry_id: entry.amount for entry in data_manager.iter_signed_bills(workbook)}
    assert amounts == {"B0": Decimal("10"), "B1": Decimal("2000")}


def test_update_row_missing_key_raises(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)

    with pytest.raises(KeyError):
        data_manager.update_row(
            workbook,
            constants.SheetName.SIGNED_BILLS.value,
            "EntryID",
            "missing",
            field_values={"Amount": "1"},
        )


def test_update_row_unknown_field_raises(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_signed_bill(workbook, SignedBillEntry("B1", DAY, "C1", "Mzee Ali", Decimal("1")))

    with pytest.raises(KeyError):
        data_manager.update_row(
            workbook,
            constants.SheetName.SIGNED_BILLS.value,
            "EntryID",
            "B1",
            field_values={"Colour": "red"},
        )


def test_delete_attendant_removes_only_that_row(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_attendant(workbook, Attendant("A1", "Asha", CREATED))
    data_manager.append_attendant(workbook, Attendant("A2", "Juma", CREATED))

    data_manager.delete_attendant(workbook, "A1")

    assert [item.attendant_id for item in data_manager.iter_attendants(workbook)] == ["A2"]
    with pytest.raises(KeyError):
        data_manager.delete_attendant(workbook, "A1")


def test_locate_row_unknown_column_raises(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)

    with pytest.raises(KeyError):
        data_manager.locate_row(workbook, constants.SheetName.ATTENDANTS.value, "Nope", "A1")

"""Enumerations and fixed values shared across the SmartCash ledger modules.

Keeps the storage layer, the reconciliation engines, and the CLI agreeing on
one set of identifiers for payment channels, payer kinds, lifecycle states,
and worksheet names.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Absolute difference allowed between itemized credit and the shift target.
CREDIT_MATCH_TOLERANCE = Decimal("1")

DEFAULT_CURRENCY = "TZS"

ZERO = Decimal("0")


class PaymentMethod(str, Enum):
    """Channels through which a debt repayment can be handed in."""

    CASH = "CASH"
    MPESA = "M-PESA"
    STANBIC = "STANBIC"
    CRDB = "CRDB"


class PayerType(str, Enum):
    """Who is settling a debt: a credit customer or a waiter holding cash."""

    CUSTOMER = "CUSTOMER"
    WAITER = "WAITER"


class DayState(str, Enum):
    """Lifecycle of a calendar day in the closing cycle."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


class CreditState(str, Enum):
    """Lifecycle of the per-day signed bill ledger."""

    NOT_APPLICABLE = "NOT_APPLICABLE"
    PENDING = "PENDING"
    MATCHED = "MATCHED"
    FINALIZED = "FINALIZED"


class AttendantStatus(str, Enum):
    """Derived status of an attendant for a given date."""

    PENDING = "PENDING"
    CLOSED = "CLOSED"
    NO_SALES = "NO_SALES"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    SHIFT_RECORDS = "ShiftRecords"
    ATTENDANTS = "Attendants"
    CUSTOMERS = "Customers"
    SIGNED_BILLS = "SignedBills"
    PAID_BILLS = "PaidBills"
    CLOSED_DATES = "ClosedDates"
    FINALIZED_CREDIT_DATES = "FinalizedCreditDates"


# Order of the breakdown columns everywhere they are listed or summed.
BREAKDOWN_FIELDS: tuple[str, ...] = (
    "crdb",
    "stanbic",
    "mpesa",
    "signed_bill",
    "discount",
    "cancellation",
)


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "CREDIT_MATCH_TOLERANCE",
    "DEFAULT_CURRENCY",
    "ZERO",
    "PaymentMethod",
    "PayerType",
    "DayState",
    "CreditState",
    "AttendantStatus",
    "SheetName",
    "BREAKDOWN_FIELDS",
]

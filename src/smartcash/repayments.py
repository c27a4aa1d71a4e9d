"""Append-only ledger of debt repayments (paid bills).

Repayments are independent of the closing cycle: they may be recorded for
any date, closed or not, and are never merged.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple

from . import log
from .constants import PayerType, PaymentMethod
from .errors import ValidationError
from .records import (
    LedgerState,
    PaidBillEntry,
    generate_id,
    require_positive_money,
    require_text,
    resolve_timestamp,
)


@dataclass(frozen=True)
class RepaymentCommand:
    """User intent for recording a paid bill."""

    entry_date: date
    payer_type: PayerType
    payer_name: str
    received_from_waiter: str
    amount: Decimal
    method: PaymentMethod = PaymentMethod.CASH
    timestamp: Optional[datetime] = None


def record_repayment(state: LedgerState, command: RepaymentCommand) -> Tuple[LedgerState, PaidBillEntry]:
    """Append a paid bill entry.

    Raises:
        ValidationError: On a non-positive amount, an empty payer or waiter
            name, or a payer type / method outside the supported enumerations.
    """

    require_positive_money(command.amount, label="Repayment amount")
    payer_name = require_text(command.payer_name, "Payer name")
    waiter = require_text(command.received_from_waiter, "Receiving waiter")
    if not isinstance(command.payer_type, PayerType):
        log.warning("Unsupported payer type: %s", command.payer_type)
        raise ValidationError(f"Unsupported payer type: {command.payer_type}")
    if not isinstance(command.method, PaymentMethod):
        log.warning("Unsupported payment method: %s", command.method)
        raise ValidationError(f"Unsupported payment method: {command.method}")

    timestamp = resolve_timestamp(command.timestamp)
    entry = PaidBillEntry(
        entry_id=generate_id("P", when=timestamp),
        entry_date=command.entry_date,
        payer_type=command.payer_type,
        payer_name=payer_name,
        received_from_waiter=waiter,
        amount=command.amount,
        method=command.method,
        created_at=timestamp,
    )
    log.info(
        "Recorded paid bill '%s' from %s '%s' via %s (amount=%s, received by '%s')",
        entry.entry_id,
        entry.payer_type.value,
        payer_name,
        entry.method.value,
        entry.amount,
        waiter,
    )
    return replace(state, paid_bills=state.paid_bills + (entry,)), entry

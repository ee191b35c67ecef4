# Overview: Single authority for invoice status; re-derived from totals on every write.

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from ..time_utils import coerce_date, today as business_today
from ..validation import to_decimal


class InvoiceStatus(str, Enum):
    PENDING = "Pending"
    PARTIALLY_PAID = "Partially Paid"
    PAID = "Paid"
    OVERDUE = "Overdue"
    CANCELLED = "Cancelled"


def derive_status(
    total_amount: Any,
    amount_paid: Any,
    remaining_balance: Any,
    due_date: date | str | None,
    explicit_status: InvoiceStatus | str | None = None,
    today: date | None = None,
) -> InvoiceStatus:
    """
    First match wins:

    1. explicitly Cancelled              -> Cancelled
    2. total > 0 and nothing remaining   -> Paid
    3. something paid                    -> Partially Paid
    4. past due with a balance           -> Overdue
    5. otherwise                         -> Pending

    A zero-total invoice is never Paid. Status is never transitioned
    edge-by-edge; the stored value is whatever this returns.
    """
    if explicit_status == InvoiceStatus.CANCELLED:
        return InvoiceStatus.CANCELLED

    total = to_decimal(total_amount, "total_amount")
    paid = to_decimal(amount_paid or 0, "amount_paid")
    remaining = to_decimal(remaining_balance, "remaining_balance")

    if total > 0 and remaining <= 0:
        return InvoiceStatus.PAID
    if paid > 0:
        return InvoiceStatus.PARTIALLY_PAID

    due = coerce_date(due_date)
    current_day = today or business_today()
    if due is not None and due < current_day and remaining > Decimal("0"):
        return InvoiceStatus.OVERDUE
    return InvoiceStatus.PENDING

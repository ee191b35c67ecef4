# Overview: Cumulative payment arithmetic for invoices; decides the delta a save pays and how it is recorded.

"""
Payment ledger
==============

processing_status is an INSTRUCTION for one save, not stored state:

    Unpaid          delta = 0, nothing recorded
    Fully Paid      delta = max(0, total - previously paid)
    Partially Paid  delta = declared amount; must be > 0 and may bring the
                    paid amount up to the total, never past it

INVARIANTS:
- amount_paid + remaining_balance == total_amount
- amount_paid never decreases on a live invoice
- one PaymentRecord per positive delta; history is append-only
  (the record itself is written by invoice_service)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

from ..validation import ValidationError, optional_text, to_decimal
from .pricing import round2


logger = logging.getLogger(__name__)

RECORD_FULL_PAYMENT = "Full Payment"
RECORD_PARTIAL_PAYMENT = "Partial Payment"


class ProcessingStatus(str, Enum):
    UNPAID = "Unpaid"
    PARTIALLY_PAID = "Partially Paid"
    FULLY_PAID = "Fully Paid"


class PaymentMethod(str, Enum):
    CASH = "Cash"
    BANK_TRANSFER = "Bank Transfer"


class PaymentError(ValueError):
    """Raised when a payment instruction cannot be applied."""
    pass


class InvalidPartialPayment(PaymentError):
    """Declared partial amount is non-positive or overshoots the total."""
    pass


class BalanceInvariantError(PaymentError):
    """amount_paid + remaining_balance drifted away from total_amount."""
    pass


@dataclass(frozen=True)
class PaymentDetails:
    """How a payment was made. Only the references relevant to method are kept."""
    method: PaymentMethod | None = None
    cash_voucher_number: str | None = None
    bank_name: str | None = None
    bank_account_number: str | None = None
    online_transaction_number: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "PaymentDetails":
        if not data:
            return cls()
        raw_method = data.get("method") or data.get("payment_method")
        method = coerce_payment_method(raw_method) if raw_method else None
        return cls.build(
            method,
            cash_voucher_number=data.get("cash_voucher_number"),
            bank_name=data.get("bank_name"),
            bank_account_number=data.get("bank_account_number"),
            online_transaction_number=data.get("online_transaction_number"),
        )

    @classmethod
    def build(cls, method: PaymentMethod | str | None, **references: Any) -> "PaymentDetails":
        method = coerce_payment_method(method) if method else None
        if method is PaymentMethod.CASH:
            return cls(
                method=method,
                cash_voucher_number=optional_text(references.get("cash_voucher_number"), "cash_voucher_number", 64),
            )
        if method is PaymentMethod.BANK_TRANSFER:
            return cls(
                method=method,
                bank_name=optional_text(references.get("bank_name"), "bank_name", 120),
                bank_account_number=optional_text(references.get("bank_account_number"), "bank_account_number", 64),
                online_transaction_number=optional_text(
                    references.get("online_transaction_number"), "online_transaction_number", 64
                ),
            )
        return cls()

    def record_fields(self) -> dict:
        return {
            "payment_method": self.method.value if self.method else None,
            "cash_voucher_number": self.cash_voucher_number,
            "bank_name": self.bank_name,
            "bank_account_number": self.bank_account_number,
            "online_transaction_number": self.online_transaction_number,
        }


@dataclass(frozen=True)
class PaymentOutcome:
    delta: Decimal
    amount_paid: Decimal
    remaining_balance: Decimal
    record_status: str | None = field(default=None)

    @property
    def records_payment(self) -> bool:
        return self.delta > 0


def coerce_processing_status(value: ProcessingStatus | str | None) -> ProcessingStatus:
    if value is None:
        return ProcessingStatus.UNPAID
    if isinstance(value, ProcessingStatus):
        return value
    try:
        return ProcessingStatus(str(value).strip())
    except ValueError:
        raise PaymentError(
            f"Invalid payment processing status {value!r}. "
            f"Must be one of: {', '.join(s.value for s in ProcessingStatus)}"
        )


def coerce_payment_method(value: PaymentMethod | str) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).strip())
    except ValueError:
        raise PaymentError(
            f"Invalid payment method {value!r}. Must be one of: {', '.join(m.value for m in PaymentMethod)}"
        )


def apply_payment(
    total_amount: Any,
    previous_amount_paid: Any,
    processing_status: ProcessingStatus | str | None,
    declared_partial_amount: Any = None,
) -> PaymentOutcome:
    """
    Work out what this save pays.

    Pure: returns the delta and the resulting cumulative figures; nothing
    is mutated. Raises InvalidPartialPayment for a declared partial amount
    that is missing, <= 0, finer than a cent, or would take the paid amount
    past the total (reaching the total exactly is allowed).

    A previously paid amount above the total (an edit that lowered the
    total) pays nothing more under Unpaid or Fully Paid; the remaining
    balance is then negative and the balance still conserves.
    """
    status = coerce_processing_status(processing_status)
    total = round2(total_amount)
    previous = round2(previous_amount_paid or 0)

    if previous < 0:
        raise PaymentError("Previously paid amount cannot be negative")

    if status is ProcessingStatus.UNPAID:
        delta = Decimal("0.00")
    elif status is ProcessingStatus.FULLY_PAID:
        delta = max(Decimal("0.00"), total - previous)
    else:
        if declared_partial_amount is None:
            raise InvalidPartialPayment("A partial payment amount is required")
        try:
            declared = to_decimal(declared_partial_amount, "partial amount")
        except ValidationError as exc:
            raise InvalidPartialPayment(str(exc))
        if declared != round2(declared):
            raise InvalidPartialPayment(f"Partial payment amount {declared} has more than 2 decimal places")
        if declared <= 0:
            raise InvalidPartialPayment("Partial payment amount must be greater than zero")
        if previous + declared > total:
            raise InvalidPartialPayment(
                f"Partial payment {declared} exceeds remaining balance {total - previous}"
            )
        delta = round2(declared)

    amount_paid = previous + delta
    remaining = total - amount_paid

    record_status = None
    if delta > 0:
        record_status = RECORD_FULL_PAYMENT if remaining <= 0 else RECORD_PARTIAL_PAYMENT

    return PaymentOutcome(
        delta=delta,
        amount_paid=amount_paid,
        remaining_balance=remaining,
        record_status=record_status,
    )


def check_balance(
    total_amount: Any,
    amount_paid: Any,
    remaining_balance: Any,
    *,
    strict: bool,
    tolerance: Any = Decimal("0.000000001"),
) -> tuple[Decimal, Decimal]:
    """
    Enforce amount_paid + remaining_balance == total_amount.

    strict: raise BalanceInvariantError on drift.
    otherwise: log and return a clamped (amount_paid, remaining_balance)
    with 0 <= amount_paid <= total_amount.
    """
    total = to_decimal(total_amount, "total_amount")
    paid = to_decimal(amount_paid, "amount_paid")
    remaining = to_decimal(remaining_balance, "remaining_balance")
    tol = to_decimal(tolerance, "tolerance")

    if abs(paid + remaining - total) <= tol:
        return paid, remaining

    message = f"Balance invariant violated: paid {paid} + remaining {remaining} != total {total}"
    if strict:
        raise BalanceInvariantError(message)

    logger.error("%s; clamping", message)
    clamped_paid = min(max(paid, Decimal("0")), total)
    return clamped_paid, total - clamped_paid

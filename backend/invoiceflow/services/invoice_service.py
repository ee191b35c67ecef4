# Overview: Service-layer operations for invoices; totals, payments, status and stock side effects in one write unit.

"""
Invoice write path
==================

save_invoice runs, inside one locked and retried unit:

    items -> pricing.compute_document_totals
          -> payment_ledger.apply_payment      (InvalidPartialPayment aborts, nothing saved)
          -> payment_ledger.check_balance
          -> invoice_status.derive_status      (the only place status comes from)
          -> record_payment                    (one PaymentRecord per positive delta)
          -> stock: return what the previous version took, take the new lines

Stock taken by an invoice is tracked through Sale / Sale Reversal movements
referenced by the invoice number, so edits and cancellation give back
exactly what was taken (after clamping), from the warehouse it came from.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping

from flask import current_app

from ..extensions import db
from ..models import Invoice, InvoiceItem, PaymentRecord, Product
from ..time_utils import coerce_date, today as business_today, utcnow
from ..validation import ValidationError, require_non_negative, require_text, to_decimal
from .catalog_service import ProductNotFoundError, default_rates
from .concurrency import lock_for_update, run_with_retry
from .document_service import INVOICE_SEQUENCE, next_document_number
from .invoice_status import InvoiceStatus, derive_status
from .payment_ledger import PaymentDetails, PaymentOutcome, apply_payment, check_balance, coerce_processing_status
from .pricing import compute_document_totals, line_unit_price, percent_to_rate
from .stock_ledger import StockTransactionType
from .stock_service import DatabaseStockLedger, outstanding_sales, pick_deduction_warehouse
from .units import ConfigurationError, UnitKind, coerce_unit_kind, resolve_unit_kind, to_base_quantity, unit_label


INVOICE_PREFIX = "INV"


class InvoiceNotFoundError(ValueError):
    pass


class InvoiceValidationError(ValueError):
    """Raised when invoice input or an edit is not acceptable."""
    pass


def _normalize_item(raw: Mapping[str, Any], position: int) -> dict:
    """
    Turn one raw line into InvoiceItem fields.

    A line naming a product_id may omit description and unit_price; the
    product's excise-inclusive price for the requested unit is used.
    """
    label = f"items[{position}]"
    try:
        quantity = require_non_negative(raw.get("quantity"), f"{label}.quantity")
        unit_price = raw.get("unit_price")
        if unit_price is not None:
            unit_price = require_non_negative(unit_price, f"{label}.unit_price")
    except ValidationError as exc:
        raise InvoiceValidationError(str(exc))

    product_id = raw.get("product_id")
    if product_id is None:
        if unit_price is None:
            raise InvoiceValidationError(f"{label}.unit_price is required for a line without a product")
        try:
            description = require_text(raw.get("description"), f"{label}.description", 255)
        except ValidationError as exc:
            raise InvoiceValidationError(str(exc))
        return {
            "product_id": None,
            "description": description,
            "quantity": quantity,
            "unit_price": unit_price,
            "unit_type": raw.get("unit_type"),
            "unit_kind": UnitKind.BASE.value,
        }

    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(f"Product {product_id} not found")

    kind = resolve_unit_kind(product, raw.get("unit") or raw.get("unit_type"))
    prefilled_price, kind = line_unit_price(product, kind)
    return {
        "product_id": product.id,
        "description": (raw.get("description") or "").strip() or product.name,
        "quantity": quantity,
        "unit_price": prefilled_price if unit_price is None else unit_price,
        "unit_type": unit_label(product, kind),
        "unit_kind": kind.value,
    }


def _strict_invariants() -> tuple[bool, Decimal]:
    strict = bool(current_app.config.get("STRICT_INVARIANTS", False))
    tolerance = to_decimal(current_app.config.get("BALANCE_TOLERANCE", "0.000000001"), "BALANCE_TOLERANCE")
    return strict, tolerance


def _ensure_number_free(number: str, invoice_id: int | None = None) -> None:
    existing = db.session.query(Invoice.id).filter(Invoice.invoice_number == number).first()
    if existing and existing[0] != invoice_id:
        raise InvoiceValidationError(f"Invoice number {number!r} already exists")


def _next_free_number() -> str:
    """Next sequence number, skipping numbers already taken by hand-numbered invoices."""
    while True:
        number = next_document_number(INVOICE_SEQUENCE, INVOICE_PREFIX)
        if db.session.query(Invoice.id).filter(Invoice.invoice_number == number).first() is None:
            return number
        current_app.logger.info("Invoice number %s already taken, skipping", number)


def _return_stock(reference: str) -> None:
    """Give back everything still taken under reference, to where it came from."""
    ledger = DatabaseStockLedger()
    for (product_id, warehouse_id), quantity in outstanding_sales(reference).items():
        ledger.adjust(
            product_id,
            warehouse_id,
            quantity,
            transaction_type=StockTransactionType.SALE_REVERSAL,
            reference=reference,
        )


def _take_stock(items: Iterable[InvoiceItem], reference: str) -> None:
    ledger = DatabaseStockLedger()
    for item in items:
        if item.product_id is None:
            continue
        product = db.session.get(Product, item.product_id)
        try:
            base_quantity = to_base_quantity(product, item.quantity, coerce_unit_kind(item.unit_kind))
        except ConfigurationError as exc:
            current_app.logger.warning("Stock not deducted for %s line %r: %s", reference, item.description, exc)
            continue
        if base_quantity <= 0:
            continue

        warehouse_id = pick_deduction_warehouse(product.id, base_quantity)
        if warehouse_id is None:
            current_app.logger.warning("Stock not deducted for %s: no warehouse exists", reference)
            continue
        ledger.adjust(
            product.id,
            warehouse_id,
            -base_quantity,
            transaction_type=StockTransactionType.SALE,
            reference=reference,
        )


def record_payment(invoice: Invoice, outcome: PaymentOutcome, details: PaymentDetails | None = None) -> PaymentRecord | None:
    """
    Append the PaymentRecord for a positive delta. Zero deltas record nothing.

    Records are never edited afterwards; the invoice's history is the
    ordered list of these deltas and sums to amount_paid.
    """
    if not outcome.records_payment:
        return None
    details = details or PaymentDetails()
    record = PaymentRecord(
        payment_date=utcnow(),
        amount=outcome.delta,
        status=outcome.record_status,
        **details.record_fields(),
    )
    invoice.payment_history.append(record)
    return record


def save_invoice(
    *,
    customer_id: str,
    items: list[Mapping[str, Any]],
    due_date: date | str | None,
    issue_date: date | str | None = None,
    invoice_id: int | None = None,
    invoice_number: str | None = None,
    processing_status: str = "Unpaid",
    partial_amount: Any = None,
    payment: PaymentDetails | Mapping[str, Any] | None = None,
    status: str | None = None,
    tax_rate_percent: Any = None,
    vat_rate_percent: Any = None,
    today: date | None = None,
) -> Invoice:
    """
    Create (invoice_id=None) or edit an invoice.

    Args:
        items: mappings with quantity and either unit_price + description,
            or product_id (+ optional unit label / unit_price / description)
        processing_status: Unpaid, Partially Paid or Fully Paid for THIS save
        partial_amount: amount paid now when processing_status is Partially Paid
        payment: method and references for the payment made by this save
        status: pass "Cancelled" to cancel while saving; any other value is
            ignored, status is always derived
        tax_rate_percent / vat_rate_percent: default to the configured rates

    Raises:
        InvalidPartialPayment: nothing is saved
        InvoiceValidationError: bad input, cancelled invoice, or a new total
            below the amount already paid
    """
    def _op() -> Invoice:
        if not items:
            raise InvoiceValidationError("An invoice needs at least one item")
        try:
            customer = require_text(customer_id, "customer_id", 64)
            due = coerce_date(due_date)
            issued = coerce_date(issue_date)
        except (ValidationError, ValueError) as exc:
            raise InvoiceValidationError(str(exc))
        processing = coerce_processing_status(processing_status)
        details = payment if isinstance(payment, PaymentDetails) else PaymentDetails.from_mapping(payment)

        default_tax, default_vat = default_rates()
        try:
            tax_pct = require_non_negative(default_tax if tax_rate_percent is None else tax_rate_percent, "tax_rate_percent")
            vat_pct = require_non_negative(default_vat if vat_rate_percent is None else vat_rate_percent, "vat_rate_percent")
        except ValidationError as exc:
            raise InvoiceValidationError(str(exc))

        if invoice_id is None:
            number = (invoice_number or "").strip()
            if number:
                _ensure_number_free(number)
            else:
                number = _next_free_number()
            invoice = Invoice(invoice_number=number, amount_paid=Decimal("0.00"))
            previous_number = None
        else:
            invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
            if not invoice:
                raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
            if invoice.status == InvoiceStatus.CANCELLED.value:
                raise InvoiceValidationError("Cannot edit a cancelled invoice")
            previous_number = invoice.invoice_number
            number = (invoice_number or "").strip() or previous_number
            if number != previous_number:
                _ensure_number_free(number, invoice.id)

        lines = [_normalize_item(raw, i) for i, raw in enumerate(items)]
        totals = compute_document_totals(lines, percent_to_rate(tax_pct), percent_to_rate(vat_pct))

        previous_paid = to_decimal(invoice.amount_paid or 0, "amount_paid")
        if totals.total_amount < previous_paid:
            raise InvoiceValidationError(
                f"New total {totals.total_amount} is below the {previous_paid} already paid"
            )

        outcome = apply_payment(totals.total_amount, previous_paid, processing, partial_amount)
        strict, tolerance = _strict_invariants()
        amount_paid, remaining = check_balance(
            totals.total_amount, outcome.amount_paid, outcome.remaining_balance,
            strict=strict, tolerance=tolerance,
        )
        new_status = derive_status(
            totals.total_amount, amount_paid, remaining, due,
            explicit_status=status, today=today,
        )

        invoice.customer_id = customer
        invoice.invoice_number = number
        invoice.issue_date = issued or invoice.issue_date or business_today()
        invoice.due_date = due
        invoice.items = [
            InvoiceItem(**line, total=line_total) for line, line_total in zip(lines, totals.line_totals)
        ]
        invoice.subtotal = totals.subtotal
        invoice.tax_amount = totals.tax_amount
        invoice.vat_amount = totals.vat_amount
        invoice.total_amount = totals.total_amount
        invoice.amount_paid = amount_paid
        invoice.remaining_balance = remaining
        invoice.payment_processing_status = processing.value
        invoice.status = new_status.value
        if new_status is InvoiceStatus.CANCELLED:
            invoice.cancelled_at = utcnow()

        record_payment(invoice, outcome, details)
        db.session.add(invoice)
        db.session.flush()

        if previous_number is not None:
            _return_stock(previous_number)
        if new_status is not InvoiceStatus.CANCELLED:
            _take_stock(invoice.items, invoice.invoice_number)

        db.session.commit()
        return invoice

    return run_with_retry(_op)


def cancel_invoice(invoice_id: int) -> Invoice:
    """
    Cancel an invoice and return its stock. Amounts and payment history are
    kept as they are. Cancelling twice is a no-op.
    """
    def _op() -> Invoice:
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if not invoice:
            raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
        if invoice.status == InvoiceStatus.CANCELLED.value:
            return invoice

        invoice.status = InvoiceStatus.CANCELLED.value
        invoice.cancelled_at = utcnow()
        _return_stock(invoice.invoice_number)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def refresh_statuses(today: date | None = None) -> int:
    """
    Re-derive the status of every live invoice (Overdue follows the calendar).

    Returns the number of invoices whose status changed.
    """
    def _op() -> int:
        invoices = lock_for_update(
            db.session.query(Invoice).filter(Invoice.status != InvoiceStatus.CANCELLED.value)
        ).all()
        changed = 0
        for invoice in invoices:
            status = derive_status(
                invoice.total_amount, invoice.amount_paid, invoice.remaining_balance,
                invoice.due_date, today=today,
            )
            if status.value != invoice.status:
                invoice.status = status.value
                changed += 1
        db.session.commit()
        return changed

    return run_with_retry(_op)


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if not invoice:
        raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def get_invoice_by_number(invoice_number: str) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(invoice_number=invoice_number).first()
    if not invoice:
        raise InvoiceNotFoundError(f"Invoice {invoice_number} not found")
    return invoice


def list_invoices(customer_id: str | None = None, status: str | None = None) -> list[Invoice]:
    query = db.session.query(Invoice)
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    if status is not None:
        query = query.filter(Invoice.status == status)
    return query.order_by(Invoice.issue_date.asc(), Invoice.id.asc()).all()


def get_outstanding_balance(customer_id: str) -> Decimal:
    """What a customer still owes across invoices that are neither Paid nor Cancelled."""
    balances = (
        db.session.query(Invoice.remaining_balance)
        .filter(
            Invoice.customer_id == customer_id,
            Invoice.status.notin_([InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value]),
        )
        .all()
    )
    return sum((to_decimal(balance, "remaining_balance") for (balance,) in balances), Decimal("0.00"))

# Overview: Service-layer operations for purchase orders; creation, sending, receiving and cancellation.

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping

from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderItem, Warehouse
from ..time_utils import coerce_date, today as business_today, utcnow
from ..validation import ValidationError, optional_text, require_non_negative, require_positive, require_text, to_decimal
from .catalog_service import ProductNotFoundError
from .concurrency import lock_for_update, run_with_retry
from .document_service import PURCHASE_ORDER_SEQUENCE, next_document_number
from .pricing import compute_document_totals, line_unit_price, round2
from .receiving import (
    PurchaseOrderStateError,
    PurchaseOrderStatus,
    ReceiptEvent,
    ReceiptResult,
    apply_receipt,
    cancel,
    coerce_po_status,
    mark_sent,
)
from .stock_service import DatabaseStockLedger
from .units import coerce_unit_kind, resolve_unit_kind, to_base_quantity, unit_label


PURCHASE_ORDER_PREFIX = "PO"
INITIAL_STATUSES = {PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.SENT}


class PurchaseOrderNotFoundError(ValueError):
    pass


class PurchaseOrderValidationError(ValueError):
    pass


def _normalize_items(items: Iterable[Mapping[str, Any]]) -> list[dict]:
    lines = []
    for position, raw in enumerate(items):
        label = f"items[{position}]"
        try:
            quantity = require_positive(raw.get("quantity"), f"{label}.quantity")
            unit_price = raw.get("unit_price")
            if unit_price is not None:
                unit_price = require_non_negative(unit_price, f"{label}.unit_price")
        except ValidationError as exc:
            raise PurchaseOrderValidationError(str(exc))

        product_id = raw.get("product_id")
        if product_id is None:
            raise PurchaseOrderValidationError(f"{label}.product_id is required")
        product = db.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")

        kind = resolve_unit_kind(product, raw.get("unit") or raw.get("unit_type"))
        prefilled_price, kind = line_unit_price(product, kind)
        lines.append(
            {
                "product_id": product.id,
                "quantity": quantity,
                "unit_type": unit_label(product, kind),
                "unit_kind": kind.value,
                "unit_price": prefilled_price if unit_price is None else unit_price,
            }
        )
    if not lines:
        raise PurchaseOrderValidationError("A purchase order needs at least one item")
    return lines


def _apply_items(po: PurchaseOrder, lines: list[dict], tax_amount: Decimal) -> None:
    """Purchase orders carry no document-level tax rate; tax_amount is a fixed figure."""
    totals = compute_document_totals(lines, 0, 0)
    po.items = [
        PurchaseOrderItem(**line, quantity_received=Decimal("0"), total=line_total)
        for line, line_total in zip(lines, totals.line_totals)
    ]
    po.subtotal = totals.subtotal
    po.tax_amount = tax_amount
    po.total_amount = totals.subtotal + tax_amount


def _tax_amount(value: Any) -> Decimal:
    try:
        return round2(require_non_negative(value or 0, "tax_amount"))
    except ValidationError as exc:
        raise PurchaseOrderValidationError(str(exc))


def create_purchase_order(
    supplier_id: str,
    items: list[Mapping[str, Any]],
    order_date: date | str | None = None,
    expected_delivery_date: date | str | None = None,
    notes: str | None = None,
    tax_amount: Any = 0,
    status: str = PurchaseOrderStatus.DRAFT.value,
) -> PurchaseOrder:
    """Create a Draft (or already Sent) purchase order numbered PO-nnnnnn."""
    def _op() -> PurchaseOrder:
        initial = coerce_po_status(status)
        if initial not in INITIAL_STATUSES:
            raise PurchaseOrderValidationError("A new purchase order must be Draft or Sent")
        try:
            supplier = require_text(supplier_id, "supplier_id", 64)
            ordered_on = coerce_date(order_date) or business_today()
            expected_on = coerce_date(expected_delivery_date)
            note_text = optional_text(notes, "notes")
        except (ValidationError, ValueError) as exc:
            raise PurchaseOrderValidationError(str(exc))
        tax = _tax_amount(tax_amount)

        number = next_document_number(PURCHASE_ORDER_SEQUENCE, PURCHASE_ORDER_PREFIX)
        lines = _normalize_items(items)

        po = PurchaseOrder(
            po_number=number,
            supplier_id=supplier,
            order_date=ordered_on,
            expected_delivery_date=expected_on,
            notes=note_text,
            status=initial.value,
            sent_at=utcnow() if initial is PurchaseOrderStatus.SENT else None,
        )
        _apply_items(po, lines, tax)
        db.session.add(po)
        db.session.commit()
        return po

    return run_with_retry(_op)


def _locked_po(po_id: int) -> PurchaseOrder:
    po = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=po_id)).first()
    if not po:
        raise PurchaseOrderNotFoundError(f"Purchase order {po_id} not found")
    return po


def update_purchase_order_items(po_id: int, items: list[Mapping[str, Any]], tax_amount: Any = None) -> PurchaseOrder:
    """Replace the lines of an order nothing has been received against yet."""
    def _op() -> PurchaseOrder:
        po = _locked_po(po_id)
        status = coerce_po_status(po.status)
        if status not in INITIAL_STATUSES:
            raise PurchaseOrderStateError(f"Cannot edit lines of a purchase order in status {status.value}")
        if any(to_decimal(item.quantity_received or 0, "quantity_received") > 0 for item in po.items):
            raise PurchaseOrderStateError("Cannot edit lines after stock has been received")

        lines = _normalize_items(items)
        tax = _tax_amount(po.tax_amount if tax_amount is None else tax_amount)
        _apply_items(po, lines, tax)
        db.session.commit()
        return po

    return run_with_retry(_op)


def send_purchase_order(po_id: int) -> PurchaseOrder:
    def _op() -> PurchaseOrder:
        po = _locked_po(po_id)
        mark_sent(po)
        po.sent_at = utcnow()
        db.session.commit()
        return po

    return run_with_retry(_op)


def _to_event(raw: ReceiptEvent | Mapping[str, Any]) -> ReceiptEvent:
    if isinstance(raw, ReceiptEvent):
        return raw
    return ReceiptEvent(
        po_item_id=raw.get("po_item_id"),
        quantity=raw.get("quantity"),
        warehouse_id=raw.get("warehouse_id"),
        product_id=raw.get("product_id"),
    )


def _base_quantity(line: PurchaseOrderItem, quantity: Decimal) -> Decimal:
    return to_base_quantity(line.product, quantity, coerce_unit_kind(line.unit_kind or "base"))


def receive_purchase_order(po_id: int, events: Iterable[ReceiptEvent | Mapping[str, Any]]) -> ReceiptResult:
    """
    Post a batch of receipts against a purchase order.

    Valid events are applied and committed even when others are rejected;
    the rejected ones come back in ReceiptResult.rejected, in input order.
    Events naming a warehouse that does not exist are rejected as
    MissingWarehouse. Quantities are in each line's unit; stock is credited
    in base units. Receiving against a Cancelled order raises
    PurchaseOrderStateError.
    """
    batch = [_to_event(raw) for raw in events]

    def _op() -> ReceiptResult:
        po = _locked_po(po_id)

        known_warehouses = {
            row[0]
            for row in db.session.query(Warehouse.id)
            .filter(Warehouse.id.in_([e.warehouse_id for e in batch if e.warehouse_id is not None]))
            .all()
        }
        result = apply_receipt(
            po,
            batch,
            DatabaseStockLedger(),
            to_stock_quantity=_base_quantity,
            warehouse_exists=known_warehouses.__contains__,
        )
        db.session.commit()
        return result

    return run_with_retry(_op)


def cancel_purchase_order(po_id: int) -> PurchaseOrder:
    def _op() -> PurchaseOrder:
        po = _locked_po(po_id)
        cancel(po)
        po.cancelled_at = utcnow()
        db.session.commit()
        return po

    return run_with_retry(_op)


def get_purchase_order(po_id: int) -> PurchaseOrder:
    po = db.session.get(PurchaseOrder, po_id)
    if not po:
        raise PurchaseOrderNotFoundError(f"Purchase order {po_id} not found")
    return po


def list_purchase_orders(supplier_id: str | None = None, status: str | None = None) -> list[PurchaseOrder]:
    query = db.session.query(PurchaseOrder)
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if status is not None:
        query = query.filter(PurchaseOrder.status == status)
    return query.order_by(PurchaseOrder.order_date.asc(), PurchaseOrder.id.asc()).all()

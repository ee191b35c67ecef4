# Overview: Purchase-order receiving; accumulates receipts per line, feeds the stock ledger, derives PO status.

"""
Receiving reconciliation
========================

LIFECYCLE:
    Draft -> Sent -> Partially Received -> Fully Received
    Draft/Sent -> Cancelled (terminal)

RULES:
1. quantity_received accumulates; a receipt never overwrites it.
2. The same event submitted twice is applied twice. Duplicate submission
   is the caller's mistake, not something absorbed here.
3. A bad event (unknown line, quantity <= 0, no warehouse, wrong product)
   is rejected on its own; the rest of the batch still applies.
4. quantity_received stays in the line's unit; stock is credited in the
   unit stock is kept in (base units for the database ledger).
5. Over-receipt is accepted and logged.
6. Status is re-derived from all lines after every batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable

from ..validation import ValidationError, to_decimal
from .stock_ledger import StockLedger, StockTransactionType
from .units import ConfigurationError


logger = logging.getLogger(__name__)


class PurchaseOrderStatus(str, Enum):
    DRAFT = "Draft"
    SENT = "Sent"
    PARTIALLY_RECEIVED = "Partially Received"
    FULLY_RECEIVED = "Fully Received"
    CANCELLED = "Cancelled"


CANCELLABLE_STATUSES = {PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.SENT}


class PurchaseOrderStateError(ValueError):
    """Operation not allowed in the purchase order's current status."""
    pass


class ReceiptEventError(ValueError):
    """A single receipt event was rejected. Carries the offending event."""

    def __init__(self, event: "ReceiptEvent", message: str):
        super().__init__(message)
        self.event = event


class UnknownLineItem(ReceiptEventError):
    pass


class NonPositiveReceiptQuantity(ReceiptEventError):
    pass


class MissingWarehouse(ReceiptEventError):
    pass


class ProductMismatch(ReceiptEventError):
    pass


class UnconvertibleQuantity(ReceiptEventError):
    """The received quantity does not convert to whole base units."""
    pass


@dataclass(frozen=True)
class ReceiptEvent:
    po_item_id: Any
    quantity: Any
    warehouse_id: Any
    product_id: Any = None


@dataclass(frozen=True)
class AppliedReceipt:
    event: ReceiptEvent
    product_id: Any
    quantity: Decimal
    quantity_received: Decimal
    new_stock_level: Decimal
    over_received: bool = False
    stock_quantity: Decimal | None = None


@dataclass
class ReceiptResult:
    status: PurchaseOrderStatus
    applied: list[AppliedReceipt] = field(default_factory=list)
    rejected: list[ReceiptEventError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.rejected


def coerce_po_status(value: PurchaseOrderStatus | str) -> PurchaseOrderStatus:
    if isinstance(value, PurchaseOrderStatus):
        return value
    try:
        return PurchaseOrderStatus(value)
    except ValueError:
        raise PurchaseOrderStateError(f"Unknown purchase order status {value!r}")


def derive_purchase_order_status(lines: Iterable[Any], current_status: PurchaseOrderStatus | str) -> PurchaseOrderStatus:
    """
    Fully Received when every line has received >= ordered; Partially
    Received when any line has received something; otherwise unchanged.
    Cancelled stays Cancelled.
    """
    current = coerce_po_status(current_status)
    if current is PurchaseOrderStatus.CANCELLED:
        return current

    lines = list(lines)
    if not lines:
        return current

    received = [to_decimal(line.quantity_received or 0, "quantity_received") for line in lines]
    ordered = [to_decimal(line.quantity, "quantity") for line in lines]

    if all(r >= o for r, o in zip(received, ordered)):
        return PurchaseOrderStatus.FULLY_RECEIVED
    if any(r > 0 for r in received):
        return PurchaseOrderStatus.PARTIALLY_RECEIVED
    return current


def _validate_event(event: ReceiptEvent, lines_by_id: dict, warehouse_exists: Callable[[Any], bool] | None):
    line = lines_by_id.get(event.po_item_id)
    if line is None:
        raise UnknownLineItem(event, f"Purchase order has no line {event.po_item_id!r}")

    try:
        quantity = to_decimal(event.quantity, "quantity")
    except ValidationError as exc:
        raise NonPositiveReceiptQuantity(event, str(exc))
    if quantity <= 0:
        raise NonPositiveReceiptQuantity(event, f"Received quantity must be > 0 (got {quantity})")

    if event.warehouse_id is None or event.warehouse_id == "":
        raise MissingWarehouse(event, f"No warehouse given for line {event.po_item_id!r}")
    if warehouse_exists is not None and not warehouse_exists(event.warehouse_id):
        raise MissingWarehouse(event, f"Warehouse {event.warehouse_id} not found")

    if event.product_id is not None and event.product_id != line.product_id:
        raise ProductMismatch(
            event,
            f"Line {event.po_item_id!r} is for product {line.product_id!r}, not {event.product_id!r}",
        )
    return line, quantity


def apply_receipt(
    po,
    events: Iterable[ReceiptEvent],
    stock_ledger: StockLedger,
    *,
    to_stock_quantity: Callable[[Any, Decimal], Decimal] | None = None,
    warehouse_exists: Callable[[Any], bool] | None = None,
) -> ReceiptResult:
    """
    Apply a batch of receipt events to po in order.

    po: object with status, items (id, product_id, quantity,
    quantity_received) and optionally po_number, used as the stock
    movement reference. Mutates po and its lines in place.

    to_stock_quantity(line, quantity) converts a quantity in the line's
    unit into the unit stock is kept in (identity when omitted); a
    ConfigurationError from it rejects the event as UnconvertibleQuantity.
    warehouse_exists(warehouse_id) rejects events naming an unknown
    warehouse as MissingWarehouse.

    Raises PurchaseOrderStateError for a cancelled order; every other
    problem is per-event and ends up in ReceiptResult.rejected, in input
    order.
    """
    if coerce_po_status(po.status) is PurchaseOrderStatus.CANCELLED:
        raise PurchaseOrderStateError("Cannot receive against a cancelled purchase order")

    lines_by_id = {line.id: line for line in po.items}
    reference = getattr(po, "po_number", None)
    applied: list[AppliedReceipt] = []
    rejected: list[ReceiptEventError] = []

    for event in events:
        try:
            line, quantity = _validate_event(event, lines_by_id, warehouse_exists)
            try:
                stock_quantity = to_stock_quantity(line, quantity) if to_stock_quantity else quantity
            except ConfigurationError as exc:
                raise UnconvertibleQuantity(event, str(exc))
        except ReceiptEventError as exc:
            logger.warning("Rejected receipt event %s: %s", event, exc)
            rejected.append(exc)
            continue

        line.quantity_received = to_decimal(line.quantity_received or 0, "quantity_received") + quantity
        ordered = to_decimal(line.quantity, "quantity")
        over = line.quantity_received > ordered
        if over:
            logger.warning(
                "Over-receipt on %s line %s: received %s of %s ordered",
                reference, line.id, line.quantity_received, ordered,
            )

        new_level = stock_ledger.adjust(
            line.product_id,
            event.warehouse_id,
            stock_quantity,
            transaction_type=StockTransactionType.GOODS_RECEIVED,
            reference=reference,
        )
        applied.append(
            AppliedReceipt(
                event=event,
                product_id=line.product_id,
                quantity=quantity,
                quantity_received=line.quantity_received,
                new_stock_level=new_level,
                over_received=over,
                stock_quantity=stock_quantity,
            )
        )

    po.status = derive_purchase_order_status(po.items, po.status).value
    return ReceiptResult(status=PurchaseOrderStatus(po.status), applied=applied, rejected=rejected)


def cancel(po):
    """Draft/Sent -> Cancelled. Orders with receipts posted are not cancellable."""
    status = coerce_po_status(po.status)
    if status not in CANCELLABLE_STATUSES:
        raise PurchaseOrderStateError(f"Cannot cancel a purchase order in status {status.value}")
    if any(to_decimal(line.quantity_received or 0, "quantity_received") > 0 for line in po.items):
        raise PurchaseOrderStateError("Cannot cancel a purchase order with received stock")
    po.status = PurchaseOrderStatus.CANCELLED.value
    return po


def mark_sent(po):
    status = coerce_po_status(po.status)
    if status is not PurchaseOrderStatus.DRAFT:
        raise PurchaseOrderStateError(f"Only Draft purchase orders can be sent (status is {status.value})")
    po.status = PurchaseOrderStatus.SENT.value
    return po

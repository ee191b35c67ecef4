# Overview: Pytest coverage for purchase order receiving and status derivation.

"""
Receiving Reconciliation Tests

Covers:
1. Partial then full receipt of a single line, with stock following along
2. Per-event rejection without aborting the batch
3. Duplicate events accumulate every time (receiving is NOT idempotent)
4. Status derivation across lines; cancel / send transitions
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from invoiceflow.services.receiving import (
    MissingWarehouse,
    NonPositiveReceiptQuantity,
    ProductMismatch,
    PurchaseOrderStateError,
    PurchaseOrderStatus,
    ReceiptEvent,
    UnknownLineItem,
    apply_receipt,
    cancel,
    derive_purchase_order_status,
    mark_sent,
)
from invoiceflow.services.stock_ledger import InMemoryStockLedger, StockTransactionType


def make_line(line_id, product_id, quantity, received=0):
    return SimpleNamespace(
        id=line_id, product_id=product_id,
        quantity=Decimal(str(quantity)), quantity_received=Decimal(str(received)),
    )


def make_po(*lines, status="Sent"):
    return SimpleNamespace(po_number="PO-000001", status=status, items=list(lines))


class TestApplyReceipt:
    def test_partial_then_full(self):
        po = make_po(make_line(1, 10, 100))
        ledger = InMemoryStockLedger()

        result = apply_receipt(po, [ReceiptEvent(po_item_id=1, quantity=40, warehouse_id="W1")], ledger)
        assert result.ok
        assert po.items[0].quantity_received == Decimal("40")
        assert po.status == "Partially Received"
        assert result.status is PurchaseOrderStatus.PARTIALLY_RECEIVED
        assert ledger.level(10, "W1") == Decimal("40")

        result = apply_receipt(po, [ReceiptEvent(po_item_id=1, quantity=60, warehouse_id="W1")], ledger)
        assert po.items[0].quantity_received == Decimal("100")
        assert po.status == "Fully Received"
        assert ledger.level(10, "W1") == Decimal("100")
        assert all(m.transaction_type is StockTransactionType.GOODS_RECEIVED for m in ledger.movements)
        assert all(m.reference == "PO-000001" for m in ledger.movements)

    def test_split_across_warehouses(self):
        po = make_po(make_line(1, 10, 50))
        ledger = InMemoryStockLedger()
        apply_receipt(
            po,
            [
                ReceiptEvent(po_item_id=1, quantity=20, warehouse_id="W1"),
                ReceiptEvent(po_item_id=1, quantity=30, warehouse_id="W2"),
            ],
            ledger,
        )
        assert ledger.level(10, "W1") == Decimal("20")
        assert ledger.level(10, "W2") == Decimal("30")
        assert po.status == "Fully Received"

    def test_bad_events_are_rejected_individually(self):
        po = make_po(make_line(1, 10, 100), make_line(2, 11, 5))
        ledger = InMemoryStockLedger()
        result = apply_receipt(
            po,
            [
                ReceiptEvent(po_item_id=99, quantity=5, warehouse_id="W1"),
                ReceiptEvent(po_item_id=1, quantity=0, warehouse_id="W1"),
                ReceiptEvent(po_item_id=1, quantity=-3, warehouse_id="W1"),
                ReceiptEvent(po_item_id=1, quantity=5, warehouse_id=None),
                ReceiptEvent(po_item_id=1, quantity=5, warehouse_id="W1", product_id=11),
                ReceiptEvent(po_item_id=2, quantity=5, warehouse_id="W1"),
            ],
            ledger,
        )
        assert not result.ok
        assert [type(e) for e in result.rejected] == [
            UnknownLineItem,
            NonPositiveReceiptQuantity,
            NonPositiveReceiptQuantity,
            MissingWarehouse,
            ProductMismatch,
        ]
        assert result.rejected[0].event.po_item_id == 99
        assert len(result.applied) == 1
        assert po.items[0].quantity_received == Decimal("0")
        assert po.items[1].quantity_received == Decimal("5")
        assert po.status == "Partially Received"

    def test_duplicate_event_is_applied_twice(self):
        """Not idempotent: resubmitting the same receipt counts it again."""
        po = make_po(make_line(1, 10, 100))
        ledger = InMemoryStockLedger()
        event = ReceiptEvent(po_item_id=1, quantity=40, warehouse_id="W1")

        apply_receipt(po, [event], ledger)
        apply_receipt(po, [event], ledger)

        assert po.items[0].quantity_received == Decimal("80")
        assert ledger.level(10, "W1") == Decimal("80")

    def test_over_receipt_is_accepted(self):
        po = make_po(make_line(1, 10, 10))
        result = apply_receipt(po, [ReceiptEvent(po_item_id=1, quantity=12, warehouse_id="W1")], InMemoryStockLedger())
        assert result.applied[0].over_received
        assert po.status == "Fully Received"

    def test_draft_can_be_received(self):
        po = make_po(make_line(1, 10, 10), status="Draft")
        apply_receipt(po, [ReceiptEvent(po_item_id=1, quantity=1, warehouse_id="W1")], InMemoryStockLedger())
        assert po.status == "Partially Received"

    def test_cancelled_order_cannot_be_received(self):
        po = make_po(make_line(1, 10, 10), status="Cancelled")
        ledger = InMemoryStockLedger()
        with pytest.raises(PurchaseOrderStateError):
            apply_receipt(po, [ReceiptEvent(po_item_id=1, quantity=1, warehouse_id="W1")], ledger)
        assert ledger.movements == []

    def test_all_rejected_keeps_status(self):
        po = make_po(make_line(1, 10, 10), status="Sent")
        result = apply_receipt(po, [ReceiptEvent(po_item_id=5, quantity=1, warehouse_id="W1")], InMemoryStockLedger())
        assert po.status == "Sent"
        assert len(result.rejected) == 1


class TestDeriveStatus:
    def test_every_line_must_be_complete(self):
        lines = [make_line(1, 10, 10, received=10), make_line(2, 11, 5, received=0)]
        assert derive_purchase_order_status(lines, "Sent") is PurchaseOrderStatus.PARTIALLY_RECEIVED

    def test_nothing_received_keeps_status(self):
        lines = [make_line(1, 10, 10)]
        assert derive_purchase_order_status(lines, "Draft") is PurchaseOrderStatus.DRAFT
        assert derive_purchase_order_status(lines, "Sent") is PurchaseOrderStatus.SENT

    def test_all_received(self):
        lines = [make_line(1, 10, 10, received=10), make_line(2, 11, 5, received=7)]
        assert derive_purchase_order_status(lines, "Partially Received") is PurchaseOrderStatus.FULLY_RECEIVED

    def test_cancelled_stays_cancelled(self):
        lines = [make_line(1, 10, 10, received=10)]
        assert derive_purchase_order_status(lines, "Cancelled") is PurchaseOrderStatus.CANCELLED


class TestTransitions:
    def test_cancel_from_draft_and_sent(self):
        assert cancel(make_po(make_line(1, 10, 5), status="Draft")).status == "Cancelled"
        assert cancel(make_po(make_line(1, 10, 5), status="Sent")).status == "Cancelled"

    @pytest.mark.parametrize("status", ["Partially Received", "Fully Received", "Cancelled"])
    def test_cancel_rejected_after_receiving(self, status):
        with pytest.raises(PurchaseOrderStateError):
            cancel(make_po(make_line(1, 10, 5, received=1), status=status))

    def test_mark_sent_only_from_draft(self):
        assert mark_sent(make_po(status="Draft")).status == "Sent"
        with pytest.raises(PurchaseOrderStateError):
            mark_sent(make_po(status="Sent"))

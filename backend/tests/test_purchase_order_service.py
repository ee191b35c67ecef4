# Overview: Pytest coverage for purchase order creation, sending, receiving and cancellation.

from decimal import Decimal

import pytest

from invoiceflow.services import invoice_service, purchase_order_service, stock_service
from invoiceflow.services.purchase_order_service import PurchaseOrderValidationError
from invoiceflow.services.receiving import (
    MissingWarehouse,
    PurchaseOrderStateError,
    ReceiptEvent,
    UnconvertibleQuantity,
    UnknownLineItem,
)


@pytest.fixture
def purchase_order(carton_product):
    return purchase_order_service.create_purchase_order(
        supplier_id="SUP001",
        items=[{"product_id": carton_product.id, "quantity": 100, "unit": "Cartons"}],
    )


class TestCreatePurchaseOrder:
    def test_totals_and_defaults(self, purchase_order):
        assert purchase_order.po_number == "PO-000001"
        assert purchase_order.status == "Draft"
        assert purchase_order.items[0].unit_price == Decimal("7.1000")
        assert purchase_order.items[0].quantity_received == Decimal("0")
        assert purchase_order.subtotal == Decimal("710.00")
        assert purchase_order.tax_amount == Decimal("0.00")
        assert purchase_order.total_amount == Decimal("710.00")

    def test_fixed_tax_amount_and_explicit_price(self, carton_product):
        po = purchase_order_service.create_purchase_order(
            supplier_id="SUP001",
            items=[{"product_id": carton_product.id, "quantity": 4, "unit_price": "2.50"}],
            tax_amount="1.75",
            status="Sent",
        )
        assert po.subtotal == Decimal("10.00")
        assert po.total_amount == Decimal("11.75")
        assert po.status == "Sent"
        assert po.sent_at is not None

    def test_rejects_bad_input(self, carton_product):
        with pytest.raises(PurchaseOrderValidationError):
            purchase_order_service.create_purchase_order(supplier_id="SUP001", items=[])
        with pytest.raises(PurchaseOrderValidationError):
            purchase_order_service.create_purchase_order(
                supplier_id="SUP001", items=[{"product_id": carton_product.id, "quantity": 0}]
            )
        with pytest.raises(PurchaseOrderValidationError):
            purchase_order_service.create_purchase_order(
                supplier_id="SUP001",
                items=[{"product_id": carton_product.id, "quantity": 1}],
                status="Fully Received",
            )

    def test_update_items_recomputes_totals(self, purchase_order, carton_product):
        po = purchase_order_service.update_purchase_order_items(
            purchase_order.id, [{"product_id": carton_product.id, "quantity": 2, "unit": "Case"}]
        )
        assert len(po.items) == 1
        assert po.items[0].unit_type == "Case"
        assert po.total_amount == Decimal("142.00")


class TestReceivePurchaseOrder:
    def test_partial_then_full_receipt(self, purchase_order, carton_product, warehouses):
        w1, _ = warehouses
        line_id = purchase_order.items[0].id

        result = purchase_order_service.receive_purchase_order(
            purchase_order.id, [ReceiptEvent(po_item_id=line_id, quantity=40, warehouse_id=w1.id)]
        )
        assert result.ok
        po = purchase_order_service.get_purchase_order(purchase_order.id)
        assert po.status == "Partially Received"
        assert po.items[0].quantity_received == Decimal("40")
        assert stock_service.get_stock_level(carton_product.id, w1.id) == Decimal("40")

        txn = stock_service.list_stock_transactions(product_id=carton_product.id)[0]
        assert txn.transaction_type == "Goods Received"
        assert txn.reference == po.po_number

        purchase_order_service.receive_purchase_order(
            purchase_order.id, [{"po_item_id": line_id, "quantity": 60, "warehouse_id": w1.id}]
        )
        po = purchase_order_service.get_purchase_order(purchase_order.id)
        assert po.status == "Fully Received"
        assert po.items[0].quantity_received == Decimal("100")
        assert stock_service.get_stock_level(carton_product.id, w1.id) == Decimal("100")

    def test_rejected_events_do_not_block_the_batch(self, purchase_order, carton_product, warehouses):
        w1, w2 = warehouses
        line_id = purchase_order.items[0].id

        result = purchase_order_service.receive_purchase_order(
            purchase_order.id,
            [
                {"po_item_id": line_id, "quantity": 5, "warehouse_id": 9999},
                {"po_item_id": 424242, "quantity": 5, "warehouse_id": w1.id},
                {"po_item_id": line_id, "quantity": 10, "warehouse_id": w2.id},
            ],
        )
        assert [type(e) for e in result.rejected] == [MissingWarehouse, UnknownLineItem]
        assert len(result.applied) == 1
        assert stock_service.get_stock_level(carton_product.id, w2.id) == Decimal("10")
        assert stock_service.get_stock_level(carton_product.id, w1.id) == Decimal("0")

    def test_rejections_keep_input_order(self, purchase_order, warehouses):
        w1, _ = warehouses
        line_id = purchase_order.items[0].id

        result = purchase_order_service.receive_purchase_order(
            purchase_order.id,
            [
                {"po_item_id": 424242, "quantity": 5, "warehouse_id": w1.id},
                {"po_item_id": line_id, "quantity": 5, "warehouse_id": 9999},
                {"po_item_id": line_id, "quantity": 0, "warehouse_id": w1.id},
            ],
        )
        assert [e.event.po_item_id for e in result.rejected] == [424242, line_id, line_id]
        assert isinstance(result.rejected[0], UnknownLineItem)
        assert isinstance(result.rejected[1], MissingWarehouse)
        assert result.applied == []

    def test_cancelled_order_cannot_be_received(self, purchase_order, warehouses):
        w1, _ = warehouses
        purchase_order_service.cancel_purchase_order(purchase_order.id)
        with pytest.raises(PurchaseOrderStateError):
            purchase_order_service.receive_purchase_order(
                purchase_order.id, [ReceiptEvent(po_item_id=purchase_order.items[0].id, quantity=1, warehouse_id=w1.id)]
            )


class TestLifecycle:
    def test_send_once(self, purchase_order):
        po = purchase_order_service.send_purchase_order(purchase_order.id)
        assert po.status == "Sent"
        with pytest.raises(PurchaseOrderStateError):
            purchase_order_service.send_purchase_order(purchase_order.id)

    def test_cancel_draft(self, purchase_order):
        po = purchase_order_service.cancel_purchase_order(purchase_order.id)
        assert po.status == "Cancelled"
        assert po.cancelled_at is not None

    def test_no_cancel_or_edit_after_receipt(self, purchase_order, carton_product, warehouses):
        w1, _ = warehouses
        purchase_order_service.receive_purchase_order(
            purchase_order.id, [ReceiptEvent(po_item_id=purchase_order.items[0].id, quantity=1, warehouse_id=w1.id)]
        )
        with pytest.raises(PurchaseOrderStateError):
            purchase_order_service.cancel_purchase_order(purchase_order.id)
        with pytest.raises(PurchaseOrderStateError):
            purchase_order_service.update_purchase_order_items(
                purchase_order.id, [{"product_id": carton_product.id, "quantity": 1}]
            )
        assert purchase_order_service.get_purchase_order(purchase_order.id).status == "Partially Received"

    def test_list_by_status(self, purchase_order, carton_product):
        purchase_order_service.create_purchase_order(
            supplier_id="SUP002", items=[{"product_id": carton_product.id, "quantity": 1}], status="Sent"
        )
        assert [po.supplier_id for po in purchase_order_service.list_purchase_orders(status="Sent")] == ["SUP002"]
        assert len(purchase_order_service.list_purchase_orders(supplier_id="SUP001")) == 1


class TestReceivingUnits:
    def test_packaging_receipt_credits_base_units(self, carton_product, warehouses):
        w1, _ = warehouses
        po = purchase_order_service.create_purchase_order(
            supplier_id="SUP001",
            items=[{"product_id": carton_product.id, "quantity": 2, "unit": "Case"}],
        )
        assert po.items[0].unit_kind == "packaging"

        result = purchase_order_service.receive_purchase_order(
            po.id, [ReceiptEvent(po_item_id=po.items[0].id, quantity=2, warehouse_id=w1.id)]
        )
        assert result.ok
        assert result.applied[0].stock_quantity == Decimal("20")
        po = purchase_order_service.get_purchase_order(po.id)
        assert po.items[0].quantity_received == Decimal("2")
        assert po.status == "Fully Received"
        assert stock_service.get_stock_level(carton_product.id, w1.id) == Decimal("20")

        # Selling one case takes the same ten cartons back out
        invoice_service.save_invoice(
            customer_id="CUST001",
            items=[{"product_id": carton_product.id, "quantity": 1, "unit": "Case"}],
            due_date="2099-01-01",
        )
        assert stock_service.get_stock_level(carton_product.id, w1.id) == Decimal("10")

    def test_piece_receipt_must_fill_whole_base_units(self, carton_product, warehouses):
        w1, _ = warehouses
        po = purchase_order_service.create_purchase_order(
            supplier_id="SUP001",
            items=[{"product_id": carton_product.id, "quantity": 24, "unit": "PCS"}],
        )
        line_id = po.items[0].id

        result = purchase_order_service.receive_purchase_order(
            po.id,
            [
                {"po_item_id": line_id, "quantity": 6, "warehouse_id": w1.id},
                {"po_item_id": line_id, "quantity": 12, "warehouse_id": w1.id},
            ],
        )
        assert [type(e) for e in result.rejected] == [UnconvertibleQuantity]
        po = purchase_order_service.get_purchase_order(po.id)
        assert po.items[0].quantity_received == Decimal("12")
        assert po.status == "Partially Received"
        assert stock_service.get_stock_level(carton_product.id, w1.id) == Decimal("1")

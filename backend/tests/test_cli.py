# Overview: Pytest coverage for the invoices and stock CLI command groups.

from datetime import date

from invoiceflow.services import invoice_service, stock_service


def _invoice(customer_id, due_date):
    return invoice_service.save_invoice(
        customer_id=customer_id,
        issue_date=date(2024, 1, 1),
        due_date=due_date,
        items=[{"description": "Service", "quantity": 1, "unit_price": "100.00"}],
        today=date(2024, 1, 1),
    )


class TestInvoiceCommands:
    def test_refresh_status(self, app, db_session):
        invoice = _invoice("CUST001", date(2024, 1, 31))
        assert invoice.status == "Pending"

        result = app.test_cli_runner().invoke(args=["invoices", "refresh-status", "--today", "2024-02-01"])
        assert result.exit_code == 0
        assert "PASS 1 invoice(s) changed status" in result.output
        assert invoice_service.get_invoice(invoice.id).status == "Overdue"

    def test_refresh_status_bad_date(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["invoices", "refresh-status", "--today", "someday"])
        assert result.exit_code == 1
        assert "FAIL" in result.output

    def test_outstanding(self, app, db_session):
        invoice = _invoice("CUST001", date(2099, 1, 31))
        runner = app.test_cli_runner()

        result = runner.invoke(args=["invoices", "outstanding", "CUST001"])
        assert result.exit_code == 0
        assert invoice.invoice_number in result.output
        assert "Outstanding: 115.00" in result.output

        result = runner.invoke(args=["invoices", "outstanding", "NOBODY"])
        assert "No outstanding invoices for NOBODY." in result.output


class TestStockCommands:
    def test_adjust_then_level(self, app, carton_product, warehouses):
        w1, _ = warehouses
        runner = app.test_cli_runner()

        result = runner.invoke(
            args=["stock", "adjust", str(carton_product.id), str(w1.id), "10", "--reason", "Stock Take Gain"]
        )
        assert result.exit_code == 0
        assert "PASS Stock Increase" in result.output
        assert stock_service.get_stock_level(carton_product.id, w1.id) == 10

        result = runner.invoke(args=["stock", "level", str(carton_product.id)])
        assert result.exit_code == 0
        assert "Total: 10" in result.output

    def test_adjust_unknown_product_fails(self, app, warehouses):
        w1, _ = warehouses
        result = app.test_cli_runner().invoke(
            args=["stock", "adjust", "999", str(w1.id), "1", "--reason", "Other Increase"]
        )
        assert result.exit_code == 1
        assert "FAIL Product 999 not found" in result.output

    def test_adjust_rejects_unknown_reason(self, app, carton_product, warehouses):
        w1, _ = warehouses
        result = app.test_cli_runner().invoke(
            args=["stock", "adjust", str(carton_product.id), str(w1.id), "1", "--reason", "Because"]
        )
        assert result.exit_code == 2

# Overview: Flask CLI command groups for bootstrap, invoice maintenance and stock inspection.

# backend/invoiceflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: flask --app invoiceflow <group> <command> [options]
#
# System bootstrap/repair:
# - flask --app invoiceflow system init [--warehouse "Main Warehouse"]
#   Create all tables (idempotent) and a first warehouse if none exists.
# - flask --app invoiceflow system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Invoices:
# - flask --app invoiceflow invoices refresh-status [--today 2024-05-01]
#   Re-derive every live invoice status (e.g. Pending -> Overdue after the due date).
# - flask --app invoiceflow invoices outstanding CUST001
#   Outstanding balance of a customer across unpaid invoices.
#
# Stock:
# - flask --app invoiceflow stock level 1 [--warehouse-id 2]
#   Stock of a product per warehouse, or in one warehouse.
# - flask --app invoiceflow stock adjust 1 2 10 --reason "Stock Take Gain" [--reference "COUNT-7"]
#   Manual adjustment; the reason decides increase vs decrease.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Warehouse
from .services import invoice_service, stock_service
from .services.catalog_service import ProductNotFoundError, WarehouseNotFoundError
from .services.stock_ledger import DECREASE_REASONS, INCREASE_REASONS, StockError
from .time_utils import coerce_date


def _fail(message: str):
    click.echo(f"FAIL {message}")
    raise click.exceptions.Exit(1)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--warehouse', 'warehouse_name', default='Main Warehouse', show_default=True,
              help='Name of the first warehouse (only created when none exists)')
@with_appcontext
def init_system(warehouse_name):
    """Create tables and a first warehouse."""
    click.echo("START Initializing invoiceflow...")
    db.create_all()

    if db.session.query(Warehouse).count() == 0:
        warehouse = Warehouse(name=warehouse_name)
        db.session.add(warehouse)
        db.session.commit()
        click.echo(f"PASS Created warehouse #{warehouse.id} '{warehouse.name}'")
    else:
        click.echo("SKIP Warehouses already exist")

    click.echo("PASS System initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'flask --app invoiceflow system init' to initialize.")


@click.group('invoices')
def invoices_group():
    """Invoice status and balance commands."""


@invoices_group.command('refresh-status')
@click.option('--today', 'today_str', help='Business date to evaluate against (YYYY-MM-DD, default: today)')
@with_appcontext
def refresh_status(today_str):
    """Re-derive status of every non-cancelled invoice."""
    try:
        today = coerce_date(today_str) if today_str else None
    except ValueError:
        _fail(f"Invalid date '{today_str}'")
    changed = invoice_service.refresh_statuses(today=today)
    click.echo(f"PASS {changed} invoice(s) changed status")


@invoices_group.command('outstanding')
@click.argument('customer_id')
@with_appcontext
def outstanding(customer_id):
    """Show what a customer still owes."""
    invoices = [
        inv for inv in invoice_service.list_invoices(customer_id=customer_id)
        if inv.status not in ("Paid", "Cancelled")
    ]
    if not invoices:
        click.echo(f"No outstanding invoices for {customer_id}.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'Invoice':<16} {'Due':<12} {'Status':<16} {'Total':>12} {'Remaining':>12}")
    click.echo("="*72)
    for inv in invoices:
        due = inv.due_date.isoformat() if inv.due_date else '-'
        click.echo(f"{inv.invoice_number:<16} {due:<12} {inv.status:<16} {inv.total_amount:>12} {inv.remaining_balance:>12}")
    click.echo("="*72)
    click.echo(f"Outstanding: {invoice_service.get_outstanding_balance(customer_id)}\n")


@click.group('stock')
def stock_group():
    """Stock inspection and manual adjustment commands."""


@stock_group.command('level')
@click.argument('product_id', type=int)
@click.option('--warehouse-id', type=int, help='Only this warehouse')
@with_appcontext
def stock_level(product_id, warehouse_id):
    """Show stock of a product."""
    if warehouse_id is not None:
        level = stock_service.get_stock_level(product_id, warehouse_id)
        click.echo(f"Product {product_id} @ warehouse {warehouse_id}: {level}")
        return

    locations = stock_service.list_stock_levels(product_id)
    if not locations:
        click.echo(f"No stock recorded for product {product_id}.")
        return
    for location in locations:
        click.echo(f"Warehouse {location.warehouse_id:<6} {location.stock_level}")
    click.echo(f"Total: {stock_service.get_total_stock(product_id)}")


@stock_group.command('adjust')
@click.argument('product_id', type=int)
@click.argument('warehouse_id', type=int)
@click.argument('quantity')
@click.option('--reason', required=True, type=click.Choice(INCREASE_REASONS + DECREASE_REASONS), help='Adjustment reason')
@click.option('--reference', help='Free-text reference (count sheet, note)')
@with_appcontext
def stock_adjust(product_id, warehouse_id, quantity, reason, reference):
    """Apply a manual stock adjustment."""
    try:
        txn = stock_service.adjust_stock(product_id, warehouse_id, quantity, reason, reference=reference)
    except (ProductNotFoundError, WarehouseNotFoundError, StockError) as e:
        _fail(str(e))
    click.echo(
        f"PASS {txn.transaction_type} {txn.quantity_change} -> "
        f"warehouse {warehouse_id} now holds {txn.new_stock_level}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(invoices_group)
    app.cli.add_command(stock_group)

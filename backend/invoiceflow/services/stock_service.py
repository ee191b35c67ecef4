# Overview: Service-layer operations for stock; database-backed stock ledger, manual adjustments and transfers.

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import func

from ..extensions import db
from ..models import StockLocation, StockTransaction, Warehouse
from ..validation import ValidationError, require_positive, to_decimal
from .catalog_service import get_product, get_warehouse
from .concurrency import lock_for_update, run_with_retry
from .stock_ledger import (
    ZERO,
    InsufficientStockError,
    StockError,
    StockLedger,
    StockMovement,
    StockTransactionType,
    reason_direction,
)


# Stored precision of stock quantities
QUANTITY_QUANTUM = Decimal("0.001")


class DatabaseStockLedger(StockLedger):
    """
    StockLedger over StockLocation rows.

    Each adjust() locks (or creates) the (product, warehouse) row and appends
    a StockTransaction. Never commits; the caller's write unit does.
    """

    def __init__(self):
        self.transactions: list[StockTransaction] = []

    def _location(self, product_id, warehouse_id, *, for_update: bool) -> StockLocation | None:
        query = db.session.query(StockLocation).filter_by(product_id=product_id, warehouse_id=warehouse_id)
        if for_update:
            query = lock_for_update(query)
        return query.first()

    def _load_level(self, product_id, warehouse_id, *, for_update: bool) -> Decimal:
        location = self._location(product_id, warehouse_id, for_update=for_update)
        if location is None:
            return ZERO
        return to_decimal(location.stock_level, "stock_level")

    def _store(self, movement: StockMovement) -> None:
        location = self._location(movement.product_id, movement.warehouse_id, for_update=True)
        if location is None:
            location = StockLocation(product_id=movement.product_id, warehouse_id=movement.warehouse_id)
            db.session.add(location)
        location.stock_level = movement.new_stock_level

        transaction = StockTransaction(
            product_id=movement.product_id,
            warehouse_id=movement.warehouse_id,
            transaction_type=movement.transaction_type.value,
            quantity_change=movement.quantity_change,
            new_stock_level=movement.new_stock_level,
            reason=movement.reason,
            reference=movement.reference,
        )
        db.session.add(transaction)
        db.session.flush()
        self.transactions.append(transaction)

    @property
    def last_transaction(self) -> StockTransaction | None:
        return self.transactions[-1] if self.transactions else None


def _positive_quantity(quantity: Any) -> Decimal:
    try:
        return require_positive(quantity, "quantity")
    except ValidationError as exc:
        raise StockError(str(exc))


def adjust_stock(
    product_id: int,
    warehouse_id: int,
    quantity: Any,
    reason: str,
    reference: str | None = None,
) -> StockTransaction:
    """
    Manual stock adjustment.

    The reason decides the direction (see stock_ledger.INCREASE_REASONS /
    DECREASE_REASONS); quantity is always positive. Decreases clamp at zero,
    and the returned transaction records the change actually applied.
    """
    def _op() -> StockTransaction:
        get_product(product_id)
        get_warehouse(warehouse_id)
        qty = _positive_quantity(quantity)
        direction = reason_direction(reason)

        ledger = DatabaseStockLedger()
        ledger.adjust(
            product_id,
            warehouse_id,
            qty * direction,
            transaction_type=(
                StockTransactionType.STOCK_INCREASE if direction > 0 else StockTransactionType.STOCK_DECREASE
            ),
            reason=reason,
            reference=reference,
        )
        db.session.commit()
        return ledger.last_transaction

    return run_with_retry(_op)


def transfer_stock(
    product_id: int,
    source_warehouse_id: int,
    destination_warehouse_id: int,
    quantity: Any,
    reference: str | None = None,
) -> tuple[StockTransaction, StockTransaction]:
    """Move stock between warehouses. Returns (transfer_out, transfer_in)."""
    def _op():
        if source_warehouse_id == destination_warehouse_id:
            raise StockError("Source and destination warehouse must differ")
        get_product(product_id)
        get_warehouse(source_warehouse_id)
        get_warehouse(destination_warehouse_id)
        qty = _positive_quantity(quantity)

        ledger = DatabaseStockLedger()
        available = ledger.level(product_id, source_warehouse_id, for_update=True)
        if qty > available:
            raise InsufficientStockError(
                f"Cannot transfer {qty}: only {available} in warehouse {source_warehouse_id}"
            )

        ledger.adjust(
            product_id, source_warehouse_id, -qty,
            transaction_type=StockTransactionType.TRANSFER_OUT,
            reason="Transfer", reference=reference,
        )
        out_txn = ledger.last_transaction
        ledger.adjust(
            product_id, destination_warehouse_id, qty,
            transaction_type=StockTransactionType.TRANSFER_IN,
            reason="Transfer", reference=reference,
        )
        in_txn = ledger.last_transaction
        db.session.commit()
        return out_txn, in_txn

    return run_with_retry(_op)


def get_stock_level(product_id: int, warehouse_id: int) -> Decimal:
    return DatabaseStockLedger().level(product_id, warehouse_id)


def get_total_stock(product_id: int) -> Decimal:
    levels = (
        db.session.query(StockLocation.stock_level)
        .filter(StockLocation.product_id == product_id)
        .all()
    )
    return sum((to_decimal(level, "stock_level") for (level,) in levels), ZERO)


def list_stock_levels(product_id: int) -> list[StockLocation]:
    return (
        db.session.query(StockLocation)
        .filter_by(product_id=product_id)
        .order_by(StockLocation.warehouse_id.asc())
        .all()
    )


def list_stock_transactions(
    *,
    product_id: int | None = None,
    warehouse_id: int | None = None,
    reference: str | None = None,
    limit: int | None = None,
) -> list[StockTransaction]:
    """Movement log, newest first."""
    query = db.session.query(StockTransaction)
    if product_id is not None:
        query = query.filter(StockTransaction.product_id == product_id)
    if warehouse_id is not None:
        query = query.filter(StockTransaction.warehouse_id == warehouse_id)
    if reference is not None:
        query = query.filter(StockTransaction.reference == reference)
    query = query.order_by(StockTransaction.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def pick_deduction_warehouse(product_id: int, base_quantity: Decimal) -> int | None:
    """
    Warehouse a sale is taken from: the first (by id) holding enough stock,
    else the first holding any, else the first warehouse. None when no
    warehouse exists.
    """
    locations = (
        db.session.query(StockLocation)
        .filter(StockLocation.product_id == product_id, StockLocation.stock_level > 0)
        .order_by(StockLocation.warehouse_id.asc())
        .all()
    )
    for location in locations:
        if to_decimal(location.stock_level, "stock_level") >= base_quantity:
            return location.warehouse_id
    if locations:
        return locations[0].warehouse_id

    first = db.session.query(Warehouse.id).order_by(Warehouse.id.asc()).first()
    return first[0] if first else None


def outstanding_sales(reference: str) -> dict[tuple[int, int], Decimal]:
    """
    Net stock still taken by a sale document, per (product, warehouse).

    Sums Sale and Sale Reversal movements recorded under reference; a
    positive value is stock that has not been returned yet.
    """
    rows = (
        db.session.query(
            StockTransaction.product_id,
            StockTransaction.warehouse_id,
            func.sum(StockTransaction.quantity_change),
        )
        .filter(
            StockTransaction.reference == reference,
            StockTransaction.transaction_type.in_(
                [StockTransactionType.SALE.value, StockTransactionType.SALE_REVERSAL.value]
            ),
        )
        .group_by(StockTransaction.product_id, StockTransaction.warehouse_id)
        .all()
    )
    outstanding = {}
    for product_id, warehouse_id, net in rows:
        taken = -to_decimal(net or 0, "quantity_change").quantize(QUANTITY_QUANTUM)
        if taken > 0:
            outstanding[(product_id, warehouse_id)] = taken
    return outstanding

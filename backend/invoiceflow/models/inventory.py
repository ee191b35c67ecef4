from __future__ import annotations

from ..extensions import db
from invoiceflow.time_utils import to_utc_z
from .catalog import _money_str


class StockLocation(db.Model):
    """
    On-hand quantity of one product in one warehouse, in base units.

    One row per (product, warehouse); created lazily on first movement.
    Every change goes through services.stock_service and is mirrored by a
    StockTransaction row.
    """
    __tablename__ = "stock_locations"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", name="uq_stock_locations_product_warehouse"),
        db.CheckConstraint("stock_level >= 0", name="ck_stock_locations_level_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    stock_level = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    warehouse = db.relationship("Warehouse")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "stock_level": _money_str(self.stock_level),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockTransaction(db.Model):
    """
    Append-only stock movement log.

    transaction_type: Stock Increase, Stock Decrease, Transfer In,
    Transfer Out, Goods Received, Sale, Sale Reversal.
    quantity_change is signed; new_stock_level is the level after it.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.Index("ix_stock_transactions_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(32), nullable=False)
    quantity_change = db.Column(db.Numeric(14, 3), nullable=False)
    new_stock_level = db.Column(db.Numeric(14, 3), nullable=False)
    reason = db.Column(db.String(64), nullable=True)
    reference = db.Column(db.String(255), nullable=True)  # e.g. "INV-000012", "PO-000003"

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "transaction_type": self.transaction_type,
            "quantity_change": _money_str(self.quantity_change),
            "new_stock_level": _money_str(self.new_stock_level),
            "reason": self.reason,
            "reference": self.reference,
            "occurred_at": to_utc_z(self.occurred_at),
        }

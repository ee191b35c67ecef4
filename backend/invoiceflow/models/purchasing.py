from __future__ import annotations

from ..extensions import db
from invoiceflow.time_utils import to_iso_date, to_utc_z
from .catalog import _money_str


class PurchaseOrder(db.Model):
    """
    Purchase order placed with a supplier.

    LIFECYCLE:
    1. Draft: created, lines editable
    2. Sent: handed to the supplier
    3. Partially Received: some (not all) ordered quantity has arrived
    4. Fully Received: every line received in full (over-receipt allowed)
    5. Cancelled: terminal; only from Draft or Sent

    Status after a receipt is derived from the lines
    (services.receiving.derive_purchase_order_status).
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable PO number (e.g., "PO-000042")
    po_number = db.Column(db.String(64), nullable=False, unique=True)

    supplier_id = db.Column(db.String(64), nullable=False, index=True)
    order_date = db.Column(db.Date, nullable=False)
    expected_delivery_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(32), nullable=False, default="Draft", index=True)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} number={self.po_number!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "po_number": self.po_number,
            "supplier_id": self.supplier_id,
            "order_date": to_iso_date(self.order_date),
            "expected_delivery_date": to_iso_date(self.expected_delivery_date),
            "notes": self.notes,
            "status": self.status,
            "items": [item.to_dict() for item in self.items],
            "subtotal": _money_str(self.subtotal),
            "tax_amount": _money_str(self.tax_amount),
            "total_amount": _money_str(self.total_amount),
            "sent_at": to_utc_z(self.sent_at) if self.sent_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class PurchaseOrderItem(db.Model):
    """
    Ordered line. quantity and quantity_received are in the line's unit
    (unit_kind / unit_type); quantity_received accumulates across receipt
    events and may exceed quantity. Stock is credited in base units.
    """
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity_received >= 0", name="ck_po_items_received_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    quantity_received = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    unit_type = db.Column(db.String(32), nullable=True)
    unit_kind = db.Column(db.String(16), nullable=False, default="base")
    unit_price = db.Column(db.Numeric(14, 4), nullable=False)
    total = db.Column(db.Numeric(14, 2), nullable=False)

    purchase_order = db.relationship("PurchaseOrder", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "quantity": _money_str(self.quantity),
            "quantity_received": _money_str(self.quantity_received),
            "unit_type": self.unit_type,
            "unit_kind": self.unit_kind,
            "unit_price": _money_str(self.unit_price),
            "total": _money_str(self.total),
        }

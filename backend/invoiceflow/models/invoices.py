from __future__ import annotations

from ..extensions import db
from invoiceflow.time_utils import to_iso_date, to_utc_z
from .catalog import _money_str


class Invoice(db.Model):
    """
    Customer invoice.

    INVARIANT: amount_paid + remaining_balance == total_amount.

    - subtotal/tax_amount/vat_amount/total_amount are recomputed from items
      on every save; they are never edited directly.
    - amount_paid is cumulative and only grows while the invoice is live.
    - status is always re-derived (services.invoice_status.derive_status);
      it is stored for listing/filtering only.
    - payment_processing_status is the instruction given on the last save
      (Unpaid / Partially Paid / Fully Paid), kept for the record.
    - payment_history is append-only.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_customer_status", "customer_id", "status"),
        db.CheckConstraint("amount_paid >= 0", name="ck_invoices_amount_paid_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-editable invoice number (e.g., "INV-000123")
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.String(64), nullable=False, index=True)
    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True, index=True)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    vat_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    remaining_balance = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    status = db.Column(db.String(32), nullable=False, default="Pending", index=True)
    payment_processing_status = db.Column(db.String(32), nullable=False, default="Unpaid")

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
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )
    payment_history = db.relationship(
        "PaymentRecord",
        back_populates="invoice",
        cascade="all",
        order_by="(PaymentRecord.payment_date, PaymentRecord.id)",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "issue_date": to_iso_date(self.issue_date),
            "due_date": to_iso_date(self.due_date),
            "items": [item.to_dict() for item in self.items],
            "subtotal": _money_str(self.subtotal),
            "tax_amount": _money_str(self.tax_amount),
            "vat_amount": _money_str(self.vat_amount),
            "total_amount": _money_str(self.total_amount),
            "amount_paid": _money_str(self.amount_paid),
            "remaining_balance": _money_str(self.remaining_balance),
            "status": self.status,
            "payment_processing_status": self.payment_processing_status,
            "payment_history": [record.to_dict() for record in self.payment_history],
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class InvoiceItem(db.Model):
    """
    Invoice line.

    unit_price is excise-inclusive for the chosen unit and excludes
    document-level tax/VAT. total = round2(quantity * unit_price).
    """
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    description = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price = db.Column(db.Numeric(14, 4), nullable=False)
    unit_type = db.Column(db.String(32), nullable=True)
    unit_kind = db.Column(db.String(16), nullable=False, default="base")
    total = db.Column(db.Numeric(14, 2), nullable=False)

    invoice = db.relationship("Invoice", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "description": self.description,
            "quantity": _money_str(self.quantity),
            "unit_price": _money_str(self.unit_price),
            "unit_type": self.unit_type,
            "unit_kind": self.unit_kind,
            "total": _money_str(self.total),
        }


class PaymentRecord(db.Model):
    """
    One payment event against an invoice.

    IMMUTABLE: appended by invoice_service.record_payment and never updated
    or deleted afterwards. amount is the delta paid in this event.
    status is relative to the invoice total at the time of payment.
    """
    __tablename__ = "payment_records"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_payment_records_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    payment_date = db.Column(db.DateTime(timezone=True), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    status = db.Column(db.String(32), nullable=False)  # Full Payment, Partial Payment

    payment_method = db.Column(db.String(32), nullable=True)  # Cash, Bank Transfer
    cash_voucher_number = db.Column(db.String(64), nullable=True)
    bank_name = db.Column(db.String(120), nullable=True)
    bank_account_number = db.Column(db.String(64), nullable=True)
    online_transaction_number = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", back_populates="payment_history")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "payment_date": to_utc_z(self.payment_date),
            "amount": _money_str(self.amount),
            "status": self.status,
            "payment_method": self.payment_method,
            "cash_voucher_number": self.cash_voucher_number,
            "bank_name": self.bank_name,
            "bank_account_number": self.bank_account_number,
            "online_transaction_number": self.online_transaction_number,
        }

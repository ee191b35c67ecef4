from __future__ import annotations

from ..extensions import db
from invoiceflow.time_utils import to_utc_z


def _money_str(value) -> str | None:
    return None if value is None else str(value)


class Product(db.Model):
    """
    Product catalog definition.

    PRICING MODEL:
    - base_price and excise_tax are amounts per ONE base unit (unit_type).
    - pieces_in_base_unit: how many individual pieces one base unit holds,
      e.g. a carton of 24. Always 1 when the base unit is itself "PCS".
    - packaging_unit / items_per_packaging_unit: optional larger sales
      package made of N base units. Set together or not at all.
    - discount_rate: percentage applied last, after VAT.

    Stock levels live in StockLocation, never on the product row.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.CheckConstraint("base_price >= 0", name="ck_products_base_price_non_negative"),
        db.CheckConstraint("excise_tax >= 0", name="ck_products_excise_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)

    unit_type = db.Column(db.String(32), nullable=False, default="PCS")
    pieces_in_base_unit = db.Column(db.Integer, nullable=True)
    packaging_unit = db.Column(db.String(32), nullable=True)
    items_per_packaging_unit = db.Column(db.Integer, nullable=True)

    base_price = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    excise_tax = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    discount_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    cost_price = db.Column(db.Numeric(14, 4), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} unit_type={self.unit_type!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "unit_type": self.unit_type,
            "pieces_in_base_unit": self.pieces_in_base_unit,
            "packaging_unit": self.packaging_unit,
            "items_per_packaging_unit": self.items_per_packaging_unit,
            "base_price": _money_str(self.base_price),
            "excise_tax": _money_str(self.excise_tax),
            "discount_rate": _money_str(self.discount_rate),
            "cost_price": _money_str(self.cost_price),
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Warehouse(db.Model):
    __tablename__ = "warehouses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    location = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "created_at": to_utc_z(self.created_at),
        }

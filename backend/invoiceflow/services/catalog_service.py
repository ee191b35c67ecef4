# Overview: Service-layer operations for products and warehouses; encapsulates catalog validation and database work.

from __future__ import annotations

from decimal import Decimal
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Warehouse
from ..validation import ValidationError, optional_text, require_non_negative, require_text, to_optional_decimal
from .concurrency import lock_for_update, run_with_retry
from .pricing import PriceBreakdown, price_breakdown
from .units import ProductUnitError, normalize_product_units, resolve_unit_kind


class ProductNotFoundError(ValueError):
    pass


class WarehouseNotFoundError(ValueError):
    pass


class CatalogValidationError(ValueError):
    """Raised when product or warehouse input is invalid."""
    pass


UNIT_FIELDS = ("unit_type", "pieces_in_base_unit", "packaging_unit", "items_per_packaging_unit", "discount_rate")
UPDATABLE_FIELDS = {"name", "sku", "base_price", "excise_tax", "cost_price", "is_active", *UNIT_FIELDS}


def default_rates() -> tuple[Decimal, Decimal]:
    """Company-wide (tax, VAT) percentages from app config."""
    tax = require_non_negative(current_app.config.get("TAX_RATE_PERCENT", "10"), "TAX_RATE_PERCENT")
    vat = require_non_negative(current_app.config.get("VAT_RATE_PERCENT", "5"), "VAT_RATE_PERCENT")
    return tax, vat


def _clean_product_fields(fields: dict[str, Any]) -> dict[str, Any]:
    try:
        units = normalize_product_units(**{k: fields.get(k) for k in UNIT_FIELDS})
        cleaned = {
            "name": require_text(fields.get("name"), "name", 255),
            "sku": optional_text(fields.get("sku"), "sku", 64),
            "base_price": require_non_negative(fields.get("base_price"), "base_price"),
            "excise_tax": require_non_negative(fields.get("excise_tax") or 0, "excise_tax"),
            "cost_price": to_optional_decimal(fields.get("cost_price"), "cost_price"),
            "is_active": bool(fields.get("is_active", True)),
        }
    except (ValidationError, ProductUnitError) as exc:
        raise CatalogValidationError(str(exc))
    if cleaned["cost_price"] is not None and cleaned["cost_price"] < 0:
        raise CatalogValidationError("cost_price must be >= 0")
    cleaned.update(units)
    return cleaned


def _ensure_sku_free(sku: str | None, product_id: int | None = None) -> None:
    if not sku:
        return
    existing = db.session.query(Product).filter_by(sku=sku).first()
    if existing and existing.id != product_id:
        raise CatalogValidationError(f"SKU {sku!r} already in use")


def create_product(
    *,
    name: str,
    base_price: Any,
    unit_type: str = "PCS",
    excise_tax: Any = 0,
    pieces_in_base_unit: Any = None,
    packaging_unit: str | None = None,
    items_per_packaging_unit: Any = None,
    discount_rate: Any = 0,
    sku: str | None = None,
    cost_price: Any = None,
) -> Product:
    cleaned = _clean_product_fields(
        {
            "name": name,
            "base_price": base_price,
            "unit_type": unit_type,
            "excise_tax": excise_tax,
            "pieces_in_base_unit": pieces_in_base_unit,
            "packaging_unit": packaging_unit,
            "items_per_packaging_unit": items_per_packaging_unit,
            "discount_rate": discount_rate,
            "sku": sku,
            "cost_price": cost_price,
        }
    )

    def _op() -> Product:
        _ensure_sku_free(cleaned["sku"])
        product = Product(**cleaned)
        db.session.add(product)
        try:
            db.session.commit()
        except IntegrityError:
            raise CatalogValidationError(f"SKU {cleaned['sku']!r} already in use")
        return product

    return run_with_retry(_op)


def update_product(product_id: int, **fields: Any) -> Product:
    """
    Patch a product. Unit fields are re-validated as a whole, so e.g.
    clearing packaging_unit alone fails while items_per_packaging_unit is set.
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise CatalogValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")

    def _op() -> Product:
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise ProductNotFoundError(f"Product {product_id} not found")

        merged = {key: getattr(product, key) for key in UPDATABLE_FIELDS}
        merged.update(fields)
        cleaned = _clean_product_fields(merged)
        _ensure_sku_free(cleaned["sku"], product.id)

        for key, value in cleaned.items():
            setattr(product, key, value)
        db.session.commit()
        return product

    return run_with_retry(_op)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise ProductNotFoundError(f"Product {product_id} not found")
    return product


def list_products(*, active_only: bool = True) -> list[Product]:
    query = db.session.query(Product)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def create_warehouse(name: str, location: str | None = None) -> Warehouse:
    try:
        name = require_text(name, "name", 120)
        location = optional_text(location, "location", 255)
    except ValidationError as exc:
        raise CatalogValidationError(str(exc))
    def _op() -> Warehouse:
        if db.session.query(Warehouse).filter_by(name=name).first():
            raise CatalogValidationError(f"Warehouse {name!r} already exists")

        warehouse = Warehouse(name=name, location=location)
        db.session.add(warehouse)
        try:
            db.session.commit()
        except IntegrityError:
            raise CatalogValidationError(f"Warehouse {name!r} already exists")
        return warehouse

    return run_with_retry(_op)


def get_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if not warehouse:
        raise WarehouseNotFoundError(f"Warehouse {warehouse_id} not found")
    return warehouse


def list_warehouses() -> list[Warehouse]:
    return db.session.query(Warehouse).order_by(Warehouse.id.asc()).all()


def quote_price(product_id: int, unit: Any = None, vat_rate_percent: Any = None) -> PriceBreakdown:
    """
    Final selling price of one unit of a product (unit conversion, excise,
    VAT, then discount). Uses the configured VAT rate when none is given.
    """
    product = get_product(product_id)
    if vat_rate_percent is None:
        _, vat_rate_percent = default_rates()
    return price_breakdown(product, resolve_unit_kind(product, unit), vat_rate_percent)

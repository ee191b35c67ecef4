# Overview: Unit conversion for product pricing and stock quantities (base / piece / packaging).

"""
Unit conversion
===============

A product is priced per ONE base unit (its unit_type: "PCS", "Cartons",
"Kgs", ...). Two other sales units may be derived from it:

    PIECE      one individual piece; base_price / pieces_in_base_unit
    PACKAGING  a larger package of N base units; base_price * items_per_packaging_unit

Free-text unit labels are mapped to a UnitKind exactly once, at the boundary
(unit_kind_for_label). Everything downstream branches on UnitKind only.

Converting to a unit the product is not configured for raises
ConfigurationError. Callers that can live with the base unit use
resolve_unit_price_or_base, which logs and falls back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from ..validation import ValidationError, to_decimal


logger = logging.getLogger(__name__)

PIECE_LABEL = "PCS"


class UnitKind(str, Enum):
    BASE = "base"
    PIECE = "piece"
    PACKAGING = "packaging"


class ConfigurationError(ValueError):
    """Requested a unit conversion the product is not configured for."""
    pass


class FractionalBaseQuantityError(ConfigurationError):
    """A piece quantity does not map to a whole number of base units."""
    pass


class ProductUnitError(ValueError):
    """Product unit fields violate the catalog invariants."""
    pass


@dataclass(frozen=True)
class UnitPrice:
    price: Decimal
    excise: Decimal

    @property
    def total(self) -> Decimal:
        return self.price + self.excise


def coerce_unit_kind(value: UnitKind | str | None) -> UnitKind:
    if value is None:
        return UnitKind.BASE
    if isinstance(value, UnitKind):
        return value
    try:
        return UnitKind(str(value).strip().lower())
    except ValueError:
        raise ConfigurationError(f"Unsupported unit kind: {value!r}")


def _packaging_factor(product) -> Decimal:
    items = getattr(product, "items_per_packaging_unit", None)
    if not getattr(product, "packaging_unit", None) or not items:
        raise ConfigurationError(
            f"Product {getattr(product, 'id', None)} has no packaging unit configured"
        )
    return Decimal(items)


def _piece_factor(product) -> Decimal:
    pieces = getattr(product, "pieces_in_base_unit", None)
    if pieces is None or pieces <= 0:
        raise ConfigurationError(
            f"Product {getattr(product, 'id', None)} has no pieces-per-base-unit configured"
        )
    return Decimal(pieces)


def resolve_unit_price(product, target_unit: UnitKind | str | None) -> UnitPrice:
    """
    Price and excise of one target_unit of product.

    Pure and deterministic. No rounding here; rounding happens when a
    price is turned into money (pricing.round2).
    """
    kind = coerce_unit_kind(target_unit)
    price = to_decimal(product.base_price, "base_price")
    excise = to_decimal(product.excise_tax or 0, "excise_tax")

    if kind is UnitKind.BASE:
        return UnitPrice(price=price, excise=excise)
    if kind is UnitKind.PACKAGING:
        factor = _packaging_factor(product)
        return UnitPrice(price=price * factor, excise=excise * factor)
    factor = _piece_factor(product)
    return UnitPrice(price=price / factor, excise=excise / factor)


def resolve_unit_price_or_base(product, target_unit: UnitKind | str | None) -> tuple[UnitPrice, UnitKind]:
    """resolve_unit_price, falling back to the base unit on ConfigurationError."""
    try:
        kind = coerce_unit_kind(target_unit)
        return resolve_unit_price(product, kind), kind
    except ConfigurationError as exc:
        logger.warning("Falling back to base unit for product %s: %s", getattr(product, "id", None), exc)
        return resolve_unit_price(product, UnitKind.BASE), UnitKind.BASE


def unit_kind_for_label(product, label: str | None) -> UnitKind:
    """
    Map a unit label to a UnitKind for this product.

    Accepts the kind names themselves ("base", "piece", "packaging"), the
    product's own unit_type, its packaging_unit, and "PCS". Matching is
    case-insensitive. The base unit wins when labels collide.
    """
    if label is None or not str(label).strip():
        return UnitKind.BASE
    text = str(label).strip()
    folded = text.casefold()

    for kind in UnitKind:
        if folded == kind.value:
            return kind

    unit_type = (getattr(product, "unit_type", None) or "").casefold()
    packaging = (getattr(product, "packaging_unit", None) or "").casefold()

    if folded == unit_type:
        return UnitKind.BASE
    if packaging and folded == packaging:
        return UnitKind.PACKAGING
    if folded == PIECE_LABEL.casefold():
        return UnitKind.PIECE
    raise ConfigurationError(f"Unknown unit {text!r} for product {getattr(product, 'id', None)}")


def resolve_unit_kind(product, unit: UnitKind | str | None) -> UnitKind:
    """unit_kind_for_label for callers holding a UnitKind or a label; unknown labels fall back to base."""
    if isinstance(unit, UnitKind):
        return unit
    try:
        return unit_kind_for_label(product, unit)
    except ConfigurationError as exc:
        logger.warning("Falling back to base unit for product %s: %s", getattr(product, "id", None), exc)
        return UnitKind.BASE


def unit_label(product, kind: UnitKind | str) -> str:
    kind = coerce_unit_kind(kind)
    if kind is UnitKind.BASE:
        return product.unit_type
    if kind is UnitKind.PIECE:
        return PIECE_LABEL
    if not getattr(product, "packaging_unit", None):
        raise ConfigurationError(f"Product {getattr(product, 'id', None)} has no packaging unit configured")
    return product.packaging_unit


def to_base_quantity(product, quantity: Any, unit: UnitKind | str | None) -> Decimal:
    """
    Convert a sold/moved quantity in `unit` into base units for stock.

    Piece quantities that are not a whole number of base units raise
    FractionalBaseQuantityError (stock is kept in base units only).
    """
    kind = coerce_unit_kind(unit)
    qty = to_decimal(quantity, "quantity")
    if kind is UnitKind.BASE:
        return qty
    if kind is UnitKind.PACKAGING:
        return qty * _packaging_factor(product)

    factor = _piece_factor(product)
    base_qty = qty / factor
    if base_qty != base_qty.to_integral_value():
        raise FractionalBaseQuantityError(
            f"{qty} {PIECE_LABEL} is not a whole number of {product.unit_type} "
            f"({factor} per {product.unit_type})"
        )
    return base_qty


def _optional_positive_int(value: Any, field: str) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ProductUnitError(f"{field} must be a whole number")
    try:
        number = to_decimal(value, field)
    except ValidationError as exc:
        raise ProductUnitError(str(exc))
    if number != number.to_integral_value():
        raise ProductUnitError(f"{field} must be a whole number")
    if number < 1:
        raise ProductUnitError(f"{field} must be >= 1")
    return int(number)


def normalize_product_units(
    *,
    unit_type: str,
    pieces_in_base_unit: Any = None,
    packaging_unit: str | None = None,
    items_per_packaging_unit: Any = None,
    discount_rate: Any = 0,
) -> dict:
    """
    Validate and normalize the unit fields of a product.

    - unit_type is required
    - a "PCS" base unit holds exactly one piece (missing is filled in as 1)
    - pieces_in_base_unit, when set, is a whole number >= 1
    - packaging_unit and items_per_packaging_unit come together
    - 0 <= discount_rate <= 100
    """
    if unit_type is None or not str(unit_type).strip():
        raise ProductUnitError("unit_type is required")
    unit_type = str(unit_type).strip()

    pieces = _optional_positive_int(pieces_in_base_unit, "pieces_in_base_unit")
    if unit_type.upper() == PIECE_LABEL:
        if pieces is None:
            pieces = 1
        elif pieces != 1:
            raise ProductUnitError("A PCS base unit cannot contain sub-pieces (pieces_in_base_unit must be 1)")

    packaging = (packaging_unit or "").strip() or None
    items = _optional_positive_int(items_per_packaging_unit, "items_per_packaging_unit")
    if (packaging is None) != (items is None):
        raise ProductUnitError("packaging_unit and items_per_packaging_unit must be set together")

    try:
        discount = to_decimal(discount_rate if discount_rate is not None else 0, "discount_rate")
    except ValidationError as exc:
        raise ProductUnitError(str(exc))
    if discount < 0 or discount > 100:
        raise ProductUnitError("discount_rate must be between 0 and 100")

    return {
        "unit_type": unit_type,
        "pieces_in_base_unit": pieces,
        "packaging_unit": packaging,
        "items_per_packaging_unit": items,
        "discount_rate": discount,
    }

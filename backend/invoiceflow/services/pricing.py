# Overview: Money arithmetic for documents and unit prices; pure functions of (items, rates).

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping

from ..validation import to_decimal
from .units import UnitKind, coerce_unit_kind, resolve_unit_price, resolve_unit_price_or_base


CENT = Decimal("0.01")
# Unit prices keep four places, matching the stored precision of line prices.
UNIT_PRICE_QUANTUM = Decimal("0.0001")
HUNDRED = Decimal("100")


def round2(value: Any) -> Decimal:
    """Round to cents, half away from zero (2.345 -> 2.35)."""
    if not isinstance(value, Decimal):
        value = to_decimal(value)
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percent_to_rate(percent: Any) -> Decimal:
    """15 -> Decimal('0.15')."""
    return to_decimal(percent, "rate percent") / HUNDRED


def compute_line_total(quantity: Any, unit_price: Any) -> Decimal:
    return round2(to_decimal(quantity, "quantity") * to_decimal(unit_price, "unit_price"))


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    tax_amount: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    line_totals: tuple[Decimal, ...] = ()


def _field(item: Any, name: str):
    if isinstance(item, Mapping):
        return item[name]
    return getattr(item, name)


def compute_document_totals(items: Iterable[Any], tax_rate: Any, vat_rate: Any) -> DocumentTotals:
    """
    Totals for a set of lines.

    items: mappings or objects with quantity and unit_price (unit_price is
    already excise-inclusive). Rates are fractions (0.10), not percentages.

    Tax and VAT are both taken from the same subtotal; they do not compound.
    Inputs are assumed validated (non-negative, finite).
    """
    line_totals = tuple(
        compute_line_total(_field(item, "quantity"), _field(item, "unit_price")) for item in items
    )
    subtotal = sum(line_totals, Decimal("0.00"))
    tax_amount = round2(subtotal * to_decimal(tax_rate, "tax_rate"))
    vat_amount = round2(subtotal * to_decimal(vat_rate, "vat_rate"))
    return DocumentTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        vat_amount=vat_amount,
        total_amount=subtotal + tax_amount + vat_amount,
        line_totals=line_totals,
    )


@dataclass(frozen=True)
class PriceBreakdown:
    """Every step of a final unit price, for display next to the product."""
    unit_kind: UnitKind
    price: Decimal
    excise: Decimal
    price_with_excise: Decimal
    vat_amount: Decimal
    price_with_vat: Decimal
    discount_amount: Decimal
    final_price: Decimal

    def to_dict(self) -> dict:
        return {
            "unit_kind": self.unit_kind.value,
            "price": str(self.price),
            "excise": str(self.excise),
            "price_with_excise": str(self.price_with_excise),
            "vat_amount": str(self.vat_amount),
            "price_with_vat": str(self.price_with_vat),
            "discount_amount": str(self.discount_amount),
            "final_price": str(self.final_price),
        }


def price_breakdown(
    product,
    target_unit: UnitKind | str | None,
    vat_rate_percent: Any,
    *,
    strict: bool = False,
) -> PriceBreakdown:
    """
    Final price of one target_unit of product.

    Order is fixed and changes the visible price if altered:
      1. convert price and excise to the target unit
      2. add excise
      3. apply VAT to (price + excise)
      4. apply discount_rate to the VAT-inclusive price

    Only the final price is rounded. With strict=False an unsupported unit
    falls back to the base unit (unit_kind says which one was used).
    """
    if strict:
        unit_kind = coerce_unit_kind(target_unit)
        unit_price = resolve_unit_price(product, unit_kind)
    else:
        unit_price, unit_kind = resolve_unit_price_or_base(product, target_unit)

    with_excise = unit_price.price + unit_price.excise
    vat_amount = with_excise * percent_to_rate(vat_rate_percent)
    with_vat = with_excise + vat_amount
    discount_amount = with_vat * percent_to_rate(getattr(product, "discount_rate", None) or 0)

    return PriceBreakdown(
        unit_kind=unit_kind,
        price=unit_price.price,
        excise=unit_price.excise,
        price_with_excise=with_excise,
        vat_amount=vat_amount,
        price_with_vat=with_vat,
        discount_amount=discount_amount,
        final_price=round2(with_vat - discount_amount),
    )


def compute_final_unit_price(
    product,
    target_unit: UnitKind | str | None,
    vat_rate_percent: Any,
    *,
    strict: bool = False,
) -> Decimal:
    return price_breakdown(product, target_unit, vat_rate_percent, strict=strict).final_price


def line_unit_price(product, unit: UnitKind | str | None) -> tuple[Decimal, UnitKind]:
    """
    Excise-inclusive price of one unit, used to prefill invoice and PO lines.

    Excludes document-level tax/VAT and the product discount.
    """
    unit_price, kind = resolve_unit_price_or_base(product, unit)
    return unit_price.total.quantize(UNIT_PRICE_QUANTUM, rounding=ROUND_HALF_UP), kind

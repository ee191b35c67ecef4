# Overview: Pytest coverage for document totals and final unit prices.

from decimal import Decimal

import pytest

from invoiceflow.services.pricing import (
    compute_document_totals,
    compute_final_unit_price,
    compute_line_total,
    line_unit_price,
    percent_to_rate,
    price_breakdown,
    round2,
)
from invoiceflow.services.units import ConfigurationError, UnitKind
from conftest import make_product


def test_round2_is_half_up():
    assert round2(Decimal("2.345")) == Decimal("2.35")
    assert round2("2.344") == Decimal("2.34")
    assert round2(0.125) == Decimal("0.13")


def test_percent_to_rate():
    assert percent_to_rate(15) == Decimal("0.15")


def test_line_total_is_rounded_product():
    assert compute_line_total("1.5", "3.333") == Decimal("5.00")


def test_document_totals_tax_and_vat_from_same_subtotal():
    totals = compute_document_totals(
        [
            {"quantity": 2, "unit_price": "10.00"},
            {"quantity": "1.5", "unit_price": "3.333"},
        ],
        tax_rate=Decimal("0.10"),
        vat_rate=Decimal("0.05"),
    )
    assert totals.line_totals == (Decimal("20.00"), Decimal("5.00"))
    assert totals.subtotal == Decimal("25.00")
    assert totals.tax_amount == Decimal("2.50")
    assert totals.vat_amount == Decimal("1.25")
    assert totals.total_amount == Decimal("28.75")


def test_document_totals_empty():
    totals = compute_document_totals([], Decimal("0.10"), Decimal("0.05"))
    assert totals.total_amount == Decimal("0")
    assert totals.line_totals == ()


def test_packaging_final_price_includes_excise_in_vat_base():
    """Scenario: 7.00 + 0.10 excise, case of 12, VAT 15%, no discount."""
    product = make_product(packaging_unit="Case", items_per_packaging_unit=12)
    assert compute_final_unit_price(product, UnitKind.PACKAGING, 15) == Decimal("97.98")


def test_discount_applies_after_vat():
    product = make_product(base_price="100.00", excise_tax="0", discount_rate=10)
    breakdown = price_breakdown(product, UnitKind.BASE, 20)
    # (100 * 1.20) * 0.90, not (100 * 0.90) * 1.20 rounded differently
    assert breakdown.price_with_vat == Decimal("120.00")
    assert breakdown.discount_amount == Decimal("12.00")
    assert breakdown.final_price == Decimal("108.00")


def test_piece_price():
    product = make_product(base_price="24.00", excise_tax="1.20", pieces_in_base_unit=24)
    assert compute_final_unit_price(product, "piece", 0) == Decimal("1.05")


def test_unsupported_unit_falls_back_to_base():
    product = make_product()
    breakdown = price_breakdown(product, UnitKind.PACKAGING, 15)
    assert breakdown.unit_kind is UnitKind.BASE
    assert breakdown.final_price == Decimal("8.17")  # 7.10 * 1.15 = 8.165


def test_strict_unsupported_unit_raises():
    with pytest.raises(ConfigurationError):
        compute_final_unit_price(make_product(), UnitKind.PACKAGING, 15, strict=True)


def test_line_unit_price_is_excise_inclusive_without_vat():
    product = make_product(pieces_in_base_unit=12)
    price, kind = line_unit_price(product, UnitKind.PIECE)
    assert kind is UnitKind.PIECE
    assert price == Decimal("0.5917")  # 7.10 / 12


def test_breakdown_to_dict():
    product = make_product(packaging_unit="Case", items_per_packaging_unit=12)
    data = price_breakdown(product, "packaging", 15).to_dict()
    assert data["unit_kind"] == "packaging"
    assert data["final_price"] == "97.98"

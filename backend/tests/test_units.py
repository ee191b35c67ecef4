# Overview: Pytest coverage for unit conversion of prices and stock quantities.

from decimal import Decimal

import pytest

from invoiceflow.services.units import (
    ConfigurationError,
    FractionalBaseQuantityError,
    ProductUnitError,
    UnitKind,
    normalize_product_units,
    resolve_unit_kind,
    resolve_unit_price,
    resolve_unit_price_or_base,
    to_base_quantity,
    unit_kind_for_label,
    unit_label,
)
from conftest import make_product


class TestResolveUnitPrice:
    def test_base_unit_is_unchanged(self):
        product = make_product()
        result = resolve_unit_price(product, UnitKind.BASE)
        assert result.price == Decimal("7.00")
        assert result.excise == Decimal("0.10")

    def test_packaging_multiplies_price_and_excise(self):
        product = make_product(packaging_unit="Case", items_per_packaging_unit=12)
        result = resolve_unit_price(product, UnitKind.PACKAGING)
        assert result.price == Decimal("84.00")
        assert result.excise == Decimal("1.20")
        assert result.total == Decimal("85.20")

    def test_piece_divides_price_and_excise(self):
        product = make_product(base_price="24.00", excise_tax="1.20", pieces_in_base_unit=24)
        result = resolve_unit_price(product, "piece")
        assert result.price == Decimal("1")
        assert result.excise == Decimal("0.05")

    def test_packaging_without_configuration_raises(self):
        with pytest.raises(ConfigurationError):
            resolve_unit_price(make_product(), UnitKind.PACKAGING)

    def test_piece_without_pieces_raises(self):
        with pytest.raises(ConfigurationError):
            resolve_unit_price(make_product(), UnitKind.PIECE)

    def test_unknown_kind_raises(self):
        with pytest.raises(ConfigurationError):
            resolve_unit_price(make_product(), "pallet")

    def test_is_deterministic(self):
        product = make_product(pieces_in_base_unit=3)
        assert resolve_unit_price(product, "piece") == resolve_unit_price(product, "piece")

    def test_fallback_to_base(self):
        price, kind = resolve_unit_price_or_base(make_product(), UnitKind.PACKAGING)
        assert kind is UnitKind.BASE
        assert price.price == Decimal("7.00")


class TestUnitLabels:
    def test_labels_map_to_kinds(self):
        product = make_product(unit_type="Cartons", packaging_unit="Case", items_per_packaging_unit=10)
        assert unit_kind_for_label(product, "cartons") is UnitKind.BASE
        assert unit_kind_for_label(product, "Case") is UnitKind.PACKAGING
        assert unit_kind_for_label(product, "PCS") is UnitKind.PIECE
        assert unit_kind_for_label(product, None) is UnitKind.BASE
        assert unit_kind_for_label(product, "packaging") is UnitKind.PACKAGING

    def test_pcs_base_unit_is_base_not_piece(self):
        product = make_product(unit_type="PCS", pieces_in_base_unit=1)
        assert unit_kind_for_label(product, "PCS") is UnitKind.BASE

    def test_unknown_label(self):
        product = make_product()
        with pytest.raises(ConfigurationError):
            unit_kind_for_label(product, "Pallet")
        assert resolve_unit_kind(product, "Pallet") is UnitKind.BASE

    def test_unit_label(self):
        product = make_product(packaging_unit="Case", items_per_packaging_unit=10)
        assert unit_label(product, UnitKind.BASE) == "Cartons"
        assert unit_label(product, UnitKind.PIECE) == "PCS"
        assert unit_label(product, UnitKind.PACKAGING) == "Case"


class TestToBaseQuantity:
    def test_packaging_to_base(self):
        product = make_product(packaging_unit="Case", items_per_packaging_unit=10)
        assert to_base_quantity(product, 2, UnitKind.PACKAGING) == Decimal("20")

    def test_whole_pieces_to_base(self):
        product = make_product(pieces_in_base_unit=12)
        assert to_base_quantity(product, 24, UnitKind.PIECE) == Decimal("2")

    def test_fractional_pieces_raise(self):
        product = make_product(pieces_in_base_unit=12)
        with pytest.raises(FractionalBaseQuantityError):
            to_base_quantity(product, 5, UnitKind.PIECE)

    def test_base_quantity_may_be_fractional(self):
        product = make_product(unit_type="Kgs")
        assert to_base_quantity(product, "2.5", UnitKind.BASE) == Decimal("2.5")


class TestNormalizeProductUnits:
    def test_pcs_defaults_to_one_piece(self):
        result = normalize_product_units(unit_type="PCS")
        assert result["pieces_in_base_unit"] == 1

    def test_pcs_rejects_sub_pieces(self):
        with pytest.raises(ProductUnitError):
            normalize_product_units(unit_type="PCS", pieces_in_base_unit=6)

    def test_packaging_fields_come_together(self):
        with pytest.raises(ProductUnitError):
            normalize_product_units(unit_type="Cartons", packaging_unit="Case")
        with pytest.raises(ProductUnitError):
            normalize_product_units(unit_type="Cartons", items_per_packaging_unit=4)

    def test_rejects_bad_counts_and_discount(self):
        with pytest.raises(ProductUnitError):
            normalize_product_units(unit_type="Cartons", pieces_in_base_unit=0)
        with pytest.raises(ProductUnitError):
            normalize_product_units(unit_type="Cartons", pieces_in_base_unit="2.5")
        with pytest.raises(ProductUnitError):
            normalize_product_units(unit_type="Cartons", discount_rate=101)

    def test_valid_product(self):
        result = normalize_product_units(
            unit_type=" Cartons ", pieces_in_base_unit="12",
            packaging_unit="Case", items_per_packaging_unit=10, discount_rate="5",
        )
        assert result == {
            "unit_type": "Cartons",
            "pieces_in_base_unit": 12,
            "packaging_unit": "Case",
            "items_per_packaging_unit": 10,
            "discount_rate": Decimal("5"),
        }

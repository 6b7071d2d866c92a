"""
Unit resolution and conversion tests.

Verifies:
- Base unit resolves with rate 1 and the product's own prices
- Package units fall back to base price x rate unless they carry a price
- Conversion to the base unit is exact; conversion back quantizes to 3 dp
  with ROUND_HALF_UP
- Unknown products and units raise NOT_FOUND errors
"""

from decimal import Decimal

import pytest

from conftest import D
from stockroom.errors import ProductNotFoundError, UnitNotFoundError, ValidationError
from stockroom.services import unit_service


class TestResolveUnit:

    def test_base_unit(self, water):
        res = unit_service.resolve_unit(water.id, "bottle")
        assert res.is_base_unit is True
        assert res.conversion_rate == 1
        assert res.purchase_price == D("0.80")
        assert res.retail_price == D("1.50")

    def test_package_unit_derives_prices(self, water):
        res = unit_service.resolve_unit(water.id, "case")
        assert res.is_base_unit is False
        assert res.conversion_rate == 12
        assert res.purchase_price == D("9.60")
        assert res.retail_price == D("18.00")

    def test_package_unit_own_price_wins(self, cable):
        res = unit_service.resolve_unit(cable.id, "roll")
        assert res.retail_price == D("230")
        assert res.purchase_price == D("120")

    def test_unit_name_is_trimmed(self, water):
        assert unit_service.resolve_unit(water.id, "  case ").unit == "case"

    def test_unknown_unit(self, water):
        with pytest.raises(UnitNotFoundError) as exc:
            unit_service.resolve_unit(water.id, "pallet")
        assert exc.value.code == "NOT_FOUND"

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFoundError):
            unit_service.resolve_unit(99999, "bottle")

    def test_blank_unit(self, water):
        with pytest.raises(ValidationError):
            unit_service.resolve_unit(water.id, "  ")

    def test_to_dict_uses_strings(self, water):
        data = unit_service.resolve_unit(water.id, "case").to_dict()
        assert data["conversion_rate"] == "12.0000"
        assert data["retail_price"] == "18.0000"


class TestConversion:

    def test_to_base(self, water):
        assert unit_service.convert_to_base(water.id, 3, "case") == D(36)

    def test_from_base(self, water):
        assert unit_service.convert_from_base(water.id, 30, "case") == D("2.500")

    def test_from_base_rounds_half_up(self, water):
        # 1 / 12 = 0.08333...
        assert unit_service.convert_from_base(water.id, 1, "case") == D("0.083")
        # 0.0065 / 1 at 3 dp
        assert unit_service.from_base_quantity("0.0065", 1) == D("0.007")

    def test_fractional_rate(self, cable):
        assert unit_service.convert_to_base(cable.id, 3, "half") == D("1.5")
        assert unit_service.convert_from_base(cable.id, "1.5", "half") == D(3)

    @pytest.mark.parametrize("quantity", ["1", "2.5", "0.125", "7.333"])
    def test_round_trip_for_rates_at_least_one(self, water, quantity):
        base = unit_service.convert_to_base(water.id, quantity, "case")
        assert unit_service.convert_from_base(water.id, base, "case") == Decimal(quantity)

    def test_small_rate_is_exact(self, flour):
        base = unit_service.convert_to_base(flour.id, "1.5", "g")
        assert base == D("0.0015")
        assert unit_service.convert_from_base(flour.id, base, "g") == D("1.5")

    @pytest.mark.parametrize("quantity", ["0.001", "1.5", "2.5", "999.999"])
    @pytest.mark.parametrize("rate", ["0.0001", "0.001", "0.0050", "0.5", "0.3333"])
    def test_round_trip_for_rates_below_one(self, quantity, rate):
        base = unit_service.to_base_quantity(D(quantity), D(rate))
        assert unit_service.from_base_quantity(base, D(rate)) == D(quantity)

    def test_unstorable_base_quantity_rejected(self):
        with pytest.raises(ValidationError):
            unit_service.to_base_quantity(D("999999999"), D("999999999"))

    def test_zero_rate_rejected(self):
        with pytest.raises(ValidationError):
            unit_service.from_base_quantity(10, 0)

    def test_available_units_base_first(self, cable):
        assert unit_service.available_units(cable.id) == ["m", "roll", "half"]

"""
Sales order tests.

Verifies:
- Totals: subtotal, discount, rounding, per-line price overrides
- Advisory stock check on create / add item
- Confirmation is all-or-nothing across lines
- The sell / return / over-return walkthrough on a 12-per-case product
"""

import pytest

from conftest import D
from stockroom.errors import (
    CapExceededError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from stockroom.extensions import db
from stockroom.models import InventoryTransaction
from stockroom.services import inventory_service, return_service, sales_service


def _sell(product, quantity, unit, **kwargs):
    return sales_service.create_sales_order(
        items=[{"product_id": product.id, "quantity": quantity, "unit": unit}], **kwargs
    )


# =============================================================================
# CREATE / PRICING
# =============================================================================


class TestCreateSalesOrder:

    def test_defaults_to_retail_price(self, stocked_water):
        order = _sell(stocked_water, 2, "case", customer_name="  Ana ")
        assert order.order_number.startswith("SO")
        assert order.customer_name == "Ana"
        item = order.items[0]
        assert item.unit_price == D("18.00")
        assert item.original_price == D("18.00")
        assert order.subtotal == D("36.00")
        assert order.total_amount == D("36.00")

    def test_short_stock_rejected_at_create(self, stocked_water):
        with pytest.raises(InsufficientStockError):
            _sell(stocked_water, 9, "case")

    def test_lines_of_same_product_are_summed(self, stocked_water):
        with pytest.raises(InsufficientStockError):
            sales_service.create_sales_order(items=[
                {"product_id": stocked_water.id, "quantity": 8, "unit": "case"},
                {"product_id": stocked_water.id, "quantity": 5, "unit": "bottle"},
            ])

    def test_add_item(self, stocked_water):
        order = _sell(stocked_water, 1, "case")
        order = sales_service.add_item_to_order(
            order.id, {"product_id": stocked_water.id, "quantity": 3, "unit": "bottle"}
        )
        assert len(order.items) == 2
        assert order.subtotal == D("22.50")

    def test_add_item_checks_existing_lines(self, stocked_water):
        order = _sell(stocked_water, 8, "case")
        with pytest.raises(InsufficientStockError):
            sales_service.add_item_to_order(
                order.id, {"product_id": stocked_water.id, "quantity": 5, "unit": "bottle"}
            )


class TestDiscountsAndRounding:

    def test_percentage_discount(self, stocked_water):
        order = _sell(stocked_water, 2, "case")
        order = sales_service.apply_discount(order.id, "percentage", 10)
        assert order.discount_amount == D("3.60")
        assert order.total_amount == D("32.40")

    def test_fixed_discount_then_rounding(self, stocked_water):
        order = _sell(stocked_water, 2, "case")
        sales_service.apply_discount(order.id, "fixed", "5")
        order = sales_service.apply_rounding(order.id, "0.99")
        assert order.total_amount == D("30.01")

    def test_discount_replaces_previous(self, stocked_water):
        order = _sell(stocked_water, 2, "case")
        sales_service.apply_discount(order.id, "fixed", "5")
        order = sales_service.apply_discount(order.id, "fixed", "1")
        assert order.discount_amount == D("1.00")
        assert order.total_amount == D("35.00")

    @pytest.mark.parametrize(
        "discount_type,value",
        [("percentage", 101), ("percentage", -1), ("fixed", "36.01"), ("bogus", 1)],
    )
    def test_invalid_discount(self, stocked_water, discount_type, value):
        order = _sell(stocked_water, 2, "case")
        with pytest.raises(ValidationError):
            sales_service.apply_discount(order.id, discount_type, value)

    def test_rounding_cannot_exceed_discounted_subtotal(self, stocked_water):
        order = _sell(stocked_water, 2, "case")
        sales_service.apply_discount(order.id, "fixed", "30")
        with pytest.raises(ValidationError):
            sales_service.apply_rounding(order.id, "6.01")

    def test_adjust_item_price_keeps_original(self, stocked_water):
        order = _sell(stocked_water, 2, "case")
        order = sales_service.adjust_item_price(order.id, 0, "15")
        item = order.items[0]
        assert item.unit_price == D("15")
        assert item.original_price == D("18")
        assert order.total_amount == D("30.00")

    def test_adjust_item_price_bad_index(self, stocked_water):
        order = _sell(stocked_water, 1, "case")
        with pytest.raises(NotFoundError):
            sales_service.adjust_item_price(order.id, 1, "15")


# =============================================================================
# CONFIRM
# =============================================================================


class TestConfirmSalesOrder:

    def test_confirm_decrements(self, stocked_water):
        order = _sell(stocked_water, 3, "case")
        sales_service.confirm_sales_order(order.id)
        assert inventory_service.get_balance(stocked_water.id) == D(64)

    def test_short_order_applies_nothing(self, stocked_water, cable):
        inventory_service.adjust_inventory(
            product_id=cable.id, quantity_change=50, transaction_type="PURCHASE", unit="m"
        )
        order = sales_service.create_sales_order(items=[
            {"product_id": stocked_water.id, "quantity": 1, "unit": "case"},
            {"product_id": cable.id, "quantity": 40, "unit": "m"},
        ])
        # stock moves between creation and confirmation
        inventory_service.adjust_inventory(
            product_id=cable.id, quantity_change=-20, transaction_type="ADJUSTMENT", unit="m"
        )

        with pytest.raises(InsufficientStockError) as exc:
            sales_service.confirm_sales_order(order.id)
        assert exc.value.details["product_id"] == cable.id

        assert db.session.query(InventoryTransaction).filter_by(transaction_type="SALE").count() == 0
        assert inventory_service.get_balance(stocked_water.id) == D(100)
        assert sales_service.get_sales_order(order.id).status == "PENDING"

    def test_confirmed_order_is_frozen(self, stocked_water):
        order = _sell(stocked_water, 1, "case")
        sales_service.confirm_sales_order(order.id)
        with pytest.raises(InvalidStateError):
            sales_service.apply_discount(order.id, "fixed", 1)
        with pytest.raises(InvalidStateError):
            sales_service.delete_sales_order(order.id)
        with pytest.raises(InvalidStateError):
            sales_service.confirm_sales_order(order.id)


# =============================================================================
# WALKTHROUGH
# =============================================================================


class TestSellAndReturnWalkthrough:

    def test_sell_return_and_over_return(self, stocked_water):
        order = _sell(stocked_water, 3, "case")
        sales_service.confirm_sales_order(order.id)
        assert inventory_service.get_balance(stocked_water.id) == D(64)

        ret = return_service.create_return_order(
            original_order_id=order.id,
            order_type="SALES",
            items=[{"product_id": stocked_water.id, "quantity": 1, "unit": "case"}],
        )
        return_service.confirm_return_order(ret.id)
        assert inventory_service.get_balance(stocked_water.id) == D(76)

        with pytest.raises(CapExceededError) as exc:
            return_service.create_return_order(
                original_order_id=order.id,
                order_type="SALES",
                items=[{"product_id": stocked_water.id, "quantity": 3, "unit": "case"}],
            )
        assert exc.value.details["remaining"] == "24.000"
        assert inventory_service.get_balance(stocked_water.id) == D(76)
        assert inventory_service.verify_ledger()["consistent"] is True


class TestSearch:

    def test_search_by_customer_and_status(self, stocked_water):
        a = _sell(stocked_water, 1, "bottle", customer_name="Ana")
        _sell(stocked_water, 1, "bottle", customer_name="Ben")
        sales_service.confirm_sales_order(a.id)

        assert [o.id for o in sales_service.search_sales_orders(customer_name="an")] == [a.id]
        assert [o.id for o in sales_service.search_sales_orders(status="CONFIRMED")] == [a.id]
        assert sales_service.get_sales_order_by_number(a.order_number).id == a.id

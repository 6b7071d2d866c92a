"""
Inventory ledger tests.

Verifies:
- Balance equals the sum of transaction changes after every operation
- Movements that would go negative are rejected and leave no trace
- set_quantity posts exactly one ADJUSTMENT (or none when nothing changes)
- Low-stock listing and ledger verification
"""

from datetime import timedelta

import pytest

from conftest import D
from stockroom.errors import InsufficientStockError, InvalidQuantityError, ValidationError
from stockroom.extensions import db
from stockroom.models import InventoryRecord, InventoryTransaction
from stockroom.services import inventory_service, products_service
from stockroom.time_utils import utcnow


def _transactions(product_id):
    return db.session.query(InventoryTransaction).filter_by(product_id=product_id).all()


# =============================================================================
# ADJUST
# =============================================================================


class TestAdjustInventory:

    def test_new_product_starts_at_zero(self, water):
        assert inventory_service.get_balance(water.id) == 0
        record = db.session.query(InventoryRecord).filter_by(product_id=water.id).one()
        assert record.quantity == 0

    def test_package_unit_is_stored_in_base_units(self, water):
        tx = inventory_service.adjust_inventory(
            product_id=water.id, quantity_change=2, transaction_type="PURCHASE", unit="case"
        )
        assert tx.quantity_change == D(24)
        assert tx.unit == "case"
        assert inventory_service.get_balance(water.id) == D(24)

    def test_balance_matches_ledger(self, water):
        inventory_service.adjust_inventory(
            product_id=water.id, quantity_change="5", transaction_type="PURCHASE", unit="case"
        )
        inventory_service.adjust_inventory(
            product_id=water.id, quantity_change="-7", transaction_type="SALE", unit="bottle"
        )
        inventory_service.adjust_inventory(
            product_id=water.id, quantity_change="0.5", transaction_type="ADJUSTMENT", unit="case"
        )
        total = sum(tx.quantity_change for tx in _transactions(water.id))
        assert inventory_service.get_balance(water.id) == total == D(59)

    def test_negative_result_rejected(self, water):
        inventory_service.adjust_inventory(
            product_id=water.id, quantity_change=10, transaction_type="PURCHASE", unit="bottle"
        )
        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.adjust_inventory(
                product_id=water.id, quantity_change=-1, transaction_type="SALE", unit="case"
            )
        assert exc.value.code == "INSUFFICIENT_STOCK"
        assert exc.value.details["available"] == "10.000"
        assert inventory_service.get_balance(water.id) == D(10)
        assert len(_transactions(water.id)) == 1

    def test_zero_change_rejected(self, water):
        with pytest.raises(InvalidQuantityError):
            inventory_service.adjust_inventory(
                product_id=water.id, quantity_change=0, transaction_type="ADJUSTMENT", unit="bottle"
            )

    def test_unknown_transaction_type(self, water):
        with pytest.raises(ValidationError):
            inventory_service.adjust_inventory(
                product_id=water.id, quantity_change=1, transaction_type="GIFT", unit="bottle"
            )

    def test_reference_and_note_are_kept(self, water):
        tx = inventory_service.adjust_inventory(
            product_id=water.id, quantity_change=1, transaction_type="ADJUSTMENT",
            unit="bottle", reference_id=42, note="found behind shelf",
        )
        assert tx.reference_id == 42
        assert tx.to_dict()["note"] == "found behind shelf"

    @pytest.mark.parametrize("note", [42, ["x"], "n" * 256])
    def test_invalid_note_rejected(self, water, note):
        with pytest.raises(ValidationError):
            inventory_service.adjust_inventory(
                product_id=water.id, quantity_change=1, transaction_type="ADJUSTMENT",
                unit="bottle", note=note,
            )
        assert _transactions(water.id) == []

    @pytest.mark.parametrize("change", ["1000000000", "1e30", "-1e30"])
    def test_oversized_change_rejected(self, water, change):
        with pytest.raises(ValidationError):
            inventory_service.adjust_inventory(
                product_id=water.id, quantity_change=change, transaction_type="PURCHASE", unit="bottle"
            )
        assert _transactions(water.id) == []

    def test_base_quantity_beyond_column_range_rejected(self, water):
        products_service.add_package_unit(water.id, {"name": "pallet", "conversion_rate": "999999999"})
        with pytest.raises(ValidationError):
            inventory_service.adjust_inventory(
                product_id=water.id, quantity_change="999999999", transaction_type="PURCHASE", unit="pallet"
            )
        assert inventory_service.get_balance(water.id) == 0


class TestSubUnitMovements:
    """Package units smaller than the base unit (grams of a kg product)."""

    def test_sale_in_grams_is_exact(self, flour):
        inventory_service.adjust_inventory(
            product_id=flour.id, quantity_change=1, transaction_type="PURCHASE", unit="kg"
        )
        tx = inventory_service.adjust_inventory(
            product_id=flour.id, quantity_change="-1.5", transaction_type="SALE", unit="g"
        )
        assert tx.quantity_change == D("-0.0015")
        assert tx.to_dict()["quantity_change"] == "-0.0015"
        assert inventory_service.get_balance(flour.id) == D("0.9985")
        assert inventory_service.get_available_quantity(flour.id, "g") == D("998.5")
        assert inventory_service.verify_ledger(flour.id)["consistent"] is True

    def test_many_small_sales_add_up(self, flour):
        inventory_service.adjust_inventory(
            product_id=flour.id, quantity_change=1, transaction_type="PURCHASE", unit="kg"
        )
        for _ in range(4):
            inventory_service.adjust_inventory(
                product_id=flour.id, quantity_change="0.25", transaction_type="SALE", unit="g"
            )
        assert inventory_service.get_balance(flour.id) == D("0.999")

    def test_set_quantity_posts_exact_delta(self, flour):
        inventory_service.adjust_inventory(
            product_id=flour.id, quantity_change=1, transaction_type="PURCHASE", unit="kg"
        )
        inventory_service.adjust_inventory(
            product_id=flour.id, quantity_change="-1.5", transaction_type="SALE", unit="g"
        )
        tx = inventory_service.set_quantity(product_id=flour.id, quantity=1)
        assert tx.quantity_change == D("0.0015")
        assert inventory_service.get_balance(flour.id) == D(1)


# =============================================================================
# SET QUANTITY
# =============================================================================


class TestSetQuantity:

    def test_posts_single_adjustment(self, stocked_water):
        tx = inventory_service.set_quantity(product_id=stocked_water.id, quantity="93.5")
        assert tx.transaction_type == "ADJUSTMENT"
        assert tx.quantity_change == D("-6.5")
        assert tx.unit == "bottle"
        assert inventory_service.get_balance(stocked_water.id) == D("93.5")

    def test_no_change_appends_nothing(self, stocked_water):
        before = len(_transactions(stocked_water.id))
        assert inventory_service.set_quantity(product_id=stocked_water.id, quantity=100) is None
        assert len(_transactions(stocked_water.id)) == before

    @pytest.mark.parametrize("quantity", ["-1", "abc", None])
    def test_invalid_target(self, stocked_water, quantity):
        with pytest.raises(InvalidQuantityError):
            inventory_service.set_quantity(product_id=stocked_water.id, quantity=quantity)


# =============================================================================
# AVAILABILITY
# =============================================================================


class TestAvailability:

    def test_check_availability(self, stocked_water):
        assert inventory_service.check_availability(stocked_water.id, 8, "case") is True
        assert inventory_service.check_availability(stocked_water.id, 9, "case") is False

    def test_available_quantity_in_unit(self, stocked_water):
        assert inventory_service.get_available_quantity(stocked_water.id, "case") == D("8.333")

    def test_batch_check_reports_each_item(self, stocked_water, cable):
        results = inventory_service.batch_check_availability([
            {"product_id": stocked_water.id, "quantity": 5, "unit": "case"},
            {"product_id": stocked_water.id, "quantity": 101, "unit": "bottle"},
            {"product_id": cable.id, "quantity": 1, "unit": "pallet"},
        ])
        assert results[0]["available"] is True
        assert results[0]["required"] == "60.000"
        assert results[1]["available"] is False
        assert results[1]["shortage"] == "1.000"
        assert results[2]["available"] is False
        assert "pallet" in results[2]["error"]


# =============================================================================
# LOW STOCK
# =============================================================================


class TestLowStock:

    def test_is_low_stock_rules(self):
        assert inventory_service.is_low_stock(D(24), D(24)) is True
        assert inventory_service.is_low_stock(D(25), D(24)) is False
        assert inventory_service.is_low_stock(D(0), D(0)) is True
        assert inventory_service.is_low_stock(D(1), D(0)) is False

    def test_list_low_stock_sorted_by_deficit(self, water, cable):
        bolts = products_service.create_product({
            "name": "Bolt", "base_unit": "pc", "min_stock_threshold": "500",
        })
        inventory_service.adjust_inventory(
            product_id=water.id, quantity_change=20, transaction_type="PURCHASE", unit="bottle"
        )
        inventory_service.adjust_inventory(
            product_id=cable.id, quantity_change=5, transaction_type="PURCHASE", unit="m"
        )

        rows = inventory_service.list_low_stock()
        names = [r["name"] for r in rows]
        # cable has no threshold and positive stock, so it is not listed
        assert names == ["Bolt", "Mineral Water"]
        assert rows[0]["product_id"] == bolts.id
        assert rows[0]["deficit"] == "500.000"
        assert rows[1]["deficit"] == "4.000"

    def test_out_of_stock_without_threshold_is_listed(self, cable):
        rows = inventory_service.list_low_stock()
        assert [r["product_id"] for r in rows] == [cable.id]
        assert rows[0]["is_low_stock"] is True


# =============================================================================
# HISTORY / VERIFY
# =============================================================================


class TestTransactionsAndVerify:

    def test_list_transactions_filters(self, stocked_water):
        inventory_service.adjust_inventory(
            product_id=stocked_water.id, quantity_change=-2, transaction_type="SALE", unit="bottle"
        )
        all_txs = inventory_service.list_transactions(product_id=stocked_water.id)
        assert [tx.transaction_type for tx in all_txs] == ["SALE", "PURCHASE"]

        sales = inventory_service.list_transactions(transaction_type="SALE")
        assert len(sales) == 1

        future = (utcnow() + timedelta(days=1)).isoformat()
        assert inventory_service.list_transactions(start_date=future) == []
        assert len(inventory_service.list_transactions(limit=1)) == 1

    def test_invalid_date_filter(self, db_session):
        with pytest.raises(ValidationError):
            inventory_service.list_transactions(start_date="yesterday")

    def test_verify_ledger_consistent(self, stocked_water, cable):
        result = inventory_service.verify_ledger()
        assert result == {"checked": 2, "consistent": True, "mismatches": []}

    def test_verify_ledger_detects_tampering(self, stocked_water):
        record = db.session.query(InventoryRecord).filter_by(product_id=stocked_water.id).one()
        record.quantity = D(1)
        db.session.commit()

        result = inventory_service.verify_ledger(stocked_water.id)
        assert result["consistent"] is False
        assert result["mismatches"][0]["record_quantity"] == "1.000"
        assert result["mismatches"][0]["ledger_quantity"] == "100.000"

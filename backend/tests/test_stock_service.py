# Overview: Pytest coverage for availability checks, sale decrements and void restorations.

"""
Stock service tests

Covers:
- Availability: unit/volume/variant, tracking hint fallback, not found, read failure
- reduce_stock: unit, volume, variant, perfume refill, clamping, demo mode,
  scent mixtures, compensation when a later line fails
- restore_stock: round trip, scent mixture skip, volume fallback to quantity,
  compensation when a later line fails
"""

import pytest

from stockline.models import Product, ProductVariant, TRACKING_VOLUME
from stockline.services import stock_service
from stockline.services.stock_service import LineItem, reduce_stock, restore_stock


class TestAvailability:

    def test_unit_product_available(self, unit_product):
        result = stock_service.check_stock_availability(unit_product.id, 10)
        assert result.available is True
        assert result.current_stock == 10
        assert result.message is None

    def test_unit_product_insufficient(self, unit_product):
        result = stock_service.check_stock_availability(unit_product.id, 11)
        assert result.available is False
        assert result.current_stock == 10
        assert result.message == "Insufficient stock for Bar Soap. Available: 10"

    def test_volume_product_uses_ml_amount(self, volume_product):
        assert stock_service.check_stock_availability(volume_product.id, 1, None, 1000).available is True
        assert stock_service.check_stock_availability(volume_product.id, 1, None, 1000.5).available is False

    def test_volume_product_without_ml_amount_compares_quantity(self, volume_product):
        result = stock_service.check_stock_availability(volume_product.id, 2)
        assert result.available is True
        assert result.current_stock == 1000.0

    def test_tracking_hint_used_when_record_has_no_mode(self, db_session, department):
        product = Product(department_id=department.id, name="Loose Oud", tracking_mode=None,
                          unit_stock=1, volume_stock=80.0)
        db_session.add(product)
        db_session.commit()

        by_hint = stock_service.check_stock_availability(product.id, 1, "ml", 50)
        assert by_hint.available is True
        assert by_hint.current_stock == 80.0

        without_hint = stock_service.check_stock_availability(product.id, 1, None, 50)
        assert without_hint.current_stock == 1

    def test_stored_mode_wins_over_hint(self, unit_product):
        result = stock_service.check_stock_availability(unit_product.id, 3, "ml", 500)
        assert result.current_stock == 10
        assert result.available is True

    def test_missing_product_is_declined_not_raised(self, db_session):
        result = stock_service.check_stock_availability(999999, 1)
        assert result.available is False
        assert result.current_stock == 0
        assert result.message == "Product not found"

    def test_read_failure_is_declined_not_raised(self, unit_product, flaky_store):
        flaky_store.fail_on("get", "products")
        result = stock_service.check_stock_availability(unit_product.id, 1, store=flaky_store)
        assert result.available is False
        assert result.current_stock == 0
        assert result.message

    def test_variant_availability(self, variant):
        assert stock_service.check_variant_stock_availability(variant.id, 5).available is True
        short = stock_service.check_variant_stock_availability(variant.id, 6)
        assert short.available is False
        assert short.message == "Insufficient stock for T-Shirt / M. Available: 5"

    def test_missing_variant(self, db_session):
        result = stock_service.check_variant_stock_availability(424242, 1)
        assert result.to_dict() == {"available": False, "current_stock": 0, "message": "Variant not found"}


class TestReduceStock:

    def test_unit_decrement(self, unit_product, department, read_stock):
        result = reduce_stock([LineItem(quantity=3, product_id=unit_product.id)], department.id, False)
        assert result.success is True
        assert read_stock(Product, unit_product.id, "unit_stock") == 7

    def test_unit_decrement_clamps_at_zero(self, unit_product, department, read_stock):
        result = reduce_stock([LineItem(quantity=25, product_id=unit_product.id)], department.id, False)
        assert result.success is True
        assert read_stock(Product, unit_product.id, "unit_stock") == 0

    def test_volume_decrement_uses_ml_amount(self, volume_product, department, read_stock):
        reduce_stock([LineItem(quantity=1, product_id=volume_product.id, ml_amount=30)], department.id, False)
        assert read_stock(Product, volume_product.id, "volume_stock") == 970.0

    def test_volume_product_without_ml_amount_decrements_units(self, volume_product, department, read_stock):
        volume_product.unit_stock = 4
        reduce_stock([LineItem(quantity=1, product_id=volume_product.id)], department.id, False)
        assert read_stock(Product, volume_product.id, "volume_stock") == 1000.0
        assert read_stock(Product, volume_product.id, "unit_stock") == 3

    def test_variant_decrement_leaves_parent_untouched(self, variant, department, read_stock):
        reduce_stock([LineItem(quantity=2, product_id=variant.product_id, variant_id=variant.id)], department.id, False)
        assert read_stock(ProductVariant, variant.id, "stock") == 3
        assert read_stock(Product, variant.product_id, "unit_stock") == 7

    def test_perfume_refill_draws_from_master_pool(self, master_product, volume_product, department, read_stock):
        item = LineItem(quantity=1, ml_amount=50, is_perfume_refill=True, name="Refill: Amber")
        result = reduce_stock([item], department.id, False)
        assert result.success is True
        assert read_stock(Product, master_product.id, "volume_stock") == 450.0
        assert read_stock(Product, volume_product.id, "volume_stock") == 1000.0

    def test_perfume_refill_without_master_fails(self, department, unit_product, read_stock):
        items = [
            LineItem(quantity=2, product_id=unit_product.id),
            LineItem(quantity=1, ml_amount=50, is_perfume_refill=True),
        ]
        result = reduce_stock(items, department.id, False)
        assert result.success is False
        assert result.error == "Master volume product not found"
        # first line was compensated
        assert read_stock(Product, unit_product.id, "unit_stock") == 10

    def test_scent_mixture_and_service_lines_are_skipped(self, unit_product, department, flaky_store):
        items = [
            LineItem(quantity=1, product_id=unit_product.id, is_scent_mixture=True),
            LineItem(quantity=1, name="Gift wrapping"),
        ]
        assert reduce_stock(items, department.id, False, store=flaky_store).success is True
        assert flaky_store.writes == []

    def test_demo_mode_issues_no_writes(self, unit_product, master_product, department, flaky_store, read_stock):
        items = [
            LineItem(quantity=3, product_id=unit_product.id),
            LineItem(quantity=1, ml_amount=50, is_perfume_refill=True),
        ]
        result = reduce_stock(items, department.id, True, store=flaky_store)
        assert result.success is True
        assert result.error is None
        assert flaky_store.calls == []
        assert read_stock(Product, unit_product.id, "unit_stock") == 10

    def test_missing_product_fails(self, department):
        result = reduce_stock([LineItem(quantity=1, product_id=987654)], department.id, False)
        assert result.success is False
        assert result.error == "Product not found"

    def test_failure_compensates_applied_lines(self, unit_product, variant, department, flaky_store, read_stock):
        flaky_store.fail_on("adjust", "product_variants")
        items = [
            LineItem(quantity=4, product_id=unit_product.id),
            LineItem(quantity=1, variant_id=variant.id),
        ]
        result = reduce_stock(items, department.id, False, store=flaky_store)

        assert result.success is False
        assert "simulated adjust failure" in result.error
        assert read_stock(Product, unit_product.id, "unit_stock") == 10
        assert read_stock(ProductVariant, variant.id, "stock") == 5

    def test_compensation_restores_clamped_amount_only(self, unit_product, variant, department, flaky_store, read_stock):
        unit_product.unit_stock = 2
        flaky_store.fail_on("adjust", "product_variants")
        items = [
            LineItem(quantity=5, product_id=unit_product.id),
            LineItem(quantity=1, variant_id=variant.id),
        ]
        assert reduce_stock(items, department.id, False, store=flaky_store).success is False
        assert read_stock(Product, unit_product.id, "unit_stock") == 2

    def test_accepts_plain_dict_lines(self, unit_product, department, read_stock):
        reduce_stock([{"product_id": unit_product.id, "quantity": 2}], department.id, False)
        assert read_stock(Product, unit_product.id, "unit_stock") == 8


class TestRestoreStock:

    def test_unit_round_trip(self, unit_product, department, make_sale, read_stock):
        lines = [{"product_id": unit_product.id, "quantity": 3}]
        assert reduce_stock(lines, department.id, False).success
        assert read_stock(Product, unit_product.id, "unit_stock") == 7

        sale = make_sale(lines)
        assert restore_stock(sale.id).success is True
        assert read_stock(Product, unit_product.id, "unit_stock") == 10

    def test_mixed_round_trip(self, unit_product, volume_product, variant, department, make_sale, read_stock):
        lines = [
            {"product_id": unit_product.id, "quantity": 2},
            {"product_id": volume_product.id, "quantity": 1, "ml_amount": 45.5},
            {"product_id": variant.product_id, "variant_id": variant.id, "quantity": 4},
        ]
        assert reduce_stock(lines, department.id, False).success
        sale = make_sale(lines)
        assert restore_stock(sale.id).success

        assert read_stock(Product, unit_product.id, "unit_stock") == 10
        assert read_stock(Product, volume_product.id, "volume_stock") == 1000.0
        assert read_stock(ProductVariant, variant.id, "stock") == 5
        assert read_stock(Product, variant.product_id, "unit_stock") == 7

    def test_scent_mixture_is_not_restored(self, unit_product, make_sale, read_stock):
        sale = make_sale([{"product_id": unit_product.id, "quantity": 2, "is_scent_mixture": True, "name": "House Blend"}])
        assert restore_stock(sale.id).success is True
        assert read_stock(Product, unit_product.id, "unit_stock") == 10

    def test_volume_restore_falls_back_to_quantity(self, volume_product, make_sale, read_stock):
        sale = make_sale([{"product_id": volume_product.id, "quantity": 3}])
        restore_stock(sale.id)
        assert read_stock(Product, volume_product.id, "volume_stock") == 1003.0

    def test_refill_line_without_product_is_skipped(self, master_product, make_sale, read_stock):
        sale = make_sale([{"quantity": 1, "ml_amount": 50, "is_perfume_refill": True}])
        assert restore_stock(sale.id).success is True
        assert read_stock(Product, master_product.id, "volume_stock") == 500.0

    def test_refill_line_with_product_is_skipped(self, master_product, volume_product, make_sale, flaky_store, read_stock):
        sale = make_sale([{"product_id": volume_product.id, "quantity": 1, "ml_amount": 50, "is_perfume_refill": True}])

        assert restore_stock(sale.id, store=flaky_store).success is True

        assert [call for call in flaky_store.calls if call[0] == "adjust"] == []
        assert read_stock(Product, volume_product.id, "volume_stock") == 1000.0
        assert read_stock(Product, master_product.id, "volume_stock") == 500.0

    def test_unknown_sale_has_nothing_to_restore(self, db_session):
        assert restore_stock(555555).success is True

    def test_failure_compensates_and_reports(self, unit_product, variant, make_sale, flaky_store, read_stock):
        sale = make_sale([
            {"product_id": unit_product.id, "quantity": 2},
            {"variant_id": variant.id, "quantity": 1},
        ])
        flaky_store.fail_on("adjust", "product_variants")

        result = restore_stock(sale.id, store=flaky_store)

        assert result.success is False
        assert result.error
        assert read_stock(Product, unit_product.id, "unit_stock") == 10
        assert read_stock(ProductVariant, variant.id, "stock") == 5


@pytest.mark.parametrize("hint,expected", [
    ("ml", True),
    ("milliliter", True),
    ("volume", True),
    ("unit", False),
    (None, False),
])
def test_tracking_hint_normalization(hint, expected):
    assert stock_service.is_volume_tracked(None, hint) is expected


def test_stored_volume_mode_overrides_unit_hint():
    assert stock_service.is_volume_tracked(TRACKING_VOLUME, "unit") is True

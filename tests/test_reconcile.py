from unittest.mock import MagicMock

from turum_bridge.errors import ShopifyError
from turum_bridge.services.catalog_models import SupplierVariant
from turum_bridge.services.reconcile import (
    VariantReconciler,
    chunked,
    error_index,
    find_shopify_variant,
    is_not_stocked,
)


def make_shopify(location="77"):
    shopify = MagicMock()
    shopify.primary_location_id.return_value = location
    shopify.bulk_update_variants.return_value = []
    shopify.bulk_set_inventory.return_value = []
    return shopify


def reconciler(shopify, margin=20):
    return VariantReconciler(shopify, margin, batch_delay=0.25, sleep=MagicMock())


def inv_entries(n):
    return [{"inventory_item_id": 1000 + i, "location_id": "77", "quantity": i} for i in range(n)]


def test_chunked_sizes():
    assert [len(c) for c in chunked(list(range(250)), 100)] == [100, 100, 50]
    assert [len(c) for c in chunked(list(range(300)), 250)] == [250, 50]
    assert list(chunked([], 100)) == []


def test_variant_batches_split_into_100s_with_delay_between():
    shopify = make_shopify()
    rec = reconciler(shopify)
    entries = [{"id": f"gid://shopify/ProductVariant/{i}", "price": "1.00"} for i in range(250)]
    results = rec.push_variant_batches(9, entries)
    sizes = [len(call.args[1]) for call in shopify.bulk_update_variants.call_args_list]
    assert sizes == [100, 100, 50]
    assert all(r.ok for r in results)
    assert rec._sleep.call_count == 2
    rec._sleep.assert_called_with(0.25)


def test_inventory_batches_split_into_250s():
    shopify = make_shopify()
    results = reconciler(shopify).push_inventory_batches(inv_entries(300))
    sizes = [len(call.args[0]) for call in shopify.bulk_set_inventory.call_args_list]
    assert sizes == [250, 50]
    assert [r.size for r in results] == [250, 50]


def test_failed_variant_batch_does_not_stop_the_next():
    shopify = make_shopify()
    shopify.bulk_update_variants.side_effect = [ShopifyError("boom", 500), [], [{"field": ["x"], "message": "bad"}]]
    entries = [{"id": str(i)} for i in range(250)]
    results = reconciler(shopify).push_variant_batches(9, entries)
    assert [r.ok for r in results] == [False, True, False]
    assert shopify.bulk_update_variants.call_count == 3


def test_not_stocked_error_remediates_only_that_entry():
    shopify = make_shopify()
    shopify.bulk_set_inventory.return_value = [{
        "field": ["input", "quantities", "2", "locationId"],
        "message": "The specified inventory item is not stocked at the location.",
        "code": "ITEM_NOT_STOCKED_AT_LOCATION",
    }]
    entries = inv_entries(5)
    results = reconciler(shopify).push_inventory_batches(entries)

    shopify.activate_inventory.assert_called_once_with(1002, "77")
    shopify.set_inventory_level.assert_called_once_with(1002, "77", 2)
    assert shopify.bulk_set_inventory.call_count == 1
    assert results[0].ok
    assert results[0].remediated == 1


def test_unrelated_errors_still_fail_the_batch_after_fallback():
    shopify = make_shopify()
    shopify.bulk_set_inventory.return_value = [
        {"field": ["input", "quantities", "1", "locationId"], "message": "Item is not stocked at the location."},
        {"field": ["input", "quantities", "3", "quantity"], "message": "Quantity is too large"},
    ]
    results = reconciler(shopify).push_inventory_batches(inv_entries(4))
    shopify.set_inventory_level.assert_called_once_with(1001, "77", 1)
    assert not results[0].ok
    assert results[0].remediated == 1
    assert results[0].errors == ["Quantity is too large"]


def test_single_item_fallback_failure_is_reported():
    shopify = make_shopify()
    shopify.bulk_set_inventory.return_value = [
        {"field": ["input", "quantities", "0", "locationId"], "code": "ITEM_NOT_STOCKED_AT_LOCATION", "message": "x"},
    ]
    shopify.set_inventory_level.side_effect = ShopifyError("nope", 422)
    results = reconciler(shopify).push_inventory_batches(inv_entries(1))
    assert not results[0].ok
    assert results[0].remediated == 0


def test_error_classifiers():
    assert is_not_stocked({"message": "Inventory item is NOT STOCKED at the location"})
    assert is_not_stocked({"code": "item_not_stocked_at_location"})
    assert not is_not_stocked({"message": "Quantity invalid"})
    assert error_index({"field": ["input", "quantities", "12", "locationId"]}) == 12
    assert error_index({"field": ["input", "quantities", 3]}) == 3
    assert error_index({"field": None}) is None


def test_find_shopify_variant_by_option_or_title():
    variants = [{"id": 1, "option1": "41", "title": "41"}, {"id": 2, "option1": None, "title": "42"}]
    assert find_shopify_variant(variants, "42")["id"] == 2
    assert find_shopify_variant(variants, "41")["id"] == 1
    assert find_shopify_variant(variants, " 41") is None


def test_reconcile_builds_price_link_and_stock_entries():
    shopify = make_shopify()
    supplier = [
        SupplierVariant("tv-42", size="8.5", eu_size="42", price=80, stock=3),
        SupplierVariant("tv-44", eu_size="44", price=80, stock=1),
    ]
    existing = [{"id": 501, "option1": "42", "title": "42", "inventory_item_id": 9001}]
    result = reconciler(shopify).reconcile(12, supplier, existing)

    assert result.matched == 1
    assert result.unmatched == ["44"]
    (product_id, entries), _ = shopify.bulk_update_variants.call_args
    assert product_id == 12
    assert entries == [{
        "id": "gid://shopify/ProductVariant/501",
        "price": "100.00",
        "metafields": [{"namespace": "turum", "key": "variant_id", "value": "tv-42",
                        "type": "single_line_text_field"}],
    }]
    shopify.bulk_set_inventory.assert_called_once_with(
        [{"inventory_item_id": 9001, "location_id": "77", "quantity": 3}])
    shopify.activate_inventory.assert_not_called()


def test_new_variants_are_activated_before_inventory_batch():
    shopify = make_shopify()
    calls = []
    shopify.activate_inventory.side_effect = lambda *a: calls.append("activate")
    shopify.bulk_set_inventory.side_effect = lambda *a: calls.append("inventory") or []
    shopify.bulk_update_variants.side_effect = lambda *a: calls.append("variants") or []
    existing = [{"id": 501, "option1": "42", "inventory_item_id": 9001}]
    reconciler(shopify).reconcile(12, [SupplierVariant("tv-42", eu_size="42", price=10, stock=2)], existing,
                                  is_new=True)
    assert calls == ["variants", "activate", "inventory"]


def test_location_is_looked_up_once_per_reconciler():
    shopify = make_shopify()
    rec = reconciler(shopify)
    existing = [{"id": 501, "option1": "42", "inventory_item_id": 9001}]
    rec.reconcile(1, [SupplierVariant("a", eu_size="42")], existing)
    rec.reconcile(2, [SupplierVariant("b", eu_size="42")], existing)
    assert shopify.primary_location_id.call_count == 1

# turum_bridge/services/reconcile.py
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..clients.shopify import LINK_KEY, LINK_NAMESPACE, to_gid
from ..config import INVENTORY_BATCH_SIZE, SYNC_BATCH_DELAY_SEC, VARIANT_BATCH_SIZE
from ..errors import APIError, TransientAPIError
from ..utils.logger import debug, info, warn, error
from .catalog_models import SupplierVariant
from .pricing import final_price, size_option

NOT_STOCKED_CODE = "ITEM_NOT_STOCKED_AT_LOCATION"


def chunked(items: list, size: int) -> Iterable[list]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def is_not_stocked(user_error: dict) -> bool:
    if (user_error.get("code") or "").upper() == NOT_STOCKED_CODE:
        return True
    return "not stocked" in (user_error.get("message") or "").lower()


def error_index(user_error: dict) -> Optional[int]:
    """Position of the offending entry, taken from the numeric segment of the error's `field` path."""
    for part in user_error.get("field") or []:
        if isinstance(part, int) or (isinstance(part, str) and part.isdigit()):
            return int(part)
    return None


def _fmt(errors: list[dict]) -> str:
    return "; ".join(f"{e.get('field')}: {e.get('message')}" for e in errors)


@dataclass
class BatchResult:
    kind: str
    number: int
    size: int
    ok: bool
    errors: list[str] = field(default_factory=list)
    remediated: int = 0


@dataclass
class ReconcileResult:
    matched: int = 0
    unmatched: list[str] = field(default_factory=list)
    batches: list[BatchResult] = field(default_factory=list)

    @property
    def failed_batches(self) -> list[BatchResult]:
        return [b for b in self.batches if not b.ok]


class VariantReconciler:
    """
    Push Turum price, stock and link data onto existing Shopify variants.

    Price and link go through productVariantsBulkUpdate, stock through
    inventorySetQuantities; both are chunked to Shopify's per-call limits.
    """

    def __init__(self, shopify, margin_pct: float, batch_delay: float = SYNC_BATCH_DELAY_SEC,
                 variant_batch_size: int = VARIANT_BATCH_SIZE, inventory_batch_size: int = INVENTORY_BATCH_SIZE,
                 sleep=time.sleep):
        self.shopify = shopify
        self.margin_pct = margin_pct
        self.batch_delay = batch_delay
        self.variant_batch_size = variant_batch_size
        self.inventory_batch_size = inventory_batch_size
        self._sleep = sleep
        self._location_id: Optional[str] = None

    @property
    def location_id(self) -> Optional[str]:
        if self._location_id is None:
            self._location_id = self.shopify.primary_location_id()
        return self._location_id

    # -----------------------------------------------------
    # entry point
    # -----------------------------------------------------

    def reconcile(self, product_id, supplier_variants: list[SupplierVariant], shopify_variants: list[dict],
                  is_new: bool = False) -> ReconcileResult:
        tag = "[NEW]" if is_new else "[UPDATE]"
        result = ReconcileResult()
        location_id = self.location_id
        variant_entries, inventory_entries = [], []

        for sv in supplier_variants:
            size = size_option(sv)
            match = find_shopify_variant(shopify_variants, size)
            if not match:
                debug(f"[catalog] {tag} product {product_id}: no Shopify variant for size {size!r}, skipped")
                result.unmatched.append(size)
                continue
            result.matched += 1
            price = final_price(sv.price, self.margin_pct)
            variant_entries.append({
                "id": to_gid("ProductVariant", match["id"]),
                "price": str(price),
                "metafields": [{
                    "namespace": LINK_NAMESPACE,
                    "key": LINK_KEY,
                    "value": sv.variant_id,
                    "type": "single_line_text_field",
                }],
            })
            if location_id and match.get("inventory_item_id"):
                inventory_entries.append({
                    "inventory_item_id": match["inventory_item_id"],
                    "location_id": location_id,
                    "quantity": sv.stock,
                })
            debug(f"[catalog] {tag} size {size}: price {price} (cost {sv.price}) stock {sv.stock} -> {sv.variant_id}")

        if not location_id:
            warn(f"[catalog] no Shopify location, stock not synced for product {product_id}")

        result.batches.extend(self.push_variant_batches(product_id, variant_entries))
        if is_new and inventory_entries:
            self.activate(inventory_entries)
        result.batches.extend(self.push_inventory_batches(inventory_entries))
        return result

    # -----------------------------------------------------
    # batches
    # -----------------------------------------------------

    def push_variant_batches(self, product_id, entries: list[dict]) -> list[BatchResult]:
        results = []
        for n, chunk in enumerate(chunked(entries, self.variant_batch_size), start=1):
            if n > 1:
                self._sleep(self.batch_delay)
            try:
                errs = self.shopify.bulk_update_variants(product_id, chunk)
            except (APIError, TransientAPIError) as e:
                error(f"[catalog] variant batch {n} ({len(chunk)}) for product {product_id} failed: {e}")
                results.append(BatchResult("variants", n, len(chunk), False, [str(e)]))
                continue
            if errs:
                error(f"[catalog] variant batch {n} ({len(chunk)}) for product {product_id} errors: {_fmt(errs)}")
                results.append(BatchResult("variants", n, len(chunk), False, [e.get("message", "") for e in errs]))
            else:
                info(f"[catalog] variant batch {n} ({len(chunk)}) for product {product_id} ok")
                results.append(BatchResult("variants", n, len(chunk), True))
        return results

    def push_inventory_batches(self, entries: list[dict]) -> list[BatchResult]:
        results = []
        for n, chunk in enumerate(chunked(entries, self.inventory_batch_size), start=1):
            if n > 1:
                self._sleep(self.batch_delay)
            try:
                errs = self.shopify.bulk_set_inventory(chunk)
            except (APIError, TransientAPIError) as e:
                error(f"[inventory] batch {n} ({len(chunk)}) failed: {e}")
                results.append(BatchResult("inventory", n, len(chunk), False, [str(e)]))
                continue
            results.append(self._settle_inventory_batch(n, chunk, errs))
        return results

    def _settle_inventory_batch(self, n: int, chunk: list[dict], errs: list[dict]) -> BatchResult:
        if not errs:
            info(f"[inventory] batch {n} ({len(chunk)}) ok")
            return BatchResult("inventory", n, len(chunk), True)

        stranded, remaining = [], []
        for e in errs:
            idx = error_index(e)
            if is_not_stocked(e) and idx is not None and 0 <= idx < len(chunk):
                stranded.append(chunk[idx])
            else:
                remaining.append(e.get("message") or str(e))

        fixed = 0
        if stranded:
            warn(f"[inventory] batch {n}: {len(stranded)} item(s) not stocked at location, activating and setting one by one")
            fixed, failures = self.set_individually(stranded)
            remaining.extend(failures)

        if remaining:
            error(f"[inventory] batch {n} ({len(chunk)}) errors: {'; '.join(remaining)}")
            return BatchResult("inventory", n, len(chunk), False, remaining, remediated=fixed)
        info(f"[inventory] batch {n} ({len(chunk)}) ok after remediating {fixed} item(s)")
        return BatchResult("inventory", n, len(chunk), True, remediated=fixed)

    # -----------------------------------------------------
    # activation & single-item fallback
    # -----------------------------------------------------

    def activate(self, entries: list[dict]):
        for e in entries:
            try:
                self.shopify.activate_inventory(e["inventory_item_id"], e["location_id"])
            except (APIError, TransientAPIError) as ex:
                warn(f"[inventory] activate {e['inventory_item_id']} at {e['location_id']} failed: {ex}")

    def set_individually(self, entries: list[dict]) -> tuple[int, list[str]]:
        fixed, failures = 0, []
        self.activate(entries)
        for e in entries:
            try:
                self.shopify.set_inventory_level(e["inventory_item_id"], e["location_id"], e["quantity"])
                fixed += 1
            except (APIError, TransientAPIError) as ex:
                failures.append(f"item {e['inventory_item_id']}: {ex}")
        return fixed, failures


def find_shopify_variant(shopify_variants: list[dict], size: str) -> Optional[dict]:
    for v in shopify_variants:
        if (v.get("option1") or "") == size or (v.get("title") or "") == size:
            return v
    return None

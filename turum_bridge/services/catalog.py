# turum_bridge/services/catalog.py
import time
from dataclasses import dataclass
from typing import Optional

from ..config import SYNC_BATCH_DELAY_SEC, TURUM
from ..errors import APIError, ShopifyError, TransientAPIError
from ..utils.logger import info, warn, error
from .catalog_models import SupplierProduct
from .pricing import final_price, size_option
from .reconcile import ReconcileResult, VariantReconciler
from .stale import StaleProductDrafter

DEFAULT_VENDOR = "Turum"
DEFAULT_PRODUCT_TYPE = "Shoes"


@dataclass
class SyncReport:
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    failed_batches: int = 0
    drafted: int = 0
    feed_ok: bool = True


class CatalogSynchronizer:
    """
    Mirror the Turum catalog onto Shopify: create missing products, reprice and
    restock existing ones, then draft vendor products Turum no longer lists.
    """

    def __init__(self, shopify, turum, margin_pct: float = TURUM["margin_pct"], vendor: str = TURUM["vendor"],
                 drafter: Optional[StaleProductDrafter] = None, reconciler: Optional[VariantReconciler] = None,
                 batch_delay: float = SYNC_BATCH_DELAY_SEC, sleep=time.sleep):
        self.shopify = shopify
        self.turum = turum
        self.margin_pct = margin_pct
        self.drafter = drafter or StaleProductDrafter(shopify, vendor)
        self.reconciler = reconciler or VariantReconciler(shopify, margin_pct, batch_delay=batch_delay, sleep=sleep)

    def run(self) -> SyncReport:
        report = SyncReport()
        info("[catalog] starting product sync")
        try:
            items = self.turum.get_products_full_list()
        except (APIError, TransientAPIError) as e:
            error(f"[catalog] failed to fetch products from Turum: {e}")
            report.feed_ok = False
            return report

        if not items:
            # an empty feed would draft the whole vendor catalog
            warn("[catalog] Turum returned no products, skipping sync and stale drafting")
            report.feed_ok = False
            return report

        seen: set[str] = set()
        for raw in items:
            product = SupplierProduct.from_payload(raw) if isinstance(raw, dict) else SupplierProduct(sku=None)
            if not product.sku:
                report.skipped += 1
                continue
            seen.add(product.sku)
            report.processed += 1
            try:
                created, result = self.sync_product(product)
            except Exception as e:
                error(f"[catalog] SKU {product.sku} failed: {e}")
                report.failed += 1
                continue
            if created:
                report.created += 1
            elif result is not None:
                report.updated += 1
            if result is not None:
                report.failed_batches += len(result.failed_batches)

        info("[catalog] checking for stale products to draft")
        report.drafted = self.drafter.draft_stale(seen)
        info(f"[catalog] sync complete: {report}")
        return report

    def sync_product(self, product: SupplierProduct) -> tuple[bool, Optional[ReconcileResult]]:
        """Returns (created, reconcile result). The result is None when nothing could be reconciled."""
        info(f"[catalog] processing SKU {product.sku}")
        existing = self.shopify.find_product_by_sku(product.sku)
        if existing:
            pid = existing["product_id"]
            # every size variant has to be reconciled, not just the one the SKU search hit
            variants = self.shopify.get_product_variants(pid)
            info(f"[catalog] [UPDATE] SKU {product.sku} -> product {pid}, {len(variants)} variant(s)")
            return False, self.reconciler.reconcile(pid, product.variants, variants, is_new=False)

        created = self.create_product(product)
        if not created:
            warn(f"[catalog] [NEW] SKU {product.sku}: Shopify returned no product")
            return False, None
        info(f"[catalog] [NEW] SKU {product.sku} created as product {created['id']}")
        return True, self.reconciler.reconcile(created["id"], product.variants, created.get("variants") or [],
                                               is_new=True)

    def build_product_payload(self, product: SupplierProduct) -> dict:
        variants = [{
            "option1": size_option(v),
            "price": str(final_price(v.price, self.margin_pct)),
            "sku": product.sku,
            "inventory_management": "shopify",
        } for v in product.variants]
        return {"product": {
            "title": product.name or product.sku,
            "body_html": product.description or "",
            "vendor": product.brand or DEFAULT_VENDOR,
            "product_type": product.category or DEFAULT_PRODUCT_TYPE,
            "options": [{"name": "Size"}],
            "variants": variants,
            "images": [{"src": src} for src in product.images],
        }}

    def create_product(self, product: SupplierProduct) -> Optional[dict]:
        payload = self.build_product_payload(product)
        try:
            return self.shopify.create_product(payload)
        except ShopifyError as e:
            if not (e.is_invalid_image() and payload["product"]["images"]):
                raise
            warn(f"[catalog] SKU {product.sku}: Shopify rejected image URLs, retrying without images")
            payload["product"]["images"] = []
            return self.shopify.create_product(payload)

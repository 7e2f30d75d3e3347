# turum_bridge/services/resolver.py
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..db.models import ProductVariantMap
from ..errors import APIError, TransientAPIError
from ..utils.logger import debug, info, warn
from .catalog_models import SupplierProduct
from .pricing import normalize_size

SOURCE_METAFIELD = "metafield"
SOURCE_CACHE = "cache"
SOURCE_NAME_MATCH = "name_match"


@dataclass
class Resolution:
    variant_id: Optional[str]
    source: Optional[str] = None
    reason: Optional[str] = None
    product: Optional[SupplierProduct] = None

    @property
    def matched(self) -> bool:
        return bool(self.variant_id)


class VariantResolver:
    """
    Map a Shopify line item to a Turum variant id.

    Resolution order:
      1) `turum.variant_id` metafield on the Shopify variant (written by the catalog sync)
      2) local ProductVariantMap cache
      3) fetch the Turum product by SKU and compare size labels
    """

    def __init__(self, shopify, turum, db=None):
        self.shopify = shopify
        self.turum = turum
        self.db = db
        self._products: dict[str, Optional[SupplierProduct]] = {}

    def supplier_product(self, sku: str, fresh: bool = False) -> Optional[SupplierProduct]:
        if fresh or sku not in self._products:
            raw = self.turum.get_product(sku)
            self._products[sku] = SupplierProduct.from_payload(raw) if raw else None
        return self._products[sku]

    def resolve(self, line_item: dict) -> Resolution:
        sku = (line_item.get("sku") or "").strip()
        size = line_item.get("variant_title") or ""
        shopify_variant_id = line_item.get("variant_id")

        if not sku:
            return Resolution(None, reason=f"Item {line_item.get('id')} has no SKU.")

        if shopify_variant_id:
            linked = self._from_metafield(shopify_variant_id)
            if linked:
                info(f"[resolver] metafield match {shopify_variant_id} -> {linked}")
                return Resolution(linked, SOURCE_METAFIELD)

        cached = self._from_cache(sku, size)
        if cached:
            debug(f"[resolver] cache match {sku}/{size!r} -> {cached}")
            return Resolution(cached, SOURCE_CACHE)

        warn(f"[resolver] no link for variant {shopify_variant_id}, falling back to name matching")
        product = self.supplier_product(sku)
        if not product or not product.variants:
            return Resolution(None, reason=f"No matching Turum Variant found for SKU {sku} / Size '{size}'",
                              product=product)

        match = match_by_size(product, size)
        if not match:
            return Resolution(None, reason=f"No matching Turum Variant found for SKU {sku} / Size '{size}'",
                              product=product)

        info(f"[resolver] name match {sku}/{size!r} -> {match}")
        self._remember(sku, size, match)
        return Resolution(match, SOURCE_NAME_MATCH, product=product)

    def _from_metafield(self, shopify_variant_id) -> Optional[str]:
        try:
            value = self.shopify.get_variant_metafield(shopify_variant_id)
        except (APIError, TransientAPIError) as e:
            warn(f"[resolver] metafield lookup failed for {shopify_variant_id}: {e}")
            return None
        return str(value).strip() if value else None

    def _from_cache(self, sku: str, size: str) -> Optional[str]:
        if self.db is None:
            return None
        row = self.db.execute(
            select(ProductVariantMap).where(
                ProductVariantMap.shopify_sku == sku,
                ProductVariantMap.shopify_size == (normalize_size(size) or None),
            )
        ).scalar_one_or_none()
        return row.turum_variant_id if row else None

    def _remember(self, sku: str, size: str, variant_id: str):
        if self.db is None:
            return
        key = normalize_size(size) or None
        try:
            row = self.db.execute(
                select(ProductVariantMap).where(
                    ProductVariantMap.shopify_sku == sku,
                    ProductVariantMap.shopify_size == key,
                )
            ).scalar_one_or_none()
            if row:
                row.turum_variant_id = variant_id
            else:
                self.db.add(ProductVariantMap(shopify_sku=sku, shopify_size=key,
                                              turum_variant_id=variant_id, turum_sku=sku))
            self.db.commit()
        except IntegrityError:
            # another worker cached the same pair first
            self.db.rollback()


def match_by_size(product: SupplierProduct, size_label: Optional[str]) -> Optional[str]:
    """First Turum variant whose size equals `size_label`, ignoring case and outer whitespace."""
    wanted = normalize_size(size_label)
    if not wanted:
        # simple product: Shopify sends no variant title
        return product.variants[0].variant_id if product.variants else None
    for v in product.variants:
        if normalize_size(v.size_label) == wanted:
            return v.variant_id
    return None

# turum_bridge/services/stale.py
from ..errors import APIError, TransientAPIError
from ..utils.logger import info, warn, error

PAGE_SIZE = 50


def product_skus(node: dict) -> list[str]:
    edges = ((node.get("variants") or {}).get("edges")) or []
    return [e["node"]["sku"].strip() for e in edges if (e.get("node") or {}).get("sku") and e["node"]["sku"].strip()]


class StaleProductDrafter:
    """Draft active vendor products on Shopify whose SKUs have all vanished from the Turum feed."""

    def __init__(self, shopify, vendor: str, page_size: int = PAGE_SIZE):
        self.shopify = shopify
        self.vendor = vendor
        self.page_size = page_size

    def query(self) -> str:
        return f"vendor:'{self.vendor}' AND status:active"

    def draft_stale(self, active_skus) -> int:
        active = {str(s) for s in active_skus}
        drafted = 0
        try:
            for node in self.shopify.iter_products(self.query(), page_size=self.page_size):
                skus = product_skus(node)
                # no SKU data yet (product mid-creation): leave it alone
                if not skus or any(s in active for s in skus):
                    continue
                pid = node.get("legacyResourceId") or str(node.get("id", "")).split("/")[-1]
                try:
                    self.shopify.set_product_status(pid, "draft")
                except (APIError, TransientAPIError) as e:
                    warn(f"[stale] failed to draft product {pid} ({node.get('title')}): {e}")
                    continue
                drafted += 1
                info(f"[stale] drafted product {pid} ({node.get('title')}), SKUs {skus} not in Turum feed")
        except (APIError, TransientAPIError) as e:
            error(f"[stale] product listing aborted after {drafted} draft(s): {e}")
        return drafted

    def draft_if_missing(self, sku: str, turum) -> bool:
        """Single-SKU variant of the pass: draft the Shopify product when Turum no longer has the SKU."""
        found = self.shopify.find_product_by_sku(sku)
        if not found:
            info(f"[stale] SKU {sku} not on Shopify, nothing to draft")
            return False
        if turum.get_product(sku):
            info(f"[stale] SKU {sku} still active in Turum, not drafting")
            return False
        self.shopify.set_product_status(found["product_id"], "draft")
        info(f"[stale] SKU {sku} missing from Turum, drafted product {found['product_id']}")
        return True

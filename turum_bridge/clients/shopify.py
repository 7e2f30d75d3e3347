# turum_bridge/clients/shopify.py
from typing import Optional

import requests
from tenacity import retry, stop_after_attempt, wait_fixed, retry_if_exception_type

from ..config import API_VERSION
from ..errors import ShopifyError, TransientAPIError
from ..utils.logger import info, warn, error

TRANSIENT_STATUSES = (409, 429, 500, 502, 503, 504)

LINK_NAMESPACE = "turum"
LINK_KEY = "variant_id"


def admin_base(domain: str) -> str:
    return f"https://{domain}/admin/api/{API_VERSION}"


def rest_headers(token: str) -> dict:
    return {"Content-Type": "application/json", "X-Shopify-Access-Token": token}


def to_gid(kind: str, legacy_id) -> str:
    s = str(legacy_id)
    if s.startswith("gid://"):
        return s
    return f"gid://shopify/{kind}/{s}"


def from_gid(gid) -> Optional[str]:
    if gid is None or gid == "":
        return None
    return str(gid).split("/")[-1]


# =========================================================
# GraphQL documents
# =========================================================

FIND_BY_SKU = """
query($q:String!) {
  productVariants(first: 10, query: $q) {
    edges {
      node {
        id
        sku
        inventoryItem { id }
        product { id legacyResourceId handle title }
      }
    }
  }
}
"""

VARIANTS_BULK_UPDATE = """
mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    productVariants { id price }
    userErrors { field message }
  }
}
"""

INVENTORY_SET_QUANTITIES = """
mutation inventorySetQuantities($input: InventorySetQuantitiesInput!) {
  inventorySetQuantities(input: $input) {
    inventoryAdjustmentGroup { id }
    userErrors { field message code }
  }
}
"""

PRODUCTS_BY_QUERY = """
query($q:String!, $first:Int!, $after:String) {
  products(first: $first, after: $after, query: $q) {
    pageInfo { hasNextPage endCursor }
    edges {
      node {
        id
        legacyResourceId
        title
        status
        variants(first: 10) { edges { node { sku } } }
      }
    }
  }
}
"""


class ShopifyClient:
    """Thin wrapper over the Shopify Admin REST and GraphQL APIs for one store."""

    def __init__(self, domain: str, token: str, location_id: Optional[str] = None, session=None):
        self.domain = domain
        self.token = token
        self.location_id = location_id
        self.http = session or requests.Session()
        self._primary_location_id: Optional[str] = None

    # -----------------------------------------------------
    # transport
    # -----------------------------------------------------

    @retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_fixed(2),
        retry=retry_if_exception_type(TransientAPIError),
    )
    def _send(self, method: str, path: str, timeout: int = 30, **kwargs) -> requests.Response:
        url = path if path.startswith("https://") else f"{admin_base(self.domain)}{path}"
        try:
            r = self.http.request(method, url, headers=rest_headers(self.token), timeout=timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientAPIError(f"{method} {path}: {e}") from e
        if r.status_code in TRANSIENT_STATUSES:
            raise TransientAPIError(f"{method} {path} {r.status_code}: {r.text}")
        return r

    def _rest(self, method: str, path: str, ok=(200, 201), timeout: int = 30, **kwargs) -> dict:
        r = self._send(method, path, timeout=timeout, **kwargs)
        if r.status_code not in ok:
            raise ShopifyError(f"{method} {path} failed {r.status_code}: {r.text}", r.status_code, r.text)
        if not r.content:
            return {}
        return r.json()

    def graphql(self, query: str, variables=None) -> dict:
        resp = self._rest("POST", "/graphql.json", json={"query": query, "variables": variables or {}})
        if resp.get("errors"):
            raise ShopifyError(f"GraphQL errors: {resp['errors']}", 200, str(resp["errors"]))
        return resp.get("data") or {}

    # -----------------------------------------------------
    # products & variants
    # -----------------------------------------------------

    def find_product_by_sku(self, sku: str) -> Optional[dict]:
        data = self.graphql(FIND_BY_SKU, {"q": f"sku:{sku}"})
        edges = (data.get("productVariants") or {}).get("edges") or []
        # search is fuzzy, insist on exact SKU
        node = next((e["node"] for e in edges if (e.get("node") or {}).get("sku") == sku), None)
        if node is None:
            return None
        return {
            "product_id": node["product"].get("legacyResourceId") or from_gid(node["product"]["id"]),
            "variant_id": from_gid(node["id"]),
            "inventory_item_id": from_gid((node.get("inventoryItem") or {}).get("id")),
            "title": node["product"].get("title"),
        }

    def get_product_variants(self, product_id) -> list[dict]:
        return self._rest("GET", f"/products/{product_id}/variants.json", params={"limit": 250}).get("variants", [])

    def create_product(self, payload: dict) -> Optional[dict]:
        return self._rest("POST", "/products.json", json=payload, timeout=40).get("product")

    def update_product(self, product_id, payload: dict) -> Optional[dict]:
        return self._rest("PUT", f"/products/{product_id}.json", json=payload, timeout=40).get("product")

    def set_product_status(self, product_id, status: str) -> Optional[dict]:
        return self.update_product(product_id, {"product": {"id": int(product_id), "status": status}})

    def update_variant(self, variant_id, data: dict) -> Optional[dict]:
        return self._rest("PUT", f"/variants/{variant_id}.json", json={"variant": {"id": int(variant_id), **data}}).get("variant")

    def bulk_update_variants(self, product_id, variants: list[dict]) -> list[dict]:
        """Run productVariantsBulkUpdate for one chunk. Returns the userErrors list."""
        data = self.graphql(VARIANTS_BULK_UPDATE, {"productId": to_gid("Product", product_id), "variants": variants})
        return (data.get("productVariantsBulkUpdate") or {}).get("userErrors") or []

    def iter_products(self, query: str, page_size: int = 50):
        """Yield product nodes page by page, following the cursor."""
        after = None
        while True:
            data = self.graphql(PRODUCTS_BY_QUERY, {"q": query, "first": page_size, "after": after})
            block = data.get("products") or {}
            for edge in block.get("edges") or []:
                yield edge["node"]
            page = block.get("pageInfo") or {}
            if not page.get("hasNextPage") or not page.get("endCursor"):
                return
            after = page["endCursor"]

    # -----------------------------------------------------
    # metafields (variant -> turum link)
    # -----------------------------------------------------

    def get_variant_metafield(self, variant_id, ns: str = LINK_NAMESPACE, key: str = LINK_KEY) -> Optional[str]:
        resp = self._rest("GET", f"/variants/{variant_id}/metafields.json", params={"namespace": ns, "key": key})
        for m in resp.get("metafields", []):
            if m.get("namespace") == ns and m.get("key") == key:
                return m.get("value")
        return None

    def set_variant_metafield(self, variant_id, value: str, ns: str = LINK_NAMESPACE, key: str = LINK_KEY,
                              type_: str = "single_line_text_field") -> None:
        payload = {"metafield": {"namespace": ns, "key": key, "value": str(value), "type": type_}}
        self._rest("POST", f"/variants/{variant_id}/metafields.json", json=payload)

    # -----------------------------------------------------
    # inventory
    # -----------------------------------------------------

    def list_locations(self) -> list[dict]:
        return self._rest("GET", "/locations.json").get("locations", [])

    def primary_location_id(self) -> Optional[str]:
        if self.location_id:
            return str(self.location_id)
        if self._primary_location_id:
            return self._primary_location_id
        locs = self.list_locations()
        if not locs:
            return None
        chosen = next((l for l in locs if l.get("primary")), None)
        if not chosen:
            chosen = next((l for l in locs if l.get("active") and l.get("legacy") is False), locs[0])
        self._primary_location_id = str(chosen.get("id"))
        return self._primary_location_id

    def activate_inventory(self, inventory_item_id, location_id) -> None:
        payload = {"inventory_item_id": int(inventory_item_id), "location_id": int(location_id)}
        self._rest("POST", "/inventory_levels/connect.json", json=payload)

    def set_inventory_level(self, inventory_item_id, location_id, quantity: int) -> None:
        payload = {"location_id": int(location_id), "inventory_item_id": int(inventory_item_id), "available": int(quantity)}
        self._rest("POST", "/inventory_levels/set.json", json=payload)

    def bulk_set_inventory(self, entries: list[dict]) -> list[dict]:
        """Run inventorySetQuantities for one chunk. Returns the userErrors list."""
        quantities = [{
            "inventoryItemId": to_gid("InventoryItem", e["inventory_item_id"]),
            "locationId": to_gid("Location", e["location_id"]),
            "quantity": int(e["quantity"]),
        } for e in entries]
        variables = {"input": {"name": "available", "reason": "correction",
                               "ignoreCompareQuantity": True, "quantities": quantities}}
        data = self.graphql(INVENTORY_SET_QUANTITIES, variables)
        return (data.get("inventorySetQuantities") or {}).get("userErrors") or []

    # -----------------------------------------------------
    # orders & fulfillment
    # -----------------------------------------------------

    def cancel_order(self, order_id, reason: str = "inventory") -> bool:
        try:
            self._rest("POST", f"/orders/{order_id}/cancel.json", json={"reason": reason, "email": True})
        except ShopifyError as e:
            error(f"[orders] cancel failed for order {order_id}: {e}")
            return False
        info(f"[orders] order {order_id} cancelled on Shopify ({reason})")
        return True

    def get_fulfillment_orders(self, order_id) -> list[dict]:
        return self._rest("GET", f"/orders/{order_id}/fulfillment_orders.json").get("fulfillment_orders", [])

    def fulfill_order(self, order_id, tracking_number: str, tracking_url: str, carrier: str) -> bool:
        fos = self.get_fulfillment_orders(order_id)
        if not fos:
            warn(f"[fulfillment] no fulfillment orders for order {order_id}")
            return False
        fo = next((f for f in fos if f.get("status") == "open"), None)
        if fo is None:
            warn(f"[fulfillment] no open fulfillment order for order {order_id}")
            return False
        payload = {"fulfillment": {
            "line_items_by_fulfillment_order": [{"fulfillment_order_id": fo["id"]}],
            "tracking_info": {"number": tracking_number, "url": tracking_url, "company": carrier},
            "notify_customer": True,
        }}
        try:
            self._rest("POST", "/fulfillments.json", json=payload)
        except ShopifyError as e:
            error(f"[fulfillment] order {order_id} failed: {e}")
            return False
        info(f"[fulfillment] order {order_id} fulfilled ({carrier} {tracking_number})")
        return True

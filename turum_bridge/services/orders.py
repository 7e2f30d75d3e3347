# turum_bridge/services/orders.py
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..config import ORDER_MAX_ATTEMPTS, TURUM
from ..db.models import IntegrationOrder, OrderStatus
from ..errors import APIError, TransientAPIError
from ..utils.logger import info, warn, error
from .resolver import VariantResolver
from .stock import validate_order

CANCEL_REASON = "inventory"


@dataclass
class AddressSyncResult:
    ok: bool
    error: Optional[str] = None
    skipped: bool = False


def build_address_payload(shipping: dict, current: Optional[dict], defaults: dict = TURUM) -> dict:
    """Map a Shopify shipping address onto Turum's account address, keeping the billing company and VAT id."""
    billing = (current or {}).get("billing_address") or {}
    country = shipping.get("country_code") or shipping.get("country") or defaults["default_country"]
    name = f"{shipping.get('first_name') or ''} {shipping.get('last_name') or ''}".strip()
    return {
        "shipping_address": {
            "name": name,
            "street": shipping.get("address1") or "",
            "street_2": shipping.get("address2") or "",
            "city": shipping.get("city") or "",
            "zip_code": shipping.get("zip") or "",
            "country": country,
            "state": shipping.get("province_code") or shipping.get("province") or "",
            "phone_number": shipping.get("phone") or defaults["default_phone"],
        },
        "billing_address": {
            "company_name": billing.get("company_name") or defaults["billing_company"],
            "vat_id": billing.get("vat_id") or defaults["billing_vat_id"],
            "street": shipping.get("address1") or "",
            "city": shipping.get("city") or "",
            "zip_code": shipping.get("zip") or "",
            "country": country,
        },
    }


class OrderProcessor:
    """
    Turn one Shopify order webhook into a Turum reservation.

    The IntegrationOrder row is claimed (status `new`) before any remote call, so
    the unique constraint on `shopify_order_id` decides which delivery does the work.
    """

    def __init__(self, db, shopify, turum, max_attempts: int = ORDER_MAX_ATTEMPTS):
        self.db = db
        self.shopify = shopify
        self.turum = turum
        self.max_attempts = max_attempts

    def process(self, payload: dict) -> Optional[IntegrationOrder]:
        order_id = payload.get("id")
        if not order_id:
            warn("[orders] payload without id, ignoring")
            return None

        info(f"[orders] processing Shopify order {order_id}")
        order = self._claim(int(order_id), payload)
        if order is None:
            return self._get(int(order_id))

        try:
            return self._reconcile(order, payload)
        except Exception as e:
            error(f"[orders] order {order_id} crashed: {e}")
            self.db.rollback()
            return self._finish(order, OrderStatus.failed, error_message=str(e))

    # -----------------------------------------------------
    # idempotency
    # -----------------------------------------------------

    def _get(self, order_id: int) -> Optional[IntegrationOrder]:
        return self.db.execute(
            select(IntegrationOrder).where(IntegrationOrder.shopify_order_id == order_id)
        ).scalar_one_or_none()

    def _claim(self, order_id: int, payload: dict) -> Optional[IntegrationOrder]:
        existing = self._get(order_id)
        if existing:
            if existing.status == OrderStatus.failed and existing.attempts < self.max_attempts:
                existing.attempts += 1
                existing.status = OrderStatus.new
                existing.error_message = None
                existing.payload = payload
                self.db.commit()
                info(f"[orders] retrying failed order {order_id} (attempt {existing.attempts}/{self.max_attempts})")
                return existing
            info(f"[orders] order {order_id} already processed ({existing.status.value}). Skipping.")
            return None

        order = IntegrationOrder(shopify_order_id=order_id, status=OrderStatus.new, payload=payload, attempts=1)
        self.db.add(order)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            info(f"[orders] order {order_id} claimed by a concurrent delivery. Skipping.")
            return None
        return order

    def _finish(self, order: IntegrationOrder, status: OrderStatus, **fields) -> IntegrationOrder:
        order.status = status
        for k, v in fields.items():
            setattr(order, k, v)
        self.db.commit()
        return order

    # -----------------------------------------------------
    # state machine
    # -----------------------------------------------------

    def _reconcile(self, order: IntegrationOrder, payload: dict) -> IntegrationOrder:
        oid = order.shopify_order_id
        line_items = payload.get("line_items") or []
        if not line_items:
            warn(f"[orders] order {oid} has no line items")
            return self._finish(order, OrderStatus.failed, error_message="Order has no line items.")

        resolver = VariantResolver(self.shopify, self.turum, db=self.db)
        try:
            report = validate_order(line_items, resolver)
        except (APIError, TransientAPIError) as e:
            error(f"[orders] order {oid} validation aborted by API error: {e}")
            return self._finish(order, OrderStatus.failed, error_message=f"Validation aborted: {e}")

        if report.errors:
            warn(f"[orders] order {oid} validation failed: {report.message()}")
            self.shopify.cancel_order(oid, CANCEL_REASON)
            return self._finish(order, OrderStatus.cancelled, error_message=report.message())

        address = self.sync_address(oid, payload.get("shipping_address"))
        if not address.ok and not address.skipped:
            warn(f"[orders] order {oid} address not propagated: {address.error}")

        try:
            reservation = self.turum.create_reservation(report.reservations)
        except Exception as e:
            error(f"[orders] failed to reserve order {oid} in Turum: {e}")
            return self._finish(order, OrderStatus.failed, error_message=str(e))

        reservation_id = (reservation or {}).get("reservation_id")
        if not reservation_id:
            error(f"[orders] order {oid}: no reservation ID returned from Turum")
            return self._finish(order, OrderStatus.failed, error_message="No reservation ID returned from Turum.")

        info(f"[orders] order {oid} reserved in Turum. ID: {reservation_id}")
        return self._finish(order, OrderStatus.reserved, turum_reservation_id=str(reservation_id))

    def sync_address(self, order_id, shipping: Optional[dict]) -> AddressSyncResult:
        if not shipping:
            warn(f"[orders] no shipping address in order {order_id}")
            return AddressSyncResult(ok=False, skipped=True)
        try:
            current = self.turum.get_account_address()
            self.turum.update_address(build_address_payload(shipping, current))
        except (APIError, TransientAPIError) as e:
            return AddressSyncResult(ok=False, error=str(e))
        info(f"[orders] Turum address updated for order {order_id}")
        return AddressSyncResult(ok=True)

# turum_bridge/services/tracking.py
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote_plus, urlparse

from sqlalchemy import select

from ..db.models import OPEN_STATUSES, IntegrationOrder, OrderStatus
from ..utils.logger import info, warn, error

SHIPPED_STATUSES = ("sent", "delivered")
SUPPLIER_CANCELLED = ("cancelled", "canceled")
UNKNOWN_CARRIER = "Unknown"
FALLBACK_TRACKING_URL = "https://www.google.com/search?q={number}"


def parse_tracking(raw: str) -> tuple[str, str]:
    """Turum sends "CARRIER\\nNUMBER" in one field. Returns (carrier, tracking_number)."""
    text = (raw or "").replace("\r\n", "\n")
    if "\n" in text:
        lines = text.split("\n")
        return lines[0].strip() or UNKNOWN_CARRIER, lines[1].strip()
    return UNKNOWN_CARRIER, text.strip()


def is_url(value: Optional[str]) -> bool:
    if not value or any(c.isspace() for c in value.strip()):
        return False
    parts = urlparse(value.strip())
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def tracking_link(raw: str, number: str) -> str:
    return raw.strip() if is_url(raw) else FALLBACK_TRACKING_URL.format(number=quote_plus(number))


@dataclass
class PollReport:
    checked: int = 0
    updated: int = 0
    fulfilled: int = 0
    errors: int = 0


class TrackingPoller:
    """Poll Turum for open reservations and push tracking to Shopify once they ship."""

    def __init__(self, db, shopify, turum):
        self.db = db
        self.shopify = shopify
        self.turum = turum

    def pending(self) -> list[IntegrationOrder]:
        return list(self.db.execute(
            select(IntegrationOrder)
            .where(IntegrationOrder.status.in_(OPEN_STATUSES))
            .where(IntegrationOrder.turum_reservation_id.is_not(None))
            .order_by(IntegrationOrder.id)
        ).scalars())

    def run(self) -> PollReport:
        report = PollReport()
        orders = self.pending()
        info(f"[tracking] checking {len(orders)} pending reservation(s)")
        for order in orders:
            report.checked += 1
            try:
                self.check(order, report)
            except Exception as e:
                self.db.rollback()
                report.errors += 1
                error(f"[tracking] reservation {order.turum_reservation_id} (order {order.shopify_order_id}): {e}")
        info(f"[tracking] check complete: {report}")
        return report

    def check(self, order: IntegrationOrder, report: PollReport):
        data = self.turum.get_reservation(order.turum_reservation_id)
        if not data:
            warn(f"[tracking] reservation {order.turum_reservation_id} not found on Turum")
            report.errors += 1
            return

        status = (data.get("status") or "").strip().lower() or None
        if status and status != order.supplier_status:
            info(f"[tracking] order {order.shopify_order_id}: Turum status {order.supplier_status} -> {status}")
            order.supplier_status = status
            report.updated += 1
            self.db.commit()

        if status in SUPPLIER_CANCELLED:
            order.status = OrderStatus.cancelled
            order.error_message = "Reservation cancelled by Turum."
            self.db.commit()
            warn(f"[tracking] reservation {order.turum_reservation_id} cancelled by Turum")
            return

        raw = data.get("tracking_url")
        if status not in SHIPPED_STATUSES or not raw:
            return

        carrier, number = parse_tracking(raw)
        order.carrier = carrier
        order.tracking_number = number
        order.tracking_url = raw
        self.db.commit()

        if self.shopify.fulfill_order(order.shopify_order_id, number, tracking_link(raw, number), carrier):
            order.status = OrderStatus.fulfilled
            self.db.commit()
            report.fulfilled += 1
            info(f"[tracking] order {order.shopify_order_id} fulfilled ({carrier} {number})")
        else:
            report.errors += 1
            error(f"[tracking] failed to fulfill order {order.shopify_order_id} on Shopify")

from conftest import FakeShopify, FakeTurum
from turum_bridge.db.models import IntegrationOrder, OrderStatus
from turum_bridge.services.tracking import TrackingPoller, is_url, parse_tracking, tracking_link


def test_parse_tracking_with_carrier():
    assert parse_tracking("DPD\n123456") == ("DPD", "123456")
    assert parse_tracking("  UPS \r\n 1Z999 ") == ("UPS", "1Z999")


def test_parse_tracking_ignores_lines_after_the_number():
    assert parse_tracking("DPD\n123\nextra") == ("DPD", "123")


def test_parse_tracking_without_separator():
    assert parse_tracking("123456") == ("Unknown", "123456")


def test_tracking_link():
    assert is_url("https://tracking.dpd.de/status/123")
    assert not is_url("DPD\n123456")
    assert not is_url("ftp://x/y")
    assert tracking_link("https://t.example/1", "1") == "https://t.example/1"
    assert tracking_link("DPD\n123456", "123456") == "https://www.google.com/search?q=123456"


def seed(db, **fields):
    defaults = {"shopify_order_id": 7001, "status": OrderStatus.reserved, "turum_reservation_id": "R-1"}
    defaults.update(fields)
    order = IntegrationOrder(**defaults)
    db.add(order)
    db.commit()
    return order


def test_shipped_reservation_is_fulfilled(db_session):
    order = seed(db_session)
    turum = FakeTurum()
    turum.reservations["R-1"] = {"status": "sent", "tracking_url": "DPD\n123456"}
    shopify = FakeShopify()

    report = TrackingPoller(db_session, shopify, turum).run()

    assert report.fulfilled == 1
    assert shopify.fulfilled == [(7001, "123456", "https://www.google.com/search?q=123456", "DPD")]
    db_session.refresh(order)
    assert order.status == OrderStatus.fulfilled
    assert order.supplier_status == "sent"
    assert (order.carrier, order.tracking_number, order.tracking_url) == ("DPD", "123456", "DPD\n123456")


def test_status_change_without_tracking_is_recorded_only(db_session):
    order = seed(db_session)
    turum = FakeTurum()
    turum.reservations["R-1"] = {"status": "processing"}
    shopify = FakeShopify()
    report = TrackingPoller(db_session, shopify, turum).run()
    db_session.refresh(order)
    assert order.supplier_status == "processing"
    assert order.status == OrderStatus.reserved
    assert report.updated == 1
    assert shopify.fulfilled == []


def test_failed_fulfillment_keeps_order_open_for_next_poll(db_session):
    order = seed(db_session)
    turum = FakeTurum()
    turum.reservations["R-1"] = {"status": "delivered", "tracking_url": "123456"}
    shopify = FakeShopify()
    shopify.fulfill_ok = False
    TrackingPoller(db_session, shopify, turum).run()
    db_session.refresh(order)
    assert order.status == OrderStatus.reserved
    assert order.tracking_number == "123456"
    assert order.carrier == "Unknown"
    assert TrackingPoller(db_session, shopify, turum).pending() == [order]


def test_only_open_orders_with_reservation_are_scanned(db_session):
    seed(db_session, shopify_order_id=1)
    seed(db_session, shopify_order_id=2, status=OrderStatus.fulfilled, turum_reservation_id="R-2")
    seed(db_session, shopify_order_id=3, status=OrderStatus.failed, turum_reservation_id=None)
    seed(db_session, shopify_order_id=4, status=OrderStatus.new, turum_reservation_id=None)
    pending = TrackingPoller(db_session, FakeShopify(), FakeTurum()).pending()
    assert [o.shopify_order_id for o in pending] == [1]


def test_one_failing_order_does_not_stop_the_scan(db_session):
    seed(db_session, shopify_order_id=1, turum_reservation_id="R-BAD")
    second = seed(db_session, shopify_order_id=2, turum_reservation_id="R-OK")
    turum = FakeTurum()
    turum.reservations["R-OK"] = {"status": "sent", "tracking_url": "GLS\n999"}

    def get_reservation(rid):
        if rid == "R-BAD":
            raise RuntimeError("timeout")
        return turum.reservations.get(rid)

    turum.get_reservation = get_reservation
    report = TrackingPoller(db_session, FakeShopify(), turum).run()
    assert report.errors == 1
    assert report.fulfilled == 1
    db_session.refresh(second)
    assert second.status == OrderStatus.fulfilled


def test_supplier_cancellation_closes_order(db_session):
    order = seed(db_session)
    turum = FakeTurum()
    turum.reservations["R-1"] = {"status": "cancelled"}
    TrackingPoller(db_session, FakeShopify(), turum).run()
    db_session.refresh(order)
    assert order.status == OrderStatus.cancelled

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from turum_bridge.db.models import Base


@pytest.fixture(scope="function")
def engine():
    """In-memory SQLite shared across sessions of one test."""
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


class FakeTurum:
    """In-memory Turum: products keyed by SKU, reservations recorded."""

    def __init__(self, products=None, reservation_id="res-1"):
        self.products = {p["sku"]: p for p in (products or [])}
        self.reservation_id = reservation_id
        self.reservation_calls = []
        self.address_updates = []
        self.address = {"billing_address": {"company_name": "ACME B.V.", "vat_id": "NL000"}}
        self.address_error = None
        self.reservations = {}
        self.product_calls = []

    def get_product(self, sku):
        self.product_calls.append(sku)
        return self.products.get(sku)

    def get_products_full_list(self):
        return list(self.products.values())

    def create_reservation(self, variants):
        self.reservation_calls.append(variants)
        if self.reservation_id is None:
            return {}
        return {"reservation_id": self.reservation_id}

    def get_reservation(self, reservation_id):
        return self.reservations.get(reservation_id)

    def get_account_address(self):
        return self.address

    def update_address(self, data):
        if self.address_error:
            raise self.address_error
        self.address_updates.append(data)


class FakeShopify:
    def __init__(self, metafields=None):
        self.metafields = dict(metafields or {})
        self.cancelled = []
        self.fulfilled = []
        self.fulfill_ok = True

    def get_variant_metafield(self, variant_id, ns="turum", key="variant_id"):
        return self.metafields.get(variant_id)

    def cancel_order(self, order_id, reason="inventory"):
        self.cancelled.append((order_id, reason))
        return True

    def fulfill_order(self, order_id, tracking_number, tracking_url, carrier):
        self.fulfilled.append((order_id, tracking_number, tracking_url, carrier))
        return self.fulfill_ok


def turum_product(sku="DD1391-100", variants=None, **extra):
    product = {
        "sku": sku,
        "name": "Dunk Low Panda",
        "brand": "Nike",
        "variants": variants if variants is not None else [
            {"variant_id": "tv-42", "size": "8.5", "eu_size": "42", "price": 80, "stock": 3},
            {"variant_id": "tv-43", "size": "9.5", "eu_size": "43", "price": 80, "stock": 0},
        ],
    }
    product.update(extra)
    return product


@pytest.fixture
def fake_turum():
    return FakeTurum([turum_product()])


@pytest.fixture
def fake_shopify():
    return FakeShopify()

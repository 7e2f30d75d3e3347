# turum_bridge/deps.py
import threading

from .clients.shopify import ShopifyClient
from .clients.turum import TurumClient
from .config import SHOPIFY, TURUM
from .db.session import SessionLocal

_lock = threading.Lock()
_clients: dict = {}


def get_shopify() -> ShopifyClient:
    with _lock:
        if "shopify" not in _clients:
            _clients["shopify"] = ShopifyClient(SHOPIFY["domain"], SHOPIFY["token"], SHOPIFY.get("location_id"))
        return _clients["shopify"]


def get_turum() -> TurumClient:
    # one client per process so the token cache survives between jobs
    with _lock:
        if "turum" not in _clients:
            _clients["turum"] = TurumClient(TURUM["base_url"], TURUM["username"], TURUM["password"])
        return _clients["turum"]


def get_db():
    return SessionLocal()

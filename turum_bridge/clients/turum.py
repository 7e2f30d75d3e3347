# turum_bridge/clients/turum.py
import threading
import time
from typing import Optional

import requests
from tenacity import retry, stop_after_attempt, wait_fixed, retry_if_exception_type

from ..config import TOKEN_TTL_SEC
from ..errors import TransientAPIError, TurumError
from ..utils.logger import debug, info, error

TRANSIENT_STATUSES = (429, 500, 502, 503, 504)


class TokenCache:
    """Holds the Turum bearer token and its expiry. Refreshes itself via `login`."""

    def __init__(self, login, ttl_sec: int = TOKEN_TTL_SEC, clock=time.time):
        self._login = login
        self._ttl = ttl_sec
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    @property
    def valid(self) -> bool:
        return bool(self._token) and self._clock() < self._expires_at

    def get(self) -> str:
        with self._lock:
            if not self.valid:
                self._store(self._login())
            return self._token

    def refresh(self) -> str:
        with self._lock:
            self._store(self._login())
            return self._token

    def invalidate(self):
        with self._lock:
            self._token = None
            self._expires_at = 0.0

    def _store(self, token: str):
        self._token = token
        self._expires_at = self._clock() + self._ttl


def unwrap_product_list(payload) -> list:
    """The full-list endpoint has answered with a bare array, `{data: [...]}` and `{products: [...]}`."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("products", "data"):
            items = payload.get(key)
            if isinstance(items, list):
                return items
    raise TurumError(f"Unexpected product list shape: {type(payload).__name__}")


class TurumClient:
    def __init__(self, base_url: str, username: Optional[str], password: Optional[str],
                 session=None, token_cache: Optional[TokenCache] = None, timeout: int = 60):
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout
        self.http = session or requests.Session()
        self.tokens = token_cache or TokenCache(self.login)

    # -----------------------------------------------------
    # transport
    # -----------------------------------------------------

    @retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_fixed(2),
        retry=retry_if_exception_type(TransientAPIError),
    )
    def _send(self, method: str, path: str, auth: bool = True, **kwargs) -> requests.Response:
        headers = {"Accept": "application/json"}
        if auth:
            headers["Authorization"] = f"Bearer {self.tokens.get()}"
        try:
            r = self.http.request(method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientAPIError(f"{method} {path}: {e}") from e
        if r.status_code in TRANSIENT_STATUSES:
            raise TransientAPIError(f"{method} {path} {r.status_code}: {r.text}")
        return r

    def _request(self, method: str, path: str, allow_404: bool = False, **kwargs):
        r = self._send(method, path, **kwargs)
        if r.status_code == 401:
            # token may have been revoked before our TTL ran out
            self.tokens.invalidate()
            r = self._send(method, path, **kwargs)
        if allow_404 and r.status_code == 404:
            return None
        if not 200 <= r.status_code < 300:
            raise TurumError(f"{method} {path} failed {r.status_code}: {r.text}", r.status_code, r.text)
        if not r.content:
            return {}
        return r.json()

    # -----------------------------------------------------
    # auth
    # -----------------------------------------------------

    def login(self) -> str:
        r = self._send("POST", "/account/login", auth=False,
                       json={"username": self.username, "password": self.password})
        if r.status_code != 200:
            error(f"[turum] login failed {r.status_code}: {r.text}")
            raise TurumError("Turum login failed", r.status_code, r.text)
        token = (r.json() or {}).get("access_token")
        if not token:
            raise TurumError("Turum login returned no access_token", r.status_code, r.text)
        info("[turum] logged in, token cached")
        return token

    # -----------------------------------------------------
    # catalog
    # -----------------------------------------------------

    def get_product(self, sku: str) -> Optional[dict]:
        data = self._request("GET", f"/product/{sku}", allow_404=True)
        debug(f"[turum] product {sku}: {'found' if data else 'missing'}")
        return data or None

    def get_products_full_list(self) -> list[dict]:
        return unwrap_product_list(self._request("GET", "/products_full_list_new"))

    # -----------------------------------------------------
    # reservations
    # -----------------------------------------------------

    def create_reservation(self, variants: list[dict]) -> dict:
        """`variants` is `[{"variant_id": ..., "quantity": n}, ...]`. Returns `{"reservation_id": ...}`."""
        info(f"[turum] creating reservation for {len(variants)} variant(s)")
        return self._request("POST", "/reservations", json={"variants": variants}) or {}

    def get_reservation(self, reservation_id: str) -> Optional[dict]:
        return self._request("GET", f"/reservation/{reservation_id}", allow_404=True)

    # -----------------------------------------------------
    # account address
    # -----------------------------------------------------

    def get_account_address(self) -> Optional[dict]:
        return self._request("GET", "/account/address", allow_404=True)

    def update_address(self, data: dict) -> None:
        self._request("POST", "/account/address", json=data)

# turum_bridge/errors.py
from typing import Optional


class TransientAPIError(Exception):
    """Timeouts, connection resets, 429 and 5xx. Retried by the clients."""


class APIError(RuntimeError):
    service = "api"

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body or ""


class ShopifyError(APIError):
    service = "shopify"

    def is_invalid_image(self) -> bool:
        if self.status_code != 422:
            return False
        text = self.body.lower()
        return "image" in text and ("invalid" in text or "url" in text)


class TurumError(APIError):
    service = "turum"

import os


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2025-04")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///turum_bridge.db")

SHOPIFY = {
    "domain": os.getenv("SHOPIFY_STORE_DOMAIN"),
    "token": os.getenv("SHOPIFY_ACCESS_TOKEN"),
    "secret": os.getenv("SHOPIFY_WEBHOOK_SECRET", ""),
    "location_id": os.getenv("SHOPIFY_LOCATION_ID"),
    "name": "Shopify",
}

TURUM = {
    "base_url": os.getenv("TURUM_BASE_URL", "https://api.b2b.turum.pl/v1"),
    "username": os.getenv("TURUM_USERNAME"),
    "password": os.getenv("TURUM_PASSWORD"),
    "vendor": os.getenv("TURUM_VENDOR", "Turum"),
    "margin_pct": float(os.getenv("TURUM_PRICE_MARGIN_PERCENTAGE", "0") or 0),
    "default_country": os.getenv("TURUM_DEFAULT_COUNTRY", "NL"),
    "default_phone": os.getenv("TURUM_DEFAULT_PHONE", "0613443913"),
    "billing_company": os.getenv("TURUM_BILLING_COMPANY", "MoutonKoevoet B.V."),
    "billing_vat_id": os.getenv("TURUM_BILLING_VAT_ID", "NL867599819B01"),
    "name": "Turum",
}

# Reject webhooks whose HMAC does not verify. Set to false only while debugging.
WEBHOOK_REJECT_INVALID_HMAC = _bool("WEBHOOK_REJECT_INVALID_HMAC", True)

# How many times a storefront order may be processed before a `failed` row sticks.
ORDER_MAX_ATTEMPTS = int(os.getenv("ORDER_MAX_ATTEMPTS", "3"))

VARIANT_BATCH_SIZE = 100     # productVariantsBulkUpdate
INVENTORY_BATCH_SIZE = 250   # inventorySetQuantities
SYNC_BATCH_DELAY_SEC = float(os.getenv("SYNC_BATCH_DELAY_SEC", "0.5"))

TOKEN_TTL_SEC = 23 * 60 * 60

# turum_bridge/routes/webhooks.py
import json
import threading

from flask import Blueprint, current_app, request

from ..config import SHOPIFY
from ..deps import get_db, get_shopify, get_turum
from ..services.orders import OrderProcessor
from ..utils.logger import info, warn, error
from ..utils.security import verify_webhook_hmac

bp = Blueprint("webhooks", __name__)


def process_order(payload: dict):
    db = get_db()
    try:
        OrderProcessor(db, get_shopify(), get_turum()).process(payload)
    finally:
        db.close()


def enqueue(payload: dict):
    oid = payload.get("id")

    def worker():
        try:
            process_order(payload)
        except Exception as e:
            error(f"[webhook] orders worker OID={oid}: {e}")

    threading.Thread(target=worker, daemon=True).start()


@bp.post("/orders")
def orders():
    raw = request.get_data()
    their_hmac = request.headers.get("X-Shopify-Hmac-Sha256", "")
    if not verify_webhook_hmac(SHOPIFY["secret"], raw, their_hmac):
        warn(f"[webhook] HMAC verification failed from {request.remote_addr} ({len(raw)} bytes)")
        if current_app.config.get("WEBHOOK_REJECT_INVALID_HMAC", True):
            return {"message": "Unauthorized"}, 401
        warn("[webhook] WEBHOOK_REJECT_INVALID_HMAC is off, accepting unverified payload")

    try:
        payload = json.loads(raw.decode("utf-8")) if raw else None
    except (UnicodeDecodeError, json.JSONDecodeError):
        payload = None
    if not isinstance(payload, dict) or not payload:
        return {"message": "Invalid Payload"}, 400

    info(f"[webhook] Shopify order received. OID={payload.get('id', 'unknown')}")
    enqueue(payload)
    return {"message": "Webhook received"}, 200

# turum_bridge/routes/debug.py
from flask import Blueprint
from sqlalchemy import select

from ..db.models import IntegrationOrder, ProductVariantMap
from ..deps import get_db, get_turum
from ..errors import APIError, TransientAPIError

bp = Blueprint("debug", __name__)


@bp.get("/turum-auth")
def turum_auth():
    try:
        token = get_turum().tokens.refresh()
    except (APIError, TransientAPIError) as e:
        return {"status": "error", "message": "Connection failed", "error": str(e)}, 500
    return {
        "status": "success",
        "message": "Connected to Turum successfully",
        "token_preview": f"{token[:10]}...",
        "expires_in": "23 hours (cached)",
    }, 200


@bp.get("/turum-product/<sku>")
def turum_product(sku):
    try:
        data = get_turum().get_product(sku)
    except (APIError, TransientAPIError) as e:
        return {"status": "error", "message": str(e)}, 502
    if not data:
        return {"status": "error", "message": "Product not found on Turum or API error"}, 404
    return {"status": "success", "data": data}, 200


@bp.get("/get_all")
def get_all():
    try:
        items = get_turum().get_products_full_list()
    except (APIError, TransientAPIError) as e:
        return {"status": "error", "message": str(e)}, 500
    return {"status": "success", "count": len(items), "data": items}, 200


@bp.get("/reservations")
def reservations():
    db = get_db()
    try:
        rows = db.execute(select(IntegrationOrder).order_by(IntegrationOrder.created_at.desc())).scalars().all()
        return {"status": "success", "count": len(rows), "data": [r.to_dict() for r in rows]}, 200
    finally:
        db.close()


@bp.get("/db-mapping/<sku>")
def db_mapping(sku):
    db = get_db()
    try:
        row = db.execute(
            select(ProductVariantMap).where(ProductVariantMap.shopify_sku == sku).limit(1)
        ).scalar_one_or_none()
        if not row:
            return {"status": "missing", "message": f"No mapping found for Shopify SKU: {sku}"}, 404
        return {"status": "found", "mapping": row.to_dict()}, 200
    finally:
        db.close()

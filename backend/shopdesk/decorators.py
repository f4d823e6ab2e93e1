# Overview: Request decorators for API routes.

from functools import wraps
from flask import jsonify, g

from .extensions import db
from .models import Shop


def require_shop(f):
    """
    Resolve the shop from the <shop_id> URL segment.

    MULTI-TENANT: Sets g.shop. Every engine call below is scoped to g.shop.id.
    Returns 404 for unknown or deactivated shops (no difference exposed).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        shop_id = kwargs.get("shop_id")
        shop = db.session.query(Shop).filter_by(id=shop_id).first() if shop_id is not None else None
        if not shop or not shop.is_active:
            return jsonify({"error": "Shop not found", "code": "not_found"}), 404

        g.shop = shop
        return f(*args, **kwargs)

    return decorated_function

# Overview: Flask API route receiving payment provider events.

"""
Billing Routes

SECURITY: when BILLING_WEBHOOK_SECRET is configured the caller must send it
in X-Billing-Secret (compared in constant time).
"""

import hmac

from flask import Blueprint, request, jsonify, current_app

from ..errors import ShopdeskError
from ..services import billing_service
from ..services.concurrency import run_with_retry


billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")


@billing_bp.post("/events")
def billing_event_route():
    secret = current_app.config.get("BILLING_WEBHOOK_SECRET")
    if secret and not hmac.compare_digest(request.headers.get("X-Billing-Secret", ""), secret):
        return jsonify({"error": "Invalid webhook signature"}), 401

    data = request.get_json(silent=True) or {}
    shop_id = data.get("shop_id")
    event_type = data.get("event_type")
    if not shop_id or not event_type:
        return jsonify({"error": "shop_id and event_type are required"}), 400

    try:
        shop = run_with_retry(lambda: billing_service.apply_payment_event(shop_id=shop_id, event_type=event_type))
        return jsonify({"received": True, "shop": shop.to_dict()})
    except ShopdeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Billing event processing failed")
        return jsonify({"error": "Billing event processing failed"}), 500

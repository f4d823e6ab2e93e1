# Overview: Applies subscription payment events to shops; grace periods and plan downgrades.

"""
Billing Service

Payment provider events flip a shop's plan fields. Nothing in the shift or
loyalty engines reads them; they only gate admin features elsewhere.

EVENTS:
- payment_failed: payment_status -> grace, grace_until = now + BILLING_GRACE_HOURS.
  A pro shop remembers original_plan_type so it can be restored.
- payment_succeeded: payment_status -> ok, grace cleared, original plan restored.
- expire_grace_periods (scheduled): grace ended -> plan basic, status past_due.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Shop
from .concurrency import atomic, lock_for_update
from shopdesk.time_utils import utcnow


EVENT_PAYMENT_FAILED = "payment_failed"
EVENT_PAYMENT_SUCCEEDED = "payment_succeeded"
SUPPORTED_EVENTS = {EVENT_PAYMENT_FAILED, EVENT_PAYMENT_SUCCEEDED}

PLAN_BASIC = "basic"
PLAN_PRO = "pro"


def apply_payment_event(*, shop_id: int, event_type: str, now: datetime | None = None) -> Shop:
    if event_type not in SUPPORTED_EVENTS:
        raise ValidationError(f"Unsupported billing event: {event_type}", field="event_type")
    now = now or utcnow()

    with atomic():
        shop = lock_for_update(db.session.query(Shop).filter_by(id=shop_id)).first()
        if not shop:
            raise NotFoundError("Shop not found")

        if event_type == EVENT_PAYMENT_FAILED:
            if shop.payment_status != "grace":
                hours = current_app.config.get("BILLING_GRACE_HOURS", 72)
                shop.payment_status = "grace"
                shop.grace_until = now + timedelta(hours=hours)
                if shop.plan_type == PLAN_PRO:
                    shop.original_plan_type = PLAN_PRO
        else:
            shop.payment_status = "ok"
            shop.grace_until = None
            if shop.original_plan_type == PLAN_PRO:
                shop.plan_type = PLAN_PRO
            shop.original_plan_type = None

    current_app.logger.info("Billing event %s applied to shop %s", event_type, shop_id)
    return shop


def expire_grace_periods(now: datetime | None = None) -> list[int]:
    """Downgrade every shop whose grace period has ended. Returns their ids."""
    now = now or utcnow()
    with atomic():
        shops = lock_for_update(db.session.query(Shop).filter(
            Shop.payment_status == "grace",
            Shop.grace_until.isnot(None),
            Shop.grace_until <= now,
        )).all()
        for shop in shops:
            shop.plan_type = PLAN_BASIC
            shop.payment_status = "past_due"
            shop.grace_until = None
    return [s.id for s in shops]

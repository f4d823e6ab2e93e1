# Overview: Builds the explicit per-call configuration the engines receive.

"""
Engine policies.

Shop settings live on the shops row and are edited by the settings screens.
The engines never read that row themselves: the controller turns it into a
frozen policy and passes it into every call, which keeps the engines
testable with hand-built policies.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..models import Shop


@dataclass(frozen=True)
class ShopLocation:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class ShiftPolicy:
    shop_location: ShopLocation | None = None
    geofence_radius_m: float = 100.0
    # False: remoteness is advisory (supervisor review). True: refuse clock-in.
    remote_requires_approval: bool = False
    timezone: str = "UTC"


@dataclass(frozen=True)
class LoyaltyPolicy:
    points_needed: int = 10
    points_per_visit: int = 1
    cooldown_minutes: int = 30
    reward_description: str = "Free reward"


def shift_policy_for(shop: Shop) -> ShiftPolicy:
    cfg = current_app.config
    location = ShopLocation(shop.latitude, shop.longitude) if shop.has_location else None

    radius = shop.geofence_radius_m
    if radius is None:
        radius = cfg.get("GEOFENCE_RADIUS_METERS", 100.0)

    requires_approval = shop.remote_requires_approval
    if requires_approval is None:
        requires_approval = cfg.get("REMOTE_CLOCK_IN_REQUIRES_APPROVAL", False)

    return ShiftPolicy(
        shop_location=location,
        geofence_radius_m=float(radius),
        remote_requires_approval=bool(requires_approval),
        timezone=shop.timezone or "UTC",
    )


def loyalty_policy_for(shop: Shop) -> LoyaltyPolicy:
    cfg = current_app.config
    return LoyaltyPolicy(
        points_needed=shop.points_needed or cfg.get("LOYALTY_POINTS_NEEDED", 10),
        points_per_visit=shop.points_per_visit or 1,
        cooldown_minutes=cfg.get("LOYALTY_COOLDOWN_MINUTES", 30),
        reward_description=shop.reward_description,
    )

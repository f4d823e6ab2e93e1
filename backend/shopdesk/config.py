# backend/shopdesk/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key. Also keys the PIN lookup digest.
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Staff PINs (bcrypt). Tests lower the rounds; 4-digit PINs rely on the throttle, not cost.
    PIN_BCRYPT_ROUNDS = int(os.environ.get("PIN_BCRYPT_ROUNDS", "10"))
    PIN_TTL_DAYS = int(os.environ.get("PIN_TTL_DAYS", "30"))
    PIN_MAX_FAILED_ATTEMPTS = int(os.environ.get("PIN_MAX_FAILED_ATTEMPTS", "5"))
    # Shop-wide ceiling across all devices, so a rotated device id gains nothing
    PIN_SHOP_MAX_FAILED_ATTEMPTS = int(os.environ.get("PIN_SHOP_MAX_FAILED_ATTEMPTS", "20"))
    PIN_LOCKOUT_MINUTES = int(os.environ.get("PIN_LOCKOUT_MINUTES", "15"))

    # Defaults used when a shop row leaves the setting empty
    GEOFENCE_RADIUS_METERS = float(os.environ.get("GEOFENCE_RADIUS_METERS", "100"))
    REMOTE_CLOCK_IN_REQUIRES_APPROVAL = _env_bool("REMOTE_CLOCK_IN_REQUIRES_APPROVAL", False)
    LOYALTY_COOLDOWN_MINUTES = int(os.environ.get("LOYALTY_COOLDOWN_MINUTES", "30"))
    LOYALTY_POINTS_NEEDED = int(os.environ.get("LOYALTY_POINTS_NEEDED", "10"))

    BILLING_GRACE_HOURS = int(os.environ.get("BILLING_GRACE_HOURS", "72"))

    # Optional shared secret for POST /api/billing/events
    BILLING_WEBHOOK_SECRET = os.environ.get("BILLING_WEBHOOK_SECRET")

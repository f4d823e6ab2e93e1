"""
PIN Throttling Service

WHY: A 4-digit PIN has 10,000 combinations. Without a limit, anyone holding
the shop tablet can walk the whole space in minutes.

SECURITY FEATURES:
- Tracks failed PIN attempts per device identifier (shop + device)
- Also counts failures across the whole shop, so rotating X-Device-Id does
  not escape the lockout (PIN_SHOP_MAX_FAILED_ATTEMPTS)
- Lockout after PIN_MAX_FAILED_ATTEMPTS failures within the lockout window
- Lockout lasts PIN_LOCKOUT_MINUTES from the most recent failure
- Successful entries do not clear earlier failures in the window
- Uses the security_events table for tracking
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from flask import current_app

from ..errors import AuthError, PinLockedError
from ..extensions import db
from ..models import Employee, SecurityEvent
from . import pin_service
from .concurrency import atomic
from shopdesk.time_utils import utcnow


EVENT_PIN_FAILED = "PIN_FAILED"
EVENT_PIN_SUCCESS = "PIN_SUCCESS"


def device_identifier(shop_id: int, device_id: str | None) -> str:
    return f"shop:{shop_id}:device:{device_id or 'unknown'}"


def _window() -> timedelta:
    return timedelta(minutes=current_app.config.get("PIN_LOCKOUT_MINUTES", 15))


def _max_attempts() -> int:
    return current_app.config.get("PIN_MAX_FAILED_ATTEMPTS", 5)


def _shop_max_attempts() -> int:
    return current_app.config.get("PIN_SHOP_MAX_FAILED_ATTEMPTS", 20)


def _recent_failures(now: datetime, **filters) -> list[SecurityEvent]:
    return db.session.query(SecurityEvent).filter_by(
        event_type=EVENT_PIN_FAILED, **filters
    ).filter(
        SecurityEvent.occurred_at > now - _window(),
    ).order_by(SecurityEvent.occurred_at.desc()).all()


def _minutes_left(failures: list[SecurityEvent], limit: int, now: datetime) -> int | None:
    if len(failures) < limit:
        return None

    lockout_end = failures[0].occurred_at + _window()
    if now >= lockout_end:
        return None
    return max(math.ceil((lockout_end - now).total_seconds() / 60), 1)


def lockout_minutes_remaining(identifier: str, *, now: datetime | None = None) -> int | None:
    """
    Minutes until the device identifier may try again, or None if not locked.
    """
    now = now or utcnow()
    return _minutes_left(_recent_failures(now, identifier=identifier), _max_attempts(), now)


def shop_lockout_minutes_remaining(shop_id: int, *, now: datetime | None = None) -> int | None:
    """Same as lockout_minutes_remaining, counted over every device in the shop."""
    now = now or utcnow()
    return _minutes_left(_recent_failures(now, shop_id=shop_id), _shop_max_attempts(), now)


def _locked_for(shop_id: int, identifier: str, now: datetime) -> int | None:
    remaining = [
        m for m in (
            lockout_minutes_remaining(identifier, now=now),
            shop_lockout_minutes_remaining(shop_id, now=now),
        )
        if m is not None
    ]
    return max(remaining) if remaining else None


def record_attempt(
    *,
    shop_id: int,
    identifier: str,
    success: bool,
    employee_id: int | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> SecurityEvent:
    event = SecurityEvent(
        shop_id=shop_id,
        employee_id=employee_id,
        event_type=EVENT_PIN_SUCCESS if success else EVENT_PIN_FAILED,
        identifier=identifier,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=now or utcnow(),
    )
    with atomic():
        db.session.add(event)
    return event


def verify_pin_throttled(
    shop_id: int,
    pin: str,
    *,
    device_id: str | None = None,
    employee_id: int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> Employee:
    """
    verify_pin guarded by the device and shop lockouts.

    Raises PinLockedError while locked; otherwise whatever verify_pin raises,
    after recording the failure.
    """
    now = now or utcnow()
    identifier = device_identifier(shop_id, device_id)

    remaining = _locked_for(shop_id, identifier, now)
    if remaining is not None:
        raise PinLockedError(remaining)

    try:
        employee = pin_service.verify_pin(shop_id, pin, employee_id=employee_id)
    except AuthError as exc:
        record_attempt(
            shop_id=shop_id,
            identifier=identifier,
            success=False,
            employee_id=employee_id,
            reason=exc.code,
            ip_address=ip_address,
            user_agent=user_agent,
            now=now,
        )
        remaining = _locked_for(shop_id, identifier, now)
        if remaining is not None:
            current_app.logger.warning("PIN entry locked for %s after repeated failures", identifier)
            raise PinLockedError(remaining) from exc
        raise

    record_attempt(
        shop_id=shop_id,
        identifier=identifier,
        success=True,
        employee_id=employee.id,
        ip_address=ip_address,
        user_agent=user_agent,
        now=now,
    )
    return employee

# Overview: Service-layer operations for staff PINs; verification, lifecycle and rotation.

"""
Staff PIN Service

WHY: Staff clock in on a shared tablet with a 4-digit PIN. The PIN is the
only credential on the device, so it is hashed at rest and compared in
constant time, and it expires every PIN_TTL_DAYS.

SECURITY NOTES:
- pin_hash: bcrypt (cost PIN_BCRYPT_ROUNDS)
- pin_lookup: HMAC-SHA256(SECRET_KEY, "shop_id:pin"), compared with
  hmac.compare_digest against every PIN-holding employee of the shop
- A 4-digit space is tiny; brute force is stopped by pin_throttle_service,
  not by hash cost

LIFECYCLE:
- Admin creates employee with an initial PIN -> pin_change_required=True
- Staff must change it before any session operation
- pin_expires_at = pin_set_at + PIN_TTL_DAYS; at or after expiry the PIN
  must be changed again
"""

from __future__ import annotations

import hashlib
import hmac
import re
from dataclasses import dataclass
from datetime import datetime, timedelta

import bcrypt
from flask import current_app

from ..errors import (
    InactiveEmployeeError,
    InvalidCredentialError,
    NotFoundError,
    PinChangeRequiredError,
    ValidationError,
)
from ..extensions import db
from ..models import Employee, Shop
from .concurrency import atomic, lock_for_update
from shopdesk.time_utils import utcnow, to_utc_z


PIN_PATTERN = re.compile(r"\d{4}")


@dataclass(frozen=True)
class PinStatus:
    must_change: bool
    reason: str | None = None  # not_set, change_required, expired
    expires_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "ok": not self.must_change,
            "must_change_pin": self.must_change,
            "reason": self.reason,
            "pin_expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
        }


def validate_pin_format(pin) -> str:
    """Raise ValidationError unless pin is exactly 4 numeric digits."""
    if not isinstance(pin, str) or not PIN_PATTERN.fullmatch(pin):
        raise ValidationError("PIN must be exactly 4 digits", field="pin")
    return pin


def hash_pin(pin: str) -> str:
    rounds = current_app.config.get("PIN_BCRYPT_ROUNDS", 10)
    hashed = bcrypt.hashpw(pin.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def pin_lookup_digest(shop_id: int, pin: str) -> str:
    key = current_app.config["SECRET_KEY"].encode("utf-8")
    return hmac.new(key, f"{shop_id}:{pin}".encode("utf-8"), hashlib.sha256).hexdigest()


def _check_pin(pin: str, pin_hash: str | None) -> bool:
    if not pin_hash:
        return False
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        return False


def _pin_ttl() -> timedelta:
    return timedelta(days=current_app.config.get("PIN_TTL_DAYS", 30))


def _apply_pin(employee: Employee, pin: str, now: datetime) -> None:
    employee.pin_hash = hash_pin(pin)
    employee.pin_lookup = pin_lookup_digest(employee.shop_id, pin)
    employee.pin_set_at = now
    employee.pin_expires_at = now + _pin_ttl()


def create_employee(
    *,
    shop_id: int,
    first_name: str,
    pin: str,
    last_name: str | None = None,
    pin_change_required: bool = True,
    now: datetime | None = None,
) -> Employee:
    """
    Create a staff member with an initial PIN.

    Used by admin collaborators and the CLI. The initial PIN is admin-chosen,
    so by default the employee must change it on first use.
    """
    now = now or utcnow()
    validate_pin_format(pin)
    if not first_name or not first_name.strip():
        raise ValidationError("first_name is required", field="first_name")

    with atomic():
        shop = db.session.query(Shop).filter_by(id=shop_id).first()
        if not shop:
            raise NotFoundError("Shop not found")

        employee = Employee(
            shop_id=shop_id,
            first_name=first_name.strip(),
            last_name=last_name.strip() if last_name else None,
            pin_change_required=pin_change_required,
            is_active=True,
        )
        _apply_pin(employee, pin, now)
        db.session.add(employee)
    return employee


def verify_pin(shop_id: int, pin: str, *, employee_id: int | None = None) -> Employee:
    """
    Resolve the employee of a shop whose PIN matches.

    employee_id narrows the check to one person (tablet "select your name"
    flow) and is required when two active colleagues share a PIN.

    Raises:
        InvalidCredentialError: no match (or ambiguous match)
        InactiveEmployeeError: the only match is deactivated
    """
    if not isinstance(pin, str) or not PIN_PATTERN.fullmatch(pin):
        raise InvalidCredentialError()

    query = db.session.query(Employee).filter(
        Employee.shop_id == shop_id,
        Employee.pin_hash.isnot(None),
    )
    if employee_id is not None:
        query = query.filter(Employee.id == employee_id)

    digest = pin_lookup_digest(shop_id, pin)
    matches = [
        e for e in query.order_by(Employee.id).all()
        if hmac.compare_digest(e.pin_lookup or "", digest) and _check_pin(pin, e.pin_hash)
    ]

    active = [e for e in matches if e.is_active]
    if len(active) == 1:
        return active[0]
    if len(active) > 1:
        raise InvalidCredentialError("PIN matches more than one staff member, select your name", ambiguous=True)
    if matches:
        raise InactiveEmployeeError()
    raise InvalidCredentialError()


def check_pin_lifecycle(employee: Employee, *, now: datetime | None = None) -> PinStatus:
    """
    Decide whether the employee must change their PIN before doing anything.

    Expiry is inclusive: at exactly pin_expires_at the PIN is already expired.
    """
    now = now or utcnow()
    if not employee.pin_hash:
        return PinStatus(must_change=True, reason="not_set")
    if employee.pin_change_required:
        return PinStatus(must_change=True, reason="change_required", expires_at=employee.pin_expires_at)
    if employee.pin_expires_at is None or now >= employee.pin_expires_at:
        return PinStatus(must_change=True, reason="expired", expires_at=employee.pin_expires_at)
    return PinStatus(must_change=False, expires_at=employee.pin_expires_at)


def require_usable_pin(employee: Employee, *, now: datetime | None = None) -> None:
    """Gate for every session operation."""
    if not employee.is_active:
        raise InactiveEmployeeError()
    status = check_pin_lifecycle(employee, now=now)
    if status.must_change:
        raise PinChangeRequiredError(status.reason)


def change_pin(
    *,
    employee_id: int,
    new_pin: str,
    confirm_pin: str,
    now: datetime | None = None,
) -> Employee:
    """
    Rotate an employee's PIN.

    Validates before touching the row; on success clears pin_change_required
    and restarts the expiry clock.
    """
    now = now or utcnow()
    validate_pin_format(new_pin)
    if new_pin != confirm_pin:
        raise ValidationError("PINs do not match", field="confirm_pin")

    with atomic():
        employee = lock_for_update(db.session.query(Employee).filter_by(id=employee_id)).first()
        if not employee:
            raise NotFoundError("Employee not found")
        if not employee.is_active:
            raise InactiveEmployeeError()

        _apply_pin(employee, new_pin, now)
        employee.pin_change_required = False
    return employee


def require_pin_change(employee_id: int) -> Employee:
    """Admin action: force the employee through the change-PIN flow."""
    with atomic():
        employee = lock_for_update(db.session.query(Employee).filter_by(id=employee_id)).first()
        if not employee:
            raise NotFoundError("Employee not found")
        employee.pin_change_required = True
    return employee


def deactivate_employee(employee_id: int) -> Employee:
    """
    Deactivate (never delete) a staff member.
    """
    with atomic():
        employee = lock_for_update(db.session.query(Employee).filter_by(id=employee_id)).first()
        if not employee:
            raise NotFoundError("Employee not found")
        employee.is_active = False
    return employee

# Overview: Geofence evaluation and remote clock-in review.

"""
Geofence Service

Pure helpers (haversine_distance_m, approval_valid_on) plus the two reads the
shift engine needs: is an employee remote right now, and do they hold a
valid remote approval for today.

Remoteness is advisory unless ShiftPolicy.remote_requires_approval is set;
in advisory mode a remote, unapproved clock-in leaves a PENDING
ClockInRequest for a supervisor.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import ClockInRequest, RemoteApproval, ShiftSession
from .concurrency import atomic, lock_for_update
from .policy_service import ShiftPolicy
from shopdesk.time_utils import utcnow


EARTH_RADIUS_M = 6_371_000

STATUS_ON_SITE = "on_site"
STATUS_REMOTE = "remote"
STATUS_UNKNOWN = "unknown"


@dataclass(frozen=True)
class Remoteness:
    status: str
    distance_meters: float | None = None
    pre_approved: bool = False

    @property
    def on_site(self) -> bool:
        return self.status == STATUS_ON_SITE

    @property
    def needs_review(self) -> bool:
        return self.status == STATUS_REMOTE and not self.pre_approved

    def to_dict(self) -> dict:
        distance = round(self.distance_meters, 1) if self.distance_meters is not None else None
        data = {"status": self.status, "distance_meters": distance}
        if not self.on_site:
            data["pre_approved"] = self.pre_approved
        return data


def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def validate_coordinates(latitude, longitude) -> tuple[float, float] | None:
    """
    Normalize optional device coordinates.

    Both missing -> None (GPS unavailable). One missing or out of range -> ValidationError.
    """
    if latitude is None and longitude is None:
        return None
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        raise ValidationError("latitude and longitude must both be numbers", field="latitude")
    if math.isnan(lat) or math.isnan(lon) or not (-90 <= lat <= 90) or not (-180 <= lon <= 180):
        raise ValidationError("Invalid location coordinates", field="latitude")
    return lat, lon


def local_today(now: datetime, tz_name: str) -> date:
    """Shop-local calendar date for a UTC-naive instant."""
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        tz = ZoneInfo("UTC")
    return now.replace(tzinfo=timezone.utc).astimezone(tz).date()


def sunday_based_weekday(day: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def approval_valid_on(approval: RemoteApproval, day: date) -> bool:
    if not approval.is_active:
        return False
    if not (approval.start_date <= day <= approval.end_date):
        return False
    return sunday_based_weekday(day) in set(approval.days_of_week or [])


def has_valid_remote_approval(
    *,
    employee_id: int,
    shop_id: int,
    tz_name: str = "UTC",
    now: datetime | None = None,
) -> bool:
    today = local_today(now or utcnow(), tz_name)
    approvals = db.session.query(RemoteApproval).filter(
        RemoteApproval.employee_id == employee_id,
        RemoteApproval.shop_id == shop_id,
        RemoteApproval.is_active.is_(True),
        RemoteApproval.start_date <= today,
        RemoteApproval.end_date >= today,
    ).all()
    return any(approval_valid_on(a, today) for a in approvals)


def evaluate_location(
    *,
    employee_id: int,
    shop_id: int,
    coordinates: tuple[float, float] | None,
    policy: ShiftPolicy,
    now: datetime | None = None,
) -> Remoteness:
    """
    Classify a position against the shop geofence.

    Unknown when either side has no coordinates; unknown is never on-site.
    """
    if coordinates is None or policy.shop_location is None:
        status, distance = STATUS_UNKNOWN, None
    else:
        distance = haversine_distance_m(
            coordinates[0],
            coordinates[1],
            policy.shop_location.latitude,
            policy.shop_location.longitude,
        )
        if distance <= policy.geofence_radius_m:
            return Remoteness(status=STATUS_ON_SITE, distance_meters=distance)
        status = STATUS_REMOTE

    pre_approved = has_valid_remote_approval(
        employee_id=employee_id,
        shop_id=shop_id,
        tz_name=policy.timezone,
        now=now,
    )
    return Remoteness(status=status, distance_meters=distance, pre_approved=pre_approved)


def evaluate_remoteness(session: ShiftSession, policy: ShiftPolicy, *, now: datetime | None = None) -> Remoteness:
    """Remoteness of a session's clock-in position, evaluated as of now."""
    coordinates = None
    if session.has_location:
        coordinates = (session.clock_in_latitude, session.clock_in_longitude)
    return evaluate_location(
        employee_id=session.employee_id,
        shop_id=session.shop_id,
        coordinates=coordinates,
        policy=policy,
        now=now,
    )


def record_clock_in_request(
    *,
    session: ShiftSession,
    remoteness: Remoteness,
    now: datetime,
) -> ClockInRequest:
    """Queue a remote clock-in for supervisor review. Caller owns the transaction."""
    request = ClockInRequest(
        shop_id=session.shop_id,
        employee_id=session.employee_id,
        shift_session_id=session.id,
        requested_at=now,
        request_latitude=session.clock_in_latitude,
        request_longitude=session.clock_in_longitude,
        distance_from_shop_m=remoteness.distance_meters,
        status="PENDING",
    )
    db.session.add(request)
    return request


def list_pending_requests(shop_id: int) -> list[ClockInRequest]:
    return db.session.query(ClockInRequest).filter_by(
        shop_id=shop_id,
        status="PENDING",
    ).order_by(ClockInRequest.requested_at).all()


def resolve_clock_in_request(
    *,
    request_id: int,
    approve: bool,
    reviewed_by: str,
    notes: str | None = None,
    now: datetime | None = None,
) -> ClockInRequest:
    with atomic():
        request = lock_for_update(db.session.query(ClockInRequest).filter_by(id=request_id)).first()
        if not request:
            raise NotFoundError("Clock-in request not found")
        if request.status != "PENDING":
            raise ValidationError("Clock-in request already processed")

        request.status = "APPROVED" if approve else "REJECTED"
        request.reviewed_by = reviewed_by
        request.reviewed_at = now or utcnow()
        request.review_notes = notes
    return request

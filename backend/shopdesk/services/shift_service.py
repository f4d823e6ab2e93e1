# Overview: Service-layer operations for shift sessions; encapsulates business logic and database work.

"""
Shift Session Service

WHY: Employees clock in/out on shared devices. A shift session is the unit of
accountability: one open session per employee, tasks captured at clock-in,
and no clock-out until every captured task is done.

STATE MACHINE (per employee):
    NoSession -> OPEN (tasks pending) -> OPEN (tasks complete) -> CLOSED
CLOSED is terminal; a new OPEN session only starts from NoSession.

CONCURRENCY:
- Duplicate taps / two devices clocking in the same employee race on the
  partial unique index uq_shift_sessions_one_open. The loser rolls back and
  resumes the winner's session.
- Toggles and close are version-checked on the session row.

Every operation first requires a usable PIN (not expired, no forced change).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import (
    ConcurrentUpdateError,
    NotFoundError,
    RemoteClockInBlockedError,
    StoreError,
    TasksIncompleteError,
)
from ..extensions import db
from ..models import ClockInRequest, Employee, ShiftSession, Task
from . import geofence_service, pin_service
from .concurrency import atomic, lock_for_update
from .geofence_service import Remoteness
from .policy_service import ShiftPolicy
from shopdesk.time_utils import utcnow


@dataclass
class SessionResult:
    session: ShiftSession
    resumed: bool
    remoteness: Remoteness
    clock_in_request: ClockInRequest | None = None

    def to_dict(self) -> dict:
        return {
            "session": self.session.to_dict(),
            "resumed": self.resumed,
            "remoteness": self.remoteness.to_dict(),
            "clock_in_request_id": self.clock_in_request.id if self.clock_in_request else None,
        }


def compute_hours_worked(clock_in_time: datetime, clock_out_time: datetime) -> float:
    seconds = max((clock_out_time - clock_in_time).total_seconds(), 0)
    return round(seconds / 3600, 2)


def get_open_session(employee_id: int) -> ShiftSession | None:
    return db.session.query(ShiftSession).filter(
        ShiftSession.employee_id == employee_id,
        ShiftSession.clock_out_time.is_(None),
    ).first()


def list_open_sessions(shop_id: int) -> list[ShiftSession]:
    return db.session.query(ShiftSession).filter(
        ShiftSession.shop_id == shop_id,
        ShiftSession.clock_out_time.is_(None),
    ).order_by(ShiftSession.clock_in_time).all()


def get_employee_session(employee_id: int, session_id: int) -> ShiftSession:
    session = db.session.query(ShiftSession).filter_by(id=session_id, employee_id=employee_id).first()
    if not session:
        raise NotFoundError("Shift session not found")
    return session


def _task_snapshot(shop_id: int, employee_id: int) -> list[dict]:
    tasks = db.session.query(Task).filter_by(
        shop_id=shop_id,
        is_active=True,
    ).order_by(Task.sort_order, Task.id).all()
    return [
        {"task_id": t.id, "name": t.name, "completed": False}
        for t in tasks
        if t.applies_to(employee_id)
    ]


def _load_own_session(session_id: int, employee_id: int) -> ShiftSession:
    session = lock_for_update(
        db.session.query(ShiftSession).filter_by(id=session_id, employee_id=employee_id)
    ).first()
    if not session:
        raise NotFoundError("Shift session not found")
    return session


def open_or_resume_session(
    *,
    employee: Employee,
    policy: ShiftPolicy,
    latitude: float | None = None,
    longitude: float | None = None,
    now: datetime | None = None,
) -> SessionResult:
    """
    Clock in, or hand back the shift that is already open.

    Idempotent: repeated calls while a session is open return that session
    unchanged. Creating a new session snapshots the active tasks assigned to
    "all" or to this employee.

    Raises:
        PinChangeRequiredError / InactiveEmployeeError: PIN gate
        RemoteClockInBlockedError: shop requires approval for remote clock-in
        StoreError: persistence failure (nothing written)
    """
    now = now or utcnow()
    coordinates = geofence_service.validate_coordinates(latitude, longitude)
    pin_service.require_usable_pin(employee, now=now)
    employee_id, shop_id = employee.id, employee.shop_id

    existing = get_open_session(employee_id)
    if existing:
        return SessionResult(
            session=existing,
            resumed=True,
            remoteness=geofence_service.evaluate_remoteness(existing, policy, now=now),
        )

    remoteness = geofence_service.evaluate_location(
        employee_id=employee_id,
        shop_id=shop_id,
        coordinates=coordinates,
        policy=policy,
        now=now,
    )
    gate_applies = policy.remote_requires_approval and policy.shop_location is not None
    if gate_applies and not remoteness.on_site and not remoteness.pre_approved:
        raise RemoteClockInBlockedError(remoteness.distance_meters)

    session = ShiftSession(
        employee_id=employee_id,
        shop_id=shop_id,
        clock_in_time=now,
        tasks_assigned=_task_snapshot(shop_id, employee_id),
        clock_in_latitude=coordinates[0] if coordinates else None,
        clock_in_longitude=coordinates[1] if coordinates else None,
        distance_from_shop_m=remoteness.distance_meters,
        is_remote=None if remoteness.status == geofence_service.STATUS_UNKNOWN else not remoteness.on_site,
        remote_pre_approved=remoteness.pre_approved,
    )

    review = None
    try:
        db.session.add(session)
        db.session.flush()
        if remoteness.needs_review:
            review = geofence_service.record_clock_in_request(session=session, remoteness=remoteness, now=now)
        db.session.commit()
    except IntegrityError as exc:
        # Lost the race to another device: resume the session that won.
        db.session.rollback()
        winner = get_open_session(employee_id)
        if winner is None:
            raise ConcurrentUpdateError() from exc
        return SessionResult(
            session=winner,
            resumed=True,
            remoteness=geofence_service.evaluate_remoteness(winner, policy, now=now),
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreError() from exc

    return SessionResult(session=session, resumed=False, remoteness=remoteness, clock_in_request=review)


def toggle_task(
    *,
    employee: Employee,
    session_id: int,
    task_id: int,
    now: datetime | None = None,
) -> ShiftSession:
    """
    Flip the completed flag of one snapshot task on the employee's open shift.

    Raises NotFoundError if the session is closed, not theirs, or the task
    was not captured at clock-in.
    """
    now = now or utcnow()
    pin_service.require_usable_pin(employee, now=now)

    with atomic():
        session = _load_own_session(session_id, employee.id)
        if not session.is_open:
            raise NotFoundError("Shift session is closed")

        tasks = [dict(t) for t in (session.tasks_assigned or [])]
        for entry in tasks:
            if entry["task_id"] == task_id:
                entry["completed"] = not entry.get("completed", False)
                break
        else:
            raise NotFoundError("Task is not part of this shift", task_id=task_id)

        session.tasks_assigned = tasks
    return session


def close_session(
    *,
    employee: Employee,
    session_id: int,
    latitude: float | None = None,
    longitude: float | None = None,
    now: datetime | None = None,
) -> ShiftSession:
    """
    Clock out.

    Closing an already closed session returns it unchanged (double tap).

    Raises:
        TasksIncompleteError: carries the names of the unfinished tasks
    """
    now = now or utcnow()
    coordinates = geofence_service.validate_coordinates(latitude, longitude)
    pin_service.require_usable_pin(employee, now=now)

    with atomic():
        session = _load_own_session(session_id, employee.id)
        if not session.is_open:
            return session

        incomplete = session.incomplete_task_names
        if incomplete:
            raise TasksIncompleteError(incomplete)

        session.clock_out_time = now
        session.hours_worked = compute_hours_worked(session.clock_in_time, now)
        if coordinates:
            session.clock_out_latitude, session.clock_out_longitude = coordinates
    return session


def get_current_status(employee: Employee, *, now: datetime | None = None) -> dict:
    """Read-only view for the device after PIN entry."""
    pin_status = pin_service.check_pin_lifecycle(employee, now=now)
    session = get_open_session(employee.id)
    if not session:
        return {"status": "CLOCKED_OUT", "session": None, "incomplete_tasks": [], "pin": pin_status.to_dict()}

    return {
        "status": "CLOCKED_IN",
        "session": session.to_dict(),
        "incomplete_tasks": session.incomplete_task_names,
        "pin": pin_status.to_dict(),
    }

from __future__ import annotations

from ..extensions import db
from shopdesk.time_utils import to_utc_z


class ShiftSession(db.Model):
    """
    One continuous clock-in to clock-out period for an employee.

    LIFECYCLE:
    - OPEN: clock_out_time is NULL, tasks may be toggled
    - CLOSED: clock_out_time set (terminal). Only possible once every entry
      in tasks_assigned is completed.

    INVARIANT: at most one OPEN session per employee. Enforced by the partial
    unique index below, not by application reads.

    tasks_assigned is a snapshot taken at clock-in:
    [{"task_id": int, "name": str, "completed": bool}, ...]
    It is replaced (never mutated in place) so the change is flushed and
    version-checked.
    """
    __tablename__ = "shift_sessions"
    __table_args__ = (
        db.Index(
            "uq_shift_sessions_one_open",
            "employee_id",
            unique=True,
            sqlite_where=db.text("clock_out_time IS NULL"),
            postgresql_where=db.text("clock_out_time IS NULL"),
        ),
        db.Index("ix_shift_sessions_shop_clock_in", "shop_id", "clock_in_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    clock_in_time = db.Column(db.DateTime(timezone=True), nullable=False)
    clock_out_time = db.Column(db.DateTime(timezone=True), nullable=True)

    tasks_assigned = db.Column(db.JSON, nullable=False, default=list)

    # Derived at close, hours rounded to 2 decimals
    hours_worked = db.Column(db.Float, nullable=True)

    # Geofence metadata captured at clock-in
    clock_in_latitude = db.Column(db.Float, nullable=True)
    clock_in_longitude = db.Column(db.Float, nullable=True)
    distance_from_shop_m = db.Column(db.Float, nullable=True)
    is_remote = db.Column(db.Boolean, nullable=True)
    remote_pre_approved = db.Column(db.Boolean, nullable=True)

    clock_out_latitude = db.Column(db.Float, nullable=True)
    clock_out_longitude = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    employee = db.relationship("Employee", backref=db.backref("shift_sessions", lazy=True))
    shop = db.relationship("Shop", backref=db.backref("shift_sessions", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.clock_out_time is None

    @property
    def incomplete_task_names(self) -> list[str]:
        return [t["name"] for t in (self.tasks_assigned or []) if not t.get("completed")]

    @property
    def state(self) -> str:
        if not self.is_open:
            return "CLOSED"
        return "OPEN_TASKS_PENDING" if self.incomplete_task_names else "OPEN_TASKS_COMPLETE"

    @property
    def has_location(self) -> bool:
        return self.clock_in_latitude is not None and self.clock_in_longitude is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "shop_id": self.shop_id,
            "state": self.state,
            "clock_in_time": to_utc_z(self.clock_in_time),
            "clock_out_time": to_utc_z(self.clock_out_time) if self.clock_out_time else None,
            "tasks_assigned": [dict(t) for t in (self.tasks_assigned or [])],
            "hours_worked": self.hours_worked,
            "clock_in_latitude": self.clock_in_latitude,
            "clock_in_longitude": self.clock_in_longitude,
            "distance_from_shop_m": self.distance_from_shop_m,
            "is_remote": self.is_remote,
            "remote_pre_approved": self.remote_pre_approved,
            "version_id": self.version_id,
        }


class ClockInRequest(db.Model):
    """
    Supervisor review item created when a clock-in happens away from the
    shop without a valid remote approval.

    STATUS: PENDING -> APPROVED | REJECTED
    """
    __tablename__ = "clock_in_requests"
    __table_args__ = (
        db.Index("ix_clock_in_requests_shop_status", "shop_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    shift_session_id = db.Column(db.Integer, db.ForeignKey("shift_sessions.id"), nullable=True, index=True)

    requested_at = db.Column(db.DateTime(timezone=True), nullable=False)
    request_latitude = db.Column(db.Float, nullable=True)
    request_longitude = db.Column(db.Float, nullable=True)
    distance_from_shop_m = db.Column(db.Float, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    reviewed_by = db.Column(db.String(128), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    review_notes = db.Column(db.Text, nullable=True)

    shift_session = db.relationship("ShiftSession", backref=db.backref("clock_in_requests", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "employee_id": self.employee_id,
            "shift_session_id": self.shift_session_id,
            "requested_at": to_utc_z(self.requested_at),
            "request_latitude": self.request_latitude,
            "request_longitude": self.request_longitude,
            "distance_from_shop_m": self.distance_from_shop_m,
            "status": self.status,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": to_utc_z(self.reviewed_at) if self.reviewed_at else None,
            "review_notes": self.review_notes,
        }

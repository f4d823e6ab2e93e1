from __future__ import annotations

from ..extensions import db
from shopdesk.time_utils import to_utc_z


class Employee(db.Model):
    """
    Staff member who clocks in on the shop tablet or a handset.

    PIN: 4 digits, bcrypt hashed in pin_hash. pin_lookup is an HMAC of
    (shop, pin) compared in constant time to pick the candidate whose
    bcrypt hash is then checked.
    pin_expires_at is always pin_set_at + PIN_TTL_DAYS once a PIN is set.

    LIFECYCLE: created by an admin screen, never deleted, only deactivated.
    """
    __tablename__ = "employees"
    __table_args__ = (
        db.Index("ix_employees_shop_active", "shop_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=True)

    pin_hash = db.Column(db.String(255), nullable=True)
    pin_lookup = db.Column(db.String(64), nullable=True)
    pin_set_at = db.Column(db.DateTime(timezone=True), nullable=True)
    pin_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    pin_change_required = db.Column(db.Boolean, nullable=False, default=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    shop = db.relationship("Shop", backref=db.backref("employees", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def display_name(self) -> str:
        if self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "display_name": self.display_name,
            "pin_set_at": to_utc_z(self.pin_set_at) if self.pin_set_at else None,
            "pin_expires_at": to_utc_z(self.pin_expires_at) if self.pin_expires_at else None,
            "pin_change_required": self.pin_change_required,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Task(db.Model):
    """
    Task definition maintained by the task list screens.

    assigned_to is "all" (every employee of the shop) or "selected"
    (only the ids in assigned_employee_ids). Shift sessions copy the
    applicable active tasks at clock-in; later edits do not touch open shifts.
    """
    __tablename__ = "tasks"
    __table_args__ = (
        db.Index("ix_tasks_shop_active", "shop_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    assigned_to = db.Column(db.String(16), nullable=False, default="all")  # all, selected
    assigned_employee_ids = db.Column(db.JSON, nullable=False, default=list)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shop = db.relationship("Shop", backref=db.backref("tasks", lazy=True))

    def applies_to(self, employee_id: int) -> bool:
        if self.assigned_to == "all":
            return True
        return employee_id in (self.assigned_employee_ids or [])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "name": self.name,
            "description": self.description,
            "assigned_to": self.assigned_to,
            "assigned_employee_ids": list(self.assigned_employee_ids or []),
            "is_active": self.is_active,
        }


class RemoteApproval(db.Model):
    """
    Admin-granted exception allowing an employee to clock in away from the shop.

    days_of_week uses 0=Sunday .. 6=Saturday (the convention of the admin
    screens that write these rows). Read-only to the engines.
    """
    __tablename__ = "remote_clock_in_approvals"
    __table_args__ = (
        db.Index("ix_remote_approvals_employee_active", "employee_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    days_of_week = db.Column(db.JSON, nullable=False, default=list)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    employee = db.relationship("Employee", backref=db.backref("remote_approvals", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "shop_id": self.shop_id,
            "days_of_week": list(self.days_of_week or []),
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "is_active": self.is_active,
            "notes": self.notes,
        }

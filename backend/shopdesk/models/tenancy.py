from __future__ import annotations

from ..extensions import db
from shopdesk.time_utils import to_utc_z


class Shop(db.Model):
    """
    Multi-tenant root: every row the engines touch is scoped by shop_id.

    Settings columns (coordinates, geofence, reward threshold) are edited by
    the settings screens. Engines never read them directly; they receive a
    policy built from this row (see policy_service).

    BILLING: plan_type / payment_status / grace_until can flip underneath the
    engines at any time (billing webhook). Nothing in the core depends on them.
    """
    __tablename__ = "shops"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_shops_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(64), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    timezone = db.Column(db.String(64), nullable=False, default="UTC")

    # Geofence
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    geofence_radius_m = db.Column(db.Float, nullable=True)  # NULL -> app default
    remote_requires_approval = db.Column(db.Boolean, nullable=True)  # NULL -> app default

    # Loyalty
    points_needed = db.Column(db.Integer, nullable=False, default=10)
    points_per_visit = db.Column(db.Integer, nullable=False, default=1)
    reward_description = db.Column(db.String(255), nullable=False, default="Free reward")

    # Billing (written by billing_service only)
    plan_type = db.Column(db.String(32), nullable=False, default="basic")
    original_plan_type = db.Column(db.String(32), nullable=True)
    payment_status = db.Column(db.String(32), nullable=False, default="ok")  # ok, grace, past_due
    grace_until = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Shop id={self.id} name={self.name!r}>"

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "timezone": self.timezone,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "geofence_radius_m": self.geofence_radius_m,
            "points_needed": self.points_needed,
            "points_per_visit": self.points_per_visit,
            "reward_description": self.reward_description,
            "plan_type": self.plan_type,
            "payment_status": self.payment_status,
            "grace_until": to_utc_z(self.grace_until) if self.grace_until else None,
            "created_at": to_utc_z(self.created_at),
        }

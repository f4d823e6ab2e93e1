from __future__ import annotations

from ..extensions import db
from shopdesk.time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Security event audit log (PIN attempts, lock-outs).

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    identifier is the throttle key, e.g. "shop:3:device:tablet-1".
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_identifier_type", "identifier", "event_type"),
        db.Index("ix_security_events_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # PIN_FAILED, PIN_SUCCESS
    identifier = db.Column(db.String(128), nullable=False)
    success = db.Column(db.Boolean, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "employee_id": self.employee_id,
            "event_type": self.event_type,
            "identifier": self.identifier,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }

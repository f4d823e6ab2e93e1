from __future__ import annotations

from ..extensions import db
from shopdesk.time_utils import to_utc_z


class Customer(db.Model):
    """
    Loyalty customer, keyed by digits-only phone within a shop.

    current_points is a denormalized balance; the authoritative history is
    loyalty_transactions. The two must always reconcile:
    current_points == sum(points_change) and current_points >= 0.

    Mutated only through loyalty_service. version_id makes two devices
    writing the same customer conflict instead of overwriting each other.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "phone", name="uq_customers_shop_phone"),
        db.CheckConstraint("current_points >= 0", name="ck_customers_points_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    phone = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(255), nullable=True)

    current_points = db.Column(db.Integer, nullable=False, default=0)
    total_visits = db.Column(db.Integer, nullable=False, default=0)
    rewards_redeemed = db.Column(db.Integer, nullable=False, default=0)
    last_visit_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    shop = db.relationship("Shop", backref=db.backref("customers", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def reward_ready(self, points_needed: int) -> bool:
        return self.current_points >= points_needed

    def to_dict(self, points_needed: int | None = None) -> dict:
        data = {
            "id": self.id,
            "shop_id": self.shop_id,
            "phone": self.phone,
            "name": self.name,
            "current_points": self.current_points,
            "total_visits": self.total_visits,
            "rewards_redeemed": self.rewards_redeemed,
            "last_visit_at": to_utc_z(self.last_visit_at) if self.last_visit_at else None,
            "created_at": to_utc_z(self.created_at),
        }
        if points_needed is not None:
            data["points_needed"] = points_needed
            data["reward_ready"] = self.reward_ready(points_needed)
            data["points_remaining"] = max(points_needed - self.current_points, 0)
        return data


class LoyaltyTransaction(db.Model):
    """
    Append-only ledger of point events.

    TRANSACTION TYPES:
    - point_added: visit check-in, positive points_change
    - reward_redeemed: balance reset, negative points_change

    AUDIT: balance_after == previous balance_after + points_change.
    IMMUTABLE: rows are never updated or deleted.
    """
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        db.Index("ix_loyalty_txns_customer_occurred", "customer_id", "occurred_at"),
        db.CheckConstraint("balance_after >= 0", name="ck_loyalty_txns_balance_non_negative"),
        {"sqlite_autoincrement": True},
    )

    TYPE_POINT_ADDED = "point_added"
    TYPE_REWARD_REDEEMED = "reward_redeemed"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)
    points_change = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)

    acting_employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    customer = db.relationship("Customer", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "shop_id": self.shop_id,
            "transaction_type": self.transaction_type,
            "points_change": self.points_change,
            "balance_after": self.balance_after,
            "acting_employee_id": self.acting_employee_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }

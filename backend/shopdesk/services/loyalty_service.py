# Overview: Service-layer operations for the customer loyalty ledger; check-ins, redemptions and audits.

"""
Loyalty Ledger Service

WHY: Every point a customer holds must be explainable. customers.current_points
is a cached balance; loyalty_transactions is the append-only history that
justifies it.

INVARIANTS:
- current_points == sum(points_change) over the customer's transactions
- balance_after == previous balance_after + points_change
- current_points >= 0
- balance change and its transaction row are committed together or not at all

COOLDOWN: any transaction in the last cooldown_minutes blocks a new point.
A customer created by this check-in has no history and is exempt.

CONCURRENCY: the customer row is read FOR UPDATE and version-checked, so two
devices checking in the same phone cannot both win; the loser gets
ConcurrentUpdateError and, on retry, the cooldown.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime

from ..errors import CooldownError, NotEligibleError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, LoyaltyTransaction
from .concurrency import atomic, lock_for_update
from .policy_service import LoyaltyPolicy
from shopdesk.time_utils import minutes_between, utcnow


PHONE_MIN_DIGITS = 7
PHONE_MAX_DIGITS = 15
_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone) -> str:
    """Digits only. "07700 900-000" -> "07700900000"."""
    digits = _NON_DIGITS.sub("", str(phone or ""))
    if not (PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS):
        raise ValidationError("Please enter a valid phone number", field="phone")
    return digits


@dataclass
class CustomerLookup:
    phone: str
    customer: Customer | None = None

    @property
    def is_new(self) -> bool:
        return self.customer is None

    def to_dict(self, policy: LoyaltyPolicy) -> dict:
        if self.customer is None:
            return {
                "is_new": True,
                "phone": self.phone,
                "customer": None,
                "points_needed": policy.points_needed,
                "reward_description": policy.reward_description,
            }
        return {
            "is_new": False,
            "phone": self.phone,
            "customer": self.customer.to_dict(points_needed=policy.points_needed),
            "points_needed": policy.points_needed,
            "reward_description": policy.reward_description,
        }


@dataclass
class LedgerResult:
    customer: Customer
    transaction: LoyaltyTransaction
    created: bool = False

    def to_dict(self, policy: LoyaltyPolicy) -> dict:
        return {
            "customer": self.customer.to_dict(points_needed=policy.points_needed),
            "transaction": self.transaction.to_dict(),
            "created": self.created,
            "reward_description": policy.reward_description,
        }


def _find_customer(shop_id: int, phone: str, *, for_update: bool = False) -> Customer | None:
    query = db.session.query(Customer).filter_by(shop_id=shop_id, phone=phone)
    if for_update:
        query = lock_for_update(query)
    return query.first()


def _last_transaction(customer_id: int) -> LoyaltyTransaction | None:
    return db.session.query(LoyaltyTransaction).filter_by(
        customer_id=customer_id,
    ).order_by(LoyaltyTransaction.occurred_at.desc(), LoyaltyTransaction.id.desc()).first()


def lookup_or_init_customer(shop_id: int, phone) -> CustomerLookup:
    """Read-only: the customer for this phone, or a marker that one would be created."""
    normalized = normalize_phone(phone)
    return CustomerLookup(phone=normalized, customer=_find_customer(shop_id, normalized))


def cooldown_remaining_minutes(last_at: datetime | None, now: datetime, cooldown_minutes: int) -> int:
    """Whole minutes left before another point may be added (0 when clear)."""
    if last_at is None:
        return 0
    elapsed = max(minutes_between(last_at, now), 0.0)
    if elapsed >= cooldown_minutes:
        return 0
    return math.ceil(cooldown_minutes - elapsed)


def _append(
    customer: Customer,
    *,
    transaction_type: str,
    points_change: int,
    acting_employee_id: int | None,
    now: datetime,
) -> LoyaltyTransaction:
    txn = LoyaltyTransaction(
        customer_id=customer.id,
        shop_id=customer.shop_id,
        transaction_type=transaction_type,
        points_change=points_change,
        balance_after=customer.current_points,
        acting_employee_id=acting_employee_id,
        occurred_at=now,
    )
    db.session.add(txn)
    return txn


def award_point(
    *,
    shop_id: int,
    phone,
    policy: LoyaltyPolicy,
    acting_employee_id: int | None = None,
    name: str | None = None,
    now: datetime | None = None,
) -> LedgerResult:
    """
    Visit check-in: add policy.points_per_visit to the customer's balance.

    Creates the customer on first visit.

    Raises:
        CooldownError: a transaction happened less than cooldown_minutes ago
        ConcurrentUpdateError: another device wrote this customer first
    """
    now = now or utcnow()
    normalized = normalize_phone(phone)

    with atomic():
        customer = _find_customer(shop_id, normalized, for_update=True)
        created = customer is None

        if created:
            customer = Customer(
                shop_id=shop_id,
                phone=normalized,
                name=name.strip() if name and name.strip() else None,
                current_points=0,
                total_visits=0,
                rewards_redeemed=0,
            )
            db.session.add(customer)
            db.session.flush()
        else:
            last = _last_transaction(customer.id)
            remaining = cooldown_remaining_minutes(
                last.occurred_at if last else None, now, policy.cooldown_minutes
            )
            if remaining > 0:
                raise CooldownError(remaining)
            if name and name.strip() and not customer.name:
                customer.name = name.strip()

        customer.current_points += policy.points_per_visit
        customer.total_visits += 1
        customer.last_visit_at = now
        txn = _append(
            customer,
            transaction_type=LoyaltyTransaction.TYPE_POINT_ADDED,
            points_change=policy.points_per_visit,
            acting_employee_id=acting_employee_id,
            now=now,
        )
    return LedgerResult(customer=customer, transaction=txn, created=created)


def redeem_reward(
    *,
    shop_id: int,
    phone,
    policy: LoyaltyPolicy,
    acting_employee_id: int | None = None,
    now: datetime | None = None,
) -> LedgerResult:
    """
    Exchange the balance for the shop's reward.

    The balance resets to 0 and the transaction records the full balance
    removed, so the replayed sum still equals current_points. A redemption
    counts as a visit.

    Raises:
        NotFoundError: no customer with this phone
        NotEligibleError: balance below policy.points_needed (nothing written)
    """
    now = now or utcnow()
    normalized = normalize_phone(phone)

    with atomic():
        customer = _find_customer(shop_id, normalized, for_update=True)
        if not customer:
            raise NotFoundError("Customer not found", phone=normalized)
        if not customer.reward_ready(policy.points_needed):
            raise NotEligibleError(customer.current_points, policy.points_needed)

        previous = customer.current_points
        customer.current_points = 0
        customer.total_visits += 1
        customer.rewards_redeemed += 1
        customer.last_visit_at = now
        txn = _append(
            customer,
            transaction_type=LoyaltyTransaction.TYPE_REWARD_REDEEMED,
            points_change=-previous,
            acting_employee_id=acting_employee_id,
            now=now,
        )
    return LedgerResult(customer=customer, transaction=txn)


def get_balance(shop_id: int, phone, policy: LoyaltyPolicy) -> dict:
    """Customer self-service view. Read-only; unknown phones raise NotFoundError."""
    normalized = normalize_phone(phone)
    customer = _find_customer(shop_id, normalized)
    if not customer:
        raise NotFoundError("No loyalty account found for this phone number", phone=normalized)

    return {
        "name": customer.name,
        "current_points": customer.current_points,
        "points_needed": policy.points_needed,
        "points_remaining": max(policy.points_needed - customer.current_points, 0),
        "reward_ready": customer.reward_ready(policy.points_needed),
        "reward_description": policy.reward_description,
        "total_visits": customer.total_visits,
        "rewards_redeemed": customer.rewards_redeemed,
    }


def list_transactions(customer_id: int) -> list[LoyaltyTransaction]:
    return db.session.query(LoyaltyTransaction).filter_by(
        customer_id=customer_id,
    ).order_by(LoyaltyTransaction.occurred_at, LoyaltyTransaction.id).all()


# =============================================================================
# AUDIT
# =============================================================================

def audit_customer_ledger(customer_id: int) -> dict:
    """
    Replay a customer's transactions and report every disagreement.

    Returns {"customer_id", "ok", "replayed_balance", "current_points", "problems"}.
    """
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if not customer:
        raise NotFoundError("Customer not found")

    problems = []
    running = 0
    for txn in list_transactions(customer_id):
        running += txn.points_change
        if txn.balance_after != running:
            problems.append({
                "transaction_id": txn.id,
                "issue": "balance_after_mismatch",
                "expected": running,
                "actual": txn.balance_after,
            })
        if running < 0:
            problems.append({"transaction_id": txn.id, "issue": "negative_balance", "actual": running})

    if running != customer.current_points:
        problems.append({
            "transaction_id": None,
            "issue": "current_points_mismatch",
            "expected": running,
            "actual": customer.current_points,
        })

    return {
        "customer_id": customer.id,
        "ok": not problems,
        "replayed_balance": running,
        "current_points": customer.current_points,
        "problems": problems,
    }


def audit_shop_ledgers(shop_id: int) -> list[dict]:
    """Audit every customer of a shop; returns only the failing reports."""
    ids = [row.id for row in db.session.query(Customer.id).filter_by(shop_id=shop_id).order_by(Customer.id)]
    reports = (audit_customer_ledger(cid) for cid in ids)
    return [r for r in reports if not r["ok"]]

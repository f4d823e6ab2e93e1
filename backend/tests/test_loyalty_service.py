from datetime import datetime, timedelta

import pytest

from shopdesk.errors import CooldownError, NotEligibleError, NotFoundError, ValidationError
from shopdesk.models import Customer, LoyaltyTransaction
from shopdesk.services import loyalty_service
from shopdesk.services.policy_service import LoyaltyPolicy


PHONE = "07700900000"


def _assert_ledger_consistent(customer_id):
    report = loyalty_service.audit_customer_ledger(customer_id)
    assert report["ok"], report["problems"]


@pytest.mark.parametrize("raw", ["07700 900000", "(0770) 090-0000", "07700900000"])
def test_normalize_phone(raw):
    assert loyalty_service.normalize_phone(raw) == PHONE


@pytest.mark.parametrize("raw", ["", None, "123", "1" * 16, "phone"])
def test_normalize_phone_rejects(raw):
    with pytest.raises(ValidationError):
        loyalty_service.normalize_phone(raw)


def test_cooldown_remaining_minutes():
    t0 = datetime(2026, 10, 18, 12, 0)
    assert loyalty_service.cooldown_remaining_minutes(None, t0, 30) == 0
    assert loyalty_service.cooldown_remaining_minutes(t0, t0, 30) == 30
    assert loyalty_service.cooldown_remaining_minutes(t0, t0 + timedelta(minutes=23), 30) == 7
    assert loyalty_service.cooldown_remaining_minutes(t0, t0 + timedelta(minutes=29, seconds=1), 30) == 1
    assert loyalty_service.cooldown_remaining_minutes(t0, t0 + timedelta(minutes=30), 30) == 0
    # Clock skew: a transaction "in the future" counts as just now
    assert loyalty_service.cooldown_remaining_minutes(t0 + timedelta(minutes=5), t0, 30) == 30


def test_lookup_new_and_existing(db_session, shop, loyalty_policy, now):
    lookup = loyalty_service.lookup_or_init_customer(shop.id, "07700 900000")
    assert lookup.is_new
    assert lookup.phone == PHONE
    assert db_session.query(Customer).count() == 0

    loyalty_service.award_point(shop_id=shop.id, phone=PHONE, policy=loyalty_policy, now=now)
    lookup = loyalty_service.lookup_or_init_customer(shop.id, PHONE)
    assert not lookup.is_new
    data = lookup.to_dict(loyalty_policy)
    assert data["customer"]["current_points"] == 1
    assert data["customer"]["reward_ready"] is False


def test_loyalty_scenario(db_session, shop, employee, loyalty_policy, now):
    result = loyalty_service.award_point(
        shop_id=shop.id, phone=PHONE, policy=loyalty_policy, acting_employee_id=employee.id, now=now
    )
    assert result.created
    assert result.customer.current_points == 1

    for i in range(1, 10):
        result = loyalty_service.award_point(
            shop_id=shop.id, phone=PHONE, policy=loyalty_policy, now=now + timedelta(minutes=30 * i)
        )
    customer = result.customer
    assert customer.current_points == 10
    assert customer.total_visits == 10
    assert customer.reward_ready(loyalty_policy.points_needed)

    redeemed = loyalty_service.redeem_reward(
        shop_id=shop.id, phone=PHONE, policy=loyalty_policy, now=now + timedelta(hours=6)
    )
    assert redeemed.customer.current_points == 0
    assert redeemed.customer.rewards_redeemed == 1
    assert redeemed.customer.total_visits == 11
    assert redeemed.transaction.transaction_type == LoyaltyTransaction.TYPE_REWARD_REDEEMED
    assert redeemed.transaction.points_change == -10
    assert redeemed.transaction.balance_after == 0

    _assert_ledger_consistent(customer.id)


def test_cooldown_blocks_award(db_session, shop, loyalty_policy, now):
    first = loyalty_service.award_point(shop_id=shop.id, phone=PHONE, policy=loyalty_policy, now=now)

    with pytest.raises(CooldownError) as exc:
        loyalty_service.award_point(
            shop_id=shop.id, phone=PHONE, policy=loyalty_policy, now=now + timedelta(minutes=23)
        )
    assert exc.value.remaining_minutes == 7
    assert "7 more minutes" in exc.value.message

    db_session.refresh(first.customer)
    assert first.customer.current_points == 1
    assert db_session.query(LoyaltyTransaction).count() == 1

    ok = loyalty_service.award_point(
        shop_id=shop.id, phone=PHONE, policy=loyalty_policy, now=now + timedelta(minutes=30)
    )
    assert ok.customer.current_points == 2


def test_redemption_starts_cooldown(db_session, shop, loyalty_policy, now):
    db_session.add(Customer(shop_id=shop.id, phone=PHONE, current_points=0))
    db_session.commit()
    policy = LoyaltyPolicy(points_needed=1, cooldown_minutes=30)

    loyalty_service.award_point(shop_id=shop.id, phone=PHONE, policy=policy, now=now)
    loyalty_service.redeem_reward(shop_id=shop.id, phone=PHONE, policy=policy, now=now + timedelta(minutes=40))

    with pytest.raises(CooldownError):
        loyalty_service.award_point(shop_id=shop.id, phone=PHONE, policy=policy, now=now + timedelta(minutes=45))


def test_points_per_visit(db_session, shop, now):
    policy = LoyaltyPolicy(points_needed=10, points_per_visit=3)
    result = loyalty_service.award_point(shop_id=shop.id, phone=PHONE, policy=policy, now=now)
    assert result.customer.current_points == 3
    assert result.transaction.points_change == 3
    assert result.transaction.balance_after == 3


def test_not_eligible_never_mutates(db_session, shop, loyalty_policy, now):
    for i in range(3):
        loyalty_service.award_point(
            shop_id=shop.id, phone=PHONE, policy=loyalty_policy, now=now + timedelta(hours=i)
        )
    customer = db_session.query(Customer).one()
    before = (customer.current_points, customer.total_visits, customer.rewards_redeemed, customer.version_id)

    with pytest.raises(NotEligibleError) as exc:
        loyalty_service.redeem_reward(shop_id=shop.id, phone=PHONE, policy=loyalty_policy, now=now + timedelta(hours=4))
    assert exc.value.details["current_points"] == 3
    assert exc.value.details["required_points"] == 10
    assert exc.value.points_short == 7

    db_session.refresh(customer)
    assert (customer.current_points, customer.total_visits, customer.rewards_redeemed, customer.version_id) == before
    assert db_session.query(LoyaltyTransaction).count() == 3


def test_redeem_unknown_customer(db_session, shop, loyalty_policy):
    with pytest.raises(NotFoundError):
        loyalty_service.redeem_reward(shop_id=shop.id, phone=PHONE, policy=loyalty_policy)


def test_redeem_above_threshold_clears_whole_balance(db_session, shop, now):
    policy = LoyaltyPolicy(points_needed=4, points_per_visit=3)
    loyalty_service.award_point(shop_id=shop.id, phone=PHONE, policy=policy, now=now)
    result = loyalty_service.award_point(shop_id=shop.id, phone=PHONE, policy=policy, now=now + timedelta(hours=1))
    assert result.customer.current_points == 6

    redeemed = loyalty_service.redeem_reward(shop_id=shop.id, phone=PHONE, policy=policy, now=now + timedelta(hours=2))
    assert redeemed.customer.current_points == 0
    assert redeemed.transaction.points_change == -6
    _assert_ledger_consistent(redeemed.customer.id)


def test_customers_are_shop_scoped(db_session, shop, other_shop, loyalty_policy, now):
    loyalty_service.award_point(shop_id=shop.id, phone=PHONE, policy=loyalty_policy, now=now)
    other = loyalty_service.award_point(shop_id=other_shop.id, phone=PHONE, policy=loyalty_policy, now=now)
    assert other.created
    assert db_session.query(Customer).count() == 2


def test_get_balance(db_session, shop, loyalty_policy, now):
    with pytest.raises(NotFoundError):
        loyalty_service.get_balance(shop.id, PHONE, loyalty_policy)

    loyalty_service.award_point(shop_id=shop.id, phone=PHONE, policy=loyalty_policy, now=now)
    balance = loyalty_service.get_balance(shop.id, PHONE, loyalty_policy)
    assert balance["current_points"] == 1
    assert balance["points_remaining"] == 9
    assert balance["reward_ready"] is False
    assert db_session.query(LoyaltyTransaction).count() == 1


def test_audit_detects_tampering(db_session, shop, loyalty_policy, now):
    result = loyalty_service.award_point(shop_id=shop.id, phone=PHONE, policy=loyalty_policy, now=now)
    customer_id = result.customer.id
    _assert_ledger_consistent(customer_id)

    customer = db_session.query(Customer).filter_by(id=customer_id).one()
    customer.current_points = 5
    db_session.commit()

    report = loyalty_service.audit_customer_ledger(customer_id)
    assert not report["ok"]
    assert report["problems"][0]["issue"] == "current_points_mismatch"
    assert [r["customer_id"] for r in loyalty_service.audit_shop_ledgers(shop.id)] == [customer_id]

from datetime import date, datetime, timedelta

import pytest

from shopdesk.errors import ValidationError
from shopdesk.models import RemoteApproval
from shopdesk.services import geofence_service
from shopdesk.services.policy_service import ShiftPolicy, ShopLocation

from conftest import SHOP_LAT, SHOP_LON


def test_haversine_zero_for_same_point():
    assert geofence_service.haversine_distance_m(SHOP_LAT, SHOP_LON, SHOP_LAT, SHOP_LON) == pytest.approx(0.0)


def test_haversine_known_distance():
    # One degree of latitude is ~111.2 km on a 6371 km sphere
    d = geofence_service.haversine_distance_m(0.0, 0.0, 1.0, 0.0)
    assert d == pytest.approx(111_195, rel=1e-3)


def test_haversine_is_symmetric():
    a = geofence_service.haversine_distance_m(51.5, -0.12, 48.85, 2.35)
    b = geofence_service.haversine_distance_m(48.85, 2.35, 51.5, -0.12)
    assert a == pytest.approx(b)


def test_validate_coordinates():
    assert geofence_service.validate_coordinates(None, None) is None
    assert geofence_service.validate_coordinates("51.5", -0.1) == (51.5, -0.1)
    with pytest.raises(ValidationError):
        geofence_service.validate_coordinates(51.5, None)
    with pytest.raises(ValidationError):
        geofence_service.validate_coordinates(91, 0)
    with pytest.raises(ValidationError):
        geofence_service.validate_coordinates(0, "east")


def test_sunday_based_weekday():
    assert geofence_service.sunday_based_weekday(date(2026, 10, 18)) == 0  # Sunday
    assert geofence_service.sunday_based_weekday(date(2026, 10, 19)) == 1
    assert geofence_service.sunday_based_weekday(date(2026, 10, 24)) == 6


def test_local_today_uses_shop_timezone():
    # 23:30 UTC on the 17th is already the 18th in Sydney
    instant = datetime(2026, 10, 17, 23, 30)
    assert geofence_service.local_today(instant, "UTC") == date(2026, 10, 17)
    assert geofence_service.local_today(instant, "Australia/Sydney") == date(2026, 10, 18)
    assert geofence_service.local_today(instant, "Not/AZone") == date(2026, 10, 17)


def test_approval_valid_on_checks_range_days_and_active():
    approval = RemoteApproval(
        days_of_week=[1, 3],  # Monday, Wednesday
        start_date=date(2026, 10, 1),
        end_date=date(2026, 10, 31),
        is_active=True,
    )
    assert geofence_service.approval_valid_on(approval, date(2026, 10, 19))  # Monday
    assert not geofence_service.approval_valid_on(approval, date(2026, 10, 20))  # Tuesday
    assert not geofence_service.approval_valid_on(approval, date(2026, 11, 2))  # Monday, after end

    approval.is_active = False
    assert not geofence_service.approval_valid_on(approval, date(2026, 10, 19))


def test_evaluate_location_on_site(db_session, employee, shift_policy, now):
    result = geofence_service.evaluate_location(
        employee_id=employee.id,
        shop_id=employee.shop_id,
        coordinates=(SHOP_LAT + 0.0005, SHOP_LON),  # ~56 m
        policy=shift_policy,
        now=now,
    )
    assert result.on_site
    assert result.distance_meters < 100
    assert not result.needs_review


def test_evaluate_location_remote_without_approval(db_session, employee, shift_policy, now):
    result = geofence_service.evaluate_location(
        employee_id=employee.id,
        shop_id=employee.shop_id,
        coordinates=(SHOP_LAT + 0.01, SHOP_LON),  # ~1.1 km
        policy=shift_policy,
        now=now,
    )
    assert result.status == geofence_service.STATUS_REMOTE
    assert result.distance_meters > 1000
    assert result.needs_review


def test_evaluate_location_remote_with_todays_approval(db_session, employee, shift_policy, now):
    today = now.date()
    db_session.add(RemoteApproval(
        employee_id=employee.id,
        shop_id=employee.shop_id,
        days_of_week=[geofence_service.sunday_based_weekday(today)],
        start_date=today - timedelta(days=7),
        end_date=today + timedelta(days=7),
        is_active=True,
    ))
    db_session.commit()

    result = geofence_service.evaluate_location(
        employee_id=employee.id,
        shop_id=employee.shop_id,
        coordinates=(SHOP_LAT + 0.01, SHOP_LON),
        policy=shift_policy,
        now=now,
    )
    assert result.status == geofence_service.STATUS_REMOTE
    assert result.pre_approved
    assert not result.needs_review


def test_unknown_location_is_not_on_site(db_session, employee, now):
    no_shop_location = ShiftPolicy(shop_location=None)
    result = geofence_service.evaluate_location(
        employee_id=employee.id,
        shop_id=employee.shop_id,
        coordinates=(SHOP_LAT, SHOP_LON),
        policy=no_shop_location,
        now=now,
    )
    assert result.status == geofence_service.STATUS_UNKNOWN
    assert not result.on_site
    assert result.distance_meters is None


def test_radius_comes_from_policy(db_session, employee, now):
    wide = ShiftPolicy(shop_location=ShopLocation(SHOP_LAT, SHOP_LON), geofence_radius_m=2000)
    result = geofence_service.evaluate_location(
        employee_id=employee.id,
        shop_id=employee.shop_id,
        coordinates=(SHOP_LAT + 0.01, SHOP_LON),
        policy=wide,
        now=now,
    )
    assert result.on_site

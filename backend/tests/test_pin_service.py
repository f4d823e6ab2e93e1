from datetime import timedelta

import pytest

from shopdesk.errors import (
    InactiveEmployeeError,
    InvalidCredentialError,
    PinChangeRequiredError,
    PinLockedError,
    ValidationError,
)
from shopdesk.models import SecurityEvent
from shopdesk.services import pin_service, pin_throttle_service


def test_create_employee_hashes_pin_and_requires_change(db_session, shop, now):
    employee = pin_service.create_employee(shop_id=shop.id, first_name="Ben", pin="4321", now=now)

    assert employee.pin_hash != "4321"
    assert employee.pin_change_required is True
    assert employee.pin_expires_at == now + timedelta(days=30)

    status = pin_service.check_pin_lifecycle(employee, now=now)
    assert status.must_change
    assert status.reason == "change_required"


@pytest.mark.parametrize("bad_pin", ["123", "12345", "12a4", "", None, 1234])
def test_pin_format_rejected(db_session, shop, bad_pin):
    with pytest.raises(ValidationError):
        pin_service.create_employee(shop_id=shop.id, first_name="Ben", pin=bad_pin)


def test_verify_pin_returns_matching_employee(db_session, make_employee):
    ana = make_employee("Ana", "1111")
    make_employee("Ben", "2222")

    assert pin_service.verify_pin(ana.shop_id, "1111").id == ana.id


def test_verify_pin_wrong_pin(db_session, employee):
    with pytest.raises(InvalidCredentialError):
        pin_service.verify_pin(employee.shop_id, "9999")


def test_verify_pin_is_scoped_to_shop(db_session, employee, other_shop):
    with pytest.raises(InvalidCredentialError):
        pin_service.verify_pin(other_shop.id, "1234")


def test_verify_pin_inactive_employee(db_session, employee):
    pin_service.deactivate_employee(employee.id)
    with pytest.raises(InactiveEmployeeError):
        pin_service.verify_pin(employee.shop_id, "1234")


def test_shared_pin_is_ambiguous_until_name_selected(db_session, make_employee):
    ana = make_employee("Ana", "1234")
    ben = make_employee("Ben", "1234")

    with pytest.raises(InvalidCredentialError) as exc:
        pin_service.verify_pin(ana.shop_id, "1234")
    assert exc.value.details["ambiguous"] is True

    assert pin_service.verify_pin(ana.shop_id, "1234", employee_id=ben.id).id == ben.id


def test_pin_expiry_is_inclusive(db_session, employee):
    expires_at = employee.pin_expires_at

    assert not pin_service.check_pin_lifecycle(employee, now=expires_at - timedelta(seconds=1)).must_change

    status = pin_service.check_pin_lifecycle(employee, now=expires_at)
    assert status.must_change
    assert status.reason == "expired"

    with pytest.raises(PinChangeRequiredError):
        pin_service.require_usable_pin(employee, now=expires_at)


def test_change_pin_clears_requirement_and_restarts_expiry(db_session, shop, now):
    employee = pin_service.create_employee(shop_id=shop.id, first_name="Cara", pin="1234", now=now)
    later = now + timedelta(days=40)

    updated = pin_service.change_pin(employee_id=employee.id, new_pin="5678", confirm_pin="5678", now=later)

    assert updated.pin_change_required is False
    assert updated.pin_set_at == later
    assert updated.pin_expires_at == later + timedelta(days=30)
    assert not pin_service.check_pin_lifecycle(updated, now=later).must_change
    assert pin_service.verify_pin(shop.id, "5678").id == employee.id


def test_change_pin_rejects_mismatch_without_writing(db_session, employee):
    old_hash = employee.pin_hash
    with pytest.raises(ValidationError):
        pin_service.change_pin(employee_id=employee.id, new_pin="5678", confirm_pin="5679")
    db_session.refresh(employee)
    assert employee.pin_hash == old_hash


def test_require_pin_change(db_session, employee, now):
    pin_service.require_pin_change(employee.id)
    with pytest.raises(PinChangeRequiredError):
        pin_service.require_usable_pin(employee, now=now)


# =============================================================================
# THROTTLE
# =============================================================================

def test_throttle_locks_after_five_failures(db_session, employee, now):
    for i in range(4):
        with pytest.raises(InvalidCredentialError):
            pin_throttle_service.verify_pin_throttled(
                employee.shop_id, "0000", device_id="tablet-1", now=now + timedelta(seconds=i)
            )

    with pytest.raises(PinLockedError) as exc:
        pin_throttle_service.verify_pin_throttled(
            employee.shop_id, "0000", device_id="tablet-1", now=now + timedelta(seconds=5)
        )
    assert exc.value.details["retry_after_minutes"] == 15

    # Even the right PIN is refused while locked
    with pytest.raises(PinLockedError):
        pin_throttle_service.verify_pin_throttled(
            employee.shop_id, "1234", device_id="tablet-1", now=now + timedelta(minutes=5)
        )

    # Another device is unaffected
    assert pin_throttle_service.verify_pin_throttled(
        employee.shop_id, "1234", device_id="tablet-2", now=now + timedelta(minutes=5)
    ).id == employee.id

    # Lock expires
    assert pin_throttle_service.verify_pin_throttled(
        employee.shop_id, "1234", device_id="tablet-1", now=now + timedelta(minutes=21)
    ).id == employee.id


def test_own_pin_between_guesses_does_not_clear_failures(db_session, make_employee, employee, now):
    make_employee("Cal", "1111")
    tick = iter(range(100))

    def attempt(pin):
        return pin_throttle_service.verify_pin_throttled(
            employee.shop_id, pin, device_id="tablet-1", now=now + timedelta(seconds=next(tick))
        )

    for _ in range(2):
        for _ in range(2):
            with pytest.raises(InvalidCredentialError):
                attempt("0000")
        attempt("1111")

    with pytest.raises(PinLockedError):
        attempt("0000")
    with pytest.raises(PinLockedError):
        attempt("1111")


def test_rotating_device_ids_hits_shop_lockout(app, db_session, employee, now):
    limit = app.config["PIN_SHOP_MAX_FAILED_ATTEMPTS"]
    for i in range(limit - 1):
        with pytest.raises(InvalidCredentialError):
            pin_throttle_service.verify_pin_throttled(
                employee.shop_id, "0000", device_id=f"rot-{i}", now=now + timedelta(seconds=i)
            )

    with pytest.raises(PinLockedError):
        pin_throttle_service.verify_pin_throttled(
            employee.shop_id, "0000", device_id="rot-last", now=now + timedelta(seconds=limit)
        )
    with pytest.raises(PinLockedError):
        pin_throttle_service.verify_pin_throttled(
            employee.shop_id, "1234", device_id="fresh-tablet", now=now + timedelta(minutes=5)
        )

    assert pin_throttle_service.shop_lockout_minutes_remaining(
        employee.shop_id, now=now + timedelta(minutes=16)
    ) is None


def test_shop_lockout_does_not_spill_into_other_shops(app, db_session, employee, other_shop, make_employee, now):
    outsider = make_employee("Eve", "5555", shop_id=other_shop.id)
    for i in range(app.config["PIN_SHOP_MAX_FAILED_ATTEMPTS"]):
        with pytest.raises((InvalidCredentialError, PinLockedError)):
            pin_throttle_service.verify_pin_throttled(
                employee.shop_id, "0000", device_id=f"rot-{i}", now=now + timedelta(seconds=i)
            )

    assert pin_throttle_service.verify_pin_throttled(
        other_shop.id, "5555", device_id="rot-0", now=now + timedelta(minutes=1)
    ).id == outsider.id



def test_attempts_are_recorded(db_session, employee, now):
    with pytest.raises(InvalidCredentialError):
        pin_throttle_service.verify_pin_throttled(employee.shop_id, "0000", device_id="t", now=now)
    pin_throttle_service.verify_pin_throttled(employee.shop_id, "1234", device_id="t", now=now)

    events = db_session.query(SecurityEvent).order_by(SecurityEvent.id).all()
    assert [e.event_type for e in events] == ["PIN_FAILED", "PIN_SUCCESS"]
    assert events[1].employee_id == employee.id

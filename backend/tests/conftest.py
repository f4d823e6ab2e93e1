"""
Pytest fixtures for shopdesk backend tests.

Provides test database setup, shop/staff/task fixtures, and test client.
"""

from datetime import timedelta

import pytest
from shopdesk import create_app
from shopdesk.extensions import db
from shopdesk.models import Shop, Task
from shopdesk.services import pin_service
from shopdesk.services.policy_service import LoyaltyPolicy, ShiftPolicy, ShopLocation
from shopdesk.time_utils import utcnow


SHOP_LAT = 51.5007
SHOP_LON = -0.1246


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PIN_BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def now():
    """A fixed instant inside every fixture PIN's validity window."""
    return utcnow().replace(microsecond=0)


@pytest.fixture(scope='function')
def shop(db_session):
    """Shop with coordinates, default geofence and loyalty settings."""
    shop = Shop(name="Corner Cafe", code="CAFE", latitude=SHOP_LAT, longitude=SHOP_LON, timezone="UTC")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def other_shop(db_session):
    shop = Shop(name="Harbour Cafe", code="HARB")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def make_employee(db_session, shop, now):
    """Factory: employee with a usable PIN (change already done)."""
    def _make(first_name="Ana", pin="1234", shop_id=None, pin_change_required=False, set_at=None):
        return pin_service.create_employee(
            shop_id=shop_id or shop.id,
            first_name=first_name,
            pin=pin,
            pin_change_required=pin_change_required,
            now=set_at or now - timedelta(days=1),
        )
    return _make


@pytest.fixture(scope='function')
def employee(make_employee):
    return make_employee()


@pytest.fixture(scope='function')
def tasks(db_session, shop):
    """Two tasks for everyone, in sort order."""
    rows = [
        Task(shop_id=shop.id, name="Wipe tables", assigned_to="all", assigned_employee_ids=[], sort_order=1),
        Task(shop_id=shop.id, name="Mop floor", assigned_to="all", assigned_employee_ids=[], sort_order=2),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture(scope='function')
def shift_policy():
    return ShiftPolicy(shop_location=ShopLocation(SHOP_LAT, SHOP_LON), geofence_radius_m=100.0)


@pytest.fixture(scope='function')
def loyalty_policy():
    return LoyaltyPolicy(points_needed=10, points_per_visit=1, cooldown_minutes=30)

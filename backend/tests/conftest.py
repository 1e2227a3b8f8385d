"""
Pytest fixtures for Stock Maker backend tests.

Provides an in-memory database, a test client, users for both roles and
a merchant/product pair to sell against.
"""

from datetime import timedelta

import pytest

from stockmaker import create_app
from stockmaker.extensions import db
from stockmaker.models import Merchant, Product, User
from stockmaker.services.auth_service import hash_password
from stockmaker.time_utils import today as current_day


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        # Never talk to real providers from tests
        'RESEND_API_KEY': None,
        'ULTRAMSG_INSTANCE_ID': None,
        'ULTRAMSG_TOKEN': None,
        'TWILIO_ACCOUNT_SID': None,
        'TWILIO_AUTH_TOKEN': None,
        'TWILIO_PHONE_NUMBER': None,
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
    """Fresh data for each test; schema is kept."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def today():
    return current_day()


@pytest.fixture(scope='function')
def admin_user(db_session):
    user = User(
        email="owner@shop.test",
        full_name="Shop Owner",
        password_hash=hash_password(TEST_PASSWORD),
        role="admin",
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def staff_user(db_session):
    user = User(
        email="counter@shop.test",
        full_name="Counter Staff",
        password_hash=hash_password(TEST_PASSWORD),
        role="staff",
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def merchant(db_session):
    """Vyapari with both an email and a phone number."""
    m = Merchant(
        name="Sharma Mobiles",
        contact="9876543210",
        email="sharma@example.com",
        address="Shop 4, Station Road",
    )
    db_session.add(m)
    db_session.commit()
    return m


@pytest.fixture(scope='function')
def product(db_session):
    """Ten units of a phone at ₹15,000 each (cost ₹12,000)."""
    p = Product(
        name="Redmi Note 13",
        brand="Xiaomi",
        model="Note 13",
        purchase_price_cents=1_200_000,
        selling_price_cents=1_500_000,
        quantity=10,
    )
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def make_product(db_session):
    def _make(name="Galaxy A15", quantity=5, **kwargs) -> Product:
        p = Product(name=name, quantity=quantity, **kwargs)
        db_session.add(p)
        db_session.commit()
        return p
    return _make


@pytest.fixture(scope='function')
def make_merchant(db_session):
    def _make(name="Gupta Telecom", contact="9123456780", **kwargs) -> Merchant:
        m = Merchant(name=name, contact=contact, **kwargs)
        db_session.add(m)
        db_session.commit()
        return m
    return _make


@pytest.fixture(scope='function')
def due_in(today):
    """due_in(n) -> the date n days from today (negative for the past)."""
    return lambda days: today + timedelta(days=days)


def get_auth_token(client, email: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, staff_user.email))

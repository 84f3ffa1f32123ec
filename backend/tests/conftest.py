"""
Pytest fixtures for the settlement backend tests.

Provides an in-memory database, two tenants with staff in every role, a
dining table, receipt series and a test client with bearer tokens.
"""

import os
import tempfile

import pytest
from rpos import create_app
from rpos.extensions import db
from rpos.models import DiningTable, Restaurant, User
from rpos.permissions.roles import ROLE_ADMIN, ROLE_CASHIER, ROLE_KITCHEN, ROLE_MANAGER, ROLE_WAITER
from rpos.services import receipt_service, session_service
from rpos.services.session_service import Principal


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_BACKOFF_SECONDS': 0,
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


@pytest.fixture
def file_app():
    """
    Application on a temp-file SQLite database.

    Threads need separate connections to the same database, which the
    shared in-memory connection cannot give them.
    """
    tmpdir = tempfile.TemporaryDirectory()
    db_path = os.path.join(tmpdir.name, "concurrency.db")
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'RETRY_ATTEMPTS': 8,
        'RETRY_BACKOFF_SECONDS': 0.01,
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()
    tmpdir.cleanup()


def make_restaurant(session, name: str, code: str) -> Restaurant:
    restaurant = Restaurant(name=name, code=code, is_active=True, order_counter=0)
    session.add(restaurant)
    session.commit()
    return restaurant


def make_user(session, restaurant: Restaurant, role: str, email: str) -> User:
    user = User(restaurant_id=restaurant.id, name=email.split("@")[0], email=email, role=role, is_active=True)
    session.add(user)
    session.commit()
    return user


def principal_for(user: User) -> Principal:
    return Principal(user_id=user.id, restaurant_id=user.restaurant_id, role=user.role)


@pytest.fixture(scope='function')
def restaurant_a(db_session):
    """Create Restaurant A (first tenant)."""
    return make_restaurant(db_session, "Restaurant A - La Picanteria", "PICA")


@pytest.fixture(scope='function')
def restaurant_b(db_session):
    """Create Restaurant B (second tenant)."""
    return make_restaurant(db_session, "Restaurant B - El Chifa", "CHIFA")


@pytest.fixture(scope='function')
def admin_a(db_session, restaurant_a):
    return make_user(db_session, restaurant_a, ROLE_ADMIN, "admin@pica.test")


@pytest.fixture(scope='function')
def manager_a(db_session, restaurant_a):
    return make_user(db_session, restaurant_a, ROLE_MANAGER, "manager@pica.test")


@pytest.fixture(scope='function')
def cashier_a(db_session, restaurant_a):
    return make_user(db_session, restaurant_a, ROLE_CASHIER, "cashier@pica.test")


@pytest.fixture(scope='function')
def waiter_a(db_session, restaurant_a):
    return make_user(db_session, restaurant_a, ROLE_WAITER, "waiter@pica.test")


@pytest.fixture(scope='function')
def kitchen_a(db_session, restaurant_a):
    return make_user(db_session, restaurant_a, ROLE_KITCHEN, "kitchen@pica.test")


@pytest.fixture(scope='function')
def admin_b(db_session, restaurant_b):
    return make_user(db_session, restaurant_b, ROLE_ADMIN, "admin@chifa.test")


@pytest.fixture(scope='function')
def table_a(db_session, restaurant_a):
    table = DiningTable(restaurant_id=restaurant_a.id, number="1", capacity=4, status="AVAILABLE")
    db_session.add(table)
    db_session.commit()
    return table


@pytest.fixture(scope='function')
def boleta_series_a(db_session, restaurant_a):
    return receipt_service.create_series(restaurant_a.id, "BOLETA", "B001")


def auth_headers(user: User) -> dict:
    """Helper to create Authorization headers for a user."""
    return {'Authorization': f'Bearer {session_service.issue_token(user)}'}

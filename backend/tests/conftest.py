"""
Pytest fixtures for clubkasse backend tests.

Provides an in-memory database per test, a test client and small factories
that go through the services (so opening stock is booked as a movement).
"""

import pytest
from sqlalchemy import text

from clubkasse import create_app
from clubkasse.extensions import db
from clubkasse.services import accounts_service, products_service
from clubkasse.services.transaction_service import TransactionCoordinator


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_LOG_ROUNDS': 4,
        'CORS_ORIGINS': ['http://register.local'],
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    return db.session


@pytest.fixture(scope='function')
def enforce_foreign_keys(db_session):
    """SQLite only checks foreign keys when asked to (Postgres always does)."""
    db_session.commit()
    db_session.execute(text("PRAGMA foreign_keys=ON"))
    db_session.commit()
    assert db_session.execute(text("PRAGMA foreign_keys")).scalar() == 1
    yield
    db_session.rollback()
    db_session.execute(text("PRAGMA foreign_keys=OFF"))
    db_session.commit()


@pytest.fixture(scope='function')
def coordinator(db_session):
    return TransactionCoordinator(db_session)


@pytest.fixture(scope='function')
def make_account(app):
    """Factory: make_account(first_name="Anna", balance_cents=-1000, ...) -> dict"""
    counter = {"n": 0}

    def _make(first_name="Anna", last_name="Becker", role="member", balance_cents=0, barcodes=None, **extra):
        counter["n"] += 1
        patch = {
            "first_name": first_name,
            "last_name": last_name,
            "role": role,
            "balance_cents": balance_cents,
            "barcodes": barcodes or [f"M{counter['n']:04d}"],
        }
        patch.update(extra)
        return accounts_service.create_account(patch=patch)

    return _make


@pytest.fixture(scope='function')
def make_product(app):
    """Factory: make_product(name="Pils", stock=10, member_price_cents=250, ...) -> dict"""

    def _make(name="Pils", member_price_cents=250, guest_price_cents=300, stock=0, **extra):
        patch = {
            "name": name,
            "member_price_cents": member_price_cents,
            "guest_price_cents": guest_price_cents,
            "stock": stock,
        }
        patch.update(extra)
        return products_service.create_product(patch=patch, actor="test")

    return _make

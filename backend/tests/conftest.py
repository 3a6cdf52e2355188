"""
Pytest fixtures for pharmasync backend tests.

Provides the test app (in-memory SQLite), a per-test clean database, user and
token fixtures for both roles, and factories for products and batches.
"""

from datetime import timedelta

import pytest

from pharmasync import create_app
from pharmasync.extensions import db
from pharmasync.models import Product, ProductBatch, User
from pharmasync.models.auth import ROLE_EMPLOYEE, ROLE_OWNER
from pharmasync.services import session_service
from pharmasync.time_utils import utcnow


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    # Exact watermark cut-offs; tests that need the overlap set it themselves
    'SYNC_PULL_OVERLAP_SECONDS': 0,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
def owner(db_session):
    """OWNER user."""
    user = User(id="user-owner", name="Amina", role=ROLE_OWNER, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def employee(db_session):
    """EMPLOYEE user."""
    user = User(id="user-employee", name="Baraka", role=ROLE_EMPLOYEE, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def owner_token(owner):
    _, token = session_service.issue_session(owner.id, device_label="Back office")
    return token


@pytest.fixture(scope='function')
def employee_token(employee):
    _, token = session_service.issue_session(employee.id, device_label="Counter tablet")
    return token


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product("p1", stock=15)."""
    def _make(product_id="prod-1", *, name=None, stock=0, price=1500, modified_at=None):
        product = Product(
            id=product_id,
            name=name or f"Product {product_id}",
            category="Analgesics",
            price=price,
            stock=stock,
            min_stock=5,
            modified_at=modified_at or utcnow(),
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_batch(db_session):
    """Factory: make_batch("prod-1", "b1", quantity=5, expires_in_days=10)."""
    def _make(product_id, batch_id, *, quantity, expires_in_days=90, lot_number=None, received_days_ago=30):
        now = utcnow()
        batch = ProductBatch(
            id=batch_id,
            product_id=product_id,
            lot_number=lot_number or f"LOT-{batch_id}",
            expiration_date=now + timedelta(days=expires_in_days),
            quantity=quantity,
            initial_qty=quantity,
            received_date=now - timedelta(days=received_days_ago),
            modified_at=now,
        )
        db_session.add(batch)
        db_session.commit()
        return batch
    return _make


@pytest.fixture(scope='function')
def owner_headers(owner_token):
    return auth_headers(owner_token)


@pytest.fixture(scope='function')
def employee_headers(employee_token):
    return auth_headers(employee_token)


@pytest.fixture(scope='function')
def fresh(db_session):
    """Re-read a row after a request committed it through another session."""
    def _fresh(model, entity_id):
        db_session.expire_all()
        return db_session.get(model, entity_id)
    return _fresh


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}

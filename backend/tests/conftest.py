"""
Pytest fixtures for deposit engine tests.

Provides the test app (in-memory SQLite), a clean database per test,
product/stock factories and a test client with an actor header.
"""

import itertools

import pytest
from layaway import create_app
from layaway.config import DepositPolicy
from layaway.extensions import db
from layaway.models import Product, StockItem
from layaway.services import lifecycle_service
from layaway.validation import parse_create_order

ACTOR_ID = 7


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


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
def client(app, db_session):
    """Test client; requests share the test's app context and session."""
    return app.test_client()


@pytest.fixture
def actor_headers():
    return {"X-Actor-Id": str(ACTOR_ID)}


@pytest.fixture
def policy():
    return DepositPolicy()


_sku_counter = itertools.count(1)


@pytest.fixture
def make_product(db_session):
    """Factory: catalog product plus its stock row (tracked products only)."""
    def _make(
        *,
        name="Gold ring",
        price_cents=10000,
        unit_cost_cents=4000,
        on_hand=1,
        track_stock=True,
        is_consignment=False,
        supplier_id=None,
    ) -> Product:
        product = Product(
            sku=f"SKU-{next(_sku_counter):05d}",
            name=name,
            price_cents=price_cents,
            unit_cost_cents=unit_cost_cents,
            track_stock=track_stock,
            is_consignment=is_consignment,
            consignment_supplier_id=supplier_id,
            is_active=True,
        )
        db_session.add(product)
        db_session.flush()
        if track_stock:
            db_session.add(StockItem(product_id=product.id, quantity_on_hand=on_hand))
        db_session.commit()
        return product

    return _make


@pytest.fixture
def make_order(db_session, policy):
    """Factory: create an order through the lifecycle controller from a raw payload."""
    def _make(payload: dict, *, order_policy=None):
        return lifecycle_service.create_order(
            parse_create_order(payload),
            actor_id=ACTOR_ID,
            policy=order_policy or policy,
        )

    return _make

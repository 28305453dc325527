"""
Pytest fixtures for storeflow backend tests.

Provides an in-memory database, a clean slate per test, a location with
catalog/stock/customer/session fixtures, and the Flask test client.
"""

import pytest

from storeflow import create_app
from storeflow.config import Config
from storeflow.extensions import db
from storeflow.models import Location
from storeflow.services import (
    cash_session_service,
    customer_service,
    inventory_service,
    products_service,
    sales_service,
)

SELLER_ID = 10
KEEPER_ID = 20
CASHIER_ID = 30
MANAGER_ID = 40


class UnitTestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    AUDIT_ASYNC_ENABLED = False
    AUDIT_RETRY_BACKOFF = 0
    TX_RETRY_BACKOFF = 0


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(UnitTestConfig)

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
        # Clear all data but keep schema (Core deletes bypass the append-only ORM guards)
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def location(db_session):
    loc = Location(name="Main Shop", code="MAIN", is_active=True)
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def other_location(db_session):
    loc = Location(name="Branch", code="BR1", is_active=True)
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def make_product(db_session, location):
    """Factory: product with optional opening stock, committed."""
    def _make(name="Product A", selling_price=1000, cost_price=600, max_discount_percent=10,
              qty_on_hand=0, location_id=None):
        loc_id = location_id or location.id
        product = products_service.create_product(
            location_id=loc_id,
            actor_id=MANAGER_ID,
            name=name,
            selling_price=selling_price,
            cost_price=cost_price,
            max_discount_percent=max_discount_percent,
        )
        if qty_on_hand:
            inventory_service.adjust_inventory(
                location_id=loc_id,
                product_id=product.id,
                delta=qty_on_hand,
                reason="Opening stock",
                actor_id=KEEPER_ID,
            )
        return product

    return _make


@pytest.fixture(scope='function')
def product_a(make_product):
    """sellingPrice=1000, maxDiscountPercent=10, qtyOnHand=5."""
    return make_product(qty_on_hand=5)


@pytest.fixture(scope='function')
def customer(db_session, location):
    return customer_service.create_customer(
        location_id=location.id, actor_id=SELLER_ID, name="Ama Mensah", phone="0240000000"
    )


@pytest.fixture(scope='function')
def cash_session(db_session, location):
    return cash_session_service.open_session(location_id=location.id, cashier_id=CASHIER_ID, opening_balance=0)


@pytest.fixture(scope='function')
def sale_factory(location):
    """
    Factory: drive a sale to the requested status.

    status in DRAFT, FULFILLED, AWAITING_PAYMENT_RECORD, PENDING.
    """
    def _make(product, qty=2, status="DRAFT", payment_method="CASH", **kwargs):
        sale = sales_service.create_sale(
            location_id=location.id,
            seller_id=SELLER_ID,
            items=[{"product_id": product.id, "qty": qty}],
            **kwargs,
        )
        if status == "DRAFT":
            return sale
        sale = sales_service.fulfill_sale(location_id=location.id, store_keeper_id=KEEPER_ID, sale_id=sale.id)
        if status == "FULFILLED":
            return sale
        if status == "AWAITING_PAYMENT_RECORD":
            return sales_service.mark_sale(location_id=location.id, seller_id=SELLER_ID, sale_id=sale.id,
                                           status="PAID", payment_method=payment_method)
        if status == "PENDING":
            return sales_service.mark_sale(location_id=location.id, seller_id=SELLER_ID, sale_id=sale.id,
                                           status="PENDING")
        raise ValueError(f"unsupported status {status}")

    return _make


def actor_headers(role, actor_id, location_id):
    return {
        "X-Actor-Id": str(actor_id),
        "X-Actor-Role": role,
        "X-Location-Id": str(location_id),
    }

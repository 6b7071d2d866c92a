"""
Pytest fixtures for stockroom backend tests.

Provides the in-memory application, a clean database per test, a test client,
and a couple of catalog fixtures with package units.
"""

from decimal import Decimal

import pytest

from stockroom import create_app
from stockroom.extensions import db
from stockroom.services import products_service, purchase_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_BACKOFF_SECONDS': 0,
        'LOG_LEVEL': 'DEBUG',
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
def water(db_session):
    """Bottled water: base unit "bottle", a 12-bottle "case"."""
    product = products_service.create_product({
        "name": "Mineral Water",
        "base_unit": "bottle",
        "purchase_price": "0.80",
        "retail_price": "1.50",
        "min_stock_threshold": "24",
    })
    products_service.add_package_unit(product.id, {"name": "case", "conversion_rate": "12"})
    return product


@pytest.fixture(scope='function')
def cable(db_session):
    """Cable sold by the metre, a 100 m "roll" and a fractional "half-metre"."""
    product = products_service.create_product({
        "name": "Copper Cable",
        "base_unit": "m",
        "purchase_price": "1.20",
        "retail_price": "2.50",
    })
    products_service.add_package_unit(
        product.id, {"name": "roll", "conversion_rate": "100", "retail_price": "230"}
    )
    products_service.add_package_unit(product.id, {"name": "half", "conversion_rate": "0.5"})
    return product


@pytest.fixture(scope='function')
def flour(db_session):
    """Flour kept in kg and also sold by the gram."""
    product = products_service.create_product({
        "name": "Bread Flour",
        "base_unit": "kg",
        "purchase_price": "0.90",
        "retail_price": "2.00",
    })
    products_service.add_package_unit(product.id, {"name": "g", "conversion_rate": "0.001"})
    return product


def receive(product, quantity, unit, unit_price=None):
    """Confirm a one-line purchase order; returns the confirmed order."""
    item = {"product_id": product.id, "quantity": str(quantity), "unit": unit}
    if unit_price is not None:
        item["unit_price"] = str(unit_price)
    order = purchase_service.create_purchase_order(supplier="Test Supplier", items=[item])
    return purchase_service.confirm_purchase_order(order.id)


@pytest.fixture(scope='function')
def stocked_water(water):
    """Water with 100 bottles on hand, received through a purchase order."""
    receive(water, 100, "bottle")
    return water


def D(value) -> Decimal:
    return Decimal(str(value))

"""
Pytest fixtures for invoiceflow backend tests.

Provides the test application (in-memory SQLite, strict balance invariants),
a per-test clean database, and small catalog builders.
"""

from types import SimpleNamespace

import pytest

from invoiceflow import create_app
from invoiceflow.extensions import db
from invoiceflow.services import catalog_service


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'STRICT_INVARIANTS': True,
    'TAX_RATE_PERCENT': '10',
    'VAT_RATE_PERCENT': '5',
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
def warehouses(db_session):
    """Two warehouses: W1 then W2 (W1 has the lower id)."""
    w1 = catalog_service.create_warehouse("W1", location="Front")
    w2 = catalog_service.create_warehouse("W2", location="Back")
    return w1, w2


@pytest.fixture(scope='function')
def carton_product(db_session):
    """Cartons of 12 pieces, sold by the case of 10 cartons."""
    return catalog_service.create_product(
        name="Juice 250ml",
        sku="JUICE-250",
        unit_type="Cartons",
        base_price="7.00",
        excise_tax="0.10",
        pieces_in_base_unit=12,
        packaging_unit="Case",
        items_per_packaging_unit=10,
    )


def make_product(**overrides):
    """Plain product stand-in for the pure engines (no database)."""
    fields = {
        'id': 1,
        'name': 'Widget',
        'unit_type': 'Cartons',
        'base_price': '7.00',
        'excise_tax': '0.10',
        'pieces_in_base_unit': None,
        'packaging_unit': None,
        'items_per_packaging_unit': None,
        'discount_rate': 0,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)

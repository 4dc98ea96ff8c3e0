"""
Pytest fixtures for the ledgerpos backend tests.

Each test gets its own app with two throwaway SQLite files: the device-local
ledger store (default bind) and the shared company store (``remote`` bind).
"""

import pytest

from ledgerpos import create_app
from ledgerpos.core import get_core
from ledgerpos.extensions import db
from ledgerpos.models import Product


class OnlineSwitch:
    """Stands in for the host's network probe."""

    def __init__(self):
        self.online = True

    def __call__(self):
        return self.online


@pytest.fixture(scope='function')
def online():
    return OnlineSwitch()


@pytest.fixture(scope='function')
def app(tmp_path, online):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'local.sqlite3'}",
        'SQLALCHEMY_BINDS': {'remote': f"sqlite:///{tmp_path / 'remote.sqlite3'}"},
        'COMPANY_ID': 'acme',
        'BRANCH_ID': 'branch-1',
        'DEVICE_ID': 'test',
        'USER_ID': 'cashier-1',
        'SYNC_ENABLED': False,
        'SYNC_MAX_BATCH': 10,
        'SYNC_ONLINE_CHECK': online,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        for engine in db.engines.values():
            engine.dispose()


@pytest.fixture(scope='function')
def core(app):
    return get_core(app)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    return app.test_cli_runner()


def make_product(core, product_id="rice", *, name="Bariis", bag_size_kg=50.0, price=120, cost=100,
                 units=("KG", "BAG"), base_unit="KG"):
    """Register a product through the balance engine."""
    return core.engine.register_product(
        Product(
            id=product_id,
            name=name,
            category_id="grains",
            base_unit=base_unit,
            selling_units=list(units),
            bag_size_kg=bag_size_kg,
            price_per_kg_cents=price,
            cost_per_kg_cents=cost,
            is_active=True,
        )
    )


@pytest.fixture(scope='function')
def rice(core):
    """Rice at 120c/kg, 50 kg bags, 100 kg opening stock."""
    product = make_product(core)
    core.engine.adjust_stock(product.id, core.branch_id, "PURCHASE", 100.0, note="Opening stock")
    return product


@pytest.fixture(scope='function')
def customer(core):
    """Credit customer with a 500.00 limit."""
    return core.engine.register_customer("John Doe", phone="555-0123", credit_limit_cents=50000, customer_id="101")


@pytest.fixture(scope='function')
def supplier(core):
    return core.engine.register_supplier("Mogadishu Wholesale", phone="252-61-1234567", supplier_id="SUP-001")

"""
Pytest fixtures for stock ledger tests.

Provides the app with an in-memory database, a wiped session per test,
and two companies with a few products each.
"""

from decimal import Decimal

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import Company, Product


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCKLEDGER_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def cli_runner(app):
    return app.test_cli_runner()


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
def company_a(db_session):
    """Create Company A (first tenant)."""
    company = Company(name="Company A - Acme Corp")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    """Create Company B (second tenant)."""
    company = Company(name="Company B - Beta Inc")
    db_session.add(company)
    db_session.commit()
    return company


def make_product(session, company, name, *, stock="0", price=None, barcode=None, is_service=False,
                 is_active=True):
    product = Product(
        company_id=company.id,
        name=name,
        barcode=barcode,
        current_stock=Decimal(stock),
        unit_price=Decimal(price) if price is not None else None,
        is_service=is_service,
        is_active=is_active,
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def bulk_product(db_session, company_a):
    """Bulk-stock product with 10 on hand at $20."""
    return make_product(db_session, company_a, "Rice 1kg", stock="10", price="20.00")


@pytest.fixture(scope='function')
def unit_product(db_session, company_a):
    """Product with no stock yet, ready to receive barcoded units, at $20."""
    return make_product(db_session, company_a, "Phone", price="20.00", barcode="PHN")


@pytest.fixture(scope='function')
def service_product(db_session, company_a):
    return make_product(db_session, company_a, "Screen repair", price="80.00", is_service=True)


@pytest.fixture(scope='function')
def product_b(db_session, company_b):
    """Bulk product owned by Company B."""
    return make_product(db_session, company_b, "Beans 1kg", stock="5", price="8.00")


@pytest.fixture(scope='function')
def product_factory(db_session):
    """Create extra products inside a test."""
    def _make(company, name, **kwargs):
        return make_product(db_session, company, name, **kwargs)
    return _make

"""
Pytest fixtures for the pre-order ledger backend tests.

Provides test database setup, data fixtures and test client.
"""

import pytest
from preorders import create_app
from preorders.extensions import db
from preorders.models import Customer, Flight
from preorders.services import order_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_OVERPAYMENT_POLICY': 'warn',
        'LEDGER_OVERPAYMENT_TOLERANCE_CENTS': 0,
        'LEDGER_RETRY_ATTEMPTS': 3,
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
def runner(app):
    """Create CLI runner."""
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
def strict_mode(app):
    """Reject advances above an item's value for the duration of a test."""
    app.config['LEDGER_OVERPAYMENT_POLICY'] = 'strict'
    yield
    app.config['LEDGER_OVERPAYMENT_POLICY'] = 'warn'


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Ayesha Khan", phone_number="03001234567", instagram_id="ayesha.k", city="Lahore")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def flight(db_session):
    flight = Flight(flight_name="PK-786 March")
    db_session.add(flight)
    db_session.commit()
    return flight


@pytest.fixture(scope='function')
def other_flight(db_session):
    flight = Flight(flight_name="EK-622 April")
    db_session.add(flight)
    db_session.commit()
    return flight


@pytest.fixture(scope='function')
def order(db_session, customer):
    """One item (1000 x 2) with 200 delivery charges, nothing paid."""
    result = order_service.create_order(
        {"customer_id": customer.id, "delivery_charges_cents": 200},
        [{"product_name": "Lipstick", "shade": "Ruby", "quantity": 2, "price_cents": 1000}],
        actor="staff-1",
    )
    return result.order


@pytest.fixture(scope='function')
def item(order):
    return order.items[0]


@pytest.fixture(scope='function')
def headers():
    """Auth proxy header for a staff user."""
    return {'X-User-Id': 'staff-1'}

"""
Pytest fixtures for repairdesk backend tests.

Provides test database setup, tenant fixtures, provisioned reference data
and a test client.
"""

from decimal import Decimal

import pytest
from repairdesk import create_app
from repairdesk.extensions import db, reference_cache
from repairdesk.models import Customer, Device, Organization, RepairItem, RepairTicket, Technician
from repairdesk.services.backfill_service import ensure_defaults
from repairdesk.services.currency_service import ensure_core_currencies


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BACKFILL_ON_STARTUP': False,
        'REFERENCE_CACHE_TTL_SECONDS': 0,
        'DOCUMENT_NUMBER_MAX_ATTEMPTS': 3,
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
        db.session.expunge_all()
        reference_cache.invalidate()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Fixit Shop", code="FIXIT", phone="555-0100", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Byte Repair", code="BYTE", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def provisioned(db_session, org_a, org_b):
    """Core currencies plus default currencies / tax rates for both tenants."""
    ensure_core_currencies()
    ensure_defaults(org_a.id)
    ensure_defaults(org_b.id)
    return org_a, org_b


@pytest.fixture(scope='function')
def customer_a(db_session, org_a):
    customer = Customer(org_id=org_a.id, first_name="Ada", last_name="Lovelace", email="ada@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, org_b):
    customer = Customer(org_id=org_b.id, first_name="Alan", last_name="Turing")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def device_a(db_session, org_a, customer_a):
    device = Device(
        org_id=org_a.id,
        customer_id=customer_a.id,
        device_type="laptop",
        brand="ThinkPad",
        model="X1 Carbon",
        serial_number="SN-1001",
    )
    db_session.add(device)
    db_session.commit()
    return device


@pytest.fixture(scope='function')
def technician_a(db_session, org_a):
    tech = Technician(org_id=org_a.id, first_name="Grace", last_name="Hopper")
    db_session.add(tech)
    db_session.commit()
    return tech


@pytest.fixture(scope='function')
def repair_a(db_session, org_a, customer_a, device_a):
    """Ticket in Organization A with one part and one service (subtotal 25.50)."""
    ticket = RepairTicket(
        org_id=org_a.id,
        ticket_number="RT-TEST-A1",
        customer_id=customer_a.id,
        device_id=device_a.id,
        issue="Cracked screen",
        status="diagnosing",
    )
    db_session.add(ticket)
    db_session.flush()
    db_session.add_all([
        RepairItem(
            org_id=org_a.id,
            repair_id=ticket.id,
            description="Screen assembly",
            quantity=1,
            unit_price=Decimal("15.50"),
            item_type="part",
        ),
        RepairItem(
            org_id=org_a.id,
            repair_id=ticket.id,
            description="Labor",
            quantity=2,
            unit_price=Decimal("5.00"),
            item_type="service",
        ),
    ])
    db_session.commit()
    return ticket


@pytest.fixture(scope='function')
def repair_b(db_session, org_b, customer_b):
    ticket = RepairTicket(
        org_id=org_b.id,
        ticket_number="RT-TEST-B1",
        customer_id=customer_b.id,
        issue="Battery swelling",
    )
    db_session.add(ticket)
    db_session.commit()
    return ticket


def org_headers(org) -> dict:
    """Helper to create tenant context headers for an organization."""
    return {'X-Organization-Id': str(org.id)}


@pytest.fixture(scope='function')
def headers_a(org_a):
    return org_headers(org_a)


@pytest.fixture(scope='function')
def headers_b(org_b):
    return org_headers(org_b)

"""Shared test fixtures for the CRM test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- ctx: an app context for service-level tests that make no HTTP calls
- store / hub: the EntityStore and RealtimeHub built by create_app()
- seed_data: two staff users, customers, a job and invoice INV-1

HTTP tests open their own `with app.app_context():` blocks for assertions
instead of holding one across requests, so every request gets a fresh `g`
(and therefore a fresh Flask-Login user).
"""

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from app.extensions import db as _db
from app.models.billing import Invoice
from app.models.customer import Customer
from app.models.job import Job
from app.models.user import User
from app.services.auth_service import issue_access_token


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
    yield _db
    with app.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield
        _db.session.rollback()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def store(app):
    return app.extensions["entity_store"]


@pytest.fixture
def hub(app):
    return app.extensions["realtime_hub"]


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seed_data(app):
    """Seed two staff users with their own customers, a job and an invoice.

    Returns plain IDs and auth headers only, so tests can use them from
    any app context.
    """
    with app.app_context():
        # --- Staff users ---
        owner = User(
            email="owner@crm.local",
            password_hash=generate_password_hash("owner123"),
            full_name="Olivia Owner",
            role="admin",
        )
        other = User(
            email="other@crm.local",
            password_hash=generate_password_hash("other123"),
            full_name="Oscar Other",
            role="staff",
        )
        _db.session.add_all([owner, other])
        _db.session.flush()

        # --- Customers ---
        customer = Customer(
            user_id=owner.id,
            first_name="Joe",
            last_name="Demo",
            company_name="Demo Roofing",
            email="joe@demoroofing.com",
        )
        other_customer = Customer(
            user_id=other.id,
            first_name="Zed",
            last_name="Stranger",
            email="zed@elsewhere.com",
        )
        _db.session.add_all([customer, other_customer])
        _db.session.flush()

        # --- Work + billing ---
        job = Job(
            user_id=owner.id,
            customer_id=customer.id,
            title="Roof repair",
            status="scheduled",
            total_cost=1200,
        )
        other_job = Job(
            user_id=other.id,
            customer_id=other_customer.id,
            title="Fence install",
            status="quoted",
        )
        invoice = Invoice(
            user_id=owner.id,
            customer_id=customer.id,
            invoice_number="INV-1",
            title="Roof repair",
            total_amount=100,
            status="sent",
        )
        _db.session.add_all([job, other_job, invoice])
        _db.session.commit()

        return {
            "owner_id": owner.id,
            "owner_email": owner.email,
            "other_id": other.id,
            "customer_id": customer.id,
            "other_customer_id": other_customer.id,
            "job_id": job.id,
            "other_job_id": other_job.id,
            "invoice_id": invoice.id,
            "owner_headers": bearer(issue_access_token(owner)),
            "other_headers": bearer(issue_access_token(other)),
        }

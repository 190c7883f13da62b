"""
Pytest fixtures for regcore backend tests.

Provides test database setup, seeded tenants and catalog, fake
collaborators, and a test client.
"""

import pytest

from regcore import create_app
from regcore.extensions import db
from regcore.context import ActorContext
from regcore.models import Organization, EventYear, Product
from regcore.services.collaborators import (
    PAYMENT_PROCESSOR_KEY,
    NOTIFICATION_SENDER_KEY,
    ChargeResult,
    RefundResult,
    PaymentProcessor,
    NotificationSender,
)
from regcore.services.order_service import PaymentResult, apply_payment


class FakePaymentProcessor(PaymentProcessor):
    """Records charges and refunds; set fail_with to make the next calls raise."""

    def __init__(self):
        self.charges = []
        self.refunds = []
        self.fail_with = None

    def create_charge(self, amount_cents, currency, metadata):
        if self.fail_with:
            raise self.fail_with
        charge = ChargeResult(id=f"ch_{len(self.charges) + 1}", client_secret_or_status="secret_test")
        self.charges.append({"amount_cents": amount_cents, "currency": currency, "metadata": metadata, "id": charge.id})
        return charge

    def refund(self, transaction_id, amount_cents):
        if self.fail_with:
            raise self.fail_with
        result = RefundResult(id=f"re_{len(self.refunds) + 1}", status="succeeded")
        self.refunds.append({"transaction_id": transaction_id, "amount_cents": amount_cents, "id": result.id})
        return result


class FakeNotificationSender(NotificationSender):
    def __init__(self):
        self.sent = []
        self.fail_with = None

    def send_invoice(self, notification):
        if self.fail_with:
            raise self.fail_with
        self.sent.append(notification)


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
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def processor(app):
    fake = FakePaymentProcessor()
    app.extensions[PAYMENT_PROCESSOR_KEY] = fake
    return fake


@pytest.fixture(scope='function')
def notifier(app):
    fake = FakeNotificationSender()
    app.extensions[NOTIFICATION_SENDER_KEY] = fake
    return fake


@pytest.fixture(scope='function')
def db_session(app, processor, notifier):
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
def admin():
    return ActorContext(actor_id="admin-1", actor_name="Ada Admin", is_super_admin=True)


@pytest.fixture(scope='function')
def member():
    return ActorContext(actor_id="user-7", actor_name="Morgan Member", is_super_admin=False)


@pytest.fixture(scope='function')
def event_year(db_session):
    ey = EventYear(year=2026, name="Relay 2026")
    db_session.add(ey)
    db_session.commit()
    return ey


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(
        name="Acme Corp",
        code="ACME",
        contact_name="Alex Acme",
        contact_email="alex@acme.example",
        is_active=True,
    )
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(
        name="Beta Inc",
        code="BETA",
        contact_name="Blair Beta",
        contact_email="blair@beta.example",
        is_active=True,
    )
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def team_product(db_session, event_year):
    """Team registration: $750 with a $250 deposit, unlimited stock."""
    product = Product(
        event_year_id=event_year.id,
        name="Team Registration",
        product_type="team_registration",
        base_price_cents=75000,
        deposit_cents=25000,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def tent_product(db_session, event_year):
    """Tent rental: 5 in stock, at most 2 per organization."""
    product = Product(
        event_year_id=event_year.id,
        name="10x10 Tent",
        product_type="tent_rental",
        base_price_cents=20000,
        deposit_cents=5000,
        total_inventory=5,
        max_quantity_per_org=2,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def shirt_product(db_session, event_year):
    product = Product(
        event_year_id=event_year.id,
        name="Event T-Shirt",
        product_type="other",
        base_price_cents=2500,
    )
    db_session.add(product)
    db_session.commit()
    return product


def pay(order_id, amount_cents, transaction_id, status="succeeded", failure_reason=None):
    """Apply a processor outcome the way the webhook does."""
    return apply_payment(
        order_id,
        amount_cents,
        PaymentResult(transaction_id=transaction_id, status=status, failure_reason=failure_reason),
    )


def actor_headers(actor: ActorContext) -> dict:
    """Helper to create upstream identity headers."""
    return {
        'X-Actor-Id': actor.actor_id,
        'X-Actor-Name': actor.actor_name,
        'X-Super-Admin': 'true' if actor.is_super_admin else 'false',
    }

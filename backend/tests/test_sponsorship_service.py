"""
Sponsorship lifecycle: creation with processing fee, edit lockout, audit
trail, delete versus cancel.
"""

import pytest

from regcore.enums import OrderStatus
from regcore.errors import AuthorizationError, InvalidStateTransitionError, NotFoundError, ValidationError
from regcore.models import Invoice, Order
from regcore.services import order_service, sponsorship_service
from regcore.services.audit_service import get_audit_trail
from regcore.services.metadata import read_invoice_metadata, read_order_metadata
from regcore.services.order_state import transition_order

from conftest import pay


@pytest.fixture
def sponsorship(db_session, org_a, event_year, admin):
    return sponsorship_service.create_sponsorship(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        base_amount_cents=10000,
        description="Water station sponsor",
        actor=admin,
    )


def test_create_adds_processing_fee(db_session, sponsorship, notifier):
    assert sponsorship.is_sponsorship is True
    assert sponsorship.order_number == "SPO-2026-000001"
    assert sponsorship.total_amount_cents == 10320
    assert sponsorship.balance_owed_cents == 10320
    assert sponsorship.deposit_amount_cents == 0

    details = read_order_metadata(sponsorship).sponsorship
    assert details.base_amount_cents == 10000
    assert details.processing_fee_cents == 320
    assert details.description == "Water station sponsor"

    invoice = sponsorship.invoice
    assert invoice.status == "sent"
    assert invoice.sent_at is not None
    assert read_invoice_metadata(invoice).sponsorship == details

    assert [n.subject for n in notifier.sent] == ["Sponsorship invoice"]
    assert notifier.sent[0].total_amount_cents == 10320


def test_create_records_audit_entry(db_session, sponsorship):
    trail = get_audit_trail(sponsorship)
    assert len(trail) == 1
    assert trail[0]["action"] == "created"
    assert trail[0]["actor_id"] == "admin-1"
    assert trail[0]["changes"]["base_amount_cents"] == {"from": None, "to": 10000}


@pytest.mark.parametrize("amount", [99, 100_000_001, 150.0, "10000", None, True])
def test_create_rejects_bad_amount(db_session, org_a, event_year, admin, amount):
    with pytest.raises(ValidationError):
        sponsorship_service.create_sponsorship(
            organization_id=org_a.id,
            event_year_id=event_year.id,
            base_amount_cents=amount,
            actor=admin,
        )


def test_create_rejects_long_description(db_session, org_a, event_year, admin):
    with pytest.raises(ValidationError):
        sponsorship_service.create_sponsorship(
            organization_id=org_a.id,
            event_year_id=event_year.id,
            base_amount_cents=10000,
            description="x" * 501,
            actor=admin,
        )


def test_create_requires_admin(db_session, org_a, event_year, member):
    with pytest.raises(AuthorizationError):
        sponsorship_service.create_sponsorship(
            organization_id=org_a.id,
            event_year_id=event_year.id,
            base_amount_cents=10000,
            actor=member,
        )
    assert db_session.query(Order).count() == 0


def test_notification_failure_keeps_sponsorship(db_session, org_a, event_year, admin, notifier):
    notifier.fail_with = RuntimeError("mail relay down")
    order = sponsorship_service.create_sponsorship(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        base_amount_cents=50000,
        actor=admin,
    )
    assert order_service.get_order(order.id).total_amount_cents == 51480


def test_edit_recomputes_total_and_appends_audit(db_session, sponsorship, admin, notifier):
    edited = sponsorship_service.edit_sponsorship_order(
        sponsorship.id,
        new_base_amount_cents=20000,
        new_description="Finish line sponsor",
        actor=admin,
    )

    assert edited.total_amount_cents == 20610
    assert edited.balance_owed_cents == 20610
    assert edited.invoice.total_amount_cents == 20610
    assert edited.invoice.balance_owed_cents == 20610
    assert read_order_metadata(edited).sponsorship.processing_fee_cents == 610

    trail = get_audit_trail(edited)
    assert [e["action"] for e in trail] == ["created", "updated"]
    assert trail[1]["changes"] == {
        "base_amount_cents": {"from": 10000, "to": 20000},
        "description": {"from": "Water station sponsor", "to": "Finish line sponsor"},
    }
    assert [e.action for e in read_invoice_metadata(edited.invoice).audit_trail] == ["created", "updated"]
    assert notifier.sent[-1].subject == "Updated sponsorship invoice"


def test_audit_trail_only_grows(db_session, sponsorship, admin):
    for amount in (11000, 12000, 13000):
        sponsorship_service.edit_sponsorship_order(
            sponsorship.id, new_base_amount_cents=amount, new_description="Water station sponsor", actor=admin
        )

    order = order_service.get_order(sponsorship.id)
    trail = get_audit_trail(order)
    assert [e["action"] for e in trail] == ["created", "updated", "updated", "updated"]
    assert [e["changes"]["base_amount_cents"]["to"] for e in trail[1:]] == [11000, 12000, 13000]
    # unchanged fields are not listed
    assert all("description" not in e["changes"] for e in trail[1:])


def test_edit_locked_after_payment(db_session, sponsorship, admin):
    pay(sponsorship.id, 5000, "pi_spon_part")

    with pytest.raises(InvalidStateTransitionError):
        sponsorship_service.edit_sponsorship_order(sponsorship.id, new_base_amount_cents=20000, actor=admin)

    order = order_service.get_order(sponsorship.id)
    assert order.total_amount_cents == 10320
    assert len(get_audit_trail(order)) == 1


def test_edit_cancelled_sponsorship_rejected(db_session, sponsorship, admin):
    order_service.cancel_order(sponsorship.id, actor=admin, reason="Withdrew")
    with pytest.raises(InvalidStateTransitionError):
        sponsorship_service.edit_sponsorship_order(sponsorship.id, new_base_amount_cents=20000, actor=admin)


def test_edit_requires_admin(db_session, sponsorship, member):
    with pytest.raises(AuthorizationError):
        sponsorship_service.edit_sponsorship_order(sponsorship.id, new_base_amount_cents=20000, actor=member)


def test_edit_regular_order_rejected(db_session, org_a, event_year, shirt_product, admin):
    order = order_service.create_order(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        items=[{"product_id": shirt_product.id, "quantity": 1}],
    )
    with pytest.raises(ValidationError):
        sponsorship_service.edit_sponsorship_order(order.id, new_base_amount_cents=20000, actor=admin)


def test_delete_unpaid_sponsorship(db_session, sponsorship, admin):
    order_id = sponsorship.id
    result = sponsorship_service.delete_or_cancel_sponsorship(order_id, actor=admin)

    assert result == {"action": "deleted", "order_id": order_id, "order_number": "SPO-2026-000001"}
    assert db_session.get(Order, order_id) is None
    assert db_session.query(Invoice).filter_by(order_id=order_id).count() == 0
    with pytest.raises(NotFoundError):
        order_service.get_order(order_id)


def test_delete_partially_paid_sponsorship_cancels(db_session, sponsorship, admin):
    pay(sponsorship.id, 5160, "pi_spon_half")

    result = sponsorship_service.delete_or_cancel_sponsorship(sponsorship.id, reason="Sponsor withdrew", actor=admin)

    assert result["action"] == "cancelled"
    order = order_service.get_order(sponsorship.id)
    assert order.status == "cancelled"
    assert order.invoice.status == "cancelled"
    meta = read_order_metadata(order)
    assert meta.cancellation.reason == "Sponsor withdrew"
    assert meta.cancellation.cancelled_by == "admin-1"
    assert meta.audit_trail[-1].action == "cancelled"
    assert meta.audit_trail[-1].reason == "Sponsor withdrew"


def test_cancel_uses_default_reason(db_session, sponsorship, admin):
    pay(sponsorship.id, 5160, "pi_spon_half")
    sponsorship_service.delete_or_cancel_sponsorship(sponsorship.id, reason="   ", actor=admin)

    meta = read_order_metadata(order_service.get_order(sponsorship.id))
    assert meta.cancellation.reason == "Cancelled by admin"


def test_fully_paid_sponsorship_is_cancelled(db_session, sponsorship, admin, processor):
    pay(sponsorship.id, 10320, "pi_spon_full")

    result = sponsorship_service.delete_or_cancel_sponsorship(sponsorship.id, reason="Duplicate sponsor", actor=admin)

    assert result["action"] == "cancelled"
    order = order_service.get_order(sponsorship.id)
    assert order.status == "cancelled"
    assert order.invoice.status == "cancelled"
    assert order.invoice.paid_amount_cents == 10320
    assert processor.refunds == []
    meta = read_order_metadata(order)
    assert meta.cancellation.reason == "Duplicate sponsor"
    assert meta.audit_trail[-1].action == "cancelled"


def test_sponsorship_admin_transition_does_not_apply_to_regular_orders(db_session, org_a, event_year, shirt_product):
    order = order_service.create_order(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        items=[{"product_id": shirt_product.id, "quantity": 1}],
    )
    pay(order.id, 2500, "pi_shirt")
    order = order_service.get_order(order.id)

    with pytest.raises(InvalidStateTransitionError):
        transition_order(order, OrderStatus.CANCELLED, sponsorship_admin=True)
    assert order.status == "fully_paid"


def test_refund_fully_paid_sponsorship(db_session, sponsorship, admin, processor):
    pay(sponsorship.id, 10320, "pi_spon_full")

    order = order_service.refund_order(sponsorship.id, actor=admin, reason="Event cancelled")

    assert order.status == "refunded"
    assert processor.refunds == [{"transaction_id": "pi_spon_full", "amount_cents": 10320, "id": "re_1"}]
    assert get_audit_trail(order)[-1]["action"] == "refunded"


def test_complete_sponsorship_charges_full_total(db_session, sponsorship, processor):
    result = order_service.complete_order_payment(sponsorship.id)

    assert result["amount_cents"] == 10320
    assert result["order"]["status"] == "confirmed"
    assert processor.charges[0]["amount_cents"] == 10320

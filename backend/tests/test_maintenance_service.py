from datetime import timedelta

import pytest

from regcore.extensions import db
from regcore.errors import ValidationError
from regcore.models import InventoryReservation, Invoice, Order, Product
from regcore.services import inventory_service, maintenance_service, order_service, sponsorship_service
from regcore.time_utils import utcnow

from conftest import pay


def _age(order, hours):
    order.created_at = utcnow() - timedelta(hours=hours)
    db.session.commit()


def _tent_order(org, event_year, tent_product, quantity=1):
    return order_service.create_order(
        organization_id=org.id,
        event_year_id=event_year.id,
        items=[{"product_id": tent_product.id, "quantity": quantity}],
    )


def test_dry_run_reports_without_deleting(db_session, org_a, event_year, tent_product):
    order = _tent_order(org_a, event_year, tent_product)
    _age(order, 30)

    report = maintenance_service.cleanup_abandoned_orders()

    assert report["dry_run"] is True
    assert report["older_than_hours"] == 24
    assert [c["order_number"] for c in report["candidates"]] == [order.order_number]
    assert report["deleted"] == 0
    assert db_session.query(Order).count() == 1


def test_execute_deletes_and_releases_holds(db_session, org_a, event_year, tent_product):
    order = _tent_order(org_a, event_year, tent_product, quantity=2)
    order_id = order.id
    _age(order, 30)

    report = maintenance_service.cleanup_abandoned_orders(execute=True)

    assert report["deleted"] == 1
    assert db_session.get(Order, order_id) is None
    assert db_session.query(Invoice).count() == 0
    product = db_session.get(Product, tent_product.id)
    db_session.refresh(product)
    assert product.reserved_count == 0
    reservation = db_session.query(InventoryReservation).one()
    assert reservation.status == "RELEASED"
    assert reservation.order_id is None


def test_checked_out_but_unpaid_order_is_swept(db_session, org_a, event_year, tent_product, processor):
    order = _tent_order(org_a, event_year, tent_product, quantity=2)
    order_id = order.id
    order_service.start_checkout(order_id)
    order = order_service.get_order(order_id)
    assert order.status == "confirmed"
    _age(order, 72)

    report = maintenance_service.cleanup_abandoned_orders(execute=True)

    assert [c["order_id"] for c in report["candidates"]] == [order_id]
    assert report["deleted"] == 1
    assert db_session.get(Order, order_id) is None
    product = db_session.get(Product, tent_product.id)
    db_session.refresh(product)
    assert product.reserved_count == 0


def test_recent_orders_are_kept(db_session, org_a, event_year, tent_product):
    _tent_order(org_a, event_year, tent_product)
    report = maintenance_service.cleanup_abandoned_orders(execute=True)
    assert report["candidates"] == []
    assert db_session.query(Order).count() == 1


def test_expired_hold_marks_order_abandoned(db_session, org_a, event_year, tent_product):
    order = _tent_order(org_a, event_year, tent_product)
    reservation = db_session.query(InventoryReservation).filter_by(order_id=order.id).one()
    reservation.expires_at = utcnow() - timedelta(minutes=5)
    db_session.commit()

    candidates = maintenance_service.find_abandoned_orders(older_than_hours=24)
    assert [o.id for o in candidates] == [order.id]


def test_paid_failed_and_sponsorship_orders_are_kept(db_session, org_a, org_b, event_year, shirt_product, admin):
    paid = order_service.create_order(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        items=[{"product_id": shirt_product.id, "quantity": 1}],
    )
    pay(paid.id, 2500, "pi_paid")
    sponsorship = sponsorship_service.create_sponsorship(
        organization_id=org_b.id,
        event_year_id=event_year.id,
        base_amount_cents=10000,
        actor=admin,
    )
    declined = order_service.create_order(
        organization_id=org_b.id,
        event_year_id=event_year.id,
        items=[{"product_id": shirt_product.id, "quantity": 1}],
    )
    pay(declined.id, 2500, "pi_declined", status="failed")
    for order in (paid, sponsorship, declined):
        _age(order_service.get_order(order.id), 48)

    report = maintenance_service.cleanup_abandoned_orders(execute=True)

    # the declined order never received money, so it goes
    assert [c["order_id"] for c in report["candidates"]] == [declined.id]
    assert report["deleted"] == 1
    assert {o.id for o in db_session.query(Order)} == {paid.id, sponsorship.id}


def test_orphan_expired_holds_released(db_session, org_a, event_year, tent_product):
    reservation = inventory_service.reserve(
        product_id=tent_product.id, organization_id=org_a.id, event_year_id=event_year.id, quantity=1
    )
    reservation.expires_at = utcnow() - timedelta(minutes=1)
    db_session.commit()

    report = maintenance_service.cleanup_abandoned_orders(execute=True)

    assert report["orphan_reservations_released"] == 1
    product = db_session.get(Product, tent_product.id)
    db_session.refresh(product)
    assert product.reserved_count == 0


def test_negative_cutoff_rejected(db_session):
    with pytest.raises(ValidationError):
        maintenance_service.cleanup_abandoned_orders(older_than_hours=-1)


def test_verify_balances_clean(db_session, org_a, event_year, shirt_product):
    order = order_service.create_order(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        items=[{"product_id": shirt_product.id, "quantity": 2}],
    )
    pay(order.id, 2000, "pi_part")

    report = maintenance_service.verify_balances()
    assert report == {"checked": 1, "discrepancies": [], "fixed": 0}


def test_verify_balances_reports_and_fixes(db_session, org_a, event_year, shirt_product):
    order = order_service.create_order(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        items=[{"product_id": shirt_product.id, "quantity": 2}],
    )
    pay(order.id, 2000, "pi_part")
    order = order_service.get_order(order.id)
    order.balance_owed_cents = 0
    order.status = "fully_paid"
    db_session.commit()

    report = maintenance_service.verify_balances()
    row = report["discrepancies"][0]
    assert row["problems"] == ["balance_owed", "status"]
    assert row["expected_balance_owed_cents"] == 3000
    assert row["expected_status"] == "deposit_paid"
    assert report["fixed"] == 0

    report = maintenance_service.verify_balances(fix=True)
    assert report["fixed"] == 1
    order = order_service.get_order(order.id)
    db_session.refresh(order)
    assert order.balance_owed_cents == 3000
    assert order.status == "deposit_paid"
    assert maintenance_service.verify_balances()["discrepancies"] == []


def test_cleanup_cli_dry_run(app, db_session, org_a, event_year, tent_product):
    order = _tent_order(org_a, event_year, tent_product)
    _age(order, 30)

    result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-orders"])

    assert result.exit_code == 0
    assert "DRY RUN 1 abandoned order(s)" in result.output
    assert order.order_number in result.output


def test_verify_balances_cli(app, db_session):
    result = app.test_cli_runner().invoke(args=["maintenance", "verify-balances"])
    assert result.exit_code == 0
    assert "PASS No discrepancies found." in result.output

import pytest

from regcore.extensions import db
from regcore.errors import InsufficientInventoryError, InvalidStateTransitionError, NotFoundError, ValidationError
from regcore.models import Organization, Product, OrganizationQuota
from regcore.services import inventory_service, order_service

from conftest import pay


@pytest.fixture
def org_c(db_session):
    org = Organization(name="Gamma LLC", code="GAMMA", contact_email="g@gamma.example")
    db_session.add(org)
    db_session.commit()
    return org


def _counts(product_id):
    product = db.session.get(Product, product_id)
    db.session.refresh(product)
    return product.sold_count, product.reserved_count


def test_reserve_increments_reserved_count(db_session, org_a, event_year, tent_product):
    reservation = inventory_service.reserve(
        product_id=tent_product.id, organization_id=org_a.id, event_year_id=event_year.id, quantity=2
    )
    db_session.commit()

    assert reservation.status == "HELD"
    assert reservation.token
    assert reservation.expires_at > reservation.created_at
    assert _counts(tent_product.id) == (0, 2)


def test_reserve_beyond_inventory_fails(db_session, org_a, org_b, org_c, event_year, tent_product):
    for org in (org_a, org_b):
        inventory_service.reserve(
            product_id=tent_product.id, organization_id=org.id, event_year_id=event_year.id, quantity=2
        )
    db_session.commit()

    with pytest.raises(InsufficientInventoryError) as exc:
        inventory_service.reserve(
            product_id=tent_product.id, organization_id=org_c.id, event_year_id=event_year.id, quantity=2
        )
    db_session.rollback()

    assert exc.value.code == "INSUFFICIENT_INVENTORY"
    assert exc.value.details["available"] == 1
    assert _counts(tent_product.id) == (0, 4)


def test_reserve_beyond_org_quota_fails(db_session, org_a, event_year, tent_product):
    inventory_service.reserve(
        product_id=tent_product.id, organization_id=org_a.id, event_year_id=event_year.id, quantity=2
    )
    db_session.commit()

    with pytest.raises(InsufficientInventoryError) as exc:
        inventory_service.reserve(
            product_id=tent_product.id, organization_id=org_a.id, event_year_id=event_year.id, quantity=1
        )
    db_session.rollback()

    assert exc.value.code == "QUOTA_EXCEEDED"
    assert _counts(tent_product.id) == (0, 2)


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
def test_reserve_rejects_bad_quantity(db_session, org_a, event_year, tent_product, quantity):
    with pytest.raises(ValidationError):
        inventory_service.reserve(
            product_id=tent_product.id, organization_id=org_a.id, event_year_id=event_year.id, quantity=quantity
        )


def test_reserve_unknown_product(db_session, org_a, event_year):
    with pytest.raises(NotFoundError) as exc:
        inventory_service.reserve(product_id=999, organization_id=org_a.id, event_year_id=event_year.id, quantity=1)
    assert exc.value.code == "PRODUCT_NOT_FOUND"


def test_release_returns_units_and_is_idempotent(db_session, org_a, event_year, tent_product):
    reservation = inventory_service.reserve(
        product_id=tent_product.id, organization_id=org_a.id, event_year_id=event_year.id, quantity=2
    )
    inventory_service.release_reservation(reservation)
    inventory_service.release_reservation(reservation)
    db_session.commit()

    assert reservation.status == "RELEASED"
    assert _counts(tent_product.id) == (0, 0)


def test_commit_moves_reserved_to_sold(db_session, org_a, event_year, tent_product):
    reservation = inventory_service.reserve(
        product_id=tent_product.id, organization_id=org_a.id, event_year_id=event_year.id, quantity=2
    )
    inventory_service.commit_reservation(reservation)
    db_session.commit()

    assert reservation.status == "COMMITTED"
    assert _counts(tent_product.id) == (2, 0)
    with pytest.raises(InvalidStateTransitionError):
        inventory_service.release_reservation(reservation)


def test_paid_order_updates_quota_row(db_session, org_a, event_year, tent_product):
    order = order_service.create_order(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        items=[{"product_id": tent_product.id, "quantity": 2}],
    )
    pay(order.id, order.total_amount_cents, "pi_tent_full")

    quota = db_session.query(OrganizationQuota).filter_by(organization_id=org_a.id).one()
    assert quota.quantity_purchased == 2
    assert quota.max_allowed == 2
    assert quota.remaining_allowed == 0
    assert _counts(tent_product.id) == (2, 0)

    status = inventory_service.get_organization_quota(org_a.id, tent_product.id, event_year.id)
    assert status["at_quota_limit"] is True
    assert status["can_purchase_more"] is False
    assert status["available_inventory"] == 3


def test_quota_status_counts_holds(db_session, org_a, event_year, tent_product):
    order_service.create_order(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        items=[{"product_id": tent_product.id, "quantity": 2}],
    )

    status = inventory_service.get_organization_quota(org_a.id, tent_product.id, event_year.id)
    assert status["quantity_purchased"] == 0
    assert status["quantity_held"] == 2
    assert status["remaining_allowed"] == 2
    assert status["at_quota_limit"] is False
    assert status["can_purchase_more"] is False


def test_inventory_status(db_session, org_a, event_year, tent_product):
    inventory_service.reserve(
        product_id=tent_product.id, organization_id=org_a.id, event_year_id=event_year.id, quantity=1
    )
    db_session.commit()

    status = inventory_service.get_inventory_status(tent_product.id)
    assert status["total_inventory"] == 5
    assert status["reserved_count"] == 1
    assert status["available_count"] == 4


def test_quota_report_lists_rows(db_session, org_a, org_b, event_year, tent_product):
    for org, txn in ((org_a, "pi_a"), (org_b, "pi_b")):
        order = order_service.create_order(
            organization_id=org.id,
            event_year_id=event_year.id,
            items=[{"product_id": tent_product.id, "quantity": 1}],
        )
        pay(order.id, order.total_amount_cents, txn)

    report = inventory_service.get_quota_report(event_year.id)
    assert [row["organization_name"] for row in report] == ["Acme Corp", "Beta Inc"]
    assert all(row["quantity_purchased"] == 1 and row["remaining_allowed"] == 1 for row in report)
    assert report[0]["available_inventory"] == 3


def test_unlimited_product_has_no_quota_row(db_session, org_a, event_year, team_product):
    assert inventory_service.recompute_organization_quota(org_a.id, team_product.id, event_year.id) is None



def test_stock_only_product_quota_views_agree(db_session, org_a, event_year):
    chairs = Product(
        event_year_id=event_year.id,
        name="Folding Table",
        product_type="tent_rental",
        base_price_cents=1500,
        total_inventory=40,
    )
    db_session.add(chairs)
    db_session.commit()
    order = order_service.create_order(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        items=[{"product_id": chairs.id, "quantity": 3}],
    )
    pay(order.id, order.total_amount_cents, "pi_chairs")

    row = db_session.query(OrganizationQuota).filter_by(product_id=chairs.id).one()
    status = inventory_service.get_organization_quota(org_a.id, chairs.id, event_year.id)
    assert row.max_allowed == status["max_allowed"] == 40
    assert row.remaining_allowed == status["remaining_allowed"] == 37

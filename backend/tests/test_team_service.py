import pytest

from regcore.errors import AuthorizationError, InvalidStateTransitionError, NotFoundError, ValidationError
from regcore.models import CompanyTeam, Product
from regcore.services import order_service, team_service

from conftest import pay


def _buy_teams(org, event_year, product, quantity, txn):
    order = order_service.create_order(
        organization_id=org.id,
        event_year_id=event_year.id,
        items=[{"product_id": product.id, "quantity": quantity}],
    )
    pay(order.id, order.total_amount_cents, txn)
    return order


def test_payment_creates_numbered_teams(db_session, org_a, event_year, team_product):
    _buy_teams(org_a, event_year, team_product, 2, "pi_teams")

    teams = team_service.list_teams(event_year_id=event_year.id, organization_id=org_a.id)
    assert [(t.team_number, t.team_name) for t in teams] == [(1, "Acme Corp Team 1"), (2, "Acme Corp Team 2")]
    assert all(t.is_paid for t in teams)


def test_sync_is_idempotent(db_session, org_a, event_year, team_product):
    _buy_teams(org_a, event_year, team_product, 2, "pi_teams")

    first = team_service.sync_teams(org_a.id, event_year.id)
    second = team_service.sync_teams(org_a.id, event_year.id)

    for result in (first, second):
        assert result["teams_purchased"] == 2
        assert result["existing_teams"] == 2
        assert result["created"] == 0
        assert result["team_numbers"] == []
    assert db_session.query(CompanyTeam).count() == 2


def test_sync_without_purchases_is_noop(db_session, org_a, event_year):
    result = team_service.sync_teams(org_a.id, event_year.id)
    assert result["created"] == 0
    assert result["teams_purchased"] == 0


def test_deposit_payment_counts_as_purchase(db_session, org_a, event_year, team_product):
    order = order_service.create_order(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        items=[{"product_id": team_product.id, "quantity": 1}],
        payment_type="deposit",
    )
    pay(order.id, 25000, "pi_team_deposit")

    assert team_service.sync_teams(org_a.id, event_year.id)["existing_teams"] == 1


def test_cancelled_team_number_is_never_reissued(db_session, org_a, event_year, team_product, admin):
    _buy_teams(org_a, event_year, team_product, 2, "pi_teams")
    first = db_session.query(CompanyTeam).filter_by(team_number=1).one()

    team_service.cancel_team(first.id, actor=admin)
    result = team_service.sync_teams(org_a.id, event_year.id)

    assert result["created"] == 1
    assert result["team_numbers"] == [3]
    active = team_service.list_teams(event_year_id=event_year.id, organization_id=org_a.id)
    assert [t.team_number for t in active] == [2, 3]
    everything = team_service.list_teams(event_year_id=event_year.id, include_cancelled=True)
    assert [t.team_number for t in everything] == [1, 2, 3]


def test_second_order_extends_numbering(db_session, org_a, event_year, team_product):
    _buy_teams(org_a, event_year, team_product, 1, "pi_one")
    _buy_teams(org_a, event_year, team_product, 2, "pi_two")

    numbers = [t.team_number for t in team_service.list_teams(event_year_id=event_year.id)]
    assert numbers == [1, 2, 3]


def test_numbering_is_per_organization(db_session, org_a, org_b, event_year, team_product):
    _buy_teams(org_a, event_year, team_product, 1, "pi_a")
    _buy_teams(org_b, event_year, team_product, 1, "pi_b")

    teams = team_service.list_teams(event_year_id=event_year.id)
    assert [(t.organization_id, t.team_number) for t in teams] == [(org_a.id, 1), (org_b.id, 1)]


def test_unpaid_orders_do_not_count(db_session, org_a, event_year, team_product):
    order_service.create_order(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        items=[{"product_id": team_product.id, "quantity": 3}],
    )
    assert team_service.teams_purchased(org_a.id, event_year.id) == 0


@pytest.mark.parametrize("product_type,name,expected", [
    ("team_registration", "Registration", True),
    ("other", "Corporate TEAM entry", True),
    ("other", "Event T-Shirt", False),
    ("tent_rental", "Team tent", False),
    ("sponsorship", "Team sponsor", False),
])
def test_team_category_membership(product_type, name, expected):
    product = Product(name=name, product_type=product_type)
    assert team_service.is_team_product(product, "team") is expected


def test_keyword_products_count_toward_teams(db_session, org_a, event_year):
    legacy = Product(event_year_id=event_year.id, name="Team Entry (legacy)", product_type="other", base_price_cents=50000)
    db_session.add(legacy)
    db_session.commit()

    _buy_teams(org_a, event_year, legacy, 1, "pi_legacy")
    assert team_service.teams_purchased(org_a.id, event_year.id) == 1
    assert len(team_service.list_teams(event_year_id=event_year.id)) == 1


def test_rename_team(db_session, org_a, event_year, team_product):
    _buy_teams(org_a, event_year, team_product, 1, "pi_team")
    team = team_service.list_teams(event_year_id=event_year.id)[0]

    renamed = team_service.rename_team(team.id, "  Night Owls ")
    assert renamed.team_name == "Night Owls"

    with pytest.raises(ValidationError):
        team_service.rename_team(team.id, "   ")
    with pytest.raises(NotFoundError):
        team_service.rename_team(9999, "Ghosts")


def test_cancel_team_rules(db_session, org_a, event_year, team_product, admin, member):
    _buy_teams(org_a, event_year, team_product, 1, "pi_team")
    team = team_service.list_teams(event_year_id=event_year.id)[0]

    with pytest.raises(AuthorizationError):
        team_service.cancel_team(team.id, actor=member)

    cancelled = team_service.cancel_team(team.id, actor=admin)
    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_by == "admin-1"

    with pytest.raises(InvalidStateTransitionError):
        team_service.cancel_team(team.id, actor=admin)
    with pytest.raises(InvalidStateTransitionError):
        team_service.rename_team(team.id, "Back again")


def test_sync_unknown_organization(db_session, event_year):
    with pytest.raises(NotFoundError):
        team_service.sync_teams(4242, event_year.id)

import random

import pytest

from regcore.errors import NotFoundError
from regcore.models import Product
from regcore.services import order_service, revenue_service, sponsorship_service
from regcore.services.money import total_with_fee_cents

from conftest import pay


def test_item_shares_are_proportional():
    assert revenue_service.item_revenue_shares([15000, 20000, 2500], 15000) == [6000, 8000, 1000]


def test_item_shares_sum_to_paid_amount():
    rng = random.Random(20261019)
    for _ in range(200):
        totals = [rng.randint(1, 200000) for _ in range(rng.randint(1, 6))]
        paid = rng.randint(0, sum(totals))
        shares = revenue_service.item_revenue_shares(totals, paid)
        assert sum(shares) == paid
        assert all(0 <= share <= total for share, total in zip(shares, totals))


@pytest.mark.parametrize("balance,expected", [
    (10320, 0),
    (5160, 5000),
    (0, 10000),
])
def test_sponsorship_revenue_excludes_fee(balance, expected):
    assert revenue_service.sponsorship_revenue_cents(10000, 10320, balance) == expected


def test_sponsorship_revenue_tracks_partial_payments():
    rng = random.Random(20261019)
    for _ in range(200):
        base = rng.randint(100, 500000)
        total = total_with_fee_cents(base)
        balance = total
        previous = 0
        while balance > 0:
            balance -= rng.randint(1, balance)
            revenue = revenue_service.sponsorship_revenue_cents(base, total, balance)
            assert previous <= revenue <= base
            assert revenue <= total - balance
            previous = revenue
        assert previous == base


def test_sponsorship_revenue_zero_total():
    assert revenue_service.sponsorship_revenue_cents(10000, 0, 0) == 0


@pytest.fixture
def priced_products(db_session, event_year):
    products = [
        Product(event_year_id=event_year.id, name="Team Registration", product_type="team_registration",
                base_price_cents=15000),
        Product(event_year_id=event_year.id, name="20x20 Tent", product_type="tent_rental",
                base_price_cents=20000),
        Product(event_year_id=event_year.id, name="Cooler", product_type="other", base_price_cents=2500),
    ]
    db_session.add_all(products)
    db_session.commit()
    return products


def test_attribution_by_category(db_session, org_a, org_b, event_year, priced_products, admin):
    order = order_service.create_order(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        items=[{"product_id": p.id, "quantity": 1} for p in priced_products],
    )
    pay(order.id, 15000, "pi_partial")

    sponsorship = sponsorship_service.create_sponsorship(
        organization_id=org_b.id,
        event_year_id=event_year.id,
        base_amount_cents=10000,
        actor=admin,
    )
    pay(sponsorship.id, 10320, "pi_sponsor")

    report = revenue_service.get_revenue_attribution(event_year.id)

    assert report["year"] == 2026
    assert report["categories"] == {
        "team_registration": 6000,
        "tent_rental": 8000,
        "sponsorship": 10000,
        "other": 1000,
    }
    assert report["total_cents"] == 25000
    assert report["order_count"] == 2
    assert [row["organization_name"] for row in report["by_organization"]] == ["Acme Corp", "Beta Inc"]
    assert report["by_organization"][0]["revenue_cents"] == 15000
    assert report["orders"][0]["by_category"] == {"team_registration": 6000, "tent_rental": 8000, "other": 1000}


def test_unpaid_cancelled_and_refunded_orders_excluded(db_session, org_a, event_year, priced_products, admin):
    team, tent, cooler = priced_products

    def new_order(product):
        return order_service.create_order(
            organization_id=org_a.id,
            event_year_id=event_year.id,
            items=[{"product_id": product.id, "quantity": 1}],
        )

    new_order(team)  # never paid

    cancelled = new_order(tent)
    pay(cancelled.id, 5000, "pi_then_cancel")
    order_service.cancel_order(cancelled.id, actor=admin)

    refunded = new_order(cooler)
    pay(refunded.id, 2500, "pi_then_refund")
    order_service.refund_order(refunded.id, actor=admin)

    report = revenue_service.get_revenue_attribution(event_year.id)
    assert report["total_cents"] == 0
    assert report["order_count"] == 0
    assert report["by_organization"] == []


def test_coupon_orders_attribute_paid_amount(db_session, org_a, event_year, priced_products):
    from regcore.models import Coupon

    db_session.add(Coupon(event_year_id=event_year.id, code="HALF", discount_type="percentage", discount_value=5000))
    db_session.commit()
    team, tent, _ = priced_products
    order = order_service.create_order(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        items=[{"product_id": team.id, "quantity": 1}, {"product_id": tent.id, "quantity": 1}],
        coupon_code="HALF",
    )
    pay(order.id, order.total_amount_cents, "pi_half")

    report = revenue_service.get_revenue_attribution(event_year.id)
    assert order.total_amount_cents == 17500
    assert report["total_cents"] == 17500
    assert report["categories"]["team_registration"] == 7500
    assert report["categories"]["tent_rental"] == 10000


def test_attribution_reflects_later_payments(db_session, org_a, event_year, priced_products):
    order = order_service.create_order(
        organization_id=org_a.id,
        event_year_id=event_year.id,
        items=[{"product_id": priced_products[0].id, "quantity": 1}],
    )
    pay(order.id, 5000, "pi_first")
    assert revenue_service.get_revenue_attribution(event_year.id)["total_cents"] == 5000

    pay(order.id, 10000, "pi_second")
    assert revenue_service.get_revenue_attribution(event_year.id)["total_cents"] == 15000


def test_unknown_event_year(db_session):
    with pytest.raises(NotFoundError):
        revenue_service.get_revenue_attribution(777)

# Overview: Read-only revenue attribution by category for an event year.

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Order, Organization, EventYear
from ..enums import ProductType, PAID_ORDER_STATUSES
from ..errors import NotFoundError
from .metadata import read_order_metadata
from .money import prorate_cents, round_half_up

CATEGORIES = tuple(t.value for t in ProductType)


def item_revenue_shares(item_totals_cents: list[int], paid_cents: int) -> list[int]:
    """
    Paid amount of one order spread across its items by price.

    An order 40% paid credits 40% of each item, not the first items in
    full. Shares sum exactly to paid_cents.
    """
    return prorate_cents(item_totals_cents, max(0, paid_cents))


def sponsorship_revenue_cents(base_amount_cents: int, total_amount_cents: int, balance_owed_cents: int) -> int:
    """
    Fee-exclusive revenue of a sponsorship: base - balance * (base / total).

    Computed exactly and rounded once, clamped to [0, base].
    """
    if total_amount_cents <= 0:
        return 0
    exact = Decimal(base_amount_cents) - (
        Decimal(balance_owed_cents) * Decimal(base_amount_cents) / Decimal(total_amount_cents)
    )
    return max(0, min(base_amount_cents, round_half_up(exact)))


def get_revenue_attribution(event_year_id: int) -> dict:
    """
    Category revenue from deposit_paid and fully_paid orders of an event year.

    Cancelled and refunded orders are left out entirely. Nothing is cached;
    each call reads the orders as they are now.
    """
    event_year = db.session.get(EventYear, event_year_id)
    if not event_year:
        raise NotFoundError(
            "Event year not found",
            code="EVENT_YEAR_NOT_FOUND",
            details={"event_year_id": event_year_id},
        )

    orders = (
        db.session.query(Order)
        .filter(Order.event_year_id == event_year_id, Order.status.in_(PAID_ORDER_STATUSES))
        .order_by(Order.id)
        .all()
    )

    categories = {name: 0 for name in CATEGORIES}
    by_organization: dict[int, dict] = {}
    order_rows = []

    for order in orders:
        paid = order.total_amount_cents - order.balance_owed_cents
        attributed = {name: 0 for name in CATEGORIES}

        if order.is_sponsorship:
            sponsorship = read_order_metadata(order).sponsorship
            base = sponsorship.base_amount_cents if sponsorship else order.total_amount_cents
            attributed[ProductType.SPONSORSHIP.value] = sponsorship_revenue_cents(
                base, order.total_amount_cents, order.balance_owed_cents
            )
        else:
            items = list(order.items)
            shares = item_revenue_shares([item.total_price_cents for item in items], paid)
            for item, share in zip(items, shares):
                category = item.product.product_type if item.product else ProductType.OTHER.value
                attributed[category if category in attributed else ProductType.OTHER.value] += share

        order_total = sum(attributed.values())
        for name, amount in attributed.items():
            categories[name] += amount

        org_row = by_organization.setdefault(
            order.organization_id,
            {"organization_id": order.organization_id, "revenue_cents": 0, "order_count": 0},
        )
        org_row["revenue_cents"] += order_total
        org_row["order_count"] += 1

        order_rows.append(
            {
                "order_id": order.id,
                "order_number": order.order_number,
                "organization_id": order.organization_id,
                "status": order.status,
                "is_sponsorship": order.is_sponsorship,
                "total_amount_cents": order.total_amount_cents,
                "paid_amount_cents": paid,
                "attributed_cents": order_total,
                "by_category": {k: v for k, v in attributed.items() if v},
            }
        )

    if by_organization:
        names = dict(
            db.session.query(Organization.id, Organization.name)
            .filter(Organization.id.in_(list(by_organization)))
            .all()
        )
        for org_id, row in by_organization.items():
            row["organization_name"] = names.get(org_id)

    return {
        "event_year_id": event_year.id,
        "year": event_year.year,
        "categories": categories,
        "total_cents": sum(categories.values()),
        "order_count": len(order_rows),
        "orders": order_rows,
        "by_organization": sorted(by_organization.values(), key=lambda r: (-r["revenue_cents"], r["organization_id"])),
    }

# Overview: Service-layer operations for inventory allocation; encapsulates business logic and database work.

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import update, func

from ..extensions import db
from ..models import (
    Product,
    Order,
    OrderItem,
    OrganizationQuota,
    InventoryReservation,
    Organization,
    EventYear,
)
from ..enums import ReservationStatus, PAID_ORDER_STATUSES
from ..errors import (
    ValidationError,
    NotFoundError,
    InsufficientInventoryError,
    InvalidStateTransitionError,
)
from ..time_utils import utcnow


def _get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND", details={"product_id": product_id})
    return product


def purchased_quantity(organization_id: int, product_id: int, event_year_id: int) -> int:
    """Units of a product on this organization's paid orders for the event year."""
    total = (
        db.session.query(func.coalesce(func.sum(OrderItem.quantity), 0))
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            Order.organization_id == organization_id,
            Order.event_year_id == event_year_id,
            Order.status.in_(PAID_ORDER_STATUSES),
            OrderItem.product_id == product_id,
        )
        .scalar()
    )
    return int(total or 0)


def held_quantity(organization_id: int, product_id: int, event_year_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(InventoryReservation.quantity), 0))
        .filter(
            InventoryReservation.organization_id == organization_id,
            InventoryReservation.product_id == product_id,
            InventoryReservation.event_year_id == event_year_id,
            InventoryReservation.status == ReservationStatus.HELD.value,
        )
        .scalar()
    )
    return int(total or 0)


def reserve(
    *,
    product_id: int,
    organization_id: int,
    event_year_id: int,
    quantity: int,
) -> InventoryReservation:
    """
    Hold units of a product for an organization.

    WHY: Overselling must be impossible, not reconciled after the fact.

    DESIGN:
    - Headroom is checked and reserved_count incremented by one conditional
      UPDATE, so two callers racing for the last unit cannot both win
    - The per-organization quota is checked after the UPDATE, while the
      product row is write-locked by this transaction
    - Runs inside the caller's transaction (no commit); a rollback returns
      the units
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", details={"quantity": quantity})

    product = _get_product(product_id)

    stmt = update(Product).where(Product.id == product_id)
    if product.total_inventory is not None:
        stmt = stmt.where(
            Product.total_inventory - Product.sold_count - Product.reserved_count >= quantity
        )
    stmt = stmt.values(reserved_count=Product.reserved_count + quantity).execution_options(
        synchronize_session=False
    )

    result = db.session.execute(stmt)
    db.session.refresh(product)
    if not result.rowcount:
        raise InsufficientInventoryError(
            f"Only {product.available_count} of {product.name} available",
            details={
                "product_id": product_id,
                "requested": quantity,
                "available": product.available_count,
            },
        )

    if product.max_quantity_per_org is not None:
        purchased = purchased_quantity(organization_id, product_id, event_year_id)
        held = held_quantity(organization_id, product_id, event_year_id)
        remaining = max(0, product.max_quantity_per_org - purchased - held)
        if quantity > remaining:
            raise InsufficientInventoryError(
                f"Organization quota for {product.name} exceeded",
                code="QUOTA_EXCEEDED",
                details={
                    "product_id": product_id,
                    "organization_id": organization_id,
                    "requested": quantity,
                    "max_allowed": product.max_quantity_per_org,
                    "purchased": purchased,
                    "held": held,
                    "remaining": remaining,
                },
            )

    ttl_minutes = current_app.config.get("RESERVATION_TTL_MINUTES", 60)
    reservation = InventoryReservation(
        token=uuid.uuid4().hex,
        product_id=product_id,
        organization_id=organization_id,
        event_year_id=event_year_id,
        quantity=quantity,
        status=ReservationStatus.HELD.value,
        expires_at=utcnow() + timedelta(minutes=ttl_minutes),
    )
    db.session.add(reservation)
    db.session.flush()
    return reservation


def get_reservation(token: str) -> InventoryReservation:
    reservation = db.session.query(InventoryReservation).filter_by(token=token).first()
    if not reservation:
        raise NotFoundError("Reservation not found", code="RESERVATION_NOT_FOUND", details={"token": token})
    return reservation


def commit_reservation(reservation: InventoryReservation) -> None:
    """Move held units to sold (sum unchanged) and refresh the organization's quota row."""
    if reservation.status != ReservationStatus.HELD.value:
        raise InvalidStateTransitionError(
            f"Cannot commit a {reservation.status} reservation",
            details={"token": reservation.token, "status": reservation.status},
        )

    q = reservation.quantity
    result = db.session.execute(
        update(Product)
        .where(Product.id == reservation.product_id, Product.reserved_count >= q)
        .values(reserved_count=Product.reserved_count - q, sold_count=Product.sold_count + q)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise InvalidStateTransitionError(
            "Reserved count is lower than the reservation being committed",
            details={"token": reservation.token, "product_id": reservation.product_id},
        )

    reservation.status = ReservationStatus.COMMITTED.value
    reservation.resolved_at = utcnow()
    db.session.flush()
    recompute_organization_quota(reservation.organization_id, reservation.product_id, reservation.event_year_id)


def release_reservation(reservation: InventoryReservation) -> None:
    """Return held units to the pool. Releasing twice is a no-op."""
    if reservation.status == ReservationStatus.RELEASED.value:
        return
    if reservation.status != ReservationStatus.HELD.value:
        raise InvalidStateTransitionError(
            "Committed reservations are returned with return_committed_units",
            details={"token": reservation.token, "status": reservation.status},
        )

    q = reservation.quantity
    db.session.execute(
        update(Product)
        .where(Product.id == reservation.product_id, Product.reserved_count >= q)
        .values(reserved_count=Product.reserved_count - q)
        .execution_options(synchronize_session=False)
    )
    reservation.status = ReservationStatus.RELEASED.value
    reservation.resolved_at = utcnow()
    db.session.flush()


def _order_reservations(order_id: int, status: str) -> list[InventoryReservation]:
    return (
        db.session.query(InventoryReservation)
        .filter_by(order_id=order_id, status=status)
        .order_by(InventoryReservation.id)
        .all()
    )


def commit_order_reservations(order: Order) -> int:
    reservations = _order_reservations(order.id, ReservationStatus.HELD.value)
    for reservation in reservations:
        commit_reservation(reservation)
    return len(reservations)


def release_order_reservations(order: Order) -> int:
    reservations = _order_reservations(order.id, ReservationStatus.HELD.value)
    for reservation in reservations:
        release_reservation(reservation)
    return len(reservations)


def return_committed_units(order: Order) -> int:
    """
    Give sold units of a cancelled or refunded order back to inventory.

    Must run after the order has left the paid statuses so the quota
    recompute no longer counts its items.
    """
    reservations = _order_reservations(order.id, ReservationStatus.COMMITTED.value)
    for reservation in reservations:
        q = reservation.quantity
        db.session.execute(
            update(Product)
            .where(Product.id == reservation.product_id, Product.sold_count >= q)
            .values(sold_count=Product.sold_count - q)
            .execution_options(synchronize_session=False)
        )
        reservation.status = ReservationStatus.RELEASED.value
        reservation.resolved_at = utcnow()
    db.session.flush()
    for reservation in reservations:
        recompute_organization_quota(reservation.organization_id, reservation.product_id, reservation.event_year_id)
    return len(reservations)


def quota_limit(product: Product) -> Optional[int]:
    """Per-organization ceiling: the explicit cap, else the whole inventory."""
    if product.max_quantity_per_org is not None:
        return product.max_quantity_per_org
    return product.total_inventory


def recompute_organization_quota(
    organization_id: int,
    product_id: int,
    event_year_id: int,
) -> Optional[OrganizationQuota]:
    """
    Upsert the derived quota row from paid order items.

    Products without a per-organization cap or finite inventory have no row.
    """
    product = _get_product(product_id)
    max_allowed = quota_limit(product)
    if max_allowed is None:
        return None

    purchased = purchased_quantity(organization_id, product_id, event_year_id)
    quota = (
        db.session.query(OrganizationQuota)
        .filter_by(organization_id=organization_id, product_id=product_id, event_year_id=event_year_id)
        .first()
    )
    if quota is None:
        quota = OrganizationQuota(
            organization_id=organization_id,
            product_id=product_id,
            event_year_id=event_year_id,
        )
        db.session.add(quota)

    quota.quantity_purchased = purchased
    quota.max_allowed = max_allowed
    quota.remaining_allowed = max(0, max_allowed - purchased)
    db.session.flush()
    return quota


def recompute_order_quotas(order: Order) -> None:
    for product_id in sorted({item.product_id for item in order.items}):
        recompute_organization_quota(order.organization_id, product_id, order.event_year_id)


def get_organization_quota(organization_id: int, product_id: int, event_year_id: int) -> dict:
    """
    Current quota position of an organization for a product.

    Computed live from paid order items and held reservations.
    """
    if not db.session.get(Organization, organization_id):
        raise NotFoundError(
            "Organization not found",
            code="ORGANIZATION_NOT_FOUND",
            details={"organization_id": organization_id},
        )
    if not db.session.get(EventYear, event_year_id):
        raise NotFoundError(
            "Event year not found",
            code="EVENT_YEAR_NOT_FOUND",
            details={"event_year_id": event_year_id},
        )
    product = _get_product(product_id)

    purchased = purchased_quantity(organization_id, product_id, event_year_id)
    held = held_quantity(organization_id, product_id, event_year_id)
    max_allowed = quota_limit(product)
    remaining = None if max_allowed is None else max(0, max_allowed - purchased)
    available = product.available_count

    can_purchase_more = True
    if remaining is not None and remaining - held <= 0:
        can_purchase_more = False
    if available is not None and available <= 0:
        can_purchase_more = False

    return {
        "organization_id": organization_id,
        "product_id": product_id,
        "event_year_id": event_year_id,
        "product_name": product.name,
        "quantity_purchased": purchased,
        "quantity_held": held,
        "max_allowed": max_allowed,
        "remaining_allowed": remaining,
        "available_inventory": available,
        "at_quota_limit": remaining is not None and remaining == 0,
        "can_purchase_more": can_purchase_more,
    }


def get_inventory_status(product_id: int) -> dict:
    product = _get_product(product_id)
    return {
        "product_id": product.id,
        "product_name": product.name,
        "product_type": product.product_type,
        "total_inventory": product.total_inventory,
        "sold_count": product.sold_count,
        "reserved_count": product.reserved_count,
        "available_count": product.available_count,
        "max_quantity_per_org": product.max_quantity_per_org,
    }


def get_quota_report(event_year_id: int) -> list[dict]:
    """Every organization quota row for an event year, with product headroom."""
    if not db.session.get(EventYear, event_year_id):
        raise NotFoundError(
            "Event year not found",
            code="EVENT_YEAR_NOT_FOUND",
            details={"event_year_id": event_year_id},
        )

    rows = (
        db.session.query(OrganizationQuota, Organization, Product)
        .join(Organization, Organization.id == OrganizationQuota.organization_id)
        .join(Product, Product.id == OrganizationQuota.product_id)
        .filter(OrganizationQuota.event_year_id == event_year_id)
        .order_by(Product.name, Organization.name)
        .all()
    )
    report = []
    for quota, org, product in rows:
        data = quota.to_dict()
        data.update(
            {
                "organization_name": org.name,
                "product_name": product.name,
                "at_quota_limit": quota.remaining_allowed == 0,
                "available_inventory": product.available_count,
            }
        )
        report.append(data)
    return report

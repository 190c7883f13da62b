# Overview: Service-layer operations for maintenance; abandoned-order sweep and balance reconciliation.

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from flask import current_app

from ..extensions import db
from ..models import Order, InventoryReservation
from ..enums import OrderStatus, ReservationStatus
from ..errors import ValidationError
from ..time_utils import utcnow, to_utc_z
from . import inventory_service
from .concurrency import run_atomic
from .order_service import completed_paid_cents, delete_unpaid_order, sync_invoice


# A checkout that never produced a payment leaves the order confirmed.
_SWEEPABLE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value)


def _has_expired_hold(order_id: int, now) -> bool:
    return (
        db.session.query(InventoryReservation.id)
        .filter(
            InventoryReservation.order_id == order_id,
            InventoryReservation.status == ReservationStatus.HELD.value,
            InventoryReservation.expires_at < now,
        )
        .first()
        is not None
    )


def find_abandoned_orders(*, older_than_hours: int, event_year_id: Optional[int] = None) -> list[Order]:
    """
    Pending or checked-out (confirmed) non-sponsorship orders with no
    completed payment that are older than the cutoff or whose inventory hold
    has expired.
    """
    now = utcnow()
    cutoff = now - timedelta(hours=older_than_hours)
    query = db.session.query(Order).filter(
        Order.status.in_(_SWEEPABLE_STATUSES),
        Order.is_sponsorship.is_(False),
        Order.balance_owed_cents == Order.total_amount_cents,
    )
    if event_year_id is not None:
        query = query.filter(Order.event_year_id == event_year_id)

    abandoned = []
    for order in query.order_by(Order.id).all():
        if completed_paid_cents(order.id) > 0:
            continue
        if order.created_at < cutoff or _has_expired_hold(order.id, now):
            abandoned.append(order)
    return abandoned


def cleanup_abandoned_orders(
    *,
    older_than_hours: Optional[int] = None,
    execute: bool = False,
    event_year_id: Optional[int] = None,
) -> dict:
    """
    Sweep abandoned unpaid orders.

    Dry-run by default: reports candidates without touching them. With
    execute=True each order's holds are released and the order, items,
    invoice and failed payments are deleted, one transaction per order.
    Expired holds that belong to no order are released too.
    """
    if older_than_hours is None:
        older_than_hours = current_app.config.get("ABANDONED_ORDER_HOURS", 24)
    if older_than_hours < 0:
        raise ValidationError("older_than_hours must be >= 0")

    candidates = find_abandoned_orders(older_than_hours=older_than_hours, event_year_id=event_year_id)
    report = {
        "dry_run": not execute,
        "older_than_hours": older_than_hours,
        "candidates": [
            {
                "order_id": o.id,
                "order_number": o.order_number,
                "organization_id": o.organization_id,
                "total_amount_cents": o.total_amount_cents,
                "created_at": to_utc_z(o.created_at),
            }
            for o in candidates
        ],
        "deleted": 0,
        "orphan_reservations_released": 0,
    }
    if not execute:
        return report

    for order_id in [o.id for o in candidates]:
        def _op(order_id=order_id) -> bool:
            order = db.session.get(Order, order_id)
            # Paid or cancelled since the scan; leave it alone.
            if order is None or order.status not in _SWEEPABLE_STATUSES:
                return False
            delete_unpaid_order(order)
            db.session.commit()
            return True

        if run_atomic(_op):
            report["deleted"] += 1

    def _release_orphans() -> int:
        orphans = (
            db.session.query(InventoryReservation)
            .filter(
                InventoryReservation.order_id.is_(None),
                InventoryReservation.status == ReservationStatus.HELD.value,
                InventoryReservation.expires_at < utcnow(),
            )
            .all()
        )
        for reservation in orphans:
            inventory_service.release_reservation(reservation)
        db.session.commit()
        return len(orphans)

    report["orphan_reservations_released"] = run_atomic(_release_orphans)
    current_app.logger.info(
        "Abandoned order cleanup deleted %s order(s), released %s orphan hold(s)",
        report["deleted"], report["orphan_reservations_released"],
    )
    return report


def _expected_status(order: Order, paid: int, balance: int) -> str:
    if order.status in (OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value):
        return order.status
    if paid > 0:
        return OrderStatus.FULLY_PAID.value if balance == 0 else OrderStatus.DEPOSIT_PAID.value
    if order.status in (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value):
        return order.status
    return OrderStatus.PENDING.value


def verify_balances(*, event_year_id: Optional[int] = None, fix: bool = False) -> dict:
    """
    Check every order against its completed payments.

    Reports orders whose balance, status, or invoice mirror disagree with
    total - sum(completed payments). With fix=True the derived fields are
    rewritten from the payments; payments themselves are never changed.
    """
    def _op() -> dict:
        query = db.session.query(Order)
        if event_year_id is not None:
            query = query.filter(Order.event_year_id == event_year_id)
        orders = query.order_by(Order.id).all()

        discrepancies = []
        for order in orders:
            paid = completed_paid_cents(order.id)
            expected_balance = max(0, order.total_amount_cents - paid)
            expected_status = _expected_status(order, paid, expected_balance)
            problems = []
            if order.balance_owed_cents != expected_balance:
                problems.append("balance_owed")
            if paid > order.total_amount_cents:
                problems.append("overpaid")
            if order.status != expected_status:
                problems.append("status")
            invoice = order.invoice
            if invoice is not None and (
                invoice.total_amount_cents != order.total_amount_cents
                or invoice.balance_owed_cents != expected_balance
                or invoice.paid_amount_cents != order.total_amount_cents - expected_balance
            ):
                problems.append("invoice_mirror")
            if not problems:
                continue

            discrepancies.append(
                {
                    "order_id": order.id,
                    "order_number": order.order_number,
                    "problems": problems,
                    "status": order.status,
                    "expected_status": expected_status,
                    "balance_owed_cents": order.balance_owed_cents,
                    "expected_balance_owed_cents": expected_balance,
                    "completed_payments_cents": paid,
                }
            )
            if fix:
                # Repair writes the derived status directly; the payments are the source of truth.
                order.balance_owed_cents = expected_balance
                order.status = expected_status
                sync_invoice(order)

        if fix and discrepancies:
            db.session.commit()
        return {
            "checked": len(orders),
            "discrepancies": discrepancies,
            "fixed": len(discrepancies) if fix else 0,
        }

    report = run_atomic(_op)
    if report["discrepancies"]:
        current_app.logger.warning(
            "Balance check found %s discrepancy(ies)%s",
            len(report["discrepancies"]), " (fixed)" if fix else "",
        )
    return report

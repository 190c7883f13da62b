# Overview: Service-layer operations for sponsorship orders; admin-created, fee-inclusive, audited.

from __future__ import annotations

from typing import Optional

from flask import current_app

from ..extensions import db
from ..models import Order
from ..enums import OrderStatus, PaymentType, InvoiceStatus
from ..errors import ValidationError, NotFoundError, InvalidStateTransitionError
from ..context import ActorContext, ensure_super_admin
from ..time_utils import utcnow
from .audit_service import append_audit_entry, diff_changes
from .collaborators import notify_invoice
from .concurrency import run_atomic
from .document_service import next_document_number, SPONSORSHIP_PREFIX
from .metadata import (
    SponsorshipDetails,
    read_order_metadata,
    write_order_metadata,
    read_invoice_metadata,
    write_invoice_metadata,
)
from .money import fee_schedule_from_config, processing_fee_cents
from .order_service import (
    get_order,
    get_organization,
    get_event_year,
    new_invoice,
    mark_cancelled,
    completed_paid_cents,
    delete_unpaid_order,
    sync_invoice,
)
from .order_state import transition_order

MIN_BASE_AMOUNT_CENTS = 100
MAX_BASE_AMOUNT_CENTS = 100_000_000
MAX_DESCRIPTION_LENGTH = 500
DEFAULT_CANCEL_REASON = "Cancelled by admin"


def _validate_base_amount(base_amount_cents) -> int:
    if isinstance(base_amount_cents, bool) or not isinstance(base_amount_cents, int):
        raise ValidationError("base_amount_cents must be an integer", details={"base_amount_cents": base_amount_cents})
    if not MIN_BASE_AMOUNT_CENTS <= base_amount_cents <= MAX_BASE_AMOUNT_CENTS:
        raise ValidationError(
            "Sponsorship amount must be between $1.00 and $1,000,000.00",
            details={"base_amount_cents": base_amount_cents},
        )
    return base_amount_cents


def _validate_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError("description must be a string")
    description = description.strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"description must be at most {MAX_DESCRIPTION_LENGTH} characters")
    return description or None


def _sponsorship_details(base_amount_cents: int, description: Optional[str]) -> SponsorshipDetails:
    fee = processing_fee_cents(base_amount_cents, fee_schedule_from_config(current_app.config))
    return SponsorshipDetails(
        base_amount_cents=base_amount_cents,
        processing_fee_cents=fee,
        description=description,
    )


def _get_sponsorship(order_id: int) -> Order:
    order = get_order(order_id, lock=True)
    if not order.is_sponsorship:
        raise ValidationError("Order is not a sponsorship", details={"order_id": order_id})
    if order.invoice is None:
        raise NotFoundError("Invoice not found", code="INVOICE_NOT_FOUND", details={"order_id": order_id})
    return order


def create_sponsorship(
    *,
    organization_id: int,
    event_year_id: int,
    base_amount_cents: int,
    description: Optional[str] = None,
    actor: ActorContext,
) -> Order:
    """
    Create a sponsorship order and its sent invoice.

    The sponsor pays base + processing fee; no deposit step.
    """
    ensure_super_admin(actor, "create sponsorships")
    _validate_base_amount(base_amount_cents)
    description = _validate_description(description)

    def _op() -> Order:
        org = get_organization(organization_id)
        event_year = get_event_year(event_year_id)
        details = _sponsorship_details(base_amount_cents, description)
        total = details.base_amount_cents + details.processing_fee_cents

        order = Order(
            order_number=next_document_number(event_year_id=event_year.id, document_type=SPONSORSHIP_PREFIX),
            organization_id=org.id,
            event_year_id=event_year.id,
            status=OrderStatus.PENDING.value,
            payment_type=PaymentType.FULL.value,
            total_amount_cents=total,
            deposit_amount_cents=0,
            balance_owed_cents=total,
            is_sponsorship=True,
            created_by=actor.actor_id,
        )
        write_order_metadata(order, read_order_metadata(order).with_sponsorship(details))
        db.session.add(order)
        db.session.flush()

        invoice = new_invoice(order, status=InvoiceStatus.SENT, sent=True)
        write_invoice_metadata(invoice, read_invoice_metadata(invoice).with_sponsorship(details))
        append_audit_entry(
            order,
            action="created",
            actor=actor,
            changes={
                "base_amount_cents": {"from": None, "to": details.base_amount_cents},
                "description": {"from": None, "to": details.description},
            },
        )
        db.session.commit()
        return order

    order = run_atomic(_op)
    current_app.logger.info("Created sponsorship %s for organization %s", order.order_number, organization_id)
    notify_invoice(order, "Sponsorship invoice")
    return order


def edit_sponsorship_order(
    order_id: int,
    *,
    new_base_amount_cents: int,
    new_description: Optional[str] = None,
    actor: ActorContext,
) -> Order:
    """
    Change the amount and description of an unpaid sponsorship.

    Refused once any money is received. Fee and total are recomputed,
    the prior values go into the audit trail, and the invoice is re-sent.
    """
    ensure_super_admin(actor, "edit sponsorships")
    _validate_base_amount(new_base_amount_cents)
    new_description = _validate_description(new_description)

    def _op() -> Order:
        order = _get_sponsorship(order_id)
        invoice = order.invoice
        if invoice.paid_amount_cents > 0 or invoice.status in (InvoiceStatus.PAID.value, InvoiceStatus.PARTIAL.value):
            raise InvalidStateTransitionError(
                "Cannot edit a sponsorship that has received payment",
                details={"order_id": order.id, "paid_amount_cents": invoice.paid_amount_cents},
            )
        if order.status not in (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value):
            raise InvalidStateTransitionError(
                f"Cannot edit a {order.status} sponsorship",
                details={"order_id": order.id, "status": order.status},
            )

        meta = read_order_metadata(order)
        previous = meta.sponsorship or SponsorshipDetails(
            base_amount_cents=order.total_amount_cents,
            processing_fee_cents=0,
        )
        details = _sponsorship_details(new_base_amount_cents, new_description)
        changes = diff_changes(
            {"base_amount_cents": previous.base_amount_cents, "description": previous.description},
            {"base_amount_cents": details.base_amount_cents, "description": details.description},
        )

        write_order_metadata(order, meta.with_sponsorship(details))
        write_invoice_metadata(invoice, read_invoice_metadata(invoice).with_sponsorship(details))
        append_audit_entry(order, action="updated", actor=actor, changes=changes)

        order.total_amount_cents = details.base_amount_cents + details.processing_fee_cents
        order.balance_owed_cents = order.total_amount_cents - completed_paid_cents(order.id)
        sync_invoice(order)
        invoice.sent_at = utcnow()
        if invoice.status == InvoiceStatus.DRAFT.value:
            invoice.status = InvoiceStatus.SENT.value
        db.session.commit()
        return order

    order = run_atomic(_op)
    current_app.logger.info("Edited sponsorship %s", order.order_number)
    notify_invoice(order, "Updated sponsorship invoice")
    return order


def delete_or_cancel_sponsorship(
    order_id: int,
    *,
    reason: Optional[str] = None,
    actor: ActorContext,
) -> dict:
    """
    Remove a sponsorship.

    Unpaid: order and invoice rows are deleted. Paid: the order and invoice
    are cancelled and the audit trail keeps the record, fully paid ones
    included. No money moves; use refund_order to return it.
    """
    ensure_super_admin(actor, "delete sponsorships")
    reason = (reason or "").strip() or DEFAULT_CANCEL_REASON

    def _op() -> dict:
        order = _get_sponsorship(order_id)
        order_number = order.order_number
        if order.invoice.paid_amount_cents > 0:
            transition_order(order, OrderStatus.CANCELLED, sponsorship_admin=True)
            mark_cancelled(order, actor, reason)
            append_audit_entry(order, action="cancelled", actor=actor, reason=reason)
            sync_invoice(order)
            db.session.commit()
            return {"action": "cancelled", "order": order.to_dict()}

        delete_unpaid_order(order)
        db.session.commit()
        return {"action": "deleted", "order_id": order_id, "order_number": order_number}

    result = run_atomic(_op)
    current_app.logger.info("Sponsorship %s %s (%s)", order_id, result["action"], reason)
    return result

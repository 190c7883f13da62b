# Overview: Service-layer operations for orders, invoices, and payments; encapsulates business logic and database work.

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Order,
    OrderItem,
    Invoice,
    Payment,
    Product,
    Organization,
    EventYear,
    OrganizationPricing,
    Coupon,
    InventoryReservation,
)
from ..enums import (
    OrderStatus,
    PaymentType,
    InvoiceStatus,
    PaymentStatus,
    PaymentKind,
    CouponDiscountType,
)
from ..errors import (
    ValidationError,
    NotFoundError,
    InvalidStateTransitionError,
    ExternalServiceError,
)
from ..context import ActorContext, ensure_super_admin
from ..time_utils import utcnow, to_utc_z
from . import inventory_service, team_service
from .audit_service import append_audit_entry
from .collaborators import ChargeResult, get_payment_processor, notify_invoice
from .concurrency import lock_for_update, run_atomic
from .document_service import next_document_number, ORDER_PREFIX, INVOICE_PREFIX
from .metadata import (
    CouponDetails,
    CancellationDetails,
    PaymentFailure,
    read_order_metadata,
    write_order_metadata,
    read_invoice_metadata,
    write_invoice_metadata,
)
from .money import round_half_up
from .order_state import transition_order, is_terminal

PAYMENT_SUCCEEDED = "succeeded"
PAYMENT_FAILED = "failed"


@dataclass(frozen=True)
class PaymentResult:
    """Outcome reported by the payment processor for one transaction."""
    transaction_id: str
    status: str
    method: str = "card"
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class PricedLine:
    product: Product
    quantity: int
    unit_price_cents: int
    deposit_price_cents: int

    @property
    def total_price_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    @property
    def total_deposit_cents(self) -> int:
        return self.deposit_price_cents * self.quantity


# =============================================================================
# Lookups
# =============================================================================

def get_order(order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if not order:
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND", details={"order_id": order_id})
    return order


def get_organization(organization_id: int) -> Organization:
    org = db.session.get(Organization, organization_id)
    if not org:
        raise NotFoundError(
            "Organization not found",
            code="ORGANIZATION_NOT_FOUND",
            details={"organization_id": organization_id},
        )
    return org


def get_event_year(event_year_id: int) -> EventYear:
    event_year = db.session.get(EventYear, event_year_id)
    if not event_year:
        raise NotFoundError(
            "Event year not found",
            code="EVENT_YEAR_NOT_FOUND",
            details={"event_year_id": event_year_id},
        )
    return event_year


def completed_paid_cents(order_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.order_id == order_id, Payment.status == PaymentStatus.COMPLETED.value)
        .scalar()
    )
    return int(total or 0)


def _find_payment(transaction_id: str) -> Optional[Payment]:
    return db.session.query(Payment).filter_by(processor_transaction_id=transaction_id).first()


def get_order_summary(order_id: int) -> dict:
    order = get_order(order_id)
    data = order.to_dict()
    data["invoice"] = order.invoice.to_dict() if order.invoice else None
    data["payments"] = [p.to_dict() for p in order.payments]
    data["reservations"] = [
        r.to_dict()
        for r in db.session.query(InventoryReservation).filter_by(order_id=order.id).order_by(InventoryReservation.id)
    ]
    return data


# =============================================================================
# Balance and invoice mirror
# =============================================================================

def recompute_balance(order: Order) -> int:
    """Set balance_owed from completed payments; returns the paid total."""
    paid = completed_paid_cents(order.id)
    order.balance_owed_cents = max(0, order.total_amount_cents - paid)
    return paid


def sync_invoice(order: Order) -> Optional[Invoice]:
    """
    Copy the order's money fields onto its invoice and derive invoice status.

    Caller owns the transaction.
    """
    invoice = order.invoice
    if invoice is None:
        return None

    paid = order.paid_amount_cents
    invoice.total_amount_cents = order.total_amount_cents
    invoice.paid_amount_cents = paid
    invoice.balance_owed_cents = order.balance_owed_cents

    if order.status in (OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value):
        invoice.status = InvoiceStatus.CANCELLED.value
    elif paid > 0 and order.balance_owed_cents == 0:
        invoice.status = InvoiceStatus.PAID.value
        invoice.paid_at = invoice.paid_at or utcnow()
    elif paid > 0:
        invoice.status = InvoiceStatus.PARTIAL.value
    elif invoice.status in (InvoiceStatus.PAID.value, InvoiceStatus.PARTIAL.value):
        invoice.status = InvoiceStatus.SENT.value
        invoice.paid_at = None
    elif invoice.status == InvoiceStatus.SENT.value and invoice.due_date and invoice.due_date < utcnow():
        invoice.status = InvoiceStatus.OVERDUE.value
    return invoice


def new_invoice(order: Order, *, status: InvoiceStatus, sent: bool = False) -> Invoice:
    now = utcnow()
    invoice = Invoice(
        order=order,
        invoice_number=next_document_number(event_year_id=order.event_year_id, document_type=INVOICE_PREFIX),
        status=status.value,
        total_amount_cents=order.total_amount_cents,
        paid_amount_cents=0,
        balance_owed_cents=order.balance_owed_cents,
        due_date=now + timedelta(days=current_app.config.get("INVOICE_DUE_DAYS", 30)),
        sent_at=now if sent else None,
    )
    db.session.add(invoice)
    return invoice


# =============================================================================
# Order creation
# =============================================================================

def _normalize_items(items) -> dict[int, int]:
    if not items:
        raise ValidationError("Order must contain at least one item")

    quantities: dict[int, int] = {}
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object with product_id and quantity")
        product_id = raw.get("product_id")
        quantity = raw.get("quantity")
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError("product_id must be an integer", details={"item": raw})
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("quantity must be a positive integer", details={"item": raw})
        quantities[product_id] = quantities.get(product_id, 0) + quantity
    return quantities


def _price_line(organization_id: int, product_id: int, quantity: int) -> PricedLine:
    product = db.session.get(Product, product_id)
    if not product or not product.is_active:
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND", details={"product_id": product_id})

    pricing = (
        db.session.query(OrganizationPricing)
        .filter_by(organization_id=organization_id, product_id=product_id)
        .first()
    )

    if pricing is not None and pricing.max_quantity is not None and quantity > pricing.max_quantity:
        raise ValidationError(
            f"Maximum quantity for {product.name} is {pricing.max_quantity}",
            code="QUANTITY_EXCEEDS_LIMIT",
            details={"product_id": product_id, "requested": quantity, "max_quantity": pricing.max_quantity},
        )

    if pricing is not None and pricing.is_waived:
        return PricedLine(product=product, quantity=quantity, unit_price_cents=0, deposit_price_cents=0)

    unit_price = product.base_price_cents
    if pricing is not None and pricing.custom_price_cents is not None:
        unit_price = pricing.custom_price_cents

    deposit = product.deposit_cents or 0
    if pricing is not None and pricing.custom_deposit_cents is not None:
        deposit = pricing.custom_deposit_cents

    return PricedLine(
        product=product,
        quantity=quantity,
        unit_price_cents=unit_price,
        deposit_price_cents=min(deposit, unit_price),
    )


def _resolve_coupon(code: str, organization_id: int, event_year_id: int, subtotal_cents: int) -> tuple[Coupon, int]:
    normalized = (code or "").strip().upper()
    coupon = (
        db.session.query(Coupon)
        .filter(Coupon.event_year_id == event_year_id, func.upper(Coupon.code) == normalized)
        .first()
    )
    details = {"code": normalized}
    if not coupon or not coupon.is_active:
        raise ValidationError("Invalid coupon code", code="INVALID_COUPON", details=details)
    if coupon.organization_id is not None and coupon.organization_id != organization_id:
        raise ValidationError("Coupon is not valid for this organization", code="INVALID_COUPON", details=details)
    if coupon.expires_at is not None and coupon.expires_at < utcnow():
        raise ValidationError("Coupon has expired", code="INVALID_COUPON", details=details)
    if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
        raise ValidationError("Coupon usage limit reached", code="INVALID_COUPON", details=details)
    if coupon.minimum_order_cents is not None and subtotal_cents < coupon.minimum_order_cents:
        raise ValidationError(
            "Order total is below the coupon minimum",
            code="INVALID_COUPON",
            details={**details, "minimum_order_cents": coupon.minimum_order_cents},
        )

    if coupon.discount_type == CouponDiscountType.PERCENTAGE.value:
        # discount_value is basis points
        discount = round_half_up(Decimal(subtotal_cents) * coupon.discount_value / Decimal(10000))
    else:
        discount = coupon.discount_value
    return coupon, max(0, min(discount, subtotal_cents))


def create_order(
    *,
    organization_id: int,
    event_year_id: int,
    items: list[dict],
    payment_type: str = PaymentType.FULL.value,
    coupon_code: Optional[str] = None,
    actor: Optional[ActorContext] = None,
) -> Order:
    """
    Create a pending order with its items and draft invoice.

    WHY: Inventory is held before the order exists, so a sold-out product
    fails the whole call and nothing is written.

    DESIGN:
    - Prices resolve through OrganizationPricing overrides
    - Quota-limited products are reserved in the same transaction
    - Any error rolls the transaction back, returning every reservation
      taken in this call
    """
    if payment_type not in {t.value for t in PaymentType}:
        raise ValidationError("payment_type must be 'full' or 'deposit'", details={"payment_type": payment_type})
    quantities = _normalize_items(items)

    def _op() -> Order:
        org = get_organization(organization_id)
        event_year = get_event_year(event_year_id)

        lines = [_price_line(org.id, product_id, qty) for product_id, qty in quantities.items()]
        subtotal = sum(line.total_price_cents for line in lines)
        deposit = sum(line.total_deposit_cents for line in lines)

        coupon_details = None
        total = subtotal
        if coupon_code:
            coupon, discount = _resolve_coupon(coupon_code, org.id, event_year.id, subtotal)
            total = subtotal - discount
            deposit = min(deposit, total)
            coupon_details = CouponDetails(
                code=coupon.code,
                coupon_id=coupon.id,
                discount_cents=discount,
                original_total_cents=subtotal,
            )

        payment_amount = deposit if payment_type == PaymentType.DEPOSIT.value else total
        if payment_amount <= 0:
            raise ValidationError(
                "Payment amount must be greater than zero",
                code="ZERO_PAYMENT_AMOUNT",
                details={"payment_type": payment_type, "total_amount_cents": total, "deposit_amount_cents": deposit},
            )

        reservations = [
            inventory_service.reserve(
                product_id=line.product.id,
                organization_id=org.id,
                event_year_id=event_year.id,
                quantity=line.quantity,
            )
            for line in lines
            if line.product.is_quota_limited
        ]

        order = Order(
            order_number=next_document_number(event_year_id=event_year.id, document_type=ORDER_PREFIX),
            organization_id=org.id,
            event_year_id=event_year.id,
            status=OrderStatus.PENDING.value,
            payment_type=payment_type,
            total_amount_cents=total,
            deposit_amount_cents=deposit,
            balance_owed_cents=total,
            is_sponsorship=False,
            created_by=actor.actor_id if actor else None,
        )
        if coupon_details:
            write_order_metadata(order, read_order_metadata(order).with_coupon(coupon_details))
        for line in lines:
            order.items.append(
                OrderItem(
                    product_id=line.product.id,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    deposit_price_cents=line.deposit_price_cents,
                    total_price_cents=line.total_price_cents,
                )
            )
        db.session.add(order)
        db.session.flush()

        for reservation in reservations:
            reservation.order_id = order.id

        new_invoice(order, status=InvoiceStatus.DRAFT)
        db.session.commit()
        return order

    order = run_atomic(_op)
    current_app.logger.info(
        "Created order %s for organization %s (total %s cents)",
        order.order_number, organization_id, order.total_amount_cents,
    )
    return order


# =============================================================================
# Payments
# =============================================================================

def _require_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer", details={"amount_cents": amount_cents})
    return amount_cents


def _payment_kind(order: Order, amount_cents: int, paid_before: int) -> str:
    if paid_before == 0 and amount_cents >= order.total_amount_cents:
        return PaymentKind.FULL_PAYMENT.value
    if paid_before == 0 and order.payment_type == PaymentType.DEPOSIT.value:
        return PaymentKind.DEPOSIT_PAYMENT.value
    return PaymentKind.BALANCE_PAYMENT.value


def _count_coupon_use(order: Order) -> None:
    coupon = read_order_metadata(order).coupon
    if coupon is None:
        return
    db.session.execute(
        update(Coupon)
        .where(Coupon.id == coupon.coupon_id)
        .values(current_uses=Coupon.current_uses + 1)
        .execution_options(synchronize_session=False)
    )


def apply_payment(
    order_id: int,
    amount_cents: int,
    result: PaymentResult,
    *,
    actor: Optional[ActorContext] = None,
) -> Payment:
    """
    Apply a processor outcome to an order.

    WHY: Processor callbacks are retried and may arrive twice; money must
    move at most once per transaction id.

    DESIGN:
    - A transaction id already recorded returns the existing Payment
    - Failed outcomes are recorded with no balance or status effect
    - Success recomputes the balance, moves the status, commits held
      inventory, and syncs the invoice in one transaction
    - Team sync and the invoice email run after commit, best-effort
    """
    if not result.transaction_id:
        raise ValidationError("transaction_id is required")
    if result.status not in (PAYMENT_SUCCEEDED, PAYMENT_FAILED):
        raise ValidationError("status must be 'succeeded' or 'failed'", details={"status": result.status})
    _require_amount(amount_cents)

    outcome = {"replayed": False}

    def _op() -> Payment:
        outcome["replayed"] = False
        existing = _find_payment(result.transaction_id)
        if existing is not None:
            if existing.order_id != order_id:
                raise ValidationError(
                    "Transaction id already applied to another order",
                    details={"transaction_id": result.transaction_id, "order_id": existing.order_id},
                )
            outcome["replayed"] = True
            return existing

        order = get_order(order_id, lock=True)
        paid_before = completed_paid_cents(order.id)
        payment = Payment(
            order_id=order.id,
            amount_cents=amount_cents,
            method=result.method or "card",
            payment_kind=_payment_kind(order, amount_cents, paid_before),
            processor_transaction_id=result.transaction_id,
            created_by=actor.actor_id if actor else None,
        )

        if result.status == PAYMENT_FAILED:
            payment.status = PaymentStatus.FAILED.value
            payment.failure_reason = (result.failure_reason or "Payment failed")[:255]
            db.session.add(payment)
            failure = PaymentFailure(
                transaction_id=result.transaction_id,
                failed_at=to_utc_z(utcnow()),
                reason=payment.failure_reason,
            )
            write_order_metadata(order, read_order_metadata(order).with_payment_failure(failure))
            db.session.commit()
            return payment

        if is_terminal(order.status):
            raise InvalidStateTransitionError(
                f"Cannot apply a payment to a {order.status} order",
                details={"order_id": order.id, "status": order.status},
            )
        if amount_cents > order.balance_owed_cents:
            raise ValidationError(
                "Payment exceeds the balance owed",
                code="OVERPAYMENT",
                details={"amount_cents": amount_cents, "balance_owed_cents": order.balance_owed_cents},
            )

        payment.status = PaymentStatus.COMPLETED.value
        db.session.add(payment)
        db.session.flush()

        recompute_balance(order)
        target = OrderStatus.FULLY_PAID if order.balance_owed_cents == 0 else OrderStatus.DEPOSIT_PAID
        transition_order(order, target)
        inventory_service.commit_order_reservations(order)
        if paid_before == 0:
            _count_coupon_use(order)
        sync_invoice(order)
        db.session.commit()
        return payment

    # A concurrent duplicate callback loses on the unique transaction id
    # and is retried, finding the winner's row.
    payment = run_atomic(_op, retry_on=(IntegrityError,))

    if outcome["replayed"]:
        current_app.logger.info("Ignoring replayed payment %s for order %s", result.transaction_id, order_id)
    elif payment.status == PaymentStatus.COMPLETED.value:
        _after_payment(get_order(order_id))
    else:
        current_app.logger.warning(
            "Payment %s failed for order %s: %s", result.transaction_id, order_id, payment.failure_reason
        )
    return payment


def record_manual_payment(
    order_id: int,
    amount_cents: int,
    *,
    actor: ActorContext,
    method: str = "check",
    reference: Optional[str] = None,
) -> Payment:
    """Admin-posted cheque or bank transfer; reference doubles as the idempotency key."""
    ensure_super_admin(actor, "record manual payments")
    transaction_id = reference or f"manual_{uuid.uuid4().hex}"
    return apply_payment(
        order_id,
        amount_cents,
        PaymentResult(transaction_id=transaction_id, status=PAYMENT_SUCCEEDED, method=method),
        actor=actor,
    )


def _after_payment(order: Order) -> None:
    keyword = current_app.config.get("TEAM_PRODUCT_KEYWORD", "team")
    if any(team_service.is_team_product(item.product, keyword) for item in order.items):
        try:
            team_service.sync_teams(order.organization_id, order.event_year_id)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Failed to sync teams after payment on order %s", order.id)

    subject = "Payment received" if order.balance_owed_cents == 0 else "Deposit received"
    notify_invoice(order, subject)


# =============================================================================
# Checkout, completion, cancellation, refunds
# =============================================================================

def _create_charge(order: Order, amount_cents: int, purpose: str) -> ChargeResult:
    """Ask the processor for a charge. Runs outside any order transaction."""
    processor = get_payment_processor()
    metadata = {
        "order_id": order.id,
        "organization_id": order.organization_id,
        "payment_type": order.payment_type,
        "purpose": purpose,
    }
    try:
        return processor.create_charge(amount_cents, current_app.config.get("CURRENCY", "usd"), metadata)
    except Exception as exc:
        current_app.logger.exception("Payment processor failed to create charge for order %s", order.id)
        raise ExternalServiceError(
            "Payment processor failed to create the charge",
            details={"order_id": order.id, "purpose": purpose},
        ) from exc


def _record_charge(order_id: int, charge: ChargeResult, allowed_statuses: tuple) -> Order:
    def _op() -> Order:
        order = get_order(order_id, lock=True)
        if order.status not in allowed_statuses:
            raise InvalidStateTransitionError(
                f"Order moved to {order.status} while the charge was being created",
                details={"order_id": order.id, "status": order.status, "charge_id": charge.id},
            )
        if order.status == OrderStatus.PENDING.value:
            transition_order(order, OrderStatus.CONFIRMED)
        order.processor_charge_id = charge.id
        db.session.commit()
        return order

    return run_atomic(_op)


def start_checkout(order_id: int) -> dict:
    """Create the first processor charge (deposit or full amount) for a pending order."""
    order = get_order(order_id)
    allowed = (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value)
    if order.status not in allowed:
        raise InvalidStateTransitionError(
            f"Cannot check out a {order.status} order",
            details={"order_id": order.id, "status": order.status},
        )

    if order.payment_type == PaymentType.DEPOSIT.value and order.paid_amount_cents == 0:
        amount = order.deposit_amount_cents
    else:
        amount = order.balance_owed_cents
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero", code="ZERO_PAYMENT_AMOUNT")

    charge = _create_charge(order, amount, "checkout")
    order = _record_charge(order_id, charge, allowed)
    return {"order": order.to_dict(), "charge": charge.to_dict(), "amount_cents": amount}


def complete_order_payment(order_id: int) -> dict:
    """
    Create a charge for the remaining balance.

    Legal for deposit_paid orders, and for sponsorships that are still
    pending/confirmed (they have no deposit step).
    """
    order = get_order(order_id)
    if is_terminal(order.status):
        raise InvalidStateTransitionError(
            f"Order is already {order.status}",
            details={"order_id": order.id, "status": order.status},
        )
    if order.status != OrderStatus.DEPOSIT_PAID.value and not order.is_sponsorship:
        raise InvalidStateTransitionError(
            "Order has no payments yet; use checkout",
            details={"order_id": order.id, "status": order.status},
        )

    amount = order.balance_owed_cents
    if amount <= 0:
        raise ValidationError("No balance remains on this order", code="ZERO_PAYMENT_AMOUNT")

    allowed = (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value, OrderStatus.DEPOSIT_PAID.value)
    charge = _create_charge(order, amount, "balance")
    order = _record_charge(order_id, charge, allowed)
    return {"order": order.to_dict(), "charge": charge.to_dict(), "amount_cents": amount}


def mark_cancelled(order: Order, actor: Optional[ActorContext], reason: str) -> None:
    details = CancellationDetails(
        cancelled_at=to_utc_z(utcnow()),
        cancelled_by=actor.actor_id if actor else "system",
        reason=reason,
    )
    write_order_metadata(order, read_order_metadata(order).with_cancellation(details))
    if order.invoice is not None:
        write_invoice_metadata(order.invoice, read_invoice_metadata(order.invoice).with_cancellation(details))


def cancel_order(order_id: int, *, actor: Optional[ActorContext] = None, reason: Optional[str] = None) -> Order:
    """
    Cancel a pending, confirmed, or deposit_paid order.

    Held units are released; units already sold to a deposit_paid order go
    back to inventory. Once money has moved only a super admin may cancel.
    """
    reason = reason or "Cancelled"

    def _op() -> Order:
        order = get_order(order_id, lock=True)
        was_paid = order.status == OrderStatus.DEPOSIT_PAID.value
        if was_paid:
            ensure_super_admin(actor, "cancel a paid order")

        transition_order(order, OrderStatus.CANCELLED)
        inventory_service.release_order_reservations(order)
        if was_paid:
            inventory_service.return_committed_units(order)
        mark_cancelled(order, actor, reason)
        if order.is_sponsorship and actor is not None:
            append_audit_entry(order, action="cancelled", actor=actor, reason=reason)
        sync_invoice(order)
        db.session.commit()
        return order

    order = run_atomic(_op)
    current_app.logger.info("Cancelled order %s (%s)", order.order_number, reason)
    return order


def cancel_or_complete_order(
    order_id: int,
    action: str,
    *,
    actor: Optional[ActorContext] = None,
    reason: Optional[str] = None,
) -> dict:
    if action == "cancel":
        order = cancel_order(order_id, actor=actor, reason=reason)
        return {"action": "cancelled", "order": order.to_dict()}
    if action == "complete":
        result = complete_order_payment(order_id)
        result["action"] = "charge_created"
        return result
    raise ValidationError("action must be 'cancel' or 'complete'", details={"action": action})


def refund_order(order_id: int, *, actor: ActorContext, reason: Optional[str] = None) -> Order:
    """
    Refund every completed payment of a fully_paid order.

    Processor refunds run before the ledger transaction. If the processor
    fails part-way, the refunds it did issue are still recorded and the
    order stays fully_paid.
    """
    ensure_super_admin(actor, "refund orders")
    reason = reason or "Refunded by admin"

    order = get_order(order_id)
    if order.status != OrderStatus.FULLY_PAID.value:
        raise InvalidStateTransitionError(
            f"Only fully paid orders can be refunded (order is {order.status})",
            details={"order_id": order.id, "status": order.status},
        )

    already_refunded = {
        p.refunded_payment_id for p in order.payments if p.status == PaymentStatus.REFUNDED.value
    }
    to_refund = [
        p for p in order.payments
        if p.status == PaymentStatus.COMPLETED.value and p.id not in already_refunded
    ]

    processor = get_payment_processor()
    issued = []
    for payment in to_refund:
        try:
            refund = processor.refund(payment.processor_transaction_id, payment.amount_cents)
        except Exception as exc:
            current_app.logger.exception("Payment processor failed to refund payment %s", payment.id)
            if issued:
                _record_refunds(order_id, issued, actor, reason, complete=False)
            raise ExternalServiceError(
                "Payment processor failed to issue the refund",
                details={"order_id": order_id, "payment_id": payment.id, "refunds_recorded": len(issued)},
            ) from exc
        issued.append((payment, refund))

    return _record_refunds(order_id, issued, actor, reason, complete=True)


def _record_refunds(order_id: int, issued: list, actor: ActorContext, reason: str, *, complete: bool) -> Order:
    def _op() -> Order:
        order = get_order(order_id, lock=True)
        for payment, refund in issued:
            db.session.add(
                Payment(
                    order_id=order.id,
                    amount_cents=-payment.amount_cents,
                    method=payment.method,
                    payment_kind=PaymentKind.REFUND.value,
                    status=PaymentStatus.REFUNDED.value,
                    processor_transaction_id=refund.id,
                    refunded_payment_id=payment.id,
                    created_by=actor.actor_id,
                )
            )
        if complete:
            transition_order(order, OrderStatus.REFUNDED)
            inventory_service.return_committed_units(order)
            mark_cancelled(order, actor, reason)
            if order.is_sponsorship:
                append_audit_entry(order, action="refunded", actor=actor, reason=reason)
            sync_invoice(order)
        db.session.commit()
        return order

    order = run_atomic(_op)
    current_app.logger.info("Recorded %s refund(s) for order %s", len(issued), order.order_number)
    return order


# =============================================================================
# Hard delete (unpaid orders only)
# =============================================================================

def delete_unpaid_order(order: Order) -> None:
    """
    Remove an order that never received money, returning its held units.

    Caller owns the transaction. Reservation rows are kept, detached.
    """
    if completed_paid_cents(order.id) > 0:
        raise InvalidStateTransitionError(
            "Orders with completed payments cannot be deleted",
            details={"order_id": order.id},
        )

    inventory_service.release_order_reservations(order)
    db.session.query(InventoryReservation).filter_by(order_id=order.id).update(
        {"order_id": None}, synchronize_session=False
    )
    for payment in list(order.payments):
        db.session.delete(payment)
    if order.invoice is not None:
        db.session.delete(order.invoice)
    db.session.flush()
    db.session.delete(order)
    db.session.flush()

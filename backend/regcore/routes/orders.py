# Overview: Flask API routes for orders and payments; parses input and returns JSON responses.

"""
Order API Routes

WHY: Checkout, payment callbacks, and admin actions all mutate orders
through the order service; these handlers only parse and serialize.

DESIGN:
- Every response is {"success": true, ...} or
  {"success": false, "error": {code, message, details}}
- Payment callbacks are keyed by the processor transaction id and are
  safe to replay
"""

from flask import Blueprint, request, g

from ..errors import CommerceError
from ..services import order_service
from ..services.order_service import PaymentResult
from ..decorators import require_actor, require_super_admin, optional_actor
from .responses import success, failure, internal_error, bad_request


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_actor
def create_order_route():
    """
    Create a pending order.

    Request body:
    {
        "organization_id": 1,
        "event_year_id": 1,
        "payment_type": "deposit",   (full | deposit)
        "items": [{"product_id": 3, "quantity": 2}],
        "coupon_code": "EARLY10"     (optional)
    }

    Returns:
        201: Order created
        400: Validation error (QUANTITY_EXCEEDS_LIMIT, ZERO_PAYMENT_AMOUNT, INVALID_COUPON)
        404: Organization, event year, or product not found
        409: INSUFFICIENT_INVENTORY / QUOTA_EXCEEDED
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.create_order(
            organization_id=data.get("organization_id"),
            event_year_id=data.get("event_year_id"),
            items=data.get("items") or [],
            payment_type=data.get("payment_type", "full"),
            coupon_code=data.get("coupon_code"),
            actor=g.actor,
        )
        return success(201, order=order.to_dict())
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to create order")


@orders_bp.get("/<int:order_id>")
@require_actor
def get_order_route(order_id: int):
    try:
        return success(order=order_service.get_order_summary(order_id))
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to get order")


@orders_bp.post("/<int:order_id>/checkout")
@require_actor
def checkout_route(order_id: int):
    """
    Create the processor charge for a pending order (pending -> confirmed).

    Returns:
        200: {"order", "charge": {"id", "client_secret_or_status"}, "amount_cents"}
        409: Order not pending/confirmed
        502: Payment processor failure (nothing written)
    """
    try:
        return success(**order_service.start_checkout(order_id))
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to start checkout")


@orders_bp.post("/<int:order_id>/payments")
@optional_actor
def apply_payment_route(order_id: int):
    """
    Processor callback carrying a payment outcome.

    Request body:
    {
        "transaction_id": "pi_123",
        "amount_cents": 42500,
        "status": "succeeded",      (succeeded | failed)
        "method": "card",           (optional)
        "failure_reason": "..."     (optional)
    }

    Replays with the same transaction_id return the original payment.
    """
    try:
        data = request.get_json(silent=True) or {}
        transaction_id = data.get("transaction_id")
        if not transaction_id:
            return bad_request("transaction_id is required")

        payment = order_service.apply_payment(
            order_id,
            data.get("amount_cents"),
            PaymentResult(
                transaction_id=str(transaction_id),
                status=data.get("status"),
                method=data.get("method") or "card",
                failure_reason=data.get("failure_reason"),
            ),
            actor=g.actor,
        )
        order = order_service.get_order(order_id)
        return success(payment=payment.to_dict(), order=order.to_dict(include_items=False))
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to apply payment")


@orders_bp.post("/<int:order_id>/manual-payments")
@require_actor
@require_super_admin
def manual_payment_route(order_id: int):
    """
    Record an offline payment (cheque, bank transfer).

    Request body:
    {
        "amount_cents": 85000,
        "method": "check",
        "reference": "CHK-1042"    (optional; replays with the same reference are ignored)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        payment = order_service.record_manual_payment(
            order_id,
            data.get("amount_cents"),
            actor=g.actor,
            method=data.get("method") or "check",
            reference=data.get("reference"),
        )
        order = order_service.get_order(order_id)
        return success(201, payment=payment.to_dict(), order=order.to_dict(include_items=False))
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to record manual payment")


@orders_bp.post("/<int:order_id>/cancel-or-complete")
@require_actor
def cancel_or_complete_route(order_id: int):
    """
    Request body:
    {
        "action": "cancel" | "complete",
        "reason": "..."      (optional, cancel only)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        result = order_service.cancel_or_complete_order(
            order_id,
            data.get("action"),
            actor=g.actor,
            reason=data.get("reason"),
        )
        return success(**result)
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to cancel or complete order")


@orders_bp.post("/<int:order_id>/refund")
@require_actor
@require_super_admin
def refund_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.refund_order(order_id, actor=g.actor, reason=data.get("reason"))
        return success(order=order.to_dict())
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to refund order")

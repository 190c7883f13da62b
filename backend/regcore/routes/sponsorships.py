# Overview: Flask API routes for sponsorship orders; admin only.

from flask import Blueprint, request, g

from ..errors import CommerceError
from ..services import sponsorship_service
from ..services.audit_service import get_audit_trail
from ..decorators import require_actor, require_super_admin
from .responses import success, failure, internal_error


sponsorships_bp = Blueprint("sponsorships", __name__, url_prefix="/api/sponsorships")


@sponsorships_bp.post("")
@require_actor
@require_super_admin
def create_sponsorship_route():
    """
    Request body:
    {
        "organization_id": 1,
        "event_year_id": 1,
        "base_amount_cents": 500000,
        "description": "Gold sponsor"   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        order = sponsorship_service.create_sponsorship(
            organization_id=data.get("organization_id"),
            event_year_id=data.get("event_year_id"),
            base_amount_cents=data.get("base_amount_cents"),
            description=data.get("description"),
            actor=g.actor,
        )
        return success(201, order=order.to_dict(), invoice=order.invoice.to_dict())
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to create sponsorship")


@sponsorships_bp.patch("/<int:order_id>")
@require_actor
@require_super_admin
def edit_sponsorship_route(order_id: int):
    """
    Request body:
    {
        "base_amount_cents": 750000,
        "description": "Platinum sponsor"
    }

    Returns 409 once the invoice has received any payment.
    """
    try:
        data = request.get_json(silent=True) or {}
        order = sponsorship_service.edit_sponsorship_order(
            order_id,
            new_base_amount_cents=data.get("base_amount_cents"),
            new_description=data.get("description"),
            actor=g.actor,
        )
        return success(order=order.to_dict(), invoice=order.invoice.to_dict(), audit_trail=get_audit_trail(order))
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to edit sponsorship")


@sponsorships_bp.delete("/<int:order_id>")
@require_actor
@require_super_admin
def delete_sponsorship_route(order_id: int):
    """
    Delete an unpaid sponsorship or cancel a partially paid one.

    Request body (optional):
    {"reason": "Sponsor withdrew"}
    """
    try:
        data = request.get_json(silent=True) or {}
        result = sponsorship_service.delete_or_cancel_sponsorship(
            order_id,
            reason=data.get("reason"),
            actor=g.actor,
        )
        return success(**result)
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to delete sponsorship")

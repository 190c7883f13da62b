# Overview: Flask API routes for revenue, quota, and inventory reports.

"""
Reporting API Routes

WHY: Read-only views over already-consistent order and inventory state.
Revenue is admin only; quota and inventory views are open to any actor.
"""

from flask import Blueprint, request

from ..errors import CommerceError
from ..services import revenue_service, inventory_service
from ..decorators import require_actor, require_super_admin
from .responses import success, failure, internal_error, bad_request


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/revenue/<int:event_year_id>")
@require_actor
@require_super_admin
def revenue_attribution_route(event_year_id: int):
    try:
        return success(revenue=revenue_service.get_revenue_attribution(event_year_id))
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to compute revenue attribution")


@reports_bp.get("/quota")
@require_actor
def organization_quota_route():
    """
    Query params:
        organization_id, product_id, event_year_id (all required)
    """
    try:
        organization_id = request.args.get("organization_id", type=int)
        product_id = request.args.get("product_id", type=int)
        event_year_id = request.args.get("event_year_id", type=int)
        if not (organization_id and product_id and event_year_id):
            return bad_request("organization_id, product_id and event_year_id are required")
        quota = inventory_service.get_organization_quota(organization_id, product_id, event_year_id)
        return success(quota=quota)
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to get organization quota")


@reports_bp.get("/quota/<int:event_year_id>")
@require_actor
def quota_report_route(event_year_id: int):
    try:
        return success(quotas=inventory_service.get_quota_report(event_year_id))
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to build quota report")


@reports_bp.get("/inventory/<int:product_id>")
@require_actor
def inventory_status_route(product_id: int):
    try:
        return success(inventory=inventory_service.get_inventory_status(product_id))
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to get inventory status")

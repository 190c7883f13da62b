# Overview: Flask API routes for company teams; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..errors import CommerceError
from ..services import team_service
from ..decorators import require_actor, require_super_admin
from .responses import success, failure, internal_error, bad_request


teams_bp = Blueprint("teams", __name__, url_prefix="/api/teams")


@teams_bp.post("/sync")
@require_actor
def sync_teams_route():
    """
    Request body:
    {"organization_id": 1, "event_year_id": 1}

    Safe to call repeatedly; creates only missing teams.
    """
    try:
        data = request.get_json(silent=True) or {}
        organization_id = data.get("organization_id")
        event_year_id = data.get("event_year_id")
        if not organization_id or not event_year_id:
            return bad_request("organization_id and event_year_id are required")
        return success(**team_service.sync_teams(organization_id, event_year_id))
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to sync teams")


@teams_bp.get("")
@require_actor
def list_teams_route():
    """
    Query params:
        event_year_id (required), organization_id, include_cancelled=true
    """
    try:
        event_year_id = request.args.get("event_year_id", type=int)
        if not event_year_id:
            return bad_request("event_year_id is required")
        teams = team_service.list_teams(
            event_year_id=event_year_id,
            organization_id=request.args.get("organization_id", type=int),
            include_cancelled=request.args.get("include_cancelled", "").lower() == "true",
        )
        return success(teams=[t.to_dict() for t in teams])
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to list teams")


@teams_bp.patch("/<int:team_id>")
@require_actor
def rename_team_route(team_id: int):
    """Request body: {"team_name": "Night Owls"}"""
    try:
        data = request.get_json(silent=True) or {}
        team = team_service.rename_team(team_id, data.get("team_name"))
        return success(team=team.to_dict())
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to rename team")


@teams_bp.delete("/<int:team_id>")
@require_actor
@require_super_admin
def cancel_team_route(team_id: int):
    try:
        team = team_service.cancel_team(team_id, actor=g.actor)
        return success(team=team.to_dict())
    except CommerceError as e:
        return failure(e)
    except Exception:
        return internal_error("Failed to cancel team")

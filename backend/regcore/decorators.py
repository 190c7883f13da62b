# Overview: Request decorators that establish the caller's ActorContext for API routes.

from functools import wraps
from flask import request, jsonify, g

from .context import ActorContext

TRUE_VALUES = {"1", "true", "yes", "on"}


def _actor_from_headers():
    actor_id = (request.headers.get("X-Actor-Id") or "").strip()
    if not actor_id:
        return None
    return ActorContext(
        actor_id=actor_id,
        actor_name=(request.headers.get("X-Actor-Name") or actor_id).strip(),
        is_super_admin=(request.headers.get("X-Super-Admin") or "").strip().lower() in TRUE_VALUES,
    )


def require_actor(f):
    """
    Require an upstream-authenticated actor.

    The gateway in front of this service authenticates users and forwards:
    - X-Actor-Id: stable user identifier (required)
    - X-Actor-Name: display name for audit entries
    - X-Super-Admin: "true" for platform administrators

    Sets g.actor. Returns 401 when X-Actor-Id is missing.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = _actor_from_headers()
        if actor is None:
            return jsonify({
                "success": False,
                "error": {"code": "UNAUTHENTICATED", "message": "Actor identity required", "details": {}},
            }), 401
        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def require_super_admin(f):
    """
    Require a super admin actor. Must be applied after @require_actor.

    Returns 403 otherwise.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = getattr(g, "actor", None)
        if actor is None or not actor.is_super_admin:
            return jsonify({
                "success": False,
                "error": {"code": "FORBIDDEN", "message": "Super admin access required", "details": {}},
            }), 403
        return f(*args, **kwargs)

    return decorated_function


def optional_actor(f):
    """Set g.actor when identity headers are present; processor callbacks carry none."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.actor = _actor_from_headers()
        return f(*args, **kwargs)

    return decorated_function

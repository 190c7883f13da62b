# Overview: Caller identity passed from the HTTP/CLI boundary into services.

from __future__ import annotations

from dataclasses import dataclass

from .errors import AuthorizationError


@dataclass(frozen=True)
class ActorContext:
    """
    Who is performing an operation.

    WHY: Audit entries and admin-only operations need a trusted identity.
    Routes build this from request headers; the CLI builds a system actor.
    """
    actor_id: str
    actor_name: str
    is_super_admin: bool = False

    def to_dict(self) -> dict:
        return {
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "is_super_admin": self.is_super_admin,
        }


SYSTEM_ACTOR = ActorContext(actor_id="system", actor_name="System", is_super_admin=True)


def ensure_super_admin(actor: ActorContext | None, action: str) -> ActorContext:
    if actor is None or not actor.is_super_admin:
        raise AuthorizationError(
            f"Super admin access required to {action}",
            details={"action": action},
        )
    return actor

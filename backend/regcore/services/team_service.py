# Overview: Service-layer operations for company teams; derives numbered teams from paid registrations.

from __future__ import annotations

from typing import Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CompanyTeam, Order, OrderItem, Product, Organization, EventYear
from ..enums import ProductType, TeamStatus, PAID_ORDER_STATUSES
from ..errors import ValidationError, NotFoundError, InvalidStateTransitionError
from ..context import ActorContext, ensure_super_admin
from ..time_utils import utcnow
from .concurrency import run_atomic


def is_team_product(product: Optional[Product], keyword: str = "team") -> bool:
    """
    Team-registration category membership.

    Typed team_registration products always count; legacy "other" products
    count when their name contains the configured keyword.
    """
    if product is None:
        return False
    if product.product_type == ProductType.TEAM_REGISTRATION.value:
        return True
    if product.product_type == ProductType.OTHER.value and keyword:
        return keyword.lower() in (product.name or "").lower()
    return False


def teams_purchased(organization_id: int, event_year_id: int) -> int:
    """Sum of team-registration quantities on the organization's paid orders."""
    keyword = current_app.config.get("TEAM_PRODUCT_KEYWORD", "team")
    rows = (
        db.session.query(Product, func.sum(OrderItem.quantity))
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            Order.organization_id == organization_id,
            Order.event_year_id == event_year_id,
            Order.status.in_(PAID_ORDER_STATUSES),
        )
        .group_by(Product.id)
        .all()
    )
    return sum(int(qty or 0) for product, qty in rows if is_team_product(product, keyword))


def _lowest_unused(claimed: set[int], count: int) -> list[int]:
    numbers = []
    candidate = 1
    while len(numbers) < count:
        if candidate not in claimed:
            numbers.append(candidate)
        candidate += 1
    return numbers


def _default_team_name(org: Organization, number: int) -> str:
    return f"{org.name} Team {number}"


def sync_teams(organization_id: int, event_year_id: int) -> dict:
    """
    Create missing CompanyTeam rows for paid team registrations.

    WHY: Team numbers go on rosters and bibs, so sync must never create a
    slot twice or hand out a number that was ever issued.

    DESIGN:
    - purchased - active teams = teams to create; zero or less is a no-op
    - Numbers are the lowest positive integers never issued, cancelled
      teams included
    - The claimed set is re-read inside the transaction; a concurrent sync
      that wins the race trips the unique constraint and this one retries
    """
    org = db.session.get(Organization, organization_id)
    if not org:
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

    def _op() -> dict:
        purchased = teams_purchased(organization_id, event_year_id)
        teams = (
            db.session.query(CompanyTeam)
            .filter_by(organization_id=organization_id, event_year_id=event_year_id)
            .all()
        )
        active = [t for t in teams if t.status == TeamStatus.ACTIVE.value]
        to_create = purchased - len(active)
        if to_create <= 0:
            return {
                "organization_id": organization_id,
                "event_year_id": event_year_id,
                "teams_purchased": purchased,
                "existing_teams": len(active),
                "created": 0,
                "team_numbers": [],
            }

        numbers = _lowest_unused({t.team_number for t in teams}, to_create)
        for number in numbers:
            db.session.add(
                CompanyTeam(
                    organization_id=organization_id,
                    event_year_id=event_year_id,
                    team_number=number,
                    team_name=_default_team_name(org, number),
                    is_paid=True,
                    status=TeamStatus.ACTIVE.value,
                )
            )
        db.session.commit()
        return {
            "organization_id": organization_id,
            "event_year_id": event_year_id,
            "teams_purchased": purchased,
            "existing_teams": len(active),
            "created": len(numbers),
            "team_numbers": numbers,
        }

    result = run_atomic(_op, retry_on=(IntegrityError,))
    if result["created"]:
        current_app.logger.info(
            "Created %s team(s) %s for organization %s, event year %s",
            result["created"], result["team_numbers"], organization_id, event_year_id,
        )
    return result


def list_teams(
    *,
    event_year_id: int,
    organization_id: Optional[int] = None,
    include_cancelled: bool = False,
) -> list[CompanyTeam]:
    query = db.session.query(CompanyTeam).filter(CompanyTeam.event_year_id == event_year_id)
    if organization_id is not None:
        query = query.filter(CompanyTeam.organization_id == organization_id)
    if not include_cancelled:
        query = query.filter(CompanyTeam.status == TeamStatus.ACTIVE.value)
    return query.order_by(CompanyTeam.organization_id, CompanyTeam.team_number).all()


def _get_team(team_id: int) -> CompanyTeam:
    team = db.session.get(CompanyTeam, team_id)
    if not team:
        raise NotFoundError("Team not found", code="TEAM_NOT_FOUND", details={"team_id": team_id})
    return team


def rename_team(team_id: int, team_name: str) -> CompanyTeam:
    name = (team_name or "").strip()
    if not name:
        raise ValidationError("team_name is required")
    if len(name) > 255:
        raise ValidationError("team_name must be at most 255 characters")

    def _op() -> CompanyTeam:
        team = _get_team(team_id)
        if team.status != TeamStatus.ACTIVE.value:
            raise InvalidStateTransitionError("Cannot rename a cancelled team", details={"team_id": team_id})
        team.team_name = name
        db.session.commit()
        return team

    return run_atomic(_op)


def cancel_team(team_id: int, *, actor: ActorContext) -> CompanyTeam:
    """Soft-cancel a team. Its number stays claimed for good."""
    ensure_super_admin(actor, "cancel teams")

    def _op() -> CompanyTeam:
        team = _get_team(team_id)
        if team.status == TeamStatus.CANCELLED.value:
            raise InvalidStateTransitionError("Team is already cancelled", details={"team_id": team_id})
        team.status = TeamStatus.CANCELLED.value
        team.cancelled_at = utcnow()
        team.cancelled_by = actor.actor_id
        db.session.commit()
        return team

    team = run_atomic(_op)
    current_app.logger.info("Cancelled team %s (number %s)", team.id, team.team_number)
    return team

from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class CompanyTeam(db.Model):
    """
    A numbered team slot owned by an organization for one event year.

    WHY: Team numbers are printed on bibs and schedules, so a number once
    issued belongs to that team for good. Cancelling keeps the row.

    INVARIANT: (organization_id, event_year_id, team_number) is unique.
    """
    __tablename__ = "company_teams"
    __table_args__ = (
        db.UniqueConstraint(
            "organization_id", "event_year_id", "team_number",
            name="uq_company_teams_org_year_number",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    event_year_id = db.Column(db.Integer, db.ForeignKey("event_years.id"), nullable=False, index=True)

    team_number = db.Column(db.Integer, nullable=False)
    team_name = db.Column(db.String(255), nullable=False)
    is_paid = db.Column(db.Boolean, nullable=False, default=True)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(128), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "event_year_id": self.event_year_id,
            "team_number": self.team_number,
            "team_name": self.team_name,
            "is_paid": self.is_paid,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by": self.cancelled_by,
        }

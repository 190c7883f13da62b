from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Per event-year counter for human-readable document numbers.

    WHY: ORD-/INV-/SPO- numbers must be unique and gap-tolerant under
    concurrent checkouts; allocation is a conditional UPDATE on this row.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("event_year_id", "document_type", name="uq_document_sequences_year_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_year_id = db.Column(db.Integer, db.ForeignKey("event_years.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_year_id": self.event_year_id,
            "document_type": self.document_type,
            "next_number": self.next_number,
        }

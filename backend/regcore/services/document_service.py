# Overview: Service-layer operations for document numbers; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence, EventYear
from ..errors import ValidationError

ORDER_PREFIX = "ORD"
INVOICE_PREFIX = "INV"
SPONSORSHIP_PREFIX = "SPO"


def _current_number(event_year_id: int, document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(event_year_id=event_year_id, document_type=document_type)
        .scalar()
    )


def next_document_number(
    *,
    event_year_id: int,
    document_type: str,
    pad: int = 6,
) -> str:
    """
    Allocate the next document number for an event year and type.

    Runs inside the caller's transaction (no commit) so the number is
    released if the document is never written. The conditional UPDATE
    serializes concurrent allocators on the sequence row; a lost race to
    create the row falls back to the UPDATE.
    """
    if not event_year_id:
        raise ValidationError("event_year_id is required")
    if not document_type:
        raise ValidationError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.event_year_id == event_year_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_number(event_year_id, document_type) - 1
    else:
        seq = DocumentSequence(event_year_id=event_year_id, document_type=document_type, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current_number(event_year_id, document_type) - 1

    event_year = db.session.get(EventYear, event_year_id)
    year_part = event_year.year if event_year else event_year_id
    return f"{document_type}-{year_part}-{next_num:0{pad}d}"

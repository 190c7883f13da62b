# Overview: Service-layer operations for the sponsorship audit trail; append-only, mirrored on order and invoice.

from __future__ import annotations

from typing import Optional

from ..context import ActorContext
from ..time_utils import utcnow, to_utc_z
from .metadata import (
    AuditEntry,
    read_order_metadata,
    write_order_metadata,
    read_invoice_metadata,
    write_invoice_metadata,
)


def diff_changes(before: dict, after: dict) -> dict:
    """Return {field: {"from": old, "to": new}} for fields whose value changed."""
    return {
        key: {"from": before.get(key), "to": after.get(key)}
        for key in after
        if before.get(key) != after.get(key)
    }


def append_audit_entry(
    order,
    *,
    action: str,
    actor: ActorContext,
    changes: Optional[dict] = None,
    reason: Optional[str] = None,
) -> AuditEntry:
    """
    Append one entry to the order's audit trail and to its invoice's copy.

    Caller owns the transaction. Existing entries are never rewritten.
    """
    entry = AuditEntry(
        action=action,
        actor_id=actor.actor_id,
        actor_name=actor.actor_name,
        timestamp=to_utc_z(utcnow()),
        changes=changes or None,
        reason=reason,
    )
    write_order_metadata(order, read_order_metadata(order).with_audit_entry(entry))
    if order.invoice is not None:
        invoice = order.invoice
        write_invoice_metadata(invoice, read_invoice_metadata(invoice).with_audit_entry(entry))
    return entry


def get_audit_trail(order) -> list[dict]:
    return [entry.to_dict() for entry in read_order_metadata(order).audit_trail]

# Overview: Typed order/invoice metadata records, validated before they are written to JSON columns.

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional

from ..errors import ValidationError

AUDIT_ACTIONS = ("created", "updated", "cancelled", "refunded")


def _require_int(data: dict, key: str, record: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{record}.{key} must be an integer", details={"record": record, "field": key})
    return value


def _optional_str(data: dict, key: str, record: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{record}.{key} must be a string", details={"record": record, "field": key})
    return value


@dataclass(frozen=True)
class SponsorshipDetails:
    base_amount_cents: int
    processing_fee_cents: int
    description: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "base_amount_cents": self.base_amount_cents,
            "processing_fee_cents": self.processing_fee_cents,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SponsorshipDetails":
        return cls(
            base_amount_cents=_require_int(data, "base_amount_cents", "sponsorship"),
            processing_fee_cents=_require_int(data, "processing_fee_cents", "sponsorship"),
            description=_optional_str(data, "description", "sponsorship"),
        )


@dataclass(frozen=True)
class CouponDetails:
    code: str
    coupon_id: int
    discount_cents: int
    original_total_cents: int

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "coupon_id": self.coupon_id,
            "discount_cents": self.discount_cents,
            "original_total_cents": self.original_total_cents,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CouponDetails":
        code = _optional_str(data, "code", "coupon")
        if not code:
            raise ValidationError("coupon.code is required", details={"record": "coupon", "field": "code"})
        return cls(
            code=code,
            coupon_id=_require_int(data, "coupon_id", "coupon"),
            discount_cents=_require_int(data, "discount_cents", "coupon"),
            original_total_cents=_require_int(data, "original_total_cents", "coupon"),
        )


@dataclass(frozen=True)
class AuditEntry:
    """
    One append-only audit trail record.

    changes maps field name -> {"from": old, "to": new} for updates.
    """
    action: str
    actor_id: str
    actor_name: str
    timestamp: str
    changes: Optional[dict] = None
    reason: Optional[str] = None

    def __post_init__(self):
        if self.action not in AUDIT_ACTIONS:
            raise ValidationError(f"Unknown audit action: {self.action}", details={"action": self.action})
        if not self.actor_id:
            raise ValidationError("Audit entry requires an actor")
        for name, change in (self.changes or {}).items():
            if not isinstance(change, dict) or set(change) != {"from", "to"}:
                raise ValidationError(
                    "Audit change must be a {from, to} pair",
                    details={"field": name},
                )

    def to_dict(self) -> dict:
        data = {
            "action": self.action,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "timestamp": self.timestamp,
        }
        if self.changes:
            data["changes"] = dict(self.changes)
        if self.reason:
            data["reason"] = self.reason
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AuditEntry":
        return cls(
            action=data.get("action"),
            actor_id=data.get("actor_id"),
            actor_name=data.get("actor_name") or "",
            timestamp=data.get("timestamp") or "",
            changes=data.get("changes"),
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class CancellationDetails:
    cancelled_at: str
    cancelled_by: str
    reason: str

    def to_dict(self) -> dict:
        return {
            "cancelled_at": self.cancelled_at,
            "cancelled_by": self.cancelled_by,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CancellationDetails":
        return cls(
            cancelled_at=_optional_str(data, "cancelled_at", "cancellation") or "",
            cancelled_by=_optional_str(data, "cancelled_by", "cancellation") or "",
            reason=_optional_str(data, "reason", "cancellation") or "",
        )


@dataclass(frozen=True)
class PaymentFailure:
    transaction_id: str
    failed_at: str
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "failed_at": self.failed_at,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentFailure":
        return cls(
            transaction_id=_optional_str(data, "transaction_id", "last_payment_failure") or "",
            failed_at=_optional_str(data, "failed_at", "last_payment_failure") or "",
            reason=_optional_str(data, "reason", "last_payment_failure"),
        )


@dataclass(frozen=True)
class OrderMetadata:
    """
    Discriminated container for the JSON metadata column of orders and invoices.

    Each sub-record is optional and typed. Writers go through the with_*
    helpers, which return a new value; the audit trail only ever grows.
    """
    sponsorship: Optional[SponsorshipDetails] = None
    coupon: Optional[CouponDetails] = None
    cancellation: Optional[CancellationDetails] = None
    last_payment_failure: Optional[PaymentFailure] = None
    audit_trail: tuple = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "OrderMetadata":
        data = data or {}
        if not isinstance(data, dict):
            raise ValidationError("metadata must be an object")
        return cls(
            sponsorship=SponsorshipDetails.from_dict(data["sponsorship"]) if data.get("sponsorship") else None,
            coupon=CouponDetails.from_dict(data["coupon"]) if data.get("coupon") else None,
            cancellation=CancellationDetails.from_dict(data["cancellation"]) if data.get("cancellation") else None,
            last_payment_failure=(
                PaymentFailure.from_dict(data["last_payment_failure"])
                if data.get("last_payment_failure") else None
            ),
            audit_trail=tuple(AuditEntry.from_dict(e) for e in data.get("audit_trail") or ()),
        )

    def to_dict(self) -> dict:
        data = {}
        if self.sponsorship:
            data["sponsorship"] = self.sponsorship.to_dict()
        if self.coupon:
            data["coupon"] = self.coupon.to_dict()
        if self.cancellation:
            data["cancellation"] = self.cancellation.to_dict()
        if self.last_payment_failure:
            data["last_payment_failure"] = self.last_payment_failure.to_dict()
        if self.audit_trail:
            data["audit_trail"] = [entry.to_dict() for entry in self.audit_trail]
        return data

    def with_sponsorship(self, details: SponsorshipDetails) -> "OrderMetadata":
        return replace(self, sponsorship=details)

    def with_coupon(self, details: CouponDetails) -> "OrderMetadata":
        return replace(self, coupon=details)

    def with_cancellation(self, details: CancellationDetails) -> "OrderMetadata":
        return replace(self, cancellation=details)

    def with_payment_failure(self, failure: PaymentFailure) -> "OrderMetadata":
        return replace(self, last_payment_failure=failure)

    def with_audit_entry(self, entry: AuditEntry) -> "OrderMetadata":
        return replace(self, audit_trail=self.audit_trail + (entry,))


def read_order_metadata(order) -> OrderMetadata:
    return OrderMetadata.from_dict(order.order_metadata)


def write_order_metadata(order, meta: OrderMetadata) -> None:
    # Assign a fresh dict so the JSON column is flagged dirty.
    order.order_metadata = meta.to_dict()


def read_invoice_metadata(invoice) -> OrderMetadata:
    return OrderMetadata.from_dict(invoice.invoice_metadata)


def write_invoice_metadata(invoice, meta: OrderMetadata) -> None:
    invoice.invoice_metadata = meta.to_dict()

from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Purchasable product (team registration, tent rental, sponsorship, other).

    WHY: Inventory counters live on the product row so reservations can be
    taken with a single conditional UPDATE.

    DESIGN:
    - total_inventory NULL means unlimited stock
    - sold_count + reserved_count never exceeds total_inventory (CHECK)
    - max_quantity_per_org NULL means no per-organization quota
    - No version_id_col: counters are changed by core UPDATE statements
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("sold_count >= 0", name="ck_products_sold_nonneg"),
        db.CheckConstraint("reserved_count >= 0", name="ck_products_reserved_nonneg"),
        db.CheckConstraint(
            "total_inventory IS NULL OR sold_count + reserved_count <= total_inventory",
            name="ck_products_within_inventory",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_year_id = db.Column(db.Integer, db.ForeignKey("event_years.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    product_type = db.Column(db.String(32), nullable=False, default="other", index=True)

    base_price_cents = db.Column(db.Integer, nullable=False, default=0)
    deposit_cents = db.Column(db.Integer, nullable=True)

    total_inventory = db.Column(db.Integer, nullable=True)
    sold_count = db.Column(db.Integer, nullable=False, default=0)
    reserved_count = db.Column(db.Integer, nullable=False, default=0)
    max_quantity_per_org = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def is_quota_limited(self) -> bool:
        return self.total_inventory is not None or self.max_quantity_per_org is not None

    @property
    def available_count(self) -> int | None:
        if self.total_inventory is None:
            return None
        return max(0, self.total_inventory - self.sold_count - self.reserved_count)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_year_id": self.event_year_id,
            "name": self.name,
            "description": self.description,
            "product_type": self.product_type,
            "base_price_cents": self.base_price_cents,
            "deposit_cents": self.deposit_cents,
            "total_inventory": self.total_inventory,
            "sold_count": self.sold_count,
            "reserved_count": self.reserved_count,
            "available_count": self.available_count,
            "max_quantity_per_org": self.max_quantity_per_org,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class OrganizationPricing(db.Model):
    """Negotiated per-organization price, deposit, waiver, and quantity cap."""
    __tablename__ = "organization_pricing"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "product_id", name="uq_org_pricing_org_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    custom_price_cents = db.Column(db.Integer, nullable=True)
    custom_deposit_cents = db.Column(db.Integer, nullable=True)
    is_waived = db.Column(db.Boolean, nullable=False, default=False)
    max_quantity = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "product_id": self.product_id,
            "custom_price_cents": self.custom_price_cents,
            "custom_deposit_cents": self.custom_deposit_cents,
            "is_waived": self.is_waived,
            "max_quantity": self.max_quantity,
        }


class OrganizationQuota(db.Model):
    """
    Derived per-organization purchase tally for a quota-limited product.

    WHY: Read by the quota report. Always recomputed from paid order items,
    never edited by hand.
    """
    __tablename__ = "organization_quotas"
    __table_args__ = (
        db.UniqueConstraint(
            "organization_id", "product_id", "event_year_id",
            name="uq_org_quotas_org_product_year",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    event_year_id = db.Column(db.Integer, db.ForeignKey("event_years.id"), nullable=False, index=True)

    quantity_purchased = db.Column(db.Integer, nullable=False, default=0)
    max_allowed = db.Column(db.Integer, nullable=False, default=0)
    remaining_allowed = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "organization_id": self.organization_id,
            "product_id": self.product_id,
            "event_year_id": self.event_year_id,
            "quantity_purchased": self.quantity_purchased,
            "max_allowed": self.max_allowed,
            "remaining_allowed": self.remaining_allowed,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryReservation(db.Model):
    """
    A hold on units of a product taken while an order awaits payment.

    LIFECYCLE: HELD -> COMMITTED (order paid) or HELD -> RELEASED
    (cancelled, expired, or abandoned). Rows are kept after release.
    """
    __tablename__ = "inventory_reservations"
    __table_args__ = (
        db.Index("ix_reservations_status_expires", "status", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(64), nullable=False, unique=True, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    event_year_id = db.Column(db.Integer, db.ForeignKey("event_years.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="HELD", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "token": self.token,
            "product_id": self.product_id,
            "organization_id": self.organization_id,
            "event_year_id": self.event_year_id,
            "order_id": self.order_id,
            "quantity": self.quantity,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "resolved_at": to_utc_z(self.resolved_at),
        }


class Coupon(db.Model):
    """Discount code: percentage (basis points) or fixed cents off an order."""
    __tablename__ = "coupons"
    __table_args__ = (
        db.UniqueConstraint("event_year_id", "code", name="uq_coupons_year_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_year_id = db.Column(db.Integer, db.ForeignKey("event_years.id"), nullable=False, index=True)
    # NULL means any organization may redeem
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)

    code = db.Column(db.String(64), nullable=False)
    discount_type = db.Column(db.String(16), nullable=False)  # percentage, fixed_amount
    # percentage: basis points (1500 = 15%); fixed_amount: cents
    discount_value = db.Column(db.Integer, nullable=False)
    minimum_order_cents = db.Column(db.Integer, nullable=True)
    max_uses = db.Column(db.Integer, nullable=True)
    current_uses = db.Column(db.Integer, nullable=False, default=0)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_year_id": self.event_year_id,
            "organization_id": self.organization_id,
            "code": self.code,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "minimum_order_cents": self.minimum_order_cents,
            "max_uses": self.max_uses,
            "current_uses": self.current_uses,
            "expires_at": to_utc_z(self.expires_at),
            "is_active": self.is_active,
        }

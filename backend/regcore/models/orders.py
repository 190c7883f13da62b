from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Order(db.Model):
    """
    Order document for team registrations, tent rentals, and sponsorships.

    WHY: The order carries the money state machine; the invoice mirrors it.

    DESIGN:
    - All amounts in cents
    - total_amount_cents == balance_owed_cents + sum(completed payments)
    - Status changes go through services.order_state.transition_order
    - metadata holds typed records (sponsorship, coupon, audit trail)
      written only through services.metadata
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_org_year_status", "organization_id", "event_year_id", "status"),
        db.CheckConstraint("balance_owed_cents >= 0", name="ck_orders_balance_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    event_year_id = db.Column(db.Integer, db.ForeignKey("event_years.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_type = db.Column(db.String(16), nullable=False, default="full")

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    deposit_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_owed_cents = db.Column(db.Integer, nullable=False, default=0)

    is_sponsorship = db.Column(db.Boolean, nullable=False, default=False, index=True)
    order_metadata = db.Column("metadata", db.JSON, nullable=True)

    # Last charge requested from the payment processor
    processor_charge_id = db.Column(db.String(128), nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    organization = db.relationship("Organization")
    event_year = db.relationship("EventYear")
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    invoice = db.relationship("Invoice", back_populates="order", uselist=False)
    payments = db.relationship("Payment", back_populates="order", order_by="Payment.id")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def paid_amount_cents(self) -> int:
        return self.total_amount_cents - self.balance_owed_cents

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "organization_id": self.organization_id,
            "event_year_id": self.event_year_id,
            "status": self.status,
            "payment_type": self.payment_type,
            "total_amount_cents": self.total_amount_cents,
            "deposit_amount_cents": self.deposit_amount_cents,
            "balance_owed_cents": self.balance_owed_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "is_sponsorship": self.is_sponsorship,
            "metadata": self.order_metadata or {},
            "processor_charge_id": self.processor_charge_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Order line with the unit price resolved at order time."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    deposit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_type": self.product.product_type if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "deposit_price_cents": self.deposit_price_cents,
            "total_price_cents": self.total_price_cents,
        }


class Invoice(db.Model):
    """
    Invoice mirroring an order's money fields.

    INVARIANT: total/paid/balance always equal the order's after any
    service call commits.
    """
    __tablename__ = "invoices"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True)
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_owed_cents = db.Column(db.Integer, nullable=False, default=0)

    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    invoice_metadata = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    order = db.relationship("Order", back_populates="invoice")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "invoice_number": self.invoice_number,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "balance_owed_cents": self.balance_owed_cents,
            "due_date": to_utc_z(self.due_date),
            "sent_at": to_utc_z(self.sent_at),
            "paid_at": to_utc_z(self.paid_at),
            "notes": self.notes,
            "metadata": self.invoice_metadata or {},
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Payment(db.Model):
    """
    Payment attempt against an order.

    DESIGN:
    - processor_transaction_id is unique: a replayed processor callback
      finds the existing row instead of charging twice
    - Failed attempts are recorded but never move money
    - Refunds are negative-amount rows with status "refunded"
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_order_status", "order_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False, default="card")
    payment_kind = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, index=True)

    processor_transaction_id = db.Column(db.String(128), nullable=True, unique=True)
    failure_reason = db.Column(db.String(255), nullable=True)
    refunded_payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "payment_kind": self.payment_kind,
            "status": self.status,
            "processor_transaction_id": self.processor_transaction_id,
            "failure_reason": self.failure_reason,
            "refunded_payment_id": self.refunded_payment_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }

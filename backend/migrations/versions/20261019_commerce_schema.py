"""Create order, invoice, payment, inventory, and team schema

Revision ID: 20261019_commerce_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_commerce_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=nullable)


def upgrade():
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=True),
        sa.Column("contact_name", sa.String(length=255), nullable=True),
        sa.Column("contact_email", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_organizations_code", "organizations", ["code"], unique=True)
    op.create_index("ix_organizations_is_active", "organizations", ["is_active"], unique=False)

    op.create_table(
        "event_years",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("year"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_event_years_is_active", "event_years", ["is_active"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_year_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("product_type", sa.String(length=32), nullable=False, server_default="other"),
        sa.Column("base_price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deposit_cents", sa.Integer(), nullable=True),
        sa.Column("total_inventory", sa.Integer(), nullable=True),
        sa.Column("sold_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reserved_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_quantity_per_org", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["event_year_id"], ["event_years.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("sold_count >= 0", name="ck_products_sold_nonneg"),
        sa.CheckConstraint("reserved_count >= 0", name="ck_products_reserved_nonneg"),
        sa.CheckConstraint(
            "total_inventory IS NULL OR sold_count + reserved_count <= total_inventory",
            name="ck_products_within_inventory",
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_event_year_id", "products", ["event_year_id"], unique=False)
    op.create_index("ix_products_product_type", "products", ["product_type"], unique=False)
    op.create_index("ix_products_is_active", "products", ["is_active"], unique=False)

    op.create_table(
        "organization_pricing",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("custom_price_cents", sa.Integer(), nullable=True),
        sa.Column("custom_deposit_cents", sa.Integer(), nullable=True),
        sa.Column("is_waived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("max_quantity", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "product_id", name="uq_org_pricing_org_product"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_organization_pricing_organization_id", "organization_pricing", ["organization_id"], unique=False)
    op.create_index("ix_organization_pricing_product_id", "organization_pricing", ["product_id"], unique=False)

    op.create_table(
        "organization_quotas",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("event_year_id", sa.Integer(), nullable=False),
        sa.Column("quantity_purchased", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_allowed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("remaining_allowed", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["event_year_id"], ["event_years.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "organization_id", "product_id", "event_year_id",
            name="uq_org_quotas_org_product_year",
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_organization_quotas_organization_id", "organization_quotas", ["organization_id"], unique=False)
    op.create_index("ix_organization_quotas_product_id", "organization_quotas", ["product_id"], unique=False)
    op.create_index("ix_organization_quotas_event_year_id", "organization_quotas", ["event_year_id"], unique=False)

    op.create_table(
        "coupons",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_year_id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=True),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("discount_type", sa.String(length=16), nullable=False),
        sa.Column("discount_value", sa.Integer(), nullable=False),
        sa.Column("minimum_order_cents", sa.Integer(), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("current_uses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(["event_year_id"], ["event_years.id"]),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_year_id", "code", name="uq_coupons_year_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_coupons_event_year_id", "coupons", ["event_year_id"], unique=False)
    op.create_index("ix_coupons_organization_id", "coupons", ["organization_id"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(length=64), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("event_year_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("payment_type", sa.String(length=16), nullable=False, server_default="full"),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deposit_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("balance_owed_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_sponsorship", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("processor_charge_id", sa.String(length=128), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["event_year_id"], ["event_years.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number"),
        sa.CheckConstraint("balance_owed_cents >= 0", name="ck_orders_balance_nonneg"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_orders_organization_id", "orders", ["organization_id"], unique=False)
    op.create_index("ix_orders_event_year_id", "orders", ["event_year_id"], unique=False)
    op.create_index("ix_orders_status", "orders", ["status"], unique=False)
    op.create_index("ix_orders_is_sponsorship", "orders", ["is_sponsorship"], unique=False)
    op.create_index("ix_orders_created_at", "orders", ["created_at"], unique=False)
    op.create_index("ix_orders_org_year_status", "orders", ["organization_id", "event_year_id", "status"], unique=False)

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("deposit_price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_price_cents", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_qty_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"], unique=False)
    op.create_index("ix_order_items_product_id", "order_items", ["product_id"], unique=False)

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("invoice_number", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("paid_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("balance_owed_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id"),
        sa.UniqueConstraint("invoice_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_invoices_status", "invoices", ["status"], unique=False)

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(length=32), nullable=False, server_default="card"),
        sa.Column("payment_kind", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("processor_transaction_id", sa.String(length=128), nullable=True),
        sa.Column("failure_reason", sa.String(length=255), nullable=True),
        sa.Column("refunded_payment_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["refunded_payment_id"], ["payments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("processor_transaction_id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payments_order_id", "payments", ["order_id"], unique=False)
    op.create_index("ix_payments_status", "payments", ["status"], unique=False)
    op.create_index("ix_payments_order_status", "payments", ["order_id", "status"], unique=False)

    op.create_table(
        "inventory_reservations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("event_year_id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="HELD"),
        _timestamp("created_at"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["event_year_id"], ["event_years.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_reservations_token", "inventory_reservations", ["token"], unique=True)
    op.create_index("ix_inventory_reservations_product_id", "inventory_reservations", ["product_id"], unique=False)
    op.create_index("ix_inventory_reservations_organization_id", "inventory_reservations", ["organization_id"], unique=False)
    op.create_index("ix_inventory_reservations_event_year_id", "inventory_reservations", ["event_year_id"], unique=False)
    op.create_index("ix_inventory_reservations_order_id", "inventory_reservations", ["order_id"], unique=False)
    op.create_index("ix_inventory_reservations_status", "inventory_reservations", ["status"], unique=False)
    op.create_index("ix_reservations_status_expires", "inventory_reservations", ["status", "expires_at"], unique=False)

    op.create_table(
        "company_teams",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("event_year_id", sa.Integer(), nullable=False),
        sa.Column("team_number", sa.Integer(), nullable=False),
        sa.Column("team_name", sa.String(length=255), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        _timestamp("created_at"),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(length=128), nullable=True),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["event_year_id"], ["event_years.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "organization_id", "event_year_id", "team_number",
            name="uq_company_teams_org_year_number",
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_company_teams_organization_id", "company_teams", ["organization_id"], unique=False)
    op.create_index("ix_company_teams_event_year_id", "company_teams", ["event_year_id"], unique=False)
    op.create_index("ix_company_teams_status", "company_teams", ["status"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_year_id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(length=32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["event_year_id"], ["event_years.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_year_id", "document_type", name="uq_document_sequences_year_type"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_document_sequences_event_year_id", "document_sequences", ["event_year_id"], unique=False)


def downgrade():
    for table in (
        "document_sequences",
        "company_teams",
        "inventory_reservations",
        "payments",
        "invoices",
        "order_items",
        "orders",
        "coupons",
        "organization_quotas",
        "organization_pricing",
        "products",
        "event_years",
        "organizations",
    ):
        op.drop_table(table)

"""Initial gift card provisioning schema.

Billing parties, brand catalog, inventory, billing ledger and the
provisioning trace.

Revision ID: 2026_03_02_0001
Revises:
Create Date: 2026-03-02

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_03_02_0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    """Create provisioning tables."""
    # Billing parties - read-only to the provisioning engine
    op.create_table(
        "agencies",
        _id_column(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("credits", sa.Numeric(12, 2), nullable=False, server_default="0"),
        _timestamp("created_at"),
    )

    op.create_table(
        "clients",
        _id_column(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "agency_id",
            UUID(as_uuid=True),
            sa.ForeignKey("agencies.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("agency_billing_enabled", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("credits", sa.Numeric(12, 2), nullable=False, server_default="0"),
        _timestamp("created_at"),
    )
    op.create_index("idx_clients_agency_id", "clients", ["agency_id"])

    op.create_table(
        "campaigns",
        _id_column(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "client_id",
            UUID(as_uuid=True),
            sa.ForeignKey("clients.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _timestamp("created_at"),
    )

    # Catalog
    op.create_table(
        "gift_card_brands",
        _id_column(),
        sa.Column("brand_name", sa.String(255), nullable=False),
        sa.Column("brand_code", sa.String(100), nullable=True),
        sa.Column("vendor_brand_code", sa.String(100), nullable=True),
        sa.Column("logo_url", sa.Text, nullable=True),
        sa.Column("is_enabled_by_admin", sa.Boolean, nullable=False, server_default="true"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("brand_code", name="uq_gift_card_brands_code"),
    )

    op.create_table(
        "gift_card_denominations",
        _id_column(),
        sa.Column(
            "brand_id",
            UUID(as_uuid=True),
            sa.ForeignKey("gift_card_brands.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("denomination", sa.Numeric(10, 2), nullable=False),
        sa.Column("use_custom_pricing", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("client_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("agency_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("cost_basis", sa.Numeric(10, 2), nullable=True),
        sa.Column("vendor_cost_per_card", sa.Numeric(10, 2), nullable=True),
        sa.UniqueConstraint("brand_id", "denomination", name="uq_denomination_brand_value"),
        sa.CheckConstraint("denomination > 0", name="ck_denomination_positive"),
        sa.CheckConstraint("client_price >= 0", name="ck_denomination_client_price_non_negative"),
        sa.CheckConstraint("agency_price >= 0", name="ck_denomination_agency_price_non_negative"),
        sa.CheckConstraint("cost_basis >= 0", name="ck_denomination_cost_basis_non_negative"),
        sa.CheckConstraint(
            "vendor_cost_per_card >= 0", name="ck_denomination_vendor_cost_non_negative"
        ),
    )

    # Inventory
    op.create_table(
        "gift_card_inventory",
        _id_column(),
        sa.Column(
            "brand_id", UUID(as_uuid=True), sa.ForeignKey("gift_card_brands.id"), nullable=False
        ),
        sa.Column("denomination", sa.Numeric(10, 2), nullable=False),
        sa.Column("card_code", sa.Text, nullable=False),
        sa.Column("card_number", sa.Text, nullable=True),
        sa.Column("expiration_date", sa.Date, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="available"),
        sa.Column("assigned_recipient_id", UUID(as_uuid=True), nullable=True),
        sa.Column("assigned_campaign_id", UUID(as_uuid=True), nullable=True),
        sa.Column("assigned_condition_number", sa.Integer, nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cost_per_card", sa.Numeric(10, 2), nullable=True),
        sa.Column("cost_source", sa.String(20), nullable=False, server_default="unknown"),
        sa.Column("provider", sa.String(50), nullable=True),
        sa.Column("vendor_transaction_id", sa.String(255), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoke_reason", sa.Text, nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "status IN ('available', 'assigned', 'delivered', 'expired', 'revoked')",
            name="ck_inventory_status",
        ),
        sa.CheckConstraint(
            "cost_source IN ('csv', 'vendor_api', 'manual', 'unknown')",
            name="ck_inventory_cost_source",
        ),
        sa.CheckConstraint("denomination > 0", name="ck_inventory_denomination_positive"),
    )
    op.create_index(
        "idx_inventory_brand_denom_status",
        "gift_card_inventory",
        ["brand_id", "denomination", "status"],
    )
    op.create_index(
        "idx_inventory_assignment",
        "gift_card_inventory",
        ["assigned_campaign_id", "assigned_recipient_id"],
        postgresql_where=sa.text("assigned_recipient_id IS NOT NULL"),
    )
    op.create_index("idx_inventory_created_at", "gift_card_inventory", ["created_at"])

    # Billing ledger - append-only, profit generated by the database
    op.create_table(
        "gift_card_billing_ledger",
        _id_column(),
        sa.Column("transaction_type", sa.String(40), nullable=False),
        sa.Column("billed_entity_type", sa.String(20), nullable=False),
        sa.Column("billed_entity_id", UUID(as_uuid=True), nullable=False),
        sa.Column("campaign_id", UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_id", UUID(as_uuid=True), nullable=False),
        sa.Column("brand_id", UUID(as_uuid=True), nullable=False),
        sa.Column("denomination", sa.Numeric(10, 2), nullable=False),
        sa.Column("amount_billed", sa.Numeric(10, 2), nullable=False),
        sa.Column("cost_basis", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "profit",
            sa.Numeric(10, 2),
            sa.Computed("amount_billed - cost_basis", persisted=True),
        ),
        sa.Column(
            "inventory_card_id",
            UUID(as_uuid=True),
            sa.ForeignKey("gift_card_inventory.id"),
            nullable=True,
        ),
        sa.Column("metadata", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("is_test", sa.Boolean, nullable=False, server_default="false"),
        _timestamp("billed_at"),
        sa.CheckConstraint(
            "transaction_type IN ('purchase_from_inventory', 'purchase_from_vendor')",
            name="ck_ledger_transaction_type",
        ),
        sa.CheckConstraint("billed_entity_type IN ('agency', 'client')", name="ck_ledger_entity_type"),
        sa.CheckConstraint("amount_billed >= 0", name="ck_ledger_amount_non_negative"),
        sa.CheckConstraint("cost_basis >= 0", name="ck_ledger_cost_non_negative"),
    )
    op.create_index(
        "idx_ledger_billed_entity",
        "gift_card_billing_ledger",
        ["billed_entity_type", "billed_entity_id"],
    )
    op.create_index("idx_ledger_campaign", "gift_card_billing_ledger", ["campaign_id"])
    op.create_index("idx_ledger_inventory_card", "gift_card_billing_ledger", ["inventory_card_id"])
    op.create_index("idx_ledger_billed_at", "gift_card_billing_ledger", ["billed_at"])

    # Provisioning trace - one row per checkpoint
    op.create_table(
        "gift_card_provisioning_trace",
        _id_column(),
        sa.Column("request_id", sa.String(255), nullable=False),
        sa.Column("campaign_id", UUID(as_uuid=True), nullable=True),
        sa.Column("recipient_id", UUID(as_uuid=True), nullable=True),
        sa.Column("brand_id", UUID(as_uuid=True), nullable=True),
        sa.Column("denomination", sa.Numeric(10, 2), nullable=True),
        sa.Column("step_number", sa.Integer, nullable=False),
        sa.Column("step_name", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("duration_ms", sa.Integer, nullable=True),
        sa.Column("details", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("error_code", sa.String(50), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint(
            "status IN ('started', 'completed', 'failed', 'skipped')",
            name="ck_trace_status",
        ),
    )
    op.create_index("idx_trace_request_id", "gift_card_provisioning_trace", ["request_id"])
    op.create_index("idx_trace_created_at", "gift_card_provisioning_trace", ["created_at"])


def downgrade() -> None:
    """Drop provisioning tables."""
    op.drop_table("gift_card_provisioning_trace")
    op.drop_table("gift_card_billing_ledger")
    op.drop_table("gift_card_inventory")
    op.drop_table("gift_card_denominations")
    op.drop_table("gift_card_brands")
    op.drop_table("campaigns")
    op.drop_table("clients")
    op.drop_table("agencies")

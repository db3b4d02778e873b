"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
JSONB columns (ledger metadata, trace details) are the only free-form data.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Computed,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


# ============================================================================
# Billing parties (read-only to the provisioning engine)
# ============================================================================


class Agency(Base):
    """ORM model for agencies table."""

    __tablename__ = "agencies"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    credits: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Agency(id={self.id}, name={self.name}, credits={self.credits})>"


class Client(Base):
    """
    ORM model for clients table.

    A client is billed directly unless it belongs to an agency with
    agency billing enabled.
    """

    __tablename__ = "clients"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    agency_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("agencies.id", ondelete="SET NULL"), nullable=True
    )
    agency_billing_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    credits: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (Index("idx_clients_agency_id", "agency_id"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Client(id={self.id}, name={self.name}, agency_id={self.agency_id}, "
            f"agency_billing_enabled={self.agency_billing_enabled})>"
        )


class Campaign(Base):
    """ORM model for campaigns table."""

    __tablename__ = "campaigns"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Campaign(id={self.id}, name={self.name}, client_id={self.client_id})>"


# ============================================================================
# Catalog
# ============================================================================


class GiftCardBrand(Base):
    """ORM model for gift_card_brands table."""

    __tablename__ = "gift_card_brands"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    brand_name: Mapped[str] = mapped_column(String(255), nullable=False)
    brand_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # Null means no vendor fallback for this brand
    vendor_brand_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    logo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_enabled_by_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (UniqueConstraint("brand_code", name="uq_gift_card_brands_code"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<GiftCardBrand(id={self.id}, brand_name={self.brand_name}, "
            f"vendor_brand_code={self.vendor_brand_code})>"
        )


class GiftCardDenomination(Base):
    """
    ORM model for gift_card_denominations table.

    Per brand+denomination pricing overrides and configured vendor cost.
    """

    __tablename__ = "gift_card_denominations"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    brand_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("gift_card_brands.id", ondelete="CASCADE"), nullable=False
    )
    denomination: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    use_custom_pricing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    client_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    agency_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    cost_basis: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    vendor_cost_per_card: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    __table_args__ = (
        UniqueConstraint("brand_id", "denomination", name="uq_denomination_brand_value"),
        CheckConstraint("denomination > 0", name="ck_denomination_positive"),
        CheckConstraint("client_price >= 0", name="ck_denomination_client_price_non_negative"),
        CheckConstraint("agency_price >= 0", name="ck_denomination_agency_price_non_negative"),
        CheckConstraint("cost_basis >= 0", name="ck_denomination_cost_basis_non_negative"),
        CheckConstraint(
            "vendor_cost_per_card >= 0", name="ck_denomination_vendor_cost_non_negative"
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<GiftCardDenomination(brand_id={self.brand_id}, denomination={self.denomination}, "
            f"use_custom_pricing={self.use_custom_pricing})>"
        )


# ============================================================================
# Inventory
# ============================================================================


class GiftCardInventory(Base):
    """
    ORM model for gift_card_inventory table.

    Rows move available -> assigned -> delivered, or to revoked/expired.
    Allocation happens only through the atomic claim statement.
    """

    __tablename__ = "gift_card_inventory"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    brand_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("gift_card_brands.id"), nullable=False
    )
    denomination: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Secret card material
    card_code: Mapped[str] = mapped_column(Text, nullable=False)
    card_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="available")

    # Assignment linkage
    assigned_recipient_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), nullable=True
    )
    assigned_campaign_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), nullable=True
    )
    assigned_condition_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Cost tracking
    cost_per_card: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    cost_source: Mapped[str] = mapped_column(String(20), nullable=False, default="unknown")

    # Vendor provenance
    provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    vendor_transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Revocation
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoke_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('available', 'assigned', 'delivered', 'expired', 'revoked')",
            name="ck_inventory_status",
        ),
        CheckConstraint(
            "cost_source IN ('csv', 'vendor_api', 'manual', 'unknown')",
            name="ck_inventory_cost_source",
        ),
        CheckConstraint("denomination > 0", name="ck_inventory_denomination_positive"),
        Index("idx_inventory_brand_denom_status", "brand_id", "denomination", "status"),
        Index(
            "idx_inventory_assignment",
            "assigned_campaign_id",
            "assigned_recipient_id",
            postgresql_where=(assigned_recipient_id.isnot(None)),
        ),
        Index("idx_inventory_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<GiftCardInventory(id={self.id}, brand_id={self.brand_id}, "
            f"denomination={self.denomination}, status={self.status})>"
        )


# ============================================================================
# Billing ledger (append-only)
# ============================================================================


class GiftCardBillingLedger(Base):
    """
    ORM model for gift_card_billing_ledger table.

    Append-only. profit is a database-generated column.
    """

    __tablename__ = "gift_card_billing_ledger"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    transaction_type: Mapped[str] = mapped_column(String(40), nullable=False)
    billed_entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    billed_entity_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    campaign_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    recipient_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    brand_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    denomination: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    amount_billed: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    cost_basis: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    profit: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), Computed("amount_billed - cost_basis", persisted=True)
    )
    inventory_card_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("gift_card_inventory.id"), nullable=True
    )
    # "metadata" is reserved on declarative classes
    entry_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict
    )
    is_test: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    billed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "transaction_type IN ('purchase_from_inventory', 'purchase_from_vendor')",
            name="ck_ledger_transaction_type",
        ),
        CheckConstraint(
            "billed_entity_type IN ('agency', 'client')", name="ck_ledger_entity_type"
        ),
        CheckConstraint("amount_billed >= 0", name="ck_ledger_amount_non_negative"),
        CheckConstraint("cost_basis >= 0", name="ck_ledger_cost_non_negative"),
        Index("idx_ledger_billed_entity", "billed_entity_type", "billed_entity_id"),
        Index("idx_ledger_campaign", "campaign_id"),
        Index("idx_ledger_inventory_card", "inventory_card_id"),
        Index("idx_ledger_billed_at", "billed_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<GiftCardBillingLedger(id={self.id}, type={self.transaction_type}, "
            f"entity={self.billed_entity_type}/{self.billed_entity_id}, "
            f"amount={self.amount_billed})>"
        )


# ============================================================================
# Provisioning trace
# ============================================================================


class GiftCardProvisioningTrace(Base):
    """ORM model for gift_card_provisioning_trace table (one row per checkpoint)."""

    __tablename__ = "gift_card_provisioning_trace"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    request_id: Mapped[str] = mapped_column(String(255), nullable=False)
    campaign_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    recipient_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    brand_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    denomination: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('started', 'completed', 'failed', 'skipped')",
            name="ck_trace_status",
        ),
        Index("idx_trace_request_id", "request_id"),
        Index("idx_trace_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<GiftCardProvisioningTrace(request_id={self.request_id}, "
            f"step={self.step_number}:{self.step_name}, status={self.status})>"
        )

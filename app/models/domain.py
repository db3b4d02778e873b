"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
The one mutable structure is RequestContext, which accumulates checkpoints
for a single provisioning request and is passed explicitly through every call.
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from app.models.api import (
    CardSource,
    CardStatus,
    CheckpointStatus,
    CostSource,
    EntityType,
    LedgerTransactionType,
    ProvisioningErrorCode,
    ProvisioningStep,
    ProvisionMode,
)


@dataclass(frozen=True)
class ProvisionRequest:
    """Ephemeral provisioning input."""

    campaign_id: UUID | None
    recipient_id: UUID | None
    brand_id: UUID | None
    denomination: Decimal | None
    condition_number: int | None = None
    request_id: str | None = None

    def missing_parameters(self) -> list[str]:
        """Names of required fields that are absent or invalid."""
        missing: list[str] = []
        if self.campaign_id is None:
            missing.append("campaign_id")
        if self.recipient_id is None:
            missing.append("recipient_id")
        if self.brand_id is None:
            missing.append("brand_id")
        if (
            self.denomination is None
            or not self.denomination.is_finite()
            or self.denomination <= 0
        ):
            missing.append("denomination")
        return missing


@dataclass(frozen=True)
class BillingEntity:
    """Party billed for a campaign's cards."""

    entity_type: EntityType
    entity_id: UUID
    entity_name: str
    credits: Decimal


@dataclass(frozen=True)
class Brand:
    """Gift card brand as seen by the engine."""

    brand_id: UUID
    brand_name: str
    brand_code: str | None
    vendor_brand_code: str | None
    logo_url: str | None
    is_enabled: bool


@dataclass(frozen=True)
class PricingConfig:
    """Per brand+denomination pricing overrides."""

    use_custom_pricing: bool = False
    client_price: Decimal | None = None
    agency_price: Decimal | None = None
    cost_basis: Decimal | None = None
    vendor_cost_per_card: Decimal | None = None


@dataclass(frozen=True)
class ResolvedPricing:
    """Amount billed and cost basis for one card."""

    amount_billed: Decimal
    cost_basis: Decimal

    @property
    def profit(self) -> Decimal:
        return self.amount_billed - self.cost_basis


@dataclass(frozen=True)
class InventoryCardData:
    """Immutable snapshot of an inventory row."""

    card_id: UUID
    brand_id: UUID
    denomination: Decimal
    card_code: str
    card_number: str | None
    expiration_date: date | None
    status: CardStatus
    cost_per_card: Decimal | None
    cost_source: CostSource
    assigned_recipient_id: UUID | None = None
    assigned_campaign_id: UUID | None = None
    assigned_at: datetime | None = None


@dataclass(frozen=True)
class VendorCard:
    """Card returned by the vendor fallback API."""

    card_code: str
    card_number: str | None
    expiration_date: date | None
    transaction_id: str
    order_reference: str | None = None


@dataclass(frozen=True)
class LedgerEntryIntent:
    """Billing ledger row before persistence - profit is derived, never set."""

    transaction_type: LedgerTransactionType
    billed_entity_type: EntityType
    billed_entity_id: UUID
    campaign_id: UUID
    recipient_id: UUID
    brand_id: UUID
    denomination: Decimal
    amount_billed: Decimal
    cost_basis: Decimal
    inventory_card_id: UUID | None
    request_id: str
    source: CardSource
    vendor_transaction_id: str | None = None
    vendor_order_reference: str | None = None
    is_test: bool = False

    def __post_init__(self) -> None:
        """Validate ledger constraints."""
        if self.amount_billed < 0:
            raise ValueError(f"Amount billed cannot be negative: {self.amount_billed}")
        if self.cost_basis < 0:
            raise ValueError(f"Cost basis cannot be negative: {self.cost_basis}")

    @property
    def profit(self) -> Decimal:
        return self.amount_billed - self.cost_basis


@dataclass(frozen=True)
class ProvisionedCard:
    """Card fields returned to the caller."""

    card_id: UUID | None
    card_code: str
    card_number: str | None
    denomination: Decimal
    brand_name: str
    brand_logo: str | None
    expiration_date: date | None
    source: CardSource


@dataclass(frozen=True)
class BillingSummary:
    """Who was billed and how much."""

    ledger_id: UUID | None
    billed_entity: str
    billed_entity_id: UUID
    billed_entity_type: EntityType
    amount_billed: Decimal
    cost_basis: Decimal

    @property
    def profit(self) -> Decimal:
        return self.amount_billed - self.cost_basis


@dataclass(frozen=True)
class ProvisionWarning:
    """Non-fatal issue recorded during a successful request."""

    code: ProvisioningErrorCode
    message: str


@dataclass(frozen=True)
class ProvisionFailure:
    """Fatal error with the step it happened at."""

    code: ProvisioningErrorCode
    message: str
    step_number: int
    step_name: str
    available_denominations: tuple[Decimal, ...] = ()


@dataclass(frozen=True)
class RecipientContactInfo:
    """Where the call-center notifier should deliver a card."""

    phone: str | None = None
    email: str | None = None
    name: str | None = None

    @property
    def is_reachable(self) -> bool:
        return bool(self.phone or self.email)


@dataclass(frozen=True)
class Checkpoint:
    """One step-level record of a provisioning attempt."""

    step_number: int
    step_name: str
    status: CheckpointStatus
    details: dict[str, Any]
    recorded_at: datetime
    duration_ms: int | None = None
    error_code: str | None = None
    error_message: str | None = None


@dataclass
class RequestContext:
    """Correlation id and accumulated checkpoints for one request."""

    request_id: str = field(default_factory=lambda: f"req-{uuid4().hex}")
    mode: ProvisionMode = ProvisionMode.DIRECT
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    checkpoints: list[Checkpoint] = field(default_factory=list)
    warnings: list[ProvisionWarning] = field(default_factory=list)
    campaign_id: UUID | None = None
    recipient_id: UUID | None = None
    brand_id: UUID | None = None
    denomination: Decimal | None = None
    current_step: ProvisioningStep | None = None
    idempotency_token: str | None = None

    @property
    def epoch_ms(self) -> int:
        """Request start as epoch milliseconds."""
        return int(self.started_at.timestamp() * 1000)

    @classmethod
    def for_request(
        cls, request: ProvisionRequest, mode: ProvisionMode = ProvisionMode.DIRECT
    ) -> "RequestContext":
        """Build a context, reusing the caller's request id when given."""
        ctx = cls(mode=mode)
        if request.request_id:
            ctx.request_id = request.request_id
        ctx.campaign_id = request.campaign_id
        ctx.recipient_id = request.recipient_id
        ctx.brand_id = request.brand_id
        ctx.denomination = request.denomination
        return ctx

    def warn(self, code: ProvisioningErrorCode, message: str) -> None:
        self.warnings.append(ProvisionWarning(code=code, message=message))


@dataclass(frozen=True)
class ProvisionResult:
    """Structured outcome of a provisioning request - never an exception."""

    success: bool
    request_id: str
    mode: ProvisionMode
    card: ProvisionedCard | None = None
    billing: BillingSummary | None = None
    error: ProvisionFailure | None = None
    warnings: tuple[ProvisionWarning, ...] = ()
    checkpoints: tuple[Checkpoint, ...] = ()
    already_provisioned: bool = False

    @property
    def source(self) -> CardSource | None:
        return self.card.source if self.card else None


@dataclass(frozen=True)
class RevocationResult:
    """Outcome of revoking an inventory card."""

    card: InventoryCardData
    previous_status: CardStatus
    warnings: tuple[str, ...] = ()

"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class CardStatus(str, Enum):
    """Inventory card lifecycle status."""

    AVAILABLE = "available"
    ASSIGNED = "assigned"
    DELIVERED = "delivered"
    EXPIRED = "expired"
    REVOKED = "revoked"


class CostSource(str, Enum):
    """Where an inventory card's cost figure came from."""

    CSV = "csv"
    VENDOR_API = "vendor_api"
    MANUAL = "manual"
    UNKNOWN = "unknown"


class EntityType(str, Enum):
    """Billed entity type."""

    AGENCY = "agency"
    CLIENT = "client"


class LedgerTransactionType(str, Enum):
    """Billing ledger transaction type."""

    PURCHASE_FROM_INVENTORY = "purchase_from_inventory"
    PURCHASE_FROM_VENDOR = "purchase_from_vendor"


class CardSource(str, Enum):
    """Where a provisioned card came from."""

    INVENTORY = "inventory"
    VENDOR = "vendor"


class CheckpointStatus(str, Enum):
    """Provisioning step checkpoint status."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ProvisionMode(str, Enum):
    """Entry point that initiated a provisioning request."""

    DIRECT = "direct"
    CALL_CENTER = "call_center"
    VENDOR_TEST = "vendor_test"


class ProvisioningStep(IntEnum):
    """Ordered provisioning steps; the value is the persisted step number."""

    VALIDATE_INPUT = 1
    RESOLVE_BILLING_ENTITY = 2
    CHECK_CREDITS = 3
    LOAD_BRAND = 4
    CHECK_EXISTING_ASSIGNMENT = 5
    CLAIM_INVENTORY = 6
    VENDOR_FALLBACK = 7
    RESOLVE_PRICING = 8
    RECORD_LEDGER = 9
    BUILD_RESULT = 10
    NOTIFY_RECIPIENT = 11

    @property
    def step_name(self) -> str:
        return self.name.lower()


class ProvisioningErrorCode(str, Enum):
    """Stable error identifiers surfaced to callers."""

    MISSING_PARAMETERS = "missing_parameters"
    NO_BILLING_ENTITY = "no_billing_entity"
    BRAND_NOT_FOUND = "brand_not_found"
    NO_INVENTORY = "no_inventory"
    VENDOR_PROVISIONING_FAILED = "vendor_provisioning_failed"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    LEDGER_WRITE_FAILED = "ledger_write_failed"
    NOTIFICATION_FAILED = "notification_failed"
    INTERNAL_ERROR = "internal_error"


# ============================================================================
# Provisioning Models
# ============================================================================


class ProvisionCardRequest(BaseModel):
    """POST /v1/provisioning/cards request body.

    Fields are optional at the schema level so that incomplete requests reach
    the engine and come back as a structured ``missing_parameters`` result.
    """

    campaign_id: UUID | None = None
    recipient_id: UUID | None = None
    brand_id: UUID | None = None
    denomination: Decimal | None = Field(None, max_digits=10, decimal_places=2)
    condition_number: int | None = Field(None, ge=0)
    request_id: str | None = Field(None, max_length=255)


class RecipientContact(BaseModel):
    """Contact details forwarded to the notification collaborator."""

    phone: str | None = Field(None, max_length=32)
    email: str | None = Field(None, max_length=255)
    name: str | None = Field(None, max_length=255)

    @field_validator("phone", "email", "name")
    @classmethod
    def strip_blank(cls, v: str | None) -> str | None:
        """Treat blank strings as missing."""
        if v is None:
            return None
        v = v.strip()
        return v or None


class CallCenterProvisionRequest(ProvisionCardRequest):
    """POST /v1/provisioning/call-center request body."""

    contact: RecipientContact = Field(default_factory=RecipientContact)


class CardResponse(BaseModel):
    """Public fields of a provisioned card."""

    id: UUID | None
    card_code: str
    card_number: str | None = None
    denomination: Decimal
    brand_name: str
    brand_logo: str | None = None
    expiration_date: date | None = None
    source: CardSource


class BillingSummaryResponse(BaseModel):
    """Billing summary for a provisioned card."""

    ledger_id: UUID | None
    billed_entity: str
    billed_entity_id: UUID
    billed_entity_type: EntityType
    amount_billed: Decimal
    cost_basis: Decimal
    profit: Decimal


class WarningResponse(BaseModel):
    """Non-fatal issue recorded during provisioning."""

    code: ProvisioningErrorCode
    message: str


class ErrorResponse(BaseModel):
    """Structured provisioning failure."""

    code: ProvisioningErrorCode
    message: str
    description: str
    recommendation: str
    can_retry: bool
    step_number: int
    step_name: str
    available_denominations: list[Decimal] = Field(default_factory=list)


class ProvisionResponse(BaseModel):
    """Provisioning result returned by all provisioning endpoints."""

    success: bool
    request_id: str
    mode: ProvisionMode
    already_provisioned: bool = False
    card: CardResponse | None = None
    billing: BillingSummaryResponse | None = None
    error: ErrorResponse | None = None
    warnings: list[WarningResponse] = Field(default_factory=list)


class CallCenterProvisionResponse(ProvisionResponse):
    """Call-center provisioning result with notification outcome."""

    notification_sent: bool = False


# ============================================================================
# Inventory Models
# ============================================================================


class RevokeCardRequest(BaseModel):
    """POST /v1/inventory/cards/{card_id}/revoke request body."""

    reason: str = Field(..., max_length=2000)
    return_to_pool: bool = False


class RevokeCardResponse(BaseModel):
    """Revocation outcome."""

    card_id: UUID
    status: CardStatus
    previous_status: CardStatus
    cost_source: CostSource
    warnings: list[str] = Field(default_factory=list)


class InventoryAvailabilityResponse(BaseModel):
    """GET /v1/inventory/availability response."""

    brand_id: UUID
    denomination: Decimal | None
    available_count: int
    available_denominations: list[Decimal]


# ============================================================================
# Trace / Ledger Models
# ============================================================================


class CheckpointResponse(BaseModel):
    """One persisted provisioning step."""

    step_number: int
    step_name: str
    status: CheckpointStatus
    details: dict[str, Any] = Field(default_factory=dict)
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: int | None = None
    created_at: datetime


class TraceResponse(BaseModel):
    """GET /v1/provisioning/traces/{request_id} response."""

    request_id: str
    checkpoints: list[CheckpointResponse]


class UnbilledCardResponse(BaseModel):
    """An allocated card with no billing ledger entry."""

    card_id: UUID
    brand_id: UUID
    denomination: Decimal
    status: CardStatus
    cost_source: CostSource
    assigned_campaign_id: UUID | None
    assigned_recipient_id: UUID | None
    assigned_at: datetime | None


class UnbilledCardsResponse(BaseModel):
    """GET /v1/ledger/unbilled response."""

    count: int
    cards: list[UnbilledCardResponse]


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    database: str
    timestamp: datetime

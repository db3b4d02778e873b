"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Provisioning errors carry a ProvisioningErrorCode. The allocation engine
converts them to structured results at a single boundary; they never reach
HTTP callers as exceptions.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from app.models.api import CardStatus, ProvisioningErrorCode


@dataclass(frozen=True)
class ErrorInfo:
    """Caller-facing explanation of an error code."""

    description: str
    recommendation: str
    can_retry: bool


ERROR_CATALOG: dict[ProvisioningErrorCode, ErrorInfo] = {
    ProvisioningErrorCode.MISSING_PARAMETERS: ErrorInfo(
        description="Required request parameters were missing or invalid.",
        recommendation="Supply campaign_id, recipient_id, brand_id and a positive denomination.",
        can_retry=False,
    ),
    ProvisioningErrorCode.NO_BILLING_ENTITY: ErrorInfo(
        description="No client or agency could be resolved for the campaign.",
        recommendation="Verify the campaign exists and is linked to a client.",
        can_retry=False,
    ),
    ProvisioningErrorCode.BRAND_NOT_FOUND: ErrorInfo(
        description="The gift card brand does not exist or is disabled.",
        recommendation="Check the brand id and whether the brand is enabled.",
        can_retry=False,
    ),
    ProvisioningErrorCode.NO_INVENTORY: ErrorInfo(
        description="No inventory is available and the brand has no vendor fallback.",
        recommendation="Upload inventory for this denomination or choose an available one.",
        can_retry=True,
    ),
    ProvisioningErrorCode.VENDOR_PROVISIONING_FAILED: ErrorInfo(
        description="The card vendor API could not issue a card.",
        recommendation="Retry shortly. Check vendor credentials and status if it persists.",
        can_retry=True,
    ),
    ProvisioningErrorCode.INSUFFICIENT_CREDITS: ErrorInfo(
        description="The billed entity's credit balance is below the card value.",
        recommendation="Top up credits for the billed entity.",
        can_retry=False,
    ),
    ProvisioningErrorCode.LEDGER_WRITE_FAILED: ErrorInfo(
        description="The card was issued but the billing record could not be written.",
        recommendation="Run the ledger reconciliation sweep to find the unbilled card.",
        can_retry=False,
    ),
    ProvisioningErrorCode.NOTIFICATION_FAILED: ErrorInfo(
        description="The card was issued but the recipient notification hand-off failed.",
        recommendation="Resend the card details to the recipient.",
        can_retry=True,
    ),
    ProvisioningErrorCode.INTERNAL_ERROR: ErrorInfo(
        description="An unexpected error occurred during provisioning.",
        recommendation="Check the provisioning trace for the failing step.",
        can_retry=False,
    ),
}


def error_info(code: ProvisioningErrorCode) -> ErrorInfo:
    """Look up the catalog entry for an error code."""
    return ERROR_CATALOG[code]


# ============================================================================
# Provisioning errors (converted to results by the engine)
# ============================================================================


class ProvisioningError(Exception):
    """Base exception for all provisioning errors."""

    code: ProvisioningErrorCode = ProvisioningErrorCode.INTERNAL_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class MissingParametersError(ProvisioningError):
    """Raised when required request fields are absent."""

    code = ProvisioningErrorCode.MISSING_PARAMETERS

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required parameters: {', '.join(missing)}")


class NoBillingEntityError(ProvisioningError):
    """Raised when a campaign resolves to no client or agency."""

    code = ProvisioningErrorCode.NO_BILLING_ENTITY

    def __init__(self, campaign_id: UUID) -> None:
        self.campaign_id = campaign_id
        super().__init__(f"No billing entity for campaign {campaign_id}")


class BrandNotFoundError(ProvisioningError):
    """Raised when a brand is missing or disabled."""

    code = ProvisioningErrorCode.BRAND_NOT_FOUND

    def __init__(self, brand_id: UUID, disabled: bool = False) -> None:
        self.brand_id = brand_id
        self.disabled = disabled
        state = "disabled" if disabled else "not found"
        super().__init__(f"Brand {brand_id} {state}")


class NoInventoryError(ProvisioningError):
    """Raised when inventory is empty and no vendor fallback exists."""

    code = ProvisioningErrorCode.NO_INVENTORY

    def __init__(
        self, brand_id: UUID, denomination: Decimal, available: list[Decimal]
    ) -> None:
        self.brand_id = brand_id
        self.denomination = denomination
        self.available = available
        super().__init__(
            f"No ${denomination} cards available for brand {brand_id} and no vendor fallback"
        )


class VendorProvisioningError(ProvisioningError):
    """Raised when the vendor API fails to issue a card."""

    code = ProvisioningErrorCode.VENDOR_PROVISIONING_FAILED

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(f"Vendor provisioning failed: {message}")


class LedgerWriteError(ProvisioningError):
    """Raised when a billing ledger entry cannot be persisted."""

    code = ProvisioningErrorCode.LEDGER_WRITE_FAILED

    def __init__(self, message: str) -> None:
        super().__init__(f"Ledger write failed: {message}")


class NotificationError(ProvisioningError):
    """Raised when the recipient notification hand-off fails."""

    code = ProvisioningErrorCode.NOTIFICATION_FAILED

    def __init__(self, message: str) -> None:
        super().__init__(f"Notification failed: {message}")


# ============================================================================
# Inventory / revocation errors (surfaced as HTTP 4xx)
# ============================================================================


class InventoryError(Exception):
    """Base exception for inventory management errors."""

    pass


class CardNotFoundError(InventoryError):
    """Raised when an inventory card doesn't exist."""

    def __init__(self, card_id: UUID) -> None:
        self.card_id = card_id
        super().__init__(f"Card not found: {card_id}")


class CardNotRevocableError(InventoryError):
    """Raised when a card is not in a revocable status."""

    def __init__(self, card_id: UUID, status: CardStatus) -> None:
        self.card_id = card_id
        self.status = status
        super().__init__(f"Card {card_id} cannot be revoked from status '{status.value}'")


class RevocationReasonError(InventoryError):
    """Raised when a revocation reason is too short."""

    def __init__(self, min_length: int, actual_length: int) -> None:
        self.min_length = min_length
        self.actual_length = actual_length
        super().__init__(
            f"Revocation reason must be at least {min_length} characters, got {actual_length}"
        )

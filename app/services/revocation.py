"""
Revocation Service - Pulls an allocated card back out of circulation.

The reason is mandatory. A revoked vendor card is not refunded by the
vendor; the caller is warned about it.
"""

from uuid import UUID

from structlog import get_logger

from app.config import Settings, settings as default_settings
from app.exceptions import CardNotFoundError, CardNotRevocableError, RevocationReasonError
from app.models.api import CardStatus, CostSource
from app.models.domain import RevocationResult
from app.observability.metrics import metrics
from app.services.inventory import InventoryStore

logger = get_logger(__name__)

VENDOR_NOT_REVERSIBLE_WARNING = (
    "Card was issued by the vendor API; the vendor transaction is not reversible "
    "and will not be refunded."
)


class RevocationService:
    """Validates revocation requests and applies them through the inventory store."""

    def __init__(self, inventory: InventoryStore, settings: Settings = default_settings) -> None:
        self.inventory = inventory
        self.min_reason_length = settings.revocation_min_reason_length

    async def revoke(
        self, card_id: UUID, reason: str, return_to_pool: bool = False
    ) -> RevocationResult:
        """
        Revoke an assigned or delivered card.

        Raises:
            RevocationReasonError: Reason shorter than the minimum after trimming
            CardNotFoundError: No such card
            CardNotRevocableError: Card is available, expired or already revoked
        """
        reason = reason.strip()
        if len(reason) < self.min_reason_length:
            raise RevocationReasonError(self.min_reason_length, len(reason))

        card = await self.inventory.get_card(card_id)
        if card is None:
            raise CardNotFoundError(card_id)
        if card.status not in (CardStatus.ASSIGNED, CardStatus.DELIVERED):
            raise CardNotRevocableError(card_id, card.status)

        warnings: list[str] = []
        if card.cost_source == CostSource.VENDOR_API:
            warnings.append(VENDOR_NOT_REVERSIBLE_WARNING)

        # Conditional update guards against a concurrent revoke
        revoked = await self.inventory.revoke(card_id, reason, return_to_pool)
        metrics.record_revocation(return_to_pool)

        logger.info(
            "card_revocation_completed",
            card_id=str(card_id),
            previous_status=card.status.value,
            new_status=revoked.status.value,
            cost_source=card.cost_source.value,
        )
        return RevocationResult(
            card=revoked, previous_status=card.status, warnings=tuple(warnings)
        )

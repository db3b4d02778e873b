"""
Reconciliation Sweep - Finds allocated cards with no billing ledger entry.

A card can be issued without a ledger row when the ledger write fails
after allocation. This sweep lists those cards so they can be billed
manually. It is run on demand (GET /v1/ledger/unbilled or scripts/reconcile_ledger.py).
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import GiftCardBillingLedger, GiftCardInventory
from app.models.domain import InventoryCardData
from app.observability.metrics import metrics
from app.services.inventory import ALLOCATED_STATUSES, to_card_data
from app.services.ledger import billed_for_assignment

logger = get_logger(__name__)


class ReconciliationService:
    """Read-only scan for billing gaps."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with database session."""
        self.session = session

    async def find_unbilled_cards(self, limit: int = 500) -> list[InventoryCardData]:
        """Assigned or delivered cards whose current assignment has no ledger entry."""
        billed = select(GiftCardBillingLedger.id).where(
            billed_for_assignment(
                GiftCardInventory.id,
                GiftCardInventory.assigned_campaign_id,
                GiftCardInventory.assigned_recipient_id,
                GiftCardInventory.assigned_at,
            )
        )
        stmt = (
            select(GiftCardInventory)
            .where(
                GiftCardInventory.status.in_(ALLOCATED_STATUSES),
                ~billed.exists(),
            )
            .order_by(GiftCardInventory.assigned_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        cards = [to_card_data(row) for row in result.scalars().all()]

        metrics.unbilled_cards.set(len(cards))
        if cards:
            logger.warning("unbilled_cards_found", count=len(cards), limit=limit)
        else:
            logger.info("ledger_reconciled", count=0)
        return cards

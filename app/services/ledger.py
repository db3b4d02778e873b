"""
Billing Ledger - Append-only record of every billed card.

Rows are only ever inserted. profit is computed by the database.
"""

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import ColumnElement, and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import GiftCardBillingLedger
from app.exceptions import LedgerWriteError
from app.models.api import EntityType
from app.models.domain import InventoryCardData, LedgerEntryIntent
from app.observability.metrics import metrics

logger = get_logger(__name__)


def billed_for_assignment(
    card_id: Any, campaign_id: Any, recipient_id: Any, assigned_at: Any
) -> ColumnElement[bool]:
    """
    Ledger rows billing one assignment of a card.

    A card returned to the pool keeps its earlier ledger rows, so matching on
    the card id alone would treat a later assignment as billed. Arguments may
    be values or inventory columns.
    """
    return and_(
        GiftCardBillingLedger.inventory_card_id == card_id,
        GiftCardBillingLedger.campaign_id == campaign_id,
        GiftCardBillingLedger.recipient_id == recipient_id,
        GiftCardBillingLedger.billed_at >= assigned_at,
    )


def _entry_metadata(intent: LedgerEntryIntent) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "request_id": intent.request_id,
        "source": intent.source.value,
    }
    if intent.vendor_transaction_id:
        metadata["vendor_transaction_id"] = intent.vendor_transaction_id
    if intent.vendor_order_reference:
        metadata["vendor_order_reference"] = intent.vendor_order_reference
    return metadata


class BillingLedger:
    """Append and query gift_card_billing_ledger."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with database session."""
        self.session = session

    async def record(self, intent: LedgerEntryIntent) -> UUID:
        """
        Append one ledger entry.

        Raises:
            LedgerWriteError: If the row cannot be persisted
        """
        entry = GiftCardBillingLedger(
            id=uuid4(),
            transaction_type=intent.transaction_type.value,
            billed_entity_type=intent.billed_entity_type.value,
            billed_entity_id=intent.billed_entity_id,
            campaign_id=intent.campaign_id,
            recipient_id=intent.recipient_id,
            brand_id=intent.brand_id,
            denomination=intent.denomination,
            amount_billed=intent.amount_billed,
            cost_basis=intent.cost_basis,
            inventory_card_id=intent.inventory_card_id,
            entry_metadata=_entry_metadata(intent),
            is_test=intent.is_test,
        )
        self.session.add(entry)
        try:
            await self.session.commit()
        except Exception as exc:
            await self.session.rollback()
            metrics.record_ledger_write(False)
            raise LedgerWriteError(str(exc)) from exc

        metrics.record_ledger_write(True)
        logger.info(
            "ledger_entry_recorded",
            ledger_id=str(entry.id),
            transaction_type=intent.transaction_type.value,
            billed_entity_type=intent.billed_entity_type.value,
            billed_entity_id=str(intent.billed_entity_id),
            amount_billed=str(intent.amount_billed),
            cost_basis=str(intent.cost_basis),
            is_test=intent.is_test,
        )
        return entry.id

    async def list_for_entity(
        self, entity_type: EntityType, entity_id: UUID, include_test: bool = False, limit: int = 100
    ) -> list[GiftCardBillingLedger]:
        stmt = select(GiftCardBillingLedger).where(
            GiftCardBillingLedger.billed_entity_type == entity_type.value,
            GiftCardBillingLedger.billed_entity_id == entity_id,
        )
        if not include_test:
            stmt = stmt.where(GiftCardBillingLedger.is_test.is_(False))
        stmt = stmt.order_by(GiftCardBillingLedger.billed_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_campaign(
        self, campaign_id: UUID, include_test: bool = False, limit: int = 100
    ) -> list[GiftCardBillingLedger]:
        stmt = select(GiftCardBillingLedger).where(
            GiftCardBillingLedger.campaign_id == campaign_id
        )
        if not include_test:
            stmt = stmt.where(GiftCardBillingLedger.is_test.is_(False))
        stmt = stmt.order_by(GiftCardBillingLedger.billed_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_for_card(self, card: InventoryCardData) -> GiftCardBillingLedger | None:
        """Latest entry billing the card's current assignment."""
        stmt = (
            select(GiftCardBillingLedger)
            .where(
                billed_for_assignment(
                    card.card_id,
                    card.assigned_campaign_id,
                    card.assigned_recipient_id,
                    card.assigned_at,
                )
            )
            .order_by(GiftCardBillingLedger.billed_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()


"""
Inventory Store - Atomic card claims and inventory state transitions.

Every allocation goes through a single UPDATE ... WHERE id = (SELECT ...
FOR UPDATE SKIP LOCKED) RETURNING statement. Concurrent claimers never
block on each other and never receive the same row.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Update, and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import GiftCardInventory
from app.exceptions import CardNotFoundError, CardNotRevocableError
from app.models.api import CardStatus, CostSource
from app.models.domain import InventoryCardData

logger = get_logger(__name__)

ALLOCATED_STATUSES = (CardStatus.ASSIGNED.value, CardStatus.DELIVERED.value)

VENDOR_PROVIDER = "vendor_api"


def to_card_data(row: GiftCardInventory) -> InventoryCardData:
    """Convert an ORM row to an immutable snapshot."""
    return InventoryCardData(
        card_id=row.id,
        brand_id=row.brand_id,
        denomination=row.denomination,
        card_code=row.card_code,
        card_number=row.card_number,
        expiration_date=row.expiration_date,
        status=CardStatus(row.status),
        cost_per_card=row.cost_per_card,
        cost_source=CostSource(row.cost_source),
        assigned_recipient_id=row.assigned_recipient_id,
        assigned_campaign_id=row.assigned_campaign_id,
        assigned_at=row.assigned_at,
    )


def _not_expired():
    return or_(
        GiftCardInventory.expiration_date.is_(None),
        GiftCardInventory.expiration_date > func.current_date(),
    )


def build_claim_statement(
    brand_id: UUID,
    denomination: Decimal,
    recipient_id: UUID,
    campaign_id: UUID,
    condition_number: int | None,
    now: datetime,
) -> Update:
    """
    Build the single-statement atomic claim.

    The subquery locks the oldest available, unexpired row, skipping rows
    already locked by concurrent claimers. The outer UPDATE assigns it and
    returns the claimed row.
    """
    candidate = (
        select(GiftCardInventory.id)
        .where(
            GiftCardInventory.brand_id == brand_id,
            GiftCardInventory.denomination == denomination,
            GiftCardInventory.status == CardStatus.AVAILABLE.value,
            _not_expired(),
        )
        .order_by(GiftCardInventory.created_at)
        .limit(1)
        .with_for_update(skip_locked=True)
        .correlate(None)
        .scalar_subquery()
    )

    return (
        update(GiftCardInventory)
        .where(GiftCardInventory.id == candidate)
        .values(
            status=CardStatus.ASSIGNED.value,
            assigned_recipient_id=recipient_id,
            assigned_campaign_id=campaign_id,
            assigned_condition_number=condition_number,
            assigned_at=now,
            updated_at=now,
        )
        .returning(GiftCardInventory)
        .execution_options(synchronize_session=False)
    )


class InventoryStore:
    """Persistence operations on gift_card_inventory."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with database session."""
        self.session = session

    async def claim(
        self,
        brand_id: UUID,
        denomination: Decimal,
        recipient_id: UUID,
        campaign_id: UUID,
        condition_number: int | None = None,
    ) -> InventoryCardData | None:
        """
        Atomically claim one available card, or return None.

        The claim commits immediately so the row lock is released before
        any later step runs.
        """
        stmt = build_claim_statement(
            brand_id,
            denomination,
            recipient_id,
            campaign_id,
            condition_number,
            datetime.now(UTC),
        )
        try:
            result = await self.session.execute(stmt)
            row = result.scalar_one_or_none()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        if row is None:
            logger.info(
                "inventory_claim_empty",
                brand_id=str(brand_id),
                denomination=str(denomination),
            )
            return None

        logger.info(
            "inventory_card_claimed",
            card_id=str(row.id),
            brand_id=str(brand_id),
            denomination=str(denomination),
            campaign_id=str(campaign_id),
            recipient_id=str(recipient_id),
        )
        return to_card_data(row)

    async def insert_vendor_card(
        self,
        brand_id: UUID,
        denomination: Decimal,
        card_code: str,
        card_number: str | None,
        expiration_date: date | None,
        cost_per_card: Decimal,
        vendor_transaction_id: str,
        recipient_id: UUID,
        campaign_id: UUID,
        condition_number: int | None = None,
    ) -> InventoryCardData:
        """Record a vendor-issued card, created directly in assigned status."""
        now = datetime.now(UTC)
        row = GiftCardInventory(
            id=uuid4(),
            brand_id=brand_id,
            denomination=denomination,
            card_code=card_code,
            card_number=card_number,
            expiration_date=expiration_date,
            status=CardStatus.ASSIGNED.value,
            assigned_recipient_id=recipient_id,
            assigned_campaign_id=campaign_id,
            assigned_condition_number=condition_number,
            assigned_at=now,
            cost_per_card=cost_per_card,
            cost_source=CostSource.VENDOR_API.value,
            provider=VENDOR_PROVIDER,
            vendor_transaction_id=vendor_transaction_id,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "vendor_card_recorded",
            card_id=str(row.id),
            brand_id=str(brand_id),
            denomination=str(denomination),
            vendor_transaction_id=vendor_transaction_id,
        )
        return to_card_data(row)

    async def get_card(self, card_id: UUID) -> InventoryCardData | None:
        stmt = select(GiftCardInventory).where(GiftCardInventory.id == card_id)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return to_card_data(row) if row else None

    async def find_assignment(
        self,
        campaign_id: UUID,
        recipient_id: UUID,
        condition_number: int,
    ) -> InventoryCardData | None:
        """Find a card already allocated to this recipient and condition."""
        stmt = (
            select(GiftCardInventory)
            .where(
                GiftCardInventory.assigned_campaign_id == campaign_id,
                GiftCardInventory.assigned_recipient_id == recipient_id,
                GiftCardInventory.assigned_condition_number == condition_number,
                GiftCardInventory.status.in_(ALLOCATED_STATUSES),
            )
            .order_by(GiftCardInventory.assigned_at)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return to_card_data(row) if row else None

    async def revoke(
        self, card_id: UUID, reason: str, return_to_pool: bool = False
    ) -> InventoryCardData:
        """
        Revoke an assigned or delivered card.

        Conditional update: only rows in a revocable status change. The
        assignment linkage is cleared; the card becomes revoked, or
        available again when return_to_pool is set.

        Raises:
            CardNotFoundError: No such card
            CardNotRevocableError: Card is not assigned or delivered
        """
        now = datetime.now(UTC)
        new_status = CardStatus.AVAILABLE if return_to_pool else CardStatus.REVOKED
        stmt = (
            update(GiftCardInventory)
            .where(
                and_(
                    GiftCardInventory.id == card_id,
                    GiftCardInventory.status.in_(ALLOCATED_STATUSES),
                )
            )
            .values(
                status=new_status.value,
                assigned_recipient_id=None,
                assigned_campaign_id=None,
                assigned_condition_number=None,
                assigned_at=None,
                delivered_at=None,
                revoked_at=now,
                revoke_reason=reason,
                updated_at=now,
            )
            .returning(GiftCardInventory)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            row = result.scalar_one_or_none()
            if row is None:
                await self.session.rollback()
                existing = await self.get_card(card_id)
                if existing is None:
                    raise CardNotFoundError(card_id)
                raise CardNotRevocableError(card_id, existing.status)
            await self.session.commit()
        except (CardNotFoundError, CardNotRevocableError):
            raise
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "inventory_card_revoked",
            card_id=str(card_id),
            new_status=new_status.value,
            return_to_pool=return_to_pool,
        )
        return to_card_data(row)

    async def available_denominations(self, brand_id: UUID) -> list[Decimal]:
        """Distinct denominations with at least one available, unexpired card."""
        stmt = (
            select(GiftCardInventory.denomination)
            .where(
                GiftCardInventory.brand_id == brand_id,
                GiftCardInventory.status == CardStatus.AVAILABLE.value,
                _not_expired(),
            )
            .distinct()
            .order_by(GiftCardInventory.denomination)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_available(self, brand_id: UUID, denomination: Decimal | None = None) -> int:
        stmt = select(func.count(GiftCardInventory.id)).where(
            GiftCardInventory.brand_id == brand_id,
            GiftCardInventory.status == CardStatus.AVAILABLE.value,
            _not_expired(),
        )
        if denomination is not None:
            stmt = stmt.where(GiftCardInventory.denomination == denomination)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

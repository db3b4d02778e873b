"""
Billing Entity Resolver - Determines who pays for a campaign's cards.

A campaign belongs to a client. The client's agency is billed when the
client has agency billing enabled and belongs to an agency; otherwise the
client itself is billed.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import Agency, Campaign, Client
from app.models.api import EntityType
from app.models.domain import BillingEntity

logger = get_logger(__name__)


class BillingEntityResolver:
    """Resolves campaign -> agency/client with credit balance."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with database session."""
        self.session = session

    async def resolve(self, campaign_id: UUID) -> BillingEntity | None:
        """Return the billed party for a campaign, or None if unresolvable."""
        stmt = (
            select(Client)
            .join(Campaign, Campaign.client_id == Client.id)
            .where(Campaign.id == campaign_id)
        )
        result = await self.session.execute(stmt)
        client = result.scalar_one_or_none()

        if client is None:
            logger.warning("billing_entity_not_found", campaign_id=str(campaign_id))
            return None

        if client.agency_billing_enabled and client.agency_id is not None:
            agency = await self.session.get(Agency, client.agency_id)
            if agency is not None:
                return BillingEntity(
                    entity_type=EntityType.AGENCY,
                    entity_id=agency.id,
                    entity_name=agency.name,
                    credits=agency.credits,
                )
            # Dangling agency reference: fall back to the client
            logger.warning(
                "billing_agency_missing",
                campaign_id=str(campaign_id),
                client_id=str(client.id),
                agency_id=str(client.agency_id),
            )

        return BillingEntity(
            entity_type=EntityType.CLIENT,
            entity_id=client.id,
            entity_name=client.name,
            credits=client.credits,
        )

"""
Brand Catalog - Brand lookup and per-denomination pricing configuration.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import GiftCardBrand, GiftCardDenomination
from app.models.domain import Brand, PricingConfig


class BrandCatalog:
    """Read access to gift_card_brands and gift_card_denominations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with database session."""
        self.session = session

    async def get_brand(self, brand_id: UUID) -> Brand | None:
        row = await self.session.get(GiftCardBrand, brand_id)
        if row is None:
            return None
        return Brand(
            brand_id=row.id,
            brand_name=row.brand_name,
            brand_code=row.brand_code,
            vendor_brand_code=row.vendor_brand_code,
            logo_url=row.logo_url,
            is_enabled=row.is_enabled_by_admin,
        )

    async def get_pricing_config(self, brand_id: UUID, denomination: Decimal) -> PricingConfig:
        """Pricing overrides for a brand+denomination; defaults when none configured."""
        stmt = select(GiftCardDenomination).where(
            GiftCardDenomination.brand_id == brand_id,
            GiftCardDenomination.denomination == denomination,
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            return PricingConfig()
        return PricingConfig(
            use_custom_pricing=row.use_custom_pricing,
            client_price=row.client_price,
            agency_price=row.agency_price,
            cost_basis=row.cost_basis,
            vendor_cost_per_card=row.vendor_cost_per_card,
        )

"""
Tests for BillingEntityResolver and BrandCatalog.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from conftest import result_returning

from app.db.models import Agency, Client, GiftCardBrand, GiftCardDenomination
from app.models.api import EntityType
from app.models.domain import PricingConfig
from app.services.billing_entity import BillingEntityResolver
from app.services.catalog import BrandCatalog


def create_mock_client(agency_id=None, agency_billing_enabled: bool = False) -> MagicMock:
    """Create a mock Client row."""
    client = MagicMock(spec=Client)
    client.id = uuid4()
    client.name = "Bright Smiles Dental"
    client.agency_id = agency_id
    client.agency_billing_enabled = agency_billing_enabled
    client.credits = Decimal("500.00")
    return client


def create_mock_agency() -> MagicMock:
    agency = MagicMock(spec=Agency)
    agency.id = uuid4()
    agency.name = "Northwind Marketing"
    agency.credits = Decimal("10000.00")
    return agency


class TestBillingEntityResolver:
    """Campaign -> client -> agency resolution."""

    @pytest.mark.asyncio
    async def test_unknown_campaign(self, db_session):
        assert await BillingEntityResolver(db_session).resolve(uuid4()) is None

    @pytest.mark.asyncio
    async def test_client_billed_by_default(self, db_session):
        client = create_mock_client()
        db_session.execute.return_value = result_returning(client)

        entity = await BillingEntityResolver(db_session).resolve(uuid4())

        assert entity.entity_type == EntityType.CLIENT
        assert entity.entity_id == client.id
        assert entity.credits == Decimal("500.00")
        db_session.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_agency_billed_when_enabled(self, db_session):
        agency = create_mock_agency()
        client = create_mock_client(agency_id=agency.id, agency_billing_enabled=True)
        db_session.execute.return_value = result_returning(client)
        db_session.get = AsyncMock(return_value=agency)

        entity = await BillingEntityResolver(db_session).resolve(uuid4())

        assert entity.entity_type == EntityType.AGENCY
        assert entity.entity_id == agency.id
        assert entity.entity_name == "Northwind Marketing"
        db_session.get.assert_awaited_once_with(Agency, agency.id)

    @pytest.mark.asyncio
    async def test_agency_ignored_when_billing_disabled(self, db_session):
        client = create_mock_client(agency_id=uuid4(), agency_billing_enabled=False)
        db_session.execute.return_value = result_returning(client)

        entity = await BillingEntityResolver(db_session).resolve(uuid4())

        assert entity.entity_type == EntityType.CLIENT

    @pytest.mark.asyncio
    async def test_dangling_agency_falls_back_to_client(self, db_session):
        client = create_mock_client(agency_id=uuid4(), agency_billing_enabled=True)
        db_session.execute.return_value = result_returning(client)

        entity = await BillingEntityResolver(db_session).resolve(uuid4())

        assert entity.entity_type == EntityType.CLIENT
        assert entity.entity_id == client.id


class TestBrandCatalog:
    """Brand and pricing lookups."""

    @pytest.mark.asyncio
    async def test_unknown_brand(self, db_session):
        assert await BrandCatalog(db_session).get_brand(uuid4()) is None

    @pytest.mark.asyncio
    async def test_brand_mapping(self, db_session):
        row = MagicMock(spec=GiftCardBrand)
        row.id = uuid4()
        row.brand_name = "Target"
        row.brand_code = "target"
        row.vendor_brand_code = None
        row.logo_url = None
        row.is_enabled_by_admin = False
        db_session.get = AsyncMock(return_value=row)

        brand = await BrandCatalog(db_session).get_brand(row.id)

        assert brand.brand_name == "Target"
        assert brand.vendor_brand_code is None
        assert brand.is_enabled is False

    @pytest.mark.asyncio
    async def test_default_pricing_when_unconfigured(self, db_session):
        config = await BrandCatalog(db_session).get_pricing_config(uuid4(), Decimal("25"))

        assert config == PricingConfig()

    @pytest.mark.asyncio
    async def test_configured_pricing(self, db_session):
        row = MagicMock(spec=GiftCardDenomination)
        row.use_custom_pricing = True
        row.client_price = Decimal("28.00")
        row.agency_price = Decimal("30.00")
        row.cost_basis = None
        row.vendor_cost_per_card = Decimal("24.00")
        db_session.execute.return_value = result_returning(row)

        config = await BrandCatalog(db_session).get_pricing_config(uuid4(), Decimal("25"))

        assert config.use_custom_pricing is True
        assert config.agency_price == Decimal("30.00")
        assert config.vendor_cost_per_card == Decimal("24.00")

"""
End-to-End Provisioning Tests

Runs against a local stack: the API on E2E_BASE_URL and its PostgreSQL
database on E2E_DATABASE_URL. Fixtures seed rows directly, each test under
its own brand so runs do not interfere.
Run with: pytest tests/e2e -v
"""

import asyncio
import os
from collections.abc import AsyncIterator
from decimal import Decimal
from uuid import UUID, uuid4

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.db.models import Campaign, Client, GiftCardBrand, GiftCardInventory
from app.services.inventory import InventoryStore
from app.services.ledger import BillingLedger
from app.services.reconciliation import ReconciliationService

BASE_URL = os.getenv("E2E_BASE_URL", "http://localhost:8000")
DATABASE_URL = os.getenv("E2E_DATABASE_URL", os.environ["DATABASE_URL"])
DENOMINATION = Decimal("25.00")


def _stack_running() -> bool:
    try:
        return httpx.get(f"{BASE_URL}/health", timeout=2.0).status_code == 200
    except httpx.HTTPError:
        return False


@pytest.fixture
def stack():
    if not _stack_running():
        pytest.skip(f"provisioning API not reachable at {BASE_URL}")


@pytest.fixture
async def session(stack) -> AsyncIterator[AsyncSession]:
    engine = create_async_engine(DATABASE_URL)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
async def client(stack) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(base_url=BASE_URL, timeout=30.0) as client:
        yield client


async def seed_campaign(session: AsyncSession) -> UUID:
    """A campaign billed to a client with plenty of credits."""
    billed = Client(id=uuid4(), name="E2E Client", credits=Decimal("100000"))
    campaign = Campaign(id=uuid4(), name="E2E Campaign", client_id=billed.id)
    session.add(billed)
    await session.flush()
    session.add(campaign)
    await session.commit()
    return campaign.id


async def seed_brand_with_cards(session: AsyncSession, count: int) -> UUID:
    """A brand without vendor fallback holding `count` available cards."""
    brand = GiftCardBrand(id=uuid4(), brand_name="E2E Brand", vendor_brand_code=None)
    session.add(brand)
    await session.flush()
    for i in range(count):
        session.add(
            GiftCardInventory(
                id=uuid4(),
                brand_id=brand.id,
                denomination=DENOMINATION,
                card_code=f"E2E-{brand.id.hex[:8]}-{i:04d}",
                status="available",
                cost_per_card=Decimal("23.50"),
                cost_source="csv",
            )
        )
    await session.commit()
    return brand.id


def provision_body(campaign_id: UUID, brand_id: UUID) -> dict:
    return {
        "campaign_id": str(campaign_id),
        "recipient_id": str(uuid4()),
        "brand_id": str(brand_id),
        "denomination": str(DENOMINATION),
    }


class TestConcurrentClaims:
    """Concurrent requests against a small pool through the real claim statement."""

    @pytest.mark.asyncio
    async def test_each_card_allocated_once(self, client, session):
        pool_size, request_count = 3, 10
        campaign_id = await seed_campaign(session)
        brand_id = await seed_brand_with_cards(session, pool_size)

        responses = await asyncio.gather(
            *(
                client.post("/v1/provisioning/cards", json=provision_body(campaign_id, brand_id))
                for _ in range(request_count)
            )
        )
        results = [r.json() for r in responses]

        assert all(r.status_code == 200 for r in responses)
        succeeded = [r for r in results if r["success"]]
        assert len(succeeded) == pool_size
        assert all(r["card"]["source"] == "inventory" for r in succeeded)
        assert len({r["card"]["id"] for r in succeeded}) == pool_size
        assert all(
            r["error"]["code"] == "no_inventory" for r in results if not r["success"]
        )

        rows = (
            await session.execute(
                select(GiftCardInventory).where(GiftCardInventory.brand_id == brand_id)
            )
        ).scalars().all()
        assert {row.status for row in rows} == {"assigned"}
        assert len({row.assigned_recipient_id for row in rows}) == pool_size


class TestReclaimedCardBilling:
    """A card returned to the pool and claimed again is billed per assignment."""

    @pytest.mark.asyncio
    async def test_unbilled_reassignment_reported(self, client, session):
        first_campaign = await seed_campaign(session)
        second_campaign = await seed_campaign(session)
        brand_id = await seed_brand_with_cards(session, 1)

        first = (
            await client.post(
                "/v1/provisioning/cards", json=provision_body(first_campaign, brand_id)
            )
        ).json()
        assert first["success"] is True
        assert first["billing"]["ledger_id"] is not None
        card_id = UUID(first["card"]["id"])

        revoked = await client.post(
            f"/v1/inventory/cards/{card_id}/revoke",
            json={"reason": "recipient opted out", "return_to_pool": True},
        )
        assert revoked.status_code == 200
        assert revoked.json()["status"] == "available"

        # Claimed again with no ledger entry written for the new assignment
        reclaimed = await InventoryStore(session).claim(
            brand_id, DENOMINATION, uuid4(), second_campaign, None
        )
        assert reclaimed is not None
        assert reclaimed.card_id == card_id

        unbilled = await ReconciliationService(session).find_unbilled_cards(limit=5000)
        assert card_id in {c.card_id for c in unbilled}
        assert await BillingLedger(session).find_for_card(reclaimed) is None

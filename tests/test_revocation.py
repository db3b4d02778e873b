"""
Tests for RevocationService.
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from conftest import create_card_data

from app.exceptions import CardNotFoundError, CardNotRevocableError, RevocationReasonError
from app.models.api import CardStatus, CostSource
from app.services.revocation import VENDOR_NOT_REVERSIBLE_WARNING, RevocationService


@pytest.fixture
def inventory() -> MagicMock:
    inventory = MagicMock()
    inventory.get_card = AsyncMock(return_value=None)
    inventory.revoke = AsyncMock()
    return inventory


@pytest.fixture
def service(inventory: MagicMock, test_settings) -> RevocationService:
    return RevocationService(inventory, test_settings)


class TestReasonValidation:
    """Reason must be at least 10 characters after trimming."""

    @pytest.mark.asyncio
    async def test_nine_characters_rejected(self, service, inventory):
        with pytest.raises(RevocationReasonError) as exc_info:
            await service.revoke(uuid4(), "too short")

        assert exc_info.value.actual_length == 9
        inventory.get_card.assert_not_awaited()
        inventory.revoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_whitespace_does_not_count(self, service):
        with pytest.raises(RevocationReasonError):
            await service.revoke(uuid4(), "   short    ")

    @pytest.mark.asyncio
    async def test_ten_characters_accepted(self, service, inventory):
        card = create_card_data(status=CardStatus.ASSIGNED)
        inventory.get_card.return_value = card
        inventory.revoke.return_value = create_card_data(
            card_id=card.card_id, status=CardStatus.REVOKED
        )

        result = await service.revoke(card.card_id, "0123456789")

        assert result.card.status == CardStatus.REVOKED
        inventory.revoke.assert_awaited_once_with(card.card_id, "0123456789", False)


class TestRevoke:
    """Status transitions."""

    @pytest.mark.asyncio
    async def test_unknown_card(self, service):
        with pytest.raises(CardNotFoundError):
            await service.revoke(uuid4(), "recipient opted out")

    @pytest.mark.asyncio
    async def test_already_revoked_rejected(self, service, inventory):
        card = create_card_data(status=CardStatus.REVOKED)
        inventory.get_card.return_value = card

        with pytest.raises(CardNotRevocableError):
            await service.revoke(card.card_id, "recipient opted out")

        inventory.revoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_available_card_rejected(self, service, inventory):
        inventory.get_card.return_value = create_card_data(status=CardStatus.AVAILABLE)

        with pytest.raises(CardNotRevocableError):
            await service.revoke(uuid4(), "recipient opted out")

    @pytest.mark.asyncio
    async def test_return_to_pool_makes_card_available(self, service, inventory):
        """return_to_pool puts the card back as available."""
        card = create_card_data(status=CardStatus.DELIVERED)
        inventory.get_card.return_value = card
        inventory.revoke.return_value = create_card_data(
            card_id=card.card_id, status=CardStatus.AVAILABLE
        )

        result = await service.revoke(card.card_id, "wrong recipient selected", return_to_pool=True)

        assert result.previous_status == CardStatus.DELIVERED
        assert result.card.status == CardStatus.AVAILABLE
        assert result.warnings == ()
        inventory.revoke.assert_awaited_once_with(card.card_id, "wrong recipient selected", True)

    @pytest.mark.asyncio
    async def test_vendor_card_warns_not_reversible(self, service, inventory):
        """Revoking a vendor-issued card warns that the vendor will not refund it."""
        card = create_card_data(status=CardStatus.ASSIGNED, cost_source=CostSource.VENDOR_API)
        inventory.get_card.return_value = card
        inventory.revoke.return_value = create_card_data(
            card_id=card.card_id, status=CardStatus.REVOKED, cost_source=CostSource.VENDOR_API
        )

        result = await service.revoke(card.card_id, "duplicate send to recipient")

        assert result.warnings == (VENDOR_NOT_REVERSIBLE_WARNING,)

    @pytest.mark.asyncio
    async def test_concurrent_revoke_surfaces_conflict(self, service, inventory):
        """The conditional update losing a race raises CardNotRevocableError."""
        card = create_card_data(status=CardStatus.ASSIGNED)
        inventory.get_card.return_value = card
        inventory.revoke.side_effect = CardNotRevocableError(card.card_id, CardStatus.REVOKED)

        with pytest.raises(CardNotRevocableError):
            await service.revoke(card.card_id, "recipient opted out")

"""
Notification Port - Hands a provisioned card to the delivery system.

Delivery itself (SMS, email) happens outside this service. The webhook
notifier posts the card and contact details to the configured endpoint.
"""

from typing import Protocol

import httpx
from structlog import get_logger

from app.config import Settings
from app.exceptions import NotificationError
from app.models.domain import ProvisionedCard, RecipientContactInfo

logger = get_logger(__name__)


class Notifier(Protocol):
    """Recipient notification hand-off."""

    async def send_card(
        self, request_id: str, card: ProvisionedCard, contact: RecipientContactInfo
    ) -> None:
        """
        Deliver card details to the recipient.

        Raises:
            NotificationError: If the hand-off fails
        """
        ...


class WebhookNotifier:
    """Posts provisioned cards to a delivery webhook."""

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebhookNotifier | None":
        if not settings.notification_webhook_url:
            return None
        return cls(settings.notification_webhook_url, settings.notification_timeout_seconds)

    async def send_card(
        self, request_id: str, card: ProvisionedCard, contact: RecipientContactInfo
    ) -> None:
        if not contact.is_reachable:
            raise NotificationError("recipient has no phone or email")

        payload = {
            "request_id": request_id,
            "recipient": {"name": contact.name, "phone": contact.phone, "email": contact.email},
            "card": {
                "card_code": card.card_code,
                "card_number": card.card_number,
                "denomination": str(card.denomination),
                "brand_name": card.brand_name,
                "brand_logo": card.brand_logo,
                "expiration_date": (
                    card.expiration_date.isoformat() if card.expiration_date else None
                ),
            },
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as exc:
            raise NotificationError(f"webhook unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise NotificationError(f"webhook returned {response.status_code}")

        logger.info(
            "recipient_notification_sent",
            request_id=request_id,
            channel="sms" if contact.phone else "email",
        )

"""
Vendor Fallback Client - Issues cards from the card vendor when inventory is empty.

NO DICTIONARIES - All data uses strongly typed models.

Every call carries an idempotency token. Retries (transport errors, 5xx)
resend the same token, so the vendor never issues two cards for one request.
"""

import asyncio
import hashlib
import time
from datetime import date
from decimal import Decimal
from typing import Protocol

import httpx
import jwt
from structlog import get_logger

from app.config import Settings
from app.exceptions import VendorProvisioningError
from app.models.domain import VendorCard
from app.observability.metrics import metrics

logger = get_logger(__name__)

_JWT_LIFETIME_SECONDS = 60
_RETRY_BACKOFF_SECONDS = 0.5


class VendorClient(Protocol):
    """
    Card vendor protocol.

    Any card-issuing vendor must implement this interface.
    """

    async def provision_card(
        self,
        brand_code: str,
        denomination: Decimal,
        currency: str,
        idempotency_token: str,
    ) -> VendorCard:
        """
        Issue one card.

        Raises:
            VendorProvisioningError: If the vendor cannot issue the card
        """
        ...


def build_idempotency_token(
    prefix: str, campaign_id: object, recipient_id: object, epoch_ms: int
) -> str:
    """Token sent to the vendor; stable for the lifetime of one request."""
    return f"{prefix}-{campaign_id}-{recipient_id}-{epoch_ms}"


def _parse_expiration(value: object) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning("vendor_expiration_unparseable", value=str(value))
        return None


class HttpVendorClient:
    """
    HTTP card vendor client.

    Requests are authenticated with a short-lived HS256 token signed with
    the vendor API secret.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        api_secret: str,
        timeout_seconds: float = 15.0,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpVendorClient":
        return cls(
            base_url=settings.vendor_api_base_url,
            api_key=settings.vendor_api_key,
            api_secret=settings.vendor_api_secret,
            timeout_seconds=settings.vendor_timeout_seconds,
            max_retries=settings.vendor_max_retries,
        )

    def _auth_header(self, idempotency_token: str) -> str:
        now = int(time.time())
        token = jwt.encode(
            {
                "iss": self.api_key,
                "iat": now,
                "exp": now + _JWT_LIFETIME_SECONDS,
                "jti": hashlib.sha256(idempotency_token.encode()).hexdigest(),
            },
            self.api_secret,
            algorithm="HS256",
        )
        return f"Bearer {token}"

    async def provision_card(
        self,
        brand_code: str,
        denomination: Decimal,
        currency: str,
        idempotency_token: str,
    ) -> VendorCard:
        """Issue one card, retrying transient failures with the same token."""
        payload = {
            "client_request_id": idempotency_token,
            "brand": brand_code,
            "face_value": {"amount": str(denomination), "currency": currency},
            "delivery_method": "code",
        }
        attempts = self.max_retries + 1
        last_error: VendorProvisioningError | None = None
        start = time.monotonic()

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
        ) as client:
            for attempt in range(1, attempts + 1):
                try:
                    response = await client.post(
                        "/digital/issue",
                        json=payload,
                        headers={
                            "Authorization": self._auth_header(idempotency_token),
                            "Idempotency-Key": idempotency_token,
                        },
                    )
                except httpx.TransportError as exc:
                    last_error = VendorProvisioningError(f"transport error: {exc}")
                    logger.warning(
                        "vendor_request_transport_error",
                        attempt=attempt,
                        brand_code=brand_code,
                        error=str(exc),
                    )
                else:
                    if response.status_code >= 500:
                        last_error = VendorProvisioningError(
                            f"vendor returned {response.status_code}",
                            status_code=response.status_code,
                        )
                        logger.warning(
                            "vendor_request_server_error",
                            attempt=attempt,
                            brand_code=brand_code,
                            status_code=response.status_code,
                        )
                    elif response.status_code >= 400:
                        metrics.record_vendor_call(
                            False, time.monotonic() - start, f"http_{response.status_code}"
                        )
                        raise VendorProvisioningError(
                            f"vendor rejected request ({response.status_code}): "
                            f"{response.text[:200]}",
                            status_code=response.status_code,
                        )
                    else:
                        card = self._parse_card(response)
                        metrics.record_vendor_call(True, time.monotonic() - start)
                        logger.info(
                            "vendor_card_issued",
                            brand_code=brand_code,
                            denomination=str(denomination),
                            transaction_id=card.transaction_id,
                            attempt=attempt,
                        )
                        return card

                if attempt < attempts:
                    await asyncio.sleep(_RETRY_BACKOFF_SECONDS * attempt)

        metrics.record_vendor_call(False, time.monotonic() - start, "retries_exhausted")
        if last_error is None:
            raise VendorProvisioningError("vendor request not attempted")
        raise last_error

    def _parse_card(self, response: httpx.Response) -> VendorCard:
        try:
            body = response.json()
            data = body.get("data", body)
            card = data["card"]
            return VendorCard(
                card_code=str(card["code"]),
                card_number=card.get("number"),
                expiration_date=_parse_expiration(card.get("expiration_date")),
                transaction_id=str(data["transaction_id"]),
                order_reference=data.get("order_reference"),
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise VendorProvisioningError(f"malformed vendor response: {exc}") from exc


class SandboxVendorClient:
    """
    In-process vendor used for vendor tests and local development.

    Cards are deterministic per token and memoized, so a repeated token
    returns the card already issued instead of issuing another.
    """

    def __init__(self, fail_brands: frozenset[str] = frozenset()) -> None:
        self.fail_brands = fail_brands
        self._issued: dict[str, VendorCard] = {}
        self._lock = asyncio.Lock()

    @property
    def issued_count(self) -> int:
        return len(self._issued)

    async def provision_card(
        self,
        brand_code: str,
        denomination: Decimal,
        currency: str,
        idempotency_token: str,
    ) -> VendorCard:
        if brand_code in self.fail_brands:
            raise VendorProvisioningError(f"sandbox configured to fail for brand {brand_code}")

        async with self._lock:
            existing = self._issued.get(idempotency_token)
            if existing is not None:
                logger.info("sandbox_vendor_replayed", brand_code=brand_code)
                return existing

            digest = hashlib.sha256(
                f"{brand_code}:{denomination}:{currency}:{idempotency_token}".encode()
            ).hexdigest()
            card = VendorCard(
                card_code=f"SBX-{digest[:16].upper()}",
                card_number=str(int(digest[16:32], 16))[:16],
                expiration_date=None,
                transaction_id=f"sbx-txn-{digest[32:48]}",
                order_reference=f"sbx-ord-{digest[48:56]}",
            )
            self._issued[idempotency_token] = card
            logger.info("sandbox_vendor_card_issued", brand_code=brand_code)
            return card

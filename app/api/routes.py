"""
API Routes - FastAPI endpoints for gift card provisioning.

NO DICTIONARIES - All requests/responses use Pydantic models.

Provisioning failures are returned as HTTP 200 with success=false and a
structured error. Revocation errors map to 400/404/409.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    get_allocation_engine,
    get_notifier,
    get_revocation_service,
    get_vendor_test_engine,
)
from app.config import settings
from app.db.session import get_read_db
from app.exceptions import (
    CardNotFoundError,
    CardNotRevocableError,
    RevocationReasonError,
    error_info,
)
from app.models.api import (
    BillingSummaryResponse,
    CallCenterProvisionRequest,
    CallCenterProvisionResponse,
    CardResponse,
    CardStatus,
    CheckpointResponse,
    CheckpointStatus,
    ErrorResponse,
    HealthResponse,
    InventoryAvailabilityResponse,
    ProvisionCardRequest,
    ProvisionResponse,
    RevokeCardRequest,
    RevokeCardResponse,
    TraceResponse,
    UnbilledCardResponse,
    UnbilledCardsResponse,
    WarningResponse,
)
from app.models.domain import ProvisionRequest, ProvisionResult, RecipientContactInfo
from app.services.checkpoints import load_trace
from app.services.entrypoints import (
    provision_direct,
    provision_for_call_center,
    provision_vendor_test,
)
from app.services.inventory import InventoryStore
from app.services.notifications import Notifier
from app.services.provisioning import AllocationEngine
from app.services.reconciliation import ReconciliationService
from app.services.revocation import RevocationService

router = APIRouter()


def _to_domain_request(body: ProvisionCardRequest) -> ProvisionRequest:
    return ProvisionRequest(
        campaign_id=body.campaign_id,
        recipient_id=body.recipient_id,
        brand_id=body.brand_id,
        denomination=body.denomination,
        condition_number=body.condition_number,
        request_id=body.request_id,
    )


def _to_response(result: ProvisionResult) -> ProvisionResponse:
    """Convert an engine result to the public response shape."""
    card = None
    if result.card is not None:
        card = CardResponse(
            id=result.card.card_id,
            card_code=result.card.card_code,
            card_number=result.card.card_number,
            denomination=result.card.denomination,
            brand_name=result.card.brand_name,
            brand_logo=result.card.brand_logo,
            expiration_date=result.card.expiration_date,
            source=result.card.source,
        )

    billing = None
    if result.billing is not None:
        billing = BillingSummaryResponse(
            ledger_id=result.billing.ledger_id,
            billed_entity=result.billing.billed_entity,
            billed_entity_id=result.billing.billed_entity_id,
            billed_entity_type=result.billing.billed_entity_type,
            amount_billed=result.billing.amount_billed,
            cost_basis=result.billing.cost_basis,
            profit=result.billing.profit,
        )

    error = None
    if result.error is not None:
        info = error_info(result.error.code)
        error = ErrorResponse(
            code=result.error.code,
            message=result.error.message,
            description=info.description,
            recommendation=info.recommendation,
            can_retry=info.can_retry,
            step_number=result.error.step_number,
            step_name=result.error.step_name,
            available_denominations=list(result.error.available_denominations),
        )

    return ProvisionResponse(
        success=result.success,
        request_id=result.request_id,
        mode=result.mode,
        already_provisioned=result.already_provisioned,
        card=card,
        billing=billing,
        error=error,
        warnings=[WarningResponse(code=w.code, message=w.message) for w in result.warnings],
    )


# ============================================================================
# Provisioning
# ============================================================================


@router.post("/v1/provisioning/cards", response_model=ProvisionResponse)
async def provision_card(
    body: ProvisionCardRequest,
    engine: AllocationEngine = Depends(get_allocation_engine),
) -> ProvisionResponse:
    """Provision one card: inventory first, vendor fallback second."""
    result = await provision_direct(engine, _to_domain_request(body))
    return _to_response(result)


@router.post("/v1/provisioning/call-center", response_model=CallCenterProvisionResponse)
async def provision_card_for_call_center(
    body: CallCenterProvisionRequest,
    engine: AllocationEngine = Depends(get_allocation_engine),
    notifier: Notifier | None = Depends(get_notifier),
) -> CallCenterProvisionResponse:
    """Provision a card and hand it to the recipient notification system."""
    contact = RecipientContactInfo(
        phone=body.contact.phone, email=body.contact.email, name=body.contact.name
    )
    outcome = await provision_for_call_center(
        engine, _to_domain_request(body), contact, notifier
    )
    response = _to_response(outcome.result)
    return CallCenterProvisionResponse(
        **response.model_dump(), notification_sent=outcome.notification_sent
    )


@router.post("/v1/provisioning/vendor-test", response_model=ProvisionResponse)
async def provision_vendor_test_card(
    body: ProvisionCardRequest,
    engine: AllocationEngine = Depends(get_vendor_test_engine),
) -> ProvisionResponse:
    """Exercise the vendor path. The ledger entry is flagged as test."""
    result = await provision_vendor_test(engine, _to_domain_request(body))
    return _to_response(result)


@router.get("/v1/provisioning/traces/{request_id}", response_model=TraceResponse)
async def get_provisioning_trace(
    request_id: str,
    db: AsyncSession = Depends(get_read_db),
) -> TraceResponse:
    """Persisted checkpoints for a provisioning request."""
    rows = await load_trace(db, request_id)
    if not rows:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No trace found for request {request_id}",
        )
    return TraceResponse(
        request_id=request_id,
        checkpoints=[
            CheckpointResponse(
                step_number=row.step_number,
                step_name=row.step_name,
                status=CheckpointStatus(row.status),
                details=row.details or {},
                error_code=row.error_code,
                error_message=row.error_message,
                duration_ms=row.duration_ms,
                created_at=row.created_at,
            )
            for row in rows
        ],
    )


# ============================================================================
# Inventory
# ============================================================================


@router.post("/v1/inventory/cards/{card_id}/revoke", response_model=RevokeCardResponse)
async def revoke_card(
    card_id: UUID,
    body: RevokeCardRequest,
    service: RevocationService = Depends(get_revocation_service),
) -> RevokeCardResponse:
    """Revoke an assigned or delivered card, optionally returning it to the pool."""
    try:
        result = await service.revoke(card_id, body.reason, body.return_to_pool)
    except RevocationReasonError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except CardNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except CardNotRevocableError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc

    return RevokeCardResponse(
        card_id=result.card.card_id,
        status=result.card.status,
        previous_status=result.previous_status,
        cost_source=result.card.cost_source,
        warnings=list(result.warnings),
    )


@router.get("/v1/inventory/availability", response_model=InventoryAvailabilityResponse)
async def get_inventory_availability(
    brand_id: UUID,
    denomination: Decimal | None = Query(None, gt=0),
    db: AsyncSession = Depends(get_read_db),
) -> InventoryAvailabilityResponse:
    """Available card count and denominations for a brand."""
    store = InventoryStore(db)
    return InventoryAvailabilityResponse(
        brand_id=brand_id,
        denomination=denomination,
        available_count=await store.count_available(brand_id, denomination),
        available_denominations=await store.available_denominations(brand_id),
    )


# ============================================================================
# Ledger
# ============================================================================


@router.get("/v1/ledger/unbilled", response_model=UnbilledCardsResponse)
async def list_unbilled_cards(
    limit: int = Query(settings.reconciliation_batch_size, ge=1, le=5000),
    db: AsyncSession = Depends(get_read_db),
) -> UnbilledCardsResponse:
    """Allocated cards with no billing ledger entry."""
    cards = await ReconciliationService(db).find_unbilled_cards(limit)
    return UnbilledCardsResponse(
        count=len(cards),
        cards=[
            UnbilledCardResponse(
                card_id=c.card_id,
                brand_id=c.brand_id,
                denomination=c.denomination,
                status=CardStatus(c.status),
                cost_source=c.cost_source,
                assigned_campaign_id=c.assigned_campaign_id,
                assigned_recipient_id=c.assigned_recipient_id,
                assigned_at=c.assigned_at,
            )
            for c in cards
        ],
    )


# ============================================================================
# Health
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))

        return HealthResponse(
            status="healthy",
            database="connected",
            timestamp=datetime.now(UTC),
        )

    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc

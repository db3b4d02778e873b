"""
Allocation Engine - Produces exactly one card per provisioning request.

Ordered workflow:
    1. validate input              6. atomic inventory claim
    2. resolve billing entity      7. vendor fallback
    3. check credits (advisory)    8. resolve pricing
    4. load brand                  9. record ledger entry (non-fatal)
    5. existing-assignment check  10. build result

The engine never raises. Typed provisioning errors and unexpected
exceptions are converted to a ProvisionResult at one boundary, carrying
the step where the failure happened.
"""

import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from app.config import Settings, settings as default_settings
from app.exceptions import (
    BrandNotFoundError,
    LedgerWriteError,
    MissingParametersError,
    NoBillingEntityError,
    NoInventoryError,
    ProvisioningError,
    VendorProvisioningError,
)
from app.models.api import (
    CardSource,
    CostSource,
    EntityType,
    LedgerTransactionType,
    ProvisioningErrorCode,
    ProvisioningStep,
)
from app.models.domain import (
    BillingEntity,
    BillingSummary,
    Brand,
    InventoryCardData,
    LedgerEntryIntent,
    PricingConfig,
    ProvisionedCard,
    ProvisionFailure,
    ProvisionRequest,
    ProvisionResult,
    RequestContext,
    VendorCard,
)
from app.observability.logging import log_context
from app.observability.metrics import metrics
from app.observability.tracing import add_span_attributes, get_tracer, set_span_error
from app.services.billing_entity import BillingEntityResolver
from app.services.catalog import BrandCatalog
from app.services.checkpoints import CheckpointRecorder
from app.services.inventory import InventoryStore
from app.services.ledger import BillingLedger
from app.services.pricing import resolve_pricing, vendor_card_cost
from app.services.vendor import VendorClient, build_idempotency_token

logger = get_logger(__name__)
tracer = get_tracer(__name__)


@dataclass(frozen=True)
class ProvisionOptions:
    """Per-mode switches applied by the entry points."""

    skip_inventory: bool = False
    is_test: bool = False


@dataclass(frozen=True)
class _Allocation:
    """Card obtained in steps 6-7, before pricing."""

    source: CardSource
    card_id: UUID | None
    card_code: str
    card_number: str | None
    expiration_date: date | None
    cost: Decimal | None
    vendor_transaction_id: str | None = None
    vendor_order_reference: str | None = None


class AllocationEngine:
    """Runs the provisioning workflow against injected collaborators."""

    def __init__(
        self,
        entities: BillingEntityResolver,
        catalog: BrandCatalog,
        inventory: InventoryStore,
        ledger: BillingLedger,
        vendor: VendorClient | None,
        recorder: CheckpointRecorder,
        settings: Settings = default_settings,
    ) -> None:
        self.entities = entities
        self.catalog = catalog
        self.inventory = inventory
        self.ledger = ledger
        self.vendor = vendor
        self.recorder = recorder
        self.settings = settings

    @classmethod
    def for_session(
        cls,
        session: AsyncSession,
        vendor: VendorClient | None,
        trace_session_factory: async_sessionmaker[AsyncSession] | None = None,
        settings: Settings = default_settings,
    ) -> "AllocationEngine":
        """Wire the database-backed collaborators onto one session."""
        return cls(
            entities=BillingEntityResolver(session),
            catalog=BrandCatalog(session),
            inventory=InventoryStore(session),
            ledger=BillingLedger(session),
            vendor=vendor,
            recorder=CheckpointRecorder(trace_session_factory),
            settings=settings,
        )

    # ========================================================================
    # Boundary
    # ========================================================================

    async def provision(
        self,
        request: ProvisionRequest,
        ctx: RequestContext | None = None,
        options: ProvisionOptions = ProvisionOptions(),
    ) -> ProvisionResult:
        """Provision one card. Never raises."""
        if ctx is None:
            ctx = RequestContext.for_request(request)
        started = time.monotonic()

        with log_context(request_id=ctx.request_id, mode=ctx.mode.value):
            with tracer.start_as_current_span("provision_card") as span:
                add_span_attributes(
                    span,
                    request_id=ctx.request_id,
                    mode=ctx.mode.value,
                    campaign_id=request.campaign_id,
                    brand_id=request.brand_id,
                    denomination=request.denomination,
                )
                try:
                    result = await self._run(request, ctx, options)
                except ProvisioningError as exc:
                    result = self._failure(
                        ctx,
                        exc.code,
                        exc.message,
                        available=exc.available if isinstance(exc, NoInventoryError) else [],
                    )
                except Exception as exc:
                    logger.exception("provisioning_unexpected_error", error=str(exc))
                    metrics.record_error(type(exc).__name__, "provision")
                    result = self._failure(ctx, ProvisioningErrorCode.INTERNAL_ERROR, str(exc))

                add_span_attributes(
                    span,
                    success=result.success,
                    source=result.source.value if result.source else None,
                )
                if result.error is not None:
                    set_span_error(span, result.error.message)

            metrics.record_provision(
                mode=ctx.mode.value,
                success=result.success,
                source=result.source.value if result.source else None,
                error_code=result.error.code.value if result.error else None,
                duration=time.monotonic() - started,
                amount_billed=result.billing.amount_billed if result.billing else None,
            )
            for warning in result.warnings:
                metrics.record_warning(warning.code.value)

            logger.info(
                "provisioning_finished",
                success=result.success,
                source=result.source.value if result.source else None,
                error_code=result.error.code.value if result.error else None,
                warnings=[w.code.value for w in result.warnings],
                already_provisioned=result.already_provisioned,
            )
            return result

    def _failure(
        self,
        ctx: RequestContext,
        code: ProvisioningErrorCode,
        message: str,
        available: list[Decimal] | None = None,
    ) -> ProvisionResult:
        step = ctx.current_step or ProvisioningStep.VALIDATE_INPUT
        return ProvisionResult(
            success=False,
            request_id=ctx.request_id,
            mode=ctx.mode,
            error=ProvisionFailure(
                code=code,
                message=message,
                step_number=step.value,
                step_name=step.step_name,
                available_denominations=tuple(available or ()),
            ),
            warnings=tuple(ctx.warnings),
            checkpoints=tuple(ctx.checkpoints),
        )

    # ========================================================================
    # Workflow
    # ========================================================================

    async def _run(
        self, request: ProvisionRequest, ctx: RequestContext, options: ProvisionOptions
    ) -> ProvisionResult:
        rec = self.recorder

        async with rec.step(ctx, ProvisioningStep.VALIDATE_INPUT) as handle:
            missing = request.missing_parameters()
            if missing:
                handle.details["missing"] = missing
                raise MissingParametersError(missing)
        # Validated above
        campaign_id: UUID = request.campaign_id  # type: ignore[assignment]
        recipient_id: UUID = request.recipient_id  # type: ignore[assignment]
        brand_id: UUID = request.brand_id  # type: ignore[assignment]
        denomination: Decimal = request.denomination  # type: ignore[assignment]

        async with rec.step(ctx, ProvisioningStep.RESOLVE_BILLING_ENTITY) as handle:
            entity = await self.entities.resolve(campaign_id)
            if entity is None:
                raise NoBillingEntityError(campaign_id)
            handle.details["entity_type"] = entity.entity_type.value
            handle.details["entity_id"] = str(entity.entity_id)

        async with rec.step(ctx, ProvisioningStep.CHECK_CREDITS) as handle:
            handle.details["credits"] = str(entity.credits)
            handle.details["sufficient"] = entity.credits >= denomination
            if entity.credits < denomination:
                ctx.warn(
                    ProvisioningErrorCode.INSUFFICIENT_CREDITS,
                    f"{entity.entity_type.value} {entity.entity_name} has {entity.credits} "
                    f"credits, card value is {denomination}",
                )

        async with rec.step(ctx, ProvisioningStep.LOAD_BRAND) as handle:
            brand = await self.catalog.get_brand(brand_id)
            if brand is None:
                raise BrandNotFoundError(brand_id)
            if not brand.is_enabled:
                raise BrandNotFoundError(brand_id, disabled=True)
            handle.details["brand_name"] = brand.brand_name
            handle.details["vendor_fallback"] = brand.vendor_brand_code is not None

        async with rec.step(ctx, ProvisioningStep.CHECK_EXISTING_ASSIGNMENT) as handle:
            existing: InventoryCardData | None = None
            if request.condition_number is None:
                handle.skip("no condition number")
            else:
                existing = await self.inventory.find_assignment(
                    campaign_id, recipient_id, request.condition_number
                )
                handle.details["found"] = existing is not None
        if existing is not None:
            return await self._already_provisioned(ctx, existing, brand, entity)

        async with rec.step(ctx, ProvisioningStep.CLAIM_INVENTORY) as handle:
            claimed: InventoryCardData | None = None
            if options.skip_inventory:
                handle.skip("vendor test mode")
            else:
                claimed = await self.inventory.claim(
                    brand_id, denomination, recipient_id, campaign_id, request.condition_number
                )
                metrics.record_claim(claimed is not None)
                handle.details["claimed"] = claimed is not None
                if claimed is not None:
                    handle.details["card_id"] = str(claimed.card_id)

        config: PricingConfig | None = None
        async with rec.step(ctx, ProvisioningStep.VENDOR_FALLBACK) as handle:
            if claimed is not None:
                handle.skip("claimed from inventory")
                allocation = _Allocation(
                    source=CardSource.INVENTORY,
                    card_id=claimed.card_id,
                    card_code=claimed.card_code,
                    card_number=claimed.card_number,
                    expiration_date=claimed.expiration_date,
                    cost=claimed.cost_per_card,
                )
            else:
                config = await self.catalog.get_pricing_config(brand_id, denomination)
                allocation = await self._vendor_fallback(
                    ctx, request, brand, denomination, config, handle.details
                )

        async with rec.step(ctx, ProvisioningStep.RESOLVE_PRICING) as handle:
            if config is None:
                config = await self.catalog.get_pricing_config(brand_id, denomination)
            pricing = resolve_pricing(
                config,
                denomination,
                entity.entity_type,
                card_cost=allocation.cost,
                ratio=self.settings.default_cost_ratio,
            )
            handle.details["amount_billed"] = str(pricing.amount_billed)
            handle.details["cost_basis"] = str(pricing.cost_basis)
            handle.details["custom_pricing"] = config.use_custom_pricing

        async with rec.step(ctx, ProvisioningStep.RECORD_LEDGER) as handle:
            ledger_id: UUID | None
            try:
                intent = LedgerEntryIntent(
                    transaction_type=(
                        LedgerTransactionType.PURCHASE_FROM_INVENTORY
                        if allocation.source == CardSource.INVENTORY
                        else LedgerTransactionType.PURCHASE_FROM_VENDOR
                    ),
                    billed_entity_type=entity.entity_type,
                    billed_entity_id=entity.entity_id,
                    campaign_id=campaign_id,
                    recipient_id=recipient_id,
                    brand_id=brand_id,
                    denomination=denomination,
                    amount_billed=pricing.amount_billed,
                    cost_basis=pricing.cost_basis,
                    inventory_card_id=allocation.card_id,
                    request_id=ctx.request_id,
                    source=allocation.source,
                    vendor_transaction_id=allocation.vendor_transaction_id,
                    vendor_order_reference=allocation.vendor_order_reference,
                    is_test=options.is_test,
                )
                ledger_id = await self.ledger.record(intent)
                handle.details["ledger_id"] = str(ledger_id)
            except (LedgerWriteError, ValueError) as exc:
                # Card is already issued; billing gap is left for reconciliation
                message = exc.message if isinstance(exc, LedgerWriteError) else str(exc)
                ledger_id = None
                handle.details["ledger_written"] = False
                ctx.warn(ProvisioningErrorCode.LEDGER_WRITE_FAILED, message)
                metrics.record_error(type(exc).__name__, "record_ledger")
                logger.error(
                    "ledger_write_failed_card_unbilled",
                    card_id=str(allocation.card_id) if allocation.card_id else None,
                    billed_entity_id=str(entity.entity_id),
                    amount_billed=str(pricing.amount_billed),
                    error=message,
                )

        async with rec.step(ctx, ProvisioningStep.BUILD_RESULT) as handle:
            card = ProvisionedCard(
                card_id=allocation.card_id,
                card_code=allocation.card_code,
                card_number=allocation.card_number,
                denomination=denomination,
                brand_name=brand.brand_name,
                brand_logo=brand.logo_url,
                expiration_date=allocation.expiration_date,
                source=allocation.source,
            )
            billing = BillingSummary(
                ledger_id=ledger_id,
                billed_entity=entity.entity_name,
                billed_entity_id=entity.entity_id,
                billed_entity_type=entity.entity_type,
                amount_billed=pricing.amount_billed,
                cost_basis=pricing.cost_basis,
            )
            handle.details["source"] = allocation.source.value
            handle.details["warnings"] = [w.code.value for w in ctx.warnings]

        return ProvisionResult(
            success=True,
            request_id=ctx.request_id,
            mode=ctx.mode,
            card=card,
            billing=billing,
            warnings=tuple(ctx.warnings),
            checkpoints=tuple(ctx.checkpoints),
        )

    async def _vendor_fallback(
        self,
        ctx: RequestContext,
        request: ProvisionRequest,
        brand: Brand,
        denomination: Decimal,
        config: PricingConfig,
        details: dict[str, object],
    ) -> _Allocation:
        """Issue a card from the vendor and record it as assigned inventory."""
        brand_id: UUID = request.brand_id  # type: ignore[assignment]

        if not brand.vendor_brand_code or self.vendor is None:
            available = await self.inventory.available_denominations(brand_id)
            details["available_denominations"] = [str(d) for d in available]
            raise NoInventoryError(brand_id, denomination, available)

        token = self.idempotency_token(ctx)
        details["vendor_brand_code"] = brand.vendor_brand_code
        try:
            vendor_card: VendorCard = await self.vendor.provision_card(
                brand.vendor_brand_code,
                denomination,
                self.settings.vendor_currency,
                token,
            )
        except VendorProvisioningError:
            raise
        except Exception as exc:
            raise VendorProvisioningError(str(exc)) from exc
        details["vendor_transaction_id"] = vendor_card.transaction_id

        cost = vendor_card_cost(config, denomination, self.settings.default_cost_ratio)
        card_id: UUID | None = None
        try:
            recorded = await self.inventory.insert_vendor_card(
                brand_id=brand_id,
                denomination=denomination,
                card_code=vendor_card.card_code,
                card_number=vendor_card.card_number,
                expiration_date=vendor_card.expiration_date,
                cost_per_card=cost,
                vendor_transaction_id=vendor_card.transaction_id,
                recipient_id=request.recipient_id,  # type: ignore[arg-type]
                campaign_id=request.campaign_id,  # type: ignore[arg-type]
                condition_number=request.condition_number,
            )
            card_id = recorded.card_id
        except Exception as exc:
            # The vendor already issued the card; hand it out regardless
            details["inventory_recorded"] = False
            metrics.record_error(type(exc).__name__, "insert_vendor_card")
            logger.error(
                "vendor_card_record_failed",
                vendor_transaction_id=vendor_card.transaction_id,
                error=str(exc),
            )

        return _Allocation(
            source=CardSource.VENDOR,
            card_id=card_id,
            card_code=vendor_card.card_code,
            card_number=vendor_card.card_number,
            expiration_date=vendor_card.expiration_date,
            cost=cost,
            vendor_transaction_id=vendor_card.transaction_id,
            vendor_order_reference=vendor_card.order_reference,
        )

    def idempotency_token(self, ctx: RequestContext) -> str:
        """Vendor token for this request, fixed on first use."""
        if ctx.idempotency_token is None:
            ctx.idempotency_token = build_idempotency_token(
                self.settings.idempotency_token_prefix,
                ctx.campaign_id,
                ctx.recipient_id,
                ctx.epoch_ms,
            )
        return ctx.idempotency_token

    async def _already_provisioned(
        self,
        ctx: RequestContext,
        card: InventoryCardData,
        brand: Brand,
        entity: BillingEntity,
    ) -> ProvisionResult:
        """Return the card already allocated for this recipient and condition."""
        entry = await self.ledger.find_for_card(card)
        billing: BillingSummary | None = None
        if entry is not None:
            billing = BillingSummary(
                ledger_id=entry.id,
                billed_entity=entity.entity_name,
                billed_entity_id=entry.billed_entity_id,
                billed_entity_type=EntityType(entry.billed_entity_type),
                amount_billed=entry.amount_billed,
                cost_basis=entry.cost_basis,
            )
        logger.info("card_already_provisioned", card_id=str(card.card_id))
        return ProvisionResult(
            success=True,
            request_id=ctx.request_id,
            mode=ctx.mode,
            card=ProvisionedCard(
                card_id=card.card_id,
                card_code=card.card_code,
                card_number=card.card_number,
                denomination=card.denomination,
                brand_name=brand.brand_name,
                brand_logo=brand.logo_url,
                expiration_date=card.expiration_date,
                source=(
                    CardSource.VENDOR
                    if card.cost_source == CostSource.VENDOR_API
                    else CardSource.INVENTORY
                ),
            ),
            billing=billing,
            warnings=tuple(ctx.warnings),
            checkpoints=tuple(ctx.checkpoints),
            already_provisioned=True,
        )

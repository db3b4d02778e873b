"""
Checkpoint Logger - Step-level trace of every provisioning request.

Each step is recorded as started, then completed, failed or skipped. Rows
go to gift_card_provisioning_trace on their own session, so a rollback of
a business write never drops the audit trail. Trace persistence is
best-effort: a failed trace write is logged and provisioning continues.
"""

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from app.db.models import GiftCardProvisioningTrace
from app.exceptions import ProvisioningError
from app.models.api import CheckpointStatus, ProvisioningErrorCode, ProvisioningStep
from app.models.domain import Checkpoint, RequestContext

logger = get_logger(__name__)


class StepHandle:
    """Mutable details for the step in progress."""

    def __init__(self, step: ProvisioningStep) -> None:
        self.step = step
        self.details: dict[str, Any] = {}
        self.skipped_reason: str | None = None

    def skip(self, reason: str) -> None:
        """Mark the step skipped instead of completed."""
        self.skipped_reason = reason


class CheckpointRecorder:
    """Records checkpoints on a RequestContext and persists them."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self.session_factory = session_factory

    @asynccontextmanager
    async def step(self, ctx: RequestContext, step: ProvisioningStep) -> AsyncIterator[StepHandle]:
        """
        Record a step around the wrapped block.

        Normal exit records completed (or skipped). An exception records
        failed with the error's code and is re-raised.

        Usage:
            async with recorder.step(ctx, ProvisioningStep.LOAD_BRAND) as handle:
                handle.details["brand_id"] = str(brand_id)
        """
        ctx.current_step = step
        handle = StepHandle(step)
        started = time.monotonic()
        await self.record(ctx, step, CheckpointStatus.STARTED)
        try:
            yield handle
        except ProvisioningError as exc:
            await self.record(
                ctx,
                step,
                CheckpointStatus.FAILED,
                details=handle.details,
                duration_ms=_elapsed_ms(started),
                error_code=exc.code,
                error_message=exc.message,
            )
            raise
        except Exception as exc:
            await self.record(
                ctx,
                step,
                CheckpointStatus.FAILED,
                details=handle.details,
                duration_ms=_elapsed_ms(started),
                error_code=ProvisioningErrorCode.INTERNAL_ERROR,
                error_message=str(exc),
            )
            raise

        if handle.skipped_reason is not None:
            handle.details["reason"] = handle.skipped_reason
            status = CheckpointStatus.SKIPPED
        else:
            status = CheckpointStatus.COMPLETED
        await self.record(
            ctx, step, status, details=handle.details, duration_ms=_elapsed_ms(started)
        )

    async def record(
        self,
        ctx: RequestContext,
        step: ProvisioningStep,
        status: CheckpointStatus,
        details: dict[str, Any] | None = None,
        duration_ms: int | None = None,
        error_code: ProvisioningErrorCode | None = None,
        error_message: str | None = None,
    ) -> Checkpoint:
        """Append a checkpoint to the context, log it and persist it."""
        checkpoint = Checkpoint(
            step_number=step.value,
            step_name=step.step_name,
            status=status,
            details=dict(details or {}),
            recorded_at=datetime.now(UTC),
            duration_ms=duration_ms,
            error_code=error_code.value if error_code else None,
            error_message=error_message,
        )
        ctx.checkpoints.append(checkpoint)

        log = logger.warning if status == CheckpointStatus.FAILED else logger.info
        log(
            f"provisioning_step_{status.value}",
            request_id=ctx.request_id,
            step_number=checkpoint.step_number,
            step_name=checkpoint.step_name,
            duration_ms=duration_ms,
            error_code=checkpoint.error_code,
            error_message=error_message,
            **checkpoint.details,
        )

        await self._persist(ctx, checkpoint)
        return checkpoint

    async def _persist(self, ctx: RequestContext, checkpoint: Checkpoint) -> None:
        if self.session_factory is None:
            return
        try:
            async with self.session_factory() as session:
                session.add(
                    GiftCardProvisioningTrace(
                        request_id=ctx.request_id,
                        campaign_id=ctx.campaign_id,
                        recipient_id=ctx.recipient_id,
                        brand_id=ctx.brand_id,
                        denomination=ctx.denomination,
                        step_number=checkpoint.step_number,
                        step_name=checkpoint.step_name,
                        status=checkpoint.status.value,
                        duration_ms=checkpoint.duration_ms,
                        details=checkpoint.details,
                        error_code=checkpoint.error_code,
                        error_message=checkpoint.error_message,
                        created_at=checkpoint.recorded_at,
                    )
                )
                await session.commit()
        except Exception as exc:
            logger.warning(
                "checkpoint_persist_failed",
                request_id=ctx.request_id,
                step_number=checkpoint.step_number,
                error=str(exc),
            )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def load_trace(session: AsyncSession, request_id: str) -> list[GiftCardProvisioningTrace]:
    """Persisted checkpoints for a request, oldest first."""
    stmt = (
        select(GiftCardProvisioningTrace)
        .where(GiftCardProvisioningTrace.request_id == request_id)
        .order_by(
            GiftCardProvisioningTrace.created_at,
            GiftCardProvisioningTrace.step_number,
        )
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())

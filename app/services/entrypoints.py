"""
Provisioning Entry Points - The three call modes.

The mode is chosen once, here. The engine itself only sees ProvisionOptions.

- DIRECT: standard provisioning
- CALL_CENTER: provisioning followed by a recipient notification hand-off
- VENDOR_TEST: skips inventory, always exercises the vendor path, and
  flags the ledger entry as test (excluded from revenue)
"""

from dataclasses import dataclass, replace

from structlog import get_logger

from app.exceptions import NotificationError
from app.models.api import ProvisioningErrorCode, ProvisioningStep, ProvisionMode
from app.models.domain import (
    ProvisionRequest,
    ProvisionResult,
    ProvisionWarning,
    RecipientContactInfo,
    RequestContext,
)
from app.services.notifications import Notifier
from app.services.provisioning import AllocationEngine, ProvisionOptions

logger = get_logger(__name__)


@dataclass(frozen=True)
class CallCenterResult:
    """Provisioning result plus the notification outcome."""

    result: ProvisionResult
    notification_sent: bool


async def provision_direct(engine: AllocationEngine, request: ProvisionRequest) -> ProvisionResult:
    ctx = RequestContext.for_request(request, ProvisionMode.DIRECT)
    return await engine.provision(request, ctx)


async def provision_vendor_test(
    engine: AllocationEngine, request: ProvisionRequest
) -> ProvisionResult:
    ctx = RequestContext.for_request(request, ProvisionMode.VENDOR_TEST)
    return await engine.provision(
        request, ctx, ProvisionOptions(skip_inventory=True, is_test=True)
    )


async def provision_for_call_center(
    engine: AllocationEngine,
    request: ProvisionRequest,
    contact: RecipientContactInfo,
    notifier: Notifier | None,
) -> CallCenterResult:
    """
    Provision a card, then hand it to the notifier.

    A failed hand-off never fails the request: the card is already issued
    and billed, so it becomes a notification_failed warning.
    """
    ctx = RequestContext.for_request(request, ProvisionMode.CALL_CENTER)
    result = await engine.provision(request, ctx)
    if not result.success or result.card is None:
        return CallCenterResult(result=result, notification_sent=False)

    try:
        async with engine.recorder.step(ctx, ProvisioningStep.NOTIFY_RECIPIENT) as handle:
            if notifier is None:
                raise NotificationError("no notifier configured")
            handle.details["channel"] = "sms" if contact.phone else "email"
            await notifier.send_card(ctx.request_id, result.card, contact)
    except NotificationError as exc:
        logger.warning(
            "call_center_notification_failed", request_id=ctx.request_id, error=exc.message
        )
        warning = ProvisionWarning(ProvisioningErrorCode.NOTIFICATION_FAILED, exc.message)
        return CallCenterResult(
            result=replace(
                result,
                warnings=result.warnings + (warning,),
                checkpoints=tuple(ctx.checkpoints),
            ),
            notification_sent=False,
        )

    return CallCenterResult(
        result=replace(result, checkpoints=tuple(ctx.checkpoints)),
        notification_sent=True,
    )


"""
FastAPI Dependencies - Engine, vendor and notifier wiring.

NO DICTIONARIES - All dependencies return typed objects.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from app.config import settings
from app.db.session import get_write_db, get_write_session_factory
from app.services.inventory import InventoryStore
from app.services.notifications import Notifier, WebhookNotifier
from app.services.provisioning import AllocationEngine
from app.services.revocation import RevocationService
from app.services.vendor import HttpVendorClient, SandboxVendorClient, VendorClient

logger = get_logger(__name__)

# Process-wide clients
_vendor_client: VendorClient | None = None
_sandbox_client: SandboxVendorClient | None = None
_vendor_initialized = False


def get_sandbox_vendor() -> SandboxVendorClient:
    """Shared sandbox vendor, so token memoization spans requests."""
    global _sandbox_client
    if _sandbox_client is None:
        _sandbox_client = SandboxVendorClient()
    return _sandbox_client


def get_vendor_client() -> VendorClient | None:
    """
    Vendor used for live provisioning.

    Sandbox when VENDOR_SANDBOX is set, HTTP vendor when credentials are
    configured, otherwise None (brands fall back to no_inventory).
    """
    global _vendor_client, _vendor_initialized
    if not _vendor_initialized:
        if settings.vendor_sandbox:
            _vendor_client = get_sandbox_vendor()
        elif settings.vendor_configured:
            _vendor_client = HttpVendorClient.from_settings(settings)
        else:
            logger.warning("vendor_fallback_not_configured")
        _vendor_initialized = True
    return _vendor_client


def get_test_vendor_client() -> VendorClient:
    """Vendor used by vendor-test mode: the live vendor, or the sandbox if none."""
    return get_vendor_client() or get_sandbox_vendor()


def get_notifier() -> Notifier | None:
    return WebhookNotifier.from_settings(settings)


def get_trace_session_factory() -> async_sessionmaker[AsyncSession]:
    return get_write_session_factory()


def get_allocation_engine(
    db: AsyncSession = Depends(get_write_db),
    vendor: VendorClient | None = Depends(get_vendor_client),
    trace_factory: async_sessionmaker[AsyncSession] = Depends(get_trace_session_factory),
) -> AllocationEngine:
    return AllocationEngine.for_session(db, vendor, trace_factory, settings)


def get_vendor_test_engine(
    db: AsyncSession = Depends(get_write_db),
    vendor: VendorClient = Depends(get_test_vendor_client),
    trace_factory: async_sessionmaker[AsyncSession] = Depends(get_trace_session_factory),
) -> AllocationEngine:
    return AllocationEngine.for_session(db, vendor, trace_factory, settings)


def get_revocation_service(db: AsyncSession = Depends(get_write_db)) -> RevocationService:
    return RevocationService(InventoryStore(db), settings)

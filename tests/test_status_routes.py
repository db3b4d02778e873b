"""
Tests for Status API Routes.

Tests dependency health checks and overall status aggregation.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.api.status_routes import (
    ProviderStatus,
    ServiceStatusResponse,
    StatusLevel,
    calculate_overall_status,
    check_postgresql,
    check_schema,
    check_vendor_api,
)
from app.db.migration_runner import MigrationStatus


def provider(status: StatusLevel) -> ProviderStatus:
    return ProviderStatus(status=status, latency_ms=50, last_check=datetime.now(UTC).isoformat())


def mock_http_client(get: AsyncMock) -> AsyncMock:
    client = AsyncMock()
    client.get = get
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


@pytest.fixture
def vendor_settings():
    """Settings with a live HTTP vendor configured."""
    with patch("app.api.status_routes.settings") as mock_settings:
        mock_settings.vendor_sandbox = False
        mock_settings.vendor_configured = True
        mock_settings.vendor_api_base_url = "https://vendor.test/api"
        yield mock_settings


class TestStatusLevel:
    """Tests for StatusLevel enum."""

    def test_status_levels_exist(self):
        """StatusLevel has expected values."""
        assert StatusLevel.OPERATIONAL == "operational"
        assert StatusLevel.DEGRADED == "degraded"
        assert StatusLevel.OUTAGE == "outage"


class TestCalculateOverallStatus:
    """Tests for calculate_overall_status function."""

    def test_all_operational(self):
        providers = {
            "postgresql": provider(StatusLevel.OPERATIONAL),
            "vendor_api": provider(StatusLevel.OPERATIONAL),
        }
        assert calculate_overall_status(providers) == StatusLevel.OPERATIONAL

    def test_one_degraded(self):
        providers = {
            "postgresql": provider(StatusLevel.OPERATIONAL),
            "vendor_api": provider(StatusLevel.DEGRADED),
        }
        assert calculate_overall_status(providers) == StatusLevel.DEGRADED

    def test_outage_takes_priority_over_degraded(self):
        """Outage status takes priority over degraded."""
        providers = {
            "postgresql": provider(StatusLevel.OUTAGE),
            "vendor_api": provider(StatusLevel.DEGRADED),
        }
        assert calculate_overall_status(providers) == StatusLevel.OUTAGE


class TestCheckPostgresql:
    """Tests for check_postgresql function."""

    @pytest.mark.asyncio
    async def test_postgresql_operational(self):
        """PostgreSQL check returns operational on success."""
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock()

        async def mock_get_write_db():
            yield mock_db

        with patch("app.api.status_routes.get_write_db", mock_get_write_db):
            result = await check_postgresql()

        assert result.status == StatusLevel.OPERATIONAL
        assert result.latency_ms is not None

    @pytest.mark.asyncio
    async def test_postgresql_outage_on_error(self):
        """PostgreSQL check returns outage on connection error."""

        async def mock_get_write_db():
            raise ConnectionError("Cannot connect")
            yield  # noqa: unreachable

        with patch("app.api.status_routes.get_write_db", mock_get_write_db):
            result = await check_postgresql()

        assert result.status == StatusLevel.OUTAGE
        assert result.message == "Connection failed"


class TestCheckVendorApi:
    """Tests for check_vendor_api function."""

    @pytest.mark.asyncio
    async def test_sandbox_is_operational(self):
        with patch("app.api.status_routes.settings") as mock_settings:
            mock_settings.vendor_sandbox = True

            result = await check_vendor_api()

        assert result.status == StatusLevel.OPERATIONAL
        assert result.message == "Sandbox"

    @pytest.mark.asyncio
    async def test_not_configured(self):
        with patch("app.api.status_routes.settings") as mock_settings:
            mock_settings.vendor_sandbox = False
            mock_settings.vendor_configured = False

            result = await check_vendor_api()

        assert result.status == StatusLevel.OPERATIONAL
        assert result.message == "Not configured"
        assert result.latency_ms == 0

    @pytest.mark.asyncio
    async def test_unauthorized_still_reachable(self, vendor_settings):
        """401 from the ping endpoint proves the API is up."""
        response = MagicMock(status_code=401)

        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = mock_http_client(AsyncMock(return_value=response))

            result = await check_vendor_api()

        assert result.status == StatusLevel.OPERATIONAL

    @pytest.mark.asyncio
    async def test_timeout(self, vendor_settings):
        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = mock_http_client(
                AsyncMock(side_effect=httpx.TimeoutException("Timeout"))
            )

            result = await check_vendor_api()

        assert result.status == StatusLevel.OUTAGE
        assert result.message == "Timeout"

    @pytest.mark.asyncio
    async def test_unexpected_status(self, vendor_settings):
        response = MagicMock(status_code=500)

        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = mock_http_client(AsyncMock(return_value=response))

            result = await check_vendor_api()

        assert result.status == StatusLevel.DEGRADED
        assert "Unexpected status" in result.message


class TestCheckSchema:
    """Tests for check_schema function."""

    @pytest.mark.asyncio
    async def test_at_head(self):
        status = MigrationStatus(current_revision="2026_03_02_0001", head_revision="2026_03_02_0001")
        with patch("app.api.status_routes.check_migrations_status", return_value=status):
            result = await check_schema()

        assert result.status == StatusLevel.OPERATIONAL

    @pytest.mark.asyncio
    async def test_pending_migrations(self):
        status = MigrationStatus(current_revision=None, head_revision="2026_03_02_0001")
        with patch("app.api.status_routes.check_migrations_status", return_value=status):
            result = await check_schema()

        assert result.status == StatusLevel.DEGRADED
        assert "Pending migrations" in result.message

    @pytest.mark.asyncio
    async def test_error(self):
        status = MigrationStatus(current_revision=None, head_revision=None, error="no database")
        with patch("app.api.status_routes.check_migrations_status", return_value=status):
            result = await check_schema()

        assert result.status == StatusLevel.DEGRADED
        assert result.message == "no database"


class TestServiceStatusResponse:
    """Tests for ServiceStatusResponse model."""

    def test_default_service_name(self):
        response = ServiceStatusResponse(
            status=StatusLevel.OPERATIONAL,
            timestamp=datetime.now(UTC).isoformat(),
            version="0.1.0",
            providers={"postgresql": provider(StatusLevel.OPERATIONAL)},
        )
        assert response.service == "giftcard-provisioning"
        assert len(response.providers) == 1

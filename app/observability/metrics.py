"""
Metrics Collection with Prometheus.

Exposes provisioning and system metrics for monitoring.
"""

from decimal import Decimal
from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ERROR_TYPE = "error_type"
    MODE = "mode"
    SOURCE = "source"
    ERROR_CODE = "error_code"


class ProvisioningMetrics:
    """
    Centralized metrics for the Gift Card Provisioning API.

    Minimum viable metrics covering:
    - HTTP requests (rate, duration, errors)
    - Provisioning outcomes (by mode, source and error code)
    - Inventory claims and vendor fallback calls
    - Ledger writes and billing gaps
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "giftcard_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "giftcard_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "giftcard_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "giftcard_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Provisioning Metrics
        # ====================================================================
        self.provisions_total = Counter(
            "giftcard_provisions_total",
            "Total provisioning requests by outcome",
            [MetricLabels.MODE, "success", MetricLabels.SOURCE, MetricLabels.ERROR_CODE],
        )

        self.provision_duration_seconds = Histogram(
            "giftcard_provision_duration_seconds",
            "End-to-end provisioning duration in seconds",
            [MetricLabels.MODE],
            buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.provision_warnings_total = Counter(
            "giftcard_provision_warnings_total",
            "Non-fatal provisioning warnings",
            [MetricLabels.ERROR_CODE],
        )

        self.amount_billed_dollars = Histogram(
            "giftcard_amount_billed_dollars",
            "Amount billed per provisioned card",
            buckets=(5, 10, 25, 50, 100, 250, 500),
        )

        # ====================================================================
        # Inventory / Vendor Metrics
        # ====================================================================
        self.inventory_claims_total = Counter(
            "giftcard_inventory_claims_total",
            "Atomic inventory claim attempts",
            ["claimed"],
        )

        self.vendor_calls_total = Counter(
            "giftcard_vendor_calls_total",
            "Vendor fallback API calls",
            ["success", MetricLabels.ERROR_TYPE],
        )

        self.vendor_call_duration_seconds = Histogram(
            "giftcard_vendor_call_duration_seconds",
            "Vendor fallback API call duration in seconds",
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0),
        )

        self.revocations_total = Counter(
            "giftcard_revocations_total",
            "Inventory card revocations",
            ["return_to_pool"],
        )

        # ====================================================================
        # Ledger Metrics
        # ====================================================================
        self.ledger_writes_total = Counter(
            "giftcard_ledger_writes_total",
            "Billing ledger writes",
            ["success"],
        )

        self.unbilled_cards = Gauge(
            "giftcard_unbilled_cards",
            "Allocated cards with no ledger entry at last reconciliation sweep",
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "giftcard_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_provision(
        self,
        mode: str,
        success: bool,
        source: str | None,
        error_code: str | None,
        duration: float,
        amount_billed: Decimal | None = None,
    ) -> None:
        """Record a provisioning outcome."""
        self.provisions_total.labels(
            mode=mode,
            success=str(success),
            source=source or "none",
            error_code=error_code or "none",
        ).inc()
        self.provision_duration_seconds.labels(mode=mode).observe(duration)
        if amount_billed is not None:
            self.amount_billed_dollars.observe(float(amount_billed))

    def record_warning(self, error_code: str) -> None:
        self.provision_warnings_total.labels(error_code=error_code).inc()

    def record_claim(self, claimed: bool) -> None:
        self.inventory_claims_total.labels(claimed=str(claimed)).inc()

    def record_vendor_call(
        self, success: bool, duration: float, error_type: str | None = None
    ) -> None:
        """Record vendor fallback call metrics."""
        self.vendor_calls_total.labels(
            success=str(success), error_type=error_type or "none"
        ).inc()
        self.vendor_call_duration_seconds.observe(duration)

    def record_ledger_write(self, success: bool) -> None:
        self.ledger_writes_total.labels(success=str(success)).inc()

    def record_revocation(self, return_to_pool: bool) -> None:
        self.revocations_total.labels(return_to_pool=str(return_to_pool)).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = ProvisioningMetrics()

"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys
from decimal import Decimal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    database_migrate_on_startup: bool = True

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Gift Card Provisioning API"
    api_version: str = "0.1.0"
    api_description: str = "Gift card allocation engine with vendor fallback and billing ledger"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "giftcard-provisioning-api"

    # Observability - Sampling
    trace_sample_rate: float = 1.0  # 1.0 = 100% sampling

    # Vendor fallback (card-issuing API)
    vendor_api_base_url: str = ""
    vendor_api_key: str = ""
    vendor_api_secret: str = ""
    vendor_timeout_seconds: float = 15.0
    vendor_max_retries: int = 2
    vendor_currency: str = "USD"
    vendor_sandbox: bool = False  # Use in-process sandbox client instead of HTTP

    # Provisioning rules
    default_cost_ratio: Decimal = Decimal("0.95")  # Estimated cost as fraction of face value
    revocation_min_reason_length: int = 10
    idempotency_token_prefix: str = "gcp"

    # Call-center notification hand-off (delivery itself is external)
    notification_webhook_url: str = ""
    notification_timeout_seconds: float = 10.0

    # Reconciliation sweep
    reconciliation_batch_size: int = 500

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        This prevents silent failures that only manifest at runtime.
        """
        errors: list[str] = []

        # DATABASE_URL is absolutely required
        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if not Decimal("0") < self.default_cost_ratio <= Decimal("1"):
            errors.append(
                f"DEFAULT_COST_RATIO must be in (0, 1], got: {self.default_cost_ratio}"
            )

        if self.revocation_min_reason_length < 1:
            errors.append("REVOCATION_MIN_REASON_LENGTH must be at least 1")

        # If we have errors, fail immediately with clear messaging
        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url

    @property
    def vendor_configured(self) -> bool:
        """True when HTTP vendor credentials are present."""
        return bool(self.vendor_api_base_url and self.vendor_api_key and self.vendor_api_secret)


# Global settings instance - validates at import time
settings = Settings()

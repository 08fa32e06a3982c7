"""Centralized configuration management using pydantic-settings.

Configuration is loaded from environment variables with sensible defaults.
All settings can be overridden via environment variables or a .env file.
"""

from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from atlas_classifier.domain.documents import ClassificationPolicy, FieldRequirement
from atlas_classifier.domain.value_objects import DocType


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings have sensible defaults for development. Override via
    environment variables (prefixed with ATLAS_) or .env file.

    Examples:
        ATLAS_AUTO_FILE_ENABLED=true
        ATLAS_INVOICE_THRESHOLD=0.85
        ATLAS_LOG_LEVEL=DEBUG
        ATLAS_ENVIRONMENT=production
    """

    model_config = SettingsConfigDict(
        env_prefix="ATLAS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "ATLAS Classifier"
    app_version: str = "0.1.0"
    environment: Environment = Environment.DEVELOPMENT

    # Storage
    sqlite_path: Path = Field(
        default=Path("atlas_classifier.db"),
        description="SQLite database file path for movements and learning rules",
    )

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_format: Literal["json", "console"] | None = Field(
        default=None,
        validate_default=True,
        description="Log output format: 'json' for production, 'console' for development",
    )
    log_file: Path | None = Field(default=None, description="Optional log file path")

    # Classification policy
    auto_file_enabled: bool = Field(
        default=False,
        description="File clear documents automatically; when off any doubt keeps a document pending",
    )
    invoice_threshold: float = Field(default=0.80, ge=0.0, le=1.0)
    receipt_threshold: float = Field(default=0.80, ge=0.0, le=1.0)
    bank_statement_threshold: float = Field(default=0.75, ge=0.0, le=1.0)
    contract_threshold: float = Field(default=0.70, ge=0.0, le=1.0)
    other_threshold: float = Field(default=0.50, ge=0.0, le=1.0)
    capex_amount_threshold: Decimal = Field(
        default=Decimal("3000.00"),
        ge=0,
        description="Improvement invoices above this total are routed to CAPEX",
    )

    # Extraction
    default_field_confidence: float = Field(
        default=0.70,
        ge=0.0,
        le=1.0,
        description="Confidence assumed for extracted fields the OCR provider did not score",
    )

    # Learning engine
    backfill_batch_limit: int | None = Field(
        default=None,
        ge=1,
        description="Maximum movements updated by a single backfill call (None = unlimited)",
    )

    @field_validator("log_format", mode="after")
    @classmethod
    def set_log_format_from_environment(cls, v: str | None, info) -> str:
        """Default to JSON logging in production."""
        if v is None:
            env = info.data.get("environment")
            if env == Environment.PRODUCTION:
                return "json"
        return v or "console"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING

    def classification_policy(self) -> ClassificationPolicy:
        """Build the immutable policy snapshot handed to the classifier."""
        return ClassificationPolicy(
            auto_file_enabled=self.auto_file_enabled,
            confidence_thresholds={
                DocType.INVOICE: self.invoice_threshold,
                DocType.RECEIPT: self.receipt_threshold,
                DocType.BANK_STATEMENT: self.bank_statement_threshold,
                DocType.CONTRACT: self.contract_threshold,
                DocType.OTHER: self.other_threshold,
            },
            required_fields={
                DocType.INVOICE: frozenset(
                    {
                        FieldRequirement.PROVIDER,
                        FieldRequirement.TOTAL_AMOUNT,
                        FieldRequirement.ISSUE_DATE,
                    }
                ),
                DocType.RECEIPT: frozenset(
                    {FieldRequirement.TOTAL_AMOUNT, FieldRequirement.CHARGE_DATE}
                ),
            },
            capex_amount_threshold=self.capex_amount_threshold,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings.

    Returns:
        Configured Settings instance.
    """
    return Settings()

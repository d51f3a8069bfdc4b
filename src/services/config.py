"""Ledger configuration from environment variables and .env file."""

import logging
from typing import Optional

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class LedgerSettings(BaseSettings):
    """Ledger settings loaded from environment variables.

    Pydantic automatically loads values from:
    1. OS environment variables (at instantiation time)
    2. .env file (if present)
    """

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./ledger.db",
        description="SQLAlchemy database URL",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")
    transaction_timeout_ms: int = Field(
        default=5000,
        description="Upper bound for lock waits and statements inside one ledger transaction",
    )
    rollover_batch_size: int = Field(
        default=500,
        description="Obligation rows inserted per statement during rollover",
    )

    # Notices
    locale: str = Field(default="en_US", description="Babel locale for amounts in notices")
    school_name: str = Field(default="Rowdatul Iimaan School", description="Name used in notices")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/ledger.log", description="Server log file")

    # API
    api_title: str = Field(default="School Ledger API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")

    def validate_settings(self) -> None:
        """Validate values pydantic cannot check on its own."""
        if not self.database_url:
            raise ValueError("DATABASE_URL must not be empty")
        if self.transaction_timeout_ms <= 0:
            raise ValueError("TRANSACTION_TIMEOUT_MS must be positive")
        if self.rollover_batch_size <= 0:
            raise ValueError("ROLLOVER_BATCH_SIZE must be positive")


# Lazy loader so .env is read only after the entry point had a chance to load it
_settings_instance: Optional[LedgerSettings] = None


def get_settings() -> LedgerSettings:
    """Get or create the settings instance."""
    global _settings_instance
    if _settings_instance is None:
        settings = LedgerSettings()
        settings.validate_settings()
        _settings_instance = settings
        logger.debug("Loaded ledger settings: database_url=%s", _settings_instance.database_url)
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings (tests change the environment between cases)."""
    global _settings_instance
    _settings_instance = None


__all__ = ["LedgerSettings", "get_settings", "reset_settings"]

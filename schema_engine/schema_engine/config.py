"""Schema manager configuration loaded from environment variables."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class SchemaEnv(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Settings loaded from environment variables with the SCHEMA_ prefix.

    List values such as ``SCHEMA_IGNORE_TABLES`` are given as JSON, e.g.
    ``SCHEMA_IGNORE_TABLES='["audit_log"]'``.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCHEMA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    env: SchemaEnv = SchemaEnv.DEV
    debug: bool = False

    # Database
    database_url: str = "sqlite:///.dbschema/database.db"

    # Artifact store
    artifact_dir: Path = Path("db")

    # Version ledger
    ledger_table: str = "schema_info"

    # Tables never snapshotted (the ledger table is always ignored)
    ignore_tables: list[str] = []

    # Bootstrap onto a non-empty database, skipping identical objects
    keep_tables: bool = False

    # Telemetry
    structured_logging: bool = False

    @field_validator("ledger_table")
    @classmethod
    def _validate_ledger_table(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("ledger_table must not be empty")
        return v.strip()

    def ignored_tables(self) -> list[str]:
        """Return the configured ignore list plus the ledger table."""
        return [self.ledger_table, *(t for t in self.ignore_tables if t != self.ledger_table)]


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for environment: %s", settings.env.value)

    return settings

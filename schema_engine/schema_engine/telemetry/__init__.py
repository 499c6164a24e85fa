"""Migration log capture and structured logging."""

from __future__ import annotations

from schema_engine.telemetry.migration_log import (
    JSONFormatter,
    MigrationLogEntry,
    MigrationLogHandler,
    capture_migration_log,
    configure_logging,
)

__all__ = [
    "JSONFormatter",
    "MigrationLogEntry",
    "MigrationLogHandler",
    "capture_migration_log",
    "configure_logging",
]

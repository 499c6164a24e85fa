"""Structured, timestamped audit log of schema manager decisions.

Every module logs through the standard :mod:`logging` hierarchy under the
``schema_engine`` logger.  :func:`capture_migration_log` attaches a
:class:`MigrationLogHandler` for the duration of one public operation and
collects each record as a :class:`MigrationLogEntry`, so callers can
inspect exactly what a snapshot or migration decided.

:class:`JSONFormatter` renders records as single-line JSON for log
aggregators.  Activate it with ``SCHEMA_STRUCTURED_LOGGING=true``.
"""

from __future__ import annotations

import json
import logging
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

ROOT_LOGGER = "schema_engine"


class MigrationLogEntry(BaseModel):
    """One entry of the migration log."""

    timestamp: datetime = Field(..., description="UTC time the record was emitted.")
    level: str = Field(..., description="Logging level name.")
    logger: str = Field(..., description="Emitting logger name.")
    message: str = Field(..., description="Rendered log message.")

    def __str__(self) -> str:
        return f"{self.timestamp.isoformat()} {self.level:<7} {self.message}"


class MigrationLogHandler(logging.Handler):
    """Collect log records into a list of :class:`MigrationLogEntry`."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.entries: list[MigrationLogEntry] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.entries.append(
                MigrationLogEntry(
                    timestamp=datetime.fromtimestamp(record.created, tz=UTC),
                    level=record.levelname,
                    logger=record.name,
                    message=record.getMessage(),
                )
            )
        except Exception:
            self.handleError(record)


@contextmanager
def capture_migration_log(
    entries: list[MigrationLogEntry] | None = None,
    level: int = logging.INFO,
) -> Iterator[list[MigrationLogEntry]]:
    """Collect ``schema_engine`` log records emitted inside the block.

    Parameters
    ----------
    entries:
        List to append to.  A new list is created when omitted.
    level:
        Minimum level captured.

    Yields
    ------
    list[MigrationLogEntry]
        The list being filled.
    """
    handler = MigrationLogHandler(level)
    if entries is not None:
        handler.entries = entries
    root = logging.getLogger(ROOT_LOGGER)
    previous_level = root.level
    if root.getEffectiveLevel() > level:
        root.setLevel(level)
    root.addHandler(handler)
    try:
        yield handler.entries
    finally:
        root.removeHandler(handler)
        root.setLevel(previous_level)


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))
        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(structured: bool = False, debug: bool = False) -> None:
    """Install a stderr handler on the root logger.

    Parameters
    ----------
    structured:
        Emit single-line JSON via :class:`JSONFormatter` instead of text.
    debug:
        Log at DEBUG instead of WARNING.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler()
    if structured:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if debug else logging.WARNING)

"""Version ledger: the persisted record of applied migration versions.

The ledger is a single-column table (``version BIGINT PRIMARY KEY``) living
in the managed database itself, so ledger changes share the transaction of
the migration version they record.
"""

from __future__ import annotations

import logging

from schema_engine.executor.base import DDLExecutor, SchemaInspector
from schema_engine.models.schema import Column

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_TABLE = "schema_info"


class VersionLedger:
    """Read and maintain the applied-version history of one database.

    Parameters
    ----------
    inspector:
        Inspector used to detect whether the ledger table exists.
    executor:
        Executor used for ledger rows and for creating the table.
    table:
        Ledger table name.
    """

    def __init__(
        self,
        inspector: SchemaInspector,
        executor: DDLExecutor,
        table: str = DEFAULT_LEDGER_TABLE,
    ) -> None:
        self._inspector = inspector
        self._executor = executor
        self.table = table

    def exists(self) -> bool:
        return self.table in self._inspector.list_tables()

    def ensure(self) -> None:
        """Create the ledger table if it does not exist yet."""
        if self.exists():
            return
        logger.info("Creating version ledger table '%s'", self.table)
        self._executor.create_table(
            self.table,
            [Column(name="version", ordinal_position=1, data_type="BIGINT", nullable=False, primary_key=True)],
        )

    def applied_versions(self) -> list[int]:
        """Return every applied version in ascending order (empty when no ledger)."""
        if not self.exists():
            return []
        return sorted(int(row["version"]) for row in self._executor.select_rows(self.table))

    def current_version(self) -> int:
        """Return the highest applied version, or ``0`` when nothing is applied."""
        versions = self.applied_versions()
        return versions[-1] if versions else 0

    def insert(self, version: int) -> None:
        logger.info("Inserting version record: %d", version)
        self._executor.insert(self.table, {"version": version})

    def delete(self, version: int) -> None:
        logger.info("Removing version record: %d", version)
        self._executor.delete(self.table, {"version": version})

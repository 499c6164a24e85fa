"""Declarative seed-data reconciliation.

Each :class:`DataRecord` names a table and describes rows that should exist
there, plus optional bulk ``update`` and ``delete`` directives.  The whole
batch runs in one transaction and is idempotent: syncing an unchanged seed
document a second time performs no mutations.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel

from schema_engine.diff.value_diff import changed_fields
from schema_engine.errors import DataSyncError
from schema_engine.executor.base import DDLExecutor, SchemaInspector
from schema_engine.models.schema import ConstraintType
from schema_engine.models.seed import DataRecord
from schema_engine.sync.macros import resolve_row_macros

logger = logging.getLogger(__name__)


class SyncResult(BaseModel):
    """Row mutation counts of one sync batch."""

    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    truncated: int = 0

    @property
    def mutations(self) -> int:
        return self.inserted + self.updated + self.deleted + self.truncated


class _DryRunRollback(Exception):
    """Unwinds a dry-run transaction after the batch has been evaluated."""


class DataSynchronizer:
    """Reconcile seed records against live table contents.

    Parameters
    ----------
    inspector:
        Used to validate tables, columns and primary keys.
    executor:
        Used for row lookups and mutations.
    """

    def __init__(self, inspector: SchemaInspector, executor: DDLExecutor) -> None:
        self._inspector = inspector
        self._executor = executor

    def sync(
        self,
        records: Iterable[DataRecord],
        dry_run: bool = False,
        manage_transaction: bool = True,
    ) -> SyncResult:
        """Apply *records* in order.

        Parameters
        ----------
        records:
            The seed records to reconcile.
        dry_run:
            Evaluate and log the batch, then roll it back.  Without a managed
            transaction a dry run only logs the records.
        manage_transaction:
            Open (and commit or roll back) a transaction for the batch.  When
            ``False`` the caller's transaction scope is used.

        Returns
        -------
        SyncResult
            The mutation counts (for a dry run, the mutations that would have
            been made).

        Raises
        ------
        DataSyncError
            If any record fails.  The whole batch is rolled back.
        """
        records = list(records)
        result = SyncResult()
        if not records:
            return result

        logger.info("Processing %d data sync items", len(records))

        if not manage_transaction:
            if dry_run:
                for record in records:
                    logger.info("Would sync data record for table '%s'", record.table)
                return result
            self._run(records, result)
            logger.info("Finished processing data sync items")
            return result

        try:
            with self._executor.transaction():
                self._run(records, result)
                if dry_run:
                    raise _DryRunRollback()
        except _DryRunRollback:
            logger.info("Dry run: rolled back %d data mutations", result.mutations)
            return result

        logger.info("Data sync completed successfully: %s", result.model_dump())
        return result

    def _run(self, records: list[DataRecord], result: SyncResult) -> None:
        synced: dict[str, list[dict[str, Any]]] = {}
        for position, record in enumerate(records):
            try:
                self._process(record, synced, result)
            except DataSyncError as exc:
                logger.error("Data sync error in record #%d: %s", position, exc)
                raise
            except Exception as exc:
                logger.error("Data sync error in record #%d: %s", position, exc)
                raise DataSyncError(f"Data record #{position} ({record.table}) failed: {exc}") from exc

    def _process(self, record: DataRecord, synced: dict[str, list[dict[str, Any]]], result: SyncResult) -> None:
        if record.message:
            logger.info(record.message)
        if record.table is None:
            return

        table = record.table
        if record.truncate:
            logger.info("Truncating table: %s", table)
            self._executor.truncate(table)
            result.truncated += 1

        if record.rows:
            self._sync_rows(table, record, synced, result)

        for directive in record.update:
            if not directive.where and not directive.all:
                raise DataSyncError(
                    f"Can not update rows in table '{table}' without a 'where' element or setting 'all=true'."
                )
            affected = self._executor.update(table, directive.set, None if directive.all else directive.where)
            logger.info("Updated %d rows in table '%s'", affected, table)
            result.updated += affected

        for directive in record.delete:
            if not directive.where and not directive.all:
                raise DataSyncError(
                    f"Can not delete rows from table '{table}' without a 'where' element or setting 'all=true'."
                )
            affected = self._executor.delete(table, None if directive.all else directive.where)
            logger.info("Deleted %d rows from table '%s'", affected, table)
            result.deleted += affected

    def _sync_rows(
        self,
        table: str,
        record: DataRecord,
        synced: dict[str, list[dict[str, Any]]],
        result: SyncResult,
    ) -> None:
        if table not in self._inspector.list_tables():
            raise DataSyncError(f"Can not insert rows into non-existent table '{table}'.")
        columns = {col.name for col in self._inspector.describe_table(table)}
        primary_keys = self._inspector.list_constraints(table=table, type=ConstraintType.PRIMARY_KEY)
        if not primary_keys:
            raise DataSyncError(f"No primary key found for table '{table}'.")
        pk_columns = next(iter(primary_keys.values())).columns

        logger.info("Processing %d records in table '%s'", len(record.rows), table)
        table_synced = synced.setdefault(table, [])

        for declared in record.rows:
            row = resolve_row_macros(declared, synced, self._executor)
            unknown = sorted(set(row) - columns)
            if unknown:
                raise DataSyncError(f"Table '{table}' has no column(s) {', '.join(unknown)}.")

            if all(col in row for col in pk_columns):
                criteria = {col: row[col] for col in pk_columns}
                do_diff = True
            elif record.keys:
                criteria = {key: row.get(key) for key in record.keys}
                do_diff = True
            else:
                criteria = dict(row)
                do_diff = False

            matches = self._executor.select_rows(table, criteria, limit=1)
            if matches:
                current = matches[0]
                if do_diff and not record.insertonly:
                    changes = changed_fields(row, current)
                    if changes:
                        where = {col: current[col] for col in pk_columns}
                        logger.info("Updating record in table '%s' with %s", table, where)
                        self._executor.update(table, changes, where)
                        result.updated += 1
                        current = {**current, **changes}
                table_synced.append(current)
            elif not record.updateonly:
                pk_values = self._executor.insert(table, row)
                logger.info("Inserted record into table '%s' with %s", table, pk_values)
                result.inserted += 1
                table_synced.append({**row, **pk_values})

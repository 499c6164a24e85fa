"""Schema manager: the public snapshot/migrate entry point.

:class:`SchemaManager` wires the inspector and executor collaborators to the
artifact store, the version ledger, the replayer and the data synchronizer.
Every public call records a timestamped migration log that stays available
through :attr:`SchemaManager.migration_log` until the next call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from schema_engine.artifact.builder import build_artifact, generate_version
from schema_engine.artifact.fold import apply_actions
from schema_engine.artifact.serializer import deserialize_schema
from schema_engine.config import Settings, load_settings
from schema_engine.diff.schema_diff import compute_schema_diff
from schema_engine.errors import (
    ConfigurationError,
    DataSyncError,
    ReplayError,
    SchemaManagerError,
    VersionConflictError,
)
from schema_engine.executor.base import DDLExecutor, SchemaInspector
from schema_engine.executor.sqlalchemy_backend import connect
from schema_engine.introspection.capture import capture_schema, has_structure
from schema_engine.models.artifact import Direction
from schema_engine.models.diff import SchemaDiff
from schema_engine.models.schema import ConstraintType, SchemaDocument
from schema_engine.models.seed import DataRecord
from schema_engine.replay.bootstrap import create_schema
from schema_engine.replay.replayer import MigrationReplayer
from schema_engine.state.artifact_store import ArtifactStore
from schema_engine.state.ledger import VersionLedger
from schema_engine.sync.data_sync import DataSynchronizer, SyncResult
from schema_engine.telemetry.migration_log import MigrationLogEntry, capture_migration_log

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SchemaManager:
    """Snapshot and migrate one database against one artifact store.

    Parameters
    ----------
    inspector, executor:
        The database collaborators.
    store:
        The artifact store, or its directory.
    settings:
        Ledger table and ignore list.  Defaults to :func:`load_settings`.
    clock:
        Returns the current time; drives snapshot versions.
    """

    def __init__(
        self,
        inspector: SchemaInspector,
        executor: DDLExecutor,
        store: ArtifactStore | Path | str,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.inspector = inspector
        self.executor = executor
        self.store = store if isinstance(store, ArtifactStore) else ArtifactStore(store)
        self.ledger = VersionLedger(inspector, executor, self.settings.ledger_table)
        self.synchronizer = DataSynchronizer(inspector, executor)
        self.replayer = MigrationReplayer(inspector, executor, self.store, self.ledger, self.synchronizer)
        self._clock = clock or _utcnow
        self._log: list[MigrationLogEntry] = []

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> SchemaManager:
        """Connect to ``settings.database_url`` and use ``settings.artifact_dir``."""
        settings = settings or load_settings()
        inspector, executor = connect(settings.database_url, echo=settings.debug)
        return cls(inspector, executor, settings.artifact_dir, settings)

    # -- Migration log ---------------------------------------------------------------

    @property
    def migration_log(self) -> list[MigrationLogEntry]:
        """Entries recorded by the most recent public call."""
        return list(self._log)

    @contextmanager
    def _logged(self, operation: str) -> Iterator[None]:
        self._log = []
        with capture_migration_log(self._log):
            try:
                yield
            except SchemaManagerError as exc:
                logger.error("%s failed: %s", operation, exc)
                raise

    @property
    def ignored_tables(self) -> list[str]:
        return self.settings.ignored_tables()

    # -- Versions --------------------------------------------------------------------

    def get_version(self) -> int:
        """Return the database's current version (``0`` when nothing is applied)."""
        return self.ledger.current_version()

    def get_versions(self) -> dict[int, str]:
        """Return every known version with its comment, ascending."""
        return self.store.versions()

    def get_latest_version(self) -> int:
        return self.store.latest_version()

    def get_missing_versions(self, version: int | None = None) -> list[int]:
        """Return known versions up to *version* (default latest) not yet applied."""
        if version is None:
            version = self.get_latest_version()
        applied = set(self.ledger.applied_versions())
        return [v for v in self.store.versions() if v <= version and v not in applied]

    def is_latest(self) -> bool:
        """True when the database is at the newest known version."""
        current = self.get_version()
        return current > 0 and current == self.get_latest_version()

    def has_updates(self) -> bool:
        return bool(self.get_missing_versions())

    # -- Schema documents ----------------------------------------------------------------

    def get_schema(self, max_version: int | None = None) -> SchemaDocument:
        """Fold the ``up`` trees of every artifact up to *max_version*.

        Returns an empty document when there are no artifacts.
        """
        schema = SchemaDocument()
        for version in self.store.versions():
            if max_version is not None and version > max_version:
                break
            artifact = self.store.load_artifact(version)
            schema = apply_actions(schema, artifact.up)
            schema = schema.model_copy(update={"version": version})
        return schema

    def _target_schema(self, version: int) -> SchemaDocument:
        stored = self.store.load_schema()
        if stored is not None and stored.version == version:
            return stored
        schema = self.get_schema(version)
        if stored is not None:
            schema = schema.model_copy(update={"data": stored.data})
        return schema

    # -- Snapshot ------------------------------------------------------------------------

    def snapshot(self, comment: str | None = None, dry_run: bool = False) -> bool | SchemaDiff:
        """Capture the live schema and store the difference as a new artifact.

        Parameters
        ----------
        comment:
            Free text stored in the artifact and its file name.
        dry_run:
            Compute and log the diff without writing anything.

        Returns
        -------
        bool | SchemaDiff
            ``False`` when there are no changes, the diff on a dry run, and
            ``True`` once the artifact has been written.

        Raises
        ------
        VersionConflictError
            If the database is not at the latest version, or the new version
            is not newer than the latest stored one.
        InspectionError
            If the live schema cannot be captured.
        """
        with self._logged("Snapshot"):
            return self._snapshot(comment, dry_run)

    def _snapshot(self, comment: str | None, dry_run: bool) -> bool | SchemaDiff:
        logger.info("Snapshot process starting")
        if dry_run:
            logger.info("Dry run enabled")

        latest = self.store.latest_version()
        if latest:
            missing = self.get_missing_versions()
            if missing or self.get_version() != latest:
                raise VersionConflictError(
                    f"Database is not at the latest version {latest}; migrate before taking a snapshot."
                )
            logger.info("Database is at the latest version %d", latest)
        else:
            logger.info("Taking the initial snapshot")

        previous = self.store.load_schema() if latest else None
        if previous is None:
            previous = self.get_schema() if latest else SchemaDocument()

        current = capture_schema(self.inspector, self.ignored_tables)
        initial = latest == 0
        diff = compute_schema_diff(previous, current, initial=initial)

        if diff.is_empty:
            logger.info("No changes detected")
            return False

        for kind, ops in diff.counts().items():
            for op, count in ops.items():
                logger.info("%s %d %s(s)", op, count, kind)

        if dry_run:
            return diff

        version = generate_version(self._clock())
        if version <= latest:
            raise VersionConflictError(f"Version {version} is not newer than the latest stored version {latest}.")

        artifact = build_artifact(diff, version, comment or "", initial=initial)
        self.store.write_artifact(artifact)
        self.store.write_schema(current.model_copy(update={"version": version, "data": previous.data}))

        with self.executor.transaction():
            self.ledger.ensure()
            self.ledger.insert(version)

        logger.info("Snapshot completed at version %d", version)
        return True

    # -- Migrate -------------------------------------------------------------------------

    def migrate(
        self,
        version: int | None = None,
        force_data_sync: bool = False,
        dry_run: bool = False,
        keep_tables: bool = False,
    ) -> bool:
        """Bring the database to *version* (default: the newest artifact).

        Parameters
        ----------
        version:
            Target version; must be a known version.
        force_data_sync:
            Sync seed data even when no version was replayed.
        dry_run:
            Log every action without changing the database.
        keep_tables:
            Allow the bootstrap path on a non-empty database.

        Returns
        -------
        bool
            ``True`` on success, ``False`` when a replay or data sync failed
            (see :attr:`migration_log`).

        Raises
        ------
        ConfigurationError
            If the store is missing, an artifact is malformed or the target
            version is unknown.
        """
        with self._logged("Migration"):
            try:
                return self._migrate(version, force_data_sync, dry_run, keep_tables)
            except (ReplayError, DataSyncError) as exc:
                logger.error("Migration failed: %s", exc)
                return False

    def _migrate(self, version: int | None, force_data_sync: bool, dry_run: bool, keep_tables: bool) -> bool:
        logger.info("Migration process starting")
        if dry_run:
            logger.info("Dry run enabled")

        self.store.require()
        target = self.replayer.resolve_target(version)
        if target == 0:
            logger.info("No migration artifacts found")
        current = self.get_version()
        logger.info("Current database version: %s", current or "None")

        # Seed data is only synced after an up migration (or when forced).
        migrated_up = False
        if target and self._can_bootstrap(target, keep_tables):
            self._bootstrap(target, keep_tables, dry_run)
            migrated_up = True
        elif target:
            logger.info("Migrating to version %d", target)
            steps = self.replayer.plan(target)
            if not steps:
                logger.info("Nothing to do")
            self.replayer.replay(steps, dry_run=dry_run)
            migrated_up = any(step.direction is Direction.UP for step in steps)

        if migrated_up or force_data_sync:
            # A dry run did not build the new structure; rows can only be listed.
            self._sync(None, dry_run, evaluate=not (dry_run and migrated_up))

        logger.info("Migration completed")
        return True

    def _can_bootstrap(self, target: int, keep_tables: bool) -> bool:
        if self.ledger.applied_versions() or target != self.store.latest_version():
            return False
        if keep_tables:
            return True
        return not has_structure(self.inspector, self.ignored_tables)

    def _bootstrap(self, target: int, keep_tables: bool, dry_run: bool) -> None:
        logger.info("Initialising database at version %d", target)
        schema = self._target_schema(target)
        versions = [v for v in self.store.versions() if v <= target]

        if dry_run:
            create_schema(schema, self.executor, self.inspector, keep_tables=keep_tables, dry_run=True)
            logger.info("Would record versions: %s", ", ".join(map(str, versions)))
            return

        try:
            with self.executor.transaction():
                self.ledger.ensure()
                create_schema(schema, self.executor, self.inspector, keep_tables=keep_tables)
                for v in versions:
                    self.ledger.insert(v)
        except ReplayError:
            raise
        except Exception as exc:
            raise ReplayError(f"Database initialisation failed: {exc}", version=target, direction="up") from exc

    # -- Direct schema creation ------------------------------------------------------------

    def create_schema(self, schema: SchemaDocument, dry_run: bool = False, keep_tables: bool = False) -> bool:
        """Build *schema* in one transaction without touching the ledger.

        Returns ``False`` (and logs) when creation failed and was rolled back.
        """
        with self._logged("Schema creation"):
            try:
                if dry_run:
                    create_schema(schema, self.executor, self.inspector, keep_tables=keep_tables, dry_run=True)
                    return True
                with self.executor.transaction():
                    create_schema(schema, self.executor, self.inspector, keep_tables=keep_tables)
            except ReplayError as exc:
                logger.error("Schema creation rolled back: %s", exc)
                return False
            logger.info("Schema created")
            return True

    def create_schema_from_file(self, path: Path | str) -> bool:
        """Load a schema document from *path* and build it.

        Raises
        ------
        ConfigurationError
            If the file is missing or not a valid schema document.
        """
        path = Path(path)
        if not path.is_file():
            raise ConfigurationError(f"Schema file '{path}' not found.")
        return self.create_schema(deserialize_schema(path.read_text(encoding="utf-8")))

    # -- Data ------------------------------------------------------------------------------

    def seed_records(self) -> list[DataRecord]:
        """Return the static seed records followed by ``schema.json`` data."""
        records = self.store.load_seed_data()
        stored = self.store.load_schema()
        if stored is not None:
            records.extend(stored.data)
        return records

    def sync_data(self, records: Iterable[DataRecord] | None = None, dry_run: bool = False) -> SyncResult:
        """Reconcile *records* (default: the store's seed records) in one transaction.

        Raises
        ------
        DataSyncError
            If the batch failed; it has been rolled back.
        """
        with self._logged("Data sync"):
            return self._sync(records, dry_run)

    def _sync(self, records: Iterable[DataRecord] | None, dry_run: bool, evaluate: bool = True) -> SyncResult:
        if records is None:
            records = self.seed_records()
        records = list(records)
        if not records:
            logger.info("No data to sync")
            return SyncResult()
        return self.synchronizer.sync(records, dry_run=dry_run, manage_transaction=evaluate or not dry_run)

    def truncate(self) -> None:
        """Drop every view and every table except the configured ignore list.

        The ledger table is dropped too, returning the database to version 0.
        """
        with self._logged("Truncate"):
            keep = set(self.settings.ignore_tables)
            with self.executor.transaction():
                for view in self.inspector.list_views():
                    logger.info("Dropping view '%s'", view)
                    self.executor.drop_view(view)

                remaining = [t for t in self.inspector.list_tables() if t not in keep]
                while remaining:
                    referenced = {
                        c.references.table
                        for table in remaining
                        for c in self.inspector.list_constraints(table=table, type=ConstraintType.FOREIGN_KEY).values()
                        if c.references is not None and c.references.table != table
                    }
                    batch = [t for t in remaining if t not in referenced] or remaining[:1]
                    for table in batch:
                        logger.info("Dropping table '%s'", table)
                        self.executor.drop_table(table)
                    remaining = [t for t in remaining if t not in batch]

"""Transactional replay of migration artifacts.

The replayer moves a database between versions:

* ``up`` steps are every known version not yet in the ledger and not newer
  than the target, in ascending order (this also fills gaps left by
  artifacts that arrived out of order);
* ``down`` steps are every applied version newer than the target, in
  descending order.

Each version runs in its own transaction together with its ledger change.
A failure rolls back that version only and halts the replay; versions
committed before it stay applied.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel

from schema_engine.errors import ConfigurationError, ReplayError
from schema_engine.executor.base import DDLExecutor, SchemaInspector
from schema_engine.models.artifact import (
    REPLAY_STEPS,
    ActionTree,
    Direction,
    EntityKind,
    Operation,
    TableRename,
)
from schema_engine.models.schema import ConstraintType
from schema_engine.state.artifact_store import ArtifactStore
from schema_engine.state.ledger import VersionLedger
from schema_engine.sync.data_sync import DataSynchronizer

logger = logging.getLogger(__name__)


class ReplayState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    APPLYING = "applying"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class ReplayStep(BaseModel):
    """One version to replay in one direction."""

    version: int
    direction: Direction


def describe_action(kind: EntityKind, operation: Operation, item: Any) -> str:
    """Return a one-line human description of an action."""
    if isinstance(item, TableRename):
        label = f"'{item.from_}' -> '{item.to}'"
    elif hasattr(item, "full_name"):
        label = f"'{item.full_name}'"
    elif hasattr(item, "table") and kind is not EntityKind.TABLE:
        label = f"'{item.name}' on '{item.table}'"
    else:
        label = f"'{item.name}'"
    return f"{operation.value} {kind.value} {label}"


class MigrationReplayer:
    """Apply artifact action trees against a live database.

    Parameters
    ----------
    inspector, executor:
        The database collaborators.
    store:
        Source of the migration artifacts.
    ledger:
        The database's version ledger.
    synchronizer:
        Used for ``data`` sections of action trees.  Defaults to a
        synchronizer over the same collaborators.
    """

    def __init__(
        self,
        inspector: SchemaInspector,
        executor: DDLExecutor,
        store: ArtifactStore,
        ledger: VersionLedger,
        synchronizer: DataSynchronizer | None = None,
    ) -> None:
        self._inspector = inspector
        self._executor = executor
        self._store = store
        self._ledger = ledger
        self._synchronizer = synchronizer or DataSynchronizer(inspector, executor)
        self.state = ReplayState.IDLE
        self.current_step: ReplayStep | None = None

    # -- Planning ------------------------------------------------------------------

    def resolve_target(self, target: int | None = None) -> int:
        """Return *target*, or the newest known version when ``None``.

        Raises
        ------
        ConfigurationError
            If *target* is not a known version.
        """
        known = list(self._store.artifact_paths())
        if target is None:
            return known[-1] if known else 0
        if target not in known:
            raise ConfigurationError(f"Version {target} does not exist.")
        return target

    def plan(self, target: int | None = None) -> list[ReplayStep]:
        """Compute the ordered steps that bring the database to *target*."""
        self.state = ReplayState.RESOLVING
        try:
            target = self.resolve_target(target)
            known = list(self._store.artifact_paths())
            applied = self._ledger.applied_versions()
            applied_set = set(applied)

            up = [v for v in known if v not in applied_set and v <= target]
            down = sorted((v for v in applied if v > target), reverse=True)
        finally:
            self.state = ReplayState.IDLE

        if up and applied and up[0] < applied[-1]:
            logger.info("Found missing versions that will get replayed: %s", ", ".join(map(str, up)))

        steps = [ReplayStep(version=v, direction=Direction.UP) for v in up]
        steps += [ReplayStep(version=v, direction=Direction.DOWN) for v in down]
        return steps

    # -- Replay --------------------------------------------------------------------

    def replay(self, steps: list[ReplayStep], dry_run: bool = False) -> list[ReplayStep]:
        """Apply *steps* in order, halting on the first failure.

        Returns the steps that were applied.

        Raises
        ------
        ReplayError
            If a step fails; it has been rolled back.
        """
        applied: list[ReplayStep] = []
        for step in steps:
            self.apply(step, dry_run=dry_run)
            applied.append(step)
        return applied

    def apply(self, step: ReplayStep, dry_run: bool = False) -> None:
        """Apply one version in one direction inside its own transaction."""
        artifact = self._store.load_artifact(step.version)
        tree = artifact.up if step.direction is Direction.UP else artifact.down

        self.current_step = step
        self.state = ReplayState.APPLYING
        logger.info(
            "-- Replaying version '%d' (%s) %s",
            step.version,
            artifact.comment or "no comment",
            step.direction.value,
        )

        if tree.raise_:
            self.state = ReplayState.ROLLED_BACK
            logger.error("Version %d can not be replayed %s: %s", step.version, step.direction.value, tree.raise_)
            raise ReplayError(tree.raise_, version=step.version, direction=step.direction.value)

        if dry_run:
            self.apply_tree(tree, dry_run=True)
            logger.info("Dry run: version %d not recorded in the ledger", step.version)
            self.state = ReplayState.IDLE
            return

        try:
            with self._executor.transaction():
                self._ledger.ensure()
                self.apply_tree(tree)
                if step.direction is Direction.UP:
                    self._ledger.insert(step.version)
                else:
                    self._ledger.delete(step.version)
        except Exception as exc:
            self.state = ReplayState.ROLLED_BACK
            logger.error(
                "Replay of version %d (%s) failed and was rolled back: %s",
                step.version,
                step.direction.value,
                exc,
            )
            raise ReplayError(
                f"Replay of version {step.version} ({step.direction.value}) failed: {exc}",
                version=step.version,
                direction=step.direction.value,
            ) from exc

        self.state = ReplayState.COMMITTED
        logger.info("-- Replay of version '%d' completed.", step.version)
        self.state = ReplayState.IDLE
        self.current_step = None

    def apply_tree(self, tree: ActionTree, dry_run: bool = False) -> None:
        """Execute every action of *tree* in replay order (no transaction handling)."""
        for kind, operation in REPLAY_STEPS:
            items = tree.items(kind, operation)
            if kind is EntityKind.CONSTRAINT and operation is Operation.CREATE:
                # Primary keys first so foreign keys can reference them.
                items.sort(key=lambda c: c.type is not ConstraintType.PRIMARY_KEY)
            for item in items:
                logger.info("%s %s", "Would" if dry_run else "->", describe_action(kind, operation, item))
                if not dry_run:
                    self._dispatch(kind, operation, item)

        for sql in tree.exec:
            logger.info("%s execute SQL: %s", "Would" if dry_run else "->", sql)
            if not dry_run:
                self._executor.execute(sql)

        if tree.data:
            self._synchronizer.sync(tree.data, dry_run=dry_run, manage_transaction=False)

    def _dispatch(self, kind: EntityKind, operation: Operation, item: Any) -> None:
        ex = self._executor
        if kind is EntityKind.TABLE:
            if operation is Operation.CREATE:
                ex.create_table(item.name, item.columns)
            elif operation is Operation.ALTER:
                for column in item.add:
                    ex.add_column(item.name, column)
                for alteration in item.alter:
                    ex.alter_column(item.name, alteration.column, alteration)
                for column_name in item.drop:
                    ex.drop_column(item.name, column_name)
            elif operation is Operation.REMOVE:
                ex.drop_table(item.name)
            else:
                ex.rename_table(item.from_, item.to)
        elif kind is EntityKind.CONSTRAINT:
            if operation is Operation.CREATE:
                ex.add_constraint(item)
            else:
                ex.drop_constraint(item.table, item.name, item.type)
        elif kind is EntityKind.INDEX:
            if operation is Operation.CREATE:
                ex.create_index(item)
            else:
                ex.drop_index(item.table, item.name)
        elif kind is EntityKind.VIEW:
            if operation is Operation.ALTER:
                ex.drop_view(item.name)
                ex.create_view(item)
            elif operation is Operation.CREATE:
                ex.create_view(item)
            else:
                ex.drop_view(item.name)
        else:
            if operation is Operation.REMOVE:
                ex.drop_function(item.name, item.parameters)
            else:
                ex.create_function(item)

"""Build reversible migration artifacts from a structural diff.

Every ``up`` action gets its inverse in ``down``:

* create <-> remove, where the remove side keeps the full definition so the
  object can be recreated;
* alter keeps both sides (``up`` holds the new definition, ``down`` the old);
* rename is swapped.

Removing a table carries its constraints and indexes into ``down`` so a
rollback reconstructs them.  The initial snapshot cannot be reverted and its
``down`` tree only carries a ``raise`` marker.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from schema_engine.models.artifact import (
    INITIAL_SNAPSHOT_MESSAGE,
    ActionTree,
    ConstraintRemove,
    FunctionRemove,
    IndexRemove,
    MigrationArtifact,
    TableAlter,
    TableCreate,
    TableRemove,
    TableRename,
    ViewRemove,
)
from schema_engine.models.diff import SchemaDiff

logger = logging.getLogger(__name__)

VERSION_FORMAT = "%Y%m%d%H%M%S"


def generate_version(now: datetime | None = None) -> int:
    """Return a ``YYYYMMDDHHMMSS`` version number for *now* (UTC by default)."""
    moment = now or datetime.now(UTC)
    if moment.tzinfo is not None:
        moment = moment.astimezone(UTC)
    return int(moment.strftime(VERSION_FORMAT))


def build_up_tree(diff: SchemaDiff) -> ActionTree:
    """Translate *diff* into the actions that apply it."""
    tree = ActionTree()

    tree.table.create = [TableCreate(name=t.name, columns=t.columns) for t in diff.table.create]
    tree.table.alter = [
        TableAlter(name=name, add=delta.add, drop=[col.name for col in delta.drop])
        for name, delta in diff.table.alter.items()
    ]
    tree.table.remove = [TableRemove(name=t.name) for t in diff.table.remove]
    tree.table.rename = [TableRename(from_=r.old_name, to=r.new_name) for r in diff.table.rename]

    tree.constraint.create = list(diff.constraint.create)
    tree.constraint.remove = [
        ConstraintRemove(name=c.name, table=c.table, type=c.type) for c in diff.constraint.remove
    ]

    tree.index.create = list(diff.index.create)
    tree.index.remove = [IndexRemove(name=i.name, table=i.table) for i in diff.index.remove]

    tree.view.create = list(diff.view.create)
    tree.view.alter = [change.after for change in diff.view.alter]
    tree.view.remove = [ViewRemove(name=v.name) for v in diff.view.remove]

    tree.function.create = list(diff.function.create)
    tree.function.alter = [change.after for change in diff.function.alter]
    tree.function.remove = [FunctionRemove(name=f.name, parameters=list(f.signature)) for f in diff.function.remove]

    return tree


def build_down_tree(diff: SchemaDiff) -> ActionTree:
    """Translate *diff* into the actions that revert it."""
    tree = ActionTree()
    created_tables = {t.name for t in diff.table.create}

    tree.table.create = [TableCreate(name=t.name, columns=t.columns) for t in diff.table.remove]
    tree.table.alter = [
        TableAlter(name=name, add=delta.drop, drop=[col.name for col in delta.add])
        for name, delta in diff.table.alter.items()
    ]
    tree.table.remove = [TableRemove(name=t.name) for t in diff.table.create]
    tree.table.rename = [TableRename(from_=r.new_name, to=r.old_name) for r in diff.table.rename]

    # Recreate whatever a removed table carried with it.
    tree.constraint.create = [c for t in diff.table.remove for c in t.constraints] + list(diff.constraint.remove)
    tree.constraint.remove = [
        ConstraintRemove(name=c.name, table=c.table, type=c.type)
        for c in diff.constraint.create
        if c.table not in created_tables
    ]

    tree.index.create = [i for t in diff.table.remove for i in t.indexes] + list(diff.index.remove)
    tree.index.remove = [
        IndexRemove(name=i.name, table=i.table) for i in diff.index.create if i.table not in created_tables
    ]

    tree.view.create = list(diff.view.remove)
    tree.view.alter = [change.before for change in diff.view.alter]
    tree.view.remove = [ViewRemove(name=v.name) for v in diff.view.create]

    tree.function.create = list(diff.function.remove)
    tree.function.alter = [change.before for change in diff.function.alter]
    tree.function.remove = [FunctionRemove(name=f.name, parameters=list(f.signature)) for f in diff.function.create]

    return tree


def build_artifact(
    diff: SchemaDiff,
    version: int,
    comment: str = "",
    *,
    initial: bool = False,
) -> MigrationArtifact:
    """Build the migration artifact for *diff*.

    Parameters
    ----------
    diff:
        The structural diff between the stored and the live schema.
    version:
        The artifact's version number (see :func:`generate_version`).
    comment:
        Human description stored in the artifact and its file name.
    initial:
        ``True`` for the first snapshot of a database.  Its ``down`` tree
        refuses to revert.

    Returns
    -------
    MigrationArtifact
        The artifact with mirrored ``up`` and ``down`` trees.
    """
    up = build_up_tree(diff)
    if initial:
        down = ActionTree(raise_=INITIAL_SNAPSHOT_MESSAGE)
    else:
        down = build_down_tree(diff)

    logger.info(
        "Built migration artifact %d (%s): %s",
        version,
        comment or "no comment",
        diff.counts(),
    )
    return MigrationArtifact(version=version, comment=comment, up=up, down=down)

"""Migration artifact models.

An artifact holds two action trees: ``up`` applies a structural diff and
``down`` reverts it.  Each tree is keyed by entity kind, then by operation,
and every payload is a closed, validated model: unknown keys are rejected at
deserialization time instead of being silently ignored.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from schema_engine.models.schema import Column, Constraint, ConstraintType, FunctionDef, Index, ViewDef
from schema_engine.models.seed import DataRecord

# Bumped whenever the serialized artifact layout changes incompatibly.
ARTIFACT_FORMAT_VERSION = 1

INITIAL_SNAPSHOT_MESSAGE = "Can not revert initial snapshot"


class EntityKind(str, Enum):
    TABLE = "table"
    CONSTRAINT = "constraint"
    INDEX = "index"
    VIEW = "view"
    FUNCTION = "function"


class Operation(str, Enum):
    CREATE = "create"
    ALTER = "alter"
    REMOVE = "remove"
    RENAME = "rename"


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"


# Kind order for ``up`` trees; ``down`` trees use the reverse.
KIND_ORDER: tuple[EntityKind, ...] = (
    EntityKind.TABLE,
    EntityKind.CONSTRAINT,
    EntityKind.INDEX,
    EntityKind.VIEW,
    EntityKind.FUNCTION,
)

# Operation order inside one kind when replaying.
REPLAY_OPERATION_ORDER: tuple[Operation, ...] = (
    Operation.REMOVE,
    Operation.RENAME,
    Operation.ALTER,
    Operation.CREATE,
)

# (kind, operation) pairs in replay order, used for both directions.  Removals
# run first with dependents before the tables they depend on; renames, alters
# and creates then run tables first.  A down tree recreating a dropped table
# therefore creates the table before its constraints and indexes.
REPLAY_STEPS: tuple[tuple[EntityKind, Operation], ...] = tuple(
    (kind, Operation.REMOVE) for kind in reversed(KIND_ORDER)
) + tuple((kind, op) for kind in KIND_ORDER for op in REPLAY_OPERATION_ORDER if op is not Operation.REMOVE)

# Operation order inside one kind when serializing.
SERIALIZED_OPERATION_ORDER: tuple[Operation, ...] = (
    Operation.CREATE,
    Operation.ALTER,
    Operation.REMOVE,
    Operation.RENAME,
)


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# ---------------------------------------------------------------------------
# Table payloads
# ---------------------------------------------------------------------------


class TableCreate(_Payload):
    name: str = Field(..., min_length=1)
    columns: list[Column] = Field(..., min_length=1)


class ColumnAlteration(_Payload):
    """Attribute changes for one existing column.

    Only the fields that were explicitly set are applied, so ``default=None``
    drops a default while an omitted ``default`` leaves it untouched.
    """

    column: str = Field(..., min_length=1, description="Current column name.")
    name: str | None = Field(default=None, description="New column name.")
    data_type: str | None = None
    nullable: bool | None = None
    default: str | None = None
    length: int | None = None

    def changes(self) -> dict[str, Any]:
        """The explicitly-set attribute changes, keyed by Column field name."""
        return self.model_dump(exclude_unset=True, exclude={"column"})


class TableAlter(_Payload):
    name: str = Field(..., min_length=1)
    add: list[Column] = Field(default_factory=list)
    alter: list[ColumnAlteration] = Field(default_factory=list)
    drop: list[str] = Field(default_factory=list)


class TableRemove(_Payload):
    name: str = Field(..., min_length=1)


class TableRename(_Payload):
    from_: str = Field(..., min_length=1, alias="from")
    to: str = Field(..., min_length=1)


class TableActions(_Payload):
    create: list[TableCreate] = Field(default_factory=list)
    alter: list[TableAlter] = Field(default_factory=list)
    remove: list[TableRemove] = Field(default_factory=list)
    rename: list[TableRename] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Constraint, index, view and function payloads
# ---------------------------------------------------------------------------


class ConstraintRemove(_Payload):
    name: str = Field(..., min_length=1)
    table: str = Field(..., min_length=1)
    type: ConstraintType | None = None


class ConstraintActions(_Payload):
    create: list[Constraint] = Field(default_factory=list)
    remove: list[ConstraintRemove] = Field(default_factory=list)


class IndexRemove(_Payload):
    name: str = Field(..., min_length=1)
    table: str = Field(..., min_length=1)


class IndexActions(_Payload):
    create: list[Index] = Field(default_factory=list)
    remove: list[IndexRemove] = Field(default_factory=list)


class ViewRemove(_Payload):
    name: str = Field(..., min_length=1)


class ViewActions(_Payload):
    create: list[ViewDef] = Field(default_factory=list)
    alter: list[ViewDef] = Field(default_factory=list)
    remove: list[ViewRemove] = Field(default_factory=list)


class FunctionRemove(_Payload):
    name: str = Field(..., min_length=1)
    parameters: list[str] = Field(default_factory=list, description="Parameter types of the overload.")

    @property
    def full_name(self) -> str:
        return f"{self.name}({', '.join(self.parameters)})"


class FunctionActions(_Payload):
    create: list[FunctionDef] = Field(default_factory=list)
    alter: list[FunctionDef] = Field(default_factory=list)
    remove: list[FunctionRemove] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Action tree & artifact
# ---------------------------------------------------------------------------


class ActionTree(_Payload):
    """All actions of one direction of an artifact.

    ``raise_`` (serialized as ``raise``) marks a tree that cannot be replayed,
    which is how the initial snapshot's ``down`` tree is represented.
    """

    raise_: str | None = Field(default=None, alias="raise")
    table: TableActions = Field(default_factory=TableActions)
    constraint: ConstraintActions = Field(default_factory=ConstraintActions)
    index: IndexActions = Field(default_factory=IndexActions)
    view: ViewActions = Field(default_factory=ViewActions)
    function: FunctionActions = Field(default_factory=FunctionActions)
    exec: list[str] = Field(default_factory=list, description="Raw SQL statements run after structural actions.")
    data: list[DataRecord] = Field(default_factory=list, description="Seed records synced inside the version.")

    def actions(self, kind: EntityKind) -> BaseModel:
        return getattr(self, kind.value)

    def items(self, kind: EntityKind, operation: Operation) -> list[Any]:
        """Return the payload list for *kind* / *operation* (empty when unsupported)."""
        return list(getattr(self.actions(kind), operation.value, []))

    @property
    def is_empty(self) -> bool:
        if self.raise_ or self.exec or self.data:
            return False
        return not any(self.items(kind, op) for kind in KIND_ORDER for op in Operation)


class MigrationArtifact(_Payload):
    """A versioned, reversible migration."""

    version: int = Field(..., gt=0)
    comment: str = Field(default="")
    format: int = Field(default=ARTIFACT_FORMAT_VERSION, ge=1)
    up: ActionTree = Field(default_factory=ActionTree)
    down: ActionTree = Field(default_factory=ActionTree)

    @property
    def revertible(self) -> bool:
        return self.down.raise_ is None

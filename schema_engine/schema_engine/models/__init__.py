"""Domain models for the schema manager."""

from schema_engine.models.artifact import (
    ActionTree,
    ColumnAlteration,
    Direction,
    EntityKind,
    MigrationArtifact,
    Operation,
    TableAlter,
    TableCreate,
    TableRename,
)
from schema_engine.models.diff import ColumnDelta, SchemaDiff, TableDefinition
from schema_engine.models.schema import (
    Column,
    Constraint,
    ConstraintType,
    ForeignKeyReference,
    FunctionDef,
    FunctionParameter,
    Index,
    SchemaDocument,
    ViewDef,
)
from schema_engine.models.seed import DataRecord, DeleteDirective, UpdateDirective

__all__ = [
    "ActionTree",
    "Column",
    "ColumnAlteration",
    "ColumnDelta",
    "Constraint",
    "ConstraintType",
    "DataRecord",
    "DeleteDirective",
    "Direction",
    "EntityKind",
    "ForeignKeyReference",
    "FunctionDef",
    "FunctionParameter",
    "Index",
    "MigrationArtifact",
    "Operation",
    "SchemaDiff",
    "SchemaDocument",
    "TableAlter",
    "TableCreate",
    "TableDefinition",
    "TableRename",
    "UpdateDirective",
    "ViewDef",
]

"""Deterministic diff engine for schema and value comparison."""

from schema_engine.diff.schema_diff import compute_schema_diff
from schema_engine.diff.value_diff import changed_fields, deep_diff, values_equal
from schema_engine.models.diff import SchemaDiff

__all__ = [
    "SchemaDiff",
    "changed_fields",
    "compute_schema_diff",
    "deep_diff",
    "values_equal",
]

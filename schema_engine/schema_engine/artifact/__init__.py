"""Migration artifact construction, serialization and schema folding."""

from schema_engine.artifact.builder import build_artifact, build_down_tree, build_up_tree, generate_version
from schema_engine.artifact.fold import apply_actions, apply_diff
from schema_engine.artifact.serializer import (
    deserialize_artifact,
    deserialize_schema,
    serialize_artifact,
    serialize_schema,
    validate_artifact_document,
)

__all__ = [
    "apply_actions",
    "apply_diff",
    "build_artifact",
    "build_down_tree",
    "build_up_tree",
    "deserialize_artifact",
    "deserialize_schema",
    "generate_version",
    "serialize_artifact",
    "serialize_schema",
    "validate_artifact_document",
]

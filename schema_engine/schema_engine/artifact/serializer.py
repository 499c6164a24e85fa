"""Deterministic serialization and validation for artifacts and schema documents.

Artifacts are written for human review, so the output is ordered rather than
key-sorted: entity kinds run table -> constraint -> index -> view -> function
in ``up`` trees and in reverse in ``down`` trees, and operations run
create -> alter -> remove -> rename within a kind.  Empty branches are pruned
entirely.  Identical inputs always produce byte-identical JSON.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ValidationError

from schema_engine.errors import ConfigurationError
from schema_engine.models.artifact import (
    ARTIFACT_FORMAT_VERSION,
    KIND_ORDER,
    SERIALIZED_OPERATION_ORDER,
    ActionTree,
    Direction,
    MigrationArtifact,
    TableAlter,
)
from schema_engine.models.schema import SchemaDocument
from schema_engine.models.seed import DataRecord

_STRUCTURE_FIELDS = ("tables", "constraints", "indexes", "views", "functions")


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def _dump_table_alter(payload: TableAlter) -> dict[str, Any]:
    # ``exclude_unset`` keeps an explicit ``default: null`` (drop the default).
    raw: dict[str, Any] = {"name": payload.name}
    if payload.add:
        raw["add"] = [_dump(col) for col in payload.add]
    if payload.alter:
        raw["alter"] = [alt.model_dump(mode="json", exclude_unset=True) for alt in payload.alter]
    if payload.drop:
        raw["drop"] = list(payload.drop)
    return raw


def _dump_directive(directive: BaseModel) -> dict[str, Any]:
    raw = directive.model_dump(mode="json")
    return {key: value for key, value in raw.items() if value is not None and value is not False}


def dump_data_record(record: DataRecord) -> dict[str, Any]:
    """Dump a seed record, omitting unset flags but keeping ``None`` row values."""
    raw = record.model_dump(mode="json")
    raw["update"] = [_dump_directive(d) for d in record.update]
    raw["delete"] = [_dump_directive(d) for d in record.delete]
    return {key: value for key, value in raw.items() if value is not None and value is not False and value != []}


def dump_action_tree(tree: ActionTree, direction: Direction = Direction.UP) -> dict[str, Any]:
    """Return the ordered, pruned mapping form of *tree*."""
    raw: dict[str, Any] = {}
    if tree.raise_:
        raw["raise"] = tree.raise_

    kinds = KIND_ORDER if direction is Direction.UP else tuple(reversed(KIND_ORDER))
    for kind in kinds:
        section: dict[str, Any] = {}
        for operation in SERIALIZED_OPERATION_ORDER:
            items = tree.items(kind, operation)
            if not items:
                continue
            section[operation.value] = [
                _dump_table_alter(item) if isinstance(item, TableAlter) else _dump(item) for item in items
            ]
        if section:
            raw[kind.value] = section

    if tree.exec:
        raw["exec"] = list(tree.exec)
    if tree.data:
        raw["data"] = [dump_data_record(record) for record in tree.data]
    return raw


# ---------------------------------------------------------------------------
# Migration artifacts
# ---------------------------------------------------------------------------


def serialize_artifact(artifact: MigrationArtifact) -> str:
    """Serialize an artifact to a deterministic, human-ordered JSON string.

    Parameters
    ----------
    artifact:
        The artifact to serialize.

    Returns
    -------
    str
        Pretty-printed JSON with 2-space indentation.
    """
    raw: dict[str, Any] = {
        "version": artifact.version,
        "comment": artifact.comment,
        "format": artifact.format,
    }
    up = dump_action_tree(artifact.up, Direction.UP)
    down = dump_action_tree(artifact.down, Direction.DOWN)
    if up:
        raw["up"] = up
    if down:
        raw["down"] = down
    return json.dumps(raw, indent=2, ensure_ascii=False)


def _load_json(json_str: str, what: str) -> Any:
    try:
        return json.loads(json_str)
    except ValueError as exc:
        raise ConfigurationError(f"Unable to parse {what}: {exc}") from exc


def deserialize_artifact(
    json_str: str,
    *,
    version: int | None = None,
    comment: str | None = None,
) -> MigrationArtifact:
    """Deserialize a JSON string into a :class:`MigrationArtifact`.

    Parameters
    ----------
    json_str:
        The artifact document.
    version, comment:
        Fallbacks taken from the artifact's file name, used when the document
        itself omits them (hand-authored artifacts).

    Raises
    ------
    ConfigurationError
        If the string is not valid JSON, uses an unsupported format, or does
        not conform to the artifact schema.
    """
    raw = _load_json(json_str, "migration artifact")
    if not isinstance(raw, dict):
        raise ConfigurationError("A migration artifact must be a JSON object.")

    if version is not None:
        raw.setdefault("version", version)
    if comment is not None:
        raw.setdefault("comment", comment)

    fmt = raw.get("format", ARTIFACT_FORMAT_VERSION)
    if isinstance(fmt, int) and fmt > ARTIFACT_FORMAT_VERSION:
        raise ConfigurationError(
            f"Unsupported artifact format {fmt} (this version understands up to {ARTIFACT_FORMAT_VERSION})."
        )

    try:
        return MigrationArtifact.model_validate(raw)
    except ValidationError as exc:
        label = raw.get("version", "?")
        raise ConfigurationError(f"Malformed migration artifact {label}: {exc}") from exc


def validate_artifact_document(json_str: str) -> list[str]:
    """Validate an artifact document without raising.

    Returns
    -------
    list[str]
        Human-readable validation errors.  An empty list means the document
        is a valid artifact.
    """
    try:
        raw = json.loads(json_str)
    except ValueError as exc:
        return [f"Invalid JSON: {exc}"]

    try:
        MigrationArtifact.model_validate(raw)
    except ValidationError as exc:
        return [f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()]
    return []


# ---------------------------------------------------------------------------
# Schema documents
# ---------------------------------------------------------------------------


def serialize_schema(schema: SchemaDocument) -> str:
    """Serialize a schema document (``schema.json``)."""
    dumped = schema.model_dump(mode="json", exclude_none=True, exclude={"data"})
    raw: dict[str, Any] = {"version": schema.version}
    for key in _STRUCTURE_FIELDS:
        if dumped[key]:
            raw[key] = dumped[key]
    if schema.data:
        raw["data"] = [dump_data_record(record) for record in schema.data]
    return json.dumps(raw, indent=2, ensure_ascii=False)


def deserialize_schema(json_str: str) -> SchemaDocument:
    """Deserialize ``schema.json`` content.

    Raises
    ------
    ConfigurationError
        If the document is not valid JSON or not a valid schema document.
    """
    raw = _load_json(json_str, "schema document")
    try:
        return SchemaDocument.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Malformed schema document: {exc}") from exc

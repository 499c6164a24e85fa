"""Filesystem artifact store.

Layout under the store root::

    schema.json                      current SchemaDocument
    data.json | data.yaml            optional static seed document
    migrate/<version>_<comment>.json one MigrationArtifact per version

Seed documents are a list of data records.  A string entry is the path
(relative to the including document) of another seed document whose records
are loaded in its place.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from schema_engine.artifact.serializer import (
    deserialize_artifact,
    deserialize_schema,
    serialize_artifact,
    serialize_schema,
)
from schema_engine.errors import ConfigurationError, VersionConflictError
from schema_engine.models.artifact import MigrationArtifact
from schema_engine.models.schema import SchemaDocument
from schema_engine.models.seed import DataRecord

logger = logging.getLogger(__name__)

_ARTIFACT_NAME_RE = re.compile(r"^(?P<version>\d+)(?:_(?P<comment>.*))?\.json$")
_SLUG_RE = re.compile(r"[^A-Za-z0-9_-]+")

SEED_FILE_NAMES = ("data.json", "data.yaml", "data.yml")


def _slug(comment: str) -> str:
    return _SLUG_RE.sub("_", comment.strip()).strip("_")


class ArtifactStore:
    """Read and write migration artifacts, the current schema and seed data.

    Parameters
    ----------
    root:
        The store directory.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self.migrate_dir = self.root / "migrate"
        self.schema_path = self.root / "schema.json"

    # -- Discovery ---------------------------------------------------------------

    def exists(self) -> bool:
        return self.root.is_dir()

    def require(self) -> None:
        """Raise :class:`ConfigurationError` unless the store directory exists."""
        if not self.exists():
            raise ConfigurationError(f"Artifact store '{self.root}' does not exist.")

    def artifact_paths(self) -> dict[int, Path]:
        """Return ``{version: path}`` for every artifact, ordered by version."""
        if not self.migrate_dir.is_dir():
            return {}
        found: dict[int, Path] = {}
        for path in self.migrate_dir.glob("*.json"):
            match = _ARTIFACT_NAME_RE.match(path.name)
            if match is None:
                logger.warning("Ignoring unrecognised file in migration directory: %s", path.name)
                continue
            version = int(match.group("version"))
            if version in found:
                raise ConfigurationError(f"Duplicate artifacts for version {version}: {found[version].name}, {path.name}")
            found[version] = path
        return dict(sorted(found.items()))

    def versions(self) -> dict[int, str]:
        """Return ``{version: comment}`` as encoded in artifact file names."""
        result = {}
        for version, path in self.artifact_paths().items():
            comment = _ARTIFACT_NAME_RE.match(path.name).group("comment") or ""  # type: ignore[union-attr]
            result[version] = comment.replace("_", " ")
        return result

    def latest_version(self) -> int:
        versions = self.artifact_paths()
        return max(versions) if versions else 0

    # -- Artifacts -----------------------------------------------------------------

    def load_artifact(self, version: int) -> MigrationArtifact:
        """Load and validate one artifact.

        Raises
        ------
        ConfigurationError
            If the version is unknown or the artifact is malformed.
        """
        paths = self.artifact_paths()
        if version not in paths:
            raise ConfigurationError(f"Version {version} does not exist in '{self.migrate_dir}'.")
        path = paths[version]
        return deserialize_artifact(
            path.read_text(encoding="utf-8"),
            version=version,
            comment=self.versions()[version],
        )

    def write_artifact(self, artifact: MigrationArtifact) -> Path:
        """Persist *artifact*; never overwrites.

        Raises
        ------
        VersionConflictError
            If the version already exists or is not newer than the latest one.
        """
        latest = self.latest_version()
        if artifact.version <= latest:
            raise VersionConflictError(
                f"Version {artifact.version} is not newer than the latest stored version {latest}."
            )
        self.migrate_dir.mkdir(parents=True, exist_ok=True)
        slug = _slug(artifact.comment)
        path = self.migrate_dir / (f"{artifact.version}_{slug}.json" if slug else f"{artifact.version}.json")
        path.write_text(serialize_artifact(artifact), encoding="utf-8")
        logger.info("Wrote migration artifact %s", path)
        return path

    # -- Current schema --------------------------------------------------------------

    def load_schema(self) -> SchemaDocument | None:
        """Return the stored current schema, or ``None`` when there is none yet."""
        if not self.schema_path.is_file():
            return None
        return deserialize_schema(self.schema_path.read_text(encoding="utf-8"))

    def write_schema(self, schema: SchemaDocument) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        self.schema_path.write_text(serialize_schema(schema), encoding="utf-8")
        logger.info("Wrote schema document %s (version %d)", self.schema_path, schema.version)
        return self.schema_path

    # -- Seed data -------------------------------------------------------------------

    def seed_path(self) -> Path | None:
        for name in SEED_FILE_NAMES:
            path = self.root / name
            if path.is_file():
                return path
        return None

    def load_seed_data(self) -> list[DataRecord]:
        """Load the static seed document, expanding includes.  Empty when absent."""
        path = self.seed_path()
        if path is None:
            return []
        return load_seed_file(path)


def _parse_seed_document(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(text)
        return json.loads(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Unable to parse seed document '{path}': {exc}") from exc


def load_seed_file(path: Path, _seen: frozenset[Path] = frozenset()) -> list[DataRecord]:
    """Load the data records of a seed document (JSON or YAML).

    Raises
    ------
    ConfigurationError
        If a document cannot be parsed, an include is missing or circular, or
        a record is invalid.
    """
    resolved = path.resolve()
    if resolved in _seen:
        raise ConfigurationError(f"Circular seed document include: {path}")
    if not path.is_file():
        raise ConfigurationError(f"Seed document '{path}' does not exist.")

    raw = _parse_seed_document(path)
    if raw is None:
        return []
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        raise ConfigurationError(f"Seed document '{path}' must contain a list of data records.")

    records: list[DataRecord] = []
    for position, entry in enumerate(raw):
        if isinstance(entry, str):
            logger.debug("Including seed document %s from %s", entry, path)
            records.extend(load_seed_file(path.parent / entry, _seen | {resolved}))
            continue
        try:
            records.append(DataRecord.model_validate(entry))
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid data record #{position} in '{path}': {exc}") from exc
    return records

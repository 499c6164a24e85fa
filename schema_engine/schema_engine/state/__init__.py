"""Persisted state: the artifact store and the version ledger."""

from schema_engine.state.artifact_store import ArtifactStore, load_seed_file
from schema_engine.state.ledger import DEFAULT_LEDGER_TABLE, VersionLedger

__all__ = [
    "ArtifactStore",
    "DEFAULT_LEDGER_TABLE",
    "VersionLedger",
    "load_seed_file",
]

"""Artifact replay and direct schema bootstrap."""

from schema_engine.replay.bootstrap import create_schema
from schema_engine.replay.replayer import MigrationReplayer, ReplayState, ReplayStep, describe_action

__all__ = [
    "MigrationReplayer",
    "ReplayState",
    "ReplayStep",
    "create_schema",
    "describe_action",
]

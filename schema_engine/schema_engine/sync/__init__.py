"""Seed-data synchronization."""

from schema_engine.sync.data_sync import DataSynchronizer, SyncResult
from schema_engine.sync.macros import parse_criteria, resolve_macro, resolve_row_macros

__all__ = [
    "DataSynchronizer",
    "SyncResult",
    "parse_criteria",
    "resolve_macro",
    "resolve_row_macros",
]

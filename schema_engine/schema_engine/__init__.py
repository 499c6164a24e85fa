"""Relational schema manager: snapshot a database into reversible migration artifacts and replay them."""

from schema_engine.config import Settings, load_settings
from schema_engine.errors import (
    AmbiguousRenameWarning,
    ConfigurationError,
    DataSyncError,
    InspectionError,
    ReplayError,
    SchemaManagerError,
    VersionConflictError,
)
from schema_engine.manager import SchemaManager

__version__ = "0.1.0"

__all__ = [
    "AmbiguousRenameWarning",
    "ConfigurationError",
    "DataSyncError",
    "InspectionError",
    "ReplayError",
    "SchemaManager",
    "SchemaManagerError",
    "Settings",
    "VersionConflictError",
    "load_settings",
]

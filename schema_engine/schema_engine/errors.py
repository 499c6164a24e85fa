"""Exception taxonomy for the schema manager.

``ConfigurationError`` and ``InspectionError`` are fatal and raised before any
database mutation.  ``ReplayError`` and ``DataSyncError`` are raised after the
failing transaction has been rolled back.  ``AmbiguousRenameWarning`` is a
warning, not an error.
"""

from __future__ import annotations


class SchemaManagerError(Exception):
    """Base exception for all schema manager errors."""


class ConfigurationError(SchemaManagerError):
    """The artifact store is missing or an artifact document is malformed."""


class InspectionError(SchemaManagerError):
    """A schema inspector call failed (usually a permissions problem)."""


class VersionConflictError(SchemaManagerError):
    """A snapshot version collides with, or precedes, an existing version."""


class ReplayError(SchemaManagerError):
    """An action failed while replaying a migration artifact.

    Parameters
    ----------
    message:
        Human-readable description of the failure.
    version:
        The artifact version whose transaction was rolled back.
    direction:
        ``"up"`` or ``"down"``.
    """

    def __init__(self, message: str, version: int | None = None, direction: str | None = None) -> None:
        super().__init__(message)
        self.version = version
        self.direction = direction


class DataSyncError(SchemaManagerError):
    """A row mutation failed during data synchronization."""


class AmbiguousRenameWarning(UserWarning):
    """Table rename detection matched more than one candidate."""

"""dbschema CLI application -- Typer-based developer interface.

Provides commands to snapshot a database into a migration artifact, migrate
a database to a version, show the version status and sync seed data.
Human-readable output goes to *stderr* via Rich; ``--json`` writes a
machine-readable result to *stdout* so that pipelines can compose cleanly.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from schema_engine.config import load_settings
from schema_engine.errors import SchemaManagerError
from schema_engine.manager import SchemaManager
from schema_engine.models.diff import SchemaDiff
from schema_engine.telemetry.migration_log import configure_logging
from schema_cli.display import (
    display_diff,
    display_migration_log,
    display_status,
    display_sync_result,
)

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="dbschema",
    help="dbschema - snapshot database schemas into reversible migrations and replay them",
    no_args_is_help=True,
)
console = Console(stderr=True)

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_overrides: dict[str, Any] = {}


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="SQLAlchemy database URL (overrides SCHEMA_DATABASE_URL).",
    ),
    artifact_dir: Path | None = typer.Option(
        None,
        "--artifact-dir",
        help="Artifact store directory (overrides SCHEMA_ARTIFACT_DIR).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Log at DEBUG level to stderr.",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _overrides  # noqa: PLW0603
    _json_output = json_mode
    _overrides = {}
    if database_url is not None:
        _overrides["database_url"] = database_url
    if artifact_dir is not None:
        _overrides["artifact_dir"] = artifact_dir
    if debug:
        _overrides["debug"] = True


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _manager() -> SchemaManager:
    """Build a :class:`SchemaManager` from settings plus the global options."""
    settings = load_settings(**_overrides)
    configure_logging(structured=settings.structured_logging, debug=settings.debug)
    try:
        return SchemaManager.from_settings(settings)
    except Exception as exc:
        console.print(f"[red]Cannot connect to {settings.database_url}: {exc}[/red]")
        raise typer.Exit(code=3) from exc


def _log_payload(manager: SchemaManager) -> list[dict[str, Any]]:
    return [entry.model_dump(mode="json") for entry in manager.migration_log]


def _emit(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, default=str) + "\n")


def _fail(manager: SchemaManager, action: str, exc: Exception) -> typer.Exit:
    if _json_output:
        _emit({"ok": False, "error": str(exc), "log": _log_payload(manager)})
    else:
        display_migration_log(console, manager.migration_log)
        console.print(f"[red]Error during {action}: {exc}[/red]")
    return typer.Exit(code=3)


# ---------------------------------------------------------------------------
# snapshot
# ---------------------------------------------------------------------------


@app.command()
def snapshot(
    comment: str | None = typer.Option(
        None,
        "--comment",
        "-m",
        help="Comment stored with the new migration artifact.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show the detected changes without writing an artifact.",
    ),
) -> None:
    """Capture the live schema and write a migration artifact for the changes."""
    manager = _manager()
    try:
        result = manager.snapshot(comment=comment, dry_run=dry_run)
    except SchemaManagerError as exc:
        raise _fail(manager, "snapshot", exc) from exc

    if _json_output:
        payload: dict[str, Any] = {"ok": True, "log": _log_payload(manager)}
        if isinstance(result, SchemaDiff):
            payload["changes"] = result.counts()
        else:
            payload["changed"] = result
            payload["version"] = manager.get_latest_version()
        _emit(payload)
        return

    display_migration_log(console, manager.migration_log)
    if isinstance(result, SchemaDiff):
        display_diff(console, result)
    elif result:
        console.print(f"Snapshot written as version [bold]{manager.get_latest_version()}[/bold]")
    else:
        console.print("[dim]No changes detected.[/dim]")


# ---------------------------------------------------------------------------
# migrate
# ---------------------------------------------------------------------------


@app.command()
def migrate(
    version: int | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Target version (default: the newest artifact).",
    ),
    force_data_sync: bool = typer.Option(
        False,
        "--force-data-sync",
        help="Sync seed data even when no version is replayed.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Log every action without changing the database.",
    ),
    keep_tables: bool = typer.Option(
        False,
        "--keep-tables",
        help="Initialise a non-empty database, keeping identical existing tables.",
    ),
) -> None:
    """Bring the database to a version and sync seed data."""
    manager = _manager()
    try:
        ok = manager.migrate(
            version=version,
            force_data_sync=force_data_sync,
            dry_run=dry_run,
            keep_tables=keep_tables,
        )
    except SchemaManagerError as exc:
        raise _fail(manager, "migration", exc) from exc

    if _json_output:
        _emit({"ok": ok, "version": manager.get_version(), "log": _log_payload(manager)})
    else:
        display_migration_log(console, manager.migration_log)
        if ok:
            console.print(f"Database is at version [bold]{manager.get_version() or '(none)'}[/bold]")
        else:
            console.print("[red]Migration failed and was rolled back; see the log above.[/red]")

    if not ok:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@app.command()
def status() -> None:
    """Show the database version and the known migration artifacts."""
    manager = _manager()
    try:
        current = manager.get_version()
        versions = manager.get_versions()
        applied = manager.ledger.applied_versions()
    except SchemaManagerError as exc:
        raise _fail(manager, "status", exc) from exc

    if _json_output:
        _emit(
            {
                "current": current,
                "latest": manager.get_latest_version(),
                "missing": manager.get_missing_versions(),
                "versions": [{"version": v, "comment": c, "applied": v in applied} for v, c in versions.items()],
            }
        )
        return

    display_status(console, current, versions, applied)


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


@app.command()
def sync(
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Evaluate the seed data and roll the changes back.",
    ),
) -> None:
    """Reconcile the store's seed data with the database."""
    manager = _manager()
    try:
        result = manager.sync_data(dry_run=dry_run)
    except SchemaManagerError as exc:
        raise _fail(manager, "data sync", exc) from exc

    if _json_output:
        _emit({"ok": True, "result": result.model_dump(), "log": _log_payload(manager)})
        return

    display_migration_log(console, manager.migration_log)
    display_sync_result(console, result)

"""Rich output formatting for the dbschema CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from schema_engine.models.diff import SchemaDiff
    from schema_engine.sync.data_sync import SyncResult
    from schema_engine.telemetry.migration_log import MigrationLogEntry


# ---------------------------------------------------------------------------
# Level colour mapping
# ---------------------------------------------------------------------------

_LEVEL_COLOURS: dict[str, str] = {
    "DEBUG": "dim",
    "INFO": "white",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold red",
}


def _coloured_level(level: str) -> str:
    """Return a Rich markup string with the log level colour-coded."""
    colour = _LEVEL_COLOURS.get(level, "white")
    return f"[{colour}]{level}[/{colour}]"


# ---------------------------------------------------------------------------
# Migration log
# ---------------------------------------------------------------------------


def display_migration_log(console: Console, entries: list[MigrationLogEntry]) -> None:
    """Render the migration log of one manager call as a table."""
    if not entries:
        console.print("[dim]Nothing was logged.[/dim]")
        return

    table = Table(title="Migration Log", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Time", style="dim")
    table.add_column("Level")
    table.add_column("Message")

    for entry in entries:
        table.add_row(
            entry.timestamp.strftime("%H:%M:%S"),
            _coloured_level(entry.level),
            entry.message,
        )

    console.print(table)


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


def display_status(
    console: Console,
    current: int,
    versions: dict[int, str],
    applied: list[int],
) -> None:
    """Render the database version and every known artifact.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    current:
        The database's current version (``0`` when nothing is applied).
    versions:
        Known artifact versions mapped to their comments.
    applied:
        Versions recorded in the database's ledger.
    """
    latest = max(versions) if versions else 0
    state = "[green]up to date[/green]" if current and current == latest else "[yellow]behind[/yellow]"
    if not versions:
        state = "[dim]no artifacts[/dim]"
    console.print(
        Panel(
            "\n".join(
                [
                    f"[bold]Current version:[/bold] {current or '(none)'}",
                    f"[bold]Latest version:[/bold]  {latest or '(none)'}",
                    f"[bold]State:[/bold]           {state}",
                ]
            ),
            title="Schema Status",
            border_style="blue",
        )
    )

    if not versions:
        return

    applied_set = set(applied)
    table = Table(title="Migration Artifacts", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Version", style="bold")
    table.add_column("Comment")
    table.add_column("Applied", justify="center")

    for version, comment in versions.items():
        mark = "[green]yes[/green]" if version in applied_set else "[dim]no[/dim]"
        table.add_row(str(version), comment or "-", mark)

    console.print(table)


# ---------------------------------------------------------------------------
# Diff & sync summaries
# ---------------------------------------------------------------------------


def display_diff(console: Console, diff: SchemaDiff) -> None:
    """Render per-kind, per-operation action counts of a schema diff."""
    counts = diff.counts()
    if not counts:
        console.print("[dim]No changes.[/dim]")
        return

    table = Table(title="Schema Changes", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Kind", style="bold")
    table.add_column("Operation")
    table.add_column("Count", justify="right")

    for kind, ops in counts.items():
        for op, count in ops.items():
            table.add_row(kind, op, str(count))

    console.print(table)

    for table_name, columns in diff.unsupported.items():
        console.print(
            f"[yellow]Ignored column changes on '{table_name}': {', '.join(columns)}[/yellow]"
        )


def display_sync_result(console: Console, result: SyncResult) -> None:
    """Render data sync mutation counts on one line."""
    console.print(
        f"Inserted [bold]{result.inserted}[/bold], updated [bold]{result.updated}[/bold], "
        f"deleted [bold]{result.deleted}[/bold], truncated [bold]{result.truncated}[/bold]"
    )

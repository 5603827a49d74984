"""Terminal output for the pysiasync CLI."""

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .sync.events import SyncEvent, SyncEventKind


class OutputFormatter:
    """Writes human-readable or JSON output through rich consoles.

    Informational messages are suppressed in quiet and JSON mode, errors
    always go to stderr.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console(highlight=False)
        self.err_console = Console(stderr=True, highlight=False)

    @property
    def _silent(self) -> bool:
        return self.quiet or self.json_output

    def info(self, message: str) -> None:
        if not self._silent:
            self.console.print(escape(message))

    def success(self, message: str) -> None:
        if not self._silent:
            self.console.print(f"[green]{escape(message)}[/green]")

    def warning(self, message: str) -> None:
        if not self._silent:
            self.err_console.print(f"[yellow]{escape(message)}[/yellow]")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]Error:[/red] {escape(message)}")

    def output_json(self, data: Any) -> None:
        self.console.print_json(json.dumps(data, default=str))

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a two column summary table.

        Args:
            title: Table title
            items: (label, value) rows
        """
        if self.json_output:
            self.output_json({label: value for label, value in items})
            return
        table = Table(title=title, show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        for label, value in items:
            table.add_row(label, value)
        self.console.print(table)

    def event(self, event: SyncEvent) -> None:
        """Event sink printing what the sync engine does."""
        prefix = "(dry run) " if event.dry_run else ""
        detail = f" ({event.message})" if event.message else ""
        if event.kind in (
            SyncEventKind.FAILED,
            SyncEventKind.ABANDONED,
            SyncEventKind.WATCH_ERROR,
        ):
            self.error(f"{prefix}{event.kind.value} {event.path}{detail}: {event.error}")
        elif event.kind == SyncEventKind.RETRYING:
            self.warning(f"{prefix}{event.path}: {event.error}{detail}")
        elif event.kind == SyncEventKind.UPLOADED:
            self.success(f"{prefix}Uploaded {event.path}")
        elif event.kind == SyncEventKind.DELETED:
            self.success(f"{prefix}Deleted {event.path}")
        elif event.kind == SyncEventKind.CHANGED:
            self.info(f"{prefix}Changed {event.path}")

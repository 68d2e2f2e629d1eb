"""Output formatting for progress narration and command results."""

import json
import sys
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Writes human-readable progress lines, tables and JSON.

    ``info``, ``success`` and ``print`` are suppressed in quiet mode;
    warnings and errors are always shown.
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        """Initialize output formatter.

        Args:
            json_output: Emit command results as JSON
            quiet: Suppress non-essential output
            console: Console for regular output (defaults to stdout)
            err_console: Console for errors (defaults to stderr)
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def print(self, message: str = "") -> None:
        """Print a plain line."""
        if self.quiet:
            return
        self.console.print(message, markup=False, highlight=False)

    def info(self, message: str) -> None:
        """Print an informational line."""
        if self.quiet:
            return
        self.console.print(message, markup=False, highlight=False)

    def success(self, message: str) -> None:
        """Print a success line."""
        if self.quiet:
            return
        self.console.print(message, style="green", markup=False, highlight=False)

    def warning(self, message: str) -> None:
        """Print a warning line."""
        self.err_console.print(message, style="yellow", markup=False, highlight=False)

    def error(self, message: str) -> None:
        """Print an error line."""
        self.err_console.print(message, style="bold red", markup=False, highlight=False)

    def output_json(self, data: Any) -> None:
        """Write data as JSON to stdout."""
        sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")

    def print_table(
        self,
        headers: list[str],
        rows: list[list[Any]],
        show_header: bool = True,
    ) -> None:
        """Print rows as an aligned table.

        Args:
            headers: Column headers
            rows: Data rows
            show_header: Whether to render the header row
        """
        table = Table(show_header=show_header, box=None, pad_edge=False)
        for header in headers:
            table.add_column(header, overflow="fold")
        for row in rows:
            table.add_row(*[str(cell) for cell in row])
        self.console.print(table)

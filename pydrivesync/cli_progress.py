"""CLI progress display for sync transfers.

This module provides a Rich-based progress display whose ``update`` method
is passed to the sync engine as its progress hook.
"""

from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)


class TransferProgressDisplay:
    """Rich-based progress bar for the file currently being transferred.

    The engine transfers one file at a time; a new relative path replaces
    the bar of the previous one.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        """Initialize the progress display.

        Args:
            console: Console to render on (defaults to stderr)
        """
        self._console = console or Console(stderr=True)
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None
        self._current_path: Optional[str] = None

    def update(self, relative_path: str, transferred: int, total: int) -> None:
        """Handle a progress event from the engine.

        Args:
            relative_path: File being transferred
            transferred: Bytes transferred so far
            total: Total bytes of the file (0 if unknown)
        """
        if self._progress is None:
            return

        if relative_path != self._current_path:
            if self._task is not None:
                self._progress.remove_task(self._task)
            self._task = self._progress.add_task(
                relative_path, total=total or None, completed=transferred
            )
            self._current_path = relative_path
            return

        if self._task is not None:
            self._progress.update(
                self._task, completed=transferred, total=total or None
            )

    def __enter__(self) -> "TransferProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            console=self._console,
            transient=True,
            refresh_per_second=4,
        )
        self._progress.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._progress is not None:
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._task = None
            self._current_path = None

"""
FIMCheck - Rich CLI view.

Progress bar driven by scan observer hooks, and result tables for the
finished scan. Long lists are cut at a limit with a "... and N more" row.
"""

from typing import Any, Optional, Sequence

from rich import box as rich_box
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskID, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from fimcheck.core.models import Classification, ScanResult
from fimcheck.core.observers import ScanObserver

_STYLE_BY_CLASSIFICATION = {
    Classification.MODIFIED: "bold yellow",
    Classification.MISSING: "bold red",
    Classification.UNKNOWN: "cyan",
}

_TITLES = {
    Classification.MODIFIED: "Modified files",
    Classification.MISSING: "Missing files",
    Classification.UNKNOWN: "Unknown files",
}


class RichProgressObserver(ScanObserver):
    """Drives a rich Progress bar from scan_started/progress hooks."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console(stderr=True)
        self.progress_bar = Progress(
            TextColumn("[bold]Scanning[/]"),
            BarColumn(),
            TaskProgressColumn(),
            TextColumn("{task.fields[files]} files"),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        )
        self._task: Optional[TaskID] = None

    def scan_started(self, session_id: str, total: int) -> None:
        self.progress_bar.start()
        self._task = self.progress_bar.add_task("scan", total=100, files=total)

    def progress(self, session_id: str, value: float) -> None:
        if self._task is not None:
            self.progress_bar.update(self._task, completed=value)

    def scan_finished(self, session_id: str, result: ScanResult) -> None:
        self.stop()

    def stop(self) -> None:
        if self._task is not None:
            self.progress_bar.stop()
            self._task = None


def _classification_table(classification: Classification, paths: Sequence[str], limit: int) -> Panel:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(overflow="fold")
    for p in paths[:limit]:
        table.add_row(p)
    if len(paths) > limit:
        table.add_row(Text(f"... and {len(paths) - limit} more", style="dim"))
    return Panel(
        table,
        title=f"[bold] {_TITLES[classification]} ({len(paths)}) [/]",
        border_style=_STYLE_BY_CLASSIFICATION[classification],
        box=rich_box.ROUNDED,
        padding=(0, 1),
    )


def _summary_panel(result: ScanResult, meta: dict[str, Any]) -> Panel:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()
    table.add_row("Checksum source", str(meta.get("source") or "-"))
    table.add_row("Version", str(meta.get("version") or "-"))
    table.add_row("Files scanned", str(result.scanned))
    table.add_row("Baseline entries", str(result.manifest_size))
    table.add_row("Modified", str(len(result.modified)))
    table.add_row("Missing", str(len(result.missing)))
    table.add_row("Unknown", str(len(result.unknown)))
    if result.is_clean:
        table.add_row("Status", Text("No changes detected", style="bold green"))
    else:
        table.add_row("Status", Text(f"{result.total_findings} findings", style="bold red"))
    return Panel(
        table,
        title="[bold] Scan Summary [/]",
        border_style="cyan",
        box=rich_box.ROUNDED,
        padding=(0, 1),
    )


def render_results(result: ScanResult, limit: int = 10, **meta: Any) -> RenderableType:
    """Summary panel followed by one panel per non-empty classification."""
    parts: list[RenderableType] = [_summary_panel(result, meta)]
    for classification, paths in (
        (Classification.MODIFIED, result.modified),
        (Classification.MISSING, result.missing),
        (Classification.UNKNOWN, result.unknown),
    ):
        if paths:
            parts.append(_classification_table(classification, paths, max(1, limit)))
    return Group(*parts)

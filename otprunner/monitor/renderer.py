"""Rich terminal renderer for otp-runner status files.

Turns a ``StatusRecord`` into a Rich panel, either once or continuously
(``Rich.Live``) while a run is in progress.  The renderer never writes the
status file; every live refresh re-reads it.

Color scheme
------------
- red     : error
- green   : outcome reached
- yellow  : in progress
"""

from __future__ import annotations

import time
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from otprunner.models.status import StatusRecord


def load_status(path: str | Path) -> StatusRecord:
    """Read a status JSON file written by the progress ledger."""
    return StatusRecord.model_validate_json(Path(path).read_text(encoding="utf-8"))


def is_finished(status: StatusRecord) -> bool:
    """Whether *status* is a final state of its run.

    A build-only run without a graph upload ends at the 90% build checkpoint,
    so a built graph at 90% or more counts as finished. In a run that also
    serves, that percentage is only reached once the server has started.
    """
    if status.error or status.server_started or status.pct_progress >= 100:
        return True
    return status.graph_built and status.pct_progress >= 90


def _flag(value: bool) -> str:
    return "[green]yes[/green]" if value else "[dim]no[/dim]"


class StatusRenderer:
    """Renders ``StatusRecord`` as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render_status(self, status: StatusRecord, *, source: str | None = None) -> Panel:
        """Render *status* as a Panel; usable with ``print`` or ``Live``."""
        if status.error:
            headline = f"[bold red]FAILED[/bold red]  {status.message}"
            border = "red"
        elif is_finished(status):
            headline = f"[bold green]DONE[/bold green]  {status.message}"
            border = "green"
        else:
            headline = f"[yellow]RUNNING[/yellow]  {status.message}"
            border = "yellow"

        table = Table(show_header=False, box=None, pad_edge=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row(
            "Files",
            f"{status.num_files_downloaded} / {status.total_files_to_download}",
        )
        table.add_row("Graph built", _flag(status.graph_built))
        table.add_row("Graph uploaded", _flag(status.graph_uploaded))
        table.add_row("Server started", _flag(status.server_started))
        if status.nonce:
            table.add_row("Nonce", f"[dim]{status.nonce}[/dim]")

        progress = Table.grid(expand=True)
        progress.add_column(ratio=1)
        progress.add_column(justify="right", width=8)
        progress.add_row(
            ProgressBar(total=100, completed=status.pct_progress),
            f"{status.pct_progress:.0f}%",
        )

        return Panel(
            Group(Text.from_markup(headline), Text(""), progress, Text(""), table),
            title="[bold]otp-runner[/bold]",
            subtitle=source,
            border_style=border,
            padding=(1, 2),
        )

    def print_status(self, status: StatusRecord, *, source: str | None = None) -> None:
        self.console.print(self.render_status(status, source=source))

    def render_live(self, path: str | Path, *, refresh_hz: float = 1.0) -> StatusRecord | None:
        """Re-render the status file at *path* until the run is finished.

        Stops once the status is final (see ``is_finished``) or on Ctrl+C.
        Returns the last status read.
        """
        interval = 1.0 / max(refresh_hz, 0.1)
        last: StatusRecord | None = None

        with Live(console=self.console, refresh_per_second=refresh_hz) as live:
            try:
                while True:
                    try:
                        last = load_status(path)
                    except (OSError, ValidationError):
                        # the file may be missing or mid-write
                        time.sleep(interval)
                        continue
                    live.update(self.render_status(last, source=str(path)))
                    if is_finished(last):
                        return last
                    time.sleep(interval)
            except KeyboardInterrupt:
                return last

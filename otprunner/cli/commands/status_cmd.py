"""``otp-runner status [STATUS.json]`` — show the progress of a run.

Reads the status file written by a run.  With ``--live`` the display keeps
refreshing until the run finishes or fails.
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console

from otprunner.config import settings
from otprunner.monitor.renderer import StatusRenderer, load_status

console = Console()


def status_cmd(
    status_file: Path = typer.Argument(
        None,
        dir_okay=False,
        help="Status file to read (defaults to OTPRUNNER_DEFAULT_STATUS_FILE).",
    ),
    live: bool = typer.Option(
        False,
        "--live",
        "-l",
        help="Keep refreshing until the run finishes (Ctrl+C to exit).",
    ),
    refresh_hz: float = typer.Option(
        1.0,
        "--refresh",
        "-r",
        help="Refresh rate in Hz for live mode.",
    ),
) -> None:
    """Show the status of a run."""
    path = status_file or settings.default_status_file
    renderer = StatusRenderer(console=console)

    if live:
        last = renderer.render_live(path, refresh_hz=refresh_hz)
        if last is not None and last.error:
            raise typer.Exit(code=1)
        return

    if not path.exists():
        console.print(f"[bold red]Status file not found:[/bold red] {path}")
        raise typer.Exit(code=1)
    try:
        status = load_status(path)
    except ValidationError as exc:
        console.print(f"[bold red]Invalid status file:[/bold red] {path}")
        console.print(f"[dim]{exc}[/dim]")
        raise typer.Exit(code=1)

    renderer.print_status(status, source=str(path))
    if status.error:
        raise typer.Exit(code=1)

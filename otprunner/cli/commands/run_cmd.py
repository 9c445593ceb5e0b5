"""``otp-runner run MANIFEST.json`` — execute one run.

Downloads inputs, builds and/or serves the graph and uploads artifacts as
the manifest describes.  Exits 0 once the run has finished (leaving a
started server running in the background) and 1 if the run failed.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from otprunner.core.orchestrator import Orchestrator, RunFailed
from otprunner.logging_config import setup_logging

console = Console(stderr=True)


def run_cmd(
    manifest: Path = typer.Argument(
        ...,
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
        help="Path to the manifest.json describing the run.",
    ),
    log_level: str = typer.Option(
        None,
        "--log-level",
        "-L",
        help="Console log level (defaults to OTPRUNNER_LOG_LEVEL).",
    ),
) -> None:
    """Run OpenTripPlanner as described by a manifest."""
    if manifest.suffix.lower() != ".json":
        console.print("[bold red]Must specify path to a JSON manifest file![/bold red]")
        raise typer.Exit(code=1)

    setup_logging(log_level)
    orchestrator = Orchestrator(manifest.read_bytes())
    try:
        orchestrator.run_and_exit()
    except RunFailed as exc:
        console.print(f"[bold red]otp-runner failed:[/bold red] {exc.message}")
        raise typer.Exit(code=1)

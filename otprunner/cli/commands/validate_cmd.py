"""``otp-runner validate MANIFEST.json`` — check a manifest without running it.

Prints the manifest with all defaults filled in, or every problem found.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

from otprunner.core.manifest_validator import ConfigValidationError, validate_manifest

console = Console()


def validate_cmd(
    manifest: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="Path to the manifest.json to validate.",
    ),
) -> None:
    """Validate a manifest and show the effective configuration."""
    try:
        validated = validate_manifest(manifest.read_bytes())
    except ConfigValidationError as exc:
        console.print(
            Panel(
                "\n".join(f"[red]-[/red] {error}" for error in exc.errors),
                title="[bold red]The following errors were found in the manifest.json file[/bold red]",
                border_style="red",
                padding=(1, 2),
            )
        )
        raise typer.Exit(code=1)

    console.print(f"[bold green]{manifest} is valid![/bold green]")
    console.print(
        Syntax(validated.model_dump_json(by_alias=True, indent=2), "json", word_wrap=True)
    )

"""Main Typer application — imports and registers all CLI commands.

Entry point: ``otp-runner`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import json

import typer

from otprunner.cli.commands.run_cmd import run_cmd
from otprunner.cli.commands.status_cmd import status_cmd
from otprunner.cli.commands.validate_cmd import validate_cmd

app = typer.Typer(
    name="otp-runner",
    help="otp-runner: download inputs, build and serve OpenTripPlanner graphs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="run", help="Run OpenTripPlanner as described by a manifest.json.")(run_cmd)
app.command(name="validate", help="Validate a manifest.json without running it.")(validate_cmd)
app.command(name="status", help="Show the status file of a run.")(status_cmd)


@app.command(name="schema", help="Print the JSON schema of manifest.json.")
def schema_cmd() -> None:
    """Print the manifest JSON schema, including every default."""
    from otprunner.models.manifest import Manifest

    typer.echo(json.dumps(Manifest.model_json_schema(by_alias=True), indent=2))


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

"""otp-runner CLI — Typer-based command-line interface.

Provides the ``otp-runner`` command with subcommands for running a
manifest, validating one, showing a run's status file and printing the
manifest schema.

All output uses Rich for formatted terminal display.
"""

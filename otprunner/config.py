"""Process-wide runner settings — env-driven.

Per-run behaviour (what to download, build, serve and upload) comes from
the manifest.  These settings cover how the runner itself behaves on a
host: which binaries to invoke, how often supervisors poll, and where
artifacts go before a manifest has been validated.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class RunnerSettings(BaseSettings):
    """Runner settings with environment variable overrides.

    All settings can be overridden via OTPRUNNER_* environment variables
    or a .env file in the working directory.

    Examples
    --------
    Override via environment::

        export OTPRUNNER_LOG_LEVEL=DEBUG
        export OTPRUNNER_JAVA_BINARY=/usr/lib/jvm/java-17/bin/java
        export OTPRUNNER_POLL_INTERVAL_SECONDS=0.5
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="OTPRUNNER_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"

    # External binaries
    java_binary: str = "java"
    aws_cli: str = "aws"

    # Supervision
    poll_interval_seconds: float = 1.0
    fail_settle_seconds: float = 1.0
    log_window_lines: int = 100
    status_message_max_length: int = 60

    # Network
    instance_metadata_url: str = "http://169.254.169.254/latest/meta-data/instance-id"
    http_timeout_seconds: float = 60.0

    # Fallback locations used until a manifest has been validated
    default_status_file: Path = Path("status.json")
    default_runner_log_file: Path = Path("otp-runner.log")

    # Engine heap sizing: all memory minus this reserve, but at least the minimum
    reserved_system_memory_kb: int = 2097152
    min_engine_memory_kb: int = 1500000


# Module-level singleton. Import as `from otprunner.config import settings`
settings = RunnerSettings()

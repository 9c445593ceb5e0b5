"""Run status record — the document written to ``statusFileLocation``.

The status file is polled by whatever launched the run (datatools-server),
so its keys are a contract: exactly the fields below, camelCase, with
``nonce`` only present when the manifest supplied one.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


class StatusRecord(BaseModel):
    """Mutable progress record for one run.

    Only ``otprunner.core.progress.ProgressLedger`` mutates this record.
    Invariants: ``pct_progress`` never decreases while the run succeeds and
    ``num_files_downloaded <= total_files_to_download``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    error: bool = False
    message: str = "Initializing..."
    num_files_downloaded: int = Field(default=0, ge=0)
    total_files_to_download: int = Field(default=0, ge=0)
    pct_progress: float = Field(default=0, ge=0, le=100)
    graph_built: bool = False
    graph_uploaded: bool = False
    server_started: bool = False
    nonce: str | None = None

    @field_serializer("pct_progress")
    def _whole_percent(self, value: float) -> float | int:
        # checkpoints are written as integers, download interpolation is not
        return int(value) if float(value).is_integer() else value

    def to_json(self) -> str:
        """Serialize with the status file's key names."""
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)

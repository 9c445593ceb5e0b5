"""Run manifest model — the validated, immutable configuration of one run.

A manifest is supplied as a JSON document with camelCase keys (the format
datatools-server writes).  Attribute names are snake_case; the JSON keys
are produced by the camelCase alias generator, with explicit aliases
where the key does not follow the generator's casing.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class OtpVersion(str, Enum):
    """Supported OpenTripPlanner major versions."""

    V1 = "1.x"
    V2 = "2.x"


class DownloadItem(BaseModel):
    """A remote file to place in the graph folder before building."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    uri: str
    name: str | None = None  # defaults to the last path segment of the URI


class Manifest(BaseModel):
    """Validated run configuration.

    Defaults are filled in during validation, so every consumer sees a
    fully populated manifest.  Cross-field rules (e.g. uploads requiring
    ``s3UploadPath``) live in ``otprunner.core.manifest_validator``.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    base_folder: str = "/var/otp/graphs"
    base_folder_downloads: list[DownloadItem] = []
    build_config_json: str | None = Field(default=None, alias="buildConfigJSON")
    build_graph: bool = False
    build_log_file: str = "otp-build.log"
    graph_obj_uri: str | None = None
    jar_file: str = "otp.jar"
    jar_uri: str
    nonce: str | None = None
    otp_runner_log_file: str = "otp-runner.log"
    otp_version: OtpVersion = OtpVersion.V1
    prefix_log_uploads_with_instance_id: bool = False
    router_config_json: str | None = Field(default=None, alias="routerConfigJSON")
    router_name: str = "default"
    run_server: bool = False
    s3_upload_path: str | None = None
    server_log_file: str = "otp-server.log"
    server_startup_timeout_seconds: int = Field(default=300, ge=0)
    status_file_location: str = "status.json"
    upload_graph: bool = False
    upload_graph_build_logs: bool = False
    upload_graph_build_report: bool = False
    upload_otp_runner_logs: bool = False
    upload_server_startup_logs: bool = False

    @property
    def target_folder(self) -> Path:
        """Folder receiving downloaded inputs and the built graph.

        OTP 2.x reads and writes directly in the base folder; OTP 1.x
        expects one subfolder per router.
        """
        from otprunner.models.engine import get_engine_profile

        if get_engine_profile(self.otp_version).router_subfolder:
            return Path(self.base_folder) / self.router_name
        return Path(self.base_folder)

    @property
    def graph_path(self) -> Path:
        """Where the engine writes (build) or reads (serve) the graph."""
        from otprunner.models.engine import get_engine_profile

        return self.target_folder / get_engine_profile(self.otp_version).graph_filename

    @property
    def s3_upload_prefix(self) -> str:
        return (self.s3_upload_path or "").rstrip("/")

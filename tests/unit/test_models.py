"""Tests for otp-runner data models."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from otprunner.models import (
    ENGINE_PROFILES,
    DownloadTask,
    Manifest,
    OtpVersion,
    StatusRecord,
)
from otprunner.models.engine import get_engine_profile


class TestManifest:
    def test_camel_case_keys(self):
        manifest = Manifest.model_validate(
            {
                "jarUri": "s3://b/otp.jar",
                "baseFolder": "/data/graphs",
                "routerName": "nyc",
                "serverStartupTimeoutSeconds": 60,
            }
        )
        assert manifest.base_folder == "/data/graphs"
        assert manifest.server_startup_timeout_seconds == 60

    def test_frozen(self):
        manifest = Manifest(jar_uri="s3://b/otp.jar")
        with pytest.raises(ValidationError):
            manifest.build_graph = True

    def test_target_folder_otp1_nests_router(self):
        manifest = Manifest(jar_uri="s3://b/otp.jar", base_folder="/g", router_name="nyc")
        assert manifest.target_folder == Path("/g/nyc")
        assert manifest.graph_path == Path("/g/nyc/Graph.obj")

    def test_target_folder_otp2_is_base(self):
        manifest = Manifest(jar_uri="s3://b/otp.jar", base_folder="/g", otp_version="2.x")
        assert manifest.target_folder == Path("/g")
        assert manifest.graph_path == Path("/g/graph.obj")

    def test_s3_upload_prefix_drops_trailing_slash(self):
        manifest = Manifest(jar_uri="s3://b/otp.jar", s3_upload_path="s3://b/runs/1/")
        assert manifest.s3_upload_prefix == "s3://b/runs/1"

    def test_dump_uses_manifest_keys(self):
        manifest = Manifest(jar_uri="s3://b/otp.jar", build_config_json="{}")
        dumped = manifest.model_dump(by_alias=True)
        assert dumped["buildConfigJSON"] == "{}"
        assert "uploadOtpRunnerLogs" in dumped


class TestEngineProfiles:
    def test_every_version_has_a_profile(self):
        assert set(ENGINE_PROFILES) == set(OtpVersion)

    def test_register_failure_marker_renders_router(self):
        marker = get_engine_profile(OtpVersion.V1).failure_markers[0]
        assert marker.render(router_name="nyc") == "Can't register router ID 'nyc', no graph."

    @pytest.mark.parametrize(
        ("version", "graph_loaded"),
        [(OtpVersion.V1, "Main graph read."), (OtpVersion.V2, "Transit loaded.")],
    )
    def test_ready_markers(self, version: OtpVersion, graph_loaded: str):
        patterns = [m.pattern for m in get_engine_profile(version).ready_markers]
        assert patterns == ["Grizzly server running", graph_loaded]


class TestStatusRecord:
    def test_initial_message(self):
        assert StatusRecord().message == "Initializing..."

    def test_nonce_omitted_when_absent(self):
        assert "nonce" not in json.loads(StatusRecord().to_json())

    def test_pct_bounds(self):
        status = StatusRecord()
        with pytest.raises(ValidationError):
            status.pct_progress = 101

    def test_checkpoint_percentages_are_written_as_integers(self):
        assert '"pctProgress": 90,' in StatusRecord(pct_progress=90.0).to_json()
        assert json.loads(StatusRecord(pct_progress=100).to_json())["pctProgress"] == 100

    def test_interpolated_percentages_keep_fraction(self):
        status = StatusRecord(pct_progress=10 + 40 / 3)
        assert json.loads(status.to_json())["pctProgress"] == pytest.approx(23.333, abs=1e-3)


class TestDownloadTask:
    def test_frozen(self):
        task = DownloadTask(dest="otp.jar", uri="s3://b/otp.jar")
        with pytest.raises(ValidationError):
            task.uri = "s3://b/other.jar"

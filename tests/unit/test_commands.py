"""Tests for engine command lines."""

from __future__ import annotations

from otprunner.config import RunnerSettings
from otprunner.engine.commands import (
    base_engine_args,
    build_args,
    engine_memory_kb,
    serve_args,
)
from otprunner.models.manifest import Manifest

_GB = 1024**3


def _manifest(**kwargs) -> Manifest:
    return Manifest(
        jar_uri="s3://bucket/otp.jar",
        base_folder="/var/otp/graphs",
        build_graph=True,
        **kwargs,
    )


class TestMemory:
    def test_leaves_reserve_for_the_os(self):
        # 16 GB host: 17179869.184 kB - 2097152 kB
        assert engine_memory_kb(16 * _GB, reserved_kb=2097152, min_kb=1500000) == 15082717

    def test_small_hosts_get_the_minimum(self):
        assert engine_memory_kb(2 * _GB, reserved_kb=2097152, min_kb=1500000) == 1500000

    def test_base_args(self):
        settings = RunnerSettings(_env_file=None)
        args = base_engine_args("otp.jar", total_bytes=16 * _GB, settings=settings)
        assert args == ["-jar", "-Xmx15082717k", "otp.jar"]


class TestBuildArgs:
    def test_otp1(self):
        args = build_args(_manifest(), total_bytes=16 * _GB)
        assert args[3:] == ["--build", "/var/otp/graphs/default"]

    def test_otp2(self):
        args = build_args(_manifest(otp_version="2.x"), total_bytes=16 * _GB)
        assert args[3:] == ["--build", "--save", "--abortOnUnknownConfig", "/var/otp/graphs"]


class TestServeArgs:
    def test_otp1(self):
        args = serve_args(_manifest(router_name="nyc"), total_bytes=16 * _GB)
        assert args[3:] == ["--server", "--graphs", "/var/otp/graphs", "--router", "nyc"]

    def test_otp2(self):
        args = serve_args(_manifest(otp_version="2.x"), total_bytes=16 * _GB)
        assert args[3:] == ["--load", "/var/otp/graphs"]

    def test_jar_file_is_passed_through(self):
        args = serve_args(_manifest(jar_file="/opt/otp-1.5.jar"), total_bytes=16 * _GB)
        assert args[2] == "/opt/otp-1.5.jar"

"""Shared test fixtures for otp-runner."""

from __future__ import annotations

import os
import shutil
import stat
import sys
import textwrap
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import pytest

from otprunner.bridge.transport import Transport, TransportError
from otprunner.config import RunnerSettings
from otprunner.core.orchestrator import Orchestrator
from otprunner.logging_config import detach_run_log


@pytest.fixture(autouse=True)
def _close_run_log() -> Iterator[None]:
    """Never let one test's run log handler leak into the next."""
    yield
    detach_run_log()


# ---------------------------------------------------------------------------
# Fake engine standing in for `java -jar otp.jar ...`
# ---------------------------------------------------------------------------

_FAKE_ENGINE = """\
#!{python}
import os
import sys
import time

args = sys.argv[1:]

if "--build" in args:
    behaviour = os.environ.get("FAKE_ENGINE_BUILD", "ok")
    target = args[-1]
    step_delay = float(os.environ.get("FAKE_ENGINE_STEP_DELAY", "0"))
    for i in range(3):
        time.sleep(step_delay)
        print(f"12:00:0{{i}}.000 INFO (GraphBuilder.java:{{i}}) build step {{i}}", flush=True)
    if behaviour == "fail":
        print("12:00:04.000 ERROR (GraphBuilder.java:99) out of cheese", flush=True)
        sys.exit(2)
    graph_name = "graph.obj" if "--save" in args else "Graph.obj"
    with open(os.path.join(target, graph_name), "w") as f:
        f.write("graph")
    os.makedirs(os.path.join(target, "report"), exist_ok=True)
    with open(os.path.join(target, "report", "index.html"), "w") as f:
        f.write("<html></html>")
    sys.exit(0)

behaviour = os.environ.get("FAKE_ENGINE_SERVE", "ok")
router = args[args.index("--router") + 1] if "--router" in args else "default"
print("12:00:00.000 INFO (OTPMain.java:1) starting server", flush=True)
if behaviour == "ok":
    print("12:00:01.000 INFO (GraphService.java:2) Main graph read.", flush=True)
    print("12:00:01.000 INFO (GraphService.java:2) Transit loaded.", flush=True)
    print("12:00:02.000 INFO (GrizzlyServer.java:3) Grizzly server running.", flush=True)
elif behaviour == "listening-only":
    print("12:00:02.000 INFO (GrizzlyServer.java:3) Grizzly server running.", flush=True)
elif behaviour == "no-graph":
    print(f"12:00:01.000 ERROR (GraphService.java:4) Can't register router ID '{{router}}', no graph.", flush=True)
elif behaviour == "crash":
    print("12:00:01.000 ERROR (OTPMain.java:5) boom", flush=True)
    sys.exit(3)
time.sleep(float(os.environ.get("FAKE_ENGINE_LINGER", "30")))
"""


@pytest.fixture
def fake_engine(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An executable that behaves like the engine for build and serve.

    Behaviour is selected with ``FAKE_ENGINE_BUILD`` (``ok``/``fail``) and
    ``FAKE_ENGINE_SERVE`` (``ok``/``listening-only``/``no-graph``/
    ``crash``/``silent``). ``FAKE_ENGINE_STEP_DELAY`` slows down each build
    step.
    """
    path = tmp_path / "bin" / "fake-java"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_FAKE_ENGINE.format(python=sys.executable), encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    monkeypatch.setenv("FAKE_ENGINE_BUILD", "ok")
    monkeypatch.setenv("FAKE_ENGINE_SERVE", "ok")
    return path


@pytest.fixture
def runner_settings(tmp_path: Path, fake_engine: Path) -> RunnerSettings:
    """Fast-polling settings pointing at the fake engine."""
    return RunnerSettings(
        _env_file=None,
        java_binary=str(fake_engine),
        aws_cli=str(tmp_path / "bin" / "no-such-aws"),
        poll_interval_seconds=0.05,
        fail_settle_seconds=0,
        default_status_file=tmp_path / "fallback-status.json",
        default_runner_log_file=tmp_path / "fallback-runner.log",
        min_engine_memory_kb=1024,
    )


# ---------------------------------------------------------------------------
# Object store: a local directory standing in for S3
# ---------------------------------------------------------------------------


class RecordingTransport(Transport):
    """Transport whose ``aws s3 cp`` copies to and from a local bucket dir."""

    def __init__(
        self,
        bucket: Path,
        *,
        settings: RunnerSettings | None = None,
        fail_uploads: tuple[str, ...] = (),
        instance_id: str | None = "i-0123456789abcdef0",
    ) -> None:
        super().__init__(settings=settings)
        self.bucket = bucket
        self.fail_uploads = set(fail_uploads)
        self.instance_id = instance_id
        self.uploads: list[tuple[str, str]] = []
        self.downloads: list[tuple[str, str]] = []

    def object_path(self, uri: str) -> Path:
        parts = urlsplit(uri)
        return self.bucket / parts.netloc / parts.path.lstrip("/")

    @property
    def uploaded_uris(self) -> list[str]:
        return [uri for _, uri in self.uploads]

    async def _aws_cp(self, src: str, dst: str) -> None:
        if src.startswith("s3://"):
            obj = self.object_path(src)
            if not obj.exists():
                raise TransportError(f"fatal error: Key {src} does not exist")
            shutil.copyfile(obj, dst)
            self.downloads.append((src, dst))
            return
        if dst in self.fail_uploads:
            raise TransportError("upload failed: Access Denied")
        if not Path(src).exists():
            raise TransportError(f"The user-provided path {src} does not exist.")
        obj = self.object_path(dst)
        obj.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, obj)
        self.uploads.append((src, dst))

    async def fetch_instance_id(self) -> str:
        if self.instance_id is None:
            raise TransportError("instance metadata unavailable")
        return self.instance_id


@pytest.fixture
def bucket(tmp_path: Path) -> Path:
    """A local object store holding the jar, inputs and a pre-built graph."""
    root = tmp_path / "s3"
    files = {
        "bucket/otp.jar": "jar",
        "bucket/inputs/gtfs.zip": "gtfs",
        "bucket/inputs/osm.pbf": "osm",
        "bucket/graphs/Graph.obj": "prebuilt graph",
    }
    for key, content in files.items():
        path = root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def make_transport(
    bucket: Path, runner_settings: RunnerSettings
) -> Callable[..., RecordingTransport]:
    """Factory fixture: a RecordingTransport over the test bucket."""

    def _factory(**kwargs: Any) -> RecordingTransport:
        return RecordingTransport(bucket, settings=runner_settings, **kwargs)

    return _factory


# ---------------------------------------------------------------------------
# Manifests and orchestrators
# ---------------------------------------------------------------------------


@pytest.fixture
def make_manifest(tmp_path: Path) -> Callable[..., dict[str, Any]]:
    """Factory fixture: a raw camelCase manifest with paths under tmp_path."""

    def _factory(**overrides: Any) -> dict[str, Any]:
        manifest: dict[str, Any] = {
            "baseFolder": str(tmp_path / "graphs"),
            "baseFolderDownloads": [
                {"uri": "s3://bucket/inputs/gtfs.zip"},
                {"uri": "s3://bucket/inputs/osm.pbf", "name": "area.osm.pbf"},
            ],
            "buildGraph": True,
            "buildLogFile": str(tmp_path / "otp-build.log"),
            "jarFile": str(tmp_path / "otp.jar"),
            "jarUri": "s3://bucket/otp.jar",
            "otpRunnerLogFile": str(tmp_path / "otp-runner.log"),
            "serverLogFile": str(tmp_path / "otp-server.log"),
            "statusFileLocation": str(tmp_path / "status.json"),
        }
        manifest.update(overrides)
        return manifest

    return _factory


@pytest.fixture
def make_orchestrator(
    runner_settings: RunnerSettings,
    make_transport: Callable[..., RecordingTransport],
) -> Iterator[Callable[..., Orchestrator]]:
    """Factory fixture: an Orchestrator wired to the fake engine and bucket.

    Any server left running by a test is killed on teardown.
    """
    created: list[Orchestrator] = []

    def _factory(manifest: Any, **transport_kwargs: Any) -> Orchestrator:
        orchestrator = Orchestrator(
            manifest,
            settings=runner_settings,
            transport=make_transport(**transport_kwargs),
        )
        created.append(orchestrator)
        return orchestrator

    yield _factory

    for orchestrator in created:
        if orchestrator.server_process is not None:
            orchestrator.server_process.kill()


@pytest.fixture
def no_proxy_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep httpx from picking up proxy settings of the host."""
    for name in list(os.environ):
        if name.lower().endswith("_proxy"):
            monkeypatch.delenv(name, raising=False)

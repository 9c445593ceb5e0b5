"""Pipeline orchestrator — the central coordinator for otp-runner runs.

The Orchestrator wires together manifest validation, the Transport, the
ProgressLedger and the build/serve supervisors into one run:

1. validate the manifest;
2. recreate the graph folder;
3. download the jar and inputs concurrently;
4. build the graph, then queue the post-build uploads without waiting;
5. start the server, first among the pending tasks;
6. await everything pending, then upload the runner log.

Every failure is terminal and goes through ``fail()``, which freezes the
status message, flushes diagnostics and raises ``RunFailed``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import Any, NoReturn

from otprunner.bridge.transport import Transport, TransportError
from otprunner.config import RunnerSettings, settings as default_settings
from otprunner.core.manifest_validator import (
    ConfigValidationError,
    RawManifest,
    validate_manifest,
)
from otprunner.core.progress import Milestone, ProgressLedger
from otprunner.core.supervisor import BuildSupervisor, PhaseFailure, ServeSupervisor
from otprunner.engine.process import ProcessHandle
from otprunner.logging_config import attach_run_log
from otprunner.models.manifest import Manifest
from otprunner.models.phases import DownloadTask
from otprunner.models.status import StatusRecord

logger = logging.getLogger(__name__)

# Object names under s3UploadPath
BUILD_LOG_SUFFIX = "otp-build.log"
SERVER_LOG_SUFFIX = "otp-server.log"
RUNNER_LOG_SUFFIX = "otp-runner.log"
BUILD_REPORT_SUFFIX = "graph-build-report.zip"

BUILD_CONFIG_FILENAME = "build-config.json"
ROUTER_CONFIG_FILENAME = "router-config.json"
REPORT_DIRNAME = "report"


class RunFailed(RuntimeError):
    """Raised by ``Orchestrator.fail``; carries the frozen status message."""

    def __init__(self, message: str, status: StatusRecord | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class Orchestrator:
    """Runs one manifest from download to a started server.

    Parameters
    ----------
    raw_manifest:
        The manifest as JSON text/bytes or an already parsed mapping.
    settings:
        Runner settings. Uses the module-level singleton if not provided.
    transport:
        File transport. A default ``Transport`` is created if not provided.
    """

    def __init__(
        self,
        raw_manifest: RawManifest,
        *,
        settings: RunnerSettings | None = None,
        transport: Transport | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.transport = transport or Transport(settings=self.settings)
        self.raw_manifest = raw_manifest
        self.manifest: Manifest | None = None
        self.server_process: ProcessHandle | None = None

        # Until validation succeeds, artifact locations come from a best-effort
        # read of the raw manifest, falling back to settings.
        peek = _peek(raw_manifest)
        self.runner_log_path = Path(
            _str_or(peek.get("otpRunnerLogFile"), self.settings.default_runner_log_file)
        )
        self.ledger = ProgressLedger(
            Path(_str_or(peek.get("statusFileLocation"), self.settings.default_status_file)),
            nonce=_str_or(peek.get("nonce"), None),
        )

        self._peek = peek
        self._instance_id: str | None = None
        self._pending: list[asyncio.Task[None]] = []

    @property
    def status(self) -> StatusRecord:
        return self.ledger.status

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> StatusRecord:
        """Execute the whole run and return the final status.

        Raises
        ------
        RunFailed
            When any step fails. The status file and (if configured) the
            runner log have been flushed by then.
        """
        attach_run_log(self.runner_log_path)
        logger.info("Received a manifest:")
        logger.info(
            json.dumps(self._peek, indent=2) if self._peek else str(self.raw_manifest)
        )

        try:
            await self.validate_manifest()
            await self.clear_folders()
            await self.download_files()
            if self.manifest.build_graph:
                await self.build_graph()
                self._enqueue_post_build_tasks()
            if self.manifest.run_server:
                # the server starts before any post-build upload is awaited
                self._pending.insert(0, asyncio.create_task(self.start_server()))
            await self._await_pending()
            await self.upload_runner_logs()
        except RunFailed:
            raise
        except Exception as exc:
            logger.exception("Unexpected error during run")
            await self.fail(f"An unexpected error occurred: {exc}")

        return self.ledger.status

    def run_and_exit(self) -> NoReturn:
        """Run to completion and exit the process with code 0.

        A started server is detached and keeps running after this exits.
        ``RunFailed`` propagates to the caller.
        """
        asyncio.run(self.run())
        raise SystemExit(0)

    async def fail(self, message: str) -> NoReturn:
        """Fail the run: log, freeze the status, flush diagnostics, raise."""
        logger.error(message)
        self.ledger.mark_failed(message)
        # let concurrent log writers settle before the runner log is shipped
        await asyncio.sleep(self.settings.fail_settle_seconds)
        await asyncio.gather(
            self.upload_runner_logs(best_effort=True),
            self.ledger.persist(),
        )
        raise RunFailed(self.ledger.status.message, status=self.ledger.status)

    async def _await_pending(self) -> None:
        pending, self._pending = self._pending, []
        try:
            await asyncio.gather(*pending)
        except BaseException:
            for task in pending:
                task.cancel()
            raise

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def validate_manifest(self) -> Manifest:
        """Validate and adopt the manifest, failing with every violation."""
        try:
            manifest = validate_manifest(self.raw_manifest)
        except ConfigValidationError as exc:
            if exc.manifest is not None:
                self._adopt(exc.manifest)
            await self.fail(str(exc))

        self._adopt(manifest)
        logger.info(manifest.model_dump_json(by_alias=True, indent=2))
        return manifest

    def _adopt(self, manifest: Manifest) -> None:
        self.manifest = manifest
        self.ledger.configure(
            status_path=Path(manifest.status_file_location),
            build_graph=manifest.build_graph,
            run_server=manifest.run_server,
            nonce=manifest.nonce,
        )

    async def clear_folders(self) -> None:
        """Remove and recreate the target folder so each run starts empty."""
        try:
            await asyncio.to_thread(_recreate_dir, self.manifest.target_folder)
        except OSError as exc:
            logger.error("%s", exc)
            await self.fail("Failed to recreate graph router folder")

    def download_tasks(self) -> list[DownloadTask]:
        """Every file the run needs before building or serving."""
        m = self.manifest
        target = m.target_folder
        tasks = [DownloadTask(dest=m.jar_file, uri=m.jar_uri)]
        for item in m.base_folder_downloads:
            name = item.name or item.uri.split("/")[-1]
            tasks.append(DownloadTask(dest=str(target / name), uri=item.uri))
        if not m.build_graph and m.run_server:
            tasks.append(DownloadTask(dest=str(m.graph_path), uri=m.graph_obj_uri))
        return tasks

    async def download_files(self) -> None:
        """Download all files concurrently; the first error fails the run."""
        tasks = self.download_tasks()
        self.ledger.begin_downloads(len(tasks))
        await self.ledger.advance(
            f"Downloading {len(tasks)} files...",
            self.ledger.checkpoint(Milestone.DOWNLOAD_START),
        )
        await asyncio.gather(*(self._download(task) for task in tasks))

    async def _download(self, task: DownloadTask) -> None:
        try:
            await self.transport.fetch_if_absent(task.uri, task.dest)
        except TransportError as exc:
            logger.error("%s", exc)
            await self.fail(f"Failed to download file: {task.uri}. Error: {exc}")
        await self.ledger.record_download(task.uri)

    async def build_graph(self) -> None:
        """Build the graph under supervision; a failed build fails the run."""
        m = self.manifest
        await self.ledger.advance(
            "Building graph", self.ledger.checkpoint(Milestone.BUILD_START)
        )
        if m.build_config_json:
            await _write_text(m.target_folder / BUILD_CONFIG_FILENAME, m.build_config_json)

        supervisor = BuildSupervisor(
            m, self.ledger, upload_logs=self.upload_build_logs, settings=self.settings
        )
        try:
            await supervisor.supervise()
        except PhaseFailure as exc:
            await self.fail(exc.message)

        self.ledger.record(graph_built=True)
        await self.ledger.advance(
            "Graph built successfully!", self.ledger.checkpoint(Milestone.BUILD_DONE)
        )

    def _enqueue_post_build_tasks(self) -> None:
        for step in (
            self.upload_graph_obj,
            self.upload_build_logs,
            self.upload_graph_build_report,
        ):
            self._pending.append(asyncio.create_task(step()))

    async def start_server(self) -> None:
        """Start the server and wait until it reports it is ready."""
        m = self.manifest
        await self.ledger.advance(
            "Starting OTP server", self.ledger.checkpoint(Milestone.SERVE_START)
        )
        if m.router_config_json:
            await _write_text(m.target_folder / ROUTER_CONFIG_FILENAME, m.router_config_json)

        supervisor = ServeSupervisor(
            m, self.ledger, upload_logs=self.upload_server_logs, settings=self.settings
        )
        try:
            self.server_process = await supervisor.supervise()
        except PhaseFailure as exc:
            await self.fail(exc.message)

        await self.upload_server_logs()
        self.ledger.record(server_started=True)
        # other post-build tasks may still be running
        await self.ledger.advance(
            "Server successfully started!", self.ledger.checkpoint(Milestone.SERVE_DONE)
        )

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    async def upload_graph_obj(self) -> None:
        """Upload the built graph; failure is fatal."""
        m = self.manifest
        if not m.upload_graph:
            return
        if await self.transport.put_file(m.graph_path, m.graph_obj_uri):
            self.ledger.record(graph_uploaded=True)
            await self.ledger.advance(
                "Graph uploaded!", self.ledger.checkpoint(Milestone.GRAPH_UPLOADED)
            )
        else:
            await self.fail("Failed to upload graph!")

    async def upload_build_logs(self) -> None:
        m = self.manifest
        if m.upload_graph_build_logs:
            await self.transport.put_file(
                m.build_log_file, f"{m.s3_upload_prefix}/{BUILD_LOG_SUFFIX}"
            )

    async def upload_server_logs(self) -> None:
        m = self.manifest
        if m.upload_server_startup_logs:
            prefix = await self.log_upload_prefix()
            await self.transport.put_file(
                m.server_log_file, f"{m.s3_upload_prefix}/{prefix}{SERVER_LOG_SUFFIX}"
            )

    async def upload_graph_build_report(self) -> None:
        """Zip the engine's ``report/`` folder and upload it, if present."""
        m = self.manifest
        if not m.upload_graph_build_report:
            return
        target = m.target_folder
        if not (target / REPORT_DIRNAME).is_dir():
            logger.warning("Upload of graph build report requested, but report not found!")
            return
        try:
            archive = await asyncio.to_thread(
                shutil.make_archive,
                str(target / REPORT_DIRNAME),
                "zip",
                root_dir=target,
                base_dir=REPORT_DIRNAME,
            )
        except OSError as exc:
            logger.error("Failed to zip up graph build report! See error:")
            logger.error("%s", exc)
            return
        await self.transport.put_file(
            archive, f"{m.s3_upload_prefix}/{BUILD_REPORT_SUFFIX}"
        )

    async def upload_runner_logs(self, *, best_effort: bool = False) -> None:
        """Upload the runner log if the manifest asks for it.

        With *best_effort*, an instance id lookup failure skips the upload
        instead of failing the run; ``fail`` uses this.
        """
        m = self.manifest
        if m is None or not m.upload_otp_runner_logs:
            return
        if best_effort and m.prefix_log_uploads_with_instance_id and self._instance_id is None:
            try:
                self._instance_id = await self.transport.fetch_instance_id()
            except TransportError as exc:
                logger.error("Failed to get instanceId. Error: %s", exc)
                return
        prefix = await self.log_upload_prefix()
        await self.transport.put_file(
            self.runner_log_path, f"{m.s3_upload_prefix}/{prefix}{RUNNER_LOG_SUFFIX}"
        )

    async def log_upload_prefix(self) -> str:
        """``{instanceId}-`` when log uploads are prefixed, else ``""``."""
        if not self.manifest.prefix_log_uploads_with_instance_id:
            return ""
        if self._instance_id is None:
            try:
                self._instance_id = await self.transport.fetch_instance_id()
            except TransportError as exc:
                await self.fail(f"Failed to get instanceId. Error: {exc}")
        return f"{self._instance_id}-"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _peek(raw: RawManifest) -> dict[str, Any]:
    """Best-effort parse of a manifest that may not be valid."""
    if isinstance(raw, Mapping):
        return dict(raw)
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _str_or(value: Any, default: Any) -> Any:
    return value if isinstance(value, str) and value else default


def _recreate_dir(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


async def _write_text(path: Path, content: str) -> None:
    await asyncio.to_thread(path.write_text, content, encoding="utf-8")

"""Phase supervisors — run one engine process to a terminal state.

A supervisor spawns the engine, then polls it once per tick:

(a) a non-zero exit code fails the phase;
(b) new output is fed to the phase's ``LogTail``;
(c) a failure marker kills the process and fails the phase;
(d) readiness ends supervision successfully;
(e) a per-tick hook runs (e.g. progress messages);
(f) an exceeded deadline kills the process and times the phase out.

Every non-successful terminal state captures the logs, awaits the phase's
log upload and raises ``PhaseFailure``.  Phases are never retried.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from otprunner.config import RunnerSettings, settings as default_settings
from otprunner.core.phase_machine import PhaseMachine
from otprunner.core.progress import ProgressLedger
from otprunner.engine.commands import build_args, serve_args
from otprunner.engine.process import AttachedProcess, DetachedProcess, ProcessHandle
from otprunner.models.engine import get_engine_profile
from otprunner.models.manifest import Manifest
from otprunner.models.phases import Phase, PhaseState
from otprunner.monitor.log_tail import LogTail

logger = logging.getLogger(__name__)

UploadLogs = Callable[[], Awaitable[None]]


class PhaseFailure(RuntimeError):
    """A supervised phase ended in ``FAILED`` or ``TIMED_OUT``."""

    def __init__(self, message: str, state: PhaseState) -> None:
        super().__init__(message)
        self.message = message
        self.state = state


async def _no_upload() -> None:
    return None


class PhaseSupervisor(abc.ABC):
    """Base class for build and serve supervision.

    Parameters
    ----------
    manifest:
        The validated run manifest.
    ledger:
        Progress ledger receiving per-tick status messages.
    upload_logs:
        Coroutine function uploading this phase's log; awaited before a
        ``PhaseFailure`` is raised.
    settings:
        Runner settings (java binary, poll interval, window size).
    """

    phase: Phase

    def __init__(
        self,
        manifest: Manifest,
        ledger: ProgressLedger,
        *,
        upload_logs: UploadLogs | None = None,
        settings: RunnerSettings | None = None,
    ) -> None:
        self.manifest = manifest
        self.ledger = ledger
        self.settings = settings or default_settings
        self.profile = get_engine_profile(manifest.otp_version)
        self.machine = PhaseMachine(self.phase)
        self.tail = LogTail(self.settings.log_window_lines)
        self._upload_logs = upload_logs or _no_upload
        self._started_at = 0.0

    # ------------------------------------------------------------------
    # Supervision loop
    # ------------------------------------------------------------------

    async def supervise(self) -> ProcessHandle:
        """Run the phase to a terminal state.

        Returns the process handle on success.

        Raises
        ------
        PhaseFailure
            On a non-zero exit, a failure marker, a timeout, or a process
            that could not be spawned.
        """
        try:
            handle = await self._spawn()
        except OSError as exc:
            logger.error("Could not start %s process: %s", self.phase.value, exc)
            await self._fail(None, PhaseState.FAILED, self.spawn_failure_message)

        self.machine.transition(PhaseState.RUNNING, reason=f"pid {handle.pid}")
        self._started_at = asyncio.get_running_loop().time()
        await self._after_spawn(handle)

        poll = self.settings.poll_interval_seconds
        while True:
            code = handle.exit_code
            if code is not None and self._is_failed_exit(code):
                await self._fail(handle, PhaseState.FAILED, self._exit_message(code))

            await asyncio.sleep(poll)

            await self._observe(handle)

            if self.tail.contains_any(self._failure_patterns()):
                handle.kill()
                await self._fail(handle, PhaseState.FAILED, self.failure_marker_message)

            if self._is_ready(handle):
                await self._after_success(handle)
                self.machine.transition(PhaseState.SUCCEEDED)
                return handle

            await self._tick()

            deadline = self.deadline_seconds
            elapsed = asyncio.get_running_loop().time() - self._started_at
            if deadline is not None and elapsed > deadline:
                handle.kill()
                await self._fail(handle, PhaseState.TIMED_OUT, self._timeout_message())

    async def _fail(
        self, handle: ProcessHandle | None, state: PhaseState, message: str
    ) -> None:
        self.machine.transition(state, reason=message)
        if handle is not None:
            await self._capture_logs(handle)
        await self._upload_logs()
        raise PhaseFailure(message, state)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def _spawn(self) -> ProcessHandle: ...

    @abc.abstractmethod
    def _is_ready(self, handle: ProcessHandle) -> bool: ...

    @abc.abstractmethod
    async def _capture_logs(self, handle: ProcessHandle) -> None:
        """Write the phase's diagnostic output to the runner log."""

    @abc.abstractmethod
    def _exit_message(self, code: int) -> str: ...

    spawn_failure_message: str = "Failed to start the engine process"
    failure_marker_message: str = "The engine reported a failure"
    deadline_seconds: float | None = None

    def _is_failed_exit(self, code: int) -> bool:
        return code != 0

    def _failure_patterns(self) -> list[str]:
        return []

    def _timeout_message(self) -> str:
        return f"{self.phase.value} took longer than {self.deadline_seconds} seconds"

    async def _after_spawn(self, handle: ProcessHandle) -> None:
        pass

    async def _observe(self, handle: ProcessHandle) -> None:
        pass

    async def _tick(self) -> None:
        pass

    async def _after_success(self, handle: ProcessHandle) -> None:
        pass


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------


class BuildSupervisor(PhaseSupervisor):
    """Runs a graph build until the engine exits.

    The build is attached: its combined output goes to ``buildLogFile``
    and into the log window as it arrives.  Builds have no deadline.
    """

    phase = Phase.BUILD
    spawn_failure_message = "Build graph failed! Please see logs."

    async def _spawn(self) -> ProcessHandle:
        command = [self.settings.java_binary, *build_args(self.manifest, settings=self.settings)]
        logger.info("Running command: `%s`", " ".join(command))
        return await AttachedProcess.spawn(
            command,
            log_file=Path(self.manifest.build_log_file),
            on_output=self.tail.observe,
        )

    def _is_ready(self, handle: ProcessHandle) -> bool:
        return handle.exit_code == 0

    def _exit_message(self, code: int) -> str:
        return "Build graph failed! Please see logs."

    async def _tick(self) -> None:
        latest = self.tail.latest_trimmed(self.settings.status_message_max_length)
        await self.ledger.advance(
            f"Building graph... ({latest})" if latest else "Building graph..."
        )

    async def _after_success(self, handle: ProcessHandle) -> None:
        if isinstance(handle, AttachedProcess):
            await handle.drain()

    async def _capture_logs(self, handle: ProcessHandle) -> None:
        if isinstance(handle, AttachedProcess):
            await handle.drain()
        logger.error(self.tail.dump())


# ---------------------------------------------------------------------------
# Serve
# ---------------------------------------------------------------------------


class ServeSupervisor(PhaseSupervisor):
    """Starts a detached server and waits for its readiness markers.

    The server writes straight to ``serverLogFile``, which is re-read on
    every tick.  Once ready, the server is left running.
    """

    phase = Phase.SERVE
    spawn_failure_message = "An error occurred while trying to start the OTP Server!"
    failure_marker_message = "An error occurred while trying to start the OTP Server!"

    def __init__(
        self,
        manifest: Manifest,
        ledger: ProgressLedger,
        *,
        upload_logs: UploadLogs | None = None,
        settings: RunnerSettings | None = None,
    ) -> None:
        super().__init__(manifest, ledger, upload_logs=upload_logs, settings=settings)
        values = {"router_name": self.manifest.router_name}
        self._ready = [m.render(**values) for m in self.profile.ready_markers]
        self._failures = [m.render(**values) for m in self.profile.failure_markers]
        self.tail.watch(self._ready + self._failures)

    @property
    def deadline_seconds(self) -> float:
        return self.manifest.server_startup_timeout_seconds

    @property
    def log_file(self) -> Path:
        return Path(self.manifest.server_log_file)

    async def _spawn(self) -> ProcessHandle:
        command = [self.settings.java_binary, *serve_args(self.manifest, settings=self.settings)]
        return DetachedProcess.spawn(command, log_file=self.log_file)

    async def _after_spawn(self, handle: ProcessHandle) -> None:
        await self.ledger.advance("Starting OTP server...")

    async def _observe(self, handle: ProcessHandle) -> None:
        await self.tail.refresh_from_file(self.log_file)

    def _failure_patterns(self) -> list[str]:
        return self._failures

    def _is_ready(self, handle: ProcessHandle) -> bool:
        return self.tail.contains_all(self._ready)

    def _is_failed_exit(self, code: int) -> bool:
        # the server never exits on its own once ready
        return True

    def _exit_message(self, code: int) -> str:
        return f"Server failed to start and exited with code {code}"

    def _timeout_message(self) -> str:
        return (
            f"Server took longer than {self.manifest.server_startup_timeout_seconds} "
            "seconds to start!"
        )

    async def _capture_logs(self, handle: ProcessHandle) -> None:
        text = await self.tail.refresh_from_file(self.log_file)
        logger.error(text)

"""Process handles for supervised engine runs.

Defines the ``ProcessHandle`` Protocol that supervisors depend on, and the
two ways the engine is started:

1. **AttachedProcess** — an asyncio subprocess whose combined
   stdout/stderr is pumped into a log file and a callback.  Used for graph
   builds, which end when the process exits.
2. **DetachedProcess** — a process in its own session writing straight to
   a log file.  Used for the server, which must keep running after the
   runner itself exits.  This is a deliberate exception to normal
   parent/child cleanup: nothing here ever waits for or kills a detached
   server that started successfully.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024


@runtime_checkable
class ProcessHandle(Protocol):
    """Opaque reference to a running engine process."""

    @property
    def pid(self) -> int | None: ...

    @property
    def exit_code(self) -> int | None:
        """``None`` while the process is still running."""
        ...

    def kill(self) -> None: ...


class AttachedProcess:
    """Engine process whose output this runner reads.

    Use ``spawn`` to create one.  ``drain()`` waits until all output has
    been written to the log file and handed to the callback.
    """

    def __init__(
        self, proc: asyncio.subprocess.Process, pump: asyncio.Task[None]
    ) -> None:
        self._proc = proc
        self._pump = pump

    @classmethod
    async def spawn(
        cls,
        command: Sequence[str],
        *,
        log_file: Path,
        on_output: Callable[[bytes], None] | None = None,
    ) -> AttachedProcess:
        """Start *command*, teeing combined output to *log_file* and *on_output*."""
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        pump = asyncio.create_task(_pump_output(proc, log_file, on_output))
        logger.info("%s running as pid %s", " ".join(command), proc.pid)
        return cls(proc, pump)

    @property
    def pid(self) -> int | None:
        return self._proc.pid

    @property
    def exit_code(self) -> int | None:
        return self._proc.returncode

    def kill(self) -> None:
        try:
            self._proc.kill()
        except ProcessLookupError:
            pass

    async def drain(self) -> None:
        await self._pump


async def _pump_output(
    proc: asyncio.subprocess.Process,
    log_file: Path,
    on_output: Callable[[bytes], None] | None,
) -> None:
    assert proc.stdout is not None
    with log_file.open("wb") as out:
        while True:
            chunk = await proc.stdout.read(_READ_CHUNK)
            if not chunk:
                break
            out.write(chunk)
            out.flush()
            if on_output is not None:
                on_output(chunk)
    await proc.wait()


class DetachedProcess:
    """Engine process running in its own session, logging to a file.

    Use ``spawn`` to create one.
    """

    def __init__(self, popen: subprocess.Popen) -> None:
        self._popen = popen

    @classmethod
    def spawn(cls, command: Sequence[str], *, log_file: Path) -> DetachedProcess:
        """Start *command* detached, with stdout and stderr sent to *log_file*."""
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        with log_file.open("wb") as out:
            popen = subprocess.Popen(
                list(command),
                stdin=subprocess.DEVNULL,
                stdout=out,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        logger.info("%s running as pid %s", " ".join(command), popen.pid)
        return cls(popen)

    @property
    def pid(self) -> int | None:
        return self._popen.pid

    @property
    def exit_code(self) -> int | None:
        return self._popen.poll()

    def kill(self) -> None:
        """Kill the whole process group; reaped on the next ``exit_code`` read."""
        if self._popen.poll() is not None:
            return
        try:
            os.killpg(self._popen.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        self._popen.poll()

"""Progress Ledger — the single writer of the run's status record.

The ledger owns one ``StatusRecord`` and rewrites the status file after
every progress-relevant event.  Percentages come from a fixed checkpoint
table parameterized only by which phases the manifest enables; the table
is a contract with whatever polls the status file.

Design:
- Message freezes on the first error: later messages are logged but never
  replace the failure reason.
- ``pct_progress`` only moves up.
- All mutation happens on the event loop thread; file writes run in a
  worker thread and are serialized by an ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path

from otprunner.models.status import StatusRecord

logger = logging.getLogger(__name__)

_OUTCOME_FLAGS = frozenset({"graph_built", "graph_uploaded", "server_started"})


class Milestone(str, Enum):
    """Phase transitions that carry a fixed percentage."""

    DOWNLOAD_START = "download_start"
    DOWNLOADS_DONE = "downloads_done"
    BUILD_START = "build_start"
    BUILD_DONE = "build_done"
    SERVE_START = "serve_start"
    GRAPH_UPLOADED = "graph_uploaded"
    SERVE_DONE = "serve_done"


# ---------------------------------------------------------------------------
# Checkpoint table, keyed by (build_graph, run_server)
# ---------------------------------------------------------------------------

CHECKPOINT_TABLE: dict[tuple[bool, bool], dict[Milestone, float]] = {
    # building graph and starting server
    (True, True): {
        Milestone.DOWNLOAD_START: 10,
        Milestone.DOWNLOADS_DONE: 30,
        Milestone.BUILD_START: 30,
        Milestone.BUILD_DONE: 70,
        Milestone.SERVE_START: 70,
        Milestone.GRAPH_UPLOADED: 80,
        Milestone.SERVE_DONE: 90,
    },
    # just building graph
    (True, False): {
        Milestone.DOWNLOAD_START: 10,
        Milestone.DOWNLOADS_DONE: 50,
        Milestone.BUILD_START: 50,
        Milestone.BUILD_DONE: 90,
        Milestone.GRAPH_UPLOADED: 100,
    },
    # just starting server
    (False, True): {
        Milestone.DOWNLOAD_START: 10,
        Milestone.DOWNLOADS_DONE: 40,
        Milestone.SERVE_START: 40,
        Milestone.SERVE_DONE: 90,
    },
}


class UnknownCheckpointError(KeyError):
    """Raised for a milestone that cannot occur with the enabled phases."""


def compute_progress(
    milestone: Milestone,
    *,
    build_graph: bool,
    run_server: bool,
    completed: int = 0,
    total: int = 0,
) -> float:
    """Map a milestone (and download counts) to an overall percentage.

    For ``Milestone.DOWNLOADS_DONE`` the result is interpolated linearly
    between the download start and end checkpoints by
    ``completed / total``.
    """
    try:
        checkpoints = CHECKPOINT_TABLE[(build_graph, run_server)]
        value = checkpoints[milestone]
    except KeyError as exc:
        raise UnknownCheckpointError(
            f"No checkpoint for {milestone.value} with "
            f"build_graph={build_graph}, run_server={run_server}"
        ) from exc

    if milestone != Milestone.DOWNLOADS_DONE or total <= 0:
        return value

    start = checkpoints[Milestone.DOWNLOAD_START]
    return start + (value - start) * completed / total


class ProgressLedger:
    """Owns the run's ``StatusRecord`` and its status file.

    Parameters
    ----------
    status_path:
        Where the status JSON is written.  May be re-pointed once the
        manifest has been validated.
    build_graph, run_server:
        The enabled phases, selecting the checkpoint table row.
    nonce:
        Echoed into the status file when provided.
    """

    def __init__(
        self,
        status_path: Path,
        *,
        build_graph: bool = False,
        run_server: bool = False,
        nonce: str | None = None,
    ) -> None:
        self.status_path = Path(status_path)
        self.build_graph = build_graph
        self.run_server = run_server
        self.status = StatusRecord(nonce=nonce)
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(
        self,
        *,
        status_path: Path,
        build_graph: bool,
        run_server: bool,
        nonce: str | None = None,
    ) -> None:
        """Apply the validated manifest's phase flags and status location."""
        self.status_path = Path(status_path)
        self.build_graph = build_graph
        self.run_server = run_server
        if nonce is not None:
            self.status.nonce = nonce

    def checkpoint(self, milestone: Milestone) -> float:
        """Return the percentage of *milestone* for the enabled phases."""
        return compute_progress(
            milestone, build_graph=self.build_graph, run_server=self.run_server
        )

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    async def advance(
        self, message: str | None = None, pct: float | None = None
    ) -> None:
        """Update the message and/or percentage, then persist.

        The message is ignored (but still logged) once an error has been
        recorded.  The percentage never decreases.
        """
        if message and message != self.status.message:
            logger.info(message)
            if not self.status.error:
                self.status.message = message
        if pct is not None and pct > self.status.pct_progress:
            self.status.pct_progress = pct
        await self.persist()

    def begin_downloads(self, total: int) -> None:
        self.status.total_files_to_download = total
        self.status.num_files_downloaded = 0

    async def record_download(self, uri: str) -> None:
        """Count one finished download and advance the download sub-range."""
        status = self.status
        status.num_files_downloaded = min(
            status.num_files_downloaded + 1, status.total_files_to_download
        )
        done, total = status.num_files_downloaded, status.total_files_to_download
        pct = compute_progress(
            Milestone.DOWNLOADS_DONE,
            build_graph=self.build_graph,
            run_server=self.run_server,
            completed=done,
            total=total,
        )
        await self.advance(f"Downloaded {uri} ({done} / {total} files)", pct)

    def record(self, **flags: bool) -> None:
        """Set outcome flags: ``graph_built``, ``graph_uploaded``, ``server_started``."""
        for name, value in flags.items():
            if name not in _OUTCOME_FLAGS:
                raise AttributeError(f"{name} is not an outcome flag of the status record")
            setattr(self.status, name, value)

    def mark_failed(self, message: str) -> None:
        """Flag the run as failed; the first failure message wins."""
        if not self.status.error:
            self.status.message = message
        self.status.error = True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def persist(self) -> None:
        """Write a snapshot of the status record to the status file."""
        async with self._write_lock:
            snapshot = self.status.to_json()
            await asyncio.to_thread(self._write, self.status_path, snapshot)

    @staticmethod
    def _write(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

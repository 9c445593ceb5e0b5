"""Phase state machine models — supervised process lifecycle."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PhaseState(str, Enum):
    """Lifecycle of one supervised engine process."""

    STARTING = "starting"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


# Valid state transitions, enforced by PhaseMachine.
# STARTING -> FAILED covers processes that could not be spawned at all.
VALID_TRANSITIONS: dict[PhaseState, set[PhaseState]] = {
    PhaseState.STARTING: {PhaseState.RUNNING, PhaseState.FAILED},
    PhaseState.RUNNING: {
        PhaseState.SUCCEEDED,
        PhaseState.FAILED,
        PhaseState.TIMED_OUT,
    },
    PhaseState.SUCCEEDED: set(),  # terminal
    PhaseState.FAILED: set(),  # terminal
    PhaseState.TIMED_OUT: set(),  # terminal
}

TERMINAL_STATES: frozenset[PhaseState] = frozenset(
    state for state, targets in VALID_TRANSITIONS.items() if not targets
)


class Phase(str, Enum):
    """Units of orchestration, each with its own progress sub-range."""

    DOWNLOAD = "download"
    BUILD = "build"
    SERVE = "serve"


class PhaseTransition(BaseModel):
    """Records a single state transition of a supervised phase."""

    model_config = ConfigDict(frozen=True)

    phase: Phase
    from_state: PhaseState
    to_state: PhaseState
    reason: str = ""
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class DownloadTask(BaseModel):
    """One file to fetch during the download phase; consumed once."""

    model_config = ConfigDict(frozen=True)

    dest: str
    uri: str

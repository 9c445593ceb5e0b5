"""otp-runner data models — all Pydantic v2."""

from otprunner.models.engine import ENGINE_PROFILES, EngineProfile, LogMarker
from otprunner.models.manifest import DownloadItem, Manifest, OtpVersion
from otprunner.models.phases import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    DownloadTask,
    Phase,
    PhaseState,
    PhaseTransition,
)
from otprunner.models.status import StatusRecord

__all__ = [
    # manifest
    "OtpVersion",
    "DownloadItem",
    "Manifest",
    # engine
    "LogMarker",
    "EngineProfile",
    "ENGINE_PROFILES",
    # phases
    "Phase",
    "PhaseState",
    "PhaseTransition",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "DownloadTask",
    # status
    "StatusRecord",
]

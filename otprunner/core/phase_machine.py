"""Phase state machine for supervised engine processes.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- Terminal states are final: a phase is never retried
- Every transition recorded in the phase history
"""

from __future__ import annotations

import logging

from otprunner.models.phases import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    Phase,
    PhaseState,
    PhaseTransition,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class PhaseMachine:
    """Tracks the state of one supervised phase.

    Parameters
    ----------
    phase:
        The phase this machine belongs to.
    """

    def __init__(self, phase: Phase) -> None:
        self.phase = phase
        self._state = PhaseState.STARTING
        self._history: list[PhaseTransition] = []

    @property
    def state(self) -> PhaseState:
        return self._state

    @property
    def history(self) -> list[PhaseTransition]:
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def transition(self, target_state: PhaseState, *, reason: str = "") -> PhaseTransition:
        """Move to *target_state*, recording the transition.

        Raises ``InvalidTransitionError`` if VALID_TRANSITIONS does not
        allow it.
        """
        current = self._state
        allowed = VALID_TRANSITIONS.get(current, set())
        if target_state not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {self.phase.value} from {current.value} "
                f"to {target_state.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )

        record = PhaseTransition(
            phase=self.phase,
            from_state=current,
            to_state=target_state,
            reason=reason,
        )
        self._history.append(record)
        self._state = target_state
        logger.debug(
            "%s phase: %s -> %s %s",
            self.phase.value,
            current.value,
            target_state.value,
            reason,
        )
        return record

    def get_available_transitions(self) -> set[PhaseState]:
        """Return the set of valid target states from the current state."""
        return set(VALID_TRANSITIONS.get(self._state, set()))

"""Tests for the phase state machine."""

from __future__ import annotations

import pytest

from otprunner.core.phase_machine import InvalidTransitionError, PhaseMachine
from otprunner.models.phases import TERMINAL_STATES, Phase, PhaseState


class TestPhaseMachine:
    def test_starts_in_starting(self):
        machine = PhaseMachine(Phase.BUILD)
        assert machine.state == PhaseState.STARTING
        assert not machine.is_terminal

    def test_happy_path(self):
        machine = PhaseMachine(Phase.SERVE)
        machine.transition(PhaseState.RUNNING, reason="pid 42")
        record = machine.transition(PhaseState.SUCCEEDED)
        assert machine.state == PhaseState.SUCCEEDED
        assert machine.is_terminal
        assert record.from_state == PhaseState.RUNNING
        assert [t.to_state for t in machine.history] == [
            PhaseState.RUNNING,
            PhaseState.SUCCEEDED,
        ]

    def test_spawn_failure_goes_straight_to_failed(self):
        machine = PhaseMachine(Phase.BUILD)
        machine.transition(PhaseState.FAILED, reason="java not found")
        assert machine.state == PhaseState.FAILED

    def test_cannot_time_out_before_running(self):
        machine = PhaseMachine(Phase.SERVE)
        with pytest.raises(InvalidTransitionError):
            machine.transition(PhaseState.TIMED_OUT)

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES, key=lambda s: s.value))
    def test_terminal_states_are_final(self, terminal: PhaseState):
        machine = PhaseMachine(Phase.SERVE)
        if terminal != PhaseState.FAILED:
            machine.transition(PhaseState.RUNNING)
        machine.transition(terminal)
        assert machine.get_available_transitions() == set()
        with pytest.raises(InvalidTransitionError):
            machine.transition(PhaseState.RUNNING)

    def test_history_is_a_copy(self):
        machine = PhaseMachine(Phase.BUILD)
        machine.transition(PhaseState.RUNNING)
        machine.history.clear()
        assert len(machine.history) == 1

"""Tests for action dispatch, confirmation gating, and completion reconciliation."""

from __future__ import annotations

from perch.engine.actions import (
    ActionKind,
    ErrorCategory,
    classify_error,
    is_destructive,
    prerequisite_hint,
)
from perch.engine.config import ControlConfig
from perch.engine.dispatcher import ActionDispatcher
from perch.engine.effects import RunAction
from perch.engine.modals import ConfirmModal
from perch.engine.state import ControlState, StatusSeverity
from perch.engine.status import visible_status

from fakes import FakeClock


def _dispatcher(clock: FakeClock | None = None) -> ActionDispatcher:
    return ActionDispatcher(
        ControlConfig(action_timeout_seconds=30, long_action_timeout_seconds=120),
        clock or FakeClock(),
    )


class TestDispatch:
    def test_destructive_action_opens_confirmation_instead_of_running(self):
        state = ControlState(town_root="/town")
        effects = _dispatcher().dispatch(state, ActionKind.DELETE_RIG, "alpha")

        assert effects == []
        assert isinstance(state.modal, ConfirmModal)
        assert state.modal.action == ActionKind.DELETE_RIG
        assert state.pending == {}

    def test_confirmed_destructive_action_runs(self):
        state = ControlState(town_root="/town")
        effects = _dispatcher().dispatch(
            state, ActionKind.DELETE_RIG, "alpha", confirmed=True,
        )
        assert len(effects) == 1
        assert isinstance(effects[0], RunAction)
        assert effects[0].action.confirmed is True

    def test_non_destructive_action_registers_pending_and_status(self):
        clock = FakeClock(50.0)
        state = ControlState(town_root="/town")
        effects = _dispatcher(clock).dispatch(state, ActionKind.BOOT_RIG, "alpha")

        action = effects[0].action
        assert action.action_id == 1
        assert action.timeout_seconds == 30
        assert action.started_at == 50.0
        assert state.pending == {1: action}
        assert visible_status(state, 50.0).text == "Executing Boot rig on alpha..."

    def test_long_running_actions_get_extended_timeout(self):
        state = ControlState(town_root="/town")
        effects = _dispatcher().dispatch(state, ActionKind.ADD_RIG, "gamma")
        assert effects[0].action.timeout_seconds == 120

    def test_multiple_actions_in_flight_get_distinct_ids(self):
        state = ControlState(town_root="/town")
        dispatcher = _dispatcher()
        first = dispatcher.dispatch(state, ActionKind.BOOT_RIG, "alpha")[0].action
        second = dispatcher.dispatch(state, ActionKind.BOOT_RIG, "beta")[0].action
        assert first.action_id != second.action_id
        assert set(state.pending) == {first.action_id, second.action_id}


class TestComplete:
    def _dispatched(self, kind=ActionKind.BOOT_RIG, target="alpha"):
        clock = FakeClock(10.0)
        dispatcher = _dispatcher(clock)
        state = ControlState(town_root="/town")
        action = dispatcher.dispatch(state, kind, target)[0].action
        return dispatcher, state, action, clock

    def test_success_sets_success_status(self):
        dispatcher, state, action, clock = self._dispatched()
        matched = dispatcher.on_complete(state, action.action_id, output="ok")

        assert matched is action
        assert state.pending == {}
        status = visible_status(state, clock.now)
        assert status.text == "Boot rig completed for alpha"
        assert status.severity == StatusSeverity.SUCCESS

    def test_timeout_reports_failure(self):
        dispatcher, state, action, clock = self._dispatched(target="X")
        dispatcher.on_complete(
            state, action.action_id, error="boot_rig on X timed out after 30s", timed_out=True,
        )
        status = visible_status(state, clock.now)
        assert status.severity == StatusSeverity.ERROR
        assert status.text == "Boot rig timed out after 30s for X"

    def test_missing_tmux_shows_actionable_hint(self):
        dispatcher, state, action, clock = self._dispatched(ActionKind.OPEN_SESSION, "mayor")
        dispatcher.on_complete(state, action.action_id, error="command failed: tmux not installed")
        status = visible_status(state, clock.now)
        assert status.severity == StatusSeverity.WARNING
        assert "Press 'o' to view logs" in status.text
        clock.advance(7.9)
        assert visible_status(state, clock.now) is not None

    def test_generic_failure(self):
        dispatcher, state, action, clock = self._dispatched()
        dispatcher.on_complete(state, action.action_id, error="exit status 1: rig busy")
        assert visible_status(state, clock.now).text == "Boot rig failed: exit status 1: rig busy"

    def test_unknown_action_id_is_discarded(self):
        dispatcher, state, action, _ = self._dispatched()
        assert dispatcher.on_complete(state, 999) is None
        assert action.action_id in state.pending


class TestClassification:
    def test_categories(self):
        assert classify_error(ActionKind.BOOT_RIG, "x", timed_out=True) == ErrorCategory.TIMEOUT
        assert (
            classify_error(ActionKind.OPEN_SESSION, "tmux not available")
            == ErrorCategory.PREREQUISITE_UNAVAILABLE
        )
        assert (
            classify_error(ActionKind.BOOT_RIG, "[Errno 2] No such file or directory: 'gt'")
            == ErrorCategory.PREREQUISITE_UNAVAILABLE
        )
        assert classify_error(ActionKind.BOOT_RIG, "exit status 1") == ErrorCategory.GENERIC

    def test_missing_tool_hint_names_the_tool(self):
        hint = prerequisite_hint(ActionKind.BOOT_RIG, "[Errno 2] No such file or directory: 'gt'")
        assert hint.startswith("'gt' not found on PATH")

    def test_destructive_set(self):
        assert is_destructive(ActionKind.STOP_POLECAT)
        assert not is_destructive(ActionKind.BOOT_RIG)

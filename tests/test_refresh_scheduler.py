"""Tests for non-overlapping snapshot polling."""

from __future__ import annotations

from perch.engine.config import ControlConfig
from perch.engine.effects import RequestRefresh, ScheduleTick
from perch.engine.refresh import RefreshScheduler
from perch.engine.state import ControlState, StatusSeverity

from fakes import make_snapshot


def _attached_state() -> ControlState:
    return ControlState(town_root="/town")


def _requests(effects) -> list[RequestRefresh]:
    return [e for e in effects if isinstance(e, RequestRefresh)]


class TestTick:
    def test_tick_when_idle_requests_refresh_and_sets_flag(self):
        scheduler = RefreshScheduler(ControlConfig(refresh_interval_seconds=7))
        state = _attached_state()

        effects = scheduler.on_tick(state)

        assert len(_requests(effects)) == 1
        assert state.refresh.is_refreshing is True
        assert ScheduleTick(7) in effects

    def test_second_tick_before_completion_does_not_request_again(self):
        scheduler = RefreshScheduler(ControlConfig())
        state = _attached_state()
        scheduler.on_tick(state)

        effects = scheduler.on_tick(state)

        assert _requests(effects) == []
        assert state.refresh.is_refreshing is True
        assert any(isinstance(e, ScheduleTick) for e in effects)

    def test_at_most_one_request_in_flight_over_many_ticks(self):
        scheduler = RefreshScheduler(ControlConfig())
        state = _attached_state()
        in_flight = 0
        for i in range(20):
            in_flight += len(_requests(scheduler.on_tick(state)))
            assert in_flight <= 1
            if i % 5 == 4:
                scheduler.on_complete(state, state.refresh.generation, make_snapshot(), None, i)
                in_flight = 0

    def test_tick_without_town_only_reschedules(self):
        scheduler = RefreshScheduler(ControlConfig())
        state = ControlState()

        effects = scheduler.on_tick(state)

        assert _requests(effects) == []
        assert state.refresh.is_refreshing is False


class TestRequest:
    def test_request_while_refreshing_queues_one_follow_up(self):
        scheduler = RefreshScheduler(ControlConfig())
        state = _attached_state()
        scheduler.on_tick(state)

        assert scheduler.request(state, "manual") == []
        assert scheduler.request(state, "after action") == []
        assert state.refresh.follow_up_pending is True

        _, effects = scheduler.on_complete(
            state, state.refresh.generation, make_snapshot(), None, 5.0,
        )
        assert len(_requests(effects)) == 1
        assert state.refresh.is_refreshing is True
        assert state.refresh.follow_up_pending is False

    def test_request_without_town_is_ignored(self):
        scheduler = RefreshScheduler(ControlConfig())
        assert scheduler.request(ControlState(), "manual") == []


class TestComplete:
    def test_success_replaces_snapshot_and_clears_flag(self):
        scheduler = RefreshScheduler(ControlConfig())
        state = _attached_state()
        scheduler.on_tick(state)
        snapshot = make_snapshot()

        applied, effects = scheduler.on_complete(state, 0, snapshot, None, 42.0)

        assert applied is True
        assert effects == []
        assert state.snapshot is snapshot
        assert state.refresh.is_refreshing is False
        assert state.refresh.last_refresh == 42.0
        assert state.selected_rig == "alpha"

    def test_failure_keeps_old_snapshot_and_counts_error(self):
        scheduler = RefreshScheduler(ControlConfig())
        state = _attached_state()
        old = make_snapshot()
        state.snapshot = old
        scheduler.on_tick(state)

        applied, _ = scheduler.on_complete(state, 0, None, "gt: exit status 1", 10.0)

        assert applied is False
        assert state.snapshot is old
        assert state.refresh.error_count == 1
        assert state.refresh.is_refreshing is False
        assert state.status.severity == StatusSeverity.ERROR

    def test_failed_refresh_is_retried_on_next_tick(self):
        scheduler = RefreshScheduler(ControlConfig())
        state = _attached_state()
        scheduler.on_tick(state)
        scheduler.on_complete(state, 0, None, "boom", 10.0)

        assert len(_requests(scheduler.on_tick(state))) == 1

    def test_stale_generation_is_discarded_without_touching_flag(self):
        scheduler = RefreshScheduler(ControlConfig())
        state = _attached_state()
        scheduler.on_tick(state)
        state.refresh.generation = 3

        applied, effects = scheduler.on_complete(state, 2, make_snapshot(), None, 1.0)

        assert applied is False
        assert effects == []
        assert state.snapshot is None
        assert state.refresh.is_refreshing is True

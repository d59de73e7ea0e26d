"""Non-overlapping polling refresh.

``is_refreshing`` gates every refresh request. Requests that arrive
while a poll is in flight are coalesced into a single follow-up issued
when the poll completes.
"""
from __future__ import annotations

import logging

from perch.engine.config import ControlConfig
from perch.engine.effects import Effect, RequestRefresh, ScheduleTick
from perch.engine.state import ControlState, StatusSeverity
from perch.engine.status import FAILURE_SECONDS, set_status

logger = logging.getLogger(__name__)


class RefreshScheduler:
    def __init__(self, config: ControlConfig) -> None:
        self._config = config

    def _start(self, state: ControlState) -> list[Effect]:
        state.refresh.is_refreshing = True
        state.refresh.follow_up_pending = False
        return [RequestRefresh(generation=state.refresh.generation)]

    def on_tick(self, state: ControlState) -> list[Effect]:
        """Periodic tick. The next tick is always scheduled."""
        tick = ScheduleTick(self._config.refresh_interval_seconds)
        if state.town_root is None or state.refresh.is_refreshing:
            return [tick]
        return self._start(state) + [tick]

    def request(self, state: ControlState, reason: str = "") -> list[Effect]:
        """Out-of-band refresh (manual, post-action, attach)."""
        if state.town_root is None:
            return []
        if state.refresh.is_refreshing:
            state.refresh.follow_up_pending = True
            logger.debug("Refresh in flight; queued follow-up (%s)", reason)
            return []
        logger.debug("Refresh requested (%s)", reason)
        return self._start(state)

    def on_complete(
        self,
        state: ControlState,
        generation: int,
        snapshot,
        error: str | None,
        now: float,
    ) -> tuple[bool, list[Effect]]:
        """Apply a poll result.

        Returns ``(applied, effects)`` where ``applied`` is True when a
        new snapshot replaced the old one.
        """
        refresh = state.refresh
        if generation != refresh.generation:
            # A refresh from before a town switch. The current generation's
            # own request may still be in flight, so the flag is untouched.
            logger.debug(
                "Discarding refresh for generation %d (current %d)",
                generation, refresh.generation,
            )
            return False, []

        refresh.is_refreshing = False
        refresh.last_refresh = now
        applied = False
        if error is not None:
            refresh.error_count += 1
            logger.warning("Refresh failed: %s", error)
            set_status(
                state, f"Refresh failed: {error}", now,
                StatusSeverity.ERROR, FAILURE_SECONDS,
            )
        elif snapshot is not None:
            state.snapshot = snapshot
            refresh.error_count = len(snapshot.load_errors)
            rigs = snapshot.rig_names()
            if state.selected_rig not in rigs:
                state.selected_rig = rigs[0] if rigs else ""
            state.clamp_selection()
            applied = True

        effects: list[Effect] = []
        if refresh.follow_up_pending:
            effects.extend(self._start(state))
        return applied, effects

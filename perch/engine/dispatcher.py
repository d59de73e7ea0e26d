"""Action dispatch and completion reconciliation.

Destructive actions are held behind a confirmation. Everything else is
registered as a PendingAction and handed to the effect runner. Several
actions may be in flight at once; completions are matched by id.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from perch.engine.actions import (
    LONG_RUNNING_ACTIONS,
    ActionKind,
    ErrorCategory,
    PendingAction,
    action_name,
    classify_error,
    is_destructive,
    prerequisite_hint,
)
from perch.engine.config import ControlConfig
from perch.engine.effects import Effect, RunAction
from perch.engine.modal_stack import open_modal
from perch.engine.modals.dialogs import ConfirmModal
from perch.engine.state import ControlState, StatusSeverity
from perch.engine.status import (
    FAILURE_SECONDS,
    HINT_SECONDS,
    SUCCESS_SECONDS,
    set_status,
)

logger = logging.getLogger(__name__)


def confirm_prompt(kind: ActionKind, target: str) -> tuple[str, str]:
    """Title and message for a confirmation of *kind* on *target*."""
    name = action_name(kind)
    subject = target or "all"
    return f"Confirm: {name}", f"{name} {subject}? This cannot be undone. [y/n]"


class ActionDispatcher:
    def __init__(
        self,
        config: ControlConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._clock = clock

    def timeout_for(self, kind: ActionKind) -> float:
        if kind in LONG_RUNNING_ACTIONS:
            return self._config.long_action_timeout_seconds
        return self._config.action_timeout_seconds

    def dispatch(
        self,
        state: ControlState,
        kind: ActionKind,
        target: str,
        payload: Any = None,
        confirmed: bool = False,
    ) -> list[Effect]:
        if is_destructive(kind) and not confirmed:
            title, message = confirm_prompt(kind, target)
            open_modal(state, ConfirmModal(
                title=title, message=message, action=kind, target=target, payload=payload,
            ))
            return []

        now = self._clock()
        action = PendingAction(
            action_id=state.next_action_id,
            kind=kind,
            target=target,
            payload=payload,
            timeout_seconds=self.timeout_for(kind),
            started_at=now,
            confirmed=confirmed,
        )
        state.next_action_id += 1
        state.pending[action.action_id] = action
        logger.info(
            "Dispatching action %d: %s on %s", action.action_id, kind.value, target or "-",
        )
        set_status(
            state,
            f"Executing {action_name(kind)} on {target or 'town'}...",
            now,
            StatusSeverity.INFO,
            action.timeout_seconds,
        )
        return [RunAction(action)]

    def on_complete(
        self,
        state: ControlState,
        action_id: int,
        output: str = "",
        error: str | None = None,
        timed_out: bool = False,
    ) -> PendingAction | None:
        """Reconcile a completion. Returns the matched action, or None.

        The caller requests the follow-up refresh for successful actions.
        """
        action = state.pending.pop(action_id, None)
        if action is None:
            logger.debug("Discarding completion for unknown action %d", action_id)
            return None

        now = self._clock()
        name = action_name(action.kind)
        target = action.target or "town"
        if error is None:
            logger.info("Action %d (%s) completed", action_id, action.kind.value)
            set_status(
                state, f"{name} completed for {target}", now,
                StatusSeverity.SUCCESS, SUCCESS_SECONDS,
            )
            return action

        category = classify_error(action.kind, error, timed_out)
        logger.warning(
            "Action %d (%s on %s) failed [%s]: %s",
            action_id, action.kind.value, target, category.value, error,
        )
        if category == ErrorCategory.PREREQUISITE_UNAVAILABLE:
            set_status(
                state, prerequisite_hint(action.kind, error), now,
                StatusSeverity.WARNING, HINT_SECONDS,
            )
        elif category == ErrorCategory.TIMEOUT:
            set_status(
                state,
                f"{name} timed out after {action.timeout_seconds:g}s for {target}",
                now, StatusSeverity.ERROR, FAILURE_SECONDS,
            )
        else:
            set_status(
                state, f"{name} failed: {error}", now,
                StatusSeverity.ERROR, FAILURE_SECONDS,
            )
        return action

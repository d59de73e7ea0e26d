"""Transient status notifications.

Expiry is evaluated lazily against the injected clock at render or
event time, so no timer is needed to hide a message.
"""
from __future__ import annotations

import logging

from perch.engine.state import ControlState, StatusMessage, StatusSeverity

logger = logging.getLogger(__name__)

NEUTRAL_SECONDS = 2.0
SUCCESS_SECONDS = 3.0
FAILURE_SECONDS = 5.0
HINT_SECONDS = 8.0
BLOCKERS_SECONDS = 10.0


def set_status(
    state: ControlState,
    text: str,
    now: float,
    severity: StatusSeverity = StatusSeverity.INFO,
    duration: float = SUCCESS_SECONDS,
) -> StatusMessage:
    message = StatusMessage(text=text, severity=severity, expires_at=now + duration)
    state.status = message
    if severity == StatusSeverity.ERROR:
        logger.info("status[error]: %s", text)
    else:
        logger.debug("status[%s]: %s", severity.value, text)
    return message


def clear_status(state: ControlState) -> None:
    state.status = None


def visible_status(state: ControlState, now: float) -> StatusMessage | None:
    """The current status message if it has not yet expired."""
    if state.status is None or not state.status.visible(now):
        return None
    return state.status

"""Single-slot modal context with an explicit precedence order.

User transitions always replace the active modal. Modals opened by
background completions only win when they rank at least as high as
whatever the user is looking at.
"""
from __future__ import annotations

import logging

from perch.engine.modals.base import Modal, ModalKind
from perch.engine.state import ControlState

logger = logging.getLogger(__name__)

# Highest first.
PRECEDENCE: tuple[ModalKind, ...] = (
    ModalKind.SETUP,
    ModalKind.HELP,
    ModalKind.INPUT,
    ModalKind.DEPENDENCY,
    ModalKind.FILTER,
    ModalKind.PRESET,
    ModalKind.DESTINATION,
    ModalKind.ATTACH,
    ModalKind.CONFIRM,
    ModalKind.FORM,
    ModalKind.DETAIL,
    ModalKind.ALTERNATE_VIEW,
)

_RANKS = {kind: len(PRECEDENCE) - i for i, kind in enumerate(PRECEDENCE)}


def rank(kind: ModalKind) -> int:
    """Larger is higher precedence. ``rank`` of no modal is 0."""
    return _RANKS[kind]


def open_modal(state: ControlState, modal: Modal) -> None:
    """User-driven transition: replaces any active modal and its edits."""
    if state.modal is not None and state.modal is not modal:
        logger.debug(
            "Replacing %s modal with %s", state.modal.kind.value, modal.kind.value,
        )
    state.modal = modal


def offer_modal(state: ControlState, modal: Modal) -> bool:
    """Background-driven transition. Returns False if *modal* was dropped."""
    current = state.modal
    if current is not None and rank(modal.kind) < rank(current.kind):
        logger.info(
            "Dropped %s modal; %s modal has precedence",
            modal.kind.value,
            current.kind.value,
        )
        return False
    state.modal = modal
    return True


def close_modal(state: ControlState) -> None:
    state.modal = None

"""Tests for single-slot modal precedence."""

from __future__ import annotations

from perch.engine.actions import ActionKind
from perch.engine.modal_stack import PRECEDENCE, close_modal, offer_modal, open_modal, rank
from perch.engine.modals import (
    ConfirmModal,
    HelpModal,
    InputModal,
    ModalKind,
    RigSettingsFormModal,
    SetupModal,
    TownMapModal,
)
from perch.engine.state import ControlState
from perch.shared.models.details import RigSettings


def _confirm() -> ConfirmModal:
    return ConfirmModal("Confirm", "Sure?", ActionKind.DELETE_RIG, "alpha")


def test_precedence_is_a_total_order_over_every_kind():
    assert set(PRECEDENCE) == set(ModalKind)
    assert len(PRECEDENCE) == len(ModalKind)
    assert rank(ModalKind.SETUP) > rank(ModalKind.HELP) > rank(ModalKind.INPUT)
    assert rank(ModalKind.CONFIRM) > rank(ModalKind.FORM) > rank(ModalKind.DETAIL)
    assert rank(ModalKind.ALTERNATE_VIEW) == 1


def test_open_modal_replaces_whatever_is_active():
    state = ControlState()
    open_modal(state, HelpModal())
    town_map = TownMapModal(rigs=("alpha",))

    open_modal(state, town_map)

    assert state.modal is town_map


def test_offer_modal_is_dropped_under_higher_precedence():
    state = ControlState()
    confirm = _confirm()
    open_modal(state, confirm)

    accepted = offer_modal(state, RigSettingsFormModal.for_settings(RigSettings("alpha")))

    assert accepted is False
    assert state.modal is confirm


def test_offer_modal_wins_over_lower_precedence():
    state = ControlState()
    open_modal(state, TownMapModal())
    form = RigSettingsFormModal.for_settings(RigSettings("alpha"))

    assert offer_modal(state, form) is True
    assert state.modal is form


def test_offer_modal_installs_when_nothing_active():
    state = ControlState()
    assert offer_modal(state, SetupModal()) is True
    assert isinstance(state.modal, SetupModal)


def test_offer_of_equal_rank_replaces():
    state = ControlState()
    open_modal(state, InputModal("Nudge", "Message", ActionKind.NUDGE_AGENT, "mayor"))
    replacement = InputModal("Sling", "Bead", ActionKind.SLING_WORK, "mayor")

    assert offer_modal(state, replacement) is True
    assert state.modal is replacement


def test_close_modal_empties_slot():
    state = ControlState()
    open_modal(state, HelpModal())
    close_modal(state)
    assert state.modal is None

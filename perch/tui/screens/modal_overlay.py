"""Modal overlay — draws the active engine modal over the main screen.

The overlay holds no modal state of its own. Every key goes back to
the control loop, and the main screen calls ``show`` with whatever the
controller leaves installed.
"""
from __future__ import annotations

from textual import events
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Label, Static

from perch.adapters.event_bus import EventBus
from perch.adapters.events import KeyPressed
from perch.engine.modals import Modal
from perch.tui.keys import normalize_key
from perch.tui.render import modal_title, render_modal


class ModalOverlay(ModalScreen[None]):
    CSS_PATH = "../styles/modal.tcss"

    def __init__(self, bus: EventBus, modal: Modal, **kwargs) -> None:
        super().__init__(**kwargs)
        self._bus = bus
        self.modal = modal

    def compose(self) -> ComposeResult:
        with Vertical(id="modal-dialog"):
            yield Label(modal_title(self.modal), id="modal-title")
            yield Static(render_modal(self.modal), id="modal-body")

    def show(self, modal: Modal) -> None:
        """Redraw for *modal*, which may be a different variant."""
        self.modal = modal
        if not self.is_mounted:
            return
        self.query_one("#modal-title", Label).update(modal_title(modal))
        self.query_one("#modal-body", Static).update(render_modal(modal))

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self._bus.post(KeyPressed(key=normalize_key(event)))

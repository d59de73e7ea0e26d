"""perch TUI — Textual application class."""

from __future__ import annotations

from pathlib import Path

from textual.app import App
from textual.binding import Binding

from perch.adapters.executor import CommandRunner
from perch.engine.controller import Controller
from perch.tui.screens.main import MainScreen


class PerchApp(App):
    """Terminal control plane for a Gas Town."""

    TITLE = "perch"
    SUB_TITLE = "Gas Town control plane"
    CSS_PATH = Path("styles/app.tcss")

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", priority=True),
    ]

    def __init__(
        self,
        controller: Controller,
        runner: CommandRunner | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.controller = controller
        self._runner = runner

    def on_mount(self) -> None:
        self.push_screen(MainScreen(self.controller, self._runner))

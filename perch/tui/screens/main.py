"""Main screen — sections, detail pane, and the control loop that drives them."""

from __future__ import annotations

import asyncio
import logging
import subprocess

from textual import events
from textual.app import ComposeResult, SuspendNotSupported
from textual.containers import Horizontal
from textual.screen import Screen
from textual.widgets import Header

from perch.adapters.event_bus import EventBus
from perch.adapters.events import KeyPressed
from perch.adapters.executor import CommandRunner, GasTownExecutor
from perch.adapters.loader import SnapshotLoader
from perch.adapters.runtime import EffectRunner
from perch.engine.controller import Controller
from perch.engine.errors import CommandError
from perch.engine.projection import ControlView, project
from perch.tui.keys import normalize_key
from perch.tui.screens.modal_overlay import ModalOverlay
from perch.tui.widgets.detail_panel import DetailPanel
from perch.tui.widgets.sidebar import Sidebar
from perch.tui.widgets.status_bar import StatusBar

logger = logging.getLogger(__name__)


class MainScreen(Screen):
    """Owns the event bus and the single consumer that applies events."""

    def __init__(
        self,
        controller: Controller,
        runner: CommandRunner | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.controller = controller
        config = controller.config
        self.bus = EventBus()
        self.effects = EffectRunner(
            self.bus,
            config,
            SnapshotLoader(config.town_root, runner),
            GasTownExecutor(config.town_root, runner, config.export_dir),
            on_quit=self._quit,
            interactive=self._interactive,
        )
        self._consumer_task: asyncio.Task | None = None
        self._overlay: ModalOverlay | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="workspace"):
            yield Sidebar(id="sidebar")
            yield DetailPanel(id="detail-panel")
        yield StatusBar(id="status-bar")

    def on_mount(self) -> None:
        self.effects.run(self.controller.start())
        self._consumer_task = asyncio.create_task(
            self._consume(), name="control-loop",
        )
        # Status expiry and the refresh age are time-based.
        self.set_interval(1.0, self._sync_view)
        self._sync_view()

    async def on_unmount(self) -> None:
        self.bus.close()
        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None
        await self.effects.shutdown()

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self.bus.post(KeyPressed(key=normalize_key(event)))

    async def _consume(self) -> None:
        async for event in self.bus.consume():
            try:
                effects = self.controller.handle(event)
                self.effects.run(effects)
            except Exception:
                logger.exception("Control loop failed on %s", event.event_type)
            self._sync_view()

    # ── View sync ──

    def _sync_view(self) -> None:
        if not self.is_mounted:
            return
        view = project(self.controller.state, self.controller.now())
        self.query_one("#sidebar", Sidebar).view = view
        self.query_one("#detail-panel", DetailPanel).view = view
        self._sync_status_bar(view)
        self._sync_overlay(view)

    def _sync_status_bar(self, view: ControlView) -> None:
        sb = self.query_one("#status-bar", StatusBar)
        town = view.snapshot.town if view.snapshot else None
        sb.town = (town.name if town and town.name else view.town_root) or "no town"
        sb.connected = view.connected
        sb.refreshing = view.refreshing
        sb.error_count = view.error_count
        sb.pending_actions = view.pending_actions
        sb.last_refresh = view.last_refresh
        sb.severity = view.status_severity
        sb.message = view.status_text
        self.app.sub_title = view.town_root or "setup"

    def _sync_overlay(self, view: ControlView) -> None:
        modal = view.modal
        if modal is None:
            if self._overlay is not None:
                if self.app.screen is self._overlay:
                    self.app.pop_screen()
                self._overlay = None
            return
        if self._overlay is None:
            self._overlay = ModalOverlay(self.bus, modal)
            self.app.push_screen(self._overlay)
        else:
            self._overlay.show(modal)

    # ── Effect hooks ──

    def _quit(self) -> None:
        logger.info("Quit requested")
        self.app.exit()

    async def _interactive(self, argv: list[str], cwd: str) -> int:
        """Run *argv* in the foreground with the app suspended."""
        logger.info("Handing terminal to %s", " ".join(argv))
        try:
            with self.app.suspend():
                return subprocess.call(argv, cwd=cwd)
        except SuspendNotSupported as exc:
            raise CommandError(argv, None, "terminal cannot be suspended here") from exc

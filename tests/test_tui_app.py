"""Pilot tests for the Textual front end."""

from __future__ import annotations

import asyncio

from perch.engine.config import ControlConfig
from perch.engine.controller import Controller
from perch.engine.modals import HelpModal, SetupModal
from perch.engine.sections import Section

from fakes import FakeClock, FakeRunner


def _fake_town() -> FakeRunner:
    runner = FakeRunner()
    runner.reply(["gt", "status"], {
        "name": "testtown",
        "agents": [{"name": "mayor", "role": "mayor", "running": True}],
        "rigs": [{"name": "alpha", "polecat_count": 1}, {"name": "beta"}],
    })
    runner.reply(["bd", "list"], [{"id": "gt-1", "title": "Fix login", "priority": 1}])
    runner.reply(["bd", "dep", "list"], [])
    runner.reply(["bd", "comments"], [])
    return runner


def _controller(exists: bool = True) -> Controller:
    return Controller(
        ControlConfig(town_root="/town", refresh_interval_seconds=0),
        clock=FakeClock(),
        exists=lambda path: exists,
    )


async def _wait_for(pilot, predicate, attempts: int = 40) -> bool:
    for _ in range(attempts):
        if predicate():
            return True
        await pilot.pause(0.05)
    return predicate()


def test_help_overlay_opens_and_any_key_closes():
    async def _run() -> None:
        from perch.tui.app import PerchApp
        from perch.tui.screens.main import MainScreen
        from perch.tui.screens.modal_overlay import ModalOverlay

        controller = _controller()
        app = PerchApp(controller, runner=_fake_town())
        async with app.run_test(size=(120, 40)) as pilot:
            await pilot.pause()
            assert await _wait_for(pilot, lambda: controller.state.snapshot is not None)

            await pilot.press("question_mark")
            assert await _wait_for(pilot, lambda: isinstance(app.screen, ModalOverlay))
            assert isinstance(controller.state.modal, HelpModal)

            await pilot.press("x")
            assert await _wait_for(pilot, lambda: isinstance(app.screen, MainScreen))
            assert controller.state.modal is None

    asyncio.run(_run())


def test_section_key_switches_section_and_loads_detail():
    async def _run() -> None:
        from perch.tui.app import PerchApp

        controller = _controller()
        runner = _fake_town()
        app = PerchApp(controller, runner=runner)
        async with app.run_test(size=(120, 40)) as pilot:
            await pilot.pause()
            assert await _wait_for(pilot, lambda: controller.state.snapshot is not None)

            await pilot.press("8")
            assert await _wait_for(
                pilot, lambda: controller.state.selection.section == Section.BEADS,
            )
            assert await _wait_for(
                pilot, lambda: ["bd", "comments", "gt-1", "--json"] in runner.argvs(),
            )

    asyncio.run(_run())


def test_missing_town_shows_setup_and_escape_quits():
    async def _run() -> None:
        from perch.tui.app import PerchApp
        from perch.tui.screens.modal_overlay import ModalOverlay

        controller = _controller(exists=False)
        app = PerchApp(controller, runner=FakeRunner())
        async with app.run_test(size=(120, 40)) as pilot:
            await pilot.pause()
            assert await _wait_for(pilot, lambda: isinstance(app.screen, ModalOverlay))
            assert isinstance(controller.state.modal, SetupModal)

            await pilot.press("escape")
            assert await _wait_for(pilot, lambda: controller.state.quit_requested)

    asyncio.run(_run())

"""Tests for the effect runner: timeouts, completions, and cancellation."""

from __future__ import annotations

import asyncio
import threading

from perch.adapters.event_bus import EventBus
from perch.adapters.events import (
    ActionCompleted,
    DetailLoaded,
    RefreshCompleted,
    SettingsLoaded,
    SettingsSaved,
    SetupCompleted,
    Tick,
)
from perch.adapters.executor import GasTownExecutor
from perch.adapters.loader import SnapshotLoader
from perch.adapters.runtime import EffectRunner
from perch.engine.actions import ActionKind, PendingAction
from perch.engine.config import ControlConfig
from perch.engine.effects import (
    InstallTown,
    LoadDetail,
    LoadRigSettings,
    Quit,
    RequestRefresh,
    RunAction,
    SaveRigSettings,
    ScheduleTick,
    SwitchTown,
)
from perch.engine.sections import Section
from perch.engine.state import DetailSlot, SelectionKey
from perch.shared.models.details import RigSettings

from fakes import FakeRunner


def _runner(fake: FakeRunner, town_root: str = "/town", **config) -> tuple[EventBus, EffectRunner]:
    bus = EventBus()
    runner = EffectRunner(
        bus,
        ControlConfig(town_root=town_root, **config),
        SnapshotLoader(town_root, fake),
        GasTownExecutor(town_root, fake, export_dir="/tmp/perch-test-export"),
    )
    return bus, runner


async def _next_event(bus: EventBus, timeout: float = 2.0):
    async def first():
        async for event in bus.consume():
            return event
    return await asyncio.wait_for(first(), timeout)


def _action(kind=ActionKind.BOOT_RIG, target="alpha", timeout=5.0, payload=None) -> PendingAction:
    return PendingAction(
        action_id=7, kind=kind, target=target, payload=payload, timeout_seconds=timeout,
    )


class TestActions:
    def test_slow_action_times_out_and_is_not_retried(self):
        """A hung command reports a timed-out failure exactly once."""
        fake = FakeRunner(delay=0.5)
        fake.reply(["gt", "rig", "boot"], "booted")
        bus, runner = _runner(fake)

        async def _run():
            runner.run([RunAction(_action(target="X", timeout=0.05))])
            event = await _next_event(bus)
            await asyncio.sleep(0.6)
            await runner.shutdown()
            return event

        event = asyncio.run(_run())

        assert isinstance(event, ActionCompleted)
        assert event.action_id == 7
        assert event.timed_out is True
        assert event.error == "boot_rig on X timed out after 0.05s"
        assert fake.argvs() == [["gt", "rig", "boot", "X"]]
        assert bus.pending() == 0

    def test_successful_action_carries_output(self):
        fake = FakeRunner()
        fake.reply(["gt", "rig", "boot", "alpha"], "booted\n")
        bus, runner = _runner(fake)

        async def _run():
            runner.run([RunAction(_action())])
            return await _next_event(bus)

        event = asyncio.run(_run())

        assert event.error is None
        assert event.output == "booted\n"
        assert fake.calls == [(["gt", "rig", "boot", "alpha"], "/town")]

    def test_failed_command_reports_stderr(self):
        fake = FakeRunner()
        fake.reply(["gt", "rig", "boot"], returncode=1, stderr="rig busy\n")
        bus, runner = _runner(fake)

        async def _run():
            runner.run([RunAction(_action())])
            return await _next_event(bus)

        event = asyncio.run(_run())

        assert event.timed_out is False
        assert event.error == "exit status 1: rig busy"

    def test_unconfirmed_destructive_action_is_refused(self):
        fake = FakeRunner()
        bus, runner = _runner(fake)

        async def _run():
            runner.run([RunAction(_action(ActionKind.DELETE_RIG, "alpha"))])
            return await _next_event(bus)

        event = asyncio.run(_run())

        assert event.error == "Destructive action delete_rig on alpha requires confirmation"
        assert fake.calls == []

    def test_interactive_action_uses_terminal_hook(self):
        fake = FakeRunner()
        calls = []

        async def interactive(argv, cwd):
            calls.append((argv, cwd))
            return 0

        bus = EventBus()
        runner = EffectRunner(
            bus,
            ControlConfig(town_root="/town"),
            SnapshotLoader("/town", fake),
            GasTownExecutor("/town", fake),
            interactive=interactive,
        )

        async def _run():
            runner.run([RunAction(_action(ActionKind.OPEN_LOGS, "mayor"))])
            return await _next_event(bus)

        event = asyncio.run(_run())

        assert event.error is None
        assert calls == [(["gt", "log", "--agent", "mayor", "-f"], "/town")]
        assert fake.calls == []

    def test_interactive_nonzero_exit_is_an_error(self):
        async def interactive(argv, cwd):
            return 2

        bus = EventBus()
        fake = FakeRunner()
        runner = EffectRunner(
            bus,
            ControlConfig(town_root="/town"),
            SnapshotLoader("/town", fake),
            GasTownExecutor("/town", fake),
            interactive=interactive,
        )

        async def _run():
            runner.run([RunAction(_action(ActionKind.OPEN_LOGS, "mayor"))])
            return await _next_event(bus)

        assert asyncio.run(_run()).error == "exit status 2"


class TestRefresh:
    def test_refresh_timeout_becomes_error_event(self):
        bus, runner = _runner(FakeRunner(delay=0.5), load_timeout_seconds=0.05)

        async def _run():
            runner.run([RequestRefresh(generation=3)])
            event = await _next_event(bus)
            await runner.shutdown()
            return event

        event = asyncio.run(_run())

        assert isinstance(event, RefreshCompleted)
        assert event.generation == 3
        assert event.snapshot is None
        assert event.error == "Snapshot load timed out after 0.05s"

    def test_refresh_delivers_snapshot_with_partial_errors(self):
        fake = FakeRunner()
        fake.reply(["gt", "status"], {"name": "t", "rigs": []})
        bus, runner = _runner(fake)

        async def _run():
            runner.run([RequestRefresh(generation=1)])
            return await _next_event(bus)

        event = asyncio.run(_run())

        assert event.error is None
        assert event.snapshot.town.name == "t"
        failed = {e.source for e in event.snapshot.load_errors}
        assert failed == {"polecats", "convoys", "issues", "mail"}

    def test_town_switch_abandons_refresh_in_flight(self):
        fake = FakeRunner(delay=0.3)
        bus, runner = _runner(fake)

        async def _run():
            runner.run([RequestRefresh(generation=0)])
            await asyncio.sleep(0.05)
            runner.run([SwitchTown("/other"), RequestRefresh(generation=1)])
            await asyncio.sleep(0.05)
            running = sorted(
                task.get_name() for task in asyncio.all_tasks()
                if task.get_name().startswith("refresh-")
            )
            event = await _next_event(bus)
            await asyncio.sleep(0.1)
            return running, event, bus.pending()

        running, event, remaining = asyncio.run(_run())

        assert running == ["refresh-1"]
        assert isinstance(event, RefreshCompleted)
        assert event.generation == 1
        assert remaining == 0
        assert fake.calls[0] == (["gt", "status", "--json", "--fast"], "/town")
        assert {cwd for _, cwd in fake.calls[1:]} == {"/other"}

    def test_schedule_tick_posts_tick(self):
        bus, runner = _runner(FakeRunner())

        async def _run():
            runner.run([ScheduleTick(0.01)])
            return await _next_event(bus)

        assert isinstance(asyncio.run(_run()), Tick)


class TestDetail:
    def test_new_load_for_same_slot_cancels_previous(self):
        fake = FakeRunner(delay=0.1)
        fake.reply(["bd", "comments"], [])
        bus, runner = _runner(fake)
        old = SelectionKey(Section.BEADS, "gt-1")
        new = SelectionKey(Section.BEADS, "gt-2")

        async def _run():
            runner.run([LoadDetail(DetailSlot.COMMENTS, old)])
            runner.run([LoadDetail(DetailSlot.COMMENTS, new)])
            event = await _next_event(bus)
            await asyncio.sleep(0.2)
            return event, bus.pending()

        event, remaining = asyncio.run(_run())

        assert isinstance(event, DetailLoaded)
        assert event.key == new
        assert event.value.issue_id == "gt-2"
        assert remaining == 0

    def test_detail_failure_is_reported_in_event(self):
        fake = FakeRunner()
        fake.reply(["bd", "dep"], returncode=1, stderr="no such issue")
        bus, runner = _runner(fake)
        key = SelectionKey(Section.BEADS, "gt-9")

        async def _run():
            runner.run([LoadDetail(DetailSlot.DEPENDENCIES, key)])
            return await _next_event(bus)

        event = asyncio.run(_run())

        assert event.value is None
        assert event.error == (
            "Failed to load dependencies for gt-9: exit status 1: no such issue"
        )


    def test_unexpected_loader_error_still_completes(self):
        fake = FakeRunner()
        fake.reply(["bd", "dep"], ["not-a-dict"])
        bus, runner = _runner(fake)
        key = SelectionKey(Section.BEADS, "gt-9")

        async def _run():
            runner.run([LoadDetail(DetailSlot.DEPENDENCIES, key)])
            return await _next_event(bus)

        event = asyncio.run(_run())

        assert isinstance(event, DetailLoaded)
        assert event.key == key
        assert event.value is None
        assert event.error.startswith("Failed to load dependencies for gt-9: ")


class TestRigSettings:
    def test_load_runs_off_the_loop_and_reports_settings(self):
        bus, runner = _runner(FakeRunner())
        threads = []

        def load(rig):
            threads.append(threading.current_thread())
            return RigSettings(rig, prefix="al")

        runner.loader.load_rig_settings = load

        async def _run():
            runner.run([LoadRigSettings("alpha")])
            return await _next_event(bus)

        event = asyncio.run(_run())

        assert isinstance(event, SettingsLoaded)
        assert event.settings == RigSettings("alpha", prefix="al")
        assert threads and threads[0] is not threading.main_thread()

    def test_unexpected_load_error_still_completes(self):
        bus, runner = _runner(FakeRunner())

        def load(rig):
            raise AttributeError("'str' object has no attribute 'get'")

        runner.loader.load_rig_settings = load

        async def _run():
            runner.run([LoadRigSettings("alpha")])
            return await _next_event(bus)

        event = asyncio.run(_run())

        assert isinstance(event, SettingsLoaded)
        assert event.rig == "alpha"
        assert event.settings is None
        assert event.error == "'str' object has no attribute 'get'"

class TestTownLifecycle:
    def test_switch_town_rebinds_loader_and_executor(self):
        bus, runner = _runner(FakeRunner())

        async def _run():
            runner.run([SwitchTown("/other")])

        asyncio.run(_run())

        assert runner.loader.town_root == "/other"
        assert runner.executor.town_root == "/other"

    def test_install_reports_completion(self):
        fake = FakeRunner()
        fake.reply(["gt", "install"], "installed")
        bus, runner = _runner(fake)

        async def _run():
            runner.run([InstallTown("/srv/gt")])
            return await _next_event(bus)

        event = asyncio.run(_run())

        assert isinstance(event, SetupCompleted)
        assert event.path == "/srv/gt"
        assert event.error is None
        assert fake.calls == [(["gt", "install", "/srv/gt"], None)]

    def test_install_crash_still_completes(self):
        fake = FakeRunner()
        fake.fail(["gt", "install"], PermissionError("permission denied: /srv"))
        bus, runner = _runner(fake)

        async def _run():
            runner.run([InstallTown("/srv/gt")])
            return await _next_event(bus)

        event = asyncio.run(_run())

        assert isinstance(event, SetupCompleted)
        assert event.error == "permission denied: /srv"

    def test_save_settings_without_registry_reports_error(self, tmp_path):
        bus, runner = _runner(FakeRunner(), town_root=str(tmp_path))

        async def _run():
            runner.run([SaveRigSettings(RigSettings("alpha", prefix="al"))])
            return await _next_event(bus)

        event = asyncio.run(_run())

        assert isinstance(event, SettingsSaved)
        assert event.rig == "alpha"
        assert event.error

    def test_quit_calls_hook(self):
        quits = []
        bus = EventBus()
        fake = FakeRunner()
        runner = EffectRunner(
            bus,
            ControlConfig(town_root="/town"),
            SnapshotLoader("/town", fake),
            GasTownExecutor("/town", fake),
            on_quit=lambda: quits.append(True),
        )
        runner.run([Quit()])
        assert quits == [True]

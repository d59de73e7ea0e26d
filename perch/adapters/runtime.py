"""Effect runner — turns controller effects into asyncio tasks.

Tasks never touch ControlState. Each one ends by posting a completion
event to the bus, with any error or timeout carried inside the event.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

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
from perch.adapters.executor import INTERACTIVE_ACTIONS, GasTownExecutor
from perch.adapters.loader import SnapshotLoader
from perch.engine.actions import PendingAction, is_destructive
from perch.engine.config import ControlConfig
from perch.engine.effects import (
    Effect,
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
from perch.engine.errors import (
    ActionTimeoutError,
    CommandError,
    ConfirmationRequiredError,
    DetailLoadError,
    SnapshotTimeoutError,
)
from perch.engine.state import DetailSlot

logger = logging.getLogger(__name__)

# Runs an interactive command with the terminal handed over; returns the exit code.
InteractiveRunner = Callable[[list[str], str], Awaitable[int]]


class EffectRunner:
    def __init__(
        self,
        bus: EventBus,
        config: ControlConfig,
        loader: SnapshotLoader,
        executor: GasTownExecutor,
        on_quit: Callable[[], None] | None = None,
        interactive: InteractiveRunner | None = None,
    ) -> None:
        self._bus = bus
        self._config = config
        self.loader = loader
        self.executor = executor
        self._on_quit = on_quit
        self._interactive = interactive
        self._tasks: set[asyncio.Task] = set()
        self._detail_tasks: dict[DetailSlot, asyncio.Task] = {}
        self._refresh_task: asyncio.Task | None = None
        self._tick_handle: asyncio.TimerHandle | None = None
        self._handlers: dict[type, Callable[[Any], None]] = {
            RequestRefresh: self._request_refresh,
            ScheduleTick: self._schedule_tick,
            RunAction: self._run_action,
            LoadDetail: self._load_detail,
            LoadRigSettings: self._load_rig_settings,
            SaveRigSettings: self._save_rig_settings,
            InstallTown: self._install_town,
            SwitchTown: self._switch_town,
            Quit: self._quit,
        }

    def run(self, effects: list[Effect]) -> None:
        """Start every effect. Never blocks on their results."""
        for effect in effects:
            handler = self._handlers.get(type(effect))
            if handler is None:
                logger.warning("No runner for effect %s", type(effect).__name__)
                continue
            handler(effect)

    def in_flight(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    async def shutdown(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _spawn(self, coro: Awaitable[None], name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ── Refresh ──

    def _schedule_tick(self, effect: ScheduleTick) -> None:
        if effect.delay_seconds <= 0:
            return
        if self._tick_handle is not None:
            self._tick_handle.cancel()
        loop = asyncio.get_running_loop()
        self._tick_handle = loop.call_later(effect.delay_seconds, self._bus.post, Tick())

    def _request_refresh(self, effect: RequestRefresh) -> None:
        self._refresh_task = self._spawn(
            self._refresh(effect.generation), f"refresh-{effect.generation}",
        )

    async def _refresh(self, generation: int) -> None:
        timeout = self._config.load_timeout_seconds
        try:
            snapshot = await asyncio.wait_for(self.loader.load_all(), timeout=timeout)
            event = RefreshCompleted(generation=generation, snapshot=snapshot)
        except asyncio.TimeoutError:
            event = RefreshCompleted(
                generation=generation, error=str(SnapshotTimeoutError(timeout)),
            )
        except Exception as exc:
            logger.exception("Snapshot load crashed")
            event = RefreshCompleted(generation=generation, error=str(exc))
        await self._bus.emit(event)

    # ── Actions ──

    def _run_action(self, effect: RunAction) -> None:
        action = effect.action
        self._spawn(self._action(action), f"action-{action.action_id}")

    async def _action(self, action: PendingAction) -> None:
        event = ActionCompleted(
            action_id=action.action_id, kind=action.kind, target=action.target,
        )
        try:
            if is_destructive(action.kind) and not action.confirmed:
                raise ConfirmationRequiredError(action.kind.value, action.target)
            if action.kind in INTERACTIVE_ACTIONS and self._interactive is not None:
                event.output = await self._run_interactive(action)
            else:
                event.output = await asyncio.wait_for(
                    self.executor.execute(action.kind, action.target, action.payload),
                    timeout=action.timeout_seconds,
                )
        except asyncio.TimeoutError:
            event.timed_out = True
            event.error = str(ActionTimeoutError(
                action.kind.value, action.target, action.timeout_seconds,
            ))
        except ConfirmationRequiredError as exc:
            logger.error("Refusing action %d: %s", action.action_id, exc)
            event.error = str(exc)
        except CommandError as exc:
            event.error = str(exc)
        except Exception as exc:
            logger.exception("Action %d crashed", action.action_id)
            event.error = str(exc)
        await self._bus.emit(event)

    async def _run_interactive(self, action: PendingAction) -> str:
        """Hand the terminal to the command; no timeout while the user is in it."""
        self.executor.preflight(action.kind)
        argv = self.executor.command_for(action.kind, action.target, action.payload)
        returncode = await self._interactive(argv, self.executor.town_root)
        if returncode != 0:
            raise CommandError(argv, returncode)
        return ""

    # ── Detail ──

    def _load_detail(self, effect: LoadDetail) -> None:
        previous = self._detail_tasks.get(effect.slot)
        if previous is not None and not previous.done():
            # Only the local await is abandoned; a subprocess may still finish.
            previous.cancel()
        task = self._spawn(
            self._detail(effect), f"detail-{effect.slot.value}-{effect.key.item_id}",
        )
        self._detail_tasks[effect.slot] = task

    def _detail_loader(self, slot: DetailSlot, item_id: str) -> Awaitable[Any]:
        loaders = {
            DetailSlot.DEPENDENCIES: lambda: self.loader.load_dependencies(item_id),
            DetailSlot.COMMENTS: lambda: self.loader.load_comments(item_id),
            DetailSlot.AUDIT: lambda: self.loader.load_audit_timeline(
                item_id, self._config.audit_limit,
            ),
        }
        return loaders[slot]()

    async def _detail(self, effect: LoadDetail) -> None:
        event = DetailLoaded(slot=effect.slot, key=effect.key)
        timeout = self._config.detail_timeout_seconds
        try:
            event.value = await asyncio.wait_for(
                self._detail_loader(effect.slot, effect.key.item_id), timeout=timeout,
            )
        except asyncio.TimeoutError:
            event.error = str(DetailLoadError(
                effect.slot.value, effect.key.item_id, f"timed out after {timeout:g}s",
            ))
        except (CommandError, ValueError, OSError) as exc:
            event.error = str(DetailLoadError(effect.slot.value, effect.key.item_id, str(exc)))
        except Exception as exc:
            logger.exception("Loading %s for %s crashed", effect.slot.value, effect.key.item_id)
            event.error = str(DetailLoadError(effect.slot.value, effect.key.item_id, str(exc)))
        await self._bus.emit(event)

    # ── Rig settings ──

    def _load_rig_settings(self, effect: LoadRigSettings) -> None:
        self._spawn(self._settings_load(effect.rig), f"settings-load-{effect.rig}")

    async def _settings_load(self, rig: str) -> None:
        try:
            settings = await asyncio.to_thread(self.loader.load_rig_settings, rig)
            event = SettingsLoaded(rig=rig, settings=settings)
        except (OSError, ValueError) as exc:
            event = SettingsLoaded(rig=rig, error=str(exc))
        except Exception as exc:
            logger.exception("Loading settings for %s crashed", rig)
            event = SettingsLoaded(rig=rig, error=str(exc))
        await self._bus.emit(event)

    def _save_rig_settings(self, effect: SaveRigSettings) -> None:
        rig = effect.settings.name
        self._spawn(self._settings_save(effect), f"settings-save-{rig}")

    async def _settings_save(self, effect: SaveRigSettings) -> None:
        rig = effect.settings.name
        try:
            await asyncio.to_thread(self.loader.save_rig_settings, effect.settings)
            event = SettingsSaved(rig=rig)
        except Exception as exc:
            logger.warning("Saving settings for %s failed: %s", rig, exc)
            event = SettingsSaved(rig=rig, error=str(exc))
        await self._bus.emit(event)

    # ── Town lifecycle ──

    def _install_town(self, effect: InstallTown) -> None:
        self._spawn(self._install(effect.path), "install-town")

    async def _install(self, path: str) -> None:
        timeout = self._config.long_action_timeout_seconds
        try:
            await asyncio.wait_for(self.executor.install(path), timeout=timeout)
            event = SetupCompleted(path=path)
        except asyncio.TimeoutError:
            event = SetupCompleted(
                path=path, error=str(ActionTimeoutError("install_town", path, timeout)),
            )
        except CommandError as exc:
            event = SetupCompleted(path=path, error=str(exc))
        except Exception as exc:
            logger.exception("Installing town at %s crashed", path)
            event = SetupCompleted(path=path, error=str(exc))
        await self._bus.emit(event)

    def _switch_town(self, effect: SwitchTown) -> None:
        logger.info("Runner now targeting %s", effect.path)
        if self._refresh_task is not None and not self._refresh_task.done():
            # The old town's poll is abandoned; its generation is already stale.
            self._refresh_task.cancel()
        self._refresh_task = None
        for task in self._detail_tasks.values():
            if not task.done():
                task.cancel()
        self._detail_tasks.clear()
        self.loader.town_root = effect.path
        self.executor.town_root = effect.path

    def _quit(self, effect: Quit) -> None:
        if self._on_quit is not None:
            self._on_quit()

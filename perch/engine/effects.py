"""Side effects requested by the controller.

The controller never performs I/O. It returns these requests and the
effect runner turns each one into a background task whose result comes
back as an event.
"""
from __future__ import annotations

from dataclasses import dataclass

from perch.engine.actions import PendingAction
from perch.engine.state import DetailSlot, SelectionKey
from perch.shared.models.details import RigSettings


@dataclass(frozen=True)
class Effect:
    """Base effect."""


@dataclass(frozen=True)
class RequestRefresh(Effect):
    generation: int = 0


@dataclass(frozen=True)
class ScheduleTick(Effect):
    delay_seconds: float = 10.0


@dataclass(frozen=True)
class RunAction(Effect):
    action: PendingAction


@dataclass(frozen=True)
class LoadDetail(Effect):
    slot: DetailSlot
    key: SelectionKey


@dataclass(frozen=True)
class LoadRigSettings(Effect):
    rig: str


@dataclass(frozen=True)
class SaveRigSettings(Effect):
    settings: RigSettings


@dataclass(frozen=True)
class InstallTown(Effect):
    path: str


@dataclass(frozen=True)
class SwitchTown(Effect):
    path: str


@dataclass(frozen=True)
class Quit(Effect):
    """Exit the application."""

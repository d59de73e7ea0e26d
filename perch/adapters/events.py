"""Event types consumed by the control loop.

Key presses, ticks, and every background completion arrive as one of
these dataclasses. The controller applies them one at a time.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from perch.engine.actions import ActionKind
from perch.engine.state import DetailSlot, SelectionKey
from perch.shared.models.details import RigSettings
from perch.shared.models.snapshot import Snapshot


@dataclass
class ControlEvent:
    """Base event for the control loop."""
    event_type: str = ""


@dataclass
class KeyPressed(ControlEvent):
    event_type: str = "key_pressed"
    key: str = ""


@dataclass
class Tick(ControlEvent):
    event_type: str = "tick"


@dataclass
class RefreshCompleted(ControlEvent):
    event_type: str = "refresh_completed"
    generation: int = 0
    snapshot: Snapshot | None = None
    error: str | None = None


@dataclass
class ActionCompleted(ControlEvent):
    event_type: str = "action_completed"
    action_id: int = 0
    kind: ActionKind | None = None
    target: str = ""
    output: str = ""
    error: str | None = None
    timed_out: bool = False


@dataclass
class DetailLoaded(ControlEvent):
    event_type: str = "detail_loaded"
    slot: DetailSlot | None = None
    key: SelectionKey | None = None
    value: Any = None
    error: str | None = None


@dataclass
class SettingsLoaded(ControlEvent):
    event_type: str = "settings_loaded"
    rig: str = ""
    settings: RigSettings | None = None
    error: str | None = None


@dataclass
class SettingsSaved(ControlEvent):
    event_type: str = "settings_saved"
    rig: str = ""
    error: str | None = None


@dataclass
class SetupCompleted(ControlEvent):
    event_type: str = "setup_completed"
    path: str = ""
    error: str | None = None

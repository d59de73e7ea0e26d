"""Dialogs and menus: confirmation, text input, pickers, help, drill-downs."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from perch.engine.actions import DEFAULT_PRESET_NUDGES, ActionKind, PresetNudge
from perch.engine.modals.base import (
    DOWN_KEYS,
    STAY,
    UP_KEYS,
    Cancel,
    KeyResult,
    Modal,
    ModalKind,
    Submit,
    TextField,
    move_index,
)
from perch.shared.models.snapshot import Agent, Snapshot


@dataclass
class ConfirmModal(Modal):
    """Yes/no gate in front of destructive or town-wide actions.

    ``payload`` carries data collected by an earlier form (for example a
    bead draft) so the confirmed action can run without that form.
    """

    kind: ClassVar[ModalKind] = ModalKind.CONFIRM

    title: str
    message: str
    action: ActionKind
    target: str
    payload: Any = None

    def handle_key(self, key: str) -> KeyResult:
        if key in ("y", "Y"):
            return Submit(self.payload)
        if key in ("n", "N", "escape"):
            return Cancel("Action cancelled")
        return STAY


@dataclass
class InputModal(Modal):
    """Single or double text input (nudge, sling, mail, reply)."""

    kind: ClassVar[ModalKind] = ModalKind.INPUT

    title: str
    prompt: str
    action: ActionKind
    target: str
    extra_prompt: str = ""
    value: TextField = field(default_factory=TextField)
    extra: TextField = field(default_factory=TextField)
    field_index: int = 0

    @property
    def has_extra(self) -> bool:
        return bool(self.extra_prompt)

    def handle_key(self, key: str) -> KeyResult:
        if key == "escape":
            return Cancel("Input cancelled")
        if key == "enter":
            if self.has_extra and self.field_index == 0:
                self.field_index = 1
                return STAY
            if not self.value.value:
                return Cancel("Input cancelled (empty)")
            return Submit((self.value.value, self.extra.value))
        if key == "tab":
            if self.has_extra:
                self.field_index = (self.field_index + 1) % 2
            return STAY
        current = self.extra if self.field_index == 1 else self.value
        current.edit(key)
        return STAY


@dataclass
class PresetMenuModal(Modal):
    kind: ClassVar[ModalKind] = ModalKind.PRESET
    title: ClassVar[str] = "Nudge"

    target: str
    nudges: tuple[PresetNudge, ...] = DEFAULT_PRESET_NUDGES
    index: int = 0

    def handle_key(self, key: str) -> KeyResult:
        if key in DOWN_KEYS:
            self.index = move_index(self.index, 1, len(self.nudges))
        elif key in UP_KEYS:
            self.index = move_index(self.index, -1, len(self.nudges))
        elif key == "enter":
            if not self.nudges:
                return Cancel("Nudge cancelled")
            return Submit(self.nudges[self.index])
        elif key in ("escape", "q"):
            return Cancel("Nudge cancelled")
        return STAY


@dataclass(frozen=True)
class RefileTarget:
    label: str
    target: str


@dataclass
class RefileModal(Modal):
    """Destination picker for moving an issue between scopes."""

    kind: ClassVar[ModalKind] = ModalKind.DESTINATION
    title: ClassVar[str] = "Refile"

    issue_id: str
    targets: tuple[RefileTarget, ...] = ()
    index: int = 0

    @classmethod
    def for_snapshot(cls, issue_id: str, snapshot: Snapshot | None) -> RefileModal:
        targets = [RefileTarget("Town (hq-*)", "town")]
        if snapshot is not None:
            targets.extend(RefileTarget(name, name) for name in snapshot.rig_names())
        return cls(issue_id=issue_id, targets=tuple(targets))

    def handle_key(self, key: str) -> KeyResult:
        if key in DOWN_KEYS:
            self.index = move_index(self.index, 1, len(self.targets))
        elif key in UP_KEYS:
            self.index = move_index(self.index, -1, len(self.targets))
        elif key == "enter":
            if not 0 <= self.index < len(self.targets):
                return Cancel("Refile cancelled")
            return Submit(self.targets[self.index])
        elif key in ("escape", "q"):
            return Cancel("Refile cancelled")
        return STAY


@dataclass
class HelpModal(Modal):
    """Help overlay. Any key dismisses it."""

    kind: ClassVar[ModalKind] = ModalKind.HELP
    title: ClassVar[str] = "Help"

    def handle_key(self, key: str) -> KeyResult:
        return Submit(None)


@dataclass
class AgentDetailModal(Modal):
    kind: ClassVar[ModalKind] = ModalKind.DETAIL

    agent: Agent
    index: int = 0

    def actions(self) -> list[tuple[str, ActionKind]]:
        if self.agent.running:
            lifecycle = ("Handoff", ActionKind.HANDOFF)
        else:
            lifecycle = ("Start session", ActionKind.START_SESSION)
        return [
            ("Nudge", ActionKind.PRESET_NUDGE),
            ("Attach", ActionKind.OPEN_SESSION),
            ("Mail", ActionKind.MAIL_AGENT),
            lifecycle,
            ("Stop", ActionKind.STOP_AGENT),
        ]

    def handle_key(self, key: str) -> KeyResult:
        actions = self.actions()
        if key in ("escape", "q"):
            return Cancel("Agent detail closed")
        if key in DOWN_KEYS:
            self.index = move_index(self.index, 1, len(actions))
            return STAY
        if key in UP_KEYS:
            self.index = move_index(self.index, -1, len(actions))
            return STAY
        if key == "enter":
            return Submit(actions[self.index][1])
        shortcuts = {
            "n": ActionKind.PRESET_NUDGE,
            "a": ActionKind.OPEN_SESSION,
            "m": ActionKind.MAIL_AGENT,
        }
        if key in shortcuts:
            return Submit(shortcuts[key])
        if self.agent.running:
            if key == "h":
                return Submit(ActionKind.HANDOFF)
            if key == "s":
                return Submit(ActionKind.STOP_AGENT)
        elif key == "t":
            return Submit(ActionKind.START_SESSION)
        return STAY


@dataclass
class TownMapModal(Modal):
    """Full-screen map of rigs; enter jumps to the highlighted rig."""

    kind: ClassVar[ModalKind] = ModalKind.ALTERNATE_VIEW
    title: ClassVar[str] = "Town Map"

    rigs: tuple[str, ...] = ()
    index: int = 0

    def handle_key(self, key: str) -> KeyResult:
        if key == "escape":
            return Cancel("Back to main view")
        if key in ("l", "right", "j", "down"):
            self.index = move_index(self.index, 1, len(self.rigs))
        elif key in ("h", "left", "k", "up"):
            self.index = move_index(self.index, -1, len(self.rigs))
        elif key == "enter":
            if not self.rigs:
                return Cancel("Back to main view")
            return Submit(self.rigs[self.index])
        return STAY

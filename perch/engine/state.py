"""Root control state, singly owned by the event loop.

Nothing outside the controller mutates a ControlState. Background tasks
only produce events that the controller applies.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from perch.engine.actions import PendingAction
from perch.engine.sections import (
    BeadsFilter,
    BeadsScope,
    Section,
    SectionItem,
    section_items,
)
from perch.shared.models.snapshot import Snapshot

if TYPE_CHECKING:
    from perch.engine.modals.base import Modal


class StatusSeverity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class StatusMessage:
    text: str
    severity: StatusSeverity = StatusSeverity.INFO
    expires_at: float = 0.0

    def visible(self, now: float) -> bool:
        return now < self.expires_at


@dataclass
class RefreshState:
    is_refreshing: bool = False
    last_refresh: float | None = None
    error_count: int = 0
    # Out-of-band request observed while a poll was in flight.
    follow_up_pending: bool = False
    # Bumped when the town root changes; older completions are stale.
    generation: int = 0


@dataclass(frozen=True)
class SelectionKey:
    section: Section
    item_id: str


@dataclass
class Selection:
    section: Section = Section.RIGS
    index: int = 0


class DetailSlot(str, Enum):
    DEPENDENCIES = "dependencies"
    COMMENTS = "comments"
    AUDIT = "audit"


# Drill-down slots loaded for each section's selected item.
SECTION_SLOTS: dict[Section, tuple[DetailSlot, ...]] = {
    Section.BEADS: (DetailSlot.DEPENDENCIES, DetailSlot.COMMENTS),
    Section.AGENTS: (DetailSlot.AUDIT,),
}


@dataclass
class CacheEntry:
    key: SelectionKey
    loading: bool = True
    value: Any = None
    error: str | None = None


@dataclass
class DetailCache:
    entries: dict[DetailSlot, CacheEntry] = field(default_factory=dict)

    def get(self, slot: DetailSlot, key: SelectionKey | None) -> CacheEntry | None:
        """Entry for *slot*, or None when it belongs to another selection."""
        entry = self.entries.get(slot)
        if entry is None or key is None or entry.key != key:
            return None
        return entry

    def clear(self) -> None:
        self.entries.clear()


@dataclass
class ControlState:
    town_root: str | None = None
    snapshot: Snapshot | None = None
    modal: Modal | None = None
    selection: Selection = field(default_factory=Selection)
    refresh: RefreshState = field(default_factory=RefreshState)
    status: StatusMessage | None = None
    details: DetailCache = field(default_factory=DetailCache)
    pending: dict[int, PendingAction] = field(default_factory=dict)
    selected_rig: str = ""
    beads_scope: BeadsScope = BeadsScope.RIG
    beads_filter: BeadsFilter = field(default_factory=BeadsFilter)
    quit_requested: bool = False
    next_action_id: int = 1

    def items(self, section: Section | None = None) -> list[SectionItem]:
        return section_items(
            self.snapshot,
            section or self.selection.section,
            self.beads_scope,
            self.beads_filter,
        )

    def selected_item(self) -> SectionItem | None:
        items = self.items()
        if 0 <= self.selection.index < len(items):
            return items[self.selection.index]
        return None

    def selection_key(self) -> SelectionKey | None:
        item = self.selected_item()
        if item is None:
            return None
        return SelectionKey(self.selection.section, item.item_id)

    def clamp_selection(self) -> None:
        count = len(self.items())
        if count == 0:
            self.selection.index = 0
        elif self.selection.index >= count:
            self.selection.index = count - 1
        elif self.selection.index < 0:
            self.selection.index = 0

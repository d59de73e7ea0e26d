"""Read-only projection of ControlState for rendering."""
from __future__ import annotations

from dataclasses import dataclass, field

from perch.engine.modals.base import Modal
from perch.engine.sections import BeadsFilter, BeadsScope, Section, SectionItem
from perch.engine.state import CacheEntry, ControlState, DetailSlot, StatusSeverity
from perch.engine.status import visible_status
from perch.shared.models.snapshot import Snapshot


@dataclass(frozen=True)
class ControlView:
    section: Section
    items: tuple[SectionItem, ...] = ()
    selected_index: int = 0
    snapshot: Snapshot | None = None
    modal: Modal | None = None
    status_text: str = ""
    status_severity: StatusSeverity = StatusSeverity.INFO
    refreshing: bool = False
    connected: bool = False
    error_count: int = 0
    last_refresh: float | None = None
    town_root: str | None = None
    selected_rig: str = ""
    beads_scope: BeadsScope = BeadsScope.RIG
    beads_filter: BeadsFilter = field(default_factory=BeadsFilter)
    pending_actions: int = 0
    details: dict[DetailSlot, CacheEntry] = field(default_factory=dict)

    @property
    def selected(self) -> SectionItem | None:
        if 0 <= self.selected_index < len(self.items):
            return self.items[self.selected_index]
        return None


def project(state: ControlState, now: float) -> ControlView:
    status = visible_status(state, now)
    key = state.selection_key()
    details = {}
    for slot in state.details.entries:
        entry = state.details.get(slot, key)
        if entry is not None:
            details[slot] = entry
    snapshot = state.snapshot
    return ControlView(
        section=state.selection.section,
        items=tuple(state.items()),
        selected_index=state.selection.index,
        snapshot=snapshot,
        modal=state.modal,
        status_text=status.text if status else "",
        status_severity=status.severity if status else StatusSeverity.INFO,
        refreshing=state.refresh.is_refreshing,
        connected=snapshot is not None and snapshot.town is not None,
        error_count=state.refresh.error_count,
        last_refresh=state.refresh.last_refresh,
        town_root=state.town_root,
        selected_rig=state.selected_rig,
        beads_scope=state.beads_scope,
        beads_filter=state.beads_filter,
        pending_actions=len(state.pending),
        details=details,
    )

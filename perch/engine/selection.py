"""Selection-scoped detail loading with a staleness guard.

Each drill-down slot remembers which selection it was loaded for. A
result is applied only if the selection has not moved since the load
was issued.
"""
from __future__ import annotations

import logging

from perch.engine.effects import Effect, LoadDetail
from perch.engine.state import SECTION_SLOTS, CacheEntry, ControlState, DetailSlot

logger = logging.getLogger(__name__)


class CascadeSynchronizer:
    def sync(self, state: ControlState) -> list[Effect]:
        """Reconcile the detail cache with the current selection."""
        key = state.selection_key()
        wanted = SECTION_SLOTS.get(state.selection.section, ()) if key else ()
        for slot in list(state.details.entries):
            if slot not in wanted:
                del state.details.entries[slot]

        effects: list[Effect] = []
        for slot in wanted:
            entry = state.details.entries.get(slot)
            if entry is not None and entry.key == key:
                continue
            state.details.entries[slot] = CacheEntry(key=key, loading=True)
            effects.append(LoadDetail(slot=slot, key=key))
        return effects

    def invalidate(self, state: ControlState, slot: DetailSlot | None = None) -> list[Effect]:
        """Force a reload, e.g. after a dependency or comment was added."""
        if slot is None:
            state.details.clear()
        else:
            state.details.entries.pop(slot, None)
        return self.sync(state)

    def apply(self, state: ControlState, slot, key, value=None, error: str | None = None) -> bool:
        """Store a loaded value if *key* still matches the selection."""
        if key != state.selection_key():
            logger.debug("Discarding stale %s detail for %s", slot, key)
            return False
        entry = state.details.entries.get(slot)
        if entry is None or entry.key != key:
            return False
        entry.loading = False
        entry.value = value
        entry.error = error
        return True

"""Sidebar — section tabs and the selectable rows of the focused section."""

from __future__ import annotations

from rich.text import Text
from textual.reactive import reactive
from textual.widget import Widget

from perch.engine.projection import ControlView
from perch.engine.sections import SECTION_KEYS, SECTION_TITLES, BeadsScope, Section


class Sidebar(Widget):
    view: reactive[ControlView | None] = reactive(None, always_update=True)

    def render(self) -> Text:
        text = Text()
        view = self.view
        current = view.section if view else Section.RIGS
        for key, section in SECTION_KEYS.items():
            style = "bold reverse" if section == current else "dim"
            text.append(f"{key} {SECTION_TITLES[section]}", style=style)
            text.append("\n")
        text.append("\n")

        if view is None or view.town_root is None:
            text.append("No town attached", style="dim italic")
            return text

        heading = SECTION_TITLES[current]
        if current == Section.BEADS:
            scope = "town" if view.beads_scope == BeadsScope.TOWN else "rig"
            heading += f" [{scope}]"
            if view.beads_filter.active:
                heading += " (filtered)"
        text.append(heading + "\n", style="bold underline")

        if not view.items:
            text.append("  (empty)" if view.snapshot else "  loading...", style="dim")
            return text
        for index, item in enumerate(view.items):
            selected = index == view.selected_index
            marker = "▸ " if selected else "  "
            text.append(marker + item.label + "\n", style="bold cyan" if selected else "")
        return text

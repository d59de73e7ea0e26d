"""Status bar — bottom bar showing town, refresh state, and notifications."""

from __future__ import annotations

import time

from rich.text import Text
from textual.reactive import reactive
from textual.widget import Widget

from perch.engine.state import StatusSeverity


def _format_age(seconds: float) -> str:
    """Format seconds since the last refresh."""
    secs = int(seconds)
    if secs < 60:
        return f"{secs}s ago"
    elif secs < 3600:
        return f"{secs // 60}m ago"
    else:
        return f"{secs // 3600}h ago"


_SEVERITY_STYLES = {
    StatusSeverity.INFO: "white",
    StatusSeverity.SUCCESS: "green",
    StatusSeverity.WARNING: "yellow",
    StatusSeverity.ERROR: "red bold",
}


class StatusBar(Widget):
    """Single-line status bar with connection state and the current message."""

    town: reactive[str] = reactive("no town")
    connected: reactive[bool] = reactive(False)
    refreshing: reactive[bool] = reactive(False)
    error_count: reactive[int] = reactive(0)
    pending_actions: reactive[int] = reactive(0)
    last_refresh: reactive[float | None] = reactive(None)
    message: reactive[str] = reactive("")
    severity: reactive[StatusSeverity] = reactive(StatusSeverity.INFO)

    def render(self) -> Text:
        bar = Text()
        bar.append(f" {self.town} ", style="bold")
        bar.append(" │ ", style="dim")

        if self.refreshing:
            bar.append("● refreshing", style="yellow")
        elif self.connected:
            bar.append("● connected", style="green")
        else:
            bar.append("● disconnected", style="red")
        if self.last_refresh is not None:
            bar.append(f" ({_format_age(time.monotonic() - self.last_refresh)})", style="dim")

        if self.error_count:
            bar.append(" │ ", style="dim")
            bar.append(f"{self.error_count} errors", style="red")
        if self.pending_actions:
            bar.append(" │ ", style="dim")
            bar.append(f"{self.pending_actions} running", style="cyan")

        if self.message:
            bar.append(" │ ", style="dim")
            bar.append(self.message, style=_SEVERITY_STYLES.get(self.severity, "white"))
        else:
            bar.append(" │ ", style="dim")
            bar.append("? help  q quit", style="dim")
        return bar

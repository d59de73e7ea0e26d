"""Key normalization from Textual events to keymap names."""
from __future__ import annotations

from textual import events


def normalize_key(event: events.Key) -> str:
    """Keymap name for *event*.

    Printable keys map to the character typed, so shifted letters arrive
    as ``"A"`` rather than ``"shift+a"``. Everything else keeps Textual's
    key name (``"enter"``, ``"ctrl+u"``, ``"space"``).
    """
    if event.key == "space":
        return "space"
    char = event.character
    if char is not None and len(char) == 1 and char.isprintable() and not char.isspace():
        return char
    return event.key

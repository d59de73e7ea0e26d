"""Shared pieces for modal variants.

Every modal owns its own uncommitted edits and answers a key with one
of three results: stay open, submit data, or cancel.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Union


class ModalKind(str, Enum):
    SETUP = "setup"
    HELP = "help"
    INPUT = "input"
    DEPENDENCY = "dependency"
    FILTER = "filter"
    PRESET = "preset"
    DESTINATION = "destination"
    ATTACH = "attach"
    CONFIRM = "confirm"
    FORM = "form"
    DETAIL = "detail"
    ALTERNATE_VIEW = "alternate_view"


@dataclass(frozen=True)
class Stay:
    """Key consumed; modal stays open."""


@dataclass(frozen=True)
class Submit:
    data: Any = None


@dataclass(frozen=True)
class Cancel:
    # Neutral status shown after closing; None shows nothing.
    message: str | None = "Cancelled"


KeyResult = Union[Stay, Submit, Cancel]

STAY = Stay()


class Modal:
    """Base class for the closed set of modal variants."""

    kind: ClassVar[ModalKind]
    # Class-level for fixed dialogs; ConfirmModal and InputModal take it per instance.
    title: ClassVar[str]

    def handle_key(self, key: str) -> KeyResult:
        raise NotImplementedError


# ── Text editing ──


def key_to_char(key: str) -> str | None:
    """Printable character for *key*, or None for control keys."""
    if key == "space":
        return " "
    if len(key) == 1 and key.isprintable():
        return key
    return None


@dataclass
class TextField:
    text: str = ""
    limit: int = 256

    def edit(self, key: str) -> bool:
        """Apply an editing key. Returns True when the key was consumed."""
        if key == "backspace":
            self.text = self.text[:-1]
            return True
        if key == "ctrl+u":
            self.text = ""
            return True
        char = key_to_char(key)
        if char is None:
            return False
        if len(self.text) < self.limit:
            self.text += char
        return True

    @property
    def value(self) -> str:
        return self.text.strip()


def move_index(index: int, delta: int, count: int) -> int:
    """Clamp *index + delta* into [0, count)."""
    if count <= 0:
        return 0
    return max(0, min(count - 1, index + delta))


DOWN_KEYS = frozenset({"j", "down"})
UP_KEYS = frozenset({"k", "up"})

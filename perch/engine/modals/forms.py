"""Create/edit forms: beads, comments, rigs, and rig settings.

Invalid input is rejected inside the form via ``validation_error``; the
form only submits data that is ready to dispatch.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from perch.engine.errors import SettingsValidationError
from perch.engine.modals.base import (
    STAY,
    Cancel,
    KeyResult,
    Modal,
    ModalKind,
    Submit,
    TextField,
)
from perch.shared.models.details import RigSettings
from perch.shared.models.snapshot import Issue

BEAD_TYPES = ("task", "bug", "feature")

NEXT_FIELD_KEYS = frozenset({"tab", "down"})
PREV_FIELD_KEYS = frozenset({"shift+tab", "up"})


@dataclass(frozen=True)
class BeadDraft:
    title: str
    description: str = ""
    issue_type: str = "task"
    priority: int = 2
    bead_id: str = ""  # empty when creating


@dataclass(frozen=True)
class CommentDraft:
    issue_id: str
    text: str


@dataclass(frozen=True)
class AddRigDraft:
    name: str
    url: str
    prefix: str = ""


@dataclass
class BeadsFormModal(Modal):
    kind: ClassVar[ModalKind] = ModalKind.FORM

    FIELDS: ClassVar[tuple[str, ...]] = ("title", "description", "type", "priority")

    bead_id: str = ""
    title_field: TextField = field(default_factory=lambda: TextField(limit=200))
    description: TextField = field(default_factory=lambda: TextField(limit=2000))
    issue_type: str = "task"
    priority: int = 2
    focus: int = 0
    validation_error: str | None = None

    @property
    def editing(self) -> bool:
        return bool(self.bead_id)

    @classmethod
    def for_issue(cls, issue: Issue) -> BeadsFormModal:
        issue_type = issue.issue_type if issue.issue_type in BEAD_TYPES else "task"
        return cls(
            bead_id=issue.id,
            title_field=TextField(issue.title, limit=200),
            description=TextField(issue.description, limit=2000),
            issue_type=issue_type,
            priority=min(max(issue.priority, 0), 4),
        )

    def _cycle_type(self, delta: int) -> None:
        index = BEAD_TYPES.index(self.issue_type)
        self.issue_type = BEAD_TYPES[(index + delta) % len(BEAD_TYPES)]

    def _selector_key(self, key: str) -> bool:
        name = self.FIELDS[self.focus]
        if key in ("left", "h", "right", "l"):
            delta = 1 if key in ("right", "l") else -1
            if name == "type":
                self._cycle_type(delta)
            else:
                self.priority = min(max(self.priority + delta, 0), 4)
            return True
        if name == "priority" and key in ("1", "2", "3", "4", "5"):
            self.priority = int(key) - 1
            return True
        return False

    def handle_key(self, key: str) -> KeyResult:
        if key == "escape":
            return Cancel("Bead form cancelled")
        if key == "enter":
            if not self.title_field.value:
                self.validation_error = "Title is required"
                return STAY
            return Submit(BeadDraft(
                title=self.title_field.value,
                description=self.description.value,
                issue_type=self.issue_type,
                priority=self.priority,
                bead_id=self.bead_id,
            ))
        if key in NEXT_FIELD_KEYS:
            self.focus = (self.focus + 1) % len(self.FIELDS)
            return STAY
        if key in PREV_FIELD_KEYS:
            self.focus = (self.focus - 1) % len(self.FIELDS)
            return STAY
        name = self.FIELDS[self.focus]
        if name in ("type", "priority"):
            self._selector_key(key)
            return STAY
        target = self.title_field if name == "title" else self.description
        if target.edit(key):
            self.validation_error = None
        return STAY


@dataclass
class CommentFormModal(Modal):
    kind: ClassVar[ModalKind] = ModalKind.FORM

    issue_id: str
    content: TextField = field(default_factory=lambda: TextField(limit=2000))
    validation_error: str | None = None

    def handle_key(self, key: str) -> KeyResult:
        if key == "escape":
            return Cancel("Comment cancelled")
        if key == "enter":
            if not self.content.value:
                self.validation_error = "Comment cannot be empty"
                return STAY
            return Submit(CommentDraft(self.issue_id, self.content.value))
        if self.content.edit(key):
            self.validation_error = None
        return STAY


@dataclass
class AddRigFormModal(Modal):
    kind: ClassVar[ModalKind] = ModalKind.FORM

    FIELDS: ClassVar[tuple[str, ...]] = ("name", "url", "prefix")

    name: TextField = field(default_factory=lambda: TextField(limit=64))
    url: TextField = field(default_factory=lambda: TextField(limit=512))
    prefix: TextField = field(default_factory=lambda: TextField(limit=16))
    focus: int = 0
    validation_error: str | None = None

    def _field(self) -> TextField:
        return (self.name, self.url, self.prefix)[self.focus]

    def handle_key(self, key: str) -> KeyResult:
        if key == "escape":
            return Cancel("Add rig cancelled")
        if key == "enter":
            if self.focus < len(self.FIELDS) - 1:
                self.focus += 1
                return STAY
            if not self.name.value or not self.url.value:
                self.validation_error = "Name and URL are required"
                return STAY
            return Submit(AddRigDraft(self.name.value, self.url.value, self.prefix.value))
        if key in NEXT_FIELD_KEYS:
            self.focus = (self.focus + 1) % len(self.FIELDS)
            return STAY
        if key in PREV_FIELD_KEYS:
            self.focus = (self.focus - 1) % len(self.FIELDS)
            return STAY
        if self._field().edit(key):
            self.validation_error = None
        return STAY


@dataclass
class RigSettingsFormModal(Modal):
    """Edit form for a rig's settings, opened once they load."""

    kind: ClassVar[ModalKind] = ModalKind.FORM

    FIELDS: ClassVar[tuple[str, ...]] = (
        "prefix", "theme", "max_workers", "mq_enabled", "run_tests", "test_command",
    )
    TOGGLES: ClassVar[frozenset[str]] = frozenset({"mq_enabled", "run_tests"})

    original: RigSettings
    prefix: TextField = field(default_factory=lambda: TextField(limit=16))
    theme: TextField = field(default_factory=lambda: TextField(limit=32))
    max_workers: TextField = field(default_factory=lambda: TextField(limit=4))
    test_command: TextField = field(default_factory=lambda: TextField(limit=256))
    mq_enabled: bool = True
    run_tests: bool = True
    focus: int = 0
    validation_error: str | None = None

    @classmethod
    def for_settings(cls, settings: RigSettings) -> RigSettingsFormModal:
        return cls(
            original=settings,
            prefix=TextField(settings.prefix, limit=16),
            theme=TextField(settings.theme, limit=32),
            max_workers=TextField(
                str(settings.max_workers) if settings.max_workers else "", limit=4,
            ),
            test_command=TextField(settings.test_command, limit=256),
            mq_enabled=settings.mq_enabled,
            run_tests=settings.run_tests,
        )

    @property
    def rig(self) -> str:
        return self.original.name

    def build(self) -> RigSettings:
        """Settings from the current edits. Raises SettingsValidationError."""
        raw_workers = self.max_workers.value
        if not raw_workers:
            workers = 0
        else:
            try:
                workers = int(raw_workers)
            except ValueError:
                raise SettingsValidationError(
                    "max_workers", "Max workers must be a non-negative number",
                ) from None
        settings = RigSettings(
            name=self.original.name,
            prefix=self.prefix.value,
            theme=self.theme.value,
            max_workers=workers,
            mq_enabled=self.mq_enabled,
            run_tests=self.run_tests,
            test_command=self.test_command.value,
            git_url=self.original.git_url,
        )
        settings.validate()
        return settings

    def handle_key(self, key: str) -> KeyResult:
        name = self.FIELDS[self.focus]
        if key == "escape":
            return Cancel("Edit cancelled")
        if key == "enter":
            if self.focus < len(self.FIELDS) - 1:
                self.focus += 1
                return STAY
            try:
                settings = self.build()
            except SettingsValidationError as exc:
                self.validation_error = exc.reason
                return STAY
            return Submit(settings)
        if key in NEXT_FIELD_KEYS:
            self.focus = (self.focus + 1) % len(self.FIELDS)
            return STAY
        if key in PREV_FIELD_KEYS:
            self.focus = (self.focus - 1) % len(self.FIELDS)
            return STAY
        if name in self.TOGGLES:
            if key == "space":
                setattr(self, name, not getattr(self, name))
                self.validation_error = None
            return STAY
        text = getattr(self, name)
        if text.edit(key):
            self.validation_error = None
        return STAY

"""Multi-step modals: beads filter, create work, dependency editor, attach, setup."""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar

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
from perch.engine.modals.forms import BEAD_TYPES
from perch.engine.sections import BeadsFilter
from perch.shared.models.details import IssueDependency
from perch.shared.models.snapshot import Issue, Snapshot
from perch.shared.services.town import TownCheck, expand_path, inspect_town


# ── Beads filter wizard ──

STATUS_OPTIONS = ("all", "open", "in_progress", "closed")
TYPE_OPTIONS = ("all", "bug", "feature", "task", "epic")
PRIORITY_OPTIONS = ("all", "P0", "P1", "P2", "P3", "P4")


@dataclass
class FilterWizardModal(Modal):
    """Five-step filter editor. Closing always applies the edits."""

    kind: ClassVar[ModalKind] = ModalKind.FILTER
    title: ClassVar[str] = "Filter Beads"

    STEPS: ClassVar[tuple[str, ...]] = ("status", "type", "priority", "assignee", "labels")

    status: str = ""
    issue_type: str = ""
    priority: int = -1
    assignee: str = ""
    labels: set[str] = field(default_factory=set)
    step: int = 0
    index: int = 0
    assignees: tuple[str, ...] = ()
    available_labels: tuple[str, ...] = ()

    @classmethod
    def for_snapshot(cls, current: BeadsFilter, snapshot: Snapshot | None) -> FilterWizardModal:
        issues = snapshot.issues if snapshot else ()
        return cls(
            status=current.status,
            issue_type=current.issue_type,
            priority=current.priority,
            assignee=current.assignee,
            labels=set(current.labels),
            assignees=tuple(sorted({i.assignee for i in issues if i.assignee})),
            available_labels=tuple(sorted({label for i in issues for label in i.labels})),
        )

    def options(self) -> tuple[str, ...]:
        name = self.STEPS[self.step]
        if name == "status":
            return STATUS_OPTIONS
        if name == "type":
            return TYPE_OPTIONS
        if name == "priority":
            return PRIORITY_OPTIONS
        if name == "assignee":
            return ("all",) + self.assignees
        return self.available_labels

    def result(self) -> BeadsFilter:
        return BeadsFilter(
            status=self.status,
            issue_type=self.issue_type,
            priority=self.priority,
            assignee=self.assignee,
            labels=tuple(sorted(self.labels)),
        )

    def reset(self) -> None:
        self.status = ""
        self.issue_type = ""
        self.priority = -1
        self.assignee = ""
        self.labels.clear()

    def _apply_option(self) -> None:
        options = self.options()
        if not options:
            return
        choice = options[self.index]
        value = "" if choice == "all" else choice
        name = self.STEPS[self.step]
        if name == "status":
            self.status = value
        elif name == "type":
            self.issue_type = value
        elif name == "priority":
            self.priority = int(value[1:]) if value else -1
        elif name == "assignee":
            self.assignee = value
        else:
            self._toggle_label(choice)

    def _toggle_label(self, label: str) -> None:
        if label in self.labels:
            self.labels.discard(label)
        else:
            self.labels.add(label)

    def _goto_step(self, step: int) -> None:
        self.step = step % len(self.STEPS)
        self.index = 0

    def handle_key(self, key: str) -> KeyResult:
        if key in ("escape", "q"):
            return Submit(self.result())
        if key == "tab":
            self._goto_step(self.step + 1)
        elif key == "shift+tab":
            self._goto_step(self.step - 1)
        elif key in DOWN_KEYS:
            self.index = move_index(self.index, 1, len(self.options()))
        elif key in UP_KEYS:
            self.index = move_index(self.index, -1, len(self.options()))
        elif key == "enter":
            self._apply_option()
        elif key == "space" and self.STEPS[self.step] == "labels":
            options = self.options()
            if options:
                self._toggle_label(options[self.index])
        elif key in ("0", "1", "2", "3", "4") and self.STEPS[self.step] == "priority":
            self.priority = int(key)
            self.index = int(key) + 1
        elif key == "x":
            self.reset()
        return STAY


# ── Dependency editor ──


class DependencyMode(str, Enum):
    VIEW = "view"
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class DependencyChange:
    op: str  # "add" or "remove"
    blocker_id: str


@dataclass
class DependencyModal(Modal):
    """View, add, and remove blockers of one issue."""

    kind: ClassVar[ModalKind] = ModalKind.DEPENDENCY
    title: ClassVar[str] = "Dependencies"

    MAX_RESULTS: ClassVar[int] = 10

    issue_id: str
    candidates: tuple[Issue, ...] = ()
    blocked_by: tuple[IssueDependency, ...] = ()
    mode: DependencyMode = DependencyMode.VIEW
    query: TextField = field(default_factory=lambda: TextField(limit=64))
    index: int = 0

    @classmethod
    def for_issue(
        cls,
        issue_id: str,
        snapshot: Snapshot | None,
        blocked_by: tuple[IssueDependency, ...] = (),
    ) -> DependencyModal:
        issues = snapshot.issues if snapshot else ()
        return cls(
            issue_id=issue_id,
            candidates=tuple(i for i in issues if i.id != issue_id),
            blocked_by=blocked_by,
        )

    def results(self) -> list[Issue]:
        needle = self.query.value.lower()
        existing = {d.id for d in self.blocked_by}
        found = []
        for issue in self.candidates:
            if issue.id in existing:
                continue
            if needle and needle not in issue.id.lower() and needle not in issue.title.lower():
                continue
            found.append(issue)
            if len(found) >= self.MAX_RESULTS:
                break
        return found

    def _enter_mode(self, mode: DependencyMode) -> None:
        self.mode = mode
        self.index = 0
        self.query.text = ""

    def handle_key(self, key: str) -> KeyResult:
        if self.mode == DependencyMode.VIEW:
            if key in ("escape", "q"):
                return Cancel("Dependency management cancelled")
            if key == "a":
                self._enter_mode(DependencyMode.ADD)
            elif key == "r" and self.blocked_by:
                self._enter_mode(DependencyMode.REMOVE)
            return STAY

        if key == "escape":
            self._enter_mode(DependencyMode.VIEW)
            return STAY

        if self.mode == DependencyMode.ADD:
            results = self.results()
            if key == "down":
                self.index = move_index(self.index, 1, len(results))
            elif key == "up":
                self.index = move_index(self.index, -1, len(results))
            elif key == "enter":
                if results:
                    return Submit(DependencyChange("add", results[self.index].id))
            elif self.query.edit(key):
                self.index = 0
            return STAY

        if key in DOWN_KEYS:
            self.index = move_index(self.index, 1, len(self.blocked_by))
        elif key in UP_KEYS:
            self.index = move_index(self.index, -1, len(self.blocked_by))
        elif key == "enter" and self.blocked_by:
            return Submit(DependencyChange("remove", self.blocked_by[self.index].id))
        return STAY


# ── Attach ──


@dataclass
class AttachModal(Modal):
    """Switch to another town root. Validates on every edit."""

    kind: ClassVar[ModalKind] = ModalKind.ATTACH
    title: ClassVar[str] = "Attach to Town"

    path: TextField = field(default_factory=lambda: TextField(limit=512))
    inspector: Callable[[str], TownCheck] = inspect_town
    check: TownCheck = field(default_factory=lambda: TownCheck(path="", error="Enter a path"))

    def __post_init__(self) -> None:
        if self.path.text:
            self.revalidate()

    def revalidate(self) -> None:
        self.check = self.inspector(self.path.text)

    def handle_key(self, key: str) -> KeyResult:
        if key == "escape":
            return Cancel("Attach cancelled")
        if key == "enter":
            if self.check.valid:
                return Submit(self.check.path)
            return STAY
        if key == "tab":
            if self.check.suggestions:
                self.path.text = self.check.suggestions[0]
                self.revalidate()
            return STAY
        if key == "ctrl+r":
            self.revalidate()
            return STAY
        if self.path.edit(key):
            self.revalidate()
        return STAY


# ── Create work wizard ──

NEW_POLECAT = "(new polecat)"
PRIORITY_KEYS = ("1", "2", "3", "4", "5")


class WorkStep(str, Enum):
    DETAILS = "details"
    RIG = "rig"
    TARGET = "target"
    CONFIRM = "confirm"


@dataclass(frozen=True)
class WorkDraft:
    title: str
    issue_type: str = "task"
    priority: int = 2
    rig: str = ""  # empty skips the sling
    polecat: str = ""  # empty lets the rig spawn a new polecat

    @property
    def sling_target(self) -> str:
        if not self.rig:
            return ""
        return f"{self.rig}/{self.polecat}" if self.polecat else self.rig


@dataclass
class CreateWorkModal(Modal):
    """Create an issue, then optionally sling it to a rig.

    Steps run details, rig, target, confirm. ``s`` on the rig step skips
    the sling; ``escape`` goes back one step and cancels from the first.
    """

    kind: ClassVar[ModalKind] = ModalKind.FORM
    title: ClassVar[str] = "Create Work"

    rigs: tuple[str, ...] = ()
    polecats: dict[str, tuple[str, ...]] = field(default_factory=dict)
    step: WorkStep = WorkStep.DETAILS
    title_field: TextField = field(default_factory=lambda: TextField(limit=128))
    issue_type: str = "task"
    priority: int = 2
    rig_index: int = 0
    target_index: int = 0
    skip_sling: bool = False
    validation_error: str | None = None

    @classmethod
    def for_snapshot(cls, snapshot: Snapshot | None) -> CreateWorkModal:
        if snapshot is None:
            return cls()
        rigs = tuple(snapshot.rig_names())
        names: dict[str, list[str]] = {rig: [] for rig in rigs}
        for polecat in snapshot.polecats:
            names.setdefault(polecat.rig, []).append(polecat.name)
        for rig in snapshot.town.rigs if snapshot.town else ():
            for agent in rig.agents:
                if agent.role == "polecat" and agent.name not in names[rig.name]:
                    names[rig.name].append(agent.name)
        return cls(rigs=rigs, polecats={rig: tuple(found) for rig, found in names.items()})

    def selected_rig(self) -> str:
        if self.skip_sling or not self.rigs:
            return ""
        return self.rigs[self.rig_index]

    def targets(self) -> tuple[str, ...]:
        return (NEW_POLECAT,) + self.polecats.get(self.selected_rig(), ())

    def draft(self) -> WorkDraft:
        polecat = ""
        if not self.skip_sling:
            choice = self.targets()[self.target_index]
            polecat = "" if choice == NEW_POLECAT else choice
        return WorkDraft(
            title=self.title_field.value,
            issue_type=self.issue_type,
            priority=self.priority,
            rig=self.selected_rig(),
            polecat=polecat,
        )

    def _back(self) -> KeyResult:
        if self.step == WorkStep.DETAILS:
            return Cancel("Create work cancelled")
        if self.step == WorkStep.CONFIRM and self.skip_sling:
            self.skip_sling = False
            self.step = WorkStep.RIG if self.rigs else WorkStep.DETAILS
        elif self.step == WorkStep.CONFIRM:
            self.step = WorkStep.TARGET
        elif self.step == WorkStep.TARGET:
            self.step = WorkStep.RIG
        else:
            self.step = WorkStep.DETAILS
        return STAY

    def _advance(self) -> KeyResult:
        if self.step == WorkStep.DETAILS:
            if not self.title_field.value:
                self.validation_error = "Title is required"
                return STAY
            if self.rigs:
                self.step = WorkStep.RIG
            else:
                self.skip_sling = True
                self.step = WorkStep.CONFIRM
        elif self.step == WorkStep.RIG:
            self.target_index = 0
            self.step = WorkStep.TARGET
        elif self.step == WorkStep.TARGET:
            self.step = WorkStep.CONFIRM
        else:
            return Submit(self.draft())
        return STAY

    def _details_key(self, key: str) -> KeyResult:
        if key in ("left", "right"):
            delta = 1 if key == "right" else -1
            index = BEAD_TYPES.index(self.issue_type)
            self.issue_type = BEAD_TYPES[(index + delta) % len(BEAD_TYPES)]
        elif key in PRIORITY_KEYS:
            self.priority = int(key) - 1
        elif self.title_field.edit(key):
            self.validation_error = None
        return STAY

    def handle_key(self, key: str) -> KeyResult:
        if key == "escape":
            return self._back()
        if key == "enter":
            return self._advance()
        if self.step == WorkStep.DETAILS:
            return self._details_key(key)
        if self.step == WorkStep.RIG:
            if key == "s":
                self.skip_sling = True
                self.step = WorkStep.CONFIRM
            elif key in DOWN_KEYS or key == "tab":
                self.rig_index = (self.rig_index + 1) % len(self.rigs)
            elif key in UP_KEYS or key == "shift+tab":
                self.rig_index = (self.rig_index - 1) % len(self.rigs)
        elif self.step == WorkStep.TARGET:
            count = len(self.targets())
            if key in DOWN_KEYS or key == "tab":
                self.target_index = (self.target_index + 1) % count
            elif key in UP_KEYS or key == "shift+tab":
                self.target_index = (self.target_index - 1) % count
        return STAY


# ── First-run setup ──


class SetupPhase(str, Enum):
    INPUT = "input"
    INSTALLING = "installing"
    ERROR = "error"
    COMPLETE = "complete"


@dataclass
class SetupModal(Modal):
    """Blocking first-run install. Escape from the input phase quits."""

    kind: ClassVar[ModalKind] = ModalKind.SETUP
    title: ClassVar[str] = "Welcome to perch"

    path: TextField = field(default_factory=lambda: TextField(limit=256))
    phase: SetupPhase = SetupPhase.INPUT
    error: str = ""

    @classmethod
    def with_default(cls, default_path: str) -> SetupModal:
        return cls(path=TextField(default_path, limit=256))

    def installing(self) -> None:
        self.phase = SetupPhase.INSTALLING
        self.error = ""

    def failed(self, error: str) -> None:
        self.phase = SetupPhase.ERROR
        self.error = error

    def completed(self) -> None:
        self.phase = SetupPhase.COMPLETE
        self.error = ""

    def handle_key(self, key: str) -> KeyResult:
        if self.phase == SetupPhase.INPUT:
            if key == "escape":
                return Cancel(None)
            if key == "enter":
                path = expand_path(self.path.text)
                if not path:
                    self.error = "Enter a path"
                    return STAY
                return Submit(path)
            if self.path.edit(key):
                self.error = ""
            return STAY
        if self.phase == SetupPhase.ERROR:
            if key in ("enter", "r"):
                self.phase = SetupPhase.INPUT
                self.error = ""
            elif key == "escape":
                return Cancel(None)
        return STAY

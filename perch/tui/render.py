"""Rich rendering of modal state.

Modals are plain engine objects; this module turns each variant into a
Text block for the overlay screen. Nothing here mutates a modal.
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any

from rich.text import Text

from perch.engine.modals import (
    AddRigFormModal,
    AgentDetailModal,
    AttachModal,
    BeadsFormModal,
    CommentFormModal,
    ConfirmModal,
    CreateWorkModal,
    DependencyModal,
    FilterWizardModal,
    HelpModal,
    InputModal,
    Modal,
    PresetMenuModal,
    RefileModal,
    RigSettingsFormModal,
    SetupModal,
    TownMapModal,
)
from perch.engine.modals.base import TextField
from perch.engine.modals.wizards import DependencyMode, SetupPhase, WorkStep

HELP_TEXT = """\
Navigation
  1-9        switch section
  j/k ↑/↓    move selection
  r          refresh now
  ?          this help
  q          quit

Global
  A   attach to another town      T   town map
  a   add rig                     C   stop all idle polecats
  D   export snapshot             w   create work

Rigs            b boot  s shutdown  d delete  e edit settings
Merge queue     r retry  d details  n nudge refinery  o logs  v blockers
Agents          enter detail  n nudge  S sling  b start  x stop  R restart  o logs
Mail            R reply  m mark read/unread
Worktrees       x remove
Plugins         t enable/disable
Beads           N new  b edit  c comment  d deps  x close  u reopen
                f filter  s town/rig scope  M refile
Alerts          r retry load

Press any key to close."""


def _hint(text: Text, hint: str) -> None:
    text.append("\n" + hint, style="dim")


def _text_field(text: Text, label: str, value: TextField, focused: bool) -> None:
    style = "bold cyan" if focused else ""
    text.append(f"{label}: ", style="bold")
    text.append(value.text + ("█" if focused else ""), style=style)
    text.append("\n")


def _choice(text: Text, label: str, value: str, focused: bool) -> None:
    text.append(f"{label}: ", style="bold")
    text.append(f"‹ {value} ›" if focused else value, style="bold cyan" if focused else "")
    text.append("\n")


def _list(text: Text, options: list[str], index: int, marks: set[int] | None = None) -> None:
    if not options:
        text.append("  (none)\n", style="dim")
        return
    for i, option in enumerate(options):
        marker = "▸ " if i == index else "  "
        box = ""
        if marks is not None:
            box = "[x] " if i in marks else "[ ] "
        text.append(f"{marker}{box}{option}\n", style="bold cyan" if i == index else "")


def _error(text: Text, error: str | None) -> None:
    if error:
        text.append(f"\n{error}\n", style="red")


# ── Dialogs ──


def _confirm(modal: ConfirmModal, text: Text) -> None:
    text.append(modal.message + "\n")
    _hint(text, "y confirm · n/esc cancel")


def _input(modal: InputModal, text: Text) -> None:
    _text_field(text, modal.prompt, modal.value, modal.field_index == 0)
    if modal.has_extra:
        _text_field(text, modal.extra_prompt, modal.extra, modal.field_index == 1)
        _hint(text, "tab switch field · enter send · esc cancel")
    else:
        _hint(text, "enter send · esc cancel")


def _preset(modal: PresetMenuModal, text: Text) -> None:
    text.append(f"Nudge {modal.target}\n\n")
    _list(text, [n.label for n in modal.nudges], modal.index)
    _hint(text, "j/k move · enter select · esc cancel")


def _refile(modal: RefileModal, text: Text) -> None:
    text.append(f"Move {modal.issue_id} to:\n\n")
    _list(text, [t.label for t in modal.targets], modal.index)
    _hint(text, "j/k move · enter refile · esc cancel")


def _help(modal: HelpModal, text: Text) -> None:
    text.append(HELP_TEXT)


def _agent_detail(modal: AgentDetailModal, text: Text) -> None:
    agent = modal.agent
    text.append(f"{agent.address}\n", style="bold")
    text.append(f"role {agent.role or '-'} · ")
    text.append("running" if agent.running else "stopped",
                style="green" if agent.running else "red")
    if agent.hooked_bead_id:
        text.append(f" · hooked {agent.hooked_bead_id}")
    if agent.unread_mail:
        text.append(f" · {agent.unread_mail} unread")
    text.append("\n\n")
    _list(text, [label for label, _ in modal.actions()], modal.index)
    _hint(text, "j/k move · enter run · esc close")


def _town_map(modal: TownMapModal, text: Text) -> None:
    if not modal.rigs:
        text.append("No rigs in this town\n", style="dim")
    for i, rig in enumerate(modal.rigs):
        style = "bold reverse" if i == modal.index else ""
        text.append(f"[ {rig} ]", style=style)
        text.append("  ")
    text.append("\n")
    _hint(text, "h/j/k/l move · enter focus rig · esc back")


# ── Forms ──


def _beads_form(modal: BeadsFormModal, text: Text) -> None:
    focus = BeadsFormModal.FIELDS[modal.focus]
    if modal.editing:
        text.append(f"Editing {modal.bead_id}\n\n", style="dim")
    _text_field(text, "Title", modal.title_field, focus == "title")
    _text_field(text, "Description", modal.description, focus == "description")
    _choice(text, "Type", modal.issue_type, focus == "type")
    _choice(text, "Priority", f"P{modal.priority}", focus == "priority")
    _error(text, modal.validation_error)
    _hint(text, "tab next field · ←/→ change · enter save · esc cancel")


def _comment_form(modal: CommentFormModal, text: Text) -> None:
    text.append(f"Comment on {modal.issue_id}\n\n")
    _text_field(text, "Text", modal.content, True)
    _error(text, modal.validation_error)
    _hint(text, "enter post · esc cancel")


def _add_rig_form(modal: AddRigFormModal, text: Text) -> None:
    focus = AddRigFormModal.FIELDS[modal.focus]
    _text_field(text, "Name", modal.name, focus == "name")
    _text_field(text, "Git URL", modal.url, focus == "url")
    _text_field(text, "Prefix", modal.prefix, focus == "prefix")
    _error(text, modal.validation_error)
    _hint(text, "enter next/add · tab move · esc cancel")


def _rig_settings_form(modal: RigSettingsFormModal, text: Text) -> None:
    focus = RigSettingsFormModal.FIELDS[modal.focus]
    text.append(f"Settings for {modal.rig}\n\n", style="dim")
    _text_field(text, "Prefix", modal.prefix, focus == "prefix")
    _text_field(text, "Theme", modal.theme, focus == "theme")
    _text_field(text, "Max workers", modal.max_workers, focus == "max_workers")
    _choice(text, "Merge queue", "on" if modal.mq_enabled else "off", focus == "mq_enabled")
    _choice(text, "Run tests", "on" if modal.run_tests else "off", focus == "run_tests")
    _text_field(text, "Test command", modal.test_command, focus == "test_command")
    _error(text, modal.validation_error)
    _hint(text, "tab move · space toggle · enter save on last field · esc cancel")


# ── Wizards ──


def _filter(modal: FilterWizardModal, text: Text) -> None:
    for i, step in enumerate(FilterWizardModal.STEPS):
        style = "bold reverse" if i == modal.step else "dim"
        text.append(f" {step} ", style=style)
    text.append("\n\n")
    options = list(modal.options())
    marks = None
    if FilterWizardModal.STEPS[modal.step] == "labels":
        marks = {i for i, label in enumerate(options) if label in modal.labels}
    _list(text, options, modal.index, marks)
    current = modal.result()
    text.append("\nActive: ", style="bold")
    text.append(current.describe() if current.active else "none")
    _hint(text, "\ntab step · enter apply · space label · x reset · esc done")


def _dependency(modal: DependencyModal, text: Text) -> None:
    text.append(f"{modal.issue_id} is blocked by:\n", style="bold")
    if not modal.blocked_by:
        text.append("  nothing\n", style="dim")
    if modal.mode == DependencyMode.REMOVE:
        _list(text, [f"{d.id} {d.title}" for d in modal.blocked_by], modal.index)
        _hint(text, "j/k move · enter remove · esc back")
        return
    for dep in modal.blocked_by:
        text.append(f"  {dep.id} {dep.title} [{dep.status}]\n")
    if modal.mode == DependencyMode.ADD:
        text.append("\n")
        _text_field(text, "Search", modal.query, True)
        _list(text, [f"{i.id} {i.title}" for i in modal.results()], modal.index)
        _hint(text, "type to search · ↑/↓ move · enter add · esc back")
        return
    _hint(text, "a add blocker · r remove blocker · esc close")


def _attach(modal: AttachModal, text: Text) -> None:
    _text_field(text, "Path", modal.path, True)
    check = modal.check
    if check.valid:
        text.append(f"✓ {check.name or 'town'} · {check.rig_count} rigs\n", style="green")
    elif check.error:
        text.append(f"✗ {check.error}\n", style="red")
    if check.suggestions:
        text.append("\nSuggestions:\n", style="bold")
        for suggestion in check.suggestions:
            text.append(f"  {suggestion}\n", style="dim")
    _hint(text, "tab complete · ctrl+r recheck · enter attach · esc cancel")


def _create_work(modal: CreateWorkModal, text: Text) -> None:
    if modal.step == WorkStep.DETAILS:
        _text_field(text, "Title", modal.title_field, True)
        _choice(text, "Type", modal.issue_type, False)
        _choice(text, "Priority", f"P{modal.priority}", False)
        _error(text, modal.validation_error)
        _hint(text, "enter next · ←/→ type · 1-5 priority · esc cancel")
        return
    if modal.step == WorkStep.RIG:
        text.append("Sling to rig:\n\n")
        _list(text, list(modal.rigs), modal.rig_index)
        _hint(text, "j/k move · enter next · s skip sling · esc back")
        return
    if modal.step == WorkStep.TARGET:
        text.append(f"Target in {modal.selected_rig()}:\n\n")
        _list(text, list(modal.targets()), modal.target_index)
        _hint(text, "j/k move · enter next · esc back")
        return
    draft = modal.draft()
    text.append(f"{draft.title}\n", style="bold")
    text.append(f"{draft.issue_type} · P{draft.priority}\n")
    text.append(
        f"Sling to {draft.sling_target}\n" if draft.sling_target else "No sling\n",
        style="dim",
    )
    _hint(text, "enter create · esc back")


def _setup(modal: SetupModal, text: Text) -> None:
    text.append("No Gas Town was found. Choose where to install one.\n\n")
    if modal.phase == SetupPhase.INSTALLING:
        text.append(f"Installing into {modal.path.value}...\n", style="yellow")
        return
    if modal.phase == SetupPhase.COMPLETE:
        text.append(f"Town installed at {modal.path.value}\n", style="green")
        return
    _text_field(text, "Town path", modal.path, modal.phase == SetupPhase.INPUT)
    _error(text, modal.error)
    if modal.phase == SetupPhase.ERROR:
        _hint(text, "enter/r try again · esc quit")
        return
    _hint(text, "enter install · esc quit")


_RENDERERS: dict[type, Callable[[Any, Text], None]] = {
    ConfirmModal: _confirm,
    InputModal: _input,
    PresetMenuModal: _preset,
    RefileModal: _refile,
    HelpModal: _help,
    AgentDetailModal: _agent_detail,
    TownMapModal: _town_map,
    BeadsFormModal: _beads_form,
    CommentFormModal: _comment_form,
    AddRigFormModal: _add_rig_form,
    RigSettingsFormModal: _rig_settings_form,
    CreateWorkModal: _create_work,
    FilterWizardModal: _filter,
    DependencyModal: _dependency,
    AttachModal: _attach,
    SetupModal: _setup,
}

_TITLES: dict[type, Callable[[Any], str]] = {
    ConfirmModal: lambda m: m.title,
    InputModal: lambda m: m.title,
    AgentDetailModal: lambda m: m.agent.name,
    BeadsFormModal: lambda m: "Edit Bead" if m.editing else "New Bead",
    CommentFormModal: lambda m: "Add Comment",
    AddRigFormModal: lambda m: "Add Rig",
    RigSettingsFormModal: lambda m: "Rig Settings",
}


def modal_title(modal: Modal) -> str:
    title = _TITLES.get(type(modal))
    return title(modal) if title else modal.title


def render_modal(modal: Modal) -> Text:
    text = Text()
    renderer = _RENDERERS.get(type(modal))
    if renderer is None:
        text.append(f"<{type(modal).__name__}>", style="dim")
        return text
    renderer(modal, text)
    return text

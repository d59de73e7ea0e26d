"""Default keymap used when no modal is active.

``(section, key)`` bindings for the focused sidebar section win over
the global keys.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from perch.engine.actions import SUBSYSTEM_ACTIONS, ActionKind
from perch.engine.effects import Effect, LoadRigSettings, Quit
from perch.engine.modal_stack import open_modal
from perch.engine.modals import (
    AddRigFormModal,
    AgentDetailModal,
    AttachModal,
    BeadsFormModal,
    CommentFormModal,
    CreateWorkModal,
    DependencyModal,
    FilterWizardModal,
    HelpModal,
    InputModal,
    PresetMenuModal,
    RefileModal,
    TownMapModal,
)
from perch.engine.sections import SECTION_KEYS, BeadsScope, Section, SectionItem
from perch.engine.state import DetailSlot, StatusSeverity
from perch.engine.status import BLOCKERS_SECONDS, NEUTRAL_SECONDS, set_status
from perch.shared.models.details import IssueDependencies
from perch.shared.models.snapshot import Agent, MergeRequest

if TYPE_CHECKING:
    from perch.engine.controller import Controller

logger = logging.getLogger(__name__)

Handler = Callable[[], "list[Effect]"]


class Keymap:
    """Resolves a key to effects on behalf of the controller."""

    def __init__(self, controller: Controller) -> None:
        self._ctl = controller

    # ── helpers ──

    @property
    def _state(self):
        return self._ctl.state

    def _note(self, text: str) -> list[Effect]:
        set_status(self._state, text, self._ctl.now(), StatusSeverity.INFO, NEUTRAL_SECONDS)
        return []

    def _selected(self) -> SectionItem | None:
        return self._state.selected_item()

    def _dispatch(self, kind: ActionKind, target: str, payload=None) -> list[Effect]:
        return self._ctl.dispatcher.dispatch(self._state, kind, target, payload)

    def _with_selection(self, run: Callable[[SectionItem], list[Effect]]) -> list[Effect]:
        item = self._selected()
        if item is None:
            return self._note("Nothing selected")
        return run(item)

    def _rig_target(self) -> str:
        item = self._selected()
        if self._state.selection.section == Section.RIGS and item is not None:
            return item.item_id
        return self._state.selected_rig

    # ── entry point ──

    def handle_key(self, key: str) -> list[Effect]:
        state = self._state
        if key in SECTION_KEYS:
            return self._switch_section(SECTION_KEYS[key])

        global_keys: dict[str, Handler] = {
            "q": self._quit,
            "?": lambda: self._open(HelpModal()),
            "j": lambda: self._move(1),
            "down": lambda: self._move(1),
            "k": lambda: self._move(-1),
            "up": lambda: self._move(-1),
            "A": lambda: self._open(AttachModal(inspector=self._ctl.inspector)),
            "T": self._town_map,
            "D": lambda: self._dispatch(
                ActionKind.EXPORT_SNAPSHOT, "", state.snapshot,
            ),
            "a": lambda: self._open(AddRigFormModal()),
            "w": lambda: self._open(CreateWorkModal.for_snapshot(state.snapshot)),
            "C": self._stop_all_idle,
            "r": lambda: self._ctl.refresh.request(state, "manual"),
        }
        section_keys: dict[tuple[Section, str], Handler] = {
            # rigs
            (Section.RIGS, "b"): lambda: self._with_selection(
                lambda item: self._dispatch(ActionKind.BOOT_RIG, item.item_id)),
            (Section.RIGS, "s"): lambda: self._with_selection(
                lambda item: self._dispatch(ActionKind.SHUTDOWN_RIG, item.item_id)),
            (Section.RIGS, "d"): lambda: self._with_selection(
                lambda item: self._dispatch(ActionKind.DELETE_RIG, item.item_id)),
            (Section.RIGS, "e"): lambda: self._with_selection(self._edit_rig_settings),
            # merge queue
            (Section.MERGE_QUEUE, "r"): lambda: self._with_selection(
                lambda item: self._dispatch(ActionKind.MQ_RETRY, item.item_id)),
            (Section.MERGE_QUEUE, "d"): lambda: self._with_selection(
                lambda item: self._dispatch(ActionKind.MQ_VIEW_DETAILS, item.item_id)),
            (Section.MERGE_QUEUE, "n"): lambda: self._with_selection(
                lambda item: self._dispatch(ActionKind.NUDGE_REFINERY, item.entity.rig)),
            (Section.MERGE_QUEUE, "o"): lambda: self._with_selection(
                lambda item: self._dispatch(ActionKind.VIEW_MR_LOGS, item.entity.rig)),
            (Section.MERGE_QUEUE, "v"): lambda: self._with_selection(self._show_blockers),
            # agents
            (Section.AGENTS, "b"): lambda: self._with_selection(
                lambda item: self._agent_lifecycle(item, "start", ActionKind.START_SESSION)),
            (Section.AGENTS, "x"): lambda: self._with_selection(self._stop_agent),
            (Section.AGENTS, "n"): lambda: self._with_selection(
                lambda item: self._open(PresetMenuModal(item.item_id, self._ctl.nudges))),
            (Section.AGENTS, "o"): lambda: self._with_selection(
                lambda item: self._dispatch(ActionKind.OPEN_LOGS, item.item_id)),
            (Section.AGENTS, "enter"): lambda: self._with_selection(
                lambda item: self._open(AgentDetailModal(item.entity))),
            (Section.AGENTS, "S"): lambda: self._with_selection(
                lambda item: self._open(InputModal(
                    title=f"Sling work to {item.item_id}",
                    prompt="Bead ID",
                    action=ActionKind.SLING_WORK,
                    target=item.item_id,
                ))),
            (Section.AGENTS, "R"): lambda: self._with_selection(
                lambda item: self._agent_lifecycle(item, "restart", ActionKind.RESTART_SESSION)),
            # mail
            (Section.MAIL, "R"): lambda: self._with_selection(
                lambda item: self._open(InputModal(
                    title=f"Reply to {item.entity.sender}",
                    prompt="Message",
                    action=ActionKind.REPLY_MAIL,
                    target=item.item_id,
                ))),
            (Section.MAIL, "m"): lambda: self._with_selection(self._toggle_read),
            # worktrees / plugins
            (Section.WORKTREES, "x"): lambda: self._with_selection(
                lambda item: self._dispatch(ActionKind.REMOVE_WORKTREE, item.item_id)),
            (Section.PLUGINS, "t"): lambda: self._with_selection(
                lambda item: self._dispatch(ActionKind.TOGGLE_PLUGIN, item.item_id)),
            # beads
            (Section.BEADS, "b"): lambda: self._with_selection(
                lambda item: self._open(BeadsFormModal.for_issue(item.entity))),
            (Section.BEADS, "N"): lambda: self._open(BeadsFormModal()),
            (Section.BEADS, "s"): self._toggle_beads_scope,
            (Section.BEADS, "d"): lambda: self._with_selection(self._edit_dependencies),
            (Section.BEADS, "x"): lambda: self._with_selection(
                lambda item: self._dispatch(ActionKind.CLOSE_BEAD, item.item_id)),
            (Section.BEADS, "u"): lambda: self._with_selection(
                lambda item: self._dispatch(ActionKind.REOPEN_BEAD, item.item_id)),
            (Section.BEADS, "c"): lambda: self._with_selection(
                lambda item: self._open(CommentFormModal(item.item_id))),
            (Section.BEADS, "f"): lambda: self._open(
                FilterWizardModal.for_snapshot(state.beads_filter, state.snapshot)),
            (Section.BEADS, "M"): lambda: self._with_selection(
                lambda item: self._open(RefileModal.for_snapshot(item.item_id, state.snapshot))),
            # alerts
            (Section.ALERTS, "r"): lambda: self._with_selection(self._retry_load),
        }

        handler = section_keys.get((state.selection.section, key)) or global_keys.get(key)
        if handler is None:
            return []
        return handler()

    # ── navigation ──

    def _open(self, modal) -> list[Effect]:
        open_modal(self._state, modal)
        return []

    def _quit(self) -> list[Effect]:
        self._state.quit_requested = True
        return [Quit()]

    def _move(self, delta: int) -> list[Effect]:
        state = self._state
        count = len(state.items())
        if count == 0:
            return []
        state.selection.index = max(0, min(count - 1, state.selection.index + delta))
        if state.selection.section == Section.RIGS:
            item = state.selected_item()
            if item is not None:
                state.selected_rig = item.item_id
        return []

    def _switch_section(self, section: Section) -> list[Effect]:
        state = self._state
        if state.selection.section != section:
            state.selection.section = section
            state.selection.index = 0
        return []

    def _town_map(self) -> list[Effect]:
        snapshot = self._state.snapshot
        rigs = tuple(snapshot.rig_names()) if snapshot else ()
        index = rigs.index(self._state.selected_rig) if self._state.selected_rig in rigs else 0
        return self._open(TownMapModal(rigs=rigs, index=index))

    # ── contextual actions ──

    def _stop_all_idle(self) -> list[Effect]:
        rig = self._rig_target()
        if not rig:
            return self._note("No rig selected")
        return self._dispatch(ActionKind.STOP_ALL_IDLE, rig)

    def _edit_rig_settings(self, item: SectionItem) -> list[Effect]:
        set_status(
            self._state, f"Loading settings for {item.item_id}...",
            self._ctl.now(), StatusSeverity.INFO, NEUTRAL_SECONDS,
        )
        return [LoadRigSettings(item.item_id)]

    def _show_blockers(self, item: SectionItem) -> list[Effect]:
        mr: MergeRequest = item.entity
        blockers = []
        if mr.has_conflicts:
            blockers.append(f"conflicts: {mr.conflict_info}" if mr.conflict_info else "conflicts")
        if mr.needs_rebase:
            blockers.append("needs rebase")
        if mr.status and mr.status not in ("ready", "open", "pending"):
            blockers.append(f"status {mr.status}")
        text = f"{mr.id}: " + ("; ".join(blockers) if blockers else "no blockers")
        severity = StatusSeverity.WARNING if blockers else StatusSeverity.INFO
        set_status(self._state, text, self._ctl.now(), severity, BLOCKERS_SECONDS)
        return []

    def _retry_load(self, item: SectionItem) -> list[Effect]:
        set_status(
            self._state, f"Retrying {item.entity.source}...", self._ctl.now(),
            StatusSeverity.INFO, NEUTRAL_SECONDS,
        )
        return self._ctl.refresh.request(self._state, f"retry {item.entity.source}")

    def _agent_lifecycle(
        self, item: SectionItem, verb: str, fallback: ActionKind,
    ) -> list[Effect]:
        """Subsystem agents (deacon, witness, refinery) use their own commands."""
        agent: Agent = item.entity
        kind = SUBSYSTEM_ACTIONS.get((agent.role, verb))
        if kind is None:
            return self._dispatch(fallback, agent.address)
        rig = agent.address.split("/", 1)[0] if "/" in agent.address else ""
        return self._dispatch(kind, rig)

    def _stop_agent(self, item: SectionItem) -> list[Effect]:
        if (item.entity.role, "stop") in SUBSYSTEM_ACTIONS:
            return self._agent_lifecycle(item, "stop", ActionKind.STOP_AGENT)
        return self._stop_polecat(item)

    def _stop_polecat(self, item: SectionItem) -> list[Effect]:
        agent: Agent = item.entity
        if agent.role != "polecat":
            return self._note(f"{agent.name} is not a polecat")
        if not agent.running:
            return self._note(f"{agent.name} is not running")
        if agent.has_work:
            return self._note(f"{agent.name} has hooked work; hand it off first")
        return self._dispatch(ActionKind.STOP_POLECAT, agent.address)

    def _toggle_read(self, item: SectionItem) -> list[Effect]:
        kind = ActionKind.MARK_MAIL_UNREAD if item.entity.read else ActionKind.MARK_MAIL_READ
        return self._dispatch(kind, item.item_id)

    def _toggle_beads_scope(self) -> list[Effect]:
        state = self._state
        state.beads_scope = (
            BeadsScope.TOWN if state.beads_scope == BeadsScope.RIG else BeadsScope.RIG
        )
        state.selection.index = 0
        label = "town (hq-*)" if state.beads_scope == BeadsScope.TOWN else "rig"
        return self._note(f"Beads scope: {label}")

    def _edit_dependencies(self, item: SectionItem) -> list[Effect]:
        state = self._state
        entry = state.details.get(DetailSlot.DEPENDENCIES, state.selection_key())
        blocked_by = ()
        if entry is not None and isinstance(entry.value, IssueDependencies):
            blocked_by = entry.value.blocked_by
        return self._open(DependencyModal.for_issue(item.item_id, state.snapshot, blocked_by))

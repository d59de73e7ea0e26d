"""The serial control loop reducer.

``Controller.handle(event)`` is the only code that mutates ControlState.
It never performs I/O: it returns a list of effects for the runner and
expects their results back as events.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from perch.adapters.events import (
    ActionCompleted,
    ControlEvent,
    DetailLoaded,
    KeyPressed,
    RefreshCompleted,
    SettingsLoaded,
    SettingsSaved,
    SetupCompleted,
    Tick,
)
from perch.engine.actions import (
    DEFAULT_PRESET_NUDGES,
    ActionKind,
    PresetNudge,
    action_name,
    is_town_level_bead,
)
from perch.engine.config import ControlConfig
from perch.engine.dispatcher import ActionDispatcher
from perch.engine.effects import Effect, InstallTown, Quit, SaveRigSettings, SwitchTown
from perch.engine.keymap import Keymap
from perch.engine.modal_stack import close_modal, offer_modal, open_modal
from perch.engine.modals import (
    AddRigFormModal,
    AgentDetailModal,
    AttachModal,
    BeadsFormModal,
    Cancel,
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
    Submit,
    TownMapModal,
)
from perch.engine.refresh import RefreshScheduler
from perch.engine.sections import BeadsScope, Section
from perch.engine.selection import CascadeSynchronizer
from perch.engine.state import ControlState, DetailSlot, Selection, StatusSeverity
from perch.engine.status import (
    FAILURE_SECONDS,
    NEUTRAL_SECONDS,
    SUCCESS_SECONDS,
    set_status,
)
from perch.shared.services.town import TownCheck, inspect_town, town_exists

logger = logging.getLogger(__name__)

# Payload builders for InputModal submissions, keyed by action.
_INPUT_PAYLOADS: dict[ActionKind, Callable[[str, str], dict[str, str]]] = {
    ActionKind.NUDGE_AGENT: lambda value, extra: {"message": value},
    ActionKind.SLING_WORK: lambda value, extra: {"bead": value},
    ActionKind.REPLY_MAIL: lambda value, extra: {"message": value},
    ActionKind.MAIL_AGENT: lambda value, extra: {"subject": value, "body": extra},
}

# Successful actions that invalidate a drill-down slot.
_DETAIL_INVALIDATIONS: dict[ActionKind, DetailSlot] = {
    ActionKind.ADD_DEPENDENCY: DetailSlot.DEPENDENCIES,
    ActionKind.REMOVE_DEPENDENCY: DetailSlot.DEPENDENCIES,
    ActionKind.ADD_COMMENT: DetailSlot.COMMENTS,
}

# Actions whose output is worth showing instead of the generic message.
_OUTPUT_ACTIONS = frozenset({
    ActionKind.CREATE_WORK,
    ActionKind.MQ_VIEW_DETAILS,
    ActionKind.EXPORT_SNAPSHOT,
})


class Controller:
    """Applies events to ControlState and returns effects."""

    def __init__(
        self,
        config: ControlConfig,
        nudges: tuple[PresetNudge, ...] = DEFAULT_PRESET_NUDGES,
        clock: Callable[[], float] = time.monotonic,
        inspector: Callable[[str], TownCheck] = inspect_town,
        exists: Callable[[str], bool] = town_exists,
    ) -> None:
        self.config = config
        self.nudges = nudges
        self.inspector = inspector
        self._clock = clock
        self._exists = exists
        self.state = ControlState()
        self.refresh = RefreshScheduler(config)
        self.dispatcher = ActionDispatcher(config, clock)
        self.cascade = CascadeSynchronizer()
        self.keymap = Keymap(self)

        self._event_handlers: dict[type, Callable[[Any], list[Effect]]] = {
            KeyPressed: self._on_key,
            Tick: self._on_tick,
            RefreshCompleted: self._on_refresh_completed,
            ActionCompleted: self._on_action_completed,
            DetailLoaded: self._on_detail_loaded,
            SettingsLoaded: self._on_settings_loaded,
            SettingsSaved: self._on_settings_saved,
            SetupCompleted: self._on_setup_completed,
        }
        self._submit_handlers: dict[type, Callable[[Any, Any], list[Effect]]] = {
            ConfirmModal: self._submit_confirm,
            InputModal: self._submit_input,
            PresetMenuModal: self._submit_preset,
            RefileModal: self._submit_refile,
            HelpModal: lambda modal, data: [],
            AgentDetailModal: self._submit_agent_action,
            TownMapModal: self._submit_town_map,
            BeadsFormModal: self._submit_bead,
            CommentFormModal: self._submit_comment,
            CreateWorkModal: self._submit_create_work,
            AddRigFormModal: self._submit_add_rig,
            RigSettingsFormModal: self._submit_rig_settings,
            FilterWizardModal: self._submit_filter,
            DependencyModal: self._submit_dependency,
            AttachModal: self._submit_attach,
            SetupModal: self._submit_setup,
        }

    def now(self) -> float:
        return self._clock()

    # ── lifecycle ──

    def start(self) -> list[Effect]:
        """Initial effects. Installs the setup modal when no town exists."""
        root = self.config.town_root
        if self._exists(root):
            self.state.town_root = root
        else:
            logger.info("No town at %s; starting setup", root)
            open_modal(self.state, SetupModal.with_default(root))
        return self.refresh.on_tick(self.state)

    def handle(self, event: ControlEvent) -> list[Effect]:
        handler = self._event_handlers.get(type(event))
        if handler is None:
            logger.warning("Unhandled event type: %s", type(event).__name__)
            return []
        effects = handler(event)
        if self.state.town_root is not None:
            effects = effects + self.cascade.sync(self.state)
        return effects

    # ── events ──

    def _on_key(self, event: KeyPressed) -> list[Effect]:
        modal = self.state.modal
        if modal is None:
            return self.keymap.handle_key(event.key)
        return self._route_modal_key(modal, event.key)

    def _route_modal_key(self, modal: Modal, key: str) -> list[Effect]:
        result = modal.handle_key(key)
        if isinstance(result, Submit):
            close_modal(self.state)
            return self._submit_handlers[type(modal)](modal, result.data)
        if isinstance(result, Cancel):
            close_modal(self.state)
            if isinstance(modal, SetupModal):
                self.state.quit_requested = True
                return [Quit()]
            if result.message:
                set_status(
                    self.state, result.message, self.now(),
                    StatusSeverity.INFO, NEUTRAL_SECONDS,
                )
        return []

    def _on_tick(self, event: Tick) -> list[Effect]:
        return self.refresh.on_tick(self.state)

    def _on_refresh_completed(self, event: RefreshCompleted) -> list[Effect]:
        _, effects = self.refresh.on_complete(
            self.state, event.generation, event.snapshot, event.error, self.now(),
        )
        return effects

    def _on_action_completed(self, event: ActionCompleted) -> list[Effect]:
        action = self.dispatcher.on_complete(
            self.state, event.action_id, event.output, event.error, event.timed_out,
        )
        if action is None or event.error is not None:
            return []
        if action.kind in _OUTPUT_ACTIONS and event.output.strip():
            set_status(
                self.state, event.output.strip().splitlines()[0], self.now(),
                StatusSeverity.SUCCESS, SUCCESS_SECONDS,
            )
        effects: list[Effect] = []
        slot = _DETAIL_INVALIDATIONS.get(action.kind)
        if slot is not None:
            effects.extend(self.cascade.invalidate(self.state, slot))
        effects.extend(self.refresh.request(self.state, f"after {action.kind.value}"))
        return effects

    def _on_detail_loaded(self, event: DetailLoaded) -> list[Effect]:
        self.cascade.apply(self.state, event.slot, event.key, event.value, event.error)
        return []

    def _on_settings_loaded(self, event: SettingsLoaded) -> list[Effect]:
        if event.error is not None or event.settings is None:
            set_status(
                self.state, f"Failed to load settings for {event.rig}: {event.error}",
                self.now(), StatusSeverity.ERROR, FAILURE_SECONDS,
            )
            return []
        offer_modal(self.state, RigSettingsFormModal.for_settings(event.settings))
        return []

    def _on_settings_saved(self, event: SettingsSaved) -> list[Effect]:
        if event.error is not None:
            set_status(
                self.state, f"Failed to save settings for {event.rig}: {event.error}",
                self.now(), StatusSeverity.ERROR, FAILURE_SECONDS,
            )
            return []
        set_status(
            self.state, f"Settings saved for {event.rig}", self.now(),
            StatusSeverity.SUCCESS, SUCCESS_SECONDS,
        )
        return self.refresh.request(self.state, "settings saved")

    def _on_setup_completed(self, event: SetupCompleted) -> list[Effect]:
        modal = self.state.modal
        if event.error is not None:
            if isinstance(modal, SetupModal):
                modal.failed(event.error)
            else:
                set_status(
                    self.state, f"Install failed: {event.error}", self.now(),
                    StatusSeverity.ERROR, FAILURE_SECONDS,
                )
            return []
        logger.info("Town installed at %s", event.path)
        if isinstance(modal, SetupModal):
            modal.completed()
        self.state.town_root = event.path
        open_modal(self.state, HelpModal())
        set_status(
            self.state, f"Town installed at {event.path}", self.now(),
            StatusSeverity.SUCCESS, SUCCESS_SECONDS,
        )
        return [SwitchTown(event.path)] + self.refresh.request(self.state, "setup")

    # ── submit handlers ──

    def _confirm(self, kind: ActionKind, target: str, payload: Any, subject: str) -> list[Effect]:
        """Gate a non-destructive action behind an explicit confirmation."""
        open_modal(self.state, ConfirmModal(
            title=f"Confirm: {action_name(kind)}",
            message=f"{subject} affects every rig in the town. Continue? [y/n]",
            action=kind,
            target=target,
            payload=payload,
        ))
        return []

    def _submit_confirm(self, modal: ConfirmModal, payload: Any) -> list[Effect]:
        return self.dispatcher.dispatch(
            self.state, modal.action, modal.target, payload, confirmed=True,
        )

    def _submit_input(self, modal: InputModal, data: tuple[str, str]) -> list[Effect]:
        value, extra = data
        build = _INPUT_PAYLOADS.get(modal.action)
        payload = build(value, extra) if build else {"value": value, "extra": extra}
        return self.dispatcher.dispatch(self.state, modal.action, modal.target, payload)

    def _submit_preset(self, modal: PresetMenuModal, nudge: PresetNudge) -> list[Effect]:
        if nudge.is_custom:
            open_modal(self.state, InputModal(
                title=f"Nudge {modal.target}",
                prompt="Message",
                action=ActionKind.NUDGE_AGENT,
                target=modal.target,
            ))
            return []
        return self.dispatcher.dispatch(
            self.state, ActionKind.PRESET_NUDGE, modal.target, {"message": nudge.message},
        )

    def _submit_refile(self, modal: RefileModal, choice) -> list[Effect]:
        return self.dispatcher.dispatch(
            self.state, ActionKind.REFILE_ISSUE, modal.issue_id, {"to": choice.target},
        )

    def _submit_agent_action(self, modal: AgentDetailModal, kind: ActionKind) -> list[Effect]:
        address = modal.agent.address
        if kind == ActionKind.PRESET_NUDGE:
            open_modal(self.state, PresetMenuModal(address, self.nudges))
            return []
        if kind == ActionKind.MAIL_AGENT:
            open_modal(self.state, InputModal(
                title=f"Mail {address}",
                prompt="Subject",
                extra_prompt="Message",
                action=ActionKind.MAIL_AGENT,
                target=address,
            ))
            return []
        if kind == ActionKind.HANDOFF:
            open_modal(self.state, ConfirmModal(
                title="Confirm: Handoff",
                message=f"Hand off {address}'s work and restart its session? [y/n]",
                action=kind,
                target=address,
            ))
            return []
        return self.dispatcher.dispatch(self.state, kind, address)

    def _submit_town_map(self, modal: TownMapModal, rig: str) -> list[Effect]:
        state = self.state
        state.selected_rig = rig
        state.selection = Selection(section=Section.RIGS)
        for index, item in enumerate(state.items()):
            if item.item_id == rig:
                state.selection.index = index
                break
        return []

    def _submit_bead(self, modal: BeadsFormModal, draft) -> list[Effect]:
        if draft.bead_id:
            if is_town_level_bead(draft.bead_id):
                return self._confirm(
                    ActionKind.EDIT_BEAD, draft.bead_id, draft, f"Editing {draft.bead_id}",
                )
            return self.dispatcher.dispatch(self.state, ActionKind.EDIT_BEAD, draft.bead_id, draft)
        if self.state.beads_scope == BeadsScope.TOWN:
            return self._confirm(ActionKind.CREATE_BEAD, "town", draft, "A town-level bead")
        target = self.state.selected_rig or "town"
        return self.dispatcher.dispatch(self.state, ActionKind.CREATE_BEAD, target, draft)

    def _submit_comment(self, modal: CommentFormModal, draft) -> list[Effect]:
        if is_town_level_bead(draft.issue_id):
            return self._confirm(
                ActionKind.ADD_COMMENT, draft.issue_id, draft, f"Commenting on {draft.issue_id}",
            )
        return self.dispatcher.dispatch(self.state, ActionKind.ADD_COMMENT, draft.issue_id, draft)

    def _submit_create_work(self, modal: CreateWorkModal, draft) -> list[Effect]:
        return self.dispatcher.dispatch(
            self.state, ActionKind.CREATE_WORK, draft.rig or "town", draft,
        )

    def _submit_add_rig(self, modal: AddRigFormModal, draft) -> list[Effect]:
        return self.dispatcher.dispatch(self.state, ActionKind.ADD_RIG, draft.name, draft)

    def _submit_rig_settings(self, modal: RigSettingsFormModal, settings) -> list[Effect]:
        set_status(
            self.state, f"Saving settings for {settings.name}...", self.now(),
            StatusSeverity.INFO, NEUTRAL_SECONDS,
        )
        return [SaveRigSettings(settings)]

    def _submit_filter(self, modal: FilterWizardModal, beads_filter) -> list[Effect]:
        state = self.state
        state.beads_filter = beads_filter
        state.selection.index = 0
        state.clamp_selection()
        text = "Filters applied" if beads_filter.active else "Filters cleared"
        set_status(state, text, self.now(), StatusSeverity.INFO, NEUTRAL_SECONDS)
        return []

    def _submit_dependency(self, modal: DependencyModal, change) -> list[Effect]:
        kind = ActionKind.ADD_DEPENDENCY if change.op == "add" else ActionKind.REMOVE_DEPENDENCY
        return self.dispatcher.dispatch(
            self.state, kind, modal.issue_id, {"blocker": change.blocker_id},
        )

    def _submit_attach(self, modal: AttachModal, path: str) -> list[Effect]:
        return self.switch_town(path)

    def _submit_setup(self, modal: SetupModal, path: str) -> list[Effect]:
        # The modal stays up, showing progress, until SetupCompleted.
        modal.installing()
        open_modal(self.state, modal)
        return [InstallTown(path)]

    # ── town switching ──

    def switch_town(self, path: str) -> list[Effect]:
        """Reset town-scoped state and start polling *path*."""
        state = self.state
        logger.info("Switching town: %s -> %s", state.town_root, path)
        state.town_root = path
        state.snapshot = None
        state.selection = Selection()
        state.details.clear()
        state.pending.clear()
        state.selected_rig = ""
        refresh = state.refresh
        refresh.generation += 1
        refresh.is_refreshing = False
        refresh.follow_up_pending = False
        refresh.error_count = 0
        refresh.last_refresh = None
        set_status(
            state, f"Attached to {path}", self.now(),
            StatusSeverity.SUCCESS, SUCCESS_SECONDS,
        )
        return [SwitchTown(path)] + self.refresh.request(state, "attach")

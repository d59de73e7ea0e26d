"""Action kinds, confirmation policy, and error classification.

An action is a named, targeted operation delegated to the command
executor. Everything here is pure data so the controller can decide
what to do without touching the executor.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ActionKind(str, Enum):
    BOOT_RIG = "boot_rig"
    SHUTDOWN_RIG = "shutdown_rig"
    DELETE_RIG = "delete_rig"
    ADD_RIG = "add_rig"
    OPEN_LOGS = "open_logs"
    NUDGE_REFINERY = "nudge_refinery"
    RESTART_REFINERY = "restart_refinery"
    STOP_POLECAT = "stop_polecat"
    STOP_ALL_IDLE = "stop_all_idle"
    MARK_MAIL_READ = "mark_mail_read"
    MARK_MAIL_UNREAD = "mark_mail_unread"
    ACK_MAIL = "ack_mail"
    REPLY_MAIL = "reply_mail"
    REMOVE_WORKTREE = "remove_worktree"
    CREATE_WORK = "create_work"
    SLING_WORK = "sling_work"
    HANDOFF = "handoff"
    STOP_AGENT = "stop_agent"
    NUDGE_AGENT = "nudge_agent"
    PRESET_NUDGE = "preset_nudge"
    MAIL_AGENT = "mail_agent"
    TOGGLE_PLUGIN = "toggle_plugin"
    OPEN_SESSION = "open_session"
    START_SESSION = "start_session"
    RESTART_SESSION = "restart_session"
    CREATE_BEAD = "create_bead"
    EDIT_BEAD = "edit_bead"
    CLOSE_BEAD = "close_bead"
    REOPEN_BEAD = "reopen_bead"
    ADD_COMMENT = "add_comment"
    REFILE_ISSUE = "refile_issue"
    ADD_DEPENDENCY = "add_dependency"
    REMOVE_DEPENDENCY = "remove_dependency"
    START_DEACON = "start_deacon"
    STOP_DEACON = "stop_deacon"
    RESTART_DEACON = "restart_deacon"
    START_WITNESS = "start_witness"
    STOP_WITNESS = "stop_witness"
    RESTART_WITNESS = "restart_witness"
    START_REFINERY = "start_refinery"
    STOP_REFINERY = "stop_refinery"
    MQ_RETRY = "mq_retry"
    MQ_VIEW_DETAILS = "mq_view_details"
    VIEW_MR_LOGS = "view_mr_logs"
    EXPORT_SNAPSHOT = "export_snapshot"
    INSTALL_TOWN = "install_town"


# Actions that must always pass through a yes/no confirmation.
DESTRUCTIVE_ACTIONS: frozenset[ActionKind] = frozenset({
    ActionKind.SHUTDOWN_RIG,
    ActionKind.DELETE_RIG,
    ActionKind.RESTART_REFINERY,
    ActionKind.STOP_POLECAT,
    ActionKind.STOP_ALL_IDLE,
    ActionKind.REMOVE_WORKTREE,
    ActionKind.STOP_AGENT,
    ActionKind.RESTART_SESSION,
    ActionKind.STOP_DEACON,
    ActionKind.RESTART_DEACON,
    ActionKind.STOP_WITNESS,
    ActionKind.RESTART_WITNESS,
    ActionKind.STOP_REFINERY,
})

# Lifecycle commands for subsystem agents, keyed by (role, verb).
SUBSYSTEM_ACTIONS: dict[tuple[str, str], ActionKind] = {
    ("deacon", "start"): ActionKind.START_DEACON,
    ("deacon", "stop"): ActionKind.STOP_DEACON,
    ("deacon", "restart"): ActionKind.RESTART_DEACON,
    ("witness", "start"): ActionKind.START_WITNESS,
    ("witness", "stop"): ActionKind.STOP_WITNESS,
    ("witness", "restart"): ActionKind.RESTART_WITNESS,
    ("refinery", "start"): ActionKind.START_REFINERY,
    ("refinery", "stop"): ActionKind.STOP_REFINERY,
    ("refinery", "restart"): ActionKind.RESTART_REFINERY,
}

# Actions bound by the extended timeout (clones, installs).
LONG_RUNNING_ACTIONS: frozenset[ActionKind] = frozenset({
    ActionKind.ADD_RIG,
    ActionKind.INSTALL_TOWN,
})

_ACTION_NAMES: dict[ActionKind, str] = {
    ActionKind.BOOT_RIG: "Boot rig",
    ActionKind.SHUTDOWN_RIG: "Shutdown rig",
    ActionKind.DELETE_RIG: "Delete rig",
    ActionKind.ADD_RIG: "Add rig",
    ActionKind.OPEN_LOGS: "Open logs",
    ActionKind.NUDGE_REFINERY: "Nudge refinery",
    ActionKind.RESTART_REFINERY: "Restart refinery",
    ActionKind.STOP_POLECAT: "Stop polecat",
    ActionKind.STOP_ALL_IDLE: "Stop idle polecats",
    ActionKind.MARK_MAIL_READ: "Mark read",
    ActionKind.MARK_MAIL_UNREAD: "Mark unread",
    ActionKind.ACK_MAIL: "Acknowledge mail",
    ActionKind.REPLY_MAIL: "Reply",
    ActionKind.REMOVE_WORKTREE: "Remove worktree",
    ActionKind.CREATE_WORK: "Create work",
    ActionKind.SLING_WORK: "Sling work",
    ActionKind.HANDOFF: "Handoff",
    ActionKind.STOP_AGENT: "Stop agent",
    ActionKind.NUDGE_AGENT: "Nudge",
    ActionKind.PRESET_NUDGE: "Nudge",
    ActionKind.MAIL_AGENT: "Send mail",
    ActionKind.TOGGLE_PLUGIN: "Toggle plugin",
    ActionKind.OPEN_SESSION: "Attach session",
    ActionKind.START_SESSION: "Start session",
    ActionKind.RESTART_SESSION: "Restart session",
    ActionKind.CREATE_BEAD: "Create bead",
    ActionKind.EDIT_BEAD: "Edit bead",
    ActionKind.CLOSE_BEAD: "Close bead",
    ActionKind.REOPEN_BEAD: "Reopen bead",
    ActionKind.ADD_COMMENT: "Add comment",
    ActionKind.REFILE_ISSUE: "Refile",
    ActionKind.ADD_DEPENDENCY: "Add dependency",
    ActionKind.REMOVE_DEPENDENCY: "Remove dependency",
    ActionKind.START_DEACON: "Start deacon",
    ActionKind.STOP_DEACON: "Stop deacon",
    ActionKind.RESTART_DEACON: "Restart deacon",
    ActionKind.START_WITNESS: "Start witness",
    ActionKind.STOP_WITNESS: "Stop witness",
    ActionKind.RESTART_WITNESS: "Restart witness",
    ActionKind.START_REFINERY: "Start refinery",
    ActionKind.STOP_REFINERY: "Stop refinery",
    ActionKind.MQ_RETRY: "Retry merge request",
    ActionKind.MQ_VIEW_DETAILS: "Merge request details",
    ActionKind.VIEW_MR_LOGS: "Refinery logs",
    ActionKind.EXPORT_SNAPSHOT: "Export snapshot",
    ActionKind.INSTALL_TOWN: "Install town",
}


def action_name(kind: ActionKind) -> str:
    """Human-readable label used in status messages."""
    return _ACTION_NAMES.get(kind, kind.value.replace("_", " ").capitalize())


def is_destructive(kind: ActionKind) -> bool:
    return kind in DESTRUCTIVE_ACTIONS


def is_town_level_bead(bead_id: str) -> bool:
    """Town-level beads (hq- prefix) affect every rig."""
    return bead_id.startswith("hq-")


@dataclass
class PendingAction:
    """An in-flight executor call, matched on completion by action_id."""
    action_id: int
    kind: ActionKind
    target: str
    payload: Any = None
    timeout_seconds: float = 30.0
    started_at: float = 0.0
    # Set by the dispatcher once a destructive action has been confirmed.
    confirmed: bool = False


@dataclass(frozen=True)
class PresetNudge:
    label: str
    message: str  # empty message means "ask for custom text"

    @property
    def is_custom(self) -> bool:
        return not self.message


DEFAULT_PRESET_NUDGES: tuple[PresetNudge, ...] = (
    PresetNudge("Check mail", "Check your mail and respond to any pending items."),
    PresetNudge("Status update", "Please provide a status update on your current work."),
    PresetNudge("Resume work", "Resume working on your hooked task."),
    PresetNudge("Wrap up", "Please wrap up your current task and prepare for handoff."),
    PresetNudge("Custom...", ""),
)


# ── Error classification ──


class ErrorCategory(str, Enum):
    PREREQUISITE_UNAVAILABLE = "prerequisite_unavailable"
    TIMEOUT = "timeout"
    GENERIC = "generic"


_MISSING_EXECUTABLE_MARKERS = (
    "executable file not found",
    "command not found",
    "No such file or directory: 'gt'",
    "No such file or directory: 'bd'",
    "No such file or directory: 'git'",
)


def classify_error(kind: ActionKind, message: str, timed_out: bool = False) -> ErrorCategory:
    """Map an executor error message onto a user-facing category.

    Executor errors carry only text, so classification is substring based.
    """
    if timed_out:
        return ErrorCategory.TIMEOUT
    if "tmux" in message and (
        "not installed" in message or "not available" in message
    ):
        return ErrorCategory.PREREQUISITE_UNAVAILABLE
    if any(marker in message for marker in _MISSING_EXECUTABLE_MARKERS):
        return ErrorCategory.PREREQUISITE_UNAVAILABLE
    return ErrorCategory.GENERIC


def prerequisite_hint(kind: ActionKind, message: str) -> str:
    """Actionable hint shown for PREREQUISITE_UNAVAILABLE errors."""
    if "tmux" in message:
        if kind == ActionKind.OPEN_SESSION:
            return "tmux unavailable. Press 'o' to view logs instead."
        return "tmux unavailable. Install tmux to manage agent sessions."
    for tool in ("gt", "bd", "git"):
        if f"'{tool}'" in message or f"\"{tool}\"" in message or message.startswith(f"{tool}:"):
            return f"'{tool}' not found on PATH. Install it or check your town root."
    return f"{action_name(kind)} unavailable: required tool is missing."

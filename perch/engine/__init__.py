"""perch control engine: state, modals, refresh, actions, and the reducer."""
from .actions import ActionKind, PendingAction, PresetNudge
from .config import ControlConfig
from .effects import (
    Effect,
    InstallTown,
    LoadDetail,
    LoadRigSettings,
    Quit,
    RequestRefresh,
    RunAction,
    SaveRigSettings,
    ScheduleTick,
    SwitchTown,
)
from .errors import (
    ActionTimeoutError,
    CommandError,
    ConfirmationRequiredError,
    DetailLoadError,
    PerchError,
    SettingsValidationError,
    SnapshotTimeoutError,
    UnknownActionError,
)
from .projection import ControlView, project
from .sections import Section
from .state import ControlState, DetailSlot, SelectionKey

__all__ = [
    # Reducer (lazy import to avoid circular deps)
    "Controller",
    # State
    "ActionKind",
    "PendingAction",
    "PresetNudge",
    "ControlState",
    "DetailSlot",
    "Section",
    "SelectionKey",
    "ControlView",
    "project",
    # Config
    "ControlConfig",
    "PerchConfig",
    "load_yaml_config",
    # Effects
    "Effect",
    "InstallTown",
    "LoadDetail",
    "LoadRigSettings",
    "Quit",
    "RequestRefresh",
    "RunAction",
    "SaveRigSettings",
    "ScheduleTick",
    "SwitchTown",
    # Errors
    "ActionTimeoutError",
    "CommandError",
    "ConfirmationRequiredError",
    "DetailLoadError",
    "PerchError",
    "SettingsValidationError",
    "SnapshotTimeoutError",
    "UnknownActionError",
]


def __getattr__(name: str):
    if name == "Controller":
        from .controller import Controller
        return Controller
    if name == "PerchConfig":
        from .yaml_config import PerchConfig
        return PerchConfig
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

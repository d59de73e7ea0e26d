"""Modal variants. At most one is active at a time."""
from .base import Cancel, KeyResult, Modal, ModalKind, Stay, Submit, TextField
from .dialogs import (
    AgentDetailModal,
    ConfirmModal,
    HelpModal,
    InputModal,
    PresetMenuModal,
    RefileModal,
    RefileTarget,
    TownMapModal,
)
from .forms import (
    AddRigDraft,
    AddRigFormModal,
    BeadDraft,
    BeadsFormModal,
    CommentDraft,
    CommentFormModal,
    RigSettingsFormModal,
)
from .wizards import (
    AttachModal,
    CreateWorkModal,
    DependencyChange,
    DependencyMode,
    DependencyModal,
    FilterWizardModal,
    SetupModal,
    SetupPhase,
    WorkDraft,
    WorkStep,
)

__all__ = [
    "Cancel",
    "KeyResult",
    "Modal",
    "ModalKind",
    "Stay",
    "Submit",
    "TextField",
    "AgentDetailModal",
    "ConfirmModal",
    "HelpModal",
    "InputModal",
    "PresetMenuModal",
    "RefileModal",
    "RefileTarget",
    "TownMapModal",
    "AddRigDraft",
    "AddRigFormModal",
    "BeadDraft",
    "BeadsFormModal",
    "CommentDraft",
    "CommentFormModal",
    "RigSettingsFormModal",
    "AttachModal",
    "CreateWorkModal",
    "DependencyChange",
    "DependencyMode",
    "DependencyModal",
    "FilterWizardModal",
    "SetupModal",
    "SetupPhase",
    "WorkDraft",
    "WorkStep",
]

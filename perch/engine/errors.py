"""Exception hierarchy for the perch control loop.

Specific exceptions for each failure mode. Errors raised inside
background tasks are carried back to the loop inside completion
events rather than propagated.
"""
from __future__ import annotations


class PerchError(Exception):
    """Base exception for all perch errors."""


class CommandError(PerchError):
    """An external gt/bd/git command exited unsuccessfully."""
    def __init__(self, argv: list[str], returncode: int | None, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr.strip()
        status = (
            f"exit status {returncode}" if returncode is not None
            else "command failed"
        )
        if self.stderr:
            super().__init__(f"{status}: {self.stderr}")
        else:
            super().__init__(status)


class ActionTimeoutError(PerchError):
    """An action exceeded its time budget."""
    def __init__(self, kind: str, target: str, timeout_seconds: float):
        self.kind = kind
        self.target = target
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"{kind} on {target or '<none>'} timed out after {timeout_seconds:g}s"
        )


class SnapshotTimeoutError(PerchError):
    """A full snapshot load exceeded its time budget."""
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Snapshot load timed out after {timeout_seconds:g}s")


class DetailLoadError(PerchError):
    """A selection-scoped detail load failed."""
    def __init__(self, slot: str, key: str, reason: str):
        self.slot = slot
        self.key = key
        self.reason = reason
        super().__init__(f"Failed to load {slot} for {key}: {reason}")


class SettingsValidationError(PerchError):
    """Rig settings failed validation."""
    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(reason)


class UnknownActionError(PerchError):
    """The executor has no command mapping for an action kind."""
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"No command registered for action: {kind}")


class ConfirmationRequiredError(PerchError):
    """A destructive action reached execution without confirmation."""
    def __init__(self, kind: str, target: str):
        self.kind = kind
        self.target = target
        super().__init__(
            f"Destructive action {kind} on {target} requires confirmation"
        )

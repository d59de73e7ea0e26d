"""Drill-down detail loaded on demand for the current selection."""

from __future__ import annotations

from dataclasses import dataclass

from perch.engine.errors import SettingsValidationError


@dataclass(frozen=True)
class IssueDependency:
    id: str
    title: str = ""
    status: str = ""
    issue_type: str = ""
    priority: int = 0


@dataclass(frozen=True)
class IssueDependencies:
    issue_id: str
    blocked_by: tuple[IssueDependency, ...] = ()
    blocking: tuple[IssueDependency, ...] = ()


@dataclass(frozen=True)
class Comment:
    author: str
    text: str
    created_at: str = ""


@dataclass(frozen=True)
class IssueComments:
    issue_id: str
    comments: tuple[Comment, ...] = ()


@dataclass(frozen=True)
class AuditEntry:
    timestamp: str
    actor: str
    action: str
    summary: str = ""


@dataclass
class RigSettings:
    """Editable per-rig settings stored under the town root."""
    name: str
    prefix: str = ""
    theme: str = ""
    max_workers: int = 0
    mq_enabled: bool = True
    run_tests: bool = True
    test_command: str = "go test ./..."
    git_url: str = ""

    def validate(self) -> None:
        if not self.prefix:
            raise SettingsValidationError("prefix", "Prefix is required")
        if self.max_workers < 0:
            raise SettingsValidationError(
                "max_workers", "Max workers must be a non-negative number",
            )
        if self.run_tests and not self.test_command:
            raise SettingsValidationError(
                "test_command",
                "Test command is required when run tests is enabled",
            )

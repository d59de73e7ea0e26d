"""Immutable point-in-time view of a Gas Town.

A Snapshot is built by the loader from gt/bd JSON output and is
replaced wholesale on every refresh, never mutated in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any


def _str(data: dict, key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


def _int(data: dict, key: str) -> int:
    try:
        return int(data.get(key) or 0)
    except (TypeError, ValueError):
        return 0


def _strings(data: dict, key: str) -> tuple[str, ...]:
    return tuple(str(v) for v in (data.get(key) or ()))


@dataclass(frozen=True)
class Agent:
    name: str
    address: str
    role: str = ""
    session: str = ""
    running: bool = False
    has_work: bool = False
    unread_mail: int = 0
    hooked_bead_id: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Agent:
        return cls(
            name=_str(data, "name"),
            address=_str(data, "address") or _str(data, "name"),
            role=_str(data, "role"),
            session=_str(data, "session"),
            running=bool(data.get("running")),
            has_work=bool(data.get("has_work")),
            unread_mail=_int(data, "unread_mail"),
            hooked_bead_id=_str(data, "hooked_bead_id"),
        )


@dataclass(frozen=True)
class Rig:
    name: str
    polecat_count: int = 0
    crew_count: int = 0
    has_witness: bool = False
    has_refinery: bool = False
    agents: tuple[Agent, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> Rig:
        return cls(
            name=_str(data, "name"),
            polecat_count=_int(data, "polecat_count"),
            crew_count=_int(data, "crew_count"),
            has_witness=bool(data.get("has_witness")),
            has_refinery=bool(data.get("has_refinery")),
            agents=tuple(Agent.from_dict(a) for a in data.get("agents") or ()),
        )


@dataclass(frozen=True)
class TownStatus:
    name: str = ""
    location: str = ""
    agents: tuple[Agent, ...] = ()
    rigs: tuple[Rig, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> TownStatus:
        return cls(
            name=_str(data, "name"),
            location=_str(data, "location"),
            agents=tuple(Agent.from_dict(a) for a in data.get("agents") or ()),
            rigs=tuple(Rig.from_dict(r) for r in data.get("rigs") or ()),
        )

    def all_agents(self) -> tuple[Agent, ...]:
        """Town-level agents followed by every rig's agents."""
        agents = list(self.agents)
        for rig in self.rigs:
            agents.extend(rig.agents)
        return tuple(agents)


@dataclass(frozen=True)
class Polecat:
    rig: str
    name: str
    state: str = ""
    session_running: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> Polecat:
        return cls(
            rig=_str(data, "rig"),
            name=_str(data, "name"),
            state=_str(data, "state"),
            session_running=bool(data.get("session_running")),
        )


@dataclass(frozen=True)
class Convoy:
    id: str
    title: str = ""
    status: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Convoy:
        return cls(
            id=_str(data, "id"),
            title=_str(data, "title"),
            status=_str(data, "status"),
        )


@dataclass(frozen=True)
class MergeRequest:
    id: str
    rig: str = ""
    title: str = ""
    status: str = ""
    worker: str = ""
    branch: str = ""
    priority: int = 0
    has_conflicts: bool = False
    needs_rebase: bool = False
    conflict_info: str = ""

    @classmethod
    def from_dict(cls, data: dict, rig: str = "") -> MergeRequest:
        return cls(
            id=_str(data, "id"),
            rig=rig or _str(data, "rig"),
            title=_str(data, "title"),
            status=_str(data, "status"),
            worker=_str(data, "worker"),
            branch=_str(data, "branch"),
            priority=_int(data, "priority"),
            has_conflicts=bool(data.get("has_conflicts")),
            needs_rebase=bool(data.get("needs_rebase")),
            conflict_info=_str(data, "conflict_info"),
        )


@dataclass(frozen=True)
class Issue:
    id: str
    title: str = ""
    description: str = ""
    status: str = ""
    priority: int = 2
    issue_type: str = "task"
    assignee: str = ""
    labels: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> Issue:
        return cls(
            id=_str(data, "id"),
            title=_str(data, "title"),
            description=_str(data, "description"),
            status=_str(data, "status"),
            priority=_int(data, "priority"),
            issue_type=_str(data, "issue_type") or "task",
            assignee=_str(data, "assignee"),
            labels=_strings(data, "labels"),
        )


@dataclass(frozen=True)
class MailMessage:
    id: str
    sender: str = ""
    to: str = ""
    subject: str = ""
    body: str = ""
    read: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> MailMessage:
        return cls(
            id=_str(data, "id"),
            sender=_str(data, "from"),
            to=_str(data, "to"),
            subject=_str(data, "subject"),
            body=_str(data, "body"),
            read=bool(data.get("read")),
        )


@dataclass(frozen=True)
class Worktree:
    path: str
    rig: str = ""
    name: str = ""
    branch: str = ""
    clean: bool = True


@dataclass(frozen=True)
class Plugin:
    name: str
    path: str
    scope: str = "town"
    enabled: bool = True
    title: str = ""


@dataclass(frozen=True)
class LoadError:
    """One data source that failed during a refresh."""
    source: str
    command: str
    error: str


@dataclass(frozen=True)
class Snapshot:
    town: TownStatus | None = None
    polecats: tuple[Polecat, ...] = ()
    convoys: tuple[Convoy, ...] = ()
    merge_queues: dict[str, tuple[MergeRequest, ...]] = field(default_factory=dict)
    issues: tuple[Issue, ...] = ()
    mail: tuple[MailMessage, ...] = ()
    worktrees: tuple[Worktree, ...] = ()
    plugins: tuple[Plugin, ...] = ()
    load_errors: tuple[LoadError, ...] = ()
    last_success: dict[str, float] = field(default_factory=dict)
    loaded_at: float = 0.0

    @property
    def has_errors(self) -> bool:
        return bool(self.load_errors)

    def rig_names(self) -> list[str]:
        if self.town is None:
            return []
        return [rig.name for rig in self.town.rigs]

    def all_merge_requests(self) -> list[MergeRequest]:
        requests: list[MergeRequest] = []
        for rig in sorted(self.merge_queues):
            requests.extend(self.merge_queues[rig])
        return requests

    def issue(self, issue_id: str) -> Issue | None:
        for issue in self.issues:
            if issue.id == issue_id:
                return issue
        return None

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form used by the debug export."""
        return asdict(self)

"""Sidebar sections and the selectable items derived from a snapshot."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from perch.shared.models.snapshot import Issue, Snapshot


class Section(str, Enum):
    RIGS = "rigs"
    CONVOYS = "convoys"
    MERGE_QUEUE = "merge_queue"
    AGENTS = "agents"
    MAIL = "mail"
    WORKTREES = "worktrees"
    PLUGINS = "plugins"
    BEADS = "beads"
    ALERTS = "alerts"


SECTION_KEYS: dict[str, Section] = {
    "1": Section.RIGS,
    "2": Section.CONVOYS,
    "3": Section.MERGE_QUEUE,
    "4": Section.AGENTS,
    "5": Section.MAIL,
    "6": Section.WORKTREES,
    "7": Section.PLUGINS,
    "8": Section.BEADS,
    "9": Section.ALERTS,
}

SECTION_TITLES: dict[Section, str] = {
    Section.RIGS: "Rigs",
    Section.CONVOYS: "Convoys",
    Section.MERGE_QUEUE: "Merge Queue",
    Section.AGENTS: "Agents",
    Section.MAIL: "Mail",
    Section.WORKTREES: "Worktrees",
    Section.PLUGINS: "Plugins",
    Section.BEADS: "Beads",
    Section.ALERTS: "Alerts",
}


class BeadsScope(str, Enum):
    RIG = "rig"
    TOWN = "town"


@dataclass(frozen=True)
class BeadsFilter:
    status: str = ""
    issue_type: str = ""
    priority: int = -1
    assignee: str = ""
    labels: tuple[str, ...] = ()

    @property
    def active(self) -> bool:
        return bool(
            self.status or self.issue_type or self.priority >= 0
            or self.assignee or self.labels
        )

    def describe(self) -> str:
        parts = []
        if self.status:
            parts.append(f"status={self.status}")
        if self.issue_type:
            parts.append(f"type={self.issue_type}")
        if self.priority >= 0:
            parts.append(f"P{self.priority}")
        if self.assignee:
            parts.append(f"assignee={self.assignee}")
        if self.labels:
            parts.append("labels=" + ",".join(self.labels))
        return " ".join(parts)

    def matches(self, issue: Issue) -> bool:
        if self.status and issue.status != self.status:
            return False
        if self.issue_type and issue.issue_type != self.issue_type:
            return False
        if self.priority >= 0 and issue.priority != self.priority:
            return False
        if self.assignee and issue.assignee != self.assignee:
            return False
        if self.labels and not set(self.labels) <= set(issue.labels):
            return False
        return True


@dataclass(frozen=True)
class SectionItem:
    item_id: str
    label: str
    entity: Any = field(default=None, compare=False)


def _beads(snapshot: Snapshot, scope: BeadsScope, beads_filter: BeadsFilter) -> list[SectionItem]:
    items = []
    for issue in snapshot.issues:
        town_level = issue.id.startswith("hq-")
        if town_level != (scope == BeadsScope.TOWN):
            continue
        if not beads_filter.matches(issue):
            continue
        items.append(SectionItem(issue.id, f"{issue.id} P{issue.priority} {issue.title}", issue))
    return items


def section_items(
    snapshot: Snapshot | None,
    section: Section,
    scope: BeadsScope = BeadsScope.RIG,
    beads_filter: BeadsFilter = BeadsFilter(),
) -> list[SectionItem]:
    """Selectable rows for *section*, in display order."""
    if snapshot is None:
        return []
    if section == Section.RIGS:
        rigs = snapshot.town.rigs if snapshot.town else ()
        return [
            SectionItem(r.name, f"{r.name} ({r.polecat_count} polecats)", r)
            for r in rigs
        ]
    if section == Section.CONVOYS:
        return [
            SectionItem(c.id, f"{c.id} {c.title} [{c.status}]", c)
            for c in snapshot.convoys
        ]
    if section == Section.MERGE_QUEUE:
        return [
            SectionItem(f"{mr.rig}/{mr.id}", f"{mr.rig}: {mr.id} {mr.title}", mr)
            for mr in snapshot.all_merge_requests()
        ]
    if section == Section.AGENTS:
        agents = snapshot.town.all_agents() if snapshot.town else ()
        return [
            SectionItem(
                a.address,
                f"{a.address} ({a.role or 'agent'}{', running' if a.running else ''})",
                a,
            )
            for a in agents
        ]
    if section == Section.MAIL:
        return [
            SectionItem(m.id, f"{'  ' if m.read else '* '}{m.sender}: {m.subject}", m)
            for m in snapshot.mail
        ]
    if section == Section.WORKTREES:
        return [
            SectionItem(w.path, f"{w.rig}/{w.name} {w.branch}", w)
            for w in snapshot.worktrees
        ]
    if section == Section.PLUGINS:
        return [
            SectionItem(
                p.path,
                f"{p.title or p.name} [{'on' if p.enabled else 'off'}]",
                p,
            )
            for p in snapshot.plugins
        ]
    if section == Section.BEADS:
        return _beads(snapshot, scope, beads_filter)
    if section == Section.ALERTS:
        return [
            SectionItem(e.source, f"{e.source}: {e.error}", e)
            for e in snapshot.load_errors
        ]
    return []

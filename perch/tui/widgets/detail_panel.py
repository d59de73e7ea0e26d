"""Detail panel — the selected item plus any drill-down detail loaded for it."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from rich.text import Text
from textual.reactive import reactive
from textual.widget import Widget

from perch.engine.projection import ControlView
from perch.engine.sections import Section
from perch.engine.state import CacheEntry, DetailSlot
from perch.shared.models.details import IssueComments, IssueDependencies


def _field(text: Text, label: str, value: Any) -> None:
    if value in ("", None, ()):
        return
    text.append(f"{label}: ", style="bold")
    text.append(f"{value}\n")


def _rig(text: Text, rig) -> None:
    _field(text, "Rig", rig.name)
    _field(text, "Polecats", rig.polecat_count)
    _field(text, "Crew", rig.crew_count)
    _field(text, "Witness", "yes" if rig.has_witness else "no")
    _field(text, "Refinery", "yes" if rig.has_refinery else "no")
    _field(text, "Agents", ", ".join(a.name for a in rig.agents))


def _agent(text: Text, agent) -> None:
    _field(text, "Agent", agent.address)
    _field(text, "Role", agent.role)
    _field(text, "Session", agent.session)
    _field(text, "Running", "yes" if agent.running else "no")
    _field(text, "Hooked", agent.hooked_bead_id)
    _field(text, "Unread mail", agent.unread_mail)


def _merge_request(text: Text, mr) -> None:
    _field(text, "MR", mr.id)
    _field(text, "Title", mr.title)
    _field(text, "Status", mr.status)
    _field(text, "Worker", mr.worker)
    _field(text, "Branch", mr.branch)
    _field(text, "Conflicts", mr.conflict_info or ("yes" if mr.has_conflicts else ""))
    if mr.needs_rebase:
        text.append("Needs rebase\n", style="yellow")


def _issue(text: Text, issue) -> None:
    _field(text, "Bead", issue.id)
    _field(text, "Title", issue.title)
    _field(text, "Status", issue.status)
    _field(text, "Type", issue.issue_type)
    _field(text, "Priority", f"P{issue.priority}")
    _field(text, "Assignee", issue.assignee)
    _field(text, "Labels", ", ".join(issue.labels))
    if issue.description:
        text.append("\n" + issue.description + "\n", style="dim")


def _mail(text: Text, message) -> None:
    _field(text, "From", message.sender)
    _field(text, "To", message.to)
    _field(text, "Subject", message.subject)
    if message.body:
        text.append("\n" + message.body + "\n")


def _generic(text: Text, entity) -> None:
    for name, value in vars(entity).items():
        _field(text, name.replace("_", " ").capitalize(), value)


_RENDERERS: dict[Section, Callable[[Text, Any], None]] = {
    Section.RIGS: _rig,
    Section.AGENTS: _agent,
    Section.MERGE_QUEUE: _merge_request,
    Section.BEADS: _issue,
    Section.MAIL: _mail,
}


def _slot(text: Text, title: str, entry: CacheEntry | None, body: Callable[[Any], None]) -> None:
    text.append(f"\n{title}\n", style="bold underline")
    if entry is None or entry.loading:
        text.append("  loading...\n", style="dim")
    elif entry.error:
        text.append(f"  {entry.error}\n", style="red")
    else:
        body(entry.value)


class DetailPanel(Widget):
    view: reactive[ControlView | None] = reactive(None, always_update=True)

    def render(self) -> Text:
        text = Text()
        view = self.view
        item = view.selected if view else None
        if item is None:
            text.append("Nothing selected", style="dim italic")
            return text
        _RENDERERS.get(view.section, _generic)(text, item.entity)

        if view.section == Section.BEADS:
            def deps(value: IssueDependencies) -> None:
                if not value.blocked_by and not value.blocking:
                    text.append("  none\n", style="dim")
                for dep in value.blocked_by:
                    text.append(f"  blocked by {dep.id} {dep.title} [{dep.status}]\n")
                for dep in value.blocking:
                    text.append(f"  blocks {dep.id} {dep.title} [{dep.status}]\n")

            def comments(value: IssueComments) -> None:
                if not value.comments:
                    text.append("  none\n", style="dim")
                for comment in value.comments:
                    text.append(f"  {comment.author}: ", style="bold")
                    text.append(f"{comment.text}\n")

            _slot(text, "Dependencies", view.details.get(DetailSlot.DEPENDENCIES), deps)
            _slot(text, "Comments", view.details.get(DetailSlot.COMMENTS), comments)
        elif view.section == Section.AGENTS:
            def audit(entries) -> None:
                if not entries:
                    text.append("  none\n", style="dim")
                for entry in entries:
                    text.append(f"  {entry.timestamp} {entry.action} {entry.summary}\n")

            _slot(text, "Recent activity", view.details.get(DetailSlot.AUDIT), audit)
        return text

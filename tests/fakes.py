"""Shared fakes for perch tests: clock, command runner, sample snapshot."""

from __future__ import annotations

import asyncio
import json

from perch.adapters.executor import CommandResult
from perch.engine.config import ControlConfig
from perch.engine.controller import Controller
from perch.shared.models.snapshot import (
    Agent,
    Issue,
    MailMessage,
    MergeRequest,
    Rig,
    Snapshot,
    TownStatus,
)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRunner:
    """CommandRunner that answers from a table keyed by argv prefix."""

    def __init__(self, responses: dict | None = None, delay: float = 0.0) -> None:
        self.responses = dict(responses or {})
        self.delay = delay
        self.calls: list[tuple[list[str], str | None]] = []

    def reply(self, argv: list[str], stdout="", returncode: int = 0, stderr: str = "") -> None:
        if not isinstance(stdout, str):
            stdout = json.dumps(stdout)
        self.responses[tuple(argv)] = CommandResult(stdout, stderr, returncode)

    def fail(self, argv: list[str], exc: Exception) -> None:
        """Raise *exc* from run() for commands starting with *argv*."""
        self.responses[tuple(argv)] = exc

    async def run(self, argv: list[str], cwd: str | None = None) -> CommandResult:
        self.calls.append((list(argv), cwd))
        if self.delay:
            await asyncio.sleep(self.delay)
        for length in range(len(argv), 0, -1):
            result = self.responses.get(tuple(argv[:length]))
            if result is not None:
                if isinstance(result, Exception):
                    raise result
                return result
        return CommandResult("", f"unknown command: {' '.join(argv)}", 1)

    def argvs(self) -> list[list[str]]:
        return [argv for argv, _ in self.calls]


def make_snapshot() -> Snapshot:
    mayor = Agent(name="mayor", address="mayor", role="mayor", running=True)
    alpha_agents = (
        Agent(name="toast", address="alpha/toast", role="polecat", running=True),
        Agent(name="nux", address="alpha/nux", role="polecat", running=True, has_work=True,
              hooked_bead_id="gt-1"),
        Agent(name="witness", address="alpha/witness", role="witness", running=False),
    )
    town = TownStatus(
        name="testtown",
        location="/town",
        agents=(mayor,),
        rigs=(
            Rig(name="alpha", polecat_count=2, has_witness=True, agents=alpha_agents),
            Rig(name="beta", polecat_count=0),
        ),
    )
    issues = (
        Issue(id="gt-1", title="Fix login", status="open", priority=1, issue_type="bug",
              assignee="alpha/nux", labels=("auth",)),
        Issue(id="gt-2", title="Add search", status="open", priority=2, issue_type="feature"),
        Issue(id="gt-3", title="Write docs", status="closed", priority=3),
        Issue(id="hq-1", title="Quarterly plan", status="open", priority=0),
    )
    mail = (
        MailMessage(id="m-1", sender="mayor", to="overseer", subject="Hello", read=False),
        MailMessage(id="m-2", sender="alpha/nux", to="overseer", subject="Done", read=True),
    )
    merge_queues = {
        "alpha": (
            MergeRequest(id="mr-1", rig="alpha", title="Login fix", status="ready",
                         worker="alpha/nux", branch="polecat/nux"),
            MergeRequest(id="mr-2", rig="alpha", title="Search", status="blocked",
                         has_conflicts=True, conflict_info="src/app.go"),
        ),
    }
    return Snapshot(town=town, issues=issues, mail=mail, merge_queues=merge_queues)


def make_controller(town_root: str = "/town", clock: FakeClock | None = None, **config) -> Controller:
    """A started controller attached to *town_root*, with no snapshot yet."""
    config.setdefault("refresh_interval_seconds", 10.0)
    config.setdefault("export_dir", "/tmp/perch-test-export")
    controller = Controller(
        ControlConfig(town_root=town_root, **config),
        clock=clock or FakeClock(),
        exists=lambda path: True,
    )
    controller.start()
    return controller


def load_snapshot(controller: Controller, snapshot: Snapshot | None = None) -> list:
    """Complete the in-flight refresh with *snapshot*; returns the effects."""
    from perch.adapters.events import RefreshCompleted

    state = controller.state
    return controller.handle(RefreshCompleted(
        generation=state.refresh.generation,
        snapshot=snapshot or make_snapshot(),
    ))

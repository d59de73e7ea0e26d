"""Command executor — maps action kinds onto gt/bd/git invocations.

Every command runs through a CommandRunner so tests can substitute a
fake. Arguments are always passed as an argv array, never via a shell.
"""
from __future__ import annotations

import asyncio
import json
import logging
import shutil
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from perch.engine.actions import ActionKind
from perch.engine.errors import CommandError, UnknownActionError
from perch.shared.services.durable_write import atomic_write_json

logger = logging.getLogger(__name__)

# Actions that take over the terminal (log tails, tmux attach).
INTERACTIVE_ACTIONS: frozenset[ActionKind] = frozenset({
    ActionKind.OPEN_LOGS,
    ActionKind.OPEN_SESSION,
    ActionKind.VIEW_MR_LOGS,
})

EXPORT_FILENAME = "last_snapshot.json"


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    returncode: int


class CommandRunner(Protocol):
    async def run(self, argv: list[str], cwd: str | None = None) -> CommandResult:
        ...


class SubprocessRunner:
    """Runs commands with asyncio subprocesses."""

    async def run(self, argv: list[str], cwd: str | None = None) -> CommandResult:
        if not argv:
            raise CommandError(argv, None, "no command specified")
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except FileNotFoundError as exc:
            raise CommandError(argv, None, str(exc)) from exc
        stdout, stderr = await proc.communicate()
        return CommandResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            returncode=proc.returncode if proc.returncode is not None else -1,
        )


def _get(payload: Any, name: str, default: Any = "") -> Any:
    """Read *name* from a dict payload or a draft dataclass."""
    if payload is None:
        return default
    if isinstance(payload, dict):
        return payload.get(name, default)
    return getattr(payload, name, default)


def _split_mr(target: str) -> tuple[str, str]:
    """``"rig/mr-id"`` -> ``("rig", "mr-id")``."""
    rig, _, mr_id = target.partition("/")
    return rig, mr_id


def _bead_fields(payload: Any) -> list[str]:
    args = [
        "--title", _get(payload, "title"),
        "--type", _get(payload, "issue_type", "task"),
        "--priority", str(_get(payload, "priority", 2)),
    ]
    description = _get(payload, "description")
    if description:
        args += ["--description", description]
    return args


def _subsystem(name: str, verb: str, rig_scoped: bool) -> Callable[[str, Any], list[str]]:
    def build(target: str, payload: Any) -> list[str]:
        argv = ["gt", name, verb]
        if rig_scoped and target:
            argv.append(target)
        return argv
    return build


# ── Command table ──

_COMMANDS: dict[ActionKind, Callable[[str, Any], list[str]]] = {
    ActionKind.BOOT_RIG: lambda t, p: ["gt", "rig", "boot", t],
    ActionKind.SHUTDOWN_RIG: lambda t, p: ["gt", "rig", "shutdown", t],
    ActionKind.DELETE_RIG: lambda t, p: ["gt", "rig", "remove", t],
    ActionKind.ADD_RIG: lambda t, p: (
        ["gt", "rig", "add", _get(p, "name", t), _get(p, "url")]
        + (["--prefix", _get(p, "prefix")] if _get(p, "prefix") else [])
    ),
    ActionKind.OPEN_LOGS: lambda t, p: ["gt", "log", "--agent", t, "-f"],
    ActionKind.NUDGE_REFINERY: lambda t, p: [
        "gt", "mail", "send", f"{t}/refinery",
        "-s", "Merge queue nudge",
        "-m", _get(p, "message") or "Please process the merge queue.",
    ],
    ActionKind.RESTART_REFINERY: lambda t, p: ["gt", "agent", "restart", f"{t}/refinery"],
    ActionKind.STOP_POLECAT: lambda t, p: ["gt", "polecat", "stop", t],
    ActionKind.STOP_ALL_IDLE: lambda t, p: ["gt", "polecat", "stop", "--idle", t],
    ActionKind.MARK_MAIL_READ: lambda t, p: ["gt", "mail", "read", t],
    ActionKind.MARK_MAIL_UNREAD: lambda t, p: ["gt", "mail", "unread", t],
    ActionKind.ACK_MAIL: lambda t, p: ["gt", "mail", "ack", t],
    ActionKind.REPLY_MAIL: lambda t, p: ["gt", "mail", "reply", t, "-m", _get(p, "message")],
    ActionKind.REMOVE_WORKTREE: lambda t, p: ["git", "worktree", "remove", t],
    ActionKind.SLING_WORK: lambda t, p: ["gt", "sling", _get(p, "bead"), t],
    ActionKind.HANDOFF: lambda t, p: ["gt", "handoff", "--target", t],
    ActionKind.STOP_AGENT: lambda t, p: ["gt", "polecat", "nuke", t],
    ActionKind.NUDGE_AGENT: lambda t, p: ["gt", "nudge", t, "-m", _get(p, "message")],
    ActionKind.PRESET_NUDGE: lambda t, p: ["gt", "nudge", t, "-m", _get(p, "message")],
    ActionKind.MAIL_AGENT: lambda t, p: [
        "gt", "mail", "send", t,
        "-s", _get(p, "subject"),
        "-m", _get(p, "body") or _get(p, "subject"),
    ],
    ActionKind.OPEN_SESSION: lambda t, p: ["gt", "session", "attach", t],
    ActionKind.START_SESSION: lambda t, p: ["gt", "session", "start", t],
    ActionKind.RESTART_SESSION: lambda t, p: ["gt", "session", "restart", t],
    ActionKind.CREATE_BEAD: lambda t, p: ["bd", "create"] + _bead_fields(p),
    ActionKind.EDIT_BEAD: lambda t, p: ["bd", "update", t] + _bead_fields(p),
    ActionKind.CLOSE_BEAD: lambda t, p: ["bd", "close", t],
    ActionKind.REOPEN_BEAD: lambda t, p: ["bd", "update", t, "--status", "open"],
    ActionKind.ADD_COMMENT: lambda t, p: ["bd", "comments", "add", t, _get(p, "text")],
    ActionKind.REFILE_ISSUE: lambda t, p: ["bd", "refile", t, "--to", _get(p, "to")],
    ActionKind.ADD_DEPENDENCY: lambda t, p: ["bd", "dep", "add", t, _get(p, "blocker")],
    ActionKind.REMOVE_DEPENDENCY: lambda t, p: ["bd", "dep", "remove", t, _get(p, "blocker")],
    ActionKind.START_DEACON: _subsystem("deacon", "start", rig_scoped=False),
    ActionKind.STOP_DEACON: _subsystem("deacon", "stop", rig_scoped=False),
    ActionKind.RESTART_DEACON: _subsystem("deacon", "restart", rig_scoped=False),
    ActionKind.START_WITNESS: _subsystem("witness", "start", rig_scoped=True),
    ActionKind.STOP_WITNESS: _subsystem("witness", "stop", rig_scoped=True),
    ActionKind.RESTART_WITNESS: _subsystem("witness", "restart", rig_scoped=True),
    ActionKind.START_REFINERY: _subsystem("refinery", "start", rig_scoped=True),
    ActionKind.STOP_REFINERY: _subsystem("refinery", "stop", rig_scoped=True),
    ActionKind.MQ_RETRY: lambda t, p: [
        "gt", "mq", "retry", _split_mr(t)[1], "--rig", _split_mr(t)[0],
    ],
    ActionKind.MQ_VIEW_DETAILS: lambda t, p: [
        "gt", "mq", "status", _split_mr(t)[1], "--rig", _split_mr(t)[0],
    ],
    ActionKind.VIEW_MR_LOGS: lambda t, p: ["gt", "log", "--agent", f"{t}/refinery", "-f"],
    ActionKind.INSTALL_TOWN: lambda t, p: ["gt", "install", t],
}


class GasTownExecutor:
    """Runs actions against one town root."""

    def __init__(
        self,
        town_root: str,
        runner: CommandRunner | None = None,
        export_dir: str = "~/.perch",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.town_root = town_root
        self.runner = runner or SubprocessRunner()
        self.export_dir = Path(export_dir).expanduser()
        self._clock = clock
        self._in_process: dict[ActionKind, Callable[[str, Any], str]] = {
            ActionKind.TOGGLE_PLUGIN: self._toggle_plugin,
            ActionKind.EXPORT_SNAPSHOT: self._export_snapshot,
        }
        self._compound: dict[ActionKind, Callable[[str, Any], Awaitable[str]]] = {
            ActionKind.CREATE_WORK: self._create_work,
        }

    def command_for(self, kind: ActionKind, target: str, payload: Any = None) -> list[str]:
        build = _COMMANDS.get(kind)
        if build is None:
            raise UnknownActionError(kind.value)
        return build(target, payload)

    def cwd_for(self, kind: ActionKind, target: str) -> str:
        """Working directory; bead creation runs inside the target rig."""
        if kind == ActionKind.CREATE_BEAD and target and target != "town":
            rig_dir = Path(self.town_root) / target
            if rig_dir.is_dir():
                return str(rig_dir)
        return self.town_root

    def preflight(self, kind: ActionKind) -> None:
        """Fail fast when a required tool is missing."""
        if kind == ActionKind.OPEN_SESSION and shutil.which("tmux") is None:
            raise CommandError(["tmux"], None, "tmux not installed")

    async def execute(self, kind: ActionKind, target: str, payload: Any = None) -> str:
        """Run *kind* on *target*. Returns stdout or raises CommandError."""
        in_process = self._in_process.get(kind)
        if in_process is not None:
            return in_process(target, payload)
        compound = self._compound.get(kind)
        if compound is not None:
            return await compound(target, payload)

        self.preflight(kind)
        argv = self.command_for(kind, target, payload)
        return await self._run_checked(argv, self.cwd_for(kind, target))

    async def install(self, path: str) -> str:
        """Create a new town at *path* with ``gt install``."""
        argv = self.command_for(ActionKind.INSTALL_TOWN, path)
        return await self._run_checked(argv, None)

    async def _run_checked(self, argv: list[str], cwd: str | None) -> str:
        logger.info("exec: %s", " ".join(argv))
        result = await self.runner.run(argv, cwd=cwd)
        if result.returncode != 0:
            raise CommandError(argv, result.returncode, result.stderr or result.stdout)
        return result.stdout

    async def _create_work(self, target: str, payload: Any) -> str:
        """``bd create --json`` in the rig, then ``gt sling`` the new issue."""
        rig = _get(payload, "rig")
        argv = ["bd", "create"] + _bead_fields(payload) + ["--json"]
        output = await self._run_checked(argv, self.cwd_for(ActionKind.CREATE_BEAD, rig))
        try:
            issue_id = str(json.loads(output).get("id") or "")
        except (ValueError, AttributeError) as exc:
            raise CommandError(argv, None, f"unreadable bd create output: {exc}") from exc
        if not issue_id:
            raise CommandError(argv, None, "no issue ID in bd create output")

        sling_target = _get(payload, "sling_target")
        if not sling_target:
            return f"Created {issue_id}"
        await self._run_checked(["gt", "sling", issue_id, sling_target], self.town_root)
        return f"Created {issue_id} and slung to {sling_target}"

    # ── in-process actions ──

    def _toggle_plugin(self, target: str, payload: Any) -> str:
        marker = Path(target) / ".disabled"
        if marker.exists():
            marker.unlink()
            return f"Enabled {Path(target).name}"
        marker.touch()
        return f"Disabled {Path(target).name}"

    def _export_snapshot(self, target: str, payload: Any) -> str:
        now = self._clock()
        path = self.export_dir / EXPORT_FILENAME
        atomic_write_json(path, {
            "exported_at": datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            "timestamp": now,
            "snapshot": payload.to_dict() if payload is not None else None,
        })
        logger.info("Snapshot exported to %s", path)
        return f"Snapshot exported to {path}"

"""Snapshot loader — runs gt/bd commands and parses their JSON output.

A refresh never fails as a whole: each source that errors is recorded
as a LoadError on the snapshot and the rest of the data still loads.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from perch.adapters.executor import CommandRunner, SubprocessRunner
from perch.engine.errors import CommandError, PerchError
from perch.shared.models.details import (
    AuditEntry,
    Comment,
    IssueComments,
    IssueDependencies,
    IssueDependency,
    RigSettings,
)
from perch.shared.models.snapshot import (
    Convoy,
    Issue,
    LoadError,
    MailMessage,
    MergeRequest,
    Plugin,
    Polecat,
    Snapshot,
    TownStatus,
    Worktree,
)
from perch.shared.services.durable_write import atomic_write_json

logger = logging.getLogger(__name__)

TOWN_STATUS_COMMAND = ["gt", "status", "--json", "--fast"]

# Errors that count as a failed source rather than a bug.
_SOURCE_ERRORS = (PerchError, ValueError, OSError)


def _as_list(data: Any) -> list:
    if data is None:
        return []
    if isinstance(data, list):
        return data
    raise ValueError(f"expected a JSON list, got {type(data).__name__}")


class SnapshotLoader:
    def __init__(
        self,
        town_root: str,
        runner: CommandRunner | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.town_root = town_root
        self.runner = runner or SubprocessRunner()
        self._clock = clock

    async def _exec(self, argv: list[str], cwd: str | None = None) -> str:
        result = await self.runner.run(argv, cwd=cwd or self.town_root)
        if result.returncode != 0:
            raise CommandError(argv, result.returncode, result.stderr or result.stdout)
        return result.stdout

    async def _exec_json(self, argv: list[str]) -> Any:
        """Run *argv* and parse stdout. Empty or ``null`` output is None."""
        out = (await self._exec(argv)).strip()
        if not out or out == "null":
            return None
        try:
            return json.loads(out)
        except json.JSONDecodeError as exc:
            raise ValueError(f"parsing {argv[0]} output: {exc}") from exc

    # ── Sources ──

    async def load_town_status(self) -> TownStatus:
        data = await self._exec_json(TOWN_STATUS_COMMAND)
        return TownStatus.from_dict(data or {})

    async def load_polecats(self) -> tuple[Polecat, ...]:
        data = await self._exec_json(["gt", "polecat", "list", "--all", "--json"])
        return tuple(Polecat.from_dict(d) for d in _as_list(data))

    async def load_convoys(self) -> tuple[Convoy, ...]:
        data = await self._exec_json(["gt", "convoy", "list", "--json"])
        return tuple(Convoy.from_dict(d) for d in _as_list(data))

    async def load_issues(self) -> tuple[Issue, ...]:
        data = await self._exec_json(["bd", "list", "--json", "--limit", "0"])
        return tuple(Issue.from_dict(d) for d in _as_list(data))

    async def load_mail(self) -> tuple[MailMessage, ...]:
        data = await self._exec_json(["gt", "mail", "inbox", "--json"])
        return tuple(MailMessage.from_dict(d) for d in _as_list(data))

    async def load_merge_queue(self, rig: str) -> tuple[MergeRequest, ...]:
        data = await self._exec_json(["gt", "mq", "list", rig, "--json"])
        return tuple(MergeRequest.from_dict(d, rig) for d in _as_list(data))

    async def load_worktrees(self, rigs: list[str]) -> tuple[Worktree, ...]:
        """Cross-rig worktrees live under ``<rig>/crew/<source-rig>-<name>``."""
        worktrees = []
        for rig in rigs:
            crew_dir = Path(self.town_root) / rig / "crew"
            if not crew_dir.is_dir():
                continue
            for entry in sorted(crew_dir.iterdir()):
                # A worktree has a .git file; a full clone has a directory.
                if not entry.is_dir() or not (entry / ".git").is_file():
                    continue
                branch, clean = await self._worktree_status(entry)
                worktrees.append(Worktree(
                    path=str(entry), rig=rig, name=entry.name, branch=branch, clean=clean,
                ))
        return tuple(worktrees)

    async def _worktree_status(self, path: Path) -> tuple[str, bool]:
        try:
            branch = (await self._exec(
                ["git", "-C", str(path), "rev-parse", "--abbrev-ref", "HEAD"],
            )).strip()
        except CommandError:
            branch = "unknown"
        try:
            porcelain = await self._exec(["git", "-C", str(path), "status", "--porcelain"])
        except CommandError:
            return branch, False
        return branch, not porcelain.strip()

    def load_plugins(self, rigs: list[str]) -> tuple[Plugin, ...]:
        plugins = list(self._scan_plugins(Path(self.town_root) / "plugins", "town"))
        for rig in rigs:
            plugins.extend(self._scan_plugins(Path(self.town_root) / rig / "plugins", rig))
        return tuple(plugins)

    def _scan_plugins(self, directory: Path, scope: str):
        if not directory.is_dir():
            return
        for entry in sorted(directory.iterdir()):
            if not entry.is_dir():
                continue
            yield Plugin(
                name=entry.name,
                path=str(entry),
                scope=scope,
                enabled=not (entry / ".disabled").exists(),
                title=_plugin_title(entry) or entry.name,
            )

    # ── Full snapshot ──

    async def load_all(self) -> Snapshot:
        now = self._clock()
        errors: list[LoadError] = []
        last_success: dict[str, float] = {}

        town = None
        try:
            town = await self.load_town_status()
            last_success["town_status"] = now
        except _SOURCE_ERRORS as exc:
            logger.warning("town_status failed: %s", exc)
            errors.append(LoadError("town_status", " ".join(TOWN_STATUS_COMMAND), str(exc)))
        rigs = [rig.name for rig in town.rigs] if town else []

        async def _plugins() -> tuple[Plugin, ...]:
            return self.load_plugins(rigs)

        sources: list[tuple[str, str, Awaitable[Any]]] = [
            ("polecats", "gt polecat list --all --json", self.load_polecats()),
            ("convoys", "gt convoy list --json", self.load_convoys()),
            ("issues", "bd list --json --limit 0", self.load_issues()),
            ("mail", "gt mail inbox --json", self.load_mail()),
            ("worktrees", "git worktree scan", self.load_worktrees(rigs)),
            ("plugins", "plugin scan", _plugins()),
        ]
        for rig in rigs:
            sources.append((
                f"merge_queue:{rig}", f"gt mq list {rig} --json", self.load_merge_queue(rig),
            ))

        results = await asyncio.gather(
            *(coro for _, _, coro in sources), return_exceptions=True,
        )

        values: dict[str, Any] = {}
        merge_queues: dict[str, tuple[MergeRequest, ...]] = {}
        for (source, command, _), result in zip(sources, results):
            if isinstance(result, BaseException):
                if not isinstance(result, _SOURCE_ERRORS):
                    raise result
                logger.warning("%s failed: %s", source, result)
                errors.append(LoadError(source, command, str(result)))
                continue
            last_success[source] = now
            if source.startswith("merge_queue:"):
                merge_queues[source.split(":", 1)[1]] = result
            else:
                values[source] = result

        return Snapshot(
            town=town,
            polecats=values.get("polecats", ()),
            convoys=values.get("convoys", ()),
            merge_queues=merge_queues,
            issues=values.get("issues", ()),
            mail=values.get("mail", ()),
            worktrees=values.get("worktrees", ()),
            plugins=values.get("plugins", ()),
            load_errors=tuple(errors),
            last_success=last_success,
            loaded_at=now,
        )

    # ── Drill-down detail ──

    async def load_dependencies(self, issue_id: str) -> IssueDependencies:
        data = await self._exec_json(["bd", "dep", "list", issue_id, "--json"])
        blocked_by, blocking = [], []
        for raw in _as_list(data):
            dep = IssueDependency(
                id=str(raw.get("id", "")),
                title=str(raw.get("title", "")),
                status=str(raw.get("status", "")),
                issue_type=str(raw.get("issue_type", "")),
                priority=int(raw.get("priority") or 0),
            )
            dep_type = raw.get("dependency_type")
            if dep_type == "blocks":
                blocked_by.append(dep)
            elif dep_type == "blocked_by":
                blocking.append(dep)
        return IssueDependencies(issue_id, tuple(blocked_by), tuple(blocking))

    async def load_comments(self, issue_id: str) -> IssueComments:
        data = await self._exec_json(["bd", "comments", issue_id, "--json"])
        comments = tuple(
            Comment(
                author=str(raw.get("author", "")),
                text=str(raw.get("text") or raw.get("body") or ""),
                created_at=str(raw.get("created_at", "")),
            )
            for raw in _as_list(data)
        )
        return IssueComments(issue_id, comments)

    async def load_audit_timeline(self, actor: str, limit: int = 20) -> tuple[AuditEntry, ...]:
        argv = ["gt", "audit", "--json"]
        if actor:
            argv.append(f"--actor={actor}")
        if limit > 0:
            argv += ["--limit", str(limit)]
        data = await self._exec_json(argv)
        return tuple(
            AuditEntry(
                timestamp=str(raw.get("timestamp", "")),
                actor=str(raw.get("actor", "")),
                action=str(raw.get("action") or raw.get("type") or ""),
                summary=str(raw.get("summary") or raw.get("message") or ""),
            )
            for raw in _as_list(data)
        )

    # ── Rig settings ──

    def _rigs_registry_path(self) -> Path:
        return Path(self.town_root) / "mayor" / "rigs.json"

    def _rig_config_path(self, rig: str) -> Path:
        return Path(self.town_root) / rig / "mayor" / "rig" / "settings" / "config.json"

    def load_rig_settings(self, rig: str) -> RigSettings:
        """Merge ``mayor/rigs.json`` and the rig's settings/config.json."""
        settings = RigSettings(name=rig)
        registry_path = self._rigs_registry_path()
        if registry_path.exists():
            registry = json.loads(registry_path.read_text(encoding="utf-8"))
            entry = (registry.get("rigs") or {}).get(rig) or {}
            settings.git_url = str(entry.get("git_url", ""))
            settings.prefix = str((entry.get("beads") or {}).get("prefix", ""))

        config_path = self._rig_config_path(rig)
        if config_path.exists():
            config = json.loads(config_path.read_text(encoding="utf-8"))
            settings.theme = str(config.get("theme", ""))
            settings.max_workers = int(config.get("max_workers") or 0)
            mq = config.get("merge_queue") or {}
            settings.mq_enabled = bool(mq.get("enabled", True))
            settings.run_tests = bool(mq.get("run_tests", True))
            settings.test_command = str(mq.get("test_command", settings.test_command))
        return settings

    def save_rig_settings(self, settings: RigSettings) -> None:
        """Validate, then write the prefix and the rig config back."""
        settings.validate()

        registry_path = self._rigs_registry_path()
        registry = json.loads(registry_path.read_text(encoding="utf-8"))
        rigs = registry.get("rigs") or {}
        if settings.name in rigs:
            rigs[settings.name].setdefault("beads", {})["prefix"] = settings.prefix
            atomic_write_json(registry_path, registry)

        config: dict[str, Any] = {
            "merge_queue": {
                "enabled": settings.mq_enabled,
                "run_tests": settings.run_tests,
                "test_command": settings.test_command,
            },
        }
        if settings.theme:
            config["theme"] = settings.theme
        if settings.max_workers:
            config["max_workers"] = settings.max_workers
        atomic_write_json(self._rig_config_path(settings.name), config)
        logger.info("Saved settings for rig %s", settings.name)


def _plugin_title(plugin_dir: Path) -> str:
    """``title`` from the ``+++`` frontmatter of plugin.md, if any."""
    manifest = plugin_dir / "plugin.md"
    try:
        lines = manifest.read_text(encoding="utf-8").splitlines()
    except OSError:
        return ""
    if not lines or lines[0].strip() != "+++":
        return ""
    for line in lines[1:]:
        if line.strip() == "+++":
            break
        key, sep, value = line.partition("=")
        if sep and key.strip() == "title":
            return value.strip().strip('"')
    return ""

"""Tests for snapshot loading, detail parsing, and rig settings persistence."""

from __future__ import annotations

import asyncio
import json

import pytest

from perch.adapters.loader import SnapshotLoader
from perch.engine.errors import SettingsValidationError
from perch.shared.models.details import RigSettings

from fakes import FakeClock, FakeRunner


def _loader(tmp_path, runner: FakeRunner | None = None) -> SnapshotLoader:
    return SnapshotLoader(str(tmp_path), runner or FakeRunner(), clock=FakeClock(500.0))


class TestLoadAll:
    def test_partial_failure_keeps_other_sources(self, tmp_path):
        runner = FakeRunner()
        runner.reply(["gt", "status"], {
            "name": "hq",
            "agents": [{"name": "mayor", "running": True}],
            "rigs": [{"name": "alpha", "polecat_count": 1}],
        })
        runner.reply(["bd", "list"], [
            {"id": "gt-1", "title": "Fix", "priority": 1, "labels": ["auth"]},
        ])
        runner.reply(["gt", "mail", "inbox"], "null")
        runner.reply(["gt", "convoy", "list"], "")
        runner.reply(["gt", "polecat", "list"], "not json")
        runner.reply(["gt", "mq", "list", "alpha"], [{"id": "mr-1", "status": "ready"}])

        snapshot = asyncio.run(_loader(tmp_path, runner).load_all())

        assert snapshot.town.name == "hq"
        assert snapshot.town.agents[0].address == "mayor"
        assert snapshot.issues[0].labels == ("auth",)
        assert snapshot.issues[0].issue_type == "task"
        assert snapshot.mail == ()
        assert snapshot.convoys == ()
        assert snapshot.merge_queues["alpha"][0].rig == "alpha"
        assert [e.source for e in snapshot.load_errors] == ["polecats"]
        assert "parsing gt output" in snapshot.load_errors[0].error
        assert snapshot.last_success["issues"] == 500.0
        assert "polecats" not in snapshot.last_success

    def test_town_status_failure_still_loads_town_wide_sources(self, tmp_path):
        runner = FakeRunner()
        runner.reply(["gt", "status"], returncode=1, stderr="no town")
        runner.reply(["bd", "list"], [{"id": "hq-1"}])

        snapshot = asyncio.run(_loader(tmp_path, runner).load_all())

        assert snapshot.town is None
        assert snapshot.rig_names() == []
        assert [i.id for i in snapshot.issues] == ["hq-1"]
        sources = {e.source for e in snapshot.load_errors}
        assert "town_status" in sources
        assert "issues" not in sources

    def test_object_where_list_expected_is_a_load_error(self, tmp_path):
        runner = FakeRunner()
        runner.reply(["gt", "status"], {"rigs": []})
        runner.reply(["bd", "list"], {"id": "gt-1"})

        snapshot = asyncio.run(_loader(tmp_path, runner).load_all())

        errors = {e.source: e.error for e in snapshot.load_errors}
        assert errors["issues"] == "expected a JSON list, got dict"


class TestScans:
    def test_worktrees_only_count_git_files(self, tmp_path):
        crew = tmp_path / "alpha" / "crew"
        (crew / "beta-fix").mkdir(parents=True)
        (crew / "beta-fix" / ".git").write_text("gitdir: ../../beta/.git/worktrees/fix\n")
        (crew / "clone" / ".git").mkdir(parents=True)
        runner = FakeRunner()
        runner.reply(["git", "-C", str(crew / "beta-fix"), "rev-parse"], "fix-branch\n")
        runner.reply(["git", "-C", str(crew / "beta-fix"), "status"], " M file.py\n")

        worktrees = asyncio.run(_loader(tmp_path, runner).load_worktrees(["alpha"]))

        assert len(worktrees) == 1
        assert worktrees[0].name == "beta-fix"
        assert worktrees[0].branch == "fix-branch"
        assert worktrees[0].clean is False

    def test_plugins_read_frontmatter_title_and_disabled_marker(self, tmp_path):
        lint = tmp_path / "plugins" / "lint"
        lint.mkdir(parents=True)
        (lint / "plugin.md").write_text('+++\ntitle = "Lint Checker"\n+++\nbody\n')
        docs = tmp_path / "alpha" / "plugins" / "docs"
        docs.mkdir(parents=True)
        (docs / ".disabled").touch()

        plugins = _loader(tmp_path).load_plugins(["alpha"])

        assert [(p.name, p.scope, p.enabled, p.title) for p in plugins] == [
            ("lint", "town", True, "Lint Checker"),
            ("docs", "alpha", False, "docs"),
        ]


class TestDetail:
    def test_dependencies_split_by_direction(self, tmp_path):
        runner = FakeRunner()
        runner.reply(["bd", "dep", "list", "gt-1"], [
            {"id": "gt-2", "title": "Blocker", "dependency_type": "blocks", "priority": 1},
            {"id": "gt-3", "title": "Waiting", "dependency_type": "blocked_by"},
            {"id": "gt-4", "dependency_type": "related"},
        ])

        deps = asyncio.run(_loader(tmp_path, runner).load_dependencies("gt-1"))

        assert [d.id for d in deps.blocked_by] == ["gt-2"]
        assert [d.id for d in deps.blocking] == ["gt-3"]
        assert deps.blocked_by[0].priority == 1

    def test_comments_accept_body_field(self, tmp_path):
        runner = FakeRunner()
        runner.reply(["bd", "comments", "gt-1"], [{"author": "nux", "body": "done"}])

        comments = asyncio.run(_loader(tmp_path, runner).load_comments("gt-1"))

        assert comments.comments[0].text == "done"

    def test_audit_passes_actor_and_limit(self, tmp_path):
        runner = FakeRunner()
        runner.reply(["gt", "audit"], [{"timestamp": "t1", "actor": "mayor", "type": "nudge"}])
        loader = _loader(tmp_path, runner)

        entries = asyncio.run(loader.load_audit_timeline("mayor", 5))

        assert entries[0].action == "nudge"
        assert runner.argvs() == [["gt", "audit", "--json", "--actor=mayor", "--limit", "5"]]


class TestRigSettings:
    @pytest.fixture
    def town(self, tmp_path):
        registry = tmp_path / "mayor" / "rigs.json"
        registry.parent.mkdir(parents=True)
        registry.write_text(json.dumps({
            "rigs": {"alpha": {"git_url": "git@host:alpha", "beads": {"prefix": "al"}}},
        }))
        config = tmp_path / "alpha" / "mayor" / "rig" / "settings" / "config.json"
        config.parent.mkdir(parents=True)
        config.write_text(json.dumps({
            "theme": "ocean",
            "max_workers": 4,
            "merge_queue": {"enabled": False, "run_tests": True, "test_command": "make test"},
        }))
        return tmp_path

    def test_load_merges_registry_and_config(self, town):
        settings = _loader(town).load_rig_settings("alpha")
        assert settings == RigSettings(
            name="alpha", prefix="al", theme="ocean", max_workers=4,
            mq_enabled=False, run_tests=True, test_command="make test",
            git_url="git@host:alpha",
        )

    def test_missing_files_give_defaults(self, tmp_path):
        settings = _loader(tmp_path).load_rig_settings("beta")
        assert settings.prefix == ""
        assert settings.mq_enabled is True
        assert settings.test_command == "go test ./..."

    def test_save_round_trips(self, town):
        loader = _loader(town)
        settings = loader.load_rig_settings("alpha")
        settings.prefix = "ap"
        settings.max_workers = 2

        loader.save_rig_settings(settings)

        assert loader.load_rig_settings("alpha") == settings
        registry = json.loads((town / "mayor" / "rigs.json").read_text())
        assert registry["rigs"]["alpha"]["git_url"] == "git@host:alpha"

    def test_save_rejects_invalid_settings(self, town):
        loader = _loader(town)
        with pytest.raises(SettingsValidationError):
            loader.save_rig_settings(RigSettings("alpha", prefix=""))

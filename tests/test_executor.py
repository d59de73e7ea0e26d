"""Tests for action-to-command mapping and in-process actions."""

from __future__ import annotations

import asyncio
import json

import pytest

from perch.adapters.executor import GasTownExecutor
from perch.engine.actions import ActionKind
from perch.engine.errors import CommandError
from perch.engine.modals.forms import BeadDraft
from perch.engine.modals.wizards import WorkDraft

from fakes import FakeClock, FakeRunner, make_snapshot


@pytest.fixture
def executor(tmp_path):
    return GasTownExecutor(str(tmp_path), FakeRunner(), export_dir=str(tmp_path / "export"))


class TestCommandFor:
    @pytest.mark.parametrize(
        "kind,target,payload,expected",
        [
            (ActionKind.BOOT_RIG, "alpha", None, ["gt", "rig", "boot", "alpha"]),
            (ActionKind.DELETE_RIG, "alpha", None, ["gt", "rig", "remove", "alpha"]),
            (ActionKind.STOP_POLECAT, "alpha/toast", None, ["gt", "polecat", "stop", "alpha/toast"]),
            (ActionKind.SLING_WORK, "alpha/nux", {"bead": "gt-2"}, ["gt", "sling", "gt-2", "alpha/nux"]),
            (ActionKind.MQ_RETRY, "alpha/mr-2", None, ["gt", "mq", "retry", "mr-2", "--rig", "alpha"]),
            (ActionKind.START_DEACON, "", None, ["gt", "deacon", "start"]),
            (ActionKind.STOP_WITNESS, "alpha", None, ["gt", "witness", "stop", "alpha"]),
            (ActionKind.REFILE_ISSUE, "gt-1", {"to": "town"}, ["bd", "refile", "gt-1", "--to", "town"]),
            (ActionKind.ADD_DEPENDENCY, "gt-1", {"blocker": "gt-2"}, ["bd", "dep", "add", "gt-1", "gt-2"]),
        ],
    )
    def test_mapping(self, executor, kind, target, payload, expected):
        assert executor.command_for(kind, target, payload) == expected

    def test_bead_draft_fields(self, executor):
        draft = BeadDraft(title="Fix it", description="details", issue_type="bug", priority=1)
        assert executor.command_for(ActionKind.CREATE_BEAD, "alpha", draft) == [
            "bd", "create", "--title", "Fix it", "--type", "bug", "--priority", "1",
            "--description", "details",
        ]

    def test_mail_without_body_reuses_subject(self, executor):
        argv = executor.command_for(ActionKind.MAIL_AGENT, "mayor", {"subject": "hi", "body": ""})
        assert argv == ["gt", "mail", "send", "mayor", "-s", "hi", "-m", "hi"]

    def test_add_rig_prefix_is_optional(self, executor):
        argv = executor.command_for(ActionKind.ADD_RIG, "gamma", {"name": "gamma", "url": "git@x"})
        assert argv == ["gt", "rig", "add", "gamma", "git@x"]


class TestCwd:
    def test_create_bead_runs_in_existing_rig_dir(self, executor, tmp_path):
        (tmp_path / "alpha").mkdir()
        assert executor.cwd_for(ActionKind.CREATE_BEAD, "alpha") == str(tmp_path / "alpha")

    def test_missing_rig_dir_falls_back_to_town(self, executor, tmp_path):
        assert executor.cwd_for(ActionKind.CREATE_BEAD, "ghost") == str(tmp_path)
        assert executor.cwd_for(ActionKind.BOOT_RIG, "alpha") == str(tmp_path)


class TestExecute:
    def test_nonzero_exit_raises_command_error(self, executor):
        executor.runner.reply(["gt", "rig", "boot"], returncode=3, stderr="boom")
        with pytest.raises(CommandError) as info:
            asyncio.run(executor.execute(ActionKind.BOOT_RIG, "alpha"))
        assert info.value.returncode == 3
        assert str(info.value) == "exit status 3: boom"

    def test_missing_tmux_fails_before_running(self, executor, monkeypatch):
        monkeypatch.setattr("perch.adapters.executor.shutil.which", lambda name: None)
        with pytest.raises(CommandError, match="tmux not installed"):
            asyncio.run(executor.execute(ActionKind.OPEN_SESSION, "mayor"))
        assert executor.runner.calls == []

    def test_install_runs_without_cwd(self, executor):
        executor.runner.reply(["gt", "install"], "ok")
        assert asyncio.run(executor.install("/srv/gt")) == "ok"
        assert executor.runner.calls == [(["gt", "install", "/srv/gt"], None)]


class TestCreateWork:
    def test_creates_in_rig_then_slings_to_polecat(self, executor, tmp_path):
        (tmp_path / "alpha").mkdir()
        executor.runner.reply(["bd", "create"], {"id": "gt-9", "title": "Fix it"})
        executor.runner.reply(["gt", "sling"], "slung")
        draft = WorkDraft(title="Fix it", issue_type="bug", priority=0, rig="alpha", polecat="nux")

        output = asyncio.run(executor.execute(ActionKind.CREATE_WORK, "alpha", draft))

        assert output == "Created gt-9 and slung to alpha/nux"
        assert executor.runner.calls == [
            (["bd", "create", "--title", "Fix it", "--type", "bug", "--priority", "0", "--json"],
             str(tmp_path / "alpha")),
            (["gt", "sling", "gt-9", "alpha/nux"], str(tmp_path)),
        ]

    def test_skipped_sling_only_creates(self, executor):
        executor.runner.reply(["bd", "create"], {"id": "gt-9"})
        output = asyncio.run(executor.execute(ActionKind.CREATE_WORK, "town", WorkDraft("Fix it")))
        assert output == "Created gt-9"
        assert executor.runner.argvs()[-1][:2] == ["bd", "create"]
        assert len(executor.runner.calls) == 1

    def test_missing_issue_id_stops_before_sling(self, executor):
        executor.runner.reply(["bd", "create"], "created, no json")
        draft = WorkDraft("Fix it", rig="alpha")
        with pytest.raises(CommandError, match="unreadable bd create output"):
            asyncio.run(executor.execute(ActionKind.CREATE_WORK, "alpha", draft))
        assert len(executor.runner.calls) == 1

class TestInProcess:
    def test_toggle_plugin_flips_disabled_marker(self, executor, tmp_path):
        plugin = tmp_path / "plugins" / "lint"
        plugin.mkdir(parents=True)

        first = asyncio.run(executor.execute(ActionKind.TOGGLE_PLUGIN, str(plugin)))
        assert first == "Disabled lint"
        assert (plugin / ".disabled").exists()

        second = asyncio.run(executor.execute(ActionKind.TOGGLE_PLUGIN, str(plugin)))
        assert second == "Enabled lint"
        assert not (plugin / ".disabled").exists()

    def test_export_snapshot_writes_json(self, tmp_path):
        executor = GasTownExecutor(
            str(tmp_path), FakeRunner(), export_dir=str(tmp_path / "export"),
            clock=FakeClock(0.0),
        )

        message = asyncio.run(
            executor.execute(ActionKind.EXPORT_SNAPSHOT, "", make_snapshot()),
        )

        path = tmp_path / "export" / "last_snapshot.json"
        assert message == f"Snapshot exported to {path}"
        data = json.loads(path.read_text())
        assert data["exported_at"] == "1970-01-01T00:00:00+00:00"
        assert data["snapshot"]["town"]["name"] == "testtown"
        assert executor.runner.calls == []

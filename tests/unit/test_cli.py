"""CLI command tests (via typer.testing.CliRunner)."""

from __future__ import annotations

import asyncio

import pytest
from typer.testing import CliRunner

from tabpilot.cli.app import app
from tabpilot.models.action import DoneResult
from tabpilot.models.runtime import RunResult
from tabpilot.models.states import RunMode, RunStatus
from tabpilot.runtime.state_store import CANCEL_KEY, RuntimeStateStore
from tabpilot.store.kv_store import SqliteKeyValueStore

runner = CliRunner()


@pytest.fixture()
def db_path(monkeypatch, tmp_path):
    path = tmp_path / "tabpilot.db"
    monkeypatch.setenv("TABPILOT_STORE__BACKEND", "sqlite")
    monkeypatch.setenv("TABPILOT_STORE__SQLITE_PATH", str(path))
    return path


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("tabpilot ")


def test_settings_show_redacts_secrets(monkeypatch) -> None:
    monkeypatch.setenv("TABPILOT_LLM__API_KEY", "sk-very-secret")
    result = runner.invoke(app, ["settings", "show"])
    assert result.exit_code == 0
    assert "sk-very-secret" not in result.output
    assert "***" in result.output


def test_settings_validate() -> None:
    result = runner.invoke(app, ["settings", "validate"])
    assert result.exit_code == 0
    assert "Settings are valid" in result.output


class TestStatusAndStop:
    def test_status_of_fresh_store(self, db_path) -> None:
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "idle" in result.output

    def test_stop_without_run(self, db_path) -> None:
        result = runner.invoke(app, ["stop"])
        assert result.exit_code == 0
        assert "No run is active" in result.output

    def test_stop_writes_request_for_live_run(self, db_path) -> None:
        kv = SqliteKeyValueStore(db_path)
        asyncio.run(RuntimeStateStore(kv).acquire(goal="Read mail", session_id="sess-42"))

        status = runner.invoke(app, ["status"])
        assert "Read mail" in status.output
        assert "yes" in status.output

        result = runner.invoke(app, ["stop"])
        assert result.exit_code == 0
        assert "sess-42" in result.output
        assert kv.get(CANCEL_KEY)["session_id"] == "sess-42"
        kv.close()


class TestRunCommand:
    def _patch(self, monkeypatch, result: RunResult | None) -> list[tuple]:
        calls: list[tuple] = []

        async def fake_run(goal, mode, max_steps, with_plan):
            calls.append((goal, mode, max_steps, with_plan))
            return result

        monkeypatch.setattr("tabpilot.cli.run_cmd._run_async", fake_run)
        return calls

    def test_completed_run(self, monkeypatch) -> None:
        calls = self._patch(
            monkeypatch,
            RunResult(status=RunStatus.COMPLETED, step=3, result=DoneResult(summary="Inbox is empty")),
        )
        result = runner.invoke(app, ["run", "Clear my inbox", "--no-plan", "-n", "7"])
        assert result.exit_code == 0
        assert "Inbox is empty" in result.output
        assert calls == [("Clear my inbox", RunMode.NEW, 7, False)]

    def test_plan_default_follows_approval_mode(self, monkeypatch) -> None:
        calls = self._patch(monkeypatch, RunResult(status=RunStatus.STOPPED))
        runner.invoke(app, ["run", "g", "--mode", "continue"])
        monkeypatch.setenv("TABPILOT_AGENT__APPROVAL_MODE", "act_without_asking")
        from tabpilot.settings.config import get_settings

        get_settings.cache_clear()
        runner.invoke(app, ["run", "g"])
        assert [c[3] for c in calls] == [True, False]
        assert calls[0][1] == RunMode.CONTINUE

    def test_failed_run_exits_nonzero(self, monkeypatch) -> None:
        self._patch(monkeypatch, RunResult(status=RunStatus.FAILED, error="Planner call failed"))
        result = runner.invoke(app, ["run", "g", "--no-plan"])
        assert result.exit_code == 1
        assert "Planner call failed" in result.output

    def test_rejected_plan(self, monkeypatch) -> None:
        self._patch(monkeypatch, None)
        result = runner.invoke(app, ["run", "g", "--plan"])
        assert result.exit_code == 1
        assert "nothing was executed" in result.output

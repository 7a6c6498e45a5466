"""Unit tests for the task relay client and worker."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from tabpilot.exceptions import RelayError, RunAlreadyActiveError, RunFailedError
from tabpilot.models.action import DoneResult
from tabpilot.models.runtime import RunResult
from tabpilot.models.states import RunMode, RunStatus
from tabpilot.relay.client import DEVICE_HEADER, RelayWorker, TaskRelayClient, extract_task

ENDPOINT = "https://relay.example/api/devices/dev-1"


def _client(handler) -> TaskRelayClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TaskRelayClient(ENDPOINT + "/", device_id="dev-1", auth_token="tok", wait_ms=1000, client=http)


class TestExtractTask:
    def test_nested_and_top_level(self) -> None:
        nested = extract_task({"task": {"id": "t1", "goal": "Check the weather"}})
        assert (nested.task_id, nested.goal) == ("t1", "Check the weather")
        flat = extract_task({"taskId": "t2", "prompt": "  Read mail "})
        assert (flat.task_id, flat.goal) == ("t2", "Read mail")
        assert extract_task({"task_id": "t3", "task_prompt": "x"}).task_id == "t3"

    @pytest.mark.parametrize("payload", [None, [], {"task": {"id": "t1"}}, {"goal": "   "}])
    def test_unusable(self, payload) -> None:
        assert extract_task(payload) is None


class TestTaskRelayClient:
    def test_requires_endpoint(self) -> None:
        with pytest.raises(ValueError):
            TaskRelayClient("")

    @pytest.mark.anyio
    async def test_wait_for_task(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"task": {"id": "t1", "goal": "Open the news"}})

        task = await _client(handler).wait_for_task()
        assert task.goal == "Open the news"
        request = seen[0]
        assert request.url.path == "/api/devices/dev-1/wait-task"
        assert request.url.params["waitMs"] == "1000"
        assert request.headers[DEVICE_HEADER] == "dev-1"
        assert request.headers["Authorization"] == "Bearer tok"

    @pytest.mark.anyio
    async def test_empty_window(self) -> None:
        assert await _client(lambda r: httpx.Response(204)).wait_for_task() is None

    @pytest.mark.anyio
    async def test_error_status_and_bad_body(self) -> None:
        with pytest.raises(RelayError) as exc_info:
            await _client(lambda r: httpx.Response(503, text="down")).wait_for_task()
        assert exc_info.value.status_code == 503
        with pytest.raises(RelayError):
            await _client(lambda r: httpx.Response(200, text="<html>")).wait_for_task()

    @pytest.mark.anyio
    async def test_report_completion(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        await _client(handler).report_completion("t9", "completed", summary="Done it")
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/api/devices/dev-1/tasks/t9/local-agent-complete"
        assert json.loads(seen[0].content) == {"status": "completed", "summary": "Done it", "error": ""}

    @pytest.mark.anyio
    async def test_report_completion_validates_status(self) -> None:
        with pytest.raises(ValueError):
            await _client(lambda r: httpx.Response(200)).report_completion("t1", "stopped")
        with pytest.raises(RelayError):
            await _client(lambda r: httpx.Response(404)).report_completion("t1", "failed", error="x")


class _FakeRelay:
    """Stands in for ``TaskRelayClient`` inside worker tests."""

    endpoint = ENDPOINT

    def __init__(self, tasks: list) -> None:
        self.tasks = list(tasks)
        self.reports: list[tuple] = []

    async def wait_for_task(self):
        item = self.tasks.pop(0) if self.tasks else None
        if isinstance(item, Exception):
            raise item
        return extract_task(item) if item is not None else None

    async def report_completion(self, task_id, status, summary="", error=""):
        self.reports.append((task_id, status, summary, error))


def _runner(outcome):
    goals: list[str] = []

    async def run_goal(goal: str) -> RunResult:
        goals.append(goal)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return run_goal, goals


class TestRelayWorker:
    @pytest.mark.anyio
    async def test_completed_run_reported_with_summary(self) -> None:
        relay = _FakeRelay([{"id": "t1", "goal": "Book a table"}])
        run_goal, goals = _runner(
            RunResult(status=RunStatus.COMPLETED, result=DoneResult(summary="Booked for 7pm"))
        )
        assert await RelayWorker(relay, run_goal).run_once() == "completed"
        assert goals == ["Book a table"]
        assert relay.reports == [("t1", "completed", "Booked for 7pm", "")]

    @pytest.mark.anyio
    async def test_duplicate_task_skipped(self) -> None:
        relay = _FakeRelay([{"id": "t1", "goal": "g"}, {"id": "t1", "goal": "g"}])
        run_goal, goals = _runner(RunResult(status=RunStatus.COMPLETED))
        worker = RelayWorker(relay, run_goal)
        assert await worker.run_once() == "completed"
        assert await worker.run_once() == "duplicate"
        assert len(goals) == 1
        assert worker.last_task_id == "t1"

    @pytest.mark.anyio
    async def test_empty_poll(self) -> None:
        run_goal, goals = _runner(RunResult(status=RunStatus.COMPLETED))
        assert await RelayWorker(_FakeRelay([]), run_goal).run_once() == "empty"
        assert goals == []

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        ("outcome", "error"),
        [
            (RunResult(status=RunStatus.PAUSED_MAX_STEPS, message="Step budget of 12 reached"), "Step budget of 12 reached"),
            (RunResult(status=RunStatus.STOPPED), "Run ended as stopped"),
            (RunFailedError("Planner call failed"), "Planner call failed"),
            (RunAlreadyActiveError("s0"), "Agent run already in progress"),
            (RuntimeError("browser gone"), "Could not start run: browser gone"),
        ],
    )
    async def test_failures_reported(self, outcome, error) -> None:
        relay = _FakeRelay([{"id": "t5", "goal": "g"}])
        run_goal, _ = _runner(outcome)
        assert await RelayWorker(relay, run_goal).run_once() == "failed"
        task_id, status, summary, reported = relay.reports[0]
        assert (task_id, status, summary) == ("t5", "failed", "")
        assert reported.startswith(error)

    @pytest.mark.anyio
    async def test_listen_backs_off_on_relay_errors(self) -> None:
        relay = _FakeRelay([RelayError("bad gateway", 502), httpx.ConnectError("refused")])
        run_goal, _ = _runner(RunResult(status=RunStatus.COMPLETED))
        delays: list[float] = []
        worker: RelayWorker

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)
            if len(delays) == 2:
                worker.stop()

        worker = RelayWorker(relay, run_goal, error_backoff_sec=0.5, sleep=fake_sleep)
        await worker.listen()
        assert delays == [0.5, 0.5]

    @pytest.mark.anyio
    async def test_for_orchestrator_runs_new_mode(self) -> None:
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(return_value=RunResult(status=RunStatus.COMPLETED, message="ok"))
        relay = _FakeRelay([{"id": "t7", "goal": "Renew my library books"}])

        worker = RelayWorker.for_orchestrator(relay, orchestrator)

        assert await worker.run_once() == "completed"
        orchestrator.run.assert_awaited_once_with("Renew my library books", RunMode.NEW)
        assert worker.error_backoff_sec == 2.0
        assert relay.reports == [("t7", "completed", "ok", "")]

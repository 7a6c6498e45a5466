"""Remote task relay.

A paired device long-polls the relay for goals, runs each one locally and
posts a completion callback. ``TaskRelayClient`` speaks the HTTP side;
``RelayWorker`` is the listen loop that feeds goals to the orchestrator.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from tabpilot.exceptions import RelayError, RunAlreadyActiveError, RunFailedError
from tabpilot.models.runtime import RunResult
from tabpilot.models.states import RunMode, RunStatus

logger = logging.getLogger(__name__)

DEVICE_HEADER = "X-TabPilot-Device"


@dataclass
class RelayTask:
    """A goal delivered by the relay."""

    task_id: str
    goal: str
    raw: dict[str, Any]


def extract_task(payload: Any) -> RelayTask | None:
    """Pull a task out of a ``{task: {...}}`` or top-level payload.

    Returns ``None`` when the payload carries no usable goal.
    """
    if not isinstance(payload, dict):
        return None
    body = payload.get("task") if isinstance(payload.get("task"), dict) else payload
    goal = str(body.get("goal") or body.get("prompt") or body.get("task_prompt") or "").strip()
    if not goal:
        return None
    task_id = str(body.get("id") or body.get("task_id") or body.get("taskId") or "").strip()
    return RelayTask(task_id=task_id, goal=goal, raw=body)


class TaskRelayClient:
    """Async HTTP client for the task relay.

    Args:
        endpoint: Relay base URL (``.../wait-task`` and ``.../tasks/{id}/...`` hang off it).
        device_id: Identifier of this paired device.
        auth_token: Bearer token issued at pairing.
        wait_ms: Long-poll window requested from the relay.
        client: Optional pre-built ``httpx.AsyncClient`` (tests pass one with a mock transport).
    """

    def __init__(
        self,
        endpoint: str,
        *,
        device_id: str = "",
        auth_token: str = "",
        wait_ms: int = 25_000,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("Relay endpoint is not configured (relay.endpoint)")
        self.endpoint = endpoint.rstrip("/")
        self.device_id = device_id
        self.wait_ms = wait_ms
        headers = {"Accept": "application/json"}
        if device_id:
            headers[DEVICE_HEADER] = device_id
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        # Leave headroom over the long-poll window before timing out.
        timeout = httpx.Timeout(wait_ms / 1000 + 15, connect=10)
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers

    @classmethod
    def from_settings(cls) -> "TaskRelayClient":
        from tabpilot.settings import get_settings

        relay = get_settings().relay
        return cls(relay.endpoint, device_id=relay.device_id, auth_token=relay.auth_token, wait_ms=relay.wait_ms)

    async def wait_for_task(self) -> RelayTask | None:
        """Long-poll for the next task. Returns ``None`` when the window closes empty.

        Raises:
            RelayError: Non-success status or a body that is not JSON.
        """
        resp = await self._client.get(
            f"{self.endpoint}/wait-task",
            params={"waitMs": self.wait_ms},
            headers=self._headers,
        )
        if resp.status_code == 204:
            return None
        if resp.status_code >= 400:
            raise RelayError(f"wait-task returned {resp.status_code}: {resp.text[:200]}", resp.status_code)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise RelayError("wait-task response was not JSON", resp.status_code) from exc
        task = extract_task(payload)
        if task is None:
            logger.info("Relay payload carried no usable goal")
        return task

    async def report_completion(self, task_id: str, status: str, summary: str = "", error: str = "") -> None:
        """Post the completion callback for ``task_id``.

        Raises:
            RelayError: The relay rejected the callback.
        """
        if status not in ("completed", "failed"):
            raise ValueError(f"status must be 'completed' or 'failed', got {status!r}")
        resp = await self._client.post(
            f"{self.endpoint}/tasks/{task_id}/local-agent-complete",
            json={"status": status, "summary": summary, "error": error},
            headers=self._headers,
        )
        if resp.status_code >= 400:
            raise RelayError(
                f"Completion callback for {task_id} returned {resp.status_code}: {resp.text[:200]}",
                resp.status_code,
            )
        logger.info("Reported task %s as %s", task_id, status)

    async def aclose(self) -> None:
        await self._client.aclose()


RunGoal = Callable[[str], Awaitable[RunResult]]


class RelayWorker:
    """Listen loop: wait for a task, run it, report the outcome.

    Args:
        client: Relay HTTP client.
        run_goal: Coroutine that runs a goal in ``new`` mode without plan approval.
        error_backoff_sec: Pause after a relay or run-start error.
        sleep: Awaitable sleep (injected by tests).
    """

    def __init__(
        self,
        client: TaskRelayClient,
        run_goal: RunGoal,
        *,
        error_backoff_sec: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._client = client
        self._run_goal = run_goal
        self.error_backoff_sec = error_backoff_sec
        self._sleep = sleep or asyncio.sleep
        self.last_task_id = ""
        self._stopped = False

    @classmethod
    def for_orchestrator(cls, client: TaskRelayClient, orchestrator: Any) -> "RelayWorker":
        """Bind a worker to ``orchestrator.run`` in ``new`` mode."""
        from tabpilot.settings import get_settings

        async def run_goal(goal: str) -> RunResult:
            return await orchestrator.run(goal, RunMode.NEW)

        return cls(client, run_goal, error_backoff_sec=get_settings().relay.error_backoff_sec)

    def stop(self) -> None:
        self._stopped = True

    async def run_once(self) -> str:
        """Handle one long-poll round.

        Returns a short outcome label: ``empty``, ``duplicate``, ``completed`` or ``failed``.
        """
        task = await self._client.wait_for_task()
        if task is None:
            return "empty"
        if task.task_id and task.task_id == self.last_task_id:
            logger.debug("Skipping duplicate relay task %s", task.task_id)
            return "duplicate"
        if task.task_id:
            self.last_task_id = task.task_id

        logger.info("Relay task %s: %s", task.task_id or "?", task.goal[:120])
        status, summary, error = await self._run(task)
        if task.task_id:
            await self._client.report_completion(task.task_id, status, summary=summary, error=error)
        return status

    async def _run(self, task: RelayTask) -> tuple[str, str, str]:
        try:
            result = await self._run_goal(task.goal)
        except RunAlreadyActiveError as exc:
            return "failed", "", str(exc)
        except RunFailedError as exc:
            return "failed", "", exc.last_error
        except Exception as exc:
            logger.exception("Relay task %s could not run", task.task_id or "?")
            return "failed", "", f"Could not start run: {exc}"

        if result.status == RunStatus.COMPLETED:
            return "completed", result.result.summary if result.result else result.message, ""
        error = result.error or result.message or f"Run ended as {result.status.value}"
        return "failed", "", error

    async def listen(self) -> None:
        """Loop until ``stop()`` is called."""
        logger.info("Listening for relay tasks at %s", self._client.endpoint)
        while not self._stopped:
            try:
                await self.run_once()
            except (httpx.HTTPError, RelayError) as exc:
                logger.warning("Relay error: %s; retrying in %.1fs", exc, self.error_backoff_sec)
                await self._sleep(self.error_backoff_sec)

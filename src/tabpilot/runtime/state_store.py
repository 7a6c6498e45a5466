"""Runtime state store.

Owns the single ``RuntimeState`` record. The orchestrator is its only
writer; UIs read snapshots or subscribe through the ``EventBus``. Every
mutation is persisted to the key-value store and then broadcast.
Broadcast failures are logged and swallowed.

The run slot (``is_running``) is taken with ``try_acquire``, an atomic
compare-and-swap under a lock, so two entry points (HTTP, relay worker,
CLI) cannot both start a run.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from tabpilot.exceptions import RunAlreadyActiveError
from tabpilot.models.runtime import LogEntry, LogKind, RunSession, RuntimeState
from tabpilot.models.states import RunStatus, TERMINAL_STATES, is_allowed_transition
from tabpilot.monitoring.event_bus import EventBus, EventType
from tabpilot.store.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

RUNTIME_KEY = "runtime_state"
SESSION_KEY = "run_session"
CANCEL_KEY = "cancel_request"

DEFAULT_LOG_CAPACITY = 200


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RuntimeStateStore:
    """Single-slot runtime state with persistence and broadcast.

    Args:
        kv: Durable key-value storage.
        bus: Event bus for ``runtime_update`` broadcasts (optional).
        log_capacity: Size of the log ring buffer.
        recover_interrupted: Treat a persisted running state as a crashed run
            and mark it failed. Observers in another process (CLI ``status``,
            ``stop``) pass False so they see the live run as it is.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        bus: EventBus | None = None,
        *,
        log_capacity: int = DEFAULT_LOG_CAPACITY,
        recover_interrupted: bool = True,
    ) -> None:
        self._kv = kv
        self._bus = bus
        self._lock = threading.Lock()
        self._state = RuntimeState()
        self._logs: deque[LogEntry] = deque(maxlen=log_capacity)
        self._load(recover_interrupted)

    @property
    def bus(self) -> EventBus | None:
        return self._bus

    # ------------------------------------------------------------------
    # Loading / persistence
    # ------------------------------------------------------------------

    def _load(self, recover_interrupted: bool) -> None:
        raw = self._kv.get(RUNTIME_KEY)
        if not raw:
            return
        try:
            state = RuntimeState.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable persisted runtime state: %s", exc)
            return
        self._logs.extend(state.logs)
        state.logs = []
        if state.is_running and recover_interrupted:
            # A previous process died mid-run.
            state.is_running = False
            state.cancel_requested = False
            state.status = RunStatus.FAILED
            state.ended_at = state.ended_at or _utcnow()
            state.last_error = state.last_error or "Run interrupted: agent process exited while running."
            logger.warning("Recovered interrupted run %s as failed", state.session_id or "?")
        self._state = state

    def _dump(self) -> dict[str, Any]:
        state = self._state.model_copy(update={"logs": list(self._logs)})
        return state.model_dump(mode="json")

    async def publish(self) -> None:
        """Persist the current state, then broadcast it."""
        with self._lock:
            payload = self._dump()
        try:
            self._kv.set(RUNTIME_KEY, payload)
        except Exception as exc:
            logger.warning("Failed to persist runtime state: %s", exc)
        if self._bus is None:
            return
        try:
            await self._bus.emit(EventType.RUNTIME_UPDATE, payload, session_id=payload.get("session_id", ""))
        except Exception as exc:
            logger.debug("Runtime broadcast failed: %s", exc)

    async def _emit_log(self, entry: LogEntry) -> None:
        if self._bus is None:
            return
        try:
            await self._bus.emit(EventType.LOG, entry.model_dump(mode="json"), session_id=self._state.session_id)
        except Exception as exc:
            logger.debug("Log broadcast failed: %s", exc)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> RuntimeState:
        """Return a deep copy of the current state including logs."""
        with self._lock:
            return self._state.model_copy(update={"logs": list(self._logs)}, deep=True)

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def status(self) -> RunStatus:
        return self._state.status

    @property
    def cancel_requested(self) -> bool:
        return self._state.cancel_requested

    # ------------------------------------------------------------------
    # Run slot
    # ------------------------------------------------------------------

    def try_acquire(self, *, goal: str, session_id: str, tab_id: str = "", tab_group_id: str = "") -> bool:
        """Atomically claim the run slot.

        Returns False, leaving the state untouched, if a run is active.
        """
        with self._lock:
            if self._state.is_running:
                return False
            self._state = self._state.model_copy(
                update={
                    "is_running": True,
                    "cancel_requested": False,
                    "session_id": session_id,
                    "tab_id": tab_id,
                    "tab_group_id": tab_group_id,
                    "goal": goal,
                    "status": RunStatus.STARTING_RUN,
                    "started_at": _utcnow(),
                    "ended_at": None,
                    "last_error": "",
                    "last_result": None,
                    "pending_plan": None,
                }
            )
        return True

    async def acquire(self, *, goal: str, session_id: str, tab_id: str = "", tab_group_id: str = "") -> None:
        """``try_acquire`` that raises and publishes.

        Raises:
            RunAlreadyActiveError: Another run holds the slot.
        """
        if not self.try_acquire(goal=goal, session_id=session_id, tab_id=tab_id, tab_group_id=tab_group_id):
            raise RunAlreadyActiveError(self._state.session_id)
        self._kv.delete(CANCEL_KEY)
        await self.publish()

    async def release(
        self,
        status: RunStatus,
        *,
        last_error: str = "",
        last_result: dict[str, Any] | None = None,
    ) -> None:
        """Free the run slot with a terminal ``status``."""
        if status not in TERMINAL_STATES:
            raise ValueError(f"release() needs a terminal status, got {status.value}")
        with self._lock:
            self._state = self._state.model_copy(
                update={
                    "is_running": False,
                    "status": status,
                    "ended_at": _utcnow(),
                    "last_error": last_error,
                    "last_result": last_result,
                }
            )
        await self.publish()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def update(self, **fields: Any) -> None:
        """Merge ``fields`` into the state and publish."""
        unknown = set(fields) - set(RuntimeState.model_fields)
        if unknown or "logs" in fields:
            raise ValueError(f"Cannot update runtime fields: {sorted(unknown | ({'logs'} & set(fields)))}")
        with self._lock:
            new_status = fields.get("status")
            if new_status is not None and not is_allowed_transition(self._state.status, new_status):
                logger.debug("Non-standard transition: %s -> %s", self._state.status.value, new_status.value)
            self._state = self._state.model_copy(update=fields)
        await self.publish()

    async def set_status(self, status: RunStatus) -> None:
        """Shorthand for ``update(status=...)``."""
        await self.update(status=status)

    async def log(self, kind: LogKind, message: str, data: dict[str, Any] | None = None) -> LogEntry:
        """Append to the log ring buffer (oldest evicted) and publish.

        The entry is also broadcast on its own as a ``log`` event.
        """
        entry = LogEntry(kind=kind, message=message, data=data or {})
        with self._lock:
            self._logs.append(entry)
        logger.debug("[%s] %s", kind.value, message)
        await self.publish()
        await self._emit_log(entry)
        return entry

    async def request_cancel(self) -> bool:
        """Flag the active run for cancellation. Returns False if nothing is running."""
        with self._lock:
            if not self._state.is_running:
                return False
            self._state = self._state.model_copy(update={"cancel_requested": True})
        await self.publish()
        return True

    # ------------------------------------------------------------------
    # Cross-process stop requests
    # ------------------------------------------------------------------

    def write_cancel_request(self, session_id: str = "") -> None:
        """Record a stop request for a run owned by another process."""
        self._kv.set(CANCEL_KEY, {"session_id": session_id, "at": _utcnow().isoformat()})

    def take_cancel_request(self) -> bool:
        """Consume a stop request aimed at the active session (or any session)."""
        req = self._kv.get(CANCEL_KEY)
        if not req:
            return False
        target = req.get("session_id") or ""
        if target and target != self._state.session_id:
            return False
        self._kv.delete(CANCEL_KEY)
        return True

    # ------------------------------------------------------------------
    # Session record
    # ------------------------------------------------------------------

    def load_session(self) -> RunSession | None:
        """Return the persisted session used by ``continue`` runs."""
        raw = self._kv.get(SESSION_KEY)
        if not raw:
            return None
        try:
            return RunSession.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable session record: %s", exc)
            return None

    def save_session(self, session: RunSession) -> None:
        try:
            self._kv.set(SESSION_KEY, session.model_dump(mode="json"))
        except Exception as exc:
            logger.warning("Failed to persist session %s: %s", session.session_id, exc)

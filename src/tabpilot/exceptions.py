"""tabpilot exception hierarchy."""

from __future__ import annotations

from typing import Any


class TabPilotError(Exception):
    """Base exception for all tabpilot errors."""


class RunAlreadyActiveError(TabPilotError):
    """Raised when a run is requested while another run holds the run slot.

    Attributes:
        session_id: Session id of the run that currently owns the slot.
    """

    def __init__(self, session_id: str = "") -> None:
        self.session_id = session_id
        super().__init__(
            f"Agent run already in progress (session {session_id or '?'}). Stop it before starting another."
        )


class NoPendingPlanError(TabPilotError):
    """Raised when a plan approval arrives with no plan awaiting approval."""

    def __init__(self) -> None:
        super().__init__("No pending plan to approve.")


class RunCancelledError(TabPilotError):
    """Raised at a cancellation-aware suspension point once a stop was requested."""

    def __init__(self, message: str = "Run stopped by user.") -> None:
        super().__init__(message)


class ObservationError(TabPilotError):
    """Raised when the page inspection script cannot be run or returns garbage."""


class ModelResponseError(TabPilotError):
    """Raised when a model reply is empty, not JSON, or is missing required fields.

    Attributes:
        client: Which model client produced the bad reply (planner, plan, done_checker).
        raw: The raw reply text, truncated.
    """

    def __init__(self, client: str, message: str, raw: str = "") -> None:
        self.client = client
        self.raw = raw[:500]
        super().__init__(f"{client}: {message}")


class ActionValidationError(TabPilotError):
    """Raised when an action has an unsupported type or is missing required fields."""


class RunFailedError(TabPilotError):
    """Raised to the caller after a run has been finalized with status ``failed``.

    Attributes:
        last_error: The error recorded on the runtime state.
        state: Snapshot of the runtime state at failure time.
    """

    def __init__(self, last_error: str, state: Any = None) -> None:
        self.last_error = last_error
        self.state = state
        super().__init__(last_error)


class RelayError(TabPilotError):
    """Raised when the task relay answers with an unexpected status or payload.

    Attributes:
        status_code: HTTP status from the relay, when one was received.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)

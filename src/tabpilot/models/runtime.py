"""Runtime state, plans, logs and run results."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from tabpilot.models.action import DoneResult
from tabpilot.models.results import StepRecord
from tabpilot.models.states import RunMode, RunStatus

PLAN_MAX_STEPS = 12
PLAN_MAX_RISKS = 8
PLAN_MAX_CONFIRMATIONS = 8


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LogKind(str, Enum):
    """Categories of run-log entries."""

    USER = "user"
    PLAN = "plan"
    PLANNER = "planner"
    OBSERVATION = "observation"
    ACTION = "action"
    VERIFY = "verify"
    DONE = "done"
    SYSTEM = "system"
    ERROR = "error"


class LogEntry(BaseModel):
    """One entry of the runtime log ring buffer."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    at: datetime = Field(default_factory=_utcnow)
    kind: LogKind
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


class PlanStep(BaseModel):
    title: str
    details: str = ""


class PendingPlan(BaseModel):
    """Reviewable plan produced before any action executes."""

    created_at: datetime = Field(default_factory=_utcnow)
    goal: str
    summary: str = ""
    steps: list[PlanStep] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    requires_confirmation_before: list[str] = Field(default_factory=list)
    mode: RunMode = RunMode.NEW
    max_steps: int | None = None

    @field_validator("steps")
    @classmethod
    def _cap_steps(cls, v: list[PlanStep]) -> list[PlanStep]:
        return v[:PLAN_MAX_STEPS]

    @field_validator("risks")
    @classmethod
    def _cap_risks(cls, v: list[str]) -> list[str]:
        return v[:PLAN_MAX_RISKS]

    @field_validator("requires_confirmation_before")
    @classmethod
    def _cap_confirmations(cls, v: list[str]) -> list[str]:
        return v[:PLAN_MAX_CONFIRMATIONS]


class PlanEdit(BaseModel):
    """User edits applied to a pending plan at approval time."""

    summary: str | None = None
    steps: list[PlanStep] | None = None
    risks: list[str] | None = None
    requires_confirmation_before: list[str] | None = None


# ---------------------------------------------------------------------------
# Runtime state
# ---------------------------------------------------------------------------


class RuntimeState(BaseModel):
    """The single global run record observed by every UI."""

    is_running: bool = False
    cancel_requested: bool = False
    session_id: str = ""
    tab_id: str = ""
    tab_group_id: str = ""
    goal: str = ""
    step: int = 0
    status: RunStatus = RunStatus.IDLE
    started_at: datetime | None = None
    ended_at: datetime | None = None
    last_error: str = ""
    last_result: dict[str, Any] | None = None
    pending_plan: PendingPlan | None = None
    logs: list[LogEntry] = Field(default_factory=list)


class RunSession(BaseModel):
    """Tab binding and history of a session, kept for ``continue`` runs."""

    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    tab_id: str = ""
    tab_group_id: str = ""
    goal: str = ""
    step: int = 0
    history: list[StepRecord] = Field(default_factory=list)
    approved_plan: PendingPlan | None = None


class RunResult(BaseModel):
    """What a run returns to its caller."""

    status: RunStatus
    session_id: str = ""
    tab_id: str = ""
    step: int = 0
    result: DoneResult | None = None
    error: str = ""
    message: str = ""

    @property
    def completed(self) -> bool:
        return self.status == RunStatus.COMPLETED

"""Execution, verification and step-history records."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from tabpilot.models.action import Action


class ExecutionResult(BaseModel):
    """Outcome of applying one action to the tab.

    ``ok=False`` carries a machine-readable ``code`` plus a human message;
    executors never raise past their boundary, they return one of these.
    """

    ok: bool
    mode: str = ""
    code: str = ""
    message: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def success(cls, mode: str, message: str = "", **metadata: Any) -> "ExecutionResult":
        return cls(ok=True, mode=mode, message=message, metadata=metadata)

    @classmethod
    def failure(cls, code: str, message: str, **metadata: Any) -> "ExecutionResult":
        return cls(ok=False, code=code, message=message, metadata=metadata)


class VerificationCode(str, Enum):
    """Verifier verdicts."""

    OK = "OK"
    NO_NAVIGATION_CHANGE = "NO_NAVIGATION_CHANGE"
    WRONG_DESTINATION = "WRONG_DESTINATION"
    NO_PAGE_CHANGE = "NO_PAGE_CHANGE"
    WRONG_TARGET_KIND = "WRONG_TARGET_KIND"
    NO_VISIBLE_TEXT_CHANGE = "NO_VISIBLE_TEXT_CHANGE"


class VerificationResult(BaseModel):
    """Independent judgement of whether an action had its claimed effect."""

    ok: bool
    code: VerificationCode = VerificationCode.OK
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def accept(cls, message: str = "", **details: Any) -> "VerificationResult":
        return cls(ok=True, code=VerificationCode.OK, message=message, details=details)

    @classmethod
    def reject(cls, code: VerificationCode, message: str, **details: Any) -> "VerificationResult":
        return cls(ok=False, code=code, message=message, details=details)


class StepOutcome(str, Enum):
    """How a history entry ended."""

    OK = "ok"
    EXECUTION_FAILED = "execution_failed"
    VERIFICATION_REJECTED = "verification_rejected"
    DONE_REJECTED = "done_rejected"
    SKIPPED_REPEAT = "skipped_repeat"


FAILED_OUTCOMES = frozenset({StepOutcome.EXECUTION_FAILED, StepOutcome.VERIFICATION_REJECTED})


class StepRecord(BaseModel):
    """One entry of the append-only action history."""

    step: int
    action: Action
    fingerprint: str
    exec_result: ExecutionResult
    observed_url: str = ""
    outcome: StepOutcome = StepOutcome.OK
    verification: VerificationResult | None = None
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def failed(self) -> bool:
        return self.outcome in FAILED_OUTCOMES

    def to_prompt_dict(self) -> dict[str, Any]:
        """Compact history line for the planner and done checker."""
        entry: dict[str, Any] = {
            "step": self.step,
            "action": self.action.model_dump(mode="json", exclude={"reason"}),
            "outcome": self.outcome.value,
            "url": self.observed_url,
        }
        if not self.exec_result.ok:
            entry["error"] = self.exec_result.message
        if self.verification is not None and not self.verification.ok:
            entry["verification"] = f"{self.verification.code.value}: {self.verification.message}"
        return entry

"""Done checker: a second opinion gating every ``done`` claim.

``local_done_check`` is the fallback used when the model call fails. It
only requires a non-empty summary, which is a much weaker guarantee than
the model review; callers log every use of it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from tabpilot.agent.parsing import parse_json_object
from tabpilot.agent.prompts import DONE_CHECKER_SYSTEM_PROMPT
from tabpilot.exceptions import ModelResponseError
from tabpilot.llm.base import LLMProvider
from tabpilot.models.action import DoneResult
from tabpilot.models.observation import Observation
from tabpilot.models.results import StepRecord

logger = logging.getLogger(__name__)

CLIENT_NAME = "done_checker"
RECENT_ACTIONS = 8


@dataclass
class DoneVerdict:
    """Outcome of a done check."""

    accept: bool
    reason: str = ""
    guidance: str = ""
    fallback: bool = False


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def local_done_check(result: DoneResult) -> DoneVerdict:
    """Fallback validator: accept only a non-empty summary."""
    if (result.summary or "").strip():
        return DoneVerdict(accept=True, reason="Local check: summary present.", fallback=True)
    return DoneVerdict(
        accept=False,
        reason="Local check: done claim has no summary.",
        guidance="Describe what was achieved and the evidence on the page before claiming done.",
        fallback=True,
    )


class DoneCheckerClient:
    """Stateless adapter asking the model to accept or reject a done claim."""

    def __init__(
        self,
        provider: LLMProvider,
        temperature: float = 0.0,
        max_tokens: int | None = None,
        recent_actions: int = RECENT_ACTIONS,
    ) -> None:
        self._provider = provider
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.recent_actions = recent_actions

    @classmethod
    def from_settings(cls, provider: LLMProvider) -> "DoneCheckerClient":
        from tabpilot.settings import get_settings

        settings = get_settings()
        return cls(
            provider,
            temperature=settings.llm.done_checker_temperature,
            max_tokens=settings.llm.max_tokens,
            recent_actions=settings.agent.done_checker_recent,
        )

    async def check(
        self,
        *,
        goal: str,
        done_result: DoneResult,
        observation_before: Observation,
        observation_at_done: Observation,
        history: list[StepRecord],
    ) -> DoneVerdict:
        """Review a done claim.

        Raises:
            ModelResponseError: Empty or non-JSON reply, or no boolean ``accept``.
        """
        recent = history[-self.recent_actions :] if self.recent_actions > 0 else []
        context = {
            "goal": goal,
            "doneResult": done_result.model_dump(),
            "observationBeforeDone": observation_before.to_prompt_dict(),
            "observationAtDone": observation_at_done.to_prompt_dict(),
            "recentActions": [r.to_prompt_dict() for r in recent],
        }
        messages = [
            {"role": "system", "content": DONE_CHECKER_SYSTEM_PROMPT},
            {"role": "user", "content": json.dumps(context, ensure_ascii=False, default=str)},
        ]
        result = await self._provider.chat(
            messages, temperature=self.temperature, max_tokens=self.max_tokens, json_mode=True
        )
        data = parse_json_object(result.content, CLIENT_NAME)
        accept = _as_bool(data.get("accept"))
        if accept is None:
            raise ModelResponseError(CLIENT_NAME, "response has no boolean 'accept' field", result.content)
        verdict = DoneVerdict(
            accept=accept,
            reason=str(data.get("reason") or "").strip(),
            guidance=str(data.get("guidance") or "").strip(),
        )
        logger.info("Done check: accept=%s reason=%s", verdict.accept, verdict.reason[:120])
        return verdict

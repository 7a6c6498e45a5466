"""Plan generator client: produces a reviewable plan before any action runs."""

from __future__ import annotations

import json
import logging
from typing import Any

from tabpilot.agent.parsing import parse_json_object, string_list
from tabpilot.agent.prompts import PLAN_SYSTEM_PROMPT
from tabpilot.exceptions import ModelResponseError
from tabpilot.llm.base import LLMProvider
from tabpilot.models.observation import Observation
from tabpilot.models.runtime import (
    PLAN_MAX_CONFIRMATIONS,
    PLAN_MAX_RISKS,
    PLAN_MAX_STEPS,
    PendingPlan,
    PlanStep,
)

logger = logging.getLogger(__name__)

CLIENT_NAME = "plan_generator"


def _plan_steps(value: Any) -> list[PlanStep]:
    if not isinstance(value, list):
        return []
    steps: list[PlanStep] = []
    for item in value:
        if isinstance(item, str) and item.strip():
            steps.append(PlanStep(title=item.strip()))
        elif isinstance(item, dict):
            title = str(item.get("title") or item.get("step") or "").strip()
            details = str(item.get("details") or item.get("description") or "").strip()
            if title or details:
                steps.append(PlanStep(title=title or details[:80], details=details))
        if len(steps) >= PLAN_MAX_STEPS:
            break
    return steps


class PlanGeneratorClient:
    """Stateless adapter from goal + observation to a ``PendingPlan``."""

    def __init__(self, provider: LLMProvider, temperature: float = 0.2, max_tokens: int | None = None) -> None:
        self._provider = provider
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, provider: LLMProvider) -> "PlanGeneratorClient":
        from tabpilot.settings import get_settings

        llm = get_settings().llm
        return cls(provider, temperature=llm.plan_temperature, max_tokens=llm.max_tokens)

    async def generate(self, *, goal: str, observation: Observation) -> PendingPlan:
        """Generate a plan for ``goal``.

        Raises:
            ModelResponseError: Empty or non-JSON reply, or a reply with neither summary nor steps.
        """
        messages = [
            {"role": "system", "content": PLAN_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": json.dumps(
                    {"goal": goal, "observation": observation.to_prompt_dict()}, ensure_ascii=False, default=str
                ),
            },
        ]
        result = await self._provider.chat(
            messages, temperature=self.temperature, max_tokens=self.max_tokens, json_mode=True
        )
        data = parse_json_object(result.content, CLIENT_NAME)

        summary = str(data.get("summary") or "").strip()
        steps = _plan_steps(data.get("steps"))
        if not summary and not steps:
            raise ModelResponseError(CLIENT_NAME, "plan has neither 'summary' nor 'steps'", result.content)

        plan = PendingPlan(
            goal=goal,
            summary=summary,
            steps=steps,
            risks=string_list(data.get("risks"), PLAN_MAX_RISKS),
            requires_confirmation_before=string_list(data.get("requires_confirmation_before"), PLAN_MAX_CONFIRMATIONS),
        )
        logger.info("Generated plan: %d step(s), %d risk(s)", len(plan.steps), len(plan.risks))
        return plan

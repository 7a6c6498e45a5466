"""Planner client: asks the model for exactly one next action."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from tabpilot.agent.parsing import parse_json_object
from tabpilot.agent.prompts import PLANNER_SYSTEM_PROMPT
from tabpilot.exceptions import ActionValidationError, ModelResponseError
from tabpilot.llm.base import LLMProvider
from tabpilot.models.action import Action, parse_action
from tabpilot.models.observation import Observation
from tabpilot.models.results import StepRecord
from tabpilot.models.runtime import PendingPlan

logger = logging.getLogger(__name__)

CLIENT_NAME = "planner"


@dataclass
class PlannerDecision:
    """Parsed planner reply with token tracking."""

    action: Action
    thought: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: float = 0.0


class PlannerClient:
    """Stateless adapter from run context to one ``Action``.

    Args:
        provider: Chat-completion provider.
        temperature: Sampling temperature (0.2 by default).
        max_tokens: Max generation tokens per call.
    """

    def __init__(self, provider: LLMProvider, temperature: float = 0.2, max_tokens: int | None = None) -> None:
        self._provider = provider
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, provider: LLMProvider) -> "PlannerClient":
        from tabpilot.settings import get_settings

        llm = get_settings().llm
        return cls(provider, temperature=llm.planner_temperature, max_tokens=llm.max_tokens)

    async def next_action(
        self,
        *,
        goal: str,
        step: int,
        observation: Observation,
        history: list[StepRecord],
        feedback: str = "",
        plan: PendingPlan | None = None,
    ) -> PlannerDecision:
        """Ask the model for the next action.

        Raises:
            ModelResponseError: Empty, non-JSON or invalid action reply.
        """
        messages = self.build_messages(
            goal=goal, step=step, observation=observation, history=history, feedback=feedback, plan=plan
        )
        result = await self._provider.chat(
            messages, temperature=self.temperature, max_tokens=self.max_tokens, json_mode=True
        )
        data = parse_json_object(result.content, CLIENT_NAME)
        raw_action = data.get("action")
        if raw_action is None and "type" in data:
            raw_action = data
        if raw_action is None:
            raise ModelResponseError(CLIENT_NAME, "response has no 'action' field", result.content)
        try:
            action = parse_action(raw_action)
        except ActionValidationError as exc:
            raise ModelResponseError(CLIENT_NAME, str(exc), result.content) from exc

        thought = str(data.get("thought") or data.get("reasoning") or "")
        logger.info("Planner step %d -> %s (%d in / %d out tokens)", step, action.type, result.input_tokens, result.output_tokens)
        return PlannerDecision(
            action=action,
            thought=thought,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            latency_ms=result.latency_ms,
        )

    @staticmethod
    def build_messages(
        *,
        goal: str,
        step: int,
        observation: Observation,
        history: list[StepRecord],
        feedback: str = "",
        plan: PendingPlan | None = None,
    ) -> list[dict[str, str]]:
        """Assemble the chat message list."""
        context: dict = {
            "goal": goal,
            "step": step,
            "previousActions": [record.to_prompt_dict() for record in history],
            "observation": observation.to_prompt_dict(),
        }
        if plan is not None:
            context["approvedPlan"] = {
                "summary": plan.summary,
                "steps": [s.title + (f": {s.details}" if s.details else "") for s in plan.steps],
            }
        if feedback:
            context["plannerFeedback"] = feedback
        return [
            {"role": "system", "content": PLANNER_SYSTEM_PROMPT},
            {"role": "user", "content": json.dumps(context, ensure_ascii=False, default=str)},
        ]

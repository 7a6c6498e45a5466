"""Abstract chat-completion provider interface."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field


@dataclass
class LLMResult:
    """Unified result from any provider call."""

    content: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: float = 0.0
    model: str = ""
    raw_response: dict = field(default_factory=dict)


class LLMProvider(abc.ABC):
    """Abstract interface for async chat completions."""

    @abc.abstractmethod
    async def chat(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResult:
        """Send a chat completion request and return the result.

        Args:
            messages: Chat messages in ``[{"role": ..., "content": ...}]`` format.
            temperature: Override sampling temperature.
            max_tokens: Override max generation tokens.
            json_mode: Force a JSON-object response.

        Returns:
            An ``LLMResult`` with the generated text and token metrics.
        """

    async def aclose(self) -> None:
        """Release network resources. Override if needed."""

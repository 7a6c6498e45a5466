"""OpenAI-compatible chat-completion provider.

Works with any endpoint that accepts the ``/chat/completions`` request
shape (OpenAI, Azure-style gateways, vLLM, LM Studio, Ollama's OpenAI
compatibility layer) and bearer-token auth.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from tabpilot.llm.base import LLMProvider, LLMResult

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(LLMProvider):
    """Provider backed by an OpenAI-compatible HTTP endpoint.

    Args:
        base_url: API root, e.g. ``https://api.openai.com/v1``.
        api_key: Bearer token; omitted from headers when empty.
        model: Model name sent with every request.
        temperature: Default sampling temperature.
        max_tokens: Default max generation tokens.
        timeout: Request timeout in seconds.
        client: Pre-built ``httpx.AsyncClient`` (tests pass one with a mock transport).
    """

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        api_key: str = "",
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        max_tokens: int = 1200,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers

    async def chat(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResult:
        """POST to ``/chat/completions`` and return the first choice."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature if temperature is not None else self.temperature,
            "max_tokens": max_tokens if max_tokens is not None else self.max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        start = time.monotonic()
        try:
            resp = await self._client.post(f"{self.base_url}/chat/completions", json=payload, headers=self._headers)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("Model endpoint HTTP error: %s %s", e.response.status_code, e.response.text[:500])
            raise
        except httpx.ConnectError:
            logger.error("Cannot connect to model endpoint at %s", self.base_url)
            raise

        latency_ms = (time.monotonic() - start) * 1000
        choices = body.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or ""
        usage = body.get("usage") or {}

        logger.debug(
            "chat model=%s latency=%.0fms tokens=%s/%s",
            self.model,
            latency_ms,
            usage.get("prompt_tokens", 0),
            usage.get("completion_tokens", 0),
        )
        return LLMResult(
            content=content,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            latency_ms=latency_ms,
            model=body.get("model", self.model),
            raw_response=body,
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

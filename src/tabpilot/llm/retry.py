"""Retrying provider wrapper.

Wraps any ``LLMProvider`` with exponential-backoff retry so that transient
network and rate-limit errors do not end a run. Non-transient errors
(bad request, auth failures, cancellation) propagate immediately.

Usage::

    from tabpilot.llm.factory import create_llm_provider
    from tabpilot.llm.retry import RetryingLLMProvider

    base = create_llm_provider()
    resilient = RetryingLLMProvider(base, max_retries=3, base_delay=1.0)
    result = await resilient.chat(messages)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from tabpilot.llm.base import LLMProvider, LLMResult

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


def _is_retryable(exc: Exception) -> bool:
    """Return True if *exc* looks like a transient error worth retrying."""
    if isinstance(exc, (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError, httpx.ReadError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS
    return False


class RetryingLLMProvider(LLMProvider):
    """Transparent retry wrapper around any ``LLMProvider``.

    Args:
        delegate: The actual provider to delegate calls to.
        max_retries: Number of retry attempts (0 = pass through).
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Cap on the backoff delay.
        sleep: Awaitable sleep used between attempts.
    """

    def __init__(
        self,
        delegate: LLMProvider,
        *,
        max_retries: int = 2,
        base_delay: float = 1.0,
        max_delay: float = 20.0,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._delegate = delegate
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._sleep = sleep or asyncio.sleep

    @property
    def delegate(self) -> LLMProvider:
        return self._delegate

    async def chat(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResult:
        """Send a chat completion request with retry on transient errors."""
        for attempt in range(1, self._max_retries + 2):  # attempt 1 = initial call
            try:
                return await self._delegate.chat(
                    messages, temperature=temperature, max_tokens=max_tokens, json_mode=json_mode
                )
            except Exception as exc:
                if attempt > self._max_retries or not _is_retryable(exc):
                    raise
                delay = min(self._base_delay * (2 ** (attempt - 1)), self._max_delay)
                logger.warning(
                    "Model call failed (attempt %d/%d): %s, retrying in %.1fs",
                    attempt,
                    self._max_retries + 1,
                    type(exc).__name__,
                    delay,
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")

    async def aclose(self) -> None:
        """Delegate cleanup."""
        await self._delegate.aclose()

"""Factory for creating provider instances from tabpilot settings."""

from __future__ import annotations

import logging

from tabpilot.llm.base import LLMProvider

logger = logging.getLogger(__name__)


def create_llm_provider(provider: str | None = None) -> LLMProvider:
    """Create a provider from settings or an explicit provider name.

    The returned provider is wrapped with ``RetryingLLMProvider``.

    Args:
        provider: Override provider name. If None, reads ``llm.provider``.

    Returns:
        A configured ``LLMProvider`` instance (with retry wrapper).

    Raises:
        ValueError: If the provider name is not recognized.
    """
    from tabpilot.settings import get_settings

    settings = get_settings()
    provider_name = (provider or settings.llm.provider).lower().strip()

    base: LLMProvider
    if provider_name in ("openai", "openai_compatible"):
        from tabpilot.llm.openai_provider import OpenAICompatibleProvider

        base = OpenAICompatibleProvider(
            base_url=settings.llm.base_url,
            api_key=settings.llm.api_key,
            model=settings.llm.model,
            max_tokens=settings.llm.max_tokens,
            timeout=settings.llm.timeout_sec,
        )
    else:
        raise ValueError(f"Unknown LLM provider: {provider_name!r}. Supported: openai")

    if not settings.llm.api_key:
        logger.warning("llm.api_key is empty; requests will be sent without a bearer token")
    logger.info("Created LLM provider: provider=%s model=%s", provider_name, settings.llm.model)

    from tabpilot.llm.retry import RetryingLLMProvider

    return RetryingLLMProvider(
        base, max_retries=settings.llm.max_retries, base_delay=settings.llm.retry_base_delay
    )

"""Helpers for turning model replies into JSON objects."""

from __future__ import annotations

import json
import logging
from typing import Any

from tabpilot.exceptions import ModelResponseError

logger = logging.getLogger(__name__)


def strip_code_fences(content: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```), if any."""
    content = (content or "").strip()
    if content.startswith("```"):
        # Remove opening fence (```json or ```)
        content = content.split("\n", 1)[-1] if "\n" in content else content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


def parse_json_object(content: str, client: str) -> dict[str, Any]:
    """Parse a model reply into a JSON object.

    Args:
        content: Raw reply text.
        client: Name of the calling client, used in error messages.

    Raises:
        ModelResponseError: Empty reply, invalid JSON, or JSON that is not an object.
    """
    text = strip_code_fences(content)
    if not text:
        raise ModelResponseError(client, "empty model response")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Some models wrap the object in prose; take the outermost braces.
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            logger.warning("%s: reply is not JSON: %s", client, text[:200])
            raise ModelResponseError(client, "model response is not valid JSON", text)
        try:
            data = json.loads(text[start : end + 1])
        except json.JSONDecodeError as exc:
            logger.warning("%s: reply is not JSON: %s", client, text[:200])
            raise ModelResponseError(client, f"model response is not valid JSON ({exc.msg})", text) from exc
    if not isinstance(data, dict):
        raise ModelResponseError(client, f"expected a JSON object, got {type(data).__name__}", text)
    return data


def string_list(value: Any, limit: int) -> list[str]:
    """Coerce a model-provided list into at most ``limit`` non-empty strings."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    out = [str(v).strip() for v in value if v is not None and str(v).strip()]
    return out[:limit]

"""Action vocabulary for the browser agent.

The planner returns exactly one of these per planning call. The set is
closed: ``Action`` is a tagged union discriminated on ``type`` and every
consumer matches it exhaustively.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal, Union
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from tabpilot.exceptions import ActionValidationError

WAIT_MIN_MS = 100
WAIT_MAX_MS = 10_000


class _ActionBase(BaseModel):
    """Fields shared by every action variant."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    reason: str = ""


class OpenUrl(_ActionBase):
    type: Literal["open_url"] = "open_url"
    url: str = Field(min_length=1)


class ClickText(_ActionBase):
    type: Literal["click_text"] = "click_text"
    text: str = Field(min_length=1)


class ClickSelector(_ActionBase):
    type: Literal["click_selector"] = "click_selector"
    selector: str = Field(min_length=1)


class TypeSelector(_ActionBase):
    type: Literal["type_selector"] = "type_selector"
    selector: str = ""
    text: str

    @field_validator("selector", mode="before")
    @classmethod
    def _none_selector(cls, v: Any) -> Any:
        return "" if v is None else v


class CloseModal(_ActionBase):
    type: Literal["close_modal"] = "close_modal"


class Wait(_ActionBase):
    type: Literal["wait"] = "wait"
    ms: int = 1000

    @field_validator("ms", mode="before")
    @classmethod
    def _clamp_ms(cls, v: Any) -> int:
        """Clamp the wait into ``[100, 10000]`` ms."""
        try:
            value = int(float(v))
        except (TypeError, ValueError):
            value = 1000
        return max(WAIT_MIN_MS, min(WAIT_MAX_MS, value))


class DoneResult(BaseModel):
    """Result payload attached to a ``done`` claim."""

    model_config = ConfigDict(extra="allow")

    summary: str = ""
    blocked: bool = False


class Done(_ActionBase):
    type: Literal["done"] = "done"
    result: DoneResult = Field(default_factory=DoneResult)

    @field_validator("result", mode="before")
    @classmethod
    def _coerce_result(cls, v: Any) -> Any:
        # Models often answer with a bare string summary.
        if v is None:
            return {}
        if isinstance(v, str):
            return {"summary": v}
        return v


Action = Annotated[
    Union[OpenUrl, ClickText, ClickSelector, TypeSelector, CloseModal, Wait, Done],
    Field(discriminator="type"),
]

ACTION_TYPES: tuple[str, ...] = (
    "open_url",
    "click_text",
    "click_selector",
    "type_selector",
    "close_modal",
    "wait",
    "done",
)

_ACTION_ADAPTER: TypeAdapter[Action] = TypeAdapter(Action)


def parse_action(data: Any) -> Action:
    """Validate a raw dict into an ``Action`` variant.

    Raises:
        ActionValidationError: Unsupported ``type`` or missing required fields.
    """
    if not isinstance(data, dict):
        raise ActionValidationError(f"Action must be an object, got {type(data).__name__}")
    action_type = str(data.get("type") or "").strip()
    if action_type not in ACTION_TYPES:
        raise ActionValidationError(
            f"Unsupported action type {action_type!r}; expected one of {', '.join(ACTION_TYPES)}"
        )
    try:
        return _ACTION_ADAPTER.validate_python({**data, "type": action_type})
    except ValidationError as exc:
        missing = [".".join(str(p) for p in err["loc"][1:]) or "?" for err in exc.errors()]
        raise ActionValidationError(
            f"Invalid {action_type} action: bad or missing field(s) {', '.join(missing)}"
        ) from exc


def action_to_dict(action: Action) -> dict[str, Any]:
    """Serialize an action for logs and prompts (``reason`` omitted when empty)."""
    data = action.model_dump(mode="json")
    if not data.get("reason"):
        data.pop("reason", None)
    return data


# ---------------------------------------------------------------------------
# Fingerprinting
# ---------------------------------------------------------------------------

_WS_RE = re.compile(r"\s+")


def _norm_text(value: str) -> str:
    return _WS_RE.sub(" ", value).strip().lower()


def _norm_url(value: str) -> str:
    raw = value.strip()
    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw.lower()
    if not parts.scheme or not parts.netloc:
        return raw.lower()
    path = parts.path.rstrip("/")
    query = f"?{parts.query}" if parts.query else ""
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}{path}{query}"


def action_fingerprint(action: Action) -> str:
    """Return a deterministic key identifying "the same" action.

    The key is the action type plus its identifying field: normalized text
    for text clicks, the selector for selector clicks and typing, and the
    normalized URL for navigation.
    """
    if isinstance(action, OpenUrl):
        return f"open_url|{_norm_url(action.url)}"
    if isinstance(action, ClickText):
        return f"click_text|{_norm_text(action.text)}"
    if isinstance(action, ClickSelector):
        return f"click_selector|{action.selector.strip()}"
    if isinstance(action, TypeSelector):
        return f"type_selector|{action.selector.strip()}"
    if isinstance(action, (CloseModal, Wait, Done)):
        return action.type
    raise ActionValidationError(f"Unknown action {type(action).__name__}")

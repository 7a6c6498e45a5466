"""Action executor.

Applies one ``Action`` to the agent's tab through the ``BrowserHost``
capability interface. DOM work happens inside the page via the scripts
in ``tabpilot.browser.scripts``; this module picks targets across frames,
polls navigation and waits for the UI to settle.

Page-level problems (element not found, invalid selector, script errors)
come back as failed ``ExecutionResult`` objects. Only malformed actions
raise, with ``ActionValidationError``.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from urllib.parse import urlsplit

from tabpilot.browser.host import BrowserHost, TabHandle
from tabpilot.browser.scripts import (
    CLICK_JS,
    CLOSE_MODAL_JS,
    EDITABLE_CANDIDATES_JS,
    LONG_TEXT_CHARS,
    TYPE_JS,
)
from tabpilot.exceptions import ActionValidationError, RunCancelledError
from tabpilot.models.action import (
    Action,
    ClickSelector,
    ClickText,
    CloseModal,
    Done,
    OpenUrl,
    TypeSelector,
    Wait,
    parse_action,
)
from tabpilot.models.results import ExecutionResult

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

# Codes for which a missed selector falls back to cross-frame heuristics.
_TYPE_FALLBACK_CODES = frozenset({"not_found", "invalid_selector", "not_editable"})

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
# Bare "host:port" input, which also matches the scheme pattern.
_HOST_PORT_RE = re.compile(r"^(?:localhost|[^/:?#@]*\.[^/:?#@]*):\d{1,5}(?:[/?#]|$)")


def normalize_http_url(raw: str) -> str | None:
    """Return ``raw`` as an http(s) URL, adding ``https://`` when no scheme is given.

    Bare ``host:port`` input counts as schemeless.

    Returns ``None`` for other schemes or unparseable input.
    """
    value = (raw or "").strip()
    if not value:
        return None
    if "://" not in value:
        if _SCHEME_RE.match(value) and not _HOST_PORT_RE.match(value):
            return None
        value = f"https://{value}"
    try:
        parts = urlsplit(value)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return None
    return value


@dataclass
class EditableChoice:
    """An editable element picked by the cross-frame fallback."""

    frame_index: int
    selector: str
    kind: str
    reason: str


def choose_editable_target(frames: list[Any], text: str) -> EditableChoice | None:
    """Pick a typing target from per-frame candidate lists.

    Preference: the focused editable, then rich/content-editable fields,
    then anything else. Search-like fields are excluded outright when
    ``text`` is long.
    """
    long_text = len(text) > LONG_TEXT_CHARS
    pool: list[tuple[int, dict[str, Any]]] = []
    for index, candidates in enumerate(frames):
        if not isinstance(candidates, list):
            continue
        for cand in candidates:
            if not isinstance(cand, dict) or not cand.get("selector"):
                continue
            if long_text and cand.get("search_like"):
                continue
            pool.append((index, cand))
    if not pool:
        return None

    for reason, predicate in (
        ("focused", lambda c: bool(c.get("focused"))),
        ("rich", lambda c: bool(c.get("rich"))),
        ("non_search" if long_text else "first", lambda c: True),
    ):
        for index, cand in pool:
            if predicate(cand):
                return EditableChoice(
                    frame_index=index,
                    selector=str(cand["selector"]),
                    kind=str(cand.get("kind") or "unknown"),
                    reason=reason,
                )
    return None


class ActionExecutor:
    """Executes planner actions against one tab.

    Args:
        host: Browser capability interface.
        settle_ms: Delay after click, type and close actions before re-observing.
        open_url_timeout_ms: Upper bound on load polling after navigation.
        poll_ms: Interval between load-status polls.
        sleep: Awaitable sleep; the orchestrator passes a cancellable one.
    """

    def __init__(
        self,
        host: BrowserHost,
        *,
        settle_ms: int = 450,
        open_url_timeout_ms: int = 15_000,
        poll_ms: int = 250,
        sleep: SleepFn | None = None,
    ) -> None:
        self._host = host
        self._settle_ms = settle_ms
        self._open_url_timeout_ms = open_url_timeout_ms
        self._poll_ms = poll_ms
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._handlers: dict[type, Callable[[TabHandle, Any], Awaitable[ExecutionResult]]] = {
            OpenUrl: self._open_url,
            ClickText: self._click,
            ClickSelector: self._click,
            TypeSelector: self._type,
            CloseModal: self._close_modal,
            Wait: self._wait,
            Done: self._done,
        }

    @classmethod
    def from_settings(cls, host: BrowserHost, sleep: SleepFn | None = None) -> "ActionExecutor":
        """Create an executor using ``agent`` settings."""
        from tabpilot.settings import get_settings

        agent = get_settings().agent
        return cls(
            host,
            settle_ms=agent.settle_ms,
            open_url_timeout_ms=agent.open_url_timeout_ms,
            poll_ms=agent.open_url_poll_ms,
            sleep=sleep,
        )

    async def execute(self, tab: TabHandle, action: Action | dict[str, Any]) -> ExecutionResult:
        """Apply ``action`` to ``tab``.

        Raises:
            ActionValidationError: Unsupported action type or missing fields.
        """
        if isinstance(action, dict):
            action = parse_action(action)
        handler = self._handlers.get(type(action))
        if handler is None:
            raise ActionValidationError(f"Unsupported action: {type(action).__name__}")

        start = time.monotonic()
        try:
            result = await handler(tab, action)
        except (ActionValidationError, RunCancelledError):
            raise
        except Exception as exc:
            logger.warning("Action %s raised in page: %s", action.type, exc)
            result = ExecutionResult.failure("script_error", f"{action.type} failed: {exc}")

        result.metadata.setdefault("elapsed_ms", round((time.monotonic() - start) * 1000, 1))
        logger.info(
            "Executed %s ok=%s mode=%s code=%s",
            action.type,
            result.ok,
            result.mode,
            result.code or "-",
        )
        return result

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _done(self, tab: TabHandle, action: Done) -> ExecutionResult:
        return ExecutionResult.success("done", action.result.summary, result=action.result.model_dump())

    async def _wait(self, tab: TabHandle, action: Wait) -> ExecutionResult:
        await self._sleep(action.ms / 1000)
        return ExecutionResult.success("wait", f"Waited {action.ms} ms", ms=action.ms)

    async def _open_url(self, tab: TabHandle, action: OpenUrl) -> ExecutionResult:
        url = normalize_http_url(action.url)
        if url is None:
            return ExecutionResult.failure("invalid_url", f"Only http/https URLs can be opened, got {action.url!r}")

        await self._host.navigate(tab, url)
        deadline = time.monotonic() + self._open_url_timeout_ms / 1000
        status = await self._host.tab_status(tab)
        while not (status.loaded and status.url not in ("", "about:blank")):
            if time.monotonic() >= deadline:
                logger.info("open_url: load timeout after %d ms for %s", self._open_url_timeout_ms, url)
                return ExecutionResult.success(
                    "navigate",
                    f"Navigation to {url} still loading after {self._open_url_timeout_ms} ms",
                    requested_url=url,
                    url=status.url,
                    loaded=False,
                )
            await self._sleep(self._poll_ms / 1000)
            status = await self._host.tab_status(tab)

        return ExecutionResult.success(
            "navigate", f"Opened {status.url}", requested_url=url, url=status.url, loaded=True
        )

    async def _click(self, tab: TabHandle, action: ClickText | ClickSelector) -> ExecutionResult:
        if isinstance(action, ClickSelector):
            arg = {"selector": action.selector}
        else:
            arg = {"text": action.text}
        raw = await self._host.run_in_page(tab, CLICK_JS, arg)
        result = self._from_script(raw, default_mode="click")
        if result.ok:
            await self._settle()
        return result

    async def _type(self, tab: TabHandle, action: TypeSelector) -> ExecutionResult:
        arg = {"selector": action.selector, "text": action.text}
        if action.selector:
            raw = await self._host.run_in_page(tab, TYPE_JS, arg)
            result = self._from_script(raw, default_mode="type")
            if result.ok:
                result.metadata.setdefault("frame_index", 0)
                result.metadata["resolved_by"] = "selector"
                await self._settle()
                return result
            if result.code not in _TYPE_FALLBACK_CODES:
                return result
            logger.debug("type_selector: %s missed (%s), trying heuristics", action.selector, result.code)

        frames = await self._host.run_in_frames(tab, EDITABLE_CANDIDATES_JS, None)
        choice = choose_editable_target(frames, action.text)
        if choice is None:
            qualifier = " non-search" if len(action.text) > LONG_TEXT_CHARS else ""
            return ExecutionResult.failure(
                "not_found",
                f"No{qualifier} editable field found for selector {action.selector or '(none)'}",
            )

        raw = await self._host.run_in_frame(
            tab, choice.frame_index, TYPE_JS, {"selector": choice.selector, "text": action.text}
        )
        result = self._from_script(raw, default_mode="type")
        result.metadata.update(
            frame_index=choice.frame_index,
            resolved_by=f"heuristic:{choice.reason}",
            requested_selector=action.selector,
        )
        if result.ok:
            await self._settle()
        return result

    async def _close_modal(self, tab: TabHandle, action: CloseModal) -> ExecutionResult:
        raw = await self._host.run_in_page(tab, CLOSE_MODAL_JS, None)
        result = self._from_script(raw, default_mode="close_modal")
        if result.ok:
            await self._settle()
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _settle(self) -> None:
        if self._settle_ms > 0:
            await self._sleep(self._settle_ms / 1000)

    @staticmethod
    def _from_script(raw: Any, *, default_mode: str) -> ExecutionResult:
        """Map a script's ``{ok, code, message, mode, ...}`` reply to an ``ExecutionResult``."""
        if not isinstance(raw, dict):
            return ExecutionResult.failure("script_error", f"Unexpected script result: {str(raw)[:200]}")
        meta = {k: v for k, v in raw.items() if k not in ("ok", "code", "message", "mode")}
        if raw.get("ok"):
            return ExecutionResult(
                ok=True, mode=str(raw.get("mode") or default_mode), message=str(raw.get("message") or ""), metadata=meta
            )
        return ExecutionResult(
            ok=False,
            mode=str(raw.get("mode") or ""),
            code=str(raw.get("code") or "failed"),
            message=str(raw.get("message") or f"{default_mode} failed"),
            metadata=meta,
        )

"""TabPilot test configuration: shared fixtures and in-memory fakes."""

from __future__ import annotations

import json
from typing import Any, Callable
from urllib.parse import urlsplit

import pytest

from tabpilot.browser.host import TabHandle, TabStatus
from tabpilot.browser.scripts import (
    CLICK_JS,
    CLOSE_MODAL_JS,
    EDITABLE_CANDIDATES_JS,
    OBSERVE_JS,
    TYPE_JS,
)
from tabpilot.llm.base import LLMProvider, LLMResult

START_URL = "https://start.example/"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Clear the settings LRU cache between tests."""
    from tabpilot.settings.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


# ---------------------------------------------------------------------------
# Fake browser
# ---------------------------------------------------------------------------


def blank_page(url: str = START_URL, title: str = "Start", text: str = "Welcome") -> dict[str, Any]:
    """Return a page model in the shape the inspection script produces."""
    return {
        "url": url,
        "title": title,
        "text": text,
        "interactive": [],
        "editable": [],
        "controls": [],
        "modal": None,
        "focused": None,
        "status": "complete",
    }


ScriptHandler = Callable[[dict[str, Any], Any], Any]


class FakeBrowserHost:
    """In-memory ``BrowserHost``: one page dict per tab, scripts answered in Python.

    ``on_click`` / ``on_type`` receive ``(page, arg)``, may mutate the page
    and return the script reply. Without a handler, clicks and typing
    succeed without changing anything.
    """

    def __init__(self, start_url: str = START_URL, start_text: str = "Welcome") -> None:
        self.start_url = start_url
        self.start_text = start_text
        self.pages: dict[str, dict[str, Any]] = {}
        self.closed: set[str] = set()
        self.created = 0
        self.groups: list[tuple[list[str], str]] = []
        self.calls: list[tuple[str, Any]] = []
        self.on_click: ScriptHandler | None = None
        self.on_type: ScriptHandler | None = None
        self.observe_error: Exception | None = None
        self.frame_candidates: list[Any] | None = None

    # Tabs -------------------------------------------------------------

    async def create_tab(self, url: str = "about:blank") -> TabHandle:
        self.created += 1
        tab_id = f"tab-{self.created}"
        self.pages[tab_id] = blank_page(self.start_url if url == "about:blank" else url, text=self.start_text)
        return TabHandle(tab_id=tab_id, url=self.pages[tab_id]["url"])

    async def get_tab(self, tab_id: str) -> TabHandle | None:
        if tab_id not in self.pages or tab_id in self.closed:
            return None
        return TabHandle(tab_id=tab_id, url=self.pages[tab_id]["url"])

    async def get_active_tab(self) -> TabHandle | None:
        open_tabs = [t for t in self.pages if t not in self.closed]
        if not open_tabs:
            return None
        return await self.get_tab(open_tabs[-1])

    async def navigate(self, tab: TabHandle, url: str) -> None:
        self.calls.append(("navigate", url))
        page = self.pages[tab.tab_id]
        page.update(blank_page(url, title=urlsplit(url).hostname or "", text=f"Content of {url}"))

    async def tab_status(self, tab: TabHandle) -> TabStatus:
        page = self.pages[tab.tab_id]
        return TabStatus(url=page["url"], title=page["title"], status=page["status"])

    async def group_tabs(self, tabs: list[TabHandle], title: str) -> str:
        self.groups.append(([t.tab_id for t in tabs], title))
        return f"group-{len(self.groups)}"

    def close_tab(self, tab_id: str) -> None:
        self.closed.add(tab_id)

    # Scripts ----------------------------------------------------------

    async def run_in_page(self, tab: TabHandle, script: str, arg: Any = None) -> Any:
        page = self.pages[tab.tab_id]
        if script == OBSERVE_JS:
            self.calls.append(("observe", None))
            if self.observe_error is not None:
                raise self.observe_error
            return {k: v for k, v in page.items() if k != "status"}
        if script == CLICK_JS:
            self.calls.append(("click", arg))
            return self.on_click(page, arg) if self.on_click else {"ok": True, "mode": "click"}
        if script == TYPE_JS:
            self.calls.append(("type", arg))
            if self.on_type:
                return self.on_type(page, arg)
            return {"ok": True, "mode": "value", "target_kind": "input", "text_length": len(arg["text"])}
        if script == CLOSE_MODAL_JS:
            self.calls.append(("close_modal", None))
            if page["modal"] is None:
                return {"ok": False, "code": "no_modal", "message": "No active modal"}
            page["modal"] = None
            return {"ok": True, "mode": "close_button"}
        raise AssertionError("unexpected script")

    async def run_in_frames(self, tab: TabHandle, script: str, arg: Any = None) -> list[Any]:
        assert script == EDITABLE_CANDIDATES_JS
        self.calls.append(("frames", None))
        if self.frame_candidates is not None:
            return self.frame_candidates
        return [list(self.pages[tab.tab_id]["editable"])]

    async def run_in_frame(self, tab: TabHandle, frame_index: int, script: str, arg: Any = None) -> Any:
        self.calls.append(("frame", frame_index))
        return await self.run_in_page(tab, script, arg)

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)


@pytest.fixture()
def fake_host() -> FakeBrowserHost:
    return FakeBrowserHost()


# ---------------------------------------------------------------------------
# Scripted model provider
# ---------------------------------------------------------------------------


class ScriptedProvider(LLMProvider):
    """Replies from a queue; entries may be strings, dicts (sent as JSON) or exceptions.

    When the queue runs dry the ``default`` reply is used, if any.
    """

    def __init__(self, replies: list[Any] | None = None, default: Any = None) -> None:
        self.replies = list(replies or [])
        self.default = default
        self.calls: list[dict[str, Any]] = []

    async def chat(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResult:
        self.calls.append({"messages": messages, "temperature": temperature, "json_mode": json_mode})
        if self.replies:
            reply = self.replies.pop(0)
        elif self.default is not None:
            reply = self.default
        else:
            raise AssertionError("ScriptedProvider ran out of replies")
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        return LLMResult(content=reply, input_tokens=10, output_tokens=5, model="scripted")

    def context(self, index: int = -1) -> dict[str, Any]:
        """Decode the JSON user message of call ``index``."""
        return json.loads(self.calls[index]["messages"][-1]["content"])


@pytest.fixture()
def make_provider() -> Callable[..., ScriptedProvider]:
    """Factory for ``ScriptedProvider`` instances."""
    return ScriptedProvider


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that require a real browser or network")

"""Capability interface to the host browser.

Everything the agent does to a tab goes through ``BrowserHost``. The
orchestrator, observation capture, executor and verifier depend only on
this protocol, so they run unchanged against Playwright or an in-memory
fake in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass
class TabHandle:
    """Opaque reference to a browser tab."""

    tab_id: str
    url: str = ""


@dataclass
class TabStatus:
    """Load state of a tab as reported by the host."""

    url: str = ""
    title: str = ""
    status: str = "complete"  # loading | complete

    @property
    def loaded(self) -> bool:
        return self.status == "complete"


@runtime_checkable
class BrowserHost(Protocol):
    """Tab, grouping and script-injection primitives.

    Script methods take the source of a JavaScript function expression and
    one JSON-serialisable argument, and return only serialisable values.
    """

    async def create_tab(self, url: str = "about:blank") -> TabHandle:
        """Open a new tab."""
        ...

    async def get_tab(self, tab_id: str) -> TabHandle | None:
        """Return the tab with ``tab_id`` or ``None`` if it was closed."""
        ...

    async def get_active_tab(self) -> TabHandle | None:
        """Return the focused tab, if any."""
        ...

    async def navigate(self, tab: TabHandle, url: str) -> None:
        """Start navigating ``tab`` to ``url`` without waiting for load."""
        ...

    async def tab_status(self, tab: TabHandle) -> TabStatus:
        """Return url, title and load state of ``tab``."""
        ...

    async def group_tabs(self, tabs: list[TabHandle], title: str) -> str:
        """Group ``tabs`` under ``title`` and return the group id ("" if unsupported)."""
        ...

    async def run_in_page(self, tab: TabHandle, script: str, arg: Any = None) -> Any:
        """Evaluate ``script`` in the main frame of ``tab``."""
        ...

    async def run_in_frames(self, tab: TabHandle, script: str, arg: Any = None) -> list[Any]:
        """Evaluate ``script`` in every frame of ``tab``; index = frame index."""
        ...

    async def run_in_frame(self, tab: TabHandle, frame_index: int, script: str, arg: Any = None) -> Any:
        """Evaluate ``script`` in one frame of ``tab``."""
        ...


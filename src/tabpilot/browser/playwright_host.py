"""Playwright binding of the ``BrowserHost`` capability interface.

Launches a persistent Chromium context (so logins survive between runs)
or attaches to a running browser over CDP. Pages are addressed by stable
string ids handed out by this class.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from tabpilot.browser.host import TabHandle, TabStatus

logger = logging.getLogger(__name__)


class PlaywrightHost:
    """Async Playwright implementation of ``BrowserHost``.

    Args:
        headless: Launch without a visible window.
        user_data_dir: Profile directory for the persistent context.
        channel: Browser channel (``chrome``, ``msedge``); empty for bundled Chromium.
        cdp_url: Attach to an already running browser instead of launching one.
        viewport: ``(width, height)`` for launched contexts.
    """

    def __init__(
        self,
        *,
        headless: bool = False,
        user_data_dir: str = "",
        channel: str = "",
        cdp_url: str = "",
        viewport: tuple[int, int] = (1280, 860),
    ) -> None:
        self._headless = headless
        self._user_data_dir = user_data_dir
        self._channel = channel
        self._cdp_url = cdp_url
        self._viewport = viewport

        self._pw: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._pages: dict[str, Page] = {}
        self._groups: dict[str, list[str]] = {}

    @classmethod
    def from_settings(cls) -> "PlaywrightHost":
        """Create a host from ``browser`` settings."""
        from tabpilot.settings import get_settings

        b = get_settings().browser
        return cls(
            headless=b.headless,
            user_data_dir=b.user_data_dir,
            channel=b.channel,
            cdp_url=b.cdp_url,
            viewport=(b.viewport_width, b.viewport_height),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Launch or attach to the browser."""
        if self._context is not None:
            return
        self._pw = await async_playwright().start()
        if self._cdp_url:
            logger.info("Attaching to browser over CDP: %s", self._cdp_url)
            self._browser = await self._pw.chromium.connect_over_cdp(self._cdp_url)
            self._context = self._browser.contexts[0] if self._browser.contexts else await self._browser.new_context()
        else:
            logger.info("Launching browser (headless=%s, profile=%s)", self._headless, self._user_data_dir or "<temp>")
            kwargs: dict[str, Any] = {
                "headless": self._headless,
                "viewport": {"width": self._viewport[0], "height": self._viewport[1]},
            }
            if self._channel:
                kwargs["channel"] = self._channel
            self._context = await self._pw.chromium.launch_persistent_context(self._user_data_dir or "", **kwargs)
        for page in self._context.pages:
            self._register(page)

    async def stop(self) -> None:
        """Close the context (launched browsers) and stop Playwright."""
        try:
            if self._context is not None and not self._cdp_url:
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
        except PlaywrightError as exc:
            logger.warning("Error closing browser: %s", exc)
        finally:
            if self._pw is not None:
                await self._pw.stop()
            self._pw = None
            self._browser = None
            self._context = None
            self._pages.clear()

    async def __aenter__(self) -> "PlaywrightHost":
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Tabs
    # ------------------------------------------------------------------

    def _register(self, page: Page) -> str:
        for tab_id, known in self._pages.items():
            if known is page:
                return tab_id
        tab_id = uuid.uuid4().hex[:12]
        self._pages[tab_id] = page
        return tab_id

    def _page(self, tab: TabHandle) -> Page:
        page = self._pages.get(tab.tab_id)
        if page is None or page.is_closed():
            raise PlaywrightError(f"Tab {tab.tab_id} is closed")
        return page

    async def create_tab(self, url: str = "about:blank") -> TabHandle:
        await self.start()
        assert self._context is not None
        page = await self._context.new_page()
        tab_id = self._register(page)
        if url and url != "about:blank":
            await page.goto(url, wait_until="commit")
        return TabHandle(tab_id=tab_id, url=page.url)

    async def get_tab(self, tab_id: str) -> TabHandle | None:
        page = self._pages.get(tab_id)
        if page is None or page.is_closed():
            return None
        return TabHandle(tab_id=tab_id, url=page.url)

    async def get_active_tab(self) -> TabHandle | None:
        if self._context is None:
            return None
        open_pages = [p for p in self._context.pages if not p.is_closed()]
        if not open_pages:
            return None
        page = open_pages[-1]
        return TabHandle(tab_id=self._register(page), url=page.url)

    async def navigate(self, tab: TabHandle, url: str) -> None:
        page = self._page(tab)
        try:
            await page.goto(url, wait_until="commit")
        except PlaywrightError as exc:
            # Aborted or redirected loads are reported through tab_status polling.
            logger.debug("goto(%s) raised: %s", url, exc)

    async def tab_status(self, tab: TabHandle) -> TabStatus:
        page = self._page(tab)
        try:
            ready = await page.evaluate("() => document.readyState")
            title = await page.title()
        except PlaywrightError:
            return TabStatus(url=page.url, title="", status="loading")
        return TabStatus(url=page.url, title=title, status="complete" if ready == "complete" else "loading")

    async def group_tabs(self, tabs: list[TabHandle], title: str) -> str:
        # Playwright has no tab-group concept; keep the grouping as a label.
        group_id = f"grp-{uuid.uuid4().hex[:8]}"
        self._groups[group_id] = [t.tab_id for t in tabs]
        logger.debug("Grouped %d tab(s) as %r (%s)", len(tabs), title, group_id)
        return group_id

    # ------------------------------------------------------------------
    # Scripts
    # ------------------------------------------------------------------

    async def run_in_page(self, tab: TabHandle, script: str, arg: Any = None) -> Any:
        return await self._page(tab).evaluate(script, arg)

    async def run_in_frames(self, tab: TabHandle, script: str, arg: Any = None) -> list[Any]:
        results: list[Any] = []
        for frame in self._page(tab).frames:
            try:
                results.append(await frame.evaluate(script, arg))
            except PlaywrightError as exc:
                logger.debug("Frame %s not scriptable: %s", frame.url, exc)
                results.append(None)
        return results

    async def run_in_frame(self, tab: TabHandle, frame_index: int, script: str, arg: Any = None) -> Any:
        frames = self._page(tab).frames
        if not 0 <= frame_index < len(frames):
            raise PlaywrightError(f"Frame {frame_index} no longer exists")
        return await frames[frame_index].evaluate(script, arg)

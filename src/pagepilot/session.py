"""
PagePilot - Session context

Owns the one browser connection of the process and the Tabs opened on it.

Lifecycle:
- The browser is launched (or attached to over CDP) lazily, on the first
  call that needs a page.
- Tabs are appended in creation order. Their index is their position in
  that order and is never reused: a closed tab leaves a retired slot.
- Closing the active tab re-activates the most recently created tab that
  is still open.
- A transport disconnect only tears the session down when the browser is
  not configured to outlive its clients.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Optional

import httpx
from playwright.async_api import async_playwright

from pagepilot.config import CORE, Config
from pagepilot.errors import NoActiveTab
from pagepilot.tab import Tab

logger = logging.getLogger("pagepilot.session")


class SessionContext:
    """Browser connection, capability set and tabs of one session."""

    def __init__(self, config: Config, capabilities: frozenset[str] | None = None):
        self.config = config
        caps = capabilities if capabilities is not None else config.capabilities
        self.capabilities = frozenset(caps) | {CORE}
        self.tabs: list[Tab] = []
        self.active_index: Optional[int] = None

        self._playwright = None
        self._browser = None
        self._context = None
        self._launch_lock: asyncio.Lock | None = None
        self._tab_lock: asyncio.Lock | None = None

    def _get_launch_lock(self) -> asyncio.Lock:
        """Lazy init for the launch lock (avoids binding to wrong event loop)."""
        if self._launch_lock is None:
            self._launch_lock = asyncio.Lock()
        return self._launch_lock

    def _get_tab_lock(self) -> asyncio.Lock:
        if self._tab_lock is None:
            self._tab_lock = asyncio.Lock()
        return self._tab_lock

    # ═══════════════════════════════════════════════════════════════════════
    # Browser
    # ═══════════════════════════════════════════════════════════════════════

    @property
    def is_connected(self) -> bool:
        return self._context is not None

    async def browser_context(self) -> Any:
        """Get or create the browser context (async-safe via lock)."""
        async with self._get_launch_lock():
            if self._context is not None:
                return self._context

            if self._playwright is not None:
                # Left over from a browser that disconnected.
                await self._stop_playwright()

            try:
                self._playwright = await async_playwright().start()
            except Exception as e:
                raise RuntimeError(f"Playwright failed to start: {e}. Run: playwright install") from e

            try:
                self._context = await self._open_context()
            except Exception:
                await self._stop_playwright()
                raise

            self._context.set_default_timeout(self.config.default_timeout_ms)
            self._context.on("page", self._on_context_page)
            for page in list(self._context.pages):
                self._adopt(page)
            logger.info(f"Browser ready ({self.config.browser}, {len(self._context.pages)} existing pages)")
            return self._context

    async def _open_context(self) -> Any:
        config = self.config
        browser_type = getattr(self._playwright, config.browser)

        if config.cdp_endpoint:
            await self._check_cdp_endpoint(config.cdp_endpoint)
            self._browser = await self._playwright.chromium.connect_over_cdp(config.cdp_endpoint)
            self._browser.on("disconnected", self._on_browser_disconnected)
            if self._browser.contexts:
                return self._browser.contexts[0]
            return await self._browser.new_context(viewport=config.viewport)

        headless = config.headless
        # Fallback to headless if no DISPLAY (container/SSH)
        if not headless and os.name == "posix" and not os.environ.get("DISPLAY") and not os.environ.get("WAYLAND_DISPLAY"):
            logger.debug("No DISPLAY found, falling back to headless mode")
            headless = True

        try:
            if config.user_data_dir:
                return await browser_type.launch_persistent_context(
                    config.user_data_dir,
                    headless=headless,
                    viewport=config.viewport,
                )
            self._browser = await browser_type.launch(headless=headless)
        except Exception as e:
            # Browser binary not downloaded is the most common failure
            raise RuntimeError(f"Browser launch failed: {e}. Run: playwright install {config.browser}") from e

        self._browser.on("disconnected", self._on_browser_disconnected)
        return await self._browser.new_context(viewport=config.viewport)

    async def _check_cdp_endpoint(self, endpoint: str):
        """Fail fast with a readable error when the CDP endpoint is down."""
        if not endpoint.startswith(("http://", "https://")):
            return
        url = endpoint.rstrip("/") + "/json/version"
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise RuntimeError(f"CDP endpoint not reachable at {endpoint}: {e}") from e

    def _on_browser_disconnected(self, *_):
        logger.warning("Browser disconnected; it will be relaunched on the next call")
        for tab in self.tabs:
            if not tab.closed:
                tab._mark_closed()
        self._context = None
        self._browser = None

    def _on_context_page(self, page: Any):
        # Popups and window.open() pages become tabs too.
        self._adopt(page)

    def _adopt(self, page: Any) -> Tab:
        for tab in self.tabs:
            if tab.page is page:
                return tab
        tab = Tab(len(self.tabs), page, on_closed=self._on_tab_closed)
        self.tabs.append(tab)
        if self.active_index is None:
            self.active_index = tab.index
        logger.debug(f"Tab {tab.index} opened", extra={"tab_index": tab.index})
        return tab

    # ═══════════════════════════════════════════════════════════════════════
    # Tabs
    # ═══════════════════════════════════════════════════════════════════════

    @property
    def current_tab(self) -> Tab | None:
        if self.active_index is None:
            return None
        tab = self.tabs[self.active_index]
        return None if tab.closed else tab

    def current_tab_or_die(self) -> Tab:
        tab = self.current_tab
        if tab is None:
            raise NoActiveTab()
        return tab

    async def ensure_tab(self) -> Tab:
        """Return the active tab, opening a page if there is none."""
        async with self._get_tab_lock():
            tab = self.current_tab
            if tab is None:
                tab = await self._create_tab()
            return tab

    async def new_tab(self, url: str | None = None) -> Tab:
        """Open a page, make it the active tab and optionally navigate it."""
        async with self._get_tab_lock():
            tab = await self._create_tab()
        if url:
            await tab.page.goto(url)
        return tab

    async def _create_tab(self) -> Tab:
        context = await self.browser_context()
        page = await context.new_page()
        tab = self._adopt(page)
        self.active_index = tab.index
        return tab

    def open_tabs(self) -> list[Tab]:
        return [tab for tab in self.tabs if not tab.closed]

    def get_tab(self, index: int) -> Tab:
        """Open tab at ``index``.

        Raises:
            IndexError: out of range or the slot was retired by a close.
        """
        if not 0 <= index < len(self.tabs):
            raise IndexError(f"No tab at index {index}")
        tab = self.tabs[index]
        if tab.closed:
            raise IndexError(f"Tab {index} is closed")
        return tab

    async def select_tab(self, index: int) -> Tab:
        tab = self.get_tab(index)
        self.active_index = index
        await tab.page.bring_to_front()
        return tab

    async def close_tab(self, index: int | None = None) -> Tab:
        """Close the tab at ``index`` (the active tab by default)."""
        tab = self.current_tab_or_die() if index is None else self.get_tab(index)
        async with tab.lock:
            await tab.close()
        return tab

    def _on_tab_closed(self, tab: Tab):
        logger.debug(f"Tab {tab.index} closed", extra={"tab_index": tab.index})
        if self.active_index != tab.index:
            return
        self.active_index = None
        for candidate in reversed(self.tabs):
            if not candidate.closed:
                self.active_index = candidate.index
                break

    # ═══════════════════════════════════════════════════════════════════════
    # Teardown
    # ═══════════════════════════════════════════════════════════════════════

    async def handle_disconnect(self):
        """Transport went away. Keep the browser if configured to."""
        if self.config.keep_browser_open:
            logger.info("Client disconnected; keeping browser open")
            return
        await self.close()

    async def close(self):
        """Close tabs and browser. Suppresses errors during shutdown."""
        for tab in self.tabs:
            async with tab.lock:
                await tab.close()
        self.active_index = None

        context, browser = self._context, self._browser
        self._context = None
        self._browser = None
        try:
            if context is not None:
                await context.close()
        except Exception as e:
            logger.debug(f"Ignoring context close error: {e}")
        try:
            if browser is not None:
                await browser.close()
        except Exception as e:
            logger.debug(f"Ignoring browser close error: {e}")
        await self._stop_playwright()

    async def _stop_playwright(self):
        playwright, self._playwright = self._playwright, None
        try:
            if playwright is not None:
                await playwright.stop()
        except Exception as e:
            logger.debug(f"Ignoring playwright stop error: {e}")

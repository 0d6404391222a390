"""
PagePilot - Tab

One logical browser page. A Tab exclusively owns its Playwright page and
the per-page state built on top of it:

    frame_context   which frame frame-scoped tools operate on
    requests        ordered request/response log + pending waits
    routes          interception rules
    lock            serializes tool calls against this tab
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from pagepilot.errors import FrameNotFound
from pagepilot.frames import FrameContext, FrameToken
from pagepilot.network import RequestTracker
from pagepilot.patterns import url_matches
from pagepilot.routes import RouteRegistry

logger = logging.getLogger("pagepilot.tab")


class Tab:
    """A page plus its frame, network and route state."""

    def __init__(self, index: int, page: Any, on_closed: Callable[["Tab"], None] | None = None):
        self.index = index
        self.page = page
        self.frame_context = FrameContext()
        self.requests = RequestTracker()
        self.routes = RouteRegistry(page)
        self.lock = asyncio.Lock()
        self.closed = False
        self._on_closed = on_closed

        self.requests.attach(page)
        page.on("framenavigated", self.on_navigated)
        page.on("close", self._on_page_closed)

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Tab {self.index} {state}>"

    # ── events ──

    def on_navigated(self, frame: Any):
        """Reset the frame selection when the top-level frame navigates."""
        if frame is self.page.main_frame or frame.parent_frame is None:
            self.frame_context.reset()

    def _on_page_closed(self, *_):
        if self.closed:
            return
        logger.debug(f"Page of tab {self.index} closed by the browser")
        self._mark_closed()

    def _mark_closed(self):
        self.closed = True
        self.requests.close()
        self.frame_context.reset()
        if self._on_closed is not None:
            self._on_closed(self)

    # ── frames ──

    def current_frame(self) -> Any:
        """Frame selected with switch_frame, or the main frame."""
        return self.frame_context.resolve(self.page.main_frame)

    async def find_frame(
        self,
        selector: str | None = None,
        name: str | None = None,
        url: str | None = None,
        index: int | None = None,
    ) -> tuple[Any, str]:
        """Resolve a frame from the current frame tree.

        The first criterion given wins, in the order selector, name, url,
        index. Returns the frame and a description of the criterion.

        Raises:
            FrameNotFound: nothing in the frame tree matches.
        """
        page = self.page
        if selector is not None:
            description = f"selector={selector}"
            handle = await page.query_selector(selector)
            frame = None
            if handle is not None:
                frame = await handle.content_frame()
                await handle.dispose()
        elif name is not None:
            description = f"name={name}"
            frame = next((f for f in page.frames if f.name == name), None)
        elif url is not None:
            description = f"url={url}"
            frame = next((f for f in page.frames if url_matches(url, f.url)), None)
        elif index is not None:
            description = f"index={index}"
            frames = page.frames
            frame = frames[index] if 0 <= index < len(frames) else None
        else:
            raise ValueError("One of selector, name, url or index is required")

        if frame is None:
            raise FrameNotFound(description)
        return frame, description

    async def switch_frame(self, **criteria: Any) -> FrameToken:
        frame, description = await self.find_frame(**criteria)
        if frame is self.page.main_frame:
            self.frame_context.clear()
            return FrameToken(frame=frame, generation=self.frame_context.generation, description=description)
        return self.frame_context.select(frame, description)

    def switch_to_main_frame(self) -> Any:
        self.frame_context.clear()
        return self.page.main_frame

    def list_frames(self) -> list[dict[str, Any]]:
        frames = list(self.page.frames)
        main = self.page.main_frame
        selected = self.frame_context.token.frame if self.frame_context.token else main
        info = []
        for i, frame in enumerate(frames):
            parent = frame.parent_frame
            info.append({
                "index": i,
                "url": frame.url,
                "name": frame.name or "",
                "isMain": frame is main,
                "isCurrent": frame is selected,
                "isDetached": frame.is_detached(),
                "parentFrame": frames.index(parent) if parent is not None and parent in frames else None,
            })
        return info

    # ── snapshot ──

    async def title(self) -> str:
        return await self.page.title()

    async def capture_snapshot(self) -> str:
        """Structural snapshot of the page: URL, title and ARIA tree."""
        aria = await self.page.locator("body").aria_snapshot()
        title = await self.page.title()
        return "\n".join([
            "### Page state",
            f"- Page URL: {self.page.url}",
            f"- Page Title: {title}",
            "- Page Snapshot:",
            "```yaml",
            aria,
            "```",
        ])

    # ── lifecycle ──

    async def close(self):
        """Close the page and release per-tab state. Safe to call twice."""
        if self.closed:
            return
        self._mark_closed()
        try:
            await self.routes.clear()
        except Exception as e:
            logger.debug(f"Ignoring route cleanup error on tab {self.index}: {e}")
        try:
            await self.page.close()
        except Exception as e:
            logger.debug(f"Ignoring page close error on tab {self.index}: {e}")

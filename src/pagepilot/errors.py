"""
PagePilot - Error taxonomy

Every failure a tool call can produce is one of the classes below. The
dispatcher catches whatever a handler raises, runs it through classify()
and turns it into a structured failure; nothing reaches the transport raw.

Each kind carries a recovery hint so the caller knows what to try next.
"""

from __future__ import annotations

import asyncio

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout


# ═══════════════════════════════════════════════════════════════════════════
# Recovery hints
# ═══════════════════════════════════════════════════════════════════════════

_HINTS = {
    "ValidationError": "Fix the named argument and call the tool again.",
    "UnknownTool": "Call list_tools to see the tools available in this session.",
    "NoActiveTab": "Open a page first with browser_navigate or browser_tab_new.",
    "FrameNotFound": "Use browser_list_frames to inspect the frame tree, then switch again.",
    "ElementNotFound": "Check the selector against the page snapshot or browser_query_selector.",
    "TimeoutError": "The condition never happened in time. Increase timeout or check the pattern.",
    "DriverError": "The browser rejected the operation. Inspect the page state and retry.",
    "InternalError": "Unexpected failure inside the tool. Check the pagepilot log.",
}


class PagePilotError(Exception):
    """Base class for all classified tool failures."""

    kind = "PagePilotError"

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.hint = hint if hint is not None else _HINTS.get(self.kind)

    def to_text(self) -> str:
        text = f"{self.kind}: {self.message}"
        if self.hint:
            text += f"\nHint: {self.hint}"
        return text


class ValidationError(PagePilotError):
    kind = "ValidationError"

    def __init__(self, tool: str, field: str, message: str):
        where = f"'{field}'" if field else "arguments"
        super().__init__(f"Invalid {where} for {tool}: {message}")
        self.tool = tool
        self.field = field


class UnknownTool(PagePilotError):
    kind = "UnknownTool"

    def __init__(self, name: str):
        super().__init__(f"Tool not found: {name}")
        self.name = name


class NoActiveTab(PagePilotError):
    kind = "NoActiveTab"

    def __init__(self):
        super().__init__("No open tab. Navigate to a URL to create one.")


class FrameNotFound(PagePilotError):
    kind = "FrameNotFound"

    def __init__(self, criteria: str, reason: str = ""):
        message = f"Frame not found: {criteria}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)
        self.criteria = criteria


class ElementNotFound(PagePilotError):
    kind = "ElementNotFound"

    def __init__(self, selector: str):
        super().__init__(f"No element found matching selector: {selector}")
        self.selector = selector


class WaitTimeoutError(PagePilotError):
    kind = "TimeoutError"

    def __init__(self, target: str, timeout_ms: int | float | None = None):
        message = f"Timeout waiting for {target}"
        if timeout_ms is not None:
            message += f" after {int(timeout_ms)}ms"
        super().__init__(message)
        self.target = target
        self.timeout_ms = timeout_ms


class DriverError(PagePilotError):
    kind = "DriverError"

    def __init__(self, tool: str, original: BaseException | str):
        super().__init__(f"{tool} failed: {_first_line(original)}")
        self.tool = tool
        self.original = original


class InternalError(PagePilotError):
    kind = "InternalError"

    def __init__(self, tool: str, original: BaseException):
        super().__init__(f"{tool} failed: {type(original).__name__}: {original}")
        self.tool = tool
        self.original = original


def _first_line(value: BaseException | str) -> str:
    text = str(value).strip()
    # Playwright appends a multi-line call log after the first line.
    return text.splitlines()[0] if text else type(value).__name__


def classify(exc: BaseException, tool: str) -> PagePilotError:
    """Map any exception raised during a tool call onto the taxonomy."""
    if isinstance(exc, PagePilotError):
        return exc
    if isinstance(exc, PlaywrightTimeout):
        return WaitTimeoutError(f"{tool}: {_first_line(exc)}")
    if isinstance(exc, asyncio.TimeoutError):
        return WaitTimeoutError(tool)
    if isinstance(exc, PlaywrightError):
        return DriverError(tool, exc)
    return InternalError(tool, exc)

"""
PagePilot - Core tools

Navigation, snapshots and tab management. Always enabled.
"""

from __future__ import annotations

from pagepilot.config import CORE
from pagepilot.errors import ValidationError
from pagepilot.tools.base import (
    CURRENT,
    ENSURE,
    NONE,
    SNAPSHOT,
    SNAPSHOT_AFTER_IDLE,
    ToolDescriptor,
    ToolResult,
    integer,
    object_schema,
    string,
)


# ═══════════════════════════════════════════════════════════════════════════
# Navigation
# ═══════════════════════════════════════════════════════════════════════════


async def browser_navigate(ctx, tab, args) -> ToolResult:
    url = args["url"]
    await tab.page.goto(url)
    return ToolResult.text(f"Navigated to {tab.page.url}", code=[f"await page.goto({url!r})"])


async def browser_navigate_back(ctx, tab, args) -> ToolResult:
    await tab.page.go_back()
    return ToolResult.text(f"Navigated back to {tab.page.url}", code=["await page.go_back()"])


async def browser_navigate_forward(ctx, tab, args) -> ToolResult:
    await tab.page.go_forward()
    return ToolResult.text(f"Navigated forward to {tab.page.url}", code=["await page.go_forward()"])


async def browser_snapshot(ctx, tab, args) -> ToolResult:
    # With snapshots globally off the policy skips the capture, but an
    # explicit request still gets one.
    if not ctx.config.snapshots:
        return ToolResult.text(await tab.capture_snapshot())
    return ToolResult()


async def browser_close(ctx, tab, args) -> ToolResult:
    await ctx.close()
    return ToolResult.text("Browser closed", code=["await browser.close()"])


# ═══════════════════════════════════════════════════════════════════════════
# Tabs
# ═══════════════════════════════════════════════════════════════════════════


async def render_tab_list(ctx) -> str:
    tabs = ctx.open_tabs()
    if not tabs:
        return "### Open tabs\nNo open tabs. Use browser_navigate or browser_tab_new to open one."
    lines = ["### Open tabs"]
    for tab in tabs:
        title = await tab.title()
        current = " (current)" if tab.index == ctx.active_index else ""
        lines.append(f"- {tab.index}:{current} [{title}] ({tab.page.url})")
    return "\n".join(lines)


async def browser_tab_list(ctx, tab, args) -> ToolResult:
    return ToolResult.text(await render_tab_list(ctx))


async def browser_tab_new(ctx, tab, args) -> ToolResult:
    url = args.get("url")
    new = await ctx.new_tab(url)
    code = ["page = await context.new_page()"]
    if url:
        code.append(f"await page.goto({url!r})")
    return ToolResult(texts=[f"Opened tab {new.index}", await render_tab_list(ctx)], code=code)


async def browser_tab_select(ctx, tab, args) -> ToolResult:
    index = args["index"]
    try:
        await ctx.select_tab(index)
    except IndexError as e:
        raise ValidationError("browser_tab_select", "index", str(e)) from None
    return ToolResult(texts=[await render_tab_list(ctx)], code=["await page.bring_to_front()"])


async def browser_tab_close(ctx, tab, args) -> ToolResult:
    index = args.get("index")
    try:
        closed = await ctx.close_tab(index)
    except IndexError as e:
        raise ValidationError("browser_tab_close", "index", str(e)) from None
    return ToolResult(texts=[f"Closed tab {closed.index}", await render_tab_list(ctx)], code=["await page.close()"])


# ═══════════════════════════════════════════════════════════════════════════
# Descriptors
# ═══════════════════════════════════════════════════════════════════════════

TAB_INDEX = integer("Tab index as shown by browser_tab_list", minimum=0)

TOOLS = [
    ToolDescriptor(
        name="browser_navigate",
        title="Navigate to a URL",
        description="Navigate the current tab to a URL, opening a tab if none is open.",
        capability=CORE,
        input_schema=object_schema({"url": string("The URL to navigate to")}, required=("url",)),
        handler=browser_navigate,
        policy=SNAPSHOT_AFTER_IDLE,
        tab_mode=ENSURE,
    ),
    ToolDescriptor(
        name="browser_navigate_back",
        title="Go back",
        description="Go back to the previous page in the current tab's history.",
        capability=CORE,
        input_schema=object_schema(),
        handler=browser_navigate_back,
        policy=SNAPSHOT_AFTER_IDLE,
        tab_mode=CURRENT,
    ),
    ToolDescriptor(
        name="browser_navigate_forward",
        title="Go forward",
        description="Go forward to the next page in the current tab's history.",
        capability=CORE,
        input_schema=object_schema(),
        handler=browser_navigate_forward,
        policy=SNAPSHOT_AFTER_IDLE,
        tab_mode=CURRENT,
    ),
    ToolDescriptor(
        name="browser_snapshot",
        title="Page snapshot",
        description="Capture an accessibility snapshot of the current page.",
        capability=CORE,
        input_schema=object_schema(),
        handler=browser_snapshot,
        policy=SNAPSHOT,
        tab_mode=CURRENT,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_close",
        title="Close browser",
        description="Close every tab and the browser. The next call launches a fresh one.",
        capability=CORE,
        input_schema=object_schema(),
        handler=browser_close,
        tab_mode=NONE,
    ),
    ToolDescriptor(
        name="browser_tab_list",
        title="List tabs",
        description="List open tabs. Closed tabs keep their index retired.",
        capability=CORE,
        input_schema=object_schema(),
        handler=browser_tab_list,
        tab_mode=NONE,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_tab_new",
        title="Open a new tab",
        description="Open a new tab, make it current and optionally navigate it.",
        capability=CORE,
        input_schema=object_schema({"url": string("URL to open in the new tab")}),
        handler=browser_tab_new,
        tab_mode=NONE,
    ),
    ToolDescriptor(
        name="browser_tab_select",
        title="Select a tab",
        description="Make the tab at the given index the current tab.",
        capability=CORE,
        input_schema=object_schema({"index": TAB_INDEX}, required=("index",)),
        handler=browser_tab_select,
        policy=SNAPSHOT,
        tab_mode=NONE,
    ),
    ToolDescriptor(
        name="browser_tab_close",
        title="Close a tab",
        description="Close the tab at the given index, or the current tab.",
        capability=CORE,
        input_schema=object_schema({"index": TAB_INDEX}),
        handler=browser_tab_close,
        tab_mode=NONE,
    ),
]

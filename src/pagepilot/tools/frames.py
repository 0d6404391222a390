"""
PagePilot - Frame tools

Inspect the frame tree, select the frame that browser_frame_evaluate runs
in, and wait for frames to appear. A top-level navigation always drops the
selection back to the main frame.
"""

from __future__ import annotations

from playwright.async_api import TimeoutError as PlaywrightTimeout

from pagepilot.errors import ValidationError, WaitTimeoutError
from pagepilot.patterns import compile_glob
from pagepilot.tools.base import (
    ARGS,
    CURRENT,
    ENSURE,
    EVALUATE_BODY,
    SNAPSHOT,
    TIMEOUT,
    ToolDescriptor,
    ToolResult,
    body_arg,
    integer,
    object_schema,
    render_js_result,
    string,
    timeout_ms,
    to_json,
)

CAPABILITY = "frames"

_CRITERIA = {
    "frameSelector": "selector",
    "frameName": "name",
    "frameUrl": "url",
    "frameIndex": "index",
}


def _criteria(args: dict, allowed: tuple[str, ...]) -> dict:
    return {_CRITERIA[k]: args[k] for k in allowed if args.get(k) is not None}


def _check_exactly_one(tool: str, allowed: tuple[str, ...], required: bool):
    def check(args: dict):
        given = [k for k in allowed if args.get(k) is not None]
        if len(given) > 1:
            raise ValidationError(tool, given[1], f"only one of {', '.join(allowed)} may be given")
        if required and not given:
            raise ValidationError(tool, "", f"one of {', '.join(allowed)} is required")
    return check


# ═══════════════════════════════════════════════════════════════════════════
# Handlers
# ═══════════════════════════════════════════════════════════════════════════


async def browser_list_frames(ctx, tab, args) -> ToolResult:
    return ToolResult.json(tab.list_frames(), code=["page.frames"])


SWITCH_KEYS = ("frameSelector", "frameName", "frameUrl", "frameIndex")


async def browser_switch_to_frame(ctx, tab, args) -> ToolResult:
    token = await tab.switch_frame(**_criteria(args, SWITCH_KEYS))
    return ToolResult.text(f"Switched to frame: {token.frame.url}", code=[f"frame = ...  # {token.description}"])


async def browser_switch_to_main_frame(ctx, tab, args) -> ToolResult:
    main = tab.switch_to_main_frame()
    return ToolResult.text(f"Switched to main frame: {main.url}", code=["frame = page.main_frame"])


async def browser_wait_for_frame(ctx, tab, args) -> ToolResult:
    url, name = args.get("frameUrl"), args.get("frameName")
    timeout = timeout_ms(ctx, args)
    regex = compile_glob(url) if url is not None else None

    def matches(frame) -> bool:
        if regex is not None:
            return regex.match(frame.url) is not None
        return frame.name == name

    frame = next((f for f in tab.page.frames if matches(f)), None)
    if frame is None:
        # A frame reports its name and URL once it has navigated.
        try:
            frame = await tab.page.wait_for_event("framenavigated", predicate=matches, timeout=timeout)
        except PlaywrightTimeout:
            raise WaitTimeoutError(f"frame: {url or name}", timeout) from None

    return ToolResult.text(
        to_json({"found": True, "url": frame.url, "name": frame.name}),
        code=[f"await page.wait_for_event('framenavigated', lambda f: ..., timeout={timeout})  # {url or name!r}"],
    )


EVAL_KEYS = ("frameSelector", "frameName", "frameIndex")


async def browser_frame_evaluate(ctx, tab, args) -> ToolResult:
    criteria = _criteria(args, EVAL_KEYS)
    if criteria:
        frame, description = await tab.find_frame(**criteria)
    else:
        frame = tab.current_frame()
        description = "current frame"
    boxed = await frame.evaluate(EVALUATE_BODY, body_arg(args))
    return ToolResult.text(
        render_js_result(boxed),
        code=[f"await frame.evaluate({args['code']!r}, {args.get('args') or []!r})  # {description}"],
    )


# ═══════════════════════════════════════════════════════════════════════════
# Descriptors
# ═══════════════════════════════════════════════════════════════════════════

FRAME_SELECTOR = string("CSS selector of the iframe element")
FRAME_NAME = string("Frame name attribute")
FRAME_URL = string("Frame URL glob")
FRAME_INDEX = integer("Frame index in browser_list_frames (0-based)", minimum=0)

TOOLS = [
    ToolDescriptor(
        name="browser_list_frames",
        title="List all frames",
        description="List the frames of the current page with their index, URL and parent.",
        capability=CAPABILITY,
        input_schema=object_schema(),
        handler=browser_list_frames,
        policy=SNAPSHOT,
        tab_mode=CURRENT,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_switch_to_frame",
        title="Switch to frame",
        description="Select the frame browser_frame_evaluate runs in. Give exactly one criterion.",
        capability=CAPABILITY,
        input_schema=object_schema({
            "frameSelector": FRAME_SELECTOR,
            "frameName": FRAME_NAME,
            "frameUrl": FRAME_URL,
            "frameIndex": FRAME_INDEX,
        }),
        handler=browser_switch_to_frame,
        policy=SNAPSHOT,
        tab_mode=ENSURE,
        check=_check_exactly_one("browser_switch_to_frame", SWITCH_KEYS, required=True),
        glob_fields=("frameUrl",),
    ),
    ToolDescriptor(
        name="browser_switch_to_main_frame",
        title="Switch to main frame",
        description="Select the main frame again.",
        capability=CAPABILITY,
        input_schema=object_schema(),
        handler=browser_switch_to_main_frame,
        policy=SNAPSHOT,
        tab_mode=ENSURE,
    ),
    ToolDescriptor(
        name="browser_wait_for_frame",
        title="Wait for frame",
        description="Wait until a frame with the given URL glob or name exists.",
        capability=CAPABILITY,
        input_schema=object_schema({"frameUrl": FRAME_URL, "frameName": FRAME_NAME, "timeout": TIMEOUT}),
        handler=browser_wait_for_frame,
        tab_mode=ENSURE,
        read_only=True,
        check=_check_exactly_one("browser_wait_for_frame", ("frameUrl", "frameName"), required=True),
        glob_fields=("frameUrl",),
    ),
    ToolDescriptor(
        name="browser_frame_evaluate",
        title="Execute JavaScript in frame",
        description="Run a function body in a frame. Defaults to the frame selected with browser_switch_to_frame.",
        capability=CAPABILITY,
        input_schema=object_schema(
            {
                "code": string("JavaScript function body; use `return` to produce a result"),
                "frameSelector": FRAME_SELECTOR,
                "frameName": FRAME_NAME,
                "frameIndex": FRAME_INDEX,
                "args": ARGS,
            },
            required=("code",),
        ),
        handler=browser_frame_evaluate,
        policy=SNAPSHOT,
        tab_mode=ENSURE,
        check=_check_exactly_one("browser_frame_evaluate", EVAL_KEYS, required=False),
    ),
]

"""
PagePilot - Wait tools

Wait for elements, JavaScript conditions and load states. Every wait has a
timeout; running out raises WaitTimeoutError naming what was awaited.
"""

from __future__ import annotations

from playwright.async_api import TimeoutError as PlaywrightTimeout

from pagepilot.errors import WaitTimeoutError
from pagepilot.tools.base import (
    ARGS,
    ENSURE,
    PREDICATE_BODY,
    TIMEOUT,
    ToolDescriptor,
    ToolResult,
    body_arg,
    enum,
    object_schema,
    string,
    timeout_ms,
    to_json,
)

CAPABILITY = "wait"

_ELEMENT_INFO_JS = """(el) => ({
  tagName: el.tagName,
  id: el.id,
  className: el.className,
  textContent: (el.textContent || '').trim(),
  visible: el.offsetParent !== null,
})"""


async def browser_wait_for_selector(ctx, tab, args) -> ToolResult:
    selector = args["selector"]
    state = args.get("state") or "visible"
    timeout = timeout_ms(ctx, args)
    code = [f"await page.wait_for_selector({selector!r}, state={state!r}, timeout={timeout})"]
    try:
        element = await tab.page.wait_for_selector(selector, state=state, timeout=timeout)
    except PlaywrightTimeout:
        raise WaitTimeoutError(f'selector "{selector}" to be {state}', timeout) from None

    result = {"found": True, "state": state}
    if element is not None and state not in ("detached", "hidden"):
        result["element"] = await element.evaluate(_ELEMENT_INFO_JS)
    return ToolResult.text(to_json(result), code=code)


async def browser_wait_for_function(ctx, tab, args) -> ToolResult:
    timeout = timeout_ms(ctx, args)
    polling = args.get("polling")
    options = {"timeout": timeout}
    if polling is not None:
        options["polling"] = polling
    code = [f"await page.wait_for_function({args['code']!r}, {', '.join(f'{k}={v!r}' for k, v in options.items())})"]
    try:
        handle = await tab.page.wait_for_function(PREDICATE_BODY, arg=body_arg(args), **options)
    except PlaywrightTimeout:
        raise WaitTimeoutError("function to return a truthy value", timeout) from None
    value = await handle.json_value()
    return ToolResult.text(to_json({"success": True, "value": value}), code=code)


async def browser_wait_for_load_state(ctx, tab, args) -> ToolResult:
    state = args.get("state") or "load"
    timeout = timeout_ms(ctx, args)
    try:
        await tab.page.wait_for_load_state(state, timeout=timeout)
    except PlaywrightTimeout:
        raise WaitTimeoutError(f"load state: {state}", timeout) from None
    return ToolResult.text(
        f"Page reached {state} state",
        code=[f"await page.wait_for_load_state({state!r}, timeout={timeout})"],
    )


TOOLS = [
    ToolDescriptor(
        name="browser_wait_for_selector",
        title="Wait for element",
        description="Wait for an element to be attached, detached, visible or hidden.",
        capability=CAPABILITY,
        input_schema=object_schema(
            {
                "selector": string("CSS selector"),
                "state": enum(["attached", "detached", "visible", "hidden"], "State to wait for (default: visible)"),
                "timeout": TIMEOUT,
            },
            required=("selector",),
        ),
        handler=browser_wait_for_selector,
        tab_mode=ENSURE,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_wait_for_function",
        title="Wait for JavaScript condition",
        description="Wait until a JavaScript function body returns a truthy value.",
        capability=CAPABILITY,
        input_schema=object_schema(
            {
                "code": string("JavaScript function body returning truthy when ready"),
                "args": ARGS,
                "timeout": TIMEOUT,
                "polling": {
                    "description": "'raf' (every animation frame) or an interval in milliseconds",
                    "anyOf": [{"type": "string", "enum": ["raf"]}, {"type": "number", "exclusiveMinimum": 0}],
                },
            },
            required=("code",),
        ),
        handler=browser_wait_for_function,
        tab_mode=ENSURE,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_wait_for_load_state",
        title="Wait for page load state",
        description="Wait for the page to reach a load state.",
        capability=CAPABILITY,
        input_schema=object_schema({
            "state": enum(["load", "domcontentloaded", "networkidle"], "Load state (default: load)"),
            "timeout": TIMEOUT,
        }),
        handler=browser_wait_for_load_state,
        tab_mode=ENSURE,
        read_only=True,
    ),
]

"""
PagePilot - JavaScript tools

Evaluate caller code in the page and inject or remove scripts and styles.
Code strings are function bodies: `return` yields the result.
"""

from __future__ import annotations

from pathlib import Path

from pagepilot.errors import ElementNotFound, ValidationError
from pagepilot.tools.base import (
    ARGS,
    ENSURE,
    EVALUATE_BODY,
    EVALUATE_BODY_ON_ELEMENT,
    EVALUATE_BODY_ON_ELEMENTS,
    NO_SIDE_EFFECTS,
    SNAPSHOT,
    SNAPSHOT_AFTER_IDLE,
    ToolDescriptor,
    ToolResult,
    body_arg,
    object_schema,
    render_js_result,
    string,
)

CAPABILITY = "javascript"


# ═══════════════════════════════════════════════════════════════════════════
# Evaluation
# ═══════════════════════════════════════════════════════════════════════════


async def browser_evaluate(ctx, tab, args) -> ToolResult:
    boxed = await tab.page.evaluate(EVALUATE_BODY, body_arg(args))
    return ToolResult.text(
        render_js_result(boxed),
        code=[f"await page.evaluate({args['code']!r}, {args.get('args') or []!r})"],
    )


async def browser_eval_on_selector(ctx, tab, args) -> ToolResult:
    selector = args["selector"]
    if await tab.page.query_selector(selector) is None:
        raise ElementNotFound(selector)
    boxed = await tab.page.eval_on_selector(selector, EVALUATE_BODY_ON_ELEMENT, body_arg(args))
    return ToolResult.text(
        render_js_result(boxed),
        code=[f"await page.eval_on_selector({selector!r}, {args['code']!r}, {args.get('args') or []!r})"],
    )


async def browser_eval_on_selector_all(ctx, tab, args) -> ToolResult:
    selector = args["selector"]
    boxed = await tab.page.eval_on_selector_all(selector, EVALUATE_BODY_ON_ELEMENTS, body_arg(args))
    return ToolResult.text(
        render_js_result(boxed),
        code=[f"await page.eval_on_selector_all({selector!r}, {args['code']!r}, {args.get('args') or []!r})"],
    )


# ═══════════════════════════════════════════════════════════════════════════
# Injection
# ═══════════════════════════════════════════════════════════════════════════


def _check_tag_source(tool: str):
    def check(args: dict):
        if not any(args.get(k) for k in ("url", "path", "content")):
            raise ValidationError(tool, "", "one of url, path or content is required")
        path = args.get("path")
        if path and not Path(path).is_file():
            raise ValidationError(tool, "path", f"file not found: {path}")
    return check


def _tag_options(args: dict, keys: tuple[str, ...]) -> dict:
    return {k: args[k] for k in keys if args.get(k)}


async def browser_add_script_tag(ctx, tab, args) -> ToolResult:
    options = _tag_options(args, ("url", "path", "content", "type"))
    await tab.page.add_script_tag(**options)
    source = f" from {args['url']}" if args.get("url") else ""
    return ToolResult.text(
        f"Script tag added successfully{source}",
        code=[f"await page.add_script_tag({', '.join(f'{k}={v!r}' for k, v in options.items())})"],
    )


async def browser_add_style_tag(ctx, tab, args) -> ToolResult:
    options = _tag_options(args, ("url", "path", "content"))
    await tab.page.add_style_tag(**options)
    source = f" from {args['url']}" if args.get("url") else ""
    return ToolResult.text(
        f"Style tag added successfully{source}",
        code=[f"await page.add_style_tag({', '.join(f'{k}={v!r}' for k, v in options.items())})"],
    )


async def browser_add_init_script(ctx, tab, args) -> ToolResult:
    await tab.page.add_init_script(script=args["script"])
    return ToolResult.text(
        "Initialization script added successfully. It will run on every page navigation.",
        code=[f"await page.add_init_script(script={args['script']!r})"],
    )


_REMOVE_SCRIPTS_JS = """(selector) => {
  const scripts = document.querySelectorAll(selector);
  scripts.forEach(script => script.remove());
  return scripts.length;
}"""


async def browser_remove_scripts(ctx, tab, args) -> ToolResult:
    selector = args["selector"]
    removed = await tab.page.evaluate(_REMOVE_SCRIPTS_JS, selector)
    return ToolResult.text(
        f"Removed {removed} script(s) matching selector: {selector}",
        code=[f"await page.evaluate(REMOVE_SCRIPTS, {selector!r})"],
    )


# ═══════════════════════════════════════════════════════════════════════════
# Descriptors
# ═══════════════════════════════════════════════════════════════════════════

CODE = string("JavaScript function body; use `return` to produce a result")
SELECTOR = string("CSS selector")

TOOLS = [
    ToolDescriptor(
        name="browser_evaluate",
        title="Execute JavaScript",
        description="Run a JavaScript function body in the page. Arguments are bound as arg0, arg1, ...",
        capability=CAPABILITY,
        input_schema=object_schema({"code": CODE, "args": ARGS}, required=("code",)),
        handler=browser_evaluate,
        policy=SNAPSHOT,
        tab_mode=ENSURE,
    ),
    ToolDescriptor(
        name="browser_eval_on_selector",
        title="Execute JavaScript on selector",
        description="Run a function body on the first element matching the selector (bound as `element`).",
        capability=CAPABILITY,
        input_schema=object_schema({"selector": SELECTOR, "code": CODE, "args": ARGS}, required=("selector", "code")),
        handler=browser_eval_on_selector,
        policy=SNAPSHOT,
        tab_mode=ENSURE,
    ),
    ToolDescriptor(
        name="browser_eval_on_selector_all",
        title="Execute JavaScript on all matching elements",
        description="Run a function body on all elements matching the selector (bound as `elements`).",
        capability=CAPABILITY,
        input_schema=object_schema({"selector": SELECTOR, "code": CODE, "args": ARGS}, required=("selector", "code")),
        handler=browser_eval_on_selector_all,
        policy=SNAPSHOT,
        tab_mode=ENSURE,
    ),
    ToolDescriptor(
        name="browser_add_script_tag",
        title="Add script tag",
        description="Add a <script> tag from a URL, a local file or inline content.",
        capability=CAPABILITY,
        input_schema=object_schema({
            "url": string("URL of the script"),
            "path": string("Path to a local script file"),
            "content": string("Inline JavaScript"),
            "type": string("Script type attribute, e.g. module"),
        }),
        handler=browser_add_script_tag,
        policy=SNAPSHOT_AFTER_IDLE,
        tab_mode=ENSURE,
        check=_check_tag_source("browser_add_script_tag"),
    ),
    ToolDescriptor(
        name="browser_add_style_tag",
        title="Add style tag",
        description="Add a stylesheet from a URL, a local file or inline content.",
        capability=CAPABILITY,
        input_schema=object_schema({
            "url": string("URL of the stylesheet"),
            "path": string("Path to a local CSS file"),
            "content": string("Inline CSS"),
        }),
        handler=browser_add_style_tag,
        policy=SNAPSHOT_AFTER_IDLE,
        tab_mode=ENSURE,
        check=_check_tag_source("browser_add_style_tag"),
    ),
    ToolDescriptor(
        name="browser_add_init_script",
        title="Add initialization script",
        description="Add a script that runs in every new document of the tab before page scripts.",
        capability=CAPABILITY,
        input_schema=object_schema({"script": string("JavaScript source")}, required=("script",)),
        handler=browser_add_init_script,
        policy=NO_SIDE_EFFECTS,
        tab_mode=ENSURE,
    ),
    ToolDescriptor(
        name="browser_remove_scripts",
        title="Remove scripts",
        description="Remove <script> elements matching a selector.",
        capability=CAPABILITY,
        input_schema=object_schema({"selector": SELECTOR}, required=("selector",)),
        handler=browser_remove_scripts,
        policy=SNAPSHOT,
        tab_mode=ENSURE,
    ),
]

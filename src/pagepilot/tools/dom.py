"""
PagePilot - DOM tools

Query elements and read or set their attributes and text.
"""

from __future__ import annotations

from pagepilot.errors import ElementNotFound
from pagepilot.tools.base import (
    CURRENT,
    SNAPSHOT,
    ToolDescriptor,
    ToolResult,
    boolean,
    enum,
    integer,
    object_schema,
    string,
)

CAPABILITY = "dom"

_PROPERTIES_JS = """(el) => {
  const r = el.getBoundingClientRect();
  return {
    tagName: el.tagName,
    id: el.id,
    className: el.className,
    textContent: (el.textContent || '').trim(),
    visible: el.offsetParent !== null,
    boundingBox: {x: r.x, y: r.y, width: r.width, height: r.height},
    attributes: Object.fromEntries(Array.from(el.attributes).map(a => [a.name, a.value])),
  };
}"""

_SUMMARY_JS = """(el, index) => ({
  index,
  tagName: el.tagName,
  id: el.id,
  className: el.className,
  textContent: (el.textContent || '').trim(),
  visible: el.offsetParent !== null,
  attributes: Object.fromEntries(Array.from(el.attributes).map(a => [a.name, a.value])),
})"""

_SET_ATTRIBUTE_JS = "(el, {attr, val}) => el.setAttribute(attr, val)"
_SET_ATTRIBUTE_ALL_JS = "(els, {attr, val}) => { els.forEach(el => el.setAttribute(attr, val)); return els.length; }"


async def browser_query_selector(ctx, tab, args) -> ToolResult:
    selector = args["selector"]
    return_type = args.get("returnType") or "properties"
    locator = tab.page.locator(selector)

    if return_type == "count":
        return ToolResult.json(await locator.count(), code=[f"await page.locator({selector!r}).count()"])

    exists = await locator.count() > 0
    if return_type == "exists":
        return ToolResult.json(exists, code=[f"await page.locator({selector!r}).count() > 0"])
    if not exists:
        return ToolResult.json(None)
    properties = await locator.first.evaluate(_PROPERTIES_JS)
    return ToolResult.json(properties, code=[f"await page.locator({selector!r}).first.evaluate(...)"])


async def browser_query_selector_all(ctx, tab, args) -> ToolResult:
    selector = args["selector"]
    limit = args.get("limit")
    elements = await tab.page.locator(selector).all()
    if limit:
        elements = elements[:limit]
    data = [await element.evaluate(_SUMMARY_JS, i) for i, element in enumerate(elements)]
    return ToolResult.json(data, code=[f"await page.locator({selector!r}).all()"])


async def browser_get_attribute(ctx, tab, args) -> ToolResult:
    selector, attribute = args["selector"], args["attribute"]
    locator = tab.page.locator(selector)
    if args.get("all"):
        values = [await el.get_attribute(attribute) for el in await locator.all()]
        return ToolResult.json(values, code=[f"[await el.get_attribute({attribute!r}) for el in await page.locator({selector!r}).all()]"])
    if await locator.count() == 0:
        return ToolResult.json(None)
    value = await locator.first.get_attribute(attribute)
    return ToolResult.json(value, code=[f"await page.locator({selector!r}).first.get_attribute({attribute!r})"])


async def browser_set_attribute(ctx, tab, args) -> ToolResult:
    selector, attribute, value = args["selector"], args["attribute"], args["value"]
    locator = tab.page.locator(selector)
    payload = {"attr": attribute, "val": value}
    if args.get("all"):
        count = await locator.evaluate_all(_SET_ATTRIBUTE_ALL_JS, payload)
        return ToolResult.text(
            f'Set attribute "{attribute}" to "{value}" on {count} element(s)',
            code=[f"await page.locator({selector!r}).evaluate_all(SET_ATTRIBUTE, {payload!r})"],
        )
    if await locator.count() == 0:
        raise ElementNotFound(selector)
    await locator.first.evaluate(_SET_ATTRIBUTE_JS, payload)
    return ToolResult.text(
        f'Set attribute "{attribute}" to "{value}"',
        code=[f"await page.locator({selector!r}).first.evaluate(SET_ATTRIBUTE, {payload!r})"],
    )


async def browser_get_text_content(ctx, tab, args) -> ToolResult:
    selector = args["selector"]
    locator = tab.page.locator(selector)
    if args.get("all"):
        texts = await locator.all_text_contents()
        return ToolResult.json([t.strip() for t in texts], code=[f"await page.locator({selector!r}).all_text_contents()"])
    if await locator.count() == 0:
        return ToolResult.json("")
    text = await locator.first.text_content()
    return ToolResult.json((text or "").strip(), code=[f"await page.locator({selector!r}).first.text_content()"])


SELECTOR = string("CSS selector")
ALL = boolean("Apply to all matching elements instead of the first")

TOOLS = [
    ToolDescriptor(
        name="browser_query_selector",
        title="Find single element",
        description="Find the first element matching a selector: existence, match count or its properties.",
        capability=CAPABILITY,
        input_schema=object_schema(
            {
                "selector": SELECTOR,
                "returnType": enum(["exists", "count", "properties"], "What to return (default: properties)"),
            },
            required=("selector",),
        ),
        handler=browser_query_selector,
        tab_mode=CURRENT,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_query_selector_all",
        title="Find all elements",
        description="Summaries of all elements matching a selector.",
        capability=CAPABILITY,
        input_schema=object_schema(
            {"selector": SELECTOR, "limit": integer("Maximum number of elements to return", minimum=1)},
            required=("selector",),
        ),
        handler=browser_query_selector_all,
        tab_mode=CURRENT,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_get_attribute",
        title="Get element attribute",
        description="Read an attribute from the first (or every) matching element.",
        capability=CAPABILITY,
        input_schema=object_schema(
            {"selector": SELECTOR, "attribute": string("Attribute name"), "all": ALL},
            required=("selector", "attribute"),
        ),
        handler=browser_get_attribute,
        tab_mode=CURRENT,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_set_attribute",
        title="Set element attribute",
        description="Set an attribute on the first (or every) matching element.",
        capability=CAPABILITY,
        input_schema=object_schema(
            {"selector": SELECTOR, "attribute": string("Attribute name"), "value": string("Attribute value"), "all": ALL},
            required=("selector", "attribute", "value"),
        ),
        handler=browser_set_attribute,
        policy=SNAPSHOT,
        tab_mode=CURRENT,
    ),
    ToolDescriptor(
        name="browser_get_text_content",
        title="Get element text",
        description="Trimmed text content of the first (or every) matching element.",
        capability=CAPABILITY,
        input_schema=object_schema({"selector": SELECTOR, "all": ALL}, required=("selector",)),
        handler=browser_get_text_content,
        tab_mode=CURRENT,
        read_only=True,
    ),
]

"""
PagePilot - Page information tools

Title, URL, HTML and performance metrics of the current page.
"""

from __future__ import annotations

from pagepilot.errors import ElementNotFound
from pagepilot.tools.base import (
    CURRENT,
    ToolDescriptor,
    ToolResult,
    boolean,
    enum,
    object_schema,
    string,
)

CAPABILITY = "info"

_METRICS_JS = """(type) => {
  const all = type === 'all';
  const nav = performance.getEntriesByType('navigation')[0];
  const paint = performance.getEntriesByType('paint');
  const result = {};

  if ((all || type === 'performance') && nav) {
    result.performance = {
      domContentLoaded: Math.round(nav.domContentLoadedEventEnd - nav.domContentLoadedEventStart),
      loadComplete: Math.round(nav.loadEventEnd - nav.loadEventStart),
      domInteractive: Math.round(nav.domInteractive - nav.fetchStart),
      timeToFirstByte: Math.round(nav.responseStart - nav.requestStart),
      totalLoadTime: Math.round(nav.loadEventEnd - nav.fetchStart),
      firstPaint: (paint.find(p => p.name === 'first-paint') || {}).startTime || 0,
      firstContentfulPaint: (paint.find(p => p.name === 'first-contentful-paint') || {}).startTime || 0,
    };
  }

  if ((all || type === 'memory') && performance.memory) {
    result.memory = {
      usedJSHeapSize: Math.round(performance.memory.usedJSHeapSize / 1024 / 1024),
      totalJSHeapSize: Math.round(performance.memory.totalJSHeapSize / 1024 / 1024),
      jsHeapSizeLimit: Math.round(performance.memory.jsHeapSizeLimit / 1024 / 1024),
      unit: 'MB',
    };
  }

  if ((all || type === 'navigation') && nav) {
    result.navigation = {
      type: nav.type,
      redirectCount: nav.redirectCount,
      transferSize: nav.transferSize,
      encodedBodySize: nav.encodedBodySize,
      decodedBodySize: nav.decodedBodySize,
    };
  }

  if (all) {
    const resources = performance.getEntriesByType('resource');
    const byType = {};
    for (const r of resources) {
      let ext = 'other';
      try { ext = new URL(r.name).pathname.split('.').pop() || 'other'; } catch (e) {}
      byType[ext] = (byType[ext] || 0) + 1;
    }
    result.resources = {total: resources.length, byType};
  }
  return result;
}"""


async def browser_get_title(ctx, tab, args) -> ToolResult:
    return ToolResult.text(await tab.page.title(), code=["await page.title()"])


async def browser_get_url(ctx, tab, args) -> ToolResult:
    return ToolResult.text(tab.page.url, code=["page.url"])


async def browser_get_html(ctx, tab, args) -> ToolResult:
    selector = args.get("selector")
    if not selector:
        return ToolResult.text(await tab.page.content(), code=["await page.content()"])

    outer = args.get("outer", True)
    locator = tab.page.locator(selector).first
    if await locator.count() == 0:
        raise ElementNotFound(selector)
    html = await locator.evaluate("(el, outer) => outer ? el.outerHTML : el.innerHTML", outer)
    prop = "outerHTML" if outer else "innerHTML"
    return ToolResult.text(html, code=[f"await page.locator({selector!r}).first.evaluate('el => el.{prop}')"])


async def browser_get_metrics(ctx, tab, args) -> ToolResult:
    kind = args.get("type") or "all"
    metrics = await tab.page.evaluate(_METRICS_JS, kind)
    return ToolResult.json(metrics, code=[f"await page.evaluate(METRICS, {kind!r})"])


TOOLS = [
    ToolDescriptor(
        name="browser_get_title",
        title="Get page title",
        description="Title of the current page.",
        capability=CAPABILITY,
        input_schema=object_schema(),
        handler=browser_get_title,
        tab_mode=CURRENT,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_get_url",
        title="Get current URL",
        description="URL of the current page.",
        capability=CAPABILITY,
        input_schema=object_schema(),
        handler=browser_get_url,
        tab_mode=CURRENT,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_get_html",
        title="Get page HTML",
        description="HTML of the whole page, or of the first element matching a selector.",
        capability=CAPABILITY,
        input_schema=object_schema({
            "selector": string("CSS selector of the element"),
            "outer": boolean("Include the element's own tag (default: true)"),
        }),
        handler=browser_get_html,
        tab_mode=CURRENT,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_get_metrics",
        title="Get page metrics",
        description="Performance, memory and navigation metrics of the current page.",
        capability=CAPABILITY,
        input_schema=object_schema({
            "type": enum(["performance", "memory", "navigation", "all"], "Metrics to return (default: all)"),
        }),
        handler=browser_get_metrics,
        tab_mode=CURRENT,
        read_only=True,
    ),
]

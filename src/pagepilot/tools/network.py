"""
PagePilot - Network tools

Request interception (route / unroute), waits on traffic and queries over
the tab's request log.
"""

from __future__ import annotations

import pydantic

from pagepilot.errors import ValidationError, WaitTimeoutError
from pagepilot.network import REQUEST, RESPONSE, Matched, RequestFilter, ResponseFilter
from pagepilot.routes import RouteRegistry, describe_action, parse_route_handler
from pagepilot.tools.base import (
    CURRENT,
    ENSURE,
    STRING_MAP,
    TIMEOUT,
    ToolDescriptor,
    ToolResult,
    boolean,
    integer,
    object_schema,
    string,
    timeout_ms,
)

CAPABILITY = "network"


# ═══════════════════════════════════════════════════════════════════════════
# Routes
# ═══════════════════════════════════════════════════════════════════════════


def _check_route(args: dict):
    handler = args["handler"]
    try:
        parse_route_handler(handler)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        key = "fulfill" if handler.get("fulfill") is not None else "continue"
        where = ".".join(["handler", key, *(str(p) for p in first["loc"])])
        raise ValidationError("browser_route", where, first["msg"]) from None


async def browser_route(ctx, tab, args) -> ToolResult:
    pattern = args["pattern"]
    action = parse_route_handler(args["handler"])
    await tab.routes.add_route(pattern, action)
    code = [
        f"# Route network requests matching: {pattern}",
        f"await page.route({pattern!r}, lambda route: route.{_route_call(action)})",
    ]
    return ToolResult.text(f"Route handler added for pattern: {pattern}", code=code)


def _route_call(action) -> str:
    if action.kind == "abort":
        return "abort()"
    if action.kind == "fulfill":
        return f"fulfill(status={action.status}, body={action.body!r}, headers={action.merged_headers()!r})"
    overrides = ", ".join(f"{k}={v!r}" for k, v in action.overrides().items())
    return f"continue_({overrides})"


async def browser_unroute(ctx, tab, args) -> ToolResult:
    pattern = args["pattern"]
    removed = await tab.routes.remove_route(pattern)
    code = [f"await page.unroute({pattern!r})"]
    if not removed:
        return ToolResult.text(f"No route handler registered for pattern: {pattern}", code=code)
    return ToolResult.text(f"Route handler removed for pattern: {pattern}", code=code)


async def browser_route_list(ctx, tab, args) -> ToolResult:
    return ToolResult.json({
        "precedence": RouteRegistry.PRECEDENCE,
        "routes": [{"pattern": r.pattern, "handler": describe_action(r.action)} for r in tab.routes.rules],
    })


# ═══════════════════════════════════════════════════════════════════════════
# Waits
# ═══════════════════════════════════════════════════════════════════════════


async def browser_wait_for_request(ctx, tab, args) -> ToolResult:
    pattern = args["urlPattern"]
    timeout = timeout_ms(ctx, args)
    outcome = await tab.requests.wait_for(REQUEST, pattern, timeout)
    if not isinstance(outcome, Matched):
        raise WaitTimeoutError(f"request matching: {pattern}", timeout)
    entry = outcome.value
    return ToolResult.json(
        {
            "url": entry.url,
            "method": entry.method,
            "headers": entry.headers,
            "postData": entry.post_data,
            "resourceType": entry.resource_type,
            "isNavigationRequest": entry.is_navigation,
        },
        code=[f"request = await page.wait_for_event('request', lambda r: ..., timeout={timeout})  # {pattern}"],
    )


async def browser_wait_for_response(ctx, tab, args) -> ToolResult:
    pattern = args["urlPattern"]
    timeout = timeout_ms(ctx, args)
    outcome = await tab.requests.wait_for(RESPONSE, pattern, timeout)
    if not isinstance(outcome, Matched):
        raise WaitTimeoutError(f"response matching: {pattern}", timeout)
    info = outcome.value
    body = body_error = None
    try:
        body = await info.response.text()
    except Exception as e:
        body_error = str(e) or "Failed to get response body"
    return ToolResult.json(
        {
            "url": info.url,
            "status": info.status,
            "statusText": info.status_text,
            "headers": info.headers,
            "body": body,
            "bodyError": body_error,
            "ok": info.ok,
        },
        code=[f"response = await page.wait_for_event('response', lambda r: ..., timeout={timeout})  # {pattern}"],
    )


# ═══════════════════════════════════════════════════════════════════════════
# Log queries
# ═══════════════════════════════════════════════════════════════════════════


async def browser_get_requests(ctx, tab, args) -> ToolResult:
    flt = args.get("filter") or {}
    entries = tab.requests.get_requests(RequestFilter(
        url=flt.get("url"),
        method=flt.get("method"),
        resource_type=flt.get("resourceType"),
    ))
    return ToolResult.json([e.to_dict() for e in entries])


async def browser_get_responses(ctx, tab, args) -> ToolResult:
    flt = args.get("filter") or {}
    status_range = flt.get("statusRange") or {}
    infos = tab.requests.get_responses(ResponseFilter(
        url=flt.get("url"),
        status=flt.get("status"),
        status_min=status_range.get("min"),
        status_max=status_range.get("max"),
    ))
    data = []
    for info in infos:
        body_size = None
        try:
            body_size = len(await info.response.body())
        except Exception:
            # Bodies of redirects and evicted resources are not retained.
            pass
        data.append({
            "url": info.url,
            "status": info.status,
            "statusText": info.status_text,
            "headers": info.headers,
            "ok": info.ok,
            "bodySize": body_size,
            "contentType": info.headers.get("content-type"),
        })
    return ToolResult.json(data)


# ═══════════════════════════════════════════════════════════════════════════
# Descriptors
# ═══════════════════════════════════════════════════════════════════════════

PATTERN = string("URL glob: * matches within a path segment, ** across segments")

ROUTE_HANDLER = {
    "type": "object",
    "description": "How to handle matching requests: abort, fulfill or continue",
    "properties": {
        "abort": boolean("Abort the request"),
        "fulfill": {
            "type": "object",
            "description": "Fulfill with a synthetic response",
            "properties": {
                "status": integer("Response status code"),
                "body": string("Response body"),
                "headers": {**STRING_MAP, "description": "Response headers"},
                "contentType": string("Content-Type header"),
            },
            "additionalProperties": False,
        },
        "continue": {
            "type": "object",
            "description": "Continue the request with overrides",
            "properties": {
                "url": string("Override URL"),
                "method": string("Override method"),
                "headers": {**STRING_MAP, "description": "Override headers"},
                "postData": string("Override post data"),
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}

REQUEST_FILTER = {
    "type": "object",
    "description": "Optional filters, combined with AND",
    "properties": {
        "url": PATTERN,
        "method": string("HTTP method"),
        "resourceType": string("Resource type (document, script, xhr, fetch, ...)"),
    },
    "additionalProperties": False,
}

RESPONSE_FILTER = {
    "type": "object",
    "description": "Optional filters, combined with AND",
    "properties": {
        "url": PATTERN,
        "status": integer("Exact status code"),
        "statusRange": {
            "type": "object",
            "description": "Inclusive status code range",
            "properties": {
                "min": integer("Minimum status code"),
                "max": integer("Maximum status code"),
            },
            "required": ["min", "max"],
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}

TOOLS = [
    ToolDescriptor(
        name="browser_route",
        title="Intercept network requests",
        description=(
            "Intercept requests matching a URL glob and abort, fulfill or continue them. "
            "When several routes match, the most recently added wins."
        ),
        capability=CAPABILITY,
        input_schema=object_schema({"pattern": PATTERN, "handler": ROUTE_HANDLER}, required=("pattern", "handler")),
        handler=browser_route,
        tab_mode=ENSURE,
        check=_check_route,
        glob_fields=("pattern",),
    ),
    ToolDescriptor(
        name="browser_unroute",
        title="Remove network route handler",
        description="Remove the route registered for exactly this pattern.",
        capability=CAPABILITY,
        input_schema=object_schema({"pattern": PATTERN}, required=("pattern",)),
        handler=browser_unroute,
        tab_mode=ENSURE,
        glob_fields=("pattern",),
    ),
    ToolDescriptor(
        name="browser_route_list",
        title="List network routes",
        description="List registered routes in the order they are evaluated.",
        capability=CAPABILITY,
        input_schema=object_schema(),
        handler=browser_route_list,
        tab_mode=CURRENT,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_wait_for_request",
        title="Wait for request",
        description="Wait for the next request whose URL matches the glob.",
        capability=CAPABILITY,
        input_schema=object_schema({"urlPattern": PATTERN, "timeout": TIMEOUT}, required=("urlPattern",)),
        handler=browser_wait_for_request,
        tab_mode=ENSURE,
        serialized=False,
        read_only=True,
        glob_fields=("urlPattern",),
    ),
    ToolDescriptor(
        name="browser_wait_for_response",
        title="Wait for response",
        description="Wait for the next response whose URL matches the glob, including its body.",
        capability=CAPABILITY,
        input_schema=object_schema({"urlPattern": PATTERN, "timeout": TIMEOUT}, required=("urlPattern",)),
        handler=browser_wait_for_response,
        tab_mode=ENSURE,
        serialized=False,
        read_only=True,
        glob_fields=("urlPattern",),
    ),
    ToolDescriptor(
        name="browser_get_requests",
        title="Get network requests",
        description="List requests made by the current tab, in arrival order.",
        capability=CAPABILITY,
        input_schema=object_schema({"filter": REQUEST_FILTER}),
        handler=browser_get_requests,
        tab_mode=CURRENT,
        read_only=True,
        glob_fields=("filter.url",),
    ),
    ToolDescriptor(
        name="browser_get_responses",
        title="Get network responses",
        description="List responses received by the current tab, in arrival order.",
        capability=CAPABILITY,
        input_schema=object_schema({"filter": RESPONSE_FILTER}),
        handler=browser_get_responses,
        tab_mode=CURRENT,
        read_only=True,
        glob_fields=("filter.url",),
    ),
]

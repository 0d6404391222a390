"""
PagePilot - Storage tools

localStorage / sessionStorage of the current page, and the browser
context's cookie jar.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pagepilot.errors import ValidationError
from pagepilot.tools.base import (
    ENSURE,
    SNAPSHOT,
    STRING_MAP,
    ToolDescriptor,
    ToolResult,
    boolean,
    enum,
    object_schema,
    string,
    to_json,
)

CAPABILITY = "storage"


# ═══════════════════════════════════════════════════════════════════════════
# Web storage
# ═══════════════════════════════════════════════════════════════════════════

_GET_STORAGE_JS = """(type) => {
  const storage = type === 'local' ? localStorage : sessionStorage;
  const data = {};
  for (let i = 0; i < storage.length; i++) {
    const key = storage.key(i);
    if (key !== null) {
      const value = storage.getItem(key);
      if (value !== null) data[key] = value;
    }
  }
  return data;
}"""

_SET_STORAGE_JS = """({type, data, clear}) => {
  const storage = type === 'local' ? localStorage : sessionStorage;
  if (clear) storage.clear();
  for (const [key, value] of Object.entries(data)) storage.setItem(key, value);
}"""

_CLEAR_STORAGE_JS = """({type, keys}) => {
  const areas = [];
  if (type === 'local' || type === 'all') areas.push(['local', localStorage]);
  if (type === 'session' || type === 'all') areas.push(['session', sessionStorage]);
  const cleared = {local: 0, session: 0};
  for (const [name, storage] of areas) {
    if (keys) {
      for (const key of keys) {
        if (storage.getItem(key) !== null) {
          storage.removeItem(key);
          cleared[name]++;
        }
      }
    } else {
      cleared[name] = storage.length;
      storage.clear();
    }
  }
  return cleared;
}"""


async def browser_get_storage(ctx, tab, args) -> ToolResult:
    kind = args["type"]
    data = await tab.page.evaluate(_GET_STORAGE_JS, kind)
    return ToolResult.json(data, code=[f"await page.evaluate(GET_STORAGE, {kind!r})"])


async def browser_set_storage(ctx, tab, args) -> ToolResult:
    kind = args["type"]
    data = args["data"]
    clear = bool(args.get("clear"))
    await tab.page.evaluate(_SET_STORAGE_JS, {"type": kind, "data": data, "clear": clear})
    message = f"Set {len(data)} item(s) in {kind}Storage"
    if clear:
        message += " (cleared existing data)"
    code = [f"await page.evaluate(SET_STORAGE, {{'type': {kind!r}, 'data': {data!r}, 'clear': {clear}}})"]
    return ToolResult.text(message, code=code)


async def browser_clear_storage(ctx, tab, args) -> ToolResult:
    kind = args.get("type") or "all"
    keys = args.get("keys")
    cleared = await tab.page.evaluate(_CLEAR_STORAGE_JS, {"type": kind, "keys": keys})
    local, session = cleared.get("local", 0), cleared.get("session", 0)

    if keys is not None:
        message = f"Removed {local + session} item(s)"
        if kind == "all":
            message += f" (localStorage: {local}, sessionStorage: {session})"
    elif kind == "all":
        message = f"Cleared all storage (localStorage: {local} items, sessionStorage: {session} items)"
    elif kind == "local":
        message = f"Cleared localStorage ({local} items)"
    else:
        message = f"Cleared sessionStorage ({session} items)"
    code = [f"await page.evaluate(CLEAR_STORAGE, {{'type': {kind!r}, 'keys': {keys!r}}})"]
    return ToolResult.text(message, code=code)


# ═══════════════════════════════════════════════════════════════════════════
# Cookies
# ═══════════════════════════════════════════════════════════════════════════


class Cookie(BaseModel):
    """A cookie to add to the browser context."""
    name: str
    value: str
    url: str | None = None
    domain: str | None = None
    path: str | None = None
    expires: float | None = None
    http_only: bool | None = Field(default=None, alias="httpOnly")
    secure: bool | None = None
    same_site: Literal["Strict", "Lax", "None"] | None = Field(default=None, alias="sameSite")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @model_validator(mode="after")
    def needs_url_or_domain(self) -> "Cookie":
        if not self.url and not self.domain:
            raise ValueError("either url or domain is required")
        if self.domain and self.path is None:
            self.path = "/"
        return self

    def to_playwright(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _domain_matches(cookie_domain: str, domain: str) -> bool:
    return cookie_domain == domain or cookie_domain == f".{domain}"


def _filter_cookies(cookies: list[dict], name: str | None = None, domain: str | None = None,
                    path: str | None = None) -> list[dict]:
    if name is not None:
        cookies = [c for c in cookies if c.get("name") == name]
    if domain is not None:
        cookies = [c for c in cookies if _domain_matches(c.get("domain", ""), domain)]
    if path is not None:
        cookies = [c for c in cookies if c.get("path") == path]
    return cookies


def _check_cookies(args: dict):
    for i, raw in enumerate(args["cookies"]):
        if not raw.get("url") and not raw.get("domain"):
            raise ValidationError("browser_set_cookies", f"cookies.{i}", "either url or domain is required")


async def browser_get_cookies(ctx, tab, args) -> ToolResult:
    urls = args.get("urls")
    context = tab.page.context
    cookies = await context.cookies(urls) if urls else await context.cookies()
    cookies = _filter_cookies(cookies, name=args.get("name"), domain=args.get("domain"))
    return ToolResult.json(cookies, code=[f"await context.cookies({urls!r})" if urls else "await context.cookies()"])


async def browser_set_cookies(ctx, tab, args) -> ToolResult:
    cookies = [Cookie.model_validate(c).to_playwright() for c in args["cookies"]]
    await tab.page.context.add_cookies(cookies)
    return ToolResult.text(f"Set {len(cookies)} cookie(s)", code=[f"await context.add_cookies({to_json(cookies)})"])


async def browser_delete_cookies(ctx, tab, args) -> ToolResult:
    context = tab.page.context
    if args.get("all"):
        await context.clear_cookies()
        return ToolResult.text("Deleted all cookies", code=["await context.clear_cookies()"])

    all_cookies = await context.cookies()
    doomed = _filter_cookies(all_cookies, name=args.get("name"), domain=args.get("domain"), path=args.get("path"))
    # No per-cookie delete in the driver: clear the jar, put back the rest.
    if doomed:
        keep = [c for c in all_cookies if c not in doomed]
        await context.clear_cookies()
        if keep:
            await context.add_cookies(keep)
    return ToolResult.text(
        f"Deleted {len(doomed)} cookie(s)",
        code=["await context.clear_cookies()", "await context.add_cookies(kept_cookies)"],
    )


# ═══════════════════════════════════════════════════════════════════════════
# Descriptors
# ═══════════════════════════════════════════════════════════════════════════

STORAGE_TYPE = enum(["local", "session"], "Storage area")

COOKIE = {
    "type": "object",
    "properties": {
        "name": string("Cookie name"),
        "value": string("Cookie value"),
        "url": string("URL the cookie applies to (alternative to domain)"),
        "domain": string("Cookie domain"),
        "path": string("Cookie path (default: / when domain is given)"),
        "expires": {"type": "number", "description": "Unix timestamp when the cookie expires"},
        "httpOnly": boolean("HttpOnly flag"),
        "secure": boolean("Secure flag"),
        "sameSite": enum(["Strict", "Lax", "None"], "SameSite attribute"),
    },
    "required": ["name", "value"],
    "additionalProperties": False,
}

TOOLS = [
    ToolDescriptor(
        name="browser_get_storage",
        title="Get storage data",
        description="Get localStorage or sessionStorage contents of the current page.",
        capability=CAPABILITY,
        input_schema=object_schema({"type": STORAGE_TYPE}, required=("type",)),
        handler=browser_get_storage,
        tab_mode=ENSURE,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_set_storage",
        title="Set storage data",
        description="Set key/value pairs in localStorage or sessionStorage.",
        capability=CAPABILITY,
        input_schema=object_schema(
            {
                "type": STORAGE_TYPE,
                "data": {**STRING_MAP, "description": "Key/value pairs to set"},
                "clear": boolean("Clear existing items first"),
            },
            required=("type", "data"),
        ),
        handler=browser_set_storage,
        policy=SNAPSHOT,
        tab_mode=ENSURE,
    ),
    ToolDescriptor(
        name="browser_clear_storage",
        title="Clear storage",
        description="Clear localStorage, sessionStorage or both, or remove only the given keys.",
        capability=CAPABILITY,
        input_schema=object_schema({
            "type": enum(["local", "session", "all"], "Storage area (default: all)"),
            "keys": {"type": "array", "items": {"type": "string"}, "description": "Only remove these keys"},
        }),
        handler=browser_clear_storage,
        policy=SNAPSHOT,
        tab_mode=ENSURE,
    ),
    ToolDescriptor(
        name="browser_get_cookies",
        title="Get cookies",
        description="Get cookies of the browser context, optionally filtered.",
        capability=CAPABILITY,
        input_schema=object_schema({
            "urls": {"type": "array", "items": {"type": "string"}, "description": "Only cookies for these URLs"},
            "name": string("Cookie name"),
            "domain": string("Cookie domain (matches d and .d)"),
        }),
        handler=browser_get_cookies,
        tab_mode=ENSURE,
        read_only=True,
    ),
    ToolDescriptor(
        name="browser_set_cookies",
        title="Set cookies",
        description="Add cookies to the browser context. Each cookie needs url or domain.",
        capability=CAPABILITY,
        input_schema=object_schema(
            {"cookies": {"type": "array", "items": COOKIE, "description": "Cookies to set"}},
            required=("cookies",),
        ),
        handler=browser_set_cookies,
        tab_mode=ENSURE,
        check=_check_cookies,
    ),
    ToolDescriptor(
        name="browser_delete_cookies",
        title="Delete cookies",
        description="Delete cookies by name, domain and path, or all of them.",
        capability=CAPABILITY,
        input_schema=object_schema({
            "name": string("Cookie name"),
            "domain": string("Cookie domain (matches d and .d)"),
            "path": string("Cookie path"),
            "all": boolean("Delete every cookie, ignoring the other filters"),
        }),
        handler=browser_delete_cookies,
        tab_mode=ENSURE,
    ),
]

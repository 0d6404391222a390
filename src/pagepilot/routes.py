"""
PagePilot - Route registry

Per-tab request interception rules. Rules are an ordered list consulted
for every intercepted request; the first match decides:

    abort     the request fails in the page
    fulfill   the page gets a synthetic response
    continue  the request goes out, optionally rewritten

A single catch-all driver route is installed when the first rule is added
and removed when the last rule goes, so a tab without rules is never
intercepted at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from pagepilot.patterns import compile_glob, url_matches

logger = logging.getLogger("pagepilot.routes")

CATCH_ALL = "**/*"


# ═══════════════════════════════════════════════════════════════════════════
# Route decisions
# ═══════════════════════════════════════════════════════════════════════════


class AbortAction(BaseModel):
    """Fail the request with a network error."""
    kind: Literal["abort"] = "abort"
    error_code: str | None = Field(default=None, alias="errorCode")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    async def apply(self, route: Any):
        if self.error_code:
            await route.abort(self.error_code)
        else:
            await route.abort()


class FulfillAction(BaseModel):
    """Answer the request with a synthetic response."""
    kind: Literal["fulfill"] = "fulfill"
    status: int = 200
    body: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    content_type: str | None = Field(default=None, alias="contentType")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    def merged_headers(self) -> dict[str, str]:
        """Response headers with ``contentType`` folded in as content-type."""
        headers = dict(self.headers)
        if self.content_type:
            for key in [k for k in headers if k.lower() == "content-type"]:
                del headers[key]
            headers["content-type"] = self.content_type
        return headers

    async def apply(self, route: Any):
        await route.fulfill(status=self.status, body=self.body, headers=self.merged_headers())


class ContinueAction(BaseModel):
    """Let the request through, rewriting whatever overrides are set."""
    kind: Literal["continue"] = "continue"
    url: str | None = None
    method: str | None = None
    headers: dict[str, str] | None = None
    post_data: str | None = Field(default=None, alias="postData")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    def overrides(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in (
                ("url", self.url),
                ("method", self.method),
                ("headers", self.headers),
                ("post_data", self.post_data),
            )
            if value is not None
        }

    async def apply(self, route: Any):
        await route.continue_(**self.overrides())


RouteAction = Union[AbortAction, FulfillAction, ContinueAction]


def parse_route_handler(handler: dict[str, Any]) -> RouteAction:
    """Build a decision from the tool-level ``handler`` object.

    ``abort`` wins over ``fulfill``, which wins over ``continue``; an empty
    handler continues unmodified.
    """
    if handler.get("abort"):
        return AbortAction()
    if handler.get("fulfill") is not None:
        return FulfillAction.model_validate(handler["fulfill"])
    if handler.get("continue") is not None:
        return ContinueAction.model_validate(handler["continue"])
    return ContinueAction()


def describe_action(action: RouteAction) -> dict[str, Any]:
    """JSON-able view of a decision, in the tool argument vocabulary."""
    if isinstance(action, AbortAction):
        return {"abort": True}
    payload = action.model_dump(by_alias=True, exclude_none=True, exclude={"kind"})
    return {action.kind: payload}


# ═══════════════════════════════════════════════════════════════════════════
# Registry
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RouteRule:
    pattern: str
    action: RouteAction

    def matches(self, url: str) -> bool:
        return url_matches(self.pattern, url)


class RouteRegistry:
    """Ordered interception rules for one tab's page."""

    PRECEDENCE = "most-recent-first"

    def __init__(self, page: Any):
        self._page = page
        self._rules: list[RouteRule] = []  # oldest first
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    @property
    def rules(self) -> list[RouteRule]:
        """Rules in evaluation order."""
        return list(reversed(self._rules))

    def __len__(self) -> int:
        return len(self._rules)

    def match(self, url: str) -> RouteRule | None:
        for rule in reversed(self._rules):
            if rule.matches(url):
                return rule
        return None

    async def add_route(self, pattern: str, action: RouteAction) -> RouteRule:
        """Add a rule, replacing any rule with the same pattern."""
        compile_glob(pattern)
        rule = RouteRule(pattern=pattern, action=action)
        self._rules = [r for r in self._rules if r.pattern != pattern]
        self._rules.append(rule)
        if not self._installed:
            await self._page.route(CATCH_ALL, self._handle)
            self._installed = True
            logger.debug("Route interception installed")
        return rule

    async def remove_route(self, pattern: str) -> bool:
        """Remove the rule for ``pattern``. False when there was none."""
        before = len(self._rules)
        self._rules = [r for r in self._rules if r.pattern != pattern]
        removed = len(self._rules) != before
        if not self._rules and self._installed:
            await self._uninstall()
        return removed

    async def clear(self):
        self._rules.clear()
        if self._installed:
            await self._uninstall()

    async def _uninstall(self):
        self._installed = False
        await self._page.unroute(CATCH_ALL, self._handle)
        logger.debug("Route interception removed")

    async def _handle(self, route: Any):
        url = route.request.url
        rule = self.match(url)
        if rule is None:
            await route.continue_()
            return
        logger.debug(f"Route {rule.pattern} -> {rule.action.kind} for {url}")
        await rule.action.apply(route)

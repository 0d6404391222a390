"""
PagePilot - Request tracker

Per-tab log of network activity, fed by the page's request/response events:

    request         -> append a RequestEntry (response still absent)
    response        -> fill in the entry's ResponseInfo
    requestfinished -> entry leaves the in-flight set
    requestfailed   -> entry records the failure, leaves the in-flight set

The log is append-only and keeps the order the driver emitted events in.
It also serves wait_for_request / wait_for_response through PendingWait
registrations, and the post-tool "network idle" check.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Union

from pagepilot.errors import DriverError
from pagepilot.patterns import compile_glob, url_matches

logger = logging.getLogger("pagepilot.network")

REQUEST = "request"
RESPONSE = "response"


# ═══════════════════════════════════════════════════════════════════════════
# Log entries
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class ResponseInfo:
    """Metadata of a received response. ``response`` is the driver handle."""
    response: Any
    url: str
    status: int
    status_text: str
    headers: dict[str, str]
    ok: bool

    @classmethod
    def from_response(cls, response: Any) -> "ResponseInfo":
        return cls(
            response=response,
            url=response.url,
            status=response.status,
            status_text=response.status_text,
            headers=dict(response.headers or {}),
            ok=bool(response.ok),
        )


@dataclass
class RequestEntry:
    """One outbound request and, once it arrives, its response."""
    request: Any
    url: str
    method: str
    headers: dict[str, str]
    post_data: str | None
    resource_type: str
    is_navigation: bool
    response: ResponseInfo | None = None
    failure: str | None = None
    finished: bool = False

    @classmethod
    def from_request(cls, request: Any) -> "RequestEntry":
        return cls(
            request=request,
            url=request.url,
            method=request.method,
            headers=dict(request.headers or {}),
            post_data=request.post_data,
            resource_type=request.resource_type,
            is_navigation=bool(request.is_navigation_request()),
        )

    @property
    def in_flight(self) -> bool:
        return not self.finished

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "url": self.url,
            "method": self.method,
            "headers": self.headers,
            "postData": self.post_data,
            "resourceType": self.resource_type,
            "response": None,
        }
        if self.response is not None:
            data["response"] = {
                "status": self.response.status,
                "statusText": self.response.status_text,
            }
        if self.failure:
            data["failure"] = self.failure
        return data


# ═══════════════════════════════════════════════════════════════════════════
# Filters
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RequestFilter:
    """AND of URL glob, method and resource type. Unset clauses match all."""
    url: str | None = None
    method: str | None = None
    resource_type: str | None = None

    def matches(self, entry: RequestEntry) -> bool:
        if self.url and not url_matches(self.url, entry.url):
            return False
        if self.method and entry.method.upper() != self.method.upper():
            return False
        if self.resource_type and entry.resource_type != self.resource_type:
            return False
        return True


@dataclass(frozen=True)
class ResponseFilter:
    """AND of URL glob, exact status and inclusive status range."""
    url: str | None = None
    status: int | None = None
    status_min: int | None = None
    status_max: int | None = None

    def matches(self, info: ResponseInfo) -> bool:
        if self.url and not url_matches(self.url, info.url):
            return False
        if self.status is not None and info.status != self.status:
            return False
        if self.status_min is not None and info.status < self.status_min:
            return False
        if self.status_max is not None and info.status > self.status_max:
            return False
        return True


# ═══════════════════════════════════════════════════════════════════════════
# Waits
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Matched:
    value: Any


@dataclass(frozen=True)
class TimedOut:
    pattern: str
    timeout_ms: float


WaitOutcome = Union[Matched, TimedOut]


@dataclass(eq=False)
class PendingWait:
    """An outstanding wait_for_request / wait_for_response registration."""
    kind: str
    pattern: str
    future: asyncio.Future
    deadline: float
    timeout_ms: float
    regex: Any = field(init=False, repr=False)

    def __post_init__(self):
        self.regex = compile_glob(self.pattern)

    def offer(self, url: str, value: Any) -> bool:
        """Resolve with ``value`` if still open and ``url`` matches."""
        if self.future.done() or not self.regex.match(url):
            return False
        self.future.set_result(value)
        return True


# ═══════════════════════════════════════════════════════════════════════════
# Tracker
# ═══════════════════════════════════════════════════════════════════════════


class RequestTracker:
    """Ordered request/response log for one tab."""

    def __init__(self):
        self._entries: list[RequestEntry] = []
        self._by_request: dict[Any, RequestEntry] = {}
        self._pending: list[PendingWait] = []
        self._last_activity = time.monotonic()
        self._closed = False

    def attach(self, page: Any):
        """Subscribe to the page's network events."""
        page.on("request", self.on_request)
        page.on("response", self.on_response)
        page.on("requestfinished", self.on_request_finished)
        page.on("requestfailed", self.on_request_failed)

    # ── driver events ──

    def on_request(self, request: Any):
        if self._closed:
            return
        entry = RequestEntry.from_request(request)
        self._entries.append(entry)
        self._by_request[request] = entry
        self._last_activity = time.monotonic()
        self._notify(REQUEST, entry.url, entry)

    def on_response(self, response: Any):
        if self._closed:
            return
        entry = self._entry_for(response.request)
        entry.response = ResponseInfo.from_response(response)
        self._last_activity = time.monotonic()
        self._notify(RESPONSE, entry.response.url, entry.response)

    def on_request_finished(self, request: Any):
        if self._closed:
            return
        self._entry_for(request).finished = True
        self._last_activity = time.monotonic()

    def on_request_failed(self, request: Any):
        if self._closed:
            return
        entry = self._entry_for(request)
        entry.failure = request.failure or "failed"
        entry.finished = True
        self._last_activity = time.monotonic()

    def _entry_for(self, request: Any) -> RequestEntry:
        entry = self._by_request.get(request)
        if entry is None:
            # Request started before the tracker was attached.
            entry = RequestEntry.from_request(request)
            self._entries.append(entry)
            self._by_request[request] = entry
        return entry

    def _notify(self, kind: str, url: str, value: Any):
        for pending in list(self._pending):
            if pending.kind == kind:
                pending.offer(url, value)

    # ── queries ──

    @property
    def entries(self) -> list[RequestEntry]:
        return list(self._entries)

    @property
    def in_flight(self) -> int:
        return sum(1 for e in self._entries if e.in_flight)

    @property
    def pending_waits(self) -> list[PendingWait]:
        return list(self._pending)

    def get_requests(self, flt: RequestFilter | None = None) -> list[RequestEntry]:
        flt = flt or RequestFilter()
        return [e for e in self._entries if flt.matches(e)]

    def get_responses(self, flt: ResponseFilter | None = None) -> list[ResponseInfo]:
        flt = flt or ResponseFilter()
        return [e.response for e in self._entries if e.response is not None and flt.matches(e.response)]

    # ── waits ──

    def register_wait(self, kind: str, pattern: str, timeout_ms: float) -> PendingWait:
        """Register a wait without suspending; events from now on can resolve it."""
        if kind not in (REQUEST, RESPONSE):
            raise ValueError(f"Unknown wait kind: {kind}")
        loop = asyncio.get_running_loop()
        pending = PendingWait(
            kind=kind,
            pattern=pattern,
            future=loop.create_future(),
            deadline=loop.time() + timeout_ms / 1000,
            timeout_ms=timeout_ms,
        )
        if self._closed:
            pending.future.set_exception(DriverError(f"wait_for_{kind}", "page is closed"))
        self._pending.append(pending)
        return pending

    async def wait(self, pending: PendingWait) -> WaitOutcome:
        """Race ``pending`` against its deadline. Always unregisters it."""
        loop = asyncio.get_running_loop()
        try:
            remaining = max(0.0, pending.deadline - loop.time())
            value = await asyncio.wait_for(pending.future, timeout=remaining)
            return Matched(value)
        except asyncio.TimeoutError:
            return TimedOut(pending.pattern, pending.timeout_ms)
        finally:
            if pending in self._pending:
                self._pending.remove(pending)

    async def wait_for(self, kind: str, pattern: str, timeout_ms: float) -> WaitOutcome:
        pending = self.register_wait(kind, pattern, timeout_ms)
        return await self.wait(pending)

    async def wait_for_idle(self, quiet_ms: float, timeout_ms: float) -> bool:
        """True once nothing is in flight for ``quiet_ms``; False at the cap."""
        started = time.monotonic()
        quiet = quiet_ms / 1000
        cap = timeout_ms / 1000
        while True:
            now = time.monotonic()
            if self.in_flight == 0 and now - self._last_activity >= quiet:
                return True
            if now - started >= cap:
                return False
            await asyncio.sleep(min(0.05, quiet or 0.05))

    def close(self):
        """Fail outstanding waits and drop the log."""
        self._closed = True
        for pending in self._pending:
            if not pending.future.done():
                pending.future.set_exception(DriverError(f"wait_for_{pending.kind}", "page was closed"))
        self._pending.clear()
        self._entries.clear()
        self._by_request.clear()

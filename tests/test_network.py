"""
Tests for RequestTracker: request log, filters, pending waits, idleness.
"""

import asyncio
import pytest

from conftest import make_page, make_request, make_response
from pagepilot.errors import DriverError
from pagepilot.network import (
    REQUEST,
    RESPONSE,
    Matched,
    RequestFilter,
    RequestTracker,
    ResponseFilter,
    TimedOut,
)


@pytest.fixture
def tracker():
    return RequestTracker()


# ═══════════════════════════════════════════════════════════════════════════
# Log
# ═══════════════════════════════════════════════════════════════════════════


class TestRequestLog:
    def test_attach_subscribes_to_page_events(self, tracker):
        page = make_page()
        tracker.attach(page)
        request = make_request("https://example.com/")
        page.emit("request", request)
        page.emit("response", make_response(request))
        page.emit("requestfinished", request)
        assert tracker.entries[0].response.status == 200
        assert tracker.in_flight == 0

    def test_entries_keep_event_order(self, tracker):
        urls = ["https://example.com/", "https://example.com/app.js", "https://example.com/api/items"]
        for url in urls:
            tracker.on_request(make_request(url))
        assert [e.url for e in tracker.entries] == urls

    def test_response_attaches_to_its_request(self, tracker):
        first = make_request("https://example.com/a")
        second = make_request("https://example.com/b")
        tracker.on_request(first)
        tracker.on_request(second)
        tracker.on_response(make_response(second, status=404, status_text="Not Found"))

        a, b = tracker.entries
        assert a.response is None
        assert b.response.status == 404
        assert b.to_dict()["response"] == {"status": 404, "statusText": "Not Found"}

    def test_in_flight_until_finished(self, tracker):
        request = make_request("https://example.com/slow")
        tracker.on_request(request)
        assert tracker.in_flight == 1
        tracker.on_request_finished(request)
        assert tracker.in_flight == 0

    def test_failure_recorded(self, tracker):
        request = make_request("https://example.com/broken")
        tracker.on_request(request)
        request.failure = "net::ERR_CONNECTION_REFUSED"
        tracker.on_request_failed(request)
        entry = tracker.entries[0]
        assert entry.failure == "net::ERR_CONNECTION_REFUSED"
        assert entry.to_dict()["failure"] == "net::ERR_CONNECTION_REFUSED"
        assert tracker.in_flight == 0

    def test_response_for_untracked_request(self, tracker):
        request = make_request("https://example.com/early")
        tracker.on_response(make_response(request))
        assert len(tracker.entries) == 1
        assert tracker.entries[0].response is not None


class TestFilters:
    @pytest.fixture
    def populated(self, tracker):
        specs = [
            ("https://example.com/", "GET", "document", 200),
            ("https://example.com/api/login", "POST", "fetch", 401),
            ("https://example.com/api/items", "GET", "fetch", 200),
            ("https://example.com/missing.png", "GET", "image", 404),
        ]
        for url, method, kind, status in specs:
            request = make_request(url, method=method, resource_type=kind)
            tracker.on_request(request)
            tracker.on_response(make_response(request, status=status))
        return tracker

    def test_request_filters_compose_with_and(self, populated):
        hits = populated.get_requests(RequestFilter(url="**/api/*", method="get"))
        assert [e.url for e in hits] == ["https://example.com/api/items"]

    def test_request_filter_by_resource_type(self, populated):
        hits = populated.get_requests(RequestFilter(resource_type="fetch"))
        assert len(hits) == 2

    def test_response_status_range(self, populated):
        hits = populated.get_responses(ResponseFilter(status_min=400, status_max=499))
        assert [r.status for r in hits] == [401, 404]

    def test_response_exact_status_and_url(self, populated):
        hits = populated.get_responses(ResponseFilter(url="**/api/**", status=200))
        assert [r.url for r in hits] == ["https://example.com/api/items"]

    def test_no_filter_returns_everything(self, populated):
        assert len(populated.get_requests()) == 4
        assert len(populated.get_responses()) == 4


# ═══════════════════════════════════════════════════════════════════════════
# Waits
# ═══════════════════════════════════════════════════════════════════════════


class TestPendingWaits:
    @pytest.mark.asyncio
    async def test_matching_request_resolves(self, tracker):
        pending = tracker.register_wait(REQUEST, "**/api/*", 1000)
        tracker.on_request(make_request("https://example.com/static/app.js"))
        tracker.on_request(make_request("https://example.com/api/items"))

        outcome = await tracker.wait(pending)
        assert isinstance(outcome, Matched)
        assert outcome.value.url == "https://example.com/api/items"
        assert tracker.pending_waits == []

    @pytest.mark.asyncio
    async def test_matching_response_resolves(self, tracker):
        task = asyncio.create_task(tracker.wait_for(RESPONSE, "**/api/items", 1000))
        await asyncio.sleep(0)
        request = make_request("https://example.com/api/items")
        tracker.on_request(request)
        tracker.on_response(make_response(request, status=201))

        outcome = await task
        assert isinstance(outcome, Matched)
        assert outcome.value.status == 201

    @pytest.mark.asyncio
    async def test_events_before_registration_do_not_count(self, tracker):
        tracker.on_request(make_request("https://example.com/api/items"))
        outcome = await tracker.wait_for(REQUEST, "**/api/items", 50)
        assert outcome == TimedOut("**/api/items", 50)

    @pytest.mark.asyncio
    async def test_timeout_unregisters(self, tracker):
        outcome = await tracker.wait_for(REQUEST, "**/never", 20)
        assert isinstance(outcome, TimedOut)
        assert tracker.pending_waits == []

    @pytest.mark.asyncio
    async def test_late_event_after_timeout_is_ignored(self, tracker):
        await tracker.wait_for(REQUEST, "**/late", 10)
        tracker.on_request(make_request("https://example.com/late"))
        assert len(tracker.entries) == 1

    @pytest.mark.asyncio
    async def test_one_event_resolves_every_matching_wait(self, tracker):
        first = tracker.register_wait(REQUEST, "**/api/**", 1000)
        second = tracker.register_wait(REQUEST, "**/items", 1000)
        tracker.on_request(make_request("https://example.com/api/items"))
        assert isinstance(await tracker.wait(first), Matched)
        assert isinstance(await tracker.wait(second), Matched)

    @pytest.mark.asyncio
    async def test_close_fails_pending_waits(self, tracker):
        pending = tracker.register_wait(REQUEST, "**/*", 1000)
        tracker.close()
        with pytest.raises(DriverError):
            await tracker.wait(pending)
        assert tracker.entries == []

    @pytest.mark.asyncio
    async def test_unknown_kind_rejected(self, tracker):
        with pytest.raises(ValueError):
            tracker.register_wait("console", "**/*", 100)


class TestNetworkIdle:
    @pytest.mark.asyncio
    async def test_idle_when_nothing_in_flight(self, tracker):
        assert await tracker.wait_for_idle(quiet_ms=0, timeout_ms=100) is True

    @pytest.mark.asyncio
    async def test_not_idle_reports_false_at_cap(self, tracker):
        tracker.on_request(make_request("https://example.com/stream"))
        assert await tracker.wait_for_idle(quiet_ms=0, timeout_ms=60) is False

    @pytest.mark.asyncio
    async def test_becomes_idle_when_request_finishes(self, tracker):
        request = make_request("https://example.com/slow")
        tracker.on_request(request)

        async def finish():
            await asyncio.sleep(0.02)
            tracker.on_request_finished(request)

        finisher = asyncio.create_task(finish())
        assert await tracker.wait_for_idle(quiet_ms=0, timeout_ms=1000) is True
        await finisher

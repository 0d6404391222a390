"""
PagePilot - Test Configuration

Shared fixtures and fakes of the Playwright objects. No real browser is
started by the unit suite: pages, frames, requests, responses and routes
are MagicMock/AsyncMock objects with just enough behaviour.
"""

from collections import defaultdict
from unittest.mock import AsyncMock, MagicMock

import pytest

# ═══════════════════════════════════════════════════════════════════════════
# Integration suite (opt-in)
# ═══════════════════════════════════════════════════════════════════════════


def pytest_addoption(parser):
    parser.addoption(
        "--integration", action="store_true", default=False,
        help="Run tests marked integration against a real browser",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--integration"):
        return
    skip = pytest.mark.skip(reason="drives a real browser; run with --integration")
    for item in items:
        if item.get_closest_marker("integration") is not None:
            item.add_marker(skip)


# ═══════════════════════════════════════════════════════════════════════════
# Fakes
# ═══════════════════════════════════════════════════════════════════════════


def make_frame(url="about:blank", name="", parent=None, detached=False):
    frame = MagicMock(name=f"frame<{url}>")
    frame.url = url
    frame.name = name
    frame.parent_frame = parent
    frame.is_detached.return_value = detached
    frame.evaluate = AsyncMock(return_value={"value": None})
    return frame


def make_page(url="about:blank", title="", child_frames=()):
    """Page fake whose ``on`` records handlers; ``page.emit`` fires them."""
    page = MagicMock(name=f"page<{url}>")
    handlers = defaultdict(list)
    page.on.side_effect = lambda event, handler: handlers[event].append(handler)
    page.handlers = handlers

    def emit(event, *args):
        for handler in list(handlers[event]):
            handler(*args)

    page.emit = emit
    page.url = url
    main = make_frame(url=url)
    page.main_frame = main
    page.frames = [main, *child_frames]

    for name in (
        "goto", "go_back", "go_forward", "close", "bring_to_front", "route", "unroute",
        "evaluate", "eval_on_selector", "eval_on_selector_all", "query_selector",
        "content", "add_script_tag", "add_style_tag", "add_init_script",
        "wait_for_selector", "wait_for_function", "wait_for_load_state", "wait_for_event",
    ):
        setattr(page, name, AsyncMock(name=name))
    page.title = AsyncMock(return_value=title)

    body = MagicMock(name="body-locator")
    body.aria_snapshot = AsyncMock(return_value='- heading "Hello" [level=1]')
    page.locator.return_value = body

    context = MagicMock(name="context")
    context.cookies = AsyncMock(return_value=[])
    context.add_cookies = AsyncMock()
    context.clear_cookies = AsyncMock()
    page.context = context
    return page


def make_request(url, method="GET", resource_type="document", post_data=None, headers=None, navigation=False):
    request = MagicMock(name=f"request<{url}>")
    request.url = url
    request.method = method
    request.resource_type = resource_type
    request.post_data = post_data
    request.headers = headers or {}
    request.failure = None
    request.is_navigation_request.return_value = navigation
    return request


def make_response(request, status=200, status_text="OK", headers=None, body=""):
    response = MagicMock(name=f"response<{request.url}>")
    response.url = request.url
    response.request = request
    response.status = status
    response.status_text = status_text
    response.headers = headers or {}
    response.ok = 200 <= status < 400
    response.text = AsyncMock(return_value=body)
    response.body = AsyncMock(return_value=body.encode())
    return response


def make_route(url):
    route = MagicMock(name=f"route<{url}>")
    route.request = make_request(url)
    route.abort = AsyncMock()
    route.fulfill = AsyncMock()
    route.continue_ = AsyncMock()
    return route


# ═══════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No PAGEPILOT_* variables and no stray .env above the test."""
    import os
    for key in list(os.environ):
        if key.startswith("PAGEPILOT_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def config(clean_env):
    """Config with defaults, no network-idle quiet window."""
    from pagepilot.config import Config
    cfg = Config(config_file=clean_env / "missing.yaml")
    cfg.set("network_idle_quiet_ms", 0)
    cfg.set("network_idle_timeout_ms", 200)
    return cfg


@pytest.fixture
def fake_context():
    """Browser context whose new_page() hands out fresh page fakes."""
    context = MagicMock(name="browser-context")
    context.pages = []
    context.new_page = AsyncMock(side_effect=lambda: make_page())
    context.close = AsyncMock()
    return context


@pytest.fixture
def session(config, fake_context):
    """SessionContext already "connected" to the fake context."""
    from pagepilot.session import SessionContext
    ctx = SessionContext(config)
    ctx._context = fake_context
    return ctx


@pytest.fixture
def tab():
    """A Tab on a fresh page fake, outside any session."""
    from pagepilot.tab import Tab
    return Tab(0, make_page(url="https://example.com/", title="Example"))

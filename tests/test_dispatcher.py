"""
Tests for ToolRegistry and Dispatcher: gating, validation, tab resolution,
side-effect ordering, serialization and failure classification.
"""

import asyncio
import pytest
from jsonschema import Draft202012Validator
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from conftest import make_request
from pagepilot.session import SessionContext
from pagepilot.tools import (
    CURRENT,
    ENSURE,
    NONE,
    Dispatcher,
    SideEffectPolicy,
    ToolDescriptor,
    ToolRegistry,
    ToolResult,
    create_tool_registry,
)
from pagepilot.tools.base import object_schema, string


def descriptor(name, handler, capability="core", **kwargs):
    kwargs.setdefault("input_schema", object_schema())
    return ToolDescriptor(
        name=name,
        title=name,
        description=f"Test tool {name}",
        capability=capability,
        handler=handler,
        **kwargs,
    )


async def echo(ctx, tab, args):
    return ToolResult.text("echo", code=["await page.echo()"])


# ═══════════════════════════════════════════════════════════════════════════
# Registry
# ═══════════════════════════════════════════════════════════════════════════


class TestToolRegistry:
    def test_builtin_registry(self):
        registry = create_tool_registry()
        assert len(registry) == 46
        assert "browser_navigate" in registry
        assert registry.get("browser_route").capability == "network"

    def test_every_schema_is_valid_json_schema(self):
        for d in create_tool_registry().tools.values():
            Draft202012Validator.check_schema(d.input_schema)
            assert d.input_schema["type"] == "object"

    def test_every_capability_is_known(self):
        from pagepilot.config import KNOWN_CAPABILITIES
        caps = {d.capability for d in create_tool_registry().tools.values()}
        assert caps == set(KNOWN_CAPABILITIES)

    def test_duplicate_names_rejected(self):
        registry = ToolRegistry([descriptor("dup", echo)])
        with pytest.raises(ValueError, match="dup"):
            registry.register([descriptor("dup", echo)])

    def test_active_set_always_includes_core(self):
        registry = create_tool_registry()
        names = {d.name for d in registry.build_active_set(set())}
        assert "browser_navigate" in names
        assert "browser_route" not in names

    def test_active_set_keeps_declaration_order(self):
        registry = create_tool_registry()
        active = registry.build_active_set({"network"})
        assert {d.capability for d in active} == {"core", "network"}
        order = list(registry.tools)
        assert [d.name for d in active] == [n for n in order if n in {d.name for d in active}]


# ═══════════════════════════════════════════════════════════════════════════
# Dispatch
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def dispatcher(session):
    return Dispatcher(create_tool_registry(), session)


def custom_dispatcher(session, *descriptors):
    return Dispatcher(ToolRegistry(descriptors), session)


class TestGating:
    @pytest.mark.asyncio
    async def test_disabled_capability_is_unknown(self, config, fake_context):
        session = SessionContext(config, capabilities=frozenset({"core"}))
        session._context = fake_context
        dispatcher = Dispatcher(create_tool_registry(), session)

        assert "browser_route" not in {d.name for d in dispatcher.list_tools()}
        response = await dispatcher.dispatch("browser_route", {"pattern": "**/*", "handler": {"abort": True}})
        assert response.is_error
        assert response.error.kind == "UnknownTool"
        assert response.text.startswith("UnknownTool: Tool not found: browser_route")
        assert session.tabs == []

    @pytest.mark.asyncio
    async def test_unknown_name(self, dispatcher):
        response = await dispatcher.dispatch("browser_teleport", {})
        assert response.error.kind == "UnknownTool"


class TestValidation:
    @pytest.mark.asyncio
    async def test_missing_required_field(self, dispatcher, session):
        response = await dispatcher.dispatch("browser_navigate", {})
        assert response.error.kind == "ValidationError"
        assert response.error.field == "url"
        assert session.tabs == []

    @pytest.mark.asyncio
    async def test_wrong_type(self, dispatcher):
        response = await dispatcher.dispatch("browser_navigate", {"url": 42})
        assert response.error.field == "url"

    @pytest.mark.asyncio
    async def test_unexpected_field(self, dispatcher):
        response = await dispatcher.dispatch("browser_navigate", {"url": "https://example.com/", "bogus": 1})
        assert response.error.field == "bogus"

    @pytest.mark.asyncio
    async def test_nested_field_path(self, dispatcher):
        response = await dispatcher.dispatch(
            "browser_route", {"pattern": "**/*", "handler": {"fulfill": {"status": "ok"}}},
        )
        assert response.error.field == "handler.fulfill.status"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name, args, field", [
        ("browser_route", {"pattern": "**/{a,b", "handler": {"abort": True}}, "pattern"),
        ("browser_unroute", {"pattern": "**/{a,b"}, "pattern"),
        ("browser_wait_for_request", {"urlPattern": "**/{api"}, "urlPattern"),
        ("browser_wait_for_response", {"urlPattern": "**/{api"}, "urlPattern"),
        ("browser_get_requests", {"filter": {"url": "**/{x"}}, "filter.url"),
        ("browser_get_responses", {"filter": {"url": "**/{x"}}, "filter.url"),
        ("browser_switch_to_frame", {"frameUrl": "**/{embed"}, "frameUrl"),
        ("browser_wait_for_frame", {"frameUrl": "**/{embed"}, "frameUrl"),
    ])
    async def test_malformed_glob_rejected_before_tab(self, dispatcher, session, fake_context, name, args, field):
        response = await dispatcher.dispatch(name, args)
        assert response.error.kind == "ValidationError"
        assert response.error.field == field
        assert "Unbalanced" in response.text
        assert session.tabs == []
        fake_context.new_page.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_none_arguments_mean_empty(self, dispatcher):
        response = await dispatcher.dispatch("browser_tab_list", None)
        assert not response.is_error

    @pytest.mark.asyncio
    async def test_non_object_arguments(self, dispatcher):
        response = await dispatcher.dispatch("browser_tab_list", ["x"])
        assert response.error.kind == "ValidationError"

    @pytest.mark.asyncio
    async def test_no_side_effects_before_validation(self, session):
        calls = []

        async def handler(ctx, tab, args):
            calls.append(args)
            return ToolResult()

        def check(args):
            from pagepilot.errors import ValidationError
            raise ValidationError("guarded", "value", "rejected")

        d = custom_dispatcher(session, descriptor(
            "guarded", handler,
            input_schema=object_schema({"value": string("v")}),
            check=check,
        ))
        response = await d.dispatch("guarded", {"value": "x"})
        assert response.error.field == "value"
        assert calls == []
        assert session.tabs == []


class TestTabResolution:
    @pytest.mark.asyncio
    async def test_current_mode_without_tab(self, dispatcher, session):
        response = await dispatcher.dispatch("browser_snapshot", {})
        assert response.error.kind == "NoActiveTab"
        assert session.tabs == []

    @pytest.mark.asyncio
    async def test_ensure_mode_opens_tab(self, dispatcher, session):
        response = await dispatcher.dispatch("browser_navigate", {"url": "https://example.com/"})
        assert not response.is_error
        assert len(session.tabs) == 1
        session.tabs[0].page.goto.assert_awaited_once_with("https://example.com/")

    @pytest.mark.asyncio
    async def test_none_mode_gets_no_tab(self, session):
        seen = []

        async def handler(ctx, tab, args):
            seen.append(tab)
            return ToolResult()

        d = custom_dispatcher(session, descriptor("session_tool", handler, tab_mode=NONE))
        await d.dispatch("session_tool", {})
        assert seen == [None]
        assert session.tabs == []


class TestSideEffects:
    @pytest.mark.asyncio
    async def test_handler_then_idle_then_snapshot(self, session):
        order = []

        async def handler(ctx, tab, args):
            order.append("handler")
            return ToolResult.text("done", code=["await page.click('#go')"])

        tab = await session.ensure_tab()

        async def idle(quiet_ms, timeout_ms):
            order.append("idle")
            return True

        async def snapshot():
            order.append("snapshot")
            return "### Page state"

        tab.requests.wait_for_idle = idle
        tab.capture_snapshot = snapshot

        d = custom_dispatcher(session, descriptor(
            "click", handler, policy=SideEffectPolicy(wait_for_network_idle=True, capture_snapshot=True),
        ))
        response = await d.dispatch("click", {})
        assert order == ["handler", "idle", "snapshot"]
        texts = [item["text"] for item in response.content]
        assert texts[0] == "done"
        assert texts[1] == "- Ran Playwright code:\n```python\nawait page.click('#go')\n```"
        assert texts[2] == "### Page state"

    @pytest.mark.asyncio
    async def test_idle_cap_does_not_fail_call(self, session):
        tab = await session.ensure_tab()
        tab.requests.on_request(make_request("https://example.com/stream"))
        d = custom_dispatcher(session, descriptor("slow", echo, policy=SideEffectPolicy(wait_for_network_idle=True)))
        response = await d.dispatch("slow", {})
        assert not response.is_error

    @pytest.mark.asyncio
    async def test_snapshots_switched_off(self, session, config):
        config.set("snapshots", False)
        await session.ensure_tab()
        d = custom_dispatcher(session, descriptor("look", echo, policy=SideEffectPolicy(capture_snapshot=True)))
        response = await d.dispatch("look", {})
        assert all("Page state" not in item["text"] for item in response.content)

    @pytest.mark.asyncio
    async def test_no_snapshot_of_tab_closed_by_tool(self, session):
        async def close_it(ctx, tab, args):
            await tab.close()
            return ToolResult.text("closed")

        await session.ensure_tab()
        d = custom_dispatcher(session, descriptor("closer", close_it, policy=SideEffectPolicy(capture_snapshot=True)))
        response = await d.dispatch("closer", {})
        assert [item["text"] for item in response.content] == ["closed"]

    @pytest.mark.asyncio
    async def test_real_snapshot_format(self, dispatcher, session):
        response = await dispatcher.dispatch("browser_navigate", {"url": "https://example.com/"})
        snapshot = response.content[-1]["text"]
        assert snapshot.startswith("### Page state")
        assert "- Page URL: about:blank" in snapshot
        assert '```yaml\n- heading "Hello" [level=1]\n```' in snapshot


class TestSerialization:
    @pytest.mark.asyncio
    async def test_serialized_calls_do_not_interleave(self, session):
        events = []

        async def slow(ctx, tab, args):
            events.append("start")
            await asyncio.sleep(0.01)
            events.append("end")
            return ToolResult()

        d = custom_dispatcher(session, descriptor("slow", slow))
        await session.ensure_tab()
        await asyncio.gather(d.dispatch("slow", {}), d.dispatch("slow", {}))
        assert events == ["start", "end", "start", "end"]

    @pytest.mark.asyncio
    async def test_wait_tool_runs_beside_serialized_call(self, session):
        registry = create_tool_registry()

        async def trigger(ctx, tab, args):
            await asyncio.sleep(0.01)
            tab.page.emit("request", make_request("https://example.com/api/items", method="POST"))
            return ToolResult.text("triggered")

        registry.register([descriptor("trigger", trigger)])
        d = Dispatcher(registry, session)
        await session.ensure_tab()

        waited, triggered = await asyncio.gather(
            d.dispatch("browser_wait_for_request", {"urlPattern": "**/api/items", "timeout": 2000}),
            d.dispatch("trigger", {}),
        )
        assert not waited.is_error, waited.text
        assert '"method": "POST"' in waited.content[0]["text"]
        assert triggered.content[0]["text"] == "triggered"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("closer", ["browser_tab_close", "browser_close"])
    async def test_close_waits_for_running_call(self, session, closer):
        events = []

        async def slow(ctx, tab, args):
            events.append("slow-start")
            await asyncio.sleep(0.01)
            events.append(f"slow-end closed={tab.closed}")
            return ToolResult()

        registry = create_tool_registry()
        registry.register([descriptor("slow", slow)])
        d = Dispatcher(registry, session)
        tab = await session.ensure_tab()
        tab.page.close.side_effect = lambda: events.append("closed")

        slow_response, close_response = await asyncio.gather(d.dispatch("slow", {}), d.dispatch(closer, {}))
        assert not slow_response.is_error, slow_response.text
        assert not close_response.is_error, close_response.text
        assert events == ["slow-start", "slow-end closed=False", "closed"]
        assert tab.closed


class TestClassification:
    @pytest.mark.parametrize("exc, kind", [
        (PlaywrightTimeout("Timeout 100ms exceeded."), "TimeoutError"),
        (PlaywrightError("Target closed\nCall log:\n  - waiting"), "DriverError"),
        (asyncio.TimeoutError(), "TimeoutError"),
        (KeyError("boom"), "InternalError"),
    ])
    @pytest.mark.asyncio
    async def test_handler_exceptions_are_classified(self, session, exc, kind):
        async def broken(ctx, tab, args):
            raise exc

        d = custom_dispatcher(session, descriptor("broken", broken))
        response = await d.dispatch("broken", {})
        assert response.is_error
        assert response.error.kind == kind
        assert response.text.startswith(f"{kind}: ")
        assert "Hint: " in response.text

    @pytest.mark.asyncio
    async def test_driver_error_keeps_first_line_only(self, session):
        async def broken(ctx, tab, args):
            raise PlaywrightError("Target closed\nCall log:\n  - waiting")

        d = custom_dispatcher(session, descriptor("broken", broken))
        response = await d.dispatch("broken", {})
        assert "Call log" not in response.text
        assert "broken failed: Target closed" in response.text

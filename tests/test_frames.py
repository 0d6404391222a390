"""
Tests for FrameContext and the frame handling of Tab.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from conftest import make_frame, make_page
from pagepilot.errors import FrameNotFound
from pagepilot.frames import FrameContext
from pagepilot.tab import Tab


# ═══════════════════════════════════════════════════════════════════════════
# FrameContext
# ═══════════════════════════════════════════════════════════════════════════


class TestFrameContext:
    def test_main_frame_by_default(self):
        ctx = FrameContext()
        main = make_frame()
        assert ctx.is_main
        assert ctx.resolve(main) is main

    def test_selected_frame_resolves(self):
        ctx = FrameContext()
        child = make_frame("https://ads.example.com/")
        ctx.select(child, "name=ads")
        assert not ctx.is_main
        assert ctx.resolve(make_frame()) is child

    def test_reset_bumps_generation_and_drops_selection(self):
        ctx = FrameContext()
        main = make_frame()
        ctx.select(make_frame("https://child/"))
        ctx.reset()
        assert ctx.generation == 1
        assert ctx.resolve(main) is main

    def test_stale_token_never_resolves(self):
        ctx = FrameContext()
        token = ctx.select(make_frame("https://child/"), "index=1")
        ctx.reset()
        with pytest.raises(FrameNotFound, match="navigated"):
            ctx.resolve(make_frame(), token)

    def test_detached_frame_fails(self):
        ctx = FrameContext()
        child = make_frame("https://child/")
        ctx.select(child, "index=1")
        child.is_detached.return_value = True
        with pytest.raises(FrameNotFound, match="detached"):
            ctx.resolve(make_frame())

    def test_clear_keeps_generation(self):
        ctx = FrameContext()
        token = ctx.select(make_frame("https://child/"))
        ctx.clear()
        assert ctx.generation == 0
        assert ctx.resolve(make_frame(), token) is token.frame


# ═══════════════════════════════════════════════════════════════════════════
# Tab frames
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def framed_tab():
    child = make_frame("https://widgets.example.com/embed", name="widget")
    page = make_page("https://example.com/", child_frames=[child])
    child.parent_frame = page.main_frame
    return Tab(0, page), child


class TestTabFrames:
    @pytest.mark.asyncio
    async def test_find_by_name_url_and_index(self, framed_tab):
        tab, child = framed_tab
        assert (await tab.find_frame(name="widget"))[0] is child
        assert (await tab.find_frame(url="https://widgets.example.com/**"))[0] is child
        assert (await tab.find_frame(index=1))[0] is child

    @pytest.mark.asyncio
    async def test_find_by_selector_uses_content_frame(self, framed_tab):
        tab, child = framed_tab
        handle = MagicMock()
        handle.content_frame = AsyncMock(return_value=child)
        handle.dispose = AsyncMock()
        tab.page.query_selector.return_value = handle
        frame, description = await tab.find_frame(selector="iframe#widget")
        assert frame is child
        assert description == "selector=iframe#widget"
        handle.dispose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_frame_raises(self, framed_tab):
        tab, _ = framed_tab
        tab.page.query_selector.return_value = None
        with pytest.raises(FrameNotFound):
            await tab.find_frame(selector="iframe#nope")
        with pytest.raises(FrameNotFound):
            await tab.find_frame(index=5)
        with pytest.raises(FrameNotFound):
            await tab.find_frame(name="nope")

    @pytest.mark.asyncio
    async def test_switch_then_top_level_navigation_resets(self, framed_tab):
        tab, child = framed_tab
        await tab.switch_frame(name="widget")
        assert tab.current_frame() is child

        tab.page.emit("framenavigated", tab.page.main_frame)
        assert tab.current_frame() is tab.page.main_frame

    @pytest.mark.asyncio
    async def test_child_navigation_keeps_selection(self, framed_tab):
        tab, child = framed_tab
        await tab.switch_frame(name="widget")
        tab.page.emit("framenavigated", child)
        assert tab.current_frame() is child

    @pytest.mark.asyncio
    async def test_switching_to_main_frame_clears(self, framed_tab):
        tab, child = framed_tab
        await tab.switch_frame(index=1)
        await tab.switch_frame(index=0)
        assert tab.frame_context.is_main

    def test_list_frames(self, framed_tab):
        tab, child = framed_tab
        tab.frame_context.select(child, "name=widget")
        frames = tab.list_frames()
        assert [f["index"] for f in frames] == [0, 1]
        assert frames[0]["isMain"] and not frames[0]["isCurrent"]
        assert frames[1]["isCurrent"]
        assert frames[1]["parentFrame"] == 0
        assert frames[1]["name"] == "widget"

"""
Unit tests for PaginationService.

Tests cover:
- Page turns updating section width and progress
- Section boundary replies (before start / past end)
- Position jumps and queueing while a section loads
- Rescaling with relative position preservation
- Load completion (scale re-application, pending position replay)
- Surface failures leaving state untouched
- Discarding replies after the document is closed
- Serialization of surface commands
"""

import asyncio

import pytest

from folio.models.navigation_types import (
    NavigationState,
    PaginationStatus,
    SectionBoundary,
)
from folio.models.reader_settings import ReaderSettings
from folio.services.pagination_service import PaginationService
from folio.services.reader_errors import (
    NoSurfaceError,
    SectionNotReadyError,
    SurfaceCommunicationError,
)

from conftest import SimulatedSurface


class BlockingSurface(SimulatedSurface):
    """Surface whose calls wait until released"""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def call(self, function, *args):
        self.entered.set()
        await self.release.wait()
        return await super().call(function, *args)


class TrackingSurface(SimulatedSurface):
    """Surface that records how many calls overlap"""

    def __init__(self):
        super().__init__()
        self.active = 0
        self.max_active = 0

    async def call(self, function, *args):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        self.active -= 1
        return await super().call(function, *args)


def ready_service(surface, scale=1.0):
    state = NavigationState(current_href="text/s0.xhtml", scale=scale)
    state.status = PaginationStatus.READY
    return PaginationService(state, surface=surface)


class TestTurnPage:
    @pytest.mark.asyncio
    async def test_next_page_updates_progress_and_width(self, ready_pagination, surface):
        reply = await ready_pagination.turn_page(1)

        assert reply.pos == pytest.approx(0.1)
        assert ready_pagination.state.section_progress == pytest.approx(0.1)
        assert ready_pagination.state.section_width == 1000.0
        assert surface.calls[-1] == ("movePage", (1, True))

    @pytest.mark.asyncio
    async def test_smooth_defaults_to_setting(self, surface):
        state = NavigationState(status=PaginationStatus.READY)
        service = PaginationService(
            state, surface=surface, settings=ReaderSettings(smooth_scrolling=False)
        )

        await service.turn_page(1)
        await service.turn_page(1, smooth=True)

        assert surface.calls[0] == ("movePage", (1, False))
        assert surface.calls[1] == ("movePage", (1, True))

    @pytest.mark.asyncio
    async def test_past_end_resets_progress(self, ready_pagination, surface):
        surface.scroll_x = 900.0

        reply = await ready_pagination.turn_page(1)

        assert reply.pos == pytest.approx(1.1)
        assert reply.past_end is True
        assert reply.boundary == SectionBoundary.PAST_END
        assert ready_pagination.state.section_progress == 0.0

    @pytest.mark.asyncio
    async def test_before_start_sets_sentinel(self, ready_pagination):
        reply = await ready_pagination.turn_page(-1)

        assert reply.pos == -1
        assert reply.before_start is True
        assert ready_pagination.state.section_progress == SectionBoundary.BEFORE_START

    @pytest.mark.asyncio
    async def test_zero_direction_snaps(self, ready_pagination, surface):
        surface.scroll_x = 260.0

        reply = await ready_pagination.turn_page(0)

        assert reply.pos == pytest.approx(0.3)
        assert surface.scroll_x == 300.0

    @pytest.mark.asyncio
    async def test_rejected_while_loading(self, ready_pagination, surface):
        ready_pagination.begin_loading("text/s1.xhtml")

        with pytest.raises(SectionNotReadyError):
            await ready_pagination.turn_page(1)
        assert surface.calls == []

    @pytest.mark.asyncio
    async def test_invalid_direction(self, ready_pagination):
        with pytest.raises(ValueError):
            await ready_pagination.turn_page(2)

    @pytest.mark.asyncio
    async def test_requires_surface(self):
        state = NavigationState(status=PaginationStatus.READY)
        service = PaginationService(state)

        with pytest.raises(NoSurfaceError):
            await service.turn_page(1)

    @pytest.mark.asyncio
    async def test_failed_round_trip_leaves_state_unchanged(
        self, ready_pagination, surface
    ):
        await ready_pagination.turn_page(1)
        surface.fail_on.add("movePage")

        with pytest.raises(SurfaceCommunicationError):
            await ready_pagination.turn_page(1)

        assert ready_pagination.state.section_progress == pytest.approx(0.1)
        assert ready_pagination.state.section_width == 1000.0

    @pytest.mark.asyncio
    async def test_unparseable_reply_is_communication_error(
        self, ready_pagination, surface
    ):
        surface.raw_replies["movePage"] = {"pos": "middle", "width": 10}

        with pytest.raises(SurfaceCommunicationError):
            await ready_pagination.turn_page(1)
        assert ready_pagination.state.section_width == 0.0


class TestGotoPosition:
    @pytest.mark.asyncio
    async def test_jump_snaps_to_page(self, ready_pagination, surface):
        reply = await ready_pagination.goto_position(0.42)

        assert reply.pos == pytest.approx(0.4)
        assert surface.scroll_x == 400.0
        assert ready_pagination.state.section_progress == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_queued_while_loading(self, ready_pagination, surface):
        ready_pagination.begin_loading("text/s1.xhtml")

        assert await ready_pagination.goto_position(0.5) is None
        assert ready_pagination.state.pending_target_position == 0.5
        assert surface.calls == []

    @pytest.mark.asyncio
    async def test_pending_position_last_write_wins(self, ready_pagination):
        ready_pagination.begin_loading("text/s1.xhtml")

        await ready_pagination.goto_position(0.2)
        await ready_pagination.goto_position(0.7)

        assert ready_pagination.state.pending_target_position == 0.7

    @pytest.mark.asyncio
    async def test_out_of_range_position(self, ready_pagination):
        with pytest.raises(ValueError):
            await ready_pagination.goto_position(1.5)

    @pytest.mark.asyncio
    async def test_query_position(self, ready_pagination, surface):
        surface.scroll_x = 500.0

        reply = await ready_pagination.query_position()

        assert reply.pos == pytest.approx(0.5)
        assert surface.calls[-1] == ("position", ())


class TestRescale:
    @pytest.mark.asyncio
    async def test_rescale_preserves_relative_position(self, ready_pagination, surface):
        await ready_pagination.goto_position(0.5)
        before = (await ready_pagination.query_position()).pos

        applied = await ready_pagination.rescale(2.0)
        after = (await ready_pagination.query_position()).pos

        assert applied == 2.0
        assert ready_pagination.state.scale == 2.0
        assert surface.total_width == 2000.0
        assert after == pytest.approx(before)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("scale", [0.5, 1.5, 3.0])
    async def test_rescale_position_within_one_page(self, scale):
        surface = SimulatedSurface()
        service = ready_service(surface)
        await service.goto_position(0.6)
        before = (await service.query_position()).pos

        await service.rescale(scale)
        after = (await service.query_position()).pos

        tolerance = surface.screen_width / surface.total_width
        assert after == pytest.approx(before, abs=tolerance)

    @pytest.mark.asyncio
    async def test_rescale_issues_query_scale_restore(self, ready_pagination, surface):
        await ready_pagination.rescale(1.5)

        assert surface.call_names() == ["position", "scaleText", "position"]
        assert surface.calls[0][1] == ()
        assert surface.calls[1][1] == (1.5,)

    @pytest.mark.asyncio
    async def test_unparseable_scale_keeps_previous_scale(
        self, ready_pagination, surface
    ):
        surface.raw_replies["scaleText"] = "large"

        with pytest.raises(SurfaceCommunicationError):
            await ready_pagination.rescale(3.0)
        assert ready_pagination.state.scale == 1.0

    @pytest.mark.asyncio
    async def test_rescale_clamps_to_limits(self, ready_pagination, surface):
        applied = await ready_pagination.rescale(500.0)

        assert applied == 100.0
        assert surface.calls[1] == ("scaleText", (100.0,))

    @pytest.mark.asyncio
    async def test_rescale_rejects_non_positive(self, ready_pagination):
        with pytest.raises(ValueError):
            await ready_pagination.rescale(0)

    @pytest.mark.asyncio
    async def test_rescale_rejected_while_loading(self, ready_pagination):
        ready_pagination.begin_loading("text/s1.xhtml")
        with pytest.raises(SectionNotReadyError):
            await ready_pagination.rescale(2.0)


class TestLoadFinished:
    @pytest.mark.asyncio
    async def test_load_finished_reapplies_scale(self, surface):
        state = NavigationState(scale=1.5)
        service = PaginationService(state, surface=surface)
        service.begin_loading("text/s1.xhtml")

        result = await service.on_load_finished()

        assert result is None
        assert state.status == PaginationStatus.READY
        assert ("scaleText", (1.5,)) in surface.calls
        assert surface.scale == 1.5

    @pytest.mark.asyncio
    async def test_pending_position_replayed_and_cleared(self, surface):
        service = PaginationService(NavigationState(scale=1.0), surface=surface)
        service.begin_loading("text/s1.xhtml")
        await service.goto_position(1.0)

        reply = await service.on_load_finished()

        assert reply.pos == pytest.approx(0.9)
        assert service.state.pending_target_position is None
        assert surface.calls[-1] == ("position", (1.0,))

    @pytest.mark.asyncio
    async def test_pending_cleared_when_replay_fails(self, surface):
        service = PaginationService(NavigationState(scale=1.0), surface=surface)
        service.begin_loading("text/s1.xhtml")
        service.set_pending_position(0.5)
        original_call = surface.call

        async def failing_jump(function, *args):
            if function == "position" and args == (0.5,):
                raise SurfaceCommunicationError("jump failed")
            return await original_call(function, *args)

        surface.call = failing_jump

        with pytest.raises(SurfaceCommunicationError):
            await service.on_load_finished()
        assert service.state.pending_target_position is None

        # a later load does not replay the stale jump
        service.begin_loading("text/s2.xhtml")
        assert await service.on_load_finished() is None

    @pytest.mark.asyncio
    async def test_scale_failure_does_not_block_replay(self, surface):
        service = PaginationService(NavigationState(scale=1.0), surface=surface)
        service.begin_loading("text/s1.xhtml")
        service.set_pending_position(0.3)
        surface.raw_replies["scaleText"] = None

        reply = await service.on_load_finished()

        assert reply.pos == pytest.approx(0.3)
        assert service.state.scale == 1.0

    @pytest.mark.asyncio
    async def test_loaded_href_updates_current_href(self, surface):
        service = PaginationService(NavigationState(), surface=surface)
        service.begin_loading("text/s1.xhtml#part")

        await service.on_load_finished("text/s1.xhtml")

        assert service.state.current_href == "text/s1.xhtml"


class TestCloseAndSerialization:
    @pytest.mark.asyncio
    async def test_reply_after_close_is_discarded(self):
        surface = BlockingSurface()
        service = ready_service(surface)

        task = asyncio.create_task(service.turn_page(1))
        await surface.entered.wait()
        service.close()
        surface.release.set()

        assert await task is None
        assert service.state.section_width == 0.0
        assert service.state.section_progress == 0.0
        assert service.state.closed is True

    @pytest.mark.asyncio
    async def test_load_finished_ignored_after_close(self, ready_pagination, surface):
        ready_pagination.close()

        assert await ready_pagination.on_load_finished() is None
        assert surface.calls == []
        assert ready_pagination.state.status == PaginationStatus.IDLE

    @pytest.mark.asyncio
    async def test_one_command_in_flight(self):
        surface = TrackingSurface()
        service = ready_service(surface)

        await asyncio.gather(
            service.turn_page(1),
            service.turn_page(1),
            service.goto_position(0.5),
            service.rescale(2.0),
        )

        assert surface.max_active == 1
        assert len(surface.calls) == 6


class TestLoadStartedWhileWaiting:
    """A section load that starts while a command waits for the lock"""

    async def hold_lock(self, service, surface):
        first = asyncio.create_task(service.turn_page(1))
        await surface.entered.wait()
        return first

    async def let_waiters_queue(self):
        for _ in range(3):
            await asyncio.sleep(0)

    @pytest.mark.asyncio
    async def test_waiting_page_turn_is_rejected(self):
        surface = BlockingSurface()
        service = ready_service(surface)
        first = await self.hold_lock(service, surface)
        second = asyncio.create_task(service.turn_page(1))
        await self.let_waiters_queue()

        service.begin_loading("text/s1.xhtml")
        surface.release.set()

        assert (await first).pos == pytest.approx(0.1)
        with pytest.raises(SectionNotReadyError):
            await second
        assert surface.call_names() == ["movePage"]

    @pytest.mark.asyncio
    async def test_waiting_position_jump_is_queued(self):
        surface = BlockingSurface()
        service = ready_service(surface)
        first = await self.hold_lock(service, surface)
        jump = asyncio.create_task(service.goto_position(0.5))
        await self.let_waiters_queue()

        service.begin_loading("text/s1.xhtml")
        surface.release.set()
        await first

        assert await jump is None
        assert service.state.pending_target_position == 0.5
        assert surface.call_names() == ["movePage"]

    @pytest.mark.asyncio
    async def test_waiting_rescale_is_rejected(self):
        surface = BlockingSurface()
        service = ready_service(surface)
        first = await self.hold_lock(service, surface)
        rescale = asyncio.create_task(service.rescale(2.0))
        await self.let_waiters_queue()

        service.begin_loading("text/s1.xhtml")
        surface.release.set()
        await first

        with pytest.raises(SectionNotReadyError):
            await rescale
        assert service.state.scale == 1.0
        assert surface.call_names() == ["movePage"]

    @pytest.mark.asyncio
    async def test_superseded_load_completion_keeps_newer_pending_position(self):
        surface = BlockingSurface()
        service = ready_service(surface)
        first = await self.hold_lock(service, surface)

        service.begin_loading("text/s1.xhtml")
        completion = asyncio.create_task(service.on_load_finished())
        await self.let_waiters_queue()
        service.begin_loading("text/s2.xhtml")
        service.set_pending_position(0.4)
        surface.release.set()
        await first

        assert await completion is None
        assert service.state.pending_target_position == 0.4
        assert service.state.status == PaginationStatus.LOADING
        assert surface.call_names() == ["movePage"]

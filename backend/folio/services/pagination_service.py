"""
Pagination Service Module

Drives the rendering surface through page turns, absolute position jumps and
font rescaling, and keeps the document's NavigationState in step with the
surface's replies.

State machine:
    IDLE -> LOADING      a section load was issued
    LOADING -> READY     the surface reported the load finished
    READY -> LOADING     any navigation or section change

Only one surface command is in flight per document; commands are serialized
on an asyncio lock. Replies that arrive after the document was closed are
discarded instead of being applied.
"""

import asyncio
import logging
from typing import Optional

from folio.models.navigation_types import (
    SECTION_END,
    NavigationReply,
    NavigationState,
    PaginationStatus,
    SectionBoundary,
)
from folio.models.reader_settings import ReaderSettings

from .reader_errors import (
    NoSurfaceError,
    SectionNotReadyError,
    SurfaceCommunicationError,
)
from .rendering_surface import RenderingSurface

logger = logging.getLogger(__name__)


class PaginationService:
    """Single writer of a document's NavigationState"""

    def __init__(
        self,
        state: NavigationState,
        surface: Optional[RenderingSurface] = None,
        settings: Optional[ReaderSettings] = None,
    ):
        self.state = state
        self.surface = surface
        self.settings = settings or ReaderSettings()
        self._lock = asyncio.Lock()

    def _require_surface(self) -> RenderingSurface:
        if self.surface is None:
            raise NoSurfaceError()
        return self.surface

    def _is_current(self, epoch: int) -> bool:
        return not self.state.closed and self.state.epoch == epoch

    def _require_ready(self, action: str) -> None:
        if self.state.status != PaginationStatus.READY:
            raise SectionNotReadyError(
                f"Cannot {action} while section is {self.state.status.value}"
            )

    def clamp_scale(self, scale: float) -> float:
        return max(self.settings.min_scale, min(self.settings.max_scale, scale))

    def begin_loading(self, href: str) -> None:
        """Record that the surface was asked to load a new section."""
        self.state.current_href = href
        self.state.status = PaginationStatus.LOADING
        logger.debug(f"Loading section: {href}")

    def select_toc_entry(self, toc_id: Optional[str]) -> None:
        self.state.current_toc_id = toc_id

    def set_pending_position(self, position: Optional[float]) -> None:
        """Queue a position to jump to once the next section finishes loading."""
        self.state.pending_target_position = position

    def _queue_position(self, position: float) -> None:
        logger.debug(f"Queueing target position {position} until load finishes")
        self.set_pending_position(position)

    def apply_reply(self, reply: NavigationReply, epoch: int) -> Optional[NavigationReply]:
        """Update width and progress from a surface reply, unless it is stale."""
        if not self._is_current(epoch):
            logger.debug(f"Discarding stale surface reply: {reply}")
            return None

        self.state.section_width = reply.width
        if reply.pos > SECTION_END:
            # the next section will report its own progress once loaded
            self.state.section_progress = 0.0
        elif reply.before_start:
            self.state.section_progress = SectionBoundary.BEFORE_START
        else:
            self.state.section_progress = reply.pos
        logger.debug(f"Set progress to: {self.state.section_progress}")
        return reply

    async def turn_page(
        self, direction: int, smooth: Optional[bool] = None
    ) -> Optional[NavigationReply]:
        """
        Move one page within the current section, snapping to column bounds

        Args:
            direction: -1 previous page, +1 next page, 0 snap to the nearest page
            smooth: animate the scroll (defaults to the smooth_scrolling setting)

        Returns:
            The surface reply; pos < 0 or pos >= 1.0 tells the caller to move to
            the adjacent section. None if the document was closed meanwhile.

        Raises:
            SectionNotReadyError: while a section is loading
            SurfaceCommunicationError: if the round trip fails
        """
        if direction not in (-1, 0, 1):
            raise ValueError(f"Invalid page direction: {direction}")
        self._require_ready("turn page")

        surface = self._require_surface()
        if smooth is None:
            smooth = self.settings.smooth_scrolling
        epoch = self.state.epoch

        async with self._lock:
            if not self._is_current(epoch):
                return None
            # a section change may have started while waiting for the lock
            self._require_ready("turn page")
            reply = await surface.move_page(direction, smooth)
        return self.apply_reply(reply, epoch)

    async def goto_position(self, position: float) -> Optional[NavigationReply]:
        """
        Jump proportionally within the current section and snap to a page

        While a section is loading the position is queued instead and replayed
        by on_load_finished(); None is returned in that case.
        """
        if not 0.0 <= position <= 1.0:
            raise ValueError(f"Position must be within 0.0-1.0: {position}")

        if self.state.status != PaginationStatus.READY:
            self._queue_position(position)
            return None

        surface = self._require_surface()
        epoch = self.state.epoch

        async with self._lock:
            if not self._is_current(epoch):
                return None
            if self.state.status != PaginationStatus.READY:
                self._queue_position(position)
                return None
            reply = await surface.position(position)
        return self.apply_reply(reply, epoch)

    async def query_position(self) -> Optional[NavigationReply]:
        """Ask the surface for the current position without moving."""
        surface = self._require_surface()
        epoch = self.state.epoch

        async with self._lock:
            if not self._is_current(epoch):
                return None
            reply = await surface.position()
        return self.apply_reply(reply, epoch)

    async def rescale(self, scale: float) -> Optional[float]:
        """
        Apply a new font scale while keeping the reader's relative position

        The current position is queried, the scale applied, and the queried
        position re-issued so the text reflows around the same spot.

        Returns:
            The scale the surface applied, which becomes state.scale. None if
            the document was closed meanwhile.

        Raises:
            SectionNotReadyError: while a section is loading
            SurfaceCommunicationError: if any round trip fails; state.scale
                keeps its previous value
        """
        if scale <= 0:
            raise ValueError(f"Scale must be positive: {scale}")
        self._require_ready("rescale")

        surface = self._require_surface()
        scale = self.clamp_scale(scale)
        epoch = self.state.epoch

        async with self._lock:
            if not self._is_current(epoch):
                return None
            self._require_ready("rescale")
            before = await surface.position()
            applied = await surface.scale_text(scale)
            restore_to = max(0.0, min(SECTION_END, before.pos))
            after = await surface.position(restore_to)

        if not self._is_current(epoch):
            logger.debug(f"Discarding rescale result {applied} for closed document")
            return None

        self.state.scale = applied
        self.apply_reply(after, epoch)
        logger.info(f"Applied page scale {applied} (requested {scale})")
        return applied

    async def on_load_finished(
        self, loaded_href: Optional[str] = None
    ) -> Optional[NavigationReply]:
        """
        Handle the surface's load-completion signal

        Re-applies the current scale, then replays the pending target position
        if one was queued. The pending position is cleared whether or not the
        replay succeeds, so it never leaks into a later load.

        Args:
            loaded_href: href the surface reports as loaded, when it reports one

        Returns:
            The reply of the replayed position jump, if any
        """
        if self.state.closed:
            logger.debug("Ignoring load completion for closed document")
            return None

        if loaded_href:
            self.state.current_href = loaded_href
        self.state.status = PaginationStatus.READY
        logger.debug(f"Section loaded: {self.state.current_href}")

        try:
            await self.rescale(self.state.scale)
        except SurfaceCommunicationError as e:
            logger.error(f"Error updating page scale: {e}")
        except SectionNotReadyError:
            # a newer load started; its completion replays the pending position
            logger.debug("Section changed before load completion was handled")
            return None

        target = self.state.pending_target_position
        if target is None:
            return None

        # cleared before the replay so a position queued by a newer load survives
        self.state.pending_target_position = None
        logger.debug(f"Jumping to target position: {target}")
        return await self.goto_position(target)

    def close(self) -> None:
        """Mark the document closed; late replies are discarded from now on."""
        self.state.closed = True
        self.state.epoch += 1
        self.state.status = PaginationStatus.IDLE
        self.state.pending_target_position = None
        logger.debug("Pagination state closed")

"""
Reader Session Service

One ReaderSession exists per open document. It connects the navigation
resolver, the pagination service and the gesture service to a rendering
surface, and is the API the UI layer talks to: open/close, jump to a TOC
entry, turn pages (crossing into adjacent sections), zoom, and forward the
surface's event messages.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Coroutine, Optional
from urllib.parse import urlparse

from pydantic import ValidationError

from folio.models.epub_container import EPUBContainer
from folio.models.navigation_types import (
    NavigationReply,
    NavigationState,
    TouchEvent,
    TouchEventKind,
)
from folio.models.reader_settings import ReaderSettings

from .epub import EPUBNavigationService, EPUBURLHelper
from .gesture_service import GestureService
from .pagination_service import PaginationService
from .reader_errors import ReaderError
from .reader_settings_service import ReaderSettingsService
from .rendering_surface import RenderingSurface

logger = logging.getLogger(__name__)

LOADED_MESSAGE = "loaded"


class ReaderSession:
    """Navigation and pagination for a single open document"""

    MAX_REPORTED_ERRORS = 20

    def __init__(
        self,
        container: EPUBContainer,
        settings: Optional[ReaderSettings] = None,
        settings_service: Optional[ReaderSettingsService] = None,
        session_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.container = container
        self.settings = settings or ReaderSettings()
        self.settings_service = settings_service
        self.created_at = datetime.now()

        self.state = NavigationState(scale=self.settings.page_scale)
        self.navigation = EPUBNavigationService(container)
        self.pagination = PaginationService(self.state, settings=self.settings)
        self.gestures = GestureService(self.settings.tap_window_ms, clock)

        # The most recent tap region reported by the surface
        self.touch_region: Optional[float] = None
        self.errors: list[str] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def surface(self) -> Optional[RenderingSurface]:
        return self.pagination.surface

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------

    def attach_surface(self, surface: RenderingSurface) -> bool:
        """
        Install a rendering surface and show the current section on it

        A fresh session opens at its initial section; a reconnecting surface
        reloads the current section and returns to the last known progress.
        """
        previous = self.pagination.surface
        if previous is not None and previous is not surface:
            previous.close()
        self.pagination.surface = surface

        if self.state.current_href is None:
            return self.open()

        progress = self.state.section_progress
        if not self._load_href(self.state.current_href):
            return False
        if isinstance(progress, float) and self.state.pending_target_position is None:
            self.pagination.set_pending_position(progress)
        return True

    def detach_surface(self, surface: Optional[RenderingSurface] = None) -> None:
        current = self.pagination.surface
        if current is None or (surface is not None and surface is not current):
            return
        current.close()
        self.pagination.surface = None

    def open(self) -> bool:
        """
        Show the initial section: the first TOC entry, or the first spine item
        when the document has no table of contents.
        """
        first_point = self.container.first_toc_point()
        if first_point is not None:
            logger.debug(f"Loading initial selection: {first_point.id}")
            if self.go_to_toc_entry(first_point.id):
                return True

        hrefs = self.container.spine_hrefs()
        if not hrefs:
            logger.warning(f"Document has no readable spine items: {self.container.title}")
            return False
        if not self._load_href(hrefs[0]):
            return False
        self.pagination.select_toc_entry(self.navigation.owning_toc_id(0))
        return True

    async def close(self) -> None:
        """Close the document; outstanding surface replies are discarded."""
        self.pagination.close()
        self.detach_surface()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info(f"Closed reader session {self.session_id}")

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _load_href(self, href: str) -> bool:
        surface = self.pagination.surface
        if surface is None or self.state.closed:
            return False
        if not surface.load(href):
            return False
        self.pagination.begin_loading(href)
        return True

    def go_to_toc_entry(self, toc_id: str, position: Optional[float] = None) -> bool:
        """
        Load the section a TOC entry points at

        Args:
            toc_id: TOC point id
            position: fraction of the section to jump to once it has loaded

        Returns:
            True if the entry was found and its load was issued
        """
        href = self.navigation.href_for_toc_entry(toc_id)
        if href is None:
            return False

        logger.debug(f"Loading TOC href: {href}")
        if not self._load_href(href):
            return False

        if position is not None:
            self.pagination.set_pending_position(position)
        self.pagination.select_toc_entry(toc_id)
        return True

    def change_section(self, offset: int) -> bool:
        """
        Move to the spine item at the given offset from the current section

        Moving forward lands at the start of the new section, moving back
        lands at its end.

        Returns:
            True if the adjacent section was loaded
        """
        current_href = self.state.current_href
        if current_href is None:
            return False

        logger.debug(f"Moving {'next' if offset > 0 else 'previous'} section by {offset}")
        loaded = False

        def load(href: str) -> bool:
            nonlocal loaded
            loaded = self._load_href(href)
            return loaded

        toc_id = self.navigation.resolve_adjacent_section(current_href, offset, load)
        if not loaded:
            logger.debug(f"Failed to navigate from href: {current_href}")
            return False

        if offset > 0:
            self.pagination.set_pending_position(0.0)
        elif offset < 0:
            self.pagination.set_pending_position(1.0)

        if toc_id is not None:
            logger.debug(f"Setting selection for offset {offset} to: {toc_id}")
            self.pagination.select_toc_entry(toc_id)
        return True

    async def turn_page(
        self, direction: int, smooth: Optional[bool] = None
    ) -> Optional[NavigationReply]:
        """
        Turn one page, continuing into the adjacent section at a section edge

        Raises:
            SectionNotReadyError: while a section is loading
            SurfaceCommunicationError: if the surface round trip fails
        """
        reply = await self.pagination.turn_page(direction, smooth)
        if reply is None:
            logger.debug(f"Unable to change page by: {direction}")
            return None

        if direction == 0 or reply.boundary is None:
            return reply

        offset = +1 if reply.past_end else -1
        if self.change_section(offset):
            return reply

        # no adjacent section: snap back so progress reflects the page shown
        logger.debug(f"No section at offset {offset}, restoring page position")
        snapped = await self.pagination.turn_page(0, smooth=False)
        return snapped if snapped is not None else reply

    async def goto_position(self, position: float) -> Optional[NavigationReply]:
        return await self.pagination.goto_position(position)

    # ------------------------------------------------------------------
    # Scaling
    # ------------------------------------------------------------------

    async def set_scale(self, scale: float) -> Optional[float]:
        """Apply an absolute page scale and persist it once the surface confirms."""
        applied = await self.pagination.rescale(scale)
        if applied is None:
            return None

        self.settings.page_scale = applied
        if self.settings_service is not None:
            self.settings_service.save_page_scale(applied)
        return applied

    async def zoom(self, amount: Optional[float] = None) -> Optional[float]:
        """
        Zoom relative to the current scale; None resets to the default scale.
        """
        if amount is None:
            target = self.settings.default_scale
        else:
            if amount <= 0:
                raise ValueError(f"Zoom amount must be positive: {amount}")
            target = self.state.scale * amount
        return await self.set_scale(target)

    # ------------------------------------------------------------------
    # Surface messages
    # ------------------------------------------------------------------

    def handle_surface_message(self, kind: str, payload: dict[str, Any]) -> Optional[float]:
        """
        Handle an event message posted by the rendering surface

        Load completions and tap-triggered page turns run as background tasks
        so the caller can keep receiving surface replies meanwhile.

        Returns:
            The tap region when the message completed a tap
        """
        if kind == LOADED_MESSAGE:
            self._spawn(self._finish_load(payload.get("url")))
            return None

        event_kind = TouchEventKind.parse(kind)
        if event_kind is None:
            logger.warning(f"Invalid message name: {kind}")
            return None

        if event_kind == TouchEventKind.LOG:
            logger.info(f"Surface log: {payload.get('message')}")
            return None
        if event_kind == TouchEventKind.CLICK:
            logger.debug(f"Click info: {payload}")
            return None

        try:
            event = TouchEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Message was invalid for {kind}: {e}")
            self.gestures.reset()
            return None

        region = self.gestures.handle_event(event_kind, event)
        if region is not None:
            self.touch_region = region
            direction = self.direction_for_tap(region)
            logger.debug(f"Tap at region {region:.2f}, turning page by {direction}")
            self._spawn(self.turn_page(direction))
        return region

    def direction_for_tap(self, region: float) -> int:
        if region < 0.5 and not self.settings.leading_tap_advances:
            return -1
        return 1

    async def _finish_load(self, url: Optional[str]) -> None:
        href = None
        if url:
            href = EPUBURLHelper.href_from_url_path(urlparse(url).path) or None
        await self.pagination.on_load_finished(href)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(self._run_reporting(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_reporting(self, coro: Coroutine[Any, Any, Any]) -> Any:
        try:
            return await coro
        except ReaderError as e:
            self.report_error(e)
            return None

    async def drain(self) -> None:
        """Wait for background tasks started by surface messages."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def report_error(self, error: Exception) -> None:
        logger.error(f"Reader session {self.session_id} error: {error}")
        self.errors.append(str(error))
        del self.errors[: -self.MAX_REPORTED_ERRORS]

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """Read-only view of the session for progress indicators."""
        snapshot = self.state.to_dict()
        snapshot.update(
            {
                "session_id": self.session_id,
                "title": self.container.title,
                "touch_region": self.touch_region,
                "has_surface": self.surface is not None,
                "errors": list(self.errors),
                "created_at": self.created_at.isoformat(),
            }
        )
        return snapshot


class ReaderSessionRegistry:
    """Keeps the open reader sessions by id"""

    def __init__(self):
        self._sessions: dict[str, ReaderSession] = {}

    def register(self, session: ReaderSession) -> str:
        self._sessions[session.session_id] = session
        logger.info(f"Registered reader session {session.session_id}")
        return session.session_id

    def get(self, session_id: str) -> Optional[ReaderSession]:
        return self._sessions.get(session_id)

    async def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            logger.warning(f"Reader session {session_id} not found for closing")
            return False
        await session.close()
        return True

    def __len__(self) -> int:
        return len(self._sessions)

"""
Gesture Service

Classifies the raw touch events a rendering surface forwards into page-turn
taps. A touch counts as a tap only when the touch-end follows the touch-start
within a short window and the finger did not move horizontally; anything else
is a swipe, a text selection drag, or noise.
"""

import logging
import time
from typing import Callable, Optional

from folio.models.navigation_types import TouchEvent, TouchEventKind

logger = logging.getLogger(__name__)


class GestureService:
    """Correlates one touch-start/touch-end pair into a tap region"""

    def __init__(
        self,
        tap_window_ms: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.tap_window = tap_window_ms / 1000.0
        self.clock = clock
        self.last_touch_start_time: Optional[float] = None
        self.last_start_x: Optional[float] = None
        self.last_client_x: Optional[float] = None

    def reset(self) -> None:
        self.last_touch_start_time = None
        self.last_start_x = None
        self.last_client_x = None

    def touch_start(
        self,
        page_x: float,
        client_x: Optional[float],
        client_width: Optional[float] = None,
    ) -> None:
        self.last_touch_start_time = self.clock()
        self.last_start_x = page_x
        self.last_client_x = client_x

    def touch_end(
        self,
        page_x: float,
        client_width: float,
        client_x: Optional[float] = None,
        selection_count: int = 0,
    ) -> Optional[float]:
        """
        Finish a gesture

        Returns:
            The tap region (0.0 left edge - 1.0 right edge of the viewport) if
            the gesture was a tap, otherwise None. Recorded state is always reset.
        """
        try:
            # an active selection means the user is dragging to extend it
            if selection_count > 0:
                return None

            if (
                self.last_touch_start_time is None
                or self.last_start_x is None
                or self.last_client_x is None
            ):
                return None

            elapsed = self.clock() - self.last_touch_start_time
            if elapsed >= self.tap_window:
                return None

            logger.debug(f"pageX: {page_x} lastPageX: {self.last_start_x}")
            if page_x != self.last_start_x:  # swipe
                return None

            if not client_width:
                return None

            return self.last_client_x / client_width
        finally:
            self.reset()

    def handle_event(self, kind: TouchEventKind, event: TouchEvent) -> Optional[float]:
        """Route a surface touch event; returns the tap region when a tap completes."""
        if kind in (TouchEventKind.TOUCHCANCEL, TouchEventKind.TOUCHLEAVE):
            self.reset()
            return None

        if kind == TouchEventKind.TOUCHSTART:
            if event.page_x is None:
                logger.debug(f"Touch start without pageX: {event}")
                return None
            self.touch_start(event.page_x, event.client_x, event.client_width)
            return None

        if kind == TouchEventKind.TOUCHEND:
            if event.page_x is None or event.client_width is None:
                logger.debug(f"Touch end without pageX/clientWidth: {event}")
                self.reset()
                return None
            return self.touch_end(
                event.page_x,
                event.client_width,
                event.client_x,
                event.selection_count,
            )

        return None

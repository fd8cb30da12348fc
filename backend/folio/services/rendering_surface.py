"""
Rendering Surface Contract

The rendering surface lays a section out into fixed-width columns and exposes
a small scripted contract the pagination engine drives:

- movePage(direction, smooth) -> {pos, x, y, width, height}
- position(amount?)           -> {pos, x, y, width, height}
- scaleText(amount)           -> applied font size, e.g. "150%"
- a "loaded" notification once per navigation

Every call is an asynchronous request/response round trip. Concrete surfaces
only implement the transport (call/load); formatting and parsing of replies
lives here so every transport validates replies the same way.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import ValidationError

from folio.models.navigation_types import NavigationReply

from .reader_errors import SurfaceCommunicationError

logger = logging.getLogger(__name__)

_PERCENT_PATTERN = re.compile(r"^\s*([+-]?\d+(?:\.\d+)?)\s*%\s*$")


def parse_percentage(value: Any) -> Optional[float]:
    """
    Parse a percentage string such as "150%" into a ratio (1.5).

    Returns None when the value is not a numeric percentage.
    """
    if not isinstance(value, str):
        return None
    match = _PERCENT_PATTERN.match(value)
    if not match:
        return None
    return float(match.group(1)) / 100.0


def parse_navigation_reply(result: Any) -> Optional[NavigationReply]:
    """
    Validate a movePage()/position() reply.

    A reply is usable only when it is a mapping carrying numeric pos and width.
    """
    if not isinstance(result, dict):
        return None
    for key in ("pos", "width"):
        value = result.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
    try:
        return NavigationReply.model_validate(result)
    except ValidationError:
        return None


class RenderingSurface(ABC):
    """A live rendering surface for one open document."""

    @abstractmethod
    async def call(self, function: str, *args: Any) -> Any:
        """
        Invoke a scripted entry point and await its reply.

        Raises:
            SurfaceCommunicationError: if the round trip fails
        """

    @abstractmethod
    def load(self, href: str) -> bool:
        """
        Ask the surface to load a content item.

        Returns False when the surface cannot initiate the load. Completion is
        reported later through the "loaded" notification.
        """

    def close(self) -> None:
        """Release the surface; outstanding calls fail."""

    async def move_page(self, direction: int, smooth: bool) -> NavigationReply:
        result = await self.call("movePage", direction, smooth)
        return self._navigation_reply("movePage", result)

    async def position(self, amount: Optional[float] = None) -> NavigationReply:
        if amount is None:
            result = await self.call("position")
        else:
            result = await self.call("position", amount)
        return self._navigation_reply("position", result)

    async def scale_text(self, amount: float) -> float:
        """Apply a font scale and return the scale the surface reports as applied."""
        result = await self.call("scaleText", amount)
        applied = parse_percentage(result)
        logger.debug(f"Zooming to {amount}, result: {result!r}")
        if applied is None:
            raise SurfaceCommunicationError(
                f"Unparseable scaleText reply: {result!r}"
            )
        return applied

    def _navigation_reply(self, function: str, result: Any) -> NavigationReply:
        reply = parse_navigation_reply(result)
        if reply is None:
            raise SurfaceCommunicationError(
                f"Unparseable {function} reply: {result!r}"
            )
        return reply

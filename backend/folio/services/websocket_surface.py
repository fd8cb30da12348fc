"""
WebSocket Rendering Surface

Bridges the scripted surface contract over a WebSocket connection to the page
that hosts the column layout.

Outbound messages:
    {"type": "call", "id": 3, "function": "movePage", "args": [1, true]}
    {"type": "load", "href": "text/ch02.xhtml", "url": "epub:///text/ch02.xhtml"}

Inbound messages:
    {"type": "reply", "id": 3, "result": {...}}    or {"type": "reply", "id": 3, "error": "..."}
    {"type": "loaded", "url": "epub:///text/ch02.xhtml"}
    {"type": "touchstart" | "touchend" | ..., **touch_payload}
"""

import asyncio
import logging
from typing import Any

from .epub.epub_url_helper import EPUBURLHelper
from .reader_errors import NoSurfaceError, SurfaceCommunicationError
from .rendering_surface import RenderingSurface

logger = logging.getLogger(__name__)


class WebSocketRenderingSurface(RenderingSurface):
    """Rendering surface reached through a FastAPI WebSocket"""

    def __init__(self, websocket, timeout: float = 10.0):
        self.websocket = websocket
        self.timeout = timeout
        self._outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._pending: dict[int, asyncio.Future] = {}
        self._next_id = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def call(self, function: str, *args: Any) -> Any:
        if self._closed:
            raise NoSurfaceError()

        self._next_id += 1
        request_id = self._next_id
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        self._outbox.put_nowait(
            {"type": "call", "id": request_id, "function": function, "args": list(args)}
        )

        try:
            return await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            raise SurfaceCommunicationError(
                f"Surface did not answer {function}() within {self.timeout}s"
            )
        finally:
            self._pending.pop(request_id, None)

    def load(self, href: str) -> bool:
        if self._closed:
            return False
        self._outbox.put_nowait(
            {"type": "load", "href": href, "url": EPUBURLHelper.content_url(href)}
        )
        return True

    def resolve_reply(self, message: dict[str, Any]) -> bool:
        """
        Complete the outstanding call a reply message answers.

        Returns:
            True if a waiting call was completed, False if the reply was stale
        """
        future = self._pending.get(message.get("id"))
        if future is None or future.done():
            logger.debug(f"Discarding reply for unknown request: {message.get('id')}")
            return False

        if message.get("error") is not None:
            future.set_exception(SurfaceCommunicationError(str(message["error"])))
        else:
            future.set_result(message.get("result"))
        return True

    async def send_loop(self) -> None:
        """Forward queued outbound messages to the WebSocket until cancelled."""
        while True:
            message = await self._outbox.get()
            await self.websocket.send_json(message)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for future in self._pending.values():
            if not future.done():
                future.set_exception(SurfaceCommunicationError("Surface closed"))
        logger.info(f"Closed WebSocket surface with {len(self._pending)} pending calls")

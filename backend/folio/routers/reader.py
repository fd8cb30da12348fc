import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from ..services.epub import EPUBContainerBuilder
from ..services.reader_errors import SectionNotReadyError, SurfaceCommunicationError
from ..services.reader_session import ReaderSession, ReaderSessionRegistry
from ..services.reader_settings_service import ReaderSettingsService
from ..services.surface_script import build_user_script
from ..services.websocket_surface import WebSocketRenderingSurface

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reader", tags=["reader"])

# Initialize services
container_builder = EPUBContainerBuilder()
settings_service = ReaderSettingsService()
sessions = ReaderSessionRegistry()


# Helper function to get a reader session by ID or raise 404
def get_session_or_404(session_id: str) -> ReaderSession:
    """
    Look up an open reader session, or raise HTTPException(404) if not found.

    Args:
        session_id: The reader session ID

    Returns:
        The open ReaderSession

    Raises:
        HTTPException: 404 if the session is not open
    """
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Reader session not found")
    return session


def require_surface(session: ReaderSession) -> None:
    if session.surface is None:
        raise HTTPException(status_code=502, detail="No rendering surface attached")


class OpenSessionRequest(BaseModel):
    epub_path: str


class PageTurnRequest(BaseModel):
    direction: int = Field(ge=-1, le=1)
    smooth: Optional[bool] = None


class PositionRequest(BaseModel):
    position: float = Field(ge=0.0, le=1.0)


class ZoomRequest(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0)


def reply_to_dict(reply) -> Optional[Dict[str, Any]]:
    return reply.model_dump() if reply is not None else None


@router.post("/sessions")
async def open_session(request: OpenSessionRequest) -> Dict[str, Any]:
    """
    Open an EPUB and create a reader session for it
    """
    try:
        container = container_builder.build_from_path(request.epub_path)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="EPUB not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error opening EPUB: {str(e)}")

    session = ReaderSession(
        container,
        settings=settings_service.load(),
        settings_service=settings_service,
    )
    sessions.register(session)

    return {
        "session_id": session.session_id,
        "title": container.title,
        "navigation": session.navigation.get_navigation_tree(),
    }


@router.get("/sessions/{session_id}")
async def get_session_state(session_id: str) -> Dict[str, Any]:
    """
    Get the reading state of a session (current section, progress, scale)
    """
    session = get_session_or_404(session_id)
    return session.snapshot()


@router.get("/sessions/{session_id}/navigation")
async def get_session_navigation(session_id: str) -> Dict[str, Any]:
    """
    Get the hierarchical navigation structure (table of contents) of the open EPUB
    """
    session = get_session_or_404(session_id)
    return session.navigation.get_navigation_tree()


@router.post("/sessions/{session_id}/toc/{toc_id}")
async def go_to_toc_entry(
    session_id: str,
    toc_id: str,
    position: Optional[float] = Query(default=None, ge=0.0, le=1.0),
) -> Dict[str, Any]:
    """
    Load the section a table of contents entry points at
    """
    session = get_session_or_404(session_id)
    require_surface(session)

    if not session.go_to_toc_entry(toc_id, position=position):
        raise HTTPException(status_code=404, detail="TOC entry not found")

    return {
        "success": True,
        "current_toc_id": session.state.current_toc_id,
        "current_href": session.state.current_href,
    }


@router.post("/sessions/{session_id}/page")
async def turn_page(session_id: str, request: PageTurnRequest) -> Dict[str, Any]:
    """
    Turn a page, moving into the adjacent section at a section boundary
    """
    session = get_session_or_404(session_id)
    require_surface(session)

    try:
        reply = await session.turn_page(request.direction, request.smooth)
    except SectionNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SurfaceCommunicationError as e:
        session.report_error(e)
        raise HTTPException(status_code=502, detail=f"Error turning page: {str(e)}")

    return {"reply": reply_to_dict(reply), "state": session.snapshot()}


@router.put("/sessions/{session_id}/position")
async def set_position(session_id: str, request: PositionRequest) -> Dict[str, Any]:
    """
    Jump to a fraction of the current section (queued while a section loads)
    """
    session = get_session_or_404(session_id)
    require_surface(session)

    try:
        reply = await session.goto_position(request.position)
    except SurfaceCommunicationError as e:
        session.report_error(e)
        raise HTTPException(
            status_code=502, detail=f"Error setting position: {str(e)}"
        )

    return {
        "reply": reply_to_dict(reply),
        "queued": reply is None,
        "state": session.snapshot(),
    }


@router.put("/sessions/{session_id}/scale")
async def zoom(session_id: str, request: ZoomRequest) -> Dict[str, Any]:
    """
    Zoom the text relative to the current scale; a null amount resets to actual size
    """
    session = get_session_or_404(session_id)
    require_surface(session)

    try:
        applied = await session.zoom(request.amount)
    except SectionNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SurfaceCommunicationError as e:
        session.report_error(e)
        raise HTTPException(status_code=502, detail=f"Error scaling text: {str(e)}")

    return {"scale": applied, "state": session.snapshot()}


@router.delete("/sessions/{session_id}")
async def close_session(session_id: str) -> Dict[str, Any]:
    """
    Close a reader session
    """
    if not await sessions.close(session_id):
        raise HTTPException(status_code=404, detail="Reader session not found")
    return {"success": True, "message": f"Reader session {session_id} closed"}


@router.get("/sessions/{session_id}/user-script")
async def get_user_script(session_id: str) -> PlainTextResponse:
    """
    Get the column layout user script the rendering surface injects into sections
    """
    session = get_session_or_404(session_id)
    return PlainTextResponse(
        build_user_script(session.settings), media_type="application/javascript"
    )


@router.websocket("/sessions/{session_id}/surface")
async def surface_bridge(websocket: WebSocket, session_id: str):
    """
    Connect a rendering surface to a reader session

    Replies to engine calls resolve the outstanding requests; every other
    message is an event (load completion, touch, log) for the session.
    """
    session = sessions.get(session_id)
    if session is None:
        await websocket.close(code=4404)
        return

    await websocket.accept()
    surface = WebSocketRenderingSurface(
        websocket, timeout=session.settings.surface_timeout
    )
    sender = asyncio.create_task(surface.send_loop())
    session.attach_surface(surface)
    logger.info(f"Surface connected to reader session {session_id}")

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError as e:
                logger.warning(f"Ignoring surface frame that is not JSON: {e}")
                continue

            if not isinstance(message, dict):
                logger.warning(f"Message was invalid: {message!r}")
                continue

            kind = message.get("type")
            if kind == "reply":
                surface.resolve_reply(message)
            else:
                session.handle_surface_message(str(kind), message)
    except WebSocketDisconnect:
        logger.info(f"Surface disconnected from reader session {session_id}")
    finally:
        sender.cancel()
        session.detach_surface(surface)

"""Chat router providing the WebSocket endpoint and room queries.

This module provides:
    - GET /rooms/{room_code}: Room summary (member counts, history size)
    - WebSocket /ws: Real-time room events

Protocol:
    Every frame in either direction is ``{"event": <name>, "data": {...}}``.

    Inbound events:
        - joinRoom{roomCode, userName, displayName?}
        - sendMessage{roomCode, userName, displayName?, message}
        - leaveRoom{roomCode, userName, displayName?}
        - typing / stopTyping{roomCode, userName, displayName?}
        - updateStatus{roomCode, userName, displayName?, status?}

    Outbound events:
        - message, messageHistory, userList, typingStatus, error

    Closing the socket counts as an involuntary disconnect: the member stays
    in the roster as disconnected and can reconnect inside the grace window
    without a new join notice.
"""
import json
import logging

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from fastapi.requests import HTTPConnection

from .coordinator import ChatCoordinator
from .schemas import RoomSummary
from .transport import Connection

logger = logging.getLogger(__name__)

router = APIRouter()


def get_coordinator(conn: HTTPConnection) -> ChatCoordinator:
    """The coordinator built by create_app() for this application."""
    return conn.app.state.coordinator


@router.get("/rooms/{room_code}", response_model=RoomSummary, tags=["rooms"])
async def get_room_summary(room_code: str, request: Request) -> RoomSummary:
    """Get member counts and history size for a room.

    Args:
        room_code: The room code.

    Returns:
        RoomSummary; ``exists`` is False for codes with no open room.
    """
    return get_coordinator(request).room_summary(room_code)


@router.websocket("/ws")
async def websocket_room_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint carrying every room event for one client.

    The connection may join, switch between and leave rooms over its
    lifetime. Each inbound frame is handed to the coordinator, which runs it
    on the target room's queue; a failing event is logged and the loop
    carries on.

    Args:
        websocket: The WebSocket connection.
    """
    coordinator = get_coordinator(websocket)
    await websocket.accept()
    connection = Connection(websocket)
    ctx = coordinator.open_connection(connection)
    logger.info(f"[WS] Client connected: {connection.id}")

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                logger.debug(f"[WS] Ignoring binary frame from {connection.id}")
                continue
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                frame = None
            if not isinstance(frame, dict):
                logger.debug(f"[WS] Ignoring malformed frame from {connection.id}")
                continue

            event = frame.get("event", "")
            logger.debug("[WS] %s received: event=%s", connection.id, event)
            try:
                await coordinator.dispatch(ctx, event, frame.get("data"))
            except Exception as e:
                logger.warning(f"[WS] Event {event} from {connection.id} failed: {e}")

    except WebSocketDisconnect:
        logger.info(f"[WS] Client disconnected: {connection.id}")
    finally:
        coordinator.connection_lost(ctx)

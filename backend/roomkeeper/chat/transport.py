"""Transport capability set consumed by the room core.

The core never touches sockets directly. It needs four operations:

    - join_group / leave_group: attach a connection to a room's fan-out group
    - send_to_one: deliver an event to a single connection
    - broadcast_to_group: deliver an event to every connection in a room

On-event and on-disconnect are provided by the WebSocket receive loop in
``router.py``.

Wire framing is ``{"event": <name>, "data": <payload>}``.

Performance Notes:
    - Broadcasting uses asyncio.gather() for concurrent delivery
    - Connections whose send fails are dropped from every group
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, List, Protocol

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Connection:
    """A client connection with a stable server-assigned id."""

    def __init__(self, websocket: WebSocket, connection_id: str = "") -> None:
        self.websocket = websocket
        self.id = connection_id or str(uuid.uuid4())

    async def send(self, event: str, payload: Dict[str, Any]) -> None:
        await self.websocket.send_json({"event": event, "data": payload})

    def __repr__(self) -> str:
        return f"Connection({self.id})"


class Transport(Protocol):
    def join_group(self, connection: Connection, room_code: str) -> None: ...

    def leave_group(self, connection: Connection, room_code: str) -> None: ...

    async def send_to_one(self, connection: Connection, event: str, payload: Dict[str, Any]) -> None: ...

    async def broadcast_to_group(self, room_code: str, event: str, payload: Dict[str, Any]) -> None: ...


class WebSocketTransport:
    """Fan-out groups over FastAPI WebSocket connections."""

    def __init__(self) -> None:
        # room_code -> connections in join order
        self.groups: Dict[str, List[Connection]] = {}

    def join_group(self, connection: Connection, room_code: str) -> None:
        members = self.groups.setdefault(room_code, [])
        if connection not in members:
            members.append(connection)

    def leave_group(self, connection: Connection, room_code: str) -> None:
        members = self.groups.get(room_code)
        if not members:
            return
        if connection in members:
            members.remove(connection)
        if not members:
            del self.groups[room_code]

    def drop(self, connection: Connection) -> None:
        """Remove a connection from every group."""
        for room_code in list(self.groups):
            self.leave_group(connection, room_code)

    async def send_to_one(self, connection: Connection, event: str, payload: Dict[str, Any]) -> None:
        if not await self._safe_send(connection, event, payload):
            self.drop(connection)

    async def broadcast_to_group(self, room_code: str, event: str, payload: Dict[str, Any]) -> None:
        """Send an event to every connection in a room concurrently.

        Connections that fail are removed from all groups.
        """
        connections = list(self.groups.get(room_code, []))
        if not connections:
            return

        results = await asyncio.gather(
            *[self._safe_send(conn, event, payload) for conn in connections],
            return_exceptions=True,
        )

        for conn, success in zip(connections, results):
            if success is not True:
                self.drop(conn)
                logger.debug(f"Removed dead connection {conn.id} from room {room_code}")

    async def _safe_send(self, connection: Connection, event: str, payload: Dict[str, Any]) -> bool:
        try:
            await connection.send(event, payload)
            return True
        except Exception as e:
            logger.debug(f"Failed to send {event} to {connection.id}: {e}")
            return False

"""Room state, event orchestration and the WebSocket surface."""

from .coordinator import ChatCoordinator
from .errors import ChatError, IgnorableEventError, RoomAlreadyExistsError, RoomNotFoundError
from .router import router
from .transport import Connection, Transport, WebSocketTransport

__all__ = [
    "ChatCoordinator",
    "ChatError",
    "Connection",
    "IgnorableEventError",
    "RoomAlreadyExistsError",
    "RoomNotFoundError",
    "Transport",
    "WebSocketTransport",
    "router",
]

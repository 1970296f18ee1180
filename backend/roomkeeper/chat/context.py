"""Per-connection state carried through every handler."""
from dataclasses import dataclass
from typing import Optional

from .timers import TimerHandle
from .transport import Connection


@dataclass
class ConnectionContext:
    """What one connection is currently doing.

    Attributes:
        connection: Transport handle for this client.
        current_room: Room the connection has joined, if any.
        user_name: Raw userName from the last join.
        display_name: Resolved display name from the last join.
        typing_timer: Pending typing auto-clear timer (at most one).
        typing_token: Identifies the pending timer; a firing timer whose token
            no longer matches has been superseded.
    """
    connection: Connection
    current_room: Optional[str] = None
    user_name: Optional[str] = None
    display_name: Optional[str] = None
    typing_timer: Optional[TimerHandle] = None
    typing_token: int = 0

    @property
    def in_room(self) -> bool:
        return bool(self.current_room and self.user_name is not None)

    def clear_room(self) -> None:
        self.current_room = None
        self.user_name = None
        self.display_name = None

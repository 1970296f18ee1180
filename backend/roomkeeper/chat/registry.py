"""Room lifetime management.

RoomRegistry is the only place a room is created or destroyed. A room owns
three pieces of state that live and die together:
    - the Room itself (live members and the connected-member count)
    - its history log in MessageHistoryStore
    - its ghost directory (ghost participants plus join records)

A room with no connected members is kept as long as its history is non-empty,
so later joiners still get replay continuity.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from .errors import RoomAlreadyExistsError
from .history import MessageHistoryStore
from .schemas import GhostParticipant, LiveMember

logger = logging.getLogger(__name__)


@dataclass
class Room:
    """An open room.

    ``member_count`` counts live members with ``connected=True``.
    """
    code: str
    live_members: Dict[str, LiveMember] = field(default_factory=dict)
    member_count: int = 0


@dataclass
class GhostDirectory:
    """Everyone who has joined a room, plus each name's replay cursor."""
    ghosts: Dict[str, GhostParticipant] = field(default_factory=dict)
    join_records: Dict[str, int] = field(default_factory=dict)


class RoomRegistry:
    """Owner of every Room, its history log and its ghost directory."""

    def __init__(self, history: MessageHistoryStore) -> None:
        self.history = history
        self._rooms: Dict[str, Room] = {}
        self._directories: Dict[str, GhostDirectory] = {}

    def get_or_none(self, room_code: str) -> Optional[Room]:
        return self._rooms.get(room_code)

    def create(self, room_code: str) -> Room:
        """Open a new room.

        Raises:
            RoomAlreadyExistsError: The code is already open. Callers check
                with get_or_none first.
        """
        if room_code in self._rooms:
            raise RoomAlreadyExistsError(room_code)

        room = Room(code=room_code)
        self._rooms[room_code] = room
        self.history.open(room_code)
        self._directories.setdefault(room_code, GhostDirectory())
        logger.info(f"[Registry] Room {room_code} created")
        return room

    def destroy_if_empty(self, room_code: str) -> bool:
        """Remove a room with no connected members and no history.

        Returns:
            True if the room was destroyed.
        """
        room = self._rooms.get(room_code)
        if room is None or room.member_count > 0:
            return False

        if not self.history.is_empty(room_code):
            logger.info(
                f"[Registry] Room {room_code} kept with "
                f"{self.history.count(room_code)} history entries"
            )
            return False

        del self._rooms[room_code]
        self.history.drop(room_code)
        self._directories.pop(room_code, None)
        logger.info(f"[Registry] Room {room_code} destroyed (no members, no history)")
        return True

    def directory(self, room_code: str) -> Optional[GhostDirectory]:
        return self._directories.get(room_code)

    def has_ghost_directory(self, room_code: str) -> bool:
        return room_code in self._directories

    def room_codes(self) -> list:
        return list(self._rooms)

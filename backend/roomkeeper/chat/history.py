"""Per-room append-only message history.

Each room owns an ordered log of NotificationEntry and ChatMessageEntry
items. Entries are never reordered or edited after append; insertion order is
chronological order because timestamps come from a single clock.

Replay is cursor based: a returning participant receives every entry whose
timestamp is at or after their first-join timestamp.
"""
import uuid
from datetime import datetime
from typing import Dict, List

from .schemas import ChatMessageEntry, DeliveryStatus, HistoryEntry, NotificationEntry
from .timers import Clock


class MessageHistoryStore:
    """Ordered history logs for every open room.

    Logs are opened and dropped by RoomRegistry only; appending to a room
    without an open log is a no-op that still returns the timestamp.
    """

    def __init__(self, clock: Clock, time_format: str = "%H:%M") -> None:
        """Initialize an empty store.

        Args:
            clock: Millisecond clock used to stamp new entries.
            time_format: strftime pattern for the [HH:MM] part of chat lines.
        """
        self._clock = clock
        self._time_format = time_format
        self._logs: Dict[str, List[HistoryEntry]] = {}

    def open(self, room_code: str) -> None:
        self._logs.setdefault(room_code, [])

    def drop(self, room_code: str) -> None:
        self._logs.pop(room_code, None)

    def append(self, room_code: str, entry: HistoryEntry) -> int:
        """Add an entry to the end of the room's log.

        Args:
            room_code: Room whose log receives the entry.
            entry: Fully built history entry.

        Returns:
            The entry's timestamp.
        """
        log = self._logs.get(room_code)
        if log is not None:
            log.append(entry)
        return entry.timestamp

    def notification(self, room_code: str, content: str) -> int:
        """Append a system notification and return its timestamp."""
        return self.append(room_code, NotificationEntry(timestamp=self._clock(), content=content))

    def chat_message(self, room_code: str, sender: str, content: str) -> ChatMessageEntry:
        """Build, append and return a chat message.

        The id is ``msg_<timestamp>_<6 random hex chars>`` and the formatted
        rendering is ``"{sender} [{HH:MM}]: {content}"`` in local time.

        Args:
            room_code: Room the message belongs to.
            sender: Display name of the author.
            content: Raw message text.

        Returns:
            The stored ChatMessageEntry.
        """
        timestamp = self._clock()
        clock_time = datetime.fromtimestamp(timestamp / 1000).strftime(self._time_format)
        message = ChatMessageEntry(
            id=f"msg_{timestamp}_{uuid.uuid4().hex[:6]}",
            sender=sender,
            timestamp=timestamp,
            content=content,
            formattedContent=f"{sender} [{clock_time}]: {content}",
            status=DeliveryStatus.DELIVERED,
        )
        self.append(room_code, message)
        return message

    def replay_since(self, room_code: str, since: int) -> List[HistoryEntry]:
        """Entries with ``timestamp >= since``, oldest first."""
        return [entry for entry in self._logs.get(room_code, []) if entry.timestamp >= since]

    def is_empty(self, room_code: str) -> bool:
        return not self._logs.get(room_code)

    def count(self, room_code: str) -> int:
        return len(self._logs.get(room_code, []))

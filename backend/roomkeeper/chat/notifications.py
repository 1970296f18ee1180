"""System messages and roster broadcasts."""
import logging

from .history import MessageHistoryStore
from .participants import ParticipantDirectory
from .registry import RoomRegistry
from .schemas import EventName
from .transport import Transport

logger = logging.getLogger(__name__)


class NotificationEmitter:
    """Formats join/leave notices, records them in history and broadcasts them.

    Also owns the ``userList`` roster broadcast.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        directory: ParticipantDirectory,
        history: MessageHistoryStore,
        transport: Transport,
        join_template: str = "{name} ha ingresado a la sala.",
        leave_template: str = "{name} ha abandonado la sala.",
    ) -> None:
        self._registry = registry
        self._directory = directory
        self._history = history
        self._transport = transport
        self.join_template = join_template
        self.leave_template = leave_template

    async def announce_join(self, room_code: str, display_name: str) -> int:
        return await self._announce(room_code, self.join_template.format(name=display_name))

    async def announce_leave(self, room_code: str, display_name: str) -> int:
        return await self._announce(room_code, self.leave_template.format(name=display_name))

    async def _announce(self, room_code: str, content: str) -> int:
        timestamp = self._history.notification(room_code, content)
        await self._transport.broadcast_to_group(room_code, EventName.MESSAGE.value, {
            "type": EventName.MESSAGE.value,
            "roomCode": room_code,
            "message": content,
            "timestamp": timestamp,
        })
        logger.info(f"[Notify] {room_code}: {content}")
        return timestamp

    async def broadcast_presence(self, room_code: str) -> None:
        """Send the current roster to everyone in the room (no-op for closed rooms)."""
        room = self._registry.get_or_none(room_code)
        if room is None:
            return

        users = self._directory.list_presence(room_code)
        logger.debug(f"[Notify] Roster for {room_code}: {', '.join(u.name for u in users)}")
        await self._transport.broadcast_to_group(room_code, EventName.USER_LIST.value, {
            "type": EventName.USER_LIST.value,
            "roomCode": room_code,
            "count": room.member_count,
            "activeCount": sum(1 for u in users if u.connected),
            "users": [u.model_dump() for u in users],
        })

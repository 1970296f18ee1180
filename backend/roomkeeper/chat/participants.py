"""Membership bookkeeping for open rooms.

Bridges two views of a room's participants:

    - LiveMember (Room.live_members): names attached through a connection,
      connected or temporarily dropped.
    - GhostParticipant (GhostDirectory.ghosts): everyone who has joined and
      not voluntarily left, used for the presence roster and for a stable
      ``joinedAt`` across reconnections.

Join records (GhostDirectory.join_records) hold each name's replay cursor.
They are deleted on voluntary leave so the next join counts as fresh.

Room.member_count tracks live members with connected=True and is only moved
on connected <-> disconnected transitions.
"""
import logging
from typing import List, Optional, Tuple

from .registry import GhostDirectory, Room, RoomRegistry
from .schemas import GhostParticipant, JoinOutcome, LiveMember, MemberStatus, PresenceEntry
from .timers import Clock

logger = logging.getLogger(__name__)


class ParticipantDirectory:
    """Per-room membership operations over the state owned by RoomRegistry."""

    def __init__(self, registry: RoomRegistry, clock: Clock) -> None:
        self._registry = registry
        self._clock = clock

    def _state(self, room_code: str) -> Tuple[Optional[Room], Optional[GhostDirectory]]:
        room = self._registry.get_or_none(room_code)
        directory = self._registry.directory(room_code)
        if room is None or directory is None:
            return None, None
        return room, directory

    def join(self, room_code: str, display_name: str, transport_handle: str) -> JoinOutcome:
        """Attach a display name to an open room.

        Three cases:
            - no ghost: first join, ``is_new_user=True``
            - ghost without join record: back after a voluntary leave,
              ``had_left_voluntarily=True`` and a fresh replay cursor
            - ghost with join record: reconnection, replay cursor unchanged

        Args:
            room_code: An open room (created by the caller if needed).
            display_name: Resolved display name.
            transport_handle: Id of the joining connection.

        Returns:
            JoinOutcome describing which case applied.

        Raises:
            KeyError: The room is not open.
        """
        room, directory = self._state(room_code)
        if room is None:
            raise KeyError(room_code)

        now = self._clock()
        ghost = directory.ghosts.get(display_name)
        had_prior_record = display_name in directory.join_records

        is_new_user = ghost is None
        had_left_voluntarily = ghost is not None and not had_prior_record
        if not had_prior_record:
            directory.join_records[display_name] = now
        joined_at = directory.join_records[display_name]

        if ghost is None:
            directory.ghosts[display_name] = GhostParticipant(
                name=display_name,
                lastSeen=now,
                joinedAt=joined_at,
                transportHandle=transport_handle,
            )
        else:
            ghost.connected = True
            ghost.status = MemberStatus.ACTIVE.value
            ghost.lastSeen = now
            ghost.transportHandle = transport_handle
            if had_left_voluntarily:
                ghost.joinedAt = joined_at

        member = room.live_members.get(display_name)
        if member is None:
            room.live_members[display_name] = LiveMember(
                lastActivity=now, transportHandle=transport_handle
            )
            room.member_count += 1
        else:
            if not member.connected:
                room.member_count += 1
            member.connected = True
            member.status = MemberStatus.ACTIVE.value
            member.lastActivity = now
            member.transportHandle = transport_handle

        logger.info(
            f"[Directory] {display_name} joined {room_code} "
            f"(new={is_new_user}, returning={had_left_voluntarily}, members={room.member_count})"
        )
        return JoinOutcome(
            is_new_user=is_new_user,
            had_left_voluntarily=had_left_voluntarily,
            had_prior_record=had_prior_record,
            joined_at=joined_at,
        )

    def mark_disconnected(self, room_code: str, display_name: str) -> bool:
        """Flag a name as dropped without removing it from the room.

        Returns:
            True if a live member was found.
        """
        room, directory = self._state(room_code)
        if room is None:
            return False
        member = room.live_members.get(display_name)
        if member is None:
            return False

        now = self._clock()
        if member.connected:
            room.member_count -= 1
        member.connected = False
        member.typing = False
        member.status = MemberStatus.DISCONNECTED.value
        member.lastActivity = now

        ghost = directory.ghosts.get(display_name)
        if ghost is not None:
            ghost.connected = False
            ghost.status = MemberStatus.DISCONNECTED.value
            ghost.lastSeen = now
        return True

    def leave_voluntarily(self, room_code: str, display_name: str) -> bool:
        """Remove a name from the room along with its ghost and join record.

        Returns:
            True if a live member was removed.
        """
        room, directory = self._state(room_code)
        if room is None:
            return False
        member = room.live_members.pop(display_name, None)
        if member is None:
            return False

        if member.connected:
            room.member_count -= 1
        directory.ghosts.pop(display_name, None)
        directory.join_records.pop(display_name, None)
        logger.info(f"[Directory] {display_name} left {room_code} (members={room.member_count})")
        return True

    def list_presence(self, room_code: str) -> List[PresenceEntry]:
        """Roster: live members in join order, then ghosts without a live member."""
        room, directory = self._state(room_code)
        if room is None:
            return []

        entries = [
            PresenceEntry(
                name=name,
                status=member.status if member.connected else MemberStatus.DISCONNECTED.value,
                typing=member.typing,
                connected=member.connected,
                lastActivity=member.lastActivity,
            )
            for name, member in room.live_members.items()
        ]
        for name, ghost in directory.ghosts.items():
            if name not in room.live_members:
                entries.append(PresenceEntry(
                    name=name,
                    status=MemberStatus.DISCONNECTED.value,
                    typing=False,
                    connected=False,
                    lastActivity=ghost.lastSeen,
                ))
        return entries

    def set_typing(self, room_code: str, display_name: str, is_typing: bool) -> bool:
        member = self.get_member(room_code, display_name)
        if member is None:
            return False
        member.typing = is_typing
        member.lastActivity = self._clock()
        return True

    def set_status(self, room_code: str, display_name: str, status: str) -> None:
        """Set a presence label on the live member and ghost, if present."""
        room, directory = self._state(room_code)
        if room is None:
            return
        now = self._clock()
        member = room.live_members.get(display_name)
        if member is not None:
            member.status = status
            member.lastActivity = now
        ghost = directory.ghosts.get(display_name)
        if ghost is not None:
            ghost.status = status
            ghost.lastSeen = now

    def get_member(self, room_code: str, display_name: str) -> Optional[LiveMember]:
        room = self._registry.get_or_none(room_code)
        if room is None:
            return None
        return room.live_members.get(display_name)

    def get_ghost(self, room_code: str, display_name: str) -> Optional[GhostParticipant]:
        directory = self._registry.directory(room_code)
        if directory is None:
            return None
        return directory.ghosts.get(display_name)

    def join_timestamp(self, room_code: str, display_name: str) -> Optional[int]:
        directory = self._registry.directory(room_code)
        if directory is None:
            return None
        return directory.join_records.get(display_name)

    def active_count(self, room_code: str) -> int:
        room = self._registry.get_or_none(room_code)
        if room is None:
            return 0
        return sum(1 for member in room.live_members.values() if member.connected)

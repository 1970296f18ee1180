"""Pydantic models for room membership, history entries and the event surface.

Server-side state:
    - LiveMember: a display name currently attached to a room
    - GhostParticipant: durable record of everyone who has joined a room
    - NotificationEntry / ChatMessageEntry: the per-room history log

Wire payloads:
    - Inbound events (joinRoom, sendMessage, leaveRoom, typing, stopTyping,
      updateStatus) are validated into the *Payload models below.
    - Outbound events are plain dicts built by the coordinator and the
      notification emitter; history entries and presence entries are
      serialized with ``model_dump()``.

Field names on anything that crosses the wire are camelCase to match the
client protocol.
"""
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class MemberStatus(str, Enum):
    """Built-in presence labels.

    Clients may set any other label through ``updateStatus``; these two are
    the ones the server assigns itself.
    """
    ACTIVE = "activo"
    DISCONNECTED = "desconectado"


class DeliveryStatus(str, Enum):
    """Delivery label attached to chat messages."""
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    ERROR = "error"


class EventName(str, Enum):
    """Event names understood or emitted over the transport."""
    JOIN_ROOM = "joinRoom"
    SEND_MESSAGE = "sendMessage"
    LEAVE_ROOM = "leaveRoom"
    TYPING = "typing"
    STOP_TYPING = "stopTyping"
    UPDATE_STATUS = "updateStatus"

    MESSAGE = "message"
    MESSAGE_HISTORY = "messageHistory"
    USER_LIST = "userList"
    TYPING_STATUS = "typingStatus"
    ERROR = "error"


# =============================================================================
# Membership state
# =============================================================================


class LiveMember(BaseModel):
    """A display name attached to a room through a transport connection."""
    status: str = MemberStatus.ACTIVE.value
    typing: bool = False
    connected: bool = True
    lastActivity: int = Field(..., description="Last activity (ms since epoch)")
    transportHandle: str = Field(..., description="Id of the current connection")


class GhostParticipant(BaseModel):
    """Room participant record that survives disconnection.

    ``joinedAt`` is fixed at the first join (or the first join after a
    voluntary leave) and does not move on reconnection.
    """
    name: str
    status: str = MemberStatus.ACTIVE.value
    connected: bool = True
    lastSeen: int
    joinedAt: int
    transportHandle: str


class PresenceEntry(BaseModel):
    """One row of the ``userList`` roster."""
    name: str
    status: str
    typing: bool
    connected: bool
    lastActivity: int


class JoinOutcome(BaseModel):
    """Facts returned by ParticipantDirectory.join for the orchestrator.

    Attributes:
        is_new_user: No ghost record existed for this name.
        had_left_voluntarily: A ghost existed but its join record was gone.
        had_prior_record: A join record existed before this join, so history
            replay applies.
        joined_at: The replay cursor for this participant.
    """
    is_new_user: bool
    had_left_voluntarily: bool
    had_prior_record: bool
    joined_at: int


# =============================================================================
# History entries
# =============================================================================


class NotificationEntry(BaseModel):
    """System message (join/leave) stored in the room history."""
    type: Literal["notification"] = "notification"
    timestamp: int
    content: str


class ChatMessageEntry(BaseModel):
    """Chat message stored in the room history."""
    id: str
    type: Literal["chat"] = "chat"
    sender: str
    timestamp: int
    content: str
    formattedContent: str
    status: DeliveryStatus = DeliveryStatus.DELIVERED


HistoryEntry = Union[NotificationEntry, ChatMessageEntry]


# =============================================================================
# Inbound payloads
# =============================================================================


class RoomEventPayload(BaseModel):
    """Fields shared by every inbound room event."""
    roomCode: str = Field(..., min_length=1)
    userName: str = ""
    displayName: Optional[str] = None

    @model_validator(mode="after")
    def _has_identity(self) -> "RoomEventPayload":
        if not self.resolved_name:
            raise ValueError("userName or displayName is required")
        return self

    @property
    def resolved_name(self) -> str:
        """Explicit displayName, else the userName prefix before the first '_'."""
        if self.displayName:
            return self.displayName
        return self.userName.split("_")[0]


class JoinRoomPayload(RoomEventPayload):
    pass


class LeaveRoomPayload(RoomEventPayload):
    pass


class TypingPayload(RoomEventPayload):
    pass


class SendMessagePayload(RoomEventPayload):
    message: str


class UpdateStatusPayload(RoomEventPayload):
    status: Optional[str] = None


class RoomSummary(BaseModel):
    """Response model for GET /rooms/{room_code}."""
    roomCode: str
    exists: bool
    count: int = 0
    activeCount: int = 0
    messageCount: int = 0


def dump_entries(entries: List[HistoryEntry]) -> List[dict]:
    """Serialize history entries for the ``messageHistory`` event."""
    return [entry.model_dump(mode="json") for entry in entries]

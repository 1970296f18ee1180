"""Error taxonomy for room handling.

All failures are local to the event that caused them:
    - RoomNotFoundError is reported to the requesting connection only.
    - IgnorableEventError is dropped silently (logged at DEBUG).
    - RoomAlreadyExistsError guards RoomRegistry.create against misuse.
"""


class ChatError(Exception):
    """Base exception for room handling errors."""
    def __init__(self, message: str, room_code: str = ""):
        self.message = message
        self.room_code = room_code
        super().__init__(message)


class RoomNotFoundError(ChatError):
    """Raised when joining a code whose ghost directory exists but the room is closed."""


class RoomAlreadyExistsError(ChatError):
    """Raised when creating a room whose code is already registered."""
    def __init__(self, room_code: str):
        super().__init__(f"Room {room_code} already exists", room_code)


class IgnorableEventError(ChatError):
    """Raised for events that reference an untracked room/user or are malformed."""

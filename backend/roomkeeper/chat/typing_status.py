"""Ephemeral "is typing" indicators with automatic timeout.

Each connection holds at most one pending auto-clear timer in its
ConnectionContext. Starting to type again replaces that timer, so a burst of
typing events yields a single "not typing" broadcast, timeout_ms after the
last one.

Timer callbacks do not touch room state themselves: they queue a job on the
room's dispatcher so the clear runs in order with the room's other handlers.
A job whose token no longer matches the context's current token was
superseded and does nothing.
"""
import logging

from .context import ConnectionContext
from .dispatcher import RoomDispatcher
from .participants import ParticipantDirectory
from .schemas import EventName
from .timers import Scheduler
from .transport import Transport

logger = logging.getLogger(__name__)


class TypingCoordinator:
    def __init__(
        self,
        directory: ParticipantDirectory,
        transport: Transport,
        scheduler: Scheduler,
        dispatcher: RoomDispatcher,
        timeout_ms: int = 3_000,
    ) -> None:
        self._directory = directory
        self._transport = transport
        self._scheduler = scheduler
        self._dispatcher = dispatcher
        self.timeout_ms = timeout_ms

    async def start_typing(self, ctx: ConnectionContext, room_code: str, display_name: str) -> bool:
        """Mark a member as typing and (re)arm the auto-clear timer.

        Returns:
            False if the name is not a member of the room.
        """
        if not self._directory.set_typing(room_code, display_name, True):
            return False

        self.cancel(ctx)
        token = ctx.typing_token
        ctx.typing_timer = self._scheduler.call_later(
            self.timeout_ms,
            lambda: self._on_timeout(ctx, room_code, display_name, token),
        )
        await self._broadcast(room_code, display_name, True)
        return True

    async def stop_typing(self, ctx: ConnectionContext, room_code: str, display_name: str) -> bool:
        if not self._directory.set_typing(room_code, display_name, False):
            return False
        self.cancel(ctx)
        await self._broadcast(room_code, display_name, False)
        return True

    async def clear(self, ctx: ConnectionContext, room_code: str, display_name: str) -> None:
        """Drop any pending timer and announce "not typing" (used when a message is sent)."""
        self.cancel(ctx)
        member = self._directory.get_member(room_code, display_name)
        if member is None:
            return
        member.typing = False
        await self._broadcast(room_code, display_name, False)

    def cancel(self, ctx: ConnectionContext) -> None:
        """Cancel the pending timer without broadcasting."""
        if ctx.typing_timer is not None:
            ctx.typing_timer.cancel()
            ctx.typing_timer = None
        ctx.typing_token += 1

    def _on_timeout(self, ctx: ConnectionContext, room_code: str, display_name: str, token: int) -> None:
        if ctx.typing_token != token:
            return
        self._dispatcher.schedule(room_code, lambda: self._expire(ctx, room_code, display_name, token))

    async def _expire(self, ctx: ConnectionContext, room_code: str, display_name: str, token: int) -> None:
        if ctx.typing_token != token:
            return
        ctx.typing_timer = None
        member = self._directory.get_member(room_code, display_name)
        if member is None:
            return
        member.typing = False
        logger.debug(f"[Typing] {display_name} timed out in room {room_code}")
        await self._broadcast(room_code, display_name, False)

    async def _broadcast(self, room_code: str, display_name: str, is_typing: bool) -> None:
        await self._transport.broadcast_to_group(room_code, EventName.TYPING_STATUS.value, {
            "type": EventName.TYPING_STATUS.value,
            "roomCode": room_code,
            "userName": display_name,
            "isTyping": is_typing,
        })

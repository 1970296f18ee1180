"""Event orchestration for rooms.

ChatCoordinator turns inbound transport events into component calls and
decides, from the facts those components return, what to broadcast:

    joinRoom     -> optional join notice, roster, history replay to the joiner
    sendMessage  -> typing cleared, chat message appended and broadcast
    leaveRoom    -> leave notice, roster, destroy room if empty
    typing       -> typingStatus true, auto-clear timer armed
    stopTyping   -> typingStatus false
    updateStatus -> roster
    disconnect   -> member flagged disconnected, reconnection window opened,
                    roster, destroy room if empty

Every handler that touches a room runs on that room's dispatcher queue, so a
room never sees two handlers at once.

Error Handling:
    - RoomNotFoundError: ``error`` event to the requesting connection only
    - IgnorableEventError / invalid payloads: dropped, logged at DEBUG
    - anything else: logged by the dispatcher, isolated to that event

All state lives on this instance and the RoomRegistry it owns.
"""
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from roomkeeper.config import AppConfig

from .context import ConnectionContext
from .dispatcher import RoomDispatcher
from .errors import IgnorableEventError, RoomNotFoundError
from .history import MessageHistoryStore
from .notifications import NotificationEmitter
from .participants import ParticipantDirectory
from .reconnection import ReconnectionTracker
from .registry import RoomRegistry
from .schemas import (
    EventName,
    JoinRoomPayload,
    LeaveRoomPayload,
    MemberStatus,
    RoomSummary,
    SendMessagePayload,
    TypingPayload,
    UpdateStatusPayload,
    dump_entries,
)
from .timers import Clock, LoopScheduler, Scheduler, now_ms
from .transport import Connection, Transport
from .typing_status import TypingCoordinator

logger = logging.getLogger(__name__)

_PAYLOAD_MODELS = {
    EventName.JOIN_ROOM: JoinRoomPayload,
    EventName.SEND_MESSAGE: SendMessagePayload,
    EventName.LEAVE_ROOM: LeaveRoomPayload,
    EventName.TYPING: TypingPayload,
    EventName.STOP_TYPING: TypingPayload,
    EventName.UPDATE_STATUS: UpdateStatusPayload,
}


class ChatCoordinator:
    """Owns every presence component and sequences them per event."""

    def __init__(
        self,
        transport: Transport,
        config: Optional[AppConfig] = None,
        clock: Clock = now_ms,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        config = config or AppConfig()
        presence = config.presence
        messages = config.messages
        scheduler = scheduler or LoopScheduler()

        self.transport = transport
        self.room_closed_template = messages.room_closed_template
        self.history = MessageHistoryStore(clock, time_format=messages.time_format)
        self.registry = RoomRegistry(self.history)
        self.directory = ParticipantDirectory(self.registry, clock)
        self.dispatcher = RoomDispatcher()
        self.reconnections = ReconnectionTracker(
            clock,
            scheduler,
            window_ms=presence.reconnection_window_ms,
            expiry_padding_ms=presence.reconnection_expiry_padding_ms,
        )
        self.typing = TypingCoordinator(
            self.directory,
            transport,
            scheduler,
            self.dispatcher,
            timeout_ms=presence.typing_timeout_ms,
        )
        self.notifier = NotificationEmitter(
            self.registry,
            self.directory,
            self.history,
            transport,
            join_template=messages.join_template,
            leave_template=messages.leave_template,
        )

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def open_connection(self, connection: Connection) -> ConnectionContext:
        return ConnectionContext(connection=connection)

    def connection_lost(self, ctx: ConnectionContext) -> None:
        """Handle a transport disconnect.

        Synchronous so it can run from a ``finally`` block even when the
        receive loop is being cancelled; the room work is queued.
        """
        self.typing.cancel(ctx)
        if ctx.current_room:
            self.transport.leave_group(ctx.connection, ctx.current_room)
        if not ctx.in_room:
            return
        room_code, display_name = ctx.current_room, ctx.display_name
        handle = ctx.connection.id
        ctx.clear_room()
        self.dispatcher.schedule(
            room_code, lambda: self.handle_disconnect(room_code, display_name, handle)
        )

    async def dispatch(self, ctx: ConnectionContext, event: str, data: Any) -> None:
        """Validate an inbound event and run its handler on the room's queue."""
        try:
            name = EventName(event)
            model = _PAYLOAD_MODELS[name]
            payload = model.model_validate(data or {})
        except (ValueError, KeyError, ValidationError) as exc:
            logger.debug(f"[Dispatch] Ignoring malformed {event!r} event: {exc}")
            return

        handlers = {
            EventName.JOIN_ROOM: self.handle_join,
            EventName.SEND_MESSAGE: self.handle_send,
            EventName.LEAVE_ROOM: self.handle_leave,
            EventName.TYPING: self.handle_typing,
            EventName.STOP_TYPING: self.handle_stop_typing,
            EventName.UPDATE_STATUS: self.handle_update_status,
        }
        handler = handlers[name]

        try:
            await self.dispatcher.run(payload.roomCode, lambda: handler(ctx, payload))
        except RoomNotFoundError as exc:
            await self.transport.send_to_one(ctx.connection, EventName.ERROR.value, {
                "type": EventName.ERROR.value,
                "message": exc.message,
            })
        except IgnorableEventError as exc:
            logger.debug(f"[Dispatch] Ignored {event}: {exc.message}")

    # =========================================================================
    # Handlers (run on the room's queue)
    # =========================================================================

    async def handle_join(self, ctx: ConnectionContext, payload: JoinRoomPayload) -> None:
        room_code = payload.roomCode
        display_name = payload.resolved_name

        if self.registry.get_or_none(room_code) is None:
            if self.registry.has_ghost_directory(room_code):
                logger.info(f"[Join] {display_name} rejected: room {room_code} is closed")
                raise RoomNotFoundError(
                    self.room_closed_template.format(room_code=room_code), room_code
                )
            logger.info(f"[Join] {display_name} is creating room {room_code}")

        reconnecting = self.reconnections.is_recent_disconnect(display_name, room_code)

        if ctx.current_room and ctx.current_room != room_code:
            self._switch_away(ctx)

        self.transport.join_group(ctx.connection, room_code)
        ctx.current_room = room_code
        ctx.user_name = payload.userName
        ctx.display_name = display_name

        if self.registry.get_or_none(room_code) is None:
            self.registry.create(room_code)

        outcome = self.directory.join(room_code, display_name, ctx.connection.id)

        if (outcome.is_new_user and not reconnecting) or outcome.had_left_voluntarily:
            await self.notifier.announce_join(room_code, display_name)

        await self.notifier.broadcast_presence(room_code)
        await self._replay_history(ctx, room_code, display_name, outcome.had_prior_record, outcome.joined_at)

    async def handle_send(self, ctx: ConnectionContext, payload: SendMessagePayload) -> None:
        if not ctx.in_room or payload.roomCode != ctx.current_room:
            raise IgnorableEventError("sendMessage outside the connection's room", payload.roomCode)

        room_code = ctx.current_room
        sender = payload.resolved_name

        self.directory.set_status(room_code, sender, MemberStatus.ACTIVE.value)
        await self.typing.clear(ctx, room_code, sender)

        message = self.history.chat_message(room_code, sender, payload.message)
        await self.transport.broadcast_to_group(room_code, EventName.MESSAGE.value, {
            "type": EventName.MESSAGE.value,
            "id": message.id,
            "roomCode": room_code,
            "sender": sender,
            "timestamp": message.timestamp,
            "status": message.status.value,
            "message": message.formattedContent,
        })

    async def handle_leave(self, ctx: ConnectionContext, payload: LeaveRoomPayload) -> None:
        room_code = payload.roomCode
        display_name = payload.resolved_name

        self.transport.leave_group(ctx.connection, room_code)
        if ctx.current_room == room_code:
            self.typing.cancel(ctx)
            ctx.clear_room()

        if not self.directory.leave_voluntarily(room_code, display_name):
            raise IgnorableEventError(f"{display_name} is not in room {room_code}", room_code)

        await self.notifier.announce_leave(room_code, display_name)
        await self.notifier.broadcast_presence(room_code)
        self.registry.destroy_if_empty(room_code)

    async def handle_typing(self, ctx: ConnectionContext, payload: TypingPayload) -> None:
        self._require_room(ctx, payload.roomCode)
        if not await self.typing.start_typing(ctx, payload.roomCode, payload.resolved_name):
            raise IgnorableEventError("typing from a non-member", payload.roomCode)

    async def handle_stop_typing(self, ctx: ConnectionContext, payload: TypingPayload) -> None:
        self._require_room(ctx, payload.roomCode)
        if not await self.typing.stop_typing(ctx, payload.roomCode, payload.resolved_name):
            raise IgnorableEventError("stopTyping from a non-member", payload.roomCode)

    async def handle_update_status(self, ctx: ConnectionContext, payload: UpdateStatusPayload) -> None:
        self._require_room(ctx, payload.roomCode)
        status = payload.status or MemberStatus.ACTIVE.value
        self.directory.set_status(payload.roomCode, payload.resolved_name, status)
        await self.notifier.broadcast_presence(payload.roomCode)

    async def handle_disconnect(self, room_code: str, display_name: str, handle: str) -> None:
        if self._superseded(room_code, display_name, handle):
            return
        self.reconnections.record_disconnect(display_name, room_code)
        if not self.directory.mark_disconnected(room_code, display_name):
            return
        logger.info(f"[Disconnect] {display_name} dropped from room {room_code}")
        await self.notifier.broadcast_presence(room_code)
        self.registry.destroy_if_empty(room_code)

    async def handle_departure(self, room_code: str, display_name: str, handle: str) -> None:
        """Flag a member disconnected after their connection moved to another room."""
        if self._superseded(room_code, display_name, handle):
            return
        if not self.directory.mark_disconnected(room_code, display_name):
            return
        await self.notifier.broadcast_presence(room_code)
        self.registry.destroy_if_empty(room_code)

    # =========================================================================
    # Queries
    # =========================================================================

    def room_summary(self, room_code: str) -> RoomSummary:
        room = self.registry.get_or_none(room_code)
        if room is None:
            return RoomSummary(roomCode=room_code, exists=False)
        return RoomSummary(
            roomCode=room_code,
            exists=True,
            count=room.member_count,
            activeCount=self.directory.active_count(room_code),
            messageCount=self.history.count(room_code),
        )

    async def shutdown(self) -> None:
        """Drain every room queue and cancel pending reconnection expiries."""
        busy = self.dispatcher.active_rooms()
        if busy:
            logger.info(f"[Shutdown] Draining queues for rooms: {', '.join(busy)}")
        await self.dispatcher.wait_idle()
        self.reconnections.clear()
        logger.info(f"[Shutdown] Discarding {len(self.registry.room_codes())} open rooms")

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_room(self, ctx: ConnectionContext, room_code: str) -> None:
        if not ctx.in_room:
            raise IgnorableEventError("event before joinRoom", room_code)
        if self.registry.get_or_none(room_code) is None:
            raise IgnorableEventError(f"room {room_code} is not open", room_code)

    def _superseded(self, room_code: str, display_name: str, handle: str) -> bool:
        """True if the name has since reattached through another connection."""
        member = self.directory.get_member(room_code, display_name)
        if member is None or member.transportHandle == handle:
            return False
        logger.info(
            f"[Disconnect] Ignoring stale close of {handle} for {display_name} "
            f"in room {room_code} (now on {member.transportHandle})"
        )
        return True

    def _switch_away(self, ctx: ConnectionContext) -> None:
        previous_room, previous_name = ctx.current_room, ctx.display_name
        handle = ctx.connection.id
        self.typing.cancel(ctx)
        self.transport.leave_group(ctx.connection, previous_room)
        logger.info(f"[Join] {previous_name} switching away from room {previous_room}")
        self.dispatcher.schedule(
            previous_room, lambda: self.handle_departure(previous_room, previous_name, handle)
        )

    async def _replay_history(
        self,
        ctx: ConnectionContext,
        room_code: str,
        display_name: str,
        had_prior_record: bool,
        joined_at: int,
    ) -> None:
        """Send the joiner the entries from their tenure (nothing for first-time joiners)."""
        entries = []
        if had_prior_record:
            entries = self.history.replay_since(room_code, joined_at)
            logger.info(
                f"[Replay] Sending {len(entries)} history entries to {display_name} "
                f"in room {room_code} (since {joined_at})"
            )

        payload: Dict[str, Any] = {
            "type": EventName.MESSAGE_HISTORY.value,
            "roomCode": room_code,
            "messages": dump_entries(entries),
        }
        await self.transport.send_to_one(ctx.connection, EventName.MESSAGE_HISTORY.value, payload)


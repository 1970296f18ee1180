"""Shared test fixtures and configuration for backend tests.

Time is driven by hand: ``clock`` is a settable millisecond clock and
``scheduler`` fires timers only when ``advance()`` is called. Outbound
events are captured by ``RecordingTransport`` instead of a real socket.
"""
from typing import Any, Callable, Dict, List, Tuple

import pytest

from roomkeeper.chat.coordinator import ChatCoordinator
from roomkeeper.config import AppConfig


class FakeClock:
    def __init__(self, start: int = 0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now


class ManualTimer:
    def __init__(self, due: int, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers fire only inside advance()."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.timers: List[ManualTimer] = []
        self._seq = 0

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ManualTimer:
        self._seq += 1
        timer = ManualTimer(self.clock.now + delay_ms, self._seq, callback)
        self.timers.append(timer)
        return timer

    def pending(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, ms: int) -> None:
        target = self.clock.now + ms
        while True:
            due = sorted(
                (t for t in self.pending() if t.due <= target),
                key=lambda t: (t.due, t.seq),
            )
            if not due:
                break
            timer = due[0]
            self.timers.remove(timer)
            self.clock.now = timer.due
            timer.callback()
        self.clock.now = target


class FakeConnection:
    """Stands in for transport.Connection; collects what it receives."""

    def __init__(self, connection_id: str) -> None:
        self.id = connection_id
        self.inbox: List[Tuple[str, Dict[str, Any]]] = []

    def events(self, name: str) -> List[Dict[str, Any]]:
        return [payload for event, payload in self.inbox if event == name]

    def names(self) -> List[str]:
        return [event for event, _ in self.inbox]

    def clear(self) -> None:
        self.inbox.clear()


class RecordingTransport:
    """In-memory Transport that delivers straight into FakeConnection inboxes."""

    def __init__(self) -> None:
        self.groups: Dict[str, List[FakeConnection]] = {}
        self.broadcasts: List[Tuple[str, str, Dict[str, Any]]] = []

    def join_group(self, connection: FakeConnection, room_code: str) -> None:
        members = self.groups.setdefault(room_code, [])
        if connection not in members:
            members.append(connection)

    def leave_group(self, connection: FakeConnection, room_code: str) -> None:
        members = self.groups.get(room_code, [])
        if connection in members:
            members.remove(connection)

    async def send_to_one(self, connection: FakeConnection, event: str, payload: Dict[str, Any]) -> None:
        connection.inbox.append((event, payload))

    async def broadcast_to_group(self, room_code: str, event: str, payload: Dict[str, Any]) -> None:
        self.broadcasts.append((room_code, event, payload))
        for connection in list(self.groups.get(room_code, [])):
            connection.inbox.append((event, payload))

    def broadcast_events(self, event: str) -> List[Dict[str, Any]]:
        return [payload for _, name, payload in self.broadcasts if name == event]


@pytest.fixture
def clock():
    return FakeClock(start=1_700_000_000_000)


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def config():
    return AppConfig()


@pytest.fixture
def coordinator(transport, config, clock, scheduler):
    return ChatCoordinator(transport, config, clock=clock, scheduler=scheduler)


@pytest.fixture
def connect(coordinator):
    """Open a fake connection and return its ConnectionContext."""
    counter = {"n": 0}

    def _connect(label: str = ""):
        counter["n"] += 1
        connection = FakeConnection(label or f"conn-{counter['n']}")
        return coordinator.open_connection(connection)

    return _connect

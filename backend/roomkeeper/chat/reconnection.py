"""Tells a transient network drop apart from a deliberate exit.

A disconnect is remembered for a grace window. A join for the same
(display name, room) inside that window is a reconnection; the check consumes
the record, so each disconnect is recognised at most once. Records that are
never consumed are dropped by a one-shot expiry timer.
"""
import itertools
import logging
from dataclasses import dataclass
from typing import Dict, Tuple

from .timers import Clock, Scheduler, TimerHandle

logger = logging.getLogger(__name__)

ReconnectionKey = Tuple[str, str]


@dataclass
class _DisconnectRecord:
    timestamp: int
    expiry: TimerHandle
    token: int


class ReconnectionTracker:
    """Grace-window bookkeeping keyed by (display name, room code)."""

    def __init__(
        self,
        clock: Clock,
        scheduler: Scheduler,
        window_ms: int = 10_000,
        expiry_padding_ms: int = 1_000,
    ) -> None:
        self._clock = clock
        self._scheduler = scheduler
        self.window_ms = window_ms
        self.expiry_padding_ms = expiry_padding_ms
        self._records: Dict[ReconnectionKey, _DisconnectRecord] = {}
        self._tokens = itertools.count(1)

    def record_disconnect(self, display_name: str, room_code: str) -> int:
        """Remember a disconnect and schedule its expiry.

        Returns:
            The recorded disconnect timestamp.
        """
        key = (display_name, room_code)
        previous = self._records.pop(key, None)
        if previous is not None:
            previous.expiry.cancel()

        timestamp = self._clock()
        token = next(self._tokens)
        expiry = self._scheduler.call_later(
            self.window_ms + self.expiry_padding_ms,
            lambda: self._expire(key, token),
        )
        self._records[key] = _DisconnectRecord(timestamp=timestamp, expiry=expiry, token=token)
        return timestamp

    def is_recent_disconnect(self, display_name: str, room_code: str) -> bool:
        """True if this name dropped out of this room within the grace window.

        The record is cleared whatever the answer.
        """
        record = self._records.pop((display_name, room_code), None)
        if record is None:
            return False
        record.expiry.cancel()
        elapsed = self._clock() - record.timestamp
        if elapsed < self.window_ms:
            logger.info(f"[Reconnect] {display_name} back in room {room_code} after {elapsed} ms")
            return True
        return False

    def clear(self) -> None:
        """Cancel every pending expiry (shutdown)."""
        for record in self._records.values():
            record.expiry.cancel()
        self._records.clear()

    def _expire(self, key: ReconnectionKey, token: int) -> None:
        record = self._records.get(key)
        # A newer disconnect owns the key now.
        if record is None or record.token != token:
            return
        del self._records[key]

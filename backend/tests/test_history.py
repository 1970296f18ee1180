"""Tests for MessageHistoryStore."""
from datetime import datetime

import pytest

from roomkeeper.chat.history import MessageHistoryStore
from roomkeeper.chat.schemas import ChatMessageEntry, DeliveryStatus, NotificationEntry


@pytest.fixture
def store(clock):
    history = MessageHistoryStore(clock)
    history.open("ABC")
    return history


class TestAppend:
    def test_entries_keep_insertion_order(self, store, clock):
        store.notification("ABC", "alice ha ingresado a la sala.")
        clock.now += 100
        store.chat_message("ABC", "alice", "hi")
        clock.now += 100
        store.notification("ABC", "bob ha ingresado a la sala.")

        entries = store.replay_since("ABC", 0)
        assert [e.type for e in entries] == ["notification", "chat", "notification"]
        assert [e.timestamp for e in entries] == sorted(e.timestamp for e in entries)

    def test_append_returns_timestamp(self, store, clock):
        entry = NotificationEntry(timestamp=clock.now + 5, content="x")
        assert store.append("ABC", entry) == clock.now + 5

    def test_notification_returns_clock_timestamp(self, store, clock):
        assert store.notification("ABC", "hola") == clock.now

    def test_append_to_unopened_room_is_noop(self, store):
        store.notification("NOPE", "lost")
        assert store.is_empty("NOPE")
        assert "NOPE" not in store._logs


class TestChatMessage:
    def test_formatted_content_uses_sender_and_clock_time(self, store, clock):
        message = store.chat_message("ABC", "alice", "hi")
        hhmm = datetime.fromtimestamp(clock.now / 1000).strftime("%H:%M")

        assert isinstance(message, ChatMessageEntry)
        assert message.formattedContent == f"alice [{hhmm}]: hi"
        assert message.content == "hi"
        assert message.sender == "alice"
        assert message.status == DeliveryStatus.DELIVERED

    def test_ids_are_unique_within_same_millisecond(self, store, clock):
        first = store.chat_message("ABC", "alice", "one")
        second = store.chat_message("ABC", "alice", "two")
        assert first.id != second.id
        assert first.id.startswith(f"msg_{clock.now}_")

    def test_message_is_stored(self, store):
        message = store.chat_message("ABC", "alice", "hi")
        assert store.replay_since("ABC", 0) == [message]


class TestReplay:
    def test_replay_is_inclusive_of_cursor(self, store, clock):
        store.notification("ABC", "before")
        clock.now += 100
        cursor = clock.now
        store.notification("ABC", "at cursor")
        clock.now += 100
        store.chat_message("ABC", "bob", "after")

        contents = [e.content for e in store.replay_since("ABC", cursor)]
        assert contents == ["at cursor", "after"]

    def test_replay_unknown_room_is_empty(self, store):
        assert store.replay_since("ZZZ", 0) == []


class TestBookkeeping:
    def test_is_empty_and_count(self, store):
        assert store.is_empty("ABC")
        assert store.count("ABC") == 0
        store.notification("ABC", "x")
        assert not store.is_empty("ABC")
        assert store.count("ABC") == 1

    def test_drop_removes_log(self, store):
        store.notification("ABC", "x")
        store.drop("ABC")
        assert "ABC" not in store._logs
        assert store.count("ABC") == 0

    def test_custom_time_format(self, clock):
        history = MessageHistoryStore(clock, time_format="%H:%M:%S")
        history.open("R")
        message = history.chat_message("R", "a", "b")
        hhmmss = datetime.fromtimestamp(clock.now / 1000).strftime("%H:%M:%S")
        assert message.formattedContent == f"a [{hhmmss}]: b"

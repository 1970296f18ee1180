"""Tests for RoomDispatcher per-room ordering."""
import asyncio
import logging

import pytest

from roomkeeper.chat.dispatcher import RoomDispatcher
from roomkeeper.chat.errors import IgnorableEventError


def recorder(log, label, pause=0):
    async def job():
        log.append(f"{label}:start")
        for _ in range(pause):
            await asyncio.sleep(0)
        log.append(f"{label}:end")
        return label
    return job


class TestOrdering:
    @pytest.mark.asyncio
    async def test_jobs_in_one_room_never_overlap(self):
        dispatcher = RoomDispatcher()
        log = []

        first = dispatcher.submit("ABC", recorder(log, "a", pause=3))
        second = dispatcher.submit("ABC", recorder(log, "b"))
        await asyncio.gather(first, second)

        assert log == ["a:start", "a:end", "b:start", "b:end"]

    @pytest.mark.asyncio
    async def test_rooms_interleave(self):
        dispatcher = RoomDispatcher()
        log = []

        slow = dispatcher.submit("ABC", recorder(log, "abc", pause=3))
        fast = dispatcher.submit("XYZ", recorder(log, "xyz"))
        await asyncio.gather(slow, fast)

        assert log.index("xyz:end") < log.index("abc:end")

    @pytest.mark.asyncio
    async def test_run_returns_job_result(self):
        dispatcher = RoomDispatcher()
        assert await dispatcher.run("ABC", recorder([], "done")) == "done"


class TestFailures:
    @pytest.mark.asyncio
    async def test_chat_error_propagates_without_logging(self, caplog):
        dispatcher = RoomDispatcher()

        async def job():
            raise IgnorableEventError("nope", "ABC")

        with caplog.at_level(logging.ERROR, logger="roomkeeper.chat.dispatcher"):
            with pytest.raises(IgnorableEventError):
                await dispatcher.run("ABC", job)
        assert caplog.records == []

    @pytest.mark.asyncio
    async def test_failure_is_isolated_to_its_job(self, caplog):
        dispatcher = RoomDispatcher()
        log = []

        async def boom():
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger="roomkeeper.chat.dispatcher"):
            failing = dispatcher.submit("ABC", boom)
            after = dispatcher.submit("ABC", recorder(log, "next"))
            with pytest.raises(RuntimeError):
                await failing
            assert await after == "next"

        assert any("Job failed in room ABC" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_cancelled_job_resolves_its_caller_and_the_rest_of_the_queue(self):
        dispatcher = RoomDispatcher()

        async def cancelled():
            raise asyncio.CancelledError()

        running = dispatcher.submit("ABC", cancelled)
        waiting = dispatcher.submit("ABC", recorder([], "next"))
        await asyncio.wait_for(dispatcher.wait_idle(), timeout=1)

        assert running.cancelled()
        assert waiting.cancelled()
        assert dispatcher.active_rooms() == []
        assert await dispatcher.run("ABC", recorder([], "again")) == "again"

    @pytest.mark.asyncio
    async def test_scheduled_failure_does_not_raise(self):
        dispatcher = RoomDispatcher()

        async def boom():
            raise RuntimeError("boom")

        dispatcher.schedule("ABC", boom)
        await dispatcher.wait_idle()
        assert dispatcher.active_rooms() == []


class TestWorkers:
    @pytest.mark.asyncio
    async def test_worker_retires_when_queue_drains(self):
        dispatcher = RoomDispatcher()
        await dispatcher.run("ABC", recorder([], "x"))
        await asyncio.sleep(0)
        assert dispatcher.active_rooms() == []

    @pytest.mark.asyncio
    async def test_wait_idle_covers_work_queued_by_jobs(self):
        dispatcher = RoomDispatcher()
        log = []

        async def chain():
            dispatcher.schedule("XYZ", recorder(log, "chained"))

        dispatcher.schedule("ABC", chain)
        await dispatcher.wait_idle()
        assert log == ["chained:start", "chained:end"]

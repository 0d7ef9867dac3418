"""Tests for the bounded request dispatcher."""

from __future__ import annotations

import asyncio
import time

import pytest

from voice_gateway.gateway.dispatcher import RequestDispatcher
from voice_gateway.gateway.types import QueuedTask, QueueStatus


class ConcurrencyProbe:
    """Records how many probe tasks run at once."""

    def __init__(self):
        self.running = 0
        self.peak = 0
        self.started: list[int] = []

    def task(self, index: int, delay: float = 0.02):
        async def execute():
            self.running += 1
            self.peak = max(self.peak, self.running)
            self.started.append(index)
            try:
                await asyncio.sleep(delay)
                return index
            finally:
                self.running -= 1

        return execute


class TestConstruction:
    def test_defaults(self):
        dispatcher = RequestDispatcher()
        assert dispatcher.max_concurrent == 5
        assert dispatcher.dispatch_delay == pytest.approx(0.1)

    @pytest.mark.parametrize("max_concurrent", [0, -1])
    def test_rejects_non_positive_cap(self, max_concurrent):
        with pytest.raises(ValueError):
            RequestDispatcher(max_concurrent=max_concurrent)

    def test_rejects_negative_delay(self):
        with pytest.raises(ValueError):
            RequestDispatcher(dispatch_delay=-0.5)

    def test_initial_status(self):
        status = RequestDispatcher(max_concurrent=3).status()
        assert status == QueueStatus(active_count=0, queued_count=0, max_concurrent=3, completed=0, failed=0)


class TestDispatch:
    async def test_single_task_resolves(self):
        dispatcher = RequestDispatcher(max_concurrent=1, dispatch_delay=0)

        async def execute():
            return "audio"

        assert await dispatcher.submit(execute) == "audio"
        assert dispatcher.status().completed == 1

    async def test_active_never_exceeds_cap(self):
        dispatcher = RequestDispatcher(max_concurrent=3, dispatch_delay=0)
        probe = ConcurrencyProbe()

        futures = [dispatcher.enqueue(probe.task(i)) for i in range(10)]
        assert dispatcher.status().active_count == 3
        assert dispatcher.status().queued_count == 7

        results = await asyncio.gather(*futures)
        assert results == list(range(10))
        assert probe.peak == 3

    async def test_fifo_start_order(self):
        dispatcher = RequestDispatcher(max_concurrent=1, dispatch_delay=0)
        probe = ConcurrencyProbe()

        futures = [dispatcher.enqueue(probe.task(i, delay=0.001)) for i in range(6)]
        await asyncio.gather(*futures)

        assert probe.started == list(range(6))

    async def test_two_slots_five_tasks(self):
        dispatcher = RequestDispatcher(max_concurrent=2, dispatch_delay=0.01)
        probe = ConcurrencyProbe()
        samples: list[int] = []

        futures = [dispatcher.enqueue(probe.task(i, delay=0.03)) for i in range(5)]

        async def sample():
            while not all(f.done() for f in futures):
                samples.append(dispatcher.status().active_count)
                await asyncio.sleep(0.005)

        await asyncio.gather(sample(), *futures)

        assert max(samples) <= 2
        assert probe.peak == 2
        assert [f.result() for f in futures] == [0, 1, 2, 3, 4]
        assert dispatcher.status().completed == 5

    async def test_refill_waits_for_dispatch_delay(self):
        dispatcher = RequestDispatcher(max_concurrent=1, dispatch_delay=0.1)
        started: list[float] = []

        async def execute():
            started.append(time.monotonic())

        await asyncio.gather(dispatcher.enqueue(execute), dispatcher.enqueue(execute))

        assert started[1] - started[0] >= 0.09

    async def test_enqueue_dispatches_immediately_when_slot_free(self):
        dispatcher = RequestDispatcher(max_concurrent=2, dispatch_delay=5)
        probe = ConcurrencyProbe()

        dispatcher.enqueue(probe.task(0))
        dispatcher.enqueue(probe.task(1))

        status = dispatcher.status()
        assert status.active_count == 2
        assert status.queued_count == 0
        await dispatcher.join()


class TestFailures:
    async def test_failure_rejects_only_its_own_future(self):
        dispatcher = RequestDispatcher(max_concurrent=2, dispatch_delay=0)

        async def ok():
            await asyncio.sleep(0.005)
            return "ok"

        async def boom():
            raise RuntimeError("provider exploded")

        first = dispatcher.enqueue(ok)
        failing = dispatcher.enqueue(boom)
        last = dispatcher.enqueue(ok)

        assert await first == "ok"
        with pytest.raises(RuntimeError, match="provider exploded"):
            await failing
        assert await last == "ok"

        status = dispatcher.status()
        assert status.completed == 2
        assert status.failed == 1

    async def test_no_retry_on_failure(self):
        dispatcher = RequestDispatcher(max_concurrent=1, dispatch_delay=0)
        calls = 0

        async def flaky():
            nonlocal calls
            calls += 1
            raise ConnectionError("reset")

        with pytest.raises(ConnectionError):
            await dispatcher.submit(flaky)
        await dispatcher.join()
        assert calls == 1

    async def test_cancelled_caller_does_not_stop_queue(self):
        dispatcher = RequestDispatcher(max_concurrent=1, dispatch_delay=0)
        probe = ConcurrencyProbe()

        abandoned = dispatcher.enqueue(probe.task(0))
        following = dispatcher.enqueue(probe.task(1))
        abandoned.cancel()

        assert await following == 1
        assert probe.started == [0, 1]


class TestStatusAndJoin:
    async def test_join_waits_for_all_work(self):
        dispatcher = RequestDispatcher(max_concurrent=2, dispatch_delay=0)
        probe = ConcurrencyProbe()

        for i in range(5):
            dispatcher.enqueue(probe.task(i, delay=0.01))

        await asyncio.wait_for(dispatcher.join(), timeout=2)
        status = dispatcher.status()
        assert status.active_count == 0
        assert status.queued_count == 0
        assert status.completed == 5

    async def test_join_returns_immediately_when_idle(self):
        dispatcher = RequestDispatcher()
        await asyncio.wait_for(dispatcher.join(), timeout=0.1)

    def test_status_to_dict(self):
        status = QueueStatus(active_count=1, queued_count=4, max_concurrent=5, completed=7, failed=2)
        assert status.to_dict() == {
            "active_count": 1,
            "queued_count": 4,
            "max_concurrent": 5,
            "completed": 7,
            "failed": 2,
        }

    async def test_queued_task_wait_ms(self):
        loop = asyncio.get_running_loop()
        task = QueuedTask(execute=lambda: None, future=loop.create_future(), enqueued_at=100.0)
        task.started_at = 100.25
        assert task.task_id.startswith("req-")
        assert task.wait_ms == 250

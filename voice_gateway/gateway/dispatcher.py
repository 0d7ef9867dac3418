"""Bounded request dispatcher: FIFO admission of provider calls under a concurrency cap.

Every provider call is wrapped in a zero-argument coroutine function and
submitted here. The dispatcher:
  - Accepts every task (no back-pressure rejection; upstream rate limiting
    controls submission volume)
  - Keeps pending tasks in arrival order
  - Runs at most ``max_concurrent`` tasks at a time
  - Settles each task's future with its own result or exception
  - Refills a freed slot on a deferred callback after ``dispatch_delay``

All state lives on one event loop and is only mutated between awaits,
so no locks are needed.

Usage:
    dispatcher = RequestDispatcher(max_concurrent=5)

    result = await dispatcher.submit(lambda: client.get("/voices"))

    status = dispatcher.status()
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque

from voice_gateway.gateway.types import ExecuteFn, QueuedTask, QueueStatus

logger = logging.getLogger(__name__)

DEFAULT_DISPATCH_DELAY = 0.1  # seconds


class RequestDispatcher:
    """FIFO queue with an active set capped at ``max_concurrent``."""

    def __init__(
        self,
        max_concurrent: int = 5,
        dispatch_delay: float = DEFAULT_DISPATCH_DELAY,
        name: str = "provider",
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if dispatch_delay < 0:
            raise ValueError("dispatch_delay must not be negative")

        self.name = name
        self.max_concurrent = max_concurrent
        self.dispatch_delay = dispatch_delay

        self._pending: deque[QueuedTask] = deque()
        self._active: dict[str, QueuedTask] = {}
        self._runners: set[asyncio.Task] = set()
        self._completed = 0
        self._failed = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def queued_count(self) -> int:
        return len(self._pending)

    def enqueue(self, execute: ExecuteFn) -> asyncio.Future:
        """Queue a provider call and return the future that settles with its outcome."""
        loop = asyncio.get_running_loop()
        task = QueuedTask(execute=execute, future=loop.create_future())
        self._pending.append(task)
        self._idle.clear()

        logger.debug(
            "[%s] Enqueued %s (active=%d, queued=%d)",
            self.name,
            task.task_id,
            len(self._active),
            len(self._pending),
        )
        self._try_dispatch()
        return task.future

    async def submit(self, execute: ExecuteFn):
        """Enqueue and wait for the result (or the raised exception)."""
        return await self.enqueue(execute)

    def status(self) -> QueueStatus:
        return QueueStatus(
            active_count=len(self._active),
            queued_count=len(self._pending),
            max_concurrent=self.max_concurrent,
            completed=self._completed,
            failed=self._failed,
        )

    async def join(self) -> None:
        """Wait until nothing is running or queued."""
        await self._idle.wait()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _try_dispatch(self) -> None:
        loop = asyncio.get_running_loop()
        while self._pending and len(self._active) < self.max_concurrent:
            task = self._pending.popleft()
            task.started_at = time.monotonic()
            self._active[task.task_id] = task

            runner = loop.create_task(self._run(task), name=f"{self.name}:{task.task_id}")
            self._runners.add(runner)
            runner.add_done_callback(self._runners.discard)

            logger.debug(
                "[%s] Dispatched %s after %dms in queue",
                self.name,
                task.task_id,
                task.wait_ms,
            )

    async def _run(self, task: QueuedTask) -> None:
        try:
            result = await task.execute()
        except asyncio.CancelledError:
            if not task.future.done():
                task.future.cancel()
            raise
        except Exception as exc:
            self._failed += 1
            if not task.future.done():
                task.future.set_exception(exc)
            logger.debug("[%s] Task %s failed: %s", self.name, task.task_id, exc)
        else:
            self._completed += 1
            if not task.future.done():
                task.future.set_result(result)
        finally:
            self._active.pop(task.task_id, None)
            self._schedule_dispatch()

    def _schedule_dispatch(self) -> None:
        if not self._pending:
            if not self._active:
                self._idle.set()
            return
        asyncio.get_running_loop().call_later(self.dispatch_delay, self._try_dispatch)

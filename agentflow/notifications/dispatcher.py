"""Background worker for fire-and-forget side effects."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from loguru import logger

SideEffect = Callable[[], Awaitable[None]]


class SideEffectDispatcher:
    """
    In-memory queue: submit(label, factory), worker task runs each job once.

    Jobs are zero-arg coroutine factories so nothing starts until the worker
    picks them up. Failures are logged and dropped (at most one attempt).
    Without a running worker, submit() still enqueues and join() drains inline.
    """

    def __init__(self, max_queue_size: int = 1000):
        self._q: asyncio.Queue[tuple[str, SideEffect] | None] = asyncio.Queue(maxsize=max_queue_size)
        self._task: asyncio.Task[None] | None = None
        self.dropped = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, label: str, factory: SideEffect) -> bool:
        """Enqueue a side effect. Returns False if the queue is full."""
        try:
            self._q.put_nowait((label, factory))
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Side effect dropped (queue full): {label}")
            return False

    async def _run_one(self, label: str, factory: SideEffect) -> None:
        try:
            await factory()
        except Exception as e:
            self.failed += 1
            logger.warning(f"Side effect failed: {label}: {e}")

    async def _worker(self) -> None:
        while True:
            item = await self._q.get()
            try:
                if item is None:
                    break
                await self._run_one(*item)
            finally:
                self._q.task_done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._worker())
        logger.debug("Side-effect dispatcher started")

    async def join(self) -> None:
        """Wait until every queued side effect has been attempted."""
        if self.running:
            await self._q.join()
            return
        while not self._q.empty():
            item = self._q.get_nowait()
            try:
                if item is not None:
                    await self._run_one(*item)
            finally:
                self._q.task_done()

    async def stop(self) -> None:
        """Drain pending jobs, then stop the worker."""
        task = self._task
        if task is None or task.done():
            await self.join()
            return
        await self._q.put(None)
        try:
            await asyncio.wait_for(task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Side-effect dispatcher did not stop in time; cancelling")
            task.cancel()
        self._task = None
        logger.debug("Side-effect dispatcher stopped")

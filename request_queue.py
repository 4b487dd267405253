"""
Bounded-concurrency FIFO queue for fire-and-forget coroutines.

At most ``max_concurrent`` submitted tasks are in flight; the rest wait in
submission order.  Progress is driven only by submissions and completions:
each finished task (success or failure) frees a slot and drains again.

Failures never reach the submitter.  They are handed to ``on_failure``,
``isolate_failures`` by default, which logs and carries on.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, List, Set

logger = logging.getLogger(__name__)

Task = Callable[[], Awaitable[None]]
FailurePolicy = Callable[[BaseException], None]

DEFAULT_MAX_CONCURRENT = 2


def isolate_failures(exc: BaseException) -> None:
    """Log the failure and let the queue keep draining."""
    logger.warning("Queued task failed: %s", exc)


def collect_failures(sink: List[BaseException]) -> FailurePolicy:
    """Policy that records failures into ``sink`` instead of logging them."""
    return sink.append


class RequestQueue:
    def __init__(
        self,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        on_failure: FailurePolicy = isolate_failures,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = max_concurrent
        self._on_failure = on_failure
        self._pending: Deque[Task] = deque()
        self._active = 0
        self._running: Set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    def submit(self, task: Task) -> None:
        """Enqueue ``task`` and return immediately.

        Must be called from inside a running event loop.
        """
        self._pending.append(task)
        self._idle.clear()
        self._drain()

    def _drain(self) -> None:
        while self._active < self._max_concurrent and self._pending:
            task = self._pending.popleft()
            self._active += 1
            running = asyncio.get_running_loop().create_task(self._run(task))
            self._running.add(running)
            running.add_done_callback(self._running.discard)

    async def _run(self, task: Task) -> None:
        try:
            await task()
        except Exception as exc:
            try:
                self._on_failure(exc)
            except Exception:
                logger.exception("Failure policy raised")
        finally:
            self._active -= 1
            self._drain()
            if self._active == 0 and not self._pending:
                self._idle.set()

    async def join(self) -> None:
        """Wait until nothing is queued or running."""
        await self._idle.wait()

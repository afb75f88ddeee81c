"""Rate-limited FIFO queue shared by every upstream call.

One drain loop paces dispatches so the aggregate request rate to the
upstream never exceeds one request per ``min_interval`` seconds, however
many callers enqueue concurrently. Dispatch order is strict FIFO. Each
dispatched call runs as its own task, so completion order can differ from
dispatch order when a later call returns faster.

The ``_draining`` flag only keeps two drain loops from running at once; the
event loop is single-threaded so no lock is needed.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class QueuedRequest:
    execute: Callable[[], Awaitable[Any]]
    future: asyncio.Future


class RequestQueue:
    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._queue: deque[QueuedRequest] = deque()
        self._last_dispatch: float | None = None
        self._draining = False
        self._drain_task: asyncio.Task | None = None
        self._in_flight: dict[asyncio.Task, QueuedRequest] = {}

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def enqueue(self, execute: Callable[[], Awaitable[Any]]) -> Any:
        """Queue ``execute`` and wait for its result (or its exception)."""
        future = asyncio.get_running_loop().create_future()
        self._queue.append(QueuedRequest(execute, future))
        self._start_draining()
        return await future

    def _start_draining(self) -> None:
        if self._draining or not self._queue:
            return
        self._draining = True
        self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._queue:
                if self._last_dispatch is not None:
                    elapsed = self._clock() - self._last_dispatch
                    if elapsed < self.min_interval:
                        wait = self.min_interval - elapsed
                        logger.debug("Pacing upstream call: waiting %.3fs (%d queued)", wait, len(self._queue))
                        await self._sleep(wait)

                request = self._queue.popleft()
                self._last_dispatch = self._clock()
                self._dispatch(request)
        finally:
            self._draining = False

    def _dispatch(self, request: QueuedRequest) -> None:
        task = asyncio.get_running_loop().create_task(self._run(request))
        self._in_flight[task] = request
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._in_flight.pop(task, None)

    @staticmethod
    async def _run(request: QueuedRequest) -> None:
        try:
            result = await request.execute()
        except Exception as exc:
            if not request.future.done():
                request.future.set_exception(exc)
        else:
            if not request.future.done():
                request.future.set_result(result)

    async def close(self) -> None:
        """Stop draining. Queued and in-flight requests fail with ``RuntimeError``."""
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        pending = list(self._queue) + list(self._in_flight.values())
        self._queue.clear()
        tasks = list(self._in_flight)
        for task in tasks:
            task.cancel()
        for request in pending:
            if not request.future.done():
                request.future.set_exception(RuntimeError("Request queue closed"))
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

"""Outbound request pacing.

One limiter instance must be shared by every scrape and image download in a
process; a per-call limiter enforces nothing. RedisRateLimiter moves the slot
into Redis so several worker processes honour a single interval.
"""
import asyncio
import time
import uuid
from typing import Any, Awaitable, Callable, Optional, Protocol, Tuple, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class Limiter(Protocol):
    async def wait_turn(self) -> None:
        ...


class RateLimiter:
    """Minimum-interval limiter for callers within one process.

    wait_turn() returns only once min_interval_ms has elapsed since the
    previous wait_turn() returned.
    """

    def __init__(
        self,
        min_interval_ms: int,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval_ms / 1000
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait_turn(self) -> None:
        async with self._lock:
            if self._last is not None:
                remaining = self.min_interval - (self._clock() - self._last)
                if remaining > 0:
                    await self._sleep(remaining)
            self._last = self._clock()


class RedisRateLimiter:
    """Minimum-interval limiter shared through Redis.

    Each turn is an ``SET NX PX`` on one key; the key expiring is what frees
    the next slot, so the interval holds across processes.
    """

    KEY_PREFIX = "ratelimit:"

    def __init__(
        self,
        redis: Any,
        name: str,
        min_interval_ms: int,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._redis = redis
        self.key = f"{self.KEY_PREFIX}{name}"
        self.min_interval_ms = min_interval_ms
        self._sleep = sleep
        self._token = uuid.uuid4().hex

    async def wait_turn(self) -> None:
        if self.min_interval_ms <= 0:
            return
        while True:
            acquired = await self._redis.set(
                self.key, self._token, nx=True, px=self.min_interval_ms
            )
            if acquired:
                return
            ttl_ms = await self._redis.pttl(self.key)
            await self._sleep(max(ttl_ms, 1) / 1000)


class RequestQueue:
    """FIFO queue running one task at a time, paced by a limiter.

    A task's exception is delivered to the caller that enqueued it and does
    not stop the queue.
    """

    def __init__(self, limiter: Limiter) -> None:
        self.limiter = limiter
        self._queue: asyncio.Queue[
            Tuple[Callable[[], Awaitable[Any]], asyncio.Future]
        ] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    @classmethod
    def with_interval(cls, min_interval_ms: int) -> "RequestQueue":
        return cls(RateLimiter(min_interval_ms))

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def enqueue(self, task: Callable[[], Awaitable[T]]) -> T:
        """Submit a coroutine factory and wait for its result."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        await self._queue.put((task, future))
        self._ensure_worker()
        return await future

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            task, future = await self._queue.get()
            try:
                if future.cancelled():
                    continue
                await self.limiter.wait_turn()
                try:
                    result = await task()
                except Exception as e:
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)
            finally:
                self._queue.task_done()

    async def close(self) -> None:
        """Stop the consumer; queued tasks that never started are cancelled."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        while not self._queue.empty():
            _, future = self._queue.get_nowait()
            future.cancel()
            self._queue.task_done()
        logger.debug("request_queue_closed")

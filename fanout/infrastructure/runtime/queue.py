"""WorkQueue - per-key serialized work queue with delayed and backoff requeue."""

import asyncio
import logging
from collections import deque
from collections.abc import Hashable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)


class WorkQueue(Generic[K]):
    """Queue of keys where each key is handed to at most one worker at a time.

    - ``add`` of a key already waiting is a no-op.
    - ``add`` of a key being processed is deferred until ``done``.
    - ``add_after`` schedules an ``add``; only the earliest pending timer
      per key is kept.
    - ``add_rate_limited`` delays by ``base * 2**failures`` capped at
      ``max``; ``forget`` resets the failure count.

    Example:
        queue = WorkQueue[ObjectKey]()
        queue.add(key)
        key = await queue.get()
        try:
            ...
        finally:
            queue.done(key)
    """

    def __init__(self, backoff_base: float = 0.5, backoff_max: float = 300.0) -> None:
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._queue: deque[K] = deque()
        self._dirty: set[K] = set()
        self._processing: set[K] = set()
        self._failures: dict[K, int] = {}
        self._timers: dict[K, tuple[float, asyncio.TimerHandle]] = {}
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._shutdown = False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def add(self, key: K) -> None:
        if self._shutdown or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._wake_one()

    async def get(self) -> K | None:
        """Next key to process, or None once the queue is shut down."""
        while not self._queue:
            if self._shutdown:
                return None
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            await waiter

        key = self._queue.popleft()
        self._dirty.discard(key)
        self._processing.add(key)
        return key

    def done(self, key: K) -> None:
        """Mark ``key`` processed; re-queue it if it was added meanwhile."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutdown:
            self._queue.append(key)
            self._wake_one()

    def add_after(self, key: K, delay: float) -> None:
        if self._shutdown:
            return
        if delay <= 0:
            self.add(key)
            return

        loop = asyncio.get_running_loop()
        when = loop.time() + delay
        pending = self._timers.get(key)
        if pending is not None:
            if pending[0] <= when:
                return
            pending[1].cancel()
        self._timers[key] = (when, loop.call_at(when, self._fire, key))

    def add_rate_limited(self, key: K) -> float:
        """Requeue with exponential backoff; returns the delay used."""
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        delay = min(self._backoff_base * 2**failures, self._backoff_max)
        self.add_after(key, delay)
        return delay

    def forget(self, key: K) -> None:
        self._failures.pop(key, None)

    def num_requeues(self, key: K) -> int:
        return self._failures.get(key, 0)

    def shutdown(self) -> None:
        """Stop handing out keys and wake every waiting ``get``."""
        self._shutdown = True
        for _, handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)

    def _fire(self, key: K) -> None:
        self._timers.pop(key, None)
        self.add(key)

    def _wake_one(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return

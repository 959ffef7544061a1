"""
Rolling-window rate limiter for outbound LLM calls.

One instance is shared by every caller that draws on the same quota.
"""
import asyncio
import threading
import time
from collections import deque
from typing import Awaitable, Callable, Deque

DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_POLL_INTERVAL = 0.1


class RateLimiter:
    """Admit at most ``max_requests`` acquisitions per rolling ``window``.

    Waiting callers poll every ``poll_interval`` seconds instead of being
    woken when a slot frees. There is no fairness between waiters: a newly
    arriving caller can take a freed slot ahead of one that has been
    polling longer.

    Cancellation is ordinary task cancellation. Wrap ``acquire()`` in
    ``asyncio.timeout()`` for a deadline, or cancel the task.
    """

    def __init__(
        self,
        max_requests: int,
        window: float = DEFAULT_WINDOW_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window = window
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep
        self._timestamps: Deque[float] = deque()
        # Guards _timestamps only. Never held across an await.
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def try_acquire(self) -> bool:
        """Record one admission if the window has room. Never blocks."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            if len(self._timestamps) >= self.max_requests:
                return False
            self._timestamps.append(now)
            return True

    def in_window(self) -> int:
        """Number of admissions still inside the trailing window."""
        with self._lock:
            self._prune(self._clock())
            return len(self._timestamps)

    async def acquire(self) -> None:
        """Wait until a slot is free, then take it.

        Raises CancelledError (or TimeoutError under ``asyncio.timeout``)
        when the calling task is cancelled, without taking a slot.
        """
        # Checkpoint: a task that is already cancelled fails here, before recording.
        await asyncio.sleep(0)
        while not self.try_acquire():
            await self._sleep(self.poll_interval)

"""
Sliding Window Rate Limiter
===========================
In-process sliding window over request timestamps.
"""

import time
from collections import deque
from typing import Callable, Deque

from .models import RateLimitInfo


class SlidingWindow:
    """
    Sliding window of admitted request timestamps.

    More accurate than a fixed window: a slot frees up exactly ``window``
    seconds after the request that used it.
    """

    def __init__(
        self,
        limit: int,
        window: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.limit = limit
        self.window = window
        self._clock = clock
        self._timestamps: Deque[float] = deque()

    def prune(self, now: float) -> None:
        """Remove entries that have left the window."""
        window_start = now - self.window
        while self._timestamps and self._timestamps[0] <= window_start:
            self._timestamps.popleft()

    def check(self) -> RateLimitInfo:
        """Record a request if a slot is free, otherwise report the wait."""
        now = self._clock()
        self.prune(now)
        count = len(self._timestamps)

        if count >= self.limit:
            oldest = self._timestamps[0]
            reset_at = oldest + self.window
            return RateLimitInfo(
                allowed=False,
                remaining=0,
                limit=self.limit,
                reset_at=reset_at,
                retry_after=max(0.0, reset_at - now),
            )

        self._timestamps.append(now)
        oldest = self._timestamps[0]
        return RateLimitInfo(
            allowed=True,
            remaining=self.limit - count - 1,
            limit=self.limit,
            reset_at=oldest + self.window,
        )

    def __len__(self) -> int:
        self.prune(self._clock())
        return len(self._timestamps)

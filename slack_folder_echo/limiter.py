from __future__ import annotations

import time
from typing import Callable


class TokenBucket:
    """Per-minute quota: up to ``rate`` acquisitions per ``per`` seconds.

    The bucket starts full and refills continuously, so a burst of ``rate``
    is allowed and after that one token comes back every ``per / rate``
    seconds.
    """

    def __init__(
        self,
        rate: int,
        per: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate < 1:
            raise ValueError(f"rate must be a positive integer, got {rate}")
        if per <= 0:
            raise ValueError(f"per must be positive, got {per}")
        self.rate = rate
        self.per = per
        self.capacity = float(rate)
        self.tokens = float(rate)
        self._clock = clock
        self._updated = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._updated = now
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate / self.per)

    def try_acquire(self) -> bool:
        self._refill()
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False

    def time_until_available(self) -> float:
        self._refill()
        if self.tokens >= 1.0:
            return 0.0
        return (1.0 - self.tokens) * self.per / self.rate

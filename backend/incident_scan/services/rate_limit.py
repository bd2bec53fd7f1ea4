"""Per-caller fixed-window request counter for the extraction endpoint.

Each extraction is a paid upstream call, so callers get ``limit`` requests per
``window_seconds``. Requests over the limit are rejected, never queued.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from loguru import logger

from incident_scan.errors import RateLimited


class FixedWindowRateLimiter:
    def __init__(
        self,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[int, int]] = {}  # identity -> (window index, count)

    def hit(self, identity: str) -> int:
        """Count one request for ``identity`` and return how many remain.

        Raises:
            RateLimited: the caller already used its quota for this window.
        """
        window = int(self._clock() // self.window_seconds)
        current, count = self._windows.get(identity, (window, 0))
        if current != window:
            count = 0
        if count >= self.limit:
            logger.warning("Rate limit hit for {} ({} requests per {}s)", identity, self.limit, self.window_seconds)
            raise RateLimited()

        self._windows[identity] = (window, count + 1)
        self._evict(window)
        return self.limit - count - 1

    def _evict(self, window: int) -> None:
        stale = [key for key, (w, _) in self._windows.items() if w != window]
        for key in stale:
            del self._windows[key]

from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import Callable


class SimpleRateLimiter:
    """Sliding-window limiter keyed by client address (or address + identity)."""

    def __init__(
        self,
        *,
        max_events: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_events = max_events
        self.window_seconds = window_seconds
        self._clock = clock
        self._events: dict[str, deque[float]] = defaultdict(deque)

    def _prune(self, key: str, now: float) -> deque[float]:
        events = self._events[key]
        window_start = now - self.window_seconds
        while events and events[0] < window_start:
            events.popleft()
        return events

    def allow(self, key: str) -> bool:
        now = self._clock()
        events = self._prune(key, now)
        if len(events) >= self.max_events:
            return False
        events.append(now)
        return True

    def reset(self) -> None:
        self._events.clear()

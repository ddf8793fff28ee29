"""
Per-identity request limiter.

Fixed-window counting: the first request of an identity opens a window, every
further request inside `timeframe` seconds increments its counter, and requests
past `max_allowed` are rejected until the window runs out. Bursts around window
boundaries are accepted.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict

from domain.models import Admission, Admitted, RateWindow, Rejected

logger = logging.getLogger(__name__)


class RequestsLimiter:
    def __init__(
        self,
        max_allowed: int = 10,
        timeframe: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_allowed < 1:
            raise ValueError("max_allowed must be positive")
        if timeframe <= 0:
            raise ValueError("timeframe must be positive")
        self.max_allowed = max_allowed
        self.timeframe = float(timeframe)
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}
        # admit() never awaits, so coroutines cannot interleave inside it;
        # the lock only matters for callers on other threads.
        self._lock = threading.Lock()

    def admit(self, identity: str) -> Admission:
        now = self._clock()
        with self._lock:
            window = self._windows.get(identity)
            if window is None or now - window.started_at >= self.timeframe:
                self._windows[identity] = RateWindow(count=1, started_at=now)
                return Admitted()
            window.count += 1
            count = window.count
            retry_after = window.started_at + self.timeframe - now

        logger.debug("[limiter] request #%d for %s", count, identity)
        if count > self.max_allowed:
            return Rejected(retry_after=retry_after)
        return Admitted()

    def sweep(self) -> int:
        """Forget windows that have run out; returns how many were dropped."""
        now = self._clock()
        with self._lock:
            stale = [
                identity
                for identity, window in self._windows.items()
                if now - window.started_at >= self.timeframe
            ]
            for identity in stale:
                del self._windows[identity]
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)

"""
In-process TTL cache shared by the result cache and the preferences client,
plus a small asyncio task that sweeps expired entries on an interval.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[K, V]):
    key: K
    value: V
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now > self.created_at + self.ttl


class TTLCache(Generic[K, V]):
    """Dict-backed cache; expired entries are never returned and are dropped on read."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = float(ttl)
        self._clock = clock
        self._entries: Dict[K, CacheEntry[K, V]] = {}
        self._lock = threading.Lock()

    def get(self, key: K) -> Optional[V]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: K, value: V, ttl: Optional[float] = None) -> None:
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=self._clock(),
            ttl=self.ttl if ttl is None else float(ttl),
        )
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: K) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class PeriodicSweeper:
    """Runs the given sweep callables every `interval` seconds on the event loop."""

    def __init__(self, interval: float, sweeps: List[Callable[[], int]], name: str = "cache"):
        self.interval = float(interval)
        self._sweeps = list(sweeps)
        self._name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running or self.interval <= 0:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def run_once(self) -> int:
        removed = 0
        for sweep in self._sweeps:
            try:
                removed += sweep()
            except Exception:
                logger.exception("[%s] sweep failed", self._name)
        if removed:
            logger.debug("[%s] swept %d expired entries", self._name, removed)
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.run_once()

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

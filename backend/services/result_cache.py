"""
Application-tier cache of parsed resolution results.

Entries are keyed by a fingerprint of the classified query rather than the raw
string, so "Eiffel  Tower" and "eiffel tower" share an entry while a different
radius, backend, bias point or language does not. The store behind it is
pluggable: an in-process TTL cache by default, or SQLite (see
result_cache_sqlite).

A failing store never fails a resolution: reads degrade to a miss, writes are
skipped.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, Protocol, Tuple

from domain.models import ClassifiedQuery, Coordinate, ResolutionResult
from services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)


class ResultStore(Protocol):
    # True when calls block on I/O and should run off the event loop
    blocking: bool

    def get(self, key: str) -> Optional[ResolutionResult]: ...

    def put(self, key: str, result: ResolutionResult, ttl: float) -> None: ...

    def sweep(self) -> int: ...


class MemoryResultStore:
    blocking = False

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self._cache: TTLCache[str, ResolutionResult] = TTLCache(ttl, clock=clock)

    def get(self, key: str) -> Optional[ResolutionResult]:
        return self._cache.get(key)

    def put(self, key: str, result: ResolutionResult, ttl: float) -> None:
        self._cache.put(key, result, ttl=ttl)

    def sweep(self) -> int:
        return self._cache.sweep()

    def __len__(self) -> int:
        return len(self._cache)


# ~110 m; searches biased to nearly the same point share an entry
NEAR_PRECISION = 3


def fingerprint(
    classified: ClassifiedQuery,
    provider: str,
    radius: float,
    result_cap: int,
    near: Optional[Tuple[float, float]] = None,
    locale: str = "",
) -> str:
    """
    Deterministic cache key for a classified query.

    Everything that changes what a provider returns is part of the key: the
    backend, the search bias point and the response language.
    """
    if isinstance(classified, Coordinate):
        query_part = ["coordinate", repr(classified.latitude), repr(classified.longitude)]
    else:
        query_part = ["text", classified.key]
    near_part = None
    if near is not None:
        near_part = [round(float(near[0]), NEAR_PRECISION), round(float(near[1]), NEAR_PRECISION)]
    payload = json.dumps(
        [query_part, provider, repr(float(radius)), int(result_cap), near_part, locale.lower()],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ResultCache:
    def __init__(self, store: Optional[ResultStore] = None, ttl: float = 300.0):
        self.ttl = float(ttl)
        self.store: ResultStore = store if store is not None else MemoryResultStore(self.ttl)
        # Blocking stores get a private worker, so store I/O never waits
        # behind provider calls in the loop's default executor.
        self._executor: Optional[ThreadPoolExecutor] = None
        if self.store.blocking:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="result-cache")

    fingerprint = staticmethod(fingerprint)

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        if self._executor is None:
            return fn(*args)
        return await asyncio.get_running_loop().run_in_executor(self._executor, fn, *args)

    async def get(self, key: str) -> Optional[ResolutionResult]:
        try:
            return await self._call(self.store.get, key)
        except Exception as exc:
            logger.warning("[cache] lookup failed for %s, treating as a miss: %s", key[:12], exc)
            return None

    async def put(self, key: str, result: ResolutionResult) -> None:
        try:
            await self._call(self.store.put, key, result, self.ttl)
        except Exception as exc:
            logger.warning("[cache] store failed for %s, result not cached: %s", key[:12], exc)

    def sweep(self) -> int:
        return self.store.sweep()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        close = getattr(self.store, "close", None)
        if close is not None:
            close()

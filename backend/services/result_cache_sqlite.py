"""
SQLite-backed store for the application-tier result cache.

Keeps resolved locations across restarts. Rows carry their own creation time and
TTL so that expiry does not depend on the process that wrote them.
"""
from __future__ import annotations

import json
import os
import sqlite3
import threading
import time
from typing import Callable, Optional

from domain.models import ResolutionResult

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
DATA_DIR = os.path.join(BASE_DIR, "data")
RESULT_CACHE_DB_FILENAME = "result_cache.sqlite"


class SqliteResultStore:
    blocking = True

    def __init__(self, db_path: Optional[str] = None, clock: Callable[[], float] = time.time):
        self.db_path = db_path or os.path.join(DATA_DIR, RESULT_CACHE_DB_FILENAME)
        self._clock = clock
        os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
        # check_same_thread=False: calls arrive from asyncio worker threads
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS result_cache (
                    fingerprint TEXT PRIMARY KEY,
                    response_json TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    ttl_seconds REAL NOT NULL
                )
                """
            )
            self._conn.commit()

    def get(self, key: str) -> Optional[ResolutionResult]:
        """Return the cached result if a non-expired row exists for key."""
        with self._lock:
            row = self._conn.execute(
                "SELECT response_json, created_at, ttl_seconds FROM result_cache WHERE fingerprint=?",
                (key,),
            ).fetchone()
            if not row:
                return None
            response_json, created_at, ttl_seconds = row
            if self._clock() > created_at + ttl_seconds:
                self._conn.execute("DELETE FROM result_cache WHERE fingerprint=?", (key,))
                self._conn.commit()
                return None
        return ResolutionResult.from_list(json.loads(response_json))

    def put(self, key: str, result: ResolutionResult, ttl: float) -> None:
        payload = json.dumps(result.to_list(), ensure_ascii=False)
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO result_cache (fingerprint, response_json, created_at, ttl_seconds)
                VALUES (?, ?, ?, ?)
                """,
                (key, payload, self._clock(), float(ttl)),
            )
            self._conn.commit()

    def sweep(self) -> int:
        with self._lock:
            cur = self._conn.execute(
                "DELETE FROM result_cache WHERE created_at + ttl_seconds < ?",
                (self._clock(),),
            )
            self._conn.commit()
            return cur.rowcount

    def close(self) -> None:
        with self._lock:
            self._conn.close()

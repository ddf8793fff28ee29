"""
Transport-tier cache for outbound geocoder calls.

Every provider shares one requests.Session wrapped with CacheControl, which
stores a response only when its Cache-Control/Expires headers allow it and
keys it by the exact request. This tier knows nothing about locations; it just
saves byte-identical round trips.
"""
from __future__ import annotations

import logging
from typing import Optional

import requests
from cachecontrol import CacheControl
from cachecontrol.cache import DictCache

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "loc-place-bot/0.1"


def caching_session(
    cache_dir: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> requests.Session:
    """
    Build a session whose GET responses are cached per HTTP semantics.

    With `cache_dir` the cache lives on disk (FileCache), otherwise in memory.
    """
    session = requests.Session()
    session.headers["User-Agent"] = user_agent or DEFAULT_USER_AGENT
    if cache_dir:
        from cachecontrol.caches.file_cache import FileCache

        cache = FileCache(cache_dir)
        logger.info("HTTP response cache at %s", cache_dir)
    else:
        cache = DictCache()
    return CacheControl(session, cache=cache)


def is_from_cache(response: requests.Response) -> bool:
    """True when CacheControl answered the request without touching the network."""
    return bool(getattr(response, "from_cache", False))

"""
Per-user preferences with a local TTL cache in front of the identity service.

The identity service is optional: without an address the client is disabled
and every lookup yields defaults. A lookup never raises; RPC failures degrade
to defaults which are not cached, so the next request tries again.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from domain.models import ProviderMode, UserPreferences
from services.ttl_cache import PeriodicSweeper, TTLCache
from services.user_service_grpc import GrpcUserService, UserProfile, UserServiceError

logger = logging.getLogger(__name__)


class UserPreferencesClient:
    def __init__(
        self,
        remote: Optional[GrpcUserService] = None,
        ttl: float = 360.0,
        sweep_interval: float = 3600.0,
        default_locale: str = "en",
        timeout: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.remote = remote
        self.default_locale = default_locale
        self.timeout = timeout
        self._clock = clock
        self._cache: TTLCache[str, UserPreferences] = TTLCache(ttl, clock=clock)
        self._sweeper = PeriodicSweeper(sweep_interval, [self._cache.sweep], name="users")

    @property
    def enabled(self) -> bool:
        return self.remote is not None

    def defaults(self, identity: str) -> UserPreferences:
        return UserPreferences(
            identity=identity,
            locale=self.default_locale,
            refreshed_at=self._clock(),
        )

    async def start(self) -> None:
        if self.remote is None:
            logger.info("User service is not configured, using default preferences")
            return
        try:
            await self.remote.connect()
        except UserServiceError as exc:
            # lookups connect lazily and fall back to defaults until the service is up
            logger.warning("User service is unreachable at startup: %s", exc)
        self._sweeper.start()

    async def close(self) -> None:
        await self._sweeper.stop()
        if self.remote is not None:
            await self.remote.close()

    def sweep(self) -> int:
        return self._cache.sweep()

    def invalidate(self, identity: str) -> None:
        self._cache.delete(identity)

    async def get_preferences(self, identity: str) -> UserPreferences:
        if self.remote is None:
            return self.defaults(identity)

        cached = self._cache.get(identity)
        if cached is not None:
            return cached

        try:
            profile = await asyncio.wait_for(self.remote.get_user(identity), timeout=self.timeout)
        except (UserServiceError, asyncio.TimeoutError, OSError) as exc:
            logger.info("Preference lookup for %s failed, using defaults: %s", identity, exc)
            return self.defaults(identity)

        if profile is None:
            # Unknown users are cached too, so they don't hit the service on every message
            prefs = self.defaults(identity)
        else:
            prefs = self._from_profile(identity, profile)
        self._cache.put(identity, prefs)
        return prefs

    def _from_profile(self, identity: str, profile: UserProfile) -> UserPreferences:
        mode = ProviderMode.parse(profile.provider_mode)
        if profile.provider_mode and mode is None:
            logger.warning("Unknown provider mode %r for %s", profile.provider_mode, identity)
        return UserPreferences(
            identity=identity,
            locale=profile.language_code or self.default_locale,
            provider_mode=mode,
            location=profile.location,
            refreshed_at=self._clock(),
        )

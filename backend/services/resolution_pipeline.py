"""
Query resolution pipeline.

One call to `resolve` walks a query through:

    classify -> rate check -> preferences -> cache lookup
        hit:  done
        miss: provider (one fallback) -> cache store -> done

Preferences come before the cache because they pick the backend, the search
bias point and the response language, all of which are part of the cache key.
The preferences client answers repeat callers from its own TTL cache.

Only two conditions reach the caller as failures: the rate limit, and both the
selected provider and its fallback failing. Everything else degrades: a broken
cache is a miss, a broken identity service means default preferences, and a
provider that finds nothing yields an empty result.
"""
from __future__ import annotations

import logging
from typing import Mapping, Optional

from domain.models import (
    ClassifiedQuery,
    Coordinate,
    Outcome,
    ProviderError,
    ProviderErrorKind,
    ProviderMode,
    Query,
    RateLimited,
    Rejected,
    ResolutionFailed,
    ResolutionResult,
    Resolved,
    SearchText,
    UserPreferences,
)
from services.geocoding_factory import ProviderRegistry
from services.query_classifier import DEFAULT_SEARCH_RADIUS, classify
from services.rate_limiter import RequestsLimiter
from services.result_cache import ResultCache
from services.user_preferences import UserPreferencesClient

logger = logging.getLogger(__name__)

class ResolutionPipeline:
    def __init__(
        self,
        limiter: RequestsLimiter,
        cache: ResultCache,
        preferences: UserPreferencesClient,
        providers: ProviderRegistry,
        default_mode: ProviderMode = ProviderMode.OSM,
        fallback_mode: Optional[ProviderMode] = None,
        regional_providers: Optional[Mapping[str, ProviderMode]] = None,
        search_radius: float = DEFAULT_SEARCH_RADIUS,
        max_results: int = 10,
    ):
        self.limiter = limiter
        self.cache = cache
        self.preferences = preferences
        self.providers = providers
        self.default_mode = default_mode
        self.fallback_mode = fallback_mode
        self.regional_providers = dict(regional_providers or {})
        self.search_radius = float(search_radius)
        self.max_results = max(1, int(max_results))

    def result_cap(self, requested: int) -> int:
        return max(1, min(int(requested), self.max_results))

    async def resolve(self, query: Query) -> Outcome:
        classified = classify(query.raw, self.search_radius)
        if isinstance(classified, SearchText) and not classified.text:
            return Resolved(ResolutionResult())

        admission = self.limiter.admit(query.identity)
        if isinstance(admission, Rejected):
            logger.info(
                "[limiter] %s is rate limited, retry after %.1fs",
                query.identity,
                admission.retry_after,
            )
            return RateLimited(retry_after=admission.retry_after)

        cap = self.result_cap(query.result_cap)
        prefs = await self.preferences.get_preferences(query.identity)
        mode = self.select_mode(classified, prefs)
        key = self.cache.fingerprint(
            classified,
            mode.value,
            self.search_radius,
            cap,
            near=prefs.location if isinstance(classified, SearchText) else None,
            locale=prefs.locale,
        )
        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug("[cache] hit for %s", key[:12])
            return Resolved(cached)

        try:
            result = await self._dispatch(mode, classified, prefs, cap)
        except ProviderError as exc:
            logger.warning("Resolution of %r failed: %s", query.raw, exc)
            return ResolutionFailed(reason=str(exc))

        if len(result):
            await self.cache.put(key, result)
        return Resolved(result)

    def select_mode(self, classified: ClassifiedQuery, prefs: UserPreferences) -> ProviderMode:
        if isinstance(classified, Coordinate):
            return ProviderMode.COORDINATES
        return self.providers.select(prefs, self.default_mode, self.regional_providers)

    async def _dispatch(
        self,
        mode: ProviderMode,
        classified: ClassifiedQuery,
        prefs: UserPreferences,
        cap: int,
    ) -> ResolutionResult:
        try:
            return await self._call(mode, classified, prefs, cap)
        except ProviderError as exc:
            fallback = self.fallback_mode or self.default_mode
            if mode == ProviderMode.COORDINATES or fallback == mode:
                raise
            logger.warning("%s failed (%s), falling back to %s", mode.value, exc, fallback.value)
        return await self._call(fallback, classified, prefs, cap)

    async def _call(
        self,
        mode: ProviderMode,
        classified: ClassifiedQuery,
        prefs: UserPreferences,
        cap: int,
    ) -> ResolutionResult:
        provider = self.providers.get(mode)
        if provider is None:
            raise ProviderError(ProviderErrorKind.UNAVAILABLE, mode.value, "provider is not configured")
        try:
            return await provider.resolve(
                classified,
                self.search_radius,
                cap,
                locale=prefs.locale,
                near=prefs.location,
            )
        except ProviderError as exc:
            if exc.kind == ProviderErrorKind.NO_MATCH:
                return ResolutionResult()
            raise

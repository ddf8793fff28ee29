"""
Provider lookup table and its construction from settings.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, Mapping, Optional

from domain.models import ProviderMode, UserPreferences
from services.geocoding import CoordinateEchoProvider, GeocodingProvider, Throttle
from services.geocoding_google import GoogleAPIMode, GoogleProvider
from services.geocoding_osm import OsmProvider
from services.geocoding_yandex import YandexAPIMode, YandexProvider
from services.http_cache import caching_session

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Explicit mapping of ProviderMode to the one shared provider instance."""

    def __init__(self, providers: Iterable[GeocodingProvider] = ()):
        self._providers: Dict[ProviderMode, GeocodingProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: GeocodingProvider) -> None:
        self._providers[provider.mode] = provider

    def get(self, mode: Optional[ProviderMode]) -> Optional[GeocodingProvider]:
        if mode is None:
            return None
        return self._providers.get(mode)

    def __contains__(self, mode: object) -> bool:
        return mode in self._providers

    @property
    def modes(self) -> list:
        return list(self._providers)

    def select(
        self,
        prefs: UserPreferences,
        default_mode: ProviderMode,
        regional: Optional[Mapping[str, ProviderMode]] = None,
    ) -> ProviderMode:
        """
        Pick the search backend for a user.

        Order: the user's own choice, then the regional default for their
        locale, then `default_mode`. Modes without a registered search backend
        are skipped.
        """
        candidates = [prefs.provider_mode]
        if regional and prefs.locale:
            candidates.append(regional.get(prefs.locale.split("-")[0].lower()))
        for mode in candidates:
            if mode is None or mode == ProviderMode.COORDINATES:
                continue
            if mode in self._providers:
                return mode
            logger.debug("provider %s is not configured, skipping", mode.value)
        return default_mode


def parse_regional(mapping: Mapping[str, str]) -> Dict[str, ProviderMode]:
    result: Dict[str, ProviderMode] = {}
    for locale, name in mapping.items():
        mode = ProviderMode.parse(name)
        if mode is None:
            logger.error("Unknown provider %r for locale %r in REGIONAL_PROVIDERS", name, locale)
            continue
        result[locale] = mode
    return result


def build_providers(settings) -> ProviderRegistry:
    """Construct every configured backend around one shared caching session."""
    session = caching_session(settings.HTTP_CACHE_DIR, settings.NOMINATIM_USER_AGENT)
    # Both Nominatim clients count against the same usage policy
    nominatim_throttle = Throttle(settings.NOMINATIM_MIN_INTERVAL)
    timeout = settings.PROVIDER_TIMEOUT_SECS

    registry = ProviderRegistry(
        [
            CoordinateEchoProvider(
                session=session,
                timeout=timeout,
                reverse_geocoding=settings.REVERSE_GEOCODING_ENABLED,
                throttle=nominatim_throttle,
            ),
            OsmProvider(session=session, timeout=timeout, throttle=nominatim_throttle),
        ]
    )

    if settings.GOOGLE_MAPS_API_KEY:
        registry.register(
            GoogleProvider(
                settings.GOOGLE_MAPS_API_KEY,
                api_mode=GoogleAPIMode.parse(settings.GAPI_MODE),
                session=session,
                timeout=timeout,
            )
        )
    else:
        logger.info("GOOGLE_MAPS_API_KEY is not set, Google provider disabled")

    yandex = YandexProvider(
        settings.YANDEX_MAPS_GEOCODER_API_KEY,
        places_api_key=settings.YANDEX_MAPS_PLACES_API_KEY,
        api_mode=YandexAPIMode.parse(settings.YAPI_MODE),
        session=session,
        timeout=timeout,
    )
    if yandex.is_available():
        registry.register(yandex)
    else:
        logger.info("Yandex Maps keys are not set, Yandex provider disabled")

    logger.info("Geocoding providers: %s", ", ".join(m.value for m in registry.modes))
    return registry

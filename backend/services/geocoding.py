"""Geocoding providers: shared plumbing and the coordinate-echo backend.

Every provider exposes one coroutine, ``resolve``. The HTTP work itself is done
with a blocking requests session (wrapped by the transport-tier cache) in a
worker thread, bounded by the provider timeout, so a slow geocoder never stalls
the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

import requests

from domain.models import (
    ClassifiedQuery,
    Coordinate,
    ProviderError,
    ProviderErrorKind,
    ProviderMode,
    ResolutionResult,
    ResolvedLocation,
    SearchText,
)
from services.http_cache import caching_session, is_from_cache

NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"
METERS_PER_DEGREE = 111_320.0
logger = logging.getLogger(__name__)


def _redact_email(ua: str) -> str:
    if "@" not in ua:
        return ua
    return re.sub(r"\S+@\S+", "<redacted>", ua)


class Throttle:
    """Enforce a minimum interval between calls (Nominatim allows ~1 req/s).

    Waiting happens on the event loop, so queued callers hold no worker thread.
    """

    def __init__(self, min_interval: float = 1.1):
        self.min_interval = min_interval
        self._last_request_ts = 0.0
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        async with self._lock:
            delta = time.monotonic() - self._last_request_ts
            if delta < self.min_interval:
                await asyncio.sleep(self.min_interval - delta)
            self._last_request_ts = time.monotonic()


@dataclass(frozen=True)
class PlaceLabel:
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None

    @property
    def short_label(self) -> Optional[str]:
        """Return a concise label, preferring city/state when available."""
        parts: list[str] = []
        if self.city and self.state:
            parts = [self.city, self.state]
        elif self.city and self.country:
            parts = [self.city, self.country]
        elif self.state and self.country:
            parts = [self.state, self.country]
        elif self.city:
            parts = [self.city]
        elif self.country:
            parts = [self.country]
        else:
            return None
        return ", ".join(parts)


def bounding_box(center: Tuple[float, float], radius_m: float) -> Tuple[float, float, float, float]:
    """(south, west, north, east) of a square of half-side `radius_m` around center."""
    lat, lon = center
    dlat = radius_m / METERS_PER_DEGREE
    cos_lat = max(math.cos(math.radians(lat)), 1e-6)
    dlon = min(radius_m / (METERS_PER_DEGREE * cos_lat), 180.0)
    return (
        max(lat - dlat, -90.0),
        max(lon - dlon, -180.0),
        min(lat + dlat, 90.0),
        min(lon + dlon, 180.0),
    )


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class GeocodingProvider(ABC):
    """Base class for all backends; one instance is shared by every request."""

    mode: ProviderMode

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 5.0,
        throttle: Optional[Throttle] = None,
    ):
        self.session = session or caching_session()
        self.timeout = timeout
        self.throttle = throttle

    @property
    def name(self) -> str:
        return self.mode.value

    def is_available(self) -> bool:
        """Check if the backend is configured (API keys etc.)."""
        return True

    @abstractmethod
    async def resolve(
        self,
        classified: ClassifiedQuery,
        radius: float,
        result_cap: int,
        *,
        locale: str = "",
        near: Optional[Tuple[float, float]] = None,
    ) -> ResolutionResult:
        ...

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        """
        Run blocking provider work in a thread, bounded by the provider timeout.

        The throttle slot is awaited first, so time spent queueing counts
        against the timeout but never occupies a worker thread.
        """

        async def call() -> Any:
            if self.throttle is not None:
                await self.throttle.wait()
            return await asyncio.to_thread(fn, *args)

        try:
            return await asyncio.wait_for(call(), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                ProviderErrorKind.UNAVAILABLE, self.name, f"timed out after {self.timeout}s"
            ) from exc

    def _request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        """Perform an HTTP call and decode JSON, mapping failures onto ProviderError."""
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise ProviderError(ProviderErrorKind.UNAVAILABLE, self.name, str(exc)) from exc

        if resp.status_code == 429:
            raise ProviderError(ProviderErrorKind.RATE_LIMITED, self.name, "HTTP 429")
        if resp.status_code >= 400:
            raise ProviderError(ProviderErrorKind.UNAVAILABLE, self.name, f"HTTP {resp.status_code}")

        logger.debug(
            "%s response from %s (%s)",
            "cached" if is_from_cache(resp) else "fetched",
            self.name,
            url,
        )
        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderError(ProviderErrorKind.MALFORMED, self.name, "response is not JSON") from exc

    def _malformed(self, message: str) -> ProviderError:
        return ProviderError(ProviderErrorKind.MALFORMED, self.name, message)


class SearchProvider(GeocodingProvider):
    """A backend that turns free text into ranked candidate places."""

    async def resolve(
        self,
        classified: ClassifiedQuery,
        radius: float,
        result_cap: int,
        *,
        locale: str = "",
        near: Optional[Tuple[float, float]] = None,
    ) -> ResolutionResult:
        if not isinstance(classified, SearchText):
            raise TypeError(f"{self.name} only resolves text queries")
        if not classified.text:
            return ResolutionResult()
        locations = await self._run(
            self.search, classified.text, radius, result_cap, locale, near
        )
        logger.info("%s found %d locations for %r", self.name, len(locations), classified.text)
        return ResolutionResult.truncated(locations, result_cap)

    @abstractmethod
    def search(
        self,
        text: str,
        radius: float,
        limit: int,
        locale: str,
        near: Optional[Tuple[float, float]],
    ) -> List[ResolvedLocation]:
        """Blocking search call; returns locations in the provider's rank order."""


class CoordinateEchoProvider(GeocodingProvider):
    """
    Answers coordinate queries with the coordinate itself.

    Optionally names the point with a Nominatim reverse lookup; a failed lookup
    still returns the bare coordinate.
    """

    mode = ProviderMode.COORDINATES

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 5.0,
        reverse_geocoding: bool = False,
        throttle: Optional[Throttle] = None,
        base_url: str = NOMINATIM_REVERSE_URL,
    ):
        super().__init__(session, timeout, throttle)
        self.reverse_geocoding = reverse_geocoding
        self.base_url = base_url
        if reverse_geocoding:
            logger.debug(
                "Nominatim User-Agent: %s",
                _redact_email(str(self.session.headers.get("User-Agent", ""))),
            )

    async def resolve(
        self,
        classified: ClassifiedQuery,
        radius: float,
        result_cap: int,
        *,
        locale: str = "",
        near: Optional[Tuple[float, float]] = None,
    ) -> ResolutionResult:
        if not isinstance(classified, Coordinate):
            raise TypeError("coordinate echo only resolves coordinate queries")

        name = address = None
        if self.reverse_geocoding:
            try:
                name, address = await self._run(
                    self.reverse_lookup, classified.latitude, classified.longitude, locale
                )
            except ProviderError as exc:
                logger.warning(
                    "Nominatim reverse geocode error for lat=%s lon=%s: %s",
                    classified.latitude,
                    classified.longitude,
                    exc,
                )

        location = ResolvedLocation(
            latitude=classified.latitude,
            longitude=classified.longitude,
            provider=self.name,
            name=name,
            address=address,
        )
        return ResolutionResult.truncated([location], max(result_cap, 1))

    def reverse_lookup(self, lat: float, lon: float, locale: str = "") -> Tuple[Optional[str], Optional[str]]:
        """Return (name, address) for a point; either may be None."""
        params = {
            "format": "jsonv2",
            "lat": str(lat),
            "lon": str(lon),
            "zoom": "18",
            "addressdetails": "1",
        }
        headers = {"Accept-Language": locale} if locale else {}
        data = self._request_json("GET", self.base_url, params=params, headers=headers)
        if not isinstance(data, dict):
            raise self._malformed("reverse response is not an object")

        address = data.get("address") or {}
        if not isinstance(address, dict):
            raise self._malformed("reverse response address is not an object")
        label = PlaceLabel(
            city=(
                address.get("city")
                or address.get("town")
                or address.get("village")
                or address.get("hamlet")
            ),
            state=address.get("state"),
            country=address.get("country"),
        )
        name = data.get("name") or label.short_label
        return name or None, data.get("display_name") or None

"""
Google Maps search backend.

Two request styles, chosen by GAPI_MODE:
- Text: Places API Text Search only.
- GeoText: Geocoding API first, Text Search when geocoding finds nothing.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import requests

from domain.models import ProviderError, ProviderErrorKind, ProviderMode, ResolvedLocation
from services.geocoding import SearchProvider, _as_float, bounding_box

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
TEXT_SEARCH_URL = "https://places.googleapis.com/v1/places:searchText"
TEXT_SEARCH_FIELD_MASK = "places.displayName,places.formattedAddress,places.location"
# Places API caps circle bias radius at 50 km
MAX_BIAS_RADIUS_M = 50_000.0

logger = logging.getLogger(__name__)


class GoogleAPIMode(str, Enum):
    TEXT = "Text"
    GEO_TEXT = "GeoText"

    @classmethod
    def parse(cls, value: Optional[str]) -> "GoogleAPIMode":
        for mode in cls:
            if value and mode.value.lower() == value.strip().lower():
                return mode
        raise ValueError(f"Invalid value of GAPI_MODE: {value!r}")


class GoogleProvider(SearchProvider):
    mode = ProviderMode.GOOGLE

    def __init__(
        self,
        api_key: Optional[str],
        api_mode: GoogleAPIMode = GoogleAPIMode.GEO_TEXT,
        session: Optional[requests.Session] = None,
        timeout: float = 5.0,
    ):
        super().__init__(session, timeout)
        self.api_key = api_key
        self.api_mode = api_mode

    def is_available(self) -> bool:
        return bool(self.api_key)

    def search(
        self,
        text: str,
        radius: float,
        limit: int,
        locale: str,
        near: Optional[Tuple[float, float]],
    ) -> List[ResolvedLocation]:
        if self.api_mode == GoogleAPIMode.TEXT:
            return self.find_text(text, radius, locale, near)
        results = self.find_geo(text, radius, locale, near)
        if not results:
            logger.debug("Geocoding API found nothing for %r, trying Text Search", text)
            results = self.find_text(text, radius, locale, near)
        return results

    def find_geo(
        self,
        text: str,
        radius: float,
        locale: str,
        near: Optional[Tuple[float, float]],
    ) -> List[ResolvedLocation]:
        params: Dict[str, str] = {"key": self.api_key or "", "address": text}
        if locale:
            params["language"] = locale
            params["region"] = locale
        if near is not None:
            south, west, north, east = bounding_box(near, radius)
            params["bounds"] = f"{south},{west}|{north},{east}"

        data = self._request_json("GET", GEOCODE_URL, params=params)
        if not isinstance(data, dict):
            raise self._malformed("geocode response is not an object")

        status = data.get("status", "OK")
        if status == "ZERO_RESULTS":
            return []
        if status == "OVER_QUERY_LIMIT":
            raise ProviderError(ProviderErrorKind.RATE_LIMITED, self.name, status)
        if status != "OK":
            raise ProviderError(
                ProviderErrorKind.UNAVAILABLE, self.name, f"{status}: {data.get('error_message', '')}"
            )

        results = []
        for item in data.get("results") or []:
            loc = self._map_geocode_item(item)
            if loc is not None:
                results.append(loc)
        return results

    def find_text(
        self,
        text: str,
        radius: float,
        locale: str,
        near: Optional[Tuple[float, float]],
    ) -> List[ResolvedLocation]:
        body: Dict[str, Any] = {"textQuery": text}
        if locale:
            body["languageCode"] = locale
        if near is not None:
            body["locationBias"] = {
                "circle": {
                    "center": {"latitude": near[0], "longitude": near[1]},
                    "radius": min(float(radius), MAX_BIAS_RADIUS_M),
                }
            }
        headers = {
            "X-Goog-Api-Key": self.api_key or "",
            "X-Goog-FieldMask": TEXT_SEARCH_FIELD_MASK,
        }

        data = self._request_json("POST", TEXT_SEARCH_URL, json=body, headers=headers)
        if not isinstance(data, dict):
            raise self._malformed("text search response is not an object")

        results = []
        for item in data.get("places") or []:
            loc = self._map_place_item(item)
            if loc is not None:
                results.append(loc)
        return results

    def _map_geocode_item(self, item: Any) -> Optional[ResolvedLocation]:
        if not isinstance(item, dict):
            return None
        location = (item.get("geometry") or {}).get("location") or {}
        lat = _as_float(location.get("lat"))
        lon = _as_float(location.get("lng"))
        if lat is None or lon is None:
            return None
        return ResolvedLocation(
            latitude=lat,
            longitude=lon,
            provider=self.name,
            address=item.get("formatted_address") or None,
        )

    def _map_place_item(self, item: Any) -> Optional[ResolvedLocation]:
        if not isinstance(item, dict):
            return None
        location = item.get("location") or {}
        lat = _as_float(location.get("latitude"))
        lon = _as_float(location.get("longitude"))
        if lat is None or lon is None:
            return None
        return ResolvedLocation(
            latitude=lat,
            longitude=lon,
            provider=self.name,
            name=(item.get("displayName") or {}).get("text") or None,
            address=item.get("formattedAddress") or None,
        )

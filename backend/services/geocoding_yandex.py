"""
Yandex Maps search backend.

YAPI_MODE selects the API:
- Geocode: HTTP Geocoder only.
- Place: Places (organization search) API only.
- GeoPlace: Geocoder first, Places if nothing was found.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import requests

from domain.models import ProviderError, ProviderErrorKind, ProviderMode, ResolvedLocation
from services.geocoding import SearchProvider, _as_float, bounding_box

GEOCODER_URL = "https://geocode-maps.yandex.ru/1.x"
PLACES_URL = "https://search-maps.yandex.ru/v1/"

logger = logging.getLogger(__name__)


class YandexAPIMode(str, Enum):
    GEOCODE = "Geocode"
    PLACE = "Place"
    GEO_PLACE = "GeoPlace"

    @classmethod
    def parse(cls, value: Optional[str]) -> "YandexAPIMode":
        for mode in cls:
            if value and mode.value.lower() == value.strip().lower():
                return mode
        raise ValueError(f"Invalid value of YAPI_MODE: {value!r}")


def _span_params(near: Optional[Tuple[float, float]], radius: float) -> Dict[str, str]:
    if near is None:
        return {}
    south, west, north, east = bounding_box(near, radius)
    return {
        "ll": f"{near[1]},{near[0]}",
        "spn": f"{east - west},{north - south}",
    }


class YandexProvider(SearchProvider):
    mode = ProviderMode.YANDEX

    def __init__(
        self,
        geocoder_api_key: Optional[str],
        places_api_key: Optional[str] = None,
        api_mode: YandexAPIMode = YandexAPIMode.GEOCODE,
        session: Optional[requests.Session] = None,
        timeout: float = 5.0,
    ):
        super().__init__(session, timeout)
        self.geocoder_api_key = geocoder_api_key
        self.places_api_key = places_api_key
        self.api_mode = api_mode

    def is_available(self) -> bool:
        if self.api_mode == YandexAPIMode.PLACE:
            return bool(self.places_api_key)
        return bool(self.geocoder_api_key)

    def search(
        self,
        text: str,
        radius: float,
        limit: int,
        locale: str,
        near: Optional[Tuple[float, float]],
    ) -> List[ResolvedLocation]:
        if self.api_mode == YandexAPIMode.PLACE:
            return self.find_place(text, radius, limit, locale, near)
        results = self.find_geo(text, radius, limit, locale, near)
        if not results and self.api_mode == YandexAPIMode.GEO_PLACE:
            logger.debug("Yandex Geocoder found nothing for %r, trying Places", text)
            results = self.find_place(text, radius, limit, locale, near)
        return results

    def find_geo(
        self,
        text: str,
        radius: float,
        limit: int,
        locale: str,
        near: Optional[Tuple[float, float]],
    ) -> List[ResolvedLocation]:
        params = {
            "apikey": self.geocoder_api_key or "",
            "geocode": text,
            "format": "json",
            "results": str(limit),
        }
        if locale:
            params["lang"] = locale
        params.update(_span_params(near, radius))

        data = self._request_json("GET", GEOCODER_URL, params=params)
        try:
            members = data["response"]["GeoObjectCollection"]["featureMember"]
        except (KeyError, TypeError) as exc:
            raise self._malformed("unexpected Geocoder response shape") from exc

        results = []
        for member in members or []:
            loc = self._map_geocode_item(member)
            if loc is not None:
                results.append(loc)
        return results

    def find_place(
        self,
        text: str,
        radius: float,
        limit: int,
        locale: str,
        near: Optional[Tuple[float, float]],
    ) -> List[ResolvedLocation]:
        if not self.places_api_key:
            raise ProviderError(
                ProviderErrorKind.UNAVAILABLE, self.name, "no key for Yandex Maps Places API"
            )
        params = {
            "apikey": self.places_api_key,
            "text": text,
            "results": str(limit),
        }
        if locale:
            params["lang"] = locale
        params.update(_span_params(near, radius))

        data = self._request_json("GET", PLACES_URL, params=params)
        if not isinstance(data, dict):
            raise self._malformed("Places response is not an object")

        results = []
        for feature in data.get("features") or []:
            loc = self._map_place_item(feature)
            if loc is not None:
                results.append(loc)
        return results

    def _map_geocode_item(self, member: Any) -> Optional[ResolvedLocation]:
        if not isinstance(member, dict):
            return None
        obj = member.get("GeoObject") or {}
        pos = ((obj.get("Point") or {}).get("pos") or "").split(" ")
        if len(pos) < 2:
            logger.error("pos has fewer than 2 parts: %r", pos)
            return None
        # Yandex orders positions as "longitude latitude"
        lon = _as_float(pos[0])
        lat = _as_float(pos[1])
        if lat is None or lon is None:
            return None
        metadata = (obj.get("metaDataProperty") or {}).get("GeocoderMetaData") or {}
        return ResolvedLocation(
            latitude=lat,
            longitude=lon,
            provider=self.name,
            name=obj.get("name") or None,
            address=metadata.get("text") or None,
        )

    def _map_place_item(self, feature: Any) -> Optional[ResolvedLocation]:
        if not isinstance(feature, dict):
            return None
        coords = (feature.get("geometry") or {}).get("coordinates") or []
        if len(coords) < 2:
            return None
        lon = _as_float(coords[0])
        lat = _as_float(coords[1])
        if lat is None or lon is None:
            return None
        props = feature.get("properties") or {}
        return ResolvedLocation(
            latitude=lat,
            longitude=lon,
            provider=self.name,
            name=props.get("name") or None,
            address=props.get("description") or None,
        )

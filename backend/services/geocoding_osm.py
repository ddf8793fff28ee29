"""
OpenStreetMap Nominatim search backend.
"""
from __future__ import annotations

from typing import List, Optional, Tuple

import requests

from domain.models import ProviderMode, ResolvedLocation
from services.geocoding import SearchProvider, Throttle, _as_float, bounding_box

NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"
# Nominatim refuses larger limits
NOMINATIM_MAX_LIMIT = 40


class OsmProvider(SearchProvider):
    mode = ProviderMode.OSM

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 5.0,
        throttle: Optional[Throttle] = None,
        base_url: str = NOMINATIM_SEARCH_URL,
    ):
        super().__init__(session, timeout, throttle)
        self.base_url = base_url

    def search(
        self,
        text: str,
        radius: float,
        limit: int,
        locale: str,
        near: Optional[Tuple[float, float]],
    ) -> List[ResolvedLocation]:
        params = {
            "q": text,
            "format": "jsonv2",
            "limit": str(max(1, min(limit, NOMINATIM_MAX_LIMIT))),
        }
        if near is not None:
            south, west, north, east = bounding_box(near, radius)
            params["viewbox"] = f"{west},{north},{east},{south}"
        headers = {"Accept-Language": locale} if locale else {}

        data = self._request_json("GET", self.base_url, params=params, headers=headers)
        if not isinstance(data, list):
            raise self._malformed("search response is not a list")

        results: List[ResolvedLocation] = []
        for item in data:
            loc = self._map_item(item)
            if loc is not None:
                results.append(loc)
        return results

    def _map_item(self, item) -> Optional[ResolvedLocation]:
        if not isinstance(item, dict):
            return None
        lat = _as_float(item.get("lat"))
        lon = _as_float(item.get("lon"))
        if lat is None or lon is None:
            return None
        return ResolvedLocation(
            latitude=lat,
            longitude=lon,
            provider=self.name,
            name=item.get("name") or None,
            address=item.get("display_name") or None,
        )

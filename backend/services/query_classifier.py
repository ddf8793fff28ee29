"""
Query classification: literal coordinates vs. free text.

The result feeds cache fingerprints, so everything here must stay pure and
deterministic.
"""
from __future__ import annotations

import re
from typing import Optional

from domain.models import ClassifiedQuery, Coordinate, SearchText

DEFAULT_SEARCH_RADIUS = 5000.0

_NUMBER = r"[+-]?\d{1,3}(?:\.\d+)?"
COORDS_REGEXP = re.compile(
    rf"^\s*(?P<latitude>{_NUMBER})\s*(?P<lat_dir>[NnSs])?"
    r"(?:\s*,\s*|\s+)"
    rf"(?P<longitude>{_NUMBER})\s*(?P<lon_dir>[EeWw])?\s*$"
)
_WHITESPACE = re.compile(r"\s+")


def _apply_direction(value: str, direction: Optional[str], negative: str) -> Optional[float]:
    if direction and value[0] in "+-":
        # "-40 S" is ambiguous; treat it as text rather than guess
        return None
    number = float(value)
    if direction and direction.upper() == negative:
        number = -number
    return number


def parse_coordinates(raw: str) -> Optional[Coordinate]:
    """Parse `raw` as a coordinate pair, or return None if it isn't one."""
    match = COORDS_REGEXP.match(raw)
    if not match:
        return None
    latitude = _apply_direction(match["latitude"], match["lat_dir"], "S")
    longitude = _apply_direction(match["longitude"], match["lon_dir"], "W")
    if latitude is None or longitude is None:
        return None
    try:
        return Coordinate(latitude=latitude, longitude=longitude)
    except ValueError:
        return None


def normalize_text(raw: str) -> str:
    """Trim and collapse runs of whitespace; casing is preserved."""
    return _WHITESPACE.sub(" ", raw).strip()


def classify(raw: str, radius: float = DEFAULT_SEARCH_RADIUS) -> ClassifiedQuery:
    coordinate = parse_coordinates(raw)
    if coordinate is not None:
        return coordinate
    text = normalize_text(raw)
    return SearchText(text=text, key=text.lower(), radius=radius)

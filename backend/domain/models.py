"""
Core domain models for the location bot.
These are framework-agnostic and can be used across all services.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple, Union


class ProviderMode(str, Enum):
    """Known geocoding backends, used as keys of the provider lookup table."""
    COORDINATES = "coordinates"
    OSM = "osm"
    GOOGLE = "google"
    YANDEX = "yandex"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ProviderMode"]:
        """Return the mode for a (case-insensitive) name, or None if unknown/empty."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class ProviderErrorKind(str, Enum):
    UNAVAILABLE = "unavailable"
    RATE_LIMITED = "rate_limited"
    NO_MATCH = "no_match"
    MALFORMED = "malformed"


class ProviderError(Exception):
    """A geocoding backend could not produce a result."""

    def __init__(self, kind: ProviderErrorKind, provider: str, message: str = ""):
        self.kind = kind
        self.provider = provider
        self.message = message
        super().__init__(f"{provider}: {kind.value}" + (f" ({message})" if message else ""))


@dataclass(frozen=True)
class Query:
    """An incoming request as delivered by the transport layer."""
    raw: str
    identity: str
    result_cap: int = 10


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")


@dataclass(frozen=True)
class SearchText:
    """
    Free-text query after normalization.

    `text` keeps the original casing and is what providers receive;
    `key` is the lower-cased form used for cache fingerprints.
    """
    text: str
    key: str
    radius: float


ClassifiedQuery = Union[Coordinate, SearchText]


@dataclass(frozen=True)
class ResolvedLocation:
    latitude: float
    longitude: float
    provider: str
    name: Optional[str] = None
    address: Optional[str] = None

    @property
    def title(self) -> Optional[str]:
        """Name and address joined the way they are shown on an attachment."""
        if self.name and self.address and not self.address.startswith(self.name):
            return f"{self.name}, {self.address}"
        return self.name or self.address

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "provider": self.provider,
            "name": self.name,
            "address": self.address,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResolvedLocation":
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            provider=str(data.get("provider", "")),
            name=data.get("name"),
            address=data.get("address"),
        )


@dataclass(frozen=True)
class ResolutionResult:
    """Locations in provider rank order, already cut to the requested cap."""
    locations: Tuple[ResolvedLocation, ...] = ()

    @classmethod
    def truncated(cls, locations: Iterable[ResolvedLocation], cap: int) -> "ResolutionResult":
        items = []
        for loc in locations:
            if len(items) >= cap:
                break
            items.append(loc)
        return cls(locations=tuple(items))

    def __len__(self) -> int:
        return len(self.locations)

    def __iter__(self):
        return iter(self.locations)

    def to_list(self) -> list:
        return [loc.to_dict() for loc in self.locations]

    @classmethod
    def from_list(cls, data: Iterable[Dict[str, Any]]) -> "ResolutionResult":
        return cls(locations=tuple(ResolvedLocation.from_dict(item) for item in data))


@dataclass(frozen=True)
class UserPreferences:
    """
    Per-identity settings fetched from the identity service.

    `provider_mode` is None when the user never picked a backend; the pipeline
    then chooses one by locale or configuration. `location` is the user's saved
    position and biases searches towards it.
    """
    identity: str
    locale: str
    provider_mode: Optional[ProviderMode] = None
    location: Optional[Tuple[float, float]] = None
    refreshed_at: float = 0.0


@dataclass
class RateWindow:
    """Request counter for one identity; owned by the rate limiter."""
    count: int
    started_at: float


@dataclass(frozen=True)
class Admitted:
    pass


@dataclass(frozen=True)
class Rejected:
    retry_after: float


Admission = Union[Admitted, Rejected]


@dataclass(frozen=True)
class Resolved:
    result: ResolutionResult = field(default_factory=ResolutionResult)


@dataclass(frozen=True)
class RateLimited:
    retry_after: float


@dataclass(frozen=True)
class ResolutionFailed:
    reason: str


Outcome = Union[Resolved, RateLimited, ResolutionFailed]

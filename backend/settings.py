import logging
import os

# Basic settings helper to read environment configuration.

logger = logging.getLogger(__name__)


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError:
        logger.error("Invalid value of %s: %r, using %s", name, val, default)
        return default


def _as_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError:
        logger.error("Invalid value of %s: %r, using %s", name, val, default)
        return default


def _as_mapping(val: str | None) -> dict[str, str]:
    """Parse 'ru:yandex,uk:yandex' into {'ru': 'yandex', 'uk': 'yandex'}."""
    result: dict[str, str] = {}
    if not val:
        return result
    for pair in val.split(","):
        if ":" not in pair:
            continue
        key, value = pair.split(":", 1)
        if key.strip() and value.strip():
            result[key.strip().lower()] = value.strip().lower()
    return result


class Settings:
    def __init__(self) -> None:
        # Application-tier cache and result bounds
        self.CACHE_TIME: int = _as_int("CACHE_TIME", 300)
        self.MSG_LOC_LIMIT: int = _as_int("MSG_LOC_LIMIT", 10)
        self.SEARCH_RADIUS_METERS: float = _as_float("SEARCH_RADIUS_METERS", 5000.0)
        self.RESULT_CACHE_PATH: str | None = os.getenv("RESULT_CACHE_PATH") or None
        self.HTTP_CACHE_DIR: str | None = os.getenv("HTTP_CACHE_DIR") or None

        # Rate limiting
        self.REQUESTS_LIMITER_MAX_ALLOWED: int = _as_int("REQUESTS_LIMITER_MAX_ALLOWED", 10)
        self.REQUESTS_LIMITER_TIMEFRAME: int = _as_int("REQUESTS_LIMITER_TIMEFRAME", 60)

        # Identity service
        self.GRPC_ADDR_USER_SERVICE: str | None = os.getenv("GRPC_ADDR_USER_SERVICE") or None
        self.USER_CACHE_TIME_SECS: int = _as_int("USER_CACHE_TIME_SECS", 360)
        self.CACHE_CLEAN_UP_INTERVAL_SECS: int = _as_int("CACHE_CLEAN_UP_INTERVAL_SECS", 3600)
        self.RPC_TIMEOUT_SECS: float = _as_float("RPC_TIMEOUT_SECS", 2.0)

        # Provider selection
        self.DEFAULT_PROVIDER_MODE: str = (os.getenv("DEFAULT_PROVIDER_MODE") or "osm").lower()
        self.FALLBACK_PROVIDER: str | None = (os.getenv("FALLBACK_PROVIDER") or "").lower() or None
        self.REGIONAL_PROVIDERS: dict[str, str] = _as_mapping(os.getenv("REGIONAL_PROVIDERS"))
        self.DEFAULT_LOCALE: str = os.getenv("DEFAULT_LOCALE") or "en"
        self.PROVIDER_TIMEOUT_SECS: float = _as_float("PROVIDER_TIMEOUT_SECS", 5.0)

        # Provider credentials and modes
        self.GOOGLE_MAPS_API_KEY: str | None = os.getenv("GOOGLE_MAPS_API_KEY") or None
        self.GAPI_MODE: str = os.getenv("GAPI_MODE") or "GeoText"
        self.YANDEX_MAPS_GEOCODER_API_KEY: str | None = os.getenv("YANDEX_MAPS_GEOCODER_API_KEY") or None
        self.YANDEX_MAPS_PLACES_API_KEY: str | None = os.getenv("YANDEX_MAPS_PLACES_API_KEY") or None
        self.YAPI_MODE: str = os.getenv("YAPI_MODE") or "Geocode"
        self.NOMINATIM_USER_AGENT: str | None = os.getenv("NOMINATIM_USER_AGENT") or None
        self.NOMINATIM_MIN_INTERVAL: float = _as_float("NOMINATIM_MIN_INTERVAL", 1.1)
        self.REVERSE_GEOCODING_ENABLED: bool = _as_bool(os.getenv("REVERSE_GEOCODING_ENABLED"), False)

        self.LOG_LEVEL: str = (os.getenv("LOG_LEVEL") or "INFO").upper()


settings = Settings()

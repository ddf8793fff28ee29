"""
FastAPI application entry point.

Run with: uvicorn api.main:app --reload
"""
import logging
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from fastapi import FastAPI

# Load environment variables from backend/.env (optional) before other imports that read env
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(env_path)

from api.routes import locations
from domain.models import ProviderMode
from services.geocoding_factory import build_providers, parse_regional
from services.rate_limiter import RequestsLimiter
from services.resolution_pipeline import ResolutionPipeline
from services.result_cache import ResultCache
from services.result_cache_sqlite import SqliteResultStore
from services.ttl_cache import PeriodicSweeper
from services.user_preferences import UserPreferencesClient
from services.user_service_grpc import GrpcUserService
from settings import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _mode(name: str, fallback: ProviderMode) -> ProviderMode:
    mode = ProviderMode.parse(name)
    if mode is None:
        logger.error("Unknown provider mode %r, using %s", name, fallback.value)
        return fallback
    return mode


def build_pipeline(cfg) -> ResolutionPipeline:
    """Wire every component from configuration; called once at startup."""
    store = SqliteResultStore(cfg.RESULT_CACHE_PATH) if cfg.RESULT_CACHE_PATH else None
    cache = ResultCache(store=store, ttl=cfg.CACHE_TIME)

    remote = None
    if cfg.GRPC_ADDR_USER_SERVICE:
        remote = GrpcUserService(cfg.GRPC_ADDR_USER_SERVICE, timeout=cfg.RPC_TIMEOUT_SECS)
    preferences = UserPreferencesClient(
        remote,
        ttl=cfg.USER_CACHE_TIME_SECS,
        sweep_interval=cfg.CACHE_CLEAN_UP_INTERVAL_SECS,
        default_locale=cfg.DEFAULT_LOCALE,
        timeout=cfg.RPC_TIMEOUT_SECS,
    )

    fallback = ProviderMode.parse(cfg.FALLBACK_PROVIDER) if cfg.FALLBACK_PROVIDER else None
    return ResolutionPipeline(
        limiter=RequestsLimiter(cfg.REQUESTS_LIMITER_MAX_ALLOWED, cfg.REQUESTS_LIMITER_TIMEFRAME),
        cache=cache,
        preferences=preferences,
        providers=build_providers(cfg),
        default_mode=_mode(cfg.DEFAULT_PROVIDER_MODE, ProviderMode.OSM),
        fallback_mode=fallback,
        regional_providers=parse_regional(cfg.REGIONAL_PROVIDERS),
        search_radius=cfg.SEARCH_RADIUS_METERS,
        max_results=cfg.MSG_LOC_LIMIT,
    )


# Create app
app = FastAPI(
    title="Location Resolver API",
    description="Resolves coordinates and place names into shareable locations",
    version="0.1.0",
)

# Include routers
app.include_router(locations.router, tags=["locations"])


@app.on_event("startup")
async def startup_event():
    """Build the pipeline and start background cache sweeps."""
    pipeline = build_pipeline(settings)
    app.state.pipeline = pipeline
    await pipeline.preferences.start()

    sweeps: List = [pipeline.cache.sweep, pipeline.limiter.sweep]
    sweeper = PeriodicSweeper(settings.CACHE_CLEAN_UP_INTERVAL_SECS, sweeps, name="resolver")
    sweeper.start()
    app.state.sweeper = sweeper


@app.on_event("shutdown")
async def shutdown_event():
    sweeper = getattr(app.state, "sweeper", None)
    if sweeper is not None:
        await sweeper.stop()
    pipeline = getattr(app.state, "pipeline", None)
    if pipeline is not None:
        await pipeline.preferences.close()
        pipeline.cache.close()


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Location Resolver API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}

"""
Location resolution API routes.

The HTTP surface stands in for the chat transport: it hands a query to the
pipeline and renders the outcome.
"""
import logging
import math
from typing import List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from domain.models import Query, RateLimited, ResolutionFailed, ResolvedLocation

router = APIRouter()
logger = logging.getLogger(__name__)


class ResolveRequest(BaseModel):
    query: str
    identity: str
    result_cap: int = Field(default=10, ge=1)


class LocationResponse(BaseModel):
    latitude: float
    longitude: float
    provider: str
    name: Optional[str] = None
    address: Optional[str] = None
    title: Optional[str] = None


class ResolveResponse(BaseModel):
    status: str = "resolved"
    locations: List[LocationResponse]


def location_to_response(loc: ResolvedLocation) -> LocationResponse:
    return LocationResponse(
        latitude=loc.latitude,
        longitude=loc.longitude,
        provider=loc.provider,
        name=loc.name,
        address=loc.address,
        title=loc.title,
    )


@router.post("/resolve", response_model=ResolveResponse)
async def resolve_location(payload: ResolveRequest, request: Request):
    """Resolve coordinates or a place name into ranked locations."""
    pipeline = request.app.state.pipeline
    outcome = await pipeline.resolve(
        Query(raw=payload.query, identity=payload.identity, result_cap=payload.result_cap)
    )

    if isinstance(outcome, RateLimited):
        return JSONResponse(
            status_code=429,
            content={"status": "rate_limited", "retry_after": outcome.retry_after},
            headers={"Retry-After": str(max(1, math.ceil(outcome.retry_after)))},
        )
    if isinstance(outcome, ResolutionFailed):
        return JSONResponse(
            status_code=502,
            content={"status": "failed", "reason": outcome.reason},
        )
    return ResolveResponse(locations=[location_to_response(loc) for loc in outcome.result])

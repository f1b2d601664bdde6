import logging
import uuid
import zlib
from datetime import datetime, timezone
from typing import Optional, Tuple

import numpy as np
from fastapi import FastAPI, HTTPException, Query, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

from . import config
from .location_service import Coordinate, Location, find_nearest_with_distance, get_catalog
from .tide_service import (
    format_countdown,
    generate_tides,
    get_tide_status,
    get_timezone,
    get_upcoming_tides,
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        return response


app = FastAPI(
    title="Coast Tides API",
    description="Nearest-coast lookup, coastal search and approximate tide tables for the Indian coastline",
    version="1.0.0",
)

# Set up rate limiter
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

catalog = get_catalog()


def _parse_datetime(value: str, field: str) -> datetime:
    """Parse an ISO 8601 string, assuming UTC when no offset is given."""
    # fromisoformat only accepts a trailing 'Z' from Python 3.11
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(400, f"Invalid {field} format. Please use ISO 8601 format (YYYY-MM-DD)")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _resolve_location(
    location_id: Optional[str],
    lat: Optional[float],
    lon: Optional[float],
) -> Tuple[Location, Optional[float]]:
    """
    Pick the location a tide request refers to.

    An explicit ``location_id`` wins; otherwise the coordinates are resolved
    to the nearest catalog location.

    Returns:
        Tuple of (location, distance in km or None when looked up by id)
    """
    if location_id is not None:
        location = catalog.by_id(location_id)
        if location is None:
            raise HTTPException(404, f"Unknown location: {location_id}")
        return location, None

    if lat is None or lon is None:
        raise HTTPException(400, "Provide either location_id or both lat and lon")

    return find_nearest_with_distance(Coordinate(lat, lon), catalog.all())


def _generate(
    location: Location,
    days: int,
    date: Optional[str],
    seed: Optional[int],
    at: Optional[datetime] = None,
):
    """
    Build the tide table a request refers to.

    Without a date the table starts on the local day of ``at`` (or today),
    so a status query always lands inside its own table. Without a seed the
    table is seeded from the location and start day, so repeated polls for
    the same place and day see the same tides.
    """
    if date:
        reference_date = _parse_datetime(date, "date").date()
    else:
        at = at or datetime.now(timezone.utc)
        reference_date = at.astimezone(get_timezone(location.timezone)).date()

    if seed is None:
        seed = config.RANDOM_SEED
    if seed is None:
        seed = [zlib.crc32(location.id.encode("utf-8")), reference_date.toordinal()]

    return generate_tides(
        location,
        reference_date=reference_date,
        horizon_days=days,
        rng=np.random.default_rng(seed),
    )


@app.get("/api/v1/locations")
@limiter.limit(config.RATE_LIMIT)
async def search_locations(
    request: Request,
    q: str = Query("", description="Text to match against name, region or description"),
):
    """
    Search coastal locations.

    Matching is case-insensitive and results keep catalog order.
    An empty query returns every location.
    """
    return [location.to_dict() for location in catalog.search(q)]


@app.get("/api/v1/locations/nearest")
@limiter.limit(config.RATE_LIMIT)
async def get_nearest_location(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, description="Latitude in degrees"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude in degrees"),
):
    """Find the catalog location closest to a coordinate."""
    try:
        location, distance = find_nearest_with_distance(Coordinate(lat, lon), catalog.all())
        return {"location": location.to_dict(), "distance_km": round(distance, 3)}
    except ValueError as e:
        raise HTTPException(400, detail=str(e))


@app.get("/api/v1/locations/{location_id}")
@limiter.limit(config.RATE_LIMIT)
async def get_location(request: Request, location_id: str):
    """Get a single location by id."""
    location = catalog.by_id(location_id)
    if location is None:
        raise HTTPException(404, f"Unknown location: {location_id}")
    return location.to_dict()


@app.get("/api/v1/tides")
@limiter.limit(config.RATE_LIMIT)
async def get_tides(
    request: Request,
    location_id: Optional[str] = Query(None, description="Catalog location id"),
    lat: Optional[float] = Query(None, ge=-90, le=90, description="Latitude in degrees"),
    lon: Optional[float] = Query(None, ge=-180, le=180, description="Longitude in degrees"),
    days: int = Query(
        config.HORIZON_DAYS, ge=1, le=config.MAX_HORIZON_DAYS, description="Number of days to generate"
    ),
    date: Optional[str] = Query(
        None,
        description="Optional start date (YYYY-MM-DD). If not provided, today at the location is used.",
    ),
    seed: Optional[int] = Query(None, ge=0, description="Optional random seed for a reproducible table"),
):
    """
    Get the tide table for a location.

    The location is given either by `location_id` or by `lat`/`lon`, in which
    case the nearest catalog location is used. Returns four events per day
    (two highs, two lows) sorted by time, with times in the location's zone.
    """
    try:
        location, _ = _resolve_location(location_id, lat, lon)
        tides = _generate(location, days, date, seed)
        return [tide.to_dict() for tide in tides]
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        error_id = uuid.uuid4().hex[:8]
        logger.exception(f"Error {error_id} in get_tides")
        raise HTTPException(500, detail=f"Internal error (ref: {error_id})")


@app.get("/api/v1/tides/status")
@limiter.limit(config.RATE_LIMIT)
async def get_status(
    request: Request,
    location_id: Optional[str] = Query(None, description="Catalog location id"),
    lat: Optional[float] = Query(None, ge=-90, le=90, description="Latitude in degrees"),
    lon: Optional[float] = Query(None, ge=-180, le=180, description="Longitude in degrees"),
    days: int = Query(
        config.HORIZON_DAYS, ge=1, le=config.MAX_HORIZON_DAYS, description="Number of days to generate"
    ),
    date: Optional[str] = Query(
        None,
        description="Optional start date (YYYY-MM-DD). If not provided, today at the location is used.",
    ),
    seed: Optional[int] = Query(None, ge=0, description="Optional random seed for a reproducible table"),
    now: Optional[str] = Query(
        None,
        description="Optional instant to evaluate at (ISO 8601). If not provided, the current time is used.",
    ),
):
    """
    Get the live tide status for a location.

    Includes whether the tide is rising or falling, the previous and next
    events, the time remaining until the next event and the percentage of
    the way between them. Clients are expected to poll this endpoint.
    """
    try:
        location, distance = _resolve_location(location_id, lat, lon)
        at = _parse_datetime(now, "now") if now else datetime.now(timezone.utc)
        tides = _generate(location, days, date, seed, at)
        status = get_tide_status(tides, at)

        return {
            "location": location.to_dict(),
            "distance_km": round(distance, 3) if distance is not None else None,
            "datetime": at.isoformat(),
            "direction": status.direction.value,
            "previous": status.previous_tide.to_dict() if status.previous_tide else None,
            "next": status.next_tide.to_dict() if status.next_tide else None,
            "time_to_next_seconds": int(status.time_to_next.total_seconds()),
            "countdown": format_countdown(status.time_to_next),
            "progress": round(status.progress(at), 1),
            "upcoming": [tide.to_dict() for tide in get_upcoming_tides(tides, at, config.UPCOMING_LIMIT)],
        }
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        error_id = uuid.uuid4().hex[:8]
        logger.exception(f"Error {error_id} in get_status")
        raise HTTPException(500, detail=f"Internal error (ref: {error_id})")


@app.get("/health")
async def health():
    return {"status": "healthy", "locations": len(catalog)}

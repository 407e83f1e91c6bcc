import logging
import uuid
from datetime import datetime
from typing import Literal, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from .config import EngineSettings
from .models import Coordinate
from .tide_service import TideEngine
from .timeutils import normalize_timestamp

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        return response


settings = EngineSettings.from_env()
logging.getLogger("tide_engine").setLevel(settings.log_level)

app = FastAPI(
    title="Tide Estimation API",
    description="Tide estimates and calculation diagnostics for fishing-log records",
    version="1.0.0",
)

# Set up rate limiter
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

# One engine per process; it owns the diagnostics cache
tide_engine = TideEngine(settings)


def _parse_date(date: Optional[str]) -> Optional[datetime]:
    if not date:
        return None
    start_date = normalize_timestamp(date)
    if start_date is None:
        raise HTTPException(
            400, "Invalid date format. Please use ISO 8601 format (YYYY-MM-DD)"
        )
    return start_date


@app.get("/api/v1/tide")
async def get_tide(
    lat: float = Query(..., ge=-90, le=90, description="Latitude in degrees"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude in degrees"),
    date: Optional[str] = Query(
        None,
        description="Optional query time (ISO 8601). If not provided, the current time is used.",
    ),
    timezone_str: Optional[str] = Query(
        None,
        alias="timezone",
        description="Optional IANA timezone for the returned times. Auto-detected from the coordinates if not provided.",
    ),
):
    """
    Get the estimated tidal state at a location.

    Returns the tide type (大潮, 中潮, 若潮, 小潮 or 長潮), current height and
    state, next high and low tides, tide range, strength and moon phase.

    All times are returned in ISO 8601 format with local timezone.
    """
    try:
        query_time = _parse_date(date)
        tz = tide_engine.get_timezone(lat, lon, timezone_str)
        estimate = tide_engine.estimate_tide(Coordinate(lat, lon), query_time)
        return estimate.to_dict(tz)
    except HTTPException:
        raise
    except Exception:
        error_id = uuid.uuid4().hex[:8]
        logger.exception(f"Error {error_id} in get_tide")
        raise HTTPException(500, detail=f"Internal error (ref: {error_id})")


@app.get("/api/v1/tide/curve")
async def get_tide_curve(
    lat: float = Query(..., ge=-90, le=90, description="Latitude in degrees"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude in degrees"),
    date: Optional[str] = Query(
        None,
        description="Optional start date (YYYY-MM-DD). A date without a time starts at local midnight.",
    ),
    hours: int = Query(24, ge=1, le=168, description="Curve length in hours (1-168)"),
    interval: Literal["10", "15", "30", "60"] = Query(
        "30",
        description="Interval in minutes between readings (10, 15, 30 or 60).",
    ),
):
    """
    Get tide heights at regular intervals with high/low labels.

    Points that correspond to high or low tides have a `type` field set to
    "high" or "low".
    """
    try:
        tz = tide_engine.get_timezone(lat, lon)
        start_time = _parse_date(date)
        if start_time is not None and date is not None and len(date) == 10:
            # Date only: start at local midnight
            start_time = datetime(start_time.year, start_time.month, start_time.day, tzinfo=tz)
        return tide_engine.tide_curve(
            Coordinate(lat, lon),
            start_time,
            hours=hours,
            interval_minutes=int(interval),
            tz=tz,
        )
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        error_id = uuid.uuid4().hex[:8]
        logger.exception(f"Error {error_id} in get_tide_curve")
        raise HTTPException(500, detail=f"Internal error (ref: {error_id})")


@app.get("/api/v1/diagnostics")
async def get_diagnostics(
    id: Optional[str] = Query(None, description="Fishing record id"),
    lat: Optional[float] = Query(None, description="Latitude in degrees (not range-checked)"),
    lon: Optional[float] = Query(None, description="Longitude in degrees (not range-checked)"),
    date: Optional[str] = Query(None, description="Record date (ISO 8601)"),
):
    """
    Get the calculation diagnostics for a fishing record.

    Inputs are passed through as they are, so a missing or out-of-range
    coordinate or an unparsable date shows up as a data integrity issue in the
    report instead of a validation error.
    """
    coordinates = None
    if lat is not None and lon is not None:
        coordinates = {"latitude": lat, "longitude": lon}
    report = tide_engine.collect_diagnostics({"id": id, "coordinates": coordinates, "date": date})
    return report.to_dict()


@app.delete("/api/v1/diagnostics/cache")
@limiter.limit("10/minute")
async def clear_diagnostics_cache(request: Request):
    """
    Drop all cached diagnostics reports.

    Rate limited to 10 requests per minute per IP.
    """
    tide_engine.clear_diagnostics_cache()
    return {"status": "cleared", "cache": tide_engine.cache_stats()}


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "model": "harmonic-7 (M2 S2 N2 K1 O1 P1 Q1)",
        "cache": tide_engine.cache_stats(),
    }

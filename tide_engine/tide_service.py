"""
Tide Estimation Engine

Turns a (latitude, longitude, timestamp) triple into an estimated tidal
state using a simplified seven-constituent harmonic model:

1. Base constituents (deployment-wide table)
2. Coordinate and seasonal variation factors
3. Composed ("final") constituents
4. Curve sampling, next high/low tides and tide range
5. Tide type from the spring-neap amplitude ratio at the current moon age

The engine also owns the diagnostics subsystem and its bounded cache. Create
one engine per process and share it.

Note: This is a deterministic, explainable approximation for a fishing log,
not an oceanographic prediction. There is no constituent database and no
bathymetry; every location is modeled as a perturbation of Tokyo Bay.
"""
import logging
import tracemalloc
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from timezonefinder import TimezoneFinder

from .composer import compose_constituents
from .config import EngineSettings
from .diagnostics import DiagnosticsEngine
from .harmonic_model import base_constituents
from .models import Coordinate, DebugReport, TideEstimate
from .moon_phase import calculate_moon_phase, moon_age
from .tide_curve import (
    LEAD_STEPS,
    TideCalculationError,
    amplitude_ratio,
    classify_tide,
    determine_current_state,
    extract_curve,
    find_extrema,
    sample_curve,
    tide_strength,
)
from .timeutils import normalize_timestamp
from .variation import calculate_coordinate_factors, calculate_seasonal_factors

logger = logging.getLogger(__name__)

CURVE_INTERVALS = (10, 15, 30, 60)
MAX_CURVE_HOURS = 168


class TideEngine:
    """
    Tide estimation and diagnostics for fishing-log records.

    Both ``estimate_tide`` and ``collect_diagnostics`` are total: internal
    faults are logged and turned into an "unavailable" estimate or the empty
    debug report.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        """
        Initialize the engine.

        Args:
            settings: Engine parameters; defaults when omitted
        """
        self.settings = settings or EngineSettings()
        self._base = base_constituents()
        self._diagnostics = DiagnosticsEngine(cache_size=self.settings.cache_size)

        # TimezoneFinder loads its data on first use
        self._tz_finder: Optional[TimezoneFinder] = None

        if self.settings.trace_memory and not tracemalloc.is_tracing():
            tracemalloc.start()

    def get_timezone(self, lat: float, lon: float, timezone_str: Optional[str] = None) -> ZoneInfo:
        """
        Get timezone for coordinates, with auto-detection if not specified.

        Args:
            lat: Latitude in degrees
            lon: Longitude in degrees
            timezone_str: Optional timezone string (e.g., 'Asia/Tokyo')

        Returns:
            ZoneInfo object for the timezone (UTC when unknown)
        """
        if timezone_str is None:
            if Coordinate(lat, lon).is_valid():
                if self._tz_finder is None:
                    self._tz_finder = TimezoneFinder()
                timezone_str = self._tz_finder.timezone_at(lat=lat, lng=lon)
            if timezone_str is None:
                timezone_str = 'UTC'
        try:
            return ZoneInfo(timezone_str)
        except (ValueError, KeyError):
            return ZoneInfo('UTC')

    def estimate_tide(self, coordinate: Any = None, timestamp: Any = None) -> TideEstimate:
        """
        Estimate the tidal state at a position and time.

        Args:
            coordinate: Coordinate, mapping or (lat, lon) pair; None applies no
                geographic correction
            timestamp: datetime, date, ISO 8601 string or epoch seconds; None
                means now

        Returns:
            TideEstimate. ``degraded`` is set when an input had to be replaced
            (unparsable date, invalid coordinate) or the calculation failed.
        """
        calculated_at = datetime.now(timezone.utc)
        degraded = False

        query_time = calculated_at
        if timestamp is not None:
            normalized = normalize_timestamp(timestamp)
            if normalized is None:
                logger.warning(f"Unparsable timestamp {timestamp!r}, using current time")
                degraded = True
            else:
                query_time = normalized

        coord = Coordinate.from_value(coordinate)
        if coordinate is not None and (coord is None or not coord.is_valid()):
            logger.warning(f"Invalid coordinate {coordinate!r}, ignoring geographic correction")
            coord = None
            degraded = True

        try:
            estimate = self._estimate(coord, query_time, calculated_at)
        except Exception:
            error_id = uuid.uuid4().hex[:8]
            logger.exception(f"Error {error_id} estimating tide at {query_time.isoformat()}")
            return TideEstimate(
                tide_type=None,
                current_height=0.0,
                next_high_tide=None,
                next_low_tide=None,
                tide_range=0.0,
                moon_phase=None,
                calculated_at=calculated_at,
                query_time=query_time,
                events=[],
                degraded=True,
            )

        estimate.degraded = degraded
        return estimate

    def _estimate(
        self,
        coordinate: Optional[Coordinate],
        query_time: datetime,
        calculated_at: datetime
    ) -> TideEstimate:
        coordinate_factors = calculate_coordinate_factors(coordinate)
        seasonal_factors = calculate_seasonal_factors(query_time)
        final = compose_constituents(self._base, coordinate_factors, seasonal_factors)
        if not final.is_finite():
            raise TideCalculationError("Composed constituents are not finite")

        logger.debug(
            f"Composed constituents for {query_time.isoformat()}: "
            f"geographic={coordinate_factors.geographic_correction:.3f} "
            f"solar={seasonal_factors.solar_correction_factor:.3f}"
        )

        curve = extract_curve(
            final,
            query_time,
            window_hours=self.settings.window_hours,
            step_minutes=self.settings.step_minutes,
            max_retries=self.settings.max_window_retries,
        )

        ratio = amplitude_ratio(final, self._base, moon_age(query_time))

        return TideEstimate(
            tide_type=classify_tide(ratio),
            current_height=curve.current_height,
            next_high_tide=curve.next_high_tide,
            next_low_tide=curve.next_low_tide,
            tide_range=curve.tide_range,
            moon_phase=calculate_moon_phase(query_time),
            calculated_at=calculated_at,
            query_time=query_time,
            current_state=determine_current_state(
                query_time, curve.next_high_tide, curve.next_low_tide, self.settings.step_minutes
            ),
            tide_strength=tide_strength(ratio, self._base),
            events=curve.events,
        )

    def tide_curve(
        self,
        coordinate: Any,
        timestamp: Any = None,
        hours: int = 24,
        interval_minutes: int = 30,
        tz: Optional[ZoneInfo] = None
    ) -> List[Dict]:
        """
        Get tide heights at regular intervals (tide curve data), with the
        high/low events of the same curve at their exact times.

        Args:
            coordinate: Coordinate, mapping or (lat, lon) pair
            timestamp: Start of the curve; None means now
            hours: Curve length (1-168)
            interval_minutes: Time between readings (10, 15, 30 or 60)
            tz: Timezone used to render datetimes (UTC when omitted)

        Returns:
            Time-sorted list of dictionaries with ``datetime`` and ``height``
            keys; high/low events also carry a ``type`` key

        Raises:
            ValueError: Invalid coordinate, timestamp, length or interval
        """
        if interval_minutes not in CURVE_INTERVALS:
            raise ValueError(f"interval_minutes must be one of {', '.join(map(str, CURVE_INTERVALS))}")
        if not 1 <= hours <= MAX_CURVE_HOURS:
            raise ValueError(f"hours must be between 1 and {MAX_CURVE_HOURS}")

        coord = Coordinate.from_value(coordinate)
        if coord is None or not coord.is_valid():
            raise ValueError(f"Invalid coordinate: {coordinate!r}")

        if timestamp is None:
            start_time = datetime.now(timezone.utc).replace(second=0, microsecond=0)
        else:
            start_time = normalize_timestamp(timestamp)
            if start_time is None:
                raise ValueError(f"Invalid timestamp: {timestamp!r}")

        tz = tz or timezone.utc
        final = compose_constituents(
            self._base,
            calculate_coordinate_factors(coord),
            calculate_seasonal_factors(start_time),
        )

        offsets, heights = sample_curve(final, start_time, hours, interval_minutes)

        readings = []
        for offset, height in zip(offsets, heights):
            dt = start_time + timedelta(hours=float(offset))
            readings.append((dt, {
                'datetime': dt.astimezone(tz).replace(microsecond=0).isoformat(),
                'height': round(float(height), 3),
            }))

        # Events come from a finer curve, padded on both sides, so their timing does
        # not depend on the display interval and extrema at the edges are kept
        step = min(interval_minutes, self.settings.step_minutes)
        lead = timedelta(minutes=LEAD_STEPS * step)
        fine_start = start_time - lead
        end_time = start_time + timedelta(hours=hours)
        fine_offsets, fine_heights = sample_curve(final, fine_start, hours + 2 * lead.total_seconds() / 3600, step)
        events = [
            (event.time, event.to_dict(tz))
            for event in find_extrema(fine_heights, fine_offsets, fine_start)
            if start_time <= event.time <= end_time
        ]

        combined = sorted(readings + events, key=lambda pair: pair[0])
        return [item for _, item in combined]

    def collect_diagnostics(self, record: Any) -> DebugReport:
        """
        Debug report for a fishing record (never raises).

        Args:
            record: FishingRecord or mapping with ``id``, ``coordinates`` and ``date``
        """
        return self._diagnostics.collect(record)

    def clear_diagnostics_cache(self) -> None:
        """Drop all cached debug reports; later calls recompute."""
        self._diagnostics.clear_cache()

    def cache_stats(self) -> Dict[str, Any]:
        """Size, capacity, hits, misses and hit rate of the diagnostics cache."""
        return self._diagnostics.cache.stats()

    def cached_keys(self) -> List[str]:
        """Keys currently in the diagnostics cache, oldest first."""
        return self._diagnostics.cache.keys()

"""
Diagnostics and quality engine.

For a fishing record, re-derives the constituents used by the tide estimate
(base, coordinate factors, seasonal factors, final) and attaches timing,
memory, integrity, accuracy and warning metadata. Reports are cached per
rounded coordinate and UTC date in a bounded FIFO cache.

Collection never raises: any failure produces the empty report.
"""
import copy
import logging
import threading
import time
import tracemalloc
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from .composer import compose_constituents
from .harmonic_model import base_constituents
from .models import (
    CalculationDetails,
    Coordinate,
    CoordinateVariationFactors,
    DebugReport,
    FishingRecord,
    HarmonicConstituents,
    PerformanceMetrics,
    QualityAssessment,
    SeasonalVariationFactors,
)
from .tide_curve import TideCalculationError
from .timeutils import normalize_timestamp
from .variation import calculate_coordinate_factors, calculate_seasonal_factors

logger = logging.getLogger(__name__)

FAR_DISTANCE_KM = 500.0
SEASONAL_WARNING_THRESHOLD = 0.08

WARNING_FAR_FROM_REFERENCE = 'Location is far from reference point (>500km). Results may be less accurate.'
WARNING_SEASONAL_VARIATION = 'Significant seasonal variation detected. Consider seasonal adjustment.'
WARNING_DATA_INTEGRITY = 'Data integrity issues detected. Please verify input data.'
WARNING_COLLECTION_FAILED = 'Failed to collect debug information'

# (upper bound of mean relative deviation, score)
ACCURACY_THRESHOLDS = (
    (0.10, 0.95),
    (0.15, 0.90),
    (0.20, 0.85),
    (0.30, 0.75),
)
LOWEST_ACCURACY = 0.60
ACCURACY_CONSTITUENTS = ('M2', 'S2', 'K1', 'O1')


class DiagnosticsCache:
    """
    Bounded report cache with oldest-first eviction.

    Entries are stored and returned as deep copies so callers can never
    mutate a cached report. All access goes through one lock.
    """

    def __init__(self, capacity: int = 20):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: Dict[str, DebugReport] = {}
        self._order: Deque[str] = deque()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[DebugReport]:
        """Return a copy of the cached report (marked ``from_cache``) or None."""
        with self._lock:
            report = self._entries.get(key)
            if report is None:
                self._misses += 1
                return None
            self._hits += 1
            hit = copy.deepcopy(report)
        hit.performance.from_cache = True
        return hit

    def put(self, key: str, report: DebugReport) -> None:
        """Store a copy of ``report``, evicting the oldest entry when full."""
        stored = copy.deepcopy(report)
        stored.performance.from_cache = False
        with self._lock:
            if key in self._entries:
                self._entries[key] = stored
                return
            while len(self._order) >= self.capacity:
                evicted = self._order.popleft()
                del self._entries[evicted]
                logger.debug(f"Evicted diagnostics cache entry {evicted}")
            self._order.append(key)
            self._entries[key] = stored

    def clear(self) -> None:
        """Drop all entries and reset the hit/miss counters."""
        with self._lock:
            self._entries.clear()
            self._order.clear()
            self._hits = 0
            self._misses = 0

    def hit_rate(self) -> float:
        """Hits as a percentage of lookups (0 before the first lookup)."""
        with self._lock:
            lookups = self._hits + self._misses
            return self._hits / lookups * 100.0 if lookups else 0.0

    def keys(self) -> List[str]:
        """Cached keys, oldest first."""
        with self._lock:
            return list(self._order)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                'size': len(self._order),
                'capacity': self.capacity,
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate_percent': round(self._hits / lookups * 100.0, 1) if lookups else 0.0,
            }

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._order)


def make_cache_key(coordinate: Optional[Coordinate], timestamp: Optional[datetime]) -> Optional[str]:
    """
    Cache key: coordinate rounded to 3 decimals plus the UTC date.

    Returns:
        ``"lat,lon@YYYY-MM-DD"``, or None when the record cannot be cached
        (no coordinate or no usable date)
    """
    if coordinate is None or timestamp is None:
        return None
    lat = round(coordinate.latitude, 3)
    lon = round(coordinate.longitude, 3)
    return f"{lat},{lon}@{timestamp.date().isoformat()}"


def validate_data_integrity(record: FishingRecord, timestamp: Optional[datetime]) -> bool:
    """
    Check the fields the estimate depends on.

    Fails when the id or coordinate is missing, the coordinate is out of
    range, or the date is missing or unparsable.
    """
    if not record.id:
        return False
    if record.coordinates is None or not record.coordinates.is_valid():
        return False
    return timestamp is not None


def calculate_accuracy_score(base: HarmonicConstituents, final: HarmonicConstituents) -> float:
    """
    Score how far the final constituents drifted from the base ones.

    Args:
        base: Base constituents
        final: Composed constituents

    Returns:
        0.95 for a mean relative deviation under 10%, down to 0.60 at 30% and
        above; 0.0 when no constituent has a non-zero base amplitude
    """
    deviations = []
    for name in ACCURACY_CONSTITUENTS:
        base_value = getattr(base, name)
        if base_value == 0:
            continue
        deviations.append(abs(getattr(final, name) - base_value) / base_value)

    if not deviations:
        return 0.0

    mean_deviation = sum(deviations) / len(deviations)
    for upper_bound, score in ACCURACY_THRESHOLDS:
        if mean_deviation < upper_bound:
            return score
    return LOWEST_ACCURACY


def generate_warnings(
    coordinate_factors: CoordinateVariationFactors,
    seasonal_factors: SeasonalVariationFactors,
    data_integrity: bool
) -> List[str]:
    """Warnings in fixed order: distance, seasonal, integrity."""
    warnings = []
    if coordinate_factors.distance_from_reference > FAR_DISTANCE_KM:
        warnings.append(WARNING_FAR_FROM_REFERENCE)
    if abs(seasonal_factors.monthly_correction) > SEASONAL_WARNING_THRESHOLD:
        warnings.append(WARNING_SEASONAL_VARIATION)
    if not data_integrity:
        warnings.append(WARNING_DATA_INTEGRITY)
    return warnings


def create_empty_report() -> DebugReport:
    """Zeroed report returned when collection fails."""
    return DebugReport(
        calculation=CalculationDetails(
            base=HarmonicConstituents(),
            coordinate_factors=CoordinateVariationFactors(),
            seasonal_factors=SeasonalVariationFactors(),
            final=HarmonicConstituents(),
        ),
        performance=PerformanceMetrics(),
        quality=QualityAssessment(
            data_integrity=False,
            calculation_accuracy=0.0,
            warnings=[WARNING_COLLECTION_FAILED],
        ),
    )


def _traced_memory() -> Optional[int]:
    if not tracemalloc.is_tracing():
        return None
    current, _peak = tracemalloc.get_traced_memory()
    return current


class DiagnosticsEngine:
    """Builds, scores and caches debug reports for fishing records."""

    def __init__(self, cache_size: int = 20):
        self.cache = DiagnosticsCache(cache_size)

    def collect(self, record: Any) -> DebugReport:
        """
        Debug report for a record.

        Args:
            record: FishingRecord or mapping with ``id``, ``coordinates`` and ``date``

        Returns:
            DebugReport; the empty report when anything goes wrong
        """
        try:
            return self._collect(FishingRecord.from_value(record))
        except Exception:
            error_id = uuid.uuid4().hex[:8]
            logger.exception(f"Error {error_id} collecting tide diagnostics")
            return create_empty_report()

    def _collect(self, record: FishingRecord) -> DebugReport:
        timestamp = normalize_timestamp(record.date)
        # The integrity result depends on the id, which the key leaves out
        cache_key = make_cache_key(record.coordinates, timestamp) if record.id else None

        if cache_key is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Diagnostics cache hit for {cache_key}")
                return cached

        start = time.perf_counter()
        memory_before = _traced_memory()

        coordinate = record.coordinates
        if coordinate is not None and not coordinate.is_valid():
            logger.warning(f"Record {record.id}: coordinate out of range, ignoring it")
            coordinate = None
        if timestamp is None:
            logger.warning(f"Record {record.id}: missing or unparsable date {record.date!r}")

        base = base_constituents()
        coordinate_factors = calculate_coordinate_factors(coordinate)
        seasonal_factors = (
            calculate_seasonal_factors(timestamp) if timestamp is not None
            else SeasonalVariationFactors()
        )
        final = compose_constituents(base, coordinate_factors, seasonal_factors)
        if not final.is_finite():
            raise TideCalculationError("Composed constituents are not finite")

        data_integrity = validate_data_integrity(record, timestamp)

        elapsed_ms = max(1.0, (time.perf_counter() - start) * 1000.0)
        memory_after = _traced_memory()
        memory_kb = 0.0
        if memory_before is not None and memory_after is not None:
            memory_kb = max(0.0, (memory_after - memory_before) / 1024.0)

        report = DebugReport(
            calculation=CalculationDetails(
                base=base,
                coordinate_factors=coordinate_factors,
                seasonal_factors=seasonal_factors,
                final=final,
            ),
            performance=PerformanceMetrics(
                calculation_time_ms=elapsed_ms,
                memory_usage_kb=memory_kb,
                cache_hit_rate_percent=self.cache.hit_rate(),
            ),
            quality=QualityAssessment(
                data_integrity=data_integrity,
                calculation_accuracy=calculate_accuracy_score(base, final),
                warnings=generate_warnings(coordinate_factors, seasonal_factors, data_integrity),
            ),
        )

        if cache_key is not None:
            self.cache.put(cache_key, report)
            logger.debug(f"Stored diagnostics for {cache_key}")
        return report

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Diagnostics cache cleared")

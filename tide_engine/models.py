"""
Data model for the tide estimation engine.

Plain dataclasses shared by the calculators, the diagnostics engine and the
HTTP layer. Every structure can be turned into a JSON-friendly dictionary with
``to_dict()``.
"""
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, tzinfo
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


CONSTITUENT_NAMES = ('M2', 'S2', 'N2', 'K1', 'O1', 'P1', 'Q1')


class TideKind(str, Enum):
    """High or low water."""
    HIGH = "high"
    LOW = "low"


class TideType(str, Enum):
    """
    Japanese tide calendar classes, ordered from the smallest tidal range
    to the largest.

    - NEAP (小潮): smallest range, around the first and last quarter moon
    - LONG (長潮): slow-changing water in the days after the neap
    - YOUNG (若潮): range starting to recover after the neap
    - MEDIUM (中潮): transition between neap and spring
    - SPRING (大潮): around new and full moon
    """
    NEAP = "小潮"
    LONG = "長潮"
    YOUNG = "若潮"
    MEDIUM = "中潮"
    SPRING = "大潮"


class TideState(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    HIGH = "high"
    LOW = "low"


@dataclass(frozen=True)
class Coordinate:
    """Geographic position in decimal degrees."""

    latitude: float
    longitude: float
    accuracy: Optional[float] = None  # meters

    def is_valid(self) -> bool:
        """True when both values are finite and inside the WGS84 ranges."""
        try:
            lat = float(self.latitude)
            lon = float(self.longitude)
        except (TypeError, ValueError):
            return False
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return False
        return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0

    @classmethod
    def from_value(cls, value: Any) -> Optional["Coordinate"]:
        """
        Build a coordinate from the shapes used by the surrounding app.

        Accepts a Coordinate, a mapping with ``latitude``/``longitude`` (or
        ``lat``/``lon``) keys, or a ``(lat, lon)`` pair. Out-of-range values are
        kept as they are so that callers can flag them; only structurally
        unusable input returns None.
        """
        if value is None:
            return None
        if isinstance(value, Coordinate):
            return value
        try:
            if isinstance(value, Mapping):
                lat = value.get('latitude', value.get('lat'))
                lon = value.get('longitude', value.get('lon'))
                if lat is None or lon is None:
                    return None
                return cls(float(lat), float(lon), value.get('accuracy'))
            lat, lon = value
            return cls(float(lat), float(lon))
        except (TypeError, ValueError):
            return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HarmonicConstituents:
    """Amplitudes of the seven constituents of the model (arbitrary height units)."""

    M2: float = 0.0  # Principal lunar semidiurnal
    S2: float = 0.0  # Principal solar semidiurnal
    N2: float = 0.0  # Larger lunar elliptic semidiurnal
    K1: float = 0.0  # Lunisolar diurnal
    O1: float = 0.0  # Principal lunar diurnal
    P1: float = 0.0  # Principal solar diurnal
    Q1: float = 0.0  # Larger lunar elliptic diurnal

    def items(self):
        return [(name, getattr(self, name)) for name in CONSTITUENT_NAMES]

    def is_finite(self) -> bool:
        return all(math.isfinite(amplitude) for _, amplitude in self.items())

    def to_dict(self) -> Dict[str, float]:
        return dict(self.items())


@dataclass
class CoordinateVariationFactors:
    """Geographic offset of a position from the reference point."""

    latitude_effect: float = 0.0
    longitude_effect: float = 0.0
    distance_from_reference: float = 0.0  # km
    geographic_correction: float = 0.0  # ratio, 0 to 0.2

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class SeasonalVariationFactors:
    """Time-of-year and lunar-cycle offsets for a date."""

    monthly_correction: float = 0.0
    seasonal_amplitude: float = 0.0
    perigee_apogee_effect: float = 0.0
    solar_correction_factor: float = 1.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class MoonPhase:
    name: str
    age_days: float
    phase_angle: float  # degrees, 0 = new moon, 180 = full moon
    illumination: int  # percent

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _format_time(dt: Optional[datetime], tz: Optional[tzinfo] = None) -> Optional[str]:
    if dt is None:
        return None
    if tz is not None:
        dt = dt.astimezone(tz)
    return dt.replace(microsecond=0).isoformat()


@dataclass
class TideEvent:
    time: datetime
    height: float
    kind: TideKind

    def to_dict(self, tz: Optional[tzinfo] = None) -> Dict[str, Any]:
        return {
            'type': self.kind.value,
            'datetime': _format_time(self.time, tz),
            'height': round(self.height, 3),
        }


@dataclass
class TideEstimate:
    """
    Estimated tidal state at a query time.

    The engine keeps no reference to the returned object. ``tide_type`` and
    the next events are None only for an unavailable estimate (internal
    calculation fault).
    """

    tide_type: Optional[TideType]
    current_height: float
    next_high_tide: Optional[TideEvent]
    next_low_tide: Optional[TideEvent]
    tide_range: float
    moon_phase: Optional[MoonPhase]
    calculated_at: datetime
    query_time: datetime
    current_state: Optional[TideState] = None
    tide_strength: int = 0
    events: List[TideEvent] = field(default_factory=list)
    degraded: bool = False

    def to_dict(self, tz: Optional[tzinfo] = None) -> Dict[str, Any]:
        return {
            'tide_type': self.tide_type.value if self.tide_type else None,
            'current_height': round(self.current_height, 3),
            'current_state': self.current_state.value if self.current_state else None,
            'tide_strength': self.tide_strength,
            'tide_range': round(self.tide_range, 3),
            'next_high_tide': self.next_high_tide.to_dict(tz) if self.next_high_tide else None,
            'next_low_tide': self.next_low_tide.to_dict(tz) if self.next_low_tide else None,
            'events': [event.to_dict(tz) for event in self.events],
            'moon_phase': self.moon_phase.to_dict() if self.moon_phase else None,
            'query_time': _format_time(self.query_time, tz),
            'calculated_at': _format_time(self.calculated_at, tz),
            'degraded': self.degraded,
        }


@dataclass
class CalculationDetails:
    base: HarmonicConstituents
    coordinate_factors: CoordinateVariationFactors
    seasonal_factors: SeasonalVariationFactors
    final: HarmonicConstituents


@dataclass
class PerformanceMetrics:
    calculation_time_ms: float = 0.0
    memory_usage_kb: float = 0.0  # 0 means unknown
    cache_hit_rate_percent: float = 0.0
    from_cache: bool = False


@dataclass
class QualityAssessment:
    data_integrity: bool = False
    calculation_accuracy: float = 0.0
    warnings: List[str] = field(default_factory=list)


@dataclass
class DebugReport:
    """How an estimate was derived, with quality and performance metadata."""

    calculation: CalculationDetails
    performance: PerformanceMetrics
    quality: QualityAssessment

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FishingRecord:
    """The slice of a fishing-log record the diagnostics engine looks at."""

    id: Optional[str]
    coordinates: Optional[Coordinate] = None
    date: Any = None  # datetime, date or string; normalized by the engine

    @classmethod
    def from_value(cls, value: Any) -> "FishingRecord":
        """Accept a FishingRecord or a mapping with id/coordinates/date keys."""
        if isinstance(value, FishingRecord):
            return value
        if isinstance(value, Mapping):
            coordinates = value.get('coordinates', value.get('coordinate'))
            return cls(
                id=value.get('id'),
                coordinates=Coordinate.from_value(coordinates),
                date=value.get('date'),
            )
        raise ValueError(f"Unsupported record type: {type(value).__name__}")

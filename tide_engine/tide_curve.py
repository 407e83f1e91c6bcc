"""
Tide curve sampling, high/low event extraction and tide-type classification.

The composed harmonic curve is sampled from just before the query time forward
at a fixed resolution. Local extrema are located where the discrete derivative
changes sign and refined with parabolic interpolation through the three
neighbouring samples. When the window holds no high or no low after the query
time it is doubled, a bounded number of times, before giving up.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .harmonic_model import reference_amplitude, semidiurnal_envelope, tide_height
from .models import HarmonicConstituents, TideEvent, TideKind, TideState, TideType
from .timeutils import hours_since_j2000

logger = logging.getLogger(__name__)

# Amplitude ratio thresholds, checked top-down; first match wins.
# Monotonic: a larger ratio never maps to a weaker class.
TIDE_TYPE_THRESHOLDS: Sequence[Tuple[float, TideType]] = (
    (1.10, TideType.SPRING),
    (0.90, TideType.MEDIUM),
    (0.82, TideType.YOUNG),
    (0.74, TideType.LONG),
    (0.0, TideType.NEAP),
)

# Samples taken before the query time so an extremum right after it is bracketed
LEAD_STEPS = 2


class TideCalculationError(RuntimeError):
    """The composed curve could not produce a usable estimate."""


@dataclass
class CurveExtraction:
    """Result of sampling the curve around a query time."""

    current_height: float
    tide_range: float
    events: List[TideEvent] = field(default_factory=list)
    next_high_tide: Optional[TideEvent] = None
    next_low_tide: Optional[TideEvent] = None
    window_hours: float = 0.0


def sample_curve(
    constituents: HarmonicConstituents,
    start_time: datetime,
    hours: float,
    step_minutes: int
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Sample the tide curve at regular intervals.

    Args:
        constituents: Amplitudes to use
        start_time: First sample (aware datetime)
        hours: Window length in hours (end point included)
        step_minutes: Sampling resolution

    Returns:
        Tuple of (offsets in hours from start_time, heights)
    """
    num_points = int(round(hours * 60 / step_minutes)) + 1
    time_offsets_hours = np.arange(num_points) * (step_minutes / 60.0)
    heights = tide_height(hours_since_j2000(start_time) + time_offsets_hours, constituents)
    if not np.all(np.isfinite(heights)):
        raise TideCalculationError("Tide curve produced non-finite heights")
    return time_offsets_hours, heights


def find_extrema(
    heights: np.ndarray,
    time_offsets_hours: np.ndarray,
    start_time: datetime
) -> List[TideEvent]:
    """
    Find high/low tide extrema from a heights array.

    Args:
        heights: Array of tide heights
        time_offsets_hours: Array of time offsets in hours from start_time
        start_time: Starting datetime

    Returns:
        TideEvent list sorted by time
    """
    events = []
    gradient = np.gradient(heights)
    sign_changes = np.where(np.diff(np.sign(gradient)))[0]

    for idx in sign_changes:
        if idx < 1 or idx >= len(heights) - 1:
            continue

        # Gradient going from positive to negative is a maximum (high tide),
        # negative to positive a minimum (low tide)
        if gradient[idx] > 0 and gradient[idx + 1] <= 0:
            kind = TideKind.HIGH
        elif gradient[idx] < 0 and gradient[idx + 1] >= 0:
            kind = TideKind.LOW
        else:
            continue

        # Parabola through (idx-1, idx, idx+1): vertex offset from the centre sample
        h1, h2, h3 = heights[idx - 1], heights[idx], heights[idx + 1]
        t2 = time_offsets_hours[idx]
        dt = time_offsets_hours[idx + 1] - t2

        denom = (h1 - 2*h2 + h3)
        if abs(denom) > 1e-10:
            t_extremum = t2 + 0.5 * (h1 - h3) / denom * dt
            height = float(h2 - 0.125 * (h1 - h3) * (h1 - h3) / denom)
        else:
            t_extremum = t2
            height = float(h2)

        events.append(TideEvent(
            time=start_time + timedelta(hours=float(t_extremum)),
            height=height,
            kind=kind,
        ))

    events.sort(key=lambda event: event.time)
    return events


def _first_after(events: List[TideEvent], kind: TideKind, query_time: datetime) -> Optional[TideEvent]:
    return next((e for e in events if e.kind == kind and e.time > query_time), None)


def extract_curve(
    constituents: HarmonicConstituents,
    query_time: datetime,
    window_hours: float = 24,
    step_minutes: int = 10,
    max_retries: int = 3
) -> CurveExtraction:
    """
    Sample the curve around ``query_time`` and locate the next high and low tides.

    Sampling starts a few steps before ``query_time`` so an extremum falling
    between the query time and the first step after it is still bracketed.

    Args:
        constituents: Final (composed) amplitudes
        query_time: Aware datetime the estimate is for
        window_hours: Initial window length
        step_minutes: Sampling resolution
        max_retries: Number of times the window may double

    Returns:
        CurveExtraction with the events after ``query_time`` inside the final
        window. ``tide_range`` covers the initial window only.

    Raises:
        TideCalculationError: Non-finite heights, or no high/low found after
            all retries
    """
    lead_hours = LEAD_STEPS * step_minutes / 60.0
    start_time = query_time - timedelta(hours=lead_hours)

    hours = float(window_hours)
    for attempt in range(max_retries + 1):
        offsets, heights = sample_curve(constituents, start_time, hours + lead_hours, step_minutes)
        events = [e for e in find_extrema(heights, offsets, start_time) if e.time > query_time]
        next_high = _first_after(events, TideKind.HIGH, query_time)
        next_low = _first_after(events, TideKind.LOW, query_time)

        if next_high is not None and next_low is not None:
            in_window = heights[LEAD_STEPS:][offsets[LEAD_STEPS:] <= lead_hours + window_hours + 1e-9]
            return CurveExtraction(
                current_height=float(heights[LEAD_STEPS]),
                tide_range=float(np.max(in_window) - np.min(in_window)),
                events=events,
                next_high_tide=next_high,
                next_low_tide=next_low,
                window_hours=hours,
            )

        logger.debug(
            f"No complete high/low pair within {hours:.0f}h of {query_time.isoformat()} "
            f"(attempt {attempt + 1}/{max_retries + 1})"
        )
        hours *= 2

    raise TideCalculationError(
        f"No high/low tide found within {hours / 2:.0f}h of {query_time.isoformat()}"
    )


def amplitude_ratio(
    final: HarmonicConstituents,
    base: HarmonicConstituents,
    moon_age_days: float
) -> float:
    """Current semi-diurnal envelope of ``final`` relative to the base amplitude."""
    reference = reference_amplitude(base)
    if reference <= 0:
        raise TideCalculationError("Base constituents have no semi-diurnal amplitude")
    ratio = semidiurnal_envelope(final, moon_age_days) / reference
    if not math.isfinite(ratio):
        raise TideCalculationError("Amplitude ratio is not finite")
    return ratio


def classify_tide(ratio: float) -> TideType:
    """Map an amplitude ratio to a tide type using TIDE_TYPE_THRESHOLDS."""
    for threshold, tide_type in TIDE_TYPE_THRESHOLDS:
        if ratio >= threshold:
            return tide_type
    return TIDE_TYPE_THRESHOLDS[-1][1]


def tide_strength(ratio: float, base: HarmonicConstituents) -> int:
    """
    Tide strength in percent (0-100).

    100% is the base spring envelope (M2 + S2 in phase); stronger composed
    amplitudes are capped at 100.
    """
    spring_ratio = (base.M2 + base.S2) / reference_amplitude(base)
    return int(round(min(100.0, max(0.0, ratio / spring_ratio * 100.0))))


def determine_current_state(
    query_time: datetime,
    next_high: Optional[TideEvent],
    next_low: Optional[TideEvent],
    step_minutes: int
) -> TideState:
    """
    Rising or falling depending on the next event; high/low when that event
    is within one sampling step.
    """
    upcoming = [e for e in (next_high, next_low) if e is not None]
    if not upcoming:
        return TideState.RISING
    next_event = min(upcoming, key=lambda e: e.time)

    if next_event.time - query_time <= timedelta(minutes=step_minutes):
        return TideState.HIGH if next_event.kind == TideKind.HIGH else TideState.LOW
    return TideState.RISING if next_event.kind == TideKind.HIGH else TideState.FALLING

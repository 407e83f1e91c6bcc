"""
Moon phase from elapsed time since a known new moon.

The age of the moon is the number of days since the new moon of
2000-01-06 18:14 UTC, modulo the mean synodic month. That is accurate to
well under a day for the dates a fishing log deals with, which is all the
tide classification needs.
"""
import math
from datetime import datetime, timezone

from .harmonic_model import SYNODIC_MONTH_DAYS
from .models import MoonPhase

NEW_MOON_EPOCH = datetime(2000, 1, 6, 18, 14, tzinfo=timezone.utc)


def moon_age(dt: datetime) -> float:
    """Days since the last new moon (0 to the synodic month)."""
    elapsed_days = (dt - NEW_MOON_EPOCH).total_seconds() / 86400.0
    return elapsed_days % SYNODIC_MONTH_DAYS


def get_moon_phase_name(angle: float) -> str:
    """
    Convert moon phase angle to a descriptive name.

    Args:
        angle: Moon phase angle in degrees (0-360)

    Returns:
        String description of the moon phase
    """
    angle = angle % 360

    if angle < 5 or angle > 355:
        return "New Moon"
    elif angle < 85:
        return "Waxing Crescent"
    elif angle < 95:
        return "First Quarter"
    elif angle < 175:
        return "Waxing Gibbous"
    elif angle < 185:
        return "Full Moon"
    elif angle < 265:
        return "Waning Gibbous"
    elif angle < 275:
        return "Last Quarter"
    else:
        return "Waning Crescent"


def get_moon_illumination(angle: float) -> int:
    """Illuminated fraction of the disc in percent for a phase angle in degrees."""
    return round((1 - math.cos(math.radians(angle % 360))) / 2 * 100)


def calculate_moon_phase(dt: datetime) -> MoonPhase:
    """
    Moon phase for an aware datetime.

    Args:
        dt: Timestamp (timezone-aware)

    Returns:
        MoonPhase with name, age in days, phase angle and illumination
    """
    age = moon_age(dt)
    angle = age / SYNODIC_MONTH_DAYS * 360.0
    return MoonPhase(
        name=get_moon_phase_name(angle),
        age_days=round(age, 2),
        phase_angle=round(angle, 1),
        illumination=get_moon_illumination(angle),
    )

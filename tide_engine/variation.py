"""
Variation factor calculators.

Two independent pure functions: the coordinate calculator measures how far a
position is from the reference point (Tokyo Bay), the seasonal calculator
derives time-of-year and lunar-orbit offsets from a date. Both are recomputed
per request and never persisted.
"""
import math
from datetime import datetime
from typing import Optional

from .models import Coordinate, CoordinateVariationFactors, SeasonalVariationFactors
from .timeutils import day_of_year

# Reference point: Tokyo Bay
REFERENCE_LATITUDE = 35.6762
REFERENCE_LONGITUDE = 139.6503

KM_PER_DEGREE = 111.0
LATITUDE_EFFECT_PER_DEGREE = 0.01
LONGITUDE_EFFECT_PER_DEGREE = 0.005
GEOGRAPHIC_CORRECTION_PER_KM = 0.001
MAX_GEOGRAPHIC_CORRECTION = 0.2

SUMMER_SOLSTICE_DAY = 172
ANOMALISTIC_PERIOD_DAYS = 27.3


def calculate_coordinate_factors(coordinate: Optional[Coordinate]) -> CoordinateVariationFactors:
    """
    Geographic offset of a coordinate from the reference point.

    Distance uses a planar approximation (111 km per degree). The correction
    saturates at 20% beyond 200 km.

    Args:
        coordinate: Position, or None when the record has no coordinates

    Returns:
        CoordinateVariationFactors (all zero when coordinate is None)
    """
    if coordinate is None:
        return CoordinateVariationFactors()

    lat_diff = coordinate.latitude - REFERENCE_LATITUDE
    lng_diff = coordinate.longitude - REFERENCE_LONGITUDE
    distance = math.sqrt(lat_diff ** 2 + lng_diff ** 2) * KM_PER_DEGREE

    return CoordinateVariationFactors(
        latitude_effect=lat_diff * LATITUDE_EFFECT_PER_DEGREE,
        longitude_effect=lng_diff * LONGITUDE_EFFECT_PER_DEGREE,
        distance_from_reference=distance,
        geographic_correction=min(MAX_GEOGRAPHIC_CORRECTION, distance * GEOGRAPHIC_CORRECTION_PER_KM),
    )


def calculate_seasonal_factors(dt: datetime) -> SeasonalVariationFactors:
    """
    Seasonal and lunar-orbit offsets for a date.

    - monthly_correction: semi-annual cycle, ±10%
    - seasonal_amplitude: largest at the solstices, 0 to 15%
    - perigee_apogee_effect: 27.3-day cycle, ±5%
    - solar_correction_factor: 1 + half of the first two terms

    Args:
        dt: Normalized timestamp

    Returns:
        SeasonalVariationFactors
    """
    month = dt.month
    doy = day_of_year(dt)

    monthly_correction = math.cos((month - 1) * math.pi / 6) * 0.1
    seasonal_amplitude = abs(math.cos((doy - SUMMER_SOLSTICE_DAY) * 2 * math.pi / 365)) * 0.15
    perigee_apogee_effect = math.sin(doy * 2 * math.pi / ANOMALISTIC_PERIOD_DAYS) * 0.05

    return SeasonalVariationFactors(
        monthly_correction=monthly_correction,
        seasonal_amplitude=seasonal_amplitude,
        perigee_apogee_effect=perigee_apogee_effect,
        solar_correction_factor=1 + (monthly_correction * 0.5 + seasonal_amplitude * 0.5),
    )

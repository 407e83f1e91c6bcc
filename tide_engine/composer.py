"""
Parameter composer: applies both variation factor sets to the base constituents.

Geographic distance mainly perturbs the semi-diurnal range, solar/seasonal
forcing mainly the diurnal components, so the factors are applied
asymmetrically:

    M2, S2      x (1 + geographic_correction) x solar_correction_factor
    N2, Q1      x (1 + geographic_correction)
    K1, O1, P1  x solar_correction_factor
"""
from .models import CoordinateVariationFactors, HarmonicConstituents, SeasonalVariationFactors


def compose_constituents(
    base: HarmonicConstituents,
    coordinate: CoordinateVariationFactors,
    seasonal: SeasonalVariationFactors
) -> HarmonicConstituents:
    """
    Derive the final per-request constituent set.

    Args:
        base: Base amplitudes
        coordinate: Geographic factors
        seasonal: Seasonal factors

    Returns:
        New HarmonicConstituents; ``base`` is not modified
    """
    coord_factor = 1 + coordinate.geographic_correction
    seasonal_factor = seasonal.solar_correction_factor

    return HarmonicConstituents(
        M2=base.M2 * coord_factor * seasonal_factor,
        S2=base.S2 * coord_factor * seasonal_factor,
        N2=base.N2 * coord_factor,
        K1=base.K1 * seasonal_factor,
        O1=base.O1 * seasonal_factor,
        P1=base.P1 * seasonal_factor,
        Q1=base.Q1 * coord_factor,
    )

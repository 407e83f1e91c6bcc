"""
Simplified seven-constituent harmonic tide model.

Height at time t (hours since J2000.0) is

    h(t) = Σ A_i * cos(ω_i * t + φ_i)

where ω_i is the constituent speed and φ_i its phase at the epoch. Both are
fixed constants of the model. The phases are derived once, at import time,
from the equilibrium argument of each constituent at J2000.0 minus a Greenwich
phase lag typical of a temperate semi-diurnal bay (Tokyo Bay). With those
lags the M2/S2 beat peaks roughly a day after new and full moon, as it does in
real harbours.

The base amplitudes are deployment-wide constants; per-request amplitudes are
produced by the parameter composer.

References:
- Astronomical arguments: Meeus, J. (1991) "Astronomical Algorithms"
- Doodson numbers: Schureman, P. (1958) "Manual of Harmonic Analysis and Prediction of Tides"
"""
import math
from typing import Dict, Union

import numpy as np

from .models import CONSTITUENT_NAMES, HarmonicConstituents

# Base amplitudes (arbitrary height units), modeled on a temperate semi-diurnal bay
BASE_AMPLITUDES: Dict[str, float] = {
    'M2': 1.2,   # Principal lunar semidiurnal
    'S2': 0.4,   # Principal solar semidiurnal
    'N2': 0.25,  # Larger lunar elliptic semidiurnal
    'K1': 0.6,   # Lunisolar diurnal
    'O1': 0.4,   # Principal lunar diurnal
    'P1': 0.2,   # Principal solar diurnal
    'Q1': 0.08,  # Larger lunar elliptic diurnal
}

# Constituent speeds (degrees per hour)
CONSTITUENT_SPEEDS: Dict[str, float] = {
    'M2': 28.9841042,
    'S2': 30.0,
    'N2': 28.4397295,
    'K1': 15.0410686,
    'O1': 13.9430356,
    'P1': 14.9589314,
    'Q1': 13.3986609,
}

# Greenwich phase lags (degrees), approximate values for Tokyo Bay
GREENWICH_PHASE_LAGS: Dict[str, float] = {
    'M2': 150.0,
    'S2': 178.0,
    'N2': 136.0,
    'K1': 180.0,
    'O1': 160.0,
    'P1': 178.0,
    'Q1': 148.0,
}

# Doodson coefficients: (tau, s, h, p, N, pp, constant)
# tau = T + h - s (mean lunar time)
DOODSON_NUMBERS = {
    'M2': (2, 0, 0, 0, 0, 0, 0),       # 2τ
    'S2': (2, 2, -2, 0, 0, 0, 0),      # 2τ + 2s - 2h = 2T
    'N2': (2, -1, 0, 1, 0, 0, 0),      # 2τ - s + p
    'K1': (1, 1, 0, 0, 0, 0, -90),     # τ + s - 90° = T + h - 90°
    'O1': (1, -1, 0, 0, 0, 0, 90),     # τ - s + 90°
    'P1': (1, 1, -2, 0, 0, 0, 90),     # τ + s - 2h + 90° = T - h + 90°
    'Q1': (1, -2, 0, 1, 0, 0, 90),     # τ - 2s + p + 90°
}

SYNODIC_MONTH_DAYS = 29.530588853


def _astronomical_arguments(T: float) -> Dict[str, float]:
    """
    Calculate the mean longitudes used by the equilibrium arguments.

    Args:
        T: Julian centuries from J2000.0

    Returns:
        Dictionary with astronomical parameters in degrees:
        - s: Mean longitude of Moon
        - h: Mean longitude of Sun
        - p: Mean longitude of lunar perigee
        - N: Mean longitude of lunar ascending node
        - pp: Mean longitude of solar perigee (perihelion)
    """
    # Mean longitude of Moon (s) - Meeus formula 45.1
    s = (218.3164591 + 481267.88134236 * T
         - 0.0013268 * T**2 + T**3 / 538841.0 - T**4 / 65194000.0)

    # Mean longitude of Sun (h) - Meeus formula 24.2
    h = 280.46645 + 36000.76983 * T + 0.0003032 * T**2

    # Mean longitude of lunar perigee (p)
    p = (83.3532430 + 4069.0137111 * T
         - 0.0103238 * T**2 - T**3 / 80053.0 + T**4 / 18999000.0)

    # Mean longitude of lunar ascending node (N) - Meeus formula 45.7
    N = (125.0445550 - 1934.1361849 * T
         + 0.0020762 * T**2 + T**3 / 467410.0 - T**4 / 60616000.0)

    # Mean longitude of solar perigee (pp)
    pp = 282.94 + 1.7192 * T

    return {
        's': s % 360.0,
        'h': h % 360.0,
        'p': p % 360.0,
        'N': N % 360.0,
        'pp': pp % 360.0,
    }


def _equilibrium_argument(const: str, hour_angle: float, astro: Dict[str, float]) -> float:
    """
    Equilibrium argument V0 (degrees) of a constituent.

    Args:
        const: Constituent symbol (e.g. 'M2')
        hour_angle: Mean solar hour angle at Greenwich (degrees)
        astro: Output of _astronomical_arguments

    Returns:
        V0 in degrees, 0-360
    """
    s, h = astro['s'], astro['h']
    tau = hour_angle + h - s
    coef = DOODSON_NUMBERS[const]
    V0 = (coef[0] * tau + coef[1] * s + coef[2] * h +
          coef[3] * astro['p'] + coef[4] * astro['N'] + coef[5] * astro['pp'] + coef[6])
    return V0 % 360.0


def _epoch_phases() -> Dict[str, float]:
    # J2000.0 is 12:00 UT, where the mean sun is on the Greenwich meridian
    hour_angle = 12.0 * 15.0 + 180.0
    astro = _astronomical_arguments(0.0)
    return {
        name: (_equilibrium_argument(name, hour_angle, astro) - GREENWICH_PHASE_LAGS[name]) % 360.0
        for name in CONSTITUENT_NAMES
    }


# Phase of each constituent at J2000.0 (degrees)
CONSTITUENT_PHASES: Dict[str, float] = _epoch_phases()


def base_constituents() -> HarmonicConstituents:
    """Deployment-wide base amplitudes as a fresh object."""
    return HarmonicConstituents(**BASE_AMPLITUDES)


def tide_height(
    hours: Union[float, np.ndarray],
    constituents: HarmonicConstituents
) -> Union[float, np.ndarray]:
    """
    Sum the constituents into a height (vectorized over time).

    Args:
        hours: Hours since J2000.0, scalar or array
        constituents: Amplitudes to use

    Returns:
        Height(s) in the amplitude units, same shape as ``hours``
    """
    t = np.asarray(hours, dtype=float)
    heights = np.zeros_like(t)
    for name, amplitude in constituents.items():
        if amplitude == 0.0:
            continue
        phase_arg = CONSTITUENT_SPEEDS[name] * t + CONSTITUENT_PHASES[name]
        heights = heights + amplitude * np.cos(np.radians(phase_arg % 360.0))
    if np.ndim(hours) == 0:
        return float(heights)
    return heights


def semidiurnal_envelope(constituents: HarmonicConstituents, moon_age_days: float) -> float:
    """
    Amplitude of the combined M2 + S2 wave at a given moon age.

    The two waves beat with half the synodic month: they add up at new and
    full moon (spring) and partly cancel at the quarters (neap).
    """
    theta = 2.0 * math.pi * moon_age_days / (SYNODIC_MONTH_DAYS / 2.0)
    m2, s2 = constituents.M2, constituents.S2
    return math.sqrt(max(0.0, m2 * m2 + s2 * s2 + 2.0 * m2 * s2 * math.cos(theta)))


def reference_amplitude(base: HarmonicConstituents) -> float:
    """Mean M2 + S2 envelope of the base constituents."""
    return math.hypot(base.M2, base.S2)

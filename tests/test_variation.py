"""
Unit tests for the coordinate and seasonal variation calculators and the
parameter composer
"""
from datetime import datetime, timedelta, timezone

import pytest

from tide_engine.composer import compose_constituents
from tide_engine.harmonic_model import base_constituents
from tide_engine.models import Coordinate, CoordinateVariationFactors, SeasonalVariationFactors
from tide_engine.variation import (
    REFERENCE_LATITUDE,
    REFERENCE_LONGITUDE,
    calculate_coordinate_factors,
    calculate_seasonal_factors,
)

TOKYO = Coordinate(35.6762, 139.6503)
OSAKA = Coordinate(34.6937, 135.5023)
OKINAWA = Coordinate(26.2124, 127.6792)


class TestCoordinateFactors:
    """Tests for the geographic offset from Tokyo Bay."""

    def test_absent_coordinate_gives_zero_factors(self):
        factors = calculate_coordinate_factors(None)
        assert factors == CoordinateVariationFactors(0.0, 0.0, 0.0, 0.0)

    def test_reference_point_has_no_correction(self):
        factors = calculate_coordinate_factors(Coordinate(REFERENCE_LATITUDE, REFERENCE_LONGITUDE))
        assert factors.distance_from_reference == 0.0
        assert factors.geographic_correction == 0.0

    def test_osaka_is_distinct_from_tokyo(self):
        """Osaka Bay should be more than 100 km from the reference point."""
        factors = calculate_coordinate_factors(OSAKA)
        assert factors.distance_from_reference > 100
        assert factors.distance_from_reference == pytest.approx(473.2, abs=0.5)
        assert factors.latitude_effect == pytest.approx(-0.009825)
        assert factors.latitude_effect != 0
        assert factors.geographic_correction != 0

    def test_correction_saturates_at_twenty_percent(self):
        factors = calculate_coordinate_factors(OKINAWA)
        assert factors.distance_from_reference > 500
        assert factors.geographic_correction == 0.2

    def test_correction_scales_with_distance_nearby(self):
        """Within 200 km the correction is 0.1% per km."""
        nearby = Coordinate(REFERENCE_LATITUDE + 0.5, REFERENCE_LONGITUDE)
        factors = calculate_coordinate_factors(nearby)
        assert factors.distance_from_reference == pytest.approx(55.5)
        assert factors.geographic_correction == pytest.approx(0.0555)
        assert factors.longitude_effect == pytest.approx(0.0)


class TestSeasonalFactors:
    """Tests for time-of-year factors."""

    def test_january_first(self):
        factors = calculate_seasonal_factors(datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert factors.monthly_correction == pytest.approx(0.1)
        assert factors.seasonal_amplitude == pytest.approx(0.1471, abs=1e-4)
        assert factors.perigee_apogee_effect == pytest.approx(0.0114, abs=1e-4)
        assert factors.solar_correction_factor == pytest.approx(1.1236, abs=1e-4)

    def test_april_has_no_monthly_correction(self):
        factors = calculate_seasonal_factors(datetime(2024, 4, 15, tzinfo=timezone.utc))
        assert abs(factors.monthly_correction) < 1e-12

    def test_july_has_negative_monthly_correction(self):
        factors = calculate_seasonal_factors(datetime(2024, 7, 10, tzinfo=timezone.utc))
        assert factors.monthly_correction == pytest.approx(-0.1)

    def test_solar_factor_stays_in_range_all_year(self):
        """The combined seasonal factor stays within ±15% for every day of a leap year."""
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for day in range(366):
            factors = calculate_seasonal_factors(start + timedelta(days=day))
            assert 0.85 <= factors.solar_correction_factor <= 1.15
            assert 0.0 <= factors.seasonal_amplitude <= 0.15
            assert -0.05 <= factors.perigee_apogee_effect <= 0.05


class TestComposer:
    """Tests for the asymmetric application of the factors."""

    def test_neutral_factors_keep_base(self):
        base = base_constituents()
        final = compose_constituents(base, CoordinateVariationFactors(), SeasonalVariationFactors())
        assert final == base

    def test_asymmetric_scaling(self):
        base = base_constituents()
        final = compose_constituents(
            base,
            CoordinateVariationFactors(geographic_correction=0.2),
            SeasonalVariationFactors(solar_correction_factor=1.1),
        )
        assert final.M2 == pytest.approx(1.2 * 1.2 * 1.1)
        assert final.S2 == pytest.approx(0.4 * 1.2 * 1.1)
        assert final.N2 == pytest.approx(0.25 * 1.2)
        assert final.Q1 == pytest.approx(0.08 * 1.2)
        assert final.K1 == pytest.approx(0.6 * 1.1)
        assert final.O1 == pytest.approx(0.4 * 1.1)
        assert final.P1 == pytest.approx(0.2 * 1.1)

    def test_base_is_not_modified(self):
        base = base_constituents()
        compose_constituents(
            base,
            CoordinateVariationFactors(geographic_correction=0.2),
            SeasonalVariationFactors(solar_correction_factor=1.1),
        )
        assert base == base_constituents()

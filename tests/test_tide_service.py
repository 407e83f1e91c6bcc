"""
Unit tests for the Tide Estimation Engine
"""
import re
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from tide_engine.config import EngineSettings
from tide_engine.harmonic_model import SYNODIC_MONTH_DAYS
from tide_engine.models import Coordinate, TideKind, TideState, TideType
from tide_engine.moon_phase import NEW_MOON_EPOCH
from tide_engine.tide_curve import TideCalculationError
from tide_engine.tide_service import TideEngine

TOKYO = Coordinate(35.6762, 139.6503)
QUERY_TIME = datetime(2024, 5, 1, 6, 30, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    """Create a tide engine with default settings."""
    return TideEngine(EngineSettings())


class TestEstimateTide:
    """Tests for the tidal state estimate."""

    def test_estimate_structure(self, engine):
        estimate = engine.estimate_tide(TOKYO, QUERY_TIME)
        assert isinstance(estimate.tide_type, TideType)
        assert estimate.next_high_tide.kind == TideKind.HIGH
        assert estimate.next_low_tide.kind == TideKind.LOW
        assert estimate.moon_phase is not None
        assert estimate.current_state in TideState
        assert 0 <= estimate.tide_strength <= 100
        assert estimate.query_time == QUERY_TIME
        assert estimate.degraded is False

    @pytest.mark.parametrize("day", range(0, 30, 2))
    def test_events_follow_query_time(self, engine, day):
        """For any valid input both next events lie after the query time."""
        query_time = QUERY_TIME + timedelta(days=day, hours=day)
        estimate = engine.estimate_tide(TOKYO, query_time)
        assert estimate.tide_range >= 0
        assert estimate.next_high_tide.time > query_time
        assert estimate.next_low_tide.time > query_time

    LOCATIONS = [
        ('Tokyo Bay', 35.6762, 139.6503),
        ('Osaka Bay', 34.6937, 135.5023),
        ('Naha', 26.2124, 127.6792),
        ('Hakodate', 41.7687, 140.7288),
        ('Southern hemisphere', -33.86, 151.21),
    ]

    @pytest.mark.parametrize("name,lat,lon", LOCATIONS)
    def test_locations(self, engine, name, lat, lon):
        estimate = engine.estimate_tide((lat, lon), QUERY_TIME)
        assert estimate.tide_type is not None, f"{name}: no tide type"
        assert estimate.tide_range > 0, f"{name}: flat curve"
        assert estimate.degraded is False

    @pytest.mark.parametrize("minutes_before", [1, 3, 5, 7, 9])
    def test_query_just_before_high_water(self, engine, minutes_before):
        """A high a few minutes away is the next high, and the water is at high."""
        high = engine.estimate_tide(TOKYO, datetime(2024, 5, 1, tzinfo=timezone.utc)).next_high_tide
        estimate = engine.estimate_tide(TOKYO, high.time - timedelta(minutes=minutes_before))
        assert abs(estimate.next_high_tide.time - high.time) < timedelta(minutes=1)
        assert estimate.current_state == TideState.HIGH

    def test_events_are_sorted(self, engine):
        estimate = engine.estimate_tide(TOKYO, QUERY_TIME)
        times = [event.time for event in estimate.events]
        assert times == sorted(times)
        assert estimate.next_high_tide in estimate.events

    def test_estimate_is_deterministic(self, engine):
        first = engine.estimate_tide(TOKYO, QUERY_TIME)
        second = engine.estimate_tide(TOKYO, QUERY_TIME)
        assert first.current_height == second.current_height
        assert first.next_high_tide == second.next_high_tide

    def test_accepts_iso_string_and_mapping(self, engine):
        estimate = engine.estimate_tide({"latitude": 35.6762, "longitude": 139.6503}, "2024-05-01T06:30:00Z")
        assert estimate.query_time == QUERY_TIME
        assert estimate.degraded is False

    def test_spring_tide_at_new_moon(self, engine):
        new_moon = NEW_MOON_EPOCH + timedelta(days=SYNODIC_MONTH_DAYS * 300)
        estimate = engine.estimate_tide(TOKYO, new_moon)
        assert estimate.tide_type == TideType.SPRING
        assert estimate.moon_phase.name == "New Moon"

    def test_neap_tide_at_quarter_moon(self, engine):
        quarter = NEW_MOON_EPOCH + timedelta(days=SYNODIC_MONTH_DAYS * 300.25)
        estimate = engine.estimate_tide(TOKYO, quarter)
        assert estimate.tide_type == TideType.NEAP
        assert estimate.moon_phase.name == "First Quarter"

    def test_spring_is_stronger_than_neap(self, engine):
        spring = engine.estimate_tide(TOKYO, NEW_MOON_EPOCH + timedelta(days=SYNODIC_MONTH_DAYS * 300))
        neap = engine.estimate_tide(TOKYO, NEW_MOON_EPOCH + timedelta(days=SYNODIC_MONTH_DAYS * 300.25))
        assert spring.tide_strength > neap.tide_strength


class TestDegradedInputs:
    """Tests for the fallbacks of estimate_tide."""

    def test_without_coordinate(self, engine):
        estimate = engine.estimate_tide(None, QUERY_TIME)
        assert estimate.tide_type is not None
        assert estimate.degraded is False

    def test_without_timestamp_uses_now(self, engine):
        before = datetime.now(timezone.utc)
        estimate = engine.estimate_tide(TOKYO)
        assert estimate.query_time >= before
        assert estimate.degraded is False

    def test_unparsable_date_falls_back_to_now(self, engine):
        before = datetime.now(timezone.utc)
        estimate = engine.estimate_tide(TOKYO, "yesterday-ish")
        assert estimate.degraded is True
        assert estimate.query_time >= before
        assert estimate.next_high_tide.time > estimate.query_time

    def test_invalid_coordinate_is_ignored(self, engine):
        estimate = engine.estimate_tide(Coordinate(999, 999), QUERY_TIME)
        reference = engine.estimate_tide(None, QUERY_TIME)
        assert estimate.degraded is True
        assert estimate.current_height == reference.current_height

    def test_calculation_fault_returns_unavailable_estimate(self, engine, monkeypatch):
        def fail(*args, **kwargs):
            raise TideCalculationError("no events")

        monkeypatch.setattr("tide_engine.tide_service.extract_curve", fail)
        estimate = engine.estimate_tide(TOKYO, QUERY_TIME)
        assert estimate.tide_type is None
        assert estimate.next_high_tide is None
        assert estimate.next_low_tide is None
        assert estimate.events == []
        assert estimate.degraded is True
        assert estimate.to_dict()['tide_type'] is None


class TestEstimateSerialization:
    """Tests for the JSON-friendly representation."""

    def test_to_dict_keys(self, engine):
        data = engine.estimate_tide(TOKYO, QUERY_TIME).to_dict()
        for key in ('tide_type', 'current_height', 'current_state', 'tide_strength', 'tide_range',
                    'next_high_tide', 'next_low_tide', 'events', 'moon_phase',
                    'query_time', 'calculated_at', 'degraded'):
            assert key in data
        assert data['tide_type'] in [t.value for t in TideType]
        assert data['next_high_tide']['type'] == 'high'

    def test_datetimes_use_requested_timezone(self, engine):
        data = engine.estimate_tide(TOKYO, QUERY_TIME).to_dict(ZoneInfo('Asia/Tokyo'))
        assert data['query_time'] == '2024-05-01T15:30:00+09:00'
        assert data['next_low_tide']['datetime'].endswith('+09:00')
        assert re.match(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\+09:00$', data['next_high_tide']['datetime'])


class TestTimezoneDetection:
    """Tests for automatic timezone detection from coordinates."""

    TIMEZONE_TESTS = [
        ('Tokyo, Japan', 35.65, 139.84, 'Asia/Tokyo'),
        ('Malibu, CA', 34.03, -118.68, 'America/Los_Angeles'),
        ('Sydney, Australia', -33.86, 151.21, 'Australia/Sydney'),
    ]

    @pytest.mark.parametrize("name,lat,lon,expected", TIMEZONE_TESTS)
    def test_timezone_detection(self, engine, name, lat, lon, expected):
        assert engine.get_timezone(lat, lon).key == expected, name

    def test_explicit_timezone_override(self, engine):
        assert engine.get_timezone(35.65, 139.84, 'Europe/London').key == 'Europe/London'

    def test_unknown_timezone_falls_back_to_utc(self, engine):
        assert engine.get_timezone(35.65, 139.84, 'Not/AZone').key == 'UTC'

    def test_invalid_coordinate_uses_utc(self, engine):
        assert engine.get_timezone(999, 999).key == 'UTC'


class TestTideCurve:
    """Tests for regular interval curve data."""

    def test_hourly_curve_count(self, engine):
        points = engine.tide_curve(TOKYO, QUERY_TIME, hours=24, interval_minutes=60)
        readings = [p for p in points if 'type' not in p]
        events = [p for p in points if 'type' in p]
        assert len(readings) == 25
        assert len(events) >= 2
        assert readings[0]['datetime'] == '2024-05-01T06:30:00+00:00'

    def test_curve_is_time_sorted(self, engine):
        points = engine.tide_curve(TOKYO, QUERY_TIME, hours=48, interval_minutes=30)
        times = [datetime.fromisoformat(p['datetime']) for p in points]
        assert times == sorted(times)

    def test_curve_rendered_in_timezone(self, engine):
        points = engine.tide_curve(TOKYO, QUERY_TIME, hours=6, interval_minutes=15, tz=ZoneInfo('Asia/Tokyo'))
        assert all(p['datetime'].endswith('+09:00') for p in points)

    def test_invalid_interval_raises_error(self, engine):
        with pytest.raises(ValueError):
            engine.tide_curve(TOKYO, QUERY_TIME, interval_minutes=45)

    def test_invalid_hours_raises_error(self, engine):
        with pytest.raises(ValueError):
            engine.tide_curve(TOKYO, QUERY_TIME, hours=0)

    def test_invalid_coordinate_raises_error(self, engine):
        with pytest.raises(ValueError):
            engine.tide_curve({"latitude": 999, "longitude": 0}, QUERY_TIME)


class TestEngineDiagnostics:
    """Tests for the diagnostics facade."""

    def test_collect_and_clear(self, engine):
        record = {"id": "r1", "coordinates": {"latitude": 35.0, "longitude": 139.0}, "date": "2024-05-01"}
        assert engine.collect_diagnostics(record).performance.from_cache is False
        assert engine.collect_diagnostics(record).performance.from_cache is True
        assert engine.cache_stats()['size'] == 1
        assert engine.cached_keys() == ["35.0,139.0@2024-05-01"]

        engine.clear_diagnostics_cache()
        assert engine.cache_stats()['size'] == 0
        assert engine.collect_diagnostics(record).performance.from_cache is False

    def test_engines_do_not_share_caches(self):
        record = {"id": "r1", "coordinates": {"latitude": 35.0, "longitude": 139.0}, "date": "2024-05-01"}
        first, second = TideEngine(), TideEngine()
        first.collect_diagnostics(record)
        assert second.collect_diagnostics(record).performance.from_cache is False

    def test_cache_size_from_settings(self):
        engine = TideEngine(EngineSettings(cache_size=2))
        for i in range(3):
            engine.collect_diagnostics({
                "id": str(i),
                "coordinates": {"latitude": 35.0 + i, "longitude": 139.0},
                "date": "2024-05-01",
            })
        assert engine.cache_stats()['size'] == 2
        assert engine.cache_stats()['capacity'] == 2

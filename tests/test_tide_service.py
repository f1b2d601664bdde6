"""
Unit tests for Tide Service
"""
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import numpy as np
import pytest

from app.location_service import Coordinate, Location, LocationCatalog, find_nearest
from app.tide_service import (
    DAILY_TIDE_PATTERN,
    HEIGHT_JITTER_M,
    TideDirection,
    TideEvent,
    TideType,
    _as_utc,
    format_countdown,
    generate_tides,
    get_next_tide,
    get_tide_status,
    get_upcoming_tides,
    tide_progress,
)

REFERENCE_DATE = date(2024, 1, 15)
NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def kochi():
    """Kochi Port, the usual test location."""
    return Location(
        id='kochi',
        name='Kochi Port',
        coordinate=Coordinate(9.9312, 76.2673),
        country='India',
        timezone='Asia/Kolkata',
        region='Kerala',
        description='Queen of Arabian Sea',
    )


@pytest.fixture
def tides(kochi):
    """Three days of seeded tides for Kochi."""
    return generate_tides(kochi, REFERENCE_DATE, horizon_days=3, rng=np.random.default_rng(42))


def event(hours_from_now, tide_type, height=1.0):
    return TideEvent(time=NOW + timedelta(hours=hours_from_now), height_m=height, type=tide_type)


class TestGenerateTides:
    """Tests for tide table generation."""

    def test_three_days_gives_twelve_events(self, tides):
        """Four anchors for each of three days."""
        assert len(tides) == 12

    @pytest.mark.parametrize('days', [1, 5, 14])
    def test_count_scales_with_horizon(self, kochi, days):
        """Event count is four per day."""
        result = generate_tides(kochi, REFERENCE_DATE, horizon_days=days, rng=np.random.default_rng(0))
        assert len(result) == 4 * days

    def test_invalid_horizon_raises(self, kochi):
        """Horizon must be at least one day."""
        with pytest.raises(ValueError):
            generate_tides(kochi, REFERENCE_DATE, horizon_days=0)

    def test_sorted_by_time(self, tides):
        """Events are in ascending time order."""
        times = [tide.time for tide in tides]
        assert times == sorted(times)

    def test_kinds_alternate(self, tides):
        """Jitter windows never overlap, so lows and highs alternate starting with a low."""
        expected = [anchor.type for anchor in DAILY_TIDE_PATTERN] * 3
        assert [tide.type for tide in tides] == expected

    def test_times_within_jitter_of_anchor(self, tides):
        """Each event is within an hour of its anchor in local time."""
        tz = ZoneInfo('Asia/Kolkata')
        for i, tide in enumerate(tides):
            anchor = DAILY_TIDE_PATTERN[i % 4]
            day = REFERENCE_DATE + timedelta(days=i // 4)
            anchor_time = datetime(day.year, day.month, day.day, tzinfo=tz) + timedelta(hours=anchor.hours)
            offset = abs((tide.time - anchor_time).total_seconds())
            assert offset <= 3601, f"Event {i} is {offset}s from its anchor"

    def test_heights_within_jitter_of_anchor(self, tides):
        """Each height is within the jitter range of its anchor height."""
        for i, tide in enumerate(tides):
            anchor = DAILY_TIDE_PATTERN[i % 4]
            assert abs(tide.height_m - anchor.height_m) <= HEIGHT_JITTER_M + 1e-3

    def test_heights_never_negative(self, kochi):
        """Heights are clamped at the chart datum."""
        for seed in range(50):
            result = generate_tides(kochi, REFERENCE_DATE, horizon_days=3, rng=np.random.default_rng(seed))
            assert all(tide.height_m >= 0 for tide in result)

    def test_times_in_location_timezone(self, tides):
        """Event times carry the location's UTC offset."""
        for tide in tides:
            assert tide.time.utcoffset() == timedelta(hours=5, minutes=30)

    def test_same_seed_same_table(self, kochi, tides):
        """A seeded generator reproduces the table exactly."""
        again = generate_tides(kochi, REFERENCE_DATE, horizon_days=3, rng=np.random.default_rng(42))
        assert again == tides

    def test_different_seed_different_table(self, kochi, tides):
        """Different seeds jitter differently."""
        other = generate_tides(kochi, REFERENCE_DATE, horizon_days=3, rng=np.random.default_rng(7))
        assert other != tides

    def test_accepts_datetime_reference(self, kochi, tides):
        """A datetime reference uses only its date portion."""
        result = generate_tides(
            kochi, datetime(2024, 1, 15, 18, 30), horizon_days=3, rng=np.random.default_rng(42)
        )
        assert result == tides

    def test_defaults_to_today_with_entropy(self, kochi):
        """Without a date or generator, today's table is generated."""
        result = generate_tides(kochi)
        assert len(result) == 12
        today = datetime.now(ZoneInfo('Asia/Kolkata')).date()
        assert abs((result[0].time.date() - today).days) <= 1

    def test_unknown_timezone_falls_back_to_utc(self, kochi):
        """Unknown zone names generate in UTC instead of failing."""
        nowhere = Location(
            id='nowhere', name='Nowhere', coordinate=Coordinate(0, 0),
            country='None', timezone='Mars/Olympus_Mons',
        )
        result = generate_tides(nowhere, REFERENCE_DATE, rng=np.random.default_rng(1))
        assert all(tide.time.utcoffset() == timedelta(0) for tide in result)

    def test_event_serialization(self, tides):
        """Serialized events carry type, ISO time and heights in both units."""
        data = tides[0].to_dict()
        assert data['type'] == 'low'
        assert datetime.fromisoformat(data['datetime']) == tides[0].time
        assert data['height_ft'] == pytest.approx(data['height_m'] * 3.28084, abs=1e-3)


class TestTideStatus:
    """Tests for deriving the live tide status."""

    def test_empty_series(self):
        """An empty series gives an unknown status, never an error."""
        status = get_tide_status([], NOW)
        assert status.direction == TideDirection.UNKNOWN
        assert status.next_tide is None
        assert status.previous_tide is None
        assert status.time_to_next == timedelta(0)

    def test_rising_after_low(self):
        """Between a low and a high the tide is rising."""
        status = get_tide_status([event(-1, TideType.LOW), event(1, TideType.HIGH)], NOW)
        assert status.direction == TideDirection.RISING
        assert status.next_tide.type == TideType.HIGH
        assert status.time_to_next == timedelta(hours=1)

    def test_falling_after_high(self):
        """Between a high and a low the tide is falling."""
        status = get_tide_status([event(-2, TideType.HIGH), event(3, TideType.LOW)], NOW)
        assert status.direction == TideDirection.FALLING
        assert status.previous_tide.type == TideType.HIGH
        assert status.time_to_next == timedelta(hours=3)

    def test_before_first_event(self):
        """With no previous event the direction is unknown."""
        first = event(2, TideType.LOW)
        status = get_tide_status([first, event(8, TideType.HIGH)], NOW)
        assert status.direction == TideDirection.UNKNOWN
        assert status.previous_tide is None
        assert status.next_tide == first
        assert status.time_to_next == timedelta(hours=2)

    def test_series_exhausted(self):
        """After the last event there is no next tide."""
        last = event(-1, TideType.HIGH)
        status = get_tide_status([event(-7, TideType.LOW), last], NOW)
        assert status.direction == TideDirection.UNKNOWN
        assert status.next_tide is None
        assert status.previous_tide == last
        assert status.time_to_next == timedelta(0)

    def test_event_at_now_counts_as_previous(self):
        """An event exactly at now is the previous tide, not the next."""
        at_now = event(0, TideType.LOW)
        following = event(6, TideType.HIGH)
        status = get_tide_status([event(-6, TideType.HIGH), at_now, following], NOW)
        assert status.previous_tide == at_now
        assert status.next_tide == following
        assert status.direction == TideDirection.RISING

    def test_naive_now_treated_as_utc(self):
        """Naive datetimes compare as UTC."""
        series = [event(-1, TideType.LOW), event(1, TideType.HIGH)]
        assert get_tide_status(series, NOW.replace(tzinfo=None)) == get_tide_status(series, NOW)

    def test_now_in_other_timezone(self):
        """Now is compared as an instant regardless of its zone."""
        series = [event(-1, TideType.LOW), event(1, TideType.HIGH)]
        now_ist = NOW.astimezone(ZoneInfo('Asia/Kolkata'))
        assert get_tide_status(series, now_ist).time_to_next == timedelta(hours=1)

    def test_as_utc_converts_aware_datetimes(self):
        """Aware datetimes are converted to UTC, naive ones are tagged as UTC."""
        now_ist = NOW.astimezone(ZoneInfo('Asia/Kolkata'))
        converted = _as_utc(now_ist)
        assert converted.utcoffset() == timedelta(0)
        assert converted == NOW
        assert _as_utc(NOW.replace(tzinfo=None)) == NOW

    def test_progress_with_now_in_other_timezone(self):
        """Progress doesn't depend on the zone of now."""
        series = [event(-3, TideType.LOW), event(3, TideType.HIGH)]
        now_ist = NOW.astimezone(ZoneInfo('Asia/Kolkata'))
        status = get_tide_status(series, now_ist)
        assert status.progress(now_ist) == pytest.approx(50.0)

    def test_defaults_to_current_time(self):
        """Without now, the current time is used."""
        now = datetime.now(timezone.utc)
        series = [
            TideEvent(time=now - timedelta(hours=3), height_m=2.0, type=TideType.HIGH),
            TideEvent(time=now + timedelta(hours=3), height_m=0.3, type=TideType.LOW),
        ]
        assert get_tide_status(series).direction == TideDirection.FALLING

    def test_next_tide(self):
        """get_next_tide returns the first event strictly after now."""
        following = event(1, TideType.HIGH)
        assert get_next_tide([event(0, TideType.LOW), following], NOW) == following
        assert get_next_tide([], NOW) is None


class TestProgress:
    """Tests for progress between tides."""

    def test_midpoint(self):
        """Halfway between two events is 50%."""
        series = [event(-3, TideType.LOW), event(3, TideType.HIGH)]
        assert tide_progress(series, NOW) == pytest.approx(50.0)

    def test_quarter(self):
        """Progress is linear in time."""
        series = [event(-1, TideType.LOW), event(3, TideType.HIGH)]
        assert tide_progress(series, NOW) == pytest.approx(25.0)

    def test_no_previous_is_zero(self):
        """Before the first event progress is 0."""
        assert tide_progress([event(1, TideType.HIGH)], NOW) == 0.0

    def test_no_next_is_zero(self):
        """After the last event progress is 0."""
        assert tide_progress([event(-1, TideType.HIGH)], NOW) == 0.0

    def test_empty_is_zero(self):
        """An empty series has no progress."""
        assert tide_progress([], NOW) == 0.0

    def test_status_progress_matches(self):
        """TideStatus.progress agrees with tide_progress."""
        series = [event(-2, TideType.HIGH), event(4, TideType.LOW)]
        status = get_tide_status(series, NOW)
        assert status.progress(NOW) == pytest.approx(tide_progress(series, NOW))

    def test_status_progress_clamped(self):
        """Evaluating a status after its next tide caps at 100%."""
        status = get_tide_status([event(-1, TideType.LOW), event(1, TideType.HIGH)], NOW)
        assert status.progress(NOW + timedelta(hours=5)) == 100.0
        assert status.progress(NOW - timedelta(hours=5)) == 0.0


class TestUpcomingTides:
    """Tests for listing upcoming tides."""

    def test_limited_and_ordered(self, tides):
        """At most `limit` events, all after now, in order."""
        now = tides[1].time
        upcoming = get_upcoming_tides(tides, now, limit=4)
        assert upcoming == tides[2:6]

    def test_fewer_than_limit(self, tides):
        """Near the end of the table fewer events are returned."""
        upcoming = get_upcoming_tides(tides, tides[-2].time, limit=4)
        assert upcoming == [tides[-1]]

    def test_none_after_end(self, tides):
        """Nothing is upcoming once the table is exhausted."""
        assert get_upcoming_tides(tides, tides[-1].time + timedelta(hours=1)) == []


class TestFormatCountdown:
    """Tests for countdown formatting."""

    @pytest.mark.parametrize('duration,expected', [
        (timedelta(hours=2, minutes=5, seconds=9), '2h 5m 9s'),
        (timedelta(hours=1), '1h 0m 0s'),
        (timedelta(minutes=5), '5m 0s'),
        (timedelta(minutes=12, seconds=30), '12m 30s'),
        (timedelta(seconds=9), '9s'),
        (timedelta(seconds=59, milliseconds=900), '59s'),
        (timedelta(0), '0s'),
        (timedelta(seconds=-30), '0s'),
        (timedelta(days=1, hours=1), '25h 0m 0s'),
    ])
    def test_formats(self, duration, expected):
        """Leading zero units are dropped."""
        assert format_countdown(duration) == expected


class TestEndToEnd:
    """Coordinate to nearest coast to tide table to live status."""

    def test_kochi_scenario(self, kochi):
        """Resolve Kochi from a nearby point and read the tide between events 2 and 3."""
        catalog = LocationCatalog([kochi])
        location = find_nearest(Coordinate(9.93, 76.26), catalog.all())
        assert location.name == 'Kochi Port'

        series = generate_tides(location, REFERENCE_DATE, horizon_days=3, rng=np.random.default_rng(2024))
        assert len(series) == 12
        assert series == generate_tides(
            location, REFERENCE_DATE, horizon_days=3, rng=np.random.default_rng(2024)
        )

        second, third = series[1], series[2]
        now = second.time + (third.time - second.time) / 2
        status = get_tide_status(series, now)

        assert status.previous_tide == second
        assert status.next_tide == third
        # Second event of the day is the morning high, so the tide is now falling
        assert status.direction == TideDirection.FALLING
        assert status.time_to_next == third.time - now
        assert 0 < status.progress(now) < 100
        assert status.progress(now) == pytest.approx(50.0, abs=0.01)

"""
Semi-diurnal Tide Service - Tide Series Generation and Live Tide Status

This module produces an approximate tide table for a coastal location and
derives the live state of the tide from it.

Generation uses an idealized daily pattern of four anchors (two lows, two
highs) perturbed by bounded random jitter:

    02:00  low   0.3 m
    08:00  high  2.1 m
    14:00  low   0.2 m
    20:00  high  2.3 m

Each anchor time is shifted by up to ±1 hour and each height by up to ±0.2 m.
Anchors are in the location's local time zone. The random source is a
numpy Generator passed in by the caller, so a seeded generator reproduces
the same table exactly.

Note: This is a stand-in for real harmonic prediction. It has no astronomical
constituents and should not be used for navigation.

The status engine never re-sorts its input and never raises for empty or
exhausted tables; it returns an 'unknown' direction instead.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import numpy as np

from .location_service import Location

logger = logging.getLogger(__name__)

METERS_TO_FEET = 3.28084

# Maximum absolute jitter applied to each anchor
TIME_JITTER_HOURS = 1.0
HEIGHT_JITTER_M = 0.2


class TideType(str, Enum):
    """Kind of tide extremum."""
    HIGH = "high"
    LOW = "low"


class TideDirection(str, Enum):
    """
    Direction the water level is moving.

    UNKNOWN is used when there is no event on one side of the query time,
    so the direction cannot be derived.
    """
    RISING = "rising"
    FALLING = "falling"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TideAnchor:
    """One point of the idealized daily tide pattern, before jitter."""
    hours: float
    type: TideType
    height_m: float


DAILY_TIDE_PATTERN = (
    TideAnchor(2, TideType.LOW, 0.3),
    TideAnchor(8, TideType.HIGH, 2.1),
    TideAnchor(14, TideType.LOW, 0.2),
    TideAnchor(20, TideType.HIGH, 2.3),
)


@dataclass(frozen=True)
class TideEvent:
    """A single high or low tide."""
    time: datetime
    height_m: float
    type: TideType

    @property
    def height_ft(self) -> float:
        return self.height_m * METERS_TO_FEET

    def to_dict(self) -> dict:
        return {
            'type': self.type.value,
            'datetime': self.time.isoformat(),
            'height_m': round(self.height_m, 3),
            'height_ft': round(self.height_ft, 3),
        }


@dataclass(frozen=True)
class TideStatus:
    """
    Snapshot of the tide at a given instant.

    Recomputed on every query; holds no reference back to the series it was
    derived from.
    """
    direction: TideDirection
    next_tide: Optional[TideEvent]
    previous_tide: Optional[TideEvent]
    time_to_next: timedelta

    def progress(self, now: datetime) -> float:
        """Percent of the way from the previous tide to the next one, in [0, 100]."""
        return _progress_between(self.previous_tide, self.next_tide, _as_utc(now))


def get_timezone(timezone_str: Optional[str]) -> ZoneInfo:
    """Resolve an IANA time zone name, falling back to UTC when unknown."""
    if not timezone_str:
        return ZoneInfo('UTC')
    try:
        return ZoneInfo(timezone_str)
    except (ValueError, ZoneInfoNotFoundError):
        logger.warning("Unknown time zone %r, falling back to UTC", timezone_str)
        return ZoneInfo('UTC')


def _as_utc(moment: datetime) -> datetime:
    """Convert to UTC, treating naive datetimes as already being UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def generate_tides(
    location: Location,
    reference_date: Optional[date] = None,
    horizon_days: int = 3,
    rng: Optional[np.random.Generator] = None
) -> List[TideEvent]:
    """
    Generate high and low tide events for a location.

    For every day in the horizon and every anchor of DAILY_TIDE_PATTERN, the
    anchor time and height are jittered uniformly. The full set is then sorted
    by time before being returned.

    Heights are clamped at zero: the lowest anchor (0.2 m) minus the full
    jitter is exactly the chart datum, so negative values can only come from
    floating-point error.

    Args:
        location: Location to generate for (its time zone defines midnight)
        reference_date: First day of the table. If not provided, uses today
                        in the location's time zone.
        horizon_days: Number of days to generate (default: 3)
        rng: numpy random Generator. If not provided, a fresh generator seeded
             from system entropy is used.

    Returns:
        List of TideEvent sorted ascending by time, four per day, with times
        in the location's time zone

    Raises:
        ValueError: If horizon_days is less than 1
    """
    if horizon_days < 1:
        raise ValueError(f"horizon_days must be at least 1, got {horizon_days}")

    if rng is None:
        rng = np.random.default_rng()

    tz = get_timezone(location.timezone)
    if reference_date is None:
        reference_date = datetime.now(tz).date()
    start_day = date(reference_date.year, reference_date.month, reference_date.day)

    events = []
    for day_offset in range(horizon_days):
        day = start_day + timedelta(days=day_offset)
        # Offsets are added on the UTC timeline so DST changes don't shift anchors
        midnight_utc = datetime.combine(day, time(0), tzinfo=tz).astimezone(timezone.utc)

        for anchor in DAILY_TIDE_PATTERN:
            time_jitter = rng.uniform(-TIME_JITTER_HOURS, TIME_JITTER_HOURS)
            height_jitter = rng.uniform(-HEIGHT_JITTER_M, HEIGHT_JITTER_M)

            event_time = midnight_utc + timedelta(hours=anchor.hours + float(time_jitter))
            event_time = event_time.astimezone(tz).replace(microsecond=0)
            height_m = max(0.0, round(anchor.height_m + float(height_jitter), 3))

            events.append(TideEvent(time=event_time, height_m=height_m, type=anchor.type))

    # Sort by time
    events.sort(key=lambda event: event.time)

    logger.debug(
        "Generated %d tide events for %s starting %s",
        len(events), location.id, start_day.isoformat()
    )
    return events


def get_next_tide(series: Sequence[TideEvent], now: datetime) -> Optional[TideEvent]:
    """First event strictly after ``now``, or None if the series is exhausted."""
    now = _as_utc(now)
    for event in series:
        if event.time > now:
            return event
    return None


def get_previous_tide(series: Sequence[TideEvent], now: datetime) -> Optional[TideEvent]:
    """Last event at or before ``now``, or None if the series starts later."""
    now = _as_utc(now)
    previous = None
    for event in series:
        if event.time <= now:
            previous = event
    return previous


def get_upcoming_tides(series: Sequence[TideEvent], now: datetime, limit: int = 4) -> List[TideEvent]:
    """
    Events strictly after ``now``, in series order.

    Args:
        series: Time-ordered tide events
        now: Reference instant
        limit: Maximum number of events to return

    Returns:
        Up to ``limit`` upcoming events
    """
    now = _as_utc(now)
    return [event for event in series if event.time > now][:max(limit, 0)]


def get_tide_status(series: Sequence[TideEvent], now: Optional[datetime] = None) -> TideStatus:
    """
    Derive the live tide status from a time-ordered series.

    The series is assumed to be sorted ascending (as returned by
    generate_tides); it is not re-sorted here.

    Args:
        series: Time-ordered tide events
        now: Query instant. If not provided, uses the current UTC time.
             Naive datetimes are treated as UTC.

    Returns:
        TideStatus with direction, next and previous events and the time
        remaining until the next event (zero when there is none)
    """
    now = datetime.now(timezone.utc) if now is None else _as_utc(now)

    next_tide = get_next_tide(series, now)
    previous_tide = get_previous_tide(series, now)

    direction = TideDirection.UNKNOWN
    if previous_tide is not None and next_tide is not None:
        if previous_tide.type == TideType.LOW:
            direction = TideDirection.RISING
        else:
            direction = TideDirection.FALLING

    time_to_next = next_tide.time - now if next_tide is not None else timedelta(0)

    return TideStatus(
        direction=direction,
        next_tide=next_tide,
        previous_tide=previous_tide,
        time_to_next=time_to_next,
    )


def _progress_between(
    previous_tide: Optional[TideEvent],
    next_tide: Optional[TideEvent],
    now: datetime
) -> float:
    if previous_tide is None or next_tide is None:
        return 0.0

    total = (next_tide.time - previous_tide.time).total_seconds()
    if total <= 0:
        return 0.0
    elapsed = (now - previous_tide.time).total_seconds()

    return max(0.0, min(100.0, elapsed / total * 100.0))


def tide_progress(series: Sequence[TideEvent], now: datetime) -> float:
    """
    Percent progress from the previous tide to the next one.

    Returns 0 when ``now`` is before the first event or after the last.
    """
    now = _as_utc(now)
    return _progress_between(get_previous_tide(series, now), get_next_tide(series, now), now)


def format_countdown(duration: timedelta) -> str:
    """
    Format a countdown like ``2h 5m 9s``, ``5m 9s`` or ``9s``.

    Leading zero units are dropped. Negative durations render as ``0s``.
    """
    total_seconds = max(0, int(duration.total_seconds()))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    elif minutes > 0:
        return f"{minutes}m {seconds}s"
    else:
        return f"{seconds}s"

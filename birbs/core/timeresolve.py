"""
Civil time resolution

Detections are stored and logged as a naive local date and time-of-day.
This module turns those civil moments into UTC instants for one fixed named
zone, handling both daylight-saving transitions:

- fall-back (a local time occurs twice): the earlier instant is chosen
- spring-forward (a local time is skipped): ``InvalidLocalTime`` is raised

Nothing here performs I/O; the same inputs always give the same instant.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ConfigurationError, InvalidLocalTime, MalformedTimestamp

DEFAULT_ZONE = "America/Los_Angeles"
DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M:%S"


@dataclass(frozen=True)
class ResolvedInstant:
    """A UTC instant paired with its local representation.

    Only built by :class:`TimeResolver`; ``utc`` always equals ``local``
    converted to UTC.
    """

    utc: datetime
    local: datetime

    @property
    def local_date(self) -> str:
        return self.local.strftime(DATE_FORMAT)

    @property
    def nanoseconds(self) -> int:
        """Nanoseconds since the Unix epoch."""
        delta = self.utc - _EPOCH
        return (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@lru_cache(maxsize=16)
def load_zone(name: str) -> tzinfo:
    """Load a named IANA zone, raising ``ConfigurationError`` if unknown."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown time zone: {name!r}") from exc


def parse_date(text: str) -> date:
    try:
        return datetime.strptime(text, DATE_FORMAT).date()
    except ValueError as exc:
        raise MalformedTimestamp(
            field="date", reason=str(exc), value=text, expected_format="YYYY-MM-DD"
        ) from exc


def parse_time(text: str) -> time:
    try:
        return datetime.strptime(text, TIME_FORMAT).time()
    except ValueError as exc:
        raise MalformedTimestamp(
            field="time", reason=str(exc), value=text, expected_format="HH:MM:SS"
        ) from exc


class TimeResolver:
    """Resolve civil dates and times in a fixed zone."""

    def __init__(self, zone: str = DEFAULT_ZONE):
        self.zone_name = zone
        self.zone = load_zone(zone)

    def resolve(self, on: date, at: time) -> ResolvedInstant:
        """Map a civil date and time to an instant.

        Args:
            on: Civil date
            at: Civil time of day (any tzinfo is ignored)

        Returns:
            The resolved instant; the earlier one when the local time is
            ambiguous.

        Raises:
            InvalidLocalTime: The local time falls in a spring-forward gap.
        """
        naive = datetime.combine(on, at.replace(tzinfo=None))
        first = naive.replace(tzinfo=self.zone, fold=0).astimezone(timezone.utc)
        second = naive.replace(tzinfo=self.zone, fold=1).astimezone(timezone.utc)
        utc = min(first, second)

        local = utc.astimezone(self.zone)
        if local.replace(tzinfo=None, fold=0) != naive:
            raise InvalidLocalTime(moment=naive, zone=self.zone_name)

        return ResolvedInstant(utc=utc, local=local)

    def resolve_date_only(self, on: date) -> ResolvedInstant:
        return self.resolve(on, time.min)

    def resolve_text(self, date_text: str, time_text: str) -> ResolvedInstant:
        """Parse ``YYYY-MM-DD`` and ``HH:MM:SS`` text, then resolve."""
        return self.resolve(parse_date(date_text), parse_time(time_text))

    def resolve_date_text(self, date_text: str) -> ResolvedInstant:
        return self.resolve_date_only(parse_date(date_text))


__all__ = [
    "DEFAULT_ZONE",
    "ResolvedInstant",
    "TimeResolver",
    "load_zone",
    "parse_date",
    "parse_time",
]

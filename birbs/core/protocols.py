"""
Records and protocol interfaces shared by the ingestion and serving paths.

Each record is produced by exactly one component and handed downstream by
value; records are frozen so no component can change one after passing it on.

## Records

- `IngestionRecord` - one parsed log line (EntryParser -> PublishSink)
- `TimePoint` - one time-series point derived from an ingestion record
- `AvailabilityCandidate` - one stored detection with derived media URLs;
  only the availability checker sets its ``available`` flag

## PublishSink Protocol

Required methods:
- `write(point: TimePoint) -> None` - store exactly one point; raise
  ``PublishError`` on failure. Calls are sequential and unbatched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Protocol, runtime_checkable

from .timeresolve import ResolvedInstant

MEASUREMENT = "birds"
STATION_TAGS: Mapping[str, str] = MappingProxyType({"station": "backyard"})


@dataclass(frozen=True)
class IngestionRecord:
    """One detection read from the append-only log."""

    when: ResolvedInstant
    scientific_name: str
    common_name: str
    confidence: float


@dataclass(frozen=True)
class TimePoint:
    """A single point for the time-series store.

    The field is keyed by species common name and holds the confidence.
    """

    field_name: str
    field_value: float
    timestamp_ns: int
    measurement: str = MEASUREMENT
    tags: Mapping[str, str] = field(default_factory=lambda: STATION_TAGS)

    def __post_init__(self):
        # read-only, detached from the caller's mapping
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))

    def to_line_protocol(self) -> str:
        """Render as InfluxDB line protocol."""
        series = _escape_key(self.measurement, measurement=True)
        for key in sorted(self.tags):
            series += f",{_escape_key(key)}={_escape_key(self.tags[key])}"
        return f"{series} {_escape_key(self.field_name)}={self.field_value!r} {self.timestamp_ns}"


def _escape_key(text: str, measurement: bool = False) -> str:
    text = text.replace("\\", "\\\\").replace(",", "\\,").replace(" ", "\\ ")
    if not measurement:
        text = text.replace("=", "\\=")
    return text


@dataclass(frozen=True)
class AvailabilityCandidate:
    """A stored detection whose recording and spectrogram may be fetched."""

    when: ResolvedInstant
    common_name: str
    confidence: float
    file_name: str
    audio_url: str
    spectrogram_url: str
    scientific_name: Optional[str] = None
    available: Optional[bool] = None


def media_urls(base_url: str, local_date: str, common_name: str, file_name: str) -> tuple[str, str]:
    """
    Derive ``(audio_url, spectrogram_url)`` for a recording.

    Only spaces in the common name are replaced (with underscores); the date
    and file name are inserted verbatim.

    Example:
        >>> media_urls("http://station", "2023-04-01", "Black-capped Chickadee", "x.wav")
        ('http://station/By_Date/2023-04-01/Black-capped_Chickadee/x.wav', 'http://station/By_Date/2023-04-01/Black-capped_Chickadee/x.wav.png')
    """
    species = common_name.replace(" ", "_")
    audio_url = f"{base_url}/By_Date/{local_date}/{species}/{file_name}"
    return audio_url, f"{audio_url}.png"


@runtime_checkable
class PublishSink(Protocol):
    """Destination for time-series points."""

    def write(self, point: TimePoint) -> None:
        """Write one point, raising ``PublishError`` on failure."""
        ...


__all__ = [
    "MEASUREMENT",
    "STATION_TAGS",
    "IngestionRecord",
    "TimePoint",
    "AvailabilityCandidate",
    "media_urls",
    "PublishSink",
]

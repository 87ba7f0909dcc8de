"""
Core types for birbs: civil time resolution, records, errors.

Usage:
    from birbs.core import TimeResolver, IngestionRecord

    resolver = TimeResolver("America/Los_Angeles")
    instant = resolver.resolve_text("2023-04-01", "06:15:00")
"""

from .errors import (
    BirbsError,
    ConfigurationError,
    FileShrunk,
    InvalidLocalTime,
    MalformedTimestamp,
    ParseError,
    ProbeFailure,
    PublishError,
    StoreQueryError,
)
from .protocols import (
    AvailabilityCandidate,
    IngestionRecord,
    PublishSink,
    TimePoint,
    media_urls,
)
from .timeresolve import ResolvedInstant, TimeResolver

__all__ = [
    "BirbsError",
    "ConfigurationError",
    "FileShrunk",
    "InvalidLocalTime",
    "MalformedTimestamp",
    "ParseError",
    "ProbeFailure",
    "PublishError",
    "StoreQueryError",
    "AvailabilityCandidate",
    "IngestionRecord",
    "PublishSink",
    "TimePoint",
    "media_urls",
    "ResolvedInstant",
    "TimeResolver",
]

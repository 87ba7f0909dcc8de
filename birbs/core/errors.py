from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


class BirbsError(Exception):
    """Base class for every error raised by the birbs packages."""


class ConfigurationError(BirbsError):
    """Required configuration is missing or malformed. Fatal at startup."""


class StoreQueryError(BirbsError):
    """A read against the detections store failed."""


class PublishError(BirbsError):
    """The time-series sink rejected or failed to accept a point."""


@dataclass(eq=False)
class ParseError(BirbsError):
    """A log line could not be turned into an ingestion record.

    Parameters
    ----------
    field:
        Name of the offending field (``line`` when the field count is wrong).
    reason:
        Human readable explanation.
    """

    field: str
    reason: str

    def __str__(self) -> str:
        return f"{self.field}: {self.reason}"


@dataclass(eq=False)
class MalformedTimestamp(ParseError):
    """Date or time text does not match its expected format."""

    value: str = ""
    expected_format: str = ""

    def __str__(self) -> str:
        return f"{self.field}: {self.value!r} does not match {self.expected_format}"


@dataclass(eq=False)
class InvalidLocalTime(BirbsError):
    """The civil moment does not exist in the zone (spring-forward gap)."""

    moment: datetime
    zone: str

    def __str__(self) -> str:
        return f"{self.moment.isoformat(sep=' ')} does not exist in {self.zone}"


@dataclass(eq=False)
class FileShrunk(BirbsError):
    """A watched file is now shorter than the committed cursor."""

    path: Path
    cursor: int
    size: int

    def __str__(self) -> str:
        return f"{self.path} shrank from {self.cursor} to {self.size} bytes"


@dataclass(eq=False)
class ProbeFailure(BirbsError):
    """A reachability probe did not succeed. Never leaves the checker."""

    url: str
    reason: str

    def __str__(self) -> str:
        return f"{self.url}: {self.reason}"


__all__ = [
    "BirbsError",
    "ConfigurationError",
    "StoreQueryError",
    "PublishError",
    "ParseError",
    "MalformedTimestamp",
    "InvalidLocalTime",
    "FileShrunk",
    "ProbeFailure",
]

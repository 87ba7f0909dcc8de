"""Parse detection log lines into ingestion records."""

from __future__ import annotations

from ..core.errors import ParseError
from ..core.protocols import IngestionRecord
from ..core.timeresolve import TimeResolver, parse_date, parse_time

DELIMITER = ";"
FIELDS = ("date", "time", "scientific_name", "common_name", "confidence")


class EntryParser:
    """Turn ``date;time;scientific_name;common_name;confidence`` into a record.

    Pure: no I/O, no side effects.
    """

    def __init__(self, resolver: TimeResolver):
        self.resolver = resolver

    def parse(self, line: str) -> IngestionRecord:
        """
        Parse one log line.

        Raises:
            ParseError: Wrong field count or an unconvertible field
                (``MalformedTimestamp`` for date/time text)
            InvalidLocalTime: The civil time does not exist in the zone
        """
        parts = line.rstrip("\r\n").split(DELIMITER)
        if len(parts) != len(FIELDS):
            raise ParseError(
                field="line",
                reason=f"expected {len(FIELDS)} fields separated by {DELIMITER!r}, got {len(parts)}",
            )

        date_text, time_text, scientific_name, common_name, confidence_text = parts
        on = parse_date(date_text)
        at = parse_time(time_text)

        try:
            confidence = float(confidence_text)
        except ValueError as e:
            raise ParseError(
                field="confidence", reason=f"not a number: {confidence_text!r}"
            ) from e

        return IngestionRecord(
            when=self.resolver.resolve(on, at),
            scientific_name=scientific_name,
            common_name=common_name,
            confidence=confidence,
        )

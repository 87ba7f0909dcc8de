"""
Time-series sinks for published detections.

- ``InfluxSink`` writes each point synchronously to an InfluxDB bucket
- ``LineProtocolSink`` renders points as line protocol to a text stream
  (dry runs, piping into other tools)
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

from ..config import Settings
from ..core.errors import PublishError
from ..core.protocols import IngestionRecord, TimePoint

logger = logging.getLogger(__name__)


def to_time_point(record: IngestionRecord) -> TimePoint:
    """Convert a parsed log entry into its time-series point."""
    return TimePoint(
        field_name=record.common_name,
        field_value=record.confidence,
        timestamp_ns=record.when.nanoseconds,
    )


class InfluxSink:
    """Write one point per call to InfluxDB. No batching, no retries."""

    def __init__(self, client: InfluxDBClient, bucket: str, org: Optional[str] = None):
        self.client = client
        self.bucket = bucket
        self.org = org
        self._write_api = client.write_api(write_options=SYNCHRONOUS)

    @classmethod
    def from_settings(cls, settings: Settings) -> "InfluxSink":
        settings.require("influx_host", "influx_org", "influx_token")
        client = InfluxDBClient(
            url=settings.influx_host,
            token=settings.influx_token,
            org=settings.influx_org,
        )
        return cls(client, bucket=settings.influx_bucket, org=settings.influx_org)

    def write(self, point: TimePoint) -> None:
        record = Point(point.measurement)
        for key, value in point.tags.items():
            record = record.tag(key, value)
        record = record.field(point.field_name, point.field_value).time(
            point.timestamp_ns, WritePrecision.NS
        )

        try:
            self._write_api.write(bucket=self.bucket, org=self.org, record=record)
        except Exception as e:
            raise PublishError(f"InfluxDB write to {self.bucket!r} failed: {e}") from e

        logger.debug(f"Wrote {point.field_name}={point.field_value} to {self.bucket}")

    def close(self) -> None:
        self._write_api.close()
        self.client.close()


class LineProtocolSink:
    """Write points as InfluxDB line protocol, one per line."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout

    def write(self, point: TimePoint) -> None:
        try:
            self.stream.write(point.to_line_protocol() + "\n")
            self.stream.flush()
        except OSError as e:
            raise PublishError(f"Could not write line protocol: {e}") from e

    def close(self) -> None:
        pass

"""
Ingestion - publish detection log entries to a time-series store.

Provides the log tailer, entry parser, sinks and the publish pipeline.
"""

from .parser import EntryParser
from .pipeline import PublishReport, publish_file, publish_lines, watch_file
from .sink import InfluxSink, LineProtocolSink, to_time_point
from .tailer import LogTailer, WatchCursor

__all__ = [
    "EntryParser",
    "PublishReport",
    "publish_file",
    "publish_lines",
    "watch_file",
    "InfluxSink",
    "LineProtocolSink",
    "to_time_point",
    "LogTailer",
    "WatchCursor",
]

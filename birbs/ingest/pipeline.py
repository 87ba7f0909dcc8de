"""
Ingestion pipeline: log lines -> records -> time-series points.

Two modes share one serialized path (parse, convert, write, one line at a
time, each write awaited before the next line):

- ``publish_file``: publish every entry of an existing log once
- ``watch_file``: follow the log and publish entries as they are appended

A ``PublishError`` always aborts the run. Parse failures abort a batch run
unless ``skip_invalid`` is set; a watch run logs and skips them.
"""

from __future__ import annotations

import logging
import threading
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Union

from ..core.errors import InvalidLocalTime, ParseError
from ..core.protocols import PublishSink
from .parser import EntryParser
from .sink import to_time_point
from .tailer import ChangeSource, LogTailer

logger = logging.getLogger(__name__)


@dataclass
class PublishReport:
    """Counts for one publish run."""

    published: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)


def decode_line(raw: bytes) -> str:
    """Decode one raw log line as UTF-8.

    Raises:
        ParseError: The bytes are not valid UTF-8
    """
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(field="line", reason=f"not valid UTF-8 at byte {e.start}") from e


def publish_lines(
    lines: Iterable[Union[str, bytes]],
    parser: EntryParser,
    sink: PublishSink,
    skip_invalid: bool = False,
    report: Optional[PublishReport] = None,
) -> PublishReport:
    """Parse and publish each line in order.

    Blank lines are ignored. Raw ``bytes`` lines are decoded as UTF-8 first.

    Raises:
        ParseError, InvalidLocalTime: A line is invalid and ``skip_invalid``
            is false
        PublishError: The sink failed
    """
    report = report if report is not None else PublishReport()

    for line in lines:
        if not line.strip():
            continue

        try:
            if isinstance(line, bytes):
                line = decode_line(line)
            record = parser.parse(line)
        except (ParseError, InvalidLocalTime) as e:
            if not skip_invalid:
                raise
            logger.warning(f"Skipping invalid entry {line!r}: {e}")
            report.skipped += 1
            report.errors.append(f"{line}: {e}")
            continue

        sink.write(to_time_point(record))
        report.published += 1
        logger.info(
            f"Published {record.common_name} ({record.confidence}) at {record.when.utc.isoformat()}"
        )

    return report


def read_entries(path: Path) -> Iterable[bytes]:
    """Yield the raw entry lines of a log file, skipping its header line.

    Lines stay undecoded so one bad line fails as a ``ParseError``.
    """
    with open(path, "rb") as f:
        next(f, None)
        for line in f:
            yield line.rstrip(b"\r\n")


def publish_file(
    path: Path,
    parser: EntryParser,
    sink: PublishSink,
    skip_invalid: bool = False,
) -> PublishReport:
    """Publish every entry in ``path`` once."""
    logger.info(f"Publishing {path}")
    report = publish_lines(read_entries(path), parser, sink, skip_invalid=skip_invalid)
    logger.info(f"Published {report.published} entries from {path} ({report.skipped} skipped)")
    return report


def watch_file(
    path: Path,
    parser: EntryParser,
    sink: PublishSink,
    stop_event: Optional[threading.Event] = None,
    changes: Optional[ChangeSource] = None,
) -> PublishReport:
    """Publish entries appended to ``path`` until ``stop_event`` is set.

    Raises:
        FileShrunk: The log was truncated or rotated
        PublishError: The sink failed
    """
    report = PublishReport()
    with LogTailer(path, changes=changes) as tailer:
        logger.info(f"Watching {path} from byte {tailer.cursor.position}")
        with closing(tailer.follow(stop_event)) as lines:
            publish_lines(lines, parser, sink, skip_invalid=True, report=report)
        logger.info(
            f"Stopped watching {path} at byte {tailer.cursor.position}: "
            f"{report.published} published, {report.skipped} skipped"
        )
    return report

"""
Tests for the publish pipeline in batch and watch modes.
"""

import threading

import pytest

from birbs.core.errors import FileShrunk, ParseError, PublishError
from birbs.ingest.parser import EntryParser
from birbs.ingest.pipeline import publish_file, publish_lines, watch_file

HEADER = "Date;Time;Sci_Name;Com_Name;Confidence\n"
CROW = "2023-04-01;06:15:00;Corvus brachyrhynchos;American Crow;0.87\n"
CHICKADEE = "2023-04-01;06:16:30;Poecile atricapillus;Black-capped Chickadee;0.91\n"
BAD = "2023-04-01;06:17:00;Corvus brachyrhynchos;American Crow\n"


class RecordingSink:
    """Collects written points; optionally fails on the n-th write."""

    def __init__(self, fail_on: int = 0):
        self.points = []
        self.fail_on = fail_on

    def write(self, point):
        if self.fail_on and len(self.points) + 1 == self.fail_on:
            raise PublishError("bucket not found")
        self.points.append(point)


@pytest.fixture
def parser(resolver):
    return EntryParser(resolver)


@pytest.fixture
def write_log(tmp_path):
    def write(*lines):
        path = tmp_path / "BirdDB.txt"
        path.write_text(HEADER + "".join(lines), encoding="utf-8")
        return path

    return write


def scripted_changes(*chunks):
    def changes(path, stop_event):
        for chunk in chunks:
            with open(path, "a", encoding="utf-8") as f:
                f.write(chunk)
            yield {("modified", str(path))}

    return changes


class TestPublishFile:
    def test_publishes_every_entry_and_skips_header(self, parser, write_log):
        sink = RecordingSink()
        report = publish_file(write_log(CROW, CHICKADEE), parser, sink)

        assert report.published == 2
        assert [p.field_name for p in sink.points] == ["American Crow", "Black-capped Chickadee"]

    def test_blank_lines_ignored(self, parser, write_log):
        sink = RecordingSink()
        report = publish_file(write_log(CROW, "\n", CHICKADEE), parser, sink)
        assert report.published == 2
        assert report.skipped == 0

    def test_invalid_entry_aborts_by_default(self, parser, write_log):
        sink = RecordingSink()
        with pytest.raises(ParseError):
            publish_file(write_log(CROW, BAD, CHICKADEE), parser, sink)
        assert len(sink.points) == 1

    def test_skip_invalid_continues(self, parser, write_log):
        sink = RecordingSink()
        report = publish_file(write_log(CROW, BAD, CHICKADEE), parser, sink, skip_invalid=True)

        assert report.published == 2
        assert report.skipped == 1
        assert len(report.errors) == 1

    def test_nonexistent_local_time_skipped_when_asked(self, parser, write_log):
        gap = "2023-03-12;02:30:00;Corvus brachyrhynchos;American Crow;0.5\n"
        report = publish_file(write_log(gap, CROW), parser, RecordingSink(), skip_invalid=True)
        assert report.skipped == 1
        assert report.published == 1

    def test_publish_error_aborts_remaining(self, parser, write_log):
        sink = RecordingSink(fail_on=2)
        with pytest.raises(PublishError):
            publish_file(write_log(CROW, CHICKADEE, CROW), parser, sink, skip_invalid=True)
        assert len(sink.points) == 1

    def test_header_only_file(self, parser, write_log):
        assert publish_file(write_log(), parser, RecordingSink()).published == 0

    def test_undecodable_entry_aborts_by_default(self, parser, tmp_path):
        path = tmp_path / "BirdDB.txt"
        path.write_bytes(HEADER.encode() + CROW.encode() + b"\xff\xfe;broken\n")

        sink = RecordingSink()
        with pytest.raises(ParseError) as excinfo:
            publish_file(path, parser, sink)

        assert excinfo.value.field == "line"
        assert isinstance(excinfo.value.__cause__, UnicodeDecodeError)
        assert len(sink.points) == 1

    def test_undecodable_entry_skipped_when_asked(self, parser, tmp_path):
        path = tmp_path / "BirdDB.txt"
        path.write_bytes(HEADER.encode() + b"\xff\xfe;broken\n" + CHICKADEE.encode())

        report = publish_file(path, parser, RecordingSink(), skip_invalid=True)

        assert report.published == 1
        assert report.skipped == 1

    def test_crlf_line_endings(self, parser, write_log):
        report = publish_file(write_log(CROW.replace("\n", "\r\n")), parser, RecordingSink())
        assert report.published == 1


def test_publish_lines_preserves_order(parser):
    sink = RecordingSink()
    publish_lines([CHICKADEE, CROW], parser, sink)
    assert [p.field_name for p in sink.points] == ["Black-capped Chickadee", "American Crow"]


class TestWatchFile:
    def test_publishes_appended_entries_only(self, parser, write_log):
        path = write_log(CROW)
        sink = RecordingSink()

        report = watch_file(path, parser, sink, changes=scripted_changes(CHICKADEE, CROW))

        assert report.published == 2
        assert [p.field_name for p in sink.points] == ["Black-capped Chickadee", "American Crow"]

    def test_invalid_entries_logged_and_skipped(self, parser, write_log):
        path = write_log()
        sink = RecordingSink()

        report = watch_file(path, parser, sink, changes=scripted_changes(BAD, CROW))

        assert report.published == 1
        assert report.skipped == 1

    def test_publish_error_stops_watch(self, parser, write_log):
        path = write_log()
        with pytest.raises(PublishError):
            watch_file(path, parser, RecordingSink(fail_on=1), changes=scripted_changes(CROW))

    def test_truncation_surfaces(self, parser, write_log):
        path = write_log(CROW)

        def truncate(path, stop_event):
            path.write_text("", encoding="utf-8")
            yield {("modified", str(path))}

        with pytest.raises(FileShrunk):
            watch_file(path, parser, RecordingSink(), changes=truncate)

    def test_stop_event(self, parser, write_log):
        path = write_log()
        stop_event = threading.Event()
        sink = RecordingSink()

        def changes(path, stop_event):
            with open(path, "a", encoding="utf-8") as f:
                f.write(CROW)
            yield {("modified", str(path))}
            stop_event.set()
            with open(path, "a", encoding="utf-8") as f:
                f.write(CHICKADEE)
            yield {("modified", str(path))}

        report = watch_file(path, parser, sink, stop_event=stop_event, changes=changes)

        assert report.published == 1

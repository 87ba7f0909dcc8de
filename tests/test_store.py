"""
Tests for the read-only detections store.

Uses the sample database from conftest: three American Crow detections
over two days and one Black-capped Chickadee.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import text

from birbs.core.errors import StoreQueryError
from birbs.serving.store import DetectionStore

BASE_URL = "http://station.test"


@pytest.fixture
def store(detections_db, resolver):
    store = DetectionStore.from_path(detections_db, resolver, BASE_URL)
    yield store
    store.dispose()


def test_common_name_to_scientific_name(store):
    with store.open() as queries:
        assert queries.common_name_to_scientific_name() == {
            "American Crow": "Corvus brachyrhynchos",
            "Black-capped Chickadee": "Poecile atricapillus",
        }


def test_by_common_name(store):
    with store.open() as queries:
        rows = {row.common_name: row for row in queries.by_common_name()}

    crow = rows["American Crow"]
    assert crow.total == 3
    assert crow.average_confidence == pytest.approx((0.87 + 0.95 + 0.71) / 3)
    # latest date and latest time are taken independently
    assert crow.last_detection.utc == datetime(2023, 4, 3, 0, 5, tzinfo=timezone.utc)
    assert rows["Black-capped Chickadee"].total == 1


def test_by_day_and_common_name(store):
    with store.open() as queries:
        rows = sorted(
            (row.when.local_date, row.common_name, row.total)
            for row in queries.by_day_and_common_name()
        )

    assert rows == [
        ("2023-04-01", "American Crow", 2),
        ("2023-04-02", "American Crow", 1),
        ("2023-04-02", "Black-capped Chickadee", 1),
    ]


def test_day_summaries_resolve_to_local_midnight(store):
    with store.open() as queries:
        first = min(queries.by_day_and_common_name(), key=lambda row: row.when.utc)
    assert first.when.utc == datetime(2023, 4, 1, 7, 0, tzinfo=timezone.utc)


def test_detections_ordered_by_time(store):
    with store.open() as queries:
        detections = queries.detections()

    assert len(detections) == 4
    assert [d.when.utc for d in detections] == sorted(d.when.utc for d in detections)
    assert detections[0].latitude == pytest.approx(47.6)
    assert detections[0].week == 13


def test_daily_detections(store):
    with store.open() as queries:
        daily = queries.daily_detections("American Crow")

    assert [(d.date.local_date, d.detections) for d in daily] == [
        ("2023-04-01", 2),
        ("2023-04-02", 1),
    ]


def test_hourly_detections(store):
    with store.open() as queries:
        hourly = queries.hourly_detections("American Crow")

    assert [(h.number, h.time, h.detections) for h in hourly] == [
        (6, "06:00:00", 2),
        (17, "17:00:00", 1),
    ]


def test_unknown_species_has_no_rows(store):
    with store.open() as queries:
        assert queries.daily_detections("Dodo") == []
        assert queries.hourly_detections("Dodo") == []
        assert queries.files_for("Dodo") == []
        assert queries.summarize_detections("Dodo") == 0


def test_summarize_detections(store):
    with store.open() as queries:
        assert queries.summarize_detections("American Crow") == 3


class TestFilesFor:
    def test_ordered_by_confidence(self, store):
        with store.open() as queries:
            files = queries.files_for("American Crow")
        assert [f.confidence for f in files] == [0.95, 0.87, 0.71]

    def test_media_urls(self, store):
        with store.open() as queries:
            best = queries.files_for("American Crow")[0]

        assert best.audio_url == (
            f"{BASE_URL}/By_Date/2023-04-01/American_Crow/"
            "American_Crow-95-2023-04-01-birdnet-06:45:10.mp3"
        )
        assert best.spectrogram_url == best.audio_url + ".png"
        assert best.available is None

    def test_limit(self, store):
        with store.open() as queries:
            assert len(queries.files_for("American Crow", limit=2)) == 2


class TestRecently:
    def test_last_24_hours_by_confidence(self, store):
        # 2023-04-02 20:00 in Los Angeles
        now = datetime(2023, 4, 3, 3, 0, tzinfo=timezone.utc)
        with store.open() as queries:
            recent = queries.recently(now=now)

        assert [(r.common_name, r.confidence) for r in recent] == [
            ("Black-capped Chickadee", 0.80),
            ("American Crow", 0.71),
        ]
        assert recent[0].scientific_name == "Poecile atricapillus"

    def test_nothing_recent(self, store):
        now = datetime(2023, 5, 1, tzinfo=timezone.utc)
        with store.open() as queries:
            assert queries.recently(now=now) == []


class TestFailures:
    def test_missing_database(self, tmp_path, resolver):
        store = DetectionStore.from_path(tmp_path / "missing.db", resolver, BASE_URL)
        with pytest.raises(StoreQueryError):
            with store.open():
                pass

    def test_missing_table(self, make_db, resolver):
        store = DetectionStore.from_path(make_db("empty.db", []), resolver, BASE_URL)
        with pytest.raises(StoreQueryError):
            with store.open() as queries:
                queries.conn.execute(text("SELECT * FROM sightings"))

    def test_connection_is_read_only(self, store):
        with pytest.raises(StoreQueryError):
            with store.open() as queries:
                queries.conn.execute(text("DELETE FROM detections"))

    def test_unresolvable_stored_time(self, make_db, resolver):
        db_path = make_db(
            "bad.db",
            [("2023-04-01", "quarter past six", "Corvus brachyrhynchos", "American Crow", 0.5, "a.mp3")],
        )
        store = DetectionStore.from_path(db_path, resolver, BASE_URL)
        with pytest.raises(StoreQueryError):
            with store.open() as queries:
                queries.detections()

    def test_stored_time_in_dst_gap(self, make_db, resolver):
        db_path = make_db(
            "gap.db",
            [("2023-03-12", "02:30:00", "Corvus brachyrhynchos", "American Crow", 0.5, "a.mp3")],
        )
        store = DetectionStore.from_path(db_path, resolver, BASE_URL)
        with pytest.raises(StoreQueryError):
            with store.open() as queries:
                queries.files_for("American Crow")

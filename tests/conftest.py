"""Shared fixtures: a resolver for the station zone and a sample detections database."""

import sqlite3

import pytest

from birbs.core.timeresolve import TimeResolver

ZONE = "America/Los_Angeles"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS detections (
    Date DATE,
    Time TIME,
    Sci_Name VARCHAR(100) NOT NULL,
    Com_Name VARCHAR(100) NOT NULL,
    Confidence FLOAT,
    Lat FLOAT,
    Lon FLOAT,
    Cutoff FLOAT,
    Week INT,
    Sens FLOAT,
    Overlap FLOAT,
    File_Name VARCHAR(100) NOT NULL
);
"""

# (date, time, scientific, common, confidence, file name)
SAMPLE_ROWS = [
    ("2023-04-01", "06:15:00", "Corvus brachyrhynchos", "American Crow", 0.87,
     "American_Crow-87-2023-04-01-birdnet-06:15:00.mp3"),
    ("2023-04-01", "06:45:10", "Corvus brachyrhynchos", "American Crow", 0.95,
     "American_Crow-95-2023-04-01-birdnet-06:45:10.mp3"),
    ("2023-04-02", "17:05:00", "Corvus brachyrhynchos", "American Crow", 0.71,
     "American_Crow-71-2023-04-02-birdnet-17:05:00.mp3"),
    ("2023-04-02", "07:30:00", "Poecile atricapillus", "Black-capped Chickadee", 0.80,
     "Black-capped_Chickadee-80-2023-04-02-birdnet-07:30:00.mp3"),
]


def insert_rows(db_path, rows):
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(SCHEMA_SQL)
        conn.executemany(
            "INSERT INTO detections VALUES (?, ?, ?, ?, ?, 47.6, -122.3, 0.7, 13, 1.25, 0.0, ?)",
            rows,
        )
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def resolver():
    return TimeResolver(ZONE)


@pytest.fixture
def detections_db(tmp_path):
    """SQLite file with the BirdNET detections table and sample rows."""
    db_path = tmp_path / "birds.db"
    insert_rows(db_path, SAMPLE_ROWS)
    return db_path


@pytest.fixture
def make_db(tmp_path):
    """Factory for detections databases holding the given rows."""

    def make(name, rows):
        db_path = tmp_path / name
        insert_rows(db_path, rows)
        return db_path

    return make

"""
Read-only access to the BirdNET detections database.

Each request opens one fresh read-only SQLite connection (no pooling),
runs its queries and closes it. Stored dates and times are resolved to
instants in the station's zone.

Read contract (table ``detections``):
    Date, Time, Sci_Name, Com_Name, Confidence, Lat, Lon,
    Cutoff, Week, Sens, Overlap, File_Name
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Generator, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from ..core.errors import BirbsError, StoreQueryError
from ..core.protocols import AvailabilityCandidate, media_urls
from ..core.timeresolve import ResolvedInstant, TimeResolver, parse_time

logger = logging.getLogger(__name__)

FILES_LIMIT = 100
RECENT_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class Detection:
    when: ResolvedInstant
    scientific_name: str
    common_name: str
    confidence: float
    latitude: float
    longitude: float
    cutoff: float
    week: int
    sens: float
    overlap: float
    file_name: str


@dataclass(frozen=True)
class SpeciesSummary:
    common_name: str
    total: int
    average_confidence: float
    last_detection: ResolvedInstant


@dataclass(frozen=True)
class DailySpeciesSummary:
    when: ResolvedInstant
    common_name: str
    total: int
    average_confidence: float


@dataclass(frozen=True)
class DailyCount:
    date: ResolvedInstant
    detections: int


@dataclass(frozen=True)
class HourlyCount:
    number: int
    time: str
    detections: int


def create_store_engine(db_path: Path) -> Engine:
    """Create a read-only, unpooled engine for the detections database."""
    url = f"sqlite:///file:{Path(db_path).resolve()}?mode=ro&uri=true"
    return create_engine(
        url,
        poolclass=NullPool,
        connect_args={"check_same_thread": False},
    )


class DetectionStore:
    """Factory for per-request query sessions."""

    def __init__(self, engine: Engine, resolver: TimeResolver, media_base_url: str):
        self.engine = engine
        self.resolver = resolver
        self.media_base_url = media_base_url

    @classmethod
    def from_path(cls, db_path: Path, resolver: TimeResolver, media_base_url: str) -> "DetectionStore":
        return cls(create_store_engine(db_path), resolver, media_base_url)

    @contextmanager
    def open(self) -> Generator["DetectionQueries", None, None]:
        """Open a connection for one request and close it afterwards.

        Raises:
            StoreQueryError: Connecting or querying failed, or a stored
                timestamp could not be resolved
        """
        try:
            with self.engine.connect() as conn:
                yield DetectionQueries(conn, self.resolver, self.media_base_url)
        except SQLAlchemyError as e:
            logger.error(f"Detections query failed: {e}")
            raise StoreQueryError(str(e)) from e

    def dispose(self) -> None:
        self.engine.dispose()


class DetectionQueries:
    """Aggregate queries over one open connection."""

    def __init__(self, conn: Connection, resolver: TimeResolver, media_base_url: str):
        self.conn = conn
        self.resolver = resolver
        self.media_base_url = media_base_url

    def _resolve(self, date_text: str, time_text: Optional[str] = None) -> ResolvedInstant:
        try:
            if time_text is None:
                return self.resolver.resolve_date_text(date_text)
            return self.resolver.resolve_text(date_text, time_text)
        except (BirbsError, TypeError) as e:
            raise StoreQueryError(f"Stored timestamp {date_text} {time_text or ''} is invalid: {e}") from e

    def common_name_to_scientific_name(self) -> Dict[str, str]:
        rows = self.conn.execute(
            text(
                """
                SELECT com_name AS com_name, sci_name AS sci_name
                FROM detections
                GROUP BY com_name, sci_name
                """
            )
        )
        return {common: scientific for common, scientific in rows}

    def by_day_and_common_name(self) -> List[DailySpeciesSummary]:
        rows = self.conn.execute(
            text(
                """
                SELECT
                    date AS date,
                    com_name AS com_name,
                    COUNT(com_name) AS total,
                    AVG(confidence) AS average_confidence
                FROM detections
                GROUP BY date, com_name
                """
            )
        )
        return [
            DailySpeciesSummary(
                when=self._resolve(row.date),
                common_name=row.com_name,
                total=row.total,
                average_confidence=row.average_confidence,
            )
            for row in rows
        ]

    def by_common_name(self) -> List[SpeciesSummary]:
        rows = self.conn.execute(
            text(
                """
                SELECT
                    com_name AS com_name,
                    COUNT(com_name) AS total,
                    AVG(confidence) AS average_confidence,
                    MAX(date) AS max_date,
                    MAX(time) AS max_time
                FROM detections
                GROUP BY com_name
                """
            )
        )
        return [
            SpeciesSummary(
                common_name=row.com_name,
                total=row.total,
                average_confidence=row.average_confidence,
                last_detection=self._resolve(row.max_date, row.max_time),
            )
            for row in rows
        ]

    def detections(self) -> List[Detection]:
        rows = self.conn.execute(
            text(
                """
                SELECT
                    date AS date, time AS time,
                    sci_name AS sci_name, com_name AS com_name,
                    confidence AS confidence,
                    lat AS lat, lon AS lon,
                    cutoff AS cutoff, week AS week, sens AS sens,
                    overlap AS overlap, file_name AS file_name
                FROM detections
                ORDER BY date, time, sci_name
                """
            )
        )
        return [
            Detection(
                when=self._resolve(row.date, row.time),
                scientific_name=row.sci_name,
                common_name=row.com_name,
                confidence=row.confidence,
                latitude=row.lat,
                longitude=row.lon,
                cutoff=row.cutoff,
                week=row.week,
                sens=row.sens,
                overlap=row.overlap,
                file_name=row.file_name,
            )
            for row in rows
        ]

    def daily_detections(self, common_name: str) -> List[DailyCount]:
        rows = self.conn.execute(
            text(
                """
                SELECT date AS date, COUNT(*) AS detections FROM detections
                WHERE com_name = :common_name
                GROUP BY date
                ORDER BY date
                """
            ),
            {"common_name": common_name},
        )
        return [DailyCount(date=self._resolve(row.date), detections=row.detections) for row in rows]

    def hourly_detections(self, common_name: str) -> List[HourlyCount]:
        rows = self.conn.execute(
            text(
                """
                SELECT q.hour AS hour, COUNT(q.hour) AS detections FROM (
                    SELECT strftime('%H:00:00', time) AS hour FROM detections
                    WHERE com_name = :common_name
                ) AS q
                GROUP BY q.hour
                ORDER BY q.hour
                """
            ),
            {"common_name": common_name},
        )
        hourly = []
        for row in rows:
            try:
                at = parse_time(row.hour)
            except (BirbsError, TypeError) as e:
                raise StoreQueryError(f"Stored time {row.hour!r} is invalid: {e}") from e
            hourly.append(HourlyCount(number=at.hour, time=row.hour, detections=row.detections))
        return hourly

    def summarize_detections(self, common_name: str) -> int:
        """Total detections recorded for a species."""
        return self.conn.execute(
            text("SELECT COUNT(date) FROM detections WHERE com_name = :common_name"),
            {"common_name": common_name},
        ).scalar_one()

    def _candidate(
        self,
        date_text: str,
        time_text: str,
        common_name: str,
        file_name: str,
        confidence: float,
        scientific_name: Optional[str] = None,
    ) -> AvailabilityCandidate:
        when = self._resolve(date_text, time_text)
        audio_url, spectrogram_url = media_urls(
            self.media_base_url, when.local_date, common_name, file_name
        )
        return AvailabilityCandidate(
            when=when,
            common_name=common_name,
            scientific_name=scientific_name,
            confidence=confidence,
            file_name=file_name,
            audio_url=audio_url,
            spectrogram_url=spectrogram_url,
        )

    def files_for(self, common_name: str, limit: int = FILES_LIMIT) -> List[AvailabilityCandidate]:
        """Best recordings of a species, confidence descending."""
        rows = self.conn.execute(
            text(
                """
                SELECT date AS date, time AS time, file_name AS file_name, confidence AS confidence
                FROM detections
                WHERE com_name = :common_name
                ORDER BY confidence DESC
                LIMIT :limit
                """
            ),
            {"common_name": common_name, "limit": limit},
        )
        return [
            self._candidate(row.date, row.time, common_name, row.file_name, row.confidence)
            for row in rows
        ]

    def recently(self, now: Optional[datetime] = None) -> List[AvailabilityCandidate]:
        """Detections from the last 24 hours, confidence descending."""
        now = now or datetime.now(timezone.utc)
        since = now - RECENT_WINDOW
        # Dates are local; one extra day covers any zone offset.
        first_date = (since.astimezone(self.resolver.zone).date() - timedelta(days=1)).isoformat()

        rows = self.conn.execute(
            text(
                """
                SELECT
                    date AS date, time AS time,
                    com_name AS com_name, sci_name AS sci_name,
                    file_name AS file_name, confidence AS confidence
                FROM detections
                WHERE date >= :first_date
                ORDER BY confidence DESC, date DESC, time DESC
                """
            ),
            {"first_date": first_date},
        )
        recent = []
        for row in rows:
            candidate = self._candidate(
                row.date, row.time, row.com_name, row.file_name, row.confidence, row.sci_name
            )
            if since <= candidate.when.utc <= now:
                recent.append(candidate)
        return recent

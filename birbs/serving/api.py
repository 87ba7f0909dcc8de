"""
HTTP API for bird detections

Read-only JSON endpoints over the detections database, consumed by the
birbs web front end:

- summary endpoints (per species, per day and species, name lookup)
- per-species hourly/daily counts and best recordings
- detections from the last 24 hours
- a species photo looked up on Flickr

Recordings and spectrograms are probed for availability before they are
returned. Store failures surface as a bare HTTP 500.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional

import httpx
from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from ..config import Settings
from ..core.errors import StoreQueryError
from ..core.protocols import AvailabilityCandidate
from ..core.timeresolve import TimeResolver
from ..middleware import RequestTrackingMiddleware
from .availability import AvailabilityChecker
from .photos import FlickrClient, PhotoCache
from .store import DetectionQueries, DetectionStore

logger = logging.getLogger(__name__)


# ============================================================================
# Response Models
# ============================================================================


class SpeciesSummary(BaseModel):
    common_name: str
    total: int
    average_confidence: float
    last_detection: datetime


class DaySpeciesSummary(BaseModel):
    when: datetime
    common_name: str
    total: int
    average_confidence: float


class FileEntry(BaseModel):
    when: datetime
    confidence: float
    file_name: str
    spectrogram_url: str
    audio_url: str
    available: Optional[bool] = None


class RecentEntry(FileEntry):
    common_name: str
    scientific_name: Optional[str] = None


class DetectionsSummary(BaseModel):
    total: int


class FilesResponse(BaseModel):
    detections: DetectionsSummary
    files: List[FileEntry]


class RecentlyResponse(BaseModel):
    detections: List[RecentEntry]


class Daily(BaseModel):
    date: datetime
    detections: int


class Hourly(BaseModel):
    number: int
    time: str
    detections: int


def _file_entry(candidate: AvailabilityCandidate) -> FileEntry:
    return FileEntry(
        when=candidate.when.utc,
        confidence=candidate.confidence,
        file_name=candidate.file_name,
        spectrogram_url=candidate.spectrogram_url,
        audio_url=candidate.audio_url,
        available=candidate.available,
    )


def _recent_entry(candidate: AvailabilityCandidate) -> RecentEntry:
    return RecentEntry(
        **_file_entry(candidate).model_dump(),
        common_name=candidate.common_name,
        scientific_name=candidate.scientific_name,
    )


# ============================================================================
# Application Factory
# ============================================================================


def get_queries(request: Request) -> Iterator[DetectionQueries]:
    """One read-only store connection per request, closed afterwards."""
    with request.app.state.store.open() as queries:
        yield queries


def create_app(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
    store: Optional[DetectionStore] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """
    Create the birbs FastAPI application.

    Args:
        settings: Validated settings (``database`` is required unless
            ``store`` is given)
        http_client: Client for probes and Flickr; created (and closed on
            shutdown) when omitted
        store: Detections store; built from ``settings.database`` when omitted
        clock: Returns the current UTC time (for the last-24-hours window)

    Returns:
        Configured FastAPI app
    """
    resolver = TimeResolver(settings.timezone)
    if store is None:
        settings.require("database")
        store = DetectionStore.from_path(settings.database, resolver, settings.media_base_url)

    owns_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=settings.probe_timeout, follow_redirects=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_client:
            await http_client.aclose()
        store.dispose()

    app = FastAPI(
        title="birbs",
        description="Bird detection statistics and recordings",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTrackingMiddleware)

    app.state.settings = settings
    app.state.store = store
    app.state.checker = AvailabilityChecker(http_client, timeout=settings.probe_timeout)
    app.state.photo_cache = PhotoCache(settings.photo_cache_dir)
    app.state.flickr = (
        FlickrClient(settings.flickr_api_key, http_client) if settings.flickr_api_key else None
    )
    now = clock or (lambda: datetime.now(timezone.utc))

    if app.state.flickr is None:
        logger.warning("FLICKR_API_KEY is not set; species photos are unavailable")

    @app.exception_handler(StoreQueryError)
    async def store_query_error(request: Request, exc: StoreQueryError):
        logger.error(f"Store query failed for {request.url.path}: {exc}")
        return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    # ========================================================================
    # Summary Endpoints
    # ========================================================================

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "hello, world!"

    @app.get("/common-name-to-scientific-name.json", response_model=Dict[str, str])
    def common_name_to_scientific_name(queries: DetectionQueries = Depends(get_queries)):
        return queries.common_name_to_scientific_name()

    @app.get("/by-common-name.json", response_model=List[SpeciesSummary])
    def by_common_name(queries: DetectionQueries = Depends(get_queries)):
        return [
            SpeciesSummary(
                common_name=row.common_name,
                total=row.total,
                average_confidence=row.average_confidence,
                last_detection=row.last_detection.utc,
            )
            for row in queries.by_common_name()
        ]

    @app.get("/by-day-and-common-name.json", response_model=List[DaySpeciesSummary])
    def by_day_and_common_name(queries: DetectionQueries = Depends(get_queries)):
        return [
            DaySpeciesSummary(
                when=row.when.utc,
                common_name=row.common_name,
                total=row.total,
                average_confidence=row.average_confidence,
            )
            for row in queries.by_day_and_common_name()
        ]

    @app.get("/recently.json", response_model=RecentlyResponse)
    async def recently(queries: DetectionQueries = Depends(get_queries)):
        """Detections from the last 24 hours with media availability."""
        # SQLite calls block; keep them off the event loop
        candidates = await run_in_threadpool(queries.recently, now=now())
        checked = await app.state.checker.check_all(candidates)
        return RecentlyResponse(detections=[_recent_entry(c) for c in checked])

    # ========================================================================
    # Per-Species Endpoints
    # ========================================================================

    @app.get("/{common_name}/files.json", response_model=FilesResponse)
    async def files_for(common_name: str, queries: DetectionQueries = Depends(get_queries)):
        """Best recordings for a species with media availability."""
        total = await run_in_threadpool(queries.summarize_detections, common_name)
        candidates = await run_in_threadpool(queries.files_for, common_name)
        checked = await app.state.checker.check_all(candidates)
        return FilesResponse(
            detections=DetectionsSummary(total=total),
            files=[_file_entry(c) for c in checked],
        )

    @app.get("/{common_name}/hourly.json", response_model=List[Hourly])
    def hourly_for(common_name: str, queries: DetectionQueries = Depends(get_queries)):
        return [
            Hourly(number=row.number, time=row.time, detections=row.detections)
            for row in queries.hourly_detections(common_name)
        ]

    @app.get("/{common_name}/daily.json", response_model=List[Daily])
    def daily_for(common_name: str, queries: DetectionQueries = Depends(get_queries)):
        return [
            Daily(date=row.date.utc, detections=row.detections)
            for row in queries.daily_detections(common_name)
        ]

    @app.get("/{common_name}/photo.png")
    async def photo_for(common_name: str):
        """Species photo, fetched from Flickr once and then served from disk."""
        cache: PhotoCache = app.state.photo_cache
        cached = cache.get(common_name)
        if cached is not None:
            return Response(content=cached, media_type="image/jpeg")

        flickr: Optional[FlickrClient] = app.state.flickr
        if flickr is None:
            logger.error("Photo requested but FLICKR_API_KEY is not configured")
            return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

        try:
            photos = await flickr.search(common_name)
            if not photos:
                return Response(status_code=status.HTTP_404_NOT_FOUND)
            image = await flickr.image(photos[-1])
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Flickr lookup for {common_name!r} failed: {e}")
            return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

        cache.set(common_name, image)
        return Response(content=image, media_type="image/jpeg")

    return app

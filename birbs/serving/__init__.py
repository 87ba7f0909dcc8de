"""
Serving - read-only HTTP API over the detections database.

Provides the detections store, media availability checker, Flickr photo
lookup and the FastAPI application factory.
"""

from .api import create_app
from .availability import AvailabilityChecker, ProbeCache
from .photos import FlickrClient, PhotoCache
from .store import DetectionQueries, DetectionStore

__all__ = [
    "create_app",
    "AvailabilityChecker",
    "ProbeCache",
    "FlickrClient",
    "PhotoCache",
    "DetectionQueries",
    "DetectionStore",
]

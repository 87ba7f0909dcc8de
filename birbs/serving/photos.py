"""
Species photos from Flickr.

``FlickrClient`` searches the public photo API by species name and downloads
the chosen image. ``PhotoCache`` keeps downloaded images on disk so each
species is fetched from Flickr at most once.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)

SEARCH_ENDPOINT = "https://www.flickr.com/services/rest/"
IMAGE_URL = "https://farm{farm}.static.flickr.com/{server}/{id}_{secret}.jpg"


@dataclass(frozen=True)
class SimplePhoto:
    id: str
    owner: str
    title: str
    farm: int
    server: str
    secret: str


class FlickrClient:
    """Minimal Flickr REST client."""

    def __init__(self, api_key: str, http: httpx.AsyncClient, endpoint: str = SEARCH_ENDPOINT):
        self.api_key = api_key
        self.http = http
        self.endpoint = endpoint

    async def search(self, query: str) -> List[SimplePhoto]:
        """Most relevant photos for ``query`` (at most 10).

        Raises:
            httpx.HTTPError: Request failed or returned an error status
            ValueError: Response was not the expected JSON payload
        """
        response = await self.http.get(
            self.endpoint,
            params={
                "method": "flickr.photos.search",
                "api_key": self.api_key,
                "text": query,
                "sort": "relevance",
                "per_page": 10,
                "media": "photos",
                "format": "json",
                "nojsoncallback": 1,
            },
        )
        response.raise_for_status()
        payload = response.json()

        try:
            photos = payload["photos"]["photo"]
            return [
                SimplePhoto(
                    id=str(p["id"]),
                    owner=p["owner"],
                    title=p["title"],
                    farm=int(p["farm"]),
                    server=str(p["server"]),
                    secret=p["secret"],
                )
                for p in photos
            ]
        except (KeyError, TypeError) as e:
            raise ValueError(f"Unexpected Flickr search payload: {e}") from e

    async def image(self, photo: SimplePhoto) -> bytes:
        url = IMAGE_URL.format(farm=photo.farm, server=photo.server, id=photo.id, secret=photo.secret)
        response = await self.http.get(url)
        response.raise_for_status()
        return response.content


class PhotoCache:
    """
    Simple file-based cache of species photos.

    Features:
    - One file per species name
    - Atomic writes (temp file then rename)
    - Hit/miss statistics
    """

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)
        self.hits = 0
        self.misses = 0

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.cache_dir / f"{digest}.jpg"

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if path.exists():
            try:
                data = path.read_bytes()
            except OSError as e:
                logger.warning(f"Unreadable cached photo for {key!r}: {e}")
            else:
                self.hits += 1
                return data
        self.misses += 1
        return None

    def set(self, key: str, data: bytes) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        temp_file = path.with_suffix(".tmp")
        temp_file.write_bytes(data)
        temp_file.replace(path)

    def get_stats(self) -> dict:
        total_requests = self.hits + self.misses
        hit_rate = (self.hits / total_requests * 100) if total_requests > 0 else 0
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": f"{hit_rate:.1f}%",
        }

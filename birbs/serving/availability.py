"""
Media availability checking.

Before detections are handed to a client, the recording and spectrogram
each one links to are probed with HEAD requests against the station's web
server. A detection is available only when both probes succeed; any
transport error, timeout or non-success status marks it unavailable and is
never raised to the caller.

Probes run on a bounded pool of workers (``CONCURRENT_REQUESTS``). Work is
dispatched with its original index and written into a pre-sized result
list, so the output order always matches the input order regardless of
which probes finish first.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

import httpx

from ..core.errors import ProbeFailure
from ..core.protocols import AvailabilityCandidate

logger = logging.getLogger(__name__)

CONCURRENT_REQUESTS = 5
DEFAULT_TIMEOUT = 5.0


class ProbeCache:
    """Remember URLs that were found reachable for the life of the process.

    Only successes are cached; an unreachable file may appear later.
    """

    def __init__(self):
        self._reachable: Dict[str, bool] = {}
        self.hits = 0
        self.misses = 0

    def get(self, url: str) -> Optional[bool]:
        if url in self._reachable:
            self.hits += 1
            return True
        self.misses += 1
        return None

    def set(self, url: str) -> None:
        self._reachable[url] = True

    def __len__(self) -> int:
        return len(self._reachable)

    def get_stats(self) -> dict:
        total_requests = self.hits + self.misses
        hit_rate = (self.hits / total_requests * 100) if total_requests > 0 else 0
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": f"{hit_rate:.1f}%",
            "total_entries": len(self._reachable),
        }


class AvailabilityChecker:
    """Annotate candidates with whether their media can be fetched."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        concurrency: int = CONCURRENT_REQUESTS,
        timeout: float = DEFAULT_TIMEOUT,
        cache: Optional[ProbeCache] = None,
    ):
        """
        Args:
            client: Shared HTTP client (owned by the caller)
            concurrency: Maximum candidates being probed at once
            timeout: Seconds allowed per probe
            cache: Reachability cache, a fresh one by default
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.client = client
        self.concurrency = concurrency
        self.timeout = timeout
        self.cache = cache if cache is not None else ProbeCache()

    async def _head(self, url: str) -> None:
        """HEAD ``url``, raising ``ProbeFailure`` unless it answers 2xx."""
        try:
            response = await self.client.head(url, timeout=self.timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ProbeFailure(url=url, reason=f"{type(e).__name__}: {e}") from e
        if not response.is_success:
            raise ProbeFailure(url=url, reason=f"HTTP {response.status_code}")

    async def probe(self, url: str) -> bool:
        if self.cache.get(url):
            return True
        try:
            await self._head(url)
        except ProbeFailure as e:
            logger.debug(f"Unavailable: {e}")
            return False
        self.cache.set(url)
        return True

    async def check(self, candidate: AvailabilityCandidate) -> AvailabilityCandidate:
        # Sequential so each worker has at most one probe in flight
        available = await self.probe(candidate.spectrogram_url) and await self.probe(
            candidate.audio_url
        )
        return replace(candidate, available=available)

    async def check_all(
        self, candidates: Sequence[AvailabilityCandidate]
    ) -> List[AvailabilityCandidate]:
        """
        Check every candidate, preserving input order.

        Returns:
            New candidates, same length and order, each with ``available`` set
        """
        if not candidates:
            return []

        results: List[Optional[AvailabilityCandidate]] = [None] * len(candidates)
        queue: "asyncio.Queue[Tuple[int, AvailabilityCandidate]]" = asyncio.Queue()
        for item in enumerate(candidates):
            queue.put_nowait(item)

        async def worker() -> None:
            while True:
                try:
                    index, candidate = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                results[index] = await self.check(candidate)

        workers = [
            asyncio.create_task(worker()) for _ in range(min(self.concurrency, len(candidates)))
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            # Request cancelled or failed: release every probe task
            for task in workers:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        available = sum(1 for result in results if result.available)
        logger.info(f"Checked {len(results)} detections, {available} available")
        return results

import asyncio
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Protocol

import httpx
from structlog import get_logger

from comparables.config import settings
from comparables.errors import FeedParseError, FeedUnavailable
from comparables.models.property import PropertyRecord
from comparables.services.feed_parser import ParseResult, parse_feed
from comparables.utils.retry import retry_api
from comparables.utils.singleflight import SingleFlight

logger = get_logger(__name__)


class FeedSource(Protocol):
    async def fetch(self) -> bytes:
        ...


class FileFeedSource:
    def __init__(self, path: str):
        self.path = Path(path)

    async def fetch(self) -> bytes:
        try:
            return await asyncio.to_thread(self.path.read_bytes)
        except OSError as e:
            logger.error("Feed file could not be read", path=str(self.path), error=str(e))
            raise FeedUnavailable(f"Feed file could not be read: {self.path}") from e

    def __repr__(self):
        return f"FileFeedSource({str(self.path)!r})"


@retry_api(tries=2, delay=2, backoff=2, retry_on=(httpx.TransportError,))
async def _download(url: str, timeout: float, transport: Optional[httpx.AsyncBaseTransport] = None) -> bytes:
    async with httpx.AsyncClient(transport=transport, timeout=timeout, follow_redirects=True) as client:
        response = await client.get(url, headers={"Accept": "application/xml, text/xml"})
        if response.status_code != 200:
            logger.error("Feed download failed", url=url, status_code=response.status_code)
            raise FeedUnavailable(f"Feed download failed with status {response.status_code}")
        return response.content


class HttpFeedSource:
    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout or settings.FEED_TIMEOUT_SECONDS
        self.transport = transport

    async def fetch(self) -> bytes:
        try:
            return await _download(self.url, self.timeout, self.transport)
        except httpx.HTTPError as e:
            logger.error("Feed download failed", url=self.url, error=str(e))
            raise FeedUnavailable(f"Feed download failed: {e}") from e

    def __repr__(self):
        return f"HttpFeedSource({self.url!r})"


@dataclass
class FeedSnapshot:
    records: List[PropertyRecord] = field(default_factory=list)
    loaded_at: float = 0.0
    dropped: int = 0
    degraded: bool = False


class FeedProvider:
    """
    Serves the current property records, re-parsing the feed at most once per TTL window.

    Expiry is checked lazily on ``load()``. Concurrent loads share one in-flight
    fetch+parse. When a refresh fails the previous snapshot is served flagged as
    degraded, and the source is left alone for ``failure_backoff`` seconds.
    """

    _KEY = "feed"

    def __init__(
        self,
        source: FeedSource,
        ttl: Optional[float] = None,
        failure_backoff: Optional[float] = None,
        parser: Callable[[bytes], ParseResult] = parse_feed,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.ttl = settings.FEED_CACHE_TTL_SECONDS if ttl is None else ttl
        self.failure_backoff = (
            settings.FEED_FAILURE_BACKOFF_SECONDS if failure_backoff is None else failure_backoff
        )
        self.parser = parser
        self.clock = clock
        self.parse_count = 0
        self._snapshot: Optional[FeedSnapshot] = None
        self._failed_at: Optional[float] = None
        self._flight = SingleFlight()

    @property
    def snapshot(self) -> Optional[FeedSnapshot]:
        return self._snapshot

    @property
    def failing(self) -> bool:
        """True while the last refresh attempt failed."""
        return self._failed_at is not None

    def _is_fresh(self, now: float) -> bool:
        return self._snapshot is not None and now - self._snapshot.loaded_at < self.ttl

    def _in_backoff(self, now: float) -> bool:
        return self._failed_at is not None and now - self._failed_at < self.failure_backoff

    async def load(self) -> FeedSnapshot:
        now = self.clock()
        if self._is_fresh(now):
            return self._snapshot
        if self._snapshot is not None and self._in_backoff(now):
            return self._stale()
        return await self._flight.do(self._KEY, self._refresh)

    def _stale(self) -> FeedSnapshot:
        previous = self._snapshot
        return FeedSnapshot(
            records=previous.records,
            loaded_at=previous.loaded_at,
            dropped=previous.dropped,
            degraded=True,
        )

    async def _refresh(self) -> FeedSnapshot:
        started = self.clock()
        try:
            payload = await self.source.fetch()
            self.parse_count += 1
            parsed = self.parser(payload)
        except (FeedUnavailable, FeedParseError) as e:
            self._failed_at = self.clock()
            if self._snapshot is None:
                logger.error("feed_load_failed", source=repr(self.source), error=str(e))
                raise FeedUnavailable(str(e)) from e
            logger.error(
                "feed_refresh_failed_serving_stale",
                source=repr(self.source),
                error=str(e),
                snapshot_age=round(started - self._snapshot.loaded_at, 1),
            )
            return self._stale()

        self._failed_at = None
        self._snapshot = FeedSnapshot(
            records=parsed.records,
            loaded_at=self.clock(),
            dropped=parsed.dropped,
        )
        logger.info(
            "feed_loaded",
            count=len(parsed.records),
            dropped=parsed.dropped,
            duration=round(self.clock() - started, 3),
        )
        return self._snapshot


def build_feed_source() -> FeedSource:
    if settings.FEED_PATH:
        return FileFeedSource(settings.FEED_PATH)
    return HttpFeedSource(settings.FEED_URL)

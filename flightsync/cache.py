"""
In-memory cache for the latest provider snapshot and update feed.

Provides a staleness-aware cache in front of the DAA API, enabling:
- Reads without re-fetching inside the staleness window
- On-demand refresh when the cache is cold or stale
- One in-flight upstream fetch per feed, however many readers are waiting
- Thread-safe operations for concurrent access

Design rationale:
Readers and the background scheduler share one cache. Concurrent cold
reads would otherwise each hit the provider, so refreshes for the same
feed are coalesced: the first caller fetches, the rest wait for its
result. The cache lock is never held across the upstream call; waiters
are bounded by the client's HTTP timeout.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from flightsync.errors import NotYetAvailable, UpstreamFailure
from flightsync.ingestion.records import BATCH_KINDS, DELTA, SNAPSHOT, FlightBatch

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[str, FlightBatch], None]


@dataclass
class CachedBatch:
    """A fetched batch plus when it was stored."""
    batch: FlightBatch
    refreshed_monotonic: float
    refreshed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class _InflightFetch:
    """Result slot shared by the leader and the waiters of one fetch."""

    def __init__(self):
        self.done = threading.Event()
        self.batch: Optional[FlightBatch] = None
        self.error: Optional[Exception] = None


class SnapshotCache:
    """
    Thread-safe cache of the latest snapshot and delta batches.

    The fetcher is any object with a fetch(kind) method returning a
    FlightBatch (normally a DAAClient).
    """

    def __init__(
        self,
        fetcher,
        max_staleness_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fetcher = fetcher
        self.max_staleness_seconds = max_staleness_seconds
        self._clock = clock

        self._entries: Dict[str, Optional[CachedBatch]] = {kind: None for kind in BATCH_KINDS}
        self._inflight: Dict[str, _InflightFetch] = {}
        self._lock = threading.Lock()

        self._on_update_callbacks: List[UpdateCallback] = []

        # Statistics
        self._hits = 0
        self._misses = 0
        self._fetches = 0
        self._failures = 0

    def add_update_callback(self, callback: UpdateCallback) -> None:
        """
        Register callback to be invoked after each successful fetch.

        Callback receives the feed kind and the new batch.
        """
        self._on_update_callbacks.append(callback)

    def peek(self, kind: str) -> Optional[CachedBatch]:
        """Current entry for a feed, without refreshing."""
        with self._lock:
            return self._entries[kind]

    def _age(self, entry: CachedBatch) -> float:
        return self._clock() - entry.refreshed_monotonic

    def _load(self, kind: str, max_staleness: Optional[float]) -> FlightBatch:
        """
        Return a fresh cached batch, or fetch one, joining an in-flight fetch.

        The freshness check and the in-flight registration happen under one
        lock acquisition, so a reader can never start a second fetch for a
        batch another thread has just stored. max_staleness=None skips the
        freshness check (forced refresh).

        Raises whatever the fetch that was joined raised.
        """
        with self._lock:
            entry = self._entries[kind]
            if max_staleness is not None:
                if entry is not None and self._age(entry) < max_staleness:
                    self._hits += 1
                    return entry.batch
                self._misses += 1

            inflight = self._inflight.get(kind)
            leader = inflight is None
            if leader:
                inflight = _InflightFetch()
                self._inflight[kind] = inflight

        if not leader:
            inflight.done.wait()
        else:
            try:
                batch = self.fetcher.fetch(kind)
            except Exception as e:
                # Waiters re-raise whatever the leader hit
                inflight.error = e
                with self._lock:
                    self._failures += 1
            else:
                inflight.batch = batch
                with self._lock:
                    self._fetches += 1
                    self._entries[kind] = CachedBatch(
                        batch=batch,
                        refreshed_monotonic=self._clock(),
                    )
            finally:
                with self._lock:
                    self._inflight.pop(kind, None)
                inflight.done.set()

            if inflight.batch is not None:
                logger.debug(f'Cache stored {len(inflight.batch)} {kind} records')
                self._notify(kind, inflight.batch)

        if inflight.error is not None:
            raise inflight.error
        return inflight.batch

    def _notify(self, kind: str, batch: FlightBatch) -> None:
        for callback in self._on_update_callbacks:
            try:
                callback(kind, batch)
            except Exception as e:
                logger.error(f'Cache update callback error: {e}')

    def refresh(self, kind: str) -> FlightBatch:
        """
        Force a fetch of one feed.

        Raises:
            UpstreamFailure: the fetch failed; the previous entry is kept
        """
        return self._load(kind, None)

    def get(self, kind: str, max_staleness: Optional[float] = None) -> FlightBatch:
        """
        Get a feed, refreshing first if it is absent or older than max_staleness.

        A failed refresh falls back to the previous entry.

        Raises:
            NotYetAvailable: nothing cached and the refresh failed
        """
        if max_staleness is None:
            max_staleness = self.max_staleness_seconds

        try:
            return self._load(kind, max_staleness)
        except UpstreamFailure as e:
            with self._lock:
                entry = self._entries[kind]
            if entry is not None:
                logger.warning(f'Serving stale {kind} after failed refresh: {e}')
                return entry.batch
            raise NotYetAvailable(kind) from e

    def get_snapshot(self, max_staleness: Optional[float] = None) -> FlightBatch:
        return self.get(SNAPSHOT, max_staleness)

    def get_delta(self, max_staleness: Optional[float] = None) -> FlightBatch:
        return self.get(DELTA, max_staleness)

    @property
    def last_refreshed_at(self) -> Optional[datetime]:
        """Most recent successful refresh across both feeds."""
        with self._lock:
            times = [e.refreshed_at for e in self._entries.values() if e is not None]
        return max(times) if times else None

    @property
    def stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            feeds = {}
            for kind, entry in self._entries.items():
                feeds[kind] = {
                    'cached': entry is not None,
                    'records': len(entry.batch) if entry else 0,
                    'age_seconds': round(self._age(entry), 1) if entry else None,
                    'refreshed_at': entry.refreshed_at.isoformat() if entry else None,
                    'refreshing': kind in self._inflight,
                }
            return {
                'feeds': feeds,
                'hits': self._hits,
                'misses': self._misses,
                'fetches': self._fetches,
                'failures': self._failures,
                'max_staleness_seconds': self.max_staleness_seconds,
            }

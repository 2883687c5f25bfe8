"""
Sync pipeline - orchestrates data flow from the DAA API to the database.

Pipeline stages:
1. Fetch: refresh the snapshot and update feeds through the cache
2. Flatten: decode provider records into FlightRecords (done by the client)
3. Reconcile: upsert each record and append stand history
   (driven by the cache update callback, so on-demand refreshes from
   cold reads are reconciled too)

Batches fetched by a scheduler tick are reconciled inline so the tick can
report per-record failures. Batches fetched by a reader are handed to a
single reconcile worker so the read returns without waiting on the database.

The scheduler loop itself holds no business logic: it calls run_once()
immediately and then once per interval. Tests call run_once() directly.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from flightsync.cache import SnapshotCache
from flightsync.errors import PartialBatchFailure, UpstreamFailure
from flightsync.ingestion.reconciler import ReconcileResult, Reconciler
from flightsync.ingestion.records import BATCH_KINDS, SNAPSHOT, FlightBatch

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Outcome of one scheduler tick."""
    fetched: Dict[str, int] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    failed_keys: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class SyncPipeline:
    """
    Manages the sync lifecycle.

    Coordinates cache refreshes and reconciliation. Can run as a
    background thread for continuous polling.
    """

    def __init__(
        self,
        cache: SnapshotCache,
        reconciler: Reconciler,
        interval_seconds: float = 300.0,
        reconcile_delta: bool = False,
    ):
        """
        Initialize the sync pipeline.

        Args:
            cache: snapshot cache wrapping the upstream client
            reconciler: upsert engine for the durable store
            interval_seconds: time between scheduled ticks
            reconcile_delta: also reconcile update-feed batches
        """
        self.cache = cache
        self.reconciler = reconciler
        self.interval_seconds = interval_seconds
        self.reconcile_delta = reconcile_delta

        # State tracking
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._tick_count = 0
        self._error_count = 0
        self._last_tick_time: float = 0
        self._last_tick_errors: Dict[str, str] = {}
        self._last_result: Optional[ReconcileResult] = None

        # Reader-triggered reconciles, one at a time in arrival order
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='flightsync-reconcile')
        self._pending: Optional[Future] = None
        self._pending_lock = threading.Lock()

        # Set while run_once() is executing on the current thread
        self._tick_state = threading.local()

        cache.add_update_callback(self._on_cache_update)

    def _reconcile(self, kind: str, batch: FlightBatch) -> Optional[PartialBatchFailure]:
        """Reconcile one batch, returning the failure if any record failed."""
        result = self.reconciler.reconcile(batch)
        self._last_result = result
        try:
            result.raise_for_failures()
        except PartialBatchFailure as e:
            logger.warning(f'{kind} reconcile incomplete: {e}')
            return e
        return None

    def _on_cache_update(self, kind: str, batch: FlightBatch) -> None:
        """Reconcile a freshly fetched batch."""
        if kind != SNAPSHOT and not self.reconcile_delta:
            return

        failures = getattr(self._tick_state, 'failures', None)
        if failures is not None:
            failure = self._reconcile(kind, batch)
            if failure is not None:
                failures[kind] = failure
            return

        with self._pending_lock:
            self._pending = self._executor.submit(self._reconcile, kind, batch)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for reader-triggered reconciles queued so far.

        Returns False if they are still running after timeout.
        """
        with self._pending_lock:
            pending = self._pending
        if pending is None:
            return True
        done, _ = wait([pending], timeout=timeout)
        return bool(done)

    def run_once(self) -> SyncReport:
        """
        Execute one sync cycle.

        Never raises: a failed feed is logged and recorded on the report,
        and the next tick retries independently. Records that failed to
        reconcile are reported per feed as a PartialBatchFailure.
        """
        report = SyncReport()
        self._tick_state.failures = {}

        try:
            for kind in BATCH_KINDS:
                try:
                    batch = self.cache.refresh(kind)
                except UpstreamFailure as e:
                    report.errors[kind] = str(e)
                    logger.error(f'Sync {kind} failed: {e}')
                    continue
                except Exception as e:
                    report.errors[kind] = str(e)
                    logger.exception(f'Unexpected error during {kind} sync: {e}')
                    continue
                report.fetched[kind] = len(batch)

                failure = self._tick_state.failures.get(kind)
                if failure is not None:
                    report.errors[kind] = str(failure)
                    report.failed_keys[kind] = failure.failed_keys
        finally:
            self._tick_state.failures = None

        self._tick_count += 1
        self._last_tick_time = time.time()
        self._last_tick_errors = dict(report.errors)
        if not report.ok:
            self._error_count += 1

        logger.info(f'Sync tick {self._tick_count}: fetched={report.fetched} errors={list(report.errors)}')
        return report

    def run_continuous(self, interval: Optional[float] = None) -> None:
        """
        Run the sync loop continuously.

        Ticks immediately, then waits a full interval after each tick.
        This method blocks - use start_background() for non-blocking.
        """
        interval = interval or self.interval_seconds
        self._running = True

        logger.info(f'Starting continuous sync (interval={interval}s)')

        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(interval)

        self._running = False
        logger.info('Sync stopped')

    def start_background(self, interval: Optional[float] = None) -> None:
        """Start syncing in a background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning('Sync already running')
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run_continuous,
            args=(interval,),
            name='flightsync-scheduler',
            daemon=True,
        )
        self._thread.start()
        logger.info('Background sync started')

    def stop(self) -> None:
        """Stop background syncing."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)
        self._running = False

    @property
    def stats(self) -> dict:
        """Get sync statistics."""
        return {
            'tick_count': self._tick_count,
            'error_count': self._error_count,
            'last_tick_time': self._last_tick_time,
            'interval_seconds': self.interval_seconds,
            'last_tick_errors': dict(self._last_tick_errors),
            'last_reconcile': self._last_result.to_dict() if self._last_result else None,
            'running': self._running,
        }

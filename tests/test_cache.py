"""
Tests for the snapshot cache: staleness, coalescing and cold starts.
"""

import threading

import pytest

from conftest import raw_flight
from flightsync.errors import NotYetAvailable, UpstreamError, UpstreamTimeout
from flightsync.ingestion.records import DELTA, SNAPSHOT


def _read_concurrently(fn, n=10):
    results, errors = [], []
    barrier = threading.Barrier(n)

    def worker():
        barrier.wait()
        try:
            results.append(fn())
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    return threads, results, errors


class TestStaleness:

    def test_read_within_window_uses_cache(self, cache, fake_client, clock):
        fake_client.push(SNAPSHOT, [raw_flight('K1')])

        first = cache.get_snapshot()
        clock.advance(299)
        second = cache.get_snapshot()

        assert second is first
        assert fake_client.calls[SNAPSHOT] == 1
        assert cache.stats['hits'] == 1

    def test_read_after_window_refetches(self, cache, fake_client, clock):
        fake_client.push(SNAPSHOT, [raw_flight('K1')])
        fake_client.push(SNAPSHOT, [raw_flight('K1'), raw_flight('K2')])

        cache.get_snapshot()
        clock.advance(301)
        batch = cache.get_snapshot()

        assert batch.flight_keys == ['K1', 'K2']
        assert fake_client.calls[SNAPSHOT] == 2

    def test_explicit_max_staleness_overrides_default(self, cache, fake_client, clock):
        cache.get_snapshot()
        clock.advance(10)

        cache.get_snapshot(max_staleness=5)

        assert fake_client.calls[SNAPSHOT] == 2

    def test_feeds_are_cached_independently(self, cache, fake_client):
        fake_client.push(SNAPSHOT, [raw_flight('K1')])
        fake_client.push(DELTA, {'updates': [raw_flight('K2')]})

        assert cache.get_snapshot().flight_keys == ['K1']
        assert cache.get_delta().flight_keys == ['K2']
        assert fake_client.calls == {SNAPSHOT: 1, DELTA: 1}


class TestCoalescing:

    def test_concurrent_stale_reads_trigger_one_fetch(self, cache, fake_client, clock):
        fake_client.push(SNAPSHOT, [raw_flight('K1')])
        cache.get_snapshot()
        clock.advance(301)

        fake_client.push(SNAPSHOT, [raw_flight('K2')])
        fake_client.gate = threading.Event()
        fake_client.started.clear()

        threads, results, errors = _read_concurrently(cache.get_snapshot)
        assert fake_client.started.wait(timeout=5)
        fake_client.gate.set()
        for t in threads:
            t.join(timeout=5)

        assert errors == []
        assert len(results) == 10
        assert fake_client.calls[SNAPSHOT] == 2
        assert all(r.flight_keys == ['K2'] for r in results)

    def test_concurrent_cold_reads_share_one_failure(self, cache, fake_client):
        fake_client.push(SNAPSHOT, UpstreamTimeout('no response'))
        fake_client.gate = threading.Event()

        threads, results, errors = _read_concurrently(cache.get_snapshot)
        assert fake_client.started.wait(timeout=5)
        fake_client.gate.set()
        for t in threads:
            t.join(timeout=5)

        assert results == []
        assert len(errors) == 10
        assert all(isinstance(e, NotYetAvailable) for e in errors)
        assert fake_client.calls[SNAPSHOT] == 1


class TestColdStart:

    def test_cold_read_blocks_until_first_fetch(self, cache, fake_client):
        fake_client.push(SNAPSHOT, [raw_flight('K1')])

        batch = cache.get_snapshot()

        assert batch.flight_keys == ['K1']
        assert cache.peek(SNAPSHOT).batch is batch

    def test_cold_read_with_upstream_down_is_not_yet_available(self, cache, fake_client):
        fake_client.push(SNAPSHOT, UpstreamTimeout('no response'))

        with pytest.raises(NotYetAvailable) as exc_info:
            cache.get_snapshot()

        assert exc_info.value.kind == SNAPSHOT
        assert isinstance(exc_info.value.__cause__, UpstreamTimeout)

    def test_empty_snapshot_is_served_not_unavailable(self, cache, fake_client):
        fake_client.push(SNAPSHOT, [])

        assert len(cache.get_snapshot()) == 0


class TestFailedRefresh:

    def test_timeout_leaves_previous_snapshot_untouched(self, cache, fake_client, clock):
        fake_client.push(SNAPSHOT, [raw_flight('K1')])
        previous = cache.get_snapshot()
        clock.advance(301)
        fake_client.push(SNAPSHOT, UpstreamTimeout('no response'))

        with pytest.raises(UpstreamTimeout):
            cache.refresh(SNAPSHOT)

        assert cache.peek(SNAPSHOT).batch is previous
        # Stale reads fall back to the previous value
        assert cache.get_snapshot() is previous
        assert cache.stats['failures'] == 2

    def test_http_error_surfaces_on_forced_refresh(self, cache, fake_client):
        fake_client.push(DELTA, UpstreamError(401, 'bad key'))

        with pytest.raises(UpstreamError) as exc_info:
            cache.refresh(DELTA)

        assert exc_info.value.status == 401
        assert cache.peek(DELTA) is None


class TestCallbacks:

    def test_callbacks_receive_fresh_batches(self, cache, fake_client):
        seen = []
        cache.add_update_callback(lambda kind, batch: seen.append((kind, batch.flight_keys)))
        fake_client.push(SNAPSHOT, [raw_flight('K1')])

        cache.refresh(SNAPSHOT)

        assert seen == [(SNAPSHOT, ['K1'])]

    def test_callback_error_does_not_break_refresh(self, cache, fake_client):
        def broken(kind, batch):
            raise RuntimeError('boom')

        cache.add_update_callback(broken)
        fake_client.push(SNAPSHOT, [raw_flight('K1')])

        assert cache.refresh(SNAPSHOT).flight_keys == ['K1']
        assert cache.peek(SNAPSHOT) is not None

    def test_callbacks_not_called_on_failure(self, cache, fake_client):
        seen = []
        cache.add_update_callback(lambda kind, batch: seen.append(kind))
        fake_client.push(SNAPSHOT, UpstreamTimeout('no response'))

        with pytest.raises(UpstreamTimeout):
            cache.refresh(SNAPSHOT)

        assert seen == []

"""
Shared pytest fixtures.

Databases are temp-file SQLite so that several threads can hold their own
connections; the upstream provider is replaced by FakeClient.
"""

import threading
from typing import Any, Dict, List, Optional

import pytest

from flightsync.cache import SnapshotCache
from flightsync.ingestion.reconciler import Reconciler
from flightsync.ingestion.records import DELTA, SNAPSHOT, flatten_record, parse_batch
from flightsync.models import create_db_engine, create_session_factory, init_db


def raw_flight(
    flight_key: str,
    stand: Optional[str] = None,
    identity: Optional[str] = 'EI123',
    direction: Optional[str] = 'A',
    mod_time: str = '2026-10-19T08:00:00Z',
    **flight_data: Any,
) -> Dict[str, Any]:
    """A provider-shaped flight object."""
    data = {'StandPosition': stand}
    data.update(flight_data)
    return {
        'ModTime': mod_time,
        'Identification': {
            'FlightKey': flight_key,
            'FlightIdentity': identity,
            'CarrierCode': 'EI',
            'FlightDirection': direction,
            'ScheduledDate': '2026-10-19',
        },
        'OperationalTimes': {
            'ScheduledDateTime': '2026-10-19T10:30:00Z',
        },
        'FlightData': data,
        'Load': {'TotalPassengerCount': 174},
    }


def record(flight_key: str, stand: Optional[str] = None, **kwargs):
    """A flattened FlightRecord."""
    return flatten_record(raw_flight(flight_key, stand, **kwargs))


class FakeClient:
    """
    Stand-in for DAAClient.

    Queue payloads or exceptions per feed with `push`; when the queue for a
    feed is empty the last payload is repeated. Set `gate` to an Event to
    make fetch() block until the test releases it.
    """

    def __init__(self):
        self.responses: Dict[str, List[Any]] = {SNAPSHOT: [], DELTA: []}
        self.last: Dict[str, Any] = {SNAPSHOT: [], DELTA: []}
        self.calls: Dict[str, int] = {SNAPSHOT: 0, DELTA: 0}
        self.gate: Optional[threading.Event] = None
        self.started = threading.Event()
        self._lock = threading.Lock()

    def push(self, kind: str, response: Any) -> None:
        self.responses[kind].append(response)

    def fetch(self, kind: str):
        with self._lock:
            self.calls[kind] += 1
            if self.responses[kind]:
                response = self.responses[kind].pop(0)
            else:
                response = self.last[kind]
            self.last[kind] = response

        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)

        if isinstance(response, Exception):
            raise response
        return parse_batch(kind, response)


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f'sqlite:///{tmp_path / "flightsync-test.db"}')
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def reconciler(session_factory):
    return Reconciler(session_factory)


@pytest.fixture
def fake_client():
    return FakeClient()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(fake_client, clock):
    return SnapshotCache(fake_client, max_staleness_seconds=300, clock=clock)

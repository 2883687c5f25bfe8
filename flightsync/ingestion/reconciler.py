"""
Reconciler - merges incoming flight records into the durable store.

Each record is reconciled in its own transaction:
1. Lock: per flight key in-process, plus a transaction-scoped advisory lock
   on the key (PostgreSQL) and SELECT ... FOR UPDATE on the row. The advisory
   lock also covers a first sighting, when there is no row to lock yet
2. Read: current stand for the key (absent for new flights)
3. Upsert: INSERT ... ON CONFLICT (flight_key) DO UPDATE, last write wins
4. Detect: append a StandHistory row if the stand changed
5. Commit: upsert and history entry land together or not at all

A failure on one record rolls back that record only; the rest of the batch
continues and the failed keys are reported on the result.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from flightsync.errors import PartialBatchFailure, PersistenceError
from flightsync.ingestion.change_detector import normalize_stand, record_stand_change
from flightsync.ingestion.records import FlightBatch, FlightRecord
from flightsync.models import Flight, StandHistory

logger = logging.getLogger(__name__)


class KeyedLock:
    """
    One threading.Lock per key, created on demand.

    Locks are reference counted and dropped once no thread holds or waits
    on them, so the registry only grows with concurrent keys.
    """

    def __init__(self):
        self._locks: Dict[str, List[Any]] = {}  # key -> [lock, users]
        self._meta_lock = threading.Lock()

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._meta_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1

        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._meta_lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._meta_lock:
            return len(self._locks)


@dataclass
class RecordOutcome:
    """What happened to a single record."""
    flight_key: str
    inserted: bool
    history_note: Optional[str] = None


@dataclass
class ReconcileResult:
    """Summary of one reconcile() call."""
    count: int = 0
    failed_keys: List[str] = field(default_factory=list)
    inserted: int = 0
    updated: int = 0
    history_entries: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed_keys

    def raise_for_failures(self) -> None:
        """Raise PartialBatchFailure if any record failed."""
        if self.failed_keys:
            raise PartialBatchFailure(self.failed_keys, self.count)

    def to_dict(self) -> dict:
        return {
            'count': self.count,
            'failed_keys': list(self.failed_keys),
            'inserted': self.inserted,
            'updated': self.updated,
            'history_entries': self.history_entries,
        }


def _upsert_statement(dialect_name: str, values: Dict[str, Any]):
    """
    Build INSERT ... ON CONFLICT DO UPDATE for the session's dialect.

    Returns None for dialects without ON CONFLICT support.
    """
    if dialect_name == 'postgresql':
        insert = postgresql_insert
    elif dialect_name == 'sqlite':
        insert = sqlite_insert
    else:
        return None

    stmt = insert(Flight).values(**values)
    set_ = {
        name: stmt.excluded[name]
        for name in values
        if name != 'flight_key'
    }
    set_['updated_at'] = func.now()
    return stmt.on_conflict_do_update(
        index_elements=['flight_key'],
        set_=set_,
    )


def _key_lock_statement(dialect_name: str, flight_key: str):
    """
    Build a transaction-scoped advisory lock on the flight key.

    Returns None for dialects without advisory locks.
    """
    if dialect_name == 'postgresql':
        return select(func.pg_advisory_xact_lock(func.hashtext(flight_key)))
    return None


class Reconciler:
    """
    Insert-or-update engine for flight records.

    Safe to call from several threads at once: writes for the same flight
    key are serialized, different keys proceed in parallel.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        preserve_stand_on_empty: bool = True,
    ):
        """
        Initialize the reconciler.

        Args:
            session_factory: SQLAlchemy sessionmaker for the durable store
            preserve_stand_on_empty: keep the persisted stand when the
                incoming record has none, instead of overwriting with null
        """
        self.session_factory = session_factory
        self.preserve_stand_on_empty = preserve_stand_on_empty
        self._key_locks = KeyedLock()

    def _column_values(self, record: FlightRecord, previous_stand: Optional[str]) -> Dict[str, Any]:
        values = record.column_values()
        stand = normalize_stand(record.stand_position)
        if stand is None and self.preserve_stand_on_empty:
            stand = previous_stand
        values['stand_position'] = stand
        return values

    def _write(self, session: Session, values: Dict[str, Any]) -> None:
        stmt = _upsert_statement(session.get_bind().dialect.name, values)
        if stmt is not None:
            session.execute(stmt)
        else:
            session.merge(Flight(**values))

    def reconcile_record(self, record: FlightRecord) -> RecordOutcome:
        """
        Upsert one record and append its stand history atomically.

        Raises:
            PersistenceError: the transaction failed and was rolled back
        """
        with self._key_locks.hold(record.flight_key):
            session = self.session_factory()
            try:
                with session.begin():
                    lock_stmt = _key_lock_statement(session.get_bind().dialect.name, record.flight_key)
                    if lock_stmt is not None:
                        session.execute(lock_stmt)

                    row = session.execute(
                        select(Flight.stand_position)
                        .where(Flight.flight_key == record.flight_key)
                        .with_for_update()
                    ).first()
                    previous_stand = row[0] if row is not None else None

                    self._write(session, self._column_values(record, previous_stand))
                    entry = record_stand_change(session, record, previous_stand)
            except SQLAlchemyError as e:
                raise PersistenceError(record.flight_key, str(e)) from e
            finally:
                session.close()

        if entry is not None:
            logger.info(f'Stand {entry.notes} for flight {record.flight_key}')

        return RecordOutcome(
            flight_key=record.flight_key,
            inserted=row is None,
            history_note=entry.notes if entry is not None else None,
        )

    def reconcile(self, batch: Union[FlightBatch, Iterable[FlightRecord]]) -> ReconcileResult:
        """
        Reconcile every record in the batch.

        Per-record failures are logged and collected in failed_keys;
        they never abort the rest of the batch.
        """
        records = batch.records if isinstance(batch, FlightBatch) else list(batch)
        result = ReconcileResult()

        for record in records:
            try:
                outcome = self.reconcile_record(record)
            except PersistenceError as e:
                logger.error(f'Reconcile failed for {record.flight_key}: {e}')
                result.failed_keys.append(record.flight_key)
                continue

            result.count += 1
            if outcome.inserted:
                result.inserted += 1
            else:
                result.updated += 1
            if outcome.history_note:
                result.history_entries += 1

        if result.failed_keys:
            logger.warning(
                f'Reconciled {result.count} records, '
                f'{len(result.failed_keys)} failed: {result.failed_keys}'
            )
        else:
            logger.info(
                f'Reconciled {result.count} records '
                f'({result.inserted} new, {result.history_entries} stand changes)'
            )

        return result

    # -------------------------------------------------------------------------
    # Read helpers for the API layer
    # -------------------------------------------------------------------------

    def get_flight(self, flight_key: str) -> Optional[Flight]:
        with self.session_factory() as session:
            return session.get(Flight, flight_key)

    def stand_history_for(self, flight_key: str) -> List[StandHistory]:
        """History entries for a flight, oldest first."""
        with self.session_factory() as session:
            return list(session.scalars(
                select(StandHistory)
                .where(StandHistory.flight_key == flight_key)
                .order_by(StandHistory.assigned_at.asc(), StandHistory.id.asc())
            ))

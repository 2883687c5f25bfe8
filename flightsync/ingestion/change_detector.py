"""
Stand change detection.

Compares the stand currently persisted for a flight with the incoming one
and appends a StandHistory row when they differ. record_stand_change() must
be called inside the reconciler's per-record transaction so the history row
commits or rolls back together with the flight upsert.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from flightsync.ingestion.records import FlightRecord
from flightsync.models import StandHistory

INITIAL_ASSIGNMENT = 'initial assignment'


def normalize_stand(value: Optional[str]) -> Optional[str]:
    """Treat empty and whitespace-only stands as absent. Others are kept as sent."""
    if value is None or not value.strip():
        return None
    return value


def describe_stand_change(previous: Optional[str], incoming: Optional[str]) -> Optional[str]:
    """
    Describe the transition from previous to incoming stand.

    Returns None when no history entry is warranted: the incoming stand is
    empty, or equal to the persisted one.
    """
    previous = normalize_stand(previous)
    incoming = normalize_stand(incoming)

    if incoming is None or incoming == previous:
        return None
    if previous is None:
        return INITIAL_ASSIGNMENT
    return f'changed from {previous} to {incoming}'


def record_stand_change(
    session: Session,
    record: FlightRecord,
    previous: Optional[str],
) -> Optional[StandHistory]:
    """
    Add a StandHistory row to the session if the stand changed.

    The caller owns the transaction.
    """
    notes = describe_stand_change(previous, record.stand_position)
    if notes is None:
        return None

    entry = StandHistory(
        flight_key=record.flight_key,
        stand_position=normalize_stand(record.stand_position),
        previous_stand_position=normalize_stand(previous),
        assigned_at=datetime.now(timezone.utc),
        source_mod_time=record.mod_time,
        notes=notes,
    )
    session.add(entry)
    return entry

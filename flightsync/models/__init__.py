"""
Database models for FlightSync.

Two tables:
1. flights - one row per flight key, upserted on every sync pass
2. stand_history - append-only log of stand assignments
"""

from flightsync.models.base import (
    Base,
    create_db_engine,
    create_session_factory,
    init_db,
    session_scope,
)
from flightsync.models.flight import Flight
from flightsync.models.stand_history import StandHistory

__all__ = [
    'Base',
    'create_db_engine',
    'create_session_factory',
    'init_db',
    'session_scope',
    'Flight',
    'StandHistory',
]

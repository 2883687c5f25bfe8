"""
FlightSync Package.

Airport flight-operations sync service built with Flask, SQLAlchemy and
requests.

Modules:
    api/         REST endpoints for cached feeds, stored flights and status
    models/      SQLAlchemy ORM models (Flight, StandHistory)
    ingestion/   DAA client, record flattening, reconciler and sync pipeline
    cache.py     Thread-safe snapshot cache with coalesced refreshes
    config.py    Centralized configuration from environment variables
    errors.py    Exception taxonomy
"""

__version__ = '1.0.0'

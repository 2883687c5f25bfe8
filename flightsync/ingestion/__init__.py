"""
Data ingestion module for FlightSync.

Handles polling the DAA API, flattening provider records, and reconciling
them into the relational database with stand change tracking.

The scheduler lives in flightsync.ingestion.pipeline; it is not re-exported
here because it depends on flightsync.cache, which imports this package.
"""

from flightsync.ingestion.daa_client import DAAClient
from flightsync.ingestion.reconciler import Reconciler

__all__ = ['DAAClient', 'Reconciler']

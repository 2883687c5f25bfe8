"""
API module for FlightSync.

Provides REST endpoints for:
- Cached provider feeds (snapshot, delta)
- Stored flights and their stand history
- System status
"""

from flightsync.api.flights import flights_bp
from flightsync.api.status import status_bp

__all__ = ['flights_bp', 'status_bp']

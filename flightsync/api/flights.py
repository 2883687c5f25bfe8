"""
Flight data API endpoints.

Provides endpoints for:
- GET /api/flights/snapshot - Latest full snapshot from the provider
- GET /api/flights/delta - Latest update feed from the provider
- GET /api/flights/<flight_key> - Stored state of one flight
- GET /api/flights/<flight_key>/stand-history - Stand assignment trail
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from flightsync.errors import NotYetAvailable
from flightsync.ingestion.records import DELTA, SNAPSHOT

logger = logging.getLogger(__name__)

flights_bp = Blueprint('flights', __name__, url_prefix='/api/flights')


def _max_staleness_arg(cache):
    """
    Optional ?max_staleness=<seconds> override, ignored if invalid.

    The override can only widen the cache window. Values below the
    configured window are raised to it, so callers cannot force upstream
    fetches.
    """
    value = request.args.get('max_staleness')
    if value is None:
        return None
    try:
        requested = float(value)
    except ValueError:
        return None
    return max(requested, cache.max_staleness_seconds)


def _serve_feed(kind: str):
    start_time = time.perf_counter()
    cache = current_app.config['SNAPSHOT_CACHE']

    try:
        batch = cache.get(kind, _max_staleness_arg(cache))
    except NotYetAvailable as e:
        logger.warning(f'{kind} requested before any successful fetch: {e.__cause__}')
        return jsonify({
            'error': 'not yet available',
            'kind': kind,
            'message': str(e),
        }), 503

    age_seconds = (datetime.now(timezone.utc) - batch.fetched_at).total_seconds()
    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'kind': kind,
        'fetched_at': batch.fetched_at.isoformat(),
        'age_seconds': round(age_seconds, 1),
        'record_count': len(batch),
        'data': batch.payload,
        'query_time_ms': round(query_time_ms, 2),
    })


@flights_bp.route('/snapshot', methods=['GET'])
def get_snapshot():
    """
    Latest full snapshot, served from cache.

    Refreshes first if the cache is cold or older than the staleness
    window. Returns 503 if no snapshot has ever been fetched.
    """
    return _serve_feed(SNAPSHOT)


@flights_bp.route('/delta', methods=['GET'])
def get_delta():
    """Latest update feed, served from cache. Same rules as /snapshot."""
    return _serve_feed(DELTA)


@flights_bp.route('/<flight_key>', methods=['GET'])
def get_flight(flight_key: str):
    """Stored state of a single flight."""
    reconciler = current_app.config['RECONCILER']
    flight = reconciler.get_flight(flight_key)
    if flight is None:
        return jsonify({'error': 'Flight not found'}), 404
    return jsonify(flight.to_dict())


@flights_bp.route('/<flight_key>/stand-history', methods=['GET'])
def get_stand_history(flight_key: str):
    """
    Stand assignment trail for a flight, oldest first.

    Returns 404 if the flight has never been reconciled.
    """
    reconciler = current_app.config['RECONCILER']
    if reconciler.get_flight(flight_key) is None:
        return jsonify({'error': 'Flight not found'}), 404

    history = reconciler.stand_history_for(flight_key)
    return jsonify({
        'flight_key': flight_key,
        'history': [entry.to_dict() for entry in history],
        'count': len(history),
    })

"""
Status API endpoints.

Provides endpoints for:
- GET /api/status - Sync pipeline, cache and database health
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

status_bp = Blueprint('status', __name__, url_prefix='/api/status')


@status_bp.route('', methods=['GET'])
def get_system_status():
    """
    Get system health and status information.

    Returns:
    - Sync pipeline status
    - Database connectivity
    - Cache statistics
    """
    start_time = time.perf_counter()

    pipeline = current_app.config.get('SYNC_PIPELINE')
    pipeline_stats = pipeline.stats if pipeline else {'running': False}

    # Check database connectivity
    db_ok = True
    try:
        with current_app.config['SESSION_FACTORY']() as session:
            session.execute(text('SELECT 1'))
    except SQLAlchemyError as e:
        db_ok = False
        logger.error(f'Database health check failed: {e}')

    cache = current_app.config['SNAPSHOT_CACHE']
    app_config = current_app.config['FLIGHTSYNC']

    healthy = (
        db_ok
        and pipeline_stats.get('running')
        and not pipeline_stats.get('last_tick_errors')
    )

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'status': 'healthy' if healthy else 'degraded',
        'database': {
            'connected': db_ok,
            'type': 'sqlite' if app_config.database.is_sqlite else 'postgresql',
        },
        'sync': pipeline_stats,
        'cache': cache.stats,
        'config': {
            'carriers': app_config.daa.carriers,
            'sync_interval_seconds': app_config.sync.interval_seconds,
            'max_staleness_seconds': app_config.cache.max_staleness_seconds,
            'preserve_stand_on_empty': app_config.reconcile.preserve_stand_on_empty,
        },
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })

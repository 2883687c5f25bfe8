"""
FlightSync Flask Application.

Main entry point for the service. Initializes:
- Database schema
- DAA client, snapshot cache and reconciler
- Background sync scheduler
- API routes

Usage:
    python -m flightsync.app

Or with gunicorn:
    gunicorn 'flightsync.app:create_app()'
"""

import logging
import os
import sys
from typing import Optional

from flask import Flask
from flask_cors import CORS

from flightsync.api import flights_bp, status_bp
from flightsync.cache import SnapshotCache
from flightsync.config import AppConfig, load_config
from flightsync.errors import ConfigurationError
from flightsync.ingestion import DAAClient, Reconciler
from flightsync.ingestion.pipeline import SyncPipeline
from flightsync.models import create_db_engine, create_session_factory, init_db

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def create_app(
    app_config: Optional[AppConfig] = None,
    client=None,
    start_sync: bool = True,
) -> Flask:
    """
    Application factory for Flask.

    Args:
        app_config: Configuration (loaded from the environment if None)
        client: Upstream client with a fetch(kind) method
                (a DAAClient built from config if None)
        start_sync: Whether to start the background sync scheduler.
                    Set to False for testing.

    Returns:
        Configured Flask application instance.

    Raises:
        ConfigurationError: DAA credentials are missing
    """
    app_config = app_config or load_config()

    # No point running without the ability to authenticate upstream
    app_config.daa.require_credentials()

    app = Flask(__name__)
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    # Initialize database
    logger.info('Initializing database...')
    engine = create_db_engine(app_config.database.url, echo=app_config.debug)
    init_db(engine)
    session_factory = create_session_factory(engine)

    if client is None:
        client = DAAClient.from_config(app_config.daa)
        if app_config.sync.verify_credentials_on_start:
            if client.check_credentials():
                logger.info('DAA credentials accepted')
            else:
                logger.warning('DAA credentials were not accepted; sync will keep retrying')

    cache = SnapshotCache(
        client,
        max_staleness_seconds=app_config.cache.max_staleness_seconds,
    )
    reconciler = Reconciler(
        session_factory,
        preserve_stand_on_empty=app_config.reconcile.preserve_stand_on_empty,
    )
    pipeline = SyncPipeline(
        cache,
        reconciler,
        interval_seconds=app_config.sync.interval_seconds,
        reconcile_delta=app_config.sync.reconcile_delta,
    )

    app.config['FLIGHTSYNC'] = app_config
    app.config['SESSION_FACTORY'] = session_factory
    app.config['SNAPSHOT_CACHE'] = cache
    app.config['RECONCILER'] = reconciler
    app.config['SYNC_PIPELINE'] = pipeline

    app.register_blueprint(flights_bp)
    app.register_blueprint(status_bp)

    if start_sync:
        pipeline.start_background()
        logger.info(
            f'Sync started for carriers {app_config.daa.carriers} '
            f'every {app_config.sync.interval_seconds}s'
        )

    @app.route('/')
    def index():
        """Describe the service."""
        return {
            'name': 'FlightSync',
            'status': 'running',
            'endpoints': [
                '/health',
                '/api/flights/snapshot',
                '/api/flights/delta',
                '/api/flights/<flight_key>',
                '/api/flights/<flight_key>/stand-history',
                '/api/status',
            ],
        }

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Run the development server."""
    app_config = load_config()
    configure_logging(app_config.debug)

    try:
        app = create_app(app_config)
    except ConfigurationError as e:
        logger.critical(f'Cannot start: {e}')
        sys.exit(1)

    port = int(os.environ.get('PORT', 3000))
    logger.info(f'Starting FlightSync on http://localhost:{port}')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=app_config.debug,
        use_reloader=False,  # Disable reloader to prevent duplicate scheduler threads
    )


if __name__ == '__main__':
    run_development_server()

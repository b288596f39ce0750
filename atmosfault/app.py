"""
AtmosFault Flask Application.

Main entry point for the web application. Initializes:
- Database schema
- Tracking assembler (provider cache, geocoder, weather, correlation)
- Ingestion pipeline (and optional periodic sync)
- API routes and error mapping

Usage:
    python -m atmosfault.app

Or with gunicorn:
    gunicorn 'atmosfault.app:create_app()'
"""

import logging
import os
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS

from atmosfault.analytics import CorrelationEngine
from atmosfault.api import tracking_bp, sync_bp
from atmosfault.config import config
from atmosfault.exceptions import (
    AtmosFaultError, NotFound, RateLimited, ValidationError,
)
from atmosfault.ingestion import IngestionPipeline
from atmosfault.models import init_db, utcnow
from atmosfault.services import (
    BalloonTracker, CacheAsideFetcher, Geocoder, TrackingAssembler, WeatherService,
)
from atmosfault.store import TelemetryStore

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


def build_assembler(telemetry_store: Optional[TelemetryStore] = None) -> TrackingAssembler:
    """Wire the tracking assembler from configuration."""
    telemetry_store = telemetry_store or TelemetryStore()
    return TrackingAssembler(
        fetcher=CacheAsideFetcher(),
        balloons=BalloonTracker(store=telemetry_store),
        geocoder=Geocoder.from_config(),
        weather=WeatherService.from_config(),
        correlation=CorrelationEngine(store=telemetry_store),
    )


def register_error_handlers(app: Flask) -> None:
    """Map the error taxonomy onto HTTP responses."""

    @app.errorhandler(NotFound)
    def handle_not_found(e: NotFound):
        return jsonify({'error': str(e), 'tracking_number': e.tracking_number}), 404

    @app.errorhandler(ValidationError)
    def handle_validation(e: ValidationError):
        return jsonify({'error': str(e)}), 400

    @app.errorhandler(RateLimited)
    def handle_rate_limited(e: RateLimited):
        reset = utcnow().timestamp() + e.retry_after
        response = jsonify({'error': str(e)})
        response.status_code = 429
        response.headers['Retry-After'] = str(e.retry_after)
        response.headers['X-RateLimit-Remaining'] = str(e.remaining)
        response.headers['X-RateLimit-Reset'] = str(int(reset))
        return response

    @app.errorhandler(AtmosFaultError)
    def handle_core_error(e: AtmosFaultError):
        logger.error(f'Request failed: {e}')
        return jsonify({'error': 'Request failed', 'message': str(e)}), 500

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return jsonify({'error': 'Internal server error'}), 500


def create_app(
    assembler: Optional[TrackingAssembler] = None,
    pipeline: Optional[IngestionPipeline] = None,
    init_database: bool = True,
    start_sync: bool = True,
) -> Flask:
    """
    Application factory for Flask.

    Args:
        assembler: Tracking assembler (wired from config if None)
        pipeline: Ingestion pipeline (wired from config if None)
        init_database: Create tables on startup. Set to False for testing.
        start_sync: Start periodic sync when SYNC_INTERVAL_MINUTES > 0.
                    Set to False for testing.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)

    # Configuration
    app.config['SECRET_KEY'] = config.secret_key

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    if init_database:
        logger.info('Initializing database...')
        init_db()

    telemetry_store = TelemetryStore()
    app.config['TRACKING_ASSEMBLER'] = assembler or build_assembler(telemetry_store)
    pipeline = pipeline or IngestionPipeline(store=telemetry_store)
    app.config['INGESTION_PIPELINE'] = pipeline

    interval_minutes = config.feed.sync_interval_minutes
    if start_sync and interval_minutes > 0:
        pipeline.start_background(interval_minutes * 60)
        logger.info(f'Periodic telemetry sync every {interval_minutes} minutes')

    app.register_blueprint(tracking_bp)
    app.register_blueprint(sync_bp)

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    register_error_handlers(app)

    return app


def run_development_server():
    """Run the development server."""
    app = create_app()

    # Get port from environment or default
    port = int(os.environ.get('PORT', 5000))

    logger.info(f'Starting AtmosFault on http://localhost:{port}')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=config.debug,
        use_reloader=False,  # Disable reloader to prevent duplicate sync threads
    )


if __name__ == '__main__':
    run_development_server()

"""
FlightPulse Flask Application.

Main entry point for the web application. Initializes:
- Feed service (token cache, OpenSky client, region cache, backoff state)
- Route lookup service
- API routes

Usage:
    python -m flightpulse.app

Or with gunicorn:
    gunicorn 'flightpulse.app:create_app()'
"""

import logging
import os
from typing import Optional

from flask import Flask
from flask_cors import CORS

from flightpulse.api import flights_bp
from flightpulse.api.flights import NO_STORE
from flightpulse.config import config
from flightpulse.services import FeedService, RouteService

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


def create_app(
    feed_service: Optional[FeedService] = None,
    route_service: Optional[RouteService] = None,
) -> Flask:
    """
    Application factory for Flask.

    Args:
        feed_service: Feed service to serve flights from. Built from
                      configuration if None; pass one in for testing.
        route_service: Route lookup service, likewise.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    # Services live for the lifetime of the app
    app.config['FEED_SERVICE'] = feed_service or FeedService()
    app.config['ROUTE_SERVICE'] = route_service or RouteService()

    app.register_blueprint(flights_bp)

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404, NO_STORE

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500, NO_STORE

    return app


def run_development_server():
    """Run the development server."""
    app = create_app()

    # Get port from environment or default
    port = int(os.environ.get('PORT', 5000))

    logger.info(f'Starting FlightPulse on http://localhost:{port}')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=config.debug,
        use_reloader=False,  # One set of process-wide caches
    )


if __name__ == '__main__':
    run_development_server()

"""Flask application for the IRIS revenue backend."""

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import logging
import os

from config.settings import settings
from src.routes.health import health_bp
from src.routes.iris import iris_bp
from src.routes.sync import sync_bp
from src.utils.database import init_database
from src.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

DEFAULT_LIMITS = ["2000 per day", "300 per hour"]

# Each sync call pages through the whole Gripp collection
SYNC_LIMITS = {
    'iris_sync.sync_projects': "10 per hour",
    'iris_sync.sync_offers': "10 per hour",
    'iris_sync.sync_hours': "10 per hour",
    'iris_sync.sync_last_three_months': "20 per hour",
}


def _create_limiter(app):
    """Rate limiter backed by Redis when REDIS_URL is set, in-memory otherwise."""
    redis_url = os.getenv('REDIS_URL')
    if redis_url:
        storage_uri = redis_url
        storage_options = {
            'socket_connect_timeout': 5,
            'socket_timeout': 5,
            'retry_on_timeout': True,
            'health_check_interval': 30,
        }
        logger.info(f"Rate limiter using Redis: {redis_url.split('@')[-1]}")
    else:
        storage_uri = "memory://"
        storage_options = {}
        logger.warning("Rate limiter using in-memory storage (development only)")

    try:
        return Limiter(
            get_remote_address,
            app=app,
            default_limits=DEFAULT_LIMITS,
            storage_uri=storage_uri,
            storage_options=storage_options,
            strategy="moving-window",
            swallow_errors=True,
            headers_enabled=True,
        )
    except Exception as e:
        logger.error(f"Failed to initialize rate limiter with {storage_uri}: {e}")
        logger.warning("Running with in-memory rate limiter (fallback mode)")
        return Limiter(
            get_remote_address,
            app=app,
            default_limits=DEFAULT_LIMITS,
            storage_uri="memory://",
            strategy="moving-window",
            swallow_errors=True,
            headers_enabled=True,
        )


def create_app(config_overrides=None):
    """Build the Flask app: CORS, rate limiting, error envelope and IRIS blueprints."""
    app = Flask(__name__)
    app.config['JSON_SORT_KEYS'] = False
    if config_overrides:
        app.config.update(config_overrides)

    CORS(app, origins=settings.web.cors_origins,
         allow_headers=['Content-Type', 'Authorization'],
         methods=['GET', 'POST', 'OPTIONS'])
    logger.info(f"CORS origins: {settings.web.cors_origins}")

    limiter = _create_limiter(app)

    register_error_handlers(app)

    app.register_blueprint(health_bp)
    app.register_blueprint(iris_bp)
    app.register_blueprint(sync_bp)

    # Health probes run every few seconds
    limiter.exempt(health_bp)
    for endpoint, limit in SYNC_LIMITS.items():
        limiter.limit(limit)(app.view_functions[endpoint])

    if not app.config.get('TESTING'):
        init_database()

    app.extensions['iris_limiter'] = limiter
    return app


if __name__ == '__main__':
    logging.basicConfig(
        level=getattr(logging, settings.agent.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = create_app()
    logger.info(f"Starting IRIS backend on {settings.web.host}:{settings.web.port}")
    app.run(host=settings.web.host, port=settings.web.port, debug=settings.web.debug)

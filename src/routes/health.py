"""Health check endpoints."""

from flask import Blueprint, jsonify
from datetime import datetime
import logging

from config.settings import settings
from src.utils.database import check_connection, get_engine

logger = logging.getLogger(__name__)

health_bp = Blueprint('iris_health', __name__, url_prefix='/api/v1/iris')


def _pool_stats(pool):
    """Connection pool statistics; SQLite pools expose fewer counters than QueuePool."""
    stats = {'pool_class': type(pool).__name__}
    for name in ('size', 'checkedin', 'checkedout', 'overflow'):
        counter = getattr(pool, name, None)
        if callable(counter):
            try:
                stats[name] = counter()
            except (AttributeError, NotImplementedError):
                continue
    return stats


@health_bp.route('/health', methods=['GET'])
def health_check():
    """Liveness probe. Exempt from rate limiting."""
    return jsonify({
        'status': 'healthy',
        'service': 'iris-revenue',
        'timestamp': datetime.now().isoformat(),
        'gripp_configured': bool(settings.gripp.api_key),
    }), 200


@health_bp.route('/health/database', methods=['GET'])
def database_health_check():
    """Database connectivity and pool statistics."""
    try:
        engine = get_engine()
        stats = _pool_stats(engine.pool)

        check_connection()

        stats['connectivity'] = 'healthy'
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'database': stats,
        }), 200

    except Exception as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        return jsonify({
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': datetime.now().isoformat(),
        }), 503

"""
Gunicorn configuration for the IRIS revenue backend.

Sync endpoints run the Gripp sync inside the request, so the timeout is sized
for a full-year hours sync. Concurrent syncs across workers are prevented by
the job locks in ``scheduled_job_locks``, not by Gunicorn.
"""

import logging
import os

logger = logging.getLogger(__name__)

wsgi_app = "src.web_interface:create_app()"

bind = f"0.0.0.0:{os.getenv('PORT', '3002')}"
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
timeout = int(os.getenv('GUNICORN_TIMEOUT', '300'))
worker_class = 'sync'

# Logging
loglevel = os.getenv('LOG_LEVEL', 'info').lower()
accesslog = '-'
errorlog = '-'


def on_starting(server):
    """Create tables once in the master, before workers fork."""
    from src.utils.database import init_database

    init_database()
    logger.info("Database initialized before starting workers")


def post_fork(server, worker):
    """Drop connections inherited from the master so workers open their own."""
    from src.utils.database import cleanup_connections

    cleanup_connections()
    logger.info(f"Worker {worker.pid} started")

"""Gripp sync trigger routes.

Syncs run inside the request, like the dashboard's sync buttons expect: the
response carries the job statistics. A second trigger of the same sync type
while one is running gets a 429.
"""

import logging
from datetime import date

from flask import Blueprint

from src.jobs.gripp_sync import run_gripp_sync
from src.models.validators import MAX_YEAR, MIN_YEAR
from src.services.job_lock import get_sync_status
from src.utils.cache_manager import invalidate_cache
from src.utils.database import session_scope
from src.utils.errors import BadRequestError, GrippApiError
from src.utils.responses import success_response

logger = logging.getLogger(__name__)

sync_bp = Blueprint("iris_sync", __name__, url_prefix="/api/v1/iris/sync")


def _run(sync_type: str, **kwargs):
    stats = run_gripp_sync(sync_type, **kwargs)

    if not stats.get("success"):
        raise GrippApiError(
            f"Gripp {sync_type} sync failed: {stats.get('error')}", details=stats
        )

    # Fresh Gripp data invalidates every cached report
    invalidate_cache()
    return success_response(stats)


@sync_bp.route("/projects", methods=["POST"])
def sync_projects():
    return _run("projects")


@sync_bp.route("/offers", methods=["POST"])
def sync_offers():
    return _run("offers")


@sync_bp.route("/hours/<year>", methods=["POST"])
def sync_hours(year: str):
    """Replace all hours of one year."""
    try:
        year_value = int(year)
    except ValueError:
        raise BadRequestError(f"Invalid year: {year}")
    if not MIN_YEAR <= year_value <= MAX_YEAR:
        raise BadRequestError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")

    return _run("hours", year=year_value)


@sync_bp.route("/last-three-months", methods=["POST"])
def sync_last_three_months():
    return _run("last-three-months", today=date.today())


@sync_bp.route("/status", methods=["GET"])
def sync_status():
    with session_scope() as session:
        status = get_sync_status(session)
    return success_response(status)

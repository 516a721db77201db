"""IRIS revenue dashboard routes.

Revenue reports, targets, manual budget inputs and cached Gripp lookups, all
under ``/api/v1/iris``. Sync triggers live in ``src.routes.sync``.
"""

import logging
from functools import wraps
from typing import Any, Dict

from flask import Blueprint, request
from pydantic import ValidationError

from config.settings import settings
from src.models import (
    FinalRevenue,
    KpiTarget,
    MonthlyTarget,
    Offer,
    PreviousConsumption,
    Project,
    ProjectRevenueSetting,
)
from src.models.dtos import ProjectLineBudget
from src.models.validators import (
    FinalRevenueRequest,
    KpiTargetRequest,
    MonthlyTargetsRequest,
    PreviousBudgetRequest,
    PreviousConsumptionRequest,
    ProjectRevenueSettingRequest,
    YearQuery,
)
from src.services.project_classifier import (
    classify_project,
    project_status,
    resolve_client_name,
    resolve_project_budget,
)
from src.services.revenue_report import RevenueReportService, monthly_totals
from src.utils.cache_manager import cached_endpoint, invalidate_cache
from src.utils.database import session_scope
from src.utils.errors import NotFoundError
from src.utils.responses import error_response, success_response

logger = logging.getLogger(__name__)

iris_bp = Blueprint("iris", __name__, url_prefix="/api/v1/iris")


def validate_request(model_class):
    """Validate query parameters with a Pydantic model into ``request.validated_params``."""

    def decorator(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            try:
                request.validated_params = model_class(**request.args.to_dict())
            except ValidationError as e:
                logger.warning(f"Validation error for {f.__name__}: {e}")
                return error_response(
                    "Invalid parameters",
                    400,
                    "INVALID_REQUEST",
                    e.errors(include_url=False, include_context=False),
                )
            return f(*args, **kwargs)

        return wrapped

    return decorator


def validate_body(model_class):
    """Validate the JSON body with a Pydantic model into ``request.validated_body``."""

    def decorator(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            payload = request.get_json(silent=True)
            if not isinstance(payload, dict):
                return error_response("Request body must be a JSON object", 400, "INVALID_REQUEST")
            try:
                request.validated_body = model_class.model_validate(payload)
            except ValidationError as e:
                logger.warning(f"Validation error for {f.__name__}: {e}")
                return error_response(
                    "Invalid request body",
                    400,
                    "INVALID_REQUEST",
                    e.errors(include_url=False, include_context=False),
                )
            return f(*args, **kwargs)

        return wrapped

    return decorator


def _upsert(session, model, keys: Dict[str, Any], values: Dict[str, Any]):
    row = session.query(model).filter_by(**keys).first()
    if row is None:
        row = model(**keys)
        session.add(row)
    for name, value in values.items():
        setattr(row, name, value)
    return row


# ---------------------------------------------------------------------------
# Revenue
# ---------------------------------------------------------------------------


@iris_bp.route("/revenue", methods=["GET"])
@validate_request(YearQuery)
@cached_endpoint("revenue")
def get_revenue():
    """Flat revenue rows per project, employee and month."""
    year = request.validated_params.year
    with session_scope() as session:
        rows = RevenueReportService(session).build_revenue_rows(year)
    return success_response(rows, meta={"year": year, "count": len(rows)})


@iris_bp.route("/revenue-combined", methods=["GET"])
@validate_request(YearQuery)
@cached_endpoint("revenue-combined")
def get_combined_revenue():
    """One record per project with Project-Max and Line-Max revenue."""
    year = request.validated_params.year
    with session_scope() as session:
        records = RevenueReportService(session).build_combined_revenue(year)
    return success_response(
        records,
        meta={"year": year, "count": len(records), "monthlyTotals": monthly_totals(records)},
    )


@iris_bp.route("/projects/<int:project_id>/revenue", methods=["GET"])
@validate_request(YearQuery)
def get_project_revenue(project_id: int):
    year = request.validated_params.year
    with session_scope() as session:
        record = RevenueReportService(session).project_revenue(project_id, year)
    return success_response(record, meta={"year": year})


@iris_bp.route("/revenue/final", methods=["GET"])
@validate_request(YearQuery)
def get_final_revenue():
    year = request.validated_params.year
    with session_scope() as session:
        rows = (
            session.query(FinalRevenue)
            .filter(FinalRevenue.year == year)
            .order_by(FinalRevenue.month)
            .all()
        )
        data = [row.to_dict() for row in rows]
    return success_response(data, meta={"year": year})


@iris_bp.route("/revenue/final", methods=["POST"])
@validate_body(FinalRevenueRequest)
def save_final_revenue():
    body = request.validated_body
    with session_scope() as session:
        row = _upsert(
            session,
            FinalRevenue,
            {"year": body.year, "month": body.month},
            {"amount": body.amount},
        )
        session.flush()
        data = row.to_dict()

    logger.info(f"Final revenue for {body.year}-{body.month:02d} set to {body.amount}")
    return success_response(data)


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


@iris_bp.route("/targets/monthly", methods=["GET"])
@validate_request(YearQuery)
def get_monthly_targets():
    """Monthly targets for a year; a year without targets gets 12 defaults."""
    year = request.validated_params.year
    with session_scope() as session:
        targets = (
            session.query(MonthlyTarget)
            .filter(MonthlyTarget.year == year)
            .order_by(MonthlyTarget.month)
            .all()
        )
        if not targets:
            default = settings.revenue.default_monthly_target
            targets = [
                MonthlyTarget(year=year, month=month, target_amount=default)
                for month in range(1, 13)
            ]
            session.add_all(targets)
            session.flush()
            logger.info(f"Created default monthly targets for {year} ({default} per month)")
        data = [target.to_dict() for target in targets]
    return success_response(data, meta={"year": year})


@iris_bp.route("/targets/monthly", methods=["POST"])
@validate_body(MonthlyTargetsRequest)
def save_monthly_targets():
    """Upsert the given months in a single transaction."""
    body = request.validated_body
    with session_scope() as session:
        for item in body.targets:
            _upsert(
                session,
                MonthlyTarget,
                {"year": body.year, "month": item.month},
                {"target_amount": item.target_amount},
            )
        session.flush()
        data = [
            target.to_dict()
            for target in session.query(MonthlyTarget)
            .filter(MonthlyTarget.year == body.year)
            .order_by(MonthlyTarget.month)
            .all()
        ]

    logger.info(f"Saved {len(body.targets)} monthly targets for {body.year}")
    return success_response(data, meta={"year": body.year})


@iris_bp.route("/targets/kpi", methods=["GET"])
@validate_request(YearQuery)
def get_kpi_targets():
    year = request.validated_params.year
    with session_scope() as session:
        rows = (
            session.query(KpiTarget)
            .filter(KpiTarget.year == year)
            .order_by(KpiTarget.kpi_name)
            .all()
        )
        data = [row.to_dict() for row in rows]
    return success_response(data, meta={"year": year})


@iris_bp.route("/targets/kpi", methods=["POST"])
@validate_body(KpiTargetRequest)
def save_kpi_target():
    body = request.validated_body
    with session_scope() as session:
        row = _upsert(
            session,
            KpiTarget,
            {"year": body.year, "kpi_name": body.kpi_name},
            {"target_value": body.target_value},
        )
        session.flush()
        data = row.to_dict()
    return success_response(data)


# ---------------------------------------------------------------------------
# Manual project inputs
# ---------------------------------------------------------------------------


def _save_previous_consumption(project_id: int, amount: float) -> Dict[str, Any]:
    with session_scope() as session:
        row = _upsert(
            session,
            PreviousConsumption,
            {"project_id": project_id},
            {"previous_year_budget_used": amount},
        )
        session.flush()
        data = row.to_dict()

    # Previous consumption changes the available budget of every report
    invalidate_cache()
    logger.info(f"Previous-year consumption for project {project_id} set to {amount}")
    return data


@iris_bp.route("/project/previous-budget", methods=["POST"])
@validate_body(PreviousBudgetRequest)
def save_previous_budget():
    body = request.validated_body
    data = _save_previous_consumption(body.project_id, body.previous_year_budget_used)
    return success_response(data)


@iris_bp.route("/projects/previous-consumption", methods=["GET"])
def get_previous_consumption():
    with session_scope() as session:
        rows = session.query(PreviousConsumption).order_by(PreviousConsumption.project_id).all()
        data = [row.to_dict() for row in rows]
    return success_response(data)


@iris_bp.route("/projects/previous-consumption", methods=["POST"])
@validate_body(PreviousConsumptionRequest)
def save_previous_consumption():
    body = request.validated_body
    data = _save_previous_consumption(body.project_id, body.consumption_amount)
    return success_response(data)


@iris_bp.route("/projects/revenue-settings", methods=["GET"])
def get_revenue_settings():
    with session_scope() as session:
        rows = session.query(ProjectRevenueSetting).order_by(ProjectRevenueSetting.project_id).all()
        data = [
            {
                "projectId": row.project_id,
                "includeInRevenue": bool(row.include_in_revenue),
                "notes": row.notes,
            }
            for row in rows
        ]
    return success_response(data)


@iris_bp.route("/projects/revenue-settings", methods=["POST"])
@validate_body(ProjectRevenueSettingRequest)
def save_revenue_setting():
    body = request.validated_body
    with session_scope() as session:
        _upsert(
            session,
            ProjectRevenueSetting,
            {"project_id": body.project_id},
            {"include_in_revenue": body.include_in_revenue, "notes": body.notes or None},
        )

    invalidate_cache()
    return success_response(
        {
            "projectId": body.project_id,
            "includeInRevenue": body.include_in_revenue,
            "notes": body.notes or None,
        }
    )


# ---------------------------------------------------------------------------
# Cached Gripp data
# ---------------------------------------------------------------------------


@iris_bp.route("/offers", methods=["GET"])
def get_offers():
    with session_scope() as session:
        offers = session.query(Offer).order_by(Offer.offer_id).all()
        data = [offer.to_dict() for offer in offers]
    return success_response(data, meta={"count": len(data)})


@iris_bp.route("/offers/<int:offer_id>", methods=["GET"])
def get_offer(offer_id: int):
    with session_scope() as session:
        offer = session.query(Offer).filter_by(offer_id=offer_id).first()
        if offer is None:
            raise NotFoundError(f"Offer {offer_id} not found")
        data = offer.to_dict()
    return success_response(data)


@iris_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id: int):
    """Cached project with its lines, type, client and budget resolved."""
    with session_scope() as session:
        project = session.get(Project, project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        lines = [ProjectLineBudget.from_orm(line) for line in project.lines]
        data = project.to_dict()
        data.update(
            {
                "projectType": classify_project(
                    project.name, project.tags, project.type_override, project.discr
                ).value,
                "clientName": resolve_client_name(project.name, project.company_name).value,
                "status": project_status(project.archived, project.phase_name),
                "budget": float(resolve_project_budget(project.total_excl_vat, lines)),
            }
        )
    return success_response(data)


@iris_bp.route("/cache/clear", methods=["POST"])
def clear_cache():
    deleted = invalidate_cache()
    logger.info(f"Revenue cache cleared ({deleted} entries)")
    return success_response({"cleared": deleted})

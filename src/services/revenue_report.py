"""
Revenue report service.

Reads the locally cached Gripp data for one year and turns it into the two
shapes the IRIS dashboard consumes:

- flat rows per project, employee, month and project line (``/revenue``)
- one record per project or quote with both allocation views
  (``/revenue-combined`` and ``/projects/<id>/revenue``)

Hourly rates are resolved here, not in the engine: the selling price of the
hour's project line, else the average selling price of the project's lines,
else the project's own selling price in Gripp, else the configured default
rate.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session, selectinload

from config.settings import settings
from src.models import (
    Employee,
    Hour,
    Offer,
    PreviousConsumption,
    Project,
    ProjectRevenueSetting,
)
from src.models.dtos import HourEntry, ProjectLineBudget, ProjectType, RevenueProject
from src.services.project_classifier import (
    QUOTE_DISCRIMINATORS,
    classify_project,
    effective_budget,
    project_status,
    resolve_client_name,
    resolve_project_budget,
)
from src.services.revenue_engine import (
    MONTHS,
    months_with_hours,
    recognize_revenue,
)
from src.utils.errors import NotFoundError
from src.utils.numbers import ZERO, to_decimal, to_float

logger = logging.getLogger(__name__)


@dataclass
class _ProjectContext:
    """Everything known about one project (or quote) that has hours in the year."""

    project_id: int
    name: str
    client_name: str
    project_type: ProjectType
    is_quote: bool
    status: str
    tags: List[Any]
    budget: Decimal
    previous_year_budget_used: Decimal
    lines: Dict[int, ProjectLineBudget] = field(default_factory=dict)
    fallback_rate: Decimal = ZERO
    hours: List[Hour] = field(default_factory=list)

    def line_for(self, hour: Hour) -> Optional[ProjectLineBudget]:
        if hour.project_line_id is None:
            return None
        return self.lines.get(hour.project_line_id)

    def rate_for(self, hour: Hour) -> Decimal:
        line = self.line_for(hour)
        if line is not None and line.selling_price > ZERO:
            return line.selling_price
        return self.fallback_rate

    def hour_entries(self) -> List[HourEntry]:
        entries = []
        for hour in self.hours:
            line = self.line_for(hour)
            entries.append(
                HourEntry.from_orm(
                    hour,
                    hourly_rate=self.rate_for(hour),
                    invoice_basis_id=line.invoice_basis_id if line else None,
                )
            )
        return entries


def _average_selling_price(lines: List[ProjectLineBudget]) -> Optional[Decimal]:
    prices = [line.selling_price for line in lines if line.selling_price > ZERO]
    if not prices:
        return None
    return sum(prices, ZERO) / len(prices)


def _year_bounds(year: int) -> Tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


class RevenueReportService:
    """Build revenue reports from the local Gripp cache."""

    def __init__(self, session: Session, default_hourly_rate: Any = None):
        self.session = session
        self.default_hourly_rate = to_decimal(
            default_hourly_rate
            if default_hourly_rate is not None
            else settings.revenue.default_hourly_rate
        )

    def _fallback_rate(self, lines: List[ProjectLineBudget], project: Optional[Project]) -> Decimal:
        """Rate for hours without a priced line: average line price, project price, default."""
        average = _average_selling_price(lines)
        if average is not None:
            return average
        project_price = to_decimal(project.selling_price) if project is not None else ZERO
        if project_price > ZERO:
            return project_price
        return self.default_hourly_rate

    def _excluded_project_ids(self) -> Set[int]:
        rows = (
            self.session.query(ProjectRevenueSetting.project_id)
            .filter(ProjectRevenueSetting.include_in_revenue.is_(False))
            .all()
        )
        return {project_id for (project_id,) in rows}

    def _previous_consumption(self, project_ids: Set[int]) -> Dict[int, Decimal]:
        if not project_ids:
            return {}
        rows = (
            self.session.query(PreviousConsumption)
            .filter(PreviousConsumption.project_id.in_(project_ids))
            .all()
        )
        return {row.project_id: to_decimal(row.previous_year_budget_used) for row in rows}

    def _load_hours(self, year: int, project_id: Optional[int] = None) -> List[Hour]:
        start, end = _year_bounds(year)
        query = self.session.query(Hour).filter(
            Hour.date >= start, Hour.date <= end, Hour.project_id.isnot(None)
        )
        if project_id is not None:
            query = query.filter(Hour.project_id == project_id)
        return query.order_by(Hour.date, Hour.id).all()

    def _build_contexts(
        self, hours: List[Hour], excluded: Optional[Set[int]] = None
    ) -> Dict[int, _ProjectContext]:
        """Group hours per project and resolve type, client, budget and rates."""
        excluded = excluded or set()
        hours_by_project: Dict[int, List[Hour]] = {}
        for hour in hours:
            if hour.project_id in excluded:
                continue
            hours_by_project.setdefault(hour.project_id, []).append(hour)

        project_ids = set(hours_by_project)
        if not project_ids:
            return {}

        projects = {
            project.id: project
            for project in self.session.query(Project)
            .options(selectinload(Project.lines))
            .filter(Project.id.in_(project_ids))
            .all()
        }
        offers = {
            offer.offer_id: offer
            for offer in self.session.query(Offer)
            .filter(Offer.offer_id.in_(project_ids))
            .all()
        }
        previous = self._previous_consumption(project_ids)

        contexts: Dict[int, _ProjectContext] = {}
        for project_id, project_hours in hours_by_project.items():
            contexts[project_id] = self._context_for(
                project_id,
                project_hours,
                projects.get(project_id),
                offers.get(project_id),
                previous.get(project_id, ZERO),
            )
        return contexts

    def _context_for(
        self,
        project_id: int,
        hours: List[Hour],
        project: Optional[Project],
        offer: Optional[Offer],
        previous_year_budget_used: Decimal,
    ) -> _ProjectContext:
        hour_discr = (hours[0].offerprojectbase_discr or "").strip().lower()
        booked_on_quote = hour_discr in QUOTE_DISCRIMINATORS

        if project is not None and not booked_on_quote:
            lines = [ProjectLineBudget.from_orm(line) for line in project.lines]
            project_type = classify_project(
                project.name, project.tags, project.type_override, project.discr
            )
            name = project.name
            client = resolve_client_name(
                project.name, project.company_name, offer.client_name if offer else None
            )
            budget = resolve_project_budget(
                project.total_excl_vat, lines, offer.total_excl_vat if offer else None
            )
            status = project_status(project.archived, project.phase_name)
            tags = project.tags or []
        elif offer is not None:
            lines = []
            project_type = ProjectType.QUOTE
            name = offer.offer_name
            client = resolve_client_name(offer.offer_name, None, offer.client_name)
            budget = resolve_project_budget(offer.total_excl_vat)
            status = "Offerte"
            tags = []
        else:
            lines = []
            name = hours[0].project_name or f"Project {project_id}"
            project_type = (
                ProjectType.QUOTE
                if booked_on_quote
                else classify_project(name, discr=hour_discr or None)
            )
            client = resolve_client_name(name)
            budget = ZERO
            status = "Onbekend"
            tags = []
            logger.debug(f"Project {project_id} has hours but is not in the local cache")

        budget = effective_budget(project_type, budget, previous_year_budget_used)
        fallback_rate = self._fallback_rate(lines, project if not booked_on_quote else None)

        return _ProjectContext(
            project_id=project_id,
            name=name,
            client_name=client.value,
            project_type=project_type,
            is_quote=project_type is ProjectType.QUOTE,
            status=status,
            tags=tags,
            budget=budget,
            previous_year_budget_used=previous_year_budget_used,
            lines={line.id: line for line in lines if line.id is not None},
            fallback_rate=fallback_rate,
            hours=hours,
        )

    def _employee_names(self, hours: List[Hour]) -> Dict[int, str]:
        employee_ids = {hour.employee_id for hour in hours if hour.employee_id is not None}
        if not employee_ids:
            return {}
        return {
            employee.id: employee.display_name
            for employee in self.session.query(Employee)
            .filter(Employee.id.in_(employee_ids))
            .all()
        }

    def build_revenue_rows(self, year: int) -> List[Dict[str, Any]]:
        """Flat rows per project, employee, month and project line.

        ``revenue`` is the uncapped ``hours * rate``; intern projects and
        non-billable lines report zero. Budget capping is left to the combined
        view.
        """
        hours = self._load_hours(year)
        contexts = self._build_contexts(hours, self._excluded_project_ids())
        employees = self._employee_names(hours)

        grouped: Dict[Tuple, Dict[str, Any]] = {}
        for context in contexts.values():
            for hour, entry in zip(context.hours, context.hour_entries()):
                key = (context.project_id, hour.employee_id, entry.month, hour.project_line_id)
                row = grouped.get(key)
                if row is None:
                    line = context.line_for(hour)
                    row = grouped[key] = {
                        "projectId": context.project_id,
                        "projectName": context.name,
                        "clientName": context.client_name,
                        "projectType": context.project_type.value,
                        "projectStatus": context.status,
                        "projectBudget": context.budget,
                        "previousYearBudgetUsed": context.previous_year_budget_used,
                        "employeeId": hour.employee_id,
                        "employeeName": employees.get(hour.employee_id),
                        "year": year,
                        "month": entry.month,
                        "projectLineId": hour.project_line_id,
                        "projectLineName": line.searchname if line else hour.project_line_name,
                        "invoiceBasisId": entry.invoice_basis_id,
                        "hourlyRate": entry.hourly_rate,
                        "isQuote": context.is_quote,
                        "hours": ZERO,
                        "revenue": ZERO,
                    }

                hours_worked = max(ZERO, entry.hours)
                row["hours"] += hours_worked
                if context.project_type is not ProjectType.INTERN and not entry.is_non_billable:
                    row["revenue"] += entry.revenue

        rows = []
        for row in grouped.values():
            for key in ("projectBudget", "previousYearBudgetUsed", "hourlyRate", "hours", "revenue"):
                row[key] = to_float(row[key])
            rows.append(row)

        rows.sort(key=lambda r: (r["projectId"], r["month"], r["employeeId"] or 0))
        logger.info(f"Built {len(rows)} revenue rows for {year}")
        return rows

    def _combined_record(self, context: _ProjectContext) -> Dict[str, Any]:
        entries = context.hour_entries()
        revenue_project = RevenueProject(
            project_id=context.project_id,
            project_type=context.project_type,
            total_budget=context.budget,
            previous_year_budget_used=context.previous_year_budget_used,
            hour_details=entries,
            project_lines=list(context.lines.values()),
        )
        recognition = recognize_revenue(revenue_project)
        view = recognition.default
        monthly_hours = months_with_hours(entries)

        return {
            "id": context.project_id,
            "name": context.name,
            "clientName": context.client_name,
            "projectType": context.project_type.value,
            "projectStatus": context.status,
            "projectTags": context.tags,
            "projectBudget": to_float(context.budget),
            "previousYearBudgetUsed": to_float(context.previous_year_budget_used),
            "remainingBudget": to_float(view.remaining_budget),
            "months": [to_float(v) for v in view.monthly_revenue],
            "monthlyHours": [to_float(v) for v in monthly_hours],
            "monthlyOverBudget": list(view.monthly_over_budget),
            "total": to_float(view.total_revenue),
            "hours": to_float(sum(monthly_hours, ZERO)),
            "isOverBudget": view.is_over_budget,
            "isQuote": context.is_quote,
            "projectLines": [line.to_dict() for line in context.lines.values()],
            "hourDetails": [entry.to_dict() for entry in entries],
            "projectMaxRevenue": recognition.project_max.to_dict(),
            "lineMaxRevenue": recognition.line_max.to_dict(),
        }

    def build_combined_revenue(self, year: int) -> List[Dict[str, Any]]:
        """One record per project or quote with hours in ``year``.

        ``months``, ``total``, ``remainingBudget`` and ``isOverBudget`` carry the
        Project-Max view; both views are included in full alongside.
        """
        hours = self._load_hours(year)
        contexts = self._build_contexts(hours, self._excluded_project_ids())

        records = [self._combined_record(context) for context in contexts.values()]
        records.sort(key=lambda r: (r["clientName"].lower(), r["name"].lower()))

        logger.info(f"Built combined revenue for {len(records)} projects in {year}")
        return records

    def project_revenue(self, project_id: int, year: int) -> Dict[str, Any]:
        """Combined revenue record for a single project.

        Raises:
            NotFoundError: If the project is neither cached nor has hours in ``year``
        """
        hours = self._load_hours(year, project_id)
        if hours:
            context = self._build_contexts(hours)[project_id]
            return self._combined_record(context)

        project = (
            self.session.query(Project)
            .options(selectinload(Project.lines))
            .filter(Project.id == project_id)
            .first()
        )
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        # Cached project without hours this year: report its budget and empty months
        lines = [ProjectLineBudget.from_orm(line) for line in project.lines]
        previous = self._previous_consumption({project_id}).get(project_id, ZERO)
        project_type = classify_project(
            project.name, project.tags, project.type_override, project.discr
        )
        budget = effective_budget(
            project_type, resolve_project_budget(project.total_excl_vat, lines), previous
        )
        context = _ProjectContext(
            project_id=project_id,
            name=project.name,
            client_name=resolve_client_name(project.name, project.company_name).value,
            project_type=project_type,
            is_quote=project_type is ProjectType.QUOTE,
            status=project_status(project.archived, project.phase_name),
            tags=project.tags or [],
            budget=budget,
            previous_year_budget_used=previous,
            lines={line.id: line for line in lines if line.id is not None},
            fallback_rate=self._fallback_rate(lines, project),
        )
        return self._combined_record(context)


def monthly_totals(records: List[Dict[str, Any]]) -> List[float]:
    """Sum ``months`` across combined records; used for target comparisons."""
    totals = [0.0] * MONTHS
    for record in records:
        for index, value in enumerate(record["months"]):
            totals[index] += value
    return [round(v, 2) for v in totals]

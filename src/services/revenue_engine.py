"""
Revenue Recognition Engine

Allocates hours-based revenue to calendar months and, for fixed-price
projects, caps it against the budget that is still available this year.

Two allocation policies are computed side by side:

- Project-Max: the whole available budget is one pool, drawn down
  chronologically entry by entry.
- Line-Max: every project line first caps its own entries at the hours its
  budget can buy (``line budget / hourly rate``); what survives is then drawn
  from the same project-wide pool.

Invoice basis 4 (non-billable) never produces revenue. Invoice basis 2 (billed
per hour) produces ``hours * rate`` in full and never touches a pool.

Everything here is pure: no I/O, no shared state, and malformed numbers have
already been turned into zero by the adapters in ``src.models.dtos``.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from src.models.dtos import HourEntry, ProjectLineBudget, ProjectType, RevenueProject
from src.utils.numbers import ZERO, to_float

logger = logging.getLogger(__name__)

MONTHS = 12


@dataclass
class MonthlyRevenueResult:
    """Monthly revenue schedule for one project under one allocation policy."""

    monthly_revenue: List[Decimal] = field(default_factory=lambda: [ZERO] * MONTHS)
    monthly_over_budget: List[bool] = field(default_factory=lambda: [False] * MONTHS)
    total_revenue: Decimal = ZERO
    is_over_budget: bool = False
    remaining_budget: Decimal = ZERO

    def to_dict(self) -> Dict:
        return {
            "monthlyRevenue": [to_float(v) for v in self.monthly_revenue],
            "monthlyOverBudget": list(self.monthly_over_budget),
            "totalRevenue": to_float(self.total_revenue),
            "isOverBudget": self.is_over_budget,
            "remainingBudget": to_float(self.remaining_budget),
        }


@dataclass
class RevenueRecognition:
    """Both allocation views for one project. ``project_max`` is the default view."""

    project_type: ProjectType
    available_budget: Decimal
    project_max: MonthlyRevenueResult
    line_max: MonthlyRevenueResult

    @property
    def default(self) -> MonthlyRevenueResult:
        return self.project_max


class _BudgetPool:
    """The shrinking project-level budget shared by all capped entries."""

    def __init__(self, available: Decimal):
        self.remaining = available

    def draw(self, amount: Decimal) -> Tuple[Decimal, bool]:
        """Take ``amount`` from the pool.

        Returns the recognized amount and whether the pool was (or became)
        exhausted by this draw. Clipping happens per entry: an entry that does
        not fit gets exactly what is left.
        """
        if self.remaining <= ZERO:
            return ZERO, True
        if amount <= self.remaining:
            self.remaining -= amount
            return amount, False
        recognized = self.remaining
        self.remaining = ZERO
        return recognized, True


def sort_hour_details(hour_details: List[HourEntry]) -> List[HourEntry]:
    """Return a new list ordered chronologically.

    Entries on the same date keep their input order (``sorted`` is stable), which
    decides which entry absorbs a partial clip. Entries without a date sort as the
    first day of their month.
    """

    def key(entry: HourEntry):
        if entry.work_date is not None:
            return entry.work_date.month, entry.work_date.day
        return entry.month, 0

    return sorted(hour_details, key=key)


def _group_by_month(hour_details: List[HourEntry]) -> List[List[HourEntry]]:
    buckets: List[List[HourEntry]] = [[] for _ in range(MONTHS)]
    for entry in hour_details:
        if 1 <= entry.month <= MONTHS:
            buckets[entry.month_index].append(entry)
        else:
            logger.debug(f"Skipping hour entry {entry.hour_id} with invalid month {entry.month}")
    return buckets


def _carry_exhaustion(pool: _BudgetPool, monthly_over_budget: List[bool], month: int):
    # An empty pool never refills, so every month after the first flagged one stays flagged
    if pool.remaining <= ZERO and any(monthly_over_budget[:month]):
        monthly_over_budget[month] = True


def _finalize(
    monthly_revenue: List[Decimal],
    monthly_over_budget: List[bool],
    available_budget: Decimal,
) -> MonthlyRevenueResult:
    total = sum(monthly_revenue, ZERO)
    return MonthlyRevenueResult(
        monthly_revenue=monthly_revenue,
        monthly_over_budget=monthly_over_budget,
        total_revenue=total,
        is_over_budget=any(monthly_over_budget),
        # hourly-billed revenue counts too, so this can bottom out before the pool does
        remaining_budget=max(ZERO, available_budget - total),
    )


def calculate_project_max_revenue(
    hour_details: List[HourEntry], available_budget: Decimal
) -> MonthlyRevenueResult:
    """Allocate revenue against one project-wide budget pool.

    ``hour_details`` must already be in chronological order (see
    ``sort_hour_details``). ``remaining_budget`` in the result is
    ``available_budget`` minus all recognized revenue, hourly-billed entries
    included, and never goes below zero.
    """
    monthly_revenue = [ZERO] * MONTHS
    monthly_over_budget = [False] * MONTHS
    pool = _BudgetPool(max(ZERO, available_budget))

    for month, entries in enumerate(_group_by_month(hour_details)):
        _carry_exhaustion(pool, monthly_over_budget, month)
        for entry in entries:
            if entry.is_non_billable:
                continue

            revenue = entry.revenue
            if entry.is_hourly:
                monthly_revenue[month] += revenue
                continue

            recognized, exhausted = pool.draw(revenue)
            monthly_revenue[month] += recognized
            if exhausted:
                monthly_over_budget[month] = True

    return _finalize(monthly_revenue, monthly_over_budget, available_budget)


def calculate_line_max_revenue(
    hour_details: List[HourEntry],
    project_lines: List[ProjectLineBudget],
    available_budget: Decimal,
) -> MonthlyRevenueResult:
    """Allocate revenue per project line, then against the project-wide pool.

    Within a month, entries are handled line by line in the order each line
    first appears. The affordable hours of a line are recomputed for every entry
    at that entry's own rate, so entries on one line with different rates see
    different limits. Line consumption counts the hours drawn from the line even
    when the project pool clips the resulting revenue.

    Capped entries without a known project line cannot be attributed and
    contribute nothing.
    """
    monthly_revenue = [ZERO] * MONTHS
    monthly_over_budget = [False] * MONTHS
    pool = _BudgetPool(max(ZERO, available_budget))

    line_budgets: Dict[int, Decimal] = {
        line.id: max(ZERO, line.budget) for line in project_lines if line.id is not None
    }
    line_hours_used: Dict[int, Decimal] = {}

    for month, entries in enumerate(_group_by_month(hour_details)):
        _carry_exhaustion(pool, monthly_over_budget, month)
        by_line: Dict[Optional[int], List[HourEntry]] = {}
        for entry in entries:
            by_line.setdefault(entry.project_line_id, []).append(entry)

        for line_id, line_entries in by_line.items():
            for entry in line_entries:
                if entry.is_non_billable:
                    continue

                if entry.is_hourly:
                    monthly_revenue[month] += entry.revenue
                    continue

                if line_id is None or line_id not in line_budgets:
                    logger.debug(
                        f"Hour entry {entry.hour_id} has no resolvable project line, "
                        f"skipped under line budgets"
                    )
                    continue

                hours = max(ZERO, entry.hours)
                rate = max(ZERO, entry.hourly_rate)
                used = line_hours_used.get(line_id, ZERO)

                if rate <= ZERO:
                    available_hours = ZERO
                else:
                    available_hours = max(ZERO, line_budgets[line_id] / rate - used)

                if available_hours <= ZERO:
                    monthly_over_budget[month] = True
                    continue

                usable_hours = min(hours, available_hours)
                recognized, exhausted = pool.draw(usable_hours * rate)
                monthly_revenue[month] += recognized
                line_hours_used[line_id] = used + usable_hours

                if exhausted or usable_hours < hours:
                    monthly_over_budget[month] = True

    return _finalize(monthly_revenue, monthly_over_budget, available_budget)


def calculate_uncapped_revenue(
    hour_details: List[HourEntry], available_budget: Decimal
) -> MonthlyRevenueResult:
    """Full ``hours * rate`` per month for contract types without a budget cap."""
    monthly_revenue = [ZERO] * MONTHS

    for month, entries in enumerate(_group_by_month(hour_details)):
        for entry in entries:
            if not entry.is_non_billable:
                monthly_revenue[month] += entry.revenue

    return _finalize(monthly_revenue, [False] * MONTHS, available_budget)


def recognize_revenue(project: RevenueProject) -> RevenueRecognition:
    """Apply the revenue classification gate and compute both allocation views.

    - Intern projects recognize nothing.
    - Fixed-price projects go through Project-Max and Line-Max.
    - Every other type (time-and-materials, contract, quote, unclassified)
      recognizes ``hours * rate`` in full, minus non-billable entries.

    The caller's ``hour_details`` list is not reordered.
    """
    available = project.available_budget
    hour_details = sort_hour_details(project.hour_details)

    if project.project_type is ProjectType.INTERN:
        return RevenueRecognition(
            project_type=project.project_type,
            available_budget=available,
            project_max=_finalize([ZERO] * MONTHS, [False] * MONTHS, available),
            line_max=_finalize([ZERO] * MONTHS, [False] * MONTHS, available),
        )

    if project.project_type.is_budget_capped:
        return RevenueRecognition(
            project_type=project.project_type,
            available_budget=available,
            project_max=calculate_project_max_revenue(hour_details, available),
            line_max=calculate_line_max_revenue(
                hour_details, project.project_lines, available
            ),
        )

    return RevenueRecognition(
        project_type=project.project_type,
        available_budget=available,
        project_max=calculate_uncapped_revenue(hour_details, available),
        line_max=calculate_uncapped_revenue(hour_details, available),
    )


def months_with_hours(hour_details: List[HourEntry]) -> List[Decimal]:
    """Hours per month (non-billable included), for the dashboard's hours row."""
    monthly_hours = [ZERO] * MONTHS
    for month, entries in enumerate(_group_by_month(hour_details)):
        monthly_hours[month] = sum((max(ZERO, e.hours) for e in entries), ZERO)
    return monthly_hours


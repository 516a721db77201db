"""Tests for the revenue recognition engine."""

from datetime import date
from decimal import Decimal

import pytest

from src.models.dtos import HourEntry, ProjectLineBudget, ProjectType, RevenueProject
from src.services.revenue_engine import (
    MONTHS,
    calculate_line_max_revenue,
    calculate_project_max_revenue,
    calculate_uncapped_revenue,
    months_with_hours,
    recognize_revenue,
    sort_hour_details,
)

D = Decimal


def entry(month, hours, rate, basis=None, line=None, day=1, hour_id=None):
    return HourEntry(
        month=month,
        hours=D(str(hours)),
        hourly_rate=D(str(rate)),
        invoice_basis_id=basis,
        project_line_id=line,
        work_date=date(2024, month, day),
        hour_id=hour_id,
    )


class TestProjectMax:
    """Project-Max allocation against one shared pool."""

    def test_entry_within_budget(self):
        result = calculate_project_max_revenue([entry(1, 10, 50)], D("1000"))

        assert result.monthly_revenue[0] == D("500")
        assert result.total_revenue == D("500")
        assert result.is_over_budget is False
        assert result.remaining_budget == D("500")

    def test_entry_clipped_to_budget(self):
        result = calculate_project_max_revenue([entry(1, 30, 50)], D("1000"))

        assert result.monthly_revenue[0] == D("1000")
        assert result.monthly_over_budget[0] is True
        assert result.is_over_budget is True
        assert result.remaining_budget == D("0")

    def test_second_entry_absorbs_partial_clip(self):
        entries = [entry(1, 6, 100, hour_id=1), entry(1, 6, 100, hour_id=2)]

        result = calculate_project_max_revenue(entries, D("1000"))

        assert result.monthly_revenue[0] == D("1000")
        assert result.is_over_budget is True

    def test_non_billable_entry_contributes_nothing(self):
        result = calculate_project_max_revenue([entry(1, 100, 100, basis=4)], D("1000"))

        assert result.total_revenue == D("0")
        assert result.remaining_budget == D("1000")
        assert result.is_over_budget is False

    def test_hourly_entry_escapes_empty_budget(self):
        result = calculate_project_max_revenue([entry(1, 10, 80, basis=2)], D("0"))

        assert result.monthly_revenue[0] == D("800")
        assert result.remaining_budget == D("0")
        assert result.is_over_budget is False

    def test_hourly_entry_does_not_consume_pool(self):
        entries = [entry(1, 10, 80, basis=2), entry(2, 5, 100)]

        result = calculate_project_max_revenue(entries, D("1000"))

        assert result.monthly_revenue[1] == D("500")
        assert result.total_revenue == D("1300")
        assert result.is_over_budget is False

    def test_remaining_budget_counts_hourly_revenue(self):
        entries = [entry(1, 10, 80, basis=2), entry(1, 6, 50, day=2)]

        result = calculate_project_max_revenue(entries, D("1000"))

        assert result.total_revenue == D("1100")
        assert result.remaining_budget == D("0")

    def test_remaining_budget_is_available_minus_total(self):
        entries = [entry(1, 2, 80, basis=2), entry(1, 3, 100, day=2)]

        result = calculate_project_max_revenue(entries, D("1000"))

        assert result.remaining_budget == D("540")

    def test_later_months_get_nothing_after_exhaustion(self):
        entries = [entry(1, 10, 100), entry(2, 5, 100), entry(3, 5, 100)]

        result = calculate_project_max_revenue(entries, D("1000"))

        assert result.monthly_revenue[:3] == [D("1000"), D("0"), D("0")]
        assert result.monthly_over_budget[:3] == [False, True, True]

    def test_over_budget_carries_into_months_without_hours(self):
        entries = [entry(1, 20, 100), entry(4, 1, 100, basis=2)]

        result = calculate_project_max_revenue(entries, D("1000"))

        assert result.monthly_over_budget == [True] * MONTHS
        assert result.monthly_revenue[3] == D("100")

    def test_negative_hours_never_produce_negative_revenue(self):
        entries = [entry(1, -5, 100), entry(1, 3, -20), entry(2, 2, 100)]

        result = calculate_project_max_revenue(entries, D("1000"))

        assert all(value >= 0 for value in result.monthly_revenue)
        assert result.total_revenue == D("200")

    def test_total_never_exceeds_available_budget(self):
        entries = [entry(m, "3.33", "33.33") for m in range(1, 13)]
        available = D("1000.01")

        result = calculate_project_max_revenue(entries, available)

        assert result.total_revenue <= available
        assert result.total_revenue + result.remaining_budget == available


class TestLineMax:
    """Line-Max allocation: per-line hour caps, then the project pool."""

    def test_line_caps_hours_and_flags_month(self):
        lines = [ProjectLineBudget(id=1, amount=D("10"), selling_price=D("50"))]

        result = calculate_line_max_revenue([entry(1, 12, 50, line=1)], lines, D("10000"))

        assert result.monthly_revenue[0] == D("500")
        assert result.monthly_over_budget[0] is True

    def test_line_consumption_persists_across_months(self):
        lines = [ProjectLineBudget(id=1, amount=D("10"), selling_price=D("50"))]
        entries = [entry(1, 6, 50, line=1), entry(2, 6, 50, line=1), entry(3, 1, 50, line=1)]

        result = calculate_line_max_revenue(entries, lines, D("10000"))

        assert result.monthly_revenue[:3] == [D("300"), D("200"), D("0")]
        assert result.monthly_over_budget[:3] == [False, True, True]

    def test_project_pool_still_applies(self):
        lines = [ProjectLineBudget(id=1, amount=D("100"), selling_price=D("100"))]

        result = calculate_line_max_revenue([entry(1, 20, 100, line=1)], lines, D("1500"))

        assert result.total_revenue == D("1500")
        assert result.is_over_budget is True
        assert result.remaining_budget == D("0")

    def test_entry_without_line_contributes_nothing(self):
        lines = [ProjectLineBudget(id=1, amount=D("10"), selling_price=D("50"))]
        entries = [entry(1, 5, 50), entry(1, 5, 50, line=99)]

        result = calculate_line_max_revenue(entries, lines, D("10000"))

        assert result.total_revenue == D("0")
        assert result.is_over_budget is False

    def test_zero_rate_means_no_affordable_hours(self):
        lines = [ProjectLineBudget(id=1, amount=D("10"), selling_price=D("50"))]

        result = calculate_line_max_revenue([entry(1, 5, 0, line=1)], lines, D("1000"))

        assert result.total_revenue == D("0")
        assert result.monthly_over_budget[0] is True

    def test_limit_is_recomputed_at_each_entry_rate(self):
        # Budget 1000: 10 hours at 100/h, or 20 hours at 50/h
        lines = [ProjectLineBudget(id=1, amount=D("10"), selling_price=D("100"))]
        entries = [entry(1, 10, 100, line=1, day=1), entry(1, 10, 50, line=1, day=2)]

        result = calculate_line_max_revenue(entries, lines, D("100000"))

        assert result.monthly_revenue[0] == D("1500")
        assert result.monthly_over_budget[0] is False

    def test_hourly_and_non_billable_entries(self):
        lines = [ProjectLineBudget(id=1, amount=D("1"), selling_price=D("10"))]
        entries = [entry(1, 10, 80, basis=2), entry(1, 10, 80, basis=4, line=1)]

        result = calculate_line_max_revenue(entries, lines, D("0"))

        assert result.total_revenue == D("800")
        assert result.is_over_budget is False
        assert result.remaining_budget == D("0")

    def test_remaining_budget_includes_hourly_revenue(self):
        lines = [ProjectLineBudget(id=1, amount=D("10"), selling_price=D("50"))]
        entries = [entry(1, 10, 80, basis=2), entry(1, 4, 50, line=1, day=2)]

        result = calculate_line_max_revenue(entries, lines, D("1000"))

        assert result.total_revenue == D("1000")
        assert result.remaining_budget == D("0")


class TestRecognizeRevenue:
    """Classification gate and the combined result."""

    def _project(self, project_type, budget="1000", previous="0", hours=None, lines=None):
        return RevenueProject(
            project_id=1,
            project_type=project_type,
            total_budget=D(budget),
            previous_year_budget_used=D(previous),
            hour_details=hours or [],
            project_lines=lines or [],
        )

    def test_intern_projects_recognize_nothing(self):
        project = self._project(ProjectType.INTERN, hours=[entry(1, 10, 100)])

        result = recognize_revenue(project)

        assert result.project_max.total_revenue == D("0")
        assert result.line_max.total_revenue == D("0")
        assert result.project_max is not result.line_max
        assert result.project_max.monthly_revenue is not result.line_max.monthly_revenue

    def test_time_and_materials_is_uncapped(self):
        project = self._project(
            ProjectType.TIME_AND_MATERIALS, budget="100", hours=[entry(1, 10, 100)]
        )

        result = recognize_revenue(project)

        assert result.default.total_revenue == D("1000")
        assert result.default.is_over_budget is False
        assert result.default.remaining_budget == D("0")

        result.project_max.monthly_revenue[0] = D("0")
        assert result.line_max.monthly_revenue[0] == D("1000")

    def test_unclassified_projects_use_full_revenue(self):
        project = self._project(
            ProjectType.UNCLASSIFIED, hours=[entry(1, 10, 100), entry(2, 10, 100, basis=4)]
        )

        result = recognize_revenue(project)

        assert result.default.total_revenue == D("1000")

    def test_fixed_price_uses_available_budget(self):
        project = self._project(
            ProjectType.FIXED_PRICE, budget="1000", previous="600", hours=[entry(1, 10, 100)]
        )

        result = recognize_revenue(project)

        assert result.available_budget == D("400")
        assert result.project_max.total_revenue == D("400")
        assert result.default is result.project_max

    def test_previous_consumption_above_budget_leaves_nothing(self):
        project = self._project(
            ProjectType.FIXED_PRICE, budget="500", previous="800", hours=[entry(1, 1, 100)]
        )

        result = recognize_revenue(project)

        assert result.available_budget == D("0")
        assert result.project_max.total_revenue == D("0")
        assert result.project_max.is_over_budget is True

    def test_input_order_is_not_mutated(self):
        hours = [entry(3, 1, 100, hour_id=3), entry(1, 1, 100, hour_id=1)]
        project = self._project(ProjectType.FIXED_PRICE, hours=hours)

        recognize_revenue(project)

        assert [h.hour_id for h in project.hour_details] == [3, 1]

    def test_results_are_identical_on_repeat(self):
        lines = [ProjectLineBudget(id=1, amount=D("10"), selling_price=D("75"))]
        hours = [entry(m, "7.5", 75, line=1, day=m) for m in range(1, 7)]
        project = self._project(ProjectType.FIXED_PRICE, budget="2000", hours=hours, lines=lines)

        first = recognize_revenue(project)
        second = recognize_revenue(project)

        assert first.project_max.to_dict() == second.project_max.to_dict()
        assert first.line_max.to_dict() == second.line_max.to_dict()


class TestHelpers:
    def test_sort_is_chronological_and_stable(self):
        hours = [
            entry(2, 1, 1, day=5, hour_id=1),
            entry(1, 1, 1, day=20, hour_id=2),
            entry(1, 1, 1, day=3, hour_id=3),
            entry(1, 1, 1, day=3, hour_id=4),
        ]

        ordered = sort_hour_details(hours)

        assert [h.hour_id for h in ordered] == [3, 4, 2, 1]

    def test_uncapped_revenue_skips_non_billable(self):
        hours = [entry(1, 2, 100), entry(1, 2, 100, basis=4)]

        result = calculate_uncapped_revenue(hours, D("1000"))

        assert result.total_revenue == D("200")
        assert result.remaining_budget == D("800")

    def test_months_with_hours_counts_all_entries(self):
        hours = [entry(1, 2, 100), entry(1, 3, 100, basis=4), entry(12, 1, 100)]

        monthly = months_with_hours(hours)

        assert monthly[0] == D("5")
        assert monthly[11] == D("1")

    def test_result_serialization(self):
        result = calculate_project_max_revenue([entry(1, "1.5", "33.333")], D("100"))

        data = result.to_dict()

        assert data["monthlyRevenue"][0] == pytest.approx(50.0)
        assert data["isOverBudget"] is False
        assert len(data["monthlyOverBudget"]) == MONTHS

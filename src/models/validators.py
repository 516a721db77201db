"""Pydantic validation models for API requests."""

from pydantic import BaseModel, ConfigDict, Field
from datetime import date
from typing import List

MIN_YEAR = 2000
MAX_YEAR = 2100


class IrisRequest(BaseModel):
    """Base for request bodies: the dashboard sends camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)


class MonthlyTargetItem(IrisRequest):
    month: int = Field(ge=1, le=12)
    target_amount: float = Field(alias="targetAmount", ge=0)


class MonthlyTargetsRequest(IrisRequest):
    """Upsert of monthly revenue targets for one year."""

    year: int = Field(ge=MIN_YEAR, le=MAX_YEAR)
    targets: List[MonthlyTargetItem] = Field(min_length=1, max_length=12)

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {"year": 2025, "targets": [{"month": 1, "targetAmount": 200000}]}
        },
    )


class KpiTargetRequest(IrisRequest):
    year: int = Field(ge=MIN_YEAR, le=MAX_YEAR)
    kpi_name: str = Field(alias="kpiName", min_length=1, max_length=100)
    target_value: float = Field(alias="targetValue")


class FinalRevenueRequest(IrisRequest):
    year: int = Field(ge=MIN_YEAR, le=MAX_YEAR)
    month: int = Field(ge=1, le=12)
    amount: float = Field(ge=0)


class PreviousBudgetRequest(IrisRequest):
    """Budget a project consumed before the current year."""

    project_id: int = Field(alias="projectId", gt=0)
    previous_year_budget_used: float = Field(alias="previousYearBudgetUsed", ge=0)


class PreviousConsumptionRequest(IrisRequest):
    project_id: int = Field(alias="projectId", gt=0)
    consumption_amount: float = Field(alias="consumptionAmount", ge=0)


class ProjectRevenueSettingRequest(IrisRequest):
    project_id: int = Field(alias="projectId", gt=0)
    include_in_revenue: bool = Field(alias="includeInRevenue")
    notes: str = Field(default="", max_length=2000)


class YearQuery(IrisRequest):
    """``?year=`` query parameter; defaults to the current year."""

    year: int = Field(default_factory=lambda: date.today().year, ge=MIN_YEAR, le=MAX_YEAR)

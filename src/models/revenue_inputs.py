"""Manually maintained inputs for the revenue dashboard.

These tables are edited from the IRIS front-end and never touched by the
Gripp sync: previous-year budget consumption, monthly and KPI targets,
confirmed (final) revenue per month and per-project inclusion flags.
"""

from sqlalchemy import (
    Column,
    String,
    Integer,
    Numeric,
    Boolean,
    Text,
    DateTime,
    UniqueConstraint,
)
from datetime import datetime, timezone
from .base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class PreviousConsumption(Base):
    """Budget a fixed-price project already consumed in earlier years."""

    __tablename__ = "iris_manual_project_previous_consumption"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, nullable=False, unique=True, index=True)
    previous_year_budget_used = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return (
            f"<PreviousConsumption(project_id={self.project_id}, "
            f"used={self.previous_year_budget_used})>"
        )

    def to_dict(self):
        return {
            "projectId": self.project_id,
            "consumptionAmount": (
                float(self.previous_year_budget_used)
                if self.previous_year_budget_used
                else 0.0
            ),
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class MonthlyTarget(Base):
    """Revenue target for one calendar month."""

    __tablename__ = "iris_manual_monthly_targets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)  # 1-12
    target_amount = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_monthly_targets_year_month"),
    )

    def __repr__(self):
        return f"<MonthlyTarget({self.year}-{self.month:02d}: {self.target_amount})>"

    def to_dict(self):
        return {
            "year": self.year,
            "month": self.month,
            "targetAmount": float(self.target_amount) if self.target_amount else 0.0,
        }


class KpiTarget(Base):
    """Yearly target value for a named KPI (e.g. ``utilization``)."""

    __tablename__ = "iris_kpi_targets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    year = Column(Integer, nullable=False)
    kpi_name = Column(String(100), nullable=False)
    target_value = Column(Numeric(14, 2), nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("year", "kpi_name", name="uq_kpi_targets_year_name"),
    )

    def __repr__(self):
        return f"<KpiTarget({self.year} {self.kpi_name}={self.target_value})>"

    def to_dict(self):
        return {
            "year": self.year,
            "kpiName": self.kpi_name,
            "targetValue": float(self.target_value) if self.target_value else 0.0,
        }


class FinalRevenue(Base):
    """Confirmed (invoiced) revenue for a month, entered after month close."""

    __tablename__ = "iris_final_revenue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_final_revenue_year_month"),
    )

    def __repr__(self):
        return f"<FinalRevenue({self.year}-{self.month:02d}: {self.amount})>"

    def to_dict(self):
        return {
            "year": self.year,
            "month": self.month,
            "amount": float(self.amount) if self.amount else 0.0,
        }


class ProjectRevenueSetting(Base):
    """Per-project switch to leave a project out of revenue reports."""

    __tablename__ = "iris_project_revenue_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, nullable=False, unique=True, index=True)
    include_in_revenue = Column(Boolean, default=True, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return (
            f"<ProjectRevenueSetting(project_id={self.project_id}, "
            f"include={self.include_in_revenue})>"
        )

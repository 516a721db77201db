"""Models package for the IRIS revenue backend."""

# Import base first
from .base import Base

# Import all model classes so they register on Base.metadata
from .project import Project, ProjectLine
from .hour import Hour, Employee
from .offer import Offer
from .revenue_inputs import (
    PreviousConsumption,
    MonthlyTarget,
    KpiTarget,
    FinalRevenue,
    ProjectRevenueSetting,
)
from .scheduled_job_lock import ScheduledJobLock

__all__ = [
    "Base",
    "Project",
    "ProjectLine",
    "Hour",
    "Employee",
    "Offer",
    "PreviousConsumption",
    "MonthlyTarget",
    "KpiTarget",
    "FinalRevenue",
    "ProjectRevenueSetting",
    "ScheduledJobLock",
]

"""Canonical revenue types and the adapters that build them.

Projects and hours reach the revenue calculation from two places: rows in the
local cache and raw Gripp API payloads, each with its own field names. Both are
mapped here into one shape so the revenue engine only ever sees ``HourEntry``,
``ProjectLineBudget`` and ``RevenueProject``.

These are plain dataclasses; they can be used after the SQLAlchemy session that
produced them is closed.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from src.utils.numbers import ZERO, to_decimal, to_int, to_float

NON_BILLABLE_INVOICE_BASIS = 4
HOURLY_INVOICE_BASIS = 2  # billed per hour, even inside a fixed-price project


class ProjectType(str, Enum):
    """Contract type of a project; the value is the label used in Gripp and the dashboard."""

    INTERN = "Intern"
    CONTRACT = "Contract"
    FIXED_PRICE = "Vaste Prijs"
    TIME_AND_MATERIALS = "Nacalculatie"
    QUOTE = "Offerte"
    UNCLASSIFIED = "Verkeerde tag"

    @property
    def is_budget_capped(self) -> bool:
        return self is ProjectType.FIXED_PRICE


def parse_gripp_date(value: Any) -> Optional[date]:
    """Parse Gripp's date field: ``{"date": "2024-03-01 00:00:00.000000"}`` or a plain string."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, dict):
        value = value.get("date")
        if not value:
            return None
    try:
        return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


@dataclass(frozen=True)
class ProjectLineBudget:
    """One budget line: ``amount`` units sold at ``selling_price`` each."""
    id: int
    amount: Decimal = ZERO
    selling_price: Decimal = ZERO
    invoice_basis_id: Optional[int] = None
    row_type_id: Optional[int] = None
    searchname: Optional[str] = None

    @property
    def budget(self) -> Decimal:
        return self.amount * self.selling_price

    @classmethod
    def from_orm(cls, line):
        """Create from a ``ProjectLine`` row. Must be called while the session is active."""
        return cls(
            id=line.id,
            amount=to_decimal(line.amount),
            selling_price=to_decimal(line.selling_price),
            invoice_basis_id=line.invoice_basis_id,
            row_type_id=line.row_type_id,
            searchname=line.searchname,
        )

    @classmethod
    def from_gripp(cls, row: Dict[str, Any]):
        """Create from a Gripp ``projectline`` payload."""
        return cls(
            id=to_int(row.get("id")),
            amount=to_decimal(row.get("amount")),
            selling_price=to_decimal(row.get("sellingprice")),
            invoice_basis_id=to_int((row.get("invoicebasis") or {}).get("id")),
            row_type_id=to_int((row.get("rowtype") or {}).get("id")),
            searchname=row.get("searchname"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "searchname": self.searchname,
            "amount": to_float(self.amount),
            "sellingPrice": to_float(self.selling_price),
            "budget": to_float(self.budget),
            "invoiceBasisId": self.invoice_basis_id,
        }


@dataclass(frozen=True)
class HourEntry:
    """One time registration as the revenue engine sees it.

    ``month`` is 1-12. ``hourly_rate`` is resolved before construction; the
    engine never looks rates up itself.
    """
    month: int
    hours: Decimal
    hourly_rate: Decimal
    invoice_basis_id: Optional[int] = None
    project_line_id: Optional[int] = None
    work_date: Optional[date] = None
    hour_id: Optional[int] = None
    employee_id: Optional[int] = None

    @property
    def month_index(self) -> int:
        return self.month - 1

    @property
    def is_non_billable(self) -> bool:
        return self.invoice_basis_id == NON_BILLABLE_INVOICE_BASIS

    @property
    def is_hourly(self) -> bool:
        return self.invoice_basis_id == HOURLY_INVOICE_BASIS

    @property
    def revenue(self) -> Decimal:
        """Uncapped revenue, ``hours * hourly_rate``.

        Negative hours or rates (correction bookings) count as zero.
        """
        return max(ZERO, self.hours) * max(ZERO, self.hourly_rate)

    @classmethod
    def from_orm(cls, hour, hourly_rate: Any, invoice_basis_id: Optional[int] = None):
        """Create from an ``Hour`` row.

        The invoice basis lives on the project line, not the hour, so the caller
        passes it in alongside the resolved rate.
        """
        return cls(
            month=hour.date.month,
            hours=to_decimal(hour.amount),
            hourly_rate=to_decimal(hourly_rate),
            invoice_basis_id=invoice_basis_id,
            project_line_id=hour.project_line_id,
            work_date=hour.date,
            hour_id=hour.id,
            employee_id=hour.employee_id,
        )

    @classmethod
    def from_gripp(
        cls,
        row: Dict[str, Any],
        hourly_rate: Any,
        invoice_basis_id: Optional[int] = None,
    ):
        """Create from a Gripp ``hour.get`` row. Returns None when the row has no usable date."""
        work_date = parse_gripp_date(row.get("date"))
        if work_date is None:
            return None
        return cls(
            month=work_date.month,
            hours=to_decimal(row.get("amount")),
            hourly_rate=to_decimal(hourly_rate),
            invoice_basis_id=invoice_basis_id,
            project_line_id=to_int((row.get("offerprojectline") or {}).get("id")),
            work_date=work_date,
            hour_id=to_int(row.get("id")),
            employee_id=to_int((row.get("employee") or {}).get("id")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.hour_id,
            "date": self.work_date.isoformat() if self.work_date else None,
            "month": self.month,
            "hours": to_float(self.hours),
            "hourlyRate": to_float(self.hourly_rate),
            "invoiceBasisId": self.invoice_basis_id,
            "projectLineId": self.project_line_id,
            "employeeId": self.employee_id,
        }


@dataclass
class RevenueProject:
    """The subset of a project the revenue engine needs."""
    project_id: int
    project_type: ProjectType
    total_budget: Decimal = ZERO
    previous_year_budget_used: Decimal = ZERO
    hour_details: List[HourEntry] = field(default_factory=list)
    project_lines: List[ProjectLineBudget] = field(default_factory=list)

    @property
    def available_budget(self) -> Decimal:
        return max(ZERO, self.total_budget - self.previous_year_budget_used)

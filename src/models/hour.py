"""Gripp time registration and employee models."""

from sqlalchemy import Column, String, Integer, Date, DateTime, Numeric, Text, Index
from sqlalchemy.sql import func
from .base import Base


class Employee(Base):
    """Gripp employee, kept only to label hour rows in reports.

    Filled from the ``employee`` member of synced hour rows.
    """

    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255))

    @property
    def display_name(self) -> str:
        return self.name or f"Employee {self.id}"

    def __repr__(self):
        return f"<Employee(id={self.id}, name='{self.name}')>"


class Hour(Base):
    """A single synchronized time registration.

    ``project_id`` points at the Gripp ``offerprojectbase``, which is either a
    project or a quote (``offerprojectbase_discr`` tells them apart). The hours
    sync deletes and re-inserts a whole year at a time, so rows are never
    updated in place.
    """

    __tablename__ = "hours"

    id = Column(Integer, primary_key=True, autoincrement=False)
    employee_id = Column(Integer, index=True)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False, default=0)  # hours worked
    description = Column(Text)

    status_id = Column(Integer)
    status_name = Column(String(100))

    project_id = Column(Integer, index=True)
    project_name = Column(String(500))
    project_line_id = Column(Integer, index=True)
    project_line_name = Column(String(500))
    offerprojectbase_discr = Column(String(50))

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("ix_hours_project_date", "project_id", "date"),)

    def __repr__(self):
        return (
            f"<Hour(id={self.id}, project_id={self.project_id}, "
            f"date={self.date}, amount={self.amount})>"
        )

    def to_dict(self):
        return {
            "id": self.id,
            "employeeId": self.employee_id,
            "date": self.date.isoformat() if self.date else None,
            "amount": float(self.amount) if self.amount else 0.0,
            "description": self.description,
            "status": {"id": self.status_id, "searchname": self.status_name},
            "projectId": self.project_id,
            "projectName": self.project_name,
            "projectLineId": self.project_line_id,
            "projectLineName": self.project_line_name,
            "discr": self.offerprojectbase_discr,
        }

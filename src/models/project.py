"""Gripp project and project line models."""

from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    JSON,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from .base import Base


class Project(Base):
    """
    Local cache of a Gripp project.

    Rows are replaced wholesale by the projects sync. The ``id`` is Gripp's own
    project id so hours can reference it without a lookup table.

    ``tags`` stores Gripp's tag list as ``[{"id": 28, "searchname": "Vaste prijs"}]``;
    the tag ids drive project type classification. ``type_override`` is set by
    hand when the tags in Gripp are wrong and wins over every other signal.
    """

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(500), nullable=False)
    number = Column(String(50))
    client_reference = Column(String(255))
    description = Column(Text)

    # Client
    company_id = Column(Integer, index=True)
    company_name = Column(String(255))

    # Classification
    phase_name = Column(String(100))
    tags = Column(JSON, default=list)
    type_override = Column(String(50), nullable=True)
    discr = Column(String(50), default="opdracht")

    # Budget
    total_excl_vat = Column(Numeric(12, 2), default=0)
    selling_price = Column(Numeric(12, 2), nullable=True)  # project-level hourly rate

    # Lifecycle
    archived = Column(Boolean, default=False, nullable=False)
    archived_on = Column(DateTime, nullable=True)

    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    lines = relationship(
        "ProjectLine",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectLine.id",
    )

    def __repr__(self):
        return f"<Project(id={self.id}, name='{self.name}', archived={self.archived})>"

    def to_dict(self):
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "name": self.name,
            "number": self.number,
            "clientReference": self.client_reference,
            "description": self.description,
            "company": {"id": self.company_id, "searchname": self.company_name},
            "phase": self.phase_name,
            "tags": self.tags or [],
            "type": self.type_override,
            "discr": self.discr,
            "totalexclvat": (
                float(self.total_excl_vat) if self.total_excl_vat else 0.0
            ),
            "sellingprice": float(self.selling_price) if self.selling_price else None,
            "archived": bool(self.archived),
            "archivedon": self.archived_on.isoformat() if self.archived_on else None,
            "projectLines": [line.to_dict() for line in self.lines],
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class ProjectLine(Base):
    """A budget line on a project (one row of the quote it was sold from)."""

    __tablename__ = "project_lines"

    id = Column(Integer, primary_key=True, autoincrement=False)
    project_id = Column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    searchname = Column(String(500))

    amount = Column(Numeric(12, 2), default=0)  # quantity, usually hours
    amount_written = Column(Numeric(12, 2), default=0)
    selling_price = Column(Numeric(12, 2), default=0)

    invoice_basis_id = Column(Integer, index=True)
    invoice_basis_name = Column(String(100))
    row_type_id = Column(Integer)
    row_type_name = Column(String(100))

    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )

    project = relationship("Project", back_populates="lines")

    def __repr__(self):
        return (
            f"<ProjectLine(id={self.id}, project_id={self.project_id}, "
            f"amount={self.amount}, selling_price={self.selling_price})>"
        )

    def to_dict(self):
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "projectId": self.project_id,
            "searchname": self.searchname,
            "amount": float(self.amount) if self.amount else 0.0,
            "amountwritten": float(self.amount_written) if self.amount_written else 0.0,
            "sellingprice": float(self.selling_price) if self.selling_price else 0.0,
            "invoicebasis": {
                "id": self.invoice_basis_id,
                "searchname": self.invoice_basis_name,
            },
            "rowtype": {"id": self.row_type_id, "searchname": self.row_type_name},
        }

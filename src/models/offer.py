"""Gripp quote (offer) model."""

from sqlalchemy import Column, String, Integer, Numeric, DateTime
from datetime import datetime, timezone
from .base import Base


class Offer(Base):
    """A Gripp quote. Hours may be booked on a quote before it becomes a project."""

    __tablename__ = "iris_offers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    offer_id = Column(Integer, unique=True, nullable=False, index=True)
    offer_name = Column(String(500), nullable=False)
    client_id = Column(Integer)
    client_name = Column(String(255))
    discr = Column(String(50), nullable=False, default="offerte")
    total_excl_vat = Column(Numeric(12, 2), default=0)

    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<Offer(offer_id={self.offer_id}, name='{self.offer_name}')>"

    def to_dict(self):
        return {
            "id": self.offer_id,
            "name": self.offer_name,
            "clientId": self.client_id,
            "clientName": self.client_name,
            "discr": self.discr,
            "totalexclvat": float(self.total_excl_vat) if self.total_excl_vat else 0.0,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

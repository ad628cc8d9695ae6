from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date, Numeric
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from pricewatch.database import Base


class Destination(Base):
    """
    A route/date/budget watch.

    Created and edited by the CRUD layer; the price-tracking engine only reads
    it. Setting is_active to False stops future sweeps without losing history.
    """
    __tablename__ = "destinations"

    id = Column(Integer, primary_key=True, index=True)

    # Route (IATA codes)
    origin = Column(String(3), nullable=False)
    destination = Column(String(3), nullable=False)

    # Travel dates
    departure_date = Column(Date, nullable=False)
    return_date = Column(Date, nullable=True)  # Null for one-way

    # Budget - alert when the fare drops to or below this
    max_price = Column(Numeric(10, 2), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    observations = relationship(
        "PriceObservation",
        back_populates="destination",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    alerts = relationship(
        "Alert",
        back_populates="destination",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def route_label(self) -> str:
        return f"{self.origin} → {self.destination}"

    def __repr__(self) -> str:
        return f"<Destination {self.id}: {self.origin}-{self.destination} on {self.departure_date}>"

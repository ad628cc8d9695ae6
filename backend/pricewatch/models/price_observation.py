from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from pricewatch.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in observed_at/sent_at columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PriceObservation(Base):
    """
    One fare reading for a destination at a point in time.

    Written once per successful fetch during a sweep and never updated.
    """
    __tablename__ = "price_observations"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)

    destination_id = Column(
        Integer,
        ForeignKey("destinations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="CAD", nullable=False)
    carrier = Column(String(100), nullable=True)

    observed_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    destination = relationship("Destination", back_populates="observations")

    def __repr__(self) -> str:
        return f"<PriceObservation {self.id}: ${self.price} {self.currency} on {self.observed_at}>"

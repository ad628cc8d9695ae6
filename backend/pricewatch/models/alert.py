import enum

from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from pricewatch.database import Base
from pricewatch.models.price_observation import utcnow


class AlertKind(str, enum.Enum):
    OPTIMAL_PRICE = "optimal_price"
    PRICE_DROP = "price_drop"
    MAX_PRICE_REACHED = "max_price_reached"


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, index=True)
    destination_id = Column(
        Integer,
        ForeignKey("destinations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    alert_type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    sent_at = Column(DateTime, default=utcnow, nullable=False)
    delivered = Column(Boolean, default=True, nullable=False)  # Notifier reported success

    destination = relationship("Destination", back_populates="alerts")

    def __repr__(self) -> str:
        return f"<Alert {self.id}: {self.alert_type} for destination {self.destination_id}>"

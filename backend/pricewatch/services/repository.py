"""
Storage access for the price-tracking engine.

Callers always await the Repository interface; the SQLAlchemy implementation
serves both SQLite and PostgreSQL depending on DATABASE_URL.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from pricewatch.models import Alert, Destination, PriceObservation


class Repository(ABC):

    @abstractmethod
    async def list_active_destinations(self) -> List[Destination]:
        pass

    @abstractmethod
    async def get_destination(self, destination_id: int) -> Optional[Destination]:
        pass

    @abstractmethod
    async def insert_observation(
        self,
        destination_id: int,
        price: Decimal,
        currency: str = "CAD",
        carrier: Optional[str] = None,
        observed_at: Optional[datetime] = None,
    ) -> PriceObservation:
        pass

    @abstractmethod
    async def list_observations(
        self,
        destination_id: int,
        since: datetime,
    ) -> List[PriceObservation]:
        """Observations at or after `since`, newest first."""

    @abstractmethod
    async def get_latest_observation(
        self,
        destination_id: int,
        exclude_id: Optional[int] = None,
    ) -> Optional[PriceObservation]:
        pass

    @abstractmethod
    async def insert_alert(
        self,
        destination_id: int,
        kind: str,
        message: str,
        delivered: bool = True,
    ) -> Alert:
        pass

    @abstractmethod
    async def list_alerts(self, destination_id: int, limit: int = 50) -> List[Alert]:
        pass


class SqlAlchemyRepository(Repository):
    def __init__(self, db: Session):
        self.db = db

    async def list_active_destinations(self) -> List[Destination]:
        return self.db.query(Destination).filter(
            Destination.is_active == True  # noqa: E712
        ).order_by(Destination.id).all()

    async def get_destination(self, destination_id: int) -> Optional[Destination]:
        return self.db.query(Destination).filter(
            Destination.id == destination_id
        ).first()

    async def insert_observation(
        self,
        destination_id: int,
        price: Decimal,
        currency: str = "CAD",
        carrier: Optional[str] = None,
        observed_at: Optional[datetime] = None,
    ) -> PriceObservation:
        observation = PriceObservation(
            destination_id=destination_id,
            price=price,
            currency=currency,
            carrier=carrier,
        )
        if observed_at is not None:
            observation.observed_at = observed_at
        self._add(observation)
        return observation

    async def list_observations(
        self,
        destination_id: int,
        since: datetime,
    ) -> List[PriceObservation]:
        return self.db.query(PriceObservation).filter(
            PriceObservation.destination_id == destination_id,
            PriceObservation.observed_at >= since,
        ).order_by(
            PriceObservation.observed_at.desc(),
            PriceObservation.id.desc(),
        ).all()

    async def get_latest_observation(
        self,
        destination_id: int,
        exclude_id: Optional[int] = None,
    ) -> Optional[PriceObservation]:
        query = self.db.query(PriceObservation).filter(
            PriceObservation.destination_id == destination_id
        )
        if exclude_id is not None:
            query = query.filter(PriceObservation.id != exclude_id)
        return query.order_by(
            PriceObservation.observed_at.desc(),
            PriceObservation.id.desc(),
        ).first()

    async def insert_alert(
        self,
        destination_id: int,
        kind: str,
        message: str,
        delivered: bool = True,
    ) -> Alert:
        alert = Alert(
            destination_id=destination_id,
            alert_type=getattr(kind, "value", kind),
            message=message,
            delivered=delivered,
        )
        self._add(alert)
        return alert

    async def list_alerts(self, destination_id: int, limit: int = 50) -> List[Alert]:
        return self.db.query(Alert).filter(
            Alert.destination_id == destination_id
        ).order_by(Alert.sent_at.desc(), Alert.id.desc()).limit(limit).all()

    def _add(self, row) -> None:
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except Exception:
            # Leave the session usable for the next destination in the sweep
            self.db.rollback()
            raise

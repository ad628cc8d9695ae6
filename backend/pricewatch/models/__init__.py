# SQLAlchemy models
from pricewatch.models.destination import Destination
from pricewatch.models.price_observation import PriceObservation
from pricewatch.models.alert import Alert, AlertKind

__all__ = [
    "Destination",
    "PriceObservation",
    "Alert",
    "AlertKind",
]

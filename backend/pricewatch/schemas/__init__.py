from pricewatch.schemas.price import (
    BuyDecisionResponse,
    DateAlternativeResponse,
    DateAlternativesResponse,
    PriceAnalysisResponse,
    PriceObservationResponse,
    PriceStatsResponse,
)
from pricewatch.schemas.alert import AlertResponse

__all__ = [
    "AlertResponse",
    "BuyDecisionResponse",
    "DateAlternativeResponse",
    "DateAlternativesResponse",
    "PriceAnalysisResponse",
    "PriceObservationResponse",
    "PriceStatsResponse",
]

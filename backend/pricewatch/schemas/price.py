from pydantic import BaseModel
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional


class PriceObservationResponse(BaseModel):
    id: int
    destination_id: int
    price: Decimal
    currency: str
    carrier: Optional[str] = None
    observed_at: datetime

    class Config:
        from_attributes = True


class PriceStatsResponse(BaseModel):
    current_price: float
    avg_price: float
    min_price: float
    max_price: float
    stddev_price: float
    trend: str
    data_points: int

    class Config:
        from_attributes = True


class BuyDecisionResponse(BaseModel):
    buy: bool
    reason: str
    score: int
    urgency: Optional[str] = None
    days_until_departure: Optional[int] = None

    class Config:
        from_attributes = True


class PriceAnalysisResponse(BaseModel):
    destination_id: int
    current_price: Optional[Decimal] = None
    observed_at: Optional[datetime] = None
    score: int
    recommendation: str
    analysis: str
    stats: Optional[PriceStatsResponse] = None
    decision: Optional[BuyDecisionResponse] = None


class DateAlternativeResponse(BaseModel):
    departure_date: date
    return_date: Optional[date] = None
    price: Optional[Decimal] = None
    available: bool
    is_original_date: bool = False
    is_best_price: bool = False
    error: Optional[str] = None

    class Config:
        from_attributes = True


class DateAlternativesResponse(BaseModel):
    destination_id: int
    days_range: int
    alternatives: List[DateAlternativeResponse]

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from datetime import timedelta
from typing import List, Optional

from pricewatch.database import get_db
from pricewatch.config import get_settings
from pricewatch.models import Destination
from pricewatch.models.price_observation import utcnow
from pricewatch.schemas import (
    AlertResponse,
    BuyDecisionResponse,
    DateAlternativeResponse,
    DateAlternativesResponse,
    PriceAnalysisResponse,
    PriceObservationResponse,
    PriceStatsResponse,
)
from pricewatch.services.duffel import PriceSource, PriceSourceError, get_price_source
from pricewatch.services.price_analyzer import PriceAnalyzer
from pricewatch.services.repository import SqlAlchemyRepository

settings = get_settings()
router = APIRouter()


async def _get_destination_or_404(repository: SqlAlchemyRepository, destination_id: int) -> Destination:
    destination = await repository.get_destination(destination_id)
    if not destination:
        raise HTTPException(status_code=404, detail="Destination not found")
    return destination


@router.get("/{destination_id}/analysis", response_model=PriceAnalysisResponse)
async def get_price_analysis(
    destination_id: int,
    db: Session = Depends(get_db)
):
    """Quality score and buy decision for the most recent observed price."""
    repository = SqlAlchemyRepository(db)
    destination = await _get_destination_or_404(repository, destination_id)

    latest = await repository.get_latest_observation(destination.id)
    if latest is None:
        return PriceAnalysisResponse(
            destination_id=destination.id,
            score=50,
            recommendation="insufficient history",
            analysis="No price observed yet",
        )

    analyzer = PriceAnalyzer(repository)
    analysis = await analyzer.analyze(destination, latest)
    quality = analysis.quality
    decision = analysis.decision

    stats = None
    if quality.stats:
        stats = PriceStatsResponse(
            current_price=quality.stats.current_price,
            avg_price=quality.stats.avg_price,
            min_price=quality.stats.min_price,
            max_price=quality.stats.max_price,
            stddev_price=quality.stats.stddev_price,
            trend=quality.stats.trend.value,
            data_points=quality.stats.data_points,
        )

    return PriceAnalysisResponse(
        destination_id=destination.id,
        current_price=latest.price,
        observed_at=latest.observed_at,
        score=quality.score,
        recommendation=quality.recommendation.value,
        analysis=quality.analysis,
        stats=stats,
        decision=BuyDecisionResponse(
            buy=decision.buy,
            reason=decision.reason,
            score=decision.score,
            urgency=decision.urgency,
            days_until_departure=decision.days_until_departure,
        ),
    )


@router.get("/{destination_id}/prices", response_model=List[PriceObservationResponse])
async def get_price_history(
    destination_id: int,
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db)
):
    """Observed prices for the last `days` days, newest first."""
    repository = SqlAlchemyRepository(db)
    destination = await _get_destination_or_404(repository, destination_id)

    since = utcnow() - timedelta(days=days)
    return await repository.list_observations(destination.id, since)


@router.get("/{destination_id}/alerts", response_model=List[AlertResponse])
async def get_alert_history(
    destination_id: int,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db)
):
    repository = SqlAlchemyRepository(db)
    destination = await _get_destination_or_404(repository, destination_id)
    return await repository.list_alerts(destination.id, limit=limit)


@router.get("/{destination_id}/alternatives", response_model=DateAlternativesResponse)
async def get_date_alternatives(
    destination_id: int,
    days_range: Optional[int] = Query(None, ge=1, le=7),
    db: Session = Depends(get_db),
    price_source: PriceSource = Depends(get_price_source),
):
    """Prices for departure dates around the tracked one."""
    repository = SqlAlchemyRepository(db)
    destination = await _get_destination_or_404(repository, destination_id)

    if not hasattr(price_source, "search_alternative_dates"):
        raise HTTPException(status_code=501, detail="Price source does not support date alternatives")

    try:
        alternatives = await price_source.search_alternative_dates(
            destination.origin,
            destination.destination,
            destination.departure_date,
            destination.return_date,
            days_range=days_range,
        )
    except PriceSourceError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return DateAlternativesResponse(
        destination_id=destination.id,
        days_range=days_range or settings.alternative_dates_range,
        alternatives=[DateAlternativeResponse.model_validate(a) for a in alternatives],
    )

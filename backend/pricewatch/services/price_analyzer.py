import enum
import math
import statistics
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple, Union

from pricewatch.config import get_settings
from pricewatch.models import Destination, PriceObservation
from pricewatch.models.price_observation import utcnow
from pricewatch.services.repository import Repository

settings = get_settings()

Number = Union[int, float, Decimal]

NEUTRAL_SCORE = 50

# Score deductions: share of the excess over the average, and of the
# position inside the [min, max] band
AVERAGE_WEIGHT = 0.4
RANGE_WEIGHT = 0.3

TREND_WINDOW = 3
TREND_THRESHOLD_PERCENT = 5.0
TREND_ADJUSTMENT = 15

PRICE_DROP_THRESHOLD_PERCENT = 15.0

OPTIMAL_SCORE = 85
NEAR_DEPARTURE_DAYS = 14
NEAR_DEPARTURE_SCORE = 70


class Trend(str, enum.Enum):
    RISING = "rising"
    FALLING = "falling"
    STABLE = "stable"


class Recommendation(str, enum.Enum):
    EXCELLENT = "excellent moment to buy"
    GOOD = "good price"
    AVERAGE = "average, consider waiting"
    HIGH = "high, wait for a drop"
    INSUFFICIENT_HISTORY = "insufficient history"


@dataclass
class PriceStats:
    current_price: float
    avg_price: float
    min_price: float
    max_price: float
    stddev_price: float  # Population standard deviation
    trend: Trend
    data_points: int


@dataclass
class QualityScore:
    score: int
    recommendation: Recommendation
    analysis: str
    stats: Optional[PriceStats] = None

    @property
    def trend(self) -> Trend:
        return self.stats.trend if self.stats else Trend.STABLE


@dataclass
class PriceDrop:
    previous_price: float
    current_price: float
    drop: float
    percentage_drop: float  # Rounded to one decimal


@dataclass
class BuyDecision:
    buy: bool
    reason: str
    score: int
    urgency: Optional[str] = None  # "high" or "medium" when buy is True
    days_until_departure: Optional[int] = None


@dataclass
class PriceAnalysis:
    """Everything the alert evaluator needs about one new price."""
    quality: QualityScore
    decision: BuyDecision
    price_drop: Optional[PriceDrop] = None


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def calculate_trend(prices: Sequence[float]) -> Trend:
    """
    Classify the price direction from a newest-first list.

    Compares the average of the 3 newest readings with the average of the
    3 readings before them. Needs 6 readings; anything shorter is stable.
    """
    if len(prices) < TREND_WINDOW * 2:
        return Trend.STABLE

    recent_avg = _mean(prices[:TREND_WINDOW])
    older_avg = _mean(prices[TREND_WINDOW:TREND_WINDOW * 2])
    if older_avg <= 0:
        return Trend.STABLE

    change = (recent_avg - older_avg) / older_avg * 100
    if change > TREND_THRESHOLD_PERCENT:
        return Trend.RISING
    if change < -TREND_THRESHOLD_PERCENT:
        return Trend.FALLING
    return Trend.STABLE


def range_position(price: float, min_price: float, max_price: float) -> float:
    """
    Where the price sits inside [min, max], from 0 (at min) to 100 (at max).

    A flat history has no range, so the price is treated as the midpoint.
    """
    if max_price == min_price:
        return 50.0
    return (price - min_price) / (max_price - min_price) * 100


def _describe_deviation(deviation_percent: float, window_days: int) -> str:
    if round(abs(deviation_percent), 1) == 0:
        return f"right at the {window_days}-day average"
    direction = "below" if deviation_percent < 0 else "above"
    return f"{abs(deviation_percent):.1f}% {direction} the {window_days}-day average"


def recommend(score: int, deviation_percent: float, window_days: int = 30) -> Tuple[Recommendation, str]:
    """Map a score to its recommendation band and a one-line explanation."""
    deviation = _describe_deviation(deviation_percent, window_days)
    if score >= 90:
        return Recommendation.EXCELLENT, f"Price is {deviation}"
    if score >= 70:
        return Recommendation.GOOD, f"Price is in the low part of its range, {deviation}"
    if score >= 50:
        return Recommendation.AVERAGE, f"Price is close to its usual level, {deviation}"
    return Recommendation.HIGH, f"Price is {deviation}"


def quality_score(
    current_price: Number,
    history: Sequence[Number],
    window_days: int = 30,
) -> QualityScore:
    """
    Score how favorable a price is against its trailing history (newest first).

    Starts at 100 and deducts for sitting above the average, for sitting high
    in the min/max range, and for a rising trend (a falling trend adds back).
    The result is clamped to 0-100 and rounded half up.
    """
    if not history:
        return QualityScore(
            score=NEUTRAL_SCORE,
            recommendation=Recommendation.INSUFFICIENT_HISTORY,
            analysis="First price reading for this destination",
        )

    current = float(current_price)
    prices = [float(p) for p in history]

    avg_price = _mean(prices)
    min_price = min(prices)
    max_price = max(prices)
    stddev = statistics.pstdev(prices)

    deviation = (current - avg_price) / avg_price * 100

    score = 100.0
    score -= max(0.0, deviation) * AVERAGE_WEIGHT
    score -= range_position(current, min_price, max_price) * RANGE_WEIGHT

    trend = calculate_trend(prices)
    if trend == Trend.RISING:
        score -= TREND_ADJUSTMENT
    elif trend == Trend.FALLING:
        score += TREND_ADJUSTMENT

    score = max(0.0, min(100.0, score))
    final_score = int(math.floor(score + 0.5))

    recommendation, analysis = recommend(final_score, deviation, window_days)

    return QualityScore(
        score=final_score,
        recommendation=recommendation,
        analysis=analysis,
        stats=PriceStats(
            current_price=current,
            avg_price=round(avg_price, 2),
            min_price=round(min_price, 2),
            max_price=round(max_price, 2),
            stddev_price=round(stddev, 2),
            trend=trend,
            data_points=len(prices),
        ),
    )


def find_price_drop(previous_price: Number, current_price: Number) -> Optional[PriceDrop]:
    """Return the drop from the previous reading if it is at least 15%."""
    previous = float(previous_price)
    current = float(current_price)
    if previous <= 0:
        return None

    drop = previous - current
    percentage = drop / previous * 100
    if percentage < PRICE_DROP_THRESHOLD_PERCENT:
        return None

    return PriceDrop(
        previous_price=previous,
        current_price=current,
        drop=round(drop, 2),
        percentage_drop=round(percentage, 1),
    )


def days_until_departure(departure_date: date, today: Optional[date] = None) -> int:
    return (departure_date - (today or date.today())).days


def buy_decision(
    destination: Destination,
    current_price: Number,
    quality: QualityScore,
    today: Optional[date] = None,
) -> BuyDecision:
    """
    Combine the quality score with the destination's budget and departure date.

    Order matters: a reached budget always wins, then an excellent score,
    then a good score close to departure.
    """
    current = float(current_price)

    if destination.max_price is not None and current <= float(destination.max_price):
        return BuyDecision(
            buy=True,
            reason="Target price reached",
            urgency="high",
            score=quality.score,
        )

    if quality.score >= OPTIMAL_SCORE:
        return BuyDecision(
            buy=True,
            reason="Excellent price compared to recent history",
            urgency="high",
            score=quality.score,
        )

    days_left = days_until_departure(destination.departure_date, today)

    if days_left <= NEAR_DEPARTURE_DAYS and quality.score >= NEAR_DEPARTURE_SCORE:
        return BuyDecision(
            buy=True,
            reason="Good price and departure is close",
            urgency="medium",
            score=quality.score,
            days_until_departure=days_left,
        )

    return BuyDecision(
        buy=False,
        reason=quality.recommendation.value,
        score=quality.score,
        days_until_departure=days_left,
    )


class PriceAnalyzer:
    """Runs the scoring functions against a destination's stored history."""

    def __init__(self, repository: Repository, window_days: Optional[int] = None):
        self.repository = repository
        self.window_days = window_days or settings.history_window_days

    async def get_price_history(
        self,
        destination_id: int,
        exclude_id: Optional[int] = None,
    ) -> List[float]:
        """Prices inside the trailing window, newest first."""
        since = utcnow() - timedelta(days=self.window_days)
        observations = await self.repository.list_observations(destination_id, since)
        return [float(o.price) for o in observations if o.id != exclude_id]

    async def calculate_quality_score(
        self,
        destination_id: int,
        current_price: Number,
        exclude_id: Optional[int] = None,
    ) -> QualityScore:
        history = await self.get_price_history(destination_id, exclude_id)
        return quality_score(current_price, history, self.window_days)

    async def detect_price_drop(
        self,
        destination_id: int,
        current_price: Number,
        exclude_id: Optional[int] = None,
    ) -> Optional[PriceDrop]:
        """Compare against the single most recent prior reading, whatever its age."""
        previous = await self.repository.get_latest_observation(destination_id, exclude_id)
        if previous is None:
            return None
        return find_price_drop(previous.price, current_price)

    async def should_buy_now(
        self,
        destination: Destination,
        current_price: Number,
        exclude_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> BuyDecision:
        quality = await self.calculate_quality_score(destination.id, current_price, exclude_id)
        return buy_decision(destination, current_price, quality, today)

    async def analyze(
        self,
        destination: Destination,
        observation: PriceObservation,
        today: Optional[date] = None,
    ) -> PriceAnalysis:
        """
        Analyze a freshly stored observation.

        The observation itself is left out of the history and of the
        price-drop comparison, so both look only at earlier readings.
        """
        quality = await self.calculate_quality_score(
            destination.id, observation.price, exclude_id=observation.id
        )
        decision = buy_decision(destination, observation.price, quality, today)
        price_drop = await self.detect_price_drop(
            destination.id, observation.price, exclude_id=observation.id
        )
        return PriceAnalysis(quality=quality, decision=decision, price_drop=price_drop)

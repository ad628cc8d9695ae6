"""
Alert evaluation for new price observations.

Three independent conditions are checked for every observation, and any
number of them may fire together:
- optimal price: the buy decision says buy with high urgency
- price drop: at least 15% below the previous reading
- max price reached: the fare is at or below the destination's budget

Each firing alert is sent once and logged once with the same text. There is
no cooldown, so the same condition fires again on the next sweep.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Union

from pricewatch.models import Alert, AlertKind, Destination
from pricewatch.services.notification import Notifier
from pricewatch.services.price_analyzer import PriceAnalysis
from pricewatch.services.repository import Repository

logger = logging.getLogger(__name__)

Number = Union[int, float, Decimal]


@dataclass
class AlertCandidate:
    kind: AlertKind
    message: str


def _money(value: Number, currency: str) -> str:
    return f"{float(value):.2f}$ {currency}"


def optimal_price_message(destination: Destination, price: Number, score: int, currency: str) -> str:
    return (
        f"✨ EXCELLENT PRICE!\n\n"
        f"{destination.origin} → {destination.destination}\n"
        f"Price: {_money(price, currency)}\n"
        f"Price quality score: {score}%\n\n"
        f"Great time to buy! 🎉"
    )


def price_drop_message(
    destination: Destination,
    price: Number,
    previous_price: Number,
    percentage_drop: float,
    currency: str,
) -> str:
    return (
        f"🛫 PRICE DROP!\n\n"
        f"{destination.origin} → {destination.destination}\n"
        f"Price: {_money(price, currency)} ({percentage_drop:.1f}% drop)\n"
        f"Previous price: {_money(previous_price, currency)}\n\n"
        f"Time to book! 🎯"
    )


def max_price_message(destination: Destination, price: Number, currency: str) -> str:
    return (
        f"🎯 TARGET PRICE REACHED!\n\n"
        f"{destination.origin} → {destination.destination}\n"
        f"Price: {_money(price, currency)}\n"
        f"Your limit: {_money(destination.max_price, currency)}\n\n"
        f"Book now! ⚡"
    )


def evaluate_alerts(
    destination: Destination,
    current_price: Number,
    analysis: PriceAnalysis,
    currency: str = "CAD",
) -> List[AlertCandidate]:
    """Return the alerts that fire for this price, in a fixed order."""
    candidates = []

    decision = analysis.decision
    if decision.buy and decision.urgency == "high":
        candidates.append(AlertCandidate(
            kind=AlertKind.OPTIMAL_PRICE,
            message=optimal_price_message(destination, current_price, decision.score, currency),
        ))

    drop = analysis.price_drop
    if drop is not None:
        candidates.append(AlertCandidate(
            kind=AlertKind.PRICE_DROP,
            message=price_drop_message(
                destination, current_price, drop.previous_price, drop.percentage_drop, currency
            ),
        ))

    if destination.max_price is not None and float(current_price) <= float(destination.max_price):
        candidates.append(AlertCandidate(
            kind=AlertKind.MAX_PRICE_REACHED,
            message=max_price_message(destination, current_price, currency),
        ))

    return candidates


class AlertEvaluator:
    def __init__(self, repository: Repository, notifier: Notifier):
        self.repository = repository
        self.notifier = notifier

    async def dispatch(self, destination: Destination, candidates: List[AlertCandidate]) -> List[Alert]:
        """Send each alert and record it, whether or not delivery succeeded."""
        alerts = []
        for candidate in candidates:
            logger.info(f"🔔 {candidate.kind.value} alert for {destination.route_label}")

            try:
                delivered = await self.notifier.send(candidate.message)
            except Exception as e:
                logger.error(f"❌ {self.notifier.name} failed to send {candidate.kind.value} alert: {e}")
                delivered = False

            if not delivered:
                logger.warning(
                    f"{candidate.kind.value} alert for {destination.route_label} "
                    f"was not delivered by {self.notifier.name}"
                )

            alert = await self.repository.insert_alert(
                destination.id, candidate.kind, candidate.message, delivered=delivered
            )
            alerts.append(alert)
        return alerts

    async def process(
        self,
        destination: Destination,
        current_price: Number,
        analysis: PriceAnalysis,
        currency: str = "CAD",
    ) -> List[Alert]:
        candidates = evaluate_alerts(destination, current_price, analysis, currency)
        if not candidates:
            return []
        return await self.dispatch(destination, candidates)

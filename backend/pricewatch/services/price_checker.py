"""
Price check orchestration.

For each destination:
1. Fetch the lowest fare
2. Store it as a price observation
3. Analyze it against earlier readings
4. Send and record alerts

A sweep walks all active destinations one at a time with a fixed pause in
between; a failing destination is logged and skipped.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from pricewatch.config import get_settings
from pricewatch.models import Destination
from pricewatch.services.alert_evaluator import AlertEvaluator
from pricewatch.services.duffel import PriceSource
from pricewatch.services.notification import Notifier
from pricewatch.services.price_analyzer import PriceAnalyzer
from pricewatch.services.repository import Repository

logger = logging.getLogger(__name__)
settings = get_settings()


class DestinationNotFound(ValueError):
    pass


@dataclass
class CheckResult:
    destination_id: int
    status: str  # priced, no_offer, failed
    price: Optional[Decimal] = None
    score: Optional[int] = None
    alerts_sent: int = 0
    error_message: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status != "failed"


@dataclass
class SweepSummary:
    results: List[CheckResult] = field(default_factory=list)

    @property
    def checked(self) -> int:
        return len(self.results)

    @property
    def priced(self) -> int:
        return sum(1 for r in self.results if r.status == "priced")

    @property
    def no_offer(self) -> int:
        return sum(1 for r in self.results if r.status == "no_offer")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == "failed")

    @property
    def alerts_sent(self) -> int:
        return sum(r.alerts_sent for r in self.results)


class PriceChecker:

    def __init__(
        self,
        repository: Repository,
        price_source: PriceSource,
        notifier: Notifier,
        throttle_seconds: Optional[float] = None,
    ):
        self.repository = repository
        self.price_source = price_source
        self.analyzer = PriceAnalyzer(repository)
        self.alert_evaluator = AlertEvaluator(repository, notifier)
        self.throttle_seconds = (
            settings.sweep_throttle_seconds if throttle_seconds is None else throttle_seconds
        )

    async def check_all_destinations(self) -> SweepSummary:
        """Check every active destination in order, pausing between them."""
        destinations = await self.repository.list_active_destinations()
        summary = SweepSummary()

        if not destinations:
            logger.warning("No active destinations to check")
            return summary

        logger.info(f"{len(destinations)} destination(s) to check")

        for index, destination in enumerate(destinations):
            summary.results.append(await self.check_destination(destination))

            if self.throttle_seconds > 0 and index < len(destinations) - 1:
                await asyncio.sleep(self.throttle_seconds)

        logger.info(
            f"Price check complete: {summary.priced} priced, {summary.no_offer} without offers, "
            f"{summary.failed} failed, {summary.alerts_sent} alert(s)"
        )
        return summary

    async def check_single_destination(self, destination_id: int) -> CheckResult:
        """Check one destination right away, outside of any sweep."""
        destination = await self.repository.get_destination(destination_id)
        if destination is None:
            raise DestinationNotFound(f"Destination {destination_id} not found")
        return await self.check_destination(destination)

    async def check_destination(self, destination: Destination) -> CheckResult:
        """Run the fetch/persist/analyze/alert cycle; never raises."""
        try:
            return await self._check(destination)
        except Exception as e:
            logger.error(f"❌ Error checking {destination.route_label}: {e}")
            return CheckResult(
                destination_id=destination.id,
                status="failed",
                error_message=str(e),
            )

    async def _check(self, destination: Destination) -> CheckResult:
        logger.info(f"Checking {destination.route_label} ({destination.departure_date})")

        quote = await self.price_source.lowest_price(
            destination.origin,
            destination.destination,
            destination.departure_date,
            destination.return_date,
        )

        if quote is None:
            logger.info(f"No flights found for {destination.route_label}")
            return CheckResult(destination_id=destination.id, status="no_offer")

        currency = settings.currency
        if quote.currency and quote.currency.upper() != currency.upper():
            logger.warning(
                f"Ignoring {destination.route_label} quote in {quote.currency}, history is kept in {currency}"
            )
            return CheckResult(destination_id=destination.id, status="no_offer")

        logger.info(f"Price found: {quote.price}$ {currency}")

        observation = await self.repository.insert_observation(
            destination.id,
            quote.price,
            currency=currency,
            carrier=quote.carrier,
        )

        analysis = await self.analyzer.analyze(destination, observation)
        alerts = await self.alert_evaluator.process(
            destination, observation.price, analysis, currency=currency
        )

        return CheckResult(
            destination_id=destination.id,
            status="priced",
            price=observation.price,
            score=analysis.quality.score,
            alerts_sent=len(alerts),
        )

"""
Duffel offer search as the fare source for the price checker.

API docs: https://duffel.com/docs/api/v2/offer-requests
Authentication: Bearer token, Duffel-Version header.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import List, Optional

import httpx

from pricewatch.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

DUFFEL_VERSION = "v2"


class PriceSourceError(Exception):
    """Transport or auth failure while fetching fares."""


@dataclass
class FareQuote:
    price: Decimal
    currency: str
    carrier: Optional[str] = None


@dataclass
class FlightOffer:
    price: Decimal
    currency: str
    carrier: str
    stops: int = 0
    departure_time: Optional[str] = None


@dataclass
class DateAlternative:
    departure_date: date
    return_date: Optional[date]
    price: Optional[Decimal]
    is_original_date: bool = False
    is_best_price: bool = False
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.price is not None


class PriceSource(ABC):
    name: str = "base"

    @abstractmethod
    async def lowest_price(
        self,
        origin: str,
        destination: str,
        departure_date: date,
        return_date: Optional[date] = None,
    ) -> Optional[FareQuote]:
        """Cheapest matching fare, or None when nothing is on offer."""

    async def close(self):
        pass


class DuffelPriceSource(PriceSource):
    """
    Fare lookup against Duffel offer requests.

    Usage:
        source = DuffelPriceSource(api_key="duffel_live_...")
        quote = await source.lowest_price("YUL", "CUN", date(2026, 12, 15), date(2026, 12, 22))
    """
    name = "duffel"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        preferred_carrier: Optional[str] = None,
        cabin_class: Optional[str] = None,
        currency: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.duffel_api_key
        self.base_url = base_url or settings.duffel_base_url
        self.preferred_carrier = (
            preferred_carrier if preferred_carrier is not None else settings.preferred_carrier
        )
        self.cabin_class = cabin_class or settings.cabin_class
        self.currency = (currency or settings.currency).upper()
        self._client: Optional[httpx.AsyncClient] = None

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Duffel-Version": DUFFEL_VERSION,
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                },
                timeout=60.0,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _build_offer_request(
        self,
        origin: str,
        destination: str,
        departure_date: date,
        return_date: Optional[date],
        passengers: int = 1,
    ) -> dict:
        slices = [{
            "origin": origin.upper(),
            "destination": destination.upper(),
            "departure_date": departure_date.isoformat(),
        }]
        if return_date:
            slices.append({
                "origin": destination.upper(),
                "destination": origin.upper(),
                "departure_date": return_date.isoformat(),
            })

        return {
            "data": {
                "slices": slices,
                "passengers": [{"type": "adult"} for _ in range(passengers)],
                "cabin_class": self.cabin_class,
            }
        }

    def _matches_carrier(self, offer: dict) -> bool:
        if not self.preferred_carrier:
            return True
        wanted = self.preferred_carrier.lower()

        owner = (offer.get("owner") or {}).get("name", "")
        if owner.lower() == wanted:
            return True

        for flight_slice in offer.get("slices") or []:
            for segment in flight_slice.get("segments") or []:
                operating = (segment.get("operating_carrier") or {}).get("name", "")
                if operating.lower() == wanted:
                    return True
        return False

    def _parse_offer(self, offer: dict) -> FlightOffer:
        slices = offer.get("slices") or []
        stops = sum(max(len(s.get("segments") or []) - 1, 0) for s in slices)

        departure_time = None
        if slices and slices[0].get("segments"):
            departure_time = slices[0]["segments"][0].get("departing_at")

        carrier = self.preferred_carrier or (offer.get("owner") or {}).get("name", "Unknown")

        try:
            price = Decimal(str(offer["total_amount"]))
        except (KeyError, InvalidOperation) as e:
            raise PriceSourceError(f"Malformed Duffel offer {offer.get('id', '?')}: missing or bad total_amount") from e

        return FlightOffer(
            price=price,
            currency=offer.get("total_currency") or self.currency,
            carrier=carrier,
            stops=stops,
            departure_time=departure_time,
        )

    async def search_flights(
        self,
        origin: str,
        destination: str,
        departure_date: date,
        return_date: Optional[date] = None,
        passengers: int = 1,
    ) -> List[FlightOffer]:
        """
        Create an offer request and return the offers for the preferred carrier.

        Raises PriceSourceError on missing credentials, HTTP errors or an
        unreadable response.
        """
        if not self.is_available():
            raise PriceSourceError("Duffel API key not configured")

        logger.info(f"Searching flights: {origin} -> {destination} ({departure_date})")

        client = await self._get_client()
        payload = self._build_offer_request(origin, destination, departure_date, return_date, passengers)

        try:
            response = await client.post(
                "/air/offer_requests",
                params={"return_offers": "true"},
                json=payload,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise PriceSourceError(
                f"Duffel API returned {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise PriceSourceError(f"Duffel API request failed: {e}") from e
        except ValueError as e:
            raise PriceSourceError(f"Invalid JSON from Duffel API: {e}") from e

        offers = (data.get("data") or {}).get("offers") or []
        matching = [self._parse_offer(o) for o in offers if self._matches_carrier(o)]

        priced_in_currency = [f for f in matching if f.currency.upper() == self.currency]
        if len(priced_in_currency) < len(matching):
            logger.warning(
                f"Ignoring {len(matching) - len(priced_in_currency)} offer(s) not priced in {self.currency}"
            )
        matching = priced_in_currency

        carrier_label = self.preferred_carrier or "any carrier"
        logger.info(f"{len(matching)} offers found for {carrier_label} (of {len(offers)})")
        return matching

    async def lowest_price(
        self,
        origin: str,
        destination: str,
        departure_date: date,
        return_date: Optional[date] = None,
    ) -> Optional[FareQuote]:
        flights = await self.search_flights(origin, destination, departure_date, return_date)
        if not flights:
            return None

        cheapest = min(flights, key=lambda f: f.price)
        return FareQuote(price=cheapest.price, currency=cheapest.currency, carrier=cheapest.carrier)

    async def search_alternative_dates(
        self,
        origin: str,
        destination: str,
        departure_date: date,
        return_date: Optional[date] = None,
        days_range: Optional[int] = None,
        delay_seconds: float = 1.0,
        today: Optional[date] = None,
    ) -> List[DateAlternative]:
        """
        Price the departure dates around the requested one.

        Keeps the original trip length for the return date, skips dates in
        the past and records per-date errors instead of failing. Results are
        sorted with available dates first, cheapest first; the cheapest is
        flagged as best.
        """
        days_range = settings.alternative_dates_range if days_range is None else days_range
        today = today or date.today()
        trip_length = (return_date - departure_date).days if return_date else None

        logger.info(f"Searching alternatives: {origin} -> {destination} (+/- {days_range} days)")

        candidates = [
            departure_date + timedelta(days=offset)
            for offset in range(-days_range, days_range + 1)
        ]
        candidates = [d for d in candidates if d >= today]

        results: List[DateAlternative] = []
        for index, candidate in enumerate(candidates):
            alt_return = candidate + timedelta(days=trip_length) if trip_length is not None else None
            try:
                quote = await self.lowest_price(origin, destination, candidate, alt_return)
                results.append(DateAlternative(
                    departure_date=candidate,
                    return_date=alt_return,
                    price=quote.price if quote else None,
                    is_original_date=candidate == departure_date,
                ))
            except PriceSourceError as e:
                logger.warning(f"Alternative date {candidate} failed: {e}")
                results.append(DateAlternative(
                    departure_date=candidate,
                    return_date=None,
                    price=None,
                    is_original_date=candidate == departure_date,
                    error=str(e),
                ))

            if delay_seconds and index < len(candidates) - 1:
                await asyncio.sleep(delay_seconds)

        results.sort(key=lambda r: (not r.available, r.price if r.available else 0))
        if results and results[0].available:
            results[0].is_best_price = True

        return results


# Global price source instance
_global_price_source: Optional[PriceSource] = None


def get_price_source() -> PriceSource:
    global _global_price_source
    if _global_price_source is None:
        _global_price_source = DuffelPriceSource()
    return _global_price_source


async def shutdown_price_source():
    global _global_price_source
    if _global_price_source is not None:
        await _global_price_source.close()
        _global_price_source = None

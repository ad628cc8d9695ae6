"""
Test fixtures for the fare price tracker tests.
"""
import asyncio
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Union

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from pricewatch.database import Base, enable_sqlite_foreign_keys, get_db
from pricewatch.main import app
from pricewatch.models import Destination
from pricewatch.services.duffel import FareQuote, PriceSource
from pricewatch.services.notification import Notifier


# Create test database engine (SQLite in-memory, one shared connection)
TEST_DATABASE_URL = "sqlite:///:memory:"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

enable_sqlite_foreign_keys(test_engine)

TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakePriceSource(PriceSource):
    """
    Scripted price source keyed by destination airport code.

    A value may be a price, None (no offer) or an exception to raise.
    """
    name = "fake"

    def __init__(
        self,
        prices: Optional[Dict[str, Union[float, Exception, None]]] = None,
        default: Optional[float] = 500,
        gate: Optional[asyncio.Event] = None,
    ):
        self.prices = prices or {}
        self.default = default
        self.gate = gate
        self.calls: List[tuple] = []

    async def lowest_price(self, origin, destination, departure_date, return_date=None):
        self.calls.append((origin, destination, departure_date, return_date))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)

        value = self.prices.get(destination, self.default)
        if isinstance(value, Exception):
            raise value
        if value is None:
            return None
        return FareQuote(price=Decimal(str(value)), currency="CAD", carrier="Air Canada")


class FakeNotifier(Notifier):
    name = "fake"

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.messages: List[str] = []

    async def send(self, message: str) -> bool:
        self.messages.append(message)
        return self.succeed


def make_destination(
    db,
    origin: str = "YUL",
    destination: str = "CUN",
    departure_in_days: int = 60,
    trip_days: Optional[int] = 7,
    max_price: Optional[float] = None,
    is_active: bool = True,
) -> Destination:
    departure = date.today() + timedelta(days=departure_in_days)
    row = Destination(
        origin=origin,
        destination=destination,
        departure_date=departure,
        return_date=departure + timedelta(days=trip_days) if trip_days else None,
        max_price=Decimal(str(max_price)) if max_price is not None else None,
        is_active=is_active,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def session_factory(db_session):
    """Session factory bound to the same test database as db_session."""
    return TestSessionLocal


@pytest.fixture(scope="function")
def override_get_db(db_session):
    """
    Override the get_db dependency to use the test database session.
    """
    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    return _override_get_db


@pytest.fixture(scope="function")
async def client(override_get_db):
    """
    Create an async test client with the database dependency overridden.
    """
    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Clear overrides after test
    app.dependency_overrides.clear()

"""Tests for SQLite schema upkeep and foreign key enforcement."""
from decimal import Decimal

from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from pricewatch.database import ensure_sqlite_columns
from pricewatch.models import Alert, Destination, PriceObservation

from conftest import make_destination


def _columns(engine, table):
    with engine.connect() as conn:
        return {r[1] for r in conn.execute(text(f"PRAGMA table_info({table})")).fetchall()}


def test_ensure_sqlite_columns_adds_missing_column():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    # An alerts table from before delivery tracking existed
    with engine.connect() as conn:
        conn.execute(text(
            "CREATE TABLE alerts ("
            "id INTEGER PRIMARY KEY, destination_id INTEGER NOT NULL, "
            "alert_type VARCHAR(50) NOT NULL, message TEXT NOT NULL, sent_at DATETIME NOT NULL)"
        ))
        conn.execute(text(
            "INSERT INTO alerts (destination_id, alert_type, message, sent_at) "
            "VALUES (1, 'price_drop', 'old alert', '2026-01-01 06:00:00')"
        ))
        conn.commit()

    added = ensure_sqlite_columns(engine)

    assert added == 1
    assert "delivered" in _columns(engine, "alerts")
    with engine.connect() as conn:
        delivered = conn.execute(text("SELECT delivered FROM alerts")).scalar()
    assert delivered == 1

    # Second run is a no-op
    assert ensure_sqlite_columns(engine) == 0


def test_deleting_destination_cascades(db_session):
    destination = make_destination(db_session)
    db_session.add(PriceObservation(destination_id=destination.id, price=Decimal("500")))
    db_session.add(Alert(destination_id=destination.id, alert_type="price_drop", message="drop"))
    db_session.commit()

    db_session.execute(text("DELETE FROM destinations WHERE id = :id"), {"id": destination.id})
    db_session.commit()

    assert db_session.query(Destination).count() == 0
    assert db_session.query(PriceObservation).count() == 0
    assert db_session.query(Alert).count() == 0

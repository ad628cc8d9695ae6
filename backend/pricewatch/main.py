from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from sqlalchemy.engine import make_url
import logging
import os

from pricewatch.api import health, notifications, prices, status
from pricewatch.scheduler import start_scheduler, stop_scheduler
from pricewatch.services.duffel import shutdown_price_source
from pricewatch.services.notification import shutdown_notifier
from pricewatch.config import get_settings
from pricewatch.database import engine, Base, ensure_sqlite_columns
from pricewatch.models import Destination, PriceObservation, Alert  # noqa: F401 - register tables

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def _ensure_sqlite_directory(database_url: str):
    database = make_url(database_url).database
    if database and database != ":memory:":
        directory = os.path.dirname(os.path.abspath(database))
        os.makedirs(directory, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Starting fare price tracker")

    if settings.database_url.startswith("sqlite"):
        logger.info("SQLite detected - creating tables if needed")
        _ensure_sqlite_directory(settings.database_url)
        Base.metadata.create_all(bind=engine)
        ensure_sqlite_columns()

    if settings.scheduler_enabled:
        try:
            start_scheduler()
            logger.info("✅ APScheduler started")
        except Exception as e:
            logger.error(f"❌ Scheduler startup failed: {e}")
    else:
        logger.info("Scheduler disabled by configuration")

    # Application is running
    yield

    # Shutdown
    logger.info("🛑 Shutting down fare price tracker")

    try:
        stop_scheduler()
        await shutdown_notifier()
        await shutdown_price_source()
        logger.info("✅ Shutdown complete")
    except Exception as e:
        logger.error(f"❌ Shutdown error: {e}")


app = FastAPI(
    title="Fare Price Tracker",
    description="Tracks airfare prices and alerts when it is a good time to buy",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(status.router, tags=["status"])
app.include_router(prices.router, prefix="/api/destinations", tags=["prices"])
app.include_router(notifications.router, prefix="/api", tags=["notifications"])


@app.get("/ping")
async def ping():
    """Simple ping endpoint for health checks."""
    return {"status": "ok"}

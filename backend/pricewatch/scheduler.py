"""
APScheduler setup for the twice-daily price checks.

Each PriceCheckScheduler owns its own "sweep in progress" flag, so at most one
sweep runs per instance and overlapping triggers are dropped, not queued.
"""

import asyncio
import logging
import os
from typing import Callable, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.jobstores.memory import MemoryJobStore
from sqlalchemy.orm import Session

from pricewatch.database import SessionLocal
from pricewatch.services.duffel import PriceSource, get_price_source
from pricewatch.services.notification import Notifier, get_global_notifier
from pricewatch.services.price_checker import DestinationNotFound, PriceChecker
from pricewatch.services.repository import SqlAlchemyRepository
from pricewatch.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


class PriceCheckScheduler:

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        price_source: Optional[PriceSource] = None,
        notifier: Optional[Notifier] = None,
        throttle_seconds: Optional[float] = None,
        check_on_startup: Optional[bool] = None,
        timezone: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self._price_source = price_source
        self._notifier = notifier
        self.throttle_seconds = throttle_seconds
        self.check_on_startup = (
            settings.check_on_startup if check_on_startup is None else check_on_startup
        )
        self.timezone = timezone or settings.scheduler_timezone or os.environ.get('TZ')

        self._sweep_in_progress = False
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._background_tasks: Set[asyncio.Task] = set()

    @property
    def price_source(self) -> PriceSource:
        return self._price_source or get_price_source()

    @property
    def notifier(self) -> Notifier:
        return self._notifier or get_global_notifier()

    @property
    def is_sweep_running(self) -> bool:
        return self._sweep_in_progress

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def _build_checker(self, db: Session) -> PriceChecker:
        return PriceChecker(
            SqlAlchemyRepository(db),
            self.price_source,
            self.notifier,
            throttle_seconds=self.throttle_seconds,
        )

    def _create_scheduler(self) -> AsyncIOScheduler:
        kwargs = {}
        if self.timezone:
            logger.info(f"Scheduler using timezone: {self.timezone}")
            kwargs['timezone'] = self.timezone
        else:
            logger.info("Scheduler using host local time")

        scheduler = AsyncIOScheduler(
            jobstores={'default': MemoryJobStore()},
            **kwargs
        )

        morning = settings.morning_check_hour
        evening = settings.evening_check_hour

        scheduler.add_job(
            self.run_sweep,
            trigger=CronTrigger(hour=morning, minute=0),
            id='morning_price_check',
            name=f'Morning Price Check ({morning:02d}:00)',
            replace_existing=True,
            max_instances=1,
        )

        scheduler.add_job(
            self.run_sweep,
            trigger=CronTrigger(hour=evening, minute=0),
            id='evening_price_check',
            name=f'Evening Price Check ({evening:02d}:00)',
            replace_existing=True,
            max_instances=1,
        )

        if self.check_on_startup:
            scheduler.add_job(
                self.run_sweep,
                trigger=DateTrigger(),
                id='startup_price_check',
                name='Startup Price Check',
                replace_existing=True,
            )

        logger.info("Scheduled jobs configured:")
        logger.info(f"  - Morning price check: {morning:02d}:00 daily")
        logger.info(f"  - Evening price check: {evening:02d}:00 daily")
        if self.check_on_startup:
            logger.info("  - Startup price check: now")

        return scheduler

    async def run_sweep(self) -> bool:
        """
        Check all active destinations.

        Returns False without doing anything if a sweep is already running.
        """
        if self._sweep_in_progress:
            logger.info("Price check already in progress, skipping")
            return False

        # Checked and set with no await in between, so this is atomic on the loop
        self._sweep_in_progress = True
        db = None
        try:
            logger.info("Starting price check of all active destinations")
            db = self.session_factory()
            await self._build_checker(db).check_all_destinations()
        except Exception as e:
            logger.error(f"Error in price check: {e}")
        finally:
            if db is not None:
                db.close()
            self._sweep_in_progress = False

        return True

    def trigger_sweep_now(self) -> bool:
        """
        Start a sweep in the background on the running event loop.

        Returns False, and starts nothing, when a sweep is already running.
        """
        if self._sweep_in_progress:
            logger.info("Manual price check requested but one is already running")
            return False

        task = asyncio.create_task(self.run_sweep())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        logger.info("Manual price check started")
        return True

    async def wait_for_background_sweeps(self):
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))

    async def check_destination_now(self, destination_id: int) -> dict:
        """
        Check a single destination immediately.

        Bypasses the sweep flag and the throttle, so it may overlap a
        running sweep.

        Returns: Dict with success status and error message if failed
        """
        logger.info(f"Manual price check triggered for destination {destination_id}")

        db = None
        try:
            db = self.session_factory()
            result = await self._build_checker(db).check_single_destination(destination_id)

            if result.is_success:
                logger.info(f"✅ Manual check done: {result.status}")
                return {
                    "success": True,
                    "status": result.status,
                    "price": float(result.price) if result.price is not None else None,
                    "score": result.score,
                    "alerts_sent": result.alerts_sent,
                }

            return {
                "success": False,
                "status": result.status,
                "error": result.error_message,
            }

        except DestinationNotFound as e:
            logger.warning(str(e))
            return {
                "success": False,
                "status": "not_found",
                "error": str(e),
            }

        except Exception as e:
            logger.error(f"❌ Manual check of destination {destination_id} failed: {e}")
            return {
                "success": False,
                "status": "failed",
                "error": str(e),
            }

        finally:
            if db is not None:
                db.close()

    def start(self):
        """Start the scheduler (call this from FastAPI startup)."""
        if self._scheduler is None:
            self._scheduler = self._create_scheduler()

        if self._scheduler.running:
            logger.warning("Scheduler already running")
            return

        self._scheduler.start()
        logger.info("APScheduler started successfully")

        for job in self._scheduler.get_jobs():
            logger.info(f"Next '{job.name}': {job.next_run_time}")

    def stop(self):
        """Stop the scheduler (call this from FastAPI shutdown)."""
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("APScheduler stopped")
        self._scheduler = None

    def status(self) -> dict:
        """Get scheduler status for the status endpoint."""
        if not self.running:
            return {
                "running": False,
                "sweep_in_progress": self._sweep_in_progress,
                "jobs": [],
                "next_run": None
            }

        jobs = []
        next_run = None

        for job in self._scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            })

            if job.next_run_time and (next_run is None or job.next_run_time < next_run):
                next_run = job.next_run_time

        return {
            "running": True,
            "sweep_in_progress": self._sweep_in_progress,
            "jobs": jobs,
            "next_run": next_run.isoformat() if next_run else None
        }


# Global scheduler instance used by the FastAPI app
_scheduler: Optional[PriceCheckScheduler] = None


def get_scheduler() -> PriceCheckScheduler:
    """Get or create the app-wide scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = PriceCheckScheduler()
    return _scheduler


def start_scheduler():
    get_scheduler().start()


def stop_scheduler():
    global _scheduler
    if _scheduler is not None:
        _scheduler.stop()
        _scheduler = None

"""
Subscription Update Job
Rolls overdue billing dates forward once a day
"""
import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Callable

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.services.subscription_service import update_overdue_subscriptions

logger = logging.getLogger(__name__)


class SubscriptionUpdateJob:
    """
    Daily background job, run at SUBSCRIPTION_JOB_HOUR_UTC.

    The database work runs in a worker thread so the event loop stays free.
    A run is skipped if the previous one has not finished.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, hour_utc: Optional[int] = None):
        self.session_factory = session_factory
        self.hour_utc = settings.SUBSCRIPTION_JOB_HOUR_UTC if hour_utc is None else hour_utc
        self._run_lock = threading.Lock()
        self.last_run: Optional[datetime] = None
        self.next_run: Optional[datetime] = None
        self.total_runs = 0
        self.total_updated = 0
        self.last_error: Optional[Dict[str, Any]] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def next_run_after(self, now: datetime) -> datetime:
        candidate = now.replace(hour=self.hour_utc, minute=0, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    def run_update(self) -> Dict[str, Any]:
        """Run one update synchronously and record stats"""
        # The loop thread and the admin trigger can race here
        if not self._run_lock.acquire(blocking=False):
            logger.info("Subscription update job already running, skipping")
            return {"skipped": True, "updated": 0}

        self.last_run = datetime.utcnow()
        db = None
        try:
            db = self.session_factory()
            result = update_overdue_subscriptions(db)
            self.total_runs += 1
            self.total_updated += result["updated"]
            self.last_error = None
            logger.info("Subscription auto-update completed: %d updated", result["updated"])
            return {"skipped": False, "updated": result["updated"]}
        except Exception as e:
            logger.exception("Error in subscription auto-update job")
            self.last_error = {"message": str(e), "timestamp": datetime.utcnow()}
            return {"skipped": False, "updated": 0, "error": str(e)}
        finally:
            if db is not None:
                db.close()
            self._run_lock.release()

    async def run_loop(self):
        """Sleep until the next scheduled hour, run, repeat"""
        logger.info("Subscription auto-update job scheduled daily at %02d:00 UTC", self.hour_utc)
        while True:
            now = datetime.utcnow()
            self.next_run = self.next_run_after(now)
            await asyncio.sleep((self.next_run - now).total_seconds())
            await asyncio.to_thread(self.run_update)

    def start(self):
        if self._task is None:
            self._task = asyncio.create_task(self.run_loop())

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Subscription auto-update job stopped")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_runs": self.total_runs,
            "total_updated": self.total_updated,
            "last_error": self.last_error,
            "is_running": self.is_running,
            "last_run": self.last_run,
            "next_run": self.next_run,
        }

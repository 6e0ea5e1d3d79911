"""
Periodic redelivery of proofs left in PENDING_WEBHOOK.

One APScheduler interval job calls redeliver_pending(); the backoff per
transaction is applied there, so the job interval is only the polling rate.
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..store import TransactionStore
from .lifecycle import redeliver_pending

logger = logging.getLogger(__name__)

JOB_ID = "redeliver_pending_proofs"


class RedeliverySweeper:
    def __init__(self, store: TransactionStore, interval_seconds: Optional[int] = None):
        self.store = store
        self.interval_seconds = interval_seconds or settings.retry_interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None

    async def run_once(self) -> int:
        try:
            return await redeliver_pending(self.store)
        except Exception:
            # keep the job scheduled; the next run retries
            logger.exception("Redelivery sweep failed")
            return 0

    def start(self):
        if self._scheduler is not None and self._scheduler.running:
            logger.warning("Redelivery sweeper already running")
            return
        self._scheduler = AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1},
            timezone="UTC",
        )
        self._scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"Redelivery sweeper started (every {self.interval_seconds}s)")

    def shutdown(self, wait: bool = True):
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Redelivery sweeper stopped")
        self._scheduler = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

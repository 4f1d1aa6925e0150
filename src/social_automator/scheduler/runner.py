"""
Background scheduler.

Runs the queue processor every minute and the post history cleanup once a
day on an APScheduler ``AsyncIOScheduler`` sharing the application's event
loop. Started and stopped from the FastAPI lifespan.
"""

import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from supabase import Client

from .queue import process_due_queue
from ..database.posts import cleanup_old_posts

logger = logging.getLogger(__name__)

QUEUE_JOB_ID = "process_due_queue"
CLEANUP_JOB_ID = "cleanup_old_posts"
CLEANUP_HOUR = 3
HISTORY_RETENTION_DAYS = 7


class QueueScheduler:
    """
    Owns the background jobs of the API process.

    Usage:
        scheduler = QueueScheduler(supabase_admin)
        scheduler.start()
        ...
        scheduler.shutdown()
    """

    def __init__(self, client: Client, scheduler: Optional[AsyncIOScheduler] = None):
        self.client = client
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self):
        if self._scheduler.running:
            return

        self._scheduler.add_job(
            self.run_queue,
            trigger=IntervalTrigger(minutes=1),
            id=QUEUE_JOB_ID,
            name="Publish due posts",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.add_job(
            self.run_cleanup,
            trigger=CronTrigger(hour=CLEANUP_HOUR, minute=0),
            id=CLEANUP_JOB_ID,
            name="Clean up old posts",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("🚀 Queue processor started - checking every minute")

    def shutdown(self):
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Queue processor stopped")

    def get_job_ids(self):
        return [job.id for job in self._scheduler.get_jobs()]

    async def run_queue(self):
        try:
            await process_due_queue(self.client)
        except Exception as e:
            logger.error(f"❌ Queue processor error: {e}", exc_info=True)

    async def run_cleanup(self):
        await cleanup_old_posts(self.client, days=HISTORY_RETENTION_DAYS)

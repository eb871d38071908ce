"""Background jobs run inside the API process."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from taskflow.config import settings
from taskflow.invitations.service import expire_stale_invitations
from taskflow.reminders.service import process_due_reminders

logger = logging.getLogger(__name__)


class BackgroundJobs:
    def __init__(self):
        self.scheduler = AsyncIOScheduler()

    def start(self):
        if self.scheduler.running:
            return
        self.scheduler.add_job(
            process_due_reminders,
            trigger="interval",
            seconds=settings.REMINDER_POLL_SECONDS,
            id="process_due_reminders",
            name="Deliver due reminders",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.add_job(
            expire_stale_invitations,
            trigger="interval",
            hours=1,
            id="expire_stale_invitations",
            name="Expire stale invitations",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("Background jobs started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Background jobs stopped")


jobs = BackgroundJobs()

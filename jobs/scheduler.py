"""
jobs/scheduler.py

Scheduled background jobs.

Jobs:
  1. expire_links_job
     Marks ACTIVE access links past their deadline as EXPIRED.
     Runs every hour.

  2. purge_links_job
     Deletes USED/EXPIRED links once their grace period has passed.
     Runs daily at 23:00 IST.

  3. invoice_reminder_job
     Emails clients about overdue UNPAID / PARTIALLY_PAID invoices, with
     the invoice PDF attached when a renderer is configured.
     Runs daily at 00:30 IST.

Each job catches and logs its own failures so one bad run never stops the
scheduler. Started and stopped from the FastAPI lifespan in main.py.
"""

import logging
import time
from typing import Callable
from zoneinfo import ZoneInfo

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from auth.config import LedgerConfig, SchedulerConfig
from core.ledger_database import LedgerDatabase
from core.notifications import Notifier
from core.services.access_link_service import AccessLinkService
from core.services.invoice_service import InvoiceService

logger = logging.getLogger(__name__)


class ReminderScheduler:
    """Owns the APScheduler instance and the job bodies it runs."""

    def __init__(
        self,
        link_service: AccessLinkService,
        invoice_service: InvoiceService,
        ledger_db: LedgerDatabase,
        notifier: Notifier,
        config: SchedulerConfig,
        ledger_config: LedgerConfig,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.link_service = link_service
        self.invoice_service = invoice_service
        self.ledger_db = ledger_db
        self.notifier = notifier
        self.config = config
        self.ledger_config = ledger_config
        self._sleep = sleep
        self._scheduler: BackgroundScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Register all jobs and start the scheduler thread."""
        tz = ZoneInfo(self.config.timezone)
        self._scheduler = BackgroundScheduler(timezone=tz)

        self._scheduler.add_job(
            self.expire_links_job,
            trigger=IntervalTrigger(minutes=self.config.expire_links_interval_minutes, timezone=tz),
            id="expire_access_links",
            name="Expire overdue access links",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=self.config.misfire_grace_seconds,
        )

        self._scheduler.add_job(
            self.purge_links_job,
            trigger=CronTrigger(hour=self.config.purge_links_hour, minute=0, timezone=tz),
            id="purge_access_links",
            name="Purge used and expired access links",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=self.config.misfire_grace_seconds,
        )

        self._scheduler.add_job(
            self.invoice_reminder_job,
            trigger=CronTrigger(
                hour=self.config.invoice_reminder_hour,
                minute=self.config.invoice_reminder_minute,
                timezone=tz,
            ),
            id="invoice_reminders",
            name="Send overdue invoice reminders",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=self.config.misfire_grace_seconds,
        )

        self._scheduler.start()
        logger.info("Background scheduler started with 3 jobs")

    def shutdown(self) -> None:
        """Stop the scheduler without waiting for running jobs."""
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Background scheduler shut down")
        self._scheduler = None

    # =========================================================================
    # JOBS
    # =========================================================================

    def expire_links_job(self) -> int:
        """Returns how many links were expired; 0 if the run failed."""
        try:
            return self.link_service.expire_overdue_links()
        except Exception:
            logger.exception("Job expire_links_job failed")
            return 0

    def purge_links_job(self) -> int:
        """Returns how many links were deleted; 0 if the run failed."""
        try:
            return self.link_service.purge_terminal_links()
        except Exception:
            logger.exception("Job purge_links_job failed")
            return 0

    def invoice_reminder_job(self) -> int:
        """
        Send one reminder per overdue invoice.

        Bookkeeping is only updated for invoices whose email went out, so a
        failed send is retried on the next run. Returns how many were sent.
        """
        try:
            invoices = self.invoice_service.list_due_for_reminder()
        except Exception:
            logger.exception("Job invoice_reminder_job failed to load invoices")
            return 0

        logger.info(f"Job invoice_reminder_job: {len(invoices)} overdue invoices")
        sent = 0

        for index, invoice in enumerate(invoices):
            if index:
                self._sleep(self.ledger_config.reminder_pause_seconds)
            try:
                contacts = self.ledger_db.get_billing_contacts(invoice.id)
                if contacts is None or not contacts.client_email:
                    logger.warning(f"No client email for invoice {invoice.invoice_number}, skipping reminder")
                    continue

                now = self.invoice_service.clock.now()
                if self.notifier.send_invoice_reminder(invoice, contacts, now):
                    self.invoice_service.record_reminder_sent(invoice.id, now)
                    sent += 1
            except Exception:
                logger.exception(f"Reminder for invoice {invoice.invoice_number} failed")

        logger.info(f"Job invoice_reminder_job: sent {sent}/{len(invoices)} reminders")
        return sent

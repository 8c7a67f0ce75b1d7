"""
Daily housekeeping: expired verification codes and uploads past retention.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.exc import SQLAlchemyError

from snapbox.codes import VerificationCodeStore
from snapbox.config import Settings
from snapbox.db import DbClient
from snapbox.storage import StorageClient, StorageError

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "snapbox-daily-cleanup"


@dataclass
class CleanupReport:
    codes_purged: int = 0
    uploads_deleted: int = 0
    uploads_failed: int = 0


def run_cleanup(
    db: DbClient,
    storage: StorageClient,
    codes: VerificationCodeStore,
    settings: Settings,
    now: Optional[float] = None,
) -> CleanupReport:
    report = CleanupReport()
    report.codes_purged = codes.purge_expired()

    if settings.upload_retention_days > 0:
        now = now if now is not None else time.time()
        cutoff = now - settings.upload_retention_days * 86400
        for record in db.list_uploads_before(cutoff):
            try:
                storage.remove([record.path])
                db.delete_upload(record.id)
                report.uploads_deleted += 1
            except (StorageError, SQLAlchemyError, OSError):
                logger.exception("Failed to expire upload %s (%s)", record.id, record.path)
                report.uploads_failed += 1

    logger.info(
        "Cleanup finished: %d codes purged, %d uploads deleted, %d failed",
        report.codes_purged,
        report.uploads_deleted,
        report.uploads_failed,
    )
    return report


def build_scheduler(
    settings: Settings,
    job: Callable[[], object],
    scheduler_cls=BackgroundScheduler,
):
    """Scheduler firing ``job`` once a day at the configured local time."""
    scheduler = scheduler_cls(timezone=settings.cleanup_timezone)
    trigger = CronTrigger(
        hour=settings.cleanup_hour,
        minute=settings.cleanup_minute,
        timezone=settings.cleanup_timezone,
    )
    scheduler.add_job(
        job,
        trigger=trigger,
        id=CLEANUP_JOB_ID,
        name="Daily cleanup",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler

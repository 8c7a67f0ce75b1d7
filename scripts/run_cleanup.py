"""
Run the daily SnapBox cleanup once, or block and run it on its cron schedule.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from apscheduler.schedulers.blocking import BlockingScheduler

from snapbox.cleanup import build_scheduler, run_cleanup
from snapbox.config import get_settings
from snapbox.dependencies import get_code_store, get_db_client, get_storage_client

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="SnapBox cleanup job")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cleanup and exit",
    )
    parser.add_argument(
        "--retention-days",
        type=int,
        default=None,
        help="Override UPLOAD_RETENTION_DAYS for this run",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    settings = get_settings()
    if args.retention_days is not None:
        settings = settings.model_copy(update={"upload_retention_days": args.retention_days})

    def job():
        return run_cleanup(
            get_db_client(settings),
            get_storage_client(settings),
            get_code_store(settings),
            settings,
        )

    if args.once:
        job()
        return 0

    scheduler = build_scheduler(settings, job, scheduler_cls=BlockingScheduler)
    logger.info(
        "Waiting for daily cleanup at %02d:%02d %s",
        settings.cleanup_hour,
        settings.cleanup_minute,
        settings.cleanup_timezone,
    )
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down cleanup scheduler")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""
Scheduler for periodic maintenance jobs.

Standalone Usage:
    python -m sgms.infrastructure.scheduler.main
"""

import asyncio
import logging
import signal
from datetime import timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from sgms.core.config import scheduler_logger, settings
from sgms.core.db import dispose_db


logging.getLogger("apscheduler").setLevel(logging.INFO)

scheduler = AsyncIOScheduler(timezone=timezone.utc)


def schedule_purge_stale_otps_job(interval_minutes: int = 30) -> None:
    """
    Schedule the purge_stale_otps job to run every ``interval_minutes``.
    """
    # Import here to avoid circular import issues
    from sgms.infrastructure.scheduler.jobs import purge_stale_otps

    scheduler_logger.info(
        f"Scheduling 'purge_stale_otps' job to run every {interval_minutes} minutes"
    )
    scheduler.add_job(
        purge_stale_otps,
        trigger=IntervalTrigger(minutes=interval_minutes, timezone=timezone.utc),
        replace_existing=True,
        id="purge_stale_otps_job",
        misfire_grace_time=60 * 5,
    )
    scheduler_logger.info("'purge_stale_otps' job scheduled successfully.")


def schedule_cleanup_expired_refresh_tokens_job(retention_days: int = 7) -> None:
    """
    Schedule the cleanup_expired_refresh_tokens job to run daily at 3:00 AM UTC.
    """
    from sgms.infrastructure.scheduler.jobs import cleanup_expired_refresh_tokens

    scheduler_logger.info(
        "Scheduling 'cleanup_expired_refresh_tokens' job to run daily at 3:00 AM UTC"
    )
    scheduler.add_job(
        cleanup_expired_refresh_tokens,
        trigger=CronTrigger(hour=3, minute=0, timezone=timezone.utc),
        replace_existing=True,
        id="cleanup_expired_refresh_tokens_job",
        misfire_grace_time=60 * 60,
        kwargs={"retention_days": retention_days},
    )
    scheduler_logger.info(
        "'cleanup_expired_refresh_tokens' job scheduled successfully."
    )


def initialize_scheduler() -> None:
    """Register every maintenance job. Call after ``scheduler.start()``."""
    schedule_purge_stale_otps_job(
        interval_minutes=settings.OTP_CLEANUP_INTERVAL_MINUTES
    )
    schedule_cleanup_expired_refresh_tokens_job(
        retention_days=settings.REFRESH_TOKEN_RETENTION_DAYS
    )


async def main() -> None:
    """
    Main entry point for standalone scheduler execution.

    Starts the scheduler and runs until SIGINT or SIGTERM.
    """
    shutdown_event = asyncio.Event()

    def handle_shutdown(signum, frame):
        scheduler_logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    scheduler_logger.info("Starting standalone scheduler...")

    try:
        scheduler.start()
        scheduler_logger.info("Scheduler started successfully. Waiting for jobs...")
        initialize_scheduler()
        await shutdown_event.wait()

    except Exception as e:
        scheduler_logger.exception(f"Scheduler error: {e}")
        raise

    finally:
        scheduler_logger.info("Shutting down scheduler...")

        if scheduler.running:
            scheduler.shutdown(wait=True)
            scheduler_logger.info("Scheduler stopped successfully.")

        await dispose_db()
        scheduler_logger.info("Scheduler shutdown complete.")


if __name__ == "__main__":
    asyncio.run(main())

"""ARQ worker — subscription maintenance jobs."""

import logging

from arq import cron
from arq.connections import RedisSettings

from learngate.config import get_settings
from learngate.constants import ARQ_JOB_TIMEOUT, ARQ_MAX_JOBS

logger = logging.getLogger(__name__)


async def hourly_reconciliation(ctx: dict) -> None:
    """Cron job: every hour, expire subscriptions whose window has passed."""
    from learngate.scheduler_tasks import reconcile_subscriptions

    report = await reconcile_subscriptions()
    if report.failed:
        logger.warning("Reconciliation left %d rows for the next run", report.failed)


async def daily_purge(ctx: dict) -> None:
    """Cron job: once a day, drop records past their retention window."""
    from learngate.scheduler_tasks import purge_stale_records

    if not get_settings().purge_enabled:
        logger.info("Purge disabled, skipping")
        return
    await purge_stale_records()


class WorkerSettings:
    """ARQ worker configuration."""

    functions = [hourly_reconciliation, daily_purge]
    cron_jobs = [
        cron(hourly_reconciliation, minute=0),  # Every hour at :00
        cron(daily_purge, hour=0, minute=0),  # Midnight UTC
    ]

    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)

    max_jobs = ARQ_MAX_JOBS
    job_timeout = ARQ_JOB_TIMEOUT

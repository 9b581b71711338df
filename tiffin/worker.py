"""ARQ worker: scheduled grace-period and expiry sweep."""

import logging

from arq import cron
from arq.connections import RedisSettings

from tiffin.config import get_settings
from tiffin.constants import ARQ_JOB_TIMEOUT, ARQ_MAX_JOBS, SWEEP_CRON_MINUTES

logger = logging.getLogger(__name__)


async def sweep_job(ctx: dict) -> dict:
    """Cron job: expire lapsed subscriptions and boosts, suspend overdue kitchens."""
    from tiffin.db.session import async_session_factory
    from tiffin.services.sweeper import run_sweep

    async with async_session_factory() as db:
        result = await run_sweep(db)
    return result.model_dump(mode="json")


class WorkerSettings:
    """ARQ worker configuration."""

    functions = [sweep_job]
    cron_jobs = [cron(sweep_job, minute=SWEEP_CRON_MINUTES, run_at_startup=True)]

    redis_settings = RedisSettings.from_dsn(get_settings().redis_url or "redis://localhost:6379")

    max_jobs = ARQ_MAX_JOBS
    job_timeout = ARQ_JOB_TIMEOUT

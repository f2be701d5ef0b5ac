from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from pytz import timezone

from foresight.scheduler.jobs import reset_monthly_ai_tokens
from foresight.config import get_settings


settings = get_settings()


def _jobstore():
    # Jobs are re-registered on every start, so memory is enough unless a dedicated store is set
    if settings.SCHEDULER_DB_URL:
        return SQLAlchemyJobStore(url=settings.SCHEDULER_DB_URL)
    return MemoryJobStore()


# Global scheduler instance for the monthly quota reset.
scheduler = AsyncIOScheduler(
    jobstores={"default": _jobstore()},
    timezone=timezone(settings.SCHEDULER_TZ),
)


def configure_jobs() -> None:
    """
    Register all recurring jobs with the scheduler.

    - monthly-token-reset: zero organization AI token counters on the 1st
    """
    scheduler.add_job(
        reset_monthly_ai_tokens,
        "cron",
        id="monthly-token-reset",
        day=1,
        hour=0,
        minute=5,
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
        max_instances=1,
    )


async def init_scheduler(app) -> None:
    """
    Lifespan hook: initialize and start the APScheduler instance
    if SCHEDULER_ENABLED is true.
    """
    if not settings.SCHEDULER_ENABLED:
        return
    configure_jobs()
    scheduler.start()


async def shutdown_scheduler() -> None:
    """
    Lifespan hook: stop the scheduler cleanly.
    """
    if scheduler.running:
        scheduler.shutdown(wait=False)

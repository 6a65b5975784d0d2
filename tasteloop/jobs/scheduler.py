"""Process-wide APScheduler for the periodic preference refresh."""

from datetime import datetime, timedelta, timezone

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tasteloop.core.refinement import PreferenceUpdateCoordinator
from tasteloop.logging import get_logger

logger = get_logger(__name__)

PREFERENCE_REFRESH_JOB_ID = "preference_refresh"

# A refresh pass that overruns its interval is skipped, never stacked
JOB_DEFAULTS = {
    "coalesce": True,
    "max_instances": 1,
    "misfire_grace_time": 60,
}
FIRST_RUN_DELAY = timedelta(minutes=1)

_scheduler: AsyncIOScheduler | None = None


def get_scheduler() -> AsyncIOScheduler:
    global _scheduler

    if _scheduler is None:
        logger.info("Creating scheduler")
        _scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            job_defaults=JOB_DEFAULTS,
            timezone=timezone.utc,
        )
    return _scheduler


def start_scheduler() -> None:
    """Start the scheduler unless it is already running."""
    scheduler = get_scheduler()
    if scheduler.running:
        return
    logger.info("Starting scheduler")
    scheduler.start()


def shutdown_scheduler() -> None:
    """Stop the scheduler and drop it, so the next caller gets a fresh one."""
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.info("Shutting down scheduler")
        _scheduler.shutdown(wait=True)
    _scheduler = None


def setup_preference_refresh_job(
    coordinator: PreferenceUpdateCoordinator | None = None,
) -> str | None:
    """Schedule ``run_preference_refresh`` every PREF_REFRESH_INTERVAL_HOURS.

    Args:
        coordinator: Coordinator handed to each run; when omitted every run
            builds one from the database

    Returns:
        Job ID, or None when PREF_REFRESH_ENABLED is false
    """
    from tasteloop.config import config
    from tasteloop.jobs.preference_refresh import run_preference_refresh

    if not config.pref_refresh_enabled:
        logger.info("Preference refresh job not scheduled: PREF_REFRESH_ENABLED=false")
        return None

    job = get_scheduler().add_job(
        run_preference_refresh,
        IntervalTrigger(hours=config.pref_refresh_interval_hours),
        id=PREFERENCE_REFRESH_JOB_ID,
        name="Preference Refresh",
        replace_existing=True,
        kwargs={"coordinator": coordinator},
        next_run_time=datetime.now(timezone.utc) + FIRST_RUN_DELAY,
    )
    logger.info(
        f"Scheduled preference refresh every {config.pref_refresh_interval_hours}h "
        f"(job_id={job.id})"
    )
    return job.id


def setup_all_jobs(coordinator: PreferenceUpdateCoordinator | None = None) -> list[str]:
    """Register every periodic job; returns the IDs actually scheduled."""
    job_ids = [
        job_id for job_id in (setup_preference_refresh_job(coordinator),) if job_id is not None
    ]
    logger.info(f"Jobs configured: {job_ids or 'none'}")
    return job_ids

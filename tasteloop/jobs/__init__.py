"""Jobs module for scheduled tasks and background processing."""

from tasteloop.jobs.preference_refresh import run_preference_refresh
from tasteloop.jobs.scheduler import (
    PREFERENCE_REFRESH_JOB_ID,
    get_scheduler,
    setup_all_jobs,
    setup_preference_refresh_job,
    shutdown_scheduler,
    start_scheduler,
)

__all__ = [
    "PREFERENCE_REFRESH_JOB_ID",
    "get_scheduler",
    "run_preference_refresh",
    "setup_all_jobs",
    "setup_preference_refresh_job",
    "shutdown_scheduler",
    "start_scheduler",
]

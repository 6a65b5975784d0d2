"""Tests for the preference refresh job and its scheduling."""

import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from tasteloop.config import config
from tasteloop.core import Domain, PreferenceUpdateCoordinator
from tasteloop.jobs import (
    PREFERENCE_REFRESH_JOB_ID,
    get_scheduler,
    run_preference_refresh,
    setup_all_jobs,
    setup_preference_refresh_job,
    shutdown_scheduler,
)
from tasteloop.storage import FeedbackRepo, SqlFeedbackStore, SqlPreferencesStore

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def coordinator(session_factory):
    return PreferenceUpdateCoordinator(
        SqlFeedbackStore(session_factory), SqlPreferencesStore(session_factory)
    )


@pytest.fixture
def scheduler_reset():
    yield
    shutdown_scheduler()


@pytest.mark.anyio
async def test_refresh_only_recent_users(session, coordinator):
    repo = FeedbackRepo(session)
    await repo.upsert_feedback("active", "t1", "like", {"genres": ["Jazz"]}, "music", NOW)
    await repo.upsert_feedback("active", "m1", "dislike", {"genres": ["Horror"]}, "film", NOW)
    await repo.upsert_feedback(
        "idle", "t2", "like", {"genres": ["Rock"]}, "music", NOW - timedelta(days=3)
    )

    summary = await run_preference_refresh(coordinator, lookback_hours=24, now_dt=NOW)

    assert summary == {"users": 1, "refreshed": 1}
    stored = await coordinator.preferences_store.get("active", Domain.MUSIC)
    assert stored.fields == {"genres": ["Jazz"], "liked_tracks": ["t1"]}
    assert await coordinator.preferences_store.get("active", Domain.FILM) is None
    assert await coordinator.preferences_store.get("idle", Domain.MUSIC) is None


@pytest.mark.anyio
async def test_refresh_with_no_activity(coordinator):
    summary = await run_preference_refresh(coordinator, now_dt=NOW)

    assert summary == {"users": 0, "refreshed": 0}


def test_job_not_scheduled_when_disabled(scheduler_reset):
    assert setup_preference_refresh_job() is None
    assert setup_all_jobs() == []
    assert get_scheduler().get_job(PREFERENCE_REFRESH_JOB_ID) is None


def test_job_scheduled_when_enabled(monkeypatch, scheduler_reset):
    coordinator = object()
    enabled = dataclasses.replace(config, pref_refresh_enabled=True, pref_refresh_interval_hours=2)
    monkeypatch.setattr("tasteloop.config.config", enabled)

    job_id = setup_preference_refresh_job(coordinator)

    job = get_scheduler().get_job(job_id)
    assert job_id == PREFERENCE_REFRESH_JOB_ID
    assert job.trigger.interval == timedelta(hours=2)
    assert job.kwargs == {"coordinator": coordinator}

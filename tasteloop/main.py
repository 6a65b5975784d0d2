"""Application entrypoint for the FastAPI service."""

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncGenerator

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tasteloop.config import Config, config
from tasteloop.core import (
    InMemoryLocalHistoryStore,
    InvalidInputError,
    JsonFileLocalHistoryStore,
    PreferenceUpdateCoordinator,
    RefinementQueue,
    TasteEngine,
)
from tasteloop.jobs import setup_all_jobs, shutdown_scheduler, start_scheduler
from tasteloop.logging import get_logger, setup_logging

setup_logging(config.log_level, config.log_format)
logger = get_logger(__name__)


def build_engine(cfg: Config = config) -> TasteEngine:
    """Wire a TasteEngine from configuration.

    The database is the authoritative history provenance unless
    REMOTE_HISTORY_URL points at an external service.
    """
    from tasteloop.storage import (
        HttpRemoteHistory,
        SqlFeedbackStore,
        SqlPreferencesStore,
        SqlRemoteHistory,
        get_session_factory,
    )

    session_factory = get_session_factory()
    feedback_store = SqlFeedbackStore(session_factory)

    if cfg.remote_history_url:
        remote_history = HttpRemoteHistory(
            cfg.remote_history_url, timeout=cfg.remote_history_timeout_seconds
        )
    else:
        remote_history = SqlRemoteHistory(session_factory)

    if cfg.local_history_dir:
        local_history = JsonFileLocalHistoryStore(cfg.local_history_dir)
    else:
        local_history = InMemoryLocalHistoryStore()

    inference = None
    if cfg.inference_configured:
        from tasteloop.llm import LLMPreferenceInference

        inference = LLMPreferenceInference(timeout=cfg.inference_timeout_seconds)
    else:
        logger.info("Preference inference not configured")

    coordinator = PreferenceUpdateCoordinator(
        feedback_store,
        SqlPreferencesStore(session_factory),
        inference=inference,
        recent_limit=cfg.recent_feedback_limit,
        step_timeout=cfg.inference_timeout_seconds,
        local_fallback=cfg.refinement_local_fallback,
    )
    queue = RefinementQueue(
        coordinator,
        maxsize=cfg.refinement_queue_size,
        workers=cfg.refinement_workers,
    )

    return TasteEngine(
        feedback_store,
        local_history=local_history,
        remote_history=remote_history,
        coordinator=coordinator,
        refinement_queue=queue,
        cooldown=timedelta(hours=cfg.dislike_cooldown_hours),
        min_threshold=cfg.min_batch_threshold,
        remote_timeout=cfg.remote_history_timeout_seconds,
        profile_window=cfg.profile_window,
    )


async def verify_admin_token(
    authorization: str | None = Header(None, alias="Authorization"),
) -> None:
    """Verify admin token for protected endpoints.

    Args:
        authorization: Authorization header value

    Raises:
        HTTPException: If token is invalid or missing
    """
    if not config.admin_token:
        raise HTTPException(
            status_code=503,
            detail="Admin endpoints not configured (ADMIN_TOKEN not set)",
        )

    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    # Support "Bearer <token>" or just "<token>"
    token = authorization
    if authorization.startswith("Bearer "):
        token = authorization[7:]

    if token != config.admin_token:
        raise HTTPException(status_code=403, detail="Invalid admin token")


def get_taste_engine(request: Request) -> TasteEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    from tasteloop.storage import close_engine, create_tables

    logger.info("Starting application")

    # Ensure all tables exist (idempotent)
    await create_tables()

    engine = build_engine()
    app.state.engine = engine
    if engine.refinement_queue is not None:
        engine.refinement_queue.start()

    start_scheduler()
    setup_all_jobs(engine.coordinator)

    yield

    logger.info("Shutting down application")

    shutdown_scheduler()

    if engine.refinement_queue is not None:
        await engine.refinement_queue.stop()

    close_remote = getattr(engine.remote_history, "close", None)
    if close_remote is not None:
        await close_remote()

    await close_engine()


app = FastAPI(
    title="Tasteloop",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"ok": False, "error": str(exc)})


class EligibleRequest(BaseModel):
    """Candidates to run through the uniqueness filter."""

    candidates: list[Any]
    cooldown_hours: float | None = Field(default=None, ge=0)
    min_threshold: int | None = Field(default=None, ge=0)


class FeedbackRequest(BaseModel):
    """A like or dislike on one recommended item."""

    item_id: str
    polarity: str
    domain: str | None = None
    signals: dict[str, Any] = Field(default_factory=dict)


class ShownRequest(BaseModel):
    item_ids: list[str]


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True}


@app.post("/users/{user_id}/eligible")
async def eligible_candidates(
    user_id: str,
    payload: EligibleRequest,
    engine: TasteEngine = Depends(get_taste_engine),
) -> dict:
    """Filter candidates down to those the user may be shown."""
    cooldown = None
    if payload.cooldown_hours is not None:
        cooldown = timedelta(hours=payload.cooldown_hours)

    eligible = await engine.filter_eligible(user_id, payload.candidates, cooldown=cooldown)
    return {
        "ok": True,
        "eligible": eligible,
        "needs_more": engine.needs_more(eligible, payload.min_threshold),
    }


@app.get("/users/{user_id}/taste")
async def taste_profile(
    user_id: str,
    engine: TasteEngine = Depends(get_taste_engine),
) -> dict:
    """Return the user's cross-domain taste summary."""
    summary = await engine.get_taste_profile(user_id)
    return {"ok": True, **summary.to_dict()}


@app.post("/users/{user_id}/feedback")
async def record_feedback(
    user_id: str,
    payload: FeedbackRequest,
    engine: TasteEngine = Depends(get_taste_engine),
) -> dict:
    """Record a like/dislike; preference refinement runs in the background."""
    event = await engine.on_feedback(
        user_id,
        payload.item_id,
        payload.polarity,
        payload.signals,
        domain=payload.domain,
    )
    return {
        "ok": True,
        "item_id": event.item_id,
        "polarity": event.polarity.value,
        "domain": event.domain.value if event.domain else None,
        "timestamp": event.timestamp.isoformat(),
    }


@app.post("/users/{user_id}/shown")
async def track_shown(
    user_id: str,
    payload: ShownRequest,
    engine: TasteEngine = Depends(get_taste_engine),
) -> dict:
    """Note items as shown without a verdict."""
    tracked = await engine.track_shown(user_id, payload.item_ids)
    return {"ok": True, "tracked": tracked}


@app.delete("/users/{user_id}/history")
async def clear_history(
    user_id: str,
    engine: TasteEngine = Depends(get_taste_engine),
) -> dict:
    """Forget which items the user has seen; feedback and preferences stay."""
    remote_cleared = await engine.clear_history(user_id)
    return {"ok": True, "remote_cleared": remote_cleared}


@app.post("/admin/preferences/refresh")
async def trigger_preference_refresh(
    _: None = Depends(verify_admin_token),
    engine: TasteEngine = Depends(get_taste_engine),
) -> dict:
    """Trigger an immediate preference refresh run.

    Requires admin token in Authorization header.
    """
    from tasteloop.jobs import run_preference_refresh

    logger.info("Admin triggered preference refresh")

    try:
        summary = await run_preference_refresh(coordinator=engine.coordinator)
        return {"ok": True, **summary}
    except Exception as e:
        logger.exception(f"Admin preference refresh failed: {e}")
        raise HTTPException(
            status_code=500,
            detail=f"Refresh failed: {str(e)[:200]}",
        )


@app.get("/admin/users/{user_id}/events")
async def user_audit_events(
    user_id: str,
    event_name: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    _: None = Depends(verify_admin_token),
) -> dict:
    """Return the user's audit trail, newest first.

    ``total`` counts every matching event, not only the returned page.
    Requires admin token in Authorization header.
    """
    from tasteloop.storage import EventsRepo, event_to_dict, get_session_factory

    async with get_session_factory()() as session:
        repo = EventsRepo(session)
        events = await repo.list_events(event_name=event_name, user_id=user_id, limit=limit)
        total = await repo.count_events(event_name=event_name, user_id=user_id)
    return {"ok": True, "total": total, "events": [event_to_dict(e) for e in events]}


def main() -> None:
    """Main entrypoint."""
    logger.info(f"Starting FastAPI server on {config.host}:{config.port}")
    uvicorn.run(
        "tasteloop.main:app",
        host=config.host,
        port=config.port,
        reload=False,
    )


if __name__ == "__main__":
    main()

"""HTTP API exposing the aggregate query surface (read-only)."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from . import __version__, query
from .config import HookwatchConfig
from .errors import StoreUnavailable
from .store import EventStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_store(request: Request) -> EventStore:
    return request.app.state.store


def get_config(request: Request) -> HookwatchConfig:
    return request.app.state.config


@router.get("/health", tags=["health"])
async def health_check(store: EventStore = Depends(get_store)) -> dict:
    return {
        "status": "ok",
        "version": __version__,
        "store": {"path": str(store.path), "exists": store.exists(), "bytes": store.size()},
    }


@router.get("/sessions", tags=["sessions"])
async def list_sessions(
    store: EventStore = Depends(get_store),
    config: HookwatchConfig = Depends(get_config),
) -> dict:
    result = query.load_sessions(store, config.token_heuristic_divisor)
    return {
        "sessions": [s.model_dump(by_alias=True, mode="json") for s in result.summaries.values()],
        "latest": result.latest,
        "skipped": result.skipped,
    }


@router.get("/sessions/{session_id}", tags=["sessions"])
async def get_session(
    session_id: str,
    store: EventStore = Depends(get_store),
    config: HookwatchConfig = Depends(get_config),
) -> dict:
    """One session summary; ``latest`` resolves to the most recently active session."""
    if session_id == query.ALL:
        raise HTTPException(status_code=400, detail="Use /api/sessions to list all sessions")
    summary, skipped = query.summarize(store, session_id, config.token_heuristic_divisor)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return {"session": summary.model_dump(by_alias=True, mode="json"), "skipped": skipped}


@router.get("/sessions/{session_id}/duplicates", tags=["audit"])
async def get_duplicates(
    session_id: str,
    min_fires: int | None = Query(default=None, ge=1),
    threshold: float | None = Query(default=None, gt=0.0, le=1.0),
    store: EventStore = Depends(get_store),
    config: HookwatchConfig = Depends(get_config),
) -> dict:
    result = query.detect_duplicates(
        store,
        session_id,
        min_fires=min_fires or config.dedup_min_fires,
        threshold=threshold or config.dedup_threshold,
    )
    if result.session_id is None and session_id != query.ALL:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return {
        "sessionId": result.session_id,
        "duplicates": [
            {**r.model_dump(by_alias=True, mode="json"), "zeroOutput": r.zero_output} for r in result.reports
        ],
        "skipped": result.skipped,
    }


@router.get("/events", tags=["events"])
async def list_events(
    since_offset: int = Query(default=0, ge=0),
    limit: int = Query(default=500, ge=1, le=5000),
    store: EventStore = Depends(get_store),
) -> dict:
    """A page of events for polling clients; pass ``nextOffset`` back as ``since_offset``."""
    result = store.read_from(since_offset, limit=limit)
    return {
        "events": [r.event.model_dump(by_alias=True, mode="json") for r in result.records],
        "nextOffset": result.offset,
        "skipped": result.skipped,
    }


async def _store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("Store unavailable while serving %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


def create_app(config: HookwatchConfig) -> FastAPI:
    app = FastAPI(
        title="hookwatch",
        description="Read-only audit API over the hook event log",
        version=__version__,
    )
    app.state.config = config
    app.state.store = EventStore.from_config(config)
    app.add_exception_handler(StoreUnavailable, _store_unavailable)
    app.include_router(router)
    return app

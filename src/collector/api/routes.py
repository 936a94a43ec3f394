"""Snapshot query and cycle trigger endpoints."""

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from collector.logging import get_logger
from collector.store.repository import SnapshotStore

logger = get_logger(__name__)

router = APIRouter()


def _store(request: Request) -> SnapshotStore:
    store = request.app.state.store
    if store is None:
        raise HTTPException(status_code=503, detail="store not ready")
    return store


@router.get("/snapshots/latest")
async def latest_snapshot(request: Request) -> JSONResponse:
    snapshot = await _store(request).latest()
    if snapshot is None:
        raise HTTPException(status_code=404, detail="no snapshots")
    return JSONResponse(content=snapshot.to_document())


@router.get("/snapshots/closest")
async def closest_snapshot(
    request: Request,
    at: int = Query(..., description="Target time, Unix milliseconds"),
) -> JSONResponse:
    snapshot = await _store(request).closest(at)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="no snapshots")
    return JSONResponse(content=snapshot.to_document())


@router.post("/cycles", status_code=202)
async def trigger_cycle(request: Request, chat_id: str | None = None) -> JSONResponse:
    """Ask the watcher for an immediate cycle; 409 while one is running."""
    watcher = request.app.state.watcher
    if watcher is None:
        raise HTTPException(status_code=503, detail="watcher not running")
    if not watcher.trigger(chat_id):
        raise HTTPException(status_code=409, detail="cycle already running")
    logger.info("cycle_trigger_accepted", chat_id=chat_id)
    return JSONResponse(status_code=202, content={"status": "accepted"})

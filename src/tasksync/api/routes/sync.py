"""Sync trigger, status and audit log routes."""
import json
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlmodel import Session

from tasksync.db.engine import get_session
from tasksync.sync.audit import recent_logs
from tasksync.sync.engine import SyncEngine, SyncRunResult

router = APIRouter()


class SyncRunResponse(BaseModel):
    ok: bool
    result: SyncRunResult


class SyncStatusResponse(BaseModel):
    pending: int
    running: bool


class SyncLogResponse(BaseModel):
    id: int
    task_id: Optional[str]
    log_type: str
    message: str
    meta: Optional[Any]
    created_at: datetime


def get_sync_engine(request: Request) -> SyncEngine:
    return request.app.state.sync_engine


@router.post("/trigger", response_model=SyncRunResponse)
async def trigger_sync(sync_engine: SyncEngine = Depends(get_sync_engine)):
    """
    Run one sync cycle now and return its result.
    A transport failure comes back as result.error, not as an HTTP error.
    """
    result = await sync_engine.process_once()
    return SyncRunResponse(ok=True, result=result)


@router.post("/batch", response_model=SyncRunResponse)
async def run_batch(sync_engine: SyncEngine = Depends(get_sync_engine)):
    """Explicit batch run; same as /trigger."""
    result = await sync_engine.process_once()
    return SyncRunResponse(ok=True, result=result)


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(sync_engine: SyncEngine = Depends(get_sync_engine)):
    """Return the number of outbox entries still awaiting acknowledgement."""
    return SyncStatusResponse(
        pending=sync_engine.queue_depth(),
        running=sync_engine.is_running,
    )


@router.get("/logs", response_model=List[SyncLogResponse])
def sync_logs(
    limit: int = Query(50, ge=1, le=500),
    session: Session = Depends(get_session),
):
    """Most recent sync log entries, newest first."""
    return [
        SyncLogResponse(
            id=log.id,
            task_id=log.task_id,
            log_type=log.log_type,
            message=log.message,
            meta=json.loads(log.meta_json) if log.meta_json else None,
            created_at=log.created_at,
        )
        for log in recent_logs(session, limit=limit)
    ]

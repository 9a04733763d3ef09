"""Append-only sync audit log."""
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from tasksync.models.sync import LogType, SyncLog


def append_log(
    session: Session,
    log_type: LogType,
    message: str,
    *,
    task_id: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> SyncLog:
    """Stage a log entry. Does not commit."""
    log = SyncLog(
        task_id=task_id,
        log_type=LogType(log_type).value,
        message=message,
        meta_json=json.dumps(meta, default=str) if meta is not None else None,
        created_at=datetime.utcnow(),
    )
    session.add(log)
    return log


def recent_logs(session: Session, limit: int = 50) -> List[SyncLog]:
    """Most recent entries first."""
    return list(
        session.exec(
            select(SyncLog)
            .order_by(SyncLog.created_at.desc(), SyncLog.id.desc())
            .limit(limit)
        ).all()
    )

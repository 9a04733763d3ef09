"""
Outbox store: durable FIFO queue of un-acknowledged local mutations.

Producers (the task service) append entries inside the same session as the
task mutation; nothing here commits. Callers own the transaction so a task
write and its outbox entry land together or not at all.
"""
import json
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, col, or_, select

from tasksync.models.sync import OperationType, SyncQueueEntry
from tasksync.models.task import Task


def snapshot(task: Task) -> str:
    """Serialize a task to the JSON payload carried by an outbox entry."""
    return json.dumps(task.model_dump(mode="json"))


def enqueue(
    session: Session,
    operation_type: OperationType,
    task_id: str,
    payload: str,
    *,
    now: Optional[datetime] = None,
) -> SyncQueueEntry:
    """Stage a new outbox entry with attempts=0. Does not commit."""
    ts = now or datetime.utcnow()
    entry = SyncQueueEntry(
        operation_type=OperationType(operation_type).value,
        task_id=task_id,
        payload=payload,
        attempts=0,
        created_at=ts,
        updated_at=ts,
        next_retry_at=ts,
    )
    session.add(entry)
    return entry


def fetch_batch(
    session: Session, limit: int, *, now: Optional[datetime] = None
) -> List[SyncQueueEntry]:
    """Return up to `limit` due entries, oldest first."""
    ts = now or datetime.utcnow()
    stmt = (
        select(SyncQueueEntry)
        .where(
            or_(
                col(SyncQueueEntry.next_retry_at).is_(None),
                col(SyncQueueEntry.next_retry_at) <= ts,
            )
        )
        .order_by(SyncQueueEntry.created_at, SyncQueueEntry.id)
        .limit(limit)
    )
    return list(session.exec(stmt).all())


def schedule_retry(
    session: Session,
    entry: SyncQueueEntry,
    attempts: int,
    *,
    now: Optional[datetime] = None,
) -> None:
    """Record a failed attempt and leave the entry queued.

    next_retry_at is set to now: retries are immediate. The column exists so
    a backoff policy can push it forward without touching task status.
    """
    ts = now or datetime.utcnow()
    entry.attempts = attempts
    entry.updated_at = ts
    entry.next_retry_at = ts
    session.add(entry)


def remove(session: Session, entry: SyncQueueEntry) -> None:
    session.delete(entry)


def queue_depth(session: Session) -> int:
    """Count of unresolved outbox entries."""
    return session.exec(select(func.count()).select_from(SyncQueueEntry)).one()

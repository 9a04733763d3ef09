"""
Task record store.

Every local mutation (create, update, soft delete) marks the task pending
and appends the matching outbox entry in the same session, then commits
once. Either both rows land or neither does.

The mark_* / apply_* helpers are used by the sync engine while it resolves
outcomes; they stage changes without committing because the engine commits
each resolved item as one unit.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from sqlmodel import Session, select

from tasksync.models.sync import OperationType
from tasksync.models.task import SyncStatus, Task
from tasksync.sync import outbox
from tasksync.sync.conflict import parse_timestamp

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def list_tasks(session: Session) -> List[Task]:
    """Non-deleted tasks, most recently updated first."""
    return list(
        session.exec(
            select(Task)
            .where(Task.is_deleted == False)  # noqa: E712
            .order_by(Task.updated_at.desc())
        ).all()
    )


def get_task(session: Session, task_id: str) -> Optional[Task]:
    return session.get(Task, task_id)


def create_task(
    session: Session,
    title: str,
    description: Optional[str] = None,
    completed: bool = False,
) -> Task:
    ts = datetime.utcnow()
    task = Task(
        title=title,
        description=description,
        completed=bool(completed),
        created_at=ts,
        updated_at=ts,
        sync_status=SyncStatus.PENDING.value,
    )
    session.add(task)
    outbox.enqueue(session, OperationType.CREATE, task.id, outbox.snapshot(task), now=ts)
    session.commit()
    session.refresh(task)
    logger.debug("Created task %s", task.id)
    return task


def update_task(
    session: Session,
    task_id: str,
    *,
    title: Any = UNSET,
    description: Any = UNSET,
    completed: Any = UNSET,
) -> Optional[Task]:
    """Apply the given fields; fields left UNSET keep their current value."""
    task = session.get(Task, task_id)
    if task is None:
        return None

    ts = datetime.utcnow()
    if title is not UNSET:
        task.title = title
    if description is not UNSET:
        task.description = description
    if completed is not UNSET:
        task.completed = bool(completed)
    task.updated_at = ts
    task.sync_status = SyncStatus.PENDING.value
    session.add(task)
    outbox.enqueue(session, OperationType.UPDATE, task.id, outbox.snapshot(task), now=ts)
    session.commit()
    session.refresh(task)
    return task


def soft_delete_task(session: Session, task_id: str) -> bool:
    task = session.get(Task, task_id)
    if task is None:
        return False

    ts = datetime.utcnow()
    task.is_deleted = True
    task.updated_at = ts
    task.sync_status = SyncStatus.PENDING.value
    session.add(task)
    outbox.enqueue(session, OperationType.DELETE, task.id, outbox.snapshot(task), now=ts)
    session.commit()
    return True


# ─── Sync field updates (no commit) ───────────────────────────────────────────

def mark_task_synced(
    session: Session,
    task_id: str,
    remote_id: Optional[str],
    last_synced_at: datetime,
) -> Optional[Task]:
    task = session.get(Task, task_id)
    if task is None:
        return None
    task.sync_status = SyncStatus.SYNCED.value
    task.remote_id = remote_id
    task.last_synced_at = last_synced_at
    session.add(task)
    return task


def mark_task_sync_error(session: Session, task_id: str) -> Optional[Task]:
    task = session.get(Task, task_id)
    if task is None:
        return None
    task.sync_status = SyncStatus.ERROR.value
    session.add(task)
    return task


class ServerTaskPayload(BaseModel):
    """The parts of a remote task version that can be applied locally."""

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    description: Optional[str] = None
    completed: Optional[bool] = None
    is_deleted: Optional[bool] = None
    remote_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("remote_id", "server_id")
    )
    updated_at: Optional[str] = None
    last_synced_at: Optional[str] = None

    @classmethod
    def parse_lenient(cls, data: Dict[str, Any]) -> "ServerTaskPayload":
        """Validate, dropping any field the remote sent in an unusable shape."""
        data = dict(data)
        while True:
            try:
                return cls.model_validate(data)
            except ValidationError as exc:
                bad_keys = {err["loc"][0] for err in exc.errors() if err["loc"]} & set(data)
                if not bad_keys:
                    return cls()
                logger.warning("Dropping invalid server payload fields: %s", sorted(bad_keys))
                for key in bad_keys:
                    data.pop(key)


def apply_server_payload(
    session: Session,
    task_id: str,
    server_payload: Dict[str, Any],
    *,
    server_updated_at: datetime,
    remote_id: Optional[str] = None,
) -> Optional[Task]:
    """Overwrite the local task with the remote's version. No field merge.

    Content fields the remote sent in an unusable shape (a null or blank
    title, a non-boolean flag) are left as they are locally.

    Args:
        session: Open session; caller commits.
        task_id: Local task id.
        server_payload: Task representation returned by the remote.
        server_updated_at: Remote timestamp from the outcome, used when the
            payload carries no updated_at of its own.
        remote_id: Outcome remote id, used when the payload carries none.
    """
    task = session.get(Task, task_id)
    if task is None:
        return None

    payload = ServerTaskPayload.parse_lenient(server_payload)
    sent = payload.model_fields_set

    if payload.title and payload.title.strip():
        task.title = payload.title
    if "description" in sent:
        task.description = payload.description
    if payload.completed is not None:
        task.completed = payload.completed
    if payload.is_deleted is not None:
        task.is_deleted = payload.is_deleted

    task.updated_at = parse_timestamp(payload.updated_at) or server_updated_at
    task.remote_id = payload.remote_id if payload.remote_id is not None else remote_id
    task.last_synced_at = parse_timestamp(payload.last_synced_at) or datetime.utcnow()
    task.sync_status = SyncStatus.SYNCED.value
    session.add(task)
    return task

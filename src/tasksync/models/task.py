"""Task record model."""
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class SyncStatus(str, Enum):
    """Where a task stands relative to the remote authority."""

    PENDING = "pending"  # local mutation not yet acknowledged
    SYNCED = "synced"
    ERROR = "error"  # gave up after max attempts; next local edit resets it


def _new_task_id() -> str:
    return str(uuid.uuid4())


class Task(SQLModel, table=True):
    """One row per task. Soft-deleted rows stay until the delete is synced."""

    __tablename__ = "tasks"

    id: str = Field(default_factory=_new_task_id, primary_key=True)
    title: str
    description: Optional[str] = None
    completed: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    is_deleted: bool = Field(default=False, index=True)

    # Sync bookkeeping
    sync_status: str = Field(default=SyncStatus.PENDING.value, index=True)
    remote_id: Optional[str] = None  # assigned by the remote on first sync
    last_synced_at: Optional[datetime] = None

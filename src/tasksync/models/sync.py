"""Outbox and sync audit log models."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class OperationType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class LogType(str, Enum):
    INFO = "info"
    ERROR = "error"
    CONFLICT = "conflict"


class SyncQueueEntry(SQLModel, table=True):
    """
    One pending local mutation awaiting acknowledgement from the remote.

    Written in the same transaction as the task mutation it represents.
    Only the sync engine deletes rows (on success or give-up).
    """

    __tablename__ = "sync_queue"

    id: Optional[int] = Field(default=None, primary_key=True)  # queue_id
    operation_type: str  # "create", "update", "delete"
    task_id: str = Field(index=True)
    payload: str  # JSON snapshot of the task at mutation time
    attempts: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    next_retry_at: Optional[datetime] = Field(default_factory=datetime.utcnow)


class SyncLog(SQLModel, table=True):
    """Append-only audit trail of sync outcomes."""

    __tablename__ = "sync_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: Optional[str] = Field(default=None, index=True)  # None for batch-level failures
    log_type: str  # "info", "error", "conflict"
    message: str
    meta_json: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

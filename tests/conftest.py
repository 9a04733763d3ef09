"""Shared test fixtures."""
import json
from datetime import datetime
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from tasksync.models.task import SyncStatus, Task
from tasksync.models.sync import SyncLog, SyncQueueEntry  # noqa: F401


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="seeded_task")
def seeded_task_fixture(test_session: Session) -> Task:
    """A persisted, already-synced Task with no outbox entry."""
    task = Task(
        title="Buy milk",
        description="2 litres",
        created_at=datetime(2025, 1, 15, 7, 30),
        updated_at=datetime(2025, 1, 15, 7, 30),
        sync_status=SyncStatus.SYNCED.value,
        remote_id="srv-1",
    )
    test_session.add(task)
    test_session.commit()
    test_session.refresh(task)
    return task


def _make_entry(task_id: str, operation_type: str = "create", **overrides) -> SyncQueueEntry:
    """Outbox entry with a small JSON payload; overrides win."""
    payload = overrides.pop("payload", {"id": task_id, "title": "Buy milk",
                                        "updated_at": "2025-01-15T07:30:00"})
    fields = dict(
        operation_type=operation_type,
        task_id=task_id,
        payload=json.dumps(payload),
        attempts=0,
        created_at=datetime(2025, 1, 15, 7, 30),
        updated_at=datetime(2025, 1, 15, 7, 30),
        next_retry_at=datetime(2025, 1, 15, 7, 30),
    )
    fields.update(overrides)
    return SyncQueueEntry(**fields)


@pytest.fixture(name="make_entry")
def make_entry_fixture():
    """Factory for unsaved outbox entries."""
    return _make_entry

"""Tests for the outbox store and sync audit log helpers."""
import json
from datetime import datetime, timedelta

from sqlalchemy import text
from sqlmodel import Session, select

from tasksync.models.sync import LogType, OperationType, SyncLog, SyncQueueEntry
from tasksync.models.task import Task
from tasksync.sync import outbox
from tasksync.sync.audit import append_log, recent_logs


class TestEnqueue:
    def test_stages_without_commit(self, engine):
        with Session(engine) as s:
            outbox.enqueue(s, OperationType.CREATE, "t1", "{}")
            # Not committed: a second session sees nothing
            with Session(engine) as other:
                assert outbox.queue_depth(other) == 0
            s.commit()
        with Session(engine) as s:
            assert outbox.queue_depth(s) == 1

    def test_fields(self, test_session: Session):
        now = datetime(2025, 3, 1, 12, 0)
        entry = outbox.enqueue(test_session, "update", "t1", '{"a": 1}', now=now)
        test_session.commit()
        test_session.refresh(entry)
        assert entry.operation_type == "update"
        assert entry.attempts == 0
        assert entry.created_at == now
        assert entry.next_retry_at == now


class TestFetchBatch:
    def test_oldest_first(self, test_session: Session, make_entry):
        base = datetime(2025, 1, 1)
        for i in (2, 0, 1):
            ts = base + timedelta(minutes=i)
            test_session.add(make_entry(f"t{i}", created_at=ts, next_retry_at=ts))
        test_session.commit()

        batch = outbox.fetch_batch(test_session, 10, now=base + timedelta(hours=1))
        assert [e.task_id for e in batch] == ["t0", "t1", "t2"]

    def test_respects_limit(self, test_session: Session, make_entry):
        for i in range(5):
            test_session.add(make_entry(f"t{i}"))
        test_session.commit()
        assert len(outbox.fetch_batch(test_session, 3)) == 3

    def test_skips_entries_not_yet_due(self, test_session: Session, make_entry):
        now = datetime(2025, 1, 1, 12, 0)
        test_session.add(make_entry("due", next_retry_at=now - timedelta(seconds=1)))
        test_session.add(make_entry("later", next_retry_at=now + timedelta(minutes=5)))
        test_session.add(make_entry("unset"))
        test_session.commit()
        # Rows written before retry scheduling existed carry no next_retry_at
        test_session.connection().execute(
            text("UPDATE sync_queue SET next_retry_at = NULL WHERE task_id = 'unset'")
        )
        test_session.commit()

        batch = outbox.fetch_batch(test_session, 10, now=now)
        assert {e.task_id for e in batch} == {"due", "unset"}


class TestRetryAndRemove:
    def test_schedule_retry_bumps_fields(self, test_session: Session, make_entry):
        entry = make_entry("t1")
        test_session.add(entry)
        test_session.commit()

        now = datetime(2025, 2, 1, 9, 0)
        outbox.schedule_retry(test_session, entry, 2, now=now)
        test_session.commit()
        test_session.refresh(entry)
        assert entry.attempts == 2
        assert entry.updated_at == now
        assert entry.next_retry_at == now

    def test_remove(self, test_session: Session, make_entry):
        entry = make_entry("t1")
        test_session.add(entry)
        test_session.commit()
        outbox.remove(test_session, entry)
        test_session.commit()
        assert outbox.queue_depth(test_session) == 0


class TestSnapshot:
    def test_timestamps_are_iso_strings(self):
        task = Task(title="Snap", updated_at=datetime(2025, 1, 15, 7, 30))
        data = json.loads(outbox.snapshot(task))
        assert data["title"] == "Snap"
        assert data["updated_at"] == "2025-01-15T07:30:00"
        assert data["sync_status"] == "pending"


class TestAudit:
    def test_append_log_serializes_meta(self, test_session: Session):
        append_log(test_session, LogType.CONFLICT, "resolved", task_id="t1",
                   meta={"resolution": "server"})
        test_session.commit()
        log = test_session.exec(select(SyncLog)).one()
        assert log.log_type == "conflict"
        assert json.loads(log.meta_json) == {"resolution": "server"}

    def test_append_log_without_meta(self, test_session: Session):
        append_log(test_session, LogType.INFO, "ok")
        test_session.commit()
        assert test_session.exec(select(SyncLog)).one().meta_json is None

    def test_recent_logs_newest_first(self, test_session: Session):
        for i in range(3):
            test_session.add(SyncLog(log_type="info", message=f"m{i}",
                                     created_at=datetime(2025, 1, 1, 0, i)))
        test_session.commit()
        logs = recent_logs(test_session, limit=2)
        assert [log.message for log in logs] == ["m2", "m1"]

"""
SyncEngine: drains the outbox to the remote peer and applies the results.

One call to process_once():
  1. Pull up to batch_size due entries, oldest first
  2. Send them as one batch through the transport (bounded by a timeout)
  3. If the whole round-trip fails: bump attempts on every entry, log one
     batch-level error, report processed=0 with the error
  4. Otherwise resolve each outcome in the order returned, one transaction
     per item:
       success        -> delete entry, task synced
       failure        -> attempts+1; retry, or give up at max_attempts
                         (delete entry, task error)
       conflict flag  -> last-write-wins on updated_at, client wins ties;
                         server win overwrites the task, client win
                         re-enqueues the client payload as an update

Runs are serialized per engine with an asyncio.Lock: two overlapping runs
would dispatch the same batch twice. Item problems never raise; they end up
in task status and the sync log. A database error while applying one
outcome rolls that item back and counts as a failed attempt for it.
"""
import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from tasksync.models.sync import LogType, OperationType, SyncQueueEntry
from tasksync.sync import outbox
from tasksync.sync.audit import append_log
from tasksync.sync.conflict import SERVER, parse_timestamp, resolve
from tasksync.sync.transport import (
    RemoteTransport,
    SyncOperation,
    SyncOutcome,
    TransportError,
    build_transport,
)
from tasksync.tasks import service as task_service

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_TIMEOUT_SECONDS = 30.0


class SyncItemSummary(BaseModel):
    queue_id: int
    task_id: str
    operation_type: str
    result: str  # "synced", "retry", "failed"
    attempts: int
    conflict: Optional[str] = None  # "client", "server", or None


class SyncRunResult(BaseModel):
    processed: int = 0
    summary: List[SyncItemSummary] = Field(default_factory=list)
    error: Optional[str] = None


class SyncEngine:
    """Orchestrates outbox -> remote -> task status for one outbox."""

    def __init__(
        self,
        engine,
        transport: RemoteTransport,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            transport: Object with an async send_batch() (or AsyncMock in tests).
            batch_size: Max outbox entries dispatched per run.
            max_attempts: Failed attempts before an entry is dropped and its
                task flagged as error.
            timeout_seconds: Upper bound on one transport round-trip.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.engine = engine
        self.transport = transport
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.timeout_seconds = timeout_seconds
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, engine, settings) -> "SyncEngine":
        return cls(
            engine,
            build_transport(settings),
            batch_size=settings.sync_batch_size,
            max_attempts=settings.sync_max_attempts,
            timeout_seconds=settings.sync_timeout_seconds,
        )

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def queue_depth(self) -> int:
        with Session(self.engine) as s:
            return outbox.queue_depth(s)

    async def process_once(self) -> SyncRunResult:
        """Run one sync cycle. Waits for any run already in flight."""
        async with self._lock:
            return await self._run_cycle()

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _run_cycle(self) -> SyncRunResult:
        with Session(self.engine) as s:
            batch = outbox.fetch_batch(s, self.batch_size)
        if not batch:
            return SyncRunResult(processed=0)

        operations = [
            SyncOperation(
                queue_id=entry.id,
                operation_type=entry.operation_type,
                record_id=entry.task_id,
                payload=_load_payload(entry.payload),
            )
            for entry in batch
        ]

        try:
            outcomes = await asyncio.wait_for(
                self.transport.send_batch(operations), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            return self._fail_batch(
                batch, f"Remote sync timed out after {self.timeout_seconds}s"
            )
        except TransportError as exc:
            return self._fail_batch(batch, str(exc))
        except Exception as exc:
            logger.exception("Transport raised an unexpected error")
            return self._fail_batch(batch, f"{type(exc).__name__}: {exc}")

        by_id: Dict[int, SyncQueueEntry] = {entry.id: entry for entry in batch}
        summary: List[SyncItemSummary] = []
        for outcome in outcomes:
            entry = by_id.pop(outcome.queue_id, None)
            if entry is None:
                logger.warning(
                    "Ignoring outcome for queue_id %s: not in the dispatched batch",
                    outcome.queue_id,
                )
                continue
            item = self._resolve_item(entry, outcome)
            if item is not None:
                summary.append(item)

        if by_id:
            logger.info(
                "%d entries got no outcome; left queued: %s",
                len(by_id),
                sorted(by_id),
            )
        logger.info("Sync cycle processed %d of %d entries", len(summary), len(batch))
        return SyncRunResult(processed=len(summary), summary=summary)

    def _fail_batch(self, batch: List[SyncQueueEntry], message: str) -> SyncRunResult:
        """Whole round-trip failed: bump attempts, delete nothing."""
        logger.error("Batch sync failed (%d entries): %s", len(batch), message)
        now = datetime.utcnow()
        with Session(self.engine) as s:
            for entry in batch:
                db_entry = s.get(SyncQueueEntry, entry.id)
                if db_entry is None:
                    continue
                outbox.schedule_retry(s, db_entry, db_entry.attempts + 1, now=now)
            append_log(
                s,
                LogType.ERROR,
                f"Batch sync failed: {message}",
                meta={"queue_ids": [entry.id for entry in batch]},
            )
            s.commit()
        return SyncRunResult(processed=0, error=message)

    def _resolve_item(
        self, entry: SyncQueueEntry, outcome: SyncOutcome
    ) -> Optional[SyncItemSummary]:
        try:
            return self._apply_outcome(entry, outcome)
        except SQLAlchemyError as exc:
            # Transaction rolled back with the session; count it as a failed attempt
            logger.exception("Could not apply outcome for queue_id %s", entry.id)
            return self._record_item_error(entry, f"Could not apply sync outcome: {exc}")

    def _apply_outcome(
        self, entry: SyncQueueEntry, outcome: SyncOutcome
    ) -> Optional[SyncItemSummary]:
        now = datetime.utcnow()
        with Session(self.engine) as s:
            db_entry = s.get(SyncQueueEntry, entry.id)
            if db_entry is None:
                logger.warning("Outbox entry %s vanished before resolution", entry.id)
                return None

            if outcome.success:
                attempts = db_entry.attempts
                outbox.remove(s, db_entry)
                task_service.mark_task_synced(
                    s,
                    entry.task_id,
                    outcome.remote_id,
                    parse_timestamp(outcome.updated_at) or now,
                )
                append_log(
                    s,
                    LogType.INFO,
                    f"Synced {entry.operation_type}",
                    task_id=entry.task_id,
                    meta={
                        "queue_id": entry.id,
                        "operation_type": entry.operation_type,
                        "remote_id": outcome.remote_id,
                    },
                )
                result = "synced"
            else:
                result, attempts = self._apply_failure(s, entry, db_entry, outcome.error, now)

            winner = None
            if outcome.conflict:
                winner = self._resolve_conflict(s, entry, outcome, now)

            s.commit()

        return self._summarize(entry, result, attempts, winner)

    def _record_item_error(
        self, entry: SyncQueueEntry, message: str
    ) -> Optional[SyncItemSummary]:
        now = datetime.utcnow()
        try:
            with Session(self.engine) as s:
                db_entry = s.get(SyncQueueEntry, entry.id)
                if db_entry is None:
                    return None
                result, attempts = self._apply_failure(s, entry, db_entry, message, now)
                if result == "retry":
                    append_log(
                        s,
                        LogType.ERROR,
                        message,
                        task_id=entry.task_id,
                        meta={"queue_id": entry.id, "attempts": attempts},
                    )
                s.commit()
        except SQLAlchemyError:
            logger.exception("Could not record failure for queue_id %s", entry.id)
            return None
        return self._summarize(entry, result, attempts, None)

    def _apply_failure(
        self,
        s: Session,
        entry: SyncQueueEntry,
        db_entry: SyncQueueEntry,
        error: Optional[str],
        now: datetime,
    ):
        """Retry or give up. Returns (result, attempts)."""
        attempts = db_entry.attempts + 1
        meta = {
            "queue_id": entry.id,
            "operation_type": entry.operation_type,
            "attempts": attempts,
        }
        if attempts >= self.max_attempts:
            outbox.remove(s, db_entry)
            task_service.mark_task_sync_error(s, entry.task_id)
            append_log(
                s,
                LogType.ERROR,
                error or "Sync failed",
                task_id=entry.task_id,
                meta=meta,
            )
            return "failed", attempts

        outbox.schedule_retry(s, db_entry, attempts, now=now)
        append_log(
            s,
            LogType.INFO,
            f"Retry scheduled (attempt {attempts})",
            task_id=entry.task_id,
            meta={**meta, "error": error},
        )
        return "retry", attempts

    @staticmethod
    def _summarize(
        entry: SyncQueueEntry, result: str, attempts: int, winner: Optional[str]
    ) -> SyncItemSummary:
        return SyncItemSummary(
            queue_id=entry.id,
            task_id=entry.task_id,
            operation_type=entry.operation_type,
            result=result,
            attempts=attempts,
            conflict=winner,
        )

    def _resolve_conflict(
        self,
        s: Session,
        entry: SyncQueueEntry,
        outcome: SyncOutcome,
        now: datetime,
    ) -> str:
        payload = _load_payload(entry.payload)
        decision = resolve(payload.get("updated_at"), outcome.updated_at)
        append_log(
            s,
            LogType.CONFLICT,
            f"Conflict resolved in favor of {decision.winner}",
            task_id=entry.task_id,
            meta={
                "queue_id": entry.id,
                "client_updated_at": decision.client_updated_at.isoformat(),
                "server_updated_at": decision.server_updated_at.isoformat(),
                "resolution": decision.winner,
            },
        )

        if decision.winner == SERVER:
            if outcome.server_payload is not None:
                task_service.apply_server_payload(
                    s,
                    entry.task_id,
                    outcome.server_payload,
                    server_updated_at=decision.server_updated_at,
                    remote_id=outcome.remote_id,
                )
        else:
            # Re-assert the client's version on the next cycle
            outbox.enqueue(s, OperationType.UPDATE, entry.task_id, entry.payload, now=now)
        return decision.winner


def _load_payload(raw: str) -> Dict[str, Any]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}

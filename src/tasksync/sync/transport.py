"""
Remote transport: ships a batch of outbox operations to the remote peer.

Two variants share the send_batch() contract:

  - LocalSimulationTransport: used when no remote URL is configured.
    Every operation is acknowledged, so the engine can run end-to-end
    without a network.
  - HttpTransport: one POST {remote}/sync/batch per call via httpx.
    Anything other than a well-formed 2xx response raises TransportError
    for the whole batch; partial results are never inferred.

Wire contract:

    request:  {"ops": [{"queue_id", "operation_type", "record_id", "payload"}, ...]}
    response: {"results": [{"queue_id", "success", "remote_id"?, "updated_at"?,
                            "conflict"?, "server_payload"?, "error"?}, ...]}

"queueId" and "server_id" are accepted as aliases in responses.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import AliasChoices, BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

BATCH_PATH = "/sync/batch"


class TransportError(RuntimeError):
    """Raised when a batch round-trip fails as a whole."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SyncOperation(BaseModel):
    queue_id: int
    operation_type: str
    record_id: str
    payload: Dict[str, Any]


class SyncOutcome(BaseModel):
    queue_id: int = Field(validation_alias=AliasChoices("queue_id", "queueId"))
    success: bool
    remote_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("remote_id", "server_id")
    )
    updated_at: Optional[str] = None  # parsed leniently by the engine
    conflict: bool = False
    server_payload: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class RemoteTransport(Protocol):
    async def send_batch(self, operations: List[SyncOperation]) -> List[SyncOutcome]:
        ...


class LocalSimulationTransport:
    """Acknowledges everything. Echoes any remote id already in the payload."""

    async def send_batch(self, operations: List[SyncOperation]) -> List[SyncOutcome]:
        now = datetime.now(timezone.utc).isoformat()
        return [
            SyncOutcome(
                queue_id=op.queue_id,
                success=True,
                remote_id=op.payload.get("remote_id", op.payload.get("server_id")),
                updated_at=now,
            )
            for op in operations
        ]


class HttpTransport:
    """POSTs the batch to a remote tasksync-compatible peer."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Remote root, e.g. "https://sync.example.com".
            timeout: Per-request timeout in seconds.
            client: Optional shared AsyncClient (tests pass one backed by
                    httpx.MockTransport). A fresh client is used per call
                    otherwise.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def url(self) -> str:
        return f"{self.base_url}{BATCH_PATH}"

    async def send_batch(self, operations: List[SyncOperation]) -> List[SyncOutcome]:
        body = {"ops": [op.model_dump() for op in operations]}
        try:
            if self._client is not None:
                resp = await self._client.post(self.url, json=body, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(self.url, json=body)
        except httpx.TimeoutException as exc:
            raise TransportError(f"Remote sync timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Remote sync failed: {exc}") from exc

        if not resp.is_success:
            raise TransportError(
                f"Remote sync failed: {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise TransportError("Remote sync returned a non-JSON body") from exc

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise TransportError("Remote sync response has no results list")

        try:
            return [SyncOutcome.model_validate(item) for item in results]
        except ValidationError as exc:
            raise TransportError(f"Remote sync returned a malformed result: {exc}") from exc


def build_transport(settings) -> RemoteTransport:
    """Pick the transport variant from settings.sync_remote_url."""
    if not settings.sync_remote_url:
        logger.info("SYNC_REMOTE_URL not set; using local simulation transport.")
        return LocalSimulationTransport()
    return HttpTransport(settings.sync_remote_url, timeout=settings.sync_timeout_seconds)

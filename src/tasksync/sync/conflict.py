"""
Last-write-wins conflict policy.

The remote flags a conflict when it holds a version of the task that
diverges from the one we sent. We compare the client payload's updated_at
against the remote's updated_at and keep the later one; ties go to the
client. No field-level merge and no causal ordering: concurrent edits on
the losing side are dropped.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

EPOCH = datetime(1970, 1, 1)

CLIENT = "client"
SERVER = "server"


@dataclass(frozen=True)
class ConflictDecision:
    winner: str  # CLIENT or SERVER
    client_updated_at: datetime
    server_updated_at: datetime


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or datetime) into naive UTC.

    Returns None for missing or unparseable values.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def resolve(client_updated_at: Any, server_updated_at: Any) -> ConflictDecision:
    """Pick the winning side; unparseable timestamps count as the epoch."""
    client_ts = parse_timestamp(client_updated_at) or EPOCH
    server_ts = parse_timestamp(server_updated_at) or EPOCH
    winner = CLIENT if client_ts >= server_ts else SERVER
    return ConflictDecision(
        winner=winner,
        client_updated_at=client_ts,
        server_updated_at=server_ts,
    )

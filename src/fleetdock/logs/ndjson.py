"""
Newline-delimited JSON wire form for log entries.
"""

import json
from typing import AsyncIterator, Dict, Any

from fleetdock.logs.models import LogEntry


def log_entry_record(entry: LogEntry) -> Dict[str, Any]:
    """Convert an entry to its wire record; timestamps are RFC3339 UTC or null."""
    timestamp = None
    if entry.timestamp is not None:
        timestamp = entry.timestamp.isoformat().replace("+00:00", "Z")
    return {
        "timestamp": timestamp,
        "level": entry.level.value,
        "message": entry.message,
        "stream": entry.stream.value,
        "raw": entry.raw,
    }


def encode_log_entry(entry: LogEntry) -> bytes:
    """Encode one entry as a single NDJSON line (terminated by newline)."""
    return (json.dumps(log_entry_record(entry), ensure_ascii=False) + "\n").encode("utf-8")


async def stream_logs_ndjson(entries: AsyncIterator[LogEntry]) -> AsyncIterator[bytes]:
    """
    Re-encode a stream of entries as NDJSON chunks.

    Suitable as the body of a streaming HTTP response.
    """
    async for entry in entries:
        yield encode_log_entry(entry)

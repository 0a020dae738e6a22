"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- Credential-bearing fields are redacted before serialization
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Mapping, Callable

from constants import REDACTED_LOG_KEYS


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print


def now_ms() -> int:
    """Wall-clock milliseconds for event timestamps."""
    return time.time_ns() // 1_000_000


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            k: ("<redacted>" if k in REDACTED_LOG_KEYS and v is not None else _redact(v))
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact(v) for v in value]
    return value


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event to stdout.

    The caller supplies a fully-formed event dict (event_type,
    session_id, ...). ts_ms is filled in when absent.

    This function:
    - Redacts credential fields at any depth
    - Serializes to JSON
    - Writes exactly one line
    - Never raises
    """
    payload = _redact(event)
    payload.setdefault("ts_ms", now_ms())

    try:
        line = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Logging must never crash the session
        fallback: dict[str, Any] = {
            "ts_ms": payload.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(payload),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)

# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger
from observability.metrics import timed


@pytest.fixture
def captured(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    lines: list[str] = []
    # Patch the explicit output sink used by logger
    monkeypatch.setattr(logger, "_print", lines.append)
    return lines


def test_log_event_emits_valid_jsonl(captured: list[str]) -> None:
    """
    - log_event emits exactly one JSONL line
    - payload fields are preserved
    - ts_ms is filled in when absent
    """
    payload: dict[str, Any] = {
        "event_type": "TEST",
        "value": 123,
    }

    logger.log_event(payload)

    assert len(captured) == 1
    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "TEST"
    assert decoded["value"] == 123
    assert isinstance(decoded["ts_ms"], int)
    # caller's dict is not mutated
    assert "ts_ms" not in payload


def test_explicit_ts_ms_is_kept(captured: list[str]) -> None:
    logger.log_event({"event_type": "TEST", "ts_ms": 42})
    assert json.loads(captured[0])["ts_ms"] == 42


def test_credential_fields_are_redacted_at_any_depth(captured: list[str]) -> None:
    logger.log_event({
        "event_type": "TEST",
        "token": "eph-secret",
        "nested": {"api_key": "long-lived", "items": [{"key": "k"}]},
        "model": "live-model",
    })

    line = captured[0]
    decoded = json.loads(line)
    assert "eph-secret" not in line
    assert "long-lived" not in line
    assert decoded["token"] == "<redacted>"
    assert decoded["nested"]["items"][0]["key"] == "<redacted>"
    assert decoded["model"] == "live-model"


def test_unserializable_payload_falls_back(captured: list[str]) -> None:
    logger.log_event({"event_type": "TEST", "obj": object()})

    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"


# ---------------------------------------------------------------------
# timed()
# ---------------------------------------------------------------------

def test_timed_emits_metric_with_extra_details(captured: list[str]) -> None:
    with timed("credential_fetch", session_id="s1", details={"model": "m"}) as extra:
        extra["degraded"] = False

    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "METRIC_TIMER"
    assert decoded["metric"] == "credential_fetch"
    assert decoded["session_id"] == "s1"
    assert decoded["failed"] is False
    assert decoded["value_ms"] >= 0
    assert decoded["details"] == {"model": "m", "degraded": False}


def test_timed_reports_failure_and_reraises(captured: list[str]) -> None:
    with pytest.raises(RuntimeError):
        with timed("ws_connect"):
            raise RuntimeError("nope")

    assert json.loads(captured[0])["failed"] is True

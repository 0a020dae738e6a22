# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from context.transcript import Transcript
from observability import logger
from protocol.events import TranscriptSource, text_chunk, transcript_update


def test_only_final_transcripts_are_kept():
    t = Transcript()

    assert t.add_transcript(transcript_update("hel", is_final=False, source=TranscriptSource.USER, ts_ms=1)) is None
    line = t.add_transcript(transcript_update("hello", is_final=True, source=TranscriptSource.USER, ts_ms=2))

    assert line is not None
    assert [(l.speaker, l.text) for l in t.lines()] == [("user", "hello")]


def test_speakers_follow_source_and_order_is_arrival():
    t = Transcript()
    t.add_notice("Connected to live-model", 0)
    t.add_transcript(transcript_update("two bedrooms?", is_final=True, source=TranscriptSource.USER, ts_ms=1))
    t.add_text(text_chunk("  Yes, in the South End.  ", ts_ms=2))
    t.add_transcript(transcript_update("Yes", is_final=True, source=TranscriptSource.MODEL, ts_ms=3))

    assert [(l.speaker, l.text) for l in t.lines()] == [
        ("system", "Connected to live-model"),
        ("user", "two bedrooms?"),
        ("model", "Yes, in the South End."),
        ("model", "Yes"),
    ]


def test_blank_text_is_ignored():
    t = Transcript()
    assert t.add_text(text_chunk("   ", ts_ms=0)) is None
    assert t.add_transcript(transcript_update("", is_final=True, source=TranscriptSource.MODEL, ts_ms=0)) is None
    assert len(t) == 0


def test_oldest_lines_dropped_past_limit(monkeypatch: pytest.MonkeyPatch):
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)
    t = Transcript(session_id="s1", max_lines=2)

    for i in range(4):
        t.add_notice(f"n{i}", i)

    assert [l.text for l in t.lines()] == ["n2", "n3"]
    assert len(captured) == 1


def test_clear():
    t = Transcript()
    t.add_notice("x", 0)
    t.clear()
    assert len(t) == 0


def test_invalid_limit_rejected():
    with pytest.raises(ValueError):
        Transcript(max_lines=0)

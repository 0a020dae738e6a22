"""
Live transcript.

Responsibilities:
- Store ordered transcript lines for one live session
  (user speech, model speech/text, session notices)
- Keep only final user transcripts; partials are transient
- Enforce a line limit by dropping the oldest lines

Non-responsibilities:
- No rendering
- No network or audio concerns
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from constants import MAX_TRANSCRIPT_LINES
from observability.logger import log_event
from protocol.events import TextChunk, TranscriptSource, TranscriptUpdate


Speaker = Literal["user", "model", "system"]


@dataclass(frozen=True)
class TranscriptLine:
    """Single transcript entry."""
    speaker: Speaker
    text: str
    ts_ms: int


class Transcript:
    """
    Bounded, chronological transcript owned by a VoiceSession.

    Invariants:
    - Lines are stored in arrival order
    - len(self) <= max_lines
    """

    def __init__(self, session_id: str | None = None, max_lines: int = MAX_TRANSCRIPT_LINES) -> None:
        if max_lines <= 0:
            raise ValueError("max_lines must be > 0")
        self._session_id = session_id
        self._max_lines = max_lines
        self._lines: list[TranscriptLine] = []
        self._dropped: int = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_transcript(self, update: TranscriptUpdate) -> TranscriptLine | None:
        """Record a transcript update. Returns the stored line, if any."""
        if not update.is_final or not update.text.strip():
            return None
        speaker: Speaker = "user" if update.source is TranscriptSource.USER else "model"
        return self._append(speaker, update.text.strip(), update.ts_ms)

    def add_text(self, chunk: TextChunk) -> TranscriptLine | None:
        """Record a model text part."""
        if not chunk.text.strip():
            return None
        return self._append("model", chunk.text.strip(), chunk.ts_ms)

    def add_notice(self, text: str, ts_ms: int) -> TranscriptLine:
        """Record a session notice (connected, disconnected, ...)."""
        return self._append("system", text, ts_ms)

    def lines(self) -> tuple[TranscriptLine, ...]:
        return tuple(self._lines)

    def clear(self) -> None:
        self._lines.clear()

    def __len__(self) -> int:
        return len(self._lines)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _append(self, speaker: Speaker, text: str, ts_ms: int) -> TranscriptLine:
        line = TranscriptLine(speaker=speaker, text=text, ts_ms=ts_ms)
        self._lines.append(line)

        while len(self._lines) > self._max_lines:
            self._lines.pop(0)
            self._dropped += 1
            if self._dropped == 1:
                log_event({
                    "event_type": "transcript_lines_dropped",
                    "session_id": self._session_id,
                    "max_lines": self._max_lines,
                })
        return line

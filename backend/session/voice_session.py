"""
Voice session container.

- One VoiceSession per user-initiated start()
- Owns the capture, transport, playback and transcript of that session
- Owned and mutated by SessionController
- NOT a state machine: connection state is read from the transport
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from audio.capture import AudioCapture
from audio.playback import AudioPlayback
from context.transcript import Transcript
from session.connection_status import ConnectionState
from transport.live import LiveTransport


def new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


@dataclass
class VoiceSession:
    """Mutable runtime container for a single live conversation."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    system_prompt: str
    created_at: float = field(default_factory=time.time)
    ended_reason: str | None = None

    # ------------------------------------------------------------------
    # Components (attached by SessionController)
    # ------------------------------------------------------------------

    capture: AudioCapture | None = None
    transport: LiveTransport | None = None
    playback: AudioPlayback | None = None

    transcript: Transcript = field(init=False)

    def __post_init__(self) -> None:
        self.transcript = Transcript(session_id=self.session_id)

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def connection_state(self) -> ConnectionState:
        if self.transport is None:
            return ConnectionState.IDLE
        return self.transport.state

    @property
    def model_id(self) -> str | None:
        return self.transport.model_id if self.transport is not None else None

    @property
    def is_active(self) -> bool:
        return self.ended_reason is None and self.connection_state.is_active

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "connection_state": self.connection_state.value,
            "model": self.model_id,
        }

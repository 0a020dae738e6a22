"""
Session controller.

Responsibilities:
- Owns the single "current session" slot
- Wires AudioCapture -> LiveTransport -> AudioPlayback for each session
- Surfaces text / transcript / terminal events to the caller
- Tears down capture, playback and connection together on stop, remote
  close or error, so no device stays open after a terminal state

NOT responsible for:
- Protocol encoding or the connection state machine (LiveTransport)
- Audio framing or decoding (audio.*)
- Reconnection (a new start() is a new session)
"""

from __future__ import annotations

from enum import Enum
from typing import Callable

from audio.capture import AudioCapture
from audio.frames import AudioFrame
from audio.playback import AudioPlayback
from config import AppConfig
from credentials.base import CredentialSource
from errors import RealtimeError
from observability.logger import log_event, now_ms
from protocol.events import (
    AudioChunk,
    ServerEvent,
    SessionClosed,
    SessionError,
    TextChunk,
    TranscriptUpdate,
)
from session.voice_session import VoiceSession, new_session_id
from transport.live import LiveTransport, ServerEventCallback


EventCallback = Callable[[ServerEvent], None]
CaptureFactory = Callable[[str], AudioCapture]
PlaybackFactory = Callable[[str], AudioPlayback]
TransportFactory = Callable[[str, ServerEventCallback], LiveTransport]


class SessionStatus(str, Enum):
    """User-facing session status."""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class SessionController:
    """
    Composition point for live sessions.

    One controller serves many sessions over time, at most one at a time.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        credentials: CredentialSource,
        on_event: EventCallback | None = None,
        capture_factory: CaptureFactory | None = None,
        playback_factory: PlaybackFactory | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._config = config
        self._credentials = credentials
        self._on_event = on_event

        self._capture_factory = capture_factory or self._default_capture
        self._playback_factory = playback_factory or self._default_playback
        self._transport_factory = transport_factory or self._default_transport

        self.session: VoiceSession | None = None
        self.status: SessionStatus = SessionStatus.IDLE
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    # Default component construction
    # ------------------------------------------------------------------

    def _default_capture(self, session_id: str) -> AudioCapture:
        return AudioCapture(device=self._config.input_device, session_id=session_id)

    def _default_playback(self, session_id: str) -> AudioPlayback:
        return AudioPlayback(device=self._config.output_device, session_id=session_id)

    def _default_transport(self, session_id: str, on_server_event: ServerEventCallback) -> LiveTransport:
        return LiveTransport(
            credentials=self._credentials,
            on_server_event=on_server_event,
            voice_name=self._config.live_voice,
            system_prompt=self._config.system_prompt,
            default_model_id=self._config.live_model,
            session_id=session_id,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self, model_hint: str | None = None) -> VoiceSession:
        """
        Start a live session.

        Order: microphone check, connect (setup frame), then capture.
        A denied microphone fails before any connection attempt.

        Calling start() while a session is connecting or open is a no-op
        that returns the current session.

        Raises:
            MicrophonePermissionError, DeviceError, AuthError,
            TransportConnectionError
        """
        current = self.session
        if current is not None and current.is_active:
            log_event({
                "event_type": "SESSION_START_IGNORED",
                **current.log_context(),
            })
            return current

        if current is not None:
            self._end(current, reason="replaced", status=self.status)

        session_id = new_session_id()
        capture = self._capture_factory(session_id)
        try:
            capture.ensure_input_available()
        except RealtimeError as e:
            self.status = SessionStatus.ERROR
            self.last_error = str(e)
            log_event({
                "event_type": "SESSION_START_FAILED",
                "session_id": session_id,
                "stage": "microphone",
                "error": str(e),
            })
            raise

        session = VoiceSession(session_id=session_id, system_prompt=self._config.system_prompt)
        session.capture = capture
        session.playback = self._playback_factory(session_id)
        session.transport = self._transport_factory(
            session_id,
            lambda event: self._on_server_event(session, event),
        )

        self.session = session
        self.status = SessionStatus.CONNECTING
        self.last_error = None

        log_event({
            "event_type": "SESSION_STARTING",
            "session_id": session_id,
        })

        try:
            await session.transport.connect(model_hint)
            if session.ended_reason is not None:
                return session  # stopped while connecting
            await capture.start(lambda frame: self._on_frame(session, frame))
        except RealtimeError as e:
            self._end(session, reason=f"start_failed: {e}", status=SessionStatus.ERROR)
            self.last_error = str(e)
            raise

        if session.ended_reason is not None:
            return session

        self.status = SessionStatus.CONNECTED
        session.transcript.add_notice(f"Connected to {session.model_id}", now_ms())
        log_event({
            "event_type": "SESSION_STARTED",
            **session.log_context(),
        })
        return session

    def stop(self) -> None:
        """Stop the current session, if any. Idempotent."""
        session = self.session
        if session is None:
            return
        self._end(session, reason="user_stop", status=SessionStatus.IDLE)

    async def aclose(self) -> None:
        """Stop and wait for the connection close handshake."""
        session = self.session
        self.stop()
        if session is not None and session.transport is not None:
            await session.transport.wait_closed()

    def send_text(self, text: str) -> None:
        """Send a typed user turn on the current session."""
        session = self.session
        if session is None or session.transport is None or not session.is_active:
            log_event({
                "event_type": "TEXT_WITHOUT_SESSION",
                "text_len": len(text),
            })
            return
        session.transport.send_text(text)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _on_frame(self, session: VoiceSession, frame: AudioFrame) -> None:
        if session is not self.session or session.ended_reason is not None:
            return
        assert session.transport is not None
        session.transport.send_audio(frame)

    def _on_server_event(self, session: VoiceSession, event: ServerEvent) -> None:
        if session is not self.session:
            return

        if isinstance(event, AudioChunk):
            if session.ended_reason is None and session.playback is not None:
                session.playback.play_raw(event.pcm_bytes)
            return

        if isinstance(event, TextChunk):
            session.transcript.add_text(event)
        elif isinstance(event, TranscriptUpdate):
            session.transcript.add_transcript(event)
        elif isinstance(event, SessionClosed):
            session.transcript.add_notice(f"Disconnected: {event.reason}", event.ts_ms)
        elif isinstance(event, SessionError):
            session.transcript.add_notice(f"Error: {event.message}", event.ts_ms)

        if self._on_event is not None:
            self._on_event(event)

        if isinstance(event, SessionClosed):
            self._end(session, reason=f"remote_closed: {event.reason}", status=SessionStatus.IDLE)
        elif isinstance(event, SessionError):
            self.last_error = event.message
            self._end(session, reason=f"error: {event.message}", status=SessionStatus.ERROR)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _end(self, session: VoiceSession, *, reason: str, status: SessionStatus) -> None:
        first = session.ended_reason is None
        if first:
            session.ended_reason = reason

        if session.capture is not None:
            session.capture.stop()
        if session.playback is not None:
            session.playback.close()
        if session.transport is not None:
            session.transport.disconnect()

        if session is self.session:
            self.status = status

        if first:
            log_event({
                "event_type": "SESSION_ENDED",
                **session.log_context(),
                "reason": reason,
            })

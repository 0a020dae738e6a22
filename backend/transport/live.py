"""
Live duplex transport.

Core model (IMPORTANT):
- One LiveTransport == one WebSocket connection == one conversation.
- States: IDLE -> CONNECTING -> OPEN -> CLOSED, CONNECTING/OPEN -> FAILED.
  CLOSED and FAILED are terminal; reconnecting needs a new instance.
- The setup frame is the first frame written after the socket opens.
  Audio and text are accepted only after it has been sent ("ready").

Outbound:
- send_audio()/send_text() never block. They encode and push onto the
  OutboundQueue; a single writer task drains it onto the socket, so the
  wire order is call order. Audio is dropped when the lane is full.

Inbound:
- A single reader task decodes each message into ServerEvents and hands
  them to on_server_event in arrival order.
- A message that fails to parse is logged and skipped; the session goes on.

Failure semantics:
- Credential failure, connect failure and unexpected drops surface exactly
  once as SessionError (state FAILED). A clean remote close surfaces exactly
  once as SessionClosed (state CLOSED). Nothing is surfaced for a local
  disconnect(). No automatic reconnect.
"""

from __future__ import annotations

import asyncio
import urllib.parse
from typing import Any, Awaitable, Callable

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from audio.frames import AudioFrame
from constants import (
    LIVE_WS_URL,
    LOG_PREVIEW_CHARS,
    OUTBOUND_AUDIO_Q_MAX_FRAMES,
    WS_MAX_MESSAGE_BYTES,
)
from credentials.base import Credential, CredentialSource
from errors import AuthError, TransportConnectionError, TransportStateError
from observability.logger import log_event, now_ms
from observability.metrics import timed
from protocol.events import ServerEvent, session_closed, session_error
from protocol.live import (
    MessageParseError,
    decode_server_message,
    encode_audio_frame,
    encode_setup,
    encode_text_turn,
)
from session.connection_status import ConnectionState, can_transition
from transport.queues import MessageKind, OutboundQueue


ServerEventCallback = Callable[[ServerEvent], None]
Connector = Callable[..., Awaitable[Any]]


class LiveTransport:
    """Protocol state machine for the live duplex connection."""

    def __init__(
        self,
        *,
        credentials: CredentialSource,
        on_server_event: ServerEventCallback,
        voice_name: str,
        system_prompt: str,
        default_model_id: str,
        ws_url: str = LIVE_WS_URL,
        connector: Connector | None = None,
        max_audio_frames: int = OUTBOUND_AUDIO_Q_MAX_FRAMES,
        session_id: str | None = None,
    ) -> None:
        self._credentials = credentials
        self._on_server_event = on_server_event
        self._voice_name = voice_name
        self._system_prompt = system_prompt
        self._default_model_id = default_model_id
        self._ws_url = ws_url
        self._connector: Connector = connector or ws_connect
        self._session_id = session_id

        self._state: ConnectionState = ConnectionState.IDLE
        self._ready: bool = False
        self._terminal_emitted: bool = False

        self._ws: Any = None
        self._model_id: str | None = None
        self._credential: Credential | None = None

        self._outbound = OutboundQueue(max_audio_frames=max_audio_frames)
        self._reader_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._close_task: asyncio.Task[None] | None = None

        self.frames_sent: int = 0
        self.messages_received: int = 0
        self.parse_errors: int = 0

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        """True once OPEN and the setup frame has been written."""
        return self._ready and self._state is ConnectionState.OPEN

    @property
    def model_id(self) -> str | None:
        return self._model_id

    @property
    def credential_degraded(self) -> bool:
        return self._credential is not None and self._credential.degraded

    def snapshot(self) -> dict[str, Any]:
        """Lightweight snapshot for logging."""
        return {
            "state": self._state.value,
            "ready": self.is_ready,
            "model": self._model_id,
            "frames_sent": self.frames_sent,
            "messages_received": self.messages_received,
            "parse_errors": self.parse_errors,
            "outbound": self._outbound.snapshot(),
        }

    # -------------------------------------------------------------------------
    # Connect
    # -------------------------------------------------------------------------

    async def connect(self, model_hint: str | None = None) -> None:
        """
        Authenticate, open the socket and send the setup frame.

        Model selection: the credential's model (tokens are scoped to it),
        else model_hint, else the configured default.

        Raises:
            TransportStateError: not IDLE
            AuthError: no credential (after SessionError was emitted)
            TransportConnectionError: socket failed (after SessionError)
        """
        if self._state is not ConnectionState.IDLE:
            raise TransportStateError(
                f"connect() requires IDLE, transport is {self._state.value}"
            )
        self._set_state(ConnectionState.CONNECTING)

        try:
            with timed("credential_fetch", session_id=self._session_id) as extra:
                credential = await self._credentials.fetch()
                extra["degraded"] = credential.degraded
        except AuthError as e:
            self._fail(f"auth_failed: {e}")
            raise
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._fail(f"credential_failed: {type(e).__name__}: {e}")
            raise AuthError(f"Credential fetch failed: {e}") from e

        if self._state is not ConnectionState.CONNECTING:
            return  # disconnect() ran while fetching

        self._credential = credential
        self._model_id = credential.model_id or model_hint or self._default_model_id

        try:
            with timed("ws_connect", session_id=self._session_id):
                ws = await self._connector(
                    self._build_url(credential.token),
                    max_size=WS_MAX_MESSAGE_BYTES,
                    ping_interval=None,
                )
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._fail(f"connect_failed: {type(e).__name__}: {e}")
            raise TransportConnectionError(f"Failed to connect: {type(e).__name__}: {e}") from e

        if self._state is not ConnectionState.CONNECTING:
            self._spawn_close(ws)
            return

        self._ws = ws
        self._set_state(ConnectionState.OPEN)

        setup = encode_setup(
            model_id=self._model_id,
            voice_name=self._voice_name,
            system_prompt=self._system_prompt,
        )
        try:
            await ws.send(setup)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._fail(f"setup_send_failed: {type(e).__name__}: {e}")
            raise TransportConnectionError(f"Failed to send setup: {type(e).__name__}: {e}") from e

        if self._state is not ConnectionState.OPEN:
            return

        self._ready = True
        self._writer_task = asyncio.create_task(self._write_loop(ws))
        self._reader_task = asyncio.create_task(self._read_loop(ws))

        log_event({
            "event_type": "LIVE_CONNECTED",
            "session_id": self._session_id,
            "model": self._model_id,
            "voice": self._voice_name,
            "credential_degraded": credential.degraded,
        })

    def _build_url(self, token: str) -> str:
        qs = urllib.parse.urlencode({"key": token})
        return f"{self._ws_url}?{qs}"

    # -------------------------------------------------------------------------
    # Send
    # -------------------------------------------------------------------------

    def send_audio(self, frame: AudioFrame) -> None:
        """
        Queue one microphone frame. No-op unless ready.

        Never blocks: when the outbound audio lane is full the frame is
        dropped and counted.
        """
        if not self.is_ready:
            return

        if not self._outbound.push(encode_audio_frame(frame), kind=MessageKind.AUDIO):
            drops = self._outbound.drops.audio_overflow
            # First drop, then every 50th, to keep logs bounded
            if drops == 1 or drops % 50 == 0:
                log_event({
                    "event_type": "AUDIO_FRAME_DROPPED",
                    "session_id": self._session_id,
                    "seq_num": frame.sequence_num,
                    "dropped_total": drops,
                })

    def send_text(self, text: str) -> None:
        """Queue a complete user text turn. No-op unless ready."""
        if not self.is_ready:
            log_event({
                "event_type": "TEXT_SEND_WHILE_NOT_READY",
                "session_id": self._session_id,
                "state": self._state.value,
            })
            return
        self._outbound.push(encode_text_turn(text), kind=MessageKind.CONTROL)

    # -------------------------------------------------------------------------
    # Disconnect
    # -------------------------------------------------------------------------

    def disconnect(self) -> None:
        """
        Close the connection from any state. Idempotent, never raises.

        Does not await: background tasks are cancelled and the socket close
        is scheduled. Use wait_closed() to await the close handshake.
        """
        if not self._state.is_terminal:
            self._state = ConnectionState.CLOSED
            log_event({
                "event_type": "LIVE_DISCONNECTED",
                "session_id": self._session_id,
                "reason": "local",
                **self.snapshot(),
            })

        # Local teardown is never reported back as a server event
        self._terminal_emitted = True
        self._teardown()

    async def wait_closed(self) -> None:
        """Await the scheduled socket close, if any."""
        task = self._close_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Background loops
    # -------------------------------------------------------------------------

    async def _write_loop(self, ws: Any) -> None:
        try:
            while True:
                message = await self._outbound.get()
                await ws.send(message)
                self.frames_sent += 1
        except asyncio.CancelledError:
            raise
        except ConnectionClosed:
            return  # reader reports the close
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._fail(f"send_failed: {type(e).__name__}: {e}")

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self.messages_received += 1
                try:
                    events = decode_server_message(raw, ts_ms=now_ms())
                except MessageParseError as e:
                    self.parse_errors += 1
                    preview = raw[:LOG_PREVIEW_CHARS] if isinstance(raw, str) else None
                    log_event({
                        "event_type": "MESSAGE_PARSE_ERROR",
                        "session_id": self._session_id,
                        "error": str(e),
                        "payload_preview": preview,
                    })
                    continue

                for event in events:
                    if self._state is not ConnectionState.OPEN:
                        return
                    self._dispatch(event)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            self._fail(f"connection_lost: {e}")
            return
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._fail(f"recv_failed: {type(e).__name__}: {e}")
            return

        # Iteration ended cleanly: the remote end closed normally
        reason = getattr(ws, "close_reason", None) or "Connection closed"
        self._remote_closed(str(reason))

    # -------------------------------------------------------------------------
    # State handling
    # -------------------------------------------------------------------------

    def _set_state(self, target: ConnectionState) -> None:
        if not can_transition(self._state, target):
            raise TransportStateError(
                f"illegal transition {self._state.value} -> {target.value}"
            )
        self._state = target

    def _dispatch(self, event: ServerEvent) -> None:
        try:
            self._on_server_event(event)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "SERVER_EVENT_CALLBACK_ERROR",
                "session_id": self._session_id,
                "server_event": event.event_type.value,
                "error": f"{type(e).__name__}: {e}",
            })

    def _emit_terminal(self, event: ServerEvent) -> None:
        if self._terminal_emitted:
            return
        self._terminal_emitted = True
        self._dispatch(event)

    def _fail(self, reason: str) -> None:
        """Move to FAILED and surface one SessionError."""
        if self._state.is_terminal:
            return
        self._state = ConnectionState.FAILED

        log_event({
            "event_type": "LIVE_FAILED",
            "session_id": self._session_id,
            "reason": reason,
            **self.snapshot(),
        })
        self._teardown()
        self._emit_terminal(session_error(reason, ts_ms=now_ms()))

    def _remote_closed(self, reason: str) -> None:
        """Move to CLOSED and surface one SessionClosed."""
        if self._state.is_terminal:
            return
        self._state = ConnectionState.CLOSED

        log_event({
            "event_type": "LIVE_DISCONNECTED",
            "session_id": self._session_id,
            "reason": reason,
            **self.snapshot(),
        })
        self._teardown()
        self._emit_terminal(session_closed(reason, ts_ms=now_ms()))

    def _teardown(self) -> None:
        self._ready = False
        self._outbound.clear()

        current = asyncio.current_task() if _has_running_loop() else None
        for task in (self._reader_task, self._writer_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._reader_task = None
        self._writer_task = None

        ws = self._ws
        self._ws = None
        if ws is not None:
            self._spawn_close(ws)

    def _spawn_close(self, ws: Any) -> None:
        if not _has_running_loop():
            return
        self._close_task = asyncio.create_task(self._close_ws(ws))

    async def _close_ws(self, ws: Any) -> None:
        try:
            await ws.close()
        except (OSError, WebSocketException) as e:
            log_event({
                "event_type": "LIVE_CLOSE_ERROR",
                "session_id": self._session_id,
                "error": str(e),
            })


def _has_running_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True

"""
Server event definitions for the live transport.

Rules:
- Events describe facts that arrived from (or happened to) the connection.
- Events carry data only (no behavior).
- Every inbound message maps to zero or more of these events, in order.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """Discriminant for ServerEvent variants."""

    AUDIO_CHUNK = "AUDIO_CHUNK"
    TEXT_CHUNK = "TEXT_CHUNK"
    TRANSCRIPT_UPDATE = "TRANSCRIPT_UPDATE"
    SESSION_CLOSED = "SESSION_CLOSED"
    SESSION_ERROR = "SESSION_ERROR"


class TranscriptSource(str, Enum):
    """Whose speech a transcript describes."""

    USER = "user"
    MODEL = "model"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events specify:
    - event_type: discriminant
    - ts_ms: arrival timestamp (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# Content Events
# =============================================================================

@dataclass(frozen=True)
class AudioChunk(Event):
    """
    Model audio.

    Usually headerless PCM16 mono @ 24 kHz; may be a self-describing
    container. AudioPlayback.decode() handles both.
    """
    pcm_bytes: bytes


@dataclass(frozen=True)
class TextChunk(Event):
    """Model text part."""
    text: str


@dataclass(frozen=True)
class TranscriptUpdate(Event):
    """Speech-to-text for either side of the conversation."""
    text: str
    is_final: bool
    source: TranscriptSource


# =============================================================================
# Terminal Events (delivered at most once per connection)
# =============================================================================

@dataclass(frozen=True)
class SessionClosed(Event):
    """The remote end closed the connection."""
    reason: str


@dataclass(frozen=True)
class SessionError(Event):
    """The connection failed; the session is over."""
    message: str


ServerEvent = Union[AudioChunk, TextChunk, TranscriptUpdate, SessionClosed, SessionError]

TERMINAL_EVENT_TYPES: frozenset[EventType] = frozenset(
    {EventType.SESSION_CLOSED, EventType.SESSION_ERROR}
)


# =============================================================================
# Constructors
# =============================================================================

def audio_chunk(pcm_bytes: bytes, *, ts_ms: int) -> AudioChunk:
    return AudioChunk(event_type=EventType.AUDIO_CHUNK, ts_ms=ts_ms, pcm_bytes=pcm_bytes)


def text_chunk(text: str, *, ts_ms: int) -> TextChunk:
    return TextChunk(event_type=EventType.TEXT_CHUNK, ts_ms=ts_ms, text=text)


def transcript_update(
    text: str,
    *,
    is_final: bool,
    source: TranscriptSource,
    ts_ms: int,
) -> TranscriptUpdate:
    return TranscriptUpdate(
        event_type=EventType.TRANSCRIPT_UPDATE,
        ts_ms=ts_ms,
        text=text,
        is_final=is_final,
        source=source,
    )


def session_closed(reason: str, *, ts_ms: int) -> SessionClosed:
    return SessionClosed(event_type=EventType.SESSION_CLOSED, ts_ms=ts_ms, reason=reason)


def session_error(message: str, *, ts_ms: int) -> SessionError:
    return SessionError(event_type=EventType.SESSION_ERROR, ts_ms=ts_ms, message=message)

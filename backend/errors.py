"""
Error taxonomy for the live voice client.

Session-level errors (permission, auth, connection) propagate once to the
session caller and end the session. Message-level errors (parse, decode)
are absorbed where they occur and only logged.
"""

from __future__ import annotations


class RealtimeError(Exception):
    """Base class for live voice client errors."""


# -------------------------
# Session-level
# -------------------------

class MicrophonePermissionError(RealtimeError, PermissionError):
    """
    Microphone access was denied, or no input device exists.

    The session does not start and no connection is attempted.
    """


class DeviceError(RealtimeError):
    """An audio device could not be opened or failed while running."""


class AuthError(RealtimeError):
    """A connection credential could not be obtained."""


class TransportConnectionError(RealtimeError, ConnectionError):
    """The duplex connection failed to open or dropped unexpectedly."""


class TransportStateError(RealtimeError):
    """
    An operation was attempted in a state that does not allow it.

    Raised when connect() is called on a transport that already left IDLE;
    a fresh transport is required to reconnect.
    """


# -------------------------
# Message-level (absorbed)
# -------------------------

class AudioDecodeError(RealtimeError):
    """
    A received audio chunk could not be turned into a playable buffer.

    Raised only when both the container decode and the raw PCM16
    interpretation fail. The chunk must be dropped.
    """

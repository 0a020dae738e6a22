"""
Connection state for the live duplex connection.

IDLE -> CONNECTING -> OPEN -> CLOSED
CONNECTING -> FAILED, OPEN -> FAILED

CLOSED and FAILED are terminal: a transport never leaves them, and a new
transport is required to reconnect. disconnect() moves any non-terminal
state to CLOSED.
"""
from enum import Enum


class ConnectionState(Enum):
    """Lifecycle of one LiveTransport."""
    IDLE = "IDLE"              # Constructed, connect() not called
    CONNECTING = "CONNECTING"  # Fetching credential / opening socket
    OPEN = "OPEN"              # Socket open (ready once setup is sent)
    CLOSED = "CLOSED"          # Closed locally or by the remote end
    FAILED = "FAILED"          # Unrecoverable error

    @property
    def is_terminal(self) -> bool:
        return self in (ConnectionState.CLOSED, ConnectionState.FAILED)

    @property
    def is_active(self) -> bool:
        return self in (ConnectionState.CONNECTING, ConnectionState.OPEN)


_ALLOWED: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.IDLE: frozenset({ConnectionState.CONNECTING, ConnectionState.CLOSED}),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.OPEN, ConnectionState.FAILED, ConnectionState.CLOSED}
    ),
    ConnectionState.OPEN: frozenset({ConnectionState.CLOSED, ConnectionState.FAILED}),
    ConnectionState.CLOSED: frozenset(),
    ConnectionState.FAILED: frozenset(),
}


def can_transition(current: ConnectionState, target: ConnectionState) -> bool:
    """Return True if current -> target is a legal transition."""
    return target in _ALLOWED[current]

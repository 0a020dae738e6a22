# backend/transport/queues.py
"""
Outbound message lane for the live transport.

Rules:
- One FIFO for everything sent on the socket, so send order is call order
  (the setup frame is written before the lane is drained at all).
- Audio is bounded by frame count and dropped NEWEST-first when full:
  stale audio has no value and the producer must never block.
- Control messages (text turns) are never dropped.
- Synchronous push; the writer task awaits get().
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque


class MessageKind(str, Enum):
    """Lane classification of an outbound message."""
    AUDIO = "audio"
    CONTROL = "control"


@dataclass
class DropCounters:
    """Drop counters for observability."""
    audio_overflow: int = 0


class OutboundQueue:
    """FIFO of encoded messages with a bounded audio share."""

    def __init__(self, *, max_audio_frames: int) -> None:
        if max_audio_frames <= 0:
            raise ValueError("max_audio_frames must be > 0")

        self._max_audio_frames = max_audio_frames
        self._messages: Deque[tuple[MessageKind, str]] = deque()
        self._audio_count: int = 0
        self._wakeup = asyncio.Event()
        self.drops = DropCounters()

    # -------------------------
    # Producer side
    # -------------------------

    def push(self, message: str, *, kind: MessageKind) -> bool:
        """
        Append an encoded message.

        Returns:
            True if queued
            False if dropped (audio lane full)
        """
        if kind is MessageKind.AUDIO:
            if self._audio_count >= self._max_audio_frames:
                self.drops.audio_overflow += 1
                return False
            self._audio_count += 1

        self._messages.append((kind, message))
        self._wakeup.set()
        return True

    # -------------------------
    # Consumer side
    # -------------------------

    async def get(self) -> str:
        """Wait for and remove the oldest message."""
        while not self._messages:
            self._wakeup.clear()
            await self._wakeup.wait()

        kind, message = self._messages.popleft()
        if kind is MessageKind.AUDIO:
            self._audio_count -= 1
        return message

    def clear(self) -> None:
        """Drop everything without counting drops. Used on teardown."""
        self._messages.clear()
        self._audio_count = 0

    # -------------------------
    # Introspection
    # -------------------------

    def __len__(self) -> int:
        return len(self._messages)

    def audio_depth(self) -> int:
        return self._audio_count

    def snapshot(self) -> dict[str, int]:
        """Lightweight snapshot for logging."""
        return {
            "messages": len(self._messages),
            "audio_frames": self._audio_count,
            "dropped_audio_overflow": self.drops.audio_overflow,
        }

"""
Capture block shaping.

Purpose:
- Turn irregular device callback blocks into fixed 4096-sample blocks
- Bring device-rate audio down to the 16 kHz capture rate

Invariants:
- Mono float32 in, mono float32 out
- Blocks are emitted in input order, never padded
- Leftover samples are carried into the next call, never dropped
  (until reset)
"""

from __future__ import annotations

from math import gcd

import numpy as np
from scipy import signal

from constants import CAPTURE_SAMPLE_RATE_HZ, CAPTURE_SAMPLES_PER_FRAME


class BlockAligner:
    """Rechunk audio to exact frame boundaries without loss."""

    def __init__(self, block_size: int = CAPTURE_SAMPLES_PER_FRAME) -> None:
        if block_size <= 0:
            raise ValueError("block_size must be > 0")
        self._block_size = block_size
        self._buffer = np.zeros(0, dtype=np.float32)

    @property
    def pending(self) -> int:
        """Samples buffered but not yet emitted."""
        return int(self._buffer.shape[0])

    def add(self, samples: np.ndarray) -> list[np.ndarray]:
        """Add samples and return every complete block."""
        incoming = np.asarray(samples, dtype=np.float32).reshape(-1)
        if incoming.size == 0:
            return []

        self._buffer = np.concatenate((self._buffer, incoming))

        whole_blocks = self._buffer.shape[0] // self._block_size
        if whole_blocks == 0:
            return []

        end = whole_blocks * self._block_size
        blocks = [
            self._buffer[offset : offset + self._block_size].copy()
            for offset in range(0, end, self._block_size)
        ]
        self._buffer = self._buffer[end:]
        return blocks

    def reset(self) -> None:
        """Discard buffered samples."""
        self._buffer = np.zeros(0, dtype=np.float32)


class Resampler:
    """
    Polyphase resampler from a device rate to the capture rate.

    Stateless per block; adequate for speech at the block sizes the
    capture stream uses.
    """

    def __init__(self, source_rate_hz: int, target_rate_hz: int = CAPTURE_SAMPLE_RATE_HZ) -> None:
        if source_rate_hz <= 0 or target_rate_hz <= 0:
            raise ValueError("sample rates must be > 0")
        divisor = gcd(source_rate_hz, target_rate_hz)
        self._up = target_rate_hz // divisor
        self._down = source_rate_hz // divisor

    @property
    def is_passthrough(self) -> bool:
        return self._up == self._down

    def process(self, samples: np.ndarray) -> np.ndarray:
        block = np.asarray(samples, dtype=np.float32).reshape(-1)
        if self.is_passthrough or block.size == 0:
            return block
        return signal.resample_poly(block, self._up, self._down).astype(np.float32)

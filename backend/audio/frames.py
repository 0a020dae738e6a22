"""
Audio frame primitives.

Pure data containers only.
No behavior beyond derived properties, no queues, no device access.
"""

from __future__ import annotations
from dataclasses import dataclass

import numpy as np

from constants import CAPTURE_FORMAT


@dataclass(frozen=True)
class AudioFrame:
    """
    Outbound microphone frame.

    sequence_num:
        Monotonic per capture session, starting at 1.
        Used for debugging only; ordering is guaranteed by the
        single-producer capture pipeline, not by this number.

    pcm_bytes:
        PCM16 signed little-endian, mono, 16 kHz.
        Length MUST equal constants.CAPTURE_BYTES_PER_FRAME.

    ts_ms:
        Wall-clock timestamp (milliseconds) when the frame was produced.
        Observability only.
    """
    sequence_num: int
    pcm_bytes: bytes
    ts_ms: int

    @property
    def num_samples(self) -> int:
        """Number of 16-bit samples in the frame."""
        return len(self.pcm_bytes) // CAPTURE_FORMAT.sample_width_bytes

    @property
    def duration_s(self) -> float:
        """Audio duration carried by the frame."""
        return CAPTURE_FORMAT.duration_s(len(self.pcm_bytes))


@dataclass(frozen=True, eq=False)
class PlaybackBuffer:
    """
    Decoded audio ready for the output device.

    samples:
        float32 mono samples in [-1.0, 1.0], shape (n,).
    sample_rate_hz:
        Rate the samples must be played at.
    """
    samples: np.ndarray
    sample_rate_hz: int

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_s(self) -> float:
        """Playback duration in seconds."""
        if self.sample_rate_hz <= 0:
            return 0.0
        return len(self) / self.sample_rate_hz

"""PCM conversion utilities."""
import numpy as np

from constants import PCM16_NEGATIVE_SCALE, PCM16_POSITIVE_SCALE


def float32_to_pcm16le(samples: np.ndarray) -> bytes:
    """
    Convert float samples in [-1.0, 1.0] to PCM16 little-endian bytes.

    Saturating: values are clamped to [-1, 1] first, then scaled by
    32768 for negative samples and 32767 for the rest, and rounded.
    Output length is exactly 2 * len(samples).
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float64).reshape(-1), -1.0, 1.0)
    scaled = np.where(
        clipped < 0,
        clipped * PCM16_NEGATIVE_SCALE,
        clipped * PCM16_POSITIVE_SCALE,
    )
    return np.round(scaled).astype("<i2").tobytes()


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian mono bytes to float32 in [-1.0, 1.0).

    No resampling. No channel mixing.

    Raises:
        ValueError if the byte length is odd (truncated sample).
    """
    if len(pcm_bytes) % 2 != 0:
        raise ValueError(f"PCM16 payload has odd length {len(pcm_bytes)}")

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")  # little-endian int16
    return audio_i16.astype(np.float32) / PCM16_NEGATIVE_SCALE


def to_mono(samples: np.ndarray) -> np.ndarray:
    """Average interleaved channels (shape (n, c)) down to shape (n,)."""
    if samples.ndim == 1:
        return samples
    return samples.mean(axis=1)

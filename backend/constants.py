"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for the audio format, wire protocol and queue limits
of the live voice client.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (keys, token service URL, devices) live in
  config.py instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

# =============================================================================
# Capture format (PCM16 mono @ 16kHz, 4096-sample frames)
# =============================================================================

CAPTURE_SAMPLE_RATE_HZ: Final[int] = 16_000
CAPTURE_CHANNELS: Final[int] = 1
SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)
CAPTURE_SAMPLES_PER_FRAME: Final[int] = 4096
CAPTURE_BYTES_PER_FRAME: Final[int] = CAPTURE_SAMPLES_PER_FRAME * SAMPLE_WIDTH_BYTES

# Saturating float -> int16 scale factors (asymmetric int16 range)
PCM16_POSITIVE_SCALE: Final[float] = 32767.0
PCM16_NEGATIVE_SCALE: Final[float] = 32768.0

# =============================================================================
# Playback format (server audio: PCM16 mono @ 24kHz)
# =============================================================================

PLAYBACK_SAMPLE_RATE_HZ: Final[int] = 24_000
PLAYBACK_CHANNELS: Final[int] = 1

# =============================================================================
# Wire protocol
# =============================================================================

LIVE_WS_URL: Final[str] = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1alpha.GenerativeService.BidiGenerateContent"
)
EPHEMERAL_TOKEN_URL_TEMPLATE: Final[str] = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "{model}:generateEphemeralToken"
)

INPUT_AUDIO_MIME_TYPE: Final[str] = f"audio/pcm;rate={CAPTURE_SAMPLE_RATE_HZ}"
RESPONSE_MODALITY_AUDIO: Final[str] = "AUDIO"
MODEL_RESOURCE_PREFIX: Final[str] = "models/"

DEFAULT_MODEL_ID: Final[str] = "gemini-2.0-flash-live-001"
DEFAULT_VOICE_NAME: Final[str] = "Aoede"

# Largest inbound WebSocket message accepted (bytes)
WS_MAX_MESSAGE_BYTES: Final[int] = 2**22

# =============================================================================
# Backpressure
# =============================================================================

# Outbound audio lane capacity, in frames (~256 ms each at 16kHz)
OUTBOUND_AUDIO_Q_MAX_FRAMES: Final[int] = 8

# =============================================================================
# HTTP
# =============================================================================

CREDENTIAL_HTTP_TIMEOUT_S: Final[float] = 10.0

# =============================================================================
# Transcript
# =============================================================================

MAX_TRANSCRIPT_LINES: Final[int] = 200

# =============================================================================
# Observability
# =============================================================================

# Keys whose values are never written to logs
REDACTED_LOG_KEYS: Final[frozenset[str]] = frozenset(
    {"token", "api_key", "credential", "key"}
)
LOG_PREVIEW_CHARS: Final[int] = 100


# =============================================================================
# Convenience Bundles
# =============================================================================

@dataclass(frozen=True)
class PcmFormat:
    """
    Immutable bundle describing a PCM16 stream.

    Convenience wrapper for passing format metadata around;
    it is NOT a second source of truth.
    """
    sample_rate_hz: int
    channels: int = 1
    sample_width_bytes: int = SAMPLE_WIDTH_BYTES

    def duration_s(self, num_bytes: int) -> float:
        """Return the duration represented by num_bytes of audio."""
        if num_bytes <= 0:
            return 0.0
        bytes_per_second = self.sample_rate_hz * self.channels * self.sample_width_bytes
        return num_bytes / bytes_per_second


CAPTURE_FORMAT: Final[PcmFormat] = PcmFormat(sample_rate_hz=CAPTURE_SAMPLE_RATE_HZ)
PLAYBACK_FORMAT: Final[PcmFormat] = PcmFormat(sample_rate_hz=PLAYBACK_SAMPLE_RATE_HZ)

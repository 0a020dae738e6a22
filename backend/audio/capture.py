"""
Microphone capture.

Responsibilities:
- Acquire the input device (exclusive for the session)
- Resample device audio to 16 kHz mono when the device cannot run at 16 kHz
- Re-align callback blocks to fixed 4096-sample frames
- Convert float samples to PCM16 (saturating) and deliver AudioFrames
  to the caller, in capture order, on the event-loop thread

Non-responsibilities:
- No network I/O (frames are handed to on_frame)
- No buffering across stop()/start()

Threading:
- The device callback runs on the audio driver's thread. It only copies the
  block and hops onto the event loop with call_soon_threadsafe; all framing
  and delivery happen on the loop. Blocks tagged with an old generation
  (captured before stop()) are dropped there.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Callable

import numpy as np

from audio.frame_generator import BlockAligner, Resampler
from audio.frames import AudioFrame
from audio.pcm import float32_to_pcm16le
from constants import (
    CAPTURE_CHANNELS,
    CAPTURE_SAMPLE_RATE_HZ,
    CAPTURE_SAMPLES_PER_FRAME,
)
from errors import DeviceError, MicrophonePermissionError
from observability.logger import log_event, now_ms


FrameCallback = Callable[[AudioFrame], None]


@dataclass(frozen=True)
class CaptureConstraints:
    """Requested input characteristics."""
    sample_rate_hz: int = CAPTURE_SAMPLE_RATE_HZ
    channels: int = CAPTURE_CHANNELS
    echo_cancellation: bool = True
    noise_suppression: bool = True


def _load_sounddevice() -> Any:
    # Imported on first use: PortAudio is only needed when a real device is opened.
    import sounddevice  # pylint: disable=import-outside-toplevel
    return sounddevice


def _looks_like_permission_denial(exc: BaseException) -> bool:
    text = str(exc).lower()
    return any(word in text for word in ("permission", "denied", "not authorized"))


class AudioCapture:
    """
    Live microphone -> AudioFrame stream.

    One instance == one capture session at a time.
    start() after stop() opens a fresh stream.
    """

    def __init__(
        self,
        *,
        device: int | str | None = None,
        constraints: CaptureConstraints = CaptureConstraints(),
        sd: Any = None,
        session_id: str | None = None,
    ) -> None:
        self._device = device
        self._constraints = constraints
        self._sd = sd
        self._session_id = session_id

        self._loop: asyncio.AbstractEventLoop | None = None
        self._stream: Any = None
        self._on_frame: FrameCallback | None = None

        self._aligner = BlockAligner(CAPTURE_SAMPLES_PER_FRAME)
        self._resampler: Resampler | None = None

        # Bumped on every start/stop; callbacks from older generations are ignored.
        self._generation: int = 0
        self._active: bool = False
        self._next_seq: int = 1

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def holds_device(self) -> bool:
        return self._stream is not None

    @property
    def frames_delivered(self) -> int:
        return self._next_seq - 1

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ensure_input_available(self) -> dict[str, Any]:
        """
        Check that an input device can be used, without opening it.

        Returns the device description.

        Raises:
            MicrophonePermissionError: no input device / access denied
            DeviceError: any other device query failure
        """
        sd = self._backend()
        try:
            info = sd.query_devices(self._device, kind="input")
        except ValueError as e:
            raise MicrophonePermissionError(f"No microphone available: {e}") from e
        except sd.PortAudioError as e:
            if _looks_like_permission_denial(e):
                raise MicrophonePermissionError(f"Microphone access denied: {e}") from e
            raise DeviceError(f"Input device query failed: {e}") from e

        if int(info.get("max_input_channels", 0)) < self._constraints.channels:
            raise MicrophonePermissionError(
                f"Input device {info.get('name')!r} has no usable input channel"
            )
        return dict(info)

    async def start(self, on_frame: FrameCallback) -> None:
        """
        Acquire the microphone and begin delivering frames to on_frame.

        Suspends while the device is being opened. Calling start() while
        already active is a no-op.

        Raises:
            MicrophonePermissionError, DeviceError
        """
        if self._active:
            return

        info = self.ensure_input_available()

        self._loop = asyncio.get_running_loop()
        self._on_frame = on_frame
        self._generation += 1
        generation = self._generation
        self._aligner.reset()
        self._next_seq = 1

        device_rate = self._pick_sample_rate(info)
        self._resampler = Resampler(device_rate, self._constraints.sample_rate_hz)

        try:
            stream = await self._loop.run_in_executor(
                None, self._open_stream, device_rate, generation
            )
        except (MicrophonePermissionError, DeviceError):
            self._on_frame = None
            raise

        # stop() ran while the device was opening
        if generation != self._generation:
            self._close_stream(stream)
            return

        self._stream = stream
        self._active = True

        log_event({
            "event_type": "AUDIO_CAPTURE_STARTED",
            "session_id": self._session_id,
            "device": info.get("name"),
            "device_rate_hz": device_rate,
            "resampling": not self._resampler.is_passthrough,
            "constraints": asdict(self._constraints),
            # PortAudio exposes no echo cancellation / noise suppression
            "processing_applied": False,
        })

    def stop(self) -> None:
        """
        Halt capture and release the device.

        Idempotent. Frames still in flight from the driver thread are
        dropped, never delivered.
        """
        self._generation += 1
        was_active = self._active
        self._active = False
        self._on_frame = None
        self._aligner.reset()

        stream = self._stream
        self._stream = None
        if stream is not None:
            self._close_stream(stream)

        if was_active:
            log_event({
                "event_type": "AUDIO_CAPTURE_STOPPED",
                "session_id": self._session_id,
                "frames_delivered": self.frames_delivered,
            })

    # ------------------------------------------------------------------
    # Device handling
    # ------------------------------------------------------------------

    def _backend(self) -> Any:
        if self._sd is None:
            self._sd = _load_sounddevice()
        return self._sd

    def _pick_sample_rate(self, info: dict[str, Any]) -> int:
        sd = self._backend()
        try:
            sd.check_input_settings(
                device=self._device,
                samplerate=self._constraints.sample_rate_hz,
                channels=self._constraints.channels,
                dtype="float32",
            )
            return self._constraints.sample_rate_hz
        except (ValueError, sd.PortAudioError):
            return int(info.get("default_samplerate") or self._constraints.sample_rate_hz)

    def _open_stream(self, device_rate: int, generation: int) -> Any:
        sd = self._backend()

        def _callback(indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:  # pylint: disable=unused-argument
            block = np.array(indata[:, 0], dtype=np.float32, copy=True)
            loop = self._loop
            if loop is None or loop.is_closed():
                return
            loop.call_soon_threadsafe(self._on_block, block, generation)

        try:
            stream = sd.InputStream(
                samplerate=device_rate,
                channels=self._constraints.channels,
                dtype="float32",
                device=self._device,
                callback=_callback,
            )
            stream.start()
        except sd.PortAudioError as e:
            if _looks_like_permission_denial(e):
                raise MicrophonePermissionError(f"Microphone access denied: {e}") from e
            raise DeviceError(f"Could not open input stream: {e}") from e
        return stream

    def _close_stream(self, stream: Any) -> None:
        sd = self._backend()
        try:
            stream.stop()
            stream.close()
        except sd.PortAudioError as e:
            log_event({
                "event_type": "AUDIO_CAPTURE_CLOSE_ERROR",
                "session_id": self._session_id,
                "error": str(e),
            })

    # ------------------------------------------------------------------
    # Loop-side frame assembly
    # ------------------------------------------------------------------

    def _on_block(self, block: np.ndarray, generation: int) -> None:
        if generation != self._generation or not self._active:
            return
        assert self._resampler is not None

        for samples in self._aligner.add(self._resampler.process(block)):
            on_frame = self._on_frame
            # stop() may run inside on_frame
            if on_frame is None or generation != self._generation:
                return
            frame = AudioFrame(
                sequence_num=self._next_seq,
                pcm_bytes=float32_to_pcm16le(samples),
                ts_ms=now_ms(),
            )
            self._next_seq += 1
            on_frame(frame)

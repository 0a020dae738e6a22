"""
Gapless playback of model audio.

Core model:
- Buffers are decoded eagerly, then appended to a FIFO queue.
- Exactly one buffer is handed to the output sink at a time.
- The next buffer starts only when the sink reports completion of the
  previous one (completion-driven chaining). Bursty arrival therefore never
  causes overlap or reordering.

Cancellation:
- stop() clears the queue and halts the sink. Every play() is tagged with a
  generation number; completions from an older generation are ignored, so no
  callback can restart playback after teardown.

Threading:
- enqueue() and the completion callback both run on the event loop.
  OutputSink implementations that finish on other threads must hop back
  onto the loop before calling on_done.
"""

from __future__ import annotations

import asyncio
import io
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Deque, Optional, Protocol

import numpy as np
import soundfile as sf

from audio.frame_generator import Resampler
from audio.frames import PlaybackBuffer
from audio.pcm import pcm16le_to_float32, to_mono
from constants import PLAYBACK_CHANNELS, PLAYBACK_SAMPLE_RATE_HZ
from errors import AudioDecodeError, DeviceError
from observability.logger import log_event


# Samples written per blocking device call; bounds halt() latency (~20 ms)
_SINK_WRITE_CHUNK = PLAYBACK_SAMPLE_RATE_HZ // 50


class OutputSink(Protocol):
    """Audio output device contract used by AudioPlayback."""

    def play(self, buffer: PlaybackBuffer, on_done: Callable[[], None]) -> None:
        """Start playing buffer now; call on_done on the loop when it finishes."""

    def halt(self) -> None:
        """Stop whatever is playing. on_done for it may still fire."""

    def close(self) -> None:
        """Release the output device."""


# -----------------------------------------------------------------------------
# Decode
# -----------------------------------------------------------------------------

def decode_audio(raw: bytes) -> PlaybackBuffer:
    """
    Two-tier decode.

    1. Self-describing container (WAV, FLAC, OGG, ...) via libsndfile.
    2. Fallback: headerless PCM16 LE mono at 24 kHz, sample / 32768.
       The live endpoint sends raw PCM, which container decoders reject.

    Raises:
        AudioDecodeError when both tiers fail, or the container holds no
        frames.
    """
    if not raw:
        raise AudioDecodeError("empty audio payload")

    try:
        data, sample_rate = sf.read(io.BytesIO(raw), dtype="float32", always_2d=False)
    except (sf.SoundFileError, RuntimeError, TypeError):
        pass
    else:
        mono = to_mono(np.asarray(data, dtype=np.float32))
        # A recognised container is never reinterpreted as raw PCM
        if mono.size == 0:
            raise AudioDecodeError("container holds no audio frames")
        return PlaybackBuffer(samples=mono, sample_rate_hz=int(sample_rate))

    try:
        samples = pcm16le_to_float32(raw)
    except ValueError as e:
        raise AudioDecodeError(f"not a container and not PCM16: {e}") from e

    return PlaybackBuffer(samples=samples, sample_rate_hz=PLAYBACK_SAMPLE_RATE_HZ)


# -----------------------------------------------------------------------------
# Playback queue
# -----------------------------------------------------------------------------

class AudioPlayback:
    """
    FIFO, completion-chained audio player.

    One instance owns one output device for the session's duration.
    """

    def __init__(
        self,
        *,
        sink: OutputSink | None = None,
        device: int | str | None = None,
        session_id: str | None = None,
    ) -> None:
        self._sink: OutputSink | None = sink
        self._device = device
        self._session_id = session_id

        self._queue: Deque[PlaybackBuffer] = deque()
        self._current: Optional[PlaybackBuffer] = None
        self._generation: int = 0
        self._closed: bool = False

        self.buffers_played: int = 0
        self.decode_failures: int = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_playing(self) -> bool:
        return self._current is not None

    @property
    def is_closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        """Buffers waiting behind the one currently playing."""
        return len(self._queue)

    def pending_seconds(self) -> float:
        return sum(b.duration_s for b in self._queue)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def decode(self, raw: bytes) -> PlaybackBuffer:
        """Decode a raw server audio chunk. See decode_audio()."""
        return decode_audio(raw)

    def play_raw(self, raw: bytes) -> bool:
        """
        Decode a chunk and enqueue it.

        Decode happens before the append, so arrival order is playback
        order. Undecodable chunks are logged and dropped.

        Returns True if the chunk was enqueued.
        """
        try:
            buffer = self.decode(raw)
        except AudioDecodeError as e:
            self.decode_failures += 1
            log_event({
                "event_type": "AUDIO_DECODE_ERROR",
                "session_id": self._session_id,
                "error": str(e),
                "payload_len": len(raw),
            })
            return False

        self.enqueue(buffer)
        return True

    def enqueue(self, buffer: PlaybackBuffer) -> None:
        """Append to the queue; start playback if nothing is playing."""
        if self._closed:
            return

        self._queue.append(buffer)
        if self._current is None:
            self._play_next()

    def stop(self) -> None:
        """Clear pending audio and halt the buffer in flight. Never raises."""
        self._generation += 1
        self._queue.clear()
        was_playing = self._current is not None
        self._current = None

        if was_playing and self._sink is not None:
            self._sink.halt()

    def close(self) -> None:
        """Stop and release the output device. Idempotent."""
        self.stop()
        if self._closed:
            return
        self._closed = True

        sink = self._sink
        self._sink = None
        if sink is not None:
            sink.close()

        log_event({
            "event_type": "AUDIO_PLAYBACK_CLOSED",
            "session_id": self._session_id,
            "buffers_played": self.buffers_played,
            "decode_failures": self.decode_failures,
        })

    # ------------------------------------------------------------------
    # Chaining
    # ------------------------------------------------------------------

    def _play_next(self) -> None:
        if not self._queue:
            self._current = None
            return

        buffer = self._queue.popleft()
        self._current = buffer
        generation = self._generation

        self._ensure_sink().play(buffer, lambda: self._on_ended(generation))

    def _on_ended(self, generation: int) -> None:
        if generation != self._generation or self._closed:
            return
        self.buffers_played += 1
        self._current = None
        self._play_next()

    def _ensure_sink(self) -> OutputSink:
        if self._sink is None:
            self._sink = SoundDeviceSink(device=self._device, session_id=self._session_id)
        return self._sink


# -----------------------------------------------------------------------------
# Real output device
# -----------------------------------------------------------------------------

class SoundDeviceSink:
    """
    OutputSink backed by a PortAudio output stream.

    Buffers are written from a single worker thread in small chunks so that
    halt() takes effect within one chunk. Completion is reported back on the
    event loop that called play().

    The stream is opened, written and closed only on the worker thread.
    close() queues the stream close behind any write in flight; once closed,
    the worker never opens or writes again.
    """

    def __init__(
        self,
        *,
        device: int | str | None = None,
        sample_rate_hz: int = PLAYBACK_SAMPLE_RATE_HZ,
        sd: Any = None,
        session_id: str | None = None,
    ) -> None:
        self._device = device
        self._sample_rate_hz = sample_rate_hz
        self._sd = sd
        self._session_id = session_id

        self._stream: Any = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="playback")
        self._halt_epoch: int = 0
        self._closed: bool = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def play(self, buffer: PlaybackBuffer, on_done: Callable[[], None]) -> None:
        if self._closed:
            return
        loop = asyncio.get_running_loop()
        samples = buffer.samples
        if buffer.sample_rate_hz != self._sample_rate_hz:
            samples = Resampler(buffer.sample_rate_hz, self._sample_rate_hz).process(samples)

        epoch = self._halt_epoch
        future = loop.run_in_executor(self._executor, self._write, samples, epoch)
        future.add_done_callback(lambda f: self._finished(f, on_done))

    def halt(self) -> None:
        self._halt_epoch += 1

    def close(self) -> None:
        """Release the device after any write in flight. Idempotent, does not block."""
        if self._closed:
            return
        self._closed = True
        self.halt()
        # Queued writes see _closed and return without touching the device
        self._executor.submit(self._close_stream)
        self._executor.shutdown(wait=False)

    def _backend(self) -> Any:
        if self._sd is None:
            import sounddevice  # pylint: disable=import-outside-toplevel
            self._sd = sounddevice
        return self._sd

    # ------------------------------------------------------------------
    # Worker thread only
    # ------------------------------------------------------------------

    def _ensure_stream(self) -> Any:
        if self._closed:
            return None
        if self._stream is None:
            sd = self._backend()
            try:
                stream = sd.OutputStream(
                    samplerate=self._sample_rate_hz,
                    channels=PLAYBACK_CHANNELS,
                    dtype="float32",
                    device=self._device,
                )
                stream.start()
            except sd.PortAudioError as e:
                raise DeviceError(f"Could not open output stream: {e}") from e
            self._stream = stream
        return self._stream

    def _write(self, samples: np.ndarray, epoch: int) -> None:
        if self._closed or epoch != self._halt_epoch:
            return
        stream = self._ensure_stream()
        if stream is None:
            return
        block = samples.reshape(-1, 1)
        for offset in range(0, block.shape[0], _SINK_WRITE_CHUNK):
            if self._closed or epoch != self._halt_epoch:
                return
            stream.write(block[offset : offset + _SINK_WRITE_CHUNK])

    def _close_stream(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except self._backend().PortAudioError as e:
            log_event({
                "event_type": "AUDIO_OUTPUT_CLOSE_ERROR",
                "session_id": self._session_id,
                "error": str(e),
            })

    # ------------------------------------------------------------------
    # Loop side
    # ------------------------------------------------------------------

    def _finished(self, future: "asyncio.Future[None]", on_done: Callable[[], None]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            log_event({
                "event_type": "AUDIO_OUTPUT_ERROR",
                "session_id": self._session_id,
                "error": f"{type(exc).__name__}: {exc}",
            })
        on_done()

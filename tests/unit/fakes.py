# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any, Callable

import numpy as np

from audio.frames import AudioFrame, PlaybackBuffer
from constants import CAPTURE_BYTES_PER_FRAME
from credentials.base import Credential, CredentialSource
from errors import AuthError, MicrophonePermissionError


# ---------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------

class StaticCredentials(CredentialSource):
    def __init__(self, token: str = "ephemeral-token", model_id: str = "live-model") -> None:
        self.calls = 0
        self._credential = Credential(token=token, model_id=model_id)

    async def fetch(self) -> Credential:
        self.calls += 1
        return self._credential


class FailingCredentials(CredentialSource):
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or AuthError("token endpoint down")

    async def fetch(self) -> Credential:
        raise self.error


# ---------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------

_END = object()


class FakeWebSocket:
    """In-memory stand-in for a websockets ClientConnection."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self.close_reason: str | None = None
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True

    # test helpers
    def feed(self, message: str | bytes) -> None:
        self._incoming.put_nowait(message)

    def finish(self, reason: str = "server closed") -> None:
        self.close_reason = reason
        self._incoming.put_nowait(_END)

    def drop(self, exc: BaseException) -> None:
        self._incoming.put_nowait(exc)

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> Any:
        item = await self._incoming.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeConnector:
    def __init__(self, ws: FakeWebSocket | None = None, error: BaseException | None = None) -> None:
        self.ws = ws or FakeWebSocket()
        self.error = error
        self.urls: list[str] = []
        self.kwargs: list[dict[str, Any]] = []

    async def __call__(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.urls.append(url)
        self.kwargs.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.ws


async def settle(rounds: int = 5) -> None:
    """Let background tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------
# Audio output
# ---------------------------------------------------------------------

class FakeSink:
    """OutputSink that plays nothing and finishes only when told to."""

    def __init__(self) -> None:
        self.started: list[PlaybackBuffer] = []
        self._pending: list[Callable[[], None]] = []
        self.halts = 0
        self.closed = False
        self.active = 0
        self.max_active = 0

    def play(self, buffer: PlaybackBuffer, on_done: Callable[[], None]) -> None:
        self.started.append(buffer)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self._pending.append(on_done)

    def halt(self) -> None:
        self.halts += 1

    def close(self) -> None:
        self.closed = True

    def finish_current(self) -> None:
        on_done = self._pending.pop(0)
        self.active -= 1
        on_done()

    def fire_stale(self) -> None:
        """Deliver every outstanding completion, as a device would after halt()."""
        while self._pending:
            self.finish_current()


def make_buffer(n: int = 4, value: float = 0.0) -> PlaybackBuffer:
    return PlaybackBuffer(samples=np.full(n, value, dtype=np.float32), sample_rate_hz=24_000)


# ---------------------------------------------------------------------
# Audio input
# ---------------------------------------------------------------------

class FakePortAudioError(Exception):
    pass


class FakeInputStream:
    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.started = False
        self.closed = False

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False

    def close(self) -> None:
        self.closed = True

    def push(self, samples: np.ndarray) -> None:
        """Simulate the driver delivering a block."""
        self.callback(np.asarray(samples, dtype=np.float32).reshape(-1, 1), len(samples), None, None)


class FakeOutputStream:
    def __init__(self, owner: "FakeSoundDevice", **kwargs: Any) -> None:
        self.owner = owner
        self.kwargs = kwargs
        self.started = False
        self.closed = False
        self.writes: list[np.ndarray] = []
        self.write_threads: set[int] = set()

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False

    def close(self) -> None:
        self.closed = True

    def write(self, block: np.ndarray) -> None:
        if self.closed:
            raise FakePortAudioError("write on closed stream")
        if self.owner.write_error is not None:
            raise FakePortAudioError(self.owner.write_error)
        self.writes.append(np.array(block, copy=True))
        self.write_threads.add(threading.get_ident())
        if self.owner.on_write is not None:
            self.owner.on_write(self)

    @property
    def samples_written(self) -> int:
        return sum(int(w.shape[0]) for w in self.writes)


class FakeSoundDevice:
    """Minimal sounddevice module replacement for AudioCapture and SoundDeviceSink."""

    PortAudioError = FakePortAudioError

    def __init__(
        self,
        *,
        has_input: bool = True,
        supports_16k: bool = True,
        default_samplerate: float = 16_000.0,
        open_error: str | None = None,
        output_open_delay_s: float = 0.0,
        write_error: str | None = None,
        on_write: Callable[[FakeOutputStream], None] | None = None,
    ) -> None:
        self.has_input = has_input
        self.supports_16k = supports_16k
        self.default_samplerate = default_samplerate
        self.open_error = open_error
        self.output_open_delay_s = output_open_delay_s
        self.write_error = write_error
        self.on_write = on_write
        self.streams: list[FakeInputStream] = []
        self.output_streams: list[FakeOutputStream] = []

    def OutputStream(self, **kwargs: Any) -> FakeOutputStream:  # pylint: disable=invalid-name
        if self.output_open_delay_s:
            time.sleep(self.output_open_delay_s)
        stream = FakeOutputStream(self, **kwargs)
        self.output_streams.append(stream)
        return stream

    def query_devices(self, device: Any = None, kind: str | None = None) -> dict[str, Any]:
        if not self.has_input:
            raise ValueError("No input device matching ''")
        return {
            "name": "fake mic",
            "max_input_channels": 1,
            "default_samplerate": self.default_samplerate,
        }

    def check_input_settings(self, **kwargs: Any) -> None:
        if not self.supports_16k:
            raise FakePortAudioError("Invalid sample rate")

    def InputStream(self, **kwargs: Any) -> FakeInputStream:  # pylint: disable=invalid-name
        if self.open_error is not None:
            raise FakePortAudioError(self.open_error)
        stream = FakeInputStream(**kwargs)
        self.streams.append(stream)
        return stream


class FakeCapture:
    """AudioCapture stand-in for controller tests."""

    def __init__(self, *, deny: bool = False) -> None:
        self.deny = deny
        self.on_frame: Callable[[AudioFrame], None] | None = None
        self.started = False
        self.stops = 0
        self._seq = 1

    def ensure_input_available(self) -> dict[str, Any]:
        if self.deny:
            raise MicrophonePermissionError("Microphone access denied")
        return {"name": "fake mic"}

    async def start(self, on_frame: Callable[[AudioFrame], None]) -> None:
        self.ensure_input_available()
        self.on_frame = on_frame
        self.started = True

    def stop(self) -> None:
        self.stops += 1
        self.started = False
        self.on_frame = None

    @property
    def holds_device(self) -> bool:
        return self.started

    def emit(self) -> AudioFrame:
        frame = AudioFrame(sequence_num=self._seq, pcm_bytes=b"\x01\x00" * (CAPTURE_BYTES_PER_FRAME // 2), ts_ms=0)
        self._seq += 1
        if self.on_frame is not None:
            self.on_frame(frame)
        return frame

# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json

import numpy as np
import pytest

from audio.capture import AudioCapture
from audio.frames import AudioFrame
from errors import DeviceError, MicrophonePermissionError
from fakes import FakeSoundDevice, settle
from observability import logger


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)
    return captured


# ---------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------

def test_irregular_device_blocks_become_4096_sample_frames():
    sd = FakeSoundDevice()
    frames: list[AudioFrame] = []

    async def scenario() -> None:
        capture = AudioCapture(sd=sd)
        await capture.start(frames.append)
        stream = sd.streams[0]
        for _ in range(3):
            stream.push(np.zeros(3000, dtype=np.float32))
        await settle()
        capture.stop()

    asyncio.run(scenario())

    assert [f.sequence_num for f in frames] == [1, 2]
    assert all(len(f.pcm_bytes) == 8192 for f in frames)
    assert sd.streams[0].kwargs["samplerate"] == 16_000
    assert sd.streams[0].kwargs["dtype"] == "float32"


def test_captured_samples_saturate():
    sd = FakeSoundDevice()
    frames: list[AudioFrame] = []

    async def scenario() -> None:
        capture = AudioCapture(sd=sd)
        await capture.start(frames.append)
        sd.streams[0].push(np.concatenate([np.full(2048, 2.0), np.full(2048, -3.0)]))
        await settle()
        capture.stop()

    asyncio.run(scenario())
    samples = np.frombuffer(frames[0].pcm_bytes, dtype="<i2")

    assert set(samples[:2048].tolist()) == {32767}
    assert set(samples[2048:].tolist()) == {-32768}


def test_device_without_16k_support_is_resampled():
    sd = FakeSoundDevice(supports_16k=False, default_samplerate=48_000.0)
    frames: list[AudioFrame] = []

    async def scenario() -> None:
        capture = AudioCapture(sd=sd)
        await capture.start(frames.append)
        sd.streams[0].push(np.zeros(3 * 4096, dtype=np.float32))
        await settle()
        capture.stop()

    asyncio.run(scenario())

    assert sd.streams[0].kwargs["samplerate"] == 48_000
    assert len(frames) == 1
    assert len(frames[0].pcm_bytes) == 8192


# ---------------------------------------------------------------------
# Permission / device errors
# ---------------------------------------------------------------------

def test_missing_input_device_is_a_permission_error():
    sd = FakeSoundDevice(has_input=False)
    capture = AudioCapture(sd=sd)

    with pytest.raises(MicrophonePermissionError):
        capture.ensure_input_available()

    with pytest.raises(MicrophonePermissionError):
        asyncio.run(capture.start(lambda f: None))

    assert sd.streams == []
    assert not capture.is_active


def test_denied_open_is_a_permission_error():
    sd = FakeSoundDevice(open_error="Permission denied by the system")
    capture = AudioCapture(sd=sd)

    with pytest.raises(MicrophonePermissionError):
        asyncio.run(capture.start(lambda f: None))
    assert not capture.holds_device


def test_other_open_failure_is_a_device_error():
    sd = FakeSoundDevice(open_error="Device unavailable")
    capture = AudioCapture(sd=sd)

    with pytest.raises(DeviceError):
        asyncio.run(capture.start(lambda f: None))


# ---------------------------------------------------------------------
# Stop
# ---------------------------------------------------------------------

def test_stop_drops_in_flight_blocks_and_releases_device(quiet_logs: list[str]):
    sd = FakeSoundDevice()
    frames: list[AudioFrame] = []

    async def scenario() -> AudioCapture:
        capture = AudioCapture(sd=sd, session_id="s1")
        await capture.start(frames.append)
        sd.streams[0].push(np.zeros(4096, dtype=np.float32))
        # block is still queued on the loop
        capture.stop()
        await settle()
        capture.stop()
        return capture

    capture = asyncio.run(scenario())

    assert frames == []
    assert sd.streams[0].closed
    assert not capture.is_active
    assert not capture.holds_device
    stopped = [json.loads(line) for line in quiet_logs if "AUDIO_CAPTURE_STOPPED" in line]
    assert len(stopped) == 1


def test_stop_inside_frame_callback_halts_delivery():
    sd = FakeSoundDevice()
    frames: list[AudioFrame] = []

    async def scenario() -> None:
        capture = AudioCapture(sd=sd)

        def on_frame(frame: AudioFrame) -> None:
            frames.append(frame)
            capture.stop()

        await capture.start(on_frame)
        sd.streams[0].push(np.zeros(3 * 4096, dtype=np.float32))
        await settle()

    asyncio.run(scenario())
    assert len(frames) == 1


def test_restart_opens_fresh_stream_and_resets_sequence():
    sd = FakeSoundDevice()
    frames: list[AudioFrame] = []

    async def scenario() -> None:
        capture = AudioCapture(sd=sd)
        await capture.start(frames.append)
        sd.streams[0].push(np.zeros(4096 + 100, dtype=np.float32))
        await settle()
        capture.stop()

        await capture.start(frames.append)
        await capture.start(frames.append)  # already active
        sd.streams[1].push(np.zeros(4096, dtype=np.float32))
        await settle()
        capture.stop()

    asyncio.run(scenario())

    assert len(sd.streams) == 2
    assert [f.sequence_num for f in frames] == [1, 1]

# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio

import pytest

from transport.queues import MessageKind, OutboundQueue


# ---------------------------------------------------------------------
# Overflow behavior
# ---------------------------------------------------------------------

def test_audio_overflow_drops_newest():
    q = OutboundQueue(max_audio_frames=2)

    assert q.push("a1", kind=MessageKind.AUDIO) is True
    assert q.push("a2", kind=MessageKind.AUDIO) is True
    assert q.push("a3", kind=MessageKind.AUDIO) is False

    assert q.drops.audio_overflow == 1
    assert q.audio_depth() == 2
    assert len(q) == 2


def test_control_messages_are_never_dropped():
    q = OutboundQueue(max_audio_frames=1)
    q.push("a1", kind=MessageKind.AUDIO)

    for i in range(10):
        assert q.push(f"t{i}", kind=MessageKind.CONTROL) is True

    assert len(q) == 11
    assert q.drops.audio_overflow == 0


def test_audio_room_frees_as_messages_drain():
    async def scenario() -> list[str]:
        q = OutboundQueue(max_audio_frames=1)
        q.push("a1", kind=MessageKind.AUDIO)
        first = await q.get()
        assert q.push("a2", kind=MessageKind.AUDIO) is True
        return [first, await q.get()]

    assert asyncio.run(scenario()) == ["a1", "a2"]


# ---------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------

def test_fifo_across_kinds():
    async def scenario() -> list[str]:
        q = OutboundQueue(max_audio_frames=8)
        q.push("a1", kind=MessageKind.AUDIO)
        q.push("t1", kind=MessageKind.CONTROL)
        q.push("a2", kind=MessageKind.AUDIO)
        return [await q.get() for _ in range(3)]

    assert asyncio.run(scenario()) == ["a1", "t1", "a2"]


def test_get_waits_for_push():
    async def scenario() -> str:
        q = OutboundQueue(max_audio_frames=8)
        waiter = asyncio.create_task(q.get())
        await asyncio.sleep(0)
        assert not waiter.done()
        q.push("late", kind=MessageKind.CONTROL)
        return await asyncio.wait_for(waiter, timeout=1.0)

    assert asyncio.run(scenario()) == "late"


# ---------------------------------------------------------------------
# Clear / snapshot
# ---------------------------------------------------------------------

def test_clear_resets_depth_but_keeps_drop_count():
    q = OutboundQueue(max_audio_frames=1)
    q.push("a1", kind=MessageKind.AUDIO)
    q.push("a2", kind=MessageKind.AUDIO)

    q.clear()

    assert q.snapshot() == {
        "messages": 0,
        "audio_frames": 0,
        "dropped_audio_overflow": 1,
    }


def test_invalid_capacity_rejected():
    with pytest.raises(ValueError):
        OutboundQueue(max_audio_frames=0)

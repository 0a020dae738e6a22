# pylint: disable=missing-module-docstring,missing-function-docstring

import numpy as np
import pytest

from audio.frame_generator import BlockAligner, Resampler


# ---------------------------------------------------------------------
# BlockAligner
# ---------------------------------------------------------------------

def test_exact_block_is_emitted():
    aligner = BlockAligner(4)
    blocks = aligner.add(np.arange(4, dtype=np.float32))

    assert len(blocks) == 1
    assert blocks[0].tolist() == [0, 1, 2, 3]
    assert aligner.pending == 0


def test_partial_input_is_buffered_until_complete():
    aligner = BlockAligner(4)

    assert aligner.add(np.array([0, 1, 2], dtype=np.float32)) == []
    assert aligner.pending == 3

    blocks = aligner.add(np.array([3, 4], dtype=np.float32))
    assert [b.tolist() for b in blocks] == [[0, 1, 2, 3]]
    assert aligner.pending == 1


def test_large_input_yields_multiple_blocks_in_order():
    aligner = BlockAligner(3)
    blocks = aligner.add(np.arange(10, dtype=np.float32))

    assert [b.tolist() for b in blocks] == [[0, 1, 2], [3, 4, 5], [6, 7, 8]]
    assert aligner.pending == 1


def test_no_samples_lost_across_irregular_calls():
    aligner = BlockAligner(4096)
    emitted: list[np.ndarray] = []
    data = np.random.default_rng(7).uniform(-1, 1, 4096 * 3 + 17).astype(np.float32)

    offset = 0
    for size in (1000, 3000, 500, 4096, 4000, 17):
        emitted.extend(aligner.add(data[offset : offset + size]))
        offset += size

    assert offset == data.size
    assert all(b.size == 4096 for b in emitted)
    assert np.array_equal(np.concatenate(emitted), data[: 4096 * 3])
    assert aligner.pending == 17


def test_reset_discards_pending():
    aligner = BlockAligner(4)
    aligner.add(np.array([1, 2], dtype=np.float32))

    aligner.reset()

    assert aligner.pending == 0
    assert aligner.add(np.array([9, 9, 9, 9], dtype=np.float32))[0].tolist() == [9, 9, 9, 9]


def test_invalid_block_size_rejected():
    with pytest.raises(ValueError):
        BlockAligner(0)


# ---------------------------------------------------------------------
# Resampler
# ---------------------------------------------------------------------

def test_same_rate_is_passthrough():
    r = Resampler(16_000, 16_000)
    block = np.ones(10, dtype=np.float32)

    assert r.is_passthrough
    assert r.process(block).tolist() == block.tolist()


def test_48k_to_16k_divides_length_by_three():
    r = Resampler(48_000, 16_000)
    out = r.process(np.zeros(4800, dtype=np.float32))

    assert not r.is_passthrough
    assert out.dtype == np.float32
    assert out.size == 1600


def test_44k1_to_16k_length():
    r = Resampler(44_100, 16_000)
    out = r.process(np.zeros(4410, dtype=np.float32))
    assert out.size == 1600


def test_resampled_tone_keeps_amplitude():
    t = np.arange(48_000) / 48_000
    tone = (0.5 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)

    out = Resampler(48_000, 16_000).process(tone)

    # ignore filter edges
    assert np.max(np.abs(out[100:-100])) == pytest.approx(0.5, abs=0.02)


def test_invalid_rate_rejected():
    with pytest.raises(ValueError):
        Resampler(0, 16_000)

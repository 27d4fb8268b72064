"""Tests for the breathing and sound-band history buffers."""

import pytest

from sleep_apnea_engine.buffer import PatternBuffer, SoundBandBuffers, detect_sound


def test_buffer_evicts_oldest_first():
    buf = PatternBuffer(capacity=5)
    for i in range(6):
        buf.push(i / 10)

    assert len(buf) == 5
    assert buf.is_full
    assert buf.values() == (0.1, 0.2, 0.3, 0.4, 0.5)
    assert buf.latest() == 0.5


def test_buffer_never_exceeds_capacity():
    buf = PatternBuffer(capacity=120)
    for i in range(500):
        buf.push(float(i))
        assert len(buf) <= 120
    assert buf.values()[0] == 380.0


def test_window_returns_most_recent():
    buf = PatternBuffer(capacity=10)
    for v in (1, 2, 3, 4):
        buf.push(v)
    assert buf.window(2) == (3.0, 4.0)
    assert buf.window(10) == (1.0, 2.0, 3.0, 4.0)
    assert buf.window(0) == ()


def test_values_are_copies():
    buf = PatternBuffer(capacity=3)
    buf.push(0.5)
    snapshot = buf.values()
    buf.push(0.7)
    assert snapshot == (0.5,)


def test_reset_and_empty_buffer():
    buf = PatternBuffer(capacity=3)
    buf.push(0.5)
    buf.reset()
    assert len(buf) == 0
    assert buf.latest() is None


def test_invalid_capacity():
    with pytest.raises(ValueError):
        PatternBuffer(capacity=0)


def test_sound_buffers_track_each_category():
    buffers = SoundBandBuffers(["snoring", "gasping"], capacity=3)
    for level in (1.0, 2.0, 3.0, 4.0):
        buffers.push({"snoring": level, "gasping": level * 2, "other": 99.0})

    assert buffers.values("snoring") == (2.0, 3.0, 4.0)
    assert buffers.values("gasping") == (4.0, 6.0, 8.0)
    assert buffers.values("other") == ()

    buffers.reset()
    assert buffers.values("snoring") == ()


def test_detect_sound_needs_min_samples():
    assert not detect_sound((50.0, 50.0), threshold=4.0)


def test_detect_sound_by_mean_or_peak():
    # sustained above threshold
    assert detect_sound((5.0, 5.0, 5.0), threshold=4.0)
    # one peak above threshold * 1.1 while the mean stays low
    assert detect_sound((0.0, 0.0, 4.5), threshold=4.0)
    # peak inside the margin, mean below threshold
    assert not detect_sound((3.0, 3.0, 4.3), threshold=4.0)

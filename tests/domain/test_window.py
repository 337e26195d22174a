import random

import pytest

from domain.window import AudioWindow, WindowAccumulator
from tests.conftest import make_chunks


class TestWindowAccumulator:
    def test_starts_empty(self):
        acc = WindowAccumulator(10.0)
        assert acc.duration == 0.0
        assert acc.buffered_bytes == 0
        assert acc.chunk_count == 0
        assert not acc.is_ready()

    def test_ten_one_second_chunks_fill_window(self):
        acc = WindowAccumulator(10.0)
        chunks = make_chunks(10)
        for chunk in chunks:
            acc.add_chunk(chunk, 1.0)

        assert acc.is_ready()
        window = acc.drain()
        assert isinstance(window, AudioWindow)
        assert window.data == b"".join(chunks)
        assert len(window) == sum(len(c) for c in chunks)
        assert window.duration == 10.0
        assert acc.duration == 0.0
        assert acc.chunk_count == 0

    def test_not_ready_below_window(self):
        acc = WindowAccumulator(10.0)
        for chunk in make_chunks(9):
            acc.add_chunk(chunk, 1.0)
        assert not acc.is_ready()

    def test_drain_then_not_ready(self):
        acc = WindowAccumulator(3.0)
        for chunk in make_chunks(5):
            acc.add_chunk(chunk, 1.0)
        acc.drain()
        assert not acc.is_ready()

    def test_oldest_chunks_are_evicted(self):
        acc = WindowAccumulator(3.0)
        chunks = [b"a", b"b", b"c", b"d", b"e"]
        for chunk in chunks:
            acc.add_chunk(chunk, 1.0)

        assert acc.duration == 3.0
        assert acc.drain().data == b"cde"

    def test_duration_never_exceeds_window(self):
        rng = random.Random(1234)
        acc = WindowAccumulator(10.0)
        for _ in range(500):
            acc.add_chunk(b"x" * rng.randint(1, 64), rng.uniform(0.0, 4.0))
            assert acc.duration <= acc.window_seconds
            if rng.random() < 0.05:
                acc.drain()
                assert not acc.is_ready()

    def test_chunk_longer_than_window_is_dropped(self):
        acc = WindowAccumulator(2.0)
        acc.add_chunk(b"short", 1.0)
        acc.add_chunk(b"huge", 5.0)
        assert acc.duration == 0.0
        assert acc.chunk_count == 0
        assert not acc.is_ready()

    def test_buffered_bytes_tracks_evictions(self):
        acc = WindowAccumulator(2.0)
        acc.add_chunk(b"aaaa", 1.0)
        acc.add_chunk(b"bb", 1.0)
        acc.add_chunk(b"c", 1.0)
        assert acc.buffered_bytes == 3

    def test_zero_duration_chunks_accumulate_without_readiness(self):
        acc = WindowAccumulator(1.0)
        acc.add_chunk(b"meta", 0.0)
        assert acc.chunk_count == 1
        assert not acc.is_ready()

    def test_negative_duration_rejected(self):
        acc = WindowAccumulator(1.0)
        with pytest.raises(ValueError):
            acc.add_chunk(b"x", -1.0)

    def test_window_must_be_positive(self):
        with pytest.raises(ValueError):
            WindowAccumulator(0)

    def test_drain_empty_returns_empty_window(self):
        window = WindowAccumulator(1.0).drain()
        assert window.data == b""
        assert window.duration == 0.0

from __future__ import annotations

import math

import numpy as np
import pytest

from skinscreen.core.concentration import (
    MAX_ENTROPY,
    channel_histogram,
    concentration,
    shannon_entropy,
)


def test_single_value_is_fully_concentrated():
    channel = np.full((20, 20), 150, dtype=np.uint8)
    hist = channel_histogram(channel, np.ones((20, 20), dtype=bool))
    assert hist.peak_index == 150
    assert hist.value_at(150) == pytest.approx(1.0)
    assert shannon_entropy(hist) == 0.0
    assert concentration(hist) == pytest.approx(1.0)


def test_uniform_distribution_has_zero_concentration():
    channel = np.arange(256, dtype=np.uint8).reshape(16, 16)
    hist = channel_histogram(channel, np.ones((16, 16), dtype=bool))
    assert shannon_entropy(hist) == pytest.approx(MAX_ENTROPY)
    assert concentration(hist) == pytest.approx(0.0, abs=1e-9)


def test_two_equal_bins():
    channel = np.array([[10, 200]], dtype=np.uint8)
    hist = channel_histogram(channel, np.array([[255, 255]], dtype=np.uint8))
    assert shannon_entropy(hist) == pytest.approx(1.0)
    assert concentration(hist) == pytest.approx(1.0 - 1.0 / math.log2(256))


def test_only_masked_pixels_are_counted():
    channel = np.array([[10, 20, 30, 40]], dtype=np.uint8)
    mask = np.array([[True, False, False, True]])
    hist = channel_histogram(channel, mask)
    assert hist.value_at(10) == pytest.approx(0.5)
    assert hist.value_at(40) == pytest.approx(0.5)
    assert hist.value_at(20) == 0.0


def test_histogram_sums_to_one():
    rng = np.random.default_rng(3)
    channel = rng.integers(0, 256, size=(50, 50), dtype=np.uint8)
    mask = rng.random((50, 50)) > 0.3
    hist = channel_histogram(channel, mask)
    assert len(hist.bins) == 256
    assert hist.total == pytest.approx(1.0)
    assert 0.0 <= concentration(hist) <= 1.0


def test_empty_mask_gives_empty_histogram():
    channel = np.full((8, 8), 99, dtype=np.uint8)
    hist = channel_histogram(channel, np.zeros((8, 8), dtype=bool))
    assert hist.is_empty
    assert hist.total == 0.0
    assert concentration(hist) == 0.0


def test_mask_size_mismatch():
    with pytest.raises(ValueError):
        channel_histogram(np.zeros((4, 4), dtype=np.uint8), np.ones((4, 5), dtype=bool))

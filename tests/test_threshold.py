"""
Tests for global and locally adaptive thresholding.
"""
import numpy as np
import pytest

from microtrack.core.models import BLACK, WHITE
from microtrack.core.threshold import blur, local_average, posterize, posterize_with_averaging
from microtrack.core.volume import VolumeBuffer


def _brute_force_average(frame, diameter):
    height, width = frame.shape
    out = np.zeros_like(frame, dtype=np.float64)
    for y in range(height):
        for x in range(width):
            top, bottom = max(y - diameter, 0), min(y + diameter, height - 1)
            left, right = max(x - diameter, 0), min(x + diameter, width - 1)
            window = frame[top:bottom + 1, left:right + 1]
            out[y, x] = window.sum() / ((bottom - top + 1) * (right - left + 1))
    return out


def test_posterize_binarizes():
    vol = VolumeBuffer(np.array([[[0.0, 100.0, 101.0, 65535.0]]]))
    posterize(vol, 100.0)
    assert vol.data.tolist() == [[[BLACK, BLACK, WHITE, WHITE]]]


@pytest.mark.parametrize("threshold", [-1.0, 65536.0, 70000.0])
def test_posterize_out_of_range_threshold_is_identity(threshold):
    data = np.array([[[0.0, 123.0, 40000.0]]])
    vol = VolumeBuffer(data.copy())
    posterize(vol, threshold)
    assert np.array_equal(vol.data, data)


def test_posterize_is_idempotent():
    rng = np.random.default_rng(1)
    vol = VolumeBuffer(rng.integers(0, 65536, size=(3, 8, 8)).astype(np.float64))
    posterize(vol, 30000.0)
    once = vol.snapshot_volume()
    posterize(vol, 30000.0)
    assert np.array_equal(vol.data, once)


def test_posterize_value_above_white_does_not_overflow():
    vol = VolumeBuffer(np.array([[[70000.0]]]))
    posterize(vol, 15000.0)
    assert vol.get(0, 0, 0) == WHITE


@pytest.mark.parametrize("diameter", [0, 1, 2, 3, 12])
def test_local_average_matches_clamped_window(diameter):
    frame = np.random.default_rng(diameter).integers(0, 65536, size=(7, 9)).astype(np.float64)
    assert np.array_equal(local_average(frame, diameter), _brute_force_average(frame, diameter))


def test_local_average_divides_by_in_bounds_count():
    frame = np.full((4, 5), 9.0)
    assert np.all(local_average(frame, 2) == 9.0)


def test_local_average_rejects_negative_diameter():
    with pytest.raises(ValueError):
        local_average(np.zeros((2, 2)), -1)


def test_adaptive_threshold_single_bright_pixel():
    data = np.zeros((1, 3, 3))
    data[0, 1, 1] = 900.0

    vol = VolumeBuffer(data.copy())
    posterize_with_averaging(vol, diameter=1)
    expected = np.zeros((1, 3, 3))
    expected[0, 1, 1] = WHITE
    assert np.array_equal(vol.data, expected)


def test_adaptive_threshold_margin_requires_clear_excess():
    data = np.zeros((1, 3, 3))
    data[0, 1, 1] = 900.0

    vol = VolumeBuffer(data)
    # local average at the center is 100; 900 does not exceed 100 + 1024
    posterize_with_averaging(vol, diameter=1, margin=1024.0)
    assert np.all(vol.data == BLACK)


def test_adaptive_threshold_has_no_z_component():
    data = np.zeros((2, 3, 3))
    data[0, 1, 1] = 900.0
    data[1] = 5000.0

    vol = VolumeBuffer(data)
    posterize_with_averaging(vol, diameter=1)
    assert vol.get(0, 1, 1) == WHITE
    # a flat frame never exceeds its own average
    assert np.all(vol.data[1] == BLACK)


def test_blur_keeps_flat_frames():
    vol = VolumeBuffer(np.full((2, 4, 4), 300.0))
    blur(vol, 3)
    assert np.all(vol.data == 300.0)


def test_blur_averages_clamped_window():
    frame = np.arange(12, dtype=np.float64).reshape(3, 4)
    vol = VolumeBuffer(frame[np.newaxis].copy())
    blur(vol, 1)
    assert np.array_equal(vol.data[0], _brute_force_average(frame, 1))

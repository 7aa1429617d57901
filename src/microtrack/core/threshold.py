"""
microtrack.core.threshold

Binarization of grayscale volumes:
- global cutoff (posterize)
- locally adaptive cutoff against a clamped box average
"""

from __future__ import annotations

import logging

import numpy as np

from .models import BLACK, WHITE
from .volume import VolumeBuffer

logger = logging.getLogger(__name__)


def posterize(volume: VolumeBuffer, threshold: float) -> VolumeBuffer:
    """
    Binarize with a fixed global cutoff: WHITE if v > threshold else BLACK.

    A threshold outside [BLACK, WHITE] leaves the volume untouched. Samples
    above WHITE are compared as-is; nothing is clamped beforehand.
    """
    if threshold < BLACK or threshold > WHITE:
        logger.debug(
            "Threshold %s outside [%s, %s]; posterize is a no-op",
            threshold, BLACK, WHITE,
        )
        return volume

    snapshot = volume.snapshot_volume()
    volume.replace(np.where(snapshot > threshold, WHITE, BLACK))
    return volume


def local_average(frame: np.ndarray, diameter: int) -> np.ndarray:
    """
    Box average of a 2-D frame over a window clamped to the frame bounds.

    Parameters
    ----------
    frame:
        2D array (Y, X).
    diameter:
        Half-width of the window. Each output sample averages
        [y - diameter, y + diameter] x [x - diameter, x + diameter]
        intersected with the frame.

    Returns
    -------
    np.ndarray
        float64 array (Y, X). Near the edges the window shrinks and the
        divisor is the number of samples actually inside the frame.

    Notes
    -----
    Sums come from a summed-area table, so integer-valued frames are
    averaged without accumulated rounding.
    """
    if diameter < 0:
        raise ValueError(f"diameter must be >= 0, got {diameter}")
    frame = np.asarray(frame, dtype=np.float64)
    if frame.ndim != 2:
        raise ValueError(f"local_average expects a 2D frame, got shape {frame.shape}")

    height, width = frame.shape
    sat = np.zeros((height + 1, width + 1), dtype=np.float64)
    sat[1:, 1:] = frame.cumsum(axis=0).cumsum(axis=1)

    ys = np.arange(height)
    xs = np.arange(width)
    top = np.maximum(ys - diameter, 0)[:, None]
    bottom = (np.minimum(ys + diameter, height - 1) + 1)[:, None]
    left = np.maximum(xs - diameter, 0)[None, :]
    right = (np.minimum(xs + diameter, width - 1) + 1)[None, :]

    sums = sat[bottom, right] - sat[top, right] - sat[bottom, left] + sat[top, left]
    counts = (bottom - top) * (right - left)
    return sums / counts


def posterize_with_averaging(
    volume: VolumeBuffer,
    diameter: int,
    margin: float = 0.0,
) -> VolumeBuffer:
    """
    Adaptive threshold: WHITE if v > local_average + margin else BLACK.

    Averages are taken per frame (no Z component) from a snapshot of the
    input, so every output sample depends only on the original intensities.
    """
    snapshot = volume.snapshot_volume()
    averaged = np.empty_like(snapshot)
    for z in range(volume.depth):
        logger.debug("Averaging frame %d/%d", z + 1, volume.depth)
        averaged[z] = local_average(snapshot[z], diameter)

    volume.replace(np.where(snapshot > averaged + margin, WHITE, BLACK))
    return volume


def blur(volume: VolumeBuffer, diameter: int) -> VolumeBuffer:
    """Replace every frame with its clamped box average."""
    snapshot = volume.snapshot_volume()
    blurred = np.empty_like(snapshot)
    for z in range(volume.depth):
        blurred[z] = local_average(snapshot[z], diameter)
    volume.replace(blurred)
    return volume

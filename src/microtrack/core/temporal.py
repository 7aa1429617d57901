"""
microtrack.core.temporal

Noise removal inside frames and consistency filtering along the Z axis.

The first and last frames are never modified by the Z-axis passes; for
volumes with fewer than three frames those passes do nothing.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy import ndimage

from .models import BLACK, WHITE
from .volume import VolumeBuffer

logger = logging.getLogger(__name__)

_CARDINAL = np.array(
    [[[0, 1, 0],
      [1, 0, 1],
      [0, 1, 0]]],
    dtype=np.int8,
)


def clean_noise_per_frame(volume: VolumeBuffer) -> VolumeBuffer:
    """
    Reset near-isolated WHITE pixels inside each frame.

    A WHITE sample turns BLACK when more than 2 of its 4 cardinal neighbors
    are BLACK. Neighbors outside the frame count as BLACK. Neighbor counts
    come from the input snapshot, so resets do not cascade within the pass.
    """
    snapshot = volume.snapshot_volume()
    black = (snapshot == BLACK).astype(np.int8)

    # outside the frame counts as BLACK
    black_neighbors = ndimage.correlate(
        black, _CARDINAL, mode="constant", cval=1
    )
    isolated = (snapshot == WHITE) & (black_neighbors > 2)

    out = snapshot.copy()
    out[isolated] = BLACK
    logger.debug("Per-frame cleanup reset %d samples", int(isolated.sum()))
    volume.replace(out)
    return volume


def _check_rounds(rounds: int) -> None:
    if rounds < 0:
        raise ValueError(f"rounds must be >= 0, got {rounds}")


def clean_noise_across_frames(volume: VolumeBuffer, rounds: int = 1) -> VolumeBuffer:
    """
    Drop WHITE samples that lack support from neighboring frames.

    For an interior frame z (0 < z < depth - 1) a sample is forced BLACK
    when:
      - z == 1 and frame z + 1 is BLACK there, or
      - z == depth - 2 and frame z - 1 is BLACK there, or
      - both frame z - 1 and frame z + 1 are BLACK there.
    Frames 0 and depth - 1 are copied through unchanged.
    """
    _check_rounds(rounds)
    depth = volume.depth
    if depth <= 2:
        logger.debug("Depth %d has no interior frames; cross-frame cleanup skipped", depth)
        return volume

    z_index = np.arange(1, depth - 1)[:, None, None]
    for r in range(rounds):
        snapshot = volume.snapshot_volume()
        black = snapshot == BLACK
        prev_black = black[:-2]
        next_black = black[2:]

        unsupported = (
            ((z_index == 1) & next_black)
            | ((z_index == depth - 2) & prev_black)
            | (prev_black & next_black)
        )

        out = snapshot.copy()
        out[1:-1][unsupported] = BLACK
        logger.debug(
            "Cross-frame cleanup round %d/%d reset %d samples",
            r + 1, rounds, int(np.count_nonzero(unsupported & ~black[1:-1])),
        )
        volume.replace(out)
    return volume


def connect_component(volume: VolumeBuffer, rounds: int = 1) -> VolumeBuffer:
    """
    Bridge single-frame gaps along Z.

    An interior sample becomes WHITE when the frames directly before and
    after are both WHITE there, whatever its own value. Frames 0 and
    depth - 1 are copied through unchanged.
    """
    _check_rounds(rounds)
    depth = volume.depth
    if depth <= 2:
        logger.debug("Depth %d has no interior frames; bridging skipped", depth)
        return volume

    for r in range(rounds):
        snapshot = volume.snapshot_volume()
        white = snapshot == WHITE
        bridged = white[:-2] & white[2:]

        out = snapshot.copy()
        out[1:-1][bridged] = WHITE
        logger.debug(
            "Bridging round %d/%d filled %d samples",
            r + 1, rounds, int(np.count_nonzero(bridged & ~white[1:-1])),
        )
        volume.replace(out)
    return volume

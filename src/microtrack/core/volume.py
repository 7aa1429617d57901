from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from .models import BLACK, WHITE

logger = logging.getLogger(__name__)


class VolumeBuffer:
    """
    Dense 3-D intensity buffer indexed (z, y, x).

    Dimensions are fixed at creation. Filters never mutate `data` while
    reading it: each round builds a new array from a snapshot and commits it
    with `replace()`.

    Attributes
    ----------
    data : np.ndarray
        float64 array with shape (depth, height, width).
    """

    def __init__(self, data: np.ndarray) -> None:
        data = np.asarray(data, dtype=np.float64)
        if data.ndim != 3:
            raise ValueError(
                f"VolumeBuffer data must be 3D [Z, Y, X], got shape {data.shape}"
            )
        if 0 in data.shape:
            raise ValueError(f"VolumeBuffer dimensions must be > 0, got {data.shape}")
        self.data = data

    @classmethod
    def create(cls, width: int, height: int, depth: int) -> "VolumeBuffer":
        """Allocate a zero-initialized (BLACK) buffer."""
        if width <= 0 or height <= 0 or depth <= 0:
            raise ValueError(
                f"dimensions must be > 0, got width={width}, "
                f"height={height}, depth={depth}"
            )
        return cls(np.full((depth, height, width), BLACK, dtype=np.float64))

    # --- Dimensions ---

    @property
    def width(self) -> int:
        return int(self.data.shape[2])

    @property
    def height(self) -> int:
        return int(self.data.shape[1])

    @property
    def depth(self) -> int:
        return int(self.data.shape[0])

    @property
    def shape(self) -> Tuple[int, int, int]:
        return (self.depth, self.height, self.width)

    # --- Sample access ---

    def _check_bounds(self, z: int, y: int, x: int) -> None:
        if not (0 <= z < self.depth and 0 <= y < self.height and 0 <= x < self.width):
            raise IndexError(
                f"coordinate (z={z}, y={y}, x={x}) outside volume "
                f"of shape (Z, Y, X) = {self.shape}"
            )

    def get(self, z: int, y: int, x: int) -> float:
        self._check_bounds(z, y, x)
        return float(self.data[z, y, x])

    def set(self, z: int, y: int, x: int, value: float) -> None:
        self._check_bounds(z, y, x)
        self.data[z, y, x] = value

    # --- Double buffering ---

    def snapshot_frame(self, z: int) -> np.ndarray:
        """Independent copy of frame `z`, shape (Y, X)."""
        if not 0 <= z < self.depth:
            raise IndexError(f"frame {z} outside [0, {self.depth})")
        return self.data[z].copy()

    def snapshot_volume(self) -> np.ndarray:
        """Independent copy of the whole buffer, shape (Z, Y, X)."""
        return self.data.copy()

    def replace(self, data: np.ndarray) -> None:
        """
        Commit a round's output as the new volume state.

        The output must keep the volume's dimensions.
        """
        data = np.asarray(data, dtype=np.float64)
        if data.shape != self.data.shape:
            raise ValueError(
                f"replacement shape {data.shape} does not match volume "
                f"shape {self.data.shape}"
            )
        self.data = data

    # --- Binary helpers ---

    def invert(self) -> None:
        """Swap BLACK and WHITE: v -> WHITE - v for every sample."""
        self.replace(WHITE - self.data)

    def is_binary(self) -> bool:
        """True if every sample is BLACK or WHITE."""
        return bool(np.all((self.data == BLACK) | (self.data == WHITE)))

    def copy(self) -> "VolumeBuffer":
        return VolumeBuffer(self.snapshot_volume())

    def __repr__(self) -> str:
        return (
            f"VolumeBuffer(width={self.width}, height={self.height}, "
            f"depth={self.depth})"
        )


# ---------------------------------------------------------------------------
# External container mapping
# ---------------------------------------------------------------------------

def unpack(external: np.ndarray) -> VolumeBuffer:
    """
    Copy an external image container into a VolumeBuffer.

    Parameters
    ----------
    external:
        Array indexed (x, y, z): axis 0 is width, axis 1 height and
        axis 2 depth. A 2-D (x, y) array is read as a single frame.

    Returns
    -------
    VolumeBuffer
        Buffer indexed (z, y, x) holding a copy of every sample.
    """
    arr = np.asarray(external)
    if arr.ndim == 2:
        arr = arr[:, :, np.newaxis]
    if arr.ndim != 3:
        raise ValueError(
            f"unpack expects an (X, Y, Z) or (X, Y) container, got shape {arr.shape}"
        )
    # (X, Y, Z) -> (Z, Y, X); astype copies so the caller's array is never aliased
    data = np.transpose(arr, (2, 1, 0)).astype(np.float64, copy=True)
    volume = VolumeBuffer(data)
    logger.debug("Unpacked container %s into %r", arr.shape, volume)
    return volume


def pack(volume: VolumeBuffer) -> np.ndarray:
    """
    Write a VolumeBuffer into a freshly allocated (x, y, z) container.
    """
    packed = np.empty((volume.width, volume.height, volume.depth), dtype=np.float64)
    packed[...] = np.transpose(volume.data, (2, 1, 0))
    return packed

"""
microtrack.core.morphology

Binary morphology on (Z, Y, X) volumes, frame by frame, driven by
arbitrary structuring-element offset lists.

Erosion is black propagation: every BLACK sample blackens its
structuring-element neighbors. Dilation reuses erosion on the inverted
volume so both share the same edge handling.
"""

from __future__ import annotations

import logging
from typing import Sequence, Union

import numpy as np
from scipy import ndimage
from skimage import morphology

from .models import BLACK, CROSS, SQUARE, StructuringElement
from .volume import VolumeBuffer

logger = logging.getLogger(__name__)

ElementLike = Union[StructuringElement, str, Sequence[Sequence[int]]]

_NAMED_ELEMENTS = {
    SQUARE.name: SQUARE,
    CROSS.name: CROSS,
}


# ---------------------------------------------------------------------------
# Structuring elements
# ---------------------------------------------------------------------------

def element_from_footprint(footprint: np.ndarray, name: str = "custom") -> StructuringElement:
    """
    Build a StructuringElement from a 2-D boolean footprint.

    The footprint must have odd side lengths; its central pixel is the
    origin and is left out of the offset list.
    """
    fp = np.asarray(footprint).astype(bool)
    if fp.ndim != 2:
        raise ValueError(f"footprint must be 2D, got shape {fp.shape}")
    if fp.shape[0] % 2 == 0 or fp.shape[1] % 2 == 0:
        raise ValueError(f"footprint must have odd side lengths, got shape {fp.shape}")

    cy, cx = fp.shape[0] // 2, fp.shape[1] // 2
    offsets = tuple(
        (int(r - cy), int(c - cx))
        for r, c in np.argwhere(fp)
        if (r, c) != (cy, cx)
    )
    return StructuringElement(offsets=offsets, name=name)


def disk_element(radius: int) -> StructuringElement:
    """Disk-shaped element of the given radius (scikit-image footprint)."""
    if radius < 1:
        raise ValueError(f"disk radius must be >= 1, got {radius}")
    return element_from_footprint(morphology.disk(radius), name=f"disk:{radius}")


def resolve_element(element: ElementLike) -> StructuringElement:
    """
    Accept a StructuringElement, a name ('square', 'cross', 'disk:<r>')
    or a list of [dy, dx] offset pairs as written in YAML configs.
    """
    if isinstance(element, StructuringElement):
        return element

    if isinstance(element, (list, tuple)):
        offsets = []
        for pair in element:
            if (
                not isinstance(pair, (list, tuple))
                or len(pair) != 2
                or not all(isinstance(v, int) and not isinstance(v, bool) for v in pair)
            ):
                raise ValueError(
                    f"Structuring element offsets must be [dy, dx] integer pairs, got {pair!r}"
                )
            offsets.append((pair[0], pair[1]))
        return StructuringElement(offsets=tuple(offsets))

    key = str(element).strip().lower()
    if key in _NAMED_ELEMENTS:
        return _NAMED_ELEMENTS[key]
    if key.startswith("disk:"):
        try:
            radius = int(key.split(":", 1)[1])
        except ValueError as exc:
            raise ValueError(f"Could not parse disk radius from {element!r}") from exc
        return disk_element(radius)
    raise ValueError(
        f"Unknown structuring element {element!r}; "
        f"expected 'square', 'cross' or 'disk:<radius>'"
    )


# ---------------------------------------------------------------------------
# Erosion / dilation
# ---------------------------------------------------------------------------

def _propagation_structure(element: StructuringElement) -> np.ndarray:
    """
    (1, 2r+1, 2r+1) structure for ndimage: the center plus every offset.

    The leading axis of length 1 keeps frames independent.
    """
    reach = max((max(abs(dy), abs(dx)) for dy, dx in element), default=0)
    structure = np.zeros((1, 2 * reach + 1, 2 * reach + 1), dtype=bool)
    structure[0, reach, reach] = True
    for dy, dx in element:
        structure[0, reach + dy, reach + dx] = True
    return structure


def _check_rounds(rounds: int) -> None:
    if rounds < 0:
        raise ValueError(f"rounds must be >= 0, got {rounds}")


def erode(volume: VolumeBuffer, element: ElementLike, rounds: int = 1) -> VolumeBuffer:
    """
    Shrink the WHITE region by propagating BLACK to element neighbors.

    Black propagation is a binary dilation of the BLACK samples; each
    iteration reads the previous one's output, and neighbors outside the
    frame are dropped. Frames never interact.
    """
    _check_rounds(rounds)
    el = resolve_element(element)
    # ndimage treats iterations=0 as "until stable"
    if rounds == 0 or len(el) == 0:
        return volume

    logger.debug("Erode %d round(s) with %s", rounds, el.name)
    snapshot = volume.snapshot_volume()
    reached = ndimage.binary_dilation(
        snapshot == BLACK,
        structure=_propagation_structure(el),
        iterations=rounds,
        border_value=0,
    )
    out = snapshot.copy()
    out[reached] = BLACK
    volume.replace(out)
    return volume


def dilate(volume: VolumeBuffer, element: ElementLike, rounds: int = 1) -> VolumeBuffer:
    """Grow the WHITE region: invert, erode, invert back."""
    _check_rounds(rounds)
    volume.invert()
    erode(volume, element, rounds)
    volume.invert()
    return volume


def open(volume: VolumeBuffer, element: ElementLike, rounds: int = 1) -> VolumeBuffer:  # noqa: A001
    """Erode then dilate: drops WHITE specks smaller than the element."""
    erode(volume, element, rounds)
    dilate(volume, element, rounds)
    return volume


def close(volume: VolumeBuffer, element: ElementLike, rounds: int = 1) -> VolumeBuffer:
    """Dilate then erode: fills BLACK gaps smaller than the element."""
    dilate(volume, element, rounds)
    erode(volume, element, rounds)
    return volume

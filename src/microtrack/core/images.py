"""
microtrack.core.images

Reading and writing external stack containers.

Every loader returns an (X, Y, Z) array, the layout `volume.unpack`
expects; every writer takes one. Supported containers:
- multi-page TIFF (or any single image Pillow reads)
- directory of slice images, ordered by file name
- NRRD (.nrrd / .nhdr) through pynrrd
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import numpy as np
from PIL import Image, ImageSequence

from .models import BLACK, WHITE

logger = logging.getLogger(__name__)

# Allowed extensions for slice images
_IMAGE_EXTS = [".bmp", ".jpeg", ".jpg", ".png", ".tif", ".tiff"]
_NRRD_EXTS = [".nrrd", ".nhdr"]
_TIFF_EXTS = [".tif", ".tiff"]


# -------------------------------------------------------------------------
# Slice discovery
# -------------------------------------------------------------------------
def list_slice_files(folder: Path) -> List[Path]:
    """
    Sorted slice images in `folder`.

    Raises a clear error if the folder is missing or holds no images.
    """
    folder = Path(folder)
    if not folder.is_dir():
        raise FileNotFoundError(f"Directory does not exist: {folder}")

    paths = sorted(
        p for p in folder.iterdir()
        if p.is_file() and p.suffix.lower() in _IMAGE_EXTS
    )
    if not paths:
        raise RuntimeError(
            f"No slice image files found in folder:\n{folder}\n"
            f"Expected extensions: {_IMAGE_EXTS}"
        )
    return paths


# -------------------------------------------------------------------------
# Frame conversion
# -------------------------------------------------------------------------
def _frame_to_intensity(im: Image.Image) -> np.ndarray:
    """
    Convert one Pillow frame to a 2D (Y, X) intensity array.

    Color frames use the maximum channel, so colored markers keep their
    brightest value instead of being dimmed by a luminance mix.
    """
    if im.mode in ("P", "PA", "LA", "RGBA", "CMYK", "YCbCr"):
        im = im.convert("RGB")
    arr = np.array(im)
    if arr.ndim == 3:
        arr = arr.max(axis=-1)
    return arr.astype(np.float64)


def _frames_to_external(frames: List[np.ndarray], source: Path) -> np.ndarray:
    shapes = {f.shape for f in frames}
    if len(shapes) != 1:
        raise ValueError(f"Inconsistent frame shapes in {source}: {sorted(shapes)}")
    stack = np.stack(frames, axis=0)  # (Z, Y, X)
    return np.transpose(stack, (2, 1, 0))  # (X, Y, Z)


def _to_uint16(external: np.ndarray) -> np.ndarray:
    return np.clip(external, BLACK, WHITE).astype(np.uint16)


# -------------------------------------------------------------------------
# Loading
# -------------------------------------------------------------------------
def load_image_stack(path: Path) -> np.ndarray:
    """Every page of a (multi-page) image file as an (X, Y, Z) array."""
    path = Path(path)
    frames: List[np.ndarray] = []
    try:
        with Image.open(path) as im:
            for page in ImageSequence.Iterator(im):
                frames.append(_frame_to_intensity(page))
    except OSError as exc:  # includes PIL.UnidentifiedImageError
        raise RuntimeError(f"Cannot read image stack {path}: {exc}") from exc
    return _frames_to_external(frames, path)


def load_slice_directory(folder: Path) -> np.ndarray:
    """Slices of a directory, one frame per file, as an (X, Y, Z) array."""
    files = list_slice_files(folder)
    frames: List[np.ndarray] = []
    for p in files:
        try:
            with Image.open(p) as im:
                frames.append(_frame_to_intensity(im))
        except OSError as exc:
            raise RuntimeError(f"Cannot read slice image {p}: {exc}") from exc
    logger.debug("Loaded %d slices from %s", len(frames), folder)
    return _frames_to_external(frames, Path(folder))


def load_nrrd(path: Path) -> np.ndarray:
    """NRRD data as stored: pynrrd already yields (X, Y, Z) order."""
    import nrrd

    data, _header = nrrd.read(str(path))
    data = np.asarray(data, dtype=np.float64)
    if data.ndim == 2:
        data = data[:, :, np.newaxis]
    if data.ndim != 3:
        raise ValueError(f"Expected a 2D or 3D NRRD volume, got shape {data.shape}")
    return data


def load_stack(path: Path) -> np.ndarray:
    """
    Load any supported container as an (X, Y, Z) float64 array.

    Raises
    ------
    FileNotFoundError
        If `path` does not exist.
    RuntimeError
        If a directory contains no slice images, or an image file cannot
        be decoded.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input does not exist: {path}")

    if path.is_dir():
        return load_slice_directory(path)
    if path.suffix.lower() in _NRRD_EXTS:
        return load_nrrd(path)
    return load_image_stack(path)


# -------------------------------------------------------------------------
# Saving
# -------------------------------------------------------------------------
def save_nrrd(path: Path, external: np.ndarray) -> None:
    """Write an (X, Y, Z) array as a gzip-encoded uint16 NRRD."""
    import nrrd

    header = {"encoding": "gzip" if Path(path).suffix.lower() == ".nrrd" else "raw"}
    nrrd.write(str(path), _to_uint16(external), header=header)


def save_tiff_stack(path: Path, external: np.ndarray) -> None:
    """Write an (X, Y, Z) array as a multi-page 16-bit TIFF."""
    data = _to_uint16(external)
    pages = [Image.fromarray(np.ascontiguousarray(data[:, :, z].T)) for z in range(data.shape[2])]
    pages[0].save(path, save_all=True, append_images=pages[1:])


def save_slice_directory(folder: Path, external: np.ndarray, prefix: str = "slice") -> List[Path]:
    """
    Write one 16-bit PNG per frame, named "{prefix}_{z:05d}.png".

    Slices left over from an earlier save with the same prefix are removed
    first, so the directory always loads back as exactly this stack.
    """
    folder = Path(folder)
    folder.mkdir(parents=True, exist_ok=True)
    data = _to_uint16(external)

    stale = sorted(folder.glob(f"{prefix}_[0-9]*.png"))
    for old in stale:
        old.unlink()
    if stale:
        logger.debug("Removed %d stale slices from %s", len(stale), folder)

    written: List[Path] = []
    for z in range(data.shape[2]):
        out_path = folder / f"{prefix}_{z:05d}.png"
        Image.fromarray(np.ascontiguousarray(data[:, :, z].T)).save(out_path)
        written.append(out_path)
    return written


def save_stack(path: Path, external: np.ndarray) -> None:
    """
    Save an (X, Y, Z) array, choosing the container from `path`:
    NRRD and TIFF by suffix, otherwise a directory of PNG slices.
    """
    path = Path(path)
    external = np.asarray(external)
    if external.ndim != 3:
        raise ValueError(f"save_stack expects an (X, Y, Z) array, got shape {external.shape}")

    suffix = path.suffix.lower()
    if suffix in _NRRD_EXTS:
        path.parent.mkdir(parents=True, exist_ok=True)
        save_nrrd(path, external)
    elif suffix in _TIFF_EXTS:
        path.parent.mkdir(parents=True, exist_ok=True)
        save_tiff_stack(path, external)
    else:
        save_slice_directory(path, external)

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

# ---------------------------------------------------------------------------
# Intensity levels
# ---------------------------------------------------------------------------

BLACK: float = 0.0       # background level of a binary volume
WHITE: float = 65535.0   # foreground level, 16-bit unsigned maximum

Offset = Tuple[int, int]  # (dy, dx) relative to the center pixel


# ---------------------------------------------------------------------------
# Structuring elements
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StructuringElement:
    """
    A 2-D neighborhood given as an ordered list of (dy, dx) offsets.

    The center pixel is implicit; it does not need to be listed. Elements
    are immutable and shared by reference across calls.
    """

    offsets: Tuple[Offset, ...]
    """Ordered (dy, dx) integer offsets."""

    name: str = "custom"
    """Short label used in configs and progress messages."""

    def __post_init__(self) -> None:
        normalized = tuple((int(dy), int(dx)) for dy, dx in self.offsets)
        object.__setattr__(self, "offsets", normalized)

    def __len__(self) -> int:
        return len(self.offsets)

    def __iter__(self):
        return iter(self.offsets)


SQUARE = StructuringElement(
    offsets=((-1, -1), (-1, 0), (-1, 1), (0, 1), (1, 1), (1, 0), (1, -1), (0, -1)),
    name="square",
)
"""8-connected neighborhood."""

CROSS = StructuringElement(
    offsets=((0, 1), (0, -1), (1, 0), (-1, 0)),
    name="cross",
)
"""4-connected (axis) neighborhood."""


# ---------------------------------------------------------------------------
# Pipeline configuration
# ---------------------------------------------------------------------------

PRESETS = ("canonical", "basic", "custom")


@dataclass
class PipelineStep:
    """
    One stage of the segmentation pipeline.

    `op` names a filter (see core.pipeline.OPERATIONS); `params` holds its
    keyword arguments. Structuring elements may be given by name
    ("square", "cross", "disk:<radius>") so steps stay YAML friendly.
    """

    op: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SegmentationConfig:
    """
    Parameters of a segmentation run.

    The defaults reproduce the most complete pipeline: adaptive threshold,
    three rounds of per-frame plus cross-frame cleanup, a cross dilation and
    two bridging rounds. `margin` and the round counts are tunables, not
    fixed constants.
    """

    name: str = "microtrack"
    """Human-readable run name."""

    preset: str = "canonical"
    """
    Which step list to run:
      - 'canonical': threshold, repeated cleanup, dilation, bridging
      - 'basic': threshold (margin ignored, always 0), opening, dilation
      - 'custom': the explicit `steps` list
    """

    # --- Thresholding ---

    diameter: int = 10
    """Half-width of the local averaging window, in pixels."""

    margin: float = 1024.0
    """
    Additive bias over the local average a sample must exceed to be
    foreground. 0 gives the plain adaptive threshold.
    """

    # --- Cleanup ---

    cleanup_repeats: int = 3
    """How many times the per-frame / cross-frame cleanup pair runs."""

    across_frame_rounds: int = 1
    """Rounds of cross-frame cleanup per repeat."""

    # --- Morphology ---

    dilate_element: str = "cross"
    """Structuring element for the final dilation."""

    dilate_rounds: int = 1
    """Rounds of the final dilation."""

    open_element: str = "square"
    """Structuring element for the opening of the 'basic' preset."""

    open_rounds: int = 1
    """Rounds of the opening of the 'basic' preset."""

    # --- Bridging ---

    bridge_rounds: int = 2
    """Rounds of Z-axis gap bridging."""

    steps: List[PipelineStep] = field(default_factory=list)
    """Explicit steps, used only when preset == 'custom'."""

    def __post_init__(self) -> None:
        if self.preset not in PRESETS:
            raise ValueError(
                f"preset must be one of {PRESETS}, got {self.preset!r}"
            )
        if self.diameter < 0:
            raise ValueError(f"diameter must be >= 0, got {self.diameter}")
        for attr in (
            "cleanup_repeats",
            "across_frame_rounds",
            "dilate_rounds",
            "open_rounds",
            "bridge_rounds",
        ):
            value = getattr(self, attr)
            if value < 0:
                raise ValueError(f"{attr} must be >= 0, got {value}")
        if self.preset == "custom" and not self.steps:
            raise ValueError("preset 'custom' requires a non-empty steps list")

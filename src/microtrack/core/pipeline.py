from __future__ import annotations

import inspect
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from .models import PipelineStep, SegmentationConfig
from .volume import VolumeBuffer, pack, unpack
from . import images
from . import morphology
from . import temporal
from . import threshold

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]

OPERATIONS: Dict[str, Callable[..., VolumeBuffer]] = {
    "posterize": threshold.posterize,
    "posterize_with_averaging": threshold.posterize_with_averaging,
    "blur": threshold.blur,
    "erode": morphology.erode,
    "dilate": morphology.dilate,
    "open": morphology.open,
    "close": morphology.close,
    "clean_noise_per_frame": temporal.clean_noise_per_frame,
    "clean_noise_across_frames": temporal.clean_noise_across_frames,
    "connect_component": temporal.connect_component,
}


# ---------------------------------------------------------------------------
# Step lists
# ---------------------------------------------------------------------------

def canonical_steps(cfg: SegmentationConfig) -> List[PipelineStep]:
    """
    Full pipeline:
      1. adaptive threshold (diameter, margin)
      2. `cleanup_repeats` x [per-frame cleanup, cross-frame cleanup]
      3. dilation with `dilate_element`
      4. Z-axis bridging
    """
    steps = [
        PipelineStep(
            "posterize_with_averaging",
            {"diameter": cfg.diameter, "margin": cfg.margin},
        )
    ]
    for _ in range(cfg.cleanup_repeats):
        steps.append(PipelineStep("clean_noise_per_frame"))
        steps.append(
            PipelineStep("clean_noise_across_frames", {"rounds": cfg.across_frame_rounds})
        )
    steps.append(
        PipelineStep("dilate", {"element": cfg.dilate_element, "rounds": cfg.dilate_rounds})
    )
    steps.append(PipelineStep("connect_component", {"rounds": cfg.bridge_rounds}))
    return steps


def basic_steps(cfg: SegmentationConfig) -> List[PipelineStep]:
    """Plain adaptive threshold, opening and dilation; no Z-axis passes."""
    return [
        PipelineStep("posterize_with_averaging", {"diameter": cfg.diameter, "margin": 0.0}),
        PipelineStep("open", {"element": cfg.open_element, "rounds": cfg.open_rounds}),
        PipelineStep("dilate", {"element": cfg.dilate_element, "rounds": cfg.dilate_rounds}),
    ]


def build_steps(cfg: SegmentationConfig) -> List[PipelineStep]:
    """Step list selected by `cfg.preset`."""
    if cfg.preset == "canonical":
        return canonical_steps(cfg)
    if cfg.preset == "basic":
        return basic_steps(cfg)
    return list(cfg.steps)


def validate_steps(steps: Sequence[PipelineStep]) -> None:
    """
    Raise ValueError if any step names an unknown operation or passes
    parameters its operation does not accept.
    """
    for idx, step in enumerate(steps):
        if step.op not in OPERATIONS:
            raise ValueError(
                f"Step {idx} has unknown op {step.op!r}; "
                f"expected one of {sorted(OPERATIONS)}"
            )
        try:
            inspect.signature(OPERATIONS[step.op]).bind(None, **step.params)
        except TypeError as exc:
            raise ValueError(f"Step {idx} ({step.op}): {exc}") from exc


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

def run_pipeline(
    volume: VolumeBuffer,
    steps: Sequence[PipelineStep],
    progress_cb: Optional[ProgressCallback] = None,
) -> VolumeBuffer:
    """
    Run `steps` on `volume` strictly in order.

    progress_cb(stage, current, total) is called before each stage with
    current in [1, total], then once more as ("done", total, total).
    Exceptions raised by the callback propagate and abort the run.
    """
    validate_steps(steps)
    total = len(steps)

    for idx, step in enumerate(steps, start=1):
        if progress_cb is not None:
            progress_cb(step.op, idx, total)
        logger.info("Stage %d/%d: %s %s", idx, total, step.op, step.params or "")
        OPERATIONS[step.op](volume, **step.params)

    if progress_cb is not None:
        progress_cb("done", total, total)
    return volume


def segment_array(
    external: np.ndarray,
    cfg: SegmentationConfig,
    progress_cb: Optional[ProgressCallback] = None,
) -> np.ndarray:
    """
    Segment an (X, Y, Z) container and return the mask in the same layout.

    A 2-D (X, Y) input is segmented as a single frame and returned as a
    2-D (X, Y) mask.
    """
    volume = unpack(external)
    run_pipeline(volume, build_steps(cfg), progress_cb=progress_cb)
    mask = pack(volume)
    if np.ndim(external) == 2:
        return mask[:, :, 0]
    return mask


def segment_file(
    input_path: Path,
    output_path: Path,
    cfg: SegmentationConfig,
    progress_cb: Optional[ProgressCallback] = None,
) -> Path:
    """
    Load a stack, segment it and save the binary mask.

    Returns
    -------
    Path
        Where the mask was written.
    """
    input_path = Path(input_path)
    output_path = Path(output_path)

    external = images.load_stack(input_path)
    logger.info("Loaded %s with (X, Y, Z) shape %s", input_path, external.shape)

    mask = segment_array(external, cfg, progress_cb=progress_cb)
    images.save_stack(output_path, mask)
    logger.info("Saved mask to %s", output_path)
    return output_path

"""
Tests for step lists, pipeline execution and end-to-end segmentation.
"""
import numpy as np
import pytest

from microtrack.core.models import BLACK, WHITE, PipelineStep, SegmentationConfig
from microtrack.core.pipeline import (
    basic_steps,
    build_steps,
    canonical_steps,
    run_pipeline,
    segment_array,
    segment_file,
)
from microtrack.core import images
from microtrack.core.volume import VolumeBuffer


def _line_stack(line_width=1, width=20, height=20, depth=5):
    """(X, Y, Z) stack: flat 1000 background, bright vertical line around x=10."""
    external = np.full((width, height, depth), 1000.0)
    half = line_width // 2
    external[10 - half:10 + half + 1, :, :] = 10000.0
    return external


def test_canonical_step_order():
    ops = [s.op for s in canonical_steps(SegmentationConfig())]
    assert ops == [
        "posterize_with_averaging",
        "clean_noise_per_frame", "clean_noise_across_frames",
        "clean_noise_per_frame", "clean_noise_across_frames",
        "clean_noise_per_frame", "clean_noise_across_frames",
        "dilate",
        "connect_component",
    ]


def test_canonical_step_parameters():
    steps = canonical_steps(SegmentationConfig())
    assert steps[0].params == {"diameter": 10, "margin": 1024.0}
    assert steps[2].params == {"rounds": 1}
    assert steps[-2].params == {"element": "cross", "rounds": 1}
    assert steps[-1].params == {"rounds": 2}


def test_cleanup_repeats_is_tunable():
    steps = canonical_steps(SegmentationConfig(cleanup_repeats=1))
    assert [s.op for s in steps].count("clean_noise_per_frame") == 1


def test_basic_steps():
    steps = basic_steps(SegmentationConfig())
    assert [s.op for s in steps] == ["posterize_with_averaging", "open", "dilate"]
    assert steps[0].params["margin"] == 0.0
    assert steps[1].params == {"element": "square", "rounds": 1}


def test_build_steps_custom():
    custom = [PipelineStep("posterize", {"threshold": 5.0})]
    cfg = SegmentationConfig(preset="custom", steps=custom)
    assert build_steps(cfg) == custom


def test_config_validation():
    with pytest.raises(ValueError):
        SegmentationConfig(preset="fancy")
    with pytest.raises(ValueError):
        SegmentationConfig(preset="custom")
    with pytest.raises(ValueError):
        SegmentationConfig(bridge_rounds=-1)
    with pytest.raises(ValueError):
        SegmentationConfig(diameter=-2)


def test_unknown_op_rejected_before_running():
    data = np.full((1, 2, 2), 500.0)
    vol = VolumeBuffer(data.copy())
    steps = [PipelineStep("posterize", {"threshold": 100.0}), PipelineStep("sharpen")]
    with pytest.raises(ValueError):
        run_pipeline(vol, steps)
    assert np.array_equal(vol.data, data)


def test_bad_step_parameters_rejected_before_running():
    data = np.full((1, 2, 2), 500.0)
    vol = VolumeBuffer(data.copy())
    steps = [PipelineStep("posterize", {"threshold": 100.0}), PipelineStep("erode", {"radius": 2})]
    with pytest.raises(ValueError):
        run_pipeline(vol, steps)
    with pytest.raises(ValueError):
        run_pipeline(vol, [PipelineStep("posterize")])
    assert np.array_equal(vol.data, data)


def test_progress_callback_sequence():
    calls = []
    vol = VolumeBuffer(np.full((3, 4, 4), 500.0))
    steps = [
        PipelineStep("posterize", {"threshold": 100.0}),
        PipelineStep("erode", {"element": "square", "rounds": 1}),
    ]
    run_pipeline(vol, steps, progress_cb=lambda *args: calls.append(args))
    assert calls == [("posterize", 1, 2), ("erode", 2, 2), ("done", 2, 2)]


def test_progress_callback_can_abort():
    def cancel(stage, current, total):
        if current == 2:
            raise InterruptedError("cancelled")

    vol = VolumeBuffer(np.full((1, 2, 2), 500.0))
    steps = [PipelineStep("posterize", {"threshold": 100.0}), PipelineStep("clean_noise_per_frame")]
    with pytest.raises(InterruptedError):
        run_pipeline(vol, steps, progress_cb=cancel)
    # first stage committed, second never ran
    assert np.all(vol.data == WHITE)


def test_canonical_segments_thin_line():
    mask = segment_array(_line_stack(), SegmentationConfig())

    assert mask.shape == (20, 20, 5)
    assert np.all((mask == BLACK) | (mask == WHITE))
    # line survives cleanup and is widened by the cross dilation
    assert np.all(mask[9:12, 10, :] == WHITE)
    # background and frame corners stay black
    assert np.all(mask[0:5, :, :] == BLACK)
    assert np.all(mask[15:, :, :] == BLACK)


def test_canonical_cleanup_shortens_line_ends():
    mask = segment_array(_line_stack(), SegmentationConfig())
    # three per-frame cleanups trim 3 pixels per end, dilation adds one back
    assert np.all(mask[10, 0:2, :] == BLACK)
    assert np.all(mask[10, 2:18, :] == WHITE)
    assert np.all(mask[10, 18:, :] == BLACK)


def test_basic_preset_keeps_wide_line():
    cfg = SegmentationConfig(preset="basic")
    mask = segment_array(_line_stack(line_width=3), cfg)
    assert np.all((mask == BLACK) | (mask == WHITE))
    assert np.all(mask[10, 5:15, :] == WHITE)
    assert np.all(mask[0:5, :, :] == BLACK)


def test_segment_file_writes_mask(tmp_path):
    src = tmp_path / "stack.tif"
    images.save_stack(src, _line_stack())

    out = segment_file(src, tmp_path / "mask.tif", SegmentationConfig())
    assert out.exists()

    mask = images.load_stack(out)
    assert mask.shape == (20, 20, 5)
    assert np.array_equal(mask, segment_array(_line_stack(), SegmentationConfig()))


def test_two_dimensional_input_returns_two_dimensional_mask():
    single = _line_stack(depth=1)[:, :, 0]
    mask = segment_array(single, SegmentationConfig())

    assert mask.shape == (20, 20)
    assert np.array_equal(mask, segment_array(single[:, :, np.newaxis], SegmentationConfig())[:, :, 0])
    assert np.all(mask[10, 5:15] == WHITE)

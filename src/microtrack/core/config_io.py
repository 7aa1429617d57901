from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, List

import yaml

from .models import PipelineStep, SegmentationConfig

_SCALAR_FIELDS = {
    "name": str,
    "preset": str,
    "diameter": int,
    "margin": float,
    "cleanup_repeats": int,
    "across_frame_rounds": int,
    "dilate_element": str,
    "dilate_rounds": int,
    "open_element": str,
    "open_rounds": int,
    "bridge_rounds": int,
}


def _steps_from_yaml(value: Any) -> List[PipelineStep]:
    """
    Parse the `steps` list. Each entry is either a bare op name or a
    mapping {op: <name>, <param>: <value>, ...}.
    """
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"steps must be a list, got {value!r}")

    steps: List[PipelineStep] = []
    for entry in value:
        if isinstance(entry, str):
            steps.append(PipelineStep(op=entry))
            continue
        if not isinstance(entry, dict) or "op" not in entry:
            raise ValueError(f"each step needs an 'op' key, got {entry!r}")
        params = {k: v for k, v in entry.items() if k != "op"}
        steps.append(PipelineStep(op=str(entry["op"]), params=params))
    return steps


def _steps_to_yaml(steps: List[PipelineStep]) -> List[Dict[str, Any]]:
    return [{"op": s.op, **s.params} for s in steps]


def config_from_dict(data: Dict[str, Any]) -> SegmentationConfig:
    """
    Build a SegmentationConfig from a plain mapping.

    Missing keys fall back to the dataclass defaults; unknown keys are
    rejected so typos do not silently run the defaults.
    """
    known = {f.name for f in fields(SegmentationConfig)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown config keys: {sorted(unknown)}")

    kwargs: Dict[str, Any] = {}
    for key, cast in _SCALAR_FIELDS.items():
        if key in data and data[key] is not None:
            try:
                kwargs[key] = cast(data[key])
            except (TypeError, ValueError) as exc:
                raise ValueError(
                    f"Config key {key!r} must be {cast.__name__}, got {data[key]!r}"
                ) from exc
    kwargs["steps"] = _steps_from_yaml(data.get("steps"))
    return SegmentationConfig(**kwargs)


def config_to_dict(cfg: SegmentationConfig) -> Dict[str, Any]:
    data: Dict[str, Any] = {key: getattr(cfg, key) for key in _SCALAR_FIELDS}
    data["steps"] = _steps_to_yaml(cfg.steps)
    return data


def load_config(path: Path) -> SegmentationConfig:
    """Load a SegmentationConfig from a YAML file."""
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a YAML mapping, got {type(data).__name__}")
    return config_from_dict(data)


def save_config(cfg: SegmentationConfig, path: Path) -> None:
    """Save a SegmentationConfig to YAML."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(
            config_to_dict(cfg),
            f,
            sort_keys=False,
            default_flow_style=False,
        )

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

from microtrack.core.models import PRESETS, SegmentationConfig
from microtrack.core import config_io
from microtrack.core import pipeline


def build_arg_parser() -> argparse.ArgumentParser:
    """
    CLI for segmenting a microtubule image stack into a binary mask.
    """
    parser = argparse.ArgumentParser(
        description="Segment filaments in an image stack into a binary mask."
    )

    parser.add_argument(
        "input",
        type=Path,
        help="Input stack: multi-page TIFF, NRRD file or directory of slices.",
    )

    parser.add_argument(
        "output",
        type=Path,
        help=(
            "Where to write the mask. '.nrrd' and '.tif' write a single file; "
            "any other path is used as a directory of PNG slices."
        ),
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional YAML configuration. Command-line values override it.",
    )

    parser.add_argument(
        "--preset",
        choices=PRESETS,
        default=None,
        help="Pipeline preset (default: canonical).",
    )

    parser.add_argument(
        "--diameter",
        type=int,
        default=None,
        help="Half-width of the adaptive threshold window in pixels (default: 10).",
    )

    parser.add_argument(
        "--margin",
        type=float,
        default=None,
        help=(
            "Bias over the local average a pixel must exceed to count as "
            "foreground (default: 1024)."
        ),
    )

    parser.add_argument(
        "--write-config",
        type=Path,
        default=None,
        help="Also save the effective configuration to this YAML file.",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every filter round.",
    )

    return parser


def _print_progress(stage: str, current: int, total: int) -> None:
    if stage == "done":
        print(f"[{total}/{total}] done")
    else:
        print(f"[{current}/{total}] {stage}")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        cfg = (
            config_io.load_config(args.config)
            if args.config is not None
            else SegmentationConfig()
        )

        overrides = {
            key: value
            for key, value in (
                ("preset", args.preset),
                ("diameter", args.diameter),
                ("margin", args.margin),
            )
            if value is not None
        }
        if overrides:
            cfg = dataclasses.replace(cfg, **overrides)

        if args.write_config is not None:
            config_io.save_config(cfg, args.write_config)

        out_path = pipeline.segment_file(
            args.input,
            args.output,
            cfg,
            progress_cb=_print_progress,
        )
    except (ValueError, OSError, RuntimeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print("Mask written to:")
    print(f"  {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

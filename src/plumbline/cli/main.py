from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from plumbline.api.scene_io import load_checkerboards, load_scene, save_scene
from plumbline.calib.config import CalibrationConfig
from plumbline.calib.pipeline import calibrate_scene
from plumbline.core.distortion import DistortionVariant, variant_spec
from plumbline.sim.synthetic import generate_synthetic_scene

logger = logging.getLogger(__name__)

_LEVELS = {
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=_LEVELS[level], format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def run_calibrate(args: argparse.Namespace) -> int:
    config = CalibrationConfig(
        min_line_points=args.min_line_points,
        roundtrip_tolerance_px=args.roundtrip_tolerance,
        robust_loss=args.robust_loss,
        robust_f_scale_px=args.robust_f_scale,
        max_workers=args.workers,
    )
    try:
        scene = load_scene(args.input)
    except (OSError, ValueError) as e:
        logger.error("The input scene file '%s' cannot be read: %s", args.input, e)
        return 1
    try:
        detections = load_checkerboards(args.checkerboards, scene.views.keys())
    except (OSError, ValueError) as e:
        logger.error("The checkerboards in '%s' cannot be read: %s", args.checkerboards, e)
        return 1
    logger.info("Loaded %d checkerboard detections for %d views", len(detections), len(scene.views))

    results = calibrate_scene(scene, detections, config=config)
    n_ok = sum(1 for r in results.values() if r.ok)
    logger.info("Calibrated %d/%d intrinsics", n_ok, len(results))

    save_scene(args.output, scene)
    print(f"Wrote {args.output}")
    return 0 if n_ok > 0 else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="plumbline")
    sub = parser.add_subparsers(dest="cmd", required=True)

    cal = sub.add_parser(
        "calibrate",
        help="Estimate lens distortion per intrinsic from checkerboard detections (no board size or pose needed).",
    )
    cal.add_argument("--input", "-i", type=Path, required=True, help="Scene JSON (views + intrinsics).")
    cal.add_argument("--checkerboards", type=Path, required=True, help="Directory of checkers_<view_id>.json files.")
    cal.add_argument("--output", "-o", type=Path, required=True, help="Output scene JSON.")
    cal.add_argument(
        "--verbose-level",
        "-v",
        type=str,
        default="info",
        choices=list(_LEVELS),
        help="Verbosity level.",
    )
    cal.add_argument("--min-line-points", type=int, default=10, help="Minimum corners per line.")
    cal.add_argument(
        "--roundtrip-tolerance",
        type=float,
        default=1e-3,
        help="Max round-trip error (px) for a resampled point to be used in the inversion.",
    )
    cal.add_argument(
        "--robust-loss",
        type=str,
        default="huber",
        choices=["huber", "soft_l1", "cauchy", "arctan"],
        help="Loss used by robust stages.",
    )
    cal.add_argument("--robust-f-scale", type=float, default=1.0, help="Robust loss soft threshold (px).")
    cal.add_argument("--workers", type=int, default=1, help="Intrinsics calibrated concurrently.")

    gen = sub.add_parser("generate-synthetic", help="Write a synthetic scene + checkerboards with known distortion.")
    gen.add_argument("--out", type=Path, required=True)
    gen.add_argument("--model", type=str, default="radial_k1", choices=[v.value for v in DistortionVariant])
    gen.add_argument(
        "--params",
        type=str,
        default=None,
        help="Comma-separated ground-truth parameters (default: the model's neutral values).",
    )
    gen.add_argument("--views", type=int, default=2)
    gen.add_argument("--rows", type=int, default=12)
    gen.add_argument("--cols", type=int, default=14)
    gen.add_argument("--width", type=int, default=1000)
    gen.add_argument("--height", type=int, default=800)
    gen.add_argument("--focal", type=float, default=1000.0, help="Focal length stored in the scene (px).")
    gen.add_argument("--noise-px", type=float, default=0.0)
    gen.add_argument("--seed", type=int, default=0)

    args = parser.parse_args(argv)
    _configure_logging(getattr(args, "verbose_level", "info"))

    if args.cmd == "calibrate":
        return run_calibrate(args)

    if args.cmd == "generate-synthetic":
        if args.params is None:
            params = variant_spec(args.model).default_params().tolist()
        else:
            params = [float(s) for s in args.params.split(",") if s.strip()]
        scene_path = generate_synthetic_scene(
            args.out,
            variant=args.model,
            params=params,
            views=args.views,
            rows=args.rows,
            cols=args.cols,
            width_px=args.width,
            height_px=args.height,
            focal_px=args.focal,
            noise_px=args.noise_px,
            seed=args.seed,
        )
        print(f"Wrote {scene_path}")
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")


def main_entry() -> None:
    sys.exit(main())

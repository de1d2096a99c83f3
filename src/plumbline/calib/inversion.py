from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from plumbline.calib.config import CalibrationConfig
from plumbline.calib.estimation import EstimationError, PointPair
from plumbline.calib.schedule import StageReport, run_schedule
from plumbline.core.camera import PinholeCamera
from plumbline.core.lines import Line, stack_line_points

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InversionResult:
    camera: PinholeCamera
    pairs: tuple[PointPair, ...]
    reports: tuple[StageReport, ...]


def generate_point_pairs(
    camera: PinholeCamera,
    lines: Sequence[Line],
    *,
    tolerance_px: float = 1e-3,
    iterations: int = 20,
) -> list[PointPair]:
    """
    Resample the line points through a line-fitted model.

    The line fit maps observed pixels to straightened ones, so distort() here plays the
    role of undistortion: each observed point p gives the pair (p, distort(p)). Pairs whose
    numeric inverse does not land back within `tolerance_px` of p are dropped.
    """
    points, _ids = stack_line_points(lines)
    if points.shape[0] == 0:
        return []
    undistorted = camera.distort(points)
    with np.errstate(invalid="ignore", over="ignore"):
        back = camera.undistort(undistorted, iterations=iterations)
        err = np.linalg.norm(back - points, axis=1)
    keep = np.flatnonzero(np.isfinite(err) & (err <= float(tolerance_px)))
    dropped = points.shape[0] - keep.size
    if dropped:
        logger.debug("dropped %d/%d point pairs failing the round-trip check", dropped, points.shape[0])
    return [PointPair(distorted_px=points[i].copy(), undistorted_px=undistorted[i].copy()) for i in keep]


def fit_inverse(
    camera: PinholeCamera,
    pairs: Sequence[PointPair],
    *,
    config: CalibrationConfig | None = None,
) -> list[StageReport]:
    """Refit `camera` in place so that distort() maps undistorted pixels back to observed ones."""
    if len(pairs) == 0:
        raise EstimationError("no point pair survived the round-trip check")
    return run_schedule(camera, pairs, config=config)


def invert_model(
    forward: PinholeCamera,
    lines: Sequence[Line],
    *,
    scale: np.ndarray | None = None,
    config: CalibrationConfig | None = None,
) -> InversionResult:
    """
    Build point pairs from a converged line-fitted model and fit the inverse mapping.

    `forward` is not modified. The inverse is fitted on a copy, optionally with a
    different `scale` (e.g. the camera's original focal length).
    """
    if config is None:
        config = CalibrationConfig()
    pairs = generate_point_pairs(
        forward,
        lines,
        tolerance_px=config.roundtrip_tolerance_px,
        iterations=config.undistort_iterations,
    )
    inverse = forward.copy()
    if scale is not None:
        inverse.scale = np.asarray(scale, dtype=np.float64).reshape(2).copy()
    reports = fit_inverse(inverse, pairs, config=config)
    return InversionResult(camera=inverse, pairs=tuple(pairs), reports=tuple(reports))

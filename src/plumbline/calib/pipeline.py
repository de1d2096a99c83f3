from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np

from plumbline.calib.config import CalibrationConfig
from plumbline.calib.estimation import EstimationError, Statistics
from plumbline.calib.inversion import invert_model
from plumbline.calib.schedule import StageReport, run_schedule
from plumbline.core.camera import PinholeCamera
from plumbline.core.checkerboard import CheckerBoardDetection
from plumbline.core.distortion import UnsupportedModelError, parse_variant
from plumbline.core.lines import Line, gather_lines
from plumbline.scene import SceneData

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntrinsicResult:
    intrinsic_id: str
    camera: PinholeCamera | None  # fitted camera, None on failure
    forward: tuple[StageReport, ...] = ()
    inverse: tuple[StageReport, ...] = ()
    n_lines: int = 0
    n_pairs: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def calibration_statistics(self) -> Statistics | None:
        return self.forward[-1].statistics if self.forward else None

    @property
    def inversion_statistics(self) -> Statistics | None:
        return self.inverse[-1].statistics if self.inverse else None


def _log_statistics(intrinsic_id: str, what: str, stats: Statistics) -> None:
    logger.info(
        "Intrinsic %s: result quality of %s: mean of error %.6g (stddev %.6g), median %.6g over %d residuals",
        intrinsic_id,
        what,
        stats.mean,
        stats.stddev,
        stats.median,
        stats.count,
    )


def calibrate_intrinsic(
    intrinsic_id: str,
    camera: PinholeCamera,
    lines: Sequence[Line],
    *,
    config: CalibrationConfig | None = None,
) -> IntrinsicResult:
    """
    Fit the distortion of one camera from the lines of all its views.

    1. forward pass: line fit with the scale normalized to the frame half-diagonal
    2. resample the line points through the forward model into point pairs
    3. inverse pass: point-pair fit at the camera's original scale

    `camera` is never modified; the fitted copy is returned only when both passes succeed.
    """
    if config is None:
        config = CalibrationConfig()
    if len(lines) == 0:
        logger.error("Intrinsic %s: no usable lines, skipped", intrinsic_id)
        return IntrinsicResult(intrinsic_id=intrinsic_id, camera=None, error="no usable lines")
    try:
        variant = parse_variant(camera.variant)
    except UnsupportedModelError as e:
        logger.error("Intrinsic %s: %s", intrinsic_id, e)
        return IntrinsicResult(intrinsic_id=intrinsic_id, camera=None, n_lines=len(lines), error=str(e))

    logger.info("Processing intrinsic %s (%s, %d lines)", intrinsic_id, variant.value, len(lines))
    work = camera.copy()
    original_scale = work.scale.copy()
    diag = work.frame_half_diagonal()
    work.scale = np.array([diag, diag], dtype=np.float64)

    try:
        forward = run_schedule(work, lines, config=config)
    except EstimationError as e:
        logger.error("Intrinsic %s: error estimating distortion: %s", intrinsic_id, e)
        return IntrinsicResult(intrinsic_id=intrinsic_id, camera=None, n_lines=len(lines), error=str(e))
    _log_statistics(intrinsic_id, "calibration", forward[-1].statistics)

    try:
        inversion = invert_model(work, lines, scale=original_scale, config=config)
    except EstimationError as e:
        logger.error("Intrinsic %s: error estimating reverse distortion: %s", intrinsic_id, e)
        return IntrinsicResult(
            intrinsic_id=intrinsic_id,
            camera=None,
            forward=tuple(forward),
            n_lines=len(lines),
            error=str(e),
        )
    _log_statistics(intrinsic_id, "inversion", inversion.reports[-1].statistics)

    return IntrinsicResult(
        intrinsic_id=intrinsic_id,
        camera=inversion.camera,
        forward=tuple(forward),
        inverse=inversion.reports,
        n_lines=len(lines),
        n_pairs=len(inversion.pairs),
    )


def _commit(target: PinholeCamera, fitted: PinholeCamera) -> None:
    target.set_parameters(fitted.get_parameters())
    target.offset_px = fitted.offset_px.copy()
    target.scale = fitted.scale.copy()


def calibrate_scene(
    scene: SceneData,
    detections: Mapping[str, CheckerBoardDetection],
    *,
    config: CalibrationConfig | None = None,
) -> dict[str, IntrinsicResult]:
    """
    Calibrate every intrinsic of `scene` independently and write successful fits back
    into `scene.intrinsics` (in place). Failed intrinsics keep their original parameters.
    """
    if config is None:
        config = CalibrationConfig()
    groups = scene.views_by_intrinsic()
    jobs: dict[str, tuple[PinholeCamera, list[Line]]] = {}
    for iid, camera in scene.intrinsics.items():
        lines = gather_lines(
            detections,
            groups.get(iid, []),
            min_points=config.min_line_points,
            min_lines=config.min_lines,
        )
        jobs[iid] = (camera, lines)

    results: dict[str, IntrinsicResult] = {}
    if config.max_workers > 1 and len(jobs) > 1:
        with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
            futures = {
                iid: executor.submit(calibrate_intrinsic, iid, camera, lines, config=config)
                for iid, (camera, lines) in jobs.items()
            }
            for iid, fut in futures.items():
                results[iid] = fut.result()
    else:
        for iid, (camera, lines) in jobs.items():
            results[iid] = calibrate_intrinsic(iid, camera, lines, config=config)

    for iid, res in results.items():
        if res.ok and res.camera is not None:
            _commit(scene.intrinsics[iid], res.camera)
    return results

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from plumbline.calib.config import CalibrationConfig
from plumbline.core.camera import PinholeCamera
from plumbline.core.lines import Line, stack_line_points

logger = logging.getLogger(__name__)


class EstimationError(RuntimeError):
    pass


@dataclass(frozen=True)
class PointPair:
    """
    A distorted (observed) pixel and the pixel the forward model maps it to.
    """

    distorted_px: np.ndarray  # (2,)
    undistorted_px: np.ndarray  # (2,)


Constraints = Union[Sequence[Line], Sequence[PointPair]]


@dataclass(frozen=True)
class Statistics:
    mean: float
    stddev: float
    median: float
    count: int

    @classmethod
    def from_errors(cls, errors: np.ndarray) -> "Statistics":
        e = np.abs(np.asarray(errors, dtype=np.float64).reshape(-1))
        if e.size == 0:
            return cls(mean=float("nan"), stddev=float("nan"), median=float("nan"), count=0)
        return cls(mean=float(np.mean(e)), stddev=float(np.std(e)), median=float(np.median(e)), count=int(e.size))


def fit_line(points_px: np.ndarray) -> tuple[float, float]:
    """
    Total least-squares line through points, as (angle, distance) with
    cos(angle) x + sin(angle) y = distance.
    """
    pts = np.asarray(points_px, dtype=np.float64).reshape(-1, 2)
    c = np.mean(pts, axis=0)
    _u, _s, vt = np.linalg.svd(pts - c, full_matrices=False)
    n = vt[-1]
    angle = float(np.arctan2(n[1], n[0]))
    return angle, float(n @ c)


def _stack_pairs(pairs: Sequence[PointPair]) -> tuple[np.ndarray, np.ndarray]:
    distorted = np.asarray([p.distorted_px for p in pairs], dtype=np.float64).reshape(-1, 2)
    undistorted = np.asarray([p.undistorted_px for p in pairs], dtype=np.float64).reshape(-1, 2)
    return distorted, undistorted


def estimate(
    camera: PinholeCamera,
    constraints: Constraints,
    *,
    fit_lines: bool,
    lock_center: bool,
    locks: Sequence[bool],
    robust: bool,
    lock_scale: bool = True,
    config: CalibrationConfig | None = None,
) -> Statistics:
    """
    One solver stage: refine the unlocked parameters of `camera` against `constraints`.

    Line mode minimizes point-to-line distances of distort(p); every line carries its own
    (angle, distance) pair, always free and re-initialized from the current model.
    Pair mode minimizes |distort(undistorted) - distorted|.

    The free vector is: unlocked distortion parameters, offset (unless lock_center),
    scale (unless lock_scale), then line parameters. `camera` is updated only when the
    solver converges; otherwise EstimationError is raised and the camera is untouched.
    """
    from scipy.optimize import least_squares  # type: ignore

    if config is None:
        config = CalibrationConfig()
    n_params = camera.parameter_count
    locks_arr = np.asarray(locks, dtype=bool).reshape(-1)
    if locks_arr.size != n_params:
        raise ValueError(f"lock mask has {locks_arr.size} entries, {camera.variant} has {n_params} parameters")
    if len(constraints) == 0:
        raise EstimationError("empty constraint set")

    free = np.flatnonzero(~locks_arr)
    nd = int(free.size)
    params0 = camera.params.copy()
    offset0 = camera.offset_px.copy()
    scale0 = camera.scale.copy()
    work = camera.copy()

    if fit_lines:
        points, line_ids = stack_line_points(constraints)  # type: ignore[arg-type]
        n_lines = len(constraints)
        q0 = camera.distort(points)
        line0 = np.array([fit_line(q0[line_ids == k]) for k in range(n_lines)], dtype=np.float64).reshape(-1)
    else:
        distorted, undistorted = _stack_pairs(constraints)  # type: ignore[arg-type]
        line0 = np.zeros((0,), dtype=np.float64)

    p0_parts = [params0[free]]
    if not lock_center:
        p0_parts.append(offset0)
    if not lock_scale:
        p0_parts.append(scale0)
    p0_parts.append(line0)
    p0 = np.concatenate(p0_parts, axis=0)

    def apply(p: np.ndarray) -> np.ndarray:
        params = params0.copy()
        params[free] = p[:nd]
        k = nd
        work.params = params
        if not lock_center:
            work.offset_px = p[k : k + 2].copy()
            k += 2
        if not lock_scale:
            work.scale = p[k : k + 2].copy()
            k += 2
        return p[k:]

    if fit_lines:

        def fun(p: np.ndarray) -> np.ndarray:
            lp = apply(p).reshape(-1, 2)
            q = work.distort(points)
            a = lp[line_ids, 0]
            d = lp[line_ids, 1]
            return np.cos(a) * q[:, 0] + np.sin(a) * q[:, 1] - d

    else:

        def fun(p: np.ndarray) -> np.ndarray:
            apply(p)
            return (work.distort(undistorted) - distorted).reshape(-1)

    if p0.size == 0:
        x = p0
    else:
        loss = config.robust_loss if robust else "linear"
        try:
            sol = least_squares(
                fun,
                p0,
                method="trf",
                loss=loss,
                f_scale=float(config.robust_f_scale_px),
                x_scale="jac",
                max_nfev=config.max_nfev,
            )
        except ValueError as e:
            raise EstimationError(f"solver rejected the problem: {e}") from e
        if not sol.success or not np.isfinite(sol.cost):
            raise EstimationError(f"solver did not converge: {sol.message}")
        logger.debug("stage converged: cost=%.6g nfev=%d n_free=%d", float(sol.cost), int(sol.nfev), int(p0.size))
        x = sol.x

    with np.errstate(invalid="ignore", over="ignore"):
        r = fun(x)
    if not np.all(np.isfinite(r)):
        raise EstimationError("non-finite residuals at the solution")

    camera.params = work.params.copy()
    camera.offset_px = work.offset_px.copy()
    camera.scale = work.scale.copy()

    if fit_lines:
        return Statistics.from_errors(r)
    return Statistics.from_errors(np.linalg.norm(r.reshape(-1, 2), axis=1))

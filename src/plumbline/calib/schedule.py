from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

from plumbline.calib.config import CalibrationConfig
from plumbline.calib.estimation import Constraints, EstimationError, PointPair, Statistics, estimate
from plumbline.core.camera import PinholeCamera
from plumbline.core.distortion import VARIANTS, DistortionVariant, parse_variant
from plumbline.core.lines import Line

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stage:
    label: str
    locks: tuple[bool, ...]  # True = held constant
    lock_center: bool = True
    robust: bool = False

    @property
    def free_indices(self) -> frozenset[int]:
        return frozenset(i for i, locked in enumerate(self.locks) if not locked)


@dataclass(frozen=True)
class StageReport:
    label: str
    statistics: Statistics


def _locks(n: int, free: Iterable[int] = ()) -> tuple[bool, ...]:
    free_set = set(free)
    return tuple(i not in free_set for i in range(n))


def _radial_schedule(n: int) -> tuple[Stage, ...]:
    stages = [
        Stage("lines only", _locks(n)),
        Stage("dominant coefficient", _locks(n, [0])),
        Stage("dominant coefficient + center", _locks(n, [0]), lock_center=False),
    ]
    if n > 1:
        stages.append(Stage("all coefficients + center", _locks(n, range(n)), lock_center=False))
    return tuple(stages)


# Relaxation order per variant: each stage starts from the previous stage's solution and
# only ever frees more parameters. Robust losses come last, once the fit is close.
SCHEDULES: Mapping[DistortionVariant, tuple[Stage, ...]] = MappingProxyType(
    {
        DistortionVariant.RADIAL_K1: _radial_schedule(1),
        DistortionVariant.RADIAL_K3: _radial_schedule(3),
        DistortionVariant.RADIAL4_3DE: _radial_schedule(6),
        DistortionVariant.ANAMORPHIC4_3DE: (
            Stage("lines only", _locks(14)),
            Stage("center", _locks(14), lock_center=False),
            Stage("degree 2", _locks(14, range(4)), lock_center=False, robust=True),
            Stage("degree 2 + 4", _locks(14, range(10)), lock_center=False, robust=True),
            Stage("degree 2 + 4 + rotation/squeeze x", _locks(14, range(12)), lock_center=False, robust=True),
        ),
        DistortionVariant.CLASSIC_LD_3DE: (
            Stage("lines only", _locks(5)),
            Stage("distortion", _locks(5, [0])),
            Stage("distortion + center", _locks(5, [0]), lock_center=False),
            Stage("distortion + curvature", _locks(5, [0, 2, 3]), lock_center=False),
            Stage("all coefficients", _locks(5, range(5)), lock_center=False, robust=True),
        ),
    }
)


def schedule_for(variant: str | DistortionVariant) -> tuple[Stage, ...]:
    return SCHEDULES[parse_variant(variant)]


def _constraints_are_lines(constraints: Constraints) -> bool:
    if len(constraints) == 0:
        raise EstimationError("empty constraint set")
    if all(isinstance(c, Line) for c in constraints):
        return True
    if all(isinstance(c, PointPair) for c in constraints):
        return False
    raise TypeError("constraints must be all Line or all PointPair")


def run_schedule(
    camera: PinholeCamera,
    constraints: Constraints,
    *,
    config: CalibrationConfig | None = None,
) -> list[StageReport]:
    """
    Reset the variant's seed parameters, then run its stages in order on `camera` (in place).

    Residuals are point-to-line for Line constraints and point-to-point for PointPair
    constraints. The first failing stage aborts the schedule with EstimationError.
    """
    variant = parse_variant(camera.variant)
    stages = SCHEDULES[variant]
    fit_lines = _constraints_are_lines(constraints)
    camera.set_parameters(VARIANTS[variant].apply_reset(camera.get_parameters()))

    mode = "lines" if fit_lines else "point pairs"
    reports: list[StageReport] = []
    for k, stage in enumerate(stages, start=1):
        try:
            stats = estimate(
                camera,
                constraints,
                fit_lines=fit_lines,
                lock_center=stage.lock_center,
                locks=stage.locks,
                robust=stage.robust,
                config=config,
            )
        except EstimationError as e:
            raise EstimationError(f"{variant.value} stage {k}/{len(stages)} ({stage.label}) failed: {e}") from e
        logger.debug(
            "%s %s stage %d (%s): mean=%.4g stddev=%.4g median=%.4g n=%d",
            variant.value,
            mode,
            k,
            stage.label,
            stats.mean,
            stats.stddev,
            stats.median,
            stats.count,
        )
        reports.append(StageReport(label=stage.label, statistics=stats))
    return reports

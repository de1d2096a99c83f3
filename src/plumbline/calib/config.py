from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

RobustLoss = Literal["huber", "soft_l1", "cauchy", "arctan"]


@dataclass(frozen=True)
class CalibrationConfig:
    """
    Knobs of a calibration run.

    - `min_line_points`: lines with fewer points are discarded
    - `min_lines`: views yielding fewer lines are skipped
    - `roundtrip_tolerance_px`: max |undistort(distort(p)) - p| for a point pair to be kept
    - `robust_loss`/`robust_f_scale_px`: SciPy loss used by stages flagged robust
    - `max_nfev`: per-stage solver budget (None = SciPy default)
    - `undistort_iterations`: Newton steps for the numeric inverse
    - `max_workers`: cameras calibrated concurrently
    """

    min_line_points: int = 10
    min_lines: int = 2
    roundtrip_tolerance_px: float = 1e-3
    robust_loss: RobustLoss = "huber"
    robust_f_scale_px: float = 1.0
    max_nfev: int | None = None
    undistort_iterations: int = 20
    max_workers: int = 1

    def __post_init__(self) -> None:
        if self.min_line_points < 2:
            raise ValueError("min_line_points must be >= 2")
        if self.min_lines < 1:
            raise ValueError("min_lines must be >= 1")
        if not self.roundtrip_tolerance_px > 0.0:
            raise ValueError("roundtrip_tolerance_px must be > 0")
        if self.robust_loss not in ("huber", "soft_l1", "cauchy", "arctan"):
            raise ValueError(f"unknown robust loss: {self.robust_loss!r}")
        if not self.robust_f_scale_px > 0.0:
            raise ValueError("robust_f_scale_px must be > 0")
        if self.max_nfev is not None and self.max_nfev < 1:
            raise ValueError("max_nfev must be >= 1")
        if self.undistort_iterations < 1:
            raise ValueError("undistort_iterations must be >= 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

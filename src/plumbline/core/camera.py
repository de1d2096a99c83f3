from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from plumbline.core.distortion import DistortionVariant, VariantSpec, variant_spec


def _as_points(points_px: np.ndarray) -> np.ndarray:
    return np.asarray(points_px, dtype=np.float64).reshape(-1, 2)


@dataclass
class PinholeCamera:
    """
    Pinhole intrinsic with a pixel-space distortion transform.

    Convention (pixel centers, x right, y down):
      principal_point = (width/2, height/2) + offset_px
      normalized      = (pixel - principal_point) / scale
      distort(p)      = cam2ima(add_distortion(ima2cam(p)))

    `variant` is kept as a plain string so that scenes holding unknown models can still be
    loaded; the distortion methods raise `UnsupportedModelError` for those.
    """

    width_px: int
    height_px: int
    scale: np.ndarray  # (2,) effective focal length per axis, px
    offset_px: np.ndarray = field(default_factory=lambda: np.zeros((2,), dtype=np.float64))
    variant: str = DistortionVariant.RADIAL_K1.value
    params: np.ndarray = field(default_factory=lambda: np.zeros((0,), dtype=np.float64))

    def __post_init__(self) -> None:
        self.width_px = int(self.width_px)
        self.height_px = int(self.height_px)
        if self.width_px <= 0 or self.height_px <= 0:
            raise ValueError("camera frame must be > 0")
        self.scale = np.asarray(self.scale, dtype=np.float64).reshape(2).copy()
        self.offset_px = np.asarray(self.offset_px, dtype=np.float64).reshape(2).copy()
        self.variant = str(getattr(self.variant, "value", self.variant))
        self.params = np.asarray(self.params, dtype=np.float64).reshape(-1).copy()
        if self.is_supported:
            spec = self.spec
            if self.params.size == 0:
                self.params = spec.default_params()
            elif self.params.size != spec.parameter_count:
                raise ValueError(f"{self.variant} expects {spec.parameter_count} parameters, got {self.params.size}")

    @classmethod
    def create(
        cls,
        *,
        width_px: int,
        height_px: int,
        focal_px: float,
        variant: str | DistortionVariant,
        params: Sequence[float] | None = None,
    ) -> "PinholeCamera":
        spec = variant_spec(variant)
        p = spec.default_params() if params is None else np.asarray(params, dtype=np.float64)
        return cls(
            width_px=width_px,
            height_px=height_px,
            scale=np.array([focal_px, focal_px], dtype=np.float64),
            variant=spec.variant.value,
            params=p,
        )

    @property
    def is_supported(self) -> bool:
        return self.variant in {v.value for v in DistortionVariant}

    @property
    def spec(self) -> VariantSpec:
        return variant_spec(self.variant)

    @property
    def parameter_count(self) -> int:
        return self.spec.parameter_count

    def get_parameters(self) -> list[float]:
        return [float(v) for v in self.params.tolist()]

    def set_parameters(self, params: Sequence[float]) -> None:
        p = np.asarray(params, dtype=np.float64).reshape(-1)
        if p.size != self.parameter_count:
            raise ValueError(f"{self.variant} expects {self.parameter_count} parameters, got {p.size}")
        self.params = p.copy()

    @property
    def principal_point(self) -> np.ndarray:
        return np.array([0.5 * self.width_px, 0.5 * self.height_px], dtype=np.float64) + self.offset_px

    def frame_half_diagonal(self) -> float:
        hw = 0.5 * self.width_px
        hh = 0.5 * self.height_px
        return float(np.sqrt(hw * hw + hh * hh))

    def copy(self) -> "PinholeCamera":
        return PinholeCamera(
            width_px=self.width_px,
            height_px=self.height_px,
            scale=self.scale.copy(),
            offset_px=self.offset_px.copy(),
            variant=self.variant,
            params=self.params.copy(),
        )

    def ima2cam(self, points_px: np.ndarray) -> np.ndarray:
        return (_as_points(points_px) - self.principal_point) / self.scale

    def cam2ima(self, points: np.ndarray) -> np.ndarray:
        return _as_points(points) * self.scale + self.principal_point

    def add_distortion(self, points: np.ndarray) -> np.ndarray:
        xy = _as_points(points)
        xd, yd = self.spec.distort(self.params, xy[:, 0], xy[:, 1])
        return np.stack([xd, yd], axis=1)

    def remove_distortion(self, points: np.ndarray, iterations: int = 20, tol: float = 1e-12) -> np.ndarray:
        """
        Newton inverse of add_distortion() with a finite-difference 2x2 Jacobian.

        Points where the model is not locally invertible come back as NaN or as the last
        iterate; callers that need a guarantee must check the round trip themselves.
        """
        target = _as_points(points)
        distort = self.spec.distort
        p = self.params
        x = target[:, 0].copy()
        y = target[:, 1].copy()
        h = 1e-7
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            for _ in range(int(iterations)):
                fx, fy = distort(p, x, y)
                ex = fx - target[:, 0]
                ey = fy - target[:, 1]
                if not np.any(np.abs(ex) > tol) and not np.any(np.abs(ey) > tol):
                    break
                fx_dx, fy_dx = distort(p, x + h, y)
                fx_dy, fy_dy = distort(p, x, y + h)
                j11 = (fx_dx - fx) / h
                j21 = (fy_dx - fy) / h
                j12 = (fx_dy - fx) / h
                j22 = (fy_dy - fy) / h
                det = j11 * j22 - j12 * j21
                det = np.where(np.abs(det) < 1e-12, np.nan, det)
                x = x - (j22 * ex - j12 * ey) / det
                y = y - (-j21 * ex + j11 * ey) / det
        return np.stack([x, y], axis=1)

    def distort(self, points_px: np.ndarray) -> np.ndarray:
        return self.cam2ima(self.add_distortion(self.ima2cam(points_px)))

    def undistort(self, points_px: np.ndarray, iterations: int = 20) -> np.ndarray:
        return self.cam2ima(self.remove_distortion(self.ima2cam(points_px), iterations=iterations))

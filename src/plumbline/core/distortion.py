from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Callable, Mapping, Sequence

import numpy as np


class UnsupportedModelError(ValueError):
    pass


class DistortionVariant(str, Enum):
    RADIAL_K1 = "radial_k1"
    RADIAL_K3 = "radial_k3"
    RADIAL4_3DE = "3de_radial4"
    ANAMORPHIC4_3DE = "3de_anamorphic4"
    CLASSIC_LD_3DE = "3de_classic_ld"


DistortFn = Callable[[np.ndarray, np.ndarray, np.ndarray], tuple[np.ndarray, np.ndarray]]


def _radial_k1(p: np.ndarray, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    r2 = x * x + y * y
    f = 1.0 + p[0] * r2
    return x * f, y * f


def _radial_k3(p: np.ndarray, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    r2 = x * x + y * y
    f = 1.0 + r2 * (p[0] + r2 * (p[1] + r2 * p[2]))
    return x * f, y * f


def _radial4_3de(p: np.ndarray, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    3DE "Radial - Standard, Degree 4": radial c2, c4 plus decentering (u1, v1, u3, v3).
    """
    c2, c4, u1, v1, u3, v3 = (float(v) for v in p)
    x2 = x * x
    y2 = y * y
    xy = x * y
    r2 = x2 + y2
    radial = 1.0 + c2 * r2 + c4 * r2 * r2
    u = u1 + u3 * r2
    v = v1 + v3 * r2
    xd = x * radial + (r2 + 2.0 * x2) * u + 2.0 * xy * v
    yd = y * radial + (r2 + 2.0 * y2) * v + 2.0 * xy * u
    return xd, yd


def _anamorphic4_3de(p: np.ndarray, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    3DE "Anamorphic - Standard, Degree 4".

    Per-axis polynomials in r^2 with cos(2t)/cos(4t) azimuthal terms, evaluated in a
    frame rotated by phi and corrected for pixel aspect ps, then squeezed by (sqx, sqy).
    The azimuthal terms are expanded in x/y so the model stays smooth at the center.
    """
    cx02, cy02, cx22, cy22, cx04, cy04, cx24, cy24, cx44, cy44, phi, sqx, sqy, ps = (float(v) for v in p)
    c = np.cos(phi)
    s = np.sin(phi)
    xr = c * x + s * y
    yr = (-s * x + c * y) / ps

    x2 = xr * xr
    y2 = yr * yr
    r2 = x2 + y2
    r4 = r2 * r2
    r2_c2t = x2 - y2  # r^2 cos(2t)
    r4_c2t = r2 * r2_c2t  # r^4 cos(2t)
    r4_c4t = 2.0 * r2_c2t * r2_c2t - r4  # r^4 cos(4t)

    fx = 1.0 + cx02 * r2 + cx22 * r2_c2t + cx04 * r4 + cx24 * r4_c2t + cx44 * r4_c4t
    fy = 1.0 + cy02 * r2 + cy22 * r2_c2t + cy04 * r4 + cy24 * r4_c2t + cy44 * r4_c4t
    xd = xr * fx
    yd = yr * fy * ps

    xo = c * xd - s * yd
    yo = s * xd + c * yd
    return xo * sqx, yo * sqy


def _classic_ld_3de(p: np.ndarray, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    3DE "Classic LD": distortion delta, anamorphic squeeze angle theta (eps = sin(theta)),
    curvatures mux/muy and quartic distortion q.
    """
    delta, theta, mux, muy, q = (float(v) for v in p)
    eps = np.sin(theta)
    x2 = x * x
    y2 = y * y
    r4 = (x2 + y2) ** 2
    xd = x * (1.0 + (delta / eps) * x2 + ((delta + mux) / eps) * y2 + (q / eps) * r4)
    yd = y * (1.0 + (delta + muy) * x2 + delta * y2 + q * r4)
    return xd, yd


@dataclass(frozen=True)
class VariantSpec:
    variant: DistortionVariant
    param_names: tuple[str, ...]
    distort: DistortFn
    # (index, value) pairs written before the first stage of every estimation run.
    reset: tuple[tuple[int, float], ...] = ()

    @property
    def parameter_count(self) -> int:
        return len(self.param_names)

    def default_params(self) -> np.ndarray:
        return self.apply_reset(np.zeros((self.parameter_count,), dtype=np.float64))

    def apply_reset(self, params: Sequence[float]) -> np.ndarray:
        out = np.asarray(params, dtype=np.float64).reshape(-1).copy()
        if out.size != self.parameter_count:
            raise ValueError(f"{self.variant.value} expects {self.parameter_count} parameters, got {out.size}")
        for idx, value in self.reset:
            out[idx] = value
        return out


_ANAMORPHIC_NAMES = (
    "cx02", "cy02", "cx22", "cy22", "cx04", "cy04", "cx24", "cy24", "cx44", "cy44", "phi", "sqx", "sqy", "ps",
)

VARIANTS: Mapping[DistortionVariant, VariantSpec] = MappingProxyType(
    {
        DistortionVariant.RADIAL_K1: VariantSpec(DistortionVariant.RADIAL_K1, ("k1",), _radial_k1),
        DistortionVariant.RADIAL_K3: VariantSpec(DistortionVariant.RADIAL_K3, ("k1", "k2", "k3"), _radial_k3),
        DistortionVariant.RADIAL4_3DE: VariantSpec(
            DistortionVariant.RADIAL4_3DE, ("c2", "c4", "u1", "v1", "u3", "v3"), _radial4_3de
        ),
        DistortionVariant.ANAMORPHIC4_3DE: VariantSpec(
            DistortionVariant.ANAMORPHIC4_3DE,
            _ANAMORPHIC_NAMES,
            _anamorphic4_3de,
            reset=tuple((i, 0.0) for i in range(11)) + ((11, 1.0), (12, 1.0), (13, 1.0)),
        ),
        DistortionVariant.CLASSIC_LD_3DE: VariantSpec(
            DistortionVariant.CLASSIC_LD_3DE,
            ("delta", "theta", "mux", "muy", "q"),
            _classic_ld_3de,
            # theta = pi/2 keeps the squeeze at 1; the model is singular at theta = 0.
            reset=((0, 0.0), (1, 0.5 * np.pi), (2, 0.0), (3, 0.0), (4, 0.0)),
        ),
    }
)


def parse_variant(name: str | DistortionVariant) -> DistortionVariant:
    try:
        return DistortionVariant(name)
    except ValueError as e:
        raise UnsupportedModelError(f"unsupported distortion model: {name!r}") from e


def variant_spec(name: str | DistortionVariant) -> VariantSpec:
    return VARIANTS[parse_variant(name)]

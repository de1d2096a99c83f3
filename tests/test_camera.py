from __future__ import annotations

import numpy as np
import pytest

from plumbline.core.camera import PinholeCamera
from plumbline.core.distortion import VARIANTS, DistortionVariant, UnsupportedModelError

MILD_PARAMS = {
    DistortionVariant.RADIAL_K1: [0.05],
    DistortionVariant.RADIAL_K3: [0.05, -0.01, 0.002],
    DistortionVariant.RADIAL4_3DE: [0.05, -0.01, 0.002, -0.001, 0.001, 0.0005],
    DistortionVariant.ANAMORPHIC4_3DE: [
        0.03, 0.02, 0.01, -0.01, 0.005, 0.004, 0.001, -0.001, 0.001, 0.0005, 0.02, 1.01, 0.99, 1.0,
    ],
    DistortionVariant.CLASSIC_LD_3DE: [0.03, 0.5 * np.pi - 0.05, 0.01, -0.01, 0.002],
}


def _frame_points() -> np.ndarray:
    xs = np.linspace(50.0, 950.0, 9)
    ys = np.linspace(50.0, 750.0, 8)
    xx, yy = np.meshgrid(xs, ys)
    return np.stack([xx.ravel(), yy.ravel()], axis=1)


def _camera(variant: DistortionVariant, params) -> PinholeCamera:
    cam = PinholeCamera.create(width_px=1000, height_px=800, focal_px=1.0, variant=variant, params=params)
    d = cam.frame_half_diagonal()
    cam.scale = np.array([d, d])
    return cam


def test_neutral_parameters_leave_points_unchanged() -> None:
    pts = _frame_points()
    for variant in VARIANTS:
        cam = _camera(variant, None)
        assert np.allclose(cam.distort(pts), pts, atol=1e-9), variant
        assert np.allclose(cam.undistort(pts), pts, atol=1e-9), variant


@pytest.mark.parametrize("variant", list(MILD_PARAMS))
def test_undistort_inverts_distort(variant: DistortionVariant) -> None:
    cam = _camera(variant, MILD_PARAMS[variant])
    pts = _frame_points()

    moved = cam.distort(pts)
    assert np.max(np.abs(moved - pts)) > 0.1
    assert np.allclose(cam.undistort(moved), pts, atol=1e-6)


def test_normalization_uses_center_offset_and_scale() -> None:
    cam = PinholeCamera(width_px=640, height_px=480, scale=[800.0, 600.0], offset_px=[4.0, -2.0])
    assert np.allclose(cam.principal_point, [324.0, 238.0])

    n = cam.ima2cam(np.array([[324.0 + 80.0, 238.0 - 60.0]]))
    assert np.allclose(n, [[0.1, -0.1]])
    assert np.allclose(cam.cam2ima(n), [[404.0, 178.0]])


def test_frame_half_diagonal() -> None:
    cam = PinholeCamera.create(width_px=1000, height_px=800, focal_px=1000.0, variant="radial_k1")
    assert cam.frame_half_diagonal() == pytest.approx(np.sqrt(500.0**2 + 400.0**2))


def test_default_parameters_follow_the_variant_reset() -> None:
    cam = PinholeCamera.create(width_px=100, height_px=100, focal_px=100.0, variant="3de_classic_ld")
    assert cam.get_parameters() == pytest.approx([0.0, 0.5 * np.pi, 0.0, 0.0, 0.0])

    cam = PinholeCamera.create(width_px=100, height_px=100, focal_px=100.0, variant="3de_anamorphic4")
    assert cam.get_parameters()[11:] == [1.0, 1.0, 1.0]


def test_parameter_count_is_enforced() -> None:
    cam = PinholeCamera.create(width_px=100, height_px=100, focal_px=100.0, variant="radial_k3")
    with pytest.raises(ValueError):
        cam.set_parameters([0.1])
    with pytest.raises(ValueError):
        PinholeCamera(width_px=100, height_px=100, scale=[1.0, 1.0], variant="radial_k1", params=[0.1, 0.2])


def test_unknown_variant_is_kept_but_cannot_distort() -> None:
    cam = PinholeCamera(width_px=100, height_px=100, scale=[1.0, 1.0], variant="fisheye4", params=[1, 2, 3, 4])
    assert not cam.is_supported
    assert cam.get_parameters() == [1.0, 2.0, 3.0, 4.0]
    with pytest.raises(UnsupportedModelError):
        cam.distort(np.zeros((1, 2)))


def test_copy_is_independent() -> None:
    cam = _camera(DistortionVariant.RADIAL_K3, [0.1, 0.0, 0.0])
    dup = cam.copy()
    dup.params[0] = 0.5
    dup.offset_px[0] = 3.0
    assert cam.params[0] == pytest.approx(0.1)
    assert cam.offset_px[0] == 0.0

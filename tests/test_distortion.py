from __future__ import annotations

import numpy as np
import pytest

from plumbline.core.distortion import (
    VARIANTS,
    DistortionVariant,
    UnsupportedModelError,
    parse_variant,
    variant_spec,
)


def test_every_variant_is_registered() -> None:
    assert set(VARIANTS) == set(DistortionVariant)
    counts = {v.value: VARIANTS[v].parameter_count for v in DistortionVariant}
    assert counts == {
        "radial_k1": 1,
        "radial_k3": 3,
        "3de_radial4": 6,
        "3de_anamorphic4": 14,
        "3de_classic_ld": 5,
    }


def test_parse_variant_rejects_unknown_names() -> None:
    assert parse_variant("radial_k3") is DistortionVariant.RADIAL_K3
    with pytest.raises(UnsupportedModelError):
        parse_variant("fisheye4")
    # Callers that only know ValueError still catch it.
    with pytest.raises(ValueError):
        variant_spec("")


def test_anamorphic_reset_zeroes_polynomial_and_rotation() -> None:
    spec = variant_spec(DistortionVariant.ANAMORPHIC4_3DE)
    out = spec.apply_reset(np.arange(1.0, 15.0))
    assert np.all(out[:11] == 0.0)
    assert np.all(out[11:] == 1.0)


def test_classic_ld_reset_sets_neutral_squeeze() -> None:
    spec = variant_spec(DistortionVariant.CLASSIC_LD_3DE)
    out = spec.apply_reset([0.2, 0.3, 0.4, 0.5, 0.6])
    assert out.tolist() == pytest.approx([0.0, 0.5 * np.pi, 0.0, 0.0, 0.0])


def test_radial_variants_have_no_reset() -> None:
    p = [0.1, -0.2, 0.3]
    assert variant_spec("radial_k3").apply_reset(p).tolist() == pytest.approx(p)


def test_apply_reset_checks_size() -> None:
    with pytest.raises(ValueError):
        variant_spec("radial_k1").apply_reset([0.0, 0.0])


def test_radial_k1_formula() -> None:
    xd, yd = variant_spec("radial_k1").distort(np.array([0.1]), np.array([0.3]), np.array([0.4]))
    # r^2 = 0.25
    assert xd[0] == pytest.approx(0.3 * 1.025)
    assert yd[0] == pytest.approx(0.4 * 1.025)


def test_radial4_decentering_terms() -> None:
    spec = variant_spec("3de_radial4")
    x = np.array([0.2])
    y = np.array([0.1])
    xd, yd = spec.distort(np.array([0.0, 0.0, 0.01, 0.0, 0.0, 0.0]), x, y)
    r2 = 0.05
    assert xd[0] == pytest.approx(0.2 + (r2 + 2.0 * 0.04) * 0.01)
    assert yd[0] == pytest.approx(0.1 + 2.0 * 0.02 * 0.01)


def test_anamorphic_squeeze_scales_axes() -> None:
    spec = variant_spec("3de_anamorphic4")
    p = spec.default_params()
    p[11] = 2.0
    p[12] = 0.5
    xd, yd = spec.distort(p, np.array([0.3]), np.array([0.4]))
    assert xd[0] == pytest.approx(0.6)
    assert yd[0] == pytest.approx(0.2)


def test_anamorphic_is_rotation_invariant_for_isotropic_terms() -> None:
    spec = variant_spec("3de_anamorphic4")
    p = spec.default_params()
    p[0] = p[1] = 0.1  # cx02 = cy02
    x = np.array([0.3, -0.2])
    y = np.array([0.1, 0.25])
    ref = spec.distort(p, x, y)
    p[10] = 0.7
    rot = spec.distort(p, x, y)
    assert np.allclose(ref, rot)


def test_classic_ld_axes_differ_with_squeeze() -> None:
    spec = variant_spec("3de_classic_ld")
    p = np.array([0.1, np.arcsin(0.5), 0.0, 0.0, 0.0])
    xd, yd = spec.distort(p, np.array([0.5]), np.array([0.0]))
    assert xd[0] == pytest.approx(0.5 * (1.0 + 0.2 * 0.25))
    assert yd[0] == 0.0

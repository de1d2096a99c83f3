import pytest

from plumbline.calib.config import CalibrationConfig


def test_defaults() -> None:
    cfg = CalibrationConfig()
    assert cfg.min_line_points == 10
    assert cfg.min_lines == 2
    assert cfg.roundtrip_tolerance_px == 1e-3
    assert cfg.undistort_iterations == 20


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_line_points": 1},
        {"min_lines": 0},
        {"roundtrip_tolerance_px": 0.0},
        {"robust_loss": "l2"},
        {"robust_f_scale_px": -1.0},
        {"max_nfev": 0},
        {"undistort_iterations": 0},
        {"max_workers": 0},
    ],
)
def test_rejects_invalid_values(kwargs) -> None:
    with pytest.raises(ValueError):
        CalibrationConfig(**kwargs)

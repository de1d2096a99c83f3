from plumbline.api import load_checkerboards, load_scene, save_scene
from plumbline.calib.config import CalibrationConfig
from plumbline.calib.pipeline import calibrate_intrinsic, calibrate_scene

__all__ = [
    "CalibrationConfig",
    "calibrate_intrinsic",
    "calibrate_scene",
    "load_scene",
    "save_scene",
    "load_checkerboards",
]

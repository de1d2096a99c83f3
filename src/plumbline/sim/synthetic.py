from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

import numpy as np

from plumbline.api.scene_io import save_checkerboard, save_scene
from plumbline.core.camera import PinholeCamera
from plumbline.core.checkerboard import UNDEFINED_INDEX, CheckerBoardDetection
from plumbline.core.distortion import variant_spec
from plumbline.scene import SceneData, View


def projective_grid(
    rows: int,
    cols: int,
    *,
    origin_px: tuple[float, float] = (150.0, 120.0),
    step_px: tuple[float, float] = (70.0, 60.0),
    shear: tuple[float, float] = (0.03, -0.02),
    perspective: tuple[float, float] = (2e-5, -1e-5),
) -> np.ndarray:
    """
    Corners of a rows x cols board seen through a homography (row-major, (rows*cols, 2)).

    Rows, columns and diagonals stay exactly straight.
    """
    jj, ii = np.meshgrid(np.arange(cols, dtype=np.float64), np.arange(rows, dtype=np.float64))
    u = jj * float(step_px[0])
    v = ii * float(step_px[1])
    den = 1.0 + perspective[0] * u + perspective[1] * v
    x = (u + shear[0] * v) / den + float(origin_px[0])
    y = (v + shear[1] * u) / den + float(origin_px[1])
    return np.stack([x, y], axis=-1).reshape(-1, 2)


def truth_camera(
    variant: str,
    params: Sequence[float] | None,
    *,
    width_px: int = 1000,
    height_px: int = 800,
    offset_px: tuple[float, float] = (0.0, 0.0),
) -> PinholeCamera:
    """Line-fit-direction ground truth at the normalized (half-diagonal) scale."""
    spec = variant_spec(variant)
    cam = PinholeCamera(
        width_px=width_px,
        height_px=height_px,
        scale=np.ones((2,), dtype=np.float64),
        offset_px=np.asarray(offset_px, dtype=np.float64),
        variant=spec.variant.value,
        params=spec.default_params() if params is None else np.asarray(params, dtype=np.float64),
    )
    d = cam.frame_half_diagonal()
    cam.scale = np.array([d, d], dtype=np.float64)
    return cam


def synthetic_detection(
    truth: PinholeCamera,
    rows: int,
    cols: int,
    *,
    undefined: Iterable[tuple[int, int]] = (),
    noise_px: float = 0.0,
    rng: np.random.Generator | None = None,
    **grid_kwargs,
) -> CheckerBoardDetection:
    """
    A single-board detection whose corners become straight under truth.distort().

    `undefined` lists (row, col) cells to mark as not detected.
    """
    straight = projective_grid(rows, cols, **grid_kwargs)
    corners = truth.undistort(straight)
    if noise_px > 0.0:
        if rng is None:
            rng = np.random.default_rng(0)
        corners = corners + rng.normal(scale=float(noise_px), size=corners.shape)
    board = np.arange(rows * cols, dtype=np.int64).reshape(rows, cols)
    for i, j in undefined:
        board[i, j] = UNDEFINED_INDEX
    return CheckerBoardDetection(corners_px=corners, boards=(board,))


def generate_synthetic_scene(
    out_dir: Path,
    *,
    variant: str,
    params: Sequence[float],
    views: int = 2,
    rows: int = 12,
    cols: int = 14,
    width_px: int = 1000,
    height_px: int = 800,
    focal_px: float = 1000.0,
    noise_px: float = 0.0,
    seed: int = 0,
) -> Path:
    """
    Write scene.json plus checkerboards/checkers_<view_id>.json for one camera.

    The scene stores the camera with neutral distortion; the corners are distorted with
    `params` (line-fit direction, half-diagonal scale).
    """
    out_dir = Path(out_dir)
    rng = np.random.default_rng(int(seed))
    truth = truth_camera(variant, params, width_px=width_px, height_px=height_px)

    step_x = 0.7 * width_px / max(cols - 1, 1)
    step_y = 0.7 * height_px / max(rows - 1, 1)
    scene = SceneData(
        intrinsics={
            "0": PinholeCamera.create(width_px=width_px, height_px=height_px, focal_px=focal_px, variant=variant)
        }
    )
    for k in range(int(views)):
        vid = str(k)
        origin = (
            0.1 * width_px + rng.uniform(0.0, 0.05 * width_px),
            0.1 * height_px + rng.uniform(0.0, 0.05 * height_px),
        )
        det = synthetic_detection(
            truth,
            rows,
            cols,
            noise_px=noise_px,
            rng=rng,
            origin_px=origin,
            step_px=(step_x, step_y),
            shear=(rng.uniform(-0.05, 0.05), rng.uniform(-0.05, 0.05)),
            perspective=(rng.uniform(-3e-5, 3e-5), rng.uniform(-3e-5, 3e-5)),
        )
        save_checkerboard(out_dir / "checkerboards", vid, det)
        scene.views[vid] = View(view_id=vid, intrinsic_id="0", path=f"view_{vid}.png")

    return save_scene(out_dir / "scene.json", scene)

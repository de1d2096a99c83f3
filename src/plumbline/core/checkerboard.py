from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

UNDEFINED_INDEX = -1


class CheckerboardValidationError(ValueError):
    pass


@dataclass(frozen=True)
class CheckerBoardDetection:
    """
    Checkerboard detector output for one view.

    - `corners_px`: detected corner centers (N,2)
    - `boards`: one (rows, cols) integer grid per board; each cell indexes `corners_px`
      or holds UNDEFINED_INDEX when no corner was found there
    - `corner_scales`: optional per-corner detector scale (N,), carried through untouched
    """

    corners_px: np.ndarray  # (N,2)
    boards: tuple[np.ndarray, ...]
    corner_scales: np.ndarray | None = None

    @property
    def n_corners(self) -> int:
        return int(self.corners_px.shape[0])


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise CheckerboardValidationError(msg)


def _number(value: Any, name: str, kind: type = float) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise CheckerboardValidationError(f"{name} must be a number, got {value!r}") from e


def _parse_center(c: Any, i: int) -> tuple[float, float]:
    name = f"corners[{i}].center"
    if isinstance(c, dict) and "x" in c and "y" in c:
        return _number(c["x"], name), _number(c["y"], name)
    _require(isinstance(c, (list, tuple)) and len(c) == 2, f"{name} must be [x,y]")
    return _number(c[0], name), _number(c[1], name)


def parse_checkerboard_detection(data: dict[str, Any]) -> CheckerBoardDetection:
    schema_version = data.get("schema_version", "plumbline.checkers.v0")
    _require(schema_version == "plumbline.checkers.v0", "schema_version must be plumbline.checkers.v0")

    corners = data.get("corners")
    _require(isinstance(corners, list), "corners must be a list")
    centers = np.zeros((len(corners), 2), dtype=np.float64)
    scales = np.full((len(corners),), np.nan, dtype=np.float64)
    for i, c in enumerate(corners):
        _require(isinstance(c, dict) and "center" in c, f"corners[{i}] must have a center")
        centers[i] = _parse_center(c["center"], i)
        if c.get("scale") is not None:
            scales[i] = _number(c["scale"], f"corners[{i}].scale")
    _require(bool(np.all(np.isfinite(centers))), "corner centers must be finite")

    boards_raw = data.get("boards", [])
    _require(isinstance(boards_raw, list), "boards must be a list")
    boards: list[np.ndarray] = []
    for b, rows in enumerate(boards_raw):
        _require(isinstance(rows, list) and len(rows) > 0, f"boards[{b}] must be a non-empty list of rows")
        _require(all(isinstance(r, list) for r in rows), f"boards[{b}] rows must be lists")
        ncols = len(rows[0])
        _require(all(len(r) == ncols for r in rows), f"boards[{b}] rows must have equal length")
        grid = np.array(
            [[UNDEFINED_INDEX if v is None else _number(v, f"boards[{b}] cell", int) for v in r] for r in rows],
            dtype=np.int64,
        ).reshape(len(rows), ncols)
        defined = grid[grid != UNDEFINED_INDEX]
        _require(
            bool(np.all((defined >= 0) & (defined < centers.shape[0]))),
            f"boards[{b}] references a corner index out of range",
        )
        boards.append(grid)

    return CheckerBoardDetection(
        corners_px=centers,
        boards=tuple(boards),
        corner_scales=scales if np.any(np.isfinite(scales)) else None,
    )


def checkerboard_to_dict(det: CheckerBoardDetection) -> dict[str, Any]:
    corners: list[dict[str, Any]] = []
    for i, (x, y) in enumerate(np.asarray(det.corners_px, dtype=np.float64).tolist()):
        entry: dict[str, Any] = {"center": [float(x), float(y)]}
        if det.corner_scales is not None and np.isfinite(det.corner_scales[i]):
            entry["scale"] = float(det.corner_scales[i])
        corners.append(entry)
    return {
        "schema_version": "plumbline.checkers.v0",
        "corners": corners,
        "boards": [np.asarray(b, dtype=np.int64).tolist() for b in det.boards],
    }

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Mapping

import numpy as np

from plumbline.core.checkerboard import UNDEFINED_INDEX, CheckerBoardDetection

MIN_LINE_POINTS = 10
MIN_LINES = 2


class LineFamily(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    DIAGONAL_DOWN = "diagonal_down"
    DIAGONAL_UP = "diagonal_up"
    DIAGONAL_MIRRORED = "diagonal_mirrored"


@dataclass(frozen=True)
class Line:
    """Image points of one physically straight row, column or diagonal of a board."""

    points_px: np.ndarray  # (K,2)
    family: LineFamily
    board: int
    index: int

    @property
    def n_points(self) -> int:
        return int(self.points_px.shape[0])


def _walks(rows: int, cols: int) -> Iterator[tuple[LineFamily, int, np.ndarray, np.ndarray]]:
    """
    Yields (family, index, row_indices, col_indices) for every candidate line of a grid.

    Diagonal walks stop at the grid border.
    """
    for i in range(rows):
        yield LineFamily.HORIZONTAL, i, np.full((cols,), i), np.arange(cols)
    for j in range(cols):
        yield LineFamily.VERTICAL, j, np.arange(rows), np.full((rows,), j)
    for i in range(rows):
        jj = np.arange(min(cols, rows - i))
        yield LineFamily.DIAGONAL_DOWN, i, i + jj, jj
    for j in range(cols):
        ii = np.arange(min(rows, cols - j))
        yield LineFamily.DIAGONAL_UP, j, ii, ii + j
    for j in range(cols):
        ii = np.arange(min(rows, cols - j))
        yield LineFamily.DIAGONAL_MIRRORED, j, rows - 1 - ii, ii + j


def build_lines(
    detection: CheckerBoardDetection,
    *,
    min_points: int = MIN_LINE_POINTS,
    min_lines: int = MIN_LINES,
) -> list[Line]:
    """
    Group the corners of every board of a detection into straight-line point sets.

    Undefined cells are skipped without breaking the line. Lines with fewer than
    `min_points` points are dropped; if fewer than `min_lines` lines remain for the
    whole detection, the view is considered unusable and [] is returned.
    """
    corners = np.asarray(detection.corners_px, dtype=np.float64).reshape(-1, 2)
    lines: list[Line] = []
    for board_idx, board in enumerate(detection.boards):
        grid = np.asarray(board, dtype=np.int64)
        if grid.ndim != 2 or grid.size == 0:
            continue
        rows, cols = grid.shape
        for family, index, ii, jj in _walks(rows, cols):
            idx = grid[ii, jj]
            idx = idx[idx != UNDEFINED_INDEX]
            if idx.size < min_points:
                continue
            lines.append(Line(points_px=corners[idx].copy(), family=family, board=board_idx, index=int(index)))

    if len(lines) < min_lines:
        return []
    return lines


def gather_lines(
    detections: Mapping[str, CheckerBoardDetection],
    view_ids: Iterable[str],
    *,
    min_points: int = MIN_LINE_POINTS,
    min_lines: int = MIN_LINES,
) -> list[Line]:
    """Concatenate the lines of all listed views; views without a detection contribute nothing."""
    out: list[Line] = []
    for view_id in view_ids:
        det = detections.get(view_id)
        if det is None:
            continue
        out.extend(build_lines(det, min_points=min_points, min_lines=min_lines))
    return out


def stack_line_points(lines: Iterable[Line]) -> tuple[np.ndarray, np.ndarray]:
    """Returns (points (N,2), line_ids (N,)) with line_ids indexing the input order."""
    pts: list[np.ndarray] = []
    ids: list[np.ndarray] = []
    for k, line in enumerate(lines):
        p = np.asarray(line.points_px, dtype=np.float64).reshape(-1, 2)
        pts.append(p)
        ids.append(np.full((p.shape[0],), k, dtype=np.int64))
    if not pts:
        return np.zeros((0, 2), dtype=np.float64), np.zeros((0,), dtype=np.int64)
    return np.concatenate(pts, axis=0), np.concatenate(ids, axis=0)

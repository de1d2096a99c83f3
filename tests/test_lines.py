import numpy as np

from plumbline.core.checkerboard import UNDEFINED_INDEX, CheckerBoardDetection
from plumbline.core.lines import LineFamily, build_lines, gather_lines, stack_line_points


def _detection(rows: int, cols: int, undefined=()) -> CheckerBoardDetection:
    jj, ii = np.meshgrid(np.arange(cols, dtype=np.float64), np.arange(rows, dtype=np.float64))
    corners = np.stack([10.0 * jj, 10.0 * ii], axis=-1).reshape(-1, 2)
    board = np.arange(rows * cols, dtype=np.int64).reshape(rows, cols)
    for i, j in undefined:
        board[i, j] = UNDEFINED_INDEX
    return CheckerBoardDetection(corners_px=corners, boards=(board,))


def _family(lines, family):
    return [line for line in lines if line.family == family]


def test_full_grid_yields_one_line_per_row_and_column():
    lines = build_lines(_detection(10, 12))

    horizontal = _family(lines, LineFamily.HORIZONTAL)
    vertical = _family(lines, LineFamily.VERTICAL)
    assert len(horizontal) == 10
    assert len(vertical) == 12
    assert all(line.n_points == 12 for line in horizontal)
    assert all(line.n_points == 10 for line in vertical)
    assert [line.index for line in horizontal] == list(range(10))
    # Row 3 runs left to right at y = 30.
    assert np.allclose(horizontal[3].points_px[:, 1], 30.0)
    assert np.allclose(horizontal[3].points_px[:, 0], 10.0 * np.arange(12))


def test_diagonal_walks_stop_at_grid_border():
    lines = build_lines(_detection(10, 12))

    down = _family(lines, LineFamily.DIAGONAL_DOWN)
    up = _family(lines, LineFamily.DIAGONAL_UP)
    mirrored = _family(lines, LineFamily.DIAGONAL_MIRRORED)
    # Only walks with >= 10 cells survive: i=0 going down, j=0..2 going up/mirrored.
    assert [line.index for line in down] == [0]
    assert [line.index for line in up] == [0, 1, 2]
    assert [line.index for line in mirrored] == [0, 1, 2]
    assert all(line.n_points == 10 for line in down + up + mirrored)

    # Mirrored diagonal 0 starts at the bottom-left corner and climbs to the right.
    assert np.allclose(mirrored[0].points_px[0], [0.0, 90.0])
    assert np.allclose(mirrored[0].points_px[-1], [90.0, 0.0])


def test_nine_point_line_is_dropped_and_ten_point_sibling_kept():
    det = _detection(10, 11, undefined=[(0, 0), (0, 5), (1, 3)])
    horizontal = {line.index: line for line in _family(build_lines(det), LineFamily.HORIZONTAL)}

    assert 0 not in horizontal
    assert horizontal[1].n_points == 10
    assert horizontal[2].n_points == 11


def test_gaps_do_not_break_a_line():
    det = _detection(10, 12, undefined=[(4, 6)])
    row4 = [line for line in _family(build_lines(det), LineFamily.HORIZONTAL) if line.index == 4][0]

    expected_x = 10.0 * np.array([j for j in range(12) if j != 6])
    assert np.allclose(row4.points_px[:, 0], expected_x)


def test_small_board_is_insufficient():
    assert build_lines(_detection(5, 5)) == []


def test_min_lines_applies_to_the_whole_detection():
    # A single row gives one 12-point line and nothing else.
    det = _detection(1, 12)
    assert build_lines(det) == []
    assert len(build_lines(det, min_lines=1)) == 1


def test_lines_are_tagged_with_their_board():
    rows, cols = 10, 10
    single = _detection(rows, cols)
    corners = np.concatenate([single.corners_px, single.corners_px + 500.0], axis=0)
    b0 = np.arange(rows * cols, dtype=np.int64).reshape(rows, cols)
    det = CheckerBoardDetection(corners_px=corners, boards=(b0, b0 + rows * cols))

    lines = build_lines(det)
    per_board = len(build_lines(single))
    assert len(lines) == 2 * per_board
    assert {line.board for line in lines[:per_board]} == {0}
    assert {line.board for line in lines[per_board:]} == {1}
    assert np.all(lines[per_board].points_px >= 500.0)


def test_gather_lines_concatenates_views_and_skips_missing_ones():
    det_a = _detection(10, 10)
    det_b = _detection(10, 12)
    lines = gather_lines({"a": det_a, "b": det_b}, ["a", "missing", "b"])

    assert len(lines) == len(build_lines(det_a)) + len(build_lines(det_b))
    points, ids = stack_line_points(lines)
    assert points.shape[0] == sum(line.n_points for line in lines)
    assert ids.max() == len(lines) - 1

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from plumbline.core.checkerboard import (
    CheckerBoardDetection,
    checkerboard_to_dict,
    parse_checkerboard_detection,
)
from plumbline.scene import SceneData, parse_scene, scene_to_dict


def checkerboard_path(checkerboards_dir: Path, view_id: str) -> Path:
    return Path(checkerboards_dir) / f"checkers_{view_id}.json"


def load_scene(path: Path) -> SceneData:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_scene(data)


def save_scene(path: Path, scene: SceneData) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(scene_to_dict(scene), indent=2, sort_keys=True), encoding="utf-8")
    return path


def load_checkerboards(checkerboards_dir: Path, view_ids: Iterable[str]) -> dict[str, CheckerBoardDetection]:
    """
    Read `checkers_<view_id>.json` for every view. Views without a file are left out.
    """
    out: dict[str, CheckerBoardDetection] = {}
    for view_id in view_ids:
        p = checkerboard_path(checkerboards_dir, view_id)
        if not p.is_file():
            continue
        data = json.loads(p.read_text(encoding="utf-8"))
        out[view_id] = parse_checkerboard_detection(data)
    return out


def save_checkerboard(checkerboards_dir: Path, view_id: str, detection: CheckerBoardDetection) -> Path:
    checkerboards_dir = Path(checkerboards_dir)
    checkerboards_dir.mkdir(parents=True, exist_ok=True)
    p = checkerboard_path(checkerboards_dir, view_id)
    p.write_text(json.dumps(checkerboard_to_dict(detection), indent=2), encoding="utf-8")
    return p

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from plumbline.core.camera import PinholeCamera

SCHEMA_VERSION = "plumbline.scene.v0"


class SceneValidationError(ValueError):
    pass


@dataclass(frozen=True)
class View:
    view_id: str
    intrinsic_id: str
    path: str | None = None


@dataclass
class SceneData:
    """Views and the camera intrinsics they were taken with."""

    views: dict[str, View] = field(default_factory=dict)
    intrinsics: dict[str, PinholeCamera] = field(default_factory=dict)

    def views_by_intrinsic(self) -> dict[str, list[str]]:
        out: dict[str, list[str]] = {iid: [] for iid in self.intrinsics}
        for view in self.views.values():
            out.setdefault(view.intrinsic_id, []).append(view.view_id)
        return out


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise SceneValidationError(msg)


def _number(value: Any, name: str, kind: type = float) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise SceneValidationError(f"{name} must be a number, got {value!r}") from e


def _pair(value: Any, name: str) -> tuple[float, float]:
    _require(isinstance(value, (list, tuple)) and len(value) == 2, f"{name} must be [a,b]")
    a, b = _number(value[0], name), _number(value[1], name)
    _require(bool(np.isfinite(a) and np.isfinite(b)), f"{name} must be finite")
    return a, b


def parse_intrinsic(data: dict[str, Any]) -> tuple[str, PinholeCamera]:
    iid = data.get("intrinsic_id")
    _require(iid is not None, "intrinsics[].intrinsic_id is required")
    where = f"intrinsic {iid}"

    w_raw = data.get("width_px")
    h_raw = data.get("height_px")
    _require(w_raw is not None and h_raw is not None, f"{where}: width_px and height_px are required")
    w = _number(w_raw, f"{where}: width_px", int)
    h = _number(h_raw, f"{where}: height_px", int)
    _require(w > 0 and h > 0, f"{where}: width_px and height_px must be > 0")

    sx, sy = _pair(data.get("scale"), f"{where}: scale")
    _require(sx > 0.0 and sy > 0.0, f"{where}: scale must be > 0")
    ox, oy = _pair(data.get("offset_px", [0.0, 0.0]), f"{where}: offset_px")

    dist = data.get("distortion", {})
    _require(isinstance(dist, dict) and "type" in dist, f"{where}: distortion.type is required")
    params = dist.get("params", [])
    _require(isinstance(params, list), f"{where}: distortion.params must be a list")
    values = [_number(v, f"{where}: distortion.params[{i}]") for i, v in enumerate(params)]

    try:
        camera = PinholeCamera(
            width_px=w,
            height_px=h,
            scale=np.array([sx, sy], dtype=np.float64),
            offset_px=np.array([ox, oy], dtype=np.float64),
            variant=str(dist["type"]),
            params=np.asarray(values, dtype=np.float64),
        )
    except ValueError as e:
        raise SceneValidationError(f"{where}: {e}") from e
    return str(iid), camera


def parse_scene(data: dict[str, Any]) -> SceneData:
    schema_version = data.get("schema_version")
    _require(schema_version == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    intrinsics: dict[str, PinholeCamera] = {}
    raw_intrinsics = data.get("intrinsics", [])
    _require(isinstance(raw_intrinsics, list), "intrinsics must be a list")
    for entry in raw_intrinsics:
        _require(isinstance(entry, dict), "intrinsics[] entries must be objects")
        iid, camera = parse_intrinsic(entry)
        _require(iid not in intrinsics, f"duplicate intrinsic_id {iid}")
        intrinsics[iid] = camera

    views: dict[str, View] = {}
    raw_views = data.get("views", [])
    _require(isinstance(raw_views, list), "views must be a list")
    for entry in raw_views:
        _require(isinstance(entry, dict), "views[] entries must be objects")
        vid = entry.get("view_id")
        iid = entry.get("intrinsic_id")
        _require(vid is not None and iid is not None, "views[] need view_id and intrinsic_id")
        vid, iid = str(vid), str(iid)
        _require(vid not in views, f"duplicate view_id {vid}")
        _require(iid in intrinsics, f"view {vid} references unknown intrinsic {iid}")
        path = entry.get("path")
        views[vid] = View(view_id=vid, intrinsic_id=iid, path=None if path is None else str(path))

    return SceneData(views=views, intrinsics=intrinsics)


def intrinsic_to_dict(intrinsic_id: str, camera: PinholeCamera) -> dict[str, Any]:
    return {
        "intrinsic_id": intrinsic_id,
        "width_px": int(camera.width_px),
        "height_px": int(camera.height_px),
        "scale": [float(v) for v in camera.scale.tolist()],
        "offset_px": [float(v) for v in camera.offset_px.tolist()],
        "distortion": {"type": camera.variant, "params": camera.get_parameters()},
    }


def scene_to_dict(scene: SceneData) -> dict[str, Any]:
    views: list[dict[str, Any]] = []
    for view in scene.views.values():
        entry: dict[str, Any] = {"view_id": view.view_id, "intrinsic_id": view.intrinsic_id}
        if view.path is not None:
            entry["path"] = view.path
        views.append(entry)
    return {
        "schema_version": SCHEMA_VERSION,
        "views": views,
        "intrinsics": [intrinsic_to_dict(iid, cam) for iid, cam in scene.intrinsics.items()],
    }

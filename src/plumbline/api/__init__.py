from plumbline.api.scene_io import load_checkerboards, load_scene, save_checkerboard, save_scene

__all__ = [
    "load_scene",
    "save_scene",
    "load_checkerboards",
    "save_checkerboard",
]

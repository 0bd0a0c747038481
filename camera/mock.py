# -- coding: utf-8 --

import logging
import os
import random
import re
from contextlib import contextmanager

import cv2
import numpy as np

from camera.base import BaseCamera, CameraConfig, register_camera
from core.contracts import CaptureDeviceError

L = logging.getLogger("reflex_runtime.camera.mock")

_SUPPORTED_EXTS = {".jpg", ".jpeg", ".png", ".bmp"}
_ORDER_CHOICES = {"name_asc", "name_desc", "name_natural", "random"}
_END_CHOICES = {"loop", "stop", "hold"}


def _natural_key(name: str):
    return [int(part) if part.isdigit() else part.lower() for part in re.split(r"(\d+)", name)]


def _list_images(root_dir: str) -> list[str]:
    files = []
    for name in os.listdir(root_dir):
        full = os.path.join(root_dir, name)
        if os.path.isfile(full) and os.path.splitext(name)[1].lower() in _SUPPORTED_EXTS:
            files.append(full)
    return files


def _sort_images(paths: list[str], order: str) -> list[str]:
    if order == "name_asc":
        return sorted(paths, key=lambda p: os.path.basename(p).lower())
    if order == "name_desc":
        return sorted(paths, key=lambda p: os.path.basename(p).lower(), reverse=True)
    if order == "name_natural":
        return sorted(paths, key=lambda p: _natural_key(os.path.basename(p)))
    shuffled = list(paths)
    random.shuffle(shuffled)
    return shuffled


def _load_image_bgr(path: str) -> np.ndarray:
    arr = cv2.imread(path, cv2.IMREAD_COLOR)
    if arr is None:
        # cv2.imread cannot open non-ASCII paths on some platforms.
        data = np.fromfile(path, dtype=np.uint8)
        arr = cv2.imdecode(data, cv2.IMREAD_COLOR) if data.size else None
    if arr is None:
        raise RuntimeError(f"opencv_imread_failed: {path}")
    return arr.astype(np.uint8, copy=False)


@register_camera("mock")
class MockCamera(BaseCamera):
    """Replays an image directory as a frame stream (one image per read)."""

    def __init__(self, cfg: CameraConfig):
        super().__init__(cfg)
        self._frames: list[np.ndarray] = []
        self._pos = 0
        self._order = str(cfg.order or "name_asc").strip().lower()
        self._end_mode = str(cfg.end_mode or "hold").strip().lower()

    def _scan(self, root_dir: str):
        if self._order not in _ORDER_CHOICES:
            raise ValueError(
                f"mock order must be one of {sorted(_ORDER_CHOICES)}, got {self._order!r}"
            )
        if self._end_mode not in _END_CHOICES:
            raise ValueError(
                f"mock end_mode must be one of {sorted(_END_CHOICES)}, got {self._end_mode!r}"
            )
        paths = _sort_images(_list_images(root_dir), self._order)
        if not paths:
            raise CaptureDeviceError(f"no images found in {root_dir}")
        # Frames are small; decode once so replay cost stays per-tick constant.
        self._frames = [_load_image_bgr(p) for p in paths]
        self._pos = 0

    def read_frame(self):
        if not self._frames:
            return None
        if self._pos >= len(self._frames):
            if self._end_mode == "loop":
                self._pos = 0
            elif self._end_mode == "hold":
                return self._frames[-1].copy()
            else:
                return None
        frame = self._frames[self._pos]
        self._pos += 1
        return frame.copy()

    @contextmanager
    def session(self):
        base = str(self.cfg.image_dir or "").strip()
        if not base:
            raise CaptureDeviceError("mock image_dir is required")
        root_dir = os.path.abspath(base)
        if not os.path.isdir(root_dir):
            raise CaptureDeviceError(f"mock image_dir not found: {root_dir}")
        self._scan(root_dir)
        L.info("mock camera: %d frames from %s", len(self._frames), root_dir)
        try:
            yield self
        finally:
            self._frames = []


__all__ = ["MockCamera"]

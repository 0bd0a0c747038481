# -- coding: utf-8 --

import logging
import sys
from contextlib import contextmanager

import cv2

from camera.base import BaseCamera, CameraConfig, register_camera
from core.contracts import CaptureDeviceError

L = logging.getLogger("reflex_runtime.camera.opencv")


@register_camera("opencv")
class OpenCVCamera(BaseCamera):
    # About half a second of empty reads at the default fps.
    MAX_READ_FAILURES = 30

    def __init__(self, cfg: CameraConfig):
        super().__init__(cfg)
        self._cap: cv2.VideoCapture | None = None
        self._read_failures = 0

    def read_frame(self):
        if self._cap is None:
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None:
            self._read_failures += 1
            if self._read_failures >= self.MAX_READ_FAILURES:
                raise CaptureDeviceError(
                    f"camera device {self.cfg.device_index} stopped delivering frames"
                )
            return None
        self._read_failures = 0
        return frame

    @contextmanager
    def session(self):
        backend = cv2.CAP_DSHOW if sys.platform.startswith("win") else cv2.CAP_ANY
        cap = cv2.VideoCapture(int(self.cfg.device_index), backend)
        if not cap.isOpened():
            cap.release()
            raise CaptureDeviceError(
                f"could not open camera device {self.cfg.device_index}"
            )
        if self.cfg.width and self.cfg.height:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, int(self.cfg.width))
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, int(self.cfg.height))
        if self.cfg.fps:
            cap.set(cv2.CAP_PROP_FPS, int(self.cfg.fps))
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        L.info(
            "camera %d open: %dx%d @ %.0ffps",
            self.cfg.device_index,
            int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            cap.get(cv2.CAP_PROP_FPS),
        )
        self._cap = cap
        self._read_failures = 0
        try:
            yield self
        finally:
            self._cap = None
            cap.release()


__all__ = ["OpenCVCamera"]

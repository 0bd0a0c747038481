# -- coding: utf-8 --

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Type

import numpy as np

from core.registry import register_named, resolve_registered

CameraFactory = Dict[str, Type["BaseCamera"]]
_registry: CameraFactory = {}


@dataclass
class CameraConfig:
    device_index: int = 0
    width: int = 320
    height: int = 240
    fps: int = 60
    image_dir: str = ""
    order: str = "name_asc"
    end_mode: str = "hold"


def build_camera_config(cfg_block) -> CameraConfig:
    return CameraConfig(
        device_index=int(cfg_block.device_index),
        width=int(cfg_block.width),
        height=int(cfg_block.height),
        fps=int(cfg_block.fps),
        image_dir=str(cfg_block.image_dir),
        order=str(cfg_block.order),
        end_mode=str(cfg_block.end_mode),
    )


class BaseCamera(ABC):
    def __init__(self, cfg: CameraConfig):
        self.cfg = cfg

    @abstractmethod
    def read_frame(self) -> np.ndarray | None:
        """Next frame as an (H, W, C>=3) uint8 array, or None if none is ready."""

    def iter_frames(self) -> Iterator[np.ndarray | None]:
        while True:
            yield self.read_frame()

    @contextmanager
    @abstractmethod
    def session(self):
        """Manage camera lifecycle; raise CaptureDeviceError if unavailable."""
        yield


def register_camera(name: str):
    return register_named(_registry, name)


def create_camera(name: str, cfg: CameraConfig) -> BaseCamera:
    cls = resolve_registered(
        _registry,
        name,
        package=__package__ or "camera",
        unknown_label="camera type",
    )
    return cls(cfg)


def create_camera_from_loaded_config(cfg) -> BaseCamera:
    return create_camera(cfg.camera.type, build_camera_config(cfg.camera))


__all__ = [
    "CameraConfig",
    "build_camera_config",
    "BaseCamera",
    "register_camera",
    "create_camera",
    "create_camera_from_loaded_config",
]

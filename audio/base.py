# -- coding: utf-8 --

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Type

from core.registry import register_named, resolve_registered

AudioFactory = Dict[str, Type["BaseAudioSource"]]
_registry: AudioFactory = {}


@dataclass
class AudioConfig:
    device_index: int = -1
    sample_rate: int = 44100
    fft_size: int = 256
    gain: float = 4.0
    smoothing: float = 0.8
    levels: list[float] = field(default_factory=list)


def build_audio_config(cfg_block) -> AudioConfig:
    return AudioConfig(
        device_index=int(cfg_block.device_index),
        sample_rate=int(cfg_block.sample_rate),
        fft_size=int(cfg_block.fft_size),
        gain=float(cfg_block.gain),
        smoothing=float(cfg_block.smoothing),
        levels=[float(v) for v in (cfg_block.levels or [])],
    )


class BaseAudioSource(ABC):
    def __init__(self, cfg: AudioConfig):
        self.cfg = cfg

    @abstractmethod
    def read_level(self) -> float | None:
        """Latest loudness level in 0..100, or None if no samples yet."""

    @contextmanager
    @abstractmethod
    def session(self):
        """Open the device; raise CaptureDeviceError if it is unavailable."""
        yield


def register_audio(name: str):
    return register_named(_registry, name)


def create_audio_source(name: str, cfg: AudioConfig) -> BaseAudioSource:
    cls = resolve_registered(
        _registry,
        name,
        package=__package__ or "audio",
        unknown_label="audio type",
    )
    return cls(cfg)


def create_audio_source_from_loaded_config(cfg) -> BaseAudioSource | None:
    """None when the variant runs without a microphone (`audio.type: none`)."""
    if cfg.audio.type == "none":
        return None
    return create_audio_source(cfg.audio.type, build_audio_config(cfg.audio))


__all__ = [
    "AudioConfig",
    "BaseAudioSource",
    "build_audio_config",
    "register_audio",
    "create_audio_source",
    "create_audio_source_from_loaded_config",
]

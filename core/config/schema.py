"""Typed config schema blocks shared by loader/validator/runtime."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


class ConfigError(Exception):
    pass


VARIANT_REFLEX = "reflex"
VARIANT_GATE = "gate"
VARIANTS = (VARIANT_REFLEX, VARIANT_GATE)


@dataclass
class RuntimeConfig:
    data_dir: str = "data"
    max_runtime_s: float = 0.0
    log_level: str = "info"


@dataclass
class SessionConfigBlock:
    variant: str = VARIANT_GATE
    stabilization_ms: float = 1000.0


@dataclass
class CameraConfigBlock:
    type: str = "opencv"
    device_index: int = 0
    width: int = 320
    height: int = 240
    fps: int = 60
    image_dir: str = ""
    order: str = "name_asc"
    end_mode: str = "hold"


@dataclass
class AudioConfigBlock:
    type: str = "none"
    rate_hz: float = 60.0
    device_index: int = -1
    sample_rate: int = 44100
    fft_size: int = 256
    gain: float = 4.0
    smoothing: float = 0.8
    levels: List[float] = field(default_factory=list)


@dataclass
class ZonePointBlock:
    x: int = 0
    y: int = 0


@dataclass
class ZonesConfigBlock:
    radius: int = 40
    gate: Optional[ZonePointBlock] = None
    pilot: Optional[ZonePointBlock] = None


@dataclass
class DetectConfigBlock:
    config_file: str = ""


@dataclass
class DetectParams:
    pixel_threshold: int = 100
    stride: int = 8
    mode: str = "count"
    scale: float = 1000.0
    low_threshold: float = 10.0
    high_threshold: float = 25.0
    audio_low_threshold: float = 15.0
    audio_high_threshold: float = 25.0


@dataclass
class OutputHmiConfigBlock:
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass
class OutputHistoryConfigBlock:
    enabled: bool = True
    size: int = 10
    file: str = "history.json"


@dataclass
class OutputConfigBlock:
    hmi: OutputHmiConfigBlock = field(default_factory=OutputHmiConfigBlock)
    history: OutputHistoryConfigBlock = field(default_factory=OutputHistoryConfigBlock)


@dataclass
class LoadedConfig:
    runtime: RuntimeConfig
    session: SessionConfigBlock
    camera: CameraConfigBlock
    audio: AudioConfigBlock
    zones: ZonesConfigBlock
    detect: DetectConfigBlock
    output: OutputConfigBlock
    detect_params: DetectParams
    paths: Dict[str, str] = field(default_factory=dict)


__all__ = [
    "ConfigError",
    "VARIANT_REFLEX",
    "VARIANT_GATE",
    "VARIANTS",
    "RuntimeConfig",
    "SessionConfigBlock",
    "CameraConfigBlock",
    "AudioConfigBlock",
    "ZonePointBlock",
    "ZonesConfigBlock",
    "DetectConfigBlock",
    "DetectParams",
    "OutputHmiConfigBlock",
    "OutputHistoryConfigBlock",
    "OutputConfigBlock",
    "LoadedConfig",
]

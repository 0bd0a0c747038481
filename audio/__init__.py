from .base import (
    AudioConfig,
    BaseAudioSource,
    build_audio_config,
    create_audio_source,
    create_audio_source_from_loaded_config,
    register_audio,
)
from .level import SpectrumLevelMeter

__all__ = [
    "AudioConfig",
    "BaseAudioSource",
    "build_audio_config",
    "create_audio_source",
    "create_audio_source_from_loaded_config",
    "register_audio",
    "SpectrumLevelMeter",
]

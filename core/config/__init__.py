"""Config package facade."""

from .loader import load_config
from .schema import VARIANT_GATE, VARIANT_REFLEX, ConfigError, DetectParams, LoadedConfig
from .validate import validate_config

__all__ = [
    "ConfigError",
    "DetectParams",
    "LoadedConfig",
    "VARIANT_GATE",
    "VARIANT_REFLEX",
    "load_config",
    "validate_config",
]

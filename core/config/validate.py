"""Runtime config value validation."""

from __future__ import annotations

from typing import Any

from .schema import VARIANT_REFLEX, VARIANTS, ConfigError, LoadedConfig

_DETECT_MODES = ("count", "normalized")


def validate_config(cfg: LoadedConfig) -> None:
    # runtime
    _require_float("runtime.max_runtime_s", cfg.runtime.max_runtime_s, min_v=0.0)
    _require_choice("runtime.log_level", cfg.runtime.log_level,
                    ("debug", "info", "warning", "warn", "error", "critical"))

    # session
    _require_choice("session.variant", cfg.session.variant, VARIANTS)
    _require_float("session.stabilization_ms", cfg.session.stabilization_ms, min_v=0.0)

    # camera
    _require_nonempty("camera.type", cfg.camera.type)
    _require_int("camera.device_index", cfg.camera.device_index, min_v=0)
    _require_int("camera.width", cfg.camera.width, min_v=0)
    _require_int("camera.height", cfg.camera.height, min_v=0)
    _require_int("camera.fps", cfg.camera.fps, min_v=1, max_v=240)

    # audio
    _require_nonempty("audio.type", cfg.audio.type)
    if cfg.session.variant == VARIANT_REFLEX and cfg.audio.type == "none":
        raise ConfigError("audio.type must not be 'none' for the reflex variant")
    _require_float("audio.rate_hz", cfg.audio.rate_hz, min_v=1.0, max_v=1000.0)
    _require_int("audio.device_index", cfg.audio.device_index, min_v=-1)
    _require_int("audio.sample_rate", cfg.audio.sample_rate, min_v=8000)
    fft_size = _require_int("audio.fft_size", cfg.audio.fft_size, min_v=32, max_v=32768)
    if fft_size & (fft_size - 1):
        raise ConfigError("audio.fft_size must be a power of two")
    _require_float("audio.gain", cfg.audio.gain, min_v=0.001)
    _require_float("audio.smoothing", cfg.audio.smoothing, min_v=0.0, max_v=0.999)
    _require_number_list("audio.levels", cfg.audio.levels)

    # zones
    _require_int("zones.radius", cfg.zones.radius, min_v=1)
    for name in ("gate", "pilot"):
        point = getattr(cfg.zones, name)
        if point is not None:
            _require_int(f"zones.{name}.x", point.x, min_v=0)
            _require_int(f"zones.{name}.y", point.y, min_v=0)

    # detect
    params = cfg.detect_params
    _require_int("detect.pixel_threshold", params.pixel_threshold, min_v=0, max_v=765)
    _require_int("detect.stride", params.stride, min_v=1)
    _require_choice("detect.mode", params.mode, _DETECT_MODES)
    _require_float("detect.scale", params.scale, min_v=0.001)
    _require_threshold_pair("detect", params.low_threshold, params.high_threshold)
    _require_threshold_pair(
        "detect.audio", params.audio_low_threshold, params.audio_high_threshold
    )

    # output
    _require_port("output.hmi.port", cfg.output.hmi.port)
    _require_int("output.history.size", cfg.output.history.size, min_v=1)
    _require_nonempty("output.history.file", cfg.output.history.file)


def _require_int(
    name: str, value: Any, *, min_v: int | None = None, max_v: int | None = None
) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer")
    try:
        iv = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer") from e
    if min_v is not None and iv < min_v:
        op = ">=" if min_v != 1 else ">"
        threshold = min_v if min_v != 1 else 0
        raise ConfigError(f"{name} must be {op} {threshold}")
    if max_v is not None and iv > max_v:
        raise ConfigError(f"{name} must be <= {max_v}")
    return iv


def _require_float(
    name: str, value: Any, *, min_v: float | None = None, max_v: float | None = None
) -> float:
    try:
        fv = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number") from e
    if min_v is not None and fv < min_v:
        raise ConfigError(f"{name} must be >= {min_v:g}")
    if max_v is not None and fv > max_v:
        raise ConfigError(f"{name} must be <= {max_v:g}")
    return fv


def _require_port(name: str, value: Any) -> int:
    return _require_int(name, value, min_v=1, max_v=65535)


def _require_choice(name: str, value: Any, choices) -> str:
    sv = str(value or "").strip().lower()
    if sv not in choices:
        raise ConfigError(f"{name} must be one of {', '.join(choices)}")
    return sv


def _require_nonempty(name: str, value: Any) -> str:
    sv = str(value or "").strip()
    if not sv:
        raise ConfigError(f"{name} must not be empty")
    return sv


def _require_number_list(name: str, value: Any) -> list[float]:
    if not isinstance(value, list):
        raise ConfigError(f"{name} must be a list of numbers")
    for i, item in enumerate(value):
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise ConfigError(f"{name}[{i}] must be a number")
    return value


def _require_threshold_pair(prefix: str, low: Any, high: Any) -> None:
    lo = _require_float(f"{prefix}.low_threshold", low, min_v=0.0)
    hi = _require_float(f"{prefix}.high_threshold", high, min_v=0.0)
    if hi <= lo:
        raise ConfigError(f"{prefix}.high_threshold must be > {prefix}.low_threshold")


__all__ = ["validate_config"]

"""YAML loader and section builders for runtime configuration."""

from __future__ import annotations

import glob
import os
from typing import Any

import yaml

from .schema import (
    AudioConfigBlock,
    CameraConfigBlock,
    ConfigError,
    DetectConfigBlock,
    DetectParams,
    LoadedConfig,
    OutputConfigBlock,
    OutputHistoryConfigBlock,
    OutputHmiConfigBlock,
    RuntimeConfig,
    SessionConfigBlock,
    ZonePointBlock,
    ZonesConfigBlock,
)

_MAIN_SECTIONS = {"runtime", "session", "camera", "audio", "zones", "detect", "output"}


def load_config(config_dir: str = "config") -> LoadedConfig:
    main_path = _find_main_config(config_dir)
    main_data = _read_yaml(main_path)
    _validate_allowed_keys(main_data, _MAIN_SECTIONS, "<root>", main_path)

    runtime = _build_dataclass(
        RuntimeConfig, _section(main_data, "runtime", main_path), main_path, section="runtime"
    )
    session = _build_dataclass(
        SessionConfigBlock, _section(main_data, "session", main_path), main_path, section="session"
    )
    camera = _build_typed_config(
        CameraConfigBlock, main_data.get("camera"), main_path, section="camera"
    )
    audio = _build_typed_config(
        AudioConfigBlock, main_data.get("audio"), main_path, section="audio"
    )
    zones = _build_zones_config(_section(main_data, "zones", main_path), main_path)
    detect = _build_dataclass(
        DetectConfigBlock, _section(main_data, "detect", main_path), main_path, section="detect"
    )
    output = _build_output_config(_section(main_data, "output", main_path), main_path)

    detect_path = ""
    detect_data: dict[str, Any] = {}
    if detect.config_file:
        detect_path = detect.config_file
        if not os.path.isabs(detect_path):
            detect_path = os.path.join(config_dir, detect_path)
        if not os.path.exists(detect_path):
            raise ConfigError(f"Detect config not found: {detect_path}")
        detect_data = _read_yaml(detect_path)
    detect_params = _build_dataclass(
        DetectParams, detect_data, detect_path or main_path, section="detect_params"
    )
    return LoadedConfig(
        runtime=runtime,
        session=session,
        camera=camera,
        audio=audio,
        zones=zones,
        detect=detect,
        output=output,
        detect_params=detect_params,
        paths={
            "main": main_path,
            "detect": detect_path,
        },
    )


def _find_main_config(config_dir: str) -> str:
    patterns = [
        os.path.join(config_dir, "main_*.yaml"),
        os.path.join(config_dir, "main_*.yml"),
    ]
    candidates: list[str] = []
    for pattern in patterns:
        candidates.extend(glob.glob(pattern))
    if len(candidates) == 0:
        raise ConfigError(f"No main_*.yaml found under {config_dir}")
    if len(candidates) > 1:
        raise ConfigError(
            f"Expected exactly one main_*.yaml, found: {', '.join(sorted(candidates))}"
        )
    return candidates[0]


def _read_yaml(path: str) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"YAML root must be a mapping: {path}")
    return data


def _section(data: dict[str, Any], name: str, main_path: str) -> dict[str, Any]:
    block = data.get(name)
    if block is None:
        return {}
    if not isinstance(block, dict):
        raise ConfigError(f"'{name}' must be a mapping in {main_path}")
    return block


def _build_dataclass(cls, data: dict[str, Any], main_path: str, section: str):
    obj = cls()
    fields = cls.__dataclass_fields__
    for k, v in (data or {}).items():
        if k in fields:
            setattr(obj, k, v)
        else:
            raise ConfigError(f"Unknown field {section}.{k} in {main_path}")
    return obj


def _validate_allowed_keys(
    data: dict[str, Any], allowed_keys: set[str], section: str, main_path: str
) -> None:
    for key in data.keys():
        if key not in allowed_keys:
            raise ConfigError(f"Unknown field {section}.{key} in {main_path}")


def _build_typed_config(cls, data: Any, main_path: str, *, section: str):
    """
    Sections with a `type` selector: scalar keys other than `type` live under
    `common` or under the block named after the selected type, e.g.
    camera: {type: mock, common: {...}, mock: {image_dir: ...}}.
    """
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"'{section}' must be a mapping in {main_path}")

    cfg = cls()
    if "type" in data:
        cfg.type = str(data.get("type") or cfg.type)
    selected_type = str(cfg.type or "").strip()
    known_fields = cls.__dataclass_fields__

    def _apply_fields(block: dict[str, Any], sub: str):
        for k, v in block.items():
            if k in known_fields and k != "type":
                setattr(cfg, k, v)
            else:
                raise ConfigError(f"Unknown field {sub}.{k} in {main_path}")

    for key, value in data.items():
        if key in {"type", "common"}:
            continue
        if isinstance(value, dict):
            continue
        raise ConfigError(
            f"{section}.{key} must be nested under {section}.common or {section}.{selected_type} in {main_path}"
        )

    common_data = data.get("common")
    if common_data is not None:
        if not isinstance(common_data, dict):
            raise ConfigError(f"'{section}.common' must be a mapping in {main_path}")
        _apply_fields(common_data, f"{section}.common")

    selected_block = data.get(selected_type)
    if selected_block is not None:
        if not isinstance(selected_block, dict):
            raise ConfigError(
                f"'{section}.{selected_type}' must be a mapping in {main_path}"
            )
        _apply_fields(selected_block, f"{section}.{selected_type}")
    return cfg


def _build_zones_config(data: dict[str, Any], main_path: str) -> ZonesConfigBlock:
    cfg = ZonesConfigBlock()
    _validate_allowed_keys(data, {"radius", "gate", "pilot"}, "zones", main_path)
    if "radius" in data:
        cfg.radius = data["radius"]
    for key in ("gate", "pilot"):
        block = data.get(key)
        if block is None:
            continue
        if not isinstance(block, dict):
            raise ConfigError(f"'zones.{key}' must be a mapping in {main_path}")
        setattr(
            cfg,
            key,
            _build_dataclass(ZonePointBlock, block, main_path, section=f"zones.{key}"),
        )
    return cfg


def _build_output_config(data: dict[str, Any], main_path: str) -> OutputConfigBlock:
    cfg = OutputConfigBlock()
    _validate_allowed_keys(data, {"hmi", "history"}, "output", main_path)
    for key, cls in (("hmi", OutputHmiConfigBlock), ("history", OutputHistoryConfigBlock)):
        block = data.get(key)
        if block is None:
            continue
        if not isinstance(block, dict):
            raise ConfigError(f"'output.{key}' must be a mapping in {main_path}")
        setattr(cfg, key, _build_dataclass(cls, block, main_path, section=f"output.{key}"))
    return cfg


__all__ = ["load_config"]

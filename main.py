# -- coding: utf-8 --

import argparse
import logging
import time

from audio import create_audio_source_from_loaded_config
from camera import create_camera_from_loaded_config
from core.config import ConfigError, load_config, validate_config
from core.runtime import build_runtime_from_loaded_config


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="ReflexRuntime reaction-time tester (config-driven)",
    )
    p.add_argument(
        "--config-dir", default="config/gate", help="Directory containing main_*.yaml"
    )
    p.add_argument("--verbose", action="store_true", help="Debug log")
    p.add_argument(
        "--log-level", default="", help="Override log level (debug/info/warning/error)"
    )
    return p.parse_args(argv)


def setup_logging(verbose: bool, log_level: str = ""):
    if verbose:
        level = logging.DEBUG
    else:
        level_map = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "warn": logging.WARNING,
            "error": logging.ERROR,
            "critical": logging.CRITICAL,
        }
        level = level_map.get(str(log_level or "").strip().lower(), logging.INFO)
    # Use UTC for all %(asctime)s timestamps in logs.
    logging.Formatter.converter = time.gmtime
    logging.basicConfig(
        level=level, format="%(asctime)sZ [%(levelname)s] %(message)s", force=True
    )
    if not verbose:
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose, args.log_level)
    try:
        cfg = load_config(args.config_dir)
        validate_config(cfg)
    except ConfigError as e:
        logging.error("Config invalid: %s", e)
        raise SystemExit(1) from e
    # Config-driven log level (unless overridden by CLI).
    if not args.verbose and not args.log_level:
        setup_logging(args.verbose, cfg.runtime.log_level)

    logging.info(
        "Starting: variant=%s camera=%s audio=%s hmi=%s runtime=%s",
        cfg.session.variant,
        cfg.camera.type,
        cfg.audio.type,
        f"{cfg.output.hmi.host}:{cfg.output.hmi.port}"
        if cfg.output.hmi.enabled
        else "off",
        f"{cfg.runtime.max_runtime_s}s" if cfg.runtime.max_runtime_s else "unlimited",
    )
    logging.info(
        "Config files: main=%s detect=%s",
        cfg.paths.get("main"),
        cfg.paths.get("detect") or "-",
    )

    try:
        camera = create_camera_from_loaded_config(cfg)
        audio = create_audio_source_from_loaded_config(cfg)
        runtime = build_runtime_from_loaded_config(cfg, camera=camera, audio=audio)
    except ValueError as e:
        logging.error("Config invalid: %s", e)
        raise SystemExit(1) from e

    try:
        runtime.start()
        runtime.run(
            runtime_limit_s=cfg.runtime.max_runtime_s
            if cfg.runtime.max_runtime_s > 0
            else None
        )
        logging.info("Done")
    except KeyboardInterrupt:
        runtime.stop()
        logging.info("Service STOPPED by user (Ctrl+C)")
    except Exception:
        logging.exception("Error")
        raise


if __name__ == "__main__":
    main()

"""Core runtime: capture loop, ReactionRuntime orchestration, and assembly."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import ExitStack
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

import numpy as np

from core.contracts import CaptureDeviceError, IntervalResult
from core.engine import ReactionEngine, build_engine
from core.lifecycle import LoopRunner
from trigger.gateway import (
    CMD_ARM,
    CMD_CLEAR_HISTORY,
    CMD_PLACE_ZONE,
    CMD_RESET,
    CMD_SETUP,
    CommandGateway,
    UserCommand,
)

if TYPE_CHECKING:  # pragma: no cover
    from audio.base import BaseAudioSource
    from camera.base import BaseCamera
    from output.manager import OutputManager

L = logging.getLogger("reflex_runtime.runtime")

# Upper bound on one idle sleep so commands are picked up promptly.
MAX_IDLE_SLEEP_S = 0.005


def monotonic_ms() -> float:
    return time.perf_counter() * 1000.0


@dataclass
class AppContext:
    command_gateway: CommandGateway
    outputs: "OutputManager"
    placeable_zones: tuple[str, ...] = ()


class CaptureLoop:
    """
    One scheduler step per call: due deferred calls, queued user commands,
    then a video tick and an audio tick when their periods have elapsed.
    Everything touching the session happens here, on the caller's thread.
    """

    def __init__(
        self,
        engine: ReactionEngine,
        *,
        commands: CommandGateway,
        outputs: "OutputManager",
        frames: Iterator[np.ndarray | None] | None = None,
        read_level: Callable[[], float | None] | None = None,
        fps: float = 60.0,
        audio_rate_hz: float = 60.0,
    ):
        self.engine = engine
        self.commands = commands
        self.outputs = outputs
        self.frames = frames
        self.read_level = read_level
        self.video_period_ms = 1000.0 / max(float(fps), 1.0)
        self.audio_period_ms = 1000.0 / max(float(audio_rate_hz), 1.0)
        self._next_video_ms: float | None = None
        self._next_audio_ms: float | None = None
        self.frame_count = 0

    def step(self, now: float):
        engine = self.engine
        engine.scheduler.run_due(now)
        for cmd in self.commands.drain():
            self.apply_command(cmd, now)

        if self.frames is not None and (
            self._next_video_ms is None or now >= self._next_video_ms
        ):
            self._next_video_ms = now + self.video_period_ms
            try:
                frame = next(self.frames, None)
            except CaptureDeviceError as e:
                self.frames = None
                frame = None
                engine.fail(str(e))
            if frame is not None:
                self.frame_count += 1
                scores = engine.process_frame(frame, now)
                L.debug("frame %d scores=%s", self.frame_count, scores)

        if self.read_level is not None and (
            self._next_audio_ms is None or now >= self._next_audio_ms
        ):
            self._next_audio_ms = now + self.audio_period_ms
            try:
                level = self.read_level()
            except CaptureDeviceError as e:
                self.read_level = None
                engine.fail(str(e))
            else:
                engine.process_audio(level, now)

        self.outputs.update_status(engine.status())

    def next_due_ms(self) -> float | None:
        due = [t for t in (self._next_video_ms, self._next_audio_ms) if t is not None]
        return min(due) if due else None

    def apply_command(self, cmd: UserCommand, now: float):
        engine = self.engine
        L.info("command #%d %s %s", cmd.seq, cmd.name, cmd.payload or "")
        try:
            if cmd.name == CMD_ARM:
                engine.arm(now)
            elif cmd.name == CMD_RESET:
                engine.reset()
            elif cmd.name == CMD_SETUP:
                engine.enter_setup()
            elif cmd.name == CMD_PLACE_ZONE:
                payload = cmd.payload
                engine.place_zone(
                    str(payload.get("which", "")),
                    (int(payload.get("x", -1)), int(payload.get("y", -1))),
                )
            elif cmd.name == CMD_CLEAR_HISTORY:
                self.outputs.clear_history(bool(cmd.payload.get("confirm")))
            else:
                raise ValueError(f"Unknown command '{cmd.name}'")
        except ValueError as e:
            L.warning("command #%d %s rejected: %s", cmd.seq, cmd.name, e)


class ReactionRuntime:
    """Owns device sessions, the capture loop, and output channels."""

    def __init__(
        self,
        engine: ReactionEngine,
        *,
        camera: "BaseCamera",
        audio: Optional["BaseAudioSource"],
        outputs: "OutputManager",
        app_context: AppContext,
        loop_runner: LoopRunner,
        fps: float = 60.0,
        audio_rate_hz: float = 60.0,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self.engine = engine
        self.camera = camera
        self.audio = audio
        self.outputs = outputs
        self.app_context = app_context
        self.loop_runner = loop_runner
        self.clock = clock
        self.capture = CaptureLoop(
            engine,
            commands=app_context.command_gateway,
            outputs=outputs,
            fps=fps,
            audio_rate_hz=audio_rate_hz,
        )
        self._stop_evt = threading.Event()
        self._device_stack: ExitStack | None = None
        self._started = False
        self._stopped = False

    def start(self):
        if self._started:
            raise RuntimeError(
                "ReactionRuntime is single-use; start() may only be called once"
            )
        if self._stopped:
            raise RuntimeError("ReactionRuntime is stopped and cannot be started again")
        self._started = True
        self._enter_device_sessions()
        try:
            self.outputs.start()
        except Exception:
            L.exception("Runtime start failed; rolling back partial startup")
            try:
                self.stop()
            except Exception:
                L.exception("Runtime rollback stop failed")
            raise

    def _enter_device_sessions(self):
        stack = ExitStack()
        try:
            stack.enter_context(self.camera.session())
            self.capture.frames = self.camera.iter_frames()
            if self.audio is not None:
                stack.enter_context(self.audio.session())
                self.capture.read_level = self.audio.read_level
        except CaptureDeviceError as e:
            stack.close()
            self.capture.frames = None
            self.capture.read_level = None
            self.engine.fail(str(e))
            return
        self._device_stack = stack

    def request_stop(self):
        self._stop_evt.set()

    def run(self, runtime_limit_s: float | None = None):
        if not self._started:
            raise RuntimeError("ReactionRuntime.run() requires start() first")
        start_ts = time.perf_counter()
        next_health_ts = start_ts + 1.0
        try:
            while not self._stop_evt.is_set():
                now = self.clock()
                self.capture.step(now)
                now_ts = time.perf_counter()
                if now_ts >= next_health_ts:
                    self.outputs.raise_if_failed()
                    next_health_ts = now_ts + 1.0
                if (
                    runtime_limit_s is not None
                    and (now_ts - start_ts) >= runtime_limit_s
                ):
                    L.info(
                        "Runtime limit reached (%ss); shutting down service",
                        runtime_limit_s,
                    )
                    self.request_stop()
                    break
                self._stop_evt.wait(self._idle_wait_s())
        finally:
            self.stop()

    def _idle_wait_s(self) -> float:
        due = self.capture.next_due_ms()
        if due is None:
            return MAX_IDLE_SLEEP_S
        remaining_s = (due - self.clock()) / 1000.0
        return min(max(remaining_s, 0.0), MAX_IDLE_SLEEP_S)

    def stop(self):
        if self._stopped:
            return
        self._stopped = True
        stop_t0 = time.perf_counter()
        stage_t0 = stop_t0

        def _log_stage(name: str):
            nonlocal stage_t0
            now = time.perf_counter()
            L.debug("Shutdown stage=%s elapsed=%.1fms", name, (now - stage_t0) * 1000)
            stage_t0 = now

        def _run_stage(name: str, fn: Callable[[], None]):
            try:
                fn()
            except Exception:
                L.exception("Shutdown stage failed: %s", name)
            finally:
                _log_stage(name)

        _run_stage("scheduler", self.engine.scheduler.cancel_all)
        _run_stage("output_manager", self.outputs.stop)
        _run_stage("async_loop", self.loop_runner.shutdown_loop)
        _run_stage("device_sessions", self._exit_device_sessions)
        L.debug(
            "Shutdown stage=total elapsed=%.1fms",
            (time.perf_counter() - stop_t0) * 1000,
        )

    def _exit_device_sessions(self):
        stack = self._device_stack
        if stack is None:
            return
        self._device_stack = None
        self.capture.frames = None
        self.capture.read_level = None
        stack.close()


def _build_output_manager(cfg):
    from output.manager import HistoryStore, OutputManager

    history = None
    if cfg.output.history.enabled:
        path = cfg.output.history.file
        if not os.path.isabs(path):
            path = os.path.join(cfg.runtime.data_dir, path)
        history = HistoryStore(path, max_records=cfg.output.history.size)
    return OutputManager(history)


def _place_configured_zones(engine: ReactionEngine, cfg):
    for which in engine.layout.placeable:
        point = getattr(cfg.zones, which, None)
        if point is not None:
            engine.place_zone(which, (int(point.x), int(point.y)))


def build_runtime_from_loaded_config(
    cfg,
    *,
    camera: "BaseCamera",
    audio: Optional["BaseAudioSource"] = None,
    loop_runner: LoopRunner | None = None,
    clock: Callable[[], float] = monotonic_ms,
) -> ReactionRuntime:
    loop_runner = loop_runner or LoopRunner()
    outputs = _build_output_manager(cfg)

    def on_complete(result: IntervalResult):
        outputs.publish(result)

    engine = build_engine(
        cfg.session.variant,
        cfg.detect_params,
        stabilization_ms=cfg.session.stabilization_ms,
        zone_radius=cfg.zones.radius,
        on_complete=on_complete,
    )
    _place_configured_zones(engine, cfg)

    app_context = AppContext(
        command_gateway=CommandGateway(),
        outputs=outputs,
        placeable_zones=engine.layout.placeable,
    )
    if cfg.output.hmi.enabled:
        from output.hmi import HmiOutput

        outputs.add_channel(
            HmiOutput(
                cfg.output.hmi.host,
                cfg.output.hmi.port,
                app_context,
                loop_runner=loop_runner,
            )
        )
    return ReactionRuntime(
        engine,
        camera=camera,
        audio=audio,
        outputs=outputs,
        app_context=app_context,
        loop_runner=loop_runner,
        fps=cfg.camera.fps,
        audio_rate_hz=cfg.audio.rate_hz,
        clock=clock,
    )


__all__ = [
    "AppContext",
    "CaptureLoop",
    "ReactionRuntime",
    "build_runtime_from_loaded_config",
    "monotonic_ms",
]

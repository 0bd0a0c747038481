"""ReactionEngine: per-tick detection, arming, and the user actions of a session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from core.contracts import (
    PRE_ARM_STATES,
    IntervalResult,
    LiveStatus,
    SystemState,
    Zone,
)
from core.scheduler import DeferredCallScheduler
from core.session import Session
from detect.hysteresis import CandidateDebouncer
from detect.motion import FrameDiffer, ZoneMonitor
from trigger.sequencer import EventSequencer, create_sequencer

L = logging.getLogger("reflex_runtime.engine")


@dataclass(frozen=True)
class VariantLayout:
    channels: tuple[str, str]
    topology: str
    motion_channels: tuple[str, ...]
    audio_channel: str | None = None
    placeable: tuple[str, ...] = ()


VARIANT_LAYOUTS = {
    "reflex": VariantLayout(
        channels=("audio", "motion"),
        topology="symmetric",
        motion_channels=("motion",),
        audio_channel="audio",
    ),
    "gate": VariantLayout(
        channels=("gate", "pilot"),
        topology="gated",
        motion_channels=("gate", "pilot"),
        placeable=("gate", "pilot"),
    ),
}


class ReactionEngine:
    """
    Owns the Session and everything that mutates it. All methods are called
    from the capture loop thread; `now` is a monotonic timestamp in ms.
    """

    def __init__(
        self,
        variant: str,
        *,
        differ: FrameDiffer,
        motion_debouncer: CandidateDebouncer,
        audio_debouncer: CandidateDebouncer | None = None,
        stabilization_ms: float = 1000.0,
        zone_radius: int = 40,
        scheduler: DeferredCallScheduler | None = None,
        on_complete: Optional[Callable[[IntervalResult], None]] = None,
    ):
        if variant not in VARIANT_LAYOUTS:
            raise ValueError(
                f"Unknown variant '{variant}'. Available: {', '.join(VARIANT_LAYOUTS)}"
            )
        self.layout = VARIANT_LAYOUTS[variant]
        if self.layout.audio_channel and audio_debouncer is None:
            raise ValueError(f"variant '{variant}' requires an audio debouncer")
        self.differ = differ
        self.motion_debouncer = motion_debouncer
        self.audio_debouncer = audio_debouncer
        self.stabilization_ms = max(float(stabilization_ms), 0.0)
        self.zone_radius = int(zone_radius)
        self.scheduler = scheduler or DeferredCallScheduler()
        self.on_complete = on_complete

        self.session = Session(variant=variant, channels=self.layout.channels)
        self.sequencer: EventSequencer = create_sequencer(
            self.layout.topology, self.session, on_complete=self._handle_complete
        )
        self.monitors: dict[str, ZoneMonitor] = {}
        self.audio_level: float = 0.0
        self.frame_size: tuple[int, int] | None = None
        self._pre_arm_state = SystemState.IDLE
        for ch in self.layout.motion_channels:
            if ch not in self.layout.placeable:
                self._install_zone(Zone(ch, full_frame=True))

    # ---- user actions ----

    def enter_setup(self) -> bool:
        if self.session.state is SystemState.ERROR:
            L.warning("setup ignored: %s", self.session.error)
            return False
        self.session.rewind(SystemState.SETUP)
        self._discard_baselines()
        return True

    def place_zone(self, which: str, point: tuple[int, int]) -> Zone | None:
        if which not in self.layout.placeable:
            raise ValueError(
                f"zone '{which}' is not placeable; expected one of {self.layout.placeable}"
            )
        x, y = int(point[0]), int(point[1])
        if x < 0 or y < 0:
            raise ValueError(f"zone '{which}' coordinates must be >= 0, got ({x}, {y})")
        if self.frame_size is not None:
            width, height = self.frame_size
            if x >= width or y >= height:
                raise ValueError(
                    f"zone '{which}' at ({x}, {y}) is outside the {width}x{height} frame"
                )
        if self.session.state not in PRE_ARM_STATES:
            L.warning(
                "place_zone %s ignored in state %s", which, self.session.state.value
            )
            return None
        zone = Zone(which, center=(x, y), radius=self.zone_radius)
        self._install_zone(zone)
        L.info("zone %s placed at (%d, %d) r=%d", which, x, y, self.zone_radius)
        return zone

    def arm(self, now: float) -> bool:
        session = self.session
        if session.state is SystemState.ERROR:
            L.warning("arm ignored: %s", session.error)
            return False
        missing = [ch for ch in self.layout.motion_channels if ch not in self.monitors]
        if missing:
            L.warning("arm ignored: zones not placed: %s", ", ".join(missing))
            return False
        if session.state in PRE_ARM_STATES:
            self._pre_arm_state = session.state
        else:
            # Re-arm: drop the previous attempt, including a pending stabilization.
            session.rewind(self._pre_arm_state)
        session.clear_triggers()
        self._discard_baselines()
        session.advance(SystemState.ARMING)
        session.stabilization = self.scheduler.call_later(
            self.stabilization_ms,
            self._on_stabilized,
            now=now,
            name=f"{session.variant}.stabilization",
        )
        return True

    def reset(self) -> None:
        self.session.rewind(self._pre_arm_state)
        self._discard_baselines()

    def fail(self, reason: str) -> None:
        if self.session.state is SystemState.ERROR:
            return
        self.session.fail(reason)
        L.error("session %s failed: %s", self.session.variant, reason)

    # ---- ticks ----

    def process_frame(self, frame: np.ndarray, now: float) -> dict[str, float | None]:
        """Score every zone against its baseline and feed the debouncers."""
        height, width = frame.shape[:2]
        self.frame_size = (int(width), int(height))
        scores: dict[str, float | None] = {}
        for ch in self.layout.motion_channels:
            monitor = self.monitors.get(ch)
            if monitor is None:
                continue
            scores[ch] = monitor.sample(frame)
        if self.session.state is SystemState.ARMED:
            for ch, score in scores.items():
                if score is None:
                    continue
                self._evaluate(ch, self.motion_debouncer, score, now)
        return scores

    def process_audio(self, level: float | None, now: float) -> None:
        if level is None:
            return
        self.audio_level = float(level)
        ch = self.layout.audio_channel
        if ch is None or self.session.state is not SystemState.ARMED:
            return
        self._evaluate(ch, self.audio_debouncer, self.audio_level, now)

    def _evaluate(self, ch: str, debouncer: CandidateDebouncer, score: float, now: float):
        if not self.sequencer.accepts(ch):
            return
        state = self.session.trigger_states[ch]
        self.sequencer.apply(ch, debouncer.evaluate(state, score, now))

    # ---- internals ----

    def _on_stabilized(self, now: float):
        session = self.session
        session.stabilization = None
        if session.state is not SystemState.ARMING:
            return
        # The first baseline must come from a settled scene.
        self._discard_baselines()
        session.advance(SystemState.ARMED)

    def _handle_complete(self, result: IntervalResult):
        if self.on_complete:
            self.on_complete(result)

    def _install_zone(self, zone: Zone):
        self.session.zones[zone.zone_id] = zone
        self.monitors[zone.zone_id] = ZoneMonitor(zone, self.differ)

    def _discard_baselines(self):
        for monitor in self.monitors.values():
            monitor.discard_baseline()

    # ---- read side ----

    def status(self) -> LiveStatus:
        session = self.session
        high = self.motion_debouncer.high
        scores: dict[str, float] = {}
        bars: dict[str, float] = {}
        for ch, monitor in self.monitors.items():
            scores[ch] = monitor.last_score
            bars[ch] = min(100.0, monitor.last_score / high * 50.0)
        if self.layout.audio_channel:
            scores[self.layout.audio_channel] = self.audio_level
            bars[self.layout.audio_channel] = min(100.0, self.audio_level)
        zones = {
            zid: {
                "x": zone.center[0] if zone.center else None,
                "y": zone.center[1] if zone.center else None,
                "radius": zone.radius,
                "full_frame": zone.full_frame,
            }
            for zid, zone in session.zones.items()
        }
        return LiveStatus(
            state=session.state.value,
            variant=session.variant,
            scores=scores,
            bars=bars,
            triggered={ch: st.triggered for ch, st in session.trigger_states.items()},
            messages={ch: self._channel_message(ch) for ch in session.channels},
            zones=zones,
            result=session.result,
            error=session.error,
        )

    def _channel_message(self, ch: str) -> str:
        session = self.session
        state = session.state
        if state is SystemState.ERROR:
            return "unavailable"
        triggered = session.trigger_states[ch].triggered
        if ch == session.second and triggered and session.result is None:
            if self.layout.topology == "symmetric":
                # Motion before the beep; the interval will come out negative.
                return "false start?"
        if triggered:
            return "triggered"
        if state is SystemState.ARMED:
            if not self.sequencer.accepts(ch):
                return f"waiting for {session.first}"
            return "listening" if ch == self.layout.audio_channel else "detecting"
        if state is SystemState.ARMING:
            return "stabilizing"
        if state is SystemState.SETUP and ch in self.layout.placeable:
            return "placed" if ch in session.zones else "place zone"
        return "waiting"


def build_engine(
    variant: str,
    params,
    *,
    stabilization_ms: float,
    zone_radius: int,
    on_complete: Optional[Callable[[IntervalResult], None]] = None,
    scheduler: DeferredCallScheduler | None = None,
) -> ReactionEngine:
    """Build an engine from a DetectParams-like object."""
    differ = FrameDiffer(
        pixel_threshold=params.pixel_threshold,
        stride=params.stride,
        mode=params.mode,
        scale=params.scale,
    )
    motion = CandidateDebouncer(params.low_threshold, params.high_threshold, name="motion")
    audio = None
    layout = VARIANT_LAYOUTS.get(variant)
    if layout is not None and layout.audio_channel:
        audio = CandidateDebouncer(
            params.audio_low_threshold, params.audio_high_threshold, name="audio"
        )
    return ReactionEngine(
        variant,
        differ=differ,
        motion_debouncer=motion,
        audio_debouncer=audio,
        stabilization_ms=stabilization_ms,
        zone_radius=zone_radius,
        scheduler=scheduler,
        on_complete=on_complete,
    )


__all__ = ["ReactionEngine", "VariantLayout", "VARIANT_LAYOUTS", "build_engine"]

"""Data contracts for zones, trigger states, session results, and history."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class CaptureDeviceError(RuntimeError):
    """Camera or microphone missing, busy, or permission denied."""


class SystemState(str, Enum):
    IDLE = "idle"
    SETUP = "setup"
    ARMING = "arming"
    ARMED = "armed"
    COMPLETE = "complete"
    ERROR = "error"


# States a session may be reset back to.
PRE_ARM_STATES = (SystemState.IDLE, SystemState.SETUP)


@dataclass(frozen=True, slots=True)
class Zone:
    zone_id: str
    center: tuple[int, int] | None = None
    radius: int = 0
    full_frame: bool = False

    def region(self, width: int, height: int) -> tuple[int, int, int, int]:
        """Return (x0, y0, x1, y1) clamped to a width x height frame."""
        if self.full_frame:
            return 0, 0, int(width), int(height)
        if self.center is None:
            raise ValueError(f"zone {self.zone_id!r} has no center")
        cx, cy = int(self.center[0]), int(self.center[1])
        r = max(int(self.radius), 0)
        x0 = min(max(cx - r, 0), width)
        y0 = min(max(cy - r, 0), height)
        x1 = min(max(cx + r, 0), width)
        y1 = min(max(cy + r, 0), height)
        return x0, y0, x1, y1


@dataclass(frozen=True, slots=True)
class TriggerState:
    candidate_ms: float | None = None
    committed_ms: float | None = None

    @property
    def triggered(self) -> bool:
        return self.committed_ms is not None


@dataclass(frozen=True, slots=True)
class IntervalResult:
    interval_ms: int
    first_ms: float
    second_ms: float
    variant: str = ""

    @property
    def false_start(self) -> bool:
        return self.interval_ms < 0

    @property
    def valid(self) -> bool:
        return not self.false_start


@dataclass(slots=True)
class HistoryEntry:
    interval_ms: int
    captured_at: datetime
    false_start: bool = False


@dataclass(slots=True)
class LiveStatus:
    """Per-tick snapshot for front ends (bars, status labels, result)."""

    state: str = SystemState.IDLE.value
    variant: str = ""
    scores: dict[str, float] = field(default_factory=dict)
    bars: dict[str, float] = field(default_factory=dict)
    triggered: dict[str, bool] = field(default_factory=dict)
    messages: dict[str, str] = field(default_factory=dict)
    zones: dict[str, Any] = field(default_factory=dict)
    result: IntervalResult | None = None
    error: str | None = None


__all__ = [
    "CaptureDeviceError",
    "SystemState",
    "PRE_ARM_STATES",
    "Zone",
    "TriggerState",
    "IntervalResult",
    "HistoryEntry",
    "LiveStatus",
]

"""Session state owned by the engine: system state, zones, per-channel triggers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from core.contracts import (
    PRE_ARM_STATES,
    IntervalResult,
    SystemState,
    TriggerState,
    Zone,
)
from core.scheduler import DeferredCall

L = logging.getLogger("reflex_runtime.session")

_STATE_RANK = {
    SystemState.IDLE: 0,
    SystemState.SETUP: 0,
    SystemState.ARMING: 1,
    SystemState.ARMED: 2,
    SystemState.COMPLETE: 3,
}


@dataclass
class Session:
    variant: str
    channels: tuple[str, str]
    state: SystemState = SystemState.IDLE
    zones: dict[str, Zone] = field(default_factory=dict)
    trigger_states: dict[str, TriggerState] = field(default_factory=dict)
    result: IntervalResult | None = None
    error: str | None = None
    stabilization: DeferredCall | None = None

    def __post_init__(self):
        if len(self.channels) != 2 or self.channels[0] == self.channels[1]:
            raise ValueError("session needs two distinct channels")
        self.clear_triggers()

    def clear_triggers(self):
        self.trigger_states = {ch: TriggerState() for ch in self.channels}
        self.result = None

    def advance(self, new_state: SystemState):
        """Move forward in idle/setup -> arming -> armed -> complete order."""
        old = self.state
        if old is SystemState.ERROR:
            raise RuntimeError("session is in error state")
        if new_state is not SystemState.ERROR:
            if _STATE_RANK[new_state] < _STATE_RANK[old]:
                raise RuntimeError(f"backward transition {old.value} -> {new_state.value}")
            if _STATE_RANK[new_state] == _STATE_RANK[old] and new_state is not old:
                if old not in PRE_ARM_STATES:
                    raise RuntimeError(
                        f"invalid transition {old.value} -> {new_state.value}"
                    )
        self.state = new_state
        L.info("session %s: %s -> %s", self.variant, old.value, new_state.value)

    def rewind(self, pre_arm_state: SystemState = SystemState.IDLE):
        """The only backward path: cancel pending arming and clear triggers."""
        if pre_arm_state not in PRE_ARM_STATES:
            raise ValueError(f"cannot rewind to {pre_arm_state.value}")
        self.cancel_stabilization()
        self.clear_triggers()
        if self.state is SystemState.ERROR:
            return
        old = self.state
        self.state = pre_arm_state
        if old is not pre_arm_state:
            L.info("session %s: %s -> %s (reset)", self.variant, old.value, pre_arm_state.value)

    def cancel_stabilization(self):
        pending = self.stabilization
        self.stabilization = None
        if pending is not None and pending.cancel():
            L.debug("pending stabilization %s cancelled", pending.name)

    def fail(self, reason: str):
        self.cancel_stabilization()
        self.state = SystemState.ERROR
        self.error = reason

    @property
    def first(self) -> str:
        return self.channels[0]

    @property
    def second(self) -> str:
        return self.channels[1]


__all__ = ["Session"]

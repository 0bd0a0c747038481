# -- coding: utf-8 --
"""Ordered pair of independent triggers and the interval between them."""

import logging
import math
from typing import Callable, Dict, Optional, Type

from core.contracts import IntervalResult, SystemState, TriggerState
from core.registry import register_named, resolve_registered
from core.session import Session

L = logging.getLogger("reflex_runtime.trigger.sequencer")

SequencerFactory = Dict[str, Type["EventSequencer"]]
_registry: SequencerFactory = {}


def _round_ms(value: float) -> int:
    # Half-up rounding; round() would send 0.5 to the even neighbour.
    return int(math.floor(value + 0.5))


class EventSequencer:
    """
    Tracks the first and second channel of a session. Each channel commits at
    most once; once both are committed the session moves to `complete` and
    `on_complete` fires with the signed interval `second - first`.
    """

    def __init__(
        self,
        session: Session,
        on_complete: Optional[Callable[[IntervalResult], None]] = None,
    ):
        self.session = session
        self.on_complete = on_complete

    @property
    def first(self) -> str:
        return self.session.first

    @property
    def second(self) -> str:
        return self.session.second

    def accepts(self, channel: str) -> bool:
        """Whether `channel` may currently be evaluated."""
        self._require_channel(channel)
        return True

    def apply(self, channel: str, new_state: TriggerState) -> bool:
        """Store an evaluated state for `channel`. Returns True if it just committed."""
        session = self.session
        if session.state is not SystemState.ARMED:
            return False
        if not self.accepts(channel):
            return False
        old = session.trigger_states[channel]
        if old.committed_ms is not None:
            return False
        session.trigger_states[channel] = new_state
        if new_state.committed_ms is None:
            return False
        L.info("%s triggered at %.1fms", channel, new_state.committed_ms)
        self._maybe_complete()
        return True

    def commit(self, channel: str, ts_ms: float) -> bool:
        """Commit `channel` directly at `ts_ms` (no candidate window)."""
        return self.apply(channel, TriggerState(candidate_ms=ts_ms, committed_ms=ts_ms))

    def committed(self, channel: str) -> float | None:
        return self.session.trigger_states[channel].committed_ms

    def _maybe_complete(self):
        session = self.session
        if session.state is SystemState.COMPLETE:
            return
        t_first = self.committed(self.first)
        t_second = self.committed(self.second)
        if t_first is None or t_second is None:
            return
        result = IntervalResult(
            interval_ms=_round_ms(t_second - t_first),
            first_ms=t_first,
            second_ms=t_second,
            variant=session.variant,
        )
        session.result = result
        session.advance(SystemState.COMPLETE)
        log_fn = L.warning if result.false_start else L.info
        log_fn(
            "complete variant=%s interval=%dms false_start=%s",
            session.variant,
            result.interval_ms,
            result.false_start,
        )
        if self.on_complete:
            self.on_complete(result)

    def _require_channel(self, channel: str):
        if channel not in self.session.channels:
            raise ValueError(
                f"unknown channel {channel!r}; expected one of {self.session.channels}"
            )


def register_sequencer(name: str):
    return register_named(_registry, name)


@register_sequencer("symmetric")
class SymmetricSequencer(EventSequencer):
    """Either channel may fire first; a negative interval is a false start."""


@register_sequencer("gated")
class GatedSequencer(EventSequencer):
    """The second channel is frozen until the first has committed."""

    def accepts(self, channel: str) -> bool:
        self._require_channel(channel)
        if channel == self.first:
            return True
        return self.committed(self.first) is not None


def create_sequencer(
    name: str,
    session: Session,
    on_complete: Optional[Callable[[IntervalResult], None]] = None,
) -> EventSequencer:
    cls = resolve_registered(
        _registry,
        name,
        package=__package__ or "trigger",
        unknown_label="sequencer topology",
    )
    return cls(session, on_complete=on_complete)


__all__ = [
    "EventSequencer",
    "SymmetricSequencer",
    "GatedSequencer",
    "register_sequencer",
    "create_sequencer",
]

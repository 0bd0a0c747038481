import logging
from dataclasses import replace

from core.contracts import TriggerState

L = logging.getLogger("reflex_runtime.detect.hysteresis")


class CandidateDebouncer:
    """
    Two-threshold trigger. A score above `low` opens a candidate window at
    the current time; a score above `high` commits the candidate time, so the
    committed timestamp marks the onset of the excursion rather than the tick
    that confirmed it. Falling back to `low` or below clears the candidate.
    """

    def __init__(self, low: float, high: float, name: str = ""):
        self.low = float(low)
        self.high = float(high)
        self.name = name
        if not self.high > self.low:
            raise ValueError(
                f"high threshold ({self.high:g}) must be > low threshold ({self.low:g})"
            )

    def evaluate(self, state: TriggerState, score: float, now: float) -> TriggerState:
        if state.committed_ms is not None:
            return state
        if score > self.high:
            candidate = state.candidate_ms if state.candidate_ms is not None else now
            L.debug(
                "%s commit score=%.2f candidate=%.1f now=%.1f",
                self.name,
                score,
                candidate,
                now,
            )
            return TriggerState(candidate_ms=candidate, committed_ms=candidate)
        if score > self.low:
            if state.candidate_ms is None:
                return replace(state, candidate_ms=now)
            return state
        if state.candidate_ms is not None:
            return replace(state, candidate_ms=None)
        return state


__all__ = ["CandidateDebouncer"]

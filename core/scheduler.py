"""One-shot deferred callbacks driven by the capture loop's monotonic clock."""

from __future__ import annotations

import heapq
import itertools
import logging
from typing import Callable

L = logging.getLogger("reflex_runtime.scheduler")


class DeferredCall:
    """Handle for a scheduled callback; `cancel()` guarantees it never runs."""

    __slots__ = ("due_ms", "callback", "name", "_cancelled", "_fired")

    def __init__(self, due_ms: float, callback: Callable[[float], None], name: str):
        self.due_ms = due_ms
        self.callback = callback
        self.name = name
        self._cancelled = False
        self._fired = False

    def cancel(self) -> bool:
        if self._fired or self._cancelled:
            return False
        self._cancelled = True
        return True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def pending(self) -> bool:
        return not (self._cancelled or self._fired)


class DeferredCallScheduler:
    def __init__(self):
        self._heap: list[tuple[float, int, DeferredCall]] = []
        self._seq = itertools.count()

    def call_later(
        self,
        delay_ms: float,
        callback: Callable[[float], None],
        *,
        now: float,
        name: str = "",
    ) -> DeferredCall:
        call = DeferredCall(now + max(float(delay_ms), 0.0), callback, name)
        heapq.heappush(self._heap, (call.due_ms, next(self._seq), call))
        return call

    def run_due(self, now: float) -> int:
        """Fire every pending call whose due time is <= now. Returns fired count."""
        fired = 0
        while self._heap and self._heap[0][0] <= now:
            _, _, call = heapq.heappop(self._heap)
            if not call.pending:
                continue
            call._fired = True
            L.debug("deferred call %s fired at %.1fms", call.name or "?", now)
            call.callback(now)
            fired += 1
        return fired

    def cancel_all(self):
        for _, _, call in self._heap:
            call.cancel()
        self._heap.clear()

    def __len__(self) -> int:
        return sum(1 for _, _, call in self._heap if call.pending)


__all__ = ["DeferredCall", "DeferredCallScheduler"]

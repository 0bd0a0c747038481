import contextlib
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any

L = logging.getLogger("reflex_runtime.gateway")

CMD_ARM = "arm"
CMD_RESET = "reset"
CMD_SETUP = "setup"
CMD_PLACE_ZONE = "place_zone"
CMD_CLEAR_HISTORY = "clear_history"
COMMANDS = {CMD_ARM, CMD_RESET, CMD_SETUP, CMD_PLACE_ZONE, CMD_CLEAR_HISTORY}


@dataclass(slots=True)
class UserCommand:
    seq: int
    name: str
    payload: dict[str, Any] = field(default_factory=dict)


class CommandGateway:
    """
    Accepts user commands from any thread (HMI, CLI) and hands them to the
    capture loop thread, which is the only one allowed to touch the session.
    """

    def __init__(self, maxsize: int = 16, debounce_ms: float = 150.0):
        self.command_queue: queue.Queue[UserCommand] = queue.Queue(maxsize=maxsize)
        self.debounce_ms = max(debounce_ms, 0.0)
        self._last_accept: dict[str, float] = {}
        self._lock = threading.Lock()
        self._seq = 0

    def submit(self, name: str, payload: dict[str, Any] | None = None) -> bool:
        if name not in COMMANDS:
            raise ValueError(f"Unknown command '{name}'. Available: {', '.join(sorted(COMMANDS))}")
        now = time.perf_counter()
        with self._lock:
            last = self._last_accept.get(name)
            # Place-zone and history commands carry payloads; only repeat button presses are debounced.
            if (
                name in (CMD_ARM, CMD_RESET, CMD_SETUP)
                and last is not None
                and self.debounce_ms
                and (now - last) * 1000 < self.debounce_ms
            ):
                L.debug("Debounce drop %s", name)
                return False
            self._last_accept[name] = now
            self._seq += 1
            cmd = UserCommand(seq=self._seq, name=name, payload=dict(payload or {}))
        try:
            self.command_queue.put_nowait(cmd)
            return True
        except queue.Full:
            dropped = None
            with contextlib.suppress(queue.Empty):
                dropped = self.command_queue.get_nowait()
            L.warning(
                "Command queue full, dropping oldest %s and accepting %s",
                dropped.name if dropped else "?",
                name,
            )
            try:
                self.command_queue.put_nowait(cmd)
                return True
            except queue.Full:
                L.warning("Command queue still full, drop %s", name)
            return False

    def drain(self) -> list[UserCommand]:
        items: list[UserCommand] = []
        while True:
            try:
                items.append(self.command_queue.get_nowait())
            except queue.Empty:
                return items


__all__ = [
    "CMD_ARM",
    "CMD_RESET",
    "CMD_SETUP",
    "CMD_PLACE_ZONE",
    "CMD_CLEAR_HISTORY",
    "COMMANDS",
    "UserCommand",
    "CommandGateway",
]

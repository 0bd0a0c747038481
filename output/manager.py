# -- coding: utf-8 --
"""HistoryStore and OutputManager: persist results and fan out to output channels."""

import json
import logging
import os
import queue
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Protocol

from core.contracts import HistoryEntry, IntervalResult, LiveStatus

L = logging.getLogger("reflex_runtime.output")


class OutputChannel(Protocol):
    def start(self): ...
    def stop(self): ...
    def publish(self, result: IntervalResult, entry: HistoryEntry): ...
    def raise_if_failed(self): ...


def _to_utc(dt: datetime | None) -> datetime:
    ref = dt or datetime.now(timezone.utc)
    if ref.tzinfo is None:
        ref = ref.replace(tzinfo=timezone.utc)
    return ref.astimezone(timezone.utc)


def display_time(dt: datetime) -> str:
    return _to_utc(dt).strftime("%Y-%m-%d %H:%M:%S") + "Z"


def entry_to_dict(entry: HistoryEntry) -> dict[str, Any]:
    return {
        "interval_ms": int(entry.interval_ms),
        "captured_at": _to_utc(entry.captured_at).isoformat(),
        "display_time": display_time(entry.captured_at),
        "false_start": bool(entry.false_start),
    }


def entry_from_dict(data: dict[str, Any]) -> HistoryEntry:
    return HistoryEntry(
        interval_ms=int(data["interval_ms"]),
        captured_at=_to_utc(datetime.fromisoformat(str(data["captured_at"]))),
        false_start=bool(data.get("false_start", False)),
    )


class HistoryStore:
    """Most-recent-first bounded list of results, mirrored to a JSON file.

    Snapshots are written by a background writer thread; a failed write is
    logged and the in-memory list stays authoritative.
    """

    _STOP_SENTINEL = None

    def __init__(self, path: str | None, max_records: int = 10):
        self.path = path
        self._max_records = int(max_records)
        self._records: deque[HistoryEntry] = deque(maxlen=self._max_records)
        self._lock = threading.Lock()
        self._write_queue: queue.Queue[list[HistoryEntry] | None] | None = (
            queue.Queue() if path else None
        )
        self._writer_thread = (
            threading.Thread(target=self._writer_loop, name="history-writer", daemon=True)
            if path
            else None
        )
        if path:
            self._load()
        if self._writer_thread:
            self._writer_thread.start()

    def append(self, entry: HistoryEntry) -> HistoryEntry:
        with self._lock:
            self._records.appendleft(entry)
            snapshot = list(self._records)
        self._enqueue(snapshot)
        return entry

    def clear(self, confirmed: bool = False) -> bool:
        if not confirmed:
            L.info("history clear ignored: not confirmed")
            return False
        with self._lock:
            self._records.clear()
        self._enqueue([])
        L.info("history cleared")
        return True

    def flush(self):
        """Block until every queued snapshot has been written (or failed)."""
        q = self._write_queue
        if q is not None:
            q.join()

    def stop(self):
        thread = self._writer_thread
        q = self._write_queue
        if thread is None or q is None:
            return
        q.put(self._STOP_SENTINEL)
        thread.join()
        self._writer_thread = None
        self._write_queue = None

    @property
    def latest_records(self) -> list[HistoryEntry]:
        with self._lock:
            return list(self._records)

    @property
    def max_records(self) -> int:
        return self._max_records

    def _enqueue(self, snapshot: list[HistoryEntry]):
        q = self._write_queue
        if q is not None:
            q.put(snapshot)

    def _writer_loop(self):
        queue_ref = self._write_queue
        if queue_ref is None:
            raise RuntimeError("writer queue missing")
        while True:
            item = queue_ref.get()
            try:
                if item is None:
                    break
                self._save(item)
            except OSError:
                L.exception("history write to %s failed", self.path)
            finally:
                queue_ref.task_done()

    def _load(self):
        path = self.path
        if not path or not os.path.exists(path):
            return
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            entries = [entry_from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as e:
            L.warning("history file %s unreadable, starting empty: %s", path, e)
            return
        with self._lock:
            # File is most-recent-first; extend keeps that order and the bound.
            self._records.extend(entries[: self._max_records])
        L.info("history loaded: %d entries from %s", len(self._records), path)

    def _save(self, snapshot: list[HistoryEntry]):
        path = self.path
        if not path:
            return
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump([entry_to_dict(e) for e in snapshot], f, indent=2)
        os.replace(tmp_path, path)


class OutputManager:
    def __init__(self, history: HistoryStore | None = None):
        self._history = history
        self._channels: list[OutputChannel] = []
        self._status = LiveStatus()
        self._status_lock = threading.Lock()
        self.completed_count = 0

    def publish(self, result: IntervalResult, captured_at: datetime | None = None):
        entry = HistoryEntry(
            interval_ms=result.interval_ms,
            captured_at=_to_utc(captured_at),
            false_start=result.false_start,
        )
        if self._history is not None:
            self._history.append(entry)
        self.completed_count += 1
        for ch in self._channels:
            ch.publish(result, entry)
        return entry

    def update_status(self, status: LiveStatus):
        with self._status_lock:
            self._status = status

    def latest_status(self) -> LiveStatus:
        with self._status_lock:
            return self._status

    def clear_history(self, confirmed: bool = False) -> bool:
        if self._history is None:
            return False
        return self._history.clear(confirmed)

    def add_channel(self, channel: OutputChannel):
        self._channels.append(channel)

    def start(self):
        for ch in self._channels:
            ch.start()

    def stop(self):
        for ch in self._channels:
            try:
                ch.stop()
            except Exception:
                L.exception("Output channel stop failed: %r", ch)
        if self._history is not None:
            self._history.stop()

    def flush(self):
        if self._history is not None:
            self._history.flush()

    def raise_if_failed(self):
        for ch in self._channels:
            ch.raise_if_failed()

    # ---- Read API for HMI (proxy to history store) ----
    @property
    def latest_records(self) -> list[HistoryEntry]:
        return self._history.latest_records if self._history is not None else []

    @property
    def max_records(self) -> int:
        return self._history.max_records if self._history is not None else 0


__all__ = [
    "HistoryStore",
    "OutputManager",
    "OutputChannel",
    "display_time",
    "entry_to_dict",
    "entry_from_dict",
]

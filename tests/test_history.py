import json
import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

from core.contracts import HistoryEntry, IntervalResult
from output.manager import HistoryStore, OutputManager

T0 = datetime(2026, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def _entry(i: int) -> HistoryEntry:
    return HistoryEntry(interval_ms=100 + i, captured_at=T0 + timedelta(seconds=i))


class TestHistoryStore(unittest.TestCase):
    def test_bounded_most_recent_first(self):
        store = HistoryStore(None, max_records=10)
        for i in range(11):
            store.append(_entry(i))
        records = store.latest_records
        self.assertEqual(len(records), 10)
        self.assertEqual(records[0].interval_ms, 110)
        self.assertEqual(records[-1].interval_ms, 101)

    def test_persisted_and_reloaded(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "nested", "history.json")
            store = HistoryStore(path, max_records=10)
            store.append(_entry(1))
            store.append(HistoryEntry(interval_ms=-40, captured_at=T0, false_start=True))
            store.stop()

            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            self.assertEqual([r["interval_ms"] for r in raw], [-40, 101])
            self.assertEqual(raw[0]["display_time"], "2026-05-01 12:00:00Z")

            reloaded = HistoryStore(path, max_records=10)
            records = reloaded.latest_records
            self.assertEqual([r.interval_ms for r in records], [-40, 101])
            self.assertTrue(records[0].false_start)
            self.assertEqual(records[1].captured_at, T0 + timedelta(seconds=1))

    def test_reload_respects_smaller_bound(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "history.json")
            store = HistoryStore(path, max_records=10)
            for i in range(5):
                store.append(_entry(i))
            store.stop()
            small = HistoryStore(path, max_records=3)
            self.assertEqual([r.interval_ms for r in small.latest_records], [104, 103, 102])

    def test_clear_requires_confirmation(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "history.json")
            store = HistoryStore(path)
            store.append(_entry(1))
            self.assertFalse(store.clear())
            self.assertEqual(len(store.latest_records), 1)
            self.assertTrue(store.clear(confirmed=True))
            self.assertEqual(store.latest_records, [])
            store.stop()
            self.assertEqual(HistoryStore(path).latest_records, [])

    def test_unwritable_path_is_logged_and_kept_in_memory(self):
        with tempfile.TemporaryDirectory() as tmp:
            blocker = os.path.join(tmp, "blocker")
            with open(blocker, "w", encoding="utf-8") as f:
                f.write("")
            store = HistoryStore(os.path.join(blocker, "history.json"))
            with self.assertLogs("reflex_runtime.output", level="ERROR"):
                store.append(_entry(1))
                store.flush()
            self.assertEqual([r.interval_ms for r in store.latest_records], [101])
            store.append(_entry(2))
            store.stop()
            self.assertEqual(len(store.latest_records), 2)

    def test_corrupt_file_starts_empty(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "history.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("{not json")
            with self.assertLogs("reflex_runtime.output", level="WARNING"):
                store = HistoryStore(path)
            self.assertEqual(store.latest_records, [])


class _RecordingChannel:
    def __init__(self):
        self.published = []
        self.started = False

    def start(self):
        self.started = True

    def stop(self):
        self.started = False

    def publish(self, result, entry):
        self.published.append((result, entry))

    def raise_if_failed(self):
        return None


class TestOutputManager(unittest.TestCase):
    def test_publish_appends_history_and_fans_out(self):
        channel = _RecordingChannel()
        mgr = OutputManager(HistoryStore(None, max_records=10))
        mgr.add_channel(channel)
        mgr.start()
        result = IntervalResult(interval_ms=-12, first_ms=100.0, second_ms=88.0, variant="reflex")
        entry = mgr.publish(result, captured_at=T0)
        self.assertTrue(entry.false_start)
        self.assertEqual(mgr.latest_records, [entry])
        self.assertEqual(channel.published, [(result, entry)])
        self.assertEqual(mgr.completed_count, 1)
        mgr.stop()
        self.assertFalse(channel.started)

    def test_without_history(self):
        mgr = OutputManager(None)
        mgr.publish(IntervalResult(interval_ms=5, first_ms=0.0, second_ms=5.0))
        self.assertEqual(mgr.latest_records, [])
        self.assertFalse(mgr.clear_history(confirmed=True))


if __name__ == "__main__":
    unittest.main()

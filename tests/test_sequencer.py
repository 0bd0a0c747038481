import unittest

from core.contracts import SystemState, TriggerState
from core.registry import register_named, registered_names
from core.session import Session
from detect.hysteresis import CandidateDebouncer
from trigger.sequencer import GatedSequencer, SymmetricSequencer, create_sequencer


def _armed_session(channels=("audio", "motion"), variant="reflex") -> Session:
    session = Session(variant=variant, channels=channels)
    session.advance(SystemState.ARMING)
    session.advance(SystemState.ARMED)
    return session


class TestCandidateDebouncer(unittest.TestCase):
    def test_commit_uses_onset_of_excursion(self):
        deb = CandidateDebouncer(10, 25)
        state = TriggerState()
        for now, score in ((100, 5), (116, 12), (133, 18), (150, 30)):
            state = deb.evaluate(state, score, now)
        self.assertEqual(state.committed_ms, 116)

    def test_dip_to_low_clears_candidate(self):
        deb = CandidateDebouncer(10, 25)
        state = TriggerState()
        for now, score in ((100, 12), (116, 10), (133, 15), (150, 40)):
            state = deb.evaluate(state, score, now)
        self.assertEqual(state.committed_ms, 133)

    def test_jump_straight_above_high_commits_now(self):
        deb = CandidateDebouncer(10, 25)
        state = deb.evaluate(TriggerState(), 99, 200)
        self.assertEqual((state.candidate_ms, state.committed_ms), (200, 200))

    def test_commit_is_idempotent(self):
        deb = CandidateDebouncer(10, 25)
        state = deb.evaluate(TriggerState(), 50, 100)
        for now, score in ((116, 0), (133, 90), (150, 12)):
            state = deb.evaluate(state, score, now)
        self.assertEqual(state.committed_ms, 100)

    def test_high_must_exceed_low(self):
        with self.assertRaises(ValueError):
            CandidateDebouncer(25, 25)


class TestSymmetricSequencer(unittest.TestCase):
    def test_second_before_first_is_negative(self):
        session = _armed_session()
        seq = SymmetricSequencer(session)
        seq.commit("motion", 100)
        seq.commit("audio", 150)
        self.assertEqual(session.result.interval_ms, -50)
        self.assertTrue(session.result.false_start)
        self.assertIs(session.state, SystemState.COMPLETE)

    def test_first_then_second_is_positive(self):
        session = _armed_session()
        seq = SymmetricSequencer(session)
        seq.commit("audio", 100)
        seq.commit("motion", 150)
        self.assertEqual(session.result.interval_ms, 50)
        self.assertTrue(session.result.valid)

    def test_interval_rounds_half_up(self):
        session = _armed_session()
        seq = SymmetricSequencer(session)
        seq.commit("audio", 100.0)
        seq.commit("motion", 150.5)
        self.assertEqual(session.result.interval_ms, 51)

    def test_exactly_one_completion(self):
        results = []
        session = _armed_session()
        seq = create_sequencer("symmetric", session, on_complete=results.append)
        self.assertTrue(seq.commit("audio", 100))
        self.assertTrue(seq.commit("motion", 100))
        self.assertFalse(seq.commit("motion", 120))
        self.assertFalse(seq.commit("audio", 130))
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].interval_ms, 0)

    def test_ignored_unless_armed(self):
        session = Session(variant="reflex", channels=("audio", "motion"))
        seq = SymmetricSequencer(session)
        self.assertFalse(seq.commit("audio", 100))
        self.assertIsNone(session.trigger_states["audio"].committed_ms)

    def test_unknown_channel_raises(self):
        seq = SymmetricSequencer(_armed_session())
        with self.assertRaises(ValueError):
            seq.accepts("pilot")


class TestGatedSequencer(unittest.TestCase):
    def test_pilot_frozen_until_gate_commits(self):
        session = _armed_session(("gate", "pilot"), variant="gate")
        seq = GatedSequencer(session)
        self.assertFalse(seq.accepts("pilot"))
        self.assertFalse(seq.apply("pilot", TriggerState(candidate_ms=80)))
        self.assertFalse(seq.commit("pilot", 90))
        self.assertEqual(session.trigger_states["pilot"], TriggerState())
        seq.commit("gate", 100)
        self.assertTrue(seq.accepts("pilot"))
        seq.commit("pilot", 250)
        self.assertEqual(session.result.interval_ms, 150)

    def test_gate_interval_never_negative(self):
        deb = CandidateDebouncer(20, 60)
        session = _armed_session(("gate", "pilot"), variant="gate")
        seq = GatedSequencer(session)
        # Pilot moves early and hard; gate drops later.
        ticks = [(100, 5, 90), (116, 5, 90), (133, 70, 90), (150, 0, 90)]
        for now, gate_score, pilot_score in ticks:
            for ch, score in (("gate", gate_score), ("pilot", pilot_score)):
                if seq.accepts(ch):
                    seq.apply(ch, deb.evaluate(session.trigger_states[ch], score, now))
        self.assertEqual(session.result.interval_ms, 0)
        self.assertGreaterEqual(session.result.interval_ms, 0)


class TestRegistry(unittest.TestCase):
    def test_unknown_topology_lists_available(self):
        with self.assertRaises(ValueError) as ctx:
            create_sequencer("round_robin", _armed_session())
        self.assertIn("gated, symmetric", str(ctx.exception))

    def test_name_cannot_be_taken_twice(self):
        registry = {}
        register_named(registry, "x")(SymmetricSequencer)
        register_named(registry, "x")(SymmetricSequencer)
        with self.assertRaises(ValueError):
            register_named(registry, "x")(GatedSequencer)
        self.assertEqual(registered_names(registry), ["x"])


if __name__ == "__main__":
    unittest.main()

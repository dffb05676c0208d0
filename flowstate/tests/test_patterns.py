from __future__ import annotations

from datetime import datetime, timezone
import json
import threading
import unittest

from flowstate.clock import FakeClock
from flowstate.db import FlowDB
from flowstate.errors import InvalidArgumentError, UpstreamError
from flowstate.patterns import FlowPatternAnalyzer, FlowPatternPayload, confidence_for, parse_pattern_payload
from flowstate.recovery import generate_recovery_path
from flowstate.sessions import FlowSessionManager
from flowstate.tests.test_helpers import StubGenerator, failing_generator, local_tmp_dir

GOOD_REPLY = json.dumps(
    {
        "best_times": [{"time_of_day": "morning", "avg_quality": 82, "avg_duration": 40}],
        "best_days": [{"day": "Tuesday", "avg_quality": 80}],
        "common_triggers": [{"trigger": "quiet environment", "frequency": 3}],
        "common_breakers": [{"breaker": "slack", "frequency": 2, "avg_impact": 15}],
        "optimal_duration": 45,
        "flow_fingerprint": {
            "peak_time": "morning",
            "ideal_session_length": 45,
            "vulnerability": "chat notifications",
            "superpower": "early starts",
        },
        "recommendations": ["Block 9-11am for deep work"],
        "weekly_flow_hours": 6.5,
    }
)


class _SlowGenerator:
    def __init__(self) -> None:
        self.release = threading.Event()

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.release.wait(timeout=5)
        return GOOD_REPLY


class TestPatternAnalyzer(unittest.TestCase):
    def _seed(self, tmp, sessions: int) -> tuple[FlowDB, FakeClock]:
        db = FlowDB(tmp / "flow.sqlite")
        clock = FakeClock(start=datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))
        manager = FlowSessionManager(db=db, clock=clock)
        for idx in range(sessions):
            started = manager.start("u1", f"task {idx}")
            clock.advance(30 * 60)
            manager.end(started.session_id, 70 + idx, triggers=["quiet environment"])
            clock.advance(3600)
        manager.start("u1", "still running")
        return db, clock

    def test_insufficient_data_does_not_write(self) -> None:
        with local_tmp_dir() as tmp:
            db, clock = self._seed(tmp, 2)
            before = db.get_pattern("u1")
            generator = StubGenerator(GOOD_REPLY)
            analyzer = FlowPatternAnalyzer(db=db, generator=generator, clock=clock)

            result = analyzer.analyze("u1")

            self.assertIsNone(result["patterns"])
            self.assertIn("at least 3", result["message"])
            self.assertEqual(generator.calls, [])
            self.assertEqual(db.get_pattern("u1"), before)

    def test_analyze_upserts_full_payload(self) -> None:
        with local_tmp_dir() as tmp:
            db, clock = self._seed(tmp, 4)
            generator = StubGenerator(GOOD_REPLY)
            analyzer = FlowPatternAnalyzer(db=db, generator=generator, clock=clock)

            result = analyzer.analyze("u1")

            self.assertEqual(result["sessions_analyzed"], 4)
            self.assertAlmostEqual(result["confidence"], 0.2)
            self.assertEqual(result["patterns"]["flow_fingerprint"]["superpower"], "early starts")
            self.assertEqual(len(generator.calls), 1)
            self.assertIn("task 0", generator.calls[0][1])
            self.assertNotIn("still running", generator.calls[0][1])

            stored = db.get_pattern("u1")
            assert stored is not None
            self.assertEqual(stored.sample_count, 4)
            self.assertNotIn("last_session", stored.payload)
            self.assertEqual(stored.payload["best_times"][0]["time_of_day"], "morning")

    def test_malformed_reply_degrades_to_empty_aggregate(self) -> None:
        for reply in ("not json at all", "[1, 2, 3]", json.dumps({"best_times": "morning"})):
            with local_tmp_dir() as tmp:
                db, clock = self._seed(tmp, 3)
                analyzer = FlowPatternAnalyzer(db=db, generator=StubGenerator(reply), clock=clock)

                with self.assertLogs("flowstate.patterns", level="WARNING"):
                    result = analyzer.analyze("u1")

                self.assertEqual(result["patterns"], FlowPatternPayload().model_dump())
                stored = db.get_pattern("u1")
                assert stored is not None
                self.assertEqual(stored.payload, FlowPatternPayload().model_dump())
                self.assertEqual(stored.sample_count, 3)

    def test_upstream_failure_degrades(self) -> None:
        with local_tmp_dir() as tmp:
            db, clock = self._seed(tmp, 3)
            analyzer = FlowPatternAnalyzer(db=db, generator=failing_generator(), clock=clock)
            result = analyzer.analyze("u1")
            self.assertEqual(result["patterns"], FlowPatternPayload().model_dump())

    def test_timeout_degrades(self) -> None:
        with local_tmp_dir() as tmp:
            db, clock = self._seed(tmp, 3)
            slow = _SlowGenerator()
            analyzer = FlowPatternAnalyzer(db=db, generator=slow, clock=clock, timeout_sec=0.05)
            try:
                result = analyzer.analyze("u1")
            finally:
                slow.release.set()
            self.assertEqual(result["patterns"], FlowPatternPayload().model_dump())

    def test_window_excludes_old_sessions(self) -> None:
        with local_tmp_dir() as tmp:
            db, clock = self._seed(tmp, 3)
            clock.advance(40 * 24 * 3600)
            generator = StubGenerator(GOOD_REPLY)
            result = FlowPatternAnalyzer(db=db, generator=generator, clock=clock).analyze("u1")
            self.assertIsNone(result["patterns"])
            self.assertEqual(result["sessions_analyzed"], 0)

    def test_window_days_bounded(self) -> None:
        with local_tmp_dir() as tmp:
            db, clock = self._seed(tmp, 3)
            generator = StubGenerator(GOOD_REPLY)
            analyzer = FlowPatternAnalyzer(db=db, generator=generator, clock=clock)
            for bad in (0, 3651, 1_000_000):
                with self.assertRaises(InvalidArgumentError):
                    analyzer.analyze("u1", window_days=bad)
            self.assertEqual(generator.calls, [])
            self.assertEqual(analyzer.analyze("u1", window_days=3650)["sessions_analyzed"], 3)

    def test_confidence_capped(self) -> None:
        self.assertEqual(confidence_for(0), 0)
        self.assertEqual(confidence_for(10), 0.5)
        self.assertEqual(confidence_for(20), 1)
        self.assertEqual(confidence_for(45), 1)

    def test_parse_ignores_supplied_schema_version(self) -> None:
        payload = parse_pattern_payload(json.dumps({"schema_version": 99, "optimal_duration": 30}))
        assert payload is not None
        self.assertEqual(payload.schema_version, 1)
        self.assertEqual(payload.optimal_duration, 30)


class TestRecoveryPath(unittest.TestCase):
    def test_valid_reply(self) -> None:
        reply = json.dumps(
            {
                "estimated_recovery_mins": 8,
                "steps": [{"step": 1, "action": "Re-read last paragraph", "duration_mins": 2}],
                "mental_reset": "Three slow breaths",
                "context_rebuild": "Skim your notes",
                "momentum_starter": "Fix one typo",
            }
        )
        result = generate_recovery_path(StubGenerator(reply), "essay", "phone call", 5)
        self.assertEqual(result["estimated_recovery_mins"], 8)
        self.assertEqual(result["message"], "Recovery path ready. Start with: Fix one typo")

    def test_malformed_reply_is_upstream_error(self) -> None:
        with self.assertRaises(UpstreamError):
            generate_recovery_path(StubGenerator("{oops"), "essay", "phone call", 5)
        with self.assertRaises(UpstreamError):
            generate_recovery_path(failing_generator(), "essay", "phone call", 5)


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import unittest

from flowstate.clock import FakeClock
from flowstate.errors import InvalidStateError
from flowstate.tracker import (
    ACTIVE_IN_SESSION,
    ACTIVE_NO_SESSION,
    IDLE,
    DepthTracker,
    TrackerConfig,
    TrackerSnapshot,
)


class TestDepthTracker(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.events: list[tuple[str, TrackerSnapshot]] = []
        self.tracker = DepthTracker(
            self.clock,
            TrackerConfig(idle_timeout_sec=120),
            on_change=lambda event, snap: self.events.append((event, snap)),
        )

    def tearDown(self) -> None:
        self.tracker.close()

    def test_session_ticks_raise_depth(self) -> None:
        self.tracker.start_session()
        self.assertEqual(self.tracker.state, ACTIVE_IN_SESSION)
        self.assertEqual(self.tracker.snapshot().depth, 20)

        for _ in range(5):
            self.clock.advance(20)
            self.tracker.record_activity("key")

        snap = self.tracker.snapshot()
        self.assertEqual(snap.elapsed_sec, 100)
        self.assertEqual(snap.depth, 70)
        self.assertTrue(snap.should_check_cost)

    def test_depth_capped_at_max(self) -> None:
        self.tracker.start_session()
        for _ in range(10):
            self.clock.advance(60)
            self.tracker.record_activity("pointer")
        self.assertEqual(self.tracker.snapshot().depth, 100)
        self.assertEqual(self.tracker.snapshot().elapsed_sec, 600)

    def test_idle_after_timeout_suspends_ticking(self) -> None:
        self.tracker.start_session()
        self.clock.advance(119)
        self.assertEqual(self.tracker.state, ACTIVE_IN_SESSION)
        self.clock.advance(1)
        self.assertEqual(self.tracker.state, IDLE)
        elapsed = self.tracker.snapshot().elapsed_sec
        self.assertEqual(elapsed, 119)

        self.clock.advance(300)
        self.assertEqual(self.tracker.snapshot().elapsed_sec, elapsed)
        self.assertEqual(self.clock.pending_timers(), 0)

    def test_single_event_leaves_idle_and_restarts_timeout(self) -> None:
        self.clock.advance(120)
        self.assertEqual(self.tracker.state, IDLE)

        self.assertTrue(self.tracker.record_activity("scroll"))
        self.assertEqual(self.tracker.state, ACTIVE_NO_SESSION)

        self.clock.advance(119)
        self.assertEqual(self.tracker.state, ACTIVE_NO_SESSION)
        self.tracker.record_activity("touch")
        self.clock.advance(119)
        self.assertEqual(self.tracker.state, ACTIVE_NO_SESSION)
        self.clock.advance(1)
        self.assertEqual(self.tracker.state, IDLE)

    def test_unknown_activity_ignored(self) -> None:
        self.clock.advance(120)
        self.assertFalse(self.tracker.record_activity("window_resize"))
        self.assertEqual(self.tracker.state, IDLE)

    def test_resuming_in_session_restarts_ticks(self) -> None:
        self.tracker.start_session()
        self.clock.advance(120)
        self.assertEqual(self.tracker.state, IDLE)
        self.tracker.record_activity("key")
        self.assertEqual(self.tracker.state, ACTIVE_IN_SESSION)
        self.clock.advance(10)
        self.assertEqual(self.tracker.snapshot().elapsed_sec, 129)

    def test_end_session_cancels_tick_timer(self) -> None:
        self.tracker.start_session()
        self.clock.advance(5)
        self.assertEqual(self.clock.pending_timers(), 2)

        final = self.tracker.end_session()
        self.assertEqual(final.elapsed_sec, 5)
        self.assertEqual(self.tracker.state, ACTIVE_NO_SESSION)
        self.assertEqual(self.tracker.snapshot().depth, 0)
        self.assertEqual(self.clock.pending_timers(), 1)
        self.assertEqual(self.tracker.pending_timers, 1)

        self.clock.advance(5)
        self.assertEqual(self.tracker.snapshot().elapsed_sec, 5)

    def test_close_cancels_every_timer(self) -> None:
        self.tracker.start_session()
        self.clock.advance(3)
        self.tracker.close()
        self.assertEqual(self.clock.pending_timers(), 0)
        self.assertEqual(self.tracker.pending_timers, 0)
        with self.assertRaises(InvalidStateError):
            self.tracker.start_session()

    def test_session_state_errors(self) -> None:
        with self.assertRaises(InvalidStateError):
            self.tracker.end_session()
        self.tracker.start_session()
        with self.assertRaises(InvalidStateError):
            self.tracker.start_session()

    def test_change_events_emitted(self) -> None:
        self.tracker.start_session()
        self.clock.advance(2)
        names = [event for event, _ in self.events]
        self.assertEqual(names, ["session_start", "tick", "tick"])


if __name__ == "__main__":
    unittest.main()

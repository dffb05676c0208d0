from __future__ import annotations

import unittest

from flowstate.errors import InvalidArgumentError
from flowstate.heuristics import detect_flow_entry, interruption_cost, round_half_up


class TestInterruptionCost(unittest.TestCase):
    def test_zero_depth_costs_nothing(self) -> None:
        for rate in (1, 50, 250.5):
            cost = interruption_cost(0, rate)
            self.assertEqual(cost.recovery_minutes, 0)
            self.assertEqual(cost.dollar_cost, 0)
            self.assertEqual(cost.productivity_loss_minutes, 0)

    def test_full_depth_at_fifty_per_hour(self) -> None:
        cost = interruption_cost(100, 50)
        self.assertEqual(cost.recovery_minutes, 23)
        self.assertEqual(cost.recovery_time_mins, 23)
        self.assertEqual(cost.dollar_cost, 19)
        self.assertEqual(cost.productivity_loss_minutes, 46)
        self.assertIn("$19", cost.message)

    def test_dict_carries_both_loss_keys(self) -> None:
        data = interruption_cost(100, 50).to_dict()
        self.assertEqual(data["productivity_loss_minutes"], 46)
        self.assertEqual(data["productivity_loss_mins"], 46)
        self.assertEqual(data["recovery_time_mins"], 23)

    def test_dollar_cost_formula_and_monotonic(self) -> None:
        for rate in (10, 50, 87.5, 200):
            previous = -1
            for depth in range(0, 101):
                cost = interruption_cost(depth, rate)
                exact = 23 * depth / 100 / 60 * rate
                self.assertLessEqual(abs(cost.dollar_cost - exact), 0.5 + 1e-9)
                self.assertGreaterEqual(cost.dollar_cost, previous)
                previous = cost.dollar_cost

    def test_low_depth_message(self) -> None:
        self.assertEqual(interruption_cost(50, 50).message, "Low flow depth - safe to context switch")

    def test_out_of_range_rejected(self) -> None:
        for depth in (-1, 100.5, float("nan")):
            with self.assertRaises(InvalidArgumentError):
                interruption_cost(depth, 50)
        for rate in (0, -10):
            with self.assertRaises(InvalidArgumentError):
                interruption_cost(50, rate)
        with self.assertRaises(InvalidArgumentError):
            interruption_cost("80", 50)  # type: ignore[arg-type]

    def test_round_half_up(self) -> None:
        self.assertEqual(round_half_up(0.5), 1)
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(2.49), 2)


class TestFlowEntry(unittest.TestCase):
    def test_entering_flow(self) -> None:
        signal = detect_flow_entry(typing_speed=75, tab_switches=0, time_on_task_mins=20, mouse_idle_seconds=45)
        self.assertTrue(signal.is_entering_flow)
        self.assertEqual(signal.flow_depth, 100)
        self.assertEqual(len(signal.indicators), 4)

    def test_building_flow(self) -> None:
        signal = detect_flow_entry(typing_speed=40, tab_switches=3, time_on_task_mins=16)
        self.assertFalse(signal.is_entering_flow)
        self.assertEqual(signal.flow_depth, 20)
        self.assertEqual(signal.indicators, ["Sustained focus (15+ min)"])

    def test_zero_switches_needs_time_on_task(self) -> None:
        signal = detect_flow_entry(tab_switches=0, time_on_task_mins=5)
        self.assertEqual(signal.flow_depth, 0)
        signal = detect_flow_entry(tab_switches=0, time_on_task_mins=6)
        self.assertEqual(signal.flow_depth, 40)


if __name__ == "__main__":
    unittest.main()

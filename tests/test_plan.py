"""
Unit tests for calculate_daily_plan.

Covers:
- Flat capacity plans with and without holidays.
- Ramp-up efficiency curves and the working-day counter.
- Capacity shared with already scheduled orders and the first-day ceiling.
- The calendar-day safety bound.
"""
from __future__ import annotations

import unittest

from garment_planner.errors import PlanningExhausted
from garment_planner.scheduling.calendar import is_holiday
from garment_planner.scheduling.plan import base_daily_output, calculate_daily_plan

from builders import D, line, order, ramp_up, scheduled


def _days(result):
    return {k: v for k, v in result.daily_plan.items()}


class TestCapacityMethod(unittest.TestCase):
    def test_three_day_plan(self):
        res = calculate_daily_plan(order(qty=250), line(capacity=100), D(3))
        self.assertEqual(_days(res), {"2025-03-03": 100, "2025-03-04": 100, "2025-03-05": 50})
        self.assertEqual(res.end_date, D(5))
        self.assertTrue(res.complete)

    def test_holiday_is_skipped(self):
        res = calculate_daily_plan(order(qty=250), line(capacity=100), D(3), holidays=[D(4)])
        self.assertEqual(_days(res), {"2025-03-03": 100, "2025-03-05": 100, "2025-03-06": 50})
        for key in res.daily_plan:
            self.assertFalse(is_holiday(key, [D(4)]))

    def test_shares_day_with_existing_orders(self):
        existing = [scheduled("A", {D(3): 60, D(4): 100})]
        res = calculate_daily_plan(order(qty=150), line(capacity=100), D(3), orders=existing)
        self.assertEqual(_days(res), {"2025-03-03": 40, "2025-03-05": 100, "2025-03-06": 10})
        # start of the plan is the first allocated day, the full day is skipped
        self.assertEqual(res.first_date, D(3))

    def test_own_previous_booking_is_ignored(self):
        me = scheduled("ME", {D(3): 100, D(4): 100})
        res = calculate_daily_plan(me, line(capacity=100), D(3), orders=[me])
        self.assertEqual(_days(res), {"2025-03-03": 100, "2025-03-04": 100})

    def test_first_day_ceiling(self):
        res = calculate_daily_plan(order(qty=150), line(capacity=100), D(3), first_day_capacity=20)
        self.assertEqual(_days(res), {"2025-03-03": 20, "2025-03-04": 100, "2025-03-05": 30})

    def test_first_day_ceiling_cannot_exceed_free_capacity(self):
        existing = [scheduled("A", {D(3): 90})]
        res = calculate_daily_plan(order(qty=50), line(capacity=100), D(3), orders=existing,
                                   first_day_capacity=40)
        self.assertEqual(res.daily_plan["2025-03-03"], 10)

    def test_capacity_invariant_holds(self):
        existing = [scheduled("A", {D(3): 30, D(5): 70, D(6): 100}), scheduled("B", {D(4): 55})]
        res = calculate_daily_plan(order(qty=400), line(capacity=100), D(3), orders=existing)
        for key, qty in res.daily_plan.items():
            booked = sum(o.actual_production.get(key, 0) for o in existing)
            self.assertLessEqual(booked + qty, 100)
        self.assertEqual(res.planned, 400)


class TestRampUpMethod(unittest.TestCase):
    def setUp(self):
        self.plan = ramp_up(checkpoints=((1, 50), (2, 80)), final=100)
        self.line = line(capacity=1000)

    def test_efficiency_curve(self):
        res = calculate_daily_plan(order(qty=1242), self.line, D(3), method="rampup", ramp_up_plan=self.plan)
        self.assertEqual(_days(res), {"2025-03-03": 270, "2025-03-04": 432, "2025-03-05": 540})

    def test_remainder_continues_at_final_efficiency(self):
        res = calculate_daily_plan(order(qty=1512), self.line, D(3), method="rampup", ramp_up_plan=self.plan)
        self.assertEqual(list(res.daily_plan.values()), [270, 432, 540, 270])

    def test_holidays_do_not_advance_working_day(self):
        res = calculate_daily_plan(order(qty=1242), self.line, D(3), holidays=[D(4)],
                                   method="rampup", ramp_up_plan=self.plan)
        self.assertEqual(_days(res), {"2025-03-03": 270, "2025-03-05": 432, "2025-03-06": 540})

    def test_line_capacity_still_binds(self):
        res = calculate_daily_plan(order(qty=1000), line(capacity=300), D(3), method="rampup",
                                   ramp_up_plan=self.plan)
        self.assertEqual(list(res.daily_plan.values())[:3], [270, 300, 300])

    def test_base_output_uses_smv_and_mo_count(self):
        o = order(qty=10, smv=0.6, mo_count=3)
        self.assertAlmostEqual(base_daily_output(o), 540 / 0.6 * 3)
        self.assertAlmostEqual(base_daily_output(o, shift_minutes=480), 480 / 0.6 * 3)

    def test_gap_between_checkpoints_uses_final(self):
        plan = ramp_up(checkpoints=((1, 50), (3, 70)), final=90)
        self.assertEqual([plan.efficiency_for_day(d) for d in (1, 2, 3, 4)], [50, 90, 70, 90])

    def test_needs_a_plan(self):
        with self.assertRaises(ValueError):
            calculate_daily_plan(order(), self.line, D(3), method="rampup")


class TestSafetyBound(unittest.TestCase):
    def test_partial_plan_is_returned_and_logged(self):
        with self.assertLogs("garment_planner.plan", level="ERROR"):
            res = calculate_daily_plan(order(qty=500), line(capacity=100), D(3), max_days=3)
        self.assertFalse(res.complete)
        self.assertEqual(res.planned, 300)
        self.assertEqual(res.shortfall, 200)

    def test_strict_raises(self):
        with self.assertLogs("garment_planner.plan", level="ERROR"):
            with self.assertRaises(PlanningExhausted) as ctx:
                calculate_daily_plan(order(qty=500), line(capacity=100), D(3), max_days=2, strict=True)
        self.assertEqual(ctx.exception.result.planned, 200)

    def test_fully_booked_line_plans_nothing(self):
        busy = [scheduled("A", {D(3): 100, D(4): 100})]
        with self.assertLogs("garment_planner.plan", level="ERROR"):
            res = calculate_daily_plan(order(qty=10), line(capacity=100), D(3), orders=busy, max_days=2)
        self.assertEqual(res.daily_plan, {})
        self.assertIsNone(res.end_date)


if __name__ == "__main__":
    unittest.main()

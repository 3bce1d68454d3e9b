"""
Tests for Excel ingestion and the line plan report.
"""
from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import pandas as pd
from openpyxl import load_workbook

from garment_planner.db import init_db, make_engine, make_session_factory
from garment_planner.db.store import load_snapshot
from garment_planner.export.report import daily_loads, export_line_plan, line_plan_matrix
from garment_planner.ingest.loader import (
    canonicalize_orders,
    canonicalize_ramp_up,
    load_excels,
    ramp_up_plans_from_df,
    validate_files,
)
from garment_planner.scheduling.calendar import capacity_utilization

from builders import D, block, in_production, line, order, scheduled, snapshot


class TestLoader(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = Path(self.tmp.name)
        self.orders = root / "orders.xlsx"
        self.lines = root / "lines.xlsx"
        self.holidays = root / "holidays.xlsx"
        self.ramp = root / "ramp.xlsx"
        pd.DataFrame({
            "PO Number": ["PO-1", "PO-2"],
            "Style": ["ST-1", None],
            "Order Qty": [250, 120],
            "SMV": [12.5, 8],
            "MO Count": [30, 20],
            "Cut Qty": [240, None],
        }).to_excel(self.orders, index=False)
        pd.DataFrame({"Line ID": ["L1", "L2"], "Line Name": ["Line 1", None], "Capacity": [100, 80]}).to_excel(
            self.lines, index=False
        )
        pd.DataFrame({"Date": ["2025-03-04", "2025-03-04", "2025-12-25"], "Name": ["A", "A", "Xmas"]}).to_excel(
            self.holidays, index=False
        )
        pd.DataFrame({
            "Plan ID": ["R1", "R1", "R2"],
            "Plan Name": ["New style", "New style", "Repeat"],
            "Day": [1, 2, 1],
            "Efficiency %": [50, 80, 90],
            "Final Efficiency": [100, 100, 100],
        }).to_excel(self.ramp, index=False)

    def tearDown(self):
        self.tmp.cleanup()

    def test_header_synonyms(self):
        df = canonicalize_orders(pd.read_excel(self.orders))
        self.assertEqual(list(df["po_number"]), ["PO-1", "PO-2"])
        self.assertEqual(list(df["cut_quantity"]), [240, 0])
        self.assertEqual(list(df["mo_count"]), [30, 20])

    def test_ramp_up_rows_grouped_per_plan(self):
        plans = ramp_up_plans_from_df(canonicalize_ramp_up(pd.read_excel(self.ramp)))
        self.assertEqual([p.id for p in plans], ["R1", "R2"])
        self.assertEqual([c.day for c in plans[0].efficiencies], [1, 2])
        self.assertEqual(plans[0].name, "New style")

    def test_missing_columns(self):
        with self.assertRaises(ValueError):
            canonicalize_orders(pd.DataFrame({"PO Number": ["PO-1"]}))

    def test_validate_files(self):
        report = validate_files(str(self.orders), str(self.lines), str(self.holidays), str(self.ramp))
        self.assertEqual(report["status"], "ok", report["issues"])
        self.assertEqual(report["counts"]["orders_rows"], 2)
        self.assertEqual(report["counts"]["holidays_rows"], 2)

    def test_validate_flags_bad_capacity(self):
        pd.DataFrame({"Line ID": ["L1"], "Capacity": [0]}).to_excel(self.lines, index=False)
        report = validate_files(str(self.orders), str(self.lines))
        self.assertEqual(report["status"], "error")

    def test_repeated_po_is_loaded_once(self):
        pd.DataFrame({"PO": ["PO-1", "PO-1", "PO-2"], "Qty": [250, 999, 120], "SMV": [1, 1, 1], "MO": [1, 1, 1]}).to_excel(
            self.orders, index=False
        )
        engine = make_engine("sqlite://")
        init_db(engine)
        session = make_session_factory(engine)()
        try:
            self.assertEqual(load_excels(session, str(self.orders), str(self.lines), dry_run=True), (2, 2, 0, 0))
            self.assertEqual(load_snapshot(session).orders, [])

            counts = load_excels(session, str(self.orders), str(self.lines))
            self.assertEqual(counts[0], 2)
            snap = load_snapshot(session)
            self.assertEqual(sorted(o.po_number for o in snap.orders), ["PO-1", "PO-2"])
            self.assertEqual(next(o for o in snap.orders if o.po_number == "PO-1").order_quantity, 250)
        finally:
            session.close()
            engine.dispose()

    def test_load_into_database(self):
        engine = make_engine("sqlite://")
        init_db(engine)
        session = make_session_factory(engine)()
        try:
            counts = load_excels(session, str(self.orders), str(self.lines), str(self.holidays), str(self.ramp))
            self.assertEqual(counts, (2, 2, 2, 2))
            # second import skips known PO numbers
            counts = load_excels(session, str(self.orders), str(self.lines), str(self.holidays), str(self.ramp))
            self.assertEqual(counts[0], 0)

            snap = load_snapshot(session)
            self.assertEqual(len(snap.orders), 2)
            self.assertTrue(all(o.status.value == "pending" for o in snap.orders))
            self.assertEqual(snap.line("L2").name, "L2")
            self.assertIn(D(4), snap.holiday_dates())
        finally:
            session.close()
            engine.dispose()


class TestReport(unittest.TestCase):
    def setUp(self):
        self.snap = snapshot(
            [
                scheduled("A", block(3, 4, last_day=60)),
                scheduled("B", {D(4): 40, D(5): 20}),
                scheduled("C", block(3, 3), line_id="L2"),
                order("P"),
            ],
            lines=[line("L1", 100), line("L2", 200)],
            holidays=[D(6)],
        )

    def test_daily_loads(self):
        df = daily_loads(self.snap, D(3), D(6))
        self.assertEqual(len(df), 8)
        l1 = df[df["line_id"] == "L1"].set_index("work_date")
        self.assertEqual(list(l1["used"]), [100, 100, 20, 0])
        self.assertEqual(list(l1["available"]), [0, 0, 80, 100])
        self.assertTrue(l1.loc[D(6), "holiday"])
        l2 = df[df["line_id"] == "L2"].set_index("work_date")
        self.assertAlmostEqual(l2.loc[D(3), "util"], 0.5)

    def test_util_matches_calendar_helper(self):
        snap = self.snap.replace_order(in_production("R", {D(5): 200}, line_id="L2"))
        df = daily_loads(snap, D(3), D(6)).set_index(["line_id", "work_date"])
        for l in snap.lines:
            for day in (D(3), D(4), D(5)):
                self.assertAlmostEqual(df.loc[(l.id, day), "util"], capacity_utilization(l, day, snap.orders) / 100)
        self.assertEqual(df.loc[("L2", D(5)), "used"], 200)
        self.assertEqual(df.loc[("L2", D(5)), "util"], 1.0)

    def test_line_plan_matrix(self):
        m = line_plan_matrix(self.snap, "L1", D(3), D(5))
        self.assertEqual(list(m.index), ["A", "B"])
        self.assertEqual(m.loc["B"].tolist(), [0, 40, 20])
        self.assertTrue(line_plan_matrix(self.snap, "L1", D(10), D(12)).empty)

    def test_export(self):
        with tempfile.TemporaryDirectory() as tmp:
            out = export_line_plan(self.snap, Path(tmp) / "nested" / "plan.xlsx", D(3), D(7))
            self.assertTrue(out.exists())
            wb = load_workbook(out)
            self.assertEqual(wb.sheetnames, ["Loads", "Orders", "Plan Line L1", "Plan Line L2"])


if __name__ == "__main__":
    unittest.main()

"""
End-to-end run of the command line against a temporary SQLite file.
"""
from __future__ import annotations

import contextlib
import io
import tempfile
import unittest
from pathlib import Path

import pandas as pd

from garment_planner.cli import main


class TestCli(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = Path(self.tmp.name)
        self.url = f"sqlite:///{root / 'planner.db'}"
        self.orders = root / "orders.xlsx"
        self.lines = root / "lines.xlsx"
        self.out = root / "plan.xlsx"
        pd.DataFrame({"PO": ["PO-1", "PO-2"], "Qty": [250, 100], "SMV": [1, 1], "MO": [1, 1]}).to_excel(
            self.orders, index=False
        )
        pd.DataFrame({"Line": ["L1"], "Capacity": [100]}).to_excel(self.lines, index=False)

    def tearDown(self):
        self.tmp.cleanup()

    def _run(self, *argv):
        buf = io.StringIO()
        with contextlib.redirect_stdout(buf):
            code = main(["--db", self.url, *argv])
        return code, buf.getvalue()

    def test_ingest_schedule_split_report(self):
        code, text = self._run("ingest", "--orders", str(self.orders), "--lines", str(self.lines))
        self.assertEqual(code, 0, text)
        self.assertIn("orders=2", text)

        code, text = self._run("schedule", "PO-1", "--line", "L1", "--date", "2025-03-03")
        self.assertEqual(code, 0, text)
        self.assertIn("2025-03-05", text)

        code, text = self._run("schedule", "PO-2", "--line", "L1", "--date", "2025-03-04")
        self.assertEqual(code, 1)
        self.assertIn("needs_placement", text)

        code, text = self._run("schedule", "PO-2", "--line", "L1", "--date", "2025-03-04", "--placement", "after")
        self.assertEqual(code, 0, text)

        code, text = self._run("split", "PO-1", "--qty", "50")
        self.assertEqual(code, 0, text)
        self.assertIn("PO-1 Split 1", text)

        code, text = self._run("report", "--start", "2025-03-03", "--end", "2025-03-10", "--out", str(self.out))
        self.assertEqual(code, 0, text)
        self.assertTrue(self.out.exists())

    def test_ingest_dry_run_writes_nothing(self):
        code, text = self._run("ingest", "--orders", str(self.orders), "--lines", str(self.lines), "--dry-run")
        self.assertEqual(code, 0, text)
        self.assertIn("Would ingest: orders=2", text)

        code, text = self._run("schedule", "PO-1", "--line", "L1", "--date", "2025-03-03")
        self.assertEqual(code, 1)
        self.assertIn("rejected", text)

    def test_bad_split_quantity_fails(self):
        self._run("ingest", "--orders", str(self.orders), "--lines", str(self.lines))
        code, text = self._run("split", "PO-2", "--qty", "100")
        self.assertEqual(code, 1)
        self.assertIn("rejected", text)


if __name__ == "__main__":
    unittest.main()

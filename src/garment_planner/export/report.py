from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Optional

import pandas as pd
from openpyxl.formatting.rule import ColorScaleRule
from openpyxl.utils import get_column_letter

from ..schemas import Snapshot, as_date
from ..scheduling.calendar import capacity_utilization, date_window, used_capacity

LOAD_COLUMNS = ["line_id", "line_name", "work_date", "used", "capacity", "available", "util", "holiday"]


def _window(start: Any, end: Any | None) -> list[dt.date]:
    first = as_date(start)
    if end is None:
        return date_window(first)
    return date_window(first, (as_date(end) - first).days + 1)


def daily_loads(snapshot: Snapshot, start: Any, end: Any | None = None) -> pd.DataFrame:
    """One row per line and calendar day: booked units, free units, utilisation."""
    days = _window(start, end)
    holidays = snapshot.holiday_dates()
    records = []
    for line in snapshot.lines:
        for day in days:
            used = used_capacity(line.id, day, snapshot.orders)
            records.append((
                line.id,
                line.name,
                day,
                used,
                line.capacity,
                max(0, line.capacity - used),
                round(capacity_utilization(line, day, snapshot.orders) / 100.0, 4),
                day in holidays,
            ))
    return pd.DataFrame(records, columns=LOAD_COLUMNS)


def line_plan_matrix(snapshot: Snapshot, line_id: str, start: Any, end: Any | None = None) -> pd.DataFrame:
    """Orders (rows) by day (columns) with the planned quantity in each cell."""
    days = [d.isoformat() for d in _window(start, end)]
    rows = {}
    for o in snapshot.orders:
        if not o.holds_line or o.assigned_line_id != line_id:
            continue
        row = {d: o.actual_production.get(d, 0) for d in days}
        if any(row.values()):
            rows[o.po_number] = row
    if not rows:
        return pd.DataFrame(columns=days, index=pd.Index([], name="po_number"), dtype=int)
    df = pd.DataFrame.from_dict(rows, orient="index", columns=days).fillna(0).astype(int)
    df.index.name = "po_number"
    return df.sort_index()


def orders_frame(snapshot: Snapshot) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "po_number": o.po_number,
            "style_id": o.style_id,
            "status": o.status.value,
            "line_id": o.assigned_line_id,
            "order_quantity": o.order_quantity,
            "planned_quantity": o.planned_quantity,
            "plan_start_date": o.plan_start_date,
            "plan_end_date": o.plan_end_date,
            "smv": o.smv,
            "mo_count": o.mo_count,
            "cut_quantity": o.cut_quantity,
            "issue_quantity": o.issue_quantity,
        }
        for o in snapshot.orders
    ])


def export_line_plan(snapshot: Snapshot, out_path: str | Path, start: Any, end: Optional[Any] = None) -> Path:
    """Write Loads, Orders and one plan sheet per line to ``out_path``."""
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    loads = daily_loads(snapshot, start, end)

    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        loads.to_excel(writer, sheet_name="Loads", index=False)
        orders_frame(snapshot).to_excel(writer, sheet_name="Orders", index=False)
        for line in snapshot.lines:
            # Excel sheet names are capped at 31 chars
            sheet = f"Plan {line.name}"[:31]
            line_plan_matrix(snapshot, line.id, start, end).to_excel(writer, sheet_name=sheet)

        ws = writer.sheets["Loads"]
        util_col = get_column_letter(LOAD_COLUMNS.index("util") + 1)
        if len(loads):
            ws.conditional_formatting.add(
                f"{util_col}2:{util_col}{len(loads) + 1}",
                ColorScaleRule(start_type="num", start_value=0, start_color="FFFFFF",
                               end_type="num", end_value=1, end_color="F8696B"),
            )
        for i, col in enumerate(LOAD_COLUMNS, start=1):
            ws.column_dimensions[get_column_letter(i)].width = max(10, len(col) + 2)

    return out_path

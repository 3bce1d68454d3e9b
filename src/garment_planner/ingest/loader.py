# src/garment_planner/ingest/loader.py
from __future__ import annotations

from typing import Any, Dict, List, Set, Tuple

import pandas as pd
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..db.models import OrderRow
from ..db.store import replace_reference_data
from ..schemas import EfficiencyCheckpoint, Holiday, Order, ProductionLine, RampUpPlan

# ===================== Header synonyms (lowercase) =====================

ORDER_SYNONYMS: Dict[str, Set[str]] = {
    "po_number": {"po_number", "po number", "po", "po no", "po#", "purchase order"},
    "style_id": {"style_id", "style", "style id", "style no"},
    "order_quantity": {"order_quantity", "order quantity", "order qty", "qty", "quantity"},
    "smv": {"smv", "standard minute value", "sam"},
    "mo_count": {"mo_count", "mo count", "mo", "operators", "machines"},
    "cut_quantity": {"cut_quantity", "cut quantity", "cut qty", "cut"},
    "issue_quantity": {"issue_quantity", "issue quantity", "issue qty", "issue"},
}

LINE_SYNONYMS: Dict[str, Set[str]] = {
    "id": {"line_id", "line id", "id", "line"},
    "name": {"name", "line name", "line_name"},
    "capacity": {"capacity", "daily capacity", "capacity/day", "units/day"},
}

HOLIDAY_SYNONYMS: Dict[str, Set[str]] = {
    "date": {"date", "holiday", "holiday date", "day"},
    "name": {"name", "description", "holiday name"},
}

RAMP_UP_SYNONYMS: Dict[str, Set[str]] = {
    "id": {"plan_id", "plan id", "id", "plan"},
    "name": {"name", "plan name", "plan_name"},
    "day": {"day", "day no", "working day"},
    "efficiency": {"efficiency", "efficiency %", "eff", "eff %"},
    "final_efficiency": {"final_efficiency", "final efficiency", "final eff", "final %"},
}

# ===================== Helpers =====================


def _read_xlsx(path: str) -> pd.DataFrame:
    return pd.read_excel(path, engine="openpyxl")


def _rename_by_synonyms(df: pd.DataFrame, synonyms: Dict[str, Set[str]]) -> pd.DataFrame:
    lower_map = {str(c).strip().lower(): c for c in df.columns}
    rename = {}
    for canon, syns in synonyms.items():
        for s in syns:
            if s in lower_map:
                rename[lower_map[s]] = canon
                break
    return df.rename(columns=rename)


def _require(df: pd.DataFrame, cols: List[str], where: str, original_cols: List[Any]) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ValueError(f"{where}: missing required columns {missing}. Found: {original_cols}")


def _clean_text(v: Any) -> str | None:
    if v is None or (isinstance(v, float) and pd.isna(v)):
        return None
    s = str(v).strip()
    return s or None


def _int_col(df: pd.DataFrame, col: str, default: int = 0) -> pd.Series:
    if col not in df.columns:
        return pd.Series([default] * len(df), index=df.index, dtype=int)
    return pd.to_numeric(df[col], errors="coerce").fillna(default).round().astype(int)


# ===================== Canonicalisation =====================


def canonicalize_orders(df: pd.DataFrame) -> pd.DataFrame:
    original_cols = list(df.columns)
    df = _rename_by_synonyms(df, ORDER_SYNONYMS)
    _require(df, ["po_number", "order_quantity", "smv", "mo_count"], "orders", original_cols)
    out = pd.DataFrame(index=df.index)
    out["po_number"] = df["po_number"].map(_clean_text)
    out["style_id"] = df["style_id"].map(_clean_text) if "style_id" in df.columns else None
    out["order_quantity"] = _int_col(df, "order_quantity")
    out["smv"] = pd.to_numeric(df["smv"], errors="coerce")
    out["mo_count"] = _int_col(df, "mo_count")
    out["cut_quantity"] = _int_col(df, "cut_quantity")
    out["issue_quantity"] = _int_col(df, "issue_quantity")
    return out[out["po_number"].notna()].reset_index(drop=True)


def canonicalize_lines(df: pd.DataFrame) -> pd.DataFrame:
    original_cols = list(df.columns)
    df = _rename_by_synonyms(df, LINE_SYNONYMS)
    _require(df, ["id", "capacity"], "lines", original_cols)
    out = pd.DataFrame(index=df.index)
    out["id"] = df["id"].map(_clean_text)
    out["name"] = df["name"].map(_clean_text) if "name" in df.columns else out["id"]
    out["name"] = out["name"].fillna(out["id"])
    out["capacity"] = _int_col(df, "capacity")
    return out[out["id"].notna()].reset_index(drop=True)


def canonicalize_holidays(df: pd.DataFrame) -> pd.DataFrame:
    original_cols = list(df.columns)
    df = _rename_by_synonyms(df, HOLIDAY_SYNONYMS)
    _require(df, ["date"], "holidays", original_cols)
    out = pd.DataFrame(index=df.index)
    out["date"] = pd.to_datetime(df["date"], errors="coerce").dt.date
    out["name"] = df["name"].map(_clean_text) if "name" in df.columns else None
    return out.dropna(subset=["date"]).drop_duplicates(subset=["date"]).reset_index(drop=True)


def canonicalize_ramp_up(df: pd.DataFrame) -> pd.DataFrame:
    original_cols = list(df.columns)
    df = _rename_by_synonyms(df, RAMP_UP_SYNONYMS)
    _require(df, ["id", "day", "efficiency", "final_efficiency"], "ramp-up plans", original_cols)
    out = pd.DataFrame(index=df.index)
    out["id"] = df["id"].map(_clean_text)
    out["name"] = df["name"].map(_clean_text) if "name" in df.columns else out["id"]
    out["day"] = _int_col(df, "day")
    out["efficiency"] = pd.to_numeric(df["efficiency"], errors="coerce")
    out["final_efficiency"] = pd.to_numeric(df["final_efficiency"], errors="coerce")
    return out.dropna(subset=["id", "efficiency"]).reset_index(drop=True)


# ===================== Records =====================


def orders_from_df(df: pd.DataFrame) -> List[Order]:
    return [
        Order(
            po_number=r["po_number"],
            style_id=r["style_id"],
            order_quantity=int(r["order_quantity"]),
            smv=float(r["smv"]),
            mo_count=int(r["mo_count"]),
            cut_quantity=int(r["cut_quantity"]),
            issue_quantity=int(r["issue_quantity"]),
        )
        for r in df.to_dict(orient="records")
    ]


def lines_from_df(df: pd.DataFrame) -> List[ProductionLine]:
    return [ProductionLine(id=r["id"], name=r["name"], capacity=int(r["capacity"])) for r in df.to_dict(orient="records")]


def holidays_from_df(df: pd.DataFrame) -> List[Holiday]:
    return [Holiday(date=r["date"], name=r["name"]) for r in df.to_dict(orient="records")]


def ramp_up_plans_from_df(df: pd.DataFrame) -> List[RampUpPlan]:
    plans: List[RampUpPlan] = []
    for plan_id, g in df.groupby("id", sort=True):
        final = g["final_efficiency"].dropna()
        plans.append(RampUpPlan(
            id=str(plan_id),
            name=str(g["name"].dropna().iloc[0]) if g["name"].notna().any() else str(plan_id),
            efficiencies=[
                EfficiencyCheckpoint(day=int(r["day"]), efficiency=float(r["efficiency"]))
                for r in g.to_dict(orient="records")
            ],
            final_efficiency=float(final.iloc[0]) if len(final) else 100.0,
        ))
    return plans


# ===================== Public functions =====================


def validate_files(
    orders_xlsx: str,
    lines_xlsx: str,
    holidays_xlsx: str | None = None,
    ramp_up_xlsx: str | None = None,
) -> Dict[str, Any]:
    """Dry validation: read and normalise, return a report (nothing is stored)."""
    report: Dict[str, Any] = {"status": "ok", "issues": [], "counts": {}}

    odf = canonicalize_orders(_read_xlsx(orders_xlsx))
    report["counts"]["orders_rows"] = int(len(odf))
    if odf["po_number"].duplicated().any():
        report["issues"].append({
            "level": "warning", "where": "orders",
            "msg": f"duplicate po_number: {int(odf['po_number'].duplicated().sum())} (first row is loaded)",
        })
    for col in ("order_quantity", "mo_count"):
        bad = int((odf[col] <= 0).sum())
        if bad:
            report["issues"].append({"level": "error", "where": "orders", "msg": f"{col} <= 0 in {bad} rows"})
    bad_smv = int((odf["smv"].isna() | (odf["smv"] <= 0)).sum())
    if bad_smv:
        report["issues"].append({"level": "error", "where": "orders", "msg": f"smv missing or <= 0 in {bad_smv} rows"})

    ldf = canonicalize_lines(_read_xlsx(lines_xlsx))
    report["counts"]["lines_rows"] = int(len(ldf))
    if ldf["id"].duplicated().any():
        report["issues"].append({"level": "error", "where": "lines", "msg": "duplicate line ids"})
    bad = int((ldf["capacity"] <= 0).sum())
    if bad:
        report["issues"].append({"level": "error", "where": "lines", "msg": f"capacity <= 0 in {bad} rows"})

    if holidays_xlsx:
        hdf = canonicalize_holidays(_read_xlsx(holidays_xlsx))
        report["counts"]["holidays_rows"] = int(len(hdf))
    else:
        report["issues"].append({"level": "info", "where": "holidays", "msg": "no holiday file, every day is a working day"})

    if ramp_up_xlsx:
        rdf = canonicalize_ramp_up(_read_xlsx(ramp_up_xlsx))
        report["counts"]["ramp_up_rows"] = int(len(rdf))
        try:
            ramp_up_plans_from_df(rdf)
        except ValidationError as e:
            report["issues"].append({"level": "error", "where": "ramp-up plans", "msg": str(e)})

    if any(i["level"] == "error" for i in report["issues"]):
        report["status"] = "error"
    return report


def load_excels(
    session: Session,
    orders_xlsx: str,
    lines_xlsx: str,
    holidays_xlsx: str | None = None,
    ramp_up_xlsx: str | None = None,
    dry_run: bool = False,
) -> Tuple[int, int, int, int]:
    """Import into the database (or count only with dry_run=True).

    Lines, holidays and ramp-up plans are replaced; orders are appended as
    pending, skipping PO numbers already present. A PO repeated in the
    workbook is taken from its first row.
    """
    odf = canonicalize_orders(_read_xlsx(orders_xlsx)).drop_duplicates(subset=["po_number"], keep="first")
    orders = orders_from_df(odf)
    lines = lines_from_df(canonicalize_lines(_read_xlsx(lines_xlsx)))
    holidays = holidays_from_df(canonicalize_holidays(_read_xlsx(holidays_xlsx))) if holidays_xlsx else []
    plans = ramp_up_plans_from_df(canonicalize_ramp_up(_read_xlsx(ramp_up_xlsx))) if ramp_up_xlsx else []

    if dry_run:
        return len(orders), len(lines), len(holidays), len(plans)

    replace_reference_data(session, lines=lines, holidays=holidays, ramp_up_plans=plans)

    known = {po for (po,) in session.query(OrderRow.po_number).all()}
    fresh = [o for o in orders if o.po_number not in known]
    session.bulk_insert_mappings(
        OrderRow,
        [{**o.model_dump(mode="python"), "status": o.status.value} for o in fresh],
    )
    session.commit()
    return len(fresh), len(lines), len(holidays), len(plans)

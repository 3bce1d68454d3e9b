import argparse
import datetime as dt
import sys

from . import config
from .db import init_db, make_engine, make_session_factory, session_scope
from .db.store import SqlStore, load_snapshot
from .export.report import export_line_plan
from .ingest.loader import load_excels, validate_files
from .scheduling.commands import OutcomeStatus
from .scheduling.resolver import move_order_to_pending, schedule_order
from .scheduling.split import split_order


def _resolve_order_id(snapshot, ref: str) -> str:
    """Accept either an order id or a PO number."""
    if snapshot.order(ref) is not None:
        return ref
    match = next((o for o in snapshot.orders if o.po_number == ref), None)
    return match.id if match else ref


def _print_outcome(outcome) -> int:
    print(f"[{outcome.status.value}] {outcome.description}")
    for o in outcome.overlapping:
        print(f"  overlaps: {o.po_number} {o.plan_start_date}..{o.plan_end_date}")
    for s in outcome.steps:
        tail = f" ({s.error})" if s.error else ""
        print(f"  step {s.index}: {s.status.value} {s.command.describe()}{tail}")
    return 0 if outcome.status == OutcomeStatus.APPLIED else 1


def main(argv=None):
    parser = argparse.ArgumentParser(description="Garment line scheduling CLI")
    parser.add_argument("--db", default=None, help=f"database URL (default {config.DATABASE_URL})")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("init-db", help="Create tables")

    ing = sub.add_parser("ingest", help="Load orders, lines, holidays and ramp-up plans from Excel")
    ing.add_argument("--orders", required=True)
    ing.add_argument("--lines", required=True)
    ing.add_argument("--holidays")
    ing.add_argument("--ramp-up")
    ing.add_argument("--validate-only", action="store_true")
    ing.add_argument("--dry-run", action="store_true", help="read and count rows without writing")

    sch = sub.add_parser("schedule", help="Place an order on a line from a start date")
    sch.add_argument("order", help="order id or PO number")
    sch.add_argument("--line", required=True)
    sch.add_argument("--date", required=True, type=dt.date.fromisoformat)
    sch.add_argument("--method", choices=["capacity", "rampup"], default="capacity")
    sch.add_argument("--ramp-up-plan")
    sch.add_argument("--placement", choices=["before", "after"])

    pen = sub.add_parser("pending", help="Move a scheduled order back to pending")
    pen.add_argument("order")

    spl = sub.add_parser("split", help="Split a quantity off an order")
    spl.add_argument("order")
    spl.add_argument("--qty", required=True, type=int)

    rep = sub.add_parser("report", help="Export the line plan to Excel")
    rep.add_argument("--start", type=dt.date.fromisoformat, default=dt.date.today())
    rep.add_argument("--end", type=dt.date.fromisoformat)
    rep.add_argument("--out", default="out/line_plan.xlsx")

    args = parser.parse_args(argv)
    config.configure_logging()

    engine = make_engine(args.db)
    init_db(engine)
    factory = make_session_factory(engine)

    if args.cmd == "init-db":
        print("Tables ready")
        return 0

    if args.cmd == "ingest":
        if args.validate_only:
            report = validate_files(args.orders, args.lines, args.holidays, args.ramp_up)
            print("Validation:", report["status"], report["counts"])
            for issue in report["issues"]:
                print(f"  {issue['level']:7} {issue['where']}: {issue['msg']}")
            return 0 if report["status"] == "ok" else 1
        with session_scope(factory) as s:
            o, l, h, r = load_excels(s, args.orders, args.lines, args.holidays, args.ramp_up, dry_run=args.dry_run)
        label = "Would ingest" if args.dry_run else "Ingested"
        print(f"{label}: orders={o}, lines={l}, holidays={h}, ramp_up_plans={r}")
        return 0

    with session_scope(factory) as s:
        snapshot = load_snapshot(s)
        store = SqlStore(s)
        if args.cmd == "schedule":
            outcome = schedule_order(
                snapshot, store, _resolve_order_id(snapshot, args.order), args.line, args.date,
                method=args.method, ramp_up_plan_id=args.ramp_up_plan, placement=args.placement,
            )
            return _print_outcome(outcome)
        if args.cmd == "pending":
            return _print_outcome(move_order_to_pending(snapshot, store, _resolve_order_id(snapshot, args.order)))
        if args.cmd == "split":
            return _print_outcome(split_order(snapshot, store, _resolve_order_id(snapshot, args.order), args.qty))
        if args.cmd == "report":
            out = export_line_plan(snapshot, args.out, args.start, args.end)
            print("Exported:", out)
            return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())

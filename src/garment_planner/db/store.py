"""SQL-backed snapshot loading and command persistence.

Every callback commits on its own, so a cascade that fails half way leaves
the earlier steps in the database.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..schemas import Holiday, Order, OrderStatus, ProductionLine, RampUpPlan, Snapshot
from .models import HolidayRow, OrderRow, ProductionLineRow, RampUpPlanRow

logger = logging.getLogger("garment_planner.store")

_ORDER_FIELDS = (
    "po_number", "style_id", "order_quantity", "smv", "mo_count", "cut_quantity",
    "issue_quantity", "status", "plan_start_date", "plan_end_date", "assigned_line_id",
    "actual_production", "base_po_number", "split_number",
)


def _order_from_row(r: OrderRow) -> Order:
    return Order.model_validate({"id": r.id, **{f: getattr(r, f) for f in _ORDER_FIELDS}})


def _order_values(order: Order) -> Dict[str, Any]:
    data = order.model_dump(mode="python")
    data["status"] = order.status.value
    return {f: data[f] for f in _ORDER_FIELDS}


def load_snapshot(session: Session) -> Snapshot:
    lines = session.execute(select(ProductionLineRow).order_by(ProductionLineRow.name)).scalars().all()
    holidays = session.execute(select(HolidayRow).order_by(HolidayRow.date)).scalars().all()
    plans = session.execute(select(RampUpPlanRow).order_by(RampUpPlanRow.name)).scalars().all()
    orders = session.execute(select(OrderRow).order_by(OrderRow.po_number)).scalars().all()
    return Snapshot(
        lines=[ProductionLine(id=l.id, name=l.name, capacity=l.capacity) for l in lines],
        holidays=[Holiday(date=h.date, name=h.name) for h in holidays],
        ramp_up_plans=[
            RampUpPlan(id=p.id, name=p.name, efficiencies=p.efficiencies or [], final_efficiency=p.final_efficiency)
            for p in plans
        ],
        orders=[_order_from_row(o) for o in orders],
    )


def replace_reference_data(
    session: Session,
    lines: Iterable[ProductionLine] = (),
    holidays: Iterable[Holiday] = (),
    ramp_up_plans: Iterable[RampUpPlan] = (),
) -> None:
    """Truncate and reload lines, holidays and ramp-up plans."""
    session.execute(delete(HolidayRow))
    session.execute(delete(RampUpPlanRow))
    session.add_all(HolidayRow(date=h.date, name=h.name) for h in holidays)
    session.add_all(
        RampUpPlanRow(
            id=p.id,
            name=p.name or p.id,
            efficiencies=[c.model_dump() for c in p.efficiencies],
            final_efficiency=p.final_efficiency,
        )
        for p in ramp_up_plans
    )
    for l in lines:
        session.merge(ProductionLineRow(id=l.id, name=l.name, capacity=l.capacity))
    session.commit()


class SqlStore:
    """Applier backed by a SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    def _row(self, order_id: str) -> OrderRow:
        row = self.session.get(OrderRow, order_id)
        if row is None:
            raise KeyError(f"order {order_id} not found")
        return row

    def apply_schedule(self, order: Order, start_date: dt.date, end_date: dt.date, daily_plan: Dict[str, int]) -> None:
        row = self._row(order.id)
        row.status = OrderStatus.SCHEDULED.value
        row.assigned_line_id = order.assigned_line_id
        row.plan_start_date = start_date
        row.plan_end_date = end_date
        row.actual_production = dict(daily_plan)
        self.session.commit()
        logger.info("saved plan for %s (%s..%s)", order.po_number, start_date, end_date)

    def move_to_pending(self, order: Order) -> None:
        row = self._row(order.id)
        row.status = OrderStatus.PENDING.value
        row.assigned_line_id = None
        row.plan_start_date = None
        row.plan_end_date = None
        row.actual_production = {}
        self.session.commit()
        logger.info("moved %s to pending", order.po_number)

    def create_order(self, order: Order) -> Order:
        row = OrderRow(id=order.id, **_order_values(order))
        self.session.add(row)
        self.session.commit()
        return _order_from_row(row)

    def update_order(self, order_id: str, changes: Dict[str, Any]) -> None:
        row = self._row(order_id)
        merged = _order_from_row(row).with_changes(**changes)
        for k, v in _order_values(merged).items():
            setattr(row, k, v)
        self.session.commit()

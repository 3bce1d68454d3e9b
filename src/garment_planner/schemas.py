from __future__ import annotations

import datetime as dt
import re
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

SPLIT_SUFFIX_RE = re.compile(r"^(?P<base>.*?)\s+Split\s+(?P<n>\d+)\s*$")


def as_date(value: Any) -> dt.date:
    """Calendar day of a date, datetime, pandas Timestamp or ISO string."""
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if hasattr(value, "to_pydatetime"):
        return value.to_pydatetime().date()
    if isinstance(value, str):
        return dt.date.fromisoformat(value.strip()[:10])
    raise TypeError(f"cannot interpret {value!r} as a calendar day")


def day_key(value: Any) -> str:
    """ISO ``YYYY-MM-DD`` key used in daily plans."""
    return as_date(value).isoformat()


def split_po_number(po_number: str) -> tuple[str, int | None]:
    """``"PO-1 Split 2"`` -> ``("PO-1", 2)``; unsuffixed numbers give ``None``."""
    m = SPLIT_SUFFIX_RE.match(po_number or "")
    if not m:
        return (po_number or "").strip(), None
    return m.group("base").strip(), int(m.group("n"))


class OrderStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class PlanningMethod(str, Enum):
    CAPACITY = "capacity"
    RAMPUP = "rampup"


class Placement(str, Enum):
    BEFORE = "before"
    AFTER = "after"


def _optional_day(v: Any) -> Optional[dt.date]:
    if v is None or v == "":
        return None
    return as_date(v)


class Order(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    po_number: str
    style_id: str | None = None
    order_quantity: int = Field(gt=0)
    smv: float = Field(gt=0)
    mo_count: int = Field(gt=0)
    cut_quantity: int = Field(default=0, ge=0)
    issue_quantity: int = Field(default=0, ge=0)
    status: OrderStatus = OrderStatus.PENDING
    plan_start_date: dt.date | None = None
    plan_end_date: dt.date | None = None
    assigned_line_id: str | None = None
    actual_production: Dict[str, int] = Field(default_factory=dict)
    base_po_number: str | None = None
    split_number: int | None = Field(default=None, ge=0)

    @field_validator("plan_start_date", "plan_end_date", mode="before")
    @classmethod
    def _coerce_day(cls, v):
        return _optional_day(v)

    @field_validator("actual_production", mode="before")
    @classmethod
    def _normalize_plan(cls, v):
        if v is None:
            return {}
        out: Dict[str, int] = {}
        for k, q in dict(v).items():
            qty = int(q or 0)
            if qty < 0:
                raise ValueError(f"negative daily quantity {qty} on {k}")
            if qty:
                key = day_key(k)
                out[key] = out.get(key, 0) + qty
        return dict(sorted(out.items()))

    @model_validator(mode="after")
    def _check_state(self) -> "Order":
        if self.status == OrderStatus.PENDING:
            if self.plan_start_date or self.plan_end_date or self.assigned_line_id or self.actual_production:
                raise ValueError(f"pending order {self.po_number} carries plan data")
        if self.status == OrderStatus.SCHEDULED:
            if self.plan_start_date is None or self.plan_end_date is None or not self.assigned_line_id:
                raise ValueError(f"scheduled order {self.po_number} needs line and plan dates")
        if self.plan_start_date and self.plan_end_date:
            if self.plan_start_date > self.plan_end_date:
                raise ValueError(f"order {self.po_number}: plan starts after it ends")
            lo, hi = self.plan_start_date.isoformat(), self.plan_end_date.isoformat()
            outside = [k for k in self.actual_production if k < lo or k > hi]
            if outside:
                raise ValueError(f"order {self.po_number}: plan days {outside} outside {lo}..{hi}")
        return self

    @property
    def holds_line(self) -> bool:
        """Booked on its line: scheduled, in production or done."""
        return self.status != OrderStatus.PENDING and bool(self.assigned_line_id)

    @property
    def is_movable(self) -> bool:
        return self.status in (OrderStatus.PENDING, OrderStatus.SCHEDULED)

    @property
    def planned_quantity(self) -> int:
        return sum(self.actual_production.values())

    @property
    def is_fully_planned(self) -> bool:
        return self.planned_quantity == self.order_quantity

    def with_changes(self, **changes: Any) -> "Order":
        """Validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return Order.model_validate(data)


class ProductionLine(BaseModel):
    id: str
    name: str = ""
    capacity: int = Field(gt=0)

    @model_validator(mode="after")
    def _default_name(self) -> "ProductionLine":
        if not self.name:
            self.name = self.id
        return self


class Holiday(BaseModel):
    date: dt.date
    name: str | None = None

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_day(cls, v):
        return as_date(v)


class EfficiencyCheckpoint(BaseModel):
    day: int = Field(ge=1)
    efficiency: float = Field(ge=0, le=100)


class RampUpPlan(BaseModel):
    id: str
    name: str = ""
    efficiencies: List[EfficiencyCheckpoint] = Field(default_factory=list)
    final_efficiency: float = Field(gt=0, le=100)

    @field_validator("efficiencies")
    @classmethod
    def _unique_days(cls, v: List[EfficiencyCheckpoint]):
        days = [c.day for c in v]
        if len(days) != len(set(days)):
            raise ValueError("ramp-up checkpoints repeat a day")
        return sorted(v, key=lambda c: c.day)

    def efficiency_for_day(self, working_day: int) -> float:
        # days without a checkpoint (gaps and the tail) run at the final efficiency
        for c in self.efficiencies:
            if c.day == working_day:
                return c.efficiency
        return self.final_efficiency


class Snapshot(BaseModel):
    """Caller-owned view of everything the scheduler reads."""

    orders: List[Order] = Field(default_factory=list)
    lines: List[ProductionLine] = Field(default_factory=list)
    holidays: List[Holiday] = Field(default_factory=list)
    ramp_up_plans: List[RampUpPlan] = Field(default_factory=list)

    def order(self, order_id: str) -> Order | None:
        return next((o for o in self.orders if o.id == order_id), None)

    def line(self, line_id: str) -> ProductionLine | None:
        return next((l for l in self.lines if l.id == line_id), None)

    def ramp_up_plan(self, plan_id: str | None) -> RampUpPlan | None:
        if plan_id is None:
            return None
        return next((p for p in self.ramp_up_plans if p.id == plan_id), None)

    def holiday_dates(self) -> set[dt.date]:
        return {h.date for h in self.holidays}

    def replace_order(self, order: Order) -> "Snapshot":
        """Copy of the snapshot with ``order`` swapped in (or appended)."""
        orders = list(self.orders)
        for i, o in enumerate(orders):
            if o.id == order.id:
                orders[i] = order
                break
        else:
            orders.append(order)
        return self.model_copy(update={"orders": orders})

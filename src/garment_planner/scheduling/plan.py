"""Day-by-day production plan calculator.

Walks calendar days from the start date, skips holidays and gives each
working day ``min(remaining, free line capacity)``; the ramp-up method also
caps the day by ``floor(shift_minutes / smv * mo_count * efficiency / 100)``.
"""
from __future__ import annotations

import datetime as dt
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable

from .. import config
from ..errors import PlanningExhausted
from ..schemas import Order, PlanningMethod, ProductionLine, RampUpPlan, as_date
from .calendar import available_capacity, holiday_set

logger = logging.getLogger("garment_planner.plan")


@dataclass
class PlanResult:
    order_id: str
    line_id: str
    start_date: dt.date
    requested: int
    method: PlanningMethod = PlanningMethod.CAPACITY
    daily_plan: Dict[str, int] = field(default_factory=dict)
    days_scanned: int = 0

    @property
    def planned(self) -> int:
        return sum(self.daily_plan.values())

    @property
    def shortfall(self) -> int:
        return max(0, self.requested - self.planned)

    @property
    def complete(self) -> bool:
        return self.planned == self.requested

    @property
    def first_date(self) -> dt.date | None:
        return dt.date.fromisoformat(min(self.daily_plan)) if self.daily_plan else None

    @property
    def end_date(self) -> dt.date | None:
        return dt.date.fromisoformat(max(self.daily_plan)) if self.daily_plan else None


def base_daily_output(order: Order, shift_minutes: int | None = None) -> float:
    minutes = config.SHIFT_MINUTES if shift_minutes is None else shift_minutes
    return (minutes / order.smv) * order.mo_count


def ramp_up_ceiling(
    order: Order,
    plan: RampUpPlan,
    working_day: int,
    shift_minutes: int | None = None,
) -> int:
    eff = plan.efficiency_for_day(working_day)
    # tolerance keeps 540 * 0.8 from flooring to 431
    return int(math.floor(base_daily_output(order, shift_minutes) * eff / 100.0 + 1e-9))


def calculate_daily_plan(
    order: Order,
    line: ProductionLine,
    start_date: Any,
    orders: Iterable[Order] = (),
    holidays: Iterable[Any] | None = None,
    method: PlanningMethod | str = PlanningMethod.CAPACITY,
    ramp_up_plan: RampUpPlan | None = None,
    first_day_capacity: int | None = None,
    max_days: int | None = None,
    shift_minutes: int | None = None,
    strict: bool = False,
) -> PlanResult:
    """Allocate ``order.order_quantity`` on ``line`` from ``start_date`` on.

    ``orders`` is the current schedule; capacity already booked there is
    respected (the order's own previous allocation is ignored).
    ``first_day_capacity`` caps the first calendar day only, to top off a
    day another order partly occupies.

    When the day bound is reached the partial plan is returned with a
    positive ``shortfall``; with ``strict=True`` ``PlanningExhausted`` is
    raised instead.
    """
    method = PlanningMethod(method)
    if method == PlanningMethod.RAMPUP and ramp_up_plan is None:
        raise ValueError("ramp-up planning needs a ramp-up plan")

    start = as_date(start_date)
    holidays = holiday_set(holidays)
    orders = list(orders)
    limit = config.MAX_PLAN_DAYS if max_days is None else int(max_days)

    result = PlanResult(
        order_id=order.id,
        line_id=line.id,
        start_date=start,
        requested=order.order_quantity,
        method=method,
    )
    remaining = order.order_quantity
    working_day = 0

    for offset in range(limit):
        if remaining <= 0:
            break
        day = start + dt.timedelta(days=offset)
        result.days_scanned = offset + 1
        if day in holidays:
            continue
        working_day += 1

        ceiling = available_capacity(line, day, orders, exclude_order_id=order.id)
        if offset == 0 and first_day_capacity is not None:
            ceiling = min(ceiling, max(0, int(first_day_capacity)))
        if method == PlanningMethod.RAMPUP:
            ceiling = min(ceiling, ramp_up_ceiling(order, ramp_up_plan, working_day, shift_minutes))

        qty = min(remaining, ceiling)
        if qty > 0:
            result.daily_plan[day.isoformat()] = qty
            remaining -= qty

    if remaining > 0:
        logger.error(
            "plan exhausted: order=%s line=%s start=%s planned=%s/%s after %s days",
            order.po_number, line.id, start, result.planned, result.requested, result.days_scanned,
        )
        if strict:
            raise PlanningExhausted(result)
    else:
        logger.debug(
            "planned order=%s line=%s %s..%s (%s days)",
            order.po_number, line.id, result.first_date, result.end_date, len(result.daily_plan),
        )
    return result

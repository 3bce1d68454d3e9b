"""Overlap screening for a drop of an order onto a line/day."""
from __future__ import annotations

import datetime as dt
import math
from typing import Any, Iterable, List

from ..schemas import Order, ProductionLine, as_date


def estimated_duration_days(order: Order, line: ProductionLine) -> int:
    # capacity-only estimate; ramp-up and shared days are ignored
    return max(1, math.ceil(order.order_quantity / line.capacity))


def estimated_end_date(order: Order, line: ProductionLine, target_date: Any) -> dt.date:
    return as_date(target_date) + dt.timedelta(days=estimated_duration_days(order, line) - 1)


def ranges_intersect(a_start: dt.date, a_end: dt.date, b_start: dt.date, b_end: dt.date) -> bool:
    """Inclusive interval intersection."""
    return a_start <= b_end and a_end >= b_start


def find_overlapping_orders(
    order: Order,
    line: ProductionLine | None,
    target_date: Any,
    orders: Iterable[Order],
) -> List[Order]:
    """Orders booked on ``line`` whose plan range meets the candidate's estimated range.

    Read-only and conservative: the estimate assumes the whole line capacity
    each day, so an order that would actually fit around others may still be
    reported. Result is sorted by plan start date.
    """
    if line is None:
        return []
    start = as_date(target_date)
    end = estimated_end_date(order, line, start)
    hits = [
        o for o in orders
        if o.holds_line
        and o.assigned_line_id == line.id
        and o.id != order.id
        and o.plan_start_date is not None
        and o.plan_end_date is not None
        and ranges_intersect(start, end, o.plan_start_date, o.plan_end_date)
    ]
    return sorted(hits, key=lambda o: (o.plan_start_date, o.po_number))

"""Calendar and per line/day capacity helpers."""
from __future__ import annotations

import datetime as dt
from typing import Any, Iterable, List

from .. import config
from ..schemas import Holiday, Order, ProductionLine, as_date, day_key


def holiday_set(holidays: Iterable[Any] | None) -> set[dt.date]:
    out: set[dt.date] = set()
    for h in holidays or ():
        out.add(h.date if isinstance(h, Holiday) else as_date(h))
    return out


def is_holiday(day: Any, holidays: Iterable[Any] | None) -> bool:
    """True when ``day`` falls on a holiday (time of day is ignored)."""
    if not isinstance(holidays, (set, frozenset)):
        holidays = holiday_set(holidays)
    return as_date(day) in holidays


def orders_for_cell(
    line_id: str,
    day: Any,
    orders: Iterable[Order],
    exclude_order_id: str | None = None,
) -> List[Order]:
    key = day_key(day)
    return [
        o for o in orders
        if o.holds_line
        and o.assigned_line_id == line_id
        and o.actual_production.get(key, 0) > 0
        and o.id != exclude_order_id
    ]


def used_capacity(
    line_id: str,
    day: Any,
    orders: Iterable[Order],
    exclude_order_id: str | None = None,
) -> int:
    key = day_key(day)
    return sum(o.actual_production[key] for o in orders_for_cell(line_id, day, orders, exclude_order_id))


def available_capacity(
    line: ProductionLine | str | None,
    day: Any,
    orders: Iterable[Order],
    lines: Iterable[ProductionLine] | None = None,
    exclude_order_id: str | None = None,
) -> int:
    """Free units on ``line`` for ``day``; never negative, 0 for unknown lines.

    ``line`` may be a line id, resolved against ``lines``.
    """
    if isinstance(line, str):
        line = next((l for l in lines or () if l.id == line), None)
    if line is None:
        return 0
    return max(0, line.capacity - used_capacity(line.id, day, orders, exclude_order_id))


def capacity_utilization(line: ProductionLine | None, day: Any, orders: Iterable[Order]) -> float:
    """Percent of the line's daily capacity already booked, clipped to 100."""
    if line is None:
        return 0.0
    return min(used_capacity(line.id, day, orders) / line.capacity * 100.0, 100.0)


def date_window(start: Any, days: int | None = None) -> List[dt.date]:
    """Consecutive calendar days shown on the board, holidays included."""
    first = as_date(start)
    n = config.WINDOW_DAYS if days is None else int(days)
    return [first + dt.timedelta(days=i) for i in range(max(0, n))]

"""Dropping an order onto a line/day, including overlap resolution.

Two phases:

1. planning: every step of the cascade is computed against a working copy
   of the snapshot, so step N sees the capacity freed or booked by step N-1.
   A plan that cannot allocate its whole quantity aborts here, before any
   side effect.
2. execution: the resulting commands go to the caller's applier one by one
   (see :func:`commands.execute`). There is no rollback; a failing callback
   leaves the earlier steps applied and the outcome says so.

Placement policies when the drop overlaps scheduled orders:

* ``before``: overlapping orders go back to pending (earliest start first),
  the dropped order is planned at the target day, then the evicted orders
  are re-planned end to end behind it. The first one tops off the dropped
  order's last day when that day has capacity left.
* ``after``: the dropped order starts on the latest end day among the
  overlapping orders, filling what is left of that day, or on the next day
  when nothing is left.

Orders in production or completed keep their line days and cannot be
evicted, so "before" is refused when one of them is in the way.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from ..errors import PlanningExhausted
from ..schemas import (
    Order,
    OrderStatus,
    Placement,
    PlanningMethod,
    ProductionLine,
    RampUpPlan,
    Snapshot,
    as_date,
)
from .calendar import available_capacity
from .commands import (
    Applier,
    Command,
    MoveToPendingCommand,
    Outcome,
    OutcomeStatus,
    ScheduleCommand,
    StepStatus,
    apply_command,
    execute,
)
from .overlap import find_overlapping_orders
from .plan import PlanResult, calculate_daily_plan

logger = logging.getLogger("garment_planner.resolver")

_ONE_DAY = dt.timedelta(days=1)


@dataclass
class CascadePlan:
    """Commands for one drop, with the working snapshot they lead to."""

    snapshot: Snapshot
    commands: List[Command] = field(default_factory=list)
    plans: List[PlanResult] = field(default_factory=list)

    def push(self, cmd: Command) -> None:
        self.commands.append(cmd)
        self.snapshot = apply_command(self.snapshot, cmd)


class _Planner:
    def __init__(self, snapshot: Snapshot, line: ProductionLine, max_days: int | None = None):
        self.cascade = CascadePlan(snapshot=snapshot)
        self.line = line
        self.holidays = snapshot.holiday_dates()
        self.max_days = max_days

    def schedule(
        self,
        order_id: str,
        start: dt.date,
        method: PlanningMethod = PlanningMethod.CAPACITY,
        ramp_up_plan: RampUpPlan | None = None,
        first_day_capacity: int | None = None,
    ) -> PlanResult:
        order = self.cascade.snapshot.order(order_id)
        result = calculate_daily_plan(
            order,
            self.line,
            start,
            orders=self.cascade.snapshot.orders,
            holidays=self.holidays,
            method=method,
            ramp_up_plan=ramp_up_plan,
            first_day_capacity=first_day_capacity,
            max_days=self.max_days,
        )
        self.cascade.plans.append(result)
        if not result.complete:
            raise PlanningExhausted(result)
        self.cascade.push(ScheduleCommand(
            order_id=order.id,
            line_id=self.line.id,
            start_date=result.first_date,
            end_date=result.end_date,
            daily_plan=dict(result.daily_plan),
        ))
        return result

    def move_to_pending(self, order_id: str) -> None:
        self.cascade.push(MoveToPendingCommand(order_id=order_id))

    def leftover(self, day: dt.date) -> int:
        if day in self.holidays:
            return 0
        return available_capacity(self.line, day, self.cascade.snapshot.orders)


def plan_direct(
    snapshot: Snapshot,
    order: Order,
    line: ProductionLine,
    target_date: Any,
    method: PlanningMethod = PlanningMethod.CAPACITY,
    ramp_up_plan: RampUpPlan | None = None,
    max_days: int | None = None,
) -> CascadePlan:
    planner = _Planner(snapshot, line, max_days)
    planner.schedule(order.id, as_date(target_date), method, ramp_up_plan)
    return planner.cascade


def plan_before(
    snapshot: Snapshot,
    order: Order,
    line: ProductionLine,
    target_date: Any,
    overlapping: List[Order],
    method: PlanningMethod = PlanningMethod.CAPACITY,
    ramp_up_plan: RampUpPlan | None = None,
    max_days: int | None = None,
) -> CascadePlan:
    planner = _Planner(snapshot, line, max_days)
    evicted = sorted(overlapping, key=lambda o: (o.plan_start_date or dt.date.max, o.po_number))
    for o in evicted:
        planner.move_to_pending(o.id)

    placed = planner.schedule(order.id, as_date(target_date), method, ramp_up_plan)

    prev_end = placed.end_date
    left = planner.leftover(prev_end)
    for i, o in enumerate(evicted):
        if i == 0 and left > 0:
            result = planner.schedule(o.id, prev_end, first_day_capacity=left)
        else:
            result = planner.schedule(o.id, prev_end + _ONE_DAY)
        prev_end = result.end_date
    return planner.cascade


def plan_after(
    snapshot: Snapshot,
    order: Order,
    line: ProductionLine,
    target_date: Any,
    overlapping: List[Order],
    method: PlanningMethod = PlanningMethod.CAPACITY,
    ramp_up_plan: RampUpPlan | None = None,
    max_days: int | None = None,
) -> CascadePlan:
    planner = _Planner(snapshot, line, max_days)
    ends = [o.plan_end_date for o in overlapping if o.plan_end_date is not None]
    latest_end = max(ends) if ends else as_date(target_date)

    # the dropped order's own booking (when it is being moved) does not count
    left = 0
    if latest_end not in planner.holidays:
        left = available_capacity(line, latest_end, snapshot.orders, exclude_order_id=order.id)
    if left > 0:
        planner.schedule(order.id, latest_end, method, ramp_up_plan, first_day_capacity=left)
    else:
        planner.schedule(order.id, latest_end + _ONE_DAY, method, ramp_up_plan)
    return planner.cascade


def _reject(msg: str, snapshot: Snapshot) -> Outcome:
    logger.warning("rejected: %s", msg)
    return Outcome(status=OutcomeStatus.REJECTED, description=msg, snapshot=snapshot)


def _run(cascade: CascadePlan, snapshot: Snapshot, applier: Applier, done_msg: str,
         overlapping: Optional[List[Order]] = None) -> Outcome:
    steps, current, error = execute(cascade.commands, snapshot, applier)
    if error is None:
        logger.info(done_msg)
        return Outcome(
            status=OutcomeStatus.APPLIED,
            description=done_msg,
            snapshot=current,
            commands=cascade.commands,
            steps=steps,
            overlapping=list(overlapping or []),
            plans=cascade.plans,
        )
    applied = sum(1 for s in steps if s.status == StepStatus.APPLIED)
    msg = (
        f"failed after {applied} of {len(steps)} steps: {error}. "
        f"Earlier steps were kept; the board may need manual correction."
    )
    return Outcome(
        status=OutcomeStatus.PARTIAL_FAILURE,
        description=msg,
        snapshot=current,
        commands=cascade.commands,
        steps=steps,
        overlapping=list(overlapping or []),
        plans=cascade.plans,
    )


def schedule_order(
    snapshot: Snapshot,
    applier: Applier,
    order_id: str,
    line_id: str,
    target_date: Any,
    method: PlanningMethod | str = PlanningMethod.CAPACITY,
    ramp_up_plan_id: str | None = None,
    placement: Placement | str | None = None,
    max_days: int | None = None,
) -> Outcome:
    """Drop ``order_id`` on ``line_id`` at ``target_date``.

    Without overlaps the order is planned directly. With overlaps and no
    ``placement`` nothing happens and the outcome (``needs_placement``)
    lists the overlapping orders so the operator can pick before/after.
    """
    order = snapshot.order(order_id)
    if order is None:
        return _reject(f"unknown order {order_id}", snapshot)
    line = snapshot.line(line_id)
    if line is None:
        return _reject(f"unknown production line {line_id}", snapshot)
    if not order.is_movable:
        return _reject(f"{order.po_number} is {order.status.value} and cannot be rescheduled", snapshot)
    try:
        target = as_date(target_date)
        method = PlanningMethod(method)
        placement = Placement(placement) if placement is not None else None
    except (TypeError, ValueError) as e:
        return _reject(str(e), snapshot)
    if target in snapshot.holiday_dates():
        return _reject(f"{target} is a holiday", snapshot)
    ramp_up_plan = None
    if method == PlanningMethod.RAMPUP:
        ramp_up_plan = snapshot.ramp_up_plan(ramp_up_plan_id)
        if ramp_up_plan is None:
            return _reject(f"ramp-up planning needs a known ramp-up plan (got {ramp_up_plan_id!r})", snapshot)

    overlapping = find_overlapping_orders(order, line, target, snapshot.orders)
    if overlapping and placement is None:
        names = ", ".join(o.po_number for o in overlapping)
        return Outcome(
            status=OutcomeStatus.NEEDS_PLACEMENT,
            description=f"{order.po_number} overlaps {names} on {line.name}; choose before or after",
            snapshot=snapshot,
            overlapping=overlapping,
        )

    fixed = [o for o in overlapping if not o.is_movable]
    if placement == Placement.BEFORE and fixed:
        names = ", ".join(f"{o.po_number} ({o.status.value})" for o in fixed)
        return _reject(f"cannot place {order.po_number} before {names}: those orders cannot be moved", snapshot)

    try:
        if not overlapping:
            cascade = plan_direct(snapshot, order, line, target, method, ramp_up_plan, max_days)
        elif placement == Placement.BEFORE:
            cascade = plan_before(snapshot, order, line, target, overlapping, method, ramp_up_plan, max_days)
        else:
            cascade = plan_after(snapshot, order, line, target, overlapping, method, ramp_up_plan, max_days)
    except PlanningExhausted as e:
        res = e.result
        failed = snapshot.order(res.order_id)
        msg = (
            f"could not plan {failed.po_number if failed else res.order_id} on {line.name}: "
            f"only {res.planned} of {res.requested} fit within {res.days_scanned} days"
        )
        logger.error(msg)
        return Outcome(
            status=OutcomeStatus.PLANNING_FAILED,
            description=msg,
            snapshot=snapshot,
            overlapping=overlapping,
            plans=[res],
        )

    sched = next(c for c in cascade.commands if isinstance(c, ScheduleCommand) and c.order_id == order.id)
    msg = f"{order.po_number} scheduled on {line.name} from {sched.start_date} to {sched.end_date}"
    if overlapping:
        moved = len(overlapping) if placement == Placement.BEFORE else 0
        msg += f" ({placement.value}; {moved} order(s) rescheduled)"
    return _run(cascade, snapshot, applier, msg, overlapping)


def move_order_to_pending(snapshot: Snapshot, applier: Applier, order_id: str) -> Outcome:
    """Clear an order's plan and put it back in the pending pool."""
    order = snapshot.order(order_id)
    if order is None:
        return _reject(f"unknown order {order_id}", snapshot)
    if order.status != OrderStatus.SCHEDULED:
        return _reject(f"{order.po_number} is not scheduled", snapshot)
    cascade = CascadePlan(snapshot=snapshot)
    cascade.push(MoveToPendingCommand(order_id=order.id))
    return _run(cascade, snapshot, applier, f"{order.po_number} moved to pending")

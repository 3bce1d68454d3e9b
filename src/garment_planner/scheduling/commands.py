"""Proposed mutations and the sequential applier that performs them.

Planning code never calls storage; it produces a list of commands against a
working snapshot. ``execute`` then hands them to an ``Applier`` one at a time
in order. A failing step stops the run and everything after it is reported as
not run; steps already applied stay applied.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from ..errors import CollaboratorError
from ..schemas import Order, OrderStatus, Snapshot

logger = logging.getLogger("garment_planner.commands")


@dataclass(frozen=True)
class ScheduleCommand:
    order_id: str
    line_id: str
    start_date: dt.date
    end_date: dt.date
    daily_plan: Dict[str, int]

    def describe(self) -> str:
        return f"schedule {self.order_id} on {self.line_id} {self.start_date}..{self.end_date}"


@dataclass(frozen=True)
class MoveToPendingCommand:
    order_id: str

    def describe(self) -> str:
        return f"move {self.order_id} to pending"


@dataclass(frozen=True)
class CreateOrderCommand:
    order: Order

    def describe(self) -> str:
        return f"create {self.order.po_number}"


@dataclass(frozen=True)
class UpdateOrderCommand:
    order_id: str
    changes: Dict[str, Any]

    def describe(self) -> str:
        return f"update {self.order_id}: {sorted(self.changes)}"


Command = Union[ScheduleCommand, MoveToPendingCommand, CreateOrderCommand, UpdateOrderCommand]


class Applier(Protocol):
    """Persistence callbacks supplied by the caller."""

    def apply_schedule(self, order: Order, start_date: dt.date, end_date: dt.date, daily_plan: Dict[str, int]) -> None: ...

    def move_to_pending(self, order: Order) -> None: ...

    def create_order(self, order: Order) -> Order: ...

    def update_order(self, order_id: str, changes: Dict[str, Any]) -> None: ...


def _require(snapshot: Snapshot, order_id: str) -> Order:
    order = snapshot.order(order_id)
    if order is None:
        raise KeyError(f"unknown order {order_id}")
    return order


def scheduled_copy(order: Order, cmd: ScheduleCommand) -> Order:
    return order.with_changes(
        status=OrderStatus.SCHEDULED,
        assigned_line_id=cmd.line_id,
        plan_start_date=cmd.start_date,
        plan_end_date=cmd.end_date,
        actual_production=dict(cmd.daily_plan),
    )


def pending_copy(order: Order) -> Order:
    return order.with_changes(
        status=OrderStatus.PENDING,
        assigned_line_id=None,
        plan_start_date=None,
        plan_end_date=None,
        actual_production={},
    )


def apply_command(snapshot: Snapshot, cmd: Command) -> Snapshot:
    """Snapshot as it looks once ``cmd`` has been persisted."""
    if isinstance(cmd, ScheduleCommand):
        return snapshot.replace_order(scheduled_copy(_require(snapshot, cmd.order_id), cmd))
    if isinstance(cmd, MoveToPendingCommand):
        return snapshot.replace_order(pending_copy(_require(snapshot, cmd.order_id)))
    if isinstance(cmd, CreateOrderCommand):
        return snapshot.replace_order(cmd.order)
    if isinstance(cmd, UpdateOrderCommand):
        return snapshot.replace_order(_require(snapshot, cmd.order_id).with_changes(**cmd.changes))
    raise TypeError(f"unsupported command {cmd!r}")


class StepStatus(str, Enum):
    APPLIED = "applied"
    FAILED = "failed"
    NOT_RUN = "not_run"


@dataclass
class StepLog:
    index: int
    command: Command
    status: StepStatus = StepStatus.NOT_RUN
    error: Optional[str] = None
    exception: Optional[CollaboratorError] = None


class OutcomeStatus(str, Enum):
    APPLIED = "applied"
    NEEDS_PLACEMENT = "needs_placement"
    REJECTED = "rejected"
    PLANNING_FAILED = "planning_failed"
    PARTIAL_FAILURE = "partial_failure"


@dataclass
class Outcome:
    status: OutcomeStatus
    description: str
    snapshot: Optional[Snapshot] = None
    commands: List[Command] = field(default_factory=list)
    steps: List[StepLog] = field(default_factory=list)
    overlapping: List[Order] = field(default_factory=list)
    plans: List[Any] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.APPLIED

    @property
    def applied_steps(self) -> List[StepLog]:
        return [s for s in self.steps if s.status == StepStatus.APPLIED]

    @property
    def failure(self) -> Optional[CollaboratorError]:
        return next((s.exception for s in self.steps if s.exception is not None), None)


def _dispatch(applier: Applier, snapshot: Snapshot, cmd: Command) -> Snapshot:
    if isinstance(cmd, ScheduleCommand):
        order = scheduled_copy(_require(snapshot, cmd.order_id), cmd)
        applier.apply_schedule(order, cmd.start_date, cmd.end_date, dict(cmd.daily_plan))
        return snapshot.replace_order(order)
    if isinstance(cmd, MoveToPendingCommand):
        order = _require(snapshot, cmd.order_id)
        applier.move_to_pending(order)
        return snapshot.replace_order(pending_copy(order))
    if isinstance(cmd, CreateOrderCommand):
        created = applier.create_order(cmd.order)
        return snapshot.replace_order(created if created is not None else cmd.order)
    if isinstance(cmd, UpdateOrderCommand):
        applier.update_order(cmd.order_id, dict(cmd.changes))
        return apply_command(snapshot, cmd)
    raise TypeError(f"unsupported command {cmd!r}")


def execute(
    commands: Sequence[Command],
    snapshot: Snapshot,
    applier: Applier,
) -> tuple[List[StepLog], Snapshot, Optional[str]]:
    """Run ``commands`` in order against ``applier``.

    Returns the step log, the snapshot reflecting the applied steps and the
    first error message (``None`` when every step was applied).
    """
    steps = [StepLog(index=i, command=c) for i, c in enumerate(commands)]
    current = snapshot
    for step in steps:
        try:
            current = _dispatch(applier, current, step.command)
        except Exception as e:
            failure = CollaboratorError(step.index, step.command.describe(), e)
            failure.__cause__ = e
            step.status = StepStatus.FAILED
            step.exception = failure
            step.error = failure.reason
            logger.error("step %s failed (%s): %s", step.index, step.command.describe(), step.error)
            return steps, current, step.error
        step.status = StepStatus.APPLIED
        logger.info("step %s applied: %s", step.index, step.command.describe())
    return steps, current, None


class MemoryApplier:
    """Applier that keeps the persisted state in an in-process snapshot."""

    def __init__(self, snapshot: Snapshot | None = None):
        self.snapshot = snapshot or Snapshot()
        self.calls: List[tuple[str, str]] = []

    def apply_schedule(self, order, start_date, end_date, daily_plan):
        self.calls.append(("apply_schedule", order.id))
        self.snapshot = self.snapshot.replace_order(order)

    def move_to_pending(self, order):
        self.calls.append(("move_to_pending", order.id))
        self.snapshot = self.snapshot.replace_order(pending_copy(order))

    def create_order(self, order):
        self.calls.append(("create_order", order.id))
        self.snapshot = self.snapshot.replace_order(order)
        return order

    def update_order(self, order_id, changes):
        self.calls.append(("update_order", order_id))
        current = _require(self.snapshot, order_id)
        self.snapshot = self.snapshot.replace_order(current.with_changes(**changes))

"""Order splitting: carve a pending sibling order out of an existing one."""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Tuple

from ..schemas import Order, OrderStatus, Snapshot, split_po_number
from .commands import Applier, Command, CreateOrderCommand, Outcome, OutcomeStatus, UpdateOrderCommand, execute

logger = logging.getLogger("garment_planner.split")


def base_po_number(order: Order) -> str:
    return order.base_po_number or split_po_number(order.po_number)[0]


def split_number_of(order: Order) -> int | None:
    if order.split_number is not None:
        return order.split_number
    return split_po_number(order.po_number)[1]


def next_split_number(base: str, orders: Iterable[Order]) -> int:
    nums = [
        n for n in (split_number_of(o) for o in orders if base_po_number(o) == base)
        if n is not None
    ]
    return max(nums) + 1 if nums else 1


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def trim_plan_tail(plan: Dict[str, int], qty: int) -> Dict[str, int]:
    """Remove ``qty`` units from the latest days of ``plan``."""
    out = dict(plan)
    for key in sorted(out, reverse=True):
        if qty <= 0:
            break
        take = min(out[key], qty)
        out[key] -= take
        qty -= take
        if out[key] == 0:
            del out[key]
    return out


def plan_split(snapshot: Snapshot, order_id: str, split_quantity: Any) -> Tuple[List[Command], Order]:
    """Commands that split ``split_quantity`` units off ``order_id``.

    Raises ``ValueError`` for an unknown order or a quantity outside
    ``0 < q < order_quantity``.
    """
    order = snapshot.order(order_id)
    if order is None:
        raise ValueError(f"unknown order {order_id}")
    if isinstance(split_quantity, bool) or not isinstance(split_quantity, int):
        raise ValueError(f"split quantity must be a whole number, got {split_quantity!r}")
    if not 0 < split_quantity < order.order_quantity:
        raise ValueError(
            f"split quantity {split_quantity} must be between 1 and {order.order_quantity - 1} for {order.po_number}"
        )

    base = base_po_number(order)
    number = next_split_number(base, snapshot.orders)
    ratio = split_quantity / order.order_quantity
    cut = _round_half_up(order.cut_quantity * ratio)
    issue = _round_half_up(order.issue_quantity * ratio)

    sibling = Order(
        po_number=f"{base} Split {number}",
        style_id=order.style_id,
        order_quantity=split_quantity,
        smv=order.smv,
        mo_count=order.mo_count,
        cut_quantity=cut,
        issue_quantity=issue,
        status=OrderStatus.PENDING,
        base_po_number=base,
        split_number=number,
    )

    changes: Dict[str, Any] = {
        "order_quantity": order.order_quantity - split_quantity,
        "cut_quantity": order.cut_quantity - cut,
        "issue_quantity": order.issue_quantity - issue,
        "base_po_number": base,
    }
    own_number = split_number_of(order)
    if own_number is None:
        changes["po_number"] = f"{base} Split 0"
        changes["split_number"] = 0
    else:
        changes["split_number"] = own_number

    if order.actual_production:
        plan = trim_plan_tail(order.actual_production, order.planned_quantity - changes["order_quantity"])
        changes["actual_production"] = plan
        if order.holds_line and plan:
            changes["plan_end_date"] = max(plan)

    cmds: List[Command] = [
        CreateOrderCommand(order=sibling),
        UpdateOrderCommand(order_id=order.id, changes=changes),
    ]
    return cmds, sibling


def split_order(snapshot: Snapshot, applier: Applier, order_id: str, split_quantity: Any) -> Outcome:
    try:
        cmds, sibling = plan_split(snapshot, order_id, split_quantity)
    except ValueError as e:
        logger.warning("split rejected: %s", e)
        return Outcome(status=OutcomeStatus.REJECTED, description=str(e), snapshot=snapshot)

    steps, current, error = execute(cmds, snapshot, applier)
    if error is not None:
        return Outcome(
            status=OutcomeStatus.PARTIAL_FAILURE,
            description=f"split of {snapshot.order(order_id).po_number} failed: {error}",
            snapshot=current,
            commands=cmds,
            steps=steps,
        )
    msg = f"split {split_quantity} units into {sibling.po_number}"
    logger.info(msg)
    return Outcome(status=OutcomeStatus.APPLIED, description=msg, snapshot=current, commands=cmds, steps=steps)

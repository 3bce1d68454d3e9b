"""Scheduling core: calendar/capacity helpers, plan calculator, overlap
detection, placement resolution and order splitting.

Nothing in this package touches storage; side effects leave through the
command objects in :mod:`garment_planner.scheduling.commands`.
"""

__all__: list[str] = []

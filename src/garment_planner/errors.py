from __future__ import annotations


class SchedulingError(Exception):
    """Base class for scheduling failures."""


class PlanningExhausted(SchedulingError):
    """The calculator hit its day bound before allocating the full quantity."""

    def __init__(self, result):
        self.result = result
        super().__init__(
            f"order {result.order_id}: planned {result.planned} of {result.requested} "
            f"within {result.days_scanned} days from {result.start_date}"
        )


class CollaboratorError(SchedulingError):
    """A persistence callback failed while a cascade was being applied.

    ``__cause__`` holds the exception raised by the callback.
    """

    def __init__(self, step_index: int, description: str, cause: BaseException):
        self.step_index = step_index
        self.description = description
        self.reason = str(cause) or cause.__class__.__name__
        super().__init__(f"step {step_index} ({description}): {self.reason}")

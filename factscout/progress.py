"""Ordered step tracker for one extraction or crawl operation.

The tracker only reports; it never influences control flow.  Illegal
transitions (anything that would move a step backwards) are ignored and
logged rather than raised.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from factscout.events import EventBus, StepEvent


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


_RANK = {
    StepStatus.PENDING: 0,
    StepStatus.IN_PROGRESS: 1,
    StepStatus.COMPLETED: 2,
    StepStatus.FAILED: 2,
}

# Default phases of an interactive extraction, in display order.
DEFAULT_STEPS = (
    ("init", "Initializing"),
    ("page-load", "Loading page"),
    ("dom-analyze", "Analyzing page structure"),
    ("data-extract", "Extracting data"),
    ("data-process", "Processing results"),
    ("completion", "Done"),
)


@dataclass
class ProgressStep:
    id: str
    label: str
    status: StepStatus = StepStatus.PENDING
    detail: Optional[str] = None
    started_at: Optional[float] = None
    ended_at: Optional[float] = None


class StepTracker:
    """Declared, monotonic steps that publish a :class:`StepEvent` per transition."""

    def __init__(
        self,
        steps: Iterable[tuple[str, str]] = DEFAULT_STEPS,
        events: EventBus | None = None,
    ) -> None:
        self._steps: list[ProgressStep] = []
        self._events = events
        for step_id, label in steps:
            self.declare(step_id, label)

    @property
    def steps(self) -> list[ProgressStep]:
        return list(self._steps)

    def get(self, step_id: str) -> ProgressStep | None:
        for step in self._steps:
            if step.id == step_id:
                return step
        return None

    def declare(self, step_id: str, label: str) -> ProgressStep:
        """Append a pending step; re-declaring an existing id returns it unchanged."""
        existing = self.get(step_id)
        if existing is not None:
            return existing
        step = ProgressStep(id=step_id, label=label)
        self._steps.append(step)
        return step

    def start(self, step_id: str, detail: str | None = None) -> bool:
        return self._transition(step_id, StepStatus.IN_PROGRESS, detail)

    def complete(self, step_id: str, detail: str | None = None) -> bool:
        """Mark *step_id* completed and move the next pending step to in-progress."""
        if not self._transition(step_id, StepStatus.COMPLETED, detail):
            return False
        index = self._steps.index(self.get(step_id))  # type: ignore[arg-type]
        for following in self._steps[index + 1:]:
            if following.status is StepStatus.PENDING:
                self._transition(following.id, StepStatus.IN_PROGRESS, None)
                break
        return True

    def fail(self, step_id: str, detail: str | None = None) -> bool:
        return self._transition(step_id, StepStatus.FAILED, detail)

    def _transition(self, step_id: str, status: StepStatus, detail: str | None) -> bool:
        step = self.get(step_id)
        if step is None:
            print(f"[Steps] unknown step {step_id!r}, ignoring {status.value}")
            return False
        if step.status is status:
            return False
        if _RANK[status] <= _RANK[step.status]:
            print(f"[Steps] refusing {step_id}: {step.status.value} -> {status.value}")
            return False

        now = time.time()
        if status is StepStatus.IN_PROGRESS:
            step.started_at = now
        else:
            step.started_at = step.started_at or now
            step.ended_at = now
        step.status = status
        if detail is not None:
            step.detail = detail

        if self._events is not None:
            self._events.publish(
                StepEvent(step_id=step.id, label=step.label, status=status.value, detail=step.detail)
            )
        return True
